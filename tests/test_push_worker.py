"""
Service Worker Tests

Notification display and click routing served to the patient portal.
"""

import pytest

from orthomonitor.config.config import settings
from orthomonitor.core.push_worker import (
    DEFAULT_TITLE,
    VIBRATE_PATTERN,
    build_notification,
    render_service_worker,
    resolve_notification_click,
)

ORIGIN = "https://portal.example.com"


@pytest.mark.unit
class TestBuildNotification:

    def test_full_payload(self):
        notification = build_notification(
            {"title": "New Message", "body": "Hi", "url": "/messages/1", "tag": "msg-1"}
        )
        assert notification["title"] == "New Message"
        options = notification["options"]
        assert options["body"] == "Hi"
        assert options["tag"] == "msg-1"
        assert options["data"] == {"url": "/messages/1"}
        assert options["vibrate"] == VIBRATE_PATTERN
        assert options["icon"] == settings.PUSH_ICON_PATH
        assert options["badge"] == settings.PUSH_BADGE_PATH

    def test_missing_payload_uses_defaults(self):
        notification = build_notification(None)
        assert notification["title"] == DEFAULT_TITLE
        assert notification["options"]["body"] == ""
        assert notification["options"]["data"] == {"url": "/"}


@pytest.mark.unit
class TestNotificationClick:

    def test_focuses_open_window_on_origin(self):
        clients = [
            {"id": "a", "url": "https://elsewhere.example.com/", "type": "window"},
            {"id": "b", "url": f"{ORIGIN}/home", "type": "window"},
        ]
        action = resolve_notification_click({"url": "/messages/42"}, clients, ORIGIN)
        assert action == {"action": "focus", "client_id": "b", "url": "/messages/42"}

    def test_opens_window_when_none_match(self):
        clients = [{"id": "w", "url": f"{ORIGIN}/", "type": "worker"}]
        action = resolve_notification_click({"url": "/home"}, clients, ORIGIN)
        assert action == {"action": "open", "url": "/home"}

    def test_defaults_to_root(self):
        assert resolve_notification_click(None, [], ORIGIN) == {"action": "open", "url": "/"}


@pytest.mark.unit
def test_rendered_worker_contains_handlers():
    script = render_service_worker()
    assert "addEventListener('push'" in script
    assert "notificationclick" in script
    assert DEFAULT_TITLE in script
