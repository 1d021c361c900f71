"""
Patient-portal service worker contract.

The worker script served at ``/sw.js`` is rendered from
``templates/sw.js.j2``. The functions below are the same display and
click-routing rules expressed in Python; the template is kept in step with
them and the tests pin their behaviour.
"""

from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Sequence
from jinja2 import Environment, FileSystemLoader, select_autoescape
from orthomonitor.config.config import settings

DEFAULT_TITLE = "OrthoMonitor"
DEFAULT_URL = "/"
VIBRATE_PATTERN = [100, 50, 100]

TEMPLATES_DIR = Path(__file__).resolve().parent.parent / "templates"

_env = Environment(
    loader=FileSystemLoader(str(TEMPLATES_DIR)),
    autoescape=select_autoescape(enabled_extensions=("html",), default=False),
)


def build_notification(
    payload: Optional[Mapping[str, Any]],
    icon: Optional[str] = None,
    badge: Optional[str] = None,
) -> Dict[str, Any]:
    """
    Turn a push payload ``{title, body, url?, tag?}`` into the
    ``showNotification(title, options)`` arguments.
    """
    payload = payload or {}
    return {
        "title": payload.get("title") or DEFAULT_TITLE,
        "options": {
            "body": payload.get("body") or "",
            "icon": icon or settings.PUSH_ICON_PATH,
            "badge": badge or settings.PUSH_BADGE_PATH,
            "tag": payload.get("tag"),
            "vibrate": list(VIBRATE_PATTERN),
            "data": {"url": payload.get("url") or DEFAULT_URL},
        },
    }


def resolve_notification_click(
    data: Optional[Mapping[str, Any]],
    clients: Sequence[Mapping[str, Any]],
    origin: str,
) -> Dict[str, Any]:
    """
    Decide what a notification click does.

    ``clients`` are window clients as reported by ``clients.matchAll``
    (``{"id", "url", "type"}``). The first window client on ``origin`` is
    focused and navigated to the target; with none open a new window is
    opened there.

    Returns:
        ``{"action": "focus", "client_id", "url"}`` or
        ``{"action": "open", "url"}``
    """
    target = (data or {}).get("url") or DEFAULT_URL
    windows: List[Mapping[str, Any]] = [
        client for client in clients if client.get("type", "window") == "window"
    ]
    for client in windows:
        if origin in (client.get("url") or ""):
            return {"action": "focus", "client_id": client.get("id"), "url": target}

    return {"action": "open", "url": target}


def render_service_worker() -> str:
    template = _env.get_template("sw.js.j2")
    return template.render(
        default_title=DEFAULT_TITLE,
        default_url=DEFAULT_URL,
        icon=settings.PUSH_ICON_PATH,
        badge=settings.PUSH_BADGE_PATH,
        vibrate=VIBRATE_PATTERN,
    )
