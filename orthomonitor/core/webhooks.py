"""
Outbound Webhooks

Clinic events (scan reviewed or flagged, clinic message sent) are POSTed as
signed JSON to one configured receiver. Like push, delivery runs as a
background task after the response: ``send`` retries transient failures,
logs the outcome and never raises.

Receivers verify ``X-Webhook-Signature`` by computing
``sha256=<hex HMAC-SHA256 of the raw body keyed by WEBHOOK_SECRET>``.
"""

import asyncio
import hashlib
import hmac
import json
import uuid
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, Optional, Sequence
import httpx
from orthomonitor.config.config import settings
from orthomonitor.core.utils import LoggerMixin

SCAN_REVIEWED = "scan.reviewed"
SCAN_FLAGGED = "scan.flagged"
MESSAGE_SENT = "message.sent"

WEBHOOK_TIMEOUT_SECONDS = 10.0
# One initial attempt plus one retry per delay
RETRY_DELAYS: Sequence[float] = (1.0, 3.0, 9.0)


def is_retryable_status(status_code: int) -> bool:
    """5xx and 429 are retried; any other 4xx is final."""
    if status_code == 429:
        return True
    return not 400 <= status_code < 500


class WebhookService(LoggerMixin):

    def __init__(
        self,
        url: Optional[str] = None,
        secret: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        retry_delays: Sequence[float] = RETRY_DELAYS,
        timeout: float = WEBHOOK_TIMEOUT_SECONDS,
    ):
        self.url = url or settings.WEBHOOK_URL
        self.secret = secret or settings.WEBHOOK_SECRET
        self.transport = transport
        self.sleep = sleep
        self.retry_delays = tuple(retry_delays)
        self.timeout = timeout

        if self.is_configured():
            self.log_info({"event": "webhooks_configured", "url": self.url})
        else:
            self.log_warning(
                {
                    "event": "webhooks_disabled",
                    "reason": "WEBHOOK_URL / WEBHOOK_SECRET not set",
                }
            )

    def is_configured(self) -> bool:
        return bool(self.url and self.secret)

    def sign(self, body: bytes) -> str:
        return hmac.new(self.secret.encode("utf-8"), body, hashlib.sha256).hexdigest()

    @staticmethod
    def build_body(event: str, data: Dict[str, Any], webhook_id: str) -> bytes:
        timestamp = (
            datetime.now(timezone.utc)
            .isoformat(timespec="milliseconds")
            .replace("+00:00", "Z")
        )
        envelope = {
            "event": event,
            "timestamp": timestamp,
            "webhookId": webhook_id,
            "data": data,
        }
        return json.dumps(envelope, separators=(",", ":")).encode("utf-8")

    async def send(self, event: str, data: Dict[str, Any]) -> bool:
        """
        Deliver one event.

        Returns:
            True once the receiver answered 2xx; False when disabled, rejected
            or out of retries
        """
        if not self.is_configured():
            return False

        webhook_id = str(uuid.uuid4())
        try:
            body = self.build_body(event, data, webhook_id)
            headers = {
                "Content-Type": "application/json",
                "X-Webhook-Signature": f"sha256={self.sign(body)}",
                "X-Webhook-Id": webhook_id,
            }
            return await self._dispatch(event, webhook_id, body, headers)

        except Exception as e:
            self.log_error(
                {
                    "event": "webhook_error",
                    "webhook_event": event,
                    "webhook_id": webhook_id,
                    "error": str(e),
                    "error_type": type(e).__name__,
                },
                exc_info=True,
            )
            return False

    async def _dispatch(
        self, event: str, webhook_id: str, body: bytes, headers: Dict[str, str]
    ) -> bool:
        max_attempts = len(self.retry_delays) + 1
        context = {"webhook_event": event, "webhook_id": webhook_id}

        async with httpx.AsyncClient(transport=self.transport, timeout=self.timeout) as client:
            for attempt in range(1, max_attempts + 1):
                try:
                    response = await client.post(self.url, content=body, headers=headers)
                except httpx.TransportError as e:
                    failure = {"error": str(e), "error_type": type(e).__name__}
                else:
                    if response.is_success:
                        self.log_info(
                            {
                                "event": "webhook_delivered",
                                "status_code": response.status_code,
                                "attempt": attempt,
                                **context,
                            }
                        )
                        return True
                    if not is_retryable_status(response.status_code):
                        self.log_warning(
                            {
                                "event": "webhook_rejected",
                                "status_code": response.status_code,
                                **context,
                            }
                        )
                        return False
                    failure = {"status_code": response.status_code}

                if attempt == max_attempts:
                    self.log_error(
                        {
                            "event": "webhook_retries_exhausted",
                            "attempts": attempt,
                            **context,
                            **failure,
                        }
                    )
                    return False

                self.log_warning(
                    {
                        "event": "webhook_retry",
                        "retry": attempt,
                        "max_retries": max_attempts - 1,
                        **context,
                        **failure,
                    }
                )
                await self.sleep(self.retry_delays[attempt - 1])

        return False


def scan_event_data(session_id: uuid.UUID, patient_id: uuid.UUID) -> Dict[str, str]:
    return {"sessionId": str(session_id), "patientId": str(patient_id)}


def message_event_data(
    thread_id: uuid.UUID, patient_id: uuid.UUID, preview: str
) -> Dict[str, str]:
    return {"threadId": str(thread_id), "patientId": str(patient_id), "preview": preview}


_webhook_service: Optional[WebhookService] = None


def get_webhook_service() -> WebhookService:
    """FastAPI dependency returning the process-wide webhook sender."""
    global _webhook_service
    if _webhook_service is None:
        _webhook_service = WebhookService()
    return _webhook_service
