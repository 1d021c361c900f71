"""
Notification Service

Web push delivery to patient devices over VAPID. Delivery is fire-and-forget:
callers schedule ``send_to_patient`` as a background task and never see the
outcome. Failures are logged; subscriptions the push service reports as gone
(404/410) are deleted.
"""

import json
import uuid
from typing import Callable, Optional
from fastapi.concurrency import run_in_threadpool
from pywebpush import WebPushException, webpush
from sqlalchemy.ext.asyncio import AsyncSession
from orthomonitor.config.config import settings
from orthomonitor.core.utils import LoggerMixin
from orthomonitor.db.session import AsyncSessionLocal
from orthomonitor.models.push_model import PushSubscription
from orthomonitor.repositories.push_repo import PushSubscriptionRepository
from orthomonitor.schemas.push_schemas import PushPayload

STALE_SUBSCRIPTION_STATUSES = (404, 410)


class WebPushService(LoggerMixin):

    def __init__(
        self,
        session_factory: Callable[[], AsyncSession] = AsyncSessionLocal,
        sender: Callable = webpush,
        vapid_public_key: Optional[str] = None,
        vapid_private_key: Optional[str] = None,
        vapid_subject: Optional[str] = None,
    ):
        self.session_factory = session_factory
        self.sender = sender
        self.vapid_public_key = vapid_public_key or settings.VAPID_PUBLIC_KEY
        self.vapid_private_key = vapid_private_key or settings.VAPID_PRIVATE_KEY
        self.vapid_subject = vapid_subject or settings.VAPID_SUBJECT

        if not self.is_configured():
            self.log_warning(
                {
                    "event": "push_disabled",
                    "reason": "VAPID_PUBLIC_KEY / VAPID_PRIVATE_KEY not set",
                }
            )

    def is_configured(self) -> bool:
        return bool(self.vapid_public_key and self.vapid_private_key)

    def get_vapid_public_key(self) -> Optional[str]:
        return self.vapid_public_key

    async def subscribe(
        self,
        db: AsyncSession,
        patient_id: uuid.UUID,
        endpoint: str,
        p256dh: str,
        auth: str,
        user_agent: Optional[str] = None,
    ) -> PushSubscription:
        """Register or re-assign an endpoint; the endpoint is the identity."""
        subscription = await PushSubscriptionRepository(db).upsert(
            patient_id=patient_id,
            endpoint=endpoint,
            p256dh=p256dh,
            auth=auth,
            user_agent=user_agent,
        )
        self.log_info(
            {
                "event": "push_subscription_saved",
                "patient_id": str(patient_id),
                "subscription_id": str(subscription.id),
            }
        )
        return subscription

    async def unsubscribe(self, db: AsyncSession, patient_id: uuid.UUID, endpoint: str) -> int:
        removed = await PushSubscriptionRepository(db).delete_for_patient(patient_id, endpoint)
        self.log_info(
            {
                "event": "push_subscription_removed",
                "patient_id": str(patient_id),
                "removed": removed,
            }
        )
        return removed

    def _deliver(self, subscription_info: dict, data: str) -> None:
        self.sender(
            subscription_info=subscription_info,
            data=data,
            vapid_private_key=self.vapid_private_key,
            vapid_claims={"sub": self.vapid_subject},
        )

    async def send_to_patient(self, patient_id: uuid.UUID, payload: PushPayload) -> int:
        """
        Push ``payload`` to every subscription of a patient.

        Returns:
            Number of successful deliveries
        """
        if not self.is_configured():
            return 0

        data = json.dumps(payload.model_dump(exclude_none=True))
        delivered = 0
        failed = 0

        async with self.session_factory() as db:
            repo = PushSubscriptionRepository(db)
            subscriptions = await repo.list_for_patient(patient_id)

            for subscription in subscriptions:
                try:
                    await run_in_threadpool(
                        self._deliver, subscription.as_subscription_info(), data
                    )
                    delivered += 1
                except WebPushException as e:
                    failed += 1
                    status_code = getattr(e.response, "status_code", None)
                    if status_code in STALE_SUBSCRIPTION_STATUSES:
                        self.log_info(
                            {
                                "event": "push_subscription_stale",
                                "subscription_id": str(subscription.id),
                                "status_code": status_code,
                            }
                        )
                        await repo.delete(subscription)
                    else:
                        self.log_warning(
                            {
                                "event": "push_delivery_failed",
                                "subscription_id": str(subscription.id),
                                "status_code": status_code,
                                "error": str(e),
                            }
                        )
                except Exception as e:
                    failed += 1
                    self.log_error(
                        {
                            "event": "push_delivery_error",
                            "subscription_id": str(subscription.id),
                            "error": str(e),
                            "error_type": type(e).__name__,
                        }
                    )

        if failed:
            self.log_warning(
                {
                    "event": "push_partial_failure",
                    "patient_id": str(patient_id),
                    "failed": failed,
                    "total": len(subscriptions),
                }
            )
        return delivered


def scan_reviewed_payload(session_id: uuid.UUID) -> PushPayload:
    return PushPayload(
        title="Scan Reviewed",
        body="Your doctor has reviewed your latest scan. Tap to see the results.",
        url="/home",
        tag=f"scan-{session_id}",
    )


def scan_flagged_payload(session_id: uuid.UUID) -> PushPayload:
    return PushPayload(
        title="Action Needed",
        body="Your doctor has flagged your scan and may need you to take action.",
        url="/home",
        tag=f"scan-{session_id}",
    )


def new_message_payload(thread_id: uuid.UUID, preview: str) -> PushPayload:
    return PushPayload(
        title="New Message",
        body=preview,
        url=f"/messages/{thread_id}",
        tag=f"msg-{thread_id}",
    )


_push_service: Optional[WebPushService] = None


def get_push_service() -> WebPushService:
    """FastAPI dependency returning the process-wide push service."""
    global _push_service
    if _push_service is None:
        _push_service = WebPushService()
    return _push_service
