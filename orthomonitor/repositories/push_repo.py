import uuid
from typing import List, Optional
from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession
from orthomonitor.models.push_model import PushSubscription


class PushSubscriptionRepository:

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_by_endpoint(self, endpoint: str) -> Optional[PushSubscription]:
        result = await self.db.execute(
            select(PushSubscription).where(PushSubscription.endpoint == endpoint)
        )
        return result.scalar_one_or_none()

    async def upsert(
        self,
        patient_id: uuid.UUID,
        endpoint: str,
        p256dh: str,
        auth: str,
        user_agent: Optional[str] = None,
    ) -> PushSubscription:
        """Insert, or refresh keys and owner of an already known endpoint."""
        subscription = await self.get_by_endpoint(endpoint)
        if subscription is None:
            subscription = PushSubscription(
                patient_id=patient_id,
                endpoint=endpoint,
                p256dh=p256dh,
                auth=auth,
                user_agent=user_agent,
            )
            self.db.add(subscription)
        else:
            subscription.patient_id = patient_id
            subscription.p256dh = p256dh
            subscription.auth = auth
            subscription.user_agent = user_agent

        await self.db.commit()
        await self.db.refresh(subscription)
        return subscription

    async def list_for_patient(self, patient_id: uuid.UUID) -> List[PushSubscription]:
        result = await self.db.execute(
            select(PushSubscription).where(PushSubscription.patient_id == patient_id)
        )
        return list(result.scalars().all())

    async def delete_for_patient(self, patient_id: uuid.UUID, endpoint: str) -> int:
        result = await self.db.execute(
            delete(PushSubscription).where(
                PushSubscription.patient_id == patient_id,
                PushSubscription.endpoint == endpoint,
            )
        )
        await self.db.commit()
        return result.rowcount or 0

    async def delete(self, subscription: PushSubscription) -> None:
        await self.db.delete(subscription)
        await self.db.commit()
