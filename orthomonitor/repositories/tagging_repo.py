import uuid
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession
from orthomonitor.models.patient_model import Patient
from orthomonitor.models.scan_model import ScanSession
from orthomonitor.models.tagging_model import TagSet
from orthomonitor.schemas.common_schemas import ScanStatus


class TagSetRepository:
    """Repository layer for clinician tag sets."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_by_session(self, session_id: uuid.UUID) -> Optional[TagSet]:
        result = await self.db.execute(
            select(TagSet)
            .where(TagSet.session_id == session_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def save_review(
        self,
        session: ScanSession,
        tagged_by_id: uuid.UUID,
        tag_data: Dict[str, Any],
    ) -> TagSet:
        """
        Create or overwrite the session's tag set and mark the session
        REVIEWED by the tagger. Both writes share one commit; on failure
        neither is applied.
        """
        try:
            tag_set = await self.get_by_session(session.id)
            if tag_set is None:
                tag_set = TagSet(session_id=session.id, tagged_by_id=tagged_by_id, **tag_data)
                self.db.add(tag_set)
            else:
                tag_set.tagged_by_id = tagged_by_id
                for field, value in tag_data.items():
                    setattr(tag_set, field, value)

            session.mark_status(ScanStatus.REVIEWED, tagged_by_id)
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise

        return await self.get_by_session(session.id)

    async def list_by_tagger(self, user_id: uuid.UUID) -> List[TagSet]:
        result = await self.db.execute(
            select(TagSet)
            .where(TagSet.tagged_by_id == user_id)
            .order_by(TagSet.created_at.desc())
            .execution_options(populate_existing=True)
        )
        return list(result.scalars().all())

    async def count_sessions_since(
        self, practice_id: uuid.UUID, since: datetime
    ) -> Tuple[int, int]:
        """
        Returns:
            (sessions created since ``since``, how many of those carry a tag set)
        """
        base = (
            select(ScanSession.id)
            .join(Patient, ScanSession.patient_id == Patient.id)
            .where(Patient.practice_id == practice_id, ScanSession.created_at >= since)
        )
        total = await self.db.scalar(
            select(func.count()).select_from(base.subquery())
        )
        tagged = await self.db.scalar(
            select(func.count()).select_from(
                base.join(TagSet, TagSet.session_id == ScanSession.id).subquery()
            )
        )
        return total or 0, tagged or 0
