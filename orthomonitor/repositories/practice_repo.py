import uuid
from typing import Any, Dict, List, Optional
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from orthomonitor.models.practice_model import Practice


class PracticeRepository:
    """Repository layer for practice data access."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def create_practice(self, practice: Practice) -> Practice:
        self.db.add(practice)
        await self.db.commit()
        await self.db.refresh(practice)
        return practice

    async def get_practice_by_id(self, practice_id: uuid.UUID) -> Optional[Practice]:
        result = await self.db.execute(select(Practice).where(Practice.id == practice_id))
        return result.scalar_one_or_none()

    async def list_practices(self, practice_id: Optional[uuid.UUID] = None) -> List[Practice]:
        """All practices newest first, or just one when ``practice_id`` is given."""
        query = select(Practice).order_by(Practice.created_at.desc())
        if practice_id is not None:
            query = query.where(Practice.id == practice_id)
        result = await self.db.execute(query)
        return list(result.scalars().all())

    async def update_practice(self, practice: Practice, update_data: Dict[str, Any]) -> Practice:
        for field, value in update_data.items():
            setattr(practice, field, value)
        await self.db.commit()
        await self.db.refresh(practice)
        return practice

    async def replace_settings(self, practice: Practice, new_settings: Dict[str, Any]) -> Practice:
        # Assign a new dict so the JSON column is flagged dirty
        practice.settings = dict(new_settings)
        await self.db.commit()
        await self.db.refresh(practice)
        return practice

    async def save_billing(
        self, practice: Practice, tagging_rate: float, discount_percent: int
    ) -> Practice:
        practice.apply_billing(tagging_rate, discount_percent)
        await self.db.commit()
        return practice
