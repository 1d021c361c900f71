import uuid
from typing import Optional
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from orthomonitor.models.user_model import User


class UserRepository:

    def __init__(self, db: AsyncSession):
        self.db = db

    async def create_user(self, user: User) -> User:
        self.db.add(user)
        await self.db.commit()
        await self.db.refresh(user)
        return user

    async def get_user_by_email(self, email: str) -> Optional[User]:
        result = await self.db.execute(select(User).where(User.email == email.lower()))
        return result.scalar_one_or_none()

    async def get_user_in_practice(
        self, user_id: uuid.UUID, practice_id: uuid.UUID
    ) -> Optional[User]:
        result = await self.db.execute(
            select(User).where(User.id == user_id, User.practice_id == practice_id)
        )
        return result.scalar_one_or_none()
