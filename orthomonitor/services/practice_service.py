import uuid
from typing import Any, Dict, List
from fastapi import HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession
from orthomonitor.core.utils import logger
from orthomonitor.models.practice_model import Practice
from orthomonitor.models.user_model import User
from orthomonitor.repositories.practice_repo import PracticeRepository
from orthomonitor.schemas.practice_schemas import (
    MessagingMode,
    PracticeCreateSchema,
    PracticeSettingsUpdateSchema,
    PracticeUpdateSchema,
)


class PracticeService:
    """Service layer for practice records and their settings blob."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.repo = PracticeRepository(self.db)

    async def get_own_practice(self, practice_id: uuid.UUID, current_user: User) -> Practice:
        """
        Raises:
            HTTPException: 404 unknown practice, 403 practice of another user
        """
        practice = await self.repo.get_practice_by_id(practice_id)
        if not practice:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail=f"Practice with ID '{practice_id}' not found",
            )

        if practice.id != current_user.practice_id:
            logger.log_security_event(
                {
                    "event": "cross_practice_access_denied",
                    "resource": "practice",
                    "practice_id": str(practice_id),
                    "user_id": str(current_user.id),
                }
            )
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="You do not have access to this practice",
            )
        return practice

    async def list_practices(self, current_user: User) -> List[Practice]:
        if current_user.is_admin:
            return await self.repo.list_practices()
        return await self.repo.list_practices(practice_id=current_user.practice_id)

    async def create_practice(
        self, practice_data: PracticeCreateSchema, current_user: User
    ) -> Practice:
        practice = await self.repo.create_practice(Practice(**practice_data.model_dump()))
        logger.log_info(
            {
                "event": "practice_created",
                "practice_id": str(practice.id),
                "created_by": str(current_user.id),
            }
        )
        return practice

    async def update_practice(
        self, practice_id: uuid.UUID, update_data: PracticeUpdateSchema, current_user: User
    ) -> Practice:
        practice = await self.get_own_practice(practice_id, current_user)
        changes = update_data.model_dump(exclude_unset=True)
        practice = await self.repo.update_practice(practice, changes)

        logger.log_info(
            {
                "event": "practice_updated",
                "practice_id": str(practice.id),
                "fields": sorted(changes.keys()),
                "updated_by": str(current_user.id),
            }
        )
        return practice

    @staticmethod
    def read_settings(practice: Practice) -> Dict[str, Any]:
        blob = practice.settings or {}
        return {
            "messaging_mode": blob.get("messagingMode", MessagingMode.PORTAL.value),
            "whatsapp_number": blob.get("whatsappNumber"),
        }

    async def update_settings(
        self,
        practice_id: uuid.UUID,
        settings_data: PracticeSettingsUpdateSchema,
        current_user: User,
    ) -> Practice:
        """
        Merge messaging settings into the practice's settings blob.

        Other keys already in the blob are preserved. Switching back to the
        portal clears the stored WhatsApp number.
        """
        practice = await self.get_own_practice(practice_id, current_user)

        merged = dict(practice.settings or {})
        merged["messagingMode"] = settings_data.messaging_mode.value
        if settings_data.messaging_mode == MessagingMode.WHATSAPP:
            merged["whatsappNumber"] = settings_data.whatsapp_number
        else:
            merged.pop("whatsappNumber", None)

        practice = await self.repo.replace_settings(practice, merged)
        logger.log_info(
            {
                "event": "practice_settings_updated",
                "practice_id": str(practice.id),
                "messaging_mode": settings_data.messaging_mode.value,
                "updated_by": str(current_user.id),
            }
        )
        return practice
