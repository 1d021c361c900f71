from typing import List
import uuid
from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession
from orthomonitor.api.dependencies import get_db
from orthomonitor.core.security import get_current_user, require_admin
from orthomonitor.core.utils import logger
from orthomonitor.models.user_model import User
from orthomonitor.schemas.practice_schemas import (
    PracticeCreateSchema,
    PracticeResponseSchema,
    PracticeSettingsResponseSchema,
    PracticeSettingsUpdateSchema,
    PracticeUpdateSchema,
)
from orthomonitor.services.practice_service import PracticeService


router = APIRouter(prefix="/practices", tags=["practices"])


@router.get("", response_model=List[PracticeResponseSchema])
async def list_practices(
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """All practices for ADMIN users, otherwise only the caller's own."""
    practices = await PracticeService(db).list_practices(current_user)
    return [PracticeResponseSchema.model_validate(p, from_attributes=True) for p in practices]


@router.post(
    "",
    response_model=PracticeResponseSchema,
    status_code=status.HTTP_201_CREATED,
)
async def create_practice(
    practice_data: PracticeCreateSchema,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_admin()),
):
    """
    Create a new practice (Admin only).

    Returns:
        PracticeResponseSchema: Created practice
    """
    practice_service = PracticeService(db)

    try:
        practice = await practice_service.create_practice(practice_data, current_user)
        return PracticeResponseSchema.model_validate(practice, from_attributes=True)

    except HTTPException:
        raise

    except Exception as e:
        logger.log_error(
            {
                "event": "practice_creation_error",
                "error": str(e),
                "error_type": type(e).__name__,
                "user_id": str(current_user.id),
            },
            exc_info=True,
        )
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="An unexpected error occurred while creating the practice",
        )


@router.get("/{practice_id}", response_model=PracticeResponseSchema)
async def get_practice(
    practice_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    practice = await PracticeService(db).get_own_practice(practice_id, current_user)
    return PracticeResponseSchema.model_validate(practice, from_attributes=True)


@router.patch("/{practice_id}", response_model=PracticeResponseSchema)
async def update_practice(
    practice_id: uuid.UUID,
    update_data: PracticeUpdateSchema,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    practice_service = PracticeService(db)

    try:
        practice = await practice_service.update_practice(practice_id, update_data, current_user)
        return PracticeResponseSchema.model_validate(practice, from_attributes=True)

    except HTTPException:
        raise

    except Exception as e:
        logger.log_error(
            {
                "event": "practice_update_error",
                "error": str(e),
                "error_type": type(e).__name__,
                "practice_id": str(practice_id),
            },
            exc_info=True,
        )
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="An unexpected error occurred while updating the practice",
        )


@router.get("/{practice_id}/settings", response_model=PracticeSettingsResponseSchema)
async def get_practice_settings(
    practice_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    practice = await PracticeService(db).get_own_practice(practice_id, current_user)
    return PracticeSettingsResponseSchema(**PracticeService.read_settings(practice))


@router.patch("/{practice_id}/settings", response_model=PracticeSettingsResponseSchema)
async def update_practice_settings(
    practice_id: uuid.UUID,
    settings_data: PracticeSettingsUpdateSchema,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """
    Update messaging settings. ``whatsappNumber`` is required when
    ``messagingMode`` is ``whatsapp``.
    """
    practice = await PracticeService(db).update_settings(practice_id, settings_data, current_user)
    return PracticeSettingsResponseSchema(**PracticeService.read_settings(practice))
