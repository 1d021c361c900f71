from typing import List
import uuid
from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession
from orthomonitor.api.dependencies import get_db
from orthomonitor.core.ai import AiService, get_ai_service
from orthomonitor.core.security import get_current_user
from orthomonitor.core.storage import StorageService, get_storage_service
from orthomonitor.core.utils import logger
from orthomonitor.models.user_model import User
from orthomonitor.schemas.tagging_schemas import (
    TagAnalyticsResponseSchema,
    TagSetCreateSchema,
    TagSetResponseSchema,
    TagSuggestionSchema,
)
from orthomonitor.services.tagging_service import TaggingService
from orthomonitor.services.upload_service import UploadService


router = APIRouter(prefix="/tagging", tags=["tagging"])


@router.post(
    "/sessions/{session_id}/tags",
    response_model=TagSetResponseSchema,
    status_code=status.HTTP_201_CREATED,
)
async def save_session_tags(
    session_id: uuid.UUID,
    tag_data: TagSetCreateSchema,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """
    Tag a scan session and mark it REVIEWED.

    Re-tagging a session replaces its previous tags.

    Raises:
        HTTPException: 404 unknown session, 403 session of another practice
    """
    tagging_service = TaggingService(db)

    try:
        tag_set = await tagging_service.save_tags(session_id, tag_data, current_user)
        return TagSetResponseSchema.model_validate(tag_set, from_attributes=True)

    except HTTPException:
        raise

    except Exception as e:
        logger.log_error(
            {
                "event": "tag_set_save_error",
                "error": str(e),
                "error_type": type(e).__name__,
                "session_id": str(session_id),
                "user_id": str(current_user.id),
            },
            exc_info=True,
        )
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="An unexpected error occurred while saving tags",
        )


@router.get("/sessions/{session_id}/tags", response_model=TagSetResponseSchema)
async def get_session_tags(
    session_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    tag_set = await TaggingService(db).get_tags(session_id, current_user)
    return TagSetResponseSchema.model_validate(tag_set, from_attributes=True)


@router.post("/sessions/{session_id}/suggest", response_model=TagSuggestionSchema)
async def suggest_session_tags(
    session_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
    ai_service: AiService = Depends(get_ai_service),
    storage: StorageService = Depends(get_storage_service),
):
    """
    AI-suggested tags for a session's stored images.

    Raises:
        HTTPException: 501 AI not configured, 404 no images, 502 bad model reply
    """
    tagging_service = TaggingService(db)

    try:
        suggestion = await tagging_service.suggest_tags(
            session_id, current_user, ai_service, UploadService(db, storage)
        )
        return TagSuggestionSchema(**suggestion)

    except HTTPException:
        raise

    except Exception as e:
        logger.log_error(
            {
                "event": "ai_suggestion_error",
                "error": str(e),
                "error_type": type(e).__name__,
                "session_id": str(session_id),
            },
            exc_info=True,
        )
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="An unexpected error occurred while generating suggestions",
        )


@router.get("/mine", response_model=List[TagSetResponseSchema])
async def list_my_tags(
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """Tag sets submitted by the caller, newest first."""
    tag_sets = await TaggingService(db).list_my_tags(current_user)
    return [TagSetResponseSchema.model_validate(t, from_attributes=True) for t in tag_sets]


@router.get("/analytics", response_model=TagAnalyticsResponseSchema)
async def get_tagging_analytics(
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """30-day tagging rate and the billing discount it earns the practice."""
    tagging_service = TaggingService(db)

    try:
        return TagAnalyticsResponseSchema(**await tagging_service.get_analytics(current_user))

    except Exception as e:
        logger.log_error(
            {
                "event": "tagging_analytics_error",
                "error": str(e),
                "error_type": type(e).__name__,
                "practice_id": str(current_user.practice_id),
            },
            exc_info=True,
        )
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="An error occurred while computing tagging analytics",
        )
