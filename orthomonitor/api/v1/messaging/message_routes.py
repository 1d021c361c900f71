from typing import List, Optional
import uuid
from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession
from orthomonitor.api.dependencies import get_db
from orthomonitor.core.notifications import WebPushService, get_push_service
from orthomonitor.core.security import get_current_user
from orthomonitor.core.utils import logger
from orthomonitor.core.webhooks import WebhookService, get_webhook_service
from orthomonitor.models.user_model import User
from orthomonitor.schemas.common_schemas import SenderType
from orthomonitor.schemas.message_schemas import (
    MessageCreateSchema,
    MessageResponseSchema,
    ThreadCreateSchema,
    ThreadDetailSchema,
    ThreadSummarySchema,
)
from orthomonitor.services.message_service import MessageService, summarize_thread


router = APIRouter(prefix="/messaging", tags=["messaging"])


@router.get("/threads", response_model=List[ThreadSummarySchema])
async def list_threads(
    patient_id: Optional[uuid.UUID] = Query(None, alias="patientId"),
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """Threads of the practice, most recently active first."""
    threads = await MessageService(db).list_threads(current_user, patient_id)
    return [ThreadSummarySchema.model_validate(t) for t in threads]


@router.get("/threads/{thread_id}", response_model=ThreadDetailSchema)
async def get_thread(
    thread_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    detail = await MessageService(db).get_thread(thread_id, current_user)
    return ThreadDetailSchema.model_validate(detail)


@router.post(
    "/threads",
    response_model=ThreadSummarySchema,
    status_code=status.HTTP_201_CREATED,
)
async def create_thread(
    thread_data: ThreadCreateSchema,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """
    Open a conversation with a patient of the caller's practice.

    Raises:
        HTTPException: 404 when the patient is not in this practice
    """
    message_service = MessageService(db)

    try:
        thread = await message_service.create_thread(thread_data, current_user)
        return ThreadSummarySchema.model_validate(
            summarize_thread(thread, (SenderType.PATIENT,))
        )

    except HTTPException:
        raise

    except Exception as e:
        logger.log_error(
            {
                "event": "message_thread_creation_error",
                "error": str(e),
                "error_type": type(e).__name__,
                "user_id": str(current_user.id),
            },
            exc_info=True,
        )
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="An unexpected error occurred while creating the thread",
        )


@router.post(
    "/messages",
    response_model=MessageResponseSchema,
    status_code=status.HTTP_201_CREATED,
)
async def send_message(
    message_data: MessageCreateSchema,
    background_tasks: BackgroundTasks,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
    push_service: WebPushService = Depends(get_push_service),
    webhook_service: WebhookService = Depends(get_webhook_service),
):
    """Post a clinic message; the patient gets a push preview."""
    message_service = MessageService(
        db, push_service=push_service, webhook_service=webhook_service
    )

    try:
        message = await message_service.send_message(
            message_data, current_user, background_tasks
        )
        return MessageResponseSchema.model_validate(message, from_attributes=True)

    except HTTPException:
        raise

    except Exception as e:
        logger.log_error(
            {
                "event": "message_send_error",
                "error": str(e),
                "error_type": type(e).__name__,
                "thread_id": str(message_data.thread_id),
            },
            exc_info=True,
        )
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="An unexpected error occurred while sending the message",
        )


@router.patch("/messages/{message_id}/read", response_model=MessageResponseSchema)
async def mark_message_read(
    message_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    message = await MessageService(db).mark_read(message_id, current_user)
    return MessageResponseSchema.model_validate(message, from_attributes=True)
