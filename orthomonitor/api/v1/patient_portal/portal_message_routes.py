from typing import List
import uuid
from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession
from orthomonitor.api.dependencies import get_db
from orthomonitor.core.security import get_current_patient
from orthomonitor.core.utils import logger
from orthomonitor.models.patient_model import Patient
from orthomonitor.schemas.message_schemas import (
    MessageResponseSchema,
    PatientMessageCreateSchema,
    ThreadDetailSchema,
    ThreadSummarySchema,
)
from orthomonitor.services.message_service import MessageService


router = APIRouter(prefix="/patient/messages", tags=["patient-portal"])


@router.get("", response_model=List[ThreadSummarySchema])
async def list_my_threads(
    db: AsyncSession = Depends(get_db),
    current_patient: Patient = Depends(get_current_patient),
):
    """Own threads; ``unreadCount`` counts unread clinic messages only."""
    threads = await MessageService(db).list_patient_threads(current_patient)
    return [ThreadSummarySchema.model_validate(t) for t in threads]


@router.get("/{thread_id}", response_model=ThreadDetailSchema)
async def get_my_thread(
    thread_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    current_patient: Patient = Depends(get_current_patient),
):
    detail = await MessageService(db).get_patient_thread(thread_id, current_patient)
    return ThreadDetailSchema.model_validate(detail)


@router.post(
    "",
    response_model=MessageResponseSchema,
    status_code=status.HTTP_201_CREATED,
)
async def send_my_message(
    message_data: PatientMessageCreateSchema,
    db: AsyncSession = Depends(get_db),
    current_patient: Patient = Depends(get_current_patient),
):
    message_service = MessageService(db)

    try:
        message = await message_service.send_patient_message(message_data, current_patient)
        return MessageResponseSchema.model_validate(message, from_attributes=True)

    except HTTPException:
        raise

    except Exception as e:
        logger.log_error(
            {
                "event": "patient_message_send_error",
                "error": str(e),
                "error_type": type(e).__name__,
                "patient_id": str(current_patient.id),
            },
            exc_info=True,
        )
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="An unexpected error occurred while sending the message",
        )


@router.patch("/{message_id}/read", response_model=MessageResponseSchema)
async def mark_my_message_read(
    message_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    current_patient: Patient = Depends(get_current_patient),
):
    message = await MessageService(db).mark_patient_message_read(message_id, current_patient)
    return MessageResponseSchema.model_validate(message, from_attributes=True)
