from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession
from orthomonitor.api.dependencies import get_db
from orthomonitor.core.notifications import WebPushService, get_push_service
from orthomonitor.core.security import get_current_patient
from orthomonitor.models.patient_model import Patient
from orthomonitor.schemas.common_schemas import MessageResponse
from orthomonitor.schemas.push_schemas import (
    PushSubscribeSchema,
    PushUnsubscribeSchema,
    VapidKeyResponseSchema,
)


router = APIRouter(prefix="/patient/push", tags=["patient-portal"])


@router.get("/vapid-public-key", response_model=VapidKeyResponseSchema)
async def get_vapid_public_key(
    current_patient: Patient = Depends(get_current_patient),
    push_service: WebPushService = Depends(get_push_service),
):
    """Application server key for ``pushManager.subscribe``; null when push is off."""
    return VapidKeyResponseSchema(key=push_service.get_vapid_public_key())


@router.post(
    "/subscribe",
    response_model=MessageResponse,
    status_code=status.HTTP_201_CREATED,
)
async def subscribe(
    subscription: PushSubscribeSchema,
    db: AsyncSession = Depends(get_db),
    current_patient: Patient = Depends(get_current_patient),
    push_service: WebPushService = Depends(get_push_service),
):
    await push_service.subscribe(
        db,
        patient_id=current_patient.id,
        endpoint=subscription.endpoint,
        p256dh=subscription.keys.p256dh,
        auth=subscription.keys.auth,
        user_agent=subscription.user_agent,
    )
    return MessageResponse(message="Subscribed to push notifications")


@router.delete("/unsubscribe", response_model=MessageResponse)
async def unsubscribe(
    subscription: PushUnsubscribeSchema,
    db: AsyncSession = Depends(get_db),
    current_patient: Patient = Depends(get_current_patient),
    push_service: WebPushService = Depends(get_push_service),
):
    await push_service.unsubscribe(db, current_patient.id, subscription.endpoint)
    return MessageResponse(message="Unsubscribed from push notifications")
