from typing import Optional
import uuid
from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession
from orthomonitor.api.dependencies import get_db
from orthomonitor.core.notifications import WebPushService, get_push_service
from orthomonitor.core.pagination import (
    PaginatedResponse,
    PaginationParams,
    Paginator,
    get_pagination_params,
)
from orthomonitor.core.security import get_current_user
from orthomonitor.core.utils import logger
from orthomonitor.core.webhooks import WebhookService, get_webhook_service
from orthomonitor.models.user_model import User
from orthomonitor.schemas.common_schemas import ScanStatus
from orthomonitor.schemas.scan_schemas import (
    ScanSessionCreateSchema,
    ScanSessionDetailSchema,
    ScanSessionListItemSchema,
    ScanSessionResponseSchema,
    ScanStatusUpdateSchema,
)
from orthomonitor.services.scan_service import ScanService


router = APIRouter(prefix="/scans/sessions", tags=["scans"])


@router.post(
    "",
    response_model=ScanSessionResponseSchema,
    status_code=status.HTTP_201_CREATED,
)
async def create_scan_session(
    session_data: ScanSessionCreateSchema,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """
    Open a PENDING scan session for a patient of the caller's practice.

    Raises:
        HTTPException: 404 when the patient is not in this practice
    """
    scan_service = ScanService(db)

    try:
        session = await scan_service.create_session(session_data.patient_id, current_user)
        return ScanSessionResponseSchema.model_validate(session, from_attributes=True)

    except HTTPException:
        raise

    except Exception as e:
        logger.log_error(
            {
                "event": "scan_session_creation_error",
                "error": str(e),
                "error_type": type(e).__name__,
                "user_id": str(current_user.id),
            },
            exc_info=True,
        )
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="An unexpected error occurred while creating the scan session",
        )


@router.get("", response_model=PaginatedResponse[ScanSessionListItemSchema])
async def list_scan_sessions(
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
    pagination: PaginationParams = Depends(get_pagination_params),
    scan_status: Optional[ScanStatus] = Query(None, alias="status"),
    patient_id: Optional[uuid.UUID] = Query(None, alias="patientId"),
):
    """Get paginated scan sessions of the caller's practice, newest first."""
    scan_service = ScanService(db)

    try:
        sessions, total = await scan_service.list_sessions(
            current_user, pagination, status_filter=scan_status, patient_id=patient_id
        )
        items = [
            ScanSessionListItemSchema.model_validate(session, from_attributes=True)
            for session in sessions
        ]
        page_info = Paginator.create_page_info(
            total_items=total,
            page=pagination.page,
            page_size=pagination.limit,
        )
        return PaginatedResponse(items=items, page_info=page_info)

    except Exception as e:
        logger.log_error(
            {
                "event": "list_scan_sessions_error",
                "error": str(e),
                "error_type": type(e).__name__,
                "user_id": str(current_user.id),
            },
            exc_info=True,
        )
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="An error occurred while retrieving scan sessions",
        )


@router.get("/{session_id}", response_model=ScanSessionDetailSchema)
async def get_scan_session(
    session_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """Session detail with patient, images (oldest first) and tag set."""
    session = await ScanService(db).get_session_in_practice(session_id, current_user)
    return ScanSessionDetailSchema.model_validate(session, from_attributes=True)


@router.patch("/{session_id}/status", response_model=ScanSessionResponseSchema)
async def update_scan_status(
    session_id: uuid.UUID,
    status_data: ScanStatusUpdateSchema,
    background_tasks: BackgroundTasks,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
    push_service: WebPushService = Depends(get_push_service),
    webhook_service: WebhookService = Depends(get_webhook_service),
):
    scan_service = ScanService(
        db, push_service=push_service, webhook_service=webhook_service
    )

    try:
        session = await scan_service.update_status(
            session_id, status_data.status, current_user, background_tasks
        )
        return ScanSessionResponseSchema.model_validate(session, from_attributes=True)

    except HTTPException:
        raise

    except Exception as e:
        logger.log_error(
            {
                "event": "scan_status_update_error",
                "error": str(e),
                "error_type": type(e).__name__,
                "session_id": str(session_id),
            },
            exc_info=True,
        )
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="An unexpected error occurred while updating the scan status",
        )
