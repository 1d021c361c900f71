from typing import Optional
import uuid
from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession
from orthomonitor.api.dependencies import get_db
from orthomonitor.core.pagination import (
    PaginatedResponse,
    PaginationParams,
    Paginator,
    get_pagination_params,
)
from orthomonitor.core.security import get_current_user
from orthomonitor.core.utils import logger
from orthomonitor.models.user_model import User
from orthomonitor.schemas.common_schemas import PatientStatus
from orthomonitor.schemas.patient_schemas import (
    InviteCreateSchema,
    InviteResponseSchema,
    PatientCreateSchema,
    PatientResponseSchema,
    PatientUpdateSchema,
)
from orthomonitor.services.patient_service import PatientService


router = APIRouter(prefix="/patients", tags=["patients"])


@router.get("", response_model=PaginatedResponse[PatientResponseSchema])
async def list_patients(
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
    pagination: PaginationParams = Depends(get_pagination_params),
    patient_status: Optional[PatientStatus] = Query(None, alias="status"),
    doctor_id: Optional[uuid.UUID] = Query(None, alias="doctorId"),
    search: Optional[str] = Query(None, max_length=100),
):
    """Get paginated patients of the caller's practice, newest first."""
    patient_service = PatientService(db)

    try:
        patients, total = await patient_service.list_patients(
            current_user,
            pagination,
            status_filter=patient_status,
            doctor_id=doctor_id,
            search=search,
        )

        items = [
            PatientResponseSchema.model_validate(patient, from_attributes=True)
            for patient in patients
        ]
        page_info = Paginator.create_page_info(
            total_items=total,
            page=pagination.page,
            page_size=pagination.limit,
        )

        logger.log_info(
            {
                "event": "patients_listed",
                "user_id": str(current_user.id),
                "page": pagination.page,
                "total_items": total,
                "search": search,
            }
        )
        return PaginatedResponse(items=items, page_info=page_info)

    except Exception as e:
        logger.log_error(
            {
                "event": "list_patients_error",
                "error": str(e),
                "error_type": type(e).__name__,
                "user_id": str(current_user.id),
            },
            exc_info=True,
        )
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="An error occurred while retrieving patients",
        )


@router.post(
    "",
    response_model=PatientResponseSchema,
    status_code=status.HTTP_201_CREATED,
)
async def create_patient(
    patient_data: PatientCreateSchema,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """
    Enrol a patient into the caller's practice.

    Raises:
        HTTPException: 400 when the doctor is not in this practice or the
            stage numbers are inconsistent
    """
    patient_service = PatientService(db)

    try:
        patient = await patient_service.create_patient(patient_data, current_user)
        return PatientResponseSchema.model_validate(patient, from_attributes=True)

    except HTTPException:
        raise

    except Exception as e:
        logger.log_error(
            {
                "event": "patient_creation_error",
                "error": str(e),
                "error_type": type(e).__name__,
                "user_id": str(current_user.id),
            },
            exc_info=True,
        )
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="An unexpected error occurred while creating the patient",
        )


@router.get("/{patient_id}", response_model=PatientResponseSchema)
async def get_patient(
    patient_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    patient = await PatientService(db).get_patient(patient_id, current_user)
    return PatientResponseSchema.model_validate(patient, from_attributes=True)


@router.patch("/{patient_id}", response_model=PatientResponseSchema)
async def update_patient(
    patient_id: uuid.UUID,
    update_data: PatientUpdateSchema,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """Update a patient. Setting ``status`` is how patients are retired."""
    patient_service = PatientService(db)

    try:
        patient = await patient_service.update_patient(patient_id, update_data, current_user)
        return PatientResponseSchema.model_validate(patient, from_attributes=True)

    except HTTPException:
        raise

    except Exception as e:
        logger.log_error(
            {
                "event": "patient_update_error",
                "error": str(e),
                "error_type": type(e).__name__,
                "patient_id": str(patient_id),
            },
            exc_info=True,
        )
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="An unexpected error occurred while updating the patient",
        )


@router.post("/{patient_id}/advance-stage", response_model=PatientResponseSchema)
async def advance_stage(
    patient_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    patient = await PatientService(db).advance_stage(patient_id, current_user)
    return PatientResponseSchema.model_validate(patient, from_attributes=True)


@router.post(
    "/{patient_id}/invite",
    response_model=InviteResponseSchema,
    status_code=status.HTTP_201_CREATED,
)
async def create_invite(
    patient_id: uuid.UUID,
    invite_data: Optional[InviteCreateSchema] = None,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """Issue a single-use portal invite link for a patient."""
    patient_service = PatientService(db)

    try:
        invite = await patient_service.create_invite(
            patient_id, invite_data or InviteCreateSchema(), current_user
        )
        return InviteResponseSchema(
            token=invite.token,
            invite_url=PatientService.build_invite_url(invite.token),
            expires_at=invite.expires_at,
        )

    except HTTPException:
        raise

    except Exception as e:
        logger.log_error(
            {
                "event": "patient_invite_error",
                "error": str(e),
                "error_type": type(e).__name__,
                "patient_id": str(patient_id),
            },
            exc_info=True,
        )
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="An unexpected error occurred while creating the invite",
        )
