from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession
from orthomonitor.api.dependencies import get_db
from orthomonitor.core.security import get_current_patient
from orthomonitor.core.utils import logger
from orthomonitor.models.patient_model import Patient
from orthomonitor.schemas.patient_schemas import (
    InviteValidationSchema,
    PatientAuthResponseSchema,
    PatientLoginSchema,
    PatientMeSchema,
    PatientProfileSchema,
    PatientRegisterSchema,
)
from orthomonitor.services.patient_auth_service import PatientAuthService


router = APIRouter(prefix="/patient-auth", tags=["patient-auth"])


@router.post("/login", response_model=PatientAuthResponseSchema)
async def patient_login(credentials: PatientLoginSchema, db: AsyncSession = Depends(get_db)):
    """
    Log a patient into the portal.

    Raises:
        HTTPException: 401 ``Invalid email or password``
    """
    service = PatientAuthService(db)

    try:
        token, patient = await service.login(credentials)
        return PatientAuthResponseSchema(
            access_token=token,
            patient=PatientProfileSchema.model_validate(patient, from_attributes=True),
        )

    except HTTPException:
        raise

    except Exception as e:
        logger.log_error(
            {
                "event": "patient_login_error",
                "error": str(e),
                "error_type": type(e).__name__,
            },
            exc_info=True,
        )
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="An unexpected error occurred during login",
        )


@router.post(
    "/register",
    response_model=PatientAuthResponseSchema,
    status_code=status.HTTP_201_CREATED,
)
async def patient_register(
    register_data: PatientRegisterSchema, db: AsyncSession = Depends(get_db)
):
    """Accept an invite and set portal credentials."""
    service = PatientAuthService(db)

    try:
        token, patient = await service.register(register_data)
        return PatientAuthResponseSchema(
            access_token=token,
            patient=PatientProfileSchema.model_validate(patient, from_attributes=True),
        )

    except HTTPException:
        raise

    except Exception as e:
        logger.log_error(
            {
                "event": "patient_registration_error",
                "error": str(e),
                "error_type": type(e).__name__,
            },
            exc_info=True,
        )
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="An unexpected error occurred during registration",
        )


@router.get("/validate-invite/{token}", response_model=InviteValidationSchema)
async def validate_invite(token: str, db: AsyncSession = Depends(get_db)):
    service = PatientAuthService(db)
    return InviteValidationSchema(**await service.validate_invite(token))


@router.get("/me", response_model=PatientMeSchema)
async def patient_me(current_patient: Patient = Depends(get_current_patient)):
    return PatientMeSchema.model_validate(current_patient, from_attributes=True)
