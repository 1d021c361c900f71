from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession
from orthomonitor.api.dependencies import get_db
from orthomonitor.core.security import get_current_patient
from orthomonitor.models.patient_model import Patient
from orthomonitor.schemas.patient_schemas import PatientPortalProfileSchema
from orthomonitor.services.patient_auth_service import PatientAuthService


router = APIRouter(prefix="/patient", tags=["patient-portal"])


@router.get("/profile", response_model=PatientPortalProfileSchema)
async def get_profile(
    db: AsyncSession = Depends(get_db),
    current_patient: Patient = Depends(get_current_patient),
):
    """Treatment profile with the last scan date and when the next scan is due."""
    profile = await PatientAuthService(db).get_portal_profile(current_patient)
    return PatientPortalProfileSchema(**profile)
