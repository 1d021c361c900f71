"""
Patient portal authentication.

Patients never self-enrol: the clinic creates the patient record and issues
a single-use invite. Accepting the invite sets portal credentials; after
that the patient logs in with email and password and receives a ``patient``
token.
"""

from datetime import timedelta
from typing import Any, Dict, Tuple
from fastapi import HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession
from orthomonitor.core.security import get_password_hash, verify_password
from orthomonitor.core.sessions import TokenManager
from orthomonitor.core.utils import logger
from orthomonitor.db.base import as_utc
from orthomonitor.models.patient_model import Patient, PatientInvite
from orthomonitor.repositories.patient_repo import PatientRepository
from orthomonitor.schemas.patient_schemas import PatientLoginSchema, PatientRegisterSchema


class PatientAuthService:

    def __init__(self, db: AsyncSession):
        self.db = db
        self.repo = PatientRepository(self.db)

    @staticmethod
    def _issue_token(patient: Patient) -> str:
        return TokenManager.create_patient_token(
            {"sub": str(patient.id), "practice_id": str(patient.practice_id)}
        )

    async def _get_usable_invite(self, token: str) -> PatientInvite:
        invite = await self.repo.get_invite_by_token(token)

        if not invite:
            logger.log_security_event({"event": "invite_lookup_failed", "reason": "unknown_token"})
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="Invalid invite link",
            )

        if invite.is_used:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="This invite has already been used",
            )

        if invite.is_expired():
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="This invite has expired",
            )

        return invite

    async def validate_invite(self, token: str) -> Dict[str, Any]:
        invite = await self._get_usable_invite(token)
        return {
            "valid": True,
            "patient_name": invite.patient.name,
            "email": invite.email or invite.patient.email,
        }

    async def register(self, register_data: PatientRegisterSchema) -> Tuple[str, Patient]:
        """
        Accept an invite and set the patient's portal credentials.

        Raises:
            HTTPException: 404 unknown invite, 400 used/expired invite or an
                email that belongs to another patient
        """
        invite = await self._get_usable_invite(register_data.token)

        owner = await self.repo.get_patient_by_email(register_data.email)
        if owner and owner.id != invite.patient_id:
            logger.log_warning(
                {
                    "event": "patient_registration_failed",
                    "reason": "email_in_use",
                    "patient_id": str(invite.patient_id),
                }
            )
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Email is already registered to another patient",
            )

        patient = await self.repo.accept_invite(
            invite,
            invite.patient,
            email=register_data.email,
            password_hash=get_password_hash(register_data.password),
        )

        logger.log_info(
            {
                "event": "patient_registered",
                "patient_id": str(patient.id),
                "invite_id": str(invite.id),
            }
        )
        return self._issue_token(patient), patient

    async def login(self, credentials: PatientLoginSchema) -> Tuple[str, Patient]:
        patient = await self.repo.get_patient_by_email(credentials.email)

        if (
            not patient
            or not patient.password
            or not verify_password(credentials.password, patient.password)
        ):
            logger.log_security_event(
                {
                    "event": "login_failed",
                    "audience": "patient",
                    "email": credentials.email,
                }
            )
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Invalid email or password",
            )

        logger.log_info({"event": "patient_logged_in", "patient_id": str(patient.id)})
        return self._issue_token(patient), patient

    async def get_portal_profile(self, patient: Patient) -> Dict[str, Any]:
        """Profile plus the last scan date and when the next scan is due."""
        last_scan = as_utc(await self.repo.get_last_scan_date(patient.id))
        next_due = (
            last_scan + timedelta(days=patient.scan_frequency) if last_scan else None
        )
        return {
            "id": patient.id,
            "name": patient.name,
            "email": patient.email,
            "treatment_type": patient.treatment_type,
            "aligner_brand": patient.aligner_brand,
            "current_stage": patient.current_stage,
            "total_stages": patient.total_stages,
            "scan_frequency": patient.scan_frequency,
            "status": patient.status,
            "doctor_name": patient.doctor_name,
            "last_scan_date": last_scan,
            "next_scan_due": next_due,
        }
