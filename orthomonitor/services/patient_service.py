import uuid
from datetime import timedelta
from typing import List, Optional, Tuple
from fastapi import HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession
from orthomonitor.config.config import settings
from orthomonitor.core.pagination import PaginationParams, Paginator
from orthomonitor.core.sessions import TokenManager
from orthomonitor.core.utils import logger
from orthomonitor.db.base import utcnow
from orthomonitor.models.patient_model import Patient, PatientInvite
from orthomonitor.models.user_model import User
from orthomonitor.repositories.patient_repo import PatientRepository
from orthomonitor.repositories.user_repo import UserRepository
from orthomonitor.schemas.common_schemas import PatientStatus
from orthomonitor.schemas.patient_schemas import (
    InviteCreateSchema,
    PatientCreateSchema,
    PatientUpdateSchema,
)


class PatientService:
    """Service layer for clinic-side patient management."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.repo = PatientRepository(self.db)
        self.user_repo = UserRepository(self.db)

    async def _ensure_doctor_in_practice(
        self, doctor_id: uuid.UUID, practice_id: uuid.UUID
    ) -> User:
        doctor = await self.user_repo.get_user_in_practice(doctor_id, practice_id)
        if not doctor:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=f"Doctor with ID '{doctor_id}' is not a member of this practice",
            )
        return doctor

    async def get_patient(self, patient_id: uuid.UUID, current_user: User) -> Patient:
        """
        Fetch a patient of the caller's practice.

        Raises:
            HTTPException: 404 when missing or in another practice
        """
        patient = await self.repo.get_patient_in_practice(patient_id, current_user.practice_id)
        if not patient:
            logger.log_warning(
                {
                    "event": "patient_not_found",
                    "patient_id": str(patient_id),
                    "practice_id": str(current_user.practice_id),
                }
            )
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail=f"Patient with ID '{patient_id}' not found",
            )
        return patient

    async def list_patients(
        self,
        current_user: User,
        params: PaginationParams,
        status_filter: Optional[PatientStatus] = None,
        doctor_id: Optional[uuid.UUID] = None,
        search: Optional[str] = None,
    ) -> Tuple[List[Patient], int]:
        query = self.repo.build_list_query(
            practice_id=current_user.practice_id,
            status=status_filter,
            doctor_id=doctor_id,
            search=search,
        )
        return await Paginator.fetch_page(self.db, query, params)

    async def create_patient(
        self, patient_data: PatientCreateSchema, current_user: User
    ) -> Patient:
        await self._ensure_doctor_in_practice(patient_data.doctor_id, current_user.practice_id)

        if (
            patient_data.total_stages is not None
            and patient_data.current_stage > patient_data.total_stages
        ):
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="current_stage cannot exceed total_stages",
            )

        patient = Patient(
            practice_id=current_user.practice_id,
            **patient_data.model_dump(),
        )
        patient = await self.repo.create_patient(patient)

        logger.log_info(
            {
                "event": "patient_created",
                "patient_id": str(patient.id),
                "practice_id": str(patient.practice_id),
                "created_by": str(current_user.id),
            }
        )
        return patient

    async def update_patient(
        self, patient_id: uuid.UUID, update_data: PatientUpdateSchema, current_user: User
    ) -> Patient:
        patient = await self.get_patient(patient_id, current_user)
        changes = update_data.model_dump(exclude_unset=True)

        if changes.get("doctor_id"):
            await self._ensure_doctor_in_practice(changes["doctor_id"], current_user.practice_id)

        current_stage = changes.get("current_stage", patient.current_stage)
        total_stages = changes.get("total_stages", patient.total_stages)
        if total_stages is not None and current_stage > total_stages:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="current_stage cannot exceed total_stages",
            )

        patient = await self.repo.update_patient(patient, changes)

        logger.log_info(
            {
                "event": "patient_updated",
                "patient_id": str(patient.id),
                "fields": sorted(changes.keys()),
                "updated_by": str(current_user.id),
            }
        )
        return patient

    async def advance_stage(self, patient_id: uuid.UUID, current_user: User) -> Patient:
        patient = await self.get_patient(patient_id, current_user)

        if not patient.can_advance_stage:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=f"Patient is already on the final stage ({patient.total_stages})",
            )

        patient = await self.repo.update_patient(
            patient, {"current_stage": patient.current_stage + 1}
        )
        logger.log_info(
            {
                "event": "patient_stage_advanced",
                "patient_id": str(patient.id),
                "current_stage": patient.current_stage,
            }
        )
        return patient

    async def create_invite(
        self, patient_id: uuid.UUID, invite_data: InviteCreateSchema, current_user: User
    ) -> PatientInvite:
        """Issue a single-use portal invite valid for ``INVITE_EXPIRE_DAYS``."""
        patient = await self.get_patient(patient_id, current_user)

        invite = PatientInvite(
            patient_id=patient.id,
            token=TokenManager.generate_invite_token(),
            email=invite_data.email.lower() if invite_data.email else patient.email,
            expires_at=utcnow() + timedelta(days=settings.INVITE_EXPIRE_DAYS),
        )
        invite = await self.repo.create_invite(invite)

        logger.log_info(
            {
                "event": "patient_invite_created",
                "patient_id": str(patient.id),
                "invite_id": str(invite.id),
                "created_by": str(current_user.id),
            }
        )
        return invite

    @staticmethod
    def build_invite_url(token: str) -> str:
        return f"{settings.PATIENT_PORTAL_URL.rstrip('/')}/register/{token}"
