import uuid
from datetime import datetime
from typing import Any, Dict, Optional
from sqlalchemy import Select, func, select
from sqlalchemy.ext.asyncio import AsyncSession
from orthomonitor.models.patient_model import Patient, PatientInvite
from orthomonitor.models.scan_model import ScanSession
from orthomonitor.schemas.common_schemas import PatientStatus


class PatientRepository:
    """Repository layer for patient and invite data access."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def create_patient(self, patient: Patient) -> Patient:
        self.db.add(patient)
        await self.db.commit()
        return await self.get_patient_by_id(patient.id)

    async def get_patient_by_id(self, patient_id: uuid.UUID) -> Optional[Patient]:
        result = await self.db.execute(
            select(Patient)
            .where(Patient.id == patient_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def get_patient_in_practice(
        self, patient_id: uuid.UUID, practice_id: uuid.UUID
    ) -> Optional[Patient]:
        result = await self.db.execute(
            select(Patient).where(
                Patient.id == patient_id, Patient.practice_id == practice_id
            )
        )
        return result.scalar_one_or_none()

    async def get_patient_by_email(self, email: str) -> Optional[Patient]:
        result = await self.db.execute(select(Patient).where(Patient.email == email.lower()))
        return result.scalar_one_or_none()

    def build_list_query(
        self,
        practice_id: uuid.UUID,
        status: Optional[PatientStatus] = None,
        doctor_id: Optional[uuid.UUID] = None,
        search: Optional[str] = None,
    ) -> Select:
        """Practice-scoped patient query, newest first; name search is case-insensitive."""
        query = select(Patient).where(Patient.practice_id == practice_id)

        if status:
            query = query.where(Patient.status == status)

        if doctor_id:
            query = query.where(Patient.doctor_id == doctor_id)

        if search:
            query = query.where(Patient.name.ilike(f"%{search.strip()}%"))

        return query.order_by(Patient.created_at.desc())

    async def update_patient(self, patient: Patient, update_data: Dict[str, Any]) -> Patient:
        for field, value in update_data.items():
            setattr(patient, field, value)
        await self.db.commit()
        return await self.get_patient_by_id(patient.id)

    async def get_last_scan_date(self, patient_id: uuid.UUID) -> Optional[datetime]:
        result = await self.db.execute(
            select(func.max(ScanSession.created_at)).where(
                ScanSession.patient_id == patient_id
            )
        )
        return result.scalar_one_or_none()

    # ============= Invites =============
    async def create_invite(self, invite: PatientInvite) -> PatientInvite:
        self.db.add(invite)
        await self.db.commit()
        await self.db.refresh(invite)
        return invite

    async def get_invite_by_token(self, token: str) -> Optional[PatientInvite]:
        result = await self.db.execute(
            select(PatientInvite).where(PatientInvite.token == token)
        )
        return result.scalar_one_or_none()

    async def accept_invite(
        self, invite: PatientInvite, patient: Patient, email: str, password_hash: str
    ) -> Patient:
        """Set portal credentials and burn the invite in one commit."""
        invite.mark_used()
        patient.email = email
        patient.password = password_hash
        await self.db.commit()
        return await self.get_patient_by_id(patient.id)
