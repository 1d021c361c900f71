import uuid
from typing import List, Optional
from sqlalchemy import Select, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from orthomonitor.models.patient_model import Patient
from orthomonitor.models.scan_model import ScanImage, ScanSession
from orthomonitor.schemas.common_schemas import ImageType, ScanStatus


class ScanRepository:
    """Repository layer for scan sessions and their images."""

    def __init__(self, db: AsyncSession):
        self.db = db

    # ============= Sessions =============
    async def create_session(self, session: ScanSession) -> ScanSession:
        self.db.add(session)
        await self.db.commit()
        return await self.get_session_by_id(session.id)

    async def get_session_by_id(self, session_id: uuid.UUID) -> Optional[ScanSession]:
        """Load a session with images and tag set, refreshing any cached copy."""
        result = await self.db.execute(
            select(ScanSession)
            .where(ScanSession.id == session_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def get_session_in_practice(
        self, session_id: uuid.UUID, practice_id: uuid.UUID
    ) -> Optional[ScanSession]:
        result = await self.db.execute(
            select(ScanSession)
            .join(Patient, ScanSession.patient_id == Patient.id)
            .where(ScanSession.id == session_id, Patient.practice_id == practice_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def get_session_for_patient(
        self, session_id: uuid.UUID, patient_id: uuid.UUID
    ) -> Optional[ScanSession]:
        result = await self.db.execute(
            select(ScanSession)
            .where(ScanSession.id == session_id, ScanSession.patient_id == patient_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    def build_list_query(
        self,
        practice_id: uuid.UUID,
        status: Optional[ScanStatus] = None,
        patient_id: Optional[uuid.UUID] = None,
    ) -> Select:
        query = (
            select(ScanSession)
            .join(Patient, ScanSession.patient_id == Patient.id)
            .where(Patient.practice_id == practice_id)
        )

        if status:
            query = query.where(ScanSession.status == status)

        if patient_id:
            query = query.where(ScanSession.patient_id == patient_id)

        return query.order_by(ScanSession.created_at.desc()).execution_options(
            populate_existing=True
        )

    async def list_sessions_for_patient(self, patient_id: uuid.UUID) -> List[ScanSession]:
        result = await self.db.execute(
            select(ScanSession)
            .where(ScanSession.patient_id == patient_id)
            .order_by(ScanSession.created_at.desc())
            .execution_options(populate_existing=True)
        )
        return list(result.scalars().all())

    async def update_status(
        self,
        session: ScanSession,
        status: ScanStatus,
        reviewer_id: Optional[uuid.UUID] = None,
    ) -> ScanSession:
        session.mark_status(status, reviewer_id)
        await self.db.commit()
        return await self.get_session_by_id(session.id)

    # ============= Images =============
    async def add_image(
        self,
        session_id: uuid.UUID,
        image_type: ImageType,
        s3_key: Optional[str] = None,
        local_path: Optional[str] = None,
        thumbnail_key: Optional[str] = None,
    ) -> ScanImage:
        """
        Insert an image and bump the parent's ``image_count`` in one commit.

        The counter is incremented in SQL so concurrent uploads to the same
        session do not lose updates.
        """
        image = ScanImage(
            session_id=session_id,
            image_type=image_type,
            s3_key=s3_key,
            local_path=local_path,
            thumbnail_key=thumbnail_key,
        )
        self.db.add(image)
        await self.db.execute(
            update(ScanSession)
            .where(ScanSession.id == session_id)
            .values(image_count=ScanSession.image_count + 1)
        )
        await self.db.commit()
        await self.db.refresh(image)
        return image

    async def get_image_in_practice(
        self, image_id: uuid.UUID, practice_id: uuid.UUID
    ) -> Optional[ScanImage]:
        result = await self.db.execute(
            select(ScanImage)
            .join(ScanSession, ScanImage.session_id == ScanSession.id)
            .join(Patient, ScanSession.patient_id == Patient.id)
            .where(ScanImage.id == image_id, Patient.practice_id == practice_id)
        )
        return result.scalar_one_or_none()

    async def get_image_for_patient(
        self, image_id: uuid.UUID, patient_id: uuid.UUID
    ) -> Optional[ScanImage]:
        result = await self.db.execute(
            select(ScanImage)
            .join(ScanSession, ScanImage.session_id == ScanSession.id)
            .where(ScanImage.id == image_id, ScanSession.patient_id == patient_id)
        )
        return result.scalar_one_or_none()
