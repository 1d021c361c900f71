import uuid
from typing import List, Optional, Tuple
from fastapi import BackgroundTasks, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession
from orthomonitor.core.notifications import (
    WebPushService,
    scan_flagged_payload,
    scan_reviewed_payload,
)
from orthomonitor.core.pagination import PaginationParams, Paginator
from orthomonitor.core.utils import logger
from orthomonitor.core.webhooks import (
    SCAN_FLAGGED,
    SCAN_REVIEWED,
    WebhookService,
    scan_event_data,
)
from orthomonitor.models.patient_model import Patient
from orthomonitor.models.scan_model import ScanSession
from orthomonitor.models.user_model import User
from orthomonitor.repositories.patient_repo import PatientRepository
from orthomonitor.repositories.scan_repo import ScanRepository
from orthomonitor.schemas.common_schemas import ScanStatus
from orthomonitor.schemas.scan_schemas import ScanIntakeSchema

STATUS_WEBHOOK_EVENTS = {
    ScanStatus.REVIEWED: SCAN_REVIEWED,
    ScanStatus.FLAGGED: SCAN_FLAGGED,
}


class ScanService:
    """Scan sessions, as seen by the clinic and by the patient portal."""

    def __init__(
        self,
        db: AsyncSession,
        push_service: Optional[WebPushService] = None,
        webhook_service: Optional[WebhookService] = None,
    ):
        self.db = db
        self.repo = ScanRepository(self.db)
        self.patient_repo = PatientRepository(self.db)
        self.push_service = push_service
        self.webhook_service = webhook_service

    # ============= Clinic =============
    async def get_session_in_practice(
        self, session_id: uuid.UUID, current_user: User
    ) -> ScanSession:
        session = await self.repo.get_session_in_practice(session_id, current_user.practice_id)
        if not session:
            logger.log_warning(
                {
                    "event": "scan_session_not_found",
                    "session_id": str(session_id),
                    "practice_id": str(current_user.practice_id),
                }
            )
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail=f"Scan session with ID '{session_id}' not found",
            )
        return session

    async def create_session(self, patient_id: uuid.UUID, current_user: User) -> ScanSession:
        patient = await self.patient_repo.get_patient_in_practice(
            patient_id, current_user.practice_id
        )
        if not patient:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail=f"Patient with ID '{patient_id}' not found in this practice",
            )

        session = await self.repo.create_session(ScanSession(patient_id=patient.id))
        logger.log_info(
            {
                "event": "scan_session_created",
                "session_id": str(session.id),
                "patient_id": str(patient.id),
                "created_by": str(current_user.id),
            }
        )
        return session

    async def list_sessions(
        self,
        current_user: User,
        params: PaginationParams,
        status_filter: Optional[ScanStatus] = None,
        patient_id: Optional[uuid.UUID] = None,
    ) -> Tuple[List[ScanSession], int]:
        query = self.repo.build_list_query(
            practice_id=current_user.practice_id,
            status=status_filter,
            patient_id=patient_id,
        )
        return await Paginator.fetch_page(self.db, query, params)

    async def update_status(
        self,
        session_id: uuid.UUID,
        new_status: ScanStatus,
        current_user: User,
        background_tasks: BackgroundTasks,
    ) -> ScanSession:
        """
        Move a session to ``new_status``. REVIEWED records the reviewer;
        REVIEWED and FLAGGED notify the patient and the webhook receiver once
        the response is sent.
        """
        session = await self.get_session_in_practice(session_id, current_user)
        previous = session.status
        session = await self.repo.update_status(session, new_status, current_user.id)

        logger.log_info(
            {
                "event": "scan_session_status_changed",
                "session_id": str(session.id),
                "from": previous.value,
                "to": new_status.value,
                "changed_by": str(current_user.id),
            }
        )

        if self.push_service is not None:
            if new_status == ScanStatus.REVIEWED:
                background_tasks.add_task(
                    self.push_service.send_to_patient,
                    session.patient_id,
                    scan_reviewed_payload(session.id),
                )
            elif new_status == ScanStatus.FLAGGED:
                background_tasks.add_task(
                    self.push_service.send_to_patient,
                    session.patient_id,
                    scan_flagged_payload(session.id),
                )

        webhook_event = STATUS_WEBHOOK_EVENTS.get(new_status)
        if self.webhook_service is not None and webhook_event is not None:
            background_tasks.add_task(
                self.webhook_service.send,
                webhook_event,
                scan_event_data(session.id, session.patient_id),
            )

        return session

    # ============= Patient portal =============
    async def get_session_for_patient(
        self, session_id: uuid.UUID, patient: Patient
    ) -> ScanSession:
        session = await self.repo.get_session_for_patient(session_id, patient.id)
        if not session:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail=f"Scan session with ID '{session_id}' not found",
            )
        return session

    async def create_intake_session(
        self, intake: ScanIntakeSchema, patient: Patient
    ) -> ScanSession:
        """Open a PENDING session carrying the patient's self-report."""
        session = ScanSession(
            patient_id=patient.id,
            status=ScanStatus.PENDING,
            image_count=0,
            report_tray_number=intake.tray_number,
            report_aligner_fit=intake.aligner_fit,
            report_wear_time_hrs=intake.wear_time_hrs,
            report_attachments=intake.attachment_check,
            report_notes=intake.notes,
        )
        session = await self.repo.create_session(session)

        logger.log_info(
            {
                "event": "scan_intake_submitted",
                "session_id": str(session.id),
                "patient_id": str(patient.id),
                "tray_number": intake.tray_number,
                "aligner_fit": intake.aligner_fit,
            }
        )
        return session

    async def list_patient_sessions(self, patient: Patient) -> List[ScanSession]:
        return await self.repo.list_sessions_for_patient(patient.id)
