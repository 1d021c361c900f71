import uuid
from typing import Any, Dict, Iterable, List, Optional
from fastapi import BackgroundTasks, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession
from orthomonitor.core.constants import MESSAGE_PREVIEW_LENGTH
from orthomonitor.core.notifications import WebPushService, new_message_payload
from orthomonitor.core.utils import logger
from orthomonitor.core.webhooks import MESSAGE_SENT, WebhookService, message_event_data
from orthomonitor.models.message_model import Message, MessageThread
from orthomonitor.models.patient_model import Patient
from orthomonitor.models.user_model import User
from orthomonitor.repositories.message_repo import MessageRepository
from orthomonitor.repositories.patient_repo import PatientRepository
from orthomonitor.schemas.common_schemas import SenderType
from orthomonitor.schemas.message_schemas import (
    MessageCreateSchema,
    PatientMessageCreateSchema,
    ThreadCreateSchema,
)

CLINIC_SENDERS = (SenderType.DOCTOR, SenderType.SYSTEM)


def message_preview(content: str, limit: int = MESSAGE_PREVIEW_LENGTH) -> str:
    if len(content) <= limit:
        return content
    return content[:limit] + "..."


def summarize_thread(
    thread: MessageThread, unread_from: Iterable[SenderType]
) -> Dict[str, Any]:
    """
    Thread fields plus its newest message and the number of unread messages
    sent by ``unread_from``.
    """
    senders = set(unread_from)
    messages = thread.messages or []
    return {
        "id": thread.id,
        "patient_id": thread.patient_id,
        "subject": thread.subject,
        "is_active": thread.is_active,
        "created_at": thread.created_at,
        "updated_at": thread.updated_at,
        "last_message": messages[-1] if messages else None,
        "unread_count": sum(
            1 for m in messages if m.read_at is None and m.sender_type in senders
        ),
    }


class MessageService:
    """Patient/clinic conversations. Messages are append-only."""

    def __init__(
        self,
        db: AsyncSession,
        push_service: Optional[WebPushService] = None,
        webhook_service: Optional[WebhookService] = None,
    ):
        self.db = db
        self.repo = MessageRepository(self.db)
        self.patient_repo = PatientRepository(self.db)
        self.push_service = push_service
        self.webhook_service = webhook_service

    @staticmethod
    def _thread_not_found(thread_id: uuid.UUID) -> HTTPException:
        return HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Message thread with ID '{thread_id}' not found",
        )

    @staticmethod
    def _message_not_found(message_id: uuid.UUID) -> HTTPException:
        return HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Message with ID '{message_id}' not found",
        )

    # ============= Clinic =============
    async def create_thread(
        self, thread_data: ThreadCreateSchema, current_user: User
    ) -> MessageThread:
        patient = await self.patient_repo.get_patient_in_practice(
            thread_data.patient_id, current_user.practice_id
        )
        if not patient:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail=f"Patient with ID '{thread_data.patient_id}' not found in this practice",
            )

        thread = await self.repo.create_thread(
            MessageThread(patient_id=patient.id, subject=thread_data.subject)
        )
        logger.log_info(
            {
                "event": "message_thread_created",
                "thread_id": str(thread.id),
                "patient_id": str(patient.id),
                "created_by": str(current_user.id),
            }
        )
        return thread

    async def list_threads(
        self, current_user: User, patient_id: Optional[uuid.UUID] = None
    ) -> List[Dict[str, Any]]:
        threads = await self.repo.list_threads_for_practice(current_user.practice_id, patient_id)
        return [summarize_thread(t, (SenderType.PATIENT,)) for t in threads]

    async def get_thread(self, thread_id: uuid.UUID, current_user: User) -> Dict[str, Any]:
        thread = await self.repo.get_thread_in_practice(thread_id, current_user.practice_id)
        if not thread:
            raise self._thread_not_found(thread_id)
        detail = summarize_thread(thread, (SenderType.PATIENT,))
        detail["messages"] = list(thread.messages)
        return detail

    async def send_message(
        self,
        message_data: MessageCreateSchema,
        current_user: User,
        background_tasks: BackgroundTasks,
    ) -> Message:
        """
        Post a clinic message. DOCTOR and SYSTEM messages notify the patient
        and the webhook receiver with a short preview once the response is
        sent.
        """
        thread = await self.repo.get_thread_in_practice(
            message_data.thread_id, current_user.practice_id
        )
        if not thread:
            raise self._thread_not_found(message_data.thread_id)

        message = await self.repo.add_message(
            thread,
            Message(
                thread_id=thread.id,
                sender_type=message_data.sender_type,
                sender_id=current_user.id,
                content=message_data.content,
                attachments=message_data.attachments,
            ),
        )
        logger.log_info(
            {
                "event": "message_sent",
                "thread_id": str(thread.id),
                "message_id": str(message.id),
                "sender_type": message.sender_type.value,
            }
        )

        if message.sender_type in CLINIC_SENDERS:
            preview = message_preview(message.content)
            if self.push_service is not None:
                background_tasks.add_task(
                    self.push_service.send_to_patient,
                    thread.patient_id,
                    new_message_payload(thread.id, preview),
                )
            if self.webhook_service is not None:
                background_tasks.add_task(
                    self.webhook_service.send,
                    MESSAGE_SENT,
                    message_event_data(thread.id, thread.patient_id, preview),
                )
        return message

    async def mark_read(self, message_id: uuid.UUID, current_user: User) -> Message:
        message = await self.repo.get_message_in_practice(message_id, current_user.practice_id)
        if not message:
            raise self._message_not_found(message_id)
        return await self.repo.mark_read(message)

    # ============= Patient portal =============
    async def list_patient_threads(self, patient: Patient) -> List[Dict[str, Any]]:
        threads = await self.repo.list_threads_for_patient(patient.id)
        return [summarize_thread(t, CLINIC_SENDERS) for t in threads]

    async def get_patient_thread(
        self, thread_id: uuid.UUID, patient: Patient
    ) -> Dict[str, Any]:
        thread = await self.repo.get_thread_for_patient(thread_id, patient.id)
        if not thread:
            raise self._thread_not_found(thread_id)
        detail = summarize_thread(thread, CLINIC_SENDERS)
        detail["messages"] = list(thread.messages)
        return detail

    async def send_patient_message(
        self, message_data: PatientMessageCreateSchema, patient: Patient
    ) -> Message:
        thread = await self.repo.get_thread_for_patient(message_data.thread_id, patient.id)
        if not thread:
            raise self._thread_not_found(message_data.thread_id)

        message = await self.repo.add_message(
            thread,
            Message(
                thread_id=thread.id,
                sender_type=SenderType.PATIENT,
                sender_id=patient.id,
                content=message_data.content,
            ),
        )
        logger.log_info(
            {
                "event": "patient_message_sent",
                "thread_id": str(thread.id),
                "message_id": str(message.id),
            }
        )
        return message

    async def mark_patient_message_read(
        self, message_id: uuid.UUID, patient: Patient
    ) -> Message:
        message = await self.repo.get_message_for_patient(message_id, patient.id)
        if not message:
            raise self._message_not_found(message_id)
        return await self.repo.mark_read(message)
