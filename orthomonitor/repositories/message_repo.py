import uuid
from typing import List, Optional
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from orthomonitor.models.message_model import Message, MessageThread
from orthomonitor.models.patient_model import Patient


class MessageRepository:

    def __init__(self, db: AsyncSession):
        self.db = db

    # ============= Threads =============
    async def create_thread(self, thread: MessageThread) -> MessageThread:
        self.db.add(thread)
        await self.db.commit()
        return await self.get_thread_by_id(thread.id)

    async def get_thread_by_id(self, thread_id: uuid.UUID) -> Optional[MessageThread]:
        result = await self.db.execute(
            select(MessageThread)
            .where(MessageThread.id == thread_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def get_thread_in_practice(
        self, thread_id: uuid.UUID, practice_id: uuid.UUID
    ) -> Optional[MessageThread]:
        result = await self.db.execute(
            select(MessageThread)
            .join(Patient, MessageThread.patient_id == Patient.id)
            .where(MessageThread.id == thread_id, Patient.practice_id == practice_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def get_thread_for_patient(
        self, thread_id: uuid.UUID, patient_id: uuid.UUID
    ) -> Optional[MessageThread]:
        result = await self.db.execute(
            select(MessageThread)
            .where(MessageThread.id == thread_id, MessageThread.patient_id == patient_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def list_threads_for_practice(
        self, practice_id: uuid.UUID, patient_id: Optional[uuid.UUID] = None
    ) -> List[MessageThread]:
        query = (
            select(MessageThread)
            .join(Patient, MessageThread.patient_id == Patient.id)
            .where(Patient.practice_id == practice_id)
        )
        if patient_id:
            query = query.where(MessageThread.patient_id == patient_id)
        result = await self.db.execute(
            query.order_by(MessageThread.updated_at.desc()).execution_options(
                populate_existing=True
            )
        )
        return list(result.scalars().all())

    async def list_threads_for_patient(self, patient_id: uuid.UUID) -> List[MessageThread]:
        result = await self.db.execute(
            select(MessageThread)
            .where(MessageThread.patient_id == patient_id)
            .order_by(MessageThread.updated_at.desc())
            .execution_options(populate_existing=True)
        )
        return list(result.scalars().all())

    # ============= Messages =============
    async def add_message(self, thread: MessageThread, message: Message) -> Message:
        """Append to the thread and bump its ``updated_at`` in the same commit."""
        self.db.add(message)
        thread.touch()
        await self.db.commit()
        await self.db.refresh(message)
        return message

    async def get_message_in_practice(
        self, message_id: uuid.UUID, practice_id: uuid.UUID
    ) -> Optional[Message]:
        result = await self.db.execute(
            select(Message)
            .join(MessageThread, Message.thread_id == MessageThread.id)
            .join(Patient, MessageThread.patient_id == Patient.id)
            .where(Message.id == message_id, Patient.practice_id == practice_id)
        )
        return result.scalar_one_or_none()

    async def get_message_for_patient(
        self, message_id: uuid.UUID, patient_id: uuid.UUID
    ) -> Optional[Message]:
        result = await self.db.execute(
            select(Message)
            .join(MessageThread, Message.thread_id == MessageThread.id)
            .where(Message.id == message_id, MessageThread.patient_id == patient_id)
        )
        return result.scalar_one_or_none()

    async def mark_read(self, message: Message) -> Message:
        if message.read_at is None:
            message.mark_read()
            await self.db.commit()
            await self.db.refresh(message)
        return message
