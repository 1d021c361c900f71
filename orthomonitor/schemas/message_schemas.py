import uuid
from datetime import datetime
from typing import Any, Dict, List, Optional
from pydantic import Field, field_validator
from orthomonitor.schemas.common_schemas import APIModel, RequestModel, SenderType


class ThreadCreateSchema(RequestModel):
    patient_id: uuid.UUID
    subject: Optional[str] = Field(default=None, max_length=255)


class MessageCreateSchema(RequestModel):
    """Clinic-side message; staff may post SYSTEM notices but never as PATIENT."""

    thread_id: uuid.UUID
    content: str = Field(min_length=1, max_length=5000)
    sender_type: SenderType = SenderType.DOCTOR
    attachments: Optional[List[Dict[str, Any]]] = None

    @field_validator("content")
    @classmethod
    def validate_content(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("content cannot be empty")
        return v

    @field_validator("sender_type")
    @classmethod
    def validate_sender_type(cls, v: SenderType) -> SenderType:
        if v == SenderType.PATIENT:
            raise ValueError("clinic users cannot send messages as PATIENT")
        return v


class PatientMessageCreateSchema(RequestModel):
    thread_id: uuid.UUID
    content: str = Field(min_length=1, max_length=5000)

    @field_validator("content")
    @classmethod
    def validate_content(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("content cannot be empty")
        return v


class MessageResponseSchema(APIModel):
    id: uuid.UUID
    thread_id: uuid.UUID
    sender_type: SenderType
    sender_id: uuid.UUID
    content: str
    attachments: Optional[List[Dict[str, Any]]] = None
    read_at: Optional[datetime] = None
    created_at: datetime


class ThreadSummarySchema(APIModel):
    id: uuid.UUID
    patient_id: uuid.UUID
    subject: Optional[str] = None
    is_active: bool
    last_message: Optional[MessageResponseSchema] = None
    unread_count: int = 0
    created_at: datetime
    updated_at: datetime


class ThreadDetailSchema(ThreadSummarySchema):
    messages: List[MessageResponseSchema] = []
