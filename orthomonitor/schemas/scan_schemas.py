import uuid
from datetime import datetime
from typing import List, Optional
from pydantic import Field, field_validator
from orthomonitor.core.constants import MAX_REPORT_NOTES_LENGTH
from orthomonitor.schemas.common_schemas import (
    APIModel,
    AttachmentCheck,
    ImageType,
    RequestModel,
    ScanStatus,
)
from orthomonitor.schemas.tagging_schemas import TagSetSummarySchema


# ============= Patient scan intake =============
class ScanIntakeSchema(RequestModel):
    """
    Self-report submitted by the patient when starting a scan.

    Numeric fields accept numeric strings (``"5"``) and are coerced before
    range checks run. ``wear_time_hrs`` is only asked for when the fit is Fair
    or Poor, but is stored whenever it is supplied.
    """

    tray_number: int = Field(ge=1)
    aligner_fit: int = Field(ge=1, le=3)
    wear_time_hrs: Optional[int] = Field(default=None, ge=0, le=24)
    attachment_check: AttachmentCheck
    notes: Optional[str] = Field(default=None, max_length=MAX_REPORT_NOTES_LENGTH)

    @field_validator("notes")
    @classmethod
    def blank_notes_to_none(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return v
        v = v.strip()
        return v or None


# ============= Clinic scan sessions =============
class ScanSessionCreateSchema(RequestModel):
    patient_id: uuid.UUID


class ScanStatusUpdateSchema(RequestModel):
    status: ScanStatus


# ============= Image uploads =============
class UploadUrlRequestSchema(RequestModel):
    session_id: uuid.UUID
    image_type: ImageType


class UploadUrlResponseSchema(APIModel):
    url: str
    key: str


class ConfirmUploadSchema(RequestModel):
    session_id: uuid.UUID
    image_type: ImageType
    key: str = Field(min_length=1, max_length=512)

    @field_validator("key")
    @classmethod
    def validate_key(cls, v: str) -> str:
        if ".." in v or v.startswith("/"):
            raise ValueError("key must be a relative storage key")
        return v


class ImageUrlResponseSchema(APIModel):
    url: Optional[str] = None


class ScanImageResponseSchema(APIModel):
    id: uuid.UUID
    session_id: uuid.UUID
    image_type: ImageType
    s3_key: Optional[str] = None
    thumbnail_key: Optional[str] = None
    local_path: Optional[str] = None
    quality_score: Optional[float] = None
    created_at: datetime


class PatientRefSchema(APIModel):
    id: uuid.UUID
    name: str


class ScanSessionResponseSchema(APIModel):
    id: uuid.UUID
    patient_id: uuid.UUID
    status: ScanStatus
    image_count: int
    report_tray_number: Optional[int] = None
    report_aligner_fit: Optional[int] = None
    report_wear_time_hrs: Optional[int] = None
    report_attachments: Optional[AttachmentCheck] = None
    report_notes: Optional[str] = None
    reviewed_by_id: Optional[uuid.UUID] = None
    reviewed_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime


class ScanSessionListItemSchema(ScanSessionResponseSchema):
    patient: Optional[PatientRefSchema] = None


class ScanSessionDetailSchema(ScanSessionListItemSchema):
    images: List[ScanImageResponseSchema] = []
    tag_set: Optional[TagSetSummarySchema] = None


class PatientScanSessionSchema(ScanSessionResponseSchema):
    """Patient portal view: own sessions with their images."""

    images: List[ScanImageResponseSchema] = []
