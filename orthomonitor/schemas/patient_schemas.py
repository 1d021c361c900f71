import uuid
from datetime import date, datetime
from typing import Optional
from pydantic import EmailStr, Field, field_validator
from orthomonitor.schemas.common_schemas import APIModel, PatientStatus, RequestModel


# ============= Clinic-side patient management =============
class PatientCreateSchema(RequestModel):
    """Schema for enrolling a patient into monitoring."""

    name: str = Field(min_length=1, max_length=255)
    doctor_id: uuid.UUID
    date_of_birth: Optional[date] = None
    treatment_type: Optional[str] = Field(default=None, max_length=100)
    aligner_brand: Optional[str] = Field(default=None, max_length=100)
    current_stage: int = Field(default=1, ge=1)
    total_stages: Optional[int] = Field(default=None, ge=1)
    scan_frequency: int = Field(default=14, ge=1)

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("name cannot be empty")
        return v

    @field_validator("date_of_birth")
    @classmethod
    def validate_dob(cls, v: Optional[date]) -> Optional[date]:
        if v and v > date.today():
            raise ValueError("date_of_birth cannot be in the future")
        return v


class PatientUpdateSchema(RequestModel):
    """All fields optional; status changes replace deletion."""

    name: Optional[str] = Field(default=None, min_length=1, max_length=255)
    doctor_id: Optional[uuid.UUID] = None
    date_of_birth: Optional[date] = None
    treatment_type: Optional[str] = Field(default=None, max_length=100)
    aligner_brand: Optional[str] = Field(default=None, max_length=100)
    current_stage: Optional[int] = Field(default=None, ge=1)
    total_stages: Optional[int] = Field(default=None, ge=1)
    scan_frequency: Optional[int] = Field(default=None, ge=1)
    status: Optional[PatientStatus] = None

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return v
        v = v.strip()
        if not v:
            raise ValueError("name cannot be empty")
        return v


class PatientResponseSchema(APIModel):
    id: uuid.UUID
    practice_id: uuid.UUID
    doctor_id: uuid.UUID
    name: str
    email: Optional[str] = None
    date_of_birth: Optional[date] = None
    treatment_type: Optional[str] = None
    aligner_brand: Optional[str] = None
    current_stage: int
    total_stages: Optional[int] = None
    scan_frequency: int
    status: PatientStatus
    created_at: datetime
    updated_at: datetime


class InviteCreateSchema(RequestModel):
    email: Optional[EmailStr] = None


class InviteResponseSchema(APIModel):
    token: str
    invite_url: str
    expires_at: datetime


# ============= Patient portal auth =============
class PatientLoginSchema(RequestModel):
    email: EmailStr
    password: str = Field(min_length=1)

    @field_validator("email")
    @classmethod
    def normalize_email(cls, v: str) -> str:
        return v.lower()


class PatientRegisterSchema(RequestModel):
    token: str = Field(min_length=1, max_length=64)
    email: EmailStr
    password: str = Field(min_length=8, max_length=128)

    @field_validator("email")
    @classmethod
    def normalize_email(cls, v: str) -> str:
        return v.lower()


class PatientProfileSchema(APIModel):
    """Profile returned to the patient portal after login or registration."""

    id: uuid.UUID
    name: str
    email: str = ""
    practice_id: uuid.UUID
    treatment_type: Optional[str] = None
    aligner_brand: Optional[str] = None
    current_stage: int
    total_stages: Optional[int] = None
    scan_frequency: int
    status: PatientStatus

    @field_validator("email", mode="before")
    @classmethod
    def default_email(cls, v: Optional[str]) -> str:
        return v or ""


class PatientMeSchema(PatientProfileSchema):
    doctor_name: Optional[str] = None


class PatientPortalProfileSchema(APIModel):
    """Treatment-progress view shown on the portal home screen."""

    id: uuid.UUID
    name: str
    email: Optional[str] = None
    treatment_type: Optional[str] = None
    aligner_brand: Optional[str] = None
    current_stage: int
    total_stages: Optional[int] = None
    scan_frequency: int
    status: PatientStatus
    doctor_name: Optional[str] = None
    last_scan_date: Optional[datetime] = None
    next_scan_due: Optional[datetime] = None


class PatientAuthResponseSchema(APIModel):
    access_token: str
    patient: PatientProfileSchema


class InviteValidationSchema(APIModel):
    valid: bool
    patient_name: str
    email: Optional[str] = None
