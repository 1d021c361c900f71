import re
import uuid
from datetime import datetime
from typing import Optional
from pydantic import EmailStr, Field, field_validator
from orthomonitor.schemas.common_schemas import APIModel, DoctorRole, RequestModel


class UserRegisterSchema(RequestModel):
    """Clinic staff self-registration into an existing practice."""

    name: str = Field(min_length=1, max_length=255)
    email: EmailStr
    password: str = Field(min_length=8, max_length=128)
    practice_id: uuid.UUID
    credentials: Optional[str] = Field(default=None, max_length=100)

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("name cannot be empty")
        return v

    @field_validator("email")
    @classmethod
    def normalize_email(cls, v: str) -> str:
        return v.lower()

    @field_validator("password")
    @classmethod
    def validate_password(cls, v: str) -> str:
        if not re.search(r"[A-Za-z]", v) or not re.search(r"\d", v):
            raise ValueError("password must contain at least one letter and one digit")
        return v


class UserLoginSchema(RequestModel):
    email: EmailStr
    password: str = Field(min_length=1)

    @field_validator("email")
    @classmethod
    def normalize_email(cls, v: str) -> str:
        return v.lower()


class UserResponseSchema(APIModel):
    id: uuid.UUID
    email: str
    name: str
    role: DoctorRole
    practice_id: uuid.UUID
    credentials: Optional[str] = None
    is_active: bool = True
    created_at: Optional[datetime] = None


class AuthResponseSchema(APIModel):
    access_token: str
    token_type: str = "bearer"
    user: UserResponseSchema
