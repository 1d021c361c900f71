import re
import uuid
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional
from pydantic import Field, field_validator, model_validator
from orthomonitor.schemas.common_schemas import APIModel, RequestModel


class MessagingMode(str, Enum):
    PORTAL = "portal"
    WHATSAPP = "whatsapp"


def clean_phone(v: Optional[str]) -> Optional[str]:
    """Validate phone number format."""
    if v is None:
        return v

    v = v.strip()
    if not v:
        return None

    digits = "".join(filter(str.isdigit, v))
    if len(digits) < 7 or len(digits) > 15:
        raise ValueError("Phone number must be between 7 and 15 digits")

    return v


class PracticeCreateSchema(RequestModel):
    name: str = Field(min_length=1, max_length=255)
    address: Optional[str] = Field(default=None, max_length=255)
    phone: Optional[str] = Field(default=None, max_length=30)
    subscription_tier: str = Field(default="basic", max_length=50)

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("name cannot be empty")
        return v

    @field_validator("phone")
    @classmethod
    def validate_phone(cls, v: Optional[str]) -> Optional[str]:
        return clean_phone(v)


class PracticeUpdateSchema(RequestModel):
    """Schema for updating a practice. All fields are optional."""

    name: Optional[str] = Field(default=None, min_length=1, max_length=255)
    address: Optional[str] = Field(default=None, max_length=255)
    phone: Optional[str] = Field(default=None, max_length=30)
    subscription_tier: Optional[str] = Field(default=None, max_length=50)

    @field_validator("phone")
    @classmethod
    def validate_phone(cls, v: Optional[str]) -> Optional[str]:
        return clean_phone(v)


class PracticeResponseSchema(APIModel):
    id: uuid.UUID
    name: str
    address: Optional[str] = None
    phone: Optional[str] = None
    subscription_tier: str
    tagging_rate: float
    discount_percent: int
    settings: Dict[str, Any] = {}
    created_at: datetime
    updated_at: datetime


class PracticeSettingsUpdateSchema(RequestModel):
    messaging_mode: MessagingMode
    whatsapp_number: Optional[str] = Field(default=None, max_length=20)

    @field_validator("whatsapp_number")
    @classmethod
    def validate_whatsapp_number(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return v
        v = v.strip()
        if not re.fullmatch(r"\d{7,15}", v):
            raise ValueError("whatsapp_number must contain 7 to 15 digits only")
        return v

    @model_validator(mode="after")
    def require_number_for_whatsapp(self):
        if self.messaging_mode == MessagingMode.WHATSAPP and not self.whatsapp_number:
            raise ValueError("whatsapp_number is required when messaging_mode is whatsapp")
        return self


class PracticeSettingsResponseSchema(APIModel):
    messaging_mode: MessagingMode = MessagingMode.PORTAL
    whatsapp_number: Optional[str] = None
