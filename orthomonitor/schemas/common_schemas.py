from enum import Enum
from pydantic import BaseModel
from pydantic.alias_generators import to_camel


class PatientStatus(str, Enum):
    """Treatment lifecycle; patients are never hard-deleted."""

    ACTIVE = "ACTIVE"
    PAUSED = "PAUSED"
    COMPLETED = "COMPLETED"
    DROPPED = "DROPPED"


class ScanStatus(str, Enum):
    PENDING = "PENDING"
    REVIEWED = "REVIEWED"
    FLAGGED = "FLAGGED"


class ImageType(str, Enum):
    FRONT = "FRONT"
    LEFT = "LEFT"
    RIGHT = "RIGHT"
    UPPER_OCCLUSAL = "UPPER_OCCLUSAL"
    LOWER_OCCLUSAL = "LOWER_OCCLUSAL"


class AttachmentCheck(str, Enum):
    """Patient answer to "are all your attachments still in place?"."""

    ALL_PRESENT = "ALL_PRESENT"
    SOME_MISSING = "SOME_MISSING"
    UNSURE = "UNSURE"


class SenderType(str, Enum):
    DOCTOR = "DOCTOR"
    PATIENT = "PATIENT"
    SYSTEM = "SYSTEM"


class DoctorRole(str, Enum):
    ADMIN = "ADMIN"
    DOCTOR = "DOCTOR"
    HYGIENIST = "HYGIENIST"


# ============= Base Schemas =============
class APIModel(BaseModel):
    """Response base: snake_case attributes, camelCase on the wire."""

    model_config = {
        "alias_generator": to_camel,
        "populate_by_name": True,
        "from_attributes": True,
    }


class RequestModel(APIModel):
    """Request base: whitelist-only bodies, unknown fields are rejected."""

    model_config = {"extra": "forbid"}


class MessageResponse(APIModel):
    message: str
