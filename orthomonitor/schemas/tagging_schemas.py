import uuid
from datetime import datetime
from typing import List, Optional
from pydantic import Field, field_validator, model_validator
from orthomonitor.schemas.common_schemas import APIModel, RequestModel


class TagSuggestionSchema(APIModel):
    """AI-proposed tag set, already sanitised into valid ranges."""

    overall_tracking: int = Field(ge=1, le=3)
    aligner_fit: Optional[int] = Field(default=None, ge=1, le=3)
    oral_hygiene: int = Field(ge=1, le=3)
    detail_tags: List[str] = Field(default_factory=list)
    action_taken: Optional[str] = None
    notes: Optional[str] = None
    confidence: float = Field(ge=0, le=1)


class TagSetCreateSchema(RequestModel):
    """
    Doctor's tag submission for a scan session.

    When the doctor was shown an AI suggestion the client echoes it back in
    ``suggestion``; the server then decides ``ai_overridden`` itself by
    comparing the two. Without it the client's flags are stored as sent.
    """

    overall_tracking: int = Field(ge=1, le=3)
    aligner_fit: Optional[int] = Field(default=None, ge=1, le=3)
    oral_hygiene: int = Field(ge=1, le=3)
    detail_tags: List[str] = Field(default_factory=list, max_length=50)
    action_taken: Optional[str] = Field(default=None, max_length=255)
    notes: Optional[str] = Field(default=None, max_length=2000)
    ai_suggested: bool = False
    ai_overridden: bool = False
    ai_confidence: Optional[float] = Field(default=None, ge=0, le=1)
    suggestion: Optional[TagSuggestionSchema] = None

    @field_validator("detail_tags")
    @classmethod
    def validate_detail_tags(cls, v: List[str]) -> List[str]:
        cleaned = []
        for tag in v:
            tag = tag.strip()
            if not tag:
                raise ValueError("detail tags cannot be empty")
            if len(tag) > 100:
                raise ValueError("detail tags must be at most 100 characters")
            cleaned.append(tag)
        return cleaned

    @model_validator(mode="after")
    def validate_ai_flags(self) -> "TagSetCreateSchema":
        """An override only exists relative to a suggestion."""
        if self.suggestion is None and self.ai_overridden and not self.ai_suggested:
            raise ValueError("aiOverridden requires aiSuggested")
        return self


class TaggerSchema(APIModel):
    id: uuid.UUID
    name: str


class TagSetSummarySchema(APIModel):
    id: uuid.UUID
    session_id: uuid.UUID
    tagged_by_id: uuid.UUID
    overall_tracking: int
    aligner_fit: Optional[int] = None
    oral_hygiene: int
    detail_tags: List[str] = []
    action_taken: Optional[str] = None
    notes: Optional[str] = None
    ai_suggested: bool
    ai_overridden: bool
    ai_confidence: Optional[float] = None
    created_at: datetime
    updated_at: datetime


class TagSetResponseSchema(TagSetSummarySchema):
    tagged_by: Optional[TaggerSchema] = None


class TagAnalyticsResponseSchema(APIModel):
    tagging_rate: float
    discount_percent: int
    total_sessions: int
    tagged_sessions: int
    period: str
