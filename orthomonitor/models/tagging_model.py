import uuid
from datetime import datetime
from typing import List, Optional, TYPE_CHECKING
from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
    Uuid,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship
from orthomonitor.db.base import Base, utcnow

if TYPE_CHECKING:
    from orthomonitor.models.scan_model import ScanSession
    from orthomonitor.models.user_model import User


class TagSet(Base):
    """
    Clinician review of a scan session.

    At most one row per session (``session_id`` is unique); resubmitting tags
    for a session overwrites the existing row.
    """

    __tablename__ = "tag_sets"

    __table_args__ = (
        CheckConstraint(
            "overall_tracking BETWEEN 1 AND 3", name="ck_tag_sets_overall_tracking"
        ),
        CheckConstraint(
            "aligner_fit IS NULL OR aligner_fit BETWEEN 1 AND 3",
            name="ck_tag_sets_aligner_fit",
        ),
        CheckConstraint("oral_hygiene BETWEEN 1 AND 3", name="ck_tag_sets_oral_hygiene"),
        CheckConstraint(
            "ai_confidence IS NULL OR (ai_confidence >= 0 AND ai_confidence <= 1)",
            name="ck_tag_sets_ai_confidence",
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        primary_key=True,
        default=uuid.uuid4,
        index=True,
    )
    session_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("scan_sessions.id", ondelete="CASCADE"),
        unique=True,
        nullable=False,
        index=True,
    )
    tagged_by_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("users.id"),
        nullable=False,
        index=True,
    )

    # Ordinal scores: 1 = good, 2 = fair, 3 = poor
    overall_tracking: Mapped[int] = mapped_column(Integer, nullable=False)
    aligner_fit: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    oral_hygiene: Mapped[int] = mapped_column(Integer, nullable=False)

    detail_tags: Mapped[List[str]] = mapped_column(JSON, default=list, nullable=False)
    action_taken: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    ai_suggested: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    ai_overridden: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    ai_confidence: Mapped[Optional[float]] = mapped_column(Float, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, nullable=False, index=True
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False
    )

    # Relationships
    session: Mapped["ScanSession"] = relationship(
        "ScanSession", back_populates="tag_set", lazy="noload"
    )
    tagged_by: Mapped["User"] = relationship(
        "User", foreign_keys=[tagged_by_id], lazy="selectin"
    )

    def __repr__(self) -> str:
        return (
            f"<TagSet id={self.id} session_id={self.session_id} "
            f"scores={self.overall_tracking}/{self.aligner_fit}/{self.oral_hygiene}>"
        )
