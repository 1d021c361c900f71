import uuid
from datetime import datetime
from typing import List, Optional, TYPE_CHECKING
from sqlalchemy import (
    CheckConstraint,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
    Uuid,
    Enum as SQLEnum,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship
from orthomonitor.db.base import Base, utcnow
from orthomonitor.schemas.common_schemas import AttachmentCheck, ImageType, ScanStatus

if TYPE_CHECKING:
    from orthomonitor.models.patient_model import Patient
    from orthomonitor.models.user_model import User
    from orthomonitor.models.tagging_model import TagSet


class ScanSession(Base):
    """
    One patient submission: a set of intraoral photos plus the patient's
    self-report (tray, fit, wear time, attachments, notes).

    ``image_count`` mirrors the number of ``ScanImage`` rows and is only ever
    incremented in the same transaction that inserts an image.
    """

    __tablename__ = "scan_sessions"

    __table_args__ = (
        CheckConstraint("image_count >= 0", name="ck_scan_sessions_image_count"),
        CheckConstraint(
            "report_aligner_fit IS NULL OR report_aligner_fit BETWEEN 1 AND 3",
            name="ck_scan_sessions_report_aligner_fit",
        ),
        CheckConstraint(
            "report_wear_time_hrs IS NULL OR report_wear_time_hrs BETWEEN 0 AND 24",
            name="ck_scan_sessions_report_wear_time",
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        primary_key=True,
        default=uuid.uuid4,
        index=True,
    )
    patient_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("patients.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    status: Mapped[ScanStatus] = mapped_column(
        SQLEnum(ScanStatus), default=ScanStatus.PENDING, nullable=False, index=True
    )
    image_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    # Patient self-report
    report_tray_number: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    report_aligner_fit: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    report_wear_time_hrs: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    report_attachments: Mapped[Optional[AttachmentCheck]] = mapped_column(
        SQLEnum(AttachmentCheck), nullable=True
    )
    report_notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Review
    reviewed_by_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid,
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    reviewed_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, nullable=False, index=True
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False
    )

    # Relationships
    patient: Mapped["Patient"] = relationship(
        "Patient", back_populates="scan_sessions", lazy="selectin"
    )
    reviewed_by: Mapped[Optional["User"]] = relationship(
        "User", foreign_keys=[reviewed_by_id], lazy="noload"
    )
    images: Mapped[List["ScanImage"]] = relationship(
        "ScanImage",
        back_populates="session",
        order_by="ScanImage.created_at",
        cascade="all",
        passive_deletes=True,
        lazy="selectin",
    )
    tag_set: Mapped[Optional["TagSet"]] = relationship(
        "TagSet",
        back_populates="session",
        uselist=False,
        cascade="all",
        passive_deletes=True,
        lazy="selectin",
    )

    def __repr__(self) -> str:
        return f"<ScanSession id={self.id} patient_id={self.patient_id} status={self.status}>"

    def mark_status(self, status: ScanStatus, reviewer_id: Optional[uuid.UUID] = None) -> None:
        """Transition the session; REVIEWED also records who reviewed it and when."""
        self.status = status
        if status == ScanStatus.REVIEWED:
            self.reviewed_by_id = reviewer_id
            self.reviewed_at = utcnow()


class ScanImage(Base):
    """A single anatomical view inside a scan session. Not edited after creation."""

    __tablename__ = "scan_images"

    __table_args__ = (
        CheckConstraint(
            "quality_score IS NULL OR (quality_score >= 0 AND quality_score <= 1)",
            name="ck_scan_images_quality_score",
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
        nullable=False,
        index=True,
    )
    image_type: Mapped[ImageType] = mapped_column(SQLEnum(ImageType), nullable=False)
    s3_key: Mapped[Optional[str]] = mapped_column(String(512), nullable=True)
    thumbnail_key: Mapped[Optional[str]] = mapped_column(String(512), nullable=True)
    local_path: Mapped[Optional[str]] = mapped_column(String(512), nullable=True)
    quality_score: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, nullable=False
    )

    session: Mapped["ScanSession"] = relationship(
        "ScanSession", back_populates="images", lazy="noload"
    )

    def __repr__(self) -> str:
        return f"<ScanImage id={self.id} session_id={self.session_id} type={self.image_type}>"
