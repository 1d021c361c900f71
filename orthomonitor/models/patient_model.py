import uuid
from datetime import date, datetime
from typing import List, Optional, TYPE_CHECKING
from sqlalchemy import (
    Date,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Uuid,
    Enum as SQLEnum,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship
from orthomonitor.db.base import Base, as_utc, utcnow
from orthomonitor.schemas.common_schemas import PatientStatus

if TYPE_CHECKING:
    from orthomonitor.models.practice_model import Practice
    from orthomonitor.models.user_model import User
    from orthomonitor.models.scan_model import ScanSession


class Patient(Base):
    """
    Patient under remote monitoring.

    Patients are created by clinic staff and never hard-deleted; ending or
    suspending treatment is expressed through ``status``. ``email`` and
    ``password`` stay empty until the patient accepts a portal invite.
    """

    __tablename__ = "patients"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        primary_key=True,
        default=uuid.uuid4,
        index=True,
    )
    practice_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("practices.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    doctor_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("users.id"),
        nullable=False,
        index=True,
    )

    name: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    email: Mapped[Optional[str]] = mapped_column(
        String(255), unique=True, index=True, nullable=True
    )
    password: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    date_of_birth: Mapped[Optional[date]] = mapped_column(Date, nullable=True)

    # Treatment metadata
    treatment_type: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    aligner_brand: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    current_stage: Mapped[int] = mapped_column(Integer, default=1, nullable=False)
    total_stages: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    scan_frequency: Mapped[int] = mapped_column(Integer, default=14, nullable=False)

    status: Mapped[PatientStatus] = mapped_column(
        SQLEnum(PatientStatus), default=PatientStatus.ACTIVE, nullable=False, index=True
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, nullable=False, index=True
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False
    )

    # Relationships
    practice: Mapped["Practice"] = relationship(
        "Practice", back_populates="patients", lazy="noload"
    )
    doctor: Mapped["User"] = relationship(
        "User", foreign_keys=[doctor_id], lazy="selectin"
    )
    scan_sessions: Mapped[List["ScanSession"]] = relationship(
        "ScanSession", back_populates="patient", lazy="noload"
    )
    invites: Mapped[List["PatientInvite"]] = relationship(
        "PatientInvite", back_populates="patient", lazy="noload"
    )

    def __repr__(self) -> str:
        return f"<Patient id={self.id} name={self.name} status={self.status}>"

    @property
    def doctor_name(self) -> Optional[str]:
        return self.doctor.name if self.doctor else None

    @property
    def can_advance_stage(self) -> bool:
        return self.total_stages is None or self.current_stage < self.total_stages


class PatientInvite(Base):
    """Single-use token that lets a patient set portal credentials."""

    __tablename__ = "patient_invites"

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
    token: Mapped[str] = mapped_column(String(64), unique=True, index=True, nullable=False)
    email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    used_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, nullable=False
    )

    patient: Mapped["Patient"] = relationship(
        "Patient", back_populates="invites", lazy="selectin"
    )

    @property
    def is_used(self) -> bool:
        return self.used_at is not None

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        return as_utc(self.expires_at) < (now or utcnow())

    def mark_used(self) -> None:
        self.used_at = utcnow()
