import uuid
from datetime import datetime
from typing import Any, Dict, List, Optional, TYPE_CHECKING
from sqlalchemy import JSON, DateTime, Float, Integer, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship
from orthomonitor.db.base import Base, utcnow

if TYPE_CHECKING:
    from orthomonitor.models.user_model import User
    from orthomonitor.models.patient_model import Patient


class Practice(Base):

    __tablename__ = "practices"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        primary_key=True,
        default=uuid.uuid4,
        index=True,
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    address: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    phone: Mapped[Optional[str]] = mapped_column(String(30), nullable=True)
    subscription_tier: Mapped[str] = mapped_column(
        String(50), default="basic", nullable=False
    )

    # Billing analytics, refreshed by the tagging analytics endpoint
    tagging_rate: Mapped[float] = mapped_column(Float, default=0.0, nullable=False)
    discount_percent: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    # Opaque per-practice configuration blob
    settings: Mapped[Dict[str, Any]] = mapped_column(JSON, default=dict, nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, nullable=False, index=True
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False
    )

    # Relationships
    users: Mapped[List["User"]] = relationship(
        "User", back_populates="practice", lazy="noload"
    )
    patients: Mapped[List["Patient"]] = relationship(
        "Patient", back_populates="practice", lazy="noload"
    )

    def __repr__(self) -> str:
        return f"<Practice id={self.id} name={self.name}>"

    def apply_billing(self, tagging_rate: float, discount_percent: int) -> None:
        self.tagging_rate = tagging_rate
        self.discount_percent = discount_percent
