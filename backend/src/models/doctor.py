"""
Doctor model for the clinic's bookable practitioners.
"""

from datetime import datetime
from typing import Optional

from sqlalchemy import String, TIMESTAMP, ForeignKey, Index
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql import func

from core.database import Base
from core.constants import MAX_STRING_LENGTH


class Doctor(Base):
    """Doctor whose weekly rules and overrides define bookable slots."""

    __tablename__ = "doctors"

    id: Mapped[int] = mapped_column(primary_key=True, index=True)

    clinic_id: Mapped[int] = mapped_column(ForeignKey("clinics.id", ondelete="CASCADE"), nullable=False)

    name: Mapped[str] = mapped_column(String(MAX_STRING_LENGTH), nullable=False)

    is_active: Mapped[bool] = mapped_column(default=True)
    """Inactive doctors are kept for history but hidden from booking."""

    sort_order: Mapped[int] = mapped_column(default=0)

    color: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    """Calendar color, e.g. '#E75A7C'."""

    created_at: Mapped[Optional[datetime]] = mapped_column(TIMESTAMP(timezone=True), server_default=func.now())
    updated_at: Mapped[Optional[datetime]] = mapped_column(TIMESTAMP(timezone=True), server_default=func.now(), onupdate=func.now())

    __table_args__ = (
        Index('idx_doctors_clinic_sort', 'clinic_id', 'sort_order'),
    )

    def __repr__(self) -> str:
        return f"<Doctor(id={self.id}, clinic_id={self.clinic_id}, name='{self.name}')>"
