"""
Booking open setting model.

Stores months an admin has opened for booking ahead of the default rolling
booking window. Absence of a row means the month follows the default window.
"""

from datetime import datetime
from typing import Optional

from sqlalchemy import String, TIMESTAMP, ForeignKey, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql import func

from core.database import Base
from core.constants import MAX_MEMO_LENGTH


class BookingOpenSetting(Base):
    """Per-month early-open flag. At most one row per (clinic_id, target_month)."""

    __tablename__ = "booking_open_settings"

    id: Mapped[int] = mapped_column(primary_key=True, index=True)

    clinic_id: Mapped[int] = mapped_column(ForeignKey("clinics.id", ondelete="CASCADE"), nullable=False)

    target_month: Mapped[str] = mapped_column(String(7), nullable=False)
    """Month key in YYYY-MM format."""

    is_open: Mapped[bool] = mapped_column(default=True)

    opened_at: Mapped[Optional[datetime]] = mapped_column(TIMESTAMP(timezone=True), nullable=True)
    """When the month was opened early."""

    memo: Mapped[Optional[str]] = mapped_column(String(MAX_MEMO_LENGTH), nullable=True)

    created_at: Mapped[Optional[datetime]] = mapped_column(TIMESTAMP(timezone=True), server_default=func.now())
    updated_at: Mapped[Optional[datetime]] = mapped_column(TIMESTAMP(timezone=True), server_default=func.now(), onupdate=func.now())

    __table_args__ = (
        UniqueConstraint('clinic_id', 'target_month', name='uq_booking_open_settings_month'),
    )

    def __repr__(self) -> str:
        return f"<BookingOpenSetting(clinic_id={self.clinic_id}, month='{self.target_month}', is_open={self.is_open})>"
