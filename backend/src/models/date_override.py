"""
Date override model representing per-date exceptions to the weekly rules.

An override closes a date, opens a date the weekly rule keeps closed, or
modifies individual fields (hours, slot length, capacity) of the date.
Several named bands (e.g. "morning", "afternoon") may exist on one date;
the unnamed band (slot_name NULL) is the base band of the date.
"""

from datetime import date as date_type, time, datetime
from typing import Optional

from sqlalchemy import String, Date, Time, TIMESTAMP, ForeignKey, Index, CheckConstraint
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql import func

from core.database import Base
from core.constants import MAX_SLOT_NAME_LENGTH, MAX_MEMO_LENGTH


class DateOverride(Base):
    """
    Per-date exception for one doctor.

    Unset fields are stored as NULL and inherit the weekly rule's value when
    slots are computed (field-level merge). Exactly one row exists per
    (clinic_id, doctor_id, date, slot_name), with NULL slot_name counted as
    its own key; the unique index below coalesces NULL to ''.
    """

    __tablename__ = "date_overrides"

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    """Unique identifier for the override."""

    clinic_id: Mapped[int] = mapped_column(ForeignKey("clinics.id", ondelete="CASCADE"), nullable=False)

    doctor_id: Mapped[int] = mapped_column(ForeignKey("doctors.id", ondelete="CASCADE"), nullable=False)

    date: Mapped[date_type] = mapped_column(Date, nullable=False)
    """Calendar date the override applies to."""

    type: Mapped[str] = mapped_column(String(20), nullable=False)
    """Override type: 'closed', 'open', or 'modify'."""

    slot_name: Mapped[Optional[str]] = mapped_column(String(MAX_SLOT_NAME_LENGTH), nullable=True)
    """Band name distinguishing several overrides on one date; None for the base band."""

    start_time: Mapped[Optional[time]] = mapped_column(Time, nullable=True)
    end_time: Mapped[Optional[time]] = mapped_column(Time, nullable=True)
    slot_minutes: Mapped[Optional[int]] = mapped_column(nullable=True)
    capacity: Mapped[Optional[int]] = mapped_column(nullable=True)

    memo: Mapped[Optional[str]] = mapped_column(String(MAX_MEMO_LENGTH), nullable=True)
    """Free-form admin note."""

    created_at: Mapped[Optional[datetime]] = mapped_column(TIMESTAMP(timezone=True), server_default=func.now())
    updated_at: Mapped[Optional[datetime]] = mapped_column(TIMESTAMP(timezone=True), server_default=func.now(), onupdate=func.now())

    __table_args__ = (
        CheckConstraint("type IN ('closed', 'open', 'modify')", name='check_override_type'),
        Index('idx_date_overrides_clinic_doctor_date', 'clinic_id', 'doctor_id', 'date'),
    )

    def __repr__(self) -> str:
        return (
            f"<DateOverride(id={self.id}, doctor_id={self.doctor_id}, date={self.date}, "
            f"type='{self.type}', slot_name={self.slot_name!r})>"
        )


# One active row per key; NULL slot_name is its own key
Index(
    'uq_date_overrides_key',
    DateOverride.clinic_id,
    DateOverride.doctor_id,
    DateOverride.date,
    func.coalesce(DateOverride.slot_name, ''),
    unique=True,
)
