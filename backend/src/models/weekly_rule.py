"""
Weekly rule model for default weekly schedule management.

This model stores the recurring availability template of each doctor by day
of week: whether the day is open, its working hours, slot length and how
many patients one slot can hold.
"""

from datetime import time, datetime
from typing import Optional
from sqlalchemy import Time, TIMESTAMP, ForeignKey, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql import func

from core.database import Base
from core.constants import DEFAULT_SLOT_MINUTES, DEFAULT_SLOT_CAPACITY


class WeeklyRule(Base):
    """
    Model for storing a doctor's availability template for one weekday.

    Each record covers one weekday of one doctor. A disabled record (or no
    record at all) means the doctor is not bookable on that weekday unless a
    date override opens the date.

    Invariant: when enabled, start_time < end_time and slot_minutes > 0.
    The service layer validates this before writing.
    """

    __tablename__ = "weekly_rules"

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    """Unique identifier for the weekly rule."""

    clinic_id: Mapped[int] = mapped_column(ForeignKey("clinics.id", ondelete="CASCADE"), nullable=False)
    """Owning clinic (tenant)."""

    doctor_id: Mapped[int] = mapped_column(ForeignKey("doctors.id", ondelete="CASCADE"), nullable=False)
    """Reference to the doctor."""

    weekday: Mapped[int] = mapped_column()
    """
    Day of the week (0=Sunday, 1=Monday, ..., 6=Saturday).
    """

    enabled: Mapped[bool] = mapped_column(default=False)
    """Whether the doctor takes bookings on this weekday."""

    start_time: Mapped[Optional[time]] = mapped_column(Time, nullable=True)
    """Start time of the working period."""

    end_time: Mapped[Optional[time]] = mapped_column(Time, nullable=True)
    """End time of the working period (last slot must finish by this time)."""

    slot_minutes: Mapped[int] = mapped_column(default=DEFAULT_SLOT_MINUTES)
    """Length of one bookable slot in minutes."""

    capacity: Mapped[int] = mapped_column(default=DEFAULT_SLOT_CAPACITY)
    """Maximum number of concurrent bookings per slot."""

    # Metadata
    created_at: Mapped[Optional[datetime]] = mapped_column(TIMESTAMP(timezone=True), server_default=func.now())
    """Timestamp when the rule was created."""

    updated_at: Mapped[Optional[datetime]] = mapped_column(TIMESTAMP(timezone=True), server_default=func.now(), onupdate=func.now())
    """Timestamp when the rule was last updated."""

    __table_args__ = (
        UniqueConstraint('clinic_id', 'doctor_id', 'weekday', name='uq_weekly_rules_doctor_weekday'),
    )

    @property
    def day_name(self) -> str:
        """Get the day name for display."""
        days = ['Sunday', 'Monday', 'Tuesday', 'Wednesday', 'Thursday', 'Friday', 'Saturday']
        return days[self.weekday]

    @property
    def day_name_ja(self) -> str:
        """Get the day name in Japanese."""
        days = ['日曜日', '月曜日', '火曜日', '水曜日', '木曜日', '金曜日', '土曜日']
        return days[self.weekday]

    def __repr__(self) -> str:
        return (
            f"<WeeklyRule(doctor_id={self.doctor_id}, day={self.day_name}, enabled={self.enabled}, "
            f"{self.start_time}-{self.end_time}, slot={self.slot_minutes}m, cap={self.capacity})>"
        )
