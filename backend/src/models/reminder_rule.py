"""
Reminder rule model for reservation reminders.

This model stores the policies describing when and what to send to a
patient ahead of a reservation. A rule either fires relative to the
appointment start (hours or days before) or at a fixed clock time each day
for reservations a set number of days ahead.
"""

from datetime import datetime
from typing import Optional
from sqlalchemy import String, ForeignKey, TIMESTAMP, Text, Integer, CheckConstraint
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql import func

from core.database import Base
from core.constants import MAX_STRING_LENGTH


class ReminderRule(Base):
    """
    Reminder rule configuration entity.

    Timing types:
    - before_hours: send `timing_value` hours before the appointment start
    - before_days: send `timing_value` days before the appointment start
    - fixed_time: send at send_hour:send_minute to reservations dated
      today + target_day_offset
    """

    __tablename__ = "reminder_rules"

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    """Unique identifier for the reminder rule."""

    clinic_id: Mapped[int] = mapped_column(ForeignKey("clinics.id", ondelete="CASCADE"), nullable=False)
    """Reference to the clinic that owns this rule."""

    name: Mapped[str] = mapped_column(String(MAX_STRING_LENGTH), nullable=False)
    """Admin-facing rule name (e.g. '前日リマインド')."""

    timing_type: Mapped[str] = mapped_column(String(20), nullable=False)
    """Timing type: 'before_hours', 'before_days', or 'fixed_time'."""

    timing_value: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    """Hours/days before the appointment; unused by fixed_time rules."""

    send_hour: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    """For fixed_time: hour of day (0-23)."""

    send_minute: Mapped[int] = mapped_column(Integer, default=0)
    """For fixed_time: minute (0-59)."""

    target_day_offset: Mapped[int] = mapped_column(Integer, default=1)
    """For fixed_time: reservations dated today + offset are reminded."""

    message_format: Mapped[str] = mapped_column(String(10), default='text')
    """'text' (rendered template) or 'flex' (reminder card)."""

    message_template: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    """Message template with placeholders; optional for flex rules."""

    is_enabled: Mapped[bool] = mapped_column(default=True)
    """Whether this rule is evaluated."""

    created_at: Mapped[Optional[datetime]] = mapped_column(TIMESTAMP(timezone=True), server_default=func.now())
    """Timestamp when the rule was created."""

    updated_at: Mapped[Optional[datetime]] = mapped_column(TIMESTAMP(timezone=True), server_default=func.now(), onupdate=func.now())
    """Timestamp when the rule was last updated."""

    __table_args__ = (
        CheckConstraint("timing_type IN ('before_hours', 'before_days', 'fixed_time')", name='check_timing_type'),
        CheckConstraint("message_format IN ('text', 'flex')", name='check_message_format'),
        CheckConstraint('timing_value IS NULL OR timing_value >= 0', name='check_timing_value_non_negative'),
        CheckConstraint(
            "timing_type != 'fixed_time' OR send_hour IS NOT NULL",
            name='check_fixed_time_send_hour'
        ),
    )

    def __repr__(self) -> str:
        return f"<ReminderRule(id={self.id}, name='{self.name}', timing_type='{self.timing_type}')>"
