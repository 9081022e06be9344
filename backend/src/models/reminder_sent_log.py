"""
Reminder sent log model.

One row per (rule, reservation) that has had a reminder scheduled. The
unique constraint makes scheduling idempotent: re-evaluating a rule against
the same reservation never creates a second scheduled message.
"""

from datetime import datetime
from typing import Optional

from sqlalchemy import ForeignKey, TIMESTAMP, UniqueConstraint, Index
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy.sql import func

from core.database import Base


class ReminderSentLog(Base):
    """Idempotency record linking a reminder rule, a reservation and its message."""

    __tablename__ = "reminder_sent_logs"

    id: Mapped[int] = mapped_column(primary_key=True, index=True)

    clinic_id: Mapped[int] = mapped_column(ForeignKey("clinics.id", ondelete="CASCADE"), nullable=False)

    rule_id: Mapped[int] = mapped_column(ForeignKey("reminder_rules.id", ondelete="CASCADE"), nullable=False)

    reservation_id: Mapped[int] = mapped_column(ForeignKey("reservations.id", ondelete="CASCADE"), nullable=False)

    scheduled_message_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("scheduled_messages.id", ondelete="SET NULL"), nullable=True
    )

    created_at: Mapped[Optional[datetime]] = mapped_column(TIMESTAMP(timezone=True), server_default=func.now())

    scheduled_message = relationship("ScheduledMessage")

    __table_args__ = (
        UniqueConstraint('rule_id', 'reservation_id', name='uq_reminder_sent_logs_rule_reservation'),
        Index('idx_reminder_sent_logs_clinic_rule', 'clinic_id', 'rule_id'),
    )

    def __repr__(self) -> str:
        return f"<ReminderSentLog(rule_id={self.rule_id}, reservation_id={self.reservation_id})>"
