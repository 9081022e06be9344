"""
Scheduled message model for outbound LINE notifications.

This model stores the reminders (and any other time-stamped messages) that
the dispatcher sends once their scheduled time has passed.
"""

from datetime import datetime
from typing import Optional, Dict, Any
from sqlalchemy import String, ForeignKey, TIMESTAMP, Text, CheckConstraint, Index, JSON
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql import func

from core.database import Base


class ScheduledMessage(Base):
    """
    Scheduled LINE message entity.

    Status lifecycle: 'scheduled' -> 'sending' (claimed by exactly one
    dispatcher run) -> 'sent' or 'failed'. Terminal states are final;
    re-sending requires a new row.
    """

    __tablename__ = "scheduled_messages"

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    """Unique identifier for the scheduled message."""

    clinic_id: Mapped[int] = mapped_column(ForeignKey("clinics.id", ondelete="CASCADE"), nullable=False)
    """Reference to the clinic."""

    patient_id: Mapped[Optional[int]] = mapped_column(ForeignKey("patients.id", ondelete="SET NULL"), nullable=True)
    """Recipient patient; {name}/{patient_id} are resolved from this row at send time."""

    destination_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    """LINE user ID of the recipient. Messages without one fail without a delivery attempt."""

    message_type: Mapped[str] = mapped_column(String(50), default='reminder')
    """Message type: 'reminder', etc."""

    content: Mapped[str] = mapped_column(Text, nullable=False)
    """Text body (or flex alt text), possibly still holding send-time placeholders."""

    flex_payload: Mapped[Optional[Dict[str, Any]]] = mapped_column(
        JSON().with_variant(JSONB, "postgresql"), nullable=True
    )
    """Flex container (bubble) sent instead of plain text when present."""

    scheduled_at: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True), nullable=False)
    """When the message should be sent."""

    status: Mapped[str] = mapped_column(String(20), default='scheduled')
    """Status: 'scheduled', 'sending', 'sent', or 'failed'."""

    sent_at: Mapped[Optional[datetime]] = mapped_column(TIMESTAMP(timezone=True), nullable=True)
    """When the message was actually sent."""

    error_message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    """Error message if sending failed."""

    created_at: Mapped[Optional[datetime]] = mapped_column(TIMESTAMP(timezone=True), server_default=func.now())
    """Timestamp when the scheduled message was created."""

    updated_at: Mapped[Optional[datetime]] = mapped_column(TIMESTAMP(timezone=True), server_default=func.now(), onupdate=func.now())
    """Timestamp when the scheduled message was last updated."""

    # Table constraints
    __table_args__ = (
        CheckConstraint("status IN ('scheduled', 'sending', 'sent', 'failed')", name='check_status'),
        Index('idx_scheduled_messages_status_time', 'status', 'scheduled_at'),
        Index('idx_scheduled_messages_clinic', 'clinic_id'),
    )

    def __repr__(self) -> str:
        return f"<ScheduledMessage(id={self.id}, status='{self.status}', scheduled_at={self.scheduled_at})>"
