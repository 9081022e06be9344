"""
Clinic model representing one tenant of the booking core.

A clinic owns its doctors, schedules, reminder rules and scheduled messages.
Each clinic operates independently with its own LINE Official Account.
"""

from datetime import datetime
from typing import Optional

from sqlalchemy import String, TIMESTAMP
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql import func

from core.database import Base
from core.constants import MAX_STRING_LENGTH


class Clinic(Base):
    """
    Clinic entity scoping every other table.

    The LINE credentials are used by the reminder dispatcher to push
    messages on behalf of this clinic.
    """

    __tablename__ = "clinics"

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    """Unique identifier for the clinic."""

    name: Mapped[str] = mapped_column(String(MAX_STRING_LENGTH))
    """Display name of the clinic."""

    line_channel_secret: Mapped[Optional[str]] = mapped_column(String(MAX_STRING_LENGTH), nullable=True)
    """LINE channel secret."""

    line_channel_access_token: Mapped[Optional[str]] = mapped_column(String(MAX_STRING_LENGTH), nullable=True)
    """LINE channel access token used for push messages."""

    created_at: Mapped[Optional[datetime]] = mapped_column(TIMESTAMP(timezone=True), server_default=func.now())
    updated_at: Mapped[Optional[datetime]] = mapped_column(TIMESTAMP(timezone=True), server_default=func.now(), onupdate=func.now())

    def __repr__(self) -> str:
        return f"<Clinic(id={self.id}, name='{self.name}')>"
