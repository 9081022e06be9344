"""
Patient model.

Patients are maintained by the patient directory; the booking core only
reads them to resolve reminder recipients and the names shown in messages.
"""

from datetime import datetime
from typing import Optional

from sqlalchemy import String, TIMESTAMP, ForeignKey, Index
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql import func

from core.database import Base
from core.constants import MAX_STRING_LENGTH


class Patient(Base):
    """Patient entity read by the reminder engine and dispatcher."""

    __tablename__ = "patients"

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    """Unique identifier for the patient."""

    clinic_id: Mapped[int] = mapped_column(ForeignKey("clinics.id", ondelete="CASCADE"), nullable=False)

    full_name: Mapped[str] = mapped_column(String(MAX_STRING_LENGTH))
    """Current name; reminders resolve {name} from this field at send time."""

    line_user_id: Mapped[Optional[str]] = mapped_column(String(MAX_STRING_LENGTH), nullable=True)
    """LINE user ID the reminders are pushed to. None when the patient has not linked LINE."""

    created_at: Mapped[Optional[datetime]] = mapped_column(TIMESTAMP(timezone=True), server_default=func.now())
    updated_at: Mapped[Optional[datetime]] = mapped_column(TIMESTAMP(timezone=True), server_default=func.now(), onupdate=func.now())

    __table_args__ = (
        Index('idx_patients_clinic', 'clinic_id'),
    )

    def __repr__(self) -> str:
        return f"<Patient(id={self.id}, clinic_id={self.clinic_id}, full_name='{self.full_name}')>"
