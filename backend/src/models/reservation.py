"""
Reservation model.

Reservations are written by the reservation-creation path (outside this
core, which also owns the write-time capacity check). The booking core
reads them to count bookings per slot and to match reminder rules.
"""

from datetime import date, datetime, time
from typing import Optional

from sqlalchemy import String, TIMESTAMP, ForeignKey, Index, Date, Time
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy.sql import func

from core.database import Base
from utils.datetime_utils import combine_jst


class Reservation(Base):
    """A patient's booking of one slot with one doctor."""

    __tablename__ = "reservations"

    id: Mapped[int] = mapped_column(primary_key=True, index=True)

    clinic_id: Mapped[int] = mapped_column(ForeignKey("clinics.id", ondelete="CASCADE"), nullable=False)

    patient_id: Mapped[int] = mapped_column(ForeignKey("patients.id"), nullable=False)

    doctor_id: Mapped[int] = mapped_column(ForeignKey("doctors.id"), nullable=False)

    reserved_date: Mapped[date] = mapped_column(Date, nullable=False)

    reserved_time: Mapped[time] = mapped_column(Time, nullable=False)
    """Slot start time (clinic local)."""

    status: Mapped[str] = mapped_column(String(20), default='pending')
    """Status: 'pending', 'confirmed', or 'canceled'."""

    created_at: Mapped[Optional[datetime]] = mapped_column(TIMESTAMP(timezone=True), server_default=func.now())
    updated_at: Mapped[Optional[datetime]] = mapped_column(TIMESTAMP(timezone=True), server_default=func.now(), onupdate=func.now())

    patient = relationship("Patient")

    __table_args__ = (
        Index('idx_reservations_clinic_doctor_date', 'clinic_id', 'doctor_id', 'reserved_date'),
        Index('idx_reservations_clinic_date', 'clinic_id', 'reserved_date'),
    )

    @property
    def start_datetime(self) -> datetime:
        """Appointment start as an aware JST datetime."""
        return combine_jst(self.reserved_date, self.reserved_time)

    def __repr__(self) -> str:
        return (
            f"<Reservation(id={self.id}, patient_id={self.patient_id}, doctor_id={self.doctor_id}, "
            f"{self.reserved_date} {self.reserved_time}, status='{self.status}')>"
        )
