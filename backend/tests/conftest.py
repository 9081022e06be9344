"""
Test configuration and shared fixtures for the Clinic Booking test suite.

Each test runs against its own in-memory SQLite database created from the
SQLAlchemy metadata, so tests never share state.
"""

import os

# Must be set before core.config is imported anywhere
os.environ["DATABASE_URL"] = os.getenv("TEST_DATABASE_URL", "sqlite://")
os.environ.setdefault("CRON_SECRET", "test-cron-secret")
os.environ["ENABLE_BACKGROUND_SCHEDULERS"] = "false"

import pytest
from datetime import date, time, datetime
from typing import Generator, List, Optional

from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from core.database import Base
from models import (
    Clinic, Doctor, Patient, Reservation, WeeklyRule, DateOverride,
    ReminderRule, ScheduledMessage,
)


@pytest.fixture(scope="function")
def db_engine():
    """
    Create a fresh in-memory database for one test.

    StaticPool keeps a single connection so every session sees the same
    in-memory database.
    """
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        echo=False,
    )
    Base.metadata.create_all(bind=engine)

    yield engine

    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture(scope="function")
def db_session(db_engine) -> Generator[Session, None, None]:
    """Provide a database session for a test."""
    TestSession = sessionmaker(bind=db_engine, autoflush=False, expire_on_commit=False)
    session = TestSession()

    yield session

    session.close()


class FakeNotifier:
    """
    Records pushes instead of calling LINE.

    Set `fail_for` to LINE user IDs whose pushes should raise.
    """

    def __init__(self, fail_for: Optional[List[str]] = None, error: Optional[Exception] = None):
        self.sent: List[dict] = []
        self.fail_for = set(fail_for or [])
        self.error = error

    def _check(self, line_user_id: str) -> None:
        if line_user_id in self.fail_for:
            from core.exceptions import DispatchError
            raise self.error or DispatchError(f"push rejected for {line_user_id}", status_code=400)

    def send_text_message(self, line_user_id: str, text: str) -> str:
        self._check(line_user_id)
        self.sent.append({"to": line_user_id, "text": text})
        return f"msg-{len(self.sent)}"

    def send_flex_message(self, line_user_id: str, alt_text: str, contents: dict) -> str:
        self._check(line_user_id)
        self.sent.append({"to": line_user_id, "text": alt_text, "contents": contents})
        return f"msg-{len(self.sent)}"


@pytest.fixture
def fake_notifier() -> FakeNotifier:
    return FakeNotifier()


# Helper functions for creating test data

def create_clinic(
    db_session: Session,
    name: str = "テストクリニック",
    with_line: bool = True
) -> Clinic:
    clinic = Clinic(
        name=name,
        line_channel_secret="test_secret" if with_line else None,
        line_channel_access_token="test_token" if with_line else None,
    )
    db_session.add(clinic)
    db_session.commit()
    return clinic


def create_doctor(db_session: Session, clinic: Clinic, name: str = "山田医師", sort_order: int = 0) -> Doctor:
    doctor = Doctor(clinic_id=clinic.id, name=name, is_active=True, sort_order=sort_order)
    db_session.add(doctor)
    db_session.commit()
    return doctor


def create_patient(
    db_session: Session,
    clinic: Clinic,
    full_name: str = "佐藤花子",
    line_user_id: Optional[str] = "U_patient_1"
) -> Patient:
    patient = Patient(clinic_id=clinic.id, full_name=full_name, line_user_id=line_user_id)
    db_session.add(patient)
    db_session.commit()
    return patient


def create_weekly_rule(
    db_session: Session,
    doctor: Doctor,
    weekday: int,
    start_time: Optional[time] = time(10, 0),
    end_time: Optional[time] = time(12, 0),
    slot_minutes: int = 30,
    capacity: int = 2,
    enabled: bool = True
) -> WeeklyRule:
    rule = WeeklyRule(
        clinic_id=doctor.clinic_id,
        doctor_id=doctor.id,
        weekday=weekday,
        enabled=enabled,
        start_time=start_time,
        end_time=end_time,
        slot_minutes=slot_minutes,
        capacity=capacity,
    )
    db_session.add(rule)
    db_session.commit()
    return rule


def create_override(
    db_session: Session,
    doctor: Doctor,
    override_date: date,
    type: str,
    slot_name: Optional[str] = None,
    **fields
) -> DateOverride:
    override = DateOverride(
        clinic_id=doctor.clinic_id,
        doctor_id=doctor.id,
        date=override_date,
        type=type,
        slot_name=slot_name,
        **fields
    )
    db_session.add(override)
    db_session.commit()
    return override


def create_reservation(
    db_session: Session,
    patient: Patient,
    doctor: Doctor,
    reserved_date: date,
    reserved_time: time,
    status: str = "confirmed"
) -> Reservation:
    reservation = Reservation(
        clinic_id=patient.clinic_id,
        patient_id=patient.id,
        doctor_id=doctor.id,
        reserved_date=reserved_date,
        reserved_time=reserved_time,
        status=status,
    )
    db_session.add(reservation)
    db_session.commit()
    return reservation


def create_reminder_rule(
    db_session: Session,
    clinic: Clinic,
    name: str = "前日リマインド",
    timing_type: str = "before_hours",
    timing_value: Optional[int] = 24,
    send_hour: Optional[int] = None,
    send_minute: int = 0,
    target_day_offset: int = 1,
    message_format: str = "text",
    message_template: Optional[str] = "{name}様 {date} {time} にご予約があります",
    is_enabled: bool = True
) -> ReminderRule:
    rule = ReminderRule(
        clinic_id=clinic.id,
        name=name,
        timing_type=timing_type,
        timing_value=timing_value,
        send_hour=send_hour,
        send_minute=send_minute,
        target_day_offset=target_day_offset,
        message_format=message_format,
        message_template=message_template,
        is_enabled=is_enabled,
    )
    db_session.add(rule)
    db_session.commit()
    return rule


def create_scheduled_message(
    db_session: Session,
    clinic: Clinic,
    scheduled_at: datetime,
    patient: Optional[Patient] = None,
    destination_id: Optional[str] = "U_patient_1",
    content: str = "{name}様 明日のご予約です",
    status: str = "scheduled",
    flex_payload: Optional[dict] = None
) -> ScheduledMessage:
    message = ScheduledMessage(
        clinic_id=clinic.id,
        patient_id=patient.id if patient else None,
        destination_id=destination_id,
        content=content,
        flex_payload=flex_payload,
        scheduled_at=scheduled_at,
        status=status,
    )
    db_session.add(message)
    db_session.commit()
    return message
