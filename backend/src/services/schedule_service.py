"""
Schedule service for doctors, weekly rules and date overrides.

Admins maintain these rows; the availability calculator reads them fresh on
every request. Every function takes the clinic ID explicitly so tenant
scoping is visible at each call site.
"""

import logging
from dataclasses import dataclass, field
from datetime import date as date_type, time
from typing import Any, Dict, List, Optional

from fastapi import HTTPException, status
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from core.constants import OVERRIDE_TYPES, OVERRIDE_TYPE_CLOSED, DEFAULT_SLOT_MINUTES, DEFAULT_SLOT_CAPACITY
from models import Doctor, WeeklyRule, DateOverride
from services.availability_service import AvailabilityService
from utils.datetime_utils import time_to_minutes

logger = logging.getLogger(__name__)


@dataclass
class WeeklyRuleInput:
    """One weekday of a doctor's weekly template as submitted by an admin."""
    weekday: int
    enabled: bool
    start_time: Optional[time] = None
    end_time: Optional[time] = None
    slot_minutes: int = DEFAULT_SLOT_MINUTES
    capacity: int = DEFAULT_SLOT_CAPACITY


@dataclass
class OverrideFields:
    """Fields of a date override. None means "unset, inherit from the weekly rule"."""
    type: str
    start_time: Optional[time] = None
    end_time: Optional[time] = None
    slot_minutes: Optional[int] = None
    capacity: Optional[int] = None
    memo: Optional[str] = None


@dataclass
class ScheduleBundle:
    """Everything the admin calendar needs to render a doctor's schedule."""
    doctors: List[Doctor] = field(default_factory=list)
    weekly_rules: List[WeeklyRule] = field(default_factory=list)
    overrides: List[DateOverride] = field(default_factory=list)


def _bad_request(detail: str) -> HTTPException:
    return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=detail)


def _normalize_slot_name(slot_name: Optional[str]) -> Optional[str]:
    if slot_name is None:
        return None
    stripped = slot_name.strip()
    return stripped or None


class ScheduleService:
    """Service for the weekly rule store, the date override store and doctors."""

    # ===== Doctors =====

    @staticmethod
    def list_doctors(db: Session, clinic_id: int, include_inactive: bool = True) -> List[Doctor]:
        """List the clinic's doctors ordered for display."""
        query = db.query(Doctor).filter(Doctor.clinic_id == clinic_id)
        if not include_inactive:
            query = query.filter(Doctor.is_active == True)  # noqa: E712
        return query.order_by(Doctor.sort_order, Doctor.id).all()

    @staticmethod
    def upsert_doctor(
        db: Session,
        clinic_id: int,
        name: str,
        doctor_id: Optional[int] = None,
        is_active: bool = True,
        sort_order: int = 0,
        color: Optional[str] = None
    ) -> Doctor:
        """
        Create a doctor, or update it when doctor_id is given.

        Raises:
            HTTPException: 400 if the name is empty, 404 if doctor_id is unknown
        """
        if not name or not name.strip():
            raise _bad_request("医師名を入力してください")

        if doctor_id is not None:
            doctor = AvailabilityService.get_doctor(db, clinic_id, doctor_id)
        else:
            doctor = Doctor(clinic_id=clinic_id)
            db.add(doctor)

        doctor.name = name.strip()
        doctor.is_active = is_active
        doctor.sort_order = sort_order
        doctor.color = color
        db.commit()
        db.refresh(doctor)
        logger.info(f"Saved doctor {doctor.id} for clinic {clinic_id}")
        return doctor

    # ===== Weekly rules =====

    @staticmethod
    def get_weekly_rules(db: Session, clinic_id: int, doctor_id: Optional[int] = None) -> List[WeeklyRule]:
        """Get weekly rules of the clinic, optionally for one doctor."""
        query = db.query(WeeklyRule).filter(WeeklyRule.clinic_id == clinic_id)
        if doctor_id is not None:
            query = query.filter(WeeklyRule.doctor_id == doctor_id)
        return query.order_by(WeeklyRule.doctor_id, WeeklyRule.weekday).all()

    @staticmethod
    def validate_weekly_rule(rule: WeeklyRuleInput) -> None:
        """
        Validate one weekly rule.

        Raises:
            HTTPException: If the weekday is out of range, or an enabled rule
                has missing/inverted hours or a non-positive slot length
        """
        if not 0 <= rule.weekday <= 6:
            raise _bad_request(f"曜日が不正です: {rule.weekday}")
        if rule.capacity < 0:
            raise _bad_request("定員は0以上で指定してください")
        if not rule.enabled:
            return
        if rule.start_time is None or rule.end_time is None:
            raise _bad_request("開始・終了時間の両方を入力してください")
        if time_to_minutes(rule.start_time) >= time_to_minutes(rule.end_time):
            raise _bad_request("開始時間は終了時間より前である必要があります")
        if rule.slot_minutes <= 0:
            raise _bad_request("枠の長さは1分以上で指定してください")

    @staticmethod
    def replace_weekly_rules(
        db: Session,
        clinic_id: int,
        doctor_id: int,
        rules: List[WeeklyRuleInput]
    ) -> List[WeeklyRule]:
        """
        Replace a doctor's weekly template.

        All rules are validated before any row is touched; the replacement is
        committed as one transaction. Weekdays not listed end up without a
        rule (closed unless an override opens the date).

        Raises:
            HTTPException: 404 for an unknown doctor, 400 for invalid rules
        """
        AvailabilityService.get_doctor(db, clinic_id, doctor_id)

        seen_weekdays = set()
        for rule in rules:
            ScheduleService.validate_weekly_rule(rule)
            if rule.weekday in seen_weekdays:
                raise _bad_request(f"曜日が重複しています: {rule.weekday}")
            seen_weekdays.add(rule.weekday)

        db.query(WeeklyRule).filter(
            WeeklyRule.clinic_id == clinic_id,
            WeeklyRule.doctor_id == doctor_id
        ).delete(synchronize_session="fetch")

        for rule in rules:
            db.add(WeeklyRule(
                clinic_id=clinic_id,
                doctor_id=doctor_id,
                weekday=rule.weekday,
                enabled=rule.enabled,
                start_time=rule.start_time,
                end_time=rule.end_time,
                slot_minutes=rule.slot_minutes,
                capacity=rule.capacity,
            ))

        db.commit()
        logger.info(f"Replaced weekly rules for doctor {doctor_id} (clinic {clinic_id}): {len(rules)} weekdays")
        return ScheduleService.get_weekly_rules(db, clinic_id, doctor_id)

    # ===== Date overrides =====

    @staticmethod
    def validate_override(fields: OverrideFields) -> None:
        """
        Validate override fields.

        Raises:
            HTTPException: If the type is unknown or a field is out of range
        """
        if fields.type not in OVERRIDE_TYPES:
            raise _bad_request(f"無効な種別です: {fields.type}")
        if fields.type != OVERRIDE_TYPE_CLOSED:
            if (fields.start_time is None) != (fields.end_time is None):
                raise _bad_request("開始・終了時間の両方を入力してください")
        if fields.slot_minutes is not None and fields.slot_minutes <= 0:
            raise _bad_request("枠の長さは1分以上で指定してください")
        if fields.capacity is not None and fields.capacity < 0:
            raise _bad_request("定員は0以上で指定してください")

    @staticmethod
    def _override_key_filter(query, clinic_id: int, doctor_id: int, target_date: date_type, slot_name: Optional[str]):
        query = query.filter(
            DateOverride.clinic_id == clinic_id,
            DateOverride.doctor_id == doctor_id,
            DateOverride.date == target_date,
        )
        if slot_name is None:
            return query.filter(DateOverride.slot_name.is_(None))
        return query.filter(DateOverride.slot_name == slot_name)

    @staticmethod
    def put_override(
        db: Session,
        clinic_id: int,
        doctor_id: int,
        target_date: date_type,
        slot_name: Optional[str],
        fields: OverrideFields
    ) -> DateOverride:
        """
        Write the override for (doctor, date, slot_name), replacing any existing row.

        This is a replacement, not a merge: fields not given are stored as
        unset. The delete and the insert run in one transaction, so readers
        never observe the key without a row. Concurrent writers are
        last-writer-wins.

        Raises:
            HTTPException: 404 for an unknown doctor, 400 for invalid fields
        """
        AvailabilityService.get_doctor(db, clinic_id, doctor_id)
        ScheduleService.validate_override(fields)
        slot_name = _normalize_slot_name(slot_name)

        for attempt in range(2):
            ScheduleService._override_key_filter(
                db.query(DateOverride), clinic_id, doctor_id, target_date, slot_name
            ).delete(synchronize_session="fetch")

            override = DateOverride(
                clinic_id=clinic_id,
                doctor_id=doctor_id,
                date=target_date,
                slot_name=slot_name,
                type=fields.type,
                start_time=fields.start_time,
                end_time=fields.end_time,
                slot_minutes=fields.slot_minutes,
                capacity=fields.capacity,
                memo=fields.memo,
            )
            db.add(override)
            try:
                db.commit()
            except IntegrityError:
                # Another writer inserted the same key between our delete and insert
                db.rollback()
                if attempt == 1:
                    raise
                logger.warning(
                    f"Concurrent override write for doctor {doctor_id} on {target_date} "
                    f"(slot {slot_name!r}), retrying"
                )
                continue
            db.refresh(override)
            logger.info(
                f"Saved {fields.type} override for doctor {doctor_id} on {target_date} "
                f"(slot {slot_name!r}, clinic {clinic_id})"
            )
            return override

        raise RuntimeError("unreachable")

    @staticmethod
    def delete_override(
        db: Session,
        clinic_id: int,
        doctor_id: int,
        target_date: date_type,
        slot_name: Optional[str] = None,
        delete_all: bool = False
    ) -> int:
        """
        Delete overrides of one date.

        Modes:
        - delete_all=True: every override (all bands) of the date
        - slot_name given: only that named band
        - otherwise: only the unnamed base band

        Returns:
            Number of rows deleted

        Raises:
            HTTPException: 404 for an unknown doctor
        """
        AvailabilityService.get_doctor(db, clinic_id, doctor_id)
        query = db.query(DateOverride).filter(
            DateOverride.clinic_id == clinic_id,
            DateOverride.doctor_id == doctor_id,
            DateOverride.date == target_date,
        )
        if not delete_all:
            query = ScheduleService._override_key_filter(
                db.query(DateOverride), clinic_id, doctor_id, target_date, _normalize_slot_name(slot_name)
            )

        deleted = query.delete(synchronize_session="fetch")
        db.commit()
        logger.info(
            f"Deleted {deleted} override(s) for doctor {doctor_id} on {target_date} "
            f"(slot {slot_name!r}, delete_all={delete_all}, clinic {clinic_id})"
        )
        return deleted

    @staticmethod
    def get_overrides(
        db: Session,
        clinic_id: int,
        doctor_id: Optional[int] = None,
        start_date: Optional[date_type] = None,
        end_date: Optional[date_type] = None
    ) -> List[DateOverride]:
        """Get overrides of the clinic, optionally filtered by doctor and date range."""
        query = db.query(DateOverride).filter(DateOverride.clinic_id == clinic_id)
        if doctor_id is not None:
            query = query.filter(DateOverride.doctor_id == doctor_id)
        if start_date is not None:
            query = query.filter(DateOverride.date >= start_date)
        if end_date is not None:
            query = query.filter(DateOverride.date <= end_date)
        return query.order_by(DateOverride.date, DateOverride.doctor_id, DateOverride.slot_name).all()

    @staticmethod
    def get_schedule(
        db: Session,
        clinic_id: int,
        doctor_id: Optional[int] = None,
        start_date: Optional[date_type] = None,
        end_date: Optional[date_type] = None
    ) -> ScheduleBundle:
        """
        Get doctors, weekly rules and overrides for calendar rendering.
        """
        return ScheduleBundle(
            doctors=ScheduleService.list_doctors(db, clinic_id),
            weekly_rules=ScheduleService.get_weekly_rules(db, clinic_id, doctor_id),
            overrides=ScheduleService.get_overrides(db, clinic_id, doctor_id, start_date, end_date),
        )

    @staticmethod
    def override_to_dict(override: DateOverride) -> Dict[str, Any]:
        """Serialize an override for API responses; unset fields stay None."""
        return {
            "id": override.id,
            "doctor_id": override.doctor_id,
            "date": override.date.isoformat(),
            "type": override.type,
            "slot_name": override.slot_name,
            "start_time": override.start_time.strftime("%H:%M") if override.start_time else None,
            "end_time": override.end_time.strftime("%H:%M") if override.end_time else None,
            "slot_minutes": override.slot_minutes,
            "capacity": override.capacity,
            "memo": override.memo,
        }
