"""
Availability service for bookable slot calculation.

This module contains the slot calculator shared by the patient-facing slot
listing and the admin calendar. `compute_slots` is a pure function over
plain data; `AvailabilityService` loads that data for one clinic and doctor.
"""

import logging
from collections import defaultdict
from datetime import date as date_type, time
from typing import Dict, Iterable, List, Mapping, Optional, Tuple

from fastapi import HTTPException, status
from sqlalchemy import func
from sqlalchemy.orm import Session

from core.constants import (
    DEFAULT_SLOT_MINUTES, DEFAULT_SLOT_CAPACITY, MAX_SLOT_RANGE_DAYS,
    OVERRIDE_TYPE_CLOSED, INACTIVE_RESERVATION_STATUSES
)
from models import Doctor, WeeklyRule, DateOverride, Reservation
from shared_types.availability import SlotData, WeeklyRuleData, DateOverrideData
from utils.datetime_utils import (
    parse_date_string, iter_dates, weekday_index, time_to_minutes, minutes_to_time
)

logger = logging.getLogger(__name__)

BookedCounts = Mapping[Tuple[date_type, time], int]

_MINUTES_PER_DAY = 24 * 60


def _pick(override_value, rule_value, default=None):
    """Field-level merge: override wins when set, else the weekly rule, else the default."""
    if override_value is not None:
        return override_value
    if rule_value is not None:
        return rule_value
    return default


def _band_slots(
    day: date_type,
    rule: Optional[WeeklyRuleData],
    band: Optional[DateOverrideData],
    booked_counts: BookedCounts
) -> List[SlotData]:
    """Generate the slots of one band of one date. Malformed data yields no slots."""
    start = _pick(band.start_time if band else None, rule.start_time if rule else None)
    end = _pick(band.end_time if band else None, rule.end_time if rule else None)
    slot_minutes = _pick(band.slot_minutes if band else None, rule.slot_minutes if rule else None, DEFAULT_SLOT_MINUTES)
    capacity = _pick(band.capacity if band else None, rule.capacity if rule else None, DEFAULT_SLOT_CAPACITY)

    if start is None or end is None:
        return []

    start_minutes = time_to_minutes(start)
    end_minutes = time_to_minutes(end)
    if not start_minutes < end_minutes or slot_minutes <= 0:
        return []

    slots: List[SlotData] = []
    current = start_minutes
    while current + slot_minutes <= end_minutes and current < _MINUTES_PER_DAY:
        slot_time = minutes_to_time(current)
        booked = booked_counts.get((day, slot_time), 0)
        slots.append(SlotData(date=day, time=slot_time, remaining=max(0, capacity - booked)))
        current += slot_minutes
    return slots


def _band_sort_key(override: DateOverrideData) -> Tuple[int, str]:
    # Base band (no name) first, then named bands alphabetically
    return (0, "") if override.slot_name is None else (1, override.slot_name)


def compute_slots(
    doctor_id: int,
    date_start: date_type,
    date_end: date_type,
    weekly_rules: Iterable[WeeklyRuleData],
    overrides: Iterable[DateOverrideData],
    booked_counts: BookedCounts
) -> List[SlotData]:
    """
    Compute the ordered bookable slots of one doctor over a date range.

    For each date:
    - a closed override on the base band (no slot_name) closes the date;
    - without open or modify overrides, the enabled weekly rule of the
      weekday is used, so a closed named band on its own changes nothing;
    - with overrides, every non-closed band yields its own slots, each field
      (start, end, slot length, capacity) taken from the band when set and
      from the weekly rule otherwise;
    - slots start at the resolved start and must end by the resolved end;
    - remaining = max(0, capacity - bookings at that date and time).

    Rules and overrides of other doctors are ignored. Malformed data (missing
    hours, start >= end, non-positive slot length) silently yields no slots.

    Args:
        doctor_id: Doctor to compute slots for
        date_start: First date (inclusive)
        date_end: Last date (inclusive)
        weekly_rules: Weekly templates (0=Sunday .. 6=Saturday)
        overrides: Per-date exceptions
        booked_counts: Booking count keyed by (date, slot start time)

    Returns:
        Slots ordered by date, then time
    """
    rules_by_weekday: Dict[int, WeeklyRuleData] = {}
    for rule in weekly_rules:
        if rule.doctor_id == doctor_id:
            rules_by_weekday[rule.weekday] = rule

    overrides_by_date: Dict[date_type, List[DateOverrideData]] = defaultdict(list)
    for override in overrides:
        if override.doctor_id == doctor_id:
            overrides_by_date[override.date].append(override)

    result: List[SlotData] = []
    for day in iter_dates(date_start, date_end):
        rule = rules_by_weekday.get(weekday_index(day))
        day_overrides = sorted(overrides_by_date.get(day, []), key=_band_sort_key)

        if any(o.type == OVERRIDE_TYPE_CLOSED and o.slot_name is None for o in day_overrides):
            continue

        bands: List[Optional[DateOverrideData]] = [
            o for o in day_overrides if o.type != OVERRIDE_TYPE_CLOSED
        ]
        # Named closures alone leave the weekly hours in place
        if not bands and rule is not None and rule.enabled:
            bands = [None]

        day_slots: Dict[time, SlotData] = {}
        for band in bands:
            for slot in _band_slots(day, rule, band, booked_counts):
                day_slots.setdefault(slot.time, slot)

        result.extend(day_slots[t] for t in sorted(day_slots))

    return result


def to_weekly_rule_data(rule: WeeklyRule) -> WeeklyRuleData:
    return WeeklyRuleData(
        doctor_id=rule.doctor_id,
        weekday=rule.weekday,
        enabled=rule.enabled,
        start_time=rule.start_time,
        end_time=rule.end_time,
        slot_minutes=rule.slot_minutes,
        capacity=rule.capacity,
    )


def to_date_override_data(override: DateOverride) -> DateOverrideData:
    return DateOverrideData(
        doctor_id=override.doctor_id,
        date=override.date,
        type=override.type,
        slot_name=override.slot_name,
        start_time=override.start_time,
        end_time=override.end_time,
        slot_minutes=override.slot_minutes,
        capacity=override.capacity,
    )


class AvailabilityService:
    """
    Service class for availability operations.

    Reads weekly rules, overrides and booking counts fresh on every call;
    nothing is cached between requests.
    """

    @staticmethod
    def validate_date_range(start: str, end: str) -> Tuple[date_type, date_type]:
        """
        Validate a YYYY-MM-DD date range.

        Args:
            start: First date of the range
            end: Last date of the range (inclusive)

        Returns:
            Parsed (start, end) dates

        Raises:
            HTTPException: If a date is malformed, start > end, or the range is too long
        """
        try:
            start_date = parse_date_string(start)
            end_date = parse_date_string(end)
        except ValueError:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="無効な日付形式です（YYYY-MM-DD）"
            )

        if start_date > end_date:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="開始日は終了日以前である必要があります"
            )
        if (end_date - start_date).days + 1 > MAX_SLOT_RANGE_DAYS:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=f"取得できる期間は最大 {MAX_SLOT_RANGE_DAYS} 日です"
            )
        return start_date, end_date

    @staticmethod
    def get_doctor(db: Session, clinic_id: int, doctor_id: int) -> Doctor:
        """
        Get a doctor of the clinic.

        Raises:
            HTTPException: If the doctor does not exist in this clinic
        """
        doctor = db.query(Doctor).filter(
            Doctor.id == doctor_id,
            Doctor.clinic_id == clinic_id
        ).first()
        if not doctor:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="医師が見つかりません"
            )
        return doctor

    @staticmethod
    def get_booked_counts(
        db: Session,
        clinic_id: int,
        doctor_id: int,
        start_date: date_type,
        end_date: date_type
    ) -> Dict[Tuple[date_type, time], int]:
        """
        Count active reservations per (date, time) for one doctor.

        Canceled reservations do not occupy capacity.
        """
        rows = db.query(
            Reservation.reserved_date,
            Reservation.reserved_time,
            func.count(Reservation.id)
        ).filter(
            Reservation.clinic_id == clinic_id,
            Reservation.doctor_id == doctor_id,
            Reservation.reserved_date >= start_date,
            Reservation.reserved_date <= end_date,
            Reservation.status.notin_(INACTIVE_RESERVATION_STATUSES)
        ).group_by(
            Reservation.reserved_date,
            Reservation.reserved_time
        ).all()

        return {(row[0], row[1].replace(second=0, microsecond=0)): int(row[2]) for row in rows}

    @staticmethod
    def list_slots(
        db: Session,
        clinic_id: int,
        doctor_id: int,
        start_date: date_type,
        end_date: date_type,
        apply_booking_window: bool = False,
        today: Optional[date_type] = None
    ) -> List[SlotData]:
        """
        List the bookable slots of a doctor with remaining capacity.

        The result is a best-effort snapshot: the reads are not wrapped in one
        transaction and nothing is reserved. The write-time capacity check
        belongs to the reservation-creation path.

        Args:
            db: Database session
            clinic_id: Clinic (tenant) ID
            doctor_id: Doctor ID
            start_date: First date (inclusive)
            end_date: Last date (inclusive)
            apply_booking_window: Drop dates the booking window does not allow
            today: Reference date for the booking window (defaults to JST today)

        Returns:
            Slots ordered by date, then time

        Raises:
            HTTPException: If the doctor does not belong to the clinic
        """
        AvailabilityService.get_doctor(db, clinic_id, doctor_id)

        rules = db.query(WeeklyRule).filter(
            WeeklyRule.clinic_id == clinic_id,
            WeeklyRule.doctor_id == doctor_id
        ).all()

        overrides = db.query(DateOverride).filter(
            DateOverride.clinic_id == clinic_id,
            DateOverride.doctor_id == doctor_id,
            DateOverride.date >= start_date,
            DateOverride.date <= end_date
        ).all()

        booked = AvailabilityService.get_booked_counts(db, clinic_id, doctor_id, start_date, end_date)

        slots = compute_slots(
            doctor_id,
            start_date,
            end_date,
            [to_weekly_rule_data(r) for r in rules],
            [to_date_override_data(o) for o in overrides],
            booked
        )

        if apply_booking_window:
            from services.booking_window_service import BookingWindowService
            bookable = BookingWindowService.bookable_dates(db, clinic_id, start_date, end_date, today)
            slots = [slot for slot in slots if slot.date in bookable]

        logger.debug(
            f"Computed {len(slots)} slots for doctor {doctor_id} "
            f"(clinic {clinic_id}) from {start_date} to {end_date}"
        )
        return slots

