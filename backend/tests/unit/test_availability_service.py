"""
Unit tests for slot calculation.

Covers the pure calculator (`compute_slots`) and the database-backed
listing in AvailabilityService.
"""

import pytest
from datetime import date, time, timedelta

from fastapi import HTTPException

from services.availability_service import AvailabilityService, compute_slots
from shared_types.availability import WeeklyRuleData, DateOverrideData
from tests.conftest import (
    create_clinic, create_doctor, create_patient, create_weekly_rule,
    create_override, create_reservation,
)

MONDAY = date(2026, 2, 16)
TUESDAY = date(2026, 2, 17)
DOCTOR_ID = 1


def monday_rule(**kwargs) -> WeeklyRuleData:
    values = dict(
        doctor_id=DOCTOR_ID, weekday=1, enabled=True,
        start_time=time(10, 0), end_time=time(12, 0), slot_minutes=30, capacity=2,
    )
    values.update(kwargs)
    return WeeklyRuleData(**values)


def slot_tuples(slots):
    return [(s.date, s.time, s.remaining) for s in slots]


class TestComputeSlots:
    """Test cases for the pure slot calculator."""

    def test_weekly_rule_yields_slots(self):
        """A Monday under the 10:00-12:00/30min/cap 2 rule yields four full slots."""
        slots = compute_slots(DOCTOR_ID, MONDAY, MONDAY, [monday_rule()], [], {})

        assert slot_tuples(slots) == [
            (MONDAY, time(10, 0), 2),
            (MONDAY, time(10, 30), 2),
            (MONDAY, time(11, 0), 2),
            (MONDAY, time(11, 30), 2),
        ]

    def test_booking_reduces_remaining(self):
        """One booking at 10:00 leaves 1 there and 2 elsewhere."""
        slots = compute_slots(DOCTOR_ID, MONDAY, MONDAY, [monday_rule()], [], {(MONDAY, time(10, 0)): 1})

        remaining = {s.time: s.remaining for s in slots}
        assert remaining[time(10, 0)] == 1
        assert remaining[time(10, 30)] == 2
        assert remaining[time(11, 30)] == 2

    def test_overbooked_slot_never_negative(self):
        slots = compute_slots(DOCTOR_ID, MONDAY, MONDAY, [monday_rule()], [], {(MONDAY, time(11, 0)): 5})

        assert {s.time: s.remaining for s in slots}[time(11, 0)] == 0

    def test_disabled_rule_yields_no_slots(self):
        slots = compute_slots(DOCTOR_ID, MONDAY, MONDAY, [monday_rule(enabled=False)], [], {})
        assert slots == []

    def test_weekday_without_rule_yields_no_slots(self):
        slots = compute_slots(DOCTOR_ID, TUESDAY, TUESDAY, [monday_rule()], [], {})
        assert slots == []

    @pytest.mark.parametrize("rule_enabled", [True, False])
    def test_closed_override_yields_no_slots(self, rule_enabled):
        """A closed override closes the date regardless of the weekly rule."""
        closed = DateOverrideData(doctor_id=DOCTOR_ID, date=MONDAY, type="closed")
        slots = compute_slots(DOCTOR_ID, MONDAY, MONDAY, [monday_rule(enabled=rule_enabled)], [closed], {})
        assert slots == []

    def test_modify_capacity_only(self):
        """A modify override setting only capacity keeps the rule's times."""
        modify = DateOverrideData(doctor_id=DOCTOR_ID, date=MONDAY, type="modify", capacity=1)
        slots = compute_slots(DOCTOR_ID, MONDAY, MONDAY, [monday_rule()], [modify], {})

        assert [s.time for s in slots] == [time(10, 0), time(10, 30), time(11, 0), time(11, 30)]
        assert all(s.remaining == 1 for s in slots)

    def test_modify_hours_inherit_slot_length_and_capacity(self):
        modify = DateOverrideData(
            doctor_id=DOCTOR_ID, date=MONDAY, type="modify",
            start_time=time(14, 0), end_time=time(15, 0),
        )
        slots = compute_slots(DOCTOR_ID, MONDAY, MONDAY, [monday_rule()], [modify], {})

        assert slot_tuples(slots) == [(MONDAY, time(14, 0), 2), (MONDAY, time(14, 30), 2)]

    def test_open_override_on_closed_weekday(self):
        """An open override opens a weekday that has no enabled rule."""
        opened = DateOverrideData(
            doctor_id=DOCTOR_ID, date=TUESDAY, type="open",
            start_time=time(9, 0), end_time=time(10, 0), slot_minutes=20, capacity=3,
        )
        slots = compute_slots(DOCTOR_ID, TUESDAY, TUESDAY, [monday_rule()], [opened], {})

        assert slot_tuples(slots) == [
            (TUESDAY, time(9, 0), 3),
            (TUESDAY, time(9, 20), 3),
            (TUESDAY, time(9, 40), 3),
        ]

    def test_open_override_without_hours_and_no_rule_yields_nothing(self):
        opened = DateOverrideData(doctor_id=DOCTOR_ID, date=TUESDAY, type="open")
        assert compute_slots(DOCTOR_ID, TUESDAY, TUESDAY, [], [opened], {}) == []

    def test_slots_must_fit_before_end(self):
        """A trailing remainder shorter than one slot is not offered."""
        rule = monday_rule(start_time=time(10, 0), end_time=time(11, 10), slot_minutes=30)
        slots = compute_slots(DOCTOR_ID, MONDAY, MONDAY, [rule], [], {})
        assert [s.time for s in slots] == [time(10, 0), time(10, 30)]

    def test_default_slot_length_and_capacity(self):
        """Unset slot length and capacity fall back to 15 minutes and 2."""
        rule = monday_rule(start_time=time(9, 0), end_time=time(9, 30), slot_minutes=None, capacity=None)
        slots = compute_slots(DOCTOR_ID, MONDAY, MONDAY, [rule], [], {})
        assert slot_tuples(slots) == [(MONDAY, time(9, 0), 2), (MONDAY, time(9, 15), 2)]

    @pytest.mark.parametrize("rule_kwargs", [
        {"start_time": None},
        {"end_time": None},
        {"start_time": time(12, 0), "end_time": time(10, 0)},
        {"start_time": time(10, 0), "end_time": time(10, 0)},
        {"slot_minutes": 0},
    ])
    def test_malformed_rule_yields_no_slots(self, rule_kwargs):
        slots = compute_slots(DOCTOR_ID, MONDAY, MONDAY, [monday_rule(**rule_kwargs)], [], {})
        assert slots == []

    def test_other_doctors_ignored(self):
        other_rule = monday_rule(doctor_id=2)
        other_closed = DateOverrideData(doctor_id=2, date=MONDAY, type="closed")
        slots = compute_slots(DOCTOR_ID, MONDAY, MONDAY, [monday_rule(), other_rule], [other_closed], {})
        assert len(slots) == 4

    def test_named_bands_replace_weekly_hours(self):
        """Named bands each yield slots; the weekly hours are not added on top."""
        morning = DateOverrideData(
            doctor_id=DOCTOR_ID, date=MONDAY, type="open", slot_name="morning",
            start_time=time(9, 0), end_time=time(10, 0),
        )
        afternoon = DateOverrideData(
            doctor_id=DOCTOR_ID, date=MONDAY, type="open", slot_name="afternoon",
            start_time=time(15, 0), end_time=time(16, 0), capacity=1,
        )
        slots = compute_slots(DOCTOR_ID, MONDAY, MONDAY, [monday_rule()], [morning, afternoon], {})

        assert slot_tuples(slots) == [
            (MONDAY, time(9, 0), 2),
            (MONDAY, time(9, 30), 2),
            (MONDAY, time(15, 0), 1),
            (MONDAY, time(15, 30), 1),
        ]

    def test_closed_named_band_only_drops_that_band(self):
        morning = DateOverrideData(
            doctor_id=DOCTOR_ID, date=MONDAY, type="open", slot_name="morning",
            start_time=time(9, 0), end_time=time(10, 0),
        )
        afternoon = DateOverrideData(doctor_id=DOCTOR_ID, date=MONDAY, type="closed", slot_name="afternoon")
        slots = compute_slots(DOCTOR_ID, MONDAY, MONDAY, [monday_rule()], [morning, afternoon], {})

        assert [s.time for s in slots] == [time(9, 0), time(9, 30)]

    @pytest.mark.parametrize("rule_enabled,expected_count", [(True, 4), (False, 0)])
    def test_lone_closed_named_band_keeps_weekly_hours(self, rule_enabled, expected_count):
        afternoon = DateOverrideData(doctor_id=DOCTOR_ID, date=MONDAY, type="closed", slot_name="afternoon")
        slots = compute_slots(
            DOCTOR_ID, MONDAY, MONDAY, [monday_rule(enabled=rule_enabled)], [afternoon], {}
        )

        assert len(slots) == expected_count

    def test_overlapping_bands_keep_one_slot_per_time(self):
        base = DateOverrideData(doctor_id=DOCTOR_ID, date=MONDAY, type="modify", capacity=1)
        extra = DateOverrideData(
            doctor_id=DOCTOR_ID, date=MONDAY, type="open", slot_name="extra",
            start_time=time(11, 0), end_time=time(13, 0), capacity=5,
        )
        slots = compute_slots(DOCTOR_ID, MONDAY, MONDAY, [monday_rule()], [base, extra], {})

        remaining = {s.time: s.remaining for s in slots}
        assert remaining[time(11, 0)] == 1  # base band wins
        assert remaining[time(12, 30)] == 5
        assert len(slots) == len(remaining)

    def test_range_is_ordered_by_date_then_time(self):
        next_monday = MONDAY + timedelta(days=7)
        slots = compute_slots(DOCTOR_ID, MONDAY, next_monday, [monday_rule()], [], {})

        assert len(slots) == 8
        keys = [(s.date, s.time) for s in slots]
        assert keys == sorted(keys)


class TestAvailabilityService:
    """Test cases for the database-backed slot listing."""

    def test_validate_date_range(self):
        assert AvailabilityService.validate_date_range("2026-02-16", "2026-02-20") == (
            date(2026, 2, 16), date(2026, 2, 20)
        )

    @pytest.mark.parametrize("start,end", [
        ("2026/02/16", "2026-02-20"),
        ("2026-02-20", "2026-02-16"),
        ("2026-01-01", "2026-06-30"),
    ])
    def test_validate_date_range_rejects(self, start, end):
        with pytest.raises(HTTPException) as exc_info:
            AvailabilityService.validate_date_range(start, end)
        assert exc_info.value.status_code == 400

    def test_list_slots_counts_active_reservations(self, db_session):
        clinic = create_clinic(db_session)
        doctor = create_doctor(db_session, clinic)
        patient = create_patient(db_session, clinic)
        create_weekly_rule(db_session, doctor, weekday=1)
        create_reservation(db_session, patient, doctor, MONDAY, time(10, 0))
        create_reservation(db_session, patient, doctor, MONDAY, time(10, 30), status="canceled")

        slots = AvailabilityService.list_slots(db_session, clinic.id, doctor.id, MONDAY, MONDAY)

        remaining = {s.time: s.remaining for s in slots}
        assert remaining == {time(10, 0): 1, time(10, 30): 2, time(11, 0): 2, time(11, 30): 2}

    def test_list_slots_applies_overrides(self, db_session):
        clinic = create_clinic(db_session)
        doctor = create_doctor(db_session, clinic)
        create_weekly_rule(db_session, doctor, weekday=1)
        create_override(db_session, doctor, MONDAY, "modify", capacity=1)
        create_override(db_session, doctor, MONDAY + timedelta(days=7), "closed")

        slots = AvailabilityService.list_slots(
            db_session, clinic.id, doctor.id, MONDAY, MONDAY + timedelta(days=7)
        )

        assert {s.date for s in slots} == {MONDAY}
        assert all(s.remaining == 1 for s in slots)

    def test_list_slots_is_scoped_to_clinic(self, db_session):
        clinic = create_clinic(db_session)
        other_clinic = create_clinic(db_session, name="別クリニック")
        doctor = create_doctor(db_session, clinic)

        with pytest.raises(HTTPException) as exc_info:
            AvailabilityService.list_slots(db_session, other_clinic.id, doctor.id, MONDAY, MONDAY)
        assert exc_info.value.status_code == 404

    def test_list_slots_with_booking_window(self, db_session):
        """Past dates and dates beyond the window are dropped."""
        clinic = create_clinic(db_session)
        doctor = create_doctor(db_session, clinic)
        create_weekly_rule(db_session, doctor, weekday=1)

        today = MONDAY + timedelta(days=1)
        slots = AvailabilityService.list_slots(
            db_session, clinic.id, doctor.id, MONDAY, MONDAY + timedelta(days=56),
            apply_booking_window=True, today=today
        )

        dates = sorted({s.date for s in slots})
        assert dates == [MONDAY + timedelta(days=7 * n) for n in (1, 2, 3, 4)]
