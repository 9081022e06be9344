"""
Unit tests for the schedule service (doctors, weekly rules, date overrides).
"""

import pytest
from datetime import date, time

from fastapi import HTTPException

from models import DateOverride, WeeklyRule
from services.schedule_service import ScheduleService, WeeklyRuleInput, OverrideFields
from tests.conftest import create_clinic, create_doctor, create_weekly_rule, create_override

TARGET_DATE = date(2026, 2, 16)


@pytest.fixture
def clinic_and_doctor(db_session):
    clinic = create_clinic(db_session)
    doctor = create_doctor(db_session, clinic)
    return clinic, doctor


def count_overrides(db_session, doctor_id: int, target_date: date) -> int:
    return db_session.query(DateOverride).filter(
        DateOverride.doctor_id == doctor_id,
        DateOverride.date == target_date
    ).count()


class TestPutOverride:
    """Test cases for writing date overrides."""

    def test_second_write_replaces_first(self, db_session, clinic_and_doctor):
        """Writing the same (doctor, date, no slot name) twice leaves one row."""
        clinic, doctor = clinic_and_doctor

        ScheduleService.put_override(
            db_session, clinic.id, doctor.id, TARGET_DATE, None,
            OverrideFields(type="modify", capacity=1)
        )
        ScheduleService.put_override(
            db_session, clinic.id, doctor.id, TARGET_DATE, None,
            OverrideFields(type="closed", memo="休診")
        )

        rows = db_session.query(DateOverride).filter(DateOverride.doctor_id == doctor.id).all()
        assert len(rows) == 1
        assert rows[0].type == "closed"
        assert rows[0].memo == "休診"

    def test_replace_does_not_merge_fields(self, db_session, clinic_and_doctor):
        """Fields omitted on the second write are stored as unset."""
        clinic, doctor = clinic_and_doctor

        ScheduleService.put_override(
            db_session, clinic.id, doctor.id, TARGET_DATE, None,
            OverrideFields(type="modify", start_time=time(9, 0), end_time=time(11, 0), capacity=1)
        )
        override = ScheduleService.put_override(
            db_session, clinic.id, doctor.id, TARGET_DATE, None,
            OverrideFields(type="modify", slot_minutes=20)
        )

        assert override.slot_minutes == 20
        assert override.capacity is None
        assert override.start_time is None

    def test_named_bands_are_separate_keys(self, db_session, clinic_and_doctor):
        clinic, doctor = clinic_and_doctor
        fields = OverrideFields(type="open", start_time=time(9, 0), end_time=time(12, 0))

        ScheduleService.put_override(db_session, clinic.id, doctor.id, TARGET_DATE, None, fields)
        ScheduleService.put_override(db_session, clinic.id, doctor.id, TARGET_DATE, "morning", fields)
        ScheduleService.put_override(db_session, clinic.id, doctor.id, TARGET_DATE, "morning", fields)

        assert count_overrides(db_session, doctor.id, TARGET_DATE) == 2

    def test_blank_slot_name_is_base_band(self, db_session, clinic_and_doctor):
        clinic, doctor = clinic_and_doctor

        override = ScheduleService.put_override(
            db_session, clinic.id, doctor.id, TARGET_DATE, "  ", OverrideFields(type="closed")
        )

        assert override.slot_name is None

    @pytest.mark.parametrize("fields", [
        OverrideFields(type="holiday"),
        OverrideFields(type="open", start_time=time(9, 0)),
        OverrideFields(type="modify", slot_minutes=0),
        OverrideFields(type="modify", capacity=-1),
    ])
    def test_invalid_fields_rejected(self, db_session, clinic_and_doctor, fields):
        clinic, doctor = clinic_and_doctor

        with pytest.raises(HTTPException) as exc_info:
            ScheduleService.put_override(db_session, clinic.id, doctor.id, TARGET_DATE, None, fields)

        assert exc_info.value.status_code == 400
        assert count_overrides(db_session, doctor.id, TARGET_DATE) == 0

    def test_unknown_doctor(self, db_session, clinic_and_doctor):
        clinic, _ = clinic_and_doctor

        with pytest.raises(HTTPException) as exc_info:
            ScheduleService.put_override(
                db_session, clinic.id, 9999, TARGET_DATE, None, OverrideFields(type="closed")
            )
        assert exc_info.value.status_code == 404


class TestDeleteOverride:
    """Test cases for deleting date overrides."""

    @pytest.fixture
    def three_bands(self, db_session, clinic_and_doctor):
        clinic, doctor = clinic_and_doctor
        create_override(db_session, doctor, TARGET_DATE, "closed")
        create_override(db_session, doctor, TARGET_DATE, "open", slot_name="morning",
                        start_time=time(9, 0), end_time=time(12, 0))
        create_override(db_session, doctor, TARGET_DATE, "open", slot_name="evening",
                        start_time=time(17, 0), end_time=time(19, 0))
        return clinic, doctor

    def test_delete_base_band_only(self, db_session, three_bands):
        clinic, doctor = three_bands

        deleted = ScheduleService.delete_override(db_session, clinic.id, doctor.id, TARGET_DATE)

        assert deleted == 1
        names = {o.slot_name for o in ScheduleService.get_overrides(db_session, clinic.id, doctor.id)}
        assert names == {"morning", "evening"}

    def test_delete_named_band(self, db_session, three_bands):
        clinic, doctor = three_bands

        deleted = ScheduleService.delete_override(
            db_session, clinic.id, doctor.id, TARGET_DATE, slot_name="morning"
        )

        assert deleted == 1
        assert count_overrides(db_session, doctor.id, TARGET_DATE) == 2

    def test_delete_all(self, db_session, three_bands):
        clinic, doctor = three_bands

        deleted = ScheduleService.delete_override(
            db_session, clinic.id, doctor.id, TARGET_DATE, delete_all=True
        )

        assert deleted == 3
        assert count_overrides(db_session, doctor.id, TARGET_DATE) == 0

    def test_delete_missing_is_noop(self, db_session, clinic_and_doctor):
        clinic, doctor = clinic_and_doctor
        assert ScheduleService.delete_override(db_session, clinic.id, doctor.id, TARGET_DATE) == 0

    def test_delete_unknown_doctor(self, db_session, clinic_and_doctor):
        clinic, _ = clinic_and_doctor

        with pytest.raises(HTTPException) as exc_info:
            ScheduleService.delete_override(db_session, clinic.id, 9999, TARGET_DATE)

        assert exc_info.value.status_code == 404

    def test_delete_is_scoped_to_clinic(self, db_session, three_bands):
        _, doctor = three_bands
        other_clinic = create_clinic(db_session, name="別クリニック")

        with pytest.raises(HTTPException) as exc_info:
            ScheduleService.delete_override(
                db_session, other_clinic.id, doctor.id, TARGET_DATE, delete_all=True
            )

        assert exc_info.value.status_code == 404
        assert count_overrides(db_session, doctor.id, TARGET_DATE) == 3


class TestWeeklyRules:
    """Test cases for replacing weekly templates."""

    def test_replace_weekly_rules(self, db_session, clinic_and_doctor):
        clinic, doctor = clinic_and_doctor
        create_weekly_rule(db_session, doctor, weekday=3)

        saved = ScheduleService.replace_weekly_rules(db_session, clinic.id, doctor.id, [
            WeeklyRuleInput(weekday=1, enabled=True, start_time=time(9, 0), end_time=time(12, 0)),
            WeeklyRuleInput(weekday=2, enabled=False),
        ])

        assert [(r.weekday, r.enabled) for r in saved] == [(1, True), (2, False)]
        assert saved[0].slot_minutes == 15
        assert saved[0].capacity == 2
        assert db_session.query(WeeklyRule).filter(WeeklyRule.weekday == 3).count() == 0

    @pytest.mark.parametrize("rule", [
        WeeklyRuleInput(weekday=7, enabled=False),
        WeeklyRuleInput(weekday=1, enabled=True),
        WeeklyRuleInput(weekday=1, enabled=True, start_time=time(12, 0), end_time=time(9, 0)),
        WeeklyRuleInput(weekday=1, enabled=True, start_time=time(9, 0), end_time=time(12, 0), slot_minutes=0),
    ])
    def test_invalid_rule_rejected_without_changes(self, db_session, clinic_and_doctor, rule):
        clinic, doctor = clinic_and_doctor
        create_weekly_rule(db_session, doctor, weekday=3)

        with pytest.raises(HTTPException) as exc_info:
            ScheduleService.replace_weekly_rules(db_session, clinic.id, doctor.id, [rule])

        assert exc_info.value.status_code == 400
        assert len(ScheduleService.get_weekly_rules(db_session, clinic.id, doctor.id)) == 1

    def test_duplicate_weekday_rejected(self, db_session, clinic_and_doctor):
        clinic, doctor = clinic_and_doctor

        with pytest.raises(HTTPException) as exc_info:
            ScheduleService.replace_weekly_rules(db_session, clinic.id, doctor.id, [
                WeeklyRuleInput(weekday=1, enabled=False),
                WeeklyRuleInput(weekday=1, enabled=False),
            ])
        assert exc_info.value.status_code == 400


class TestDoctorsAndSchedule:
    """Test cases for doctors and the calendar bundle."""

    def test_upsert_doctor(self, db_session):
        clinic = create_clinic(db_session)

        doctor = ScheduleService.upsert_doctor(db_session, clinic.id, name=" 田中医師 ", sort_order=2)
        updated = ScheduleService.upsert_doctor(
            db_session, clinic.id, name="田中医師", doctor_id=doctor.id, is_active=False, color="#E75A7C"
        )

        assert updated.id == doctor.id
        assert updated.name == "田中医師"
        assert updated.is_active is False
        assert updated.color == "#E75A7C"

    def test_upsert_doctor_requires_name(self, db_session):
        clinic = create_clinic(db_session)

        with pytest.raises(HTTPException) as exc_info:
            ScheduleService.upsert_doctor(db_session, clinic.id, name="  ")
        assert exc_info.value.status_code == 400

    def test_list_doctors_ordering_and_filter(self, db_session):
        clinic = create_clinic(db_session)
        second = create_doctor(db_session, clinic, name="B", sort_order=2)
        first = create_doctor(db_session, clinic, name="A", sort_order=1)
        ScheduleService.upsert_doctor(
            db_session, clinic.id, name="B", doctor_id=second.id, is_active=False, sort_order=2
        )

        assert [d.id for d in ScheduleService.list_doctors(db_session, clinic.id)] == [first.id, second.id]
        assert [d.id for d in ScheduleService.list_doctors(db_session, clinic.id, include_inactive=False)] == [first.id]

    def test_get_schedule_bundle(self, db_session, clinic_and_doctor):
        clinic, doctor = clinic_and_doctor
        create_weekly_rule(db_session, doctor, weekday=1)
        create_override(db_session, doctor, TARGET_DATE, "closed")
        create_override(db_session, doctor, date(2026, 3, 20), "closed")

        bundle = ScheduleService.get_schedule(
            db_session, clinic.id, doctor.id, date(2026, 2, 1), date(2026, 2, 28)
        )

        assert [d.id for d in bundle.doctors] == [doctor.id]
        assert len(bundle.weekly_rules) == 1
        assert [o.date for o in bundle.overrides] == [TARGET_DATE]

    def test_override_to_dict_keeps_unset_fields_null(self, db_session, clinic_and_doctor):
        _, doctor = clinic_and_doctor
        override = create_override(db_session, doctor, TARGET_DATE, "modify", capacity=1)

        data = ScheduleService.override_to_dict(override)

        assert data["date"] == "2026-02-16"
        assert data["capacity"] == 1
        assert data["start_time"] is None
        assert data["slot_minutes"] is None
