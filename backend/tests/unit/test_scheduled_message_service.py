"""
Unit tests for the scheduled message dispatcher.
"""

import pytest
from datetime import datetime
from unittest.mock import patch

from sqlalchemy.exc import OperationalError

from core.exceptions import DispatchError
from models import ScheduledMessage
from services.scheduled_message_service import ScheduledMessageService, default_notifier_factory
from utils.datetime_utils import JST_TZ
from tests.conftest import FakeNotifier, create_clinic, create_patient, create_scheduled_message

NOW = datetime(2026, 2, 17, 13, 0, tzinfo=JST_TZ)


def dispatch(db_session, notifier, **kwargs):
    return ScheduledMessageService.dispatch_due_messages(
        db_session, now=kwargs.pop("now", NOW), notifier_factory=lambda clinic: notifier, **kwargs
    )


@pytest.fixture
def clinic_and_patient(db_session):
    clinic = create_clinic(db_session)
    patient = create_patient(db_session, clinic)
    return clinic, patient


class TestDispatchDueMessages:
    """Test cases for dispatcher runs."""

    def test_due_message_sent_with_current_name(self, db_session, clinic_and_patient, fake_notifier):
        """{name} is resolved from the patient record at send time."""
        clinic, patient = clinic_and_patient
        message = create_scheduled_message(
            db_session, clinic, datetime(2026, 2, 17, 12, 0, tzinfo=JST_TZ), patient=patient,
            content="{name}様 ({patient_id}) 明日 2026/2/18 13:00-13:15"
        )
        patient.full_name = "佐藤花子（改姓）"
        db_session.commit()

        summary = dispatch(db_session, fake_notifier)

        assert summary == {"processed": 1, "sent": 1, "failed": 0, "skipped": 0}
        assert fake_notifier.sent == [{
            "to": "U_patient_1",
            "text": f"佐藤花子（改姓）様 ({patient.id}) 明日 2026/2/18 13:00-13:15",
        }]
        db_session.refresh(message)
        assert message.status == "sent"
        assert message.sent_at is not None

    def test_future_message_not_selected(self, db_session, clinic_and_patient, fake_notifier):
        clinic, patient = clinic_and_patient
        message = create_scheduled_message(
            db_session, clinic, datetime(2026, 2, 17, 13, 1, tzinfo=JST_TZ), patient=patient
        )

        summary = dispatch(db_session, fake_notifier)

        assert summary["processed"] == 0
        assert fake_notifier.sent == []
        db_session.refresh(message)
        assert message.status == "scheduled"

    def test_message_sent_exactly_once_across_runs(self, db_session, clinic_and_patient, fake_notifier):
        clinic, patient = clinic_and_patient
        create_scheduled_message(db_session, clinic, datetime(2026, 2, 17, 12, 0, tzinfo=JST_TZ), patient=patient)

        first = dispatch(db_session, fake_notifier)
        second = dispatch(db_session, fake_notifier, now=datetime(2026, 2, 17, 13, 5, tzinfo=JST_TZ))

        assert first["sent"] == 1
        assert second["processed"] == 0
        assert len(fake_notifier.sent) == 1

    def test_message_claimed_by_concurrent_run_is_skipped(self, db_session, clinic_and_patient, fake_notifier):
        """A message another run claims between selection and claim is not sent."""
        clinic, patient = clinic_and_patient
        message = create_scheduled_message(
            db_session, clinic, datetime(2026, 2, 17, 12, 0, tzinfo=JST_TZ), patient=patient
        )
        original_claim = ScheduledMessageService.claim

        def claim_after_other_run(db, message_id):
            assert original_claim(db, message_id) is True  # the other run wins
            return original_claim(db, message_id)

        with patch.object(ScheduledMessageService, "claim", side_effect=claim_after_other_run):
            summary = dispatch(db_session, fake_notifier)

        assert summary == {"processed": 1, "sent": 0, "failed": 0, "skipped": 1}
        assert fake_notifier.sent == []
        db_session.refresh(message)
        assert message.status == "sending"

    def test_claim_single_winner(self, db_session, clinic_and_patient):
        clinic, patient = clinic_and_patient
        message = create_scheduled_message(db_session, clinic, NOW, patient=patient)

        assert ScheduledMessageService.claim(db_session, message.id) is True
        assert ScheduledMessageService.claim(db_session, message.id) is False

    def test_failure_does_not_abort_batch(self, db_session, clinic_and_patient):
        clinic, patient = clinic_and_patient
        other = create_patient(db_session, clinic, full_name="鈴木一郎", line_user_id="U_broken")
        failing = create_scheduled_message(
            db_session, clinic, datetime(2026, 2, 17, 11, 0, tzinfo=JST_TZ), patient=other,
            destination_id="U_broken"
        )
        ok = create_scheduled_message(
            db_session, clinic, datetime(2026, 2, 17, 12, 0, tzinfo=JST_TZ), patient=patient
        )
        notifier = FakeNotifier(fail_for=["U_broken"])

        summary = dispatch(db_session, notifier)

        assert summary == {"processed": 2, "sent": 1, "failed": 1, "skipped": 0}
        db_session.refresh(failing)
        db_session.refresh(ok)
        assert failing.status == "failed"
        assert "U_broken" in failing.error_message
        assert ok.status == "sent"

    def test_unexpected_error_marks_failed(self, db_session, clinic_and_patient):
        clinic, patient = clinic_and_patient
        message = create_scheduled_message(db_session, clinic, NOW, patient=patient)
        notifier = FakeNotifier(fail_for=["U_patient_1"], error=RuntimeError("connection reset"))

        summary = dispatch(db_session, notifier)

        assert summary["failed"] == 1
        db_session.refresh(message)
        assert message.status == "failed"
        assert message.error_message == "connection reset"

    def test_database_error_on_claim_does_not_abort_batch(self, db_session, clinic_and_patient, fake_notifier):
        clinic, patient = clinic_and_patient
        broken = create_scheduled_message(
            db_session, clinic, datetime(2026, 2, 17, 11, 0, tzinfo=JST_TZ), patient=patient
        )
        ok = create_scheduled_message(
            db_session, clinic, datetime(2026, 2, 17, 12, 0, tzinfo=JST_TZ), patient=patient
        )
        original_claim = ScheduledMessageService.claim

        def claim_with_dropped_connection(db, message_id):
            if message_id == broken.id:
                raise OperationalError("UPDATE scheduled_messages", {}, Exception("connection reset"))
            return original_claim(db, message_id)

        with patch.object(ScheduledMessageService, "claim", side_effect=claim_with_dropped_connection):
            summary = dispatch(db_session, fake_notifier)

        assert summary == {"processed": 2, "sent": 1, "failed": 1, "skipped": 0}
        assert len(fake_notifier.sent) == 1
        db_session.refresh(broken)
        db_session.refresh(ok)
        assert broken.status == "failed"
        assert "connection reset" in broken.error_message
        assert ok.status == "sent"

    def test_status_commit_failure_after_push_records_sent(self, db_session, clinic_and_patient, fake_notifier):
        """A delivered message is never left in 'sending' or reported as failed."""
        clinic, patient = clinic_and_patient
        first = create_scheduled_message(
            db_session, clinic, datetime(2026, 2, 17, 11, 0, tzinfo=JST_TZ), patient=patient
        )
        second = create_scheduled_message(
            db_session, clinic, datetime(2026, 2, 17, 12, 0, tzinfo=JST_TZ), patient=patient
        )
        original_mark = ScheduledMessageService._mark

        def mark_with_dropped_connection(db, message, status, error=None):
            if message.id == first.id and status == "sent":
                raise OperationalError("UPDATE scheduled_messages", {}, Exception("connection reset"))
            return original_mark(db, message, status, error)

        with patch.object(ScheduledMessageService, "_mark", side_effect=mark_with_dropped_connection):
            summary = dispatch(db_session, fake_notifier)

        assert summary == {"processed": 2, "sent": 2, "failed": 0, "skipped": 0}
        assert len(fake_notifier.sent) == 2
        db_session.refresh(first)
        db_session.refresh(second)
        assert first.status == "sent"
        assert first.sent_at is not None
        assert second.status == "sent"

    def test_no_destination_fails_without_push(self, db_session, clinic_and_patient, fake_notifier):
        clinic, patient = clinic_and_patient
        message = create_scheduled_message(db_session, clinic, NOW, patient=patient, destination_id=None)

        summary = dispatch(db_session, fake_notifier)

        assert summary["failed"] == 1
        assert fake_notifier.sent == []
        db_session.refresh(message)
        assert message.status == "failed"
        assert message.error_message == "No destination"

    def test_batch_size_oldest_first(self, db_session, clinic_and_patient, fake_notifier):
        clinic, patient = clinic_and_patient
        for hour in (12, 10, 11):
            create_scheduled_message(
                db_session, clinic, datetime(2026, 2, 17, hour, 0, tzinfo=JST_TZ), patient=patient,
                content=f"{hour}時"
            )

        summary = dispatch(db_session, fake_notifier, batch_size=2)

        assert summary["sent"] == 2
        assert [item["text"] for item in fake_notifier.sent] == ["10時", "11時"]
        assert db_session.query(ScheduledMessage).filter(ScheduledMessage.status == "scheduled").count() == 1

    def test_flex_message_rendered_at_send_time(self, db_session, clinic_and_patient, fake_notifier):
        clinic, patient = clinic_and_patient
        payload = {
            "type": "bubble",
            "body": {"type": "box", "layout": "vertical", "contents": [{"type": "text", "text": "{name}様"}]},
        }
        create_scheduled_message(
            db_session, clinic, NOW, patient=patient, content="明日のご予約", flex_payload=payload
        )

        dispatch(db_session, fake_notifier)

        sent = fake_notifier.sent[0]
        assert sent["text"] == "明日のご予約"
        assert sent["contents"]["body"]["contents"][0]["text"] == "佐藤花子様"

    def test_missing_patient_renders_empty_name(self, db_session, clinic_and_patient, fake_notifier):
        clinic, _ = clinic_and_patient
        create_scheduled_message(db_session, clinic, NOW, patient=None, content="{name}様 こんにちは")

        dispatch(db_session, fake_notifier)

        assert fake_notifier.sent[0]["text"] == "様 こんにちは"


class TestDefaultNotifierFactory:
    """Test cases for building the clinic's LINE notifier."""

    def test_missing_credentials(self, db_session):
        clinic = create_clinic(db_session, with_line=False)

        with pytest.raises(DispatchError):
            default_notifier_factory(clinic)

    def test_clinic_without_credentials_fails_message(self, db_session):
        clinic = create_clinic(db_session, with_line=False)
        message = create_scheduled_message(db_session, clinic, NOW)

        summary = ScheduledMessageService.dispatch_due_messages(db_session, now=NOW)

        assert summary["failed"] == 1
        db_session.refresh(message)
        assert message.status == "failed"
        assert "missing LINE credentials" in message.error_message
