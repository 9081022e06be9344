"""
Scheduled message service for sending due reminders.

The dispatcher is driven by the in-process scheduler or the cron endpoint.
Each due message is claimed with a conditional update before sending, so
overlapping runs never deliver the same message twice.
"""

import logging
from datetime import datetime
from typing import Callable, Dict, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from core.config import DISPATCH_BATCH_SIZE
from core.constants import (
    MESSAGE_STATUS_SCHEDULED, MESSAGE_STATUS_SENDING, MESSAGE_STATUS_SENT, MESSAGE_STATUS_FAILED
)
from core.exceptions import DispatchError
from models import Clinic, Patient, ScheduledMessage
from services.line_service import LINEService
from services.message_template_service import MessageTemplateService
from utils.datetime_utils import jst_now, ensure_jst

logger = logging.getLogger(__name__)

NotifierFactory = Callable[[Clinic], LINEService]


def default_notifier_factory(clinic: Clinic) -> LINEService:
    """
    Build the LINE notifier of a clinic.

    Raises:
        DispatchError: If the clinic has no LINE credentials configured
    """
    if not clinic.line_channel_secret or not clinic.line_channel_access_token:
        raise DispatchError(f"Clinic {clinic.id} missing LINE credentials")
    return LINEService(
        channel_secret=clinic.line_channel_secret,
        channel_access_token=clinic.line_channel_access_token
    )


class ScheduledMessageService:
    """Service for sending scheduled LINE messages."""

    @staticmethod
    def claim(db: Session, message_id: int) -> bool:
        """
        Move a message from 'scheduled' to 'sending'.

        Returns:
            True if this caller won the claim, False if another run already did
        """
        updated = db.query(ScheduledMessage).filter(
            ScheduledMessage.id == message_id,
            ScheduledMessage.status == MESSAGE_STATUS_SCHEDULED
        ).update(
            {ScheduledMessage.status: MESSAGE_STATUS_SENDING},
            synchronize_session=False
        )
        db.commit()
        return updated == 1

    @staticmethod
    def _mark(db: Session, message: ScheduledMessage, status: str, error: Optional[str] = None) -> None:
        message.status = status
        message.error_message = error
        if status == MESSAGE_STATUS_SENT:
            message.sent_at = jst_now()
        db.commit()

    @staticmethod
    def _record_outcome(db: Session, message_id: int, status: str, error: Optional[str] = None) -> None:
        """
        Best-effort final status after the message could not be finished normally.

        Only rows still 'scheduled' or 'sending' are touched. A database that
        stays unavailable leaves the row as it is; the error is logged.
        """
        values = {ScheduledMessage.status: status, ScheduledMessage.error_message: error}
        if status == MESSAGE_STATUS_SENT:
            values[ScheduledMessage.sent_at] = jst_now()
        try:
            db.query(ScheduledMessage).filter(
                ScheduledMessage.id == message_id,
                ScheduledMessage.status.in_([MESSAGE_STATUS_SCHEDULED, MESSAGE_STATUS_SENDING])
            ).update(values, synchronize_session="fetch")
            db.commit()
        except SQLAlchemyError as e:
            db.rollback()
            logger.exception(f"Could not record status {status} for scheduled message {message_id}: {e}")

    @staticmethod
    def send_one(db: Session, message: ScheduledMessage, notifier_factory: NotifierFactory) -> None:
        """
        Render and push one claimed message.

        {name} and {patient_id} are resolved against the patient record as it
        is now, not as it was when the reminder was scheduled.

        Raises:
            DispatchError: If the clinic has no notifier or the push fails
        """
        clinic = db.query(Clinic).filter(Clinic.id == message.clinic_id).first()
        if clinic is None:
            raise DispatchError(f"Clinic {message.clinic_id} not found")
        notifier = notifier_factory(clinic)

        patient = None
        if message.patient_id is not None:
            patient = db.query(Patient).filter(
                Patient.id == message.patient_id,
                Patient.clinic_id == message.clinic_id
            ).first()
        context = MessageTemplateService.build_send_context(patient)
        text = MessageTemplateService.render_message(message.content, context)

        if message.flex_payload:
            contents = MessageTemplateService.render_flex_payload(message.flex_payload, context)
            notifier.send_flex_message(message.destination_id, text, contents)
        else:
            notifier.send_text_message(message.destination_id, text)

    @staticmethod
    def dispatch_due_messages(
        db: Session,
        now: Optional[datetime] = None,
        batch_size: int = DISPATCH_BATCH_SIZE,
        notifier_factory: NotifierFactory = default_notifier_factory
    ) -> Dict[str, int]:
        """
        Send every due message of one batch.

        Selects up to `batch_size` 'scheduled' messages whose time has come,
        oldest first. Each one is claimed, sent and committed on its own: a
        failure marks that message 'failed' and the batch continues. Failed
        messages are not retried.

        Args:
            db: Database session
            now: Reference time (defaults to JST now)
            batch_size: Maximum number of messages to select
            notifier_factory: Builds the notifier of a clinic

        Returns:
            {"processed", "sent", "failed", "skipped"}; skipped counts messages
            another run claimed first
        """
        current = ensure_jst(now) if now else jst_now()
        summary = {"processed": 0, "sent": 0, "failed": 0, "skipped": 0}

        due_ids = [
            row[0] for row in db.query(ScheduledMessage.id).filter(
                ScheduledMessage.status == MESSAGE_STATUS_SCHEDULED,
                ScheduledMessage.scheduled_at <= current
            ).order_by(
                ScheduledMessage.scheduled_at,
                ScheduledMessage.id
            ).limit(batch_size).all()
        ]

        if due_ids:
            logger.info(f"Processing {len(due_ids)} due scheduled messages")

        for message_id in due_ids:
            summary["processed"] += 1
            delivered = False
            try:
                if not ScheduledMessageService.claim(db, message_id):
                    logger.debug(f"Scheduled message {message_id} was claimed by another run")
                    summary["skipped"] += 1
                    continue

                message = db.query(ScheduledMessage).filter(ScheduledMessage.id == message_id).one()

                if not message.destination_id:
                    logger.warning(f"Scheduled message {message_id} has no destination")
                    ScheduledMessageService._mark(db, message, MESSAGE_STATUS_FAILED, "No destination")
                    summary["failed"] += 1
                    continue

                try:
                    ScheduledMessageService.send_one(db, message, notifier_factory)
                except DispatchError as e:
                    logger.warning(f"Failed to send scheduled message {message_id}: {e}")
                    db.rollback()
                    ScheduledMessageService._mark(db, message, MESSAGE_STATUS_FAILED, str(e))
                    summary["failed"] += 1
                    continue
                delivered = True

                ScheduledMessageService._mark(db, message, MESSAGE_STATUS_SENT)
                summary["sent"] += 1
                logger.info(f"Successfully sent scheduled message {message_id}")
            except Exception as e:
                logger.exception(f"Unexpected error dispatching scheduled message {message_id}: {e}")
                db.rollback()
                if delivered:
                    ScheduledMessageService._record_outcome(db, message_id, MESSAGE_STATUS_SENT)
                    summary["sent"] += 1
                else:
                    ScheduledMessageService._record_outcome(db, message_id, MESSAGE_STATUS_FAILED, str(e))
                    summary["failed"] += 1

        return summary
