"""
Reminder scheduling service for pre-scheduling reservation reminders.

This service turns reminder rules into ScheduledMessage rows:
- relative rules (before_hours / before_days) are evaluated when a
  reservation is created;
- fixed_time rules are evaluated by a recurring pass that matches
  reservations a set number of days ahead.

Both paths go through `schedule_for_reservation`, which is idempotent per
(rule, reservation) thanks to the ReminderSentLog unique constraint.
"""

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from core.constants import (
    TIMING_BEFORE_HOURS, TIMING_BEFORE_DAYS, TIMING_FIXED_TIME,
    MESSAGE_FORMAT_FLEX, MESSAGE_STATUS_SCHEDULED, INACTIVE_RESERVATION_STATUSES,
    RESERVATION_DISPLAY_MINUTES,
)
from core.message_template_constants import DEFAULT_REMINDER_TEMPLATE, FLEX_REMINDER_HEADER
from models import ReminderRule, ReminderSentLog, Reservation, ScheduledMessage, Patient
from services.message_template_service import MessageTemplateService
from utils.datetime_utils import jst_now, ensure_jst, format_reservation_date, format_reservation_slot
from utils.timing_utils import calculate_scheduled_time, fixed_time_target_date

logger = logging.getLogger(__name__)

RELATIVE_TIMING_TYPES = (TIMING_BEFORE_HOURS, TIMING_BEFORE_DAYS)


class ReminderSchedulingService:
    """Service for scheduling reservation reminders."""

    @staticmethod
    def compute_send_time(rule: ReminderRule, reservation: Reservation, now: datetime) -> datetime:
        """
        Send time of `rule` for `reservation`.

        Relative rules count back from the appointment start; fixed_time rules
        send at the rule's clock time on the day of `now`.
        """
        return calculate_scheduled_time(
            appointment_start=reservation.start_datetime,
            timing_type=rule.timing_type,
            timing_value=rule.timing_value,
            send_hour=rule.send_hour,
            send_minute=rule.send_minute,
            run_date=now.date(),
        )

    @staticmethod
    def build_content(rule: ReminderRule, reservation: Reservation) -> Dict[str, Any]:
        """
        Build the stored message for one reminder.

        {date} and {time} are rendered now; {name} and {patient_id} stay in
        place until the dispatcher sends the message.

        Returns:
            {"content": str, "flex_payload": Optional[dict]}
        """
        context = MessageTemplateService.build_schedule_context(reservation)

        if rule.message_format == MESSAGE_FORMAT_FLEX:
            slot_text = format_reservation_slot(reservation.reserved_time, RESERVATION_DISPLAY_MINUTES)
            payload = MessageTemplateService.build_reminder_flex(reservation.reserved_date, slot_text)
            alt_text = rule.message_template or (
                f"{FLEX_REMINDER_HEADER} {format_reservation_date(reservation.reserved_date)} {slot_text}"
            )
            return {
                "content": MessageTemplateService.render_message(alt_text, context),
                "flex_payload": payload,
            }

        template = rule.message_template or DEFAULT_REMINDER_TEMPLATE
        return {
            "content": MessageTemplateService.render_message(template, context),
            "flex_payload": None,
        }

    @staticmethod
    def schedule_for_reservation(
        db: Session,
        clinic_id: int,
        rule: ReminderRule,
        reservation: Reservation,
        now: Optional[datetime] = None
    ) -> Optional[ScheduledMessage]:
        """
        Schedule the reminder of `rule` for `reservation`, at most once.

        Skips (returns None) when the rule is disabled, the reservation is
        canceled, a reminder for this (rule, reservation) already exists, or
        the send time has already passed. Otherwise the ScheduledMessage and
        its ReminderSentLog are committed in one transaction. A concurrent
        scheduler inserting the same log first is treated as a skip.

        Args:
            db: Database session
            clinic_id: Clinic (tenant) ID
            rule: Reminder rule to apply
            reservation: Reservation to remind about
            now: Reference time (defaults to JST now)

        Returns:
            The created ScheduledMessage, or None if skipped
        """
        current = ensure_jst(now) if now else jst_now()

        if rule.clinic_id != clinic_id or reservation.clinic_id != clinic_id:
            logger.warning(
                f"Rule {rule.id} or reservation {reservation.id} does not belong to clinic {clinic_id}, skipping"
            )
            return None

        if not rule.is_enabled:
            logger.debug(f"Reminder rule {rule.id} is disabled, skipping")
            return None

        if reservation.status in INACTIVE_RESERVATION_STATUSES:
            logger.debug(f"Reservation {reservation.id} is {reservation.status}, skipping reminder")
            return None

        existing = db.query(ReminderSentLog.id).filter(
            ReminderSentLog.rule_id == rule.id,
            ReminderSentLog.reservation_id == reservation.id
        ).first()
        if existing:
            logger.debug(f"Reminder for rule {rule.id} already scheduled for reservation {reservation.id}")
            return None

        try:
            send_at = ReminderSchedulingService.compute_send_time(rule, reservation, current)
        except ValueError as e:
            logger.warning(f"Reminder rule {rule.id} has invalid timing, skipping: {e}")
            return None

        if send_at < current:
            logger.info(
                f"Skipping reminder for reservation {reservation.id} (rule {rule.id}) - "
                f"send time {send_at} is in past"
            )
            return None

        patient = db.query(Patient).filter(Patient.id == reservation.patient_id).first()
        content = ReminderSchedulingService.build_content(rule, reservation)

        scheduled = ScheduledMessage(
            clinic_id=clinic_id,
            patient_id=reservation.patient_id,
            destination_id=patient.line_user_id if patient else None,
            message_type='reminder',
            content=content["content"],
            flex_payload=content["flex_payload"],
            scheduled_at=send_at,
            status=MESSAGE_STATUS_SCHEDULED,
        )
        db.add(scheduled)
        db.flush()
        db.add(ReminderSentLog(
            clinic_id=clinic_id,
            rule_id=rule.id,
            reservation_id=reservation.id,
            scheduled_message_id=scheduled.id,
        ))

        try:
            db.commit()
        except IntegrityError:
            db.rollback()
            logger.info(
                f"Reminder for rule {rule.id} and reservation {reservation.id} "
                f"was scheduled concurrently, skipping"
            )
            return None

        logger.info(
            f"Scheduled reminder {scheduled.id} for reservation {reservation.id} "
            f"(rule {rule.id}) at {send_at}"
        )
        return scheduled

    @staticmethod
    def on_reservation_created(
        db: Session,
        clinic_id: int,
        reservation: Reservation,
        now: Optional[datetime] = None
    ) -> List[ScheduledMessage]:
        """
        Evaluate every enabled relative rule against a new reservation.

        Called by the reservation-creation path. fixed_time rules are left
        to the recurring pass.

        Returns:
            Messages that were scheduled
        """
        rules = db.query(ReminderRule).filter(
            ReminderRule.clinic_id == clinic_id,
            ReminderRule.is_enabled == True,  # noqa: E712
            ReminderRule.timing_type.in_(RELATIVE_TIMING_TYPES)
        ).order_by(ReminderRule.id).all()

        scheduled: List[ScheduledMessage] = []
        for rule in rules:
            message = ReminderSchedulingService.schedule_for_reservation(db, clinic_id, rule, reservation, now)
            if message is not None:
                scheduled.append(message)
        return scheduled

    @staticmethod
    def evaluate_fixed_time_rules(
        db: Session,
        now: Optional[datetime] = None,
        clinic_id: Optional[int] = None
    ) -> Dict[str, int]:
        """
        Recurring pass for fixed_time rules.

        For each enabled fixed_time rule, reservations dated
        today + target_day_offset get a reminder at today's send time. Runs
        are idempotent, so the pass can run as often as needed; once the send
        time has passed the rule no longer schedules anything for that day.

        Args:
            db: Database session
            now: Reference time (defaults to JST now)
            clinic_id: Restrict the pass to one clinic (all clinics when None)

        Returns:
            {"rules": rules evaluated, "scheduled": messages created}
        """
        current = ensure_jst(now) if now else jst_now()

        query = db.query(ReminderRule).filter(
            ReminderRule.is_enabled == True,  # noqa: E712
            ReminderRule.timing_type == TIMING_FIXED_TIME
        )
        if clinic_id is not None:
            query = query.filter(ReminderRule.clinic_id == clinic_id)
        rules = query.order_by(ReminderRule.id).all()

        created = 0
        for rule in rules:
            try:
                target_date = fixed_time_target_date(current.date(), rule.target_day_offset)
            except ValueError as e:
                logger.warning(f"Reminder rule {rule.id} has invalid target_day_offset, skipping: {e}")
                continue

            reservations = db.query(Reservation).filter(
                Reservation.clinic_id == rule.clinic_id,
                Reservation.reserved_date == target_date,
                Reservation.status.notin_(INACTIVE_RESERVATION_STATUSES)
            ).order_by(Reservation.reserved_time, Reservation.id).all()

            for reservation in reservations:
                message = ReminderSchedulingService.schedule_for_reservation(
                    db, rule.clinic_id, rule, reservation, current
                )
                if message is not None:
                    created += 1

        if created:
            logger.info(f"Fixed-time pass scheduled {created} reminder(s) from {len(rules)} rule(s)")
        return {"rules": len(rules), "scheduled": created}
