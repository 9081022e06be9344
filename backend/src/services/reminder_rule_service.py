"""
Reminder rule service for managing a clinic's reminder policies.

Handles rule CRUD with validation and the per-day delivery log shown next to
the rules in the admin UI. Scheduling itself lives in
reminder_scheduling_service.
"""

import logging
from collections import defaultdict
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from fastapi import HTTPException, status
from sqlalchemy import func
from sqlalchemy.orm import Session

from core.constants import (
    TIMING_TYPES, TIMING_FIXED_TIME, MESSAGE_FORMATS, MESSAGE_FORMAT_TEXT, MESSAGE_FORMAT_FLEX,
    DEFAULT_SEND_MINUTE, DEFAULT_TARGET_DAY_OFFSET, REMINDER_LOG_DEFAULT_DAYS,
    MESSAGE_STATUS_SENT, MESSAGE_STATUS_FAILED,
)
from core.sentinels import MISSING
from models import ReminderRule, ReminderSentLog, ScheduledMessage
from utils.datetime_utils import jst_now, ensure_jst

logger = logging.getLogger(__name__)

_RULE_FIELDS = (
    "name", "timing_type", "timing_value", "send_hour", "send_minute",
    "target_day_offset", "message_format", "message_template", "is_enabled",
)


def _bad_request(detail: str) -> HTTPException:
    return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=detail)


class ReminderRuleService:
    """Service for reminder rule CRUD and delivery logs."""

    @staticmethod
    def validate_rule(values: Dict[str, Any]) -> Dict[str, Any]:
        """
        Validate rule fields and fill defaults.

        Args:
            values: Complete field set of the rule (after merging an update)

        Returns:
            Normalized values: send_minute defaults to 0, target_day_offset to 1

        Raises:
            HTTPException: 400 with a user-facing message on the first invalid field
        """
        normalized = dict(values)

        name = (normalized.get("name") or "").strip()
        if not name:
            raise _bad_request("ルール名を入力してください")
        normalized["name"] = name

        timing_type = normalized.get("timing_type")
        if timing_type not in TIMING_TYPES:
            raise _bad_request(f"無効なタイミング種別です: {timing_type}")

        message_format = normalized.get("message_format") or MESSAGE_FORMAT_TEXT
        if message_format not in MESSAGE_FORMATS:
            raise _bad_request(f"無効なメッセージ形式です: {message_format}")
        normalized["message_format"] = message_format

        template = normalized.get("message_template")
        if message_format != MESSAGE_FORMAT_FLEX and not (template and template.strip()):
            raise _bad_request("メッセージ本文を入力してください")

        if normalized.get("send_minute") is None:
            normalized["send_minute"] = DEFAULT_SEND_MINUTE
        if normalized.get("target_day_offset") is None:
            normalized["target_day_offset"] = DEFAULT_TARGET_DAY_OFFSET

        if not 0 <= normalized["send_minute"] <= 59:
            raise _bad_request("送信分は0〜59で指定してください")
        if normalized["target_day_offset"] < 0:
            raise _bad_request("対象日は0以上で指定してください")

        if timing_type == TIMING_FIXED_TIME:
            send_hour = normalized.get("send_hour")
            if send_hour is None or not 0 <= send_hour <= 23:
                raise _bad_request("送信時刻（時）は0〜23で指定してください")
        else:
            timing_value = normalized.get("timing_value")
            if timing_value is None or timing_value <= 0:
                raise _bad_request("送信タイミングは1以上で指定してください")

        if normalized.get("is_enabled") is None:
            normalized["is_enabled"] = True

        return normalized

    @staticmethod
    def get_rule(db: Session, clinic_id: int, rule_id: int) -> ReminderRule:
        """
        Get a rule of the clinic.

        Raises:
            HTTPException: 404 if the rule does not exist in this clinic
        """
        rule = db.query(ReminderRule).filter(
            ReminderRule.id == rule_id,
            ReminderRule.clinic_id == clinic_id
        ).first()
        if not rule:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="リマインドルールが見つかりません"
            )
        return rule

    @staticmethod
    def list_rules(db: Session, clinic_id: int) -> List[Dict[str, Any]]:
        """
        List the clinic's rules with how many reminders each has delivered.

        Returns:
            [{"rule": ReminderRule, "sent_count": int}] ordered by creation
        """
        rules = db.query(ReminderRule).filter(
            ReminderRule.clinic_id == clinic_id
        ).order_by(ReminderRule.id).all()

        counts = dict(
            db.query(ReminderSentLog.rule_id, func.count(ReminderSentLog.id)).join(
                ScheduledMessage, ScheduledMessage.id == ReminderSentLog.scheduled_message_id
            ).filter(
                ReminderSentLog.clinic_id == clinic_id,
                ScheduledMessage.status == MESSAGE_STATUS_SENT
            ).group_by(ReminderSentLog.rule_id).all()
        )

        return [{"rule": rule, "sent_count": int(counts.get(rule.id, 0))} for rule in rules]

    @staticmethod
    def create_rule(db: Session, clinic_id: int, **values: Any) -> ReminderRule:
        """
        Create a rule.

        Raises:
            HTTPException: 400 if the fields are invalid
        """
        normalized = ReminderRuleService.validate_rule(
            {field: values.get(field) for field in _RULE_FIELDS}
        )
        rule = ReminderRule(clinic_id=clinic_id, **normalized)
        db.add(rule)
        db.commit()
        db.refresh(rule)
        logger.info(f"Created reminder rule {rule.id} ({rule.timing_type}) for clinic {clinic_id}")
        return rule

    @staticmethod
    def update_rule(
        db: Session,
        clinic_id: int,
        rule_id: int,
        name: Any = MISSING,
        timing_type: Any = MISSING,
        timing_value: Any = MISSING,
        send_hour: Any = MISSING,
        send_minute: Any = MISSING,
        target_day_offset: Any = MISSING,
        message_format: Any = MISSING,
        message_template: Any = MISSING,
        is_enabled: Any = MISSING
    ) -> ReminderRule:
        """
        Partially update a rule.

        Omitted fields keep their stored value; an explicit None clears the
        field. The merged rule is validated as a whole before anything is
        written.

        Raises:
            HTTPException: 404 for an unknown rule, 400 for an invalid result
        """
        rule = ReminderRuleService.get_rule(db, clinic_id, rule_id)

        provided = {
            "name": name,
            "timing_type": timing_type,
            "timing_value": timing_value,
            "send_hour": send_hour,
            "send_minute": send_minute,
            "target_day_offset": target_day_offset,
            "message_format": message_format,
            "message_template": message_template,
            "is_enabled": is_enabled,
        }
        merged = {field: getattr(rule, field) for field in _RULE_FIELDS}
        for field, value in provided.items():
            if value is not MISSING:
                merged[field] = value

        normalized = ReminderRuleService.validate_rule(merged)
        for field, value in normalized.items():
            setattr(rule, field, value)

        db.commit()
        db.refresh(rule)
        logger.info(f"Updated reminder rule {rule.id} for clinic {clinic_id}")
        return rule

    @staticmethod
    def delete_rule(db: Session, clinic_id: int, rule_id: int) -> None:
        """
        Delete a rule.

        Messages it already scheduled stay in the queue and are still sent;
        its sent logs are removed with it.
        """
        rule = ReminderRuleService.get_rule(db, clinic_id, rule_id)
        db.query(ReminderSentLog).filter(
            ReminderSentLog.rule_id == rule.id
        ).delete(synchronize_session=False)
        db.delete(rule)
        db.commit()
        logger.info(f"Deleted reminder rule {rule_id} for clinic {clinic_id}")

    @staticmethod
    def get_reminder_logs(
        db: Session,
        clinic_id: int,
        days: int = REMINDER_LOG_DEFAULT_DAYS,
        now: Optional[datetime] = None
    ) -> List[Dict[str, Any]]:
        """
        Summarize reminder deliveries per rule and per send date.

        Counts messages scheduled within the last `days` days (by JST send
        date). Messages claimed but not yet finished ('sending') count as
        scheduled.

        Returns:
            [{"rule_id", "rule_name", "date", "total", "sent", "failed", "scheduled"}]
            ordered by date descending, then rule_id
        """
        if days <= 0:
            raise _bad_request("日数は1以上で指定してください")

        current = ensure_jst(now) if now else jst_now()
        since = (current - timedelta(days=days)).replace(hour=0, minute=0, second=0, microsecond=0)

        rows = db.query(
            ReminderSentLog.rule_id,
            ReminderRule.name,
            ScheduledMessage.scheduled_at,
            ScheduledMessage.status
        ).join(
            ScheduledMessage, ScheduledMessage.id == ReminderSentLog.scheduled_message_id
        ).join(
            ReminderRule, ReminderRule.id == ReminderSentLog.rule_id
        ).filter(
            ReminderSentLog.clinic_id == clinic_id,
            ScheduledMessage.scheduled_at >= since
        ).all()

        buckets: Dict[tuple, Dict[str, Any]] = defaultdict(dict)
        for rule_id, rule_name, scheduled_at, message_status in rows:
            day = ensure_jst(scheduled_at).date().isoformat()
            bucket = buckets[(rule_id, day)]
            if not bucket:
                bucket.update({
                    "rule_id": rule_id,
                    "rule_name": rule_name,
                    "date": day,
                    "total": 0,
                    "sent": 0,
                    "failed": 0,
                    "scheduled": 0,
                })
            bucket["total"] += 1
            if message_status == MESSAGE_STATUS_SENT:
                bucket["sent"] += 1
            elif message_status == MESSAGE_STATUS_FAILED:
                bucket["failed"] += 1
            else:
                bucket["scheduled"] += 1

        return sorted(
            buckets.values(),
            key=lambda b: (b["date"], -b["rule_id"]),
            reverse=True
        )
