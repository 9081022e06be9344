"""
Message template service for rendering reminder messages with placeholders.

Templates use brace placeholders ({name}, {patient_id}, {date}, {time}).
Rendering only replaces the keys present in the context, so a template can
be rendered in two passes: reservation details when the reminder is
scheduled, patient details when it is sent.
"""

import logging
from datetime import date
from typing import Dict, Any, Optional

from core.constants import RESERVATION_DISPLAY_MINUTES
from core.message_template_constants import (
    PLACEHOLDER_NAME, PLACEHOLDER_PATIENT_ID, PLACEHOLDER_DATE, PLACEHOLDER_TIME,
    FLEX_REMINDER_HEADER, FLEX_REMINDER_NOTE,
    FLEX_HEADER_BG_COLOR, FLEX_HEADER_TEXT_COLOR, FLEX_BODY_TEXT_COLOR,
)
from models import Patient, Reservation
from utils.datetime_utils import (
    format_reservation_date, format_reservation_slot, format_short_date_with_weekday
)

logger = logging.getLogger(__name__)


class MessageTemplateService:
    """Service for rendering message templates with placeholders."""

    @staticmethod
    def render_message(
        template: str,
        context: Dict[str, Any]
    ) -> str:
        """
        Render message template with placeholders.

        Replaces each {key} of the context with its value; placeholders
        without a context entry are left untouched for a later pass.

        Replacement order: longest placeholders first to avoid substring
        conflicts (e.g., {patient_id} before a hypothetical {patient}).

        Args:
            template: Message template with placeholders
            context: Dictionary with keys matching placeholder names

        Returns:
            Rendered message with known placeholders replaced
        """
        message = template

        sorted_keys = sorted(context.keys(), key=len, reverse=True)
        for key in sorted_keys:
            placeholder = f"{{{key}}}"
            value = context.get(key)
            message = message.replace(placeholder, "" if value is None else str(value))

        return message

    @staticmethod
    def build_schedule_context(reservation: Reservation) -> Dict[str, str]:
        """
        Build the context rendered when a reminder is scheduled.

        - {date}: reservation date, e.g. "2026/2/18"
        - {time}: reservation slot, e.g. "13:00-13:15"
        """
        return {
            PLACEHOLDER_DATE: format_reservation_date(reservation.reserved_date),
            PLACEHOLDER_TIME: format_reservation_slot(reservation.reserved_time, RESERVATION_DISPLAY_MINUTES),
        }

    @staticmethod
    def build_send_context(patient: Optional[Patient]) -> Dict[str, str]:
        """
        Build the context rendered when a reminder is sent.

        Values come from the patient record as it is at send time, so a name
        corrected after scheduling is used. A missing patient renders empty
        strings rather than leaving raw placeholders in the message.
        """
        if patient is None:
            return {PLACEHOLDER_NAME: "", PLACEHOLDER_PATIENT_ID: ""}
        return {
            PLACEHOLDER_NAME: patient.full_name or "",
            PLACEHOLDER_PATIENT_ID: str(patient.id),
        }

    @staticmethod
    def render_flex_payload(payload: Any, context: Dict[str, Any]) -> Any:
        """Render placeholders in every string of a flex payload."""
        if isinstance(payload, str):
            return MessageTemplateService.render_message(payload, context)
        if isinstance(payload, list):
            return [MessageTemplateService.render_flex_payload(item, context) for item in payload]
        if isinstance(payload, dict):
            return {key: MessageTemplateService.render_flex_payload(value, context) for key, value in payload.items()}
        return payload

    @staticmethod
    def build_reminder_flex(reservation_date: date, slot_text: str) -> Dict[str, Any]:
        """
        Build the reminder bubble for flex-format rules.

        The greeting line keeps the {name} placeholder; it is filled in at
        send time like text reminders.
        """
        return {
            "type": "bubble",
            "header": {
                "type": "box",
                "layout": "vertical",
                "backgroundColor": FLEX_HEADER_BG_COLOR,
                "contents": [
                    {
                        "type": "text",
                        "text": FLEX_REMINDER_HEADER,
                        "weight": "bold",
                        "size": "lg",
                        "color": FLEX_HEADER_TEXT_COLOR,
                    }
                ],
            },
            "body": {
                "type": "box",
                "layout": "vertical",
                "spacing": "md",
                "contents": [
                    {"type": "text", "text": f"{{{PLACEHOLDER_NAME}}}様", "weight": "bold"},
                    {
                        "type": "text",
                        "text": f"{format_short_date_with_weekday(reservation_date)} {slot_text}",
                        "size": "xl",
                        "weight": "bold",
                    },
                    {
                        "type": "text",
                        "text": FLEX_REMINDER_NOTE,
                        "size": "sm",
                        "color": FLEX_BODY_TEXT_COLOR,
                        "wrap": True,
                    },
                ],
            },
        }

