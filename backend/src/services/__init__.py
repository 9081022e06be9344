"""
Services package for shared business logic.

This package contains service classes that encapsulate business logic
shared across multiple API endpoints and background jobs.
"""

from .availability_service import AvailabilityService
from .booking_window_service import BookingWindowService
from .schedule_service import ScheduleService
from .reminder_rule_service import ReminderRuleService
from .reminder_scheduling_service import ReminderSchedulingService
from .scheduled_message_service import ScheduledMessageService

__all__ = [
    "AvailabilityService",
    "BookingWindowService",
    "ScheduleService",
    "ReminderRuleService",
    "ReminderSchedulingService",
    "ScheduledMessageService",
]
