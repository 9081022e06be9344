# Package initialization
# Import all models to ensure relationships are properly established
from .clinic import Clinic
from .doctor import Doctor
from .patient import Patient
from .reservation import Reservation
from .weekly_rule import WeeklyRule
from .date_override import DateOverride
from .booking_open_setting import BookingOpenSetting
from .reminder_rule import ReminderRule
from .scheduled_message import ScheduledMessage
from .reminder_sent_log import ReminderSentLog

__all__ = [
    "Clinic",
    "Doctor",
    "Patient",
    "Reservation",
    "WeeklyRule",
    "DateOverride",
    "BookingOpenSetting",
    "ReminderRule",
    "ScheduledMessage",
    "ReminderSentLog",
]
