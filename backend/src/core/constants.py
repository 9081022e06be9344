"""Application constants and configuration values."""

from core.config import FRONTEND_URL

# Database field lengths
MAX_STRING_LENGTH = 255
MAX_SLOT_NAME_LENGTH = 50
MAX_MEMO_LENGTH = 500

# Database connection settings
DB_POOL_RECYCLE_SECONDS = 300  # 5 minutes

# CORS origins for development and production
_CORS_ORIGINS_RAW = [
    "http://localhost:5173",      # Admin dev server (Vite)
    FRONTEND_URL,
]

# Filter out None values and empty strings to avoid CORS errors
CORS_ORIGINS = [origin for origin in _CORS_ORIGINS_RAW if origin and origin.strip()]

# Slot generation defaults (used when neither weekly rule nor override sets the field)
DEFAULT_SLOT_MINUTES = 15
DEFAULT_SLOT_CAPACITY = 2

# Longest date range accepted by the slot listing
MAX_SLOT_RANGE_DAYS = 62

# Date override types
OVERRIDE_TYPE_CLOSED = "closed"
OVERRIDE_TYPE_OPEN = "open"
OVERRIDE_TYPE_MODIFY = "modify"
OVERRIDE_TYPES = (OVERRIDE_TYPE_CLOSED, OVERRIDE_TYPE_OPEN, OVERRIDE_TYPE_MODIFY)

# Reminder rule timing types
TIMING_BEFORE_HOURS = "before_hours"
TIMING_BEFORE_DAYS = "before_days"
TIMING_FIXED_TIME = "fixed_time"
TIMING_TYPES = (TIMING_BEFORE_HOURS, TIMING_BEFORE_DAYS, TIMING_FIXED_TIME)

MESSAGE_FORMAT_TEXT = "text"
MESSAGE_FORMAT_FLEX = "flex"
MESSAGE_FORMATS = (MESSAGE_FORMAT_TEXT, MESSAGE_FORMAT_FLEX)

DEFAULT_SEND_MINUTE = 0
DEFAULT_TARGET_DAY_OFFSET = 1

# Scheduled message statuses
MESSAGE_STATUS_SCHEDULED = "scheduled"
MESSAGE_STATUS_SENDING = "sending"  # Claimed by a dispatcher run
MESSAGE_STATUS_SENT = "sent"
MESSAGE_STATUS_FAILED = "failed"

# Reservation statuses that no longer occupy a slot
INACTIVE_RESERVATION_STATUSES = ("canceled",)

# Reminder scheduler settings
REMINDER_SCHEDULER_MAX_INSTANCES = 1  # Prevent overlapping scheduler runs

# Reminder logs endpoint
REMINDER_LOG_DEFAULT_DAYS = 30

# Reminder slot length shown in "HH:MM-HH:MM" texts
RESERVATION_DISPLAY_MINUTES = 15
