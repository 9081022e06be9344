"""
Datetime utilities for consistent timezone handling across the application.

This module provides utilities to ensure all datetime operations use timezone-aware
datetimes consistently. All times are in Japan timezone (UTC+9) for business logic.
"""

import logging
import re
from datetime import datetime, timezone, timedelta, date, time
from typing import Iterator, Optional

logger = logging.getLogger(__name__)

# Japan timezone constant (UTC+9)
JST_TZ = timezone(timedelta(hours=9))

_MONTH_PATTERN = re.compile(r"^\d{4}-(0[1-9]|1[0-2])$")
_DATE_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2}$")
_TIME_PATTERN = re.compile(r"^([01]?\d|2[0-3]):([0-5]\d)(:[0-5]\d)?$")

WEEKDAY_LABELS_JA = ['日', '月', '火', '水', '木', '金', '土']


def jst_now() -> datetime:
    """
    Get current Japan datetime (UTC+9).

    All business logic in the application uses Japan timezone.

    Returns:
        Current datetime with Japan timezone (UTC+9)
    """
    return datetime.now(JST_TZ)


def ensure_jst(dt: Optional[datetime]) -> Optional[datetime]:
    """
    Ensure a datetime is timezone-aware with Japan timezone.

    Args:
        dt: Datetime to ensure is JST-aware

    Returns:
        Timezone-aware datetime in Japan timezone, or None if input is None
    """
    if dt is None:
        return None

    if dt.tzinfo is None:
        # If naive, assume it's already in Japan time and localize it
        return dt.replace(tzinfo=JST_TZ)
    else:
        # If already timezone-aware, convert to Japan timezone
        return dt.astimezone(JST_TZ)


def combine_jst(day: date, at: time) -> datetime:
    """Combine a clinic-local date and time into an aware JST datetime."""
    return datetime.combine(day, at).replace(tzinfo=JST_TZ)


def parse_date_string(date_str: str) -> date:
    """
    Parse a date string in YYYY-MM-DD format.

    Raises:
        ValueError: If the string is not a valid YYYY-MM-DD date
    """
    if not isinstance(date_str, str) or not _DATE_PATTERN.match(date_str.strip()):
        raise ValueError(f"Invalid date format (expected YYYY-MM-DD): {date_str!r}")
    return datetime.strptime(date_str.strip(), '%Y-%m-%d').date()


def parse_time_string(time_str: str) -> time:
    """
    Parse a time string in HH:MM or HH:MM:SS format.

    Raises:
        ValueError: If the string is not a valid time of day
    """
    if not isinstance(time_str, str):
        raise ValueError(f"Invalid time format (expected HH:MM): {time_str!r}")
    match = _TIME_PATTERN.match(time_str.strip())
    if not match:
        raise ValueError(f"Invalid time format (expected HH:MM): {time_str!r}")
    return time(int(match.group(1)), int(match.group(2)))


def validate_month_string(month: str) -> str:
    """
    Validate a month key in YYYY-MM format and return it unchanged.

    Raises:
        ValueError: If the key is not a valid YYYY-MM month
    """
    if not isinstance(month, str) or not _MONTH_PATTERN.match(month):
        raise ValueError(f"Invalid month format (expected YYYY-MM): {month!r}")
    return month


def month_key(day: date) -> str:
    """Return the YYYY-MM key of the month containing `day`."""
    return f"{day.year:04d}-{day.month:02d}"


def format_time_hhmm(value: time) -> str:
    """Format a time as zero-padded HH:MM."""
    return f"{value.hour:02d}:{value.minute:02d}"


def time_to_minutes(value: time) -> int:
    """Minutes since midnight."""
    return value.hour * 60 + value.minute


def minutes_to_time(total_minutes: int) -> time:
    """Inverse of time_to_minutes; total_minutes must fall within one day."""
    return time(total_minutes // 60, total_minutes % 60)


def weekday_index(day: date) -> int:
    """
    Weekday index used by weekly rules: 0=Sunday, 1=Monday, ..., 6=Saturday.
    """
    return day.isoweekday() % 7


def iter_dates(start: date, end: date) -> Iterator[date]:
    """Yield every calendar date from start to end inclusive."""
    current = start
    while current <= end:
        yield current
        current += timedelta(days=1)


def format_reservation_date(day: date) -> str:
    """
    Format a reservation date for patient-facing texts: "2026/2/18".
    """
    return f"{day.year}/{day.month}/{day.day}"


def format_reservation_slot(at: time, duration_minutes: int) -> str:
    """
    Format a reservation slot for patient-facing texts: "13:00-13:15".
    """
    end = (datetime.combine(date.min, at) + timedelta(minutes=duration_minutes)).time()
    return f"{format_time_hhmm(at)}-{format_time_hhmm(end)}"


def format_short_date_with_weekday(day: date) -> str:
    """Format as "2/18(水)" for compact notification headers."""
    return f"{day.month}/{day.day}({WEEKDAY_LABELS_JA[weekday_index(day)]})"

