"""
Timing calculation utilities for reminder rules.

This module turns a reminder rule's timing configuration into a concrete
send time. It supports the three rule timing types:

- before_hours: X hours before the appointment start
- before_days: X days before the appointment start (same clock time)
- fixed_time: a clock time on the day the daily pass runs
"""

import logging
from datetime import datetime, date, timedelta, time as time_type
from typing import Optional

from core.constants import TIMING_BEFORE_HOURS, TIMING_BEFORE_DAYS, TIMING_FIXED_TIME
from utils.datetime_utils import ensure_jst, combine_jst

logger = logging.getLogger(__name__)


def calculate_scheduled_time(
    appointment_start: datetime,
    timing_type: str,
    timing_value: Optional[int] = None,
    send_hour: Optional[int] = None,
    send_minute: Optional[int] = None,
    run_date: Optional[date] = None
) -> datetime:
    """
    Calculate the send time of a reminder.

    Args:
        appointment_start: Start of the appointment (naive values are treated as JST)
        timing_type: 'before_hours', 'before_days', or 'fixed_time'
        timing_value: Hours or days before the appointment (x >= 0)
        send_hour: For fixed_time: hour of day (0-23)
        send_minute: For fixed_time: minute (0-59), defaults to 0
        run_date: For fixed_time: the date of the daily pass that fires the rule

    Returns:
        Scheduled send time (JST-aware)

    Raises:
        ValueError: If parameters are invalid or inconsistent

    Examples:
        # 2 hours before a 10:00 appointment -> 08:00 same day
        calculate_scheduled_time(start, 'before_hours', timing_value=2)

        # Daily pass on 2/17 for a 19:00 rule -> 2/17 19:00
        calculate_scheduled_time(start, 'fixed_time', send_hour=19, run_date=date(2026, 2, 17))
    """
    start = ensure_jst(appointment_start)
    if start is None:
        raise ValueError("appointment_start cannot be None")

    if timing_type in (TIMING_BEFORE_HOURS, TIMING_BEFORE_DAYS):
        if timing_value is None:
            raise ValueError(f"timing_value is required for timing_type='{timing_type}'")
        if timing_value < 0:
            raise ValueError(f"timing_value must be non-negative, got {timing_value}")

        if timing_type == TIMING_BEFORE_HOURS:
            return start - timedelta(hours=timing_value)
        return start - timedelta(days=timing_value)

    if timing_type == TIMING_FIXED_TIME:
        if send_hour is None:
            raise ValueError("send_hour is required for timing_type='fixed_time'")
        if run_date is None:
            raise ValueError("run_date is required for timing_type='fixed_time'")
        minute = send_minute if send_minute is not None else 0
        if not 0 <= send_hour <= 23 or not 0 <= minute <= 59:
            raise ValueError(f"Invalid send time {send_hour}:{minute}")
        return combine_jst(run_date, time_type(send_hour, minute))

    raise ValueError(f"Invalid timing_type: {timing_type}")


def fixed_time_target_date(run_date: date, target_day_offset: Optional[int]) -> date:
    """
    Reservation date matched by a fixed_time rule on `run_date`.

    A rule with target_day_offset=1 fired on 2/17 reminds about 2/18 reservations.
    """
    offset = target_day_offset if target_day_offset is not None else 1
    if offset < 0:
        raise ValueError(f"target_day_offset must be non-negative, got {offset}")
    return run_date + timedelta(days=offset)
