"""
Shared types for availability-related functionality.

This module contains shared data classes used by the slot calculator and the
services that feed it, so the pure calculation never depends on ORM rows.
"""

from dataclasses import dataclass
from datetime import date, time
from typing import Optional

from utils.datetime_utils import format_time_hhmm


@dataclass(frozen=True)
class WeeklyRuleData:
    """Weekly template of one doctor for one weekday (0=Sunday .. 6=Saturday)."""
    doctor_id: int
    weekday: int
    enabled: bool
    start_time: Optional[time]
    end_time: Optional[time]
    slot_minutes: Optional[int] = None
    capacity: Optional[int] = None


@dataclass(frozen=True)
class DateOverrideData:
    """
    Per-date exception. None means "unset": the weekly rule's value is used.
    """
    doctor_id: int
    date: date
    type: str  # 'closed', 'open', or 'modify'
    slot_name: Optional[str] = None
    start_time: Optional[time] = None
    end_time: Optional[time] = None
    slot_minutes: Optional[int] = None
    capacity: Optional[int] = None


@dataclass(frozen=True)
class SlotData:
    """
    Represents a bookable time slot and how many more bookings it can take.
    """
    date: date
    time: time
    remaining: int

    def to_dict(self) -> dict[str, str | int]:
        """Convert to dictionary format."""
        return {
            "date": self.date.isoformat(),
            "time": format_time_hhmm(self.time),
            "remaining": self.remaining,
        }
