"""
Shared response models for API endpoints.

This module contains Pydantic response models that are shared across
multiple API endpoints to ensure consistency and reduce duplication.
"""

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel


class DoctorResponse(BaseModel):
    """Response model for doctor information."""
    id: int
    name: str
    is_active: bool
    sort_order: int
    color: Optional[str] = None


class DoctorListResponse(BaseModel):
    """Response model for listing doctors."""
    doctors: List[DoctorResponse]


class SlotResponse(BaseModel):
    """Response model for one bookable slot."""
    date: str  # YYYY-MM-DD
    time: str  # HH:MM
    remaining: int


class SlotListResponse(BaseModel):
    """Response model for a slot listing."""
    doctor_id: int
    start: str
    end: str
    slots: List[SlotResponse]


class WeeklyRuleResponse(BaseModel):
    """Response model for one weekday of a weekly template."""
    doctor_id: int
    weekday: int  # 0=Sunday .. 6=Saturday
    day_name_ja: str
    enabled: bool
    start_time: Optional[str] = None
    end_time: Optional[str] = None
    slot_minutes: int
    capacity: int


class WeeklyRuleListResponse(BaseModel):
    """Response model for listing weekly rules."""
    weekly_rules: List[WeeklyRuleResponse]


class DateOverrideResponse(BaseModel):
    """Response model for a date override. Unset fields are null."""
    id: int
    doctor_id: int
    date: str
    type: str
    slot_name: Optional[str] = None
    start_time: Optional[str] = None
    end_time: Optional[str] = None
    slot_minutes: Optional[int] = None
    capacity: Optional[int] = None
    memo: Optional[str] = None


class ScheduleResponse(BaseModel):
    """Response model for the admin calendar bundle."""
    doctors: List[DoctorResponse]
    weekly_rules: List[WeeklyRuleResponse]
    overrides: List[DateOverrideResponse]


class BookingOpenResponse(BaseModel):
    """Response model for the early-open state of a month."""
    month: str  # YYYY-MM
    is_open: bool
    opened_at: Optional[datetime] = None
    memo: Optional[str] = None


class ReminderRuleResponse(BaseModel):
    """Response model for a reminder rule."""
    id: int
    name: str
    timing_type: str
    timing_value: Optional[int] = None
    send_hour: Optional[int] = None
    send_minute: int
    target_day_offset: int
    message_format: str
    message_template: Optional[str] = None
    is_enabled: bool
    sent_count: int = 0


class ReminderRuleListResponse(BaseModel):
    """Response model for listing reminder rules."""
    rules: List[ReminderRuleResponse]


class ReminderLogEntry(BaseModel):
    """Delivery counts of one rule on one send date."""
    rule_id: int
    rule_name: str
    date: str
    total: int
    sent: int
    failed: int
    scheduled: int


class ReminderLogResponse(BaseModel):
    """Response model for the reminder delivery log."""
    days: int
    logs: List[ReminderLogEntry]


class DeleteResponse(BaseModel):
    """Response model for delete operations."""
    success: bool
    deleted: int = 0


class DispatchSummaryResponse(BaseModel):
    """Response model for a dispatcher run."""
    processed: int
    sent: int
    failed: int
    skipped: int


class FixedTimePassResponse(BaseModel):
    """Response model for a fixed-time reminder pass."""
    rules: int
    scheduled: int
