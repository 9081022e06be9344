# pyright: reportMissingTypeStubs=false
"""
Schedule and availability API endpoints.

Covers bookable slot listing, weekly rules, date overrides, doctors and the
admin calendar bundle.
"""

import logging
from datetime import time
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi import status as http_status
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from api.responses import (
    DoctorResponse, DoctorListResponse, SlotResponse, SlotListResponse,
    WeeklyRuleResponse, WeeklyRuleListResponse, DateOverrideResponse,
    ScheduleResponse, DeleteResponse,
)
from auth.dependencies import UserContext, require_admin_role, require_clinic_member
from core.constants import (
    DEFAULT_SLOT_MINUTES, DEFAULT_SLOT_CAPACITY, MAX_SLOT_NAME_LENGTH, MAX_MEMO_LENGTH, MAX_STRING_LENGTH
)
from core.database import get_db
from models import Doctor, WeeklyRule
from services.availability_service import AvailabilityService
from services.schedule_service import ScheduleService, WeeklyRuleInput, OverrideFields
from utils.datetime_utils import parse_date_string, parse_time_string, format_time_hhmm

logger = logging.getLogger(__name__)

router = APIRouter()


class WeeklyRuleItem(BaseModel):
    """One weekday of a weekly template."""
    weekday: int = Field(..., ge=0, le=6, description="0=Sunday .. 6=Saturday")
    enabled: bool = True
    start_time: Optional[str] = Field(None, description="HH:MM")
    end_time: Optional[str] = Field(None, description="HH:MM")
    slot_minutes: int = DEFAULT_SLOT_MINUTES
    capacity: int = DEFAULT_SLOT_CAPACITY


class WeeklyRulesUpdateRequest(BaseModel):
    """Request model for replacing a doctor's weekly template."""
    doctor_id: int
    rules: List[WeeklyRuleItem]


class DateOverrideRequest(BaseModel):
    """Request model for writing a date override. Omitted fields are stored as unset."""
    doctor_id: int
    date: str = Field(..., description="YYYY-MM-DD")
    type: str = Field(..., description="'closed', 'open', or 'modify'")
    slot_name: Optional[str] = Field(None, max_length=MAX_SLOT_NAME_LENGTH)
    start_time: Optional[str] = Field(None, description="HH:MM")
    end_time: Optional[str] = Field(None, description="HH:MM")
    slot_minutes: Optional[int] = None
    capacity: Optional[int] = None
    memo: Optional[str] = Field(None, max_length=MAX_MEMO_LENGTH)


class DoctorRequest(BaseModel):
    """Request model for creating or updating a doctor."""
    id: Optional[int] = None
    name: str = Field(..., max_length=MAX_STRING_LENGTH)
    is_active: bool = True
    sort_order: int = 0
    color: Optional[str] = Field(None, max_length=20)


def _parse_date(value: str):
    try:
        return parse_date_string(value)
    except ValueError:
        raise HTTPException(
            status_code=http_status.HTTP_400_BAD_REQUEST,
            detail="無効な日付形式です（YYYY-MM-DD）"
        )


def _parse_optional_time(value: Optional[str]) -> Optional[time]:
    if value is None or value == "":
        return None
    try:
        return parse_time_string(value)
    except ValueError:
        raise HTTPException(
            status_code=http_status.HTTP_400_BAD_REQUEST,
            detail=f"無効な時刻形式です（HH:MM）: {value}"
        )


def _hhmm(value: Optional[time]) -> Optional[str]:
    return format_time_hhmm(value) if value is not None else None


def _doctor_response(doctor: Doctor) -> DoctorResponse:
    return DoctorResponse(
        id=doctor.id,
        name=doctor.name,
        is_active=doctor.is_active,
        sort_order=doctor.sort_order,
        color=doctor.color,
    )


def _weekly_rule_response(rule: WeeklyRule) -> WeeklyRuleResponse:
    return WeeklyRuleResponse(
        doctor_id=rule.doctor_id,
        weekday=rule.weekday,
        day_name_ja=rule.day_name_ja,
        enabled=rule.enabled,
        start_time=_hhmm(rule.start_time),
        end_time=_hhmm(rule.end_time),
        slot_minutes=rule.slot_minutes,
        capacity=rule.capacity,
    )


@router.get("/slots", summary="List bookable slots of a doctor")
async def list_slots(
    doctor_id: int = Query(...),
    start: str = Query(..., description="YYYY-MM-DD"),
    end: str = Query(..., description="YYYY-MM-DD (inclusive)"),
    apply_booking_window: bool = Query(False, description="Drop dates outside the booking window"),
    current_user: UserContext = Depends(require_clinic_member),
    db: Session = Depends(get_db)
) -> SlotListResponse:
    """List slots with remaining capacity, ordered by date then time."""
    start_date, end_date = AvailabilityService.validate_date_range(start, end)
    try:
        slots = AvailabilityService.list_slots(
            db, current_user.clinic_id, doctor_id, start_date, end_date,
            apply_booking_window=apply_booking_window
        )
    except HTTPException:
        raise
    except Exception as e:
        logger.exception(f"Failed to list slots for doctor {doctor_id}: {e}")
        raise HTTPException(
            status_code=http_status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="空き枠を取得できませんでした"
        )

    return SlotListResponse(
        doctor_id=doctor_id,
        start=start_date.isoformat(),
        end=end_date.isoformat(),
        slots=[SlotResponse(**slot.to_dict()) for slot in slots],
    )


@router.get("/weekly-rules", summary="Get weekly rules")
async def get_weekly_rules(
    doctor_id: Optional[int] = Query(None),
    current_user: UserContext = Depends(require_clinic_member),
    db: Session = Depends(get_db)
) -> WeeklyRuleListResponse:
    rules = ScheduleService.get_weekly_rules(db, current_user.clinic_id, doctor_id)
    return WeeklyRuleListResponse(weekly_rules=[_weekly_rule_response(r) for r in rules])


@router.put("/weekly-rules", summary="Replace a doctor's weekly rules")
async def replace_weekly_rules(
    request: WeeklyRulesUpdateRequest,
    current_user: UserContext = Depends(require_admin_role),
    db: Session = Depends(get_db)
) -> WeeklyRuleListResponse:
    """Replace the whole weekly template of one doctor."""
    rules = [
        WeeklyRuleInput(
            weekday=item.weekday,
            enabled=item.enabled,
            start_time=_parse_optional_time(item.start_time),
            end_time=_parse_optional_time(item.end_time),
            slot_minutes=item.slot_minutes,
            capacity=item.capacity,
        )
        for item in request.rules
    ]
    saved = ScheduleService.replace_weekly_rules(db, current_user.clinic_id, request.doctor_id, rules)
    return WeeklyRuleListResponse(weekly_rules=[_weekly_rule_response(r) for r in saved])


@router.put("/date-overrides", summary="Write a date override")
async def put_date_override(
    request: DateOverrideRequest,
    current_user: UserContext = Depends(require_admin_role),
    db: Session = Depends(get_db)
) -> DateOverrideResponse:
    """
    Write the override of (doctor, date, slot_name), replacing any existing one.
    """
    target_date = _parse_date(request.date)
    fields = OverrideFields(
        type=request.type,
        start_time=_parse_optional_time(request.start_time),
        end_time=_parse_optional_time(request.end_time),
        slot_minutes=request.slot_minutes,
        capacity=request.capacity,
        memo=request.memo,
    )
    override = ScheduleService.put_override(
        db, current_user.clinic_id, request.doctor_id, target_date, request.slot_name, fields
    )
    return DateOverrideResponse(**ScheduleService.override_to_dict(override))


@router.delete("/date-overrides", summary="Delete date overrides")
async def delete_date_override(
    doctor_id: int = Query(...),
    date: str = Query(..., description="YYYY-MM-DD"),
    slot_name: Optional[str] = Query(None, description="Named band to delete; the base band when omitted"),
    delete_all: bool = Query(False, alias="all", description="Delete every override of the date"),
    current_user: UserContext = Depends(require_admin_role),
    db: Session = Depends(get_db)
) -> DeleteResponse:
    target_date = _parse_date(date)
    deleted = ScheduleService.delete_override(
        db, current_user.clinic_id, doctor_id, target_date, slot_name=slot_name, delete_all=delete_all
    )
    return DeleteResponse(success=True, deleted=deleted)


@router.get("/schedule", summary="Get the admin calendar bundle")
async def get_schedule(
    doctor_id: Optional[int] = Query(None),
    start: Optional[str] = Query(None, description="YYYY-MM-DD"),
    end: Optional[str] = Query(None, description="YYYY-MM-DD"),
    current_user: UserContext = Depends(require_clinic_member),
    db: Session = Depends(get_db)
) -> ScheduleResponse:
    """Get doctors, weekly rules and overrides for calendar rendering."""
    start_date = _parse_date(start) if start else None
    end_date = _parse_date(end) if end else None
    bundle = ScheduleService.get_schedule(db, current_user.clinic_id, doctor_id, start_date, end_date)
    return ScheduleResponse(
        doctors=[_doctor_response(d) for d in bundle.doctors],
        weekly_rules=[_weekly_rule_response(r) for r in bundle.weekly_rules],
        overrides=[DateOverrideResponse(**ScheduleService.override_to_dict(o)) for o in bundle.overrides],
    )


@router.get("/doctors", summary="List doctors")
async def list_doctors(
    current_user: UserContext = Depends(require_clinic_member),
    db: Session = Depends(get_db)
) -> DoctorListResponse:
    doctors = ScheduleService.list_doctors(db, current_user.clinic_id)
    return DoctorListResponse(doctors=[_doctor_response(d) for d in doctors])


@router.put("/doctors", summary="Create or update a doctor")
async def upsert_doctor(
    request: DoctorRequest,
    current_user: UserContext = Depends(require_admin_role),
    db: Session = Depends(get_db)
) -> DoctorResponse:
    doctor = ScheduleService.upsert_doctor(
        db,
        current_user.clinic_id,
        name=request.name,
        doctor_id=request.id,
        is_active=request.is_active,
        sort_order=request.sort_order,
        color=request.color,
    )
    return _doctor_response(doctor)
