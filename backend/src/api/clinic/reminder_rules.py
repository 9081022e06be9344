# pyright: reportMissingTypeStubs=false
"""
Reminder Rule Management API endpoints.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi import status as http_status
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from api.responses import (
    ReminderRuleResponse, ReminderRuleListResponse, ReminderLogEntry, ReminderLogResponse, DeleteResponse
)
from auth.dependencies import UserContext, require_admin_role
from core.constants import MAX_STRING_LENGTH, REMINDER_LOG_DEFAULT_DAYS
from core.database import get_db
from models import ReminderRule
from services.reminder_rule_service import ReminderRuleService

logger = logging.getLogger(__name__)

router = APIRouter()

_MAX_TEMPLATE_LENGTH = 5000


class ReminderRuleCreateRequest(BaseModel):
    """Request model for creating a reminder rule."""
    name: str = Field(..., max_length=MAX_STRING_LENGTH)
    timing_type: str = Field(..., description="'before_hours', 'before_days', or 'fixed_time'")
    timing_value: Optional[int] = Field(None, description="Hours or days before the appointment")
    send_hour: Optional[int] = Field(None, description="fixed_time: hour of day (0-23)")
    send_minute: Optional[int] = Field(None, description="fixed_time: minute (0-59), defaults to 0")
    target_day_offset: Optional[int] = Field(None, description="fixed_time: days ahead, defaults to 1")
    message_format: str = Field("text", description="'text' or 'flex'")
    message_template: Optional[str] = Field(None, max_length=_MAX_TEMPLATE_LENGTH)
    is_enabled: bool = True


class ReminderRuleUpdateRequest(BaseModel):
    """Request model for updating a reminder rule. Only provided fields change."""
    name: Optional[str] = Field(None, max_length=MAX_STRING_LENGTH)
    timing_type: Optional[str] = None
    timing_value: Optional[int] = None
    send_hour: Optional[int] = None
    send_minute: Optional[int] = None
    target_day_offset: Optional[int] = None
    message_format: Optional[str] = None
    message_template: Optional[str] = Field(None, max_length=_MAX_TEMPLATE_LENGTH)
    is_enabled: Optional[bool] = None


def _rule_response(rule: ReminderRule, sent_count: int = 0) -> ReminderRuleResponse:
    return ReminderRuleResponse(
        id=rule.id,
        name=rule.name,
        timing_type=rule.timing_type,
        timing_value=rule.timing_value,
        send_hour=rule.send_hour,
        send_minute=rule.send_minute,
        target_day_offset=rule.target_day_offset,
        message_format=rule.message_format,
        message_template=rule.message_template,
        is_enabled=rule.is_enabled,
        sent_count=sent_count,
    )


@router.get("/reminder-rules", summary="List reminder rules")
async def list_reminder_rules(
    current_user: UserContext = Depends(require_admin_role),
    db: Session = Depends(get_db)
) -> ReminderRuleListResponse:
    """List reminder rules with their delivered counts."""
    try:
        items = ReminderRuleService.list_rules(db, current_user.clinic_id)
        return ReminderRuleListResponse(
            rules=[_rule_response(item["rule"], item["sent_count"]) for item in items]
        )
    except HTTPException:
        raise
    except Exception as e:
        logger.exception(f"Failed to list reminder rules: {e}")
        raise HTTPException(
            status_code=http_status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="リマインドルールを取得できませんでした"
        )


@router.post("/reminder-rules", summary="Create a reminder rule", status_code=http_status.HTTP_201_CREATED)
async def create_reminder_rule(
    request: ReminderRuleCreateRequest,
    current_user: UserContext = Depends(require_admin_role),
    db: Session = Depends(get_db)
) -> ReminderRuleResponse:
    rule = ReminderRuleService.create_rule(db, current_user.clinic_id, **request.model_dump())
    return _rule_response(rule)


# Registered before /reminder-rules/{rule_id} so "logs" is not parsed as an ID
@router.get("/reminder-rules/logs", summary="Get reminder delivery logs")
async def get_reminder_logs(
    days: int = Query(REMINDER_LOG_DEFAULT_DAYS, ge=1, le=365),
    current_user: UserContext = Depends(require_admin_role),
    db: Session = Depends(get_db)
) -> ReminderLogResponse:
    """Delivery counts per rule and per send date."""
    logs = ReminderRuleService.get_reminder_logs(db, current_user.clinic_id, days=days)
    return ReminderLogResponse(days=days, logs=[ReminderLogEntry(**entry) for entry in logs])


@router.put("/reminder-rules/{rule_id}", summary="Update a reminder rule")
async def update_reminder_rule(
    rule_id: int,
    request: ReminderRuleUpdateRequest,
    current_user: UserContext = Depends(require_admin_role),
    db: Session = Depends(get_db)
) -> ReminderRuleResponse:
    rule = ReminderRuleService.update_rule(
        db, current_user.clinic_id, rule_id, **request.model_dump(exclude_unset=True)
    )
    return _rule_response(rule)


@router.delete("/reminder-rules/{rule_id}", summary="Delete a reminder rule")
async def delete_reminder_rule(
    rule_id: int,
    current_user: UserContext = Depends(require_admin_role),
    db: Session = Depends(get_db)
) -> DeleteResponse:
    ReminderRuleService.delete_rule(db, current_user.clinic_id, rule_id)
    return DeleteResponse(success=True, deleted=1)
