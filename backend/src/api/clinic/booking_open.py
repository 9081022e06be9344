# pyright: reportMissingTypeStubs=false
"""
Booking window API endpoints.

Admins open a month for booking ahead of the default rolling window, and
revert it back.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from api.responses import BookingOpenResponse, DeleteResponse
from auth.dependencies import UserContext, require_admin_role, require_clinic_member
from core.constants import MAX_MEMO_LENGTH
from core.database import get_db
from services.booking_window_service import BookingWindowService

logger = logging.getLogger(__name__)

router = APIRouter()


class BookingOpenRequest(BaseModel):
    """Request model for opening a month early."""
    month: str = Field(..., description="YYYY-MM")
    memo: Optional[str] = Field(None, max_length=MAX_MEMO_LENGTH)


@router.get("/booking-open", summary="Get the early-open state of a month")
async def get_booking_open(
    month: str = Query(..., description="YYYY-MM"),
    current_user: UserContext = Depends(require_clinic_member),
    db: Session = Depends(get_db)
) -> BookingOpenResponse:
    return BookingOpenResponse(**BookingWindowService.get_window(db, current_user.clinic_id, month))


@router.post("/booking-open", summary="Open a month for booking early")
async def open_booking_early(
    request: BookingOpenRequest,
    current_user: UserContext = Depends(require_admin_role),
    db: Session = Depends(get_db)
) -> BookingOpenResponse:
    setting = BookingWindowService.open_early(db, current_user.clinic_id, request.month, request.memo)
    return BookingOpenResponse(
        month=setting.target_month,
        is_open=setting.is_open,
        opened_at=setting.opened_at,
        memo=setting.memo,
    )


@router.delete("/booking-open", summary="Return a month to the default booking window")
async def revert_booking_open(
    month: str = Query(..., description="YYYY-MM"),
    current_user: UserContext = Depends(require_admin_role),
    db: Session = Depends(get_db)
) -> DeleteResponse:
    deleted = BookingWindowService.revert(db, current_user.clinic_id, month)
    return DeleteResponse(success=True, deleted=1 if deleted else 0)
