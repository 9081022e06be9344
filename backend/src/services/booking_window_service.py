"""
Booking window service.

Patients may book from today up to DEFAULT_BOOKING_WINDOW_DAYS ahead. Admins
can open a later month early; that decision is stored per clinic and month
in BookingOpenSetting. Reverting deletes the row, returning the month to the
default window.
"""

import logging
from datetime import date, datetime, timedelta
from typing import Optional, Set

from fastapi import HTTPException, status
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from core.config import DEFAULT_BOOKING_WINDOW_DAYS
from models import BookingOpenSetting
from utils.datetime_utils import jst_now, validate_month_string, month_key, iter_dates

logger = logging.getLogger(__name__)


class BookingWindowService:
    """Service for the per-month early-open overrides of the booking window."""

    @staticmethod
    def _validate_month(month: str) -> str:
        try:
            return validate_month_string(month)
        except ValueError:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="無効な月の形式です（YYYY-MM）"
            )

    @staticmethod
    def _get_setting(db: Session, clinic_id: int, month: str) -> Optional[BookingOpenSetting]:
        return db.query(BookingOpenSetting).filter(
            BookingOpenSetting.clinic_id == clinic_id,
            BookingOpenSetting.target_month == month
        ).first()

    @staticmethod
    def get_window(db: Session, clinic_id: int, month: str) -> dict:
        """
        Get the early-open state of a month.

        Returns:
            {"month", "is_open", "opened_at", "memo"}; is_open is False and
            opened_at None when the month has no setting
        """
        month = BookingWindowService._validate_month(month)
        setting = BookingWindowService._get_setting(db, clinic_id, month)
        if setting is None:
            return {"month": month, "is_open": False, "opened_at": None, "memo": None}
        return {
            "month": month,
            "is_open": setting.is_open,
            "opened_at": setting.opened_at,
            "memo": setting.memo,
        }

    @staticmethod
    def open_early(
        db: Session,
        clinic_id: int,
        month: str,
        memo: Optional[str] = None,
        now: Optional[datetime] = None
    ) -> BookingOpenSetting:
        """
        Open a month for booking ahead of the default window.

        Upserts the month's setting with is_open=True and opened_at=now.
        Concurrent writers are last-writer-wins.

        Raises:
            HTTPException: If the month key is malformed
        """
        month = BookingWindowService._validate_month(month)
        opened_at = now or jst_now()

        for attempt in range(2):
            setting = BookingWindowService._get_setting(db, clinic_id, month)
            if setting is None:
                setting = BookingOpenSetting(clinic_id=clinic_id, target_month=month)
                db.add(setting)
            setting.is_open = True
            setting.opened_at = opened_at
            setting.memo = memo
            try:
                db.commit()
            except IntegrityError:
                # Another writer created the row first; update theirs instead
                db.rollback()
                if attempt == 1:
                    raise
                continue
            db.refresh(setting)
            logger.info(f"Opened {month} for booking early (clinic {clinic_id})")
            return setting

        raise RuntimeError("unreachable")

    @staticmethod
    def revert(db: Session, clinic_id: int, month: str) -> bool:
        """
        Return a month to the default window by deleting its setting.

        Returns:
            True if a setting was deleted, False if there was none
        """
        month = BookingWindowService._validate_month(month)
        deleted = db.query(BookingOpenSetting).filter(
            BookingOpenSetting.clinic_id == clinic_id,
            BookingOpenSetting.target_month == month
        ).delete(synchronize_session="fetch")
        db.commit()
        if deleted:
            logger.info(f"Reverted {month} to the default booking window (clinic {clinic_id})")
        return bool(deleted)

    @staticmethod
    def bookable_dates(
        db: Session,
        clinic_id: int,
        start_date: date,
        end_date: date,
        today: Optional[date] = None
    ) -> Set[date]:
        """
        Dates of [start_date, end_date] patients may book.

        A date is bookable when it lies between today and today +
        DEFAULT_BOOKING_WINDOW_DAYS, or when it is not in the past and its
        month has been opened early.
        """
        today = today or jst_now().date()
        window_end = today + timedelta(days=DEFAULT_BOOKING_WINDOW_DAYS)

        months = {month_key(d) for d in iter_dates(start_date, end_date)}
        open_months = {
            row.target_month
            for row in db.query(BookingOpenSetting).filter(
                BookingOpenSetting.clinic_id == clinic_id,
                BookingOpenSetting.target_month.in_(months),
                BookingOpenSetting.is_open == True  # noqa: E712
            ).all()
        }

        return {
            d for d in iter_dates(start_date, end_date)
            if d >= today and (d <= window_end or month_key(d) in open_months)
        }
