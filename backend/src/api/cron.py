# pyright: reportMissingTypeStubs=false
"""
Cron API endpoints.

Entry points for an external scheduler, used instead of (or alongside) the
in-process APScheduler jobs. Authenticated with the shared CRON_SECRET.
Both operations are safe to run concurrently with the background jobs.
"""

import logging

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from api.responses import DispatchSummaryResponse, FixedTimePassResponse
from auth.dependencies import require_cron_secret
from core.database import get_db
from services.reminder_scheduling_service import ReminderSchedulingService
from services.scheduled_message_service import ScheduledMessageService

logger = logging.getLogger(__name__)

router = APIRouter(dependencies=[Depends(require_cron_secret)])


@router.post("/dispatch-scheduled-messages", summary="Send due scheduled messages")
async def dispatch_scheduled_messages(db: Session = Depends(get_db)) -> DispatchSummaryResponse:
    summary = ScheduledMessageService.dispatch_due_messages(db)
    logger.info(f"Cron dispatch run finished: {summary}")
    return DispatchSummaryResponse(**summary)


@router.post("/fixed-time-reminders", summary="Schedule fixed-time reminders")
async def fixed_time_reminders(db: Session = Depends(get_db)) -> FixedTimePassResponse:
    result = ReminderSchedulingService.evaluate_fixed_time_rules(db)
    return FixedTimePassResponse(**result)
