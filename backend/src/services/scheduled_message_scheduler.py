"""
Scheduled message scheduler for reminders.

Runs two recurring jobs in the application process:
- the dispatcher, sending due scheduled messages;
- the fixed-time pass, scheduling reminders of fixed_time rules.

Deployments that drive these through the cron endpoints instead set
ENABLE_BACKGROUND_SCHEDULERS=false.
"""

import logging
from typing import Optional
from apscheduler.schedulers.asyncio import AsyncIOScheduler  # type: ignore
from apscheduler.triggers.interval import IntervalTrigger  # type: ignore

from core.config import DISPATCH_INTERVAL_MINUTES, FIXED_TIME_REMINDER_INTERVAL_MINUTES
from core.constants import REMINDER_SCHEDULER_MAX_INSTANCES
from core.database import get_db_context
from services.reminder_scheduling_service import ReminderSchedulingService
from services.scheduled_message_service import ScheduledMessageService
from utils.datetime_utils import JST_TZ

logger = logging.getLogger(__name__)


class ScheduledMessageScheduler:
    """
    Scheduler for reminder scheduling and dispatch.

    Database sessions are created fresh for each job run to avoid stale
    session issues.
    """

    def __init__(self):
        # Clinic timezone, so job logs and fixed-time dates line up with JST
        self.scheduler = AsyncIOScheduler(timezone=JST_TZ)
        self._is_started = False

    async def start_scheduler(self) -> None:
        """
        Start the background jobs.

        This should be called during application startup.
        """
        if self._is_started:
            logger.warning("Scheduled message scheduler is already started")
            return

        self.scheduler.add_job(  # type: ignore
            self._dispatch_due_messages,
            IntervalTrigger(minutes=DISPATCH_INTERVAL_MINUTES),
            id="dispatch_scheduled_messages",
            name="Send due scheduled messages",
            max_instances=REMINDER_SCHEDULER_MAX_INSTANCES,
            replace_existing=True
        )
        self.scheduler.add_job(  # type: ignore
            self._evaluate_fixed_time_rules,
            IntervalTrigger(minutes=FIXED_TIME_REMINDER_INTERVAL_MINUTES),
            id="evaluate_fixed_time_reminders",
            name="Schedule fixed-time reminders",
            max_instances=REMINDER_SCHEDULER_MAX_INSTANCES,
            replace_existing=True
        )

        self.scheduler.start()
        self._is_started = True
        logger.info(
            f"Scheduled message scheduler started (dispatch every {DISPATCH_INTERVAL_MINUTES} min, "
            f"fixed-time pass every {FIXED_TIME_REMINDER_INTERVAL_MINUTES} min)"
        )

        # Catch up on messages that came due while the process was down
        await self._evaluate_fixed_time_rules()
        await self._dispatch_due_messages()

    async def stop_scheduler(self) -> None:
        """
        Stop the background jobs.

        This should be called during application shutdown.
        """
        if self._is_started:
            self.scheduler.shutdown(wait=True)
            self._is_started = False
            logger.info("Scheduled message scheduler stopped")

    async def _dispatch_due_messages(self) -> None:
        with get_db_context() as db:
            try:
                summary = ScheduledMessageService.dispatch_due_messages(db)
                if summary["processed"]:
                    logger.info(f"Dispatch run finished: {summary}")
            except Exception as e:
                logger.exception(f"Error dispatching scheduled messages: {e}")

    async def _evaluate_fixed_time_rules(self) -> None:
        with get_db_context() as db:
            try:
                ReminderSchedulingService.evaluate_fixed_time_rules(db)
            except Exception as e:
                logger.exception(f"Error evaluating fixed-time reminder rules: {e}")


# Global scheduler instance
_scheduled_message_scheduler: Optional[ScheduledMessageScheduler] = None


def get_scheduled_message_scheduler() -> ScheduledMessageScheduler:
    """
    Get the global scheduled message scheduler instance.
    """
    global _scheduled_message_scheduler
    if _scheduled_message_scheduler is None:
        _scheduled_message_scheduler = ScheduledMessageScheduler()
    return _scheduled_message_scheduler


async def start_scheduled_message_scheduler() -> None:
    """Start the global scheduled message scheduler."""
    scheduler = get_scheduled_message_scheduler()
    await scheduler.start_scheduler()


async def stop_scheduled_message_scheduler() -> None:
    """Stop the global scheduled message scheduler."""
    global _scheduled_message_scheduler
    if _scheduled_message_scheduler:
        await _scheduled_message_scheduler.stop_scheduler()
