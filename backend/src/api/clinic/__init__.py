# pyright: reportMissingTypeStubs=false
"""
Clinic API modules.

Clinic endpoints organized by domain, combined into one router mounted at
/api/clinic.
"""

from fastapi import APIRouter

from api.clinic.schedule import router as schedule_router
from api.clinic.booking_open import router as booking_open_router
from api.clinic.reminder_rules import router as reminder_rules_router

router = APIRouter()
router.include_router(schedule_router, tags=["schedule"])
router.include_router(booking_open_router, tags=["booking-open"])
router.include_router(reminder_rules_router, tags=["reminder-rules"])

__all__ = [
    'router',
    'schedule_router',
    'booking_open_router',
    'reminder_rules_router',
]
