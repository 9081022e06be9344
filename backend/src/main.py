# pyright: reportMissingTypeStubs=false
"""
Clinic Booking Backend API

A FastAPI application serving the booking core of a multi-doctor clinic.

Features:
- Bookable slot calculation from weekly rules and date overrides
- Booking window with per-month early opening
- Reminder rules, scheduling and LINE dispatch
- PostgreSQL database with SQLAlchemy ORM
"""

import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from api import clinic, cron
from core.config import ENABLE_BACKGROUND_SCHEDULERS
from core.constants import CORS_ORIGINS
from services.scheduled_message_scheduler import (
    start_scheduled_message_scheduler, stop_scheduled_message_scheduler
)

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    handlers=[logging.StreamHandler()],
)

logger = logging.getLogger(__name__)
logger.info("🏥 Clinic Booking API starting...")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager for startup and shutdown events."""
    logger.info("🚀 Starting Clinic Booking Backend API")

    # Database sessions are created fresh for each scheduler run
    if ENABLE_BACKGROUND_SCHEDULERS:
        try:
            await start_scheduled_message_scheduler()
            logger.info("✅ Reminder scheduler started")
        except Exception as e:
            logger.exception(f"❌ Failed to start reminder scheduler: {e}")
    else:
        logger.info("Background schedulers disabled; reminders are driven by /api/cron")

    yield

    if ENABLE_BACKGROUND_SCHEDULERS:
        try:
            await stop_scheduled_message_scheduler()
            logger.info("🛑 Reminder scheduler stopped")
        except Exception as e:
            logger.exception(f"❌ Error stopping reminder scheduler: {e}")

    logger.info("🛑 Shutting down Clinic Booking Backend API")


# Create FastAPI application
app = FastAPI(
    title="Clinic Booking Backend",
    description="Slots, booking window and reminders for multi-doctor clinics",
    version="1.0.0",
    docs_url="/docs",  # Swagger UI
    redoc_url="/redoc",  # ReDoc
    lifespan=lifespan,
)

# CORS middleware for the admin frontend
app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
    allow_headers=["*"],
)

# Include API routers
app.include_router(
    clinic.router,
    prefix="/api/clinic",
    responses={
        401: {"description": "Unauthorized"},
        403: {"description": "Forbidden"},
        404: {"description": "Resource not found"},
        500: {"description": "Internal server error"},
    },
)
app.include_router(
    cron.router,
    prefix="/api/cron",
    tags=["cron"],
    responses={
        401: {"description": "Unauthorized"},
        500: {"description": "Internal server error"},
    },
)


@app.get(
    "/",
    summary="Root endpoint",
    description="Returns basic API information",
)
async def root() -> dict[str, str]:
    """Get API information."""
    return {
        "message": "Clinic Booking Backend API",
        "version": "1.0.0",
        "status": "running"
    }


@app.get(
    "/health",
    summary="Health check",
    description="Returns the health status of the API",
)
async def health_check() -> dict[str, str]:
    """Check if the API is healthy and responding."""
    return {"status": "healthy"}


# Global exception handlers
@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Handle unexpected exceptions globally."""
    logger.exception(f"Unhandled exception: {exc}")
    return JSONResponse(
        status_code=500,
        content={"detail": "サーバー内部エラーが発生しました", "type": "internal_error"},
    )


@app.exception_handler(ValueError)
async def value_error_handler(request: Request, exc: ValueError):
    """Handle ValueError exceptions."""
    logger.warning(f"ValueError: {exc}")
    return JSONResponse(
        status_code=400,
        content={"detail": str(exc), "type": "validation_error"},
    )
