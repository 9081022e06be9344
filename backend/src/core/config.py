"""
Application configuration read from the environment.

A .env file (backend/.env, the repository root, or the working directory)
is loaded with python-dotenv outside of pytest runs; tests set the
variables they need before importing the application.
"""

import os
import pathlib
from dotenv import load_dotenv


def _running_under_pytest() -> bool:
    return os.getenv("PYTEST_VERSION") is not None or "PYTEST_CURRENT_TEST" in os.environ


if not _running_under_pytest():
    _here = pathlib.Path(__file__).resolve()
    for env_path in (_here.parents[2] / ".env", _here.parents[3] / ".env", pathlib.Path.cwd() / ".env"):
        if env_path.exists():
            load_dotenv(env_path)
            break


DATABASE_URL = os.getenv("DATABASE_URL", "postgresql://localhost/clinic_booking_dev")
FRONTEND_URL = os.getenv("FRONTEND_URL", "http://localhost:5173")

# Authentication
JWT_SECRET_KEY = os.getenv("JWT_SECRET_KEY", "dev-secret-key-change-in-production")
JWT_ACCESS_TOKEN_EXPIRE_MINUTES = int(os.getenv("JWT_ACCESS_TOKEN_EXPIRE_MINUTES", "60"))

# Shared secret for the external cron caller (dispatcher entrypoints)
CRON_SECRET = os.getenv("CRON_SECRET", "")

# Reminder dispatch
DISPATCH_BATCH_SIZE = int(os.getenv("DISPATCH_BATCH_SIZE", "50"))
DISPATCH_INTERVAL_MINUTES = int(os.getenv("DISPATCH_INTERVAL_MINUTES", "5"))
FIXED_TIME_REMINDER_INTERVAL_MINUTES = int(os.getenv("FIXED_TIME_REMINDER_INTERVAL_MINUTES", "15"))

# Run the in-process schedulers (disable when an external cron drives the endpoints)
ENABLE_BACKGROUND_SCHEDULERS = os.getenv("ENABLE_BACKGROUND_SCHEDULERS", "true").lower() == "true"

# Booking window
DEFAULT_BOOKING_WINDOW_DAYS = int(os.getenv("DEFAULT_BOOKING_WINDOW_DAYS", "30"))
