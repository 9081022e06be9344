# pyright: reportMissingTypeStubs=false
"""
Database engine, session factory and declarative base.

Request handlers get a session through the `get_db` dependency; the
background scheduler and cron jobs use `get_db_context`, which commits
on success. Every model stamps created_at/updated_at in clinic time (JST)
so rows written from SQLite tests and PostgreSQL agree.
"""

import logging
from contextlib import contextmanager
from typing import Generator

from fastapi import HTTPException
from sqlalchemy import create_engine, event
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker

from core.config import DATABASE_URL
from core.constants import DB_POOL_RECYCLE_SECONDS

logger = logging.getLogger(__name__)

engine = create_engine(
    DATABASE_URL,
    pool_pre_ping=True,
    pool_recycle=DB_POOL_RECYCLE_SECONDS,
    echo=False,
    connect_args={"check_same_thread": False} if DATABASE_URL.startswith("sqlite") else {},
)

SessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    bind=engine,
    expire_on_commit=False,
)


class Base(DeclarativeBase):
    """Base class for all booking models."""
    pass


def _stamp(mapper, target, column: str, overwrite: bool) -> None:  # type: ignore
    if column not in mapper.columns:  # type: ignore
        return
    if overwrite or getattr(target, column, None) is None:
        from utils.datetime_utils import jst_now
        setattr(target, column, jst_now())


@event.listens_for(Base, "before_insert", propagate=True)  # type: ignore
def receive_before_insert(mapper, connection, target):  # type: ignore
    """Fill created_at/updated_at in JST when the caller left them empty."""
    _stamp(mapper, target, "created_at", overwrite=False)
    _stamp(mapper, target, "updated_at", overwrite=False)


@event.listens_for(Base, "before_update", propagate=True)  # type: ignore
def receive_before_update(mapper, connection, target):  # type: ignore
    """Refresh updated_at in JST."""
    _stamp(mapper, target, "updated_at", overwrite=True)


def get_db() -> Generator[Session, None, None]:
    """
    FastAPI dependency yielding a session per request.

    Services commit their own writes; anything left open when the request
    fails is rolled back here.
    """
    db = SessionLocal()
    try:
        yield db
    except HTTPException:
        # Expected 4xx outcomes, not database failures
        db.rollback()
        raise
    except SQLAlchemyError as e:
        logger.exception(f"Database error: {e}")
        db.rollback()
        raise
    except Exception as e:
        logger.exception(f"Unexpected error in database session: {e}")
        db.rollback()
        raise
    finally:
        db.close()


@contextmanager
def get_db_context() -> Generator[Session, None, None]:
    """
    Session for code running outside a request, such as scheduler jobs.

    Commits when the block exits cleanly and rolls back otherwise.

    Example:
        ```python
        with get_db_context() as db:
            ScheduledMessageService.dispatch_due_messages(db)
        ```
    """
    db = SessionLocal()
    try:
        yield db
        db.commit()
    except Exception as e:
        db.rollback()
        logger.exception(f"Background transaction failed: {e}")
        raise
    finally:
        db.close()
