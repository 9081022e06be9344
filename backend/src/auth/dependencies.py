# pyright: reportMissingTypeStubs=false
"""
Authentication and authorization dependencies for FastAPI.

Provides dependency injection functions for staff authentication,
role-based access control, clinic isolation and the cron caller's shared
secret.
"""

import hmac
import logging
from typing import Optional
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.orm import Session

from core import config
from core.database import get_db
from services.jwt_service import jwt_service, TokenPayload
from models import Clinic

logger = logging.getLogger(__name__)


class UserContext:
    """Authenticated staff context extracted from JWT token."""

    def __init__(
        self,
        subject: str,
        clinic_id: int,
        roles: list[str],
        name: str = ""
    ):
        self.subject = subject
        self.clinic_id = clinic_id  # Tenant every service call is scoped to
        self.roles = roles
        self.name = name

    def has_role(self, role: str) -> bool:
        """Check if user has a specific role."""
        return role in self.roles

    def __repr__(self) -> str:
        return f"UserContext(subject='{self.subject}', clinic_id={self.clinic_id}, roles={self.roles})"


# HTTP Bearer token security scheme
security = HTTPBearer(auto_error=False)


def get_token_payload(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security)
) -> Optional[TokenPayload]:
    """Extract and validate JWT token payload."""
    if not credentials:
        return None
    return jwt_service.verify_token(credentials.credentials)


def get_current_user(
    payload: Optional[TokenPayload] = Depends(get_token_payload),
    db: Session = Depends(get_db)
) -> UserContext:
    """
    Get authenticated user context from JWT token.

    The clinic_id claim selects the tenant; the clinic must exist.
    """
    if not payload:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authentication credentials not provided"
        )

    clinic = db.query(Clinic.id).filter(Clinic.id == payload.clinic_id).first()
    if not clinic:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Clinic access denied"
        )

    return UserContext(
        subject=payload.sub,
        clinic_id=payload.clinic_id,
        roles=payload.roles,
        name=payload.name
    )


def require_clinic_member(user: UserContext = Depends(get_current_user)) -> UserContext:
    """
    Require any clinic member (regardless of roles).

    Members without roles have read-only access to clinic data.
    """
    return user


def require_admin_role(user: UserContext = Depends(get_current_user)) -> UserContext:
    """Require admin role."""
    if not user.has_role("admin"):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin access required"
        )
    return user


def require_cron_secret(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security)
) -> None:
    """
    Authenticate the external cron caller with `Authorization: Bearer <CRON_SECRET>`.

    Always rejects when no secret is configured.
    """
    expected = config.CRON_SECRET
    if not expected:
        logger.warning("Cron endpoint called but CRON_SECRET is not configured")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Unauthorized"
        )
    if not credentials or not hmac.compare_digest(credentials.credentials, expected):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Unauthorized"
        )
