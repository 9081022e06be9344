"""
JWT Service for access token verification.

Tokens are issued by the clinic's identity service; this backend only
verifies them and reads the tenant and role claims. `create_access_token`
is used by local tooling and tests to mint tokens with the shared secret.
"""

import jwt
from datetime import datetime, timedelta, timezone
from typing import Optional
from pydantic import BaseModel

from core.config import JWT_SECRET_KEY, JWT_ACCESS_TOKEN_EXPIRE_MINUTES


class TokenPayload(BaseModel):
    """Payload structure for JWT tokens."""
    sub: str  # Staff account ID at the identity service
    clinic_id: int  # Tenant the token is scoped to
    roles: list[str] = []  # ["admin"], ["staff"], ...
    name: str = ""
    iat: Optional[int] = None  # Set by JWT service
    exp: Optional[int] = None  # Set by JWT service


class JWTService:
    """Service for JWT token operations."""

    ALGORITHM = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES = JWT_ACCESS_TOKEN_EXPIRE_MINUTES

    @classmethod
    def create_access_token(cls, payload: TokenPayload, expires_in_minutes: Optional[int] = None) -> str:
        """Create a JWT access token."""
        to_encode = payload.model_dump(exclude={"iat", "exp"})
        now = datetime.now(timezone.utc)
        minutes = cls.ACCESS_TOKEN_EXPIRE_MINUTES if expires_in_minutes is None else expires_in_minutes
        to_encode.update({"exp": now + timedelta(minutes=minutes), "iat": now})
        return jwt.encode(to_encode, JWT_SECRET_KEY, algorithm=cls.ALGORITHM)

    @classmethod
    def verify_token(cls, token: str) -> Optional[TokenPayload]:
        """Verify and decode a JWT token; None when invalid or expired."""
        try:
            payload = jwt.decode(token, JWT_SECRET_KEY, algorithms=[cls.ALGORITHM])
            return TokenPayload(**payload)
        except jwt.ExpiredSignatureError:
            return None
        except jwt.InvalidTokenError:
            return None
        except ValueError:
            # Signature valid but claims do not match the payload shape
            return None


# Global instance
jwt_service = JWTService()
