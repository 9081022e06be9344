"""
Test helpers for authenticated API calls.
"""

from typing import Dict, List, Optional

from services.jwt_service import jwt_service, TokenPayload


def create_jwt_token(clinic_id: int, roles: Optional[List[str]] = None, sub: str = "staff-1") -> str:
    """Create a JWT token for a clinic staff member."""
    payload = TokenPayload(
        sub=sub,
        clinic_id=clinic_id,
        roles=roles if roles is not None else ["admin"],
        name="Test Staff",
    )
    return jwt_service.create_access_token(payload)


def auth_headers(clinic_id: int, roles: Optional[List[str]] = None) -> Dict[str, str]:
    return {"Authorization": f"Bearer {create_jwt_token(clinic_id, roles)}"}
