"""
Security utilities for the auth gate

Issues and validates the JWT access tokens that carry the caller's
identity and role. User management and login live outside this service;
the gate trusts the claims of any token signed with SECRET_KEY.
"""
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional, Dict, Any, Tuple

import jwt

from app.core.config import settings

ALGORITHM = "HS256"


@dataclass(frozen=True)
class Caller:
    """Identity attached to a request by the auth gate"""
    id: int
    role: str


# ============================================================================
# JWT TOKEN GENERATION
# ============================================================================

def create_access_token(
    user_id: int,
    role: str,
    expires_delta: Optional[timedelta] = None
) -> str:
    """
    Create a JWT access token for a caller

    Args:
        user_id: User ID to encode in token
        role: Role name (e.g. "purchasing", "cost_control")
        expires_delta: Optional custom expiration time

    Returns:
        JWT access token string
    """
    if expires_delta is None:
        expires_delta = timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)

    now = datetime.now(timezone.utc)
    payload = {
        "sub": str(user_id),
        "role": role,
        "type": "access",
        "exp": now + expires_delta,
        "iat": now,
        "jti": str(uuid.uuid4()),
    }

    return jwt.encode(payload, settings.SECRET_KEY, algorithm=ALGORITHM)


# ============================================================================
# JWT TOKEN VALIDATION
# ============================================================================

def decode_token(token: str) -> Optional[Dict[str, Any]]:
    """
    Decode and validate a JWT token

    Returns:
        Token payload dict if valid, None if invalid/expired
    """
    try:
        return jwt.decode(token, settings.SECRET_KEY, algorithms=[ALGORITHM])
    except jwt.ExpiredSignatureError:
        return None
    except jwt.InvalidTokenError:
        return None


def get_identity_from_token(token: str) -> Optional[Tuple[int, str]]:
    """
    Extract (user_id, role) from an access token

    Returns:
        The identity if the token is valid, of type "access" and carries
        both claims; None otherwise
    """
    payload = decode_token(token)
    if payload is None:
        return None

    if payload.get("type") != "access":
        return None

    role = payload.get("role")
    user_id_str = payload.get("sub")
    if not role or user_id_str is None:
        return None

    try:
        return int(user_id_str), role
    except (ValueError, TypeError):
        return None
