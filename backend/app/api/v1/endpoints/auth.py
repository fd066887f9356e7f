"""
Auth gate

Turns the bearer token on a request into a Caller. Tokens are issued by
the platform's identity service; this API only verifies them.
"""
from typing import Optional

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from app.core.security import Caller, get_identity_from_token

bearer_scheme = HTTPBearer(auto_error=False)


async def get_current_caller(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
) -> Caller:
    """
    Dependency that yields the authenticated caller

    Raises:
        HTTPException 401: token missing, malformed, expired or not an access token
    """
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )

    if credentials is None or not credentials.credentials:
        raise credentials_exception

    identity = get_identity_from_token(credentials.credentials)
    if identity is None:
        raise credentials_exception

    user_id, role = identity
    return Caller(id=user_id, role=role)
