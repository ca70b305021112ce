"""Authentication and authorization utilities for API."""

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBasic, HTTPBasicCredentials, HTTPBearer
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from core.config import settings
from core.db import get_db
from core.errors import AuthenticationError, ForbiddenError
from core.security import decode_access_token
from models.user import User

# HTTPBasic security for admin endpoints
_security = HTTPBasic()
_bearer = HTTPBearer(auto_error=False)


async def admin_basic_auth(credentials: HTTPBasicCredentials = Depends(_security)) -> str:
    """
    Validate HTTP Basic Auth credentials for admin endpoints.

    Args:
        credentials: HTTP Basic credentials from request

    Returns:
        Username if authentication successful

    Raises:
        HTTPException: If credentials are invalid
    """
    if credentials.username != settings.admin_user or credentials.password != settings.admin_pass:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid credentials",
            headers={"WWW-Authenticate": "Basic"},
        )
    return str(credentials.username)


async def current_user_id(
    credentials: HTTPAuthorizationCredentials | None = Depends(_bearer),
    db: AsyncSession = Depends(get_db),
) -> int:
    """
    Authenticate a user request from its bearer token.

    Returns:
        Internal user ID

    Raises:
        AuthenticationError: Missing, malformed or expired token, or unknown user
        ForbiddenError: User is banned
    """
    if credentials is None or credentials.scheme.lower() != "bearer":
        raise AuthenticationError("Missing bearer token")

    user_id = decode_access_token(credentials.credentials)
    if user_id is None:
        raise AuthenticationError("Invalid or expired token")

    is_banned = (await db.execute(select(User.is_banned).where(User.id == user_id))).scalar_one_or_none()
    if is_banned is None:
        raise AuthenticationError("Invalid or expired token")
    if is_banned:
        raise ForbiddenError("Account suspended")

    return user_id
