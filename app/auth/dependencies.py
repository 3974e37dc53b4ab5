"""FastAPI authentication dependencies for route protection."""

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.jwt import ACCESS, decode_token, token_user_id
from app.database import get_db
from app.errors import AuthenticationError
from app.models.user import User
from app.services.subscription_service import get_user_by_id

# A missing token is reported as 401 below rather than HTTPBearer's default 403
_bearer_scheme = HTTPBearer(auto_error=False)


async def get_current_user(
    credentials: HTTPAuthorizationCredentials | None = Depends(_bearer_scheme),
    db: AsyncSession = Depends(get_db),
) -> User:
    """Validate the Bearer access token and return the user it names.

    Raises:
        AuthenticationError: If no token was sent, or the token is invalid,
            expired, not an access token, or names no user.
    """
    if credentials is None:
        raise AuthenticationError("Not authenticated")

    try:
        payload = decode_token(credentials.credentials, expected_type=ACCESS)
        user_id = token_user_id(payload)
    except JWTError:
        raise AuthenticationError("Could not validate credentials") from None

    user = await get_user_by_id(db, user_id)
    if user is None:
        raise AuthenticationError("Could not validate credentials")
    return user


async def get_current_active_user(
    user: User = Depends(get_current_user),
) -> User:
    """Return the current user only if their account is active.

    Raises:
        HTTPException 403: If the user account is inactive.
    """
    if not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Account is inactive",
        )
    return user
