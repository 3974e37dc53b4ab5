"""Signed bearer tokens: short-lived access tokens and long-lived refresh tokens."""

import uuid
from datetime import datetime, timedelta, timezone

from jose import JWTError, jwt

from app.config import settings

ACCESS = "access"
REFRESH = "refresh"


def _encode(user_id: str, token_type: str, lifetime: timedelta) -> str:
    now = datetime.now(timezone.utc)
    payload = {"sub": user_id, "type": token_type, "iat": now, "exp": now + lifetime}
    return jwt.encode(payload, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)


def create_access_token(user_id: str, expires_delta: timedelta | None = None) -> str:
    """Create an access token for ``user_id``.

    Defaults to ``settings.jwt_access_token_expire_minutes``.
    """
    lifetime = expires_delta or timedelta(minutes=settings.jwt_access_token_expire_minutes)
    return _encode(user_id, ACCESS, lifetime)


def create_refresh_token(user_id: str, expires_delta: timedelta | None = None) -> str:
    """Create a refresh token for ``user_id``.

    Defaults to ``settings.jwt_refresh_token_expire_days``.
    """
    lifetime = expires_delta or timedelta(days=settings.jwt_refresh_token_expire_days)
    return _encode(user_id, REFRESH, lifetime)


def decode_token(token: str, expected_type: str | None = None) -> dict:
    """Verify a token's signature and expiry and return its payload.

    Raises:
        jose.JWTError: If the token is invalid, expired, malformed, or of a
            different type than ``expected_type``.
    """
    payload = jwt.decode(token, settings.jwt_secret_key, algorithms=[settings.jwt_algorithm])
    if expected_type is not None and payload.get("type") != expected_type:
        raise JWTError(f"Expected a {expected_type} token")
    return payload


def token_user_id(payload: dict) -> uuid.UUID:
    """The user UUID carried in the ``sub`` claim.

    Raises:
        jose.JWTError: If the claim is missing or not a UUID.
    """
    try:
        return uuid.UUID(payload["sub"])
    except (KeyError, TypeError, ValueError):
        raise JWTError("Invalid subject claim") from None


def create_token_pair(user_id: str) -> dict[str, str]:
    """Access + refresh tokens for a freshly authenticated user."""
    return {
        "access_token": create_access_token(user_id),
        "refresh_token": create_refresh_token(user_id),
        "token_type": "bearer",
    }
