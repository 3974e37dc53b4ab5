"""Application error taxonomy and its HTTP translation.

Service-level code raises these instead of ``HTTPException`` so it stays
usable outside a request; the handler registered in ``app.main`` turns
them into ``{"detail": ...}`` responses.
"""

import logging

from fastapi import Request, status
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


class AppError(Exception):
    """Base class for errors that map onto an HTTP status."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    headers: dict[str, str] | None = None

    def __init__(self, detail: str) -> None:
        super().__init__(detail)
        self.detail = detail


class ConfigurationError(AppError):
    """A required secret or setting is absent."""

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR


class AuthenticationError(AppError):
    """Credentials are missing, invalid or expired."""

    status_code = status.HTTP_401_UNAUTHORIZED
    headers = {"WWW-Authenticate": "Bearer"}


class SignatureError(AuthenticationError):
    """A webhook payload failed provider signature verification."""

    status_code = status.HTTP_400_BAD_REQUEST
    headers = None


class ValidationError(AppError):
    """A required request field is missing or unusable."""

    status_code = status.HTTP_400_BAD_REQUEST


class UpstreamError(AppError):
    """The payment provider call failed."""

    status_code = status.HTTP_502_BAD_GATEWAY


class NotFoundError(AppError):
    """A user, customer or record could not be resolved."""

    status_code = status.HTTP_404_NOT_FOUND


class ConflictError(AppError):
    """The request clashes with existing state."""

    status_code = status.HTTP_409_CONFLICT


async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    """Convert an ``AppError`` into a JSON error response."""
    if exc.status_code >= 500:
        logger.error("%s on %s %s: %s", type(exc).__name__, request.method, request.url.path, exc.detail)
    else:
        logger.info("%s on %s %s: %s", type(exc).__name__, request.method, request.url.path, exc.detail)
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail}, headers=exc.headers)
