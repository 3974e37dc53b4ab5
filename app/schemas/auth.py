"""Request/response schemas for bettor accounts and sessions."""

import uuid
from datetime import datetime

from pydantic import BaseModel, EmailStr, Field


class LoginRequest(BaseModel):
    email: EmailStr
    password: str


class RegisterRequest(LoginRequest):
    """New bettor account; starts on the free plan."""

    password: str = Field(..., min_length=8, max_length=128)
    name: str = Field(..., min_length=1, max_length=255)


class RefreshRequest(BaseModel):
    refresh_token: str


class TokenPair(BaseModel):
    access_token: str
    refresh_token: str
    token_type: str = "bearer"


class AccountResponse(BaseModel):
    """Bettor profile with the plan granted right now.

    ``plan`` is the effective plan, so a lapsed subscription already reads
    as ``free`` here; ``plan_status`` is the stored subscription status.
    """

    id: uuid.UUID
    email: str
    name: str
    plan: str
    plan_status: str
    plan_expires_at: datetime | None = None
    created_at: datetime


class SessionResponse(BaseModel):
    """Account plus a fresh token pair, returned on register and login."""

    account: AccountResponse
    tokens: TokenPair
