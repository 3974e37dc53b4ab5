"""Bettor account endpoints: register, login, refresh, me."""

import logging

from fastapi import APIRouter, Depends, HTTPException, status
from jose import JWTError
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.dependencies import get_current_active_user
from app.auth.jwt import REFRESH, create_token_pair, decode_token, token_user_id
from app.auth.passwords import hash_password, verify_password
from app.database import get_db
from app.errors import AuthenticationError, ConflictError
from app.models.user import User
from app.schemas.auth import (
    AccountResponse,
    LoginRequest,
    RefreshRequest,
    RegisterRequest,
    SessionResponse,
    TokenPair,
)
from app.services.subscription_service import (
    effective_plan,
    get_or_create_entitlement,
    get_user_by_email,
    get_user_by_id,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/auth", tags=["auth"])


async def _account(db: AsyncSession, user: User) -> AccountResponse:
    entitlement = await get_or_create_entitlement(db, user)
    return AccountResponse(
        id=user.id,
        email=user.email,
        name=user.name,
        plan=effective_plan(entitlement).value,
        plan_status=entitlement.status,
        plan_expires_at=entitlement.expires_at,
        created_at=user.created_at,
    )


async def _session(db: AsyncSession, user: User) -> SessionResponse:
    return SessionResponse(
        account=await _account(db, user),
        tokens=TokenPair(**create_token_pair(str(user.id))),
    )


@router.post("/register", response_model=SessionResponse, status_code=status.HTTP_201_CREATED)
async def register(body: RegisterRequest, db: AsyncSession = Depends(get_db)) -> SessionResponse:
    """Open a bettor account on the free plan and sign it in."""
    if await get_user_by_email(db, body.email) is not None:
        raise ConflictError("Email already registered")

    user = User(email=body.email, hashed_password=hash_password(body.password), name=body.name)
    db.add(user)
    await db.flush()
    await db.refresh(user)
    logger.info("Registered user %s", user.id)

    return await _session(db, user)


@router.post("/login", response_model=SessionResponse)
async def login(body: LoginRequest, db: AsyncSession = Depends(get_db)) -> SessionResponse:
    user = await get_user_by_email(db, body.email)
    if user is None or user.hashed_password is None or not verify_password(body.password, user.hashed_password):
        raise AuthenticationError("Invalid email or password")

    if not user.is_active:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Account is inactive")

    return await _session(db, user)


@router.post("/refresh", response_model=TokenPair)
async def refresh(body: RefreshRequest, db: AsyncSession = Depends(get_db)) -> TokenPair:
    """Trade a refresh token for a new pair; access tokens are refused."""
    try:
        user_id = token_user_id(decode_token(body.refresh_token, expected_type=REFRESH))
    except JWTError:
        raise AuthenticationError("Invalid or expired refresh token") from None

    user = await get_user_by_id(db, user_id)
    if user is None or not user.is_active:
        raise AuthenticationError("User not found or inactive")

    return TokenPair(**create_token_pair(str(user.id)))


@router.get("/me", response_model=AccountResponse)
async def me(
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
) -> AccountResponse:
    return await _account(db, current_user)
