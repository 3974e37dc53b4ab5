"""Shared test configuration and fixtures.

Uses a transactional rollback strategy per test for full isolation:
- Each test gets a fresh in-memory SQLite database (aiosqlite) by default.
- Set ``TEST_DATABASE_URL`` to run against another database, e.g. a
  PostgreSQL ``betanalizer_test`` database.
- Each test's session runs inside a transaction that rolls back afterwards.
"""

import os
import uuid
from collections.abc import AsyncGenerator
from datetime import datetime

import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.pool import StaticPool

from app.auth.jwt import create_token_pair
from app.auth.passwords import hash_password
from app.database import Base, get_db
from app.main import app
from app.models.entitlement import Entitlement
from app.models.user import User

_test_db_url = os.getenv("TEST_DATABASE_URL", "sqlite+aiosqlite://")


def _make_engine():
    if _test_db_url.startswith("sqlite"):
        # One shared connection so every session sees the same in-memory database
        return create_async_engine(
            _test_db_url,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
    return create_async_engine(_test_db_url, pool_pre_ping=True)


# ---------------------------------------------------------------------------
# Per-test: schema + transactional rollback for isolation
# ---------------------------------------------------------------------------


@pytest_asyncio.fixture
async def test_engine():
    """Create an engine with all tables, dropped again after the test."""
    engine = _make_engine()
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest_asyncio.fixture
async def db_session(test_engine) -> AsyncGenerator[AsyncSession, None]:
    """Yield an async session wrapped in a transaction that always rolls back."""
    async with test_engine.connect() as connection:
        transaction = await connection.begin()
        session = AsyncSession(bind=connection, expire_on_commit=False)

        try:
            yield session
        finally:
            await session.close()
            await transaction.rollback()


@pytest_asyncio.fixture
async def client(db_session: AsyncSession) -> AsyncGenerator[AsyncClient, None]:
    """Provide an httpx AsyncClient wired to use the test DB session."""

    async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
        yield db_session

    app.dependency_overrides[get_db] = override_get_db

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://testserver") as ac:
        yield ac

    app.dependency_overrides.clear()


# ---------------------------------------------------------------------------
# Convenience helpers: users on a given plan
# ---------------------------------------------------------------------------


async def _create_user_with_plan(
    db_session: AsyncSession,
    plan: str = "free",
    status: str = "active",
    stripe_customer_id: str | None = None,
    stripe_subscription_id: str | None = None,
    expires_at: datetime | None = None,
    email: str | None = None,
) -> tuple[User, Entitlement]:
    """Create a user and its entitlement directly in the DB."""
    unique = uuid.uuid4().hex[:8]
    user = User(
        email=email or f"bettor-{unique}@test.com",
        hashed_password=hash_password("testpass123"),
        name="Test Bettor",
        is_active=True,
    )
    db_session.add(user)
    await db_session.flush()

    entitlement = Entitlement(
        user_id=user.id,
        plan=plan,
        status=status,
        stripe_customer_id=stripe_customer_id,
        stripe_subscription_id=stripe_subscription_id,
        expires_at=expires_at,
    )
    db_session.add(entitlement)
    await db_session.flush()
    await db_session.refresh(user)
    return user, entitlement


def _headers_for(user: User) -> dict[str, str]:
    """Authorization headers carrying a fresh access token for ``user``."""
    tokens = create_token_pair(str(user.id))
    return {"Authorization": f"Bearer {tokens['access_token']}"}


# ---------------------------------------------------------------------------
# Convenience fixtures: authenticated users
# ---------------------------------------------------------------------------


@pytest_asyncio.fixture
async def test_user(db_session: AsyncSession) -> User:
    """A pro-plan user."""
    user, _ = await _create_user_with_plan(db_session, plan="pro")
    return user


@pytest_asyncio.fixture
async def auth_headers(test_user: User) -> dict[str, str]:
    """Return Authorization headers for the pro-plan test user."""
    return _headers_for(test_user)


@pytest_asyncio.fixture
async def test_free_user(db_session: AsyncSession) -> User:
    """A free-plan user."""
    user, _ = await _create_user_with_plan(db_session, plan="free")
    return user


@pytest_asyncio.fixture
async def free_auth_headers(test_free_user: User) -> dict[str, str]:
    """Return Authorization headers for the free-plan test user."""
    return _headers_for(test_free_user)


@pytest_asyncio.fixture
async def make_user(db_session: AsyncSession):
    """Factory: ``await make_user(plan="basic", ...)`` -> ``(user, entitlement, headers)``."""

    async def _make(**kwargs) -> tuple[User, Entitlement, dict[str, str]]:
        user, entitlement = await _create_user_with_plan(db_session, **kwargs)
        return user, entitlement, _headers_for(user)

    return _make
