"""Tests for entitlement persistence, the event log and effective plan resolution."""

from datetime import datetime, timedelta
from types import SimpleNamespace
from unittest.mock import AsyncMock, patch

import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from app.billing.plans import Plan, SubscriptionStatus
from app.models.entitlement import Entitlement
from app.models.user import User
from app.services.subscription_service import (
    apply_subscription_state,
    cancel_with_grace,
    effective_plan,
    ensure_stripe_customer,
    expire_to_free,
    get_or_create_entitlement,
    get_user_by_id,
    has_processed_event,
    record_subscription_event,
)

NOW = datetime(2026, 3, 15, 12, 0, 0)


class TestGetOrCreateEntitlement:
    @pytest.mark.asyncio
    async def test_creates_free_entitlement(self, db_session: AsyncSession):
        user = User(email="new@test.com", hashed_password="x", name="New")
        db_session.add(user)
        await db_session.flush()

        entitlement = await get_or_create_entitlement(db_session, user)
        assert entitlement.plan == "free"
        assert entitlement.status == "active"
        assert entitlement.expires_at is None

    @pytest.mark.asyncio
    async def test_returns_existing(self, db_session: AsyncSession, make_user):
        user, existing, _ = await make_user(plan="elite")
        entitlement = await get_or_create_entitlement(db_session, user)
        assert entitlement.id == existing.id
        assert entitlement.plan == "elite"


class TestGetUserById:
    @pytest.mark.asyncio
    async def test_accepts_string_uuid(self, db_session: AsyncSession, make_user):
        user, _, _ = await make_user()
        assert (await get_user_by_id(db_session, str(user.id))).id == user.id

    @pytest.mark.asyncio
    async def test_garbage_string_is_none(self, db_session: AsyncSession):
        assert await get_user_by_id(db_session, "12345") is None


class TestEnsureStripeCustomer:
    @pytest.mark.asyncio
    async def test_returns_stored_id_without_calling_stripe(self, db_session: AsyncSession, make_user):
        user, entitlement, _ = await make_user(stripe_customer_id="cus_existing")
        with (
            patch("app.services.subscription_service.find_customer_by_email", new_callable=AsyncMock) as mock_find,
            patch("app.services.subscription_service.create_customer", new_callable=AsyncMock) as mock_create,
        ):
            assert await ensure_stripe_customer(db_session, user, entitlement) == "cus_existing"
        mock_find.assert_not_awaited()
        mock_create.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_reuses_customer_found_by_email(self, db_session: AsyncSession, make_user):
        user, entitlement, _ = await make_user()
        with (
            patch(
                "app.services.subscription_service.find_customer_by_email",
                new_callable=AsyncMock,
                return_value=SimpleNamespace(id="cus_by_email"),
            ),
            patch("app.services.subscription_service.create_customer", new_callable=AsyncMock) as mock_create,
        ):
            assert await ensure_stripe_customer(db_session, user, entitlement) == "cus_by_email"
        mock_create.assert_not_awaited()
        assert entitlement.stripe_customer_id == "cus_by_email"

    @pytest.mark.asyncio
    async def test_creates_customer_with_user_metadata(self, db_session: AsyncSession, make_user):
        user, entitlement, _ = await make_user()
        with (
            patch(
                "app.services.subscription_service.find_customer_by_email",
                new_callable=AsyncMock,
                return_value=None,
            ),
            patch(
                "app.services.subscription_service.create_customer",
                new_callable=AsyncMock,
                return_value=SimpleNamespace(id="cus_created"),
            ) as mock_create,
        ):
            assert await ensure_stripe_customer(db_session, user, entitlement) == "cus_created"
        mock_create.assert_awaited_once_with(email=user.email, name=user.name, user_id=str(user.id))
        assert entitlement.stripe_customer_id == "cus_created"


class TestStateTransitions:
    @pytest.mark.asyncio
    async def test_apply_keeps_expiry_when_not_given(self, db_session: AsyncSession, make_user):
        expiry = datetime(2031, 1, 1)
        _, entitlement, _ = await make_user(plan="pro", expires_at=expiry)
        await apply_subscription_state(db_session, entitlement, Plan.ELITE, SubscriptionStatus.PAST_DUE)
        assert entitlement.plan == "elite"
        assert entitlement.status == "past_due"
        assert entitlement.expires_at == expiry

    @pytest.mark.asyncio
    async def test_apply_does_not_replace_customer(self, db_session: AsyncSession, make_user):
        _, entitlement, _ = await make_user(stripe_customer_id="cus_original")
        await apply_subscription_state(
            db_session, entitlement, Plan.PRO, SubscriptionStatus.ACTIVE, stripe_customer_id="cus_other",
        )
        assert entitlement.stripe_customer_id == "cus_original"

    @pytest.mark.asyncio
    async def test_cancel_with_grace(self, db_session: AsyncSession, make_user):
        _, entitlement, _ = await make_user(plan="pro")
        await cancel_with_grace(db_session, entitlement, datetime(2031, 1, 1))
        assert entitlement.plan == "pro"
        assert entitlement.status == "canceled"
        assert entitlement.expires_at == datetime(2031, 1, 1)

    @pytest.mark.asyncio
    async def test_expire_to_free(self, db_session: AsyncSession, make_user):
        _, entitlement, _ = await make_user(plan="pro", stripe_subscription_id="sub_gone")
        await expire_to_free(db_session, entitlement)
        assert entitlement.plan == "free"
        assert entitlement.status == "expired"
        assert entitlement.stripe_subscription_id is None


class TestEventLog:
    @pytest.mark.asyncio
    async def test_record_and_detect(self, db_session: AsyncSession, make_user):
        user, _, _ = await make_user()
        assert not await has_processed_event(db_session, "evt_log_1")

        event = await record_subscription_event(
            db_session,
            external_id="evt_log_1",
            event_type="checkout.session.completed",
            status=SubscriptionStatus.ACTIVE,
            user_id=user.id,
            plan=Plan.BASIC,
            amount=4990,
            raw_event={"id": "cs_1"},
        )

        assert event.provider == "stripe"
        assert event.plan_key == "basic"
        assert event.currency == "BRL"
        assert await has_processed_event(db_session, "evt_log_1")


class TestEffectivePlan:
    def _entitlement(self, plan: str, status: str, expires_at: datetime | None) -> Entitlement:
        return Entitlement(plan=plan, status=status, expires_at=expires_at)

    def test_none_is_free(self):
        assert effective_plan(None, NOW) is Plan.FREE

    def test_active_paid_plan(self):
        assert effective_plan(self._entitlement("pro", "active", NOW + timedelta(days=3)), NOW) is Plan.PRO

    def test_canceled_in_grace_keeps_plan(self):
        assert effective_plan(self._entitlement("elite", "canceled", NOW + timedelta(hours=1)), NOW) is Plan.ELITE

    def test_past_expiry_is_free(self):
        assert effective_plan(self._entitlement("pro", "canceled", NOW - timedelta(seconds=1)), NOW) is Plan.FREE

    def test_past_due_keeps_plan(self):
        assert effective_plan(self._entitlement("basic", "past_due", NOW + timedelta(days=1)), NOW) is Plan.BASIC

    def test_past_due_without_expiry_is_free(self):
        assert effective_plan(self._entitlement("pro", "past_due", None), NOW) is Plan.FREE

    def test_expired_status_is_free(self):
        assert effective_plan(self._entitlement("pro", "expired", None), NOW) is Plan.FREE

    def test_no_expiry_keeps_plan(self):
        assert effective_plan(self._entitlement("pro", "active", None), NOW) is Plan.PRO

    def test_legacy_plan_value(self):
        assert effective_plan(self._entitlement("advanced", "active", None), NOW) is Plan.PRO
