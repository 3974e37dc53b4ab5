"""Tests for billing API endpoints with mocked Stripe calls."""

from datetime import datetime, timedelta
from types import SimpleNamespace
from unittest.mock import AsyncMock, patch

import pytest
import stripe
from httpx import AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

from app.billing.plans import Plan
from app.database import utcnow

_PRICE_TABLE = {"price_basic_test": Plan.BASIC, "price_pro_test": Plan.PRO}


@pytest.fixture(autouse=True)
def price_table():
    with patch.dict("app.billing.plans.PRICE_TO_PLAN", _PRICE_TABLE, clear=True):
        yield


class TestListPlans:
    """Test GET /api/v1/billing/plans."""

    @pytest.mark.asyncio
    async def test_list_plans_returns_4_plans(self, client: AsyncClient):
        response = await client.get("/api/v1/billing/plans")
        assert response.status_code == 200
        names = [p["name"] for p in response.json()["plans"]]
        assert names == ["free", "basic", "pro", "elite"]

    @pytest.mark.asyncio
    async def test_free_plan_limits(self, client: AsyncClient):
        plans = (await client.get("/api/v1/billing/plans")).json()["plans"]
        free = next(p for p in plans if p["name"] == "free")
        assert free["bankroll_entries_per_day"] == 1
        assert free["daily_analyses"] == 1
        assert free["history_days"] == 3
        assert free["can_see_alerts"] is False
        assert free["price_monthly_cents"] == 0


class TestGetSubscription:
    """Test GET /api/v1/billing/subscription."""

    @pytest.mark.asyncio
    async def test_reports_entitlement_and_usage(self, client: AsyncClient, make_user):
        _, _, headers = await make_user(plan="pro", expires_at=utcnow() + timedelta(days=10))
        response = await client.get("/api/v1/billing/subscription", headers=headers)
        assert response.status_code == 200
        data = response.json()
        assert data["plan"] == "pro"
        assert data["effective_plan"]["name"] == "pro"
        assert data["status"] == "active"
        assert data["usage"] == {"bankroll_entries_today": 0, "bankroll_entries_limit": 50}

    @pytest.mark.asyncio
    async def test_lapsed_plan_is_effectively_free(self, client: AsyncClient, make_user):
        _, _, headers = await make_user(plan="pro", status="canceled", expires_at=datetime(2020, 1, 1))
        data = (await client.get("/api/v1/billing/subscription", headers=headers)).json()
        assert data["plan"] == "pro"
        assert data["effective_plan"]["name"] == "free"
        assert data["usage"]["bankroll_entries_limit"] == 1

    @pytest.mark.asyncio
    async def test_requires_auth(self, client: AsyncClient):
        response = await client.get("/api/v1/billing/subscription")
        assert response.status_code == 401


class TestCheckout:
    """Test POST /api/v1/billing/checkout."""

    @pytest.mark.asyncio
    async def test_creates_session_and_links_customer(
        self, client: AsyncClient, db_session: AsyncSession, make_user
    ):
        user, entitlement, headers = await make_user()
        session = SimpleNamespace(id="cs_test_123", url="https://checkout.stripe.com/c/pay/cs_test_123")

        with (
            patch(
                "app.services.subscription_service.find_customer_by_email",
                new_callable=AsyncMock,
                return_value=None,
            ),
            patch(
                "app.services.subscription_service.create_customer",
                new_callable=AsyncMock,
                return_value=SimpleNamespace(id="cus_checkout_new"),
            ),
            patch(
                "app.api.v1.billing.create_checkout_session",
                new_callable=AsyncMock,
                return_value=session,
            ) as mock_session,
        ):
            response = await client.post(
                "/api/v1/billing/checkout",
                json={"priceId": "price_pro_test", "planKey": "pro"},
                headers=headers,
            )

        assert response.status_code == 200
        assert response.json() == {"url": session.url, "session_id": "cs_test_123"}

        kwargs = mock_session.await_args.kwargs
        assert kwargs["customer_id"] == "cus_checkout_new"
        assert kwargs["price_id"] == "price_pro_test"
        assert kwargs["metadata"]["user_id"] == str(user.id)
        assert kwargs["metadata"]["plan_key"] == "pro"
        assert kwargs["success_url"].endswith("/dashboard?checkout=success")

        await db_session.refresh(entitlement)
        assert entitlement.stripe_customer_id == "cus_checkout_new"
        # Plan only changes once the webhook confirms payment
        assert entitlement.plan == "free"

    @pytest.mark.asyncio
    async def test_missing_price_id(self, client: AsyncClient, make_user):
        _, _, headers = await make_user()
        response = await client.post("/api/v1/billing/checkout", json={"plan_key": "pro"}, headers=headers)
        assert response.status_code == 400
        assert response.json()["detail"] == "price_id is required"

    @pytest.mark.asyncio
    async def test_unknown_price_rejected(self, client: AsyncClient, make_user):
        _, _, headers = await make_user()
        response = await client.post(
            "/api/v1/billing/checkout", json={"price_id": "price_not_ours"}, headers=headers,
        )
        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_stripe_failure_is_502(self, client: AsyncClient, make_user):
        _, _, headers = await make_user(stripe_customer_id="cus_has_one")
        with patch(
            "app.api.v1.billing.create_checkout_session",
            new_callable=AsyncMock,
            side_effect=stripe.APIConnectionError("network down"),
        ):
            response = await client.post(
                "/api/v1/billing/checkout", json={"price_id": "price_basic_test"}, headers=headers,
            )
        assert response.status_code == 502

    @pytest.mark.asyncio
    async def test_requires_auth(self, client: AsyncClient):
        response = await client.post("/api/v1/billing/checkout", json={"price_id": "price_pro_test"})
        assert response.status_code == 401


class TestPortal:
    """Test POST /api/v1/billing/portal."""

    @pytest.mark.asyncio
    async def test_returns_portal_url(self, client: AsyncClient, make_user):
        _, _, headers = await make_user(plan="pro", stripe_customer_id="cus_portal")
        with patch(
            "app.api.v1.billing.create_portal_session",
            new_callable=AsyncMock,
            return_value=SimpleNamespace(url="https://billing.stripe.com/p/session/test"),
        ) as mock_portal:
            response = await client.post("/api/v1/billing/portal", json={}, headers=headers)

        assert response.status_code == 200
        assert response.json()["portal_url"] == "https://billing.stripe.com/p/session/test"
        assert mock_portal.await_args.kwargs["customer_id"] == "cus_portal"

    @pytest.mark.asyncio
    async def test_without_customer_is_400(self, client: AsyncClient, make_user):
        _, _, headers = await make_user()
        response = await client.post("/api/v1/billing/portal", json={}, headers=headers)
        assert response.status_code == 400
