"""Pydantic v2 request/response schemas for billing endpoints."""

from datetime import datetime

from pydantic import AliasChoices, BaseModel, Field

# --- Request schemas ---


class CheckoutRequest(BaseModel):
    """Request to create a Stripe Checkout session.

    Accepts both snake_case and the camelCase keys browser clients send.
    """

    price_id: str | None = Field(None, validation_alias=AliasChoices("price_id", "priceId"))
    plan_key: str | None = Field(None, validation_alias=AliasChoices("plan_key", "planKey"))


class PortalRequest(BaseModel):
    """Request to create a Stripe Customer Portal session."""

    return_url: str | None = None


# --- Response schemas ---


class PlanResponse(BaseModel):
    """Plan details for display."""

    name: str
    display_name: str
    subtitle: str
    price_monthly_cents: int
    daily_analyses: int | None
    history_days: int | None
    bankroll_entries_per_day: int
    can_see_alerts: bool
    can_use_smart_risk: bool
    can_export_csv: bool
    stripe_price_id: str | None


class UsageResponse(BaseModel):
    """Today's bankroll quota usage."""

    bankroll_entries_today: int
    bankroll_entries_limit: int


class SubscriptionResponse(BaseModel):
    """Stored entitlement, the plan actually granted, and usage."""

    plan: str
    effective_plan: PlanResponse
    status: str
    expires_at: datetime | None
    stripe_customer_id: str | None
    stripe_subscription_id: str | None
    usage: UsageResponse


class CheckoutResponse(BaseModel):
    """Stripe Checkout session URL returned to frontend."""

    url: str
    session_id: str


class PortalResponse(BaseModel):
    """Stripe Customer Portal URL returned to frontend."""

    portal_url: str


class PlansListResponse(BaseModel):
    """All available plans."""

    plans: list[PlanResponse]
