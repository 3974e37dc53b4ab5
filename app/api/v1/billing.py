"""Billing API endpoints: plan catalogue, entitlement status, Stripe Checkout, and Customer Portal."""

import logging

import stripe
from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import get_current_active_user, get_db
from app.billing.dependencies import count_entries_today
from app.billing.plans import PLANS, PlanLimits, get_plan, is_known_price, price_to_plan
from app.billing.stripe_client import (
    create_checkout_session,
    create_portal_session,
)
from app.config import settings
from app.errors import UpstreamError, ValidationError
from app.models.user import User
from app.schemas.billing import (
    CheckoutRequest,
    CheckoutResponse,
    PlanResponse,
    PlansListResponse,
    PortalRequest,
    PortalResponse,
    SubscriptionResponse,
    UsageResponse,
)
from app.services.subscription_service import (
    effective_plan,
    ensure_stripe_customer,
    get_or_create_entitlement,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/billing", tags=["billing"])


def _plan_response(p: PlanLimits) -> PlanResponse:
    return PlanResponse(
        name=p.name.value,
        display_name=p.display_name,
        subtitle=p.subtitle,
        price_monthly_cents=p.price_monthly_cents,
        daily_analyses=p.daily_analyses,
        history_days=p.history_days,
        bankroll_entries_per_day=p.bankroll_entries_per_day,
        can_see_alerts=p.can_see_alerts,
        can_use_smart_risk=p.can_use_smart_risk,
        can_export_csv=p.can_export_csv,
        stripe_price_id=p.stripe_price_id,
    )


@router.get("/plans", response_model=PlansListResponse)
async def list_plans() -> PlansListResponse:
    """List available plans (public: no auth required)."""
    return PlansListResponse(plans=[_plan_response(p) for p in PLANS.values()])


@router.get("/subscription", response_model=SubscriptionResponse)
async def get_subscription(
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
) -> SubscriptionResponse:
    """Get the stored entitlement, the plan actually granted, and today's usage."""
    entitlement = await get_or_create_entitlement(db, current_user)
    plan = get_plan(effective_plan(entitlement))
    entries_today = await count_entries_today(db, current_user)

    return SubscriptionResponse(
        plan=entitlement.plan,
        effective_plan=_plan_response(plan),
        status=entitlement.status,
        expires_at=entitlement.expires_at,
        stripe_customer_id=entitlement.stripe_customer_id,
        stripe_subscription_id=entitlement.stripe_subscription_id,
        usage=UsageResponse(
            bankroll_entries_today=entries_today,
            bankroll_entries_limit=plan.bankroll_entries_per_day,
        ),
    )


@router.post("/checkout", response_model=CheckoutResponse)
async def create_checkout(
    body: CheckoutRequest,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
) -> CheckoutResponse:
    """Create a Stripe Checkout session for a paid plan."""
    if not body.price_id:
        raise ValidationError("price_id is required")
    if not is_known_price(body.price_id):
        logger.warning("Checkout requested with unknown price %s by user %s", body.price_id, current_user.id)
        raise ValidationError("Unknown price_id")

    plan = price_to_plan(body.price_id)
    if body.plan_key and body.plan_key not in (plan.value, plan.legacy_value):
        logger.info(
            "Checkout plan_key %s does not match price %s (%s); using the price",
            body.plan_key,
            body.price_id,
            plan.value,
        )

    entitlement = await get_or_create_entitlement(db, current_user)

    try:
        # Ensure Stripe customer exists
        customer_id = await ensure_stripe_customer(db, current_user, entitlement)
        session = await create_checkout_session(
            customer_id=customer_id,
            price_id=body.price_id,
            success_url=f"{settings.frontend_url}/dashboard?checkout=success",
            cancel_url=f"{settings.frontend_url}/?checkout=cancel#planos",
            metadata={
                "user_id": str(current_user.id),
                "plan_key": plan.value,
                "app": settings.stripe_app_tag,
            },
        )
    except stripe.StripeError as e:
        logger.error("Stripe checkout error: %s", e)
        raise UpstreamError(f"Stripe checkout failed: {e.user_message or e}") from e

    # Keep the customer mapping even if the user abandons checkout
    await db.commit()

    logger.info("Checkout session %s created for user %s (plan %s)", session.id, current_user.id, plan.value)
    return CheckoutResponse(url=session.url, session_id=session.id)


@router.post("/portal", response_model=PortalResponse)
async def create_portal(
    body: PortalRequest,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
) -> PortalResponse:
    """Create a Stripe Customer Portal session for subscription management."""
    entitlement = await get_or_create_entitlement(db, current_user)

    if not entitlement.stripe_customer_id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="No Stripe customer found. Subscribe first.",
        )

    return_url = body.return_url or f"{settings.frontend_url}/dashboard"

    try:
        session = await create_portal_session(
            customer_id=entitlement.stripe_customer_id,
            return_url=return_url,
        )
    except stripe.StripeError as e:
        logger.error("Stripe portal error: %s", e)
        raise UpstreamError(f"Stripe portal failed: {e.user_message or e}") from e

    return PortalResponse(portal_url=session.url)
