"""Subscription service: entitlement persistence and the subscription event log."""

import logging
import uuid
from datetime import datetime

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.billing.plans import ACCESS_STATUSES, Plan, SubscriptionStatus, get_plan
from app.billing.stripe_client import create_customer, find_customer_by_email
from app.config import settings
from app.database import utcnow
from app.models.entitlement import Entitlement
from app.models.subscription_event import SubscriptionEvent
from app.models.user import User

logger = logging.getLogger(__name__)


async def get_or_create_entitlement(db: AsyncSession, user: User) -> Entitlement:
    """Get existing entitlement or create a free-tier one for the user."""
    result = await db.execute(select(Entitlement).where(Entitlement.user_id == user.id))
    entitlement = result.scalar_one_or_none()

    if entitlement is not None:
        return entitlement

    logger.info("Creating free-tier entitlement for user %s", user.id)
    entitlement = Entitlement(
        user_id=user.id,
        plan=Plan.FREE.value,
        status=SubscriptionStatus.ACTIVE.value,
    )
    db.add(entitlement)
    await db.flush()
    return entitlement


async def get_entitlement_by_stripe_customer(
    db: AsyncSession, stripe_customer_id: str
) -> Entitlement | None:
    """Look up entitlement by Stripe customer ID (used by webhooks)."""
    result = await db.execute(
        select(Entitlement).where(Entitlement.stripe_customer_id == stripe_customer_id)
    )
    return result.scalar_one_or_none()


async def get_user_by_id(db: AsyncSession, user_id: str | uuid.UUID) -> User | None:
    """Load a user from an id that may arrive as an untrusted string."""
    if isinstance(user_id, str):
        try:
            user_id = uuid.UUID(user_id)
        except ValueError:
            return None
    result = await db.execute(select(User).where(User.id == user_id))
    return result.scalar_one_or_none()


async def get_user_by_email(db: AsyncSession, email: str) -> User | None:
    """Indexed lookup of a user by email."""
    result = await db.execute(select(User).where(User.email == email))
    return result.scalar_one_or_none()


async def ensure_stripe_customer(
    db: AsyncSession, user: User, entitlement: Entitlement
) -> str:
    """Ensure the user has a Stripe customer ID, reusing or creating one.

    Order: the stored ID, then an existing Stripe customer with the user's
    email, then a newly created customer. The ID is stored on the entitlement
    immediately so later webhook events resolve without a fallback lookup.
    """
    if entitlement.stripe_customer_id:
        return entitlement.stripe_customer_id

    customer = await find_customer_by_email(user.email)
    if customer is not None:
        logger.info("Reusing Stripe customer %s for user %s", customer.id, user.id)
    else:
        customer = await create_customer(
            email=user.email,
            name=user.name or user.email,
            user_id=str(user.id),
        )

    entitlement.stripe_customer_id = customer.id
    await db.flush()
    logger.info("Linked Stripe customer %s to user %s", customer.id, user.id)
    return customer.id


async def apply_subscription_state(
    db: AsyncSession,
    entitlement: Entitlement,
    plan: Plan,
    status: SubscriptionStatus,
    stripe_subscription_id: str | None = None,
    stripe_customer_id: str | None = None,
    expires_at: datetime | None = None,
) -> Entitlement:
    """Write a reconciled plan/status onto the entitlement.

    ``expires_at`` is only overwritten when a value is given; callers decide
    when the provider's period end applies.
    """
    entitlement.plan = plan.value
    entitlement.status = status.value
    if stripe_subscription_id:
        entitlement.stripe_subscription_id = stripe_subscription_id
    if stripe_customer_id and not entitlement.stripe_customer_id:
        entitlement.stripe_customer_id = stripe_customer_id
    if expires_at is not None:
        entitlement.expires_at = expires_at
    await db.flush()

    logger.info(
        "Updated entitlement %s: plan=%s (%s), status=%s, expires_at=%s",
        entitlement.id,
        plan.value,
        get_plan(plan).display_name,
        status.value,
        entitlement.expires_at,
    )
    return entitlement


async def cancel_with_grace(
    db: AsyncSession, entitlement: Entitlement, expires_at: datetime
) -> Entitlement:
    """Mark the entitlement canceled but keep paid access until ``expires_at``."""
    entitlement.status = SubscriptionStatus.CANCELED.value
    entitlement.expires_at = expires_at
    await db.flush()

    logger.info(
        "Canceled entitlement %s (user %s), access until %s",
        entitlement.id,
        entitlement.user_id,
        expires_at,
    )
    return entitlement


async def expire_to_free(db: AsyncSession, entitlement: Entitlement) -> Entitlement:
    """Downgrade to the free tier once the paid period is over."""
    entitlement.stripe_subscription_id = None
    entitlement.plan = Plan.FREE.value
    entitlement.status = SubscriptionStatus.EXPIRED.value
    entitlement.expires_at = None
    await db.flush()

    logger.info(
        "Expired entitlement %s (user %s) to free tier",
        entitlement.id,
        entitlement.user_id,
    )
    return entitlement


async def mark_past_due(db: AsyncSession, entitlement: Entitlement) -> Entitlement:
    """Flag a failed payment without touching the plan."""
    entitlement.status = SubscriptionStatus.PAST_DUE.value
    await db.flush()
    logger.info("Entitlement %s marked past_due", entitlement.id)
    return entitlement


async def has_processed_event(db: AsyncSession, external_id: str) -> bool:
    """True if a provider event with this ID was already applied."""
    result = await db.execute(
        select(SubscriptionEvent.id).where(SubscriptionEvent.external_id == external_id)
    )
    return result.scalar_one_or_none() is not None


async def record_subscription_event(
    db: AsyncSession,
    *,
    external_id: str,
    event_type: str,
    status: SubscriptionStatus,
    user_id: uuid.UUID | None,
    plan: Plan | None = None,
    amount: int | None = None,
    stripe_subscription_id: str | None = None,
    raw_event: dict | None = None,
) -> SubscriptionEvent:
    """Append one immutable row to the subscription event log."""
    event = SubscriptionEvent(
        user_id=user_id,
        provider="stripe",
        event_type=event_type,
        status=status.value,
        plan_key=plan.value if plan is not None else None,
        amount=amount,
        currency=settings.stripe_currency.upper(),
        stripe_subscription_id=stripe_subscription_id,
        external_id=external_id,
        raw_event=raw_event,
    )
    db.add(event)
    await db.flush()
    return event


async def subscription_was_deleted(db: AsyncSession, stripe_subscription_id: str) -> bool:
    """True if a deletion of this Stripe subscription was already applied."""
    result = await db.execute(
        select(SubscriptionEvent.id)
        .where(
            SubscriptionEvent.stripe_subscription_id == stripe_subscription_id,
            SubscriptionEvent.event_type == "customer.subscription.deleted",
        )
        .limit(1)
    )
    return result.scalar_one_or_none() is not None


def effective_plan(entitlement: Entitlement | None, now: datetime | None = None) -> Plan:
    """The plan actually granted right now.

    A paid plan counts while its status still carries access and it has not
    passed ``expires_at``; anything else falls back to free. A ``past_due``
    plan needs a known expiry, since its access is a grace period.
    """
    if entitlement is None:
        return Plan.FREE
    plan = entitlement.plan_enum
    if not plan.is_paid:
        return Plan.FREE
    if entitlement.status_enum not in ACCESS_STATUSES:
        return Plan.FREE
    if entitlement.status_enum is SubscriptionStatus.PAST_DUE and entitlement.expires_at is None:
        return Plan.FREE
    now = now or utcnow()
    if entitlement.expires_at is not None and entitlement.expires_at <= now:
        return Plan.FREE
    return plan
