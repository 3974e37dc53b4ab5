"""Stripe webhook event handlers: reconcile provider events into entitlements.

Each handler resolves the local user, applies one state transition and
appends one row to the subscription event log. Handlers never raise for an
unresolvable user; they log and return so the provider's retry (or a later
event) can settle the mapping.
"""

import logging
from datetime import datetime, timezone
from typing import Any

import stripe
from sqlalchemy.ext.asyncio import AsyncSession

from app.billing.plans import Plan, SubscriptionStatus, price_to_plan
from app.billing.stripe_client import get_customer, get_subscription
from app.database import utcnow
from app.models.entitlement import Entitlement
from app.services.subscription_service import (
    apply_subscription_state,
    cancel_with_grace,
    expire_to_free,
    get_entitlement_by_stripe_customer,
    get_or_create_entitlement,
    get_user_by_email,
    get_user_by_id,
    mark_past_due,
    record_subscription_event,
    subscription_was_deleted,
)

logger = logging.getLogger(__name__)

# Statuses for which the provider's period end becomes the local expiry.
_EXPIRING_STATUSES = (SubscriptionStatus.ACTIVE, SubscriptionStatus.TRIALING)


def _ts_to_naive(ts: int | None) -> datetime | None:
    """Convert Stripe Unix timestamp to naive UTC datetime."""
    if ts is None:
        return None
    return datetime.fromtimestamp(ts, tz=timezone.utc).replace(tzinfo=None)


def _as_id(value: Any) -> str | None:
    """Return the ID of a Stripe reference that may be a string or an expanded object."""
    if value is None or isinstance(value, str):
        return value
    return getattr(value, "id", None)


def _metadata(obj: Any) -> dict:
    return getattr(obj, "metadata", None) or {}


def _raw_payload(obj: Any) -> dict | None:
    to_dict = getattr(obj, "to_dict", None)
    return to_dict() if callable(to_dict) else None


def _get_first_item(stripe_sub: stripe.Subscription):
    """Get the first subscription item, using bracket notation to avoid
    collision with Python dict .items() in newer Stripe API versions.
    """
    sub_items = stripe_sub["items"]
    if sub_items and sub_items.data:
        return sub_items.data[0]
    return None


def _get_price_id_from_subscription(stripe_sub: stripe.Subscription) -> str | None:
    """Extract the first price ID from a Stripe subscription's items."""
    item = _get_first_item(stripe_sub)
    return item.price.id if item else None


def _get_period_end(stripe_sub: stripe.Subscription) -> datetime | None:
    """Extract the current period end.

    In Stripe API 2025-08-27 (basil), current_period_end moved from the
    subscription object to the subscription item; older payloads carry it
    on the subscription.
    """
    item = _get_first_item(stripe_sub)
    ts = getattr(item, "current_period_end", None) if item else None
    if ts is None:
        ts = getattr(stripe_sub, "current_period_end", None)
    return _ts_to_naive(ts)


def _get_invoice_subscription_id(invoice: stripe.Invoice) -> str | None:
    """Subscription ID of an invoice, from the legacy field or ``parent.subscription_details``."""
    subscription_id = _as_id(getattr(invoice, "subscription", None))
    if subscription_id:
        return subscription_id
    parent = getattr(invoice, "parent", None)
    details = getattr(parent, "subscription_details", None) if parent else None
    return _as_id(getattr(details, "subscription", None)) if details else None


def _plan_for_subscription(stripe_sub: stripe.Subscription) -> Plan:
    price_id = _get_price_id_from_subscription(stripe_sub)
    plan = price_to_plan(price_id)
    if plan is Plan.FREE:
        logger.warning(
            "Unknown price ID %s in subscription %s, defaulting to free",
            price_id,
            getattr(stripe_sub, "id", None),
        )
    return plan


async def resolve_entitlement(
    db: AsyncSession,
    customer_id: str | None,
    metadata: dict | None = None,
) -> Entitlement | None:
    """Find the entitlement an event belongs to.

    Tries, in order: the stored Stripe customer ID, the ``user_id`` that
    checkout attached as metadata, and finally the Stripe customer's email
    matched against the user table. The latter two backfill the customer ID.
    """
    if customer_id:
        entitlement = await get_entitlement_by_stripe_customer(db, customer_id)
        if entitlement is not None:
            return entitlement

    user = None
    user_id = (metadata or {}).get("user_id")
    if user_id:
        user = await get_user_by_id(db, user_id)

    if user is None and customer_id:
        customer = await get_customer(customer_id)
        email = None if getattr(customer, "deleted", False) else getattr(customer, "email", None)
        if email:
            user = await get_user_by_email(db, email)

    if user is None:
        return None

    entitlement = await get_or_create_entitlement(db, user)
    if customer_id and not entitlement.stripe_customer_id:
        entitlement.stripe_customer_id = customer_id
        await db.flush()
        logger.info("Backfilled Stripe customer %s for user %s", customer_id, user.id)
    return entitlement


async def _is_stale_subscription(
    db: AsyncSession, entitlement: Entitlement, subscription_id: str, event_type: str
) -> bool:
    """True when the event concerns a subscription the entitlement no longer follows.

    Covers a late event for an older subscription the user replaced, and a
    late event for a subscription whose deletion was already applied.
    """
    tracked = entitlement.stripe_subscription_id
    if tracked and tracked != subscription_id:
        logger.info(
            "Ignoring %s for %s: entitlement %s now tracks %s",
            event_type,
            subscription_id,
            entitlement.id,
            tracked,
        )
        return True
    if await subscription_was_deleted(db, subscription_id):
        logger.info("Ignoring %s for %s: subscription already deleted", event_type, subscription_id)
        return True
    return False


async def handle_checkout_session_completed(
    db: AsyncSession, event: stripe.Event
) -> None:
    """Handle checkout.session.completed: activate the purchased plan."""
    session = event.data.object
    customer_id = _as_id(session.customer)
    subscription_id = _as_id(session.subscription)

    if getattr(session, "mode", "subscription") != "subscription" or not subscription_id:
        logger.info("Checkout session %s has no subscription (one-time?), skipping", session.id)
        return

    entitlement = await resolve_entitlement(db, customer_id, _metadata(session))
    if entitlement is None:
        logger.warning(
            "No local user found for Stripe customer %s (checkout %s)",
            customer_id,
            session.id,
        )
        return

    # Fetch full subscription from Stripe to get price and period info
    stripe_sub = await get_subscription(subscription_id)
    plan = _plan_for_subscription(stripe_sub)

    await apply_subscription_state(
        db,
        entitlement,
        plan=plan,
        status=SubscriptionStatus.ACTIVE,
        stripe_subscription_id=subscription_id,
        stripe_customer_id=customer_id,
        expires_at=_get_period_end(stripe_sub),
    )
    await record_subscription_event(
        db,
        external_id=event.id,
        event_type=event.type,
        status=SubscriptionStatus.ACTIVE,
        user_id=entitlement.user_id,
        plan=plan,
        stripe_subscription_id=subscription_id,
        amount=getattr(session, "amount_total", None),
        raw_event=_raw_payload(session),
    )
    logger.info(
        "Checkout completed: subscription %s activated on plan %s",
        subscription_id,
        plan.value,
    )


async def handle_subscription_updated(
    db: AsyncSession, event: stripe.Event
) -> None:
    """Handle customer.subscription.created/updated: sync plan, status and expiry."""
    stripe_sub = event.data.object
    subscription_id = stripe_sub.id
    customer_id = _as_id(stripe_sub.customer)

    entitlement = await resolve_entitlement(db, customer_id, _metadata(stripe_sub))
    if entitlement is None:
        logger.warning(
            "No local user found for Stripe subscription %s (customer %s)",
            subscription_id,
            customer_id,
        )
        return

    if await _is_stale_subscription(db, entitlement, subscription_id, event.type):
        return

    plan = _plan_for_subscription(stripe_sub)
    status = SubscriptionStatus.from_provider(stripe_sub.status)

    if status not in _EXPIRING_STATUSES and plan.tier > entitlement.plan_enum.tier:
        # Without a confirmed payment the price may lower the plan, never raise it
        logger.info(
            "Subscription %s is %s; keeping plan %s instead of %s",
            subscription_id,
            status.value,
            entitlement.plan_enum.value,
            plan.value,
        )
        plan = entitlement.plan_enum

    expires_at = None
    if status in _EXPIRING_STATUSES or getattr(stripe_sub, "cancel_at_period_end", False):
        expires_at = _get_period_end(stripe_sub)

    await apply_subscription_state(
        db,
        entitlement,
        plan=plan,
        status=status,
        stripe_subscription_id=subscription_id,
        stripe_customer_id=customer_id,
        expires_at=expires_at,
    )
    await record_subscription_event(
        db,
        external_id=event.id,
        event_type=event.type,
        status=status,
        user_id=entitlement.user_id,
        plan=plan,
        stripe_subscription_id=subscription_id,
        raw_event=_raw_payload(stripe_sub),
    )
    logger.info(
        "Subscription updated: %s → plan=%s, status=%s",
        subscription_id,
        plan.value,
        status.value,
    )


async def handle_subscription_deleted(
    db: AsyncSession, event: stripe.Event
) -> None:
    """Handle customer.subscription.deleted: grace period or downgrade to free."""
    stripe_sub = event.data.object
    subscription_id = stripe_sub.id
    customer_id = _as_id(stripe_sub.customer)

    entitlement = await resolve_entitlement(db, customer_id, _metadata(stripe_sub))
    if entitlement is None:
        logger.warning(
            "No local user found for Stripe subscription %s (delete event)",
            subscription_id,
        )
        return

    if entitlement.stripe_subscription_id and entitlement.stripe_subscription_id != subscription_id:
        logger.info(
            "Ignoring deletion of %s: entitlement %s now tracks %s",
            subscription_id,
            entitlement.id,
            entitlement.stripe_subscription_id,
        )
        return

    period_end = _get_period_end(stripe_sub)
    if period_end is not None and period_end > utcnow():
        await cancel_with_grace(db, entitlement, period_end)
        status = SubscriptionStatus.CANCELED
    else:
        await expire_to_free(db, entitlement)
        status = SubscriptionStatus.EXPIRED

    await record_subscription_event(
        db,
        external_id=event.id,
        event_type=event.type,
        status=status,
        user_id=entitlement.user_id,
        plan=entitlement.plan_enum,
        stripe_subscription_id=subscription_id,
        raw_event=_raw_payload(stripe_sub),
    )
    logger.info("Subscription deleted: %s → %s", subscription_id, status.value)


async def handle_invoice_payment_succeeded(
    db: AsyncSession, event: stripe.Event
) -> None:
    """Handle invoice.payment_succeeded: re-affirm active and extend expiry."""
    invoice = event.data.object
    subscription_id = _get_invoice_subscription_id(invoice)

    if not subscription_id:
        logger.info("Invoice %s has no subscription (one-time), skipping", invoice.id)
        return

    # Fetch full subscription from Stripe to get the renewed period
    stripe_sub = await get_subscription(subscription_id)
    customer_id = _as_id(getattr(invoice, "customer", None)) or _as_id(getattr(stripe_sub, "customer", None))

    entitlement = await resolve_entitlement(db, customer_id, _metadata(stripe_sub))
    if entitlement is None:
        logger.warning(
            "No local user found for Stripe subscription %s (invoice %s)",
            subscription_id,
            invoice.id,
        )
        return

    if await _is_stale_subscription(db, entitlement, subscription_id, event.type):
        return

    plan = _plan_for_subscription(stripe_sub)
    await apply_subscription_state(
        db,
        entitlement,
        plan=plan,
        status=SubscriptionStatus.ACTIVE,
        stripe_subscription_id=subscription_id,
        stripe_customer_id=customer_id,
        expires_at=_get_period_end(stripe_sub),
    )
    await record_subscription_event(
        db,
        external_id=event.id,
        event_type=event.type,
        status=SubscriptionStatus.ACTIVE,
        user_id=entitlement.user_id,
        plan=plan,
        stripe_subscription_id=subscription_id,
        amount=getattr(invoice, "amount_paid", None),
        raw_event=_raw_payload(invoice),
    )
    logger.info("Invoice paid: subscription %s confirmed active", subscription_id)


async def handle_invoice_payment_failed(
    db: AsyncSession, event: stripe.Event
) -> None:
    """Handle invoice.payment_failed: mark past_due, keep the plan."""
    invoice = event.data.object
    customer_id = _as_id(getattr(invoice, "customer", None))

    entitlement = await resolve_entitlement(db, customer_id)
    if entitlement is None:
        logger.warning(
            "No local user found for Stripe customer %s (invoice %s payment failed)",
            customer_id,
            invoice.id,
        )
        return

    await mark_past_due(db, entitlement)
    await record_subscription_event(
        db,
        external_id=event.id,
        event_type=event.type,
        status=SubscriptionStatus.PAST_DUE,
        user_id=entitlement.user_id,
        plan=entitlement.plan_enum,
        stripe_subscription_id=_get_invoice_subscription_id(invoice),
        amount=getattr(invoice, "amount_due", None),
        raw_event=_raw_payload(invoice),
    )
    logger.info(
        "Payment failed: customer %s marked as past_due",
        customer_id,
    )
