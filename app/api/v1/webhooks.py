"""Stripe webhook endpoint: receives, verifies and dispatches Stripe events."""

import logging

import stripe
from fastapi import APIRouter, Depends, HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.billing.stripe_client import construct_webhook_event
from app.billing.webhooks import (
    handle_checkout_session_completed,
    handle_invoice_payment_failed,
    handle_invoice_payment_succeeded,
    handle_subscription_deleted,
    handle_subscription_updated,
)
from app.config import settings
from app.database import get_db
from app.errors import ConfigurationError, SignatureError, ValidationError
from app.services.subscription_service import has_processed_event

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/webhooks", tags=["webhooks"])

# Map event types to handler functions
EVENT_HANDLERS = {
    "checkout.session.completed": handle_checkout_session_completed,
    "customer.subscription.created": handle_subscription_updated,
    "customer.subscription.updated": handle_subscription_updated,
    "customer.subscription.deleted": handle_subscription_deleted,
    "invoice.payment_succeeded": handle_invoice_payment_succeeded,
    "invoice.payment_failed": handle_invoice_payment_failed,
}


@router.post("/stripe")
async def stripe_webhook(
    request: Request,
    db: AsyncSession = Depends(get_db),
) -> dict[str, bool]:
    """Receive and process Stripe webhook events."""
    # 1. Secrets must be configured before anything is trusted
    if not settings.stripe_configured:
        logger.error("Stripe webhook called but Stripe secrets are not configured")
        raise ConfigurationError("Webhook secret not configured")

    # 2. Read raw body (MUST be raw bytes for signature verification)
    payload = await request.body()
    sig_header = request.headers.get("stripe-signature")
    if not sig_header:
        logger.warning("Webhook request without Stripe-Signature header")
        raise SignatureError("Missing Stripe signature")

    # 3. Verify signature
    try:
        event = construct_webhook_event(payload, sig_header)
    except stripe.SignatureVerificationError as e:
        logger.warning("Webhook signature verification failed")
        raise SignatureError("Invalid signature") from e
    except ValueError as e:
        logger.warning("Invalid webhook payload")
        raise ValidationError("Invalid payload") from e

    logger.info("Webhook event received: %s (id=%s)", event.type, event.id)

    # 4. Dispatch to handler
    handler = EVENT_HANDLERS.get(event.type)
    if handler is None:
        logger.debug("Unhandled webhook event type: %s", event.type)
        return {"received": True}

    # 5. Redeliveries of an already-applied event are acknowledged without side effects
    if await has_processed_event(db, event.id):
        logger.info("Webhook event %s already processed, skipping", event.id)
        return {"received": True}

    # Failures propagate through get_db, which rolls the transaction back
    try:
        await handler(db, event)
    except Exception as e:
        logger.exception("Error processing webhook event %s", event.id)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Webhook processing failed",
        ) from e

    return {"received": True}
