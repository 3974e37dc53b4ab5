"""Async Stripe API wrapper for Bet Analizer."""

import logging

import stripe
from stripe import StripeClient

from app.config import settings
from app.errors import ConfigurationError

logger = logging.getLogger(__name__)


def get_stripe_client() -> StripeClient:
    """Create a StripeClient instance with async HTTP support."""
    if not settings.stripe_secret_key:
        raise ConfigurationError("STRIPE_SECRET_KEY is not set")
    return StripeClient(
        settings.stripe_secret_key,
        http_client=stripe.HTTPXClient(),
    )


async def find_customer_by_email(email: str) -> stripe.Customer | None:
    """Return the first Stripe customer registered with ``email``, if any."""
    client = get_stripe_client()
    customers = await client.v1.customers.list_async(params={"email": email, "limit": 1})
    if customers.data:
        return customers.data[0]
    return None


async def create_customer(email: str, name: str, user_id: str) -> stripe.Customer:
    """Create a Stripe customer linked to a Bet Analizer user."""
    client = get_stripe_client()
    logger.info("Creating Stripe customer for user %s (%s)", user_id, email)
    customer = await client.v1.customers.create_async(
        params={
            "email": email,
            "name": name,
            "metadata": {"user_id": user_id, "app": settings.stripe_app_tag},
        }
    )
    logger.info("Created Stripe customer %s for user %s", customer.id, user_id)
    return customer


async def get_customer(customer_id: str) -> stripe.Customer:
    """Retrieve a Stripe customer by ID (may be a deleted-customer stub)."""
    client = get_stripe_client()
    return await client.v1.customers.retrieve_async(customer_id)


async def create_checkout_session(
    customer_id: str,
    price_id: str,
    success_url: str,
    cancel_url: str,
    metadata: dict[str, str],
) -> stripe.checkout.Session:
    """Create a Stripe Checkout Session for a plan subscription.

    ``metadata`` is attached to both the session and the resulting
    subscription so webhook events can be attributed to the user before a
    local customer mapping exists.
    """
    client = get_stripe_client()
    logger.info(
        "Creating checkout session for customer %s, price %s",
        customer_id,
        price_id,
    )
    return await client.v1.checkout.sessions.create_async(
        params={
            "mode": "subscription",
            "customer": customer_id,
            "line_items": [{"price": price_id, "quantity": 1}],
            "success_url": success_url,
            "cancel_url": cancel_url,
            "allow_promotion_codes": True,
            "billing_address_collection": "auto",
            "metadata": metadata,
            "subscription_data": {"metadata": metadata},
        }
    )


async def create_portal_session(
    customer_id: str, return_url: str
) -> stripe.billing_portal.Session:
    """Create a Stripe Customer Portal session for subscription management."""
    client = get_stripe_client()
    logger.info("Creating portal session for customer %s", customer_id)
    return await client.v1.billing_portal.sessions.create_async(
        params={
            "customer": customer_id,
            "return_url": return_url,
        }
    )


async def get_subscription(subscription_id: str) -> stripe.Subscription:
    """Retrieve a Stripe subscription by ID."""
    client = get_stripe_client()
    return await client.v1.subscriptions.retrieve_async(subscription_id)


def construct_webhook_event(payload: bytes, sig_header: str) -> stripe.Event:
    """Verify and construct a Stripe webhook event (synchronous).

    Raises:
        ConfigurationError: If the webhook signing secret is not configured.
        stripe.SignatureVerificationError: If the signature does not match.
        ValueError: If the payload is not valid JSON.
    """
    if not settings.stripe_webhook_secret:
        raise ConfigurationError("STRIPE_WEBHOOK_SECRET is not set")
    client = get_stripe_client()
    return client.construct_event(payload, sig_header, settings.stripe_webhook_secret)
