"""Stripe payment service for subscription management."""

import json
import logging
from typing import Any

import stripe
from stripe import SignatureVerificationError, StripeError

from app.config import settings
from app.models.account import Account

logger = logging.getLogger(__name__)

# Initialize Stripe with secret key
stripe.api_key = settings.stripe_secret_key


class StripeService:
    """
    Handles all Stripe API interactions.

    All methods are static and stateless. Stripe SDK handles connection pooling.

    Pricing model:
    - Free: 1 event, no Stripe objects at all
    - Pro Monthly / Pro Annual: unlimited events
    """

    @staticmethod
    def create_customer(account: Account) -> str:
        """
        Create a Stripe customer for an account.

        Returns the Stripe customer ID (cus_...). The idempotency key is
        derived from the account so a retried checkout gets the same
        customer back instead of a second one.
        """
        try:
            customer = stripe.Customer.create(
                email=account.email,
                name=account.restaurant_name,
                metadata={
                    "account_id": str(account.id),
                    "environment": "production" if "live" in (settings.stripe_secret_key or "") else "test",
                },
                idempotency_key=f"customer-{account.id}",
            )
            logger.info(f"Created Stripe customer {customer.id} for account {account.id}")
            return customer.id
        except StripeError as e:
            logger.error(f"Failed to create Stripe customer: {e}")
            raise

    @staticmethod
    def create_checkout_session(
        customer_id: str,
        price_id: str,
        account_id: str,
        success_url: str,
        cancel_url: str,
    ) -> str:
        """
        Create a Stripe Checkout session for plan subscription.

        The account id travels in the session metadata, client_reference_id
        and subscription metadata so every notification the subscription
        produces can be traced back to its owner.

        Returns the checkout session URL.
        """
        if not price_id:
            raise ValueError("No price configured for this plan")

        try:
            session = stripe.checkout.Session.create(
                customer=customer_id,
                mode="subscription",
                line_items=[{"price": price_id, "quantity": 1}],
                success_url=success_url,
                cancel_url=cancel_url,
                client_reference_id=account_id,
                subscription_data={"metadata": {"account_id": account_id}},
                metadata={"account_id": account_id},
            )
            logger.info(f"Created checkout session for customer {customer_id}, price {price_id}")
            return session.url or ""
        except StripeError as e:
            logger.error(f"Failed to create checkout session: {e}")
            raise

    @staticmethod
    def create_portal_session(customer_id: str, return_url: str) -> str:
        """
        Create a Stripe Customer Portal session for self-service billing.

        Returns the portal session URL.
        """
        try:
            session = stripe.billing_portal.Session.create(
                customer=customer_id,
                return_url=return_url,
            )
            return session.url
        except StripeError as e:
            logger.error(f"Failed to create portal session: {e}")
            raise

    @staticmethod
    def construct_webhook_event(payload: bytes, signature: str) -> dict[str, Any]:
        """
        Verify a webhook delivery from Stripe and decode its JSON body.

        Raises ValueError if the signature does not match the configured
        secret, is outside the tolerance window, or the body is not JSON.
        """
        if not settings.stripe_webhook_secret:
            logger.error("Webhook received but STRIPE_WEBHOOK_SECRET is not configured")
            raise ValueError("Webhook secret not configured")

        try:
            body = payload.decode("utf-8")
            stripe.WebhookSignature.verify_header(
                body,
                signature,
                settings.stripe_webhook_secret,
                settings.webhook_tolerance_seconds,
            )
            event = json.loads(body)
        except SignatureVerificationError as e:
            logger.warning(f"Webhook signature verification failed: {e}")
            raise ValueError("Invalid webhook signature") from None
        except ValueError as e:
            # UnicodeDecodeError and JSONDecodeError are both ValueErrors
            logger.warning(f"Invalid webhook payload: {e}")
            raise ValueError("Invalid webhook payload") from None

        if not isinstance(event, dict):
            logger.warning("Invalid webhook payload: top-level JSON is not an object")
            raise ValueError("Invalid webhook payload")
        return event

    @staticmethod
    def get_subscription(stripe_subscription_id: str) -> dict[str, Any] | None:
        """Retrieve a Stripe subscription by ID."""
        try:
            sub = stripe.Subscription.retrieve(stripe_subscription_id)
            return sub.to_dict()
        except StripeError as e:
            logger.error(f"Failed to retrieve subscription: {e}")
            return None


# Singleton instance
stripe_service = StripeService()
