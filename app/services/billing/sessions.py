"""Checkout and customer-portal session initiators.

These only hand the account owner off to Stripe. They may record the
Stripe customer on the account, but never touch tier fields: the tier
changes when Stripe's notifications arrive at the ingestor.
"""

import logging
import uuid as uuid_pkg
from dataclasses import dataclass
from enum import Enum

from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.config.plans import get_plan
from app.domain.account_operations import account_ops
from app.models.account import Account
from app.models.billing import BillingEventType
from app.services.stripe_service import stripe_service

logger = logging.getLogger(__name__)


class SessionDenyReason(str, Enum):
    ACCOUNT_NOT_FOUND = "ACCOUNT_NOT_FOUND"
    UNKNOWN_PLAN = "UNKNOWN_PLAN"
    PLAN_UNAVAILABLE = "PLAN_UNAVAILABLE"  # No Stripe price configured
    NO_BILLING_ACCOUNT = "NO_BILLING_ACCOUNT"


@dataclass(frozen=True)
class SessionUrl:
    url: str


@dataclass(frozen=True)
class SessionDeny:
    reason: SessionDenyReason


SessionResult = SessionUrl | SessionDeny


class BillingSessions:
    """Starts Stripe Checkout and Customer Portal sessions."""

    async def start_checkout(
        self,
        db: AsyncSession,
        account_id: uuid_pkg.UUID,
        plan_name: str,
    ) -> SessionResult:
        """
        Create a Checkout session for one of the paid plans.

        Creates the Stripe customer on first use and stores it on the
        account straight away, so an abandoned and retried checkout reuses
        the same customer.
        """
        plan = get_plan(plan_name)
        if plan is None:
            return SessionDeny(SessionDenyReason.UNKNOWN_PLAN)
        if not plan.price_id:
            logger.error(f"No Stripe price configured for plan {plan.plan}")
            return SessionDeny(SessionDenyReason.PLAN_UNAVAILABLE)

        account = await account_ops.get(db, account_id)
        if account is None:
            return SessionDeny(SessionDenyReason.ACCOUNT_NOT_FOUND)

        customer_id = await self.ensure_customer(db, account)

        checkout_url = stripe_service.create_checkout_session(
            customer_id=customer_id,
            price_id=plan.price_id,
            account_id=str(account.id),
            success_url=f"{settings.frontend_url}/dashboard?billing=success",
            cancel_url=f"{settings.frontend_url}/dashboard?billing=cancelled",
        )
        return SessionUrl(checkout_url)

    async def start_portal(
        self,
        db: AsyncSession,
        account_id: uuid_pkg.UUID,
    ) -> SessionResult:
        """Create a Customer Portal session. Requires an existing Stripe customer."""
        account = await account_ops.get(db, account_id)
        if account is None:
            return SessionDeny(SessionDenyReason.ACCOUNT_NOT_FOUND)
        if not account.external_customer_ref:
            return SessionDeny(SessionDenyReason.NO_BILLING_ACCOUNT)

        portal_url = stripe_service.create_portal_session(
            customer_id=account.external_customer_ref,
            return_url=f"{settings.frontend_url}/settings",
        )
        return SessionUrl(portal_url)

    async def ensure_customer(self, db: AsyncSession, account: Account) -> str:
        """Return the account's Stripe customer, creating and storing it if needed."""
        if account.external_customer_ref:
            return account.external_customer_ref

        customer_id = stripe_service.create_customer(account)
        stored = await account_ops.set_customer_ref_if_absent(db, account.id, customer_id)
        if stored:
            await account_ops.log_event(
                db,
                account_id=account.id,
                event_type=BillingEventType.CUSTOMER_CREATED,
                new_value={"external_customer_ref": customer_id},
                description="Created Stripe customer for checkout",
            )
        await db.commit()
        await db.refresh(account)

        if account.external_customer_ref != customer_id:
            # A concurrent checkout or notification stored a customer first
            logger.warning(
                f"Account {account.id} already had customer {account.external_customer_ref}; "
                f"not storing {customer_id}"
            )
        return account.external_customer_ref or customer_id


billing_sessions = BillingSessions()
