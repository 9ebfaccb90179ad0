"""Domain operations for the Account model (the account store)."""

import uuid as uuid_pkg
from datetime import datetime
from typing import Any

from sqlalchemy import and_, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.account import PAID_TIERS, Account
from app.models.billing import BillingEvent, BillingEventType


class AccountOperations:
    """CRUD and locking operations for Account model."""

    async def get(
        self,
        db: AsyncSession,
        id: uuid_pkg.UUID,
    ) -> Account | None:
        """Get an account by ID."""
        statement = select(Account).where(Account.id == id)
        result = await db.execute(statement)
        return result.scalar_one_or_none()

    async def get_for_update(
        self,
        db: AsyncSession,
        id: uuid_pkg.UUID,
    ) -> Account | None:
        """
        Get an account by ID and lock its row until the transaction ends.

        PostgreSQL takes a row lock (FOR UPDATE). SQLite ignores the clause;
        there the whole database is write-locked by BEGIN IMMEDIATE (see
        app.core.database). populate_existing makes sure an instance already
        in the identity map is overwritten with the freshly locked row.
        """
        statement = (
            select(Account)
            .where(Account.id == id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        result = await db.execute(statement)
        return result.scalar_one_or_none()

    async def get_by_customer_ref(
        self,
        db: AsyncSession,
        customer_ref: str,
    ) -> Account | None:
        """Get account by Stripe customer ID."""
        statement = select(Account).where(Account.external_customer_ref == customer_ref)
        result = await db.execute(statement)
        return result.scalar_one_or_none()

    async def get_by_subscription_ref(
        self,
        db: AsyncSession,
        subscription_ref: str,
    ) -> Account | None:
        """Get account by Stripe subscription ID, live or most recently ended."""
        statement = (
            select(Account)
            .where(
                or_(
                    Account.external_subscription_ref == subscription_ref,
                    Account.last_subscription_ref == subscription_ref,
                )
            )
            .limit(1)
        )
        result = await db.execute(statement)
        return result.scalar_one_or_none()

    async def create(
        self,
        db: AsyncSession,
        email: str,
        restaurant_name: str,
    ) -> Account:
        """Create a new account on the free tier."""
        account = Account(email=email, restaurant_name=restaurant_name)
        db.add(account)
        await db.flush()
        await db.refresh(account)
        return account

    async def set_customer_ref_if_absent(
        self,
        db: AsyncSession,
        account_id: uuid_pkg.UUID,
        customer_ref: str,
    ) -> bool:
        """
        Record the Stripe customer for an account unless one is already set.

        Returns True when this call stored the reference. The conditional
        update keeps the reference set-once even when two checkouts race.
        """
        statement = (
            update(Account)
            .where(Account.id == account_id, Account.external_customer_ref.is_(None))  # type: ignore[union-attr]
            .values(external_customer_ref=customer_ref)
        )
        result = await db.execute(statement)
        return result.rowcount == 1  # type: ignore[attr-defined]

    async def list_for_reconciliation(
        self,
        db: AsyncSession,
        cutoff: datetime,
        limit: int = 100,
    ) -> list[Account]:
        """
        Paid accounts whose stored state may have drifted from Stripe.

        Either the paid period ended before ``cutoff`` without a renewal or
        cancellation reaching us, or there is no period on record and no
        notification has been applied since ``cutoff``.
        """
        statement = (
            select(Account)
            .where(
                Account.tier_status.in_(PAID_TIERS),  # type: ignore[attr-defined]
                Account.external_subscription_ref.is_not(None),  # type: ignore[union-attr]
                or_(
                    Account.period_end < cutoff,  # type: ignore[operator]
                    and_(
                        Account.period_end.is_(None),  # type: ignore[union-attr]
                        or_(
                            Account.last_notification_at.is_(None),  # type: ignore[union-attr]
                            Account.last_notification_at < cutoff,  # type: ignore[operator]
                        ),
                    ),
                ),
            )
            .order_by(Account.period_end)
            .limit(limit)
        )
        result = await db.execute(statement)
        return list(result.scalars().all())

    async def log_event(
        self,
        db: AsyncSession,
        account_id: uuid_pkg.UUID,
        event_type: BillingEventType,
        previous_value: dict[str, Any] | None = None,
        new_value: dict[str, Any] | None = None,
        description: str | None = None,
        notification_id: str | None = None,
    ) -> BillingEvent:
        """Log a billing event for audit trail."""
        event = BillingEvent(
            account_id=account_id,
            event_type=event_type.value,
            previous_value=previous_value,
            new_value=new_value,
            description=description,
            notification_id=notification_id,
        )
        db.add(event)
        await db.flush()
        return event

    async def get_events(
        self,
        db: AsyncSession,
        account_id: uuid_pkg.UUID,
        skip: int = 0,
        limit: int = 50,
    ) -> list[BillingEvent]:
        """Get billing events for an account."""
        statement = (
            select(BillingEvent)
            .where(BillingEvent.account_id == account_id)
            .order_by(BillingEvent.created_at.desc())
            .offset(skip)
            .limit(limit)
        )
        result = await db.execute(statement)
        return list(result.scalars().all())


account_ops = AccountOperations()
