"""Reconciliation sweep - repairs tiers when Stripe notifications go missing.

Webhooks can be lost (endpoint down longer than Stripe retries, secret
rotated, etc.). Accounts still marked paid well after their period should
have renewed or ended are re-checked against Stripe, and the subscription
Stripe returns is resolved through the same tier resolver as a webhook.
"""

import logging
import time
import uuid as uuid_pkg
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from typing import Any

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.domain.account_operations import account_ops
from app.models.billing import BillingEventType
from app.services.billing.ingestor import notification_ingestor
from app.services.billing.notifications import (
    Classified,
    NotificationKind,
    SubscriptionState,
    cancels_at_period_end,
    period_end,
    plan_ref,
    subscription_state,
)
from app.services.billing.tier_resolver import ResolutionOutcome
from app.services.stripe_service import stripe_service

logger = logging.getLogger(__name__)


@dataclass
class ReconciliationReport:
    """Summary of a reconciliation run (for logging/monitoring)."""

    accounts_checked: int = 0
    accounts_corrected: int = 0
    accounts_skipped: int = 0
    accounts_failed: int = 0
    errors: list[str] = field(default_factory=list)
    duration_seconds: float = 0.0


def poll_notification(
    account_id: uuid_pkg.UUID,
    subscription: dict[str, Any],
    polled_at: datetime,
) -> Classified:
    """Express a retrieved subscription as a notification stamped with the poll time."""
    state = subscription_state(subscription)
    kind = (
        NotificationKind.SUBSCRIPTION_ENDED
        if state == SubscriptionState.ENDED
        else NotificationKind.SUBSCRIPTION_CHANGED
    )
    subscription_ref = subscription.get("id") or ""
    customer = subscription.get("customer")
    return Classified(
        kind=kind,
        notification_id=f"reconcile:{subscription_ref}:{int(polled_at.timestamp())}",
        event_time=polled_at,
        subscription_ref=subscription_ref,
        customer_ref=customer if isinstance(customer, str) else None,
        account_id=account_id,
        state=state,
        plan_ref=plan_ref(subscription),
        period_end=period_end(subscription),
        cancel_at_period_end=cancels_at_period_end(subscription),
        provider_event_type="reconciliation.poll",
    )


class ReconciliationSweep:
    """Polls Stripe for paid accounts whose state looks overdue."""

    async def run(
        self,
        session_factory: Callable[[], AsyncSession],
        now: datetime | None = None,
    ) -> ReconciliationReport:
        """
        Reconcile one batch of candidate accounts.

        Each account is handled in its own transaction so one failure does
        not hold back the rest of the batch.
        """
        start = time.monotonic()
        report = ReconciliationReport()
        now = now or datetime.now(UTC)
        cutoff = now - timedelta(hours=settings.reconcile_grace_hours)

        async with session_factory() as db:
            candidates = await account_ops.list_for_reconciliation(
                db, cutoff=cutoff, limit=settings.reconcile_batch_size
            )
            targets = [(account.id, account.external_subscription_ref) for account in candidates]

        for account_id, subscription_ref in targets:
            report.accounts_checked += 1
            subscription = stripe_service.get_subscription(subscription_ref)
            if subscription is None:
                logger.warning(
                    f"[reconcile] Could not retrieve {subscription_ref} for account {account_id}; skipping"
                )
                report.accounts_skipped += 1
                continue

            try:
                async with session_factory() as db:
                    corrected = await self.reconcile_account(db, account_id, subscription, now)
            except SQLAlchemyError as e:
                logger.exception(f"[reconcile] Failed for account {account_id}")
                report.accounts_failed += 1
                report.errors.append(f"{account_id}: {e}")
                continue

            if corrected:
                report.accounts_corrected += 1

        report.duration_seconds = round(time.monotonic() - start, 2)
        return report

    async def reconcile_account(
        self,
        db: AsyncSession,
        account_id: uuid_pkg.UUID,
        subscription: dict[str, Any],
        now: datetime,
    ) -> bool:
        """Apply the polled subscription to one account. Returns True if the tier data changed."""
        notification = poll_notification(account_id, subscription, now)
        account, resolution = await notification_ingestor.apply_to_account(
            db,
            account_id,
            notification,
            audit_type=BillingEventType.RECONCILED,
        )
        if account is None or resolution is None:
            await db.rollback()
            return False

        await db.commit()
        if resolution.changed:
            logger.info(
                f"[reconcile] Account {account_id}: Stripe reports {subscription.get('status')}, "
                f"tier now {account.tier_status}"
            )
        elif resolution.outcome != ResolutionOutcome.APPLIED:
            logger.info(f"[reconcile] Account {account_id}: {resolution.outcome.value} ({resolution.reason})")
        return resolution.changed


reconciliation_sweep = ReconciliationSweep()
