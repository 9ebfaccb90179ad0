"""Stripe notification ingestion.

Turns a raw webhook delivery into at most one durable account change:

1. verify the signature (nothing is touched on failure)
2. classify the event
3. skip it if its id was already processed
4. find the owning account and lock its row
5. let the tier resolver compute the next state
6. write account, audit entry and processed record in one transaction

The caller acknowledges Stripe only after ``ingest`` returns, which is
after the commit. Any database failure raises ``PersistenceFailure`` so the
delivery is retried.
"""

import logging
import uuid as uuid_pkg
from dataclasses import dataclass
from datetime import UTC, datetime
from enum import Enum

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.domain.account_operations import account_ops
from app.domain.notification_operations import notification_ops
from app.models.account import Account
from app.models.billing import BillingEventType, NotificationOutcome
from app.services.billing.exceptions import InvalidSignature, PersistenceFailure
from app.services.billing.notifications import (
    Classified,
    NotificationKind,
    Unclassified,
    classify,
)
from app.services.billing.tier_resolver import (
    AccountState,
    Resolution,
    ResolutionOutcome,
    resolve,
)
from app.services.stripe_service import stripe_service

logger = logging.getLogger(__name__)


class IngestStatus(str, Enum):
    APPLIED = "applied"
    DUPLICATE = "duplicate"
    STALE = "stale"
    IGNORED = "ignored"
    UNKNOWN = "unknown"
    UNMATCHED = "unmatched"


@dataclass(frozen=True)
class IngestResult:
    status: IngestStatus
    notification_id: str | None = None
    account_id: uuid_pkg.UUID | None = None
    tier_status: str | None = None
    reason: str = ""


AUDIT_EVENT_TYPES = {
    NotificationKind.SUBSCRIPTION_ACTIVATED: BillingEventType.SUBSCRIPTION_ACTIVATED,
    NotificationKind.SUBSCRIPTION_CHANGED: BillingEventType.SUBSCRIPTION_UPDATED,
    NotificationKind.SUBSCRIPTION_ENDED: BillingEventType.SUBSCRIPTION_ENDED,
    NotificationKind.PAYMENT_FAILED: BillingEventType.PAYMENT_FAILED,
    NotificationKind.PAYMENT_RECOVERED: BillingEventType.PAYMENT_RECOVERED,
}

_RECORDED_OUTCOMES = {
    ResolutionOutcome.APPLIED: NotificationOutcome.APPLIED,
    ResolutionOutcome.STALE: NotificationOutcome.STALE,
    ResolutionOutcome.IGNORED: NotificationOutcome.IGNORED,
}

_RESULT_STATUSES = {
    ResolutionOutcome.APPLIED: IngestStatus.APPLIED,
    ResolutionOutcome.STALE: IngestStatus.STALE,
    ResolutionOutcome.IGNORED: IngestStatus.IGNORED,
}


class NotificationIngestor:
    """Applies verified Stripe notifications to accounts, exactly once."""

    async def ingest(self, db: AsyncSession, payload: bytes, signature: str) -> IngestResult:
        """
        Verify, classify and apply one webhook delivery.

        Raises InvalidSignature if the delivery cannot be trusted and
        PersistenceFailure if the outcome could not be committed.
        """
        try:
            event = stripe_service.construct_webhook_event(payload, signature)
        except ValueError as e:
            logger.warning(f"SECURITY: rejected Stripe webhook delivery: {e}")
            raise InvalidSignature(str(e)) from None

        notification = classify(event)
        logger.info(
            f"Received Stripe webhook: {notification.provider_event_type} "
            f"({notification.notification_id})"
        )

        if isinstance(notification, Unclassified):
            logger.info(
                f"Acknowledging {notification.provider_event_type} "
                f"({notification.notification_id}) without changes: {notification.reason}"
            )
            return IngestResult(
                IngestStatus.UNKNOWN,
                notification_id=notification.notification_id,
                reason=notification.reason,
            )

        if notification.needs_subscription_details:
            notification = self._with_subscription_details(notification)

        try:
            return await self._process(db, notification)
        except IntegrityError as e:
            await db.rollback()
            if not await self._committed_elsewhere(db, notification.notification_id):
                logger.exception(f"Failed to persist webhook {notification.notification_id}")
                raise PersistenceFailure(str(e)) from e
            logger.info(f"Skipping duplicate webhook: {notification.notification_id}")
            return IngestResult(IngestStatus.DUPLICATE, notification_id=notification.notification_id)
        except SQLAlchemyError as e:
            await db.rollback()
            logger.exception(f"Failed to persist webhook {notification.notification_id}")
            raise PersistenceFailure(str(e)) from e

    async def _committed_elsewhere(self, db: AsyncSession, notification_id: str) -> bool:
        """After a unique violation: did a concurrent delivery of the same event win?"""
        try:
            processed = await notification_ops.is_processed(db, notification_id)
            await db.rollback()
            return processed
        except SQLAlchemyError:
            await db.rollback()
            return False

    def _with_subscription_details(self, notification: Classified) -> Classified:
        subscription = stripe_service.get_subscription(notification.subscription_ref)
        if subscription is None:
            logger.warning(
                f"Could not retrieve subscription {notification.subscription_ref}; "
                f"applying {notification.provider_event_type} without plan details"
            )
            return notification
        return notification.with_subscription(subscription)

    async def _process(self, db: AsyncSession, notification: Classified) -> IngestResult:
        if await notification_ops.is_processed(db, notification.notification_id):
            logger.info(f"Skipping duplicate webhook: {notification.notification_id}")
            await db.rollback()
            return IngestResult(IngestStatus.DUPLICATE, notification_id=notification.notification_id)

        account_id = await self.find_account_id(db, notification)
        if account_id is None:
            logger.warning(
                f"No account for {notification.provider_event_type} "
                f"({notification.notification_id}), subscription {notification.subscription_ref}, "
                f"customer {notification.customer_ref}"
            )
            await notification_ops.record(
                db,
                notification_id=notification.notification_id,
                notification_type=notification.provider_event_type,
                outcome=NotificationOutcome.UNMATCHED,
                event_time=notification.event_time,
            )
            await db.commit()
            return IngestResult(IngestStatus.UNMATCHED, notification_id=notification.notification_id)

        account, resolution = await self.apply_to_account(
            db,
            account_id,
            notification,
            audit_type=AUDIT_EVENT_TYPES[notification.kind],
        )
        if account is None or resolution is None:
            # Deleted between lookup and lock
            await db.rollback()
            return IngestResult(IngestStatus.UNMATCHED, notification_id=notification.notification_id)

        await notification_ops.record(
            db,
            notification_id=notification.notification_id,
            notification_type=notification.provider_event_type,
            outcome=_RECORDED_OUTCOMES[resolution.outcome],
            account_id=account.id,
            event_time=notification.event_time,
        )
        await db.commit()

        if resolution.outcome == ResolutionOutcome.STALE:
            logger.info(
                f"Discarded stale {notification.provider_event_type} "
                f"({notification.notification_id}) for account {account.id}"
            )
        elif resolution.outcome == ResolutionOutcome.IGNORED:
            logger.info(
                f"Ignored {notification.provider_event_type} ({notification.notification_id}) "
                f"for account {account.id}: {resolution.reason}"
            )

        return IngestResult(
            _RESULT_STATUSES[resolution.outcome],
            notification_id=notification.notification_id,
            account_id=account.id,
            tier_status=account.tier_status,
            reason=resolution.reason,
        )

    async def find_account_id(
        self,
        db: AsyncSession,
        notification: Classified,
    ) -> uuid_pkg.UUID | None:
        """Owner by embedded account id, then customer, then subscription."""
        if notification.account_id is not None:
            account = await account_ops.get(db, notification.account_id)
            if account:
                return account.id
        if notification.customer_ref:
            account = await account_ops.get_by_customer_ref(db, notification.customer_ref)
            if account:
                return account.id
        account = await account_ops.get_by_subscription_ref(db, notification.subscription_ref)
        return account.id if account else None

    async def apply_to_account(
        self,
        db: AsyncSession,
        account_id: uuid_pkg.UUID,
        notification: Classified,
        audit_type: BillingEventType,
    ) -> tuple[Account | None, Resolution | None]:
        """
        Lock the account, resolve the notification against it and stage the
        result. Does not commit.
        """
        account = await account_ops.get_for_update(db, account_id)
        if account is None:
            return None, None

        current = AccountState.from_account(account)
        resolution = resolve(current, notification)
        if resolution.outcome != ResolutionOutcome.APPLIED:
            return account, resolution

        resolution.state.apply_to(account)
        account.last_notification_at = datetime.now(UTC)
        db.add(account)
        await db.flush()

        if resolution.changed:
            await account_ops.log_event(
                db,
                account_id=account.id,
                event_type=audit_type,
                previous_value=current.to_audit(),
                new_value=resolution.state.to_audit(),
                notification_id=notification.notification_id,
                description=(
                    f"{notification.provider_event_type}: "
                    f"{current.tier_status.value} -> {resolution.state.tier_status.value}"
                ),
            )
            logger.info(
                f"Account {account.id} tier {current.tier_status.value} -> "
                f"{resolution.state.tier_status.value} ({notification.notification_id})"
            )

        return account, resolution


notification_ingestor = NotificationIngestor()
