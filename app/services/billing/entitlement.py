"""Entitlement gate - decides whether an account may create another event.

Free accounts get ``settings.free_event_limit`` events; any paid tier
(including past_due and a grace_cancelled period that has not run out) is
unbounded. ``create_event`` makes the decision and the insert atomic by
locking the account row first, so concurrent requests cannot both see
room for one more event.
"""

import logging
import uuid as uuid_pkg
from dataclasses import dataclass
from datetime import UTC, datetime
from enum import Enum
from typing import Any

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.domain.account_operations import account_ops
from app.domain.event_operations import event_ops
from app.models.account import Account, TierStatus
from app.models.event import Event, EventCreate
from app.services.billing.tier_resolver import as_utc

logger = logging.getLogger(__name__)


class DenyReason(str, Enum):
    AT_LIMIT = "AT_LIMIT"  # Upgrade prompt
    SUBSCRIPTION_REQUIRED = "SUBSCRIPTION_REQUIRED"  # Renew prompt
    ACCOUNT_NOT_FOUND = "ACCOUNT_NOT_FOUND"


@dataclass(frozen=True)
class Allow:
    limit: int | None
    current_count: int

    allowed = True


@dataclass(frozen=True)
class Deny:
    reason: DenyReason
    limit: int | None = None
    current_count: int = 0

    allowed = False


Decision = Allow | Deny


@dataclass(frozen=True)
class EntitlementStatus:
    """Tier, limit and usage of an account, as shown to the account owner."""

    tier_status: str
    limit: int | None
    current_count: int
    decision: Decision

    @property
    def may_create(self) -> bool:
        return self.decision.allowed


def grace_expired(tier_status: str, period_end: datetime | None, now: datetime | None = None) -> bool:
    """A cancelled subscription whose paid period is over."""
    if tier_status != TierStatus.GRACE_CANCELLED.value or period_end is None:
        return False
    return as_utc(period_end) <= (now or datetime.now(UTC))  # type: ignore[operator]


def derive_limit(tier_status: str) -> int | None:
    """Event limit for a tier. None means unbounded."""
    if tier_status == TierStatus.FREE.value:
        return settings.free_event_limit
    return None


def decide(
    tier_status: str,
    period_end: datetime | None,
    current_count: int,
    now: datetime | None = None,
) -> Decision:
    """Pure entitlement decision for a tier and a fresh event count."""
    lapsed = grace_expired(tier_status, period_end, now)
    limit = derive_limit(TierStatus.FREE.value if lapsed else tier_status)

    if limit is None or current_count < limit:
        return Allow(limit=limit, current_count=current_count)
    if lapsed or limit == 0:
        return Deny(DenyReason.SUBSCRIPTION_REQUIRED, limit=limit, current_count=current_count)
    return Deny(DenyReason.AT_LIMIT, limit=limit, current_count=current_count)


class EntitlementGate:
    """Entitlement checks and the gated event insert."""

    async def status(self, db: AsyncSession, account: Account) -> EntitlementStatus:
        """Read-only summary for display."""
        count = await event_ops.count_by_account(db, account.id)
        decision = decide(account.tier_status, account.period_end, count)
        return EntitlementStatus(
            tier_status=account.tier_status,
            limit=decision.limit,
            current_count=count,
            decision=decision,
        )

    async def may_create(self, db: AsyncSession, account_id: uuid_pkg.UUID) -> Decision:
        """
        Advisory check without a lock, for UI hints.

        The answer can be outdated by the time the caller acts on it; only
        create_event enforces the limit.
        """
        account = await account_ops.get(db, account_id)
        if account is None:
            return Deny(DenyReason.ACCOUNT_NOT_FOUND)
        count = await event_ops.count_by_account(db, account.id)
        return decide(account.tier_status, account.period_end, count)

    async def create_event(
        self,
        db: AsyncSession,
        account_id: uuid_pkg.UUID,
        data: EventCreate | dict[str, Any],
    ) -> tuple[Decision, Event | None]:
        """
        Check the entitlement and insert the event in one transaction.

        The account row stays locked from the check until the commit, so
        the count cannot change underneath the decision. Returns the
        decision and the created event (None when denied).
        """
        try:
            account = await account_ops.get_for_update(db, account_id)
            if account is None:
                await db.rollback()
                return Deny(DenyReason.ACCOUNT_NOT_FOUND), None

            count = await event_ops.count_by_account(db, account.id)
            decision = decide(account.tier_status, account.period_end, count)
            if isinstance(decision, Deny):
                await db.rollback()
                logger.info(
                    f"Denied event creation for account {account_id}: "
                    f"{decision.reason.value} ({count}/{decision.limit})"
                )
                return decision, None

            event = await event_ops.create(db, account.id, data)
            await db.commit()
        except SQLAlchemyError:
            await db.rollback()
            logger.exception(f"Failed to create event for account {account_id}")
            raise

        logger.info(f"Created event {event.id} for account {account_id} ({count + 1}/{decision.limit})")
        return decision, event


entitlement_gate = EntitlementGate()
