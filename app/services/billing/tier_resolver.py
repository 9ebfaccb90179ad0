"""Tier resolution - the pure core of the billing engine.

``resolve`` takes the account's current billing state and one classified
notification and returns the next state. It does no I/O, so the ingestor
and the reconciliation sweep share it and it can be tested exhaustively.

Ordering rules:
- Notifications are versioned by Stripe's event timestamp, per subscription.
  One older than the last applied notification for the same subscription,
  or for a different subscription that is still live, is stale and changes
  nothing. Equal timestamps apply in arrival order.
- Every notification carries (or implies) the authoritative state of its
  subscription, so applying the newest one yields the right tier no matter
  in which order the older ones arrived.
- An ended subscription is terminal. Later notifications for it are
  ignored; only a different subscription can make the account paid again.
"""

from dataclasses import asdict, dataclass, replace
from datetime import UTC, datetime
from enum import Enum
from typing import Any

from app.models.account import Account, TierStatus
from app.services.billing.notifications import Classified, NotificationKind, SubscriptionState


def as_utc(value: datetime | None) -> datetime | None:
    """SQLite hands back naive datetimes; everything we store is UTC."""
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=UTC)


@dataclass(frozen=True)
class AccountState:
    """The billing fields of an account, detached from the ORM."""

    tier_status: TierStatus = TierStatus.FREE
    external_customer_ref: str | None = None
    external_subscription_ref: str | None = None
    plan_ref: str | None = None
    period_end: datetime | None = None
    cancel_at_period_end: bool = False
    last_subscription_ref: str | None = None
    subscription_event_at: datetime | None = None

    @classmethod
    def from_account(cls, account: Account) -> "AccountState":
        return cls(
            tier_status=TierStatus(account.tier_status),
            external_customer_ref=account.external_customer_ref,
            external_subscription_ref=account.external_subscription_ref,
            plan_ref=account.plan_ref,
            period_end=as_utc(account.period_end),
            cancel_at_period_end=bool(account.cancel_at_period_end),
            last_subscription_ref=account.last_subscription_ref,
            subscription_event_at=as_utc(account.subscription_event_at),
        )

    def apply_to(self, account: Account) -> None:
        account.tier_status = self.tier_status.value
        account.external_customer_ref = self.external_customer_ref
        account.external_subscription_ref = self.external_subscription_ref
        account.plan_ref = self.plan_ref
        account.period_end = self.period_end
        account.cancel_at_period_end = self.cancel_at_period_end
        account.last_subscription_ref = self.last_subscription_ref
        account.subscription_event_at = self.subscription_event_at

    def without_version(self) -> "AccountState":
        """The entitlement-relevant part, ignoring which notification set it."""
        return replace(self, subscription_event_at=None)

    def to_audit(self) -> dict[str, Any]:
        """JSON-safe snapshot for the billing audit log."""
        values = asdict(self)
        values["tier_status"] = self.tier_status.value
        for key in ("period_end", "subscription_event_at"):
            if values[key] is not None:
                values[key] = values[key].isoformat()
        return values


class ResolutionOutcome(str, Enum):
    APPLIED = "applied"
    STALE = "stale"
    IGNORED = "ignored"


@dataclass(frozen=True)
class Resolution:
    state: AccountState
    outcome: ResolutionOutcome
    reason: str = ""
    previous: AccountState | None = None

    @property
    def changed(self) -> bool:
        """Whether applying this resolution alters anything besides the version stamp."""
        if self.outcome != ResolutionOutcome.APPLIED or self.previous is None:
            return False
        return self.state.without_version() != self.previous.without_version()


_TIER_FOR_STATE = {
    SubscriptionState.ACTIVE: TierStatus.ACTIVE,
    SubscriptionState.PAST_DUE: TierStatus.PAST_DUE,
    SubscriptionState.GRACE_CANCELLED: TierStatus.GRACE_CANCELLED,
}


def _target_state(current: AccountState, event: Classified) -> SubscriptionState | None:
    """The subscription state this notification asserts."""
    if event.kind == NotificationKind.SUBSCRIPTION_ENDED:
        return SubscriptionState.ENDED
    if event.kind == NotificationKind.PAYMENT_FAILED:
        return SubscriptionState.PAST_DUE
    if event.kind == NotificationKind.PAYMENT_RECOVERED:
        # A paid invoice does not undo a scheduled cancellation
        if _cancel_scheduled(current, event):
            return SubscriptionState.GRACE_CANCELLED
        return SubscriptionState.ACTIVE
    return event.state


def _cancel_scheduled(current: AccountState, event: Classified) -> bool:
    """Whether the event's subscription is set to cancel, as far as we know."""
    if event.cancel_at_period_end is not None:
        return event.cancel_at_period_end
    return current.external_subscription_ref == event.subscription_ref and current.cancel_at_period_end


def _apply(current: AccountState, event: Classified, target: SubscriptionState) -> AccountState:
    customer_ref = current.external_customer_ref or event.customer_ref

    if target == SubscriptionState.ENDED:
        return replace(
            current,
            tier_status=TierStatus.FREE,
            external_customer_ref=customer_ref,
            external_subscription_ref=None,
            plan_ref=None,
            period_end=None,
            cancel_at_period_end=False,
            last_subscription_ref=event.subscription_ref,
            subscription_event_at=event.event_time,
        )

    same_subscription = current.external_subscription_ref == event.subscription_ref
    if target == SubscriptionState.PAST_DUE:
        cancel_at_period_end = _cancel_scheduled(current, event)
    else:
        cancel_at_period_end = target == SubscriptionState.GRACE_CANCELLED
    return replace(
        current,
        tier_status=_TIER_FOR_STATE[target],
        external_customer_ref=customer_ref,
        external_subscription_ref=event.subscription_ref,
        plan_ref=event.plan_ref or (current.plan_ref if same_subscription else None),
        period_end=event.period_end or (current.period_end if same_subscription else None),
        cancel_at_period_end=cancel_at_period_end,
        last_subscription_ref=event.subscription_ref,
        subscription_event_at=event.event_time,
    )


def _is_stale(current: AccountState, event: Classified) -> bool:
    """
    Older than what we last applied for a subscription that still counts.

    The version stamp belongs to last_subscription_ref and also guards a
    live subscription against older events for another one. With nothing
    live, an older event for a new subscription applies.
    """
    if current.subscription_event_at is None or event.event_time >= current.subscription_event_at:
        return False
    if event.subscription_ref == current.last_subscription_ref:
        return True
    return current.external_subscription_ref is not None


def resolve(current: AccountState, event: Classified) -> Resolution:
    """Compute the account state after applying ``event``."""
    if _is_stale(current, event):
        return Resolution(current, ResolutionOutcome.STALE, "older than the last applied notification")

    target = _target_state(current, event)
    if target is None:
        return Resolution(current, ResolutionOutcome.IGNORED, "status carries no entitlement")

    if event.subscription_ref != current.last_subscription_ref:
        live = current.external_subscription_ref is not None
        replaces_live = (
            event.kind == NotificationKind.SUBSCRIPTION_ACTIVATED and target != SubscriptionState.ENDED
        )
        if live and not replaces_live:
            return Resolution(current, ResolutionOutcome.IGNORED, "not the account's live subscription")
        return Resolution(_apply(current, event, target), ResolutionOutcome.APPLIED, previous=current)

    if current.external_subscription_ref is None:
        return Resolution(current, ResolutionOutcome.IGNORED, "subscription already ended")

    return Resolution(_apply(current, event, target), ResolutionOutcome.APPLIED, previous=current)
