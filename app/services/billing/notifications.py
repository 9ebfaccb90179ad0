"""Classification of Stripe webhook events into billing notifications.

Stripe sends dozens of event types; the billing engine cares about five
kinds. ``classify`` turns a verified event payload into either a
``Classified`` notification or an ``Unclassified`` acknowledgement, so
everything downstream works on a closed set of cases.
"""

import logging
import uuid as uuid_pkg
from dataclasses import dataclass, replace
from datetime import UTC, datetime
from enum import Enum
from typing import Any

logger = logging.getLogger(__name__)


class NotificationKind(str, Enum):
    SUBSCRIPTION_ACTIVATED = "subscription_activated"
    SUBSCRIPTION_CHANGED = "subscription_changed"
    SUBSCRIPTION_ENDED = "subscription_ended"
    PAYMENT_FAILED = "payment_failed"
    PAYMENT_RECOVERED = "payment_recovered"


class SubscriptionState(str, Enum):
    """Subscription state as reported by Stripe, reduced to what we track."""

    ACTIVE = "active"
    PAST_DUE = "past_due"
    GRACE_CANCELLED = "grace_cancelled"
    ENDED = "ended"


EVENT_KINDS: dict[str, NotificationKind] = {
    "checkout.session.completed": NotificationKind.SUBSCRIPTION_ACTIVATED,
    "customer.subscription.created": NotificationKind.SUBSCRIPTION_ACTIVATED,
    "customer.subscription.updated": NotificationKind.SUBSCRIPTION_CHANGED,
    "customer.subscription.deleted": NotificationKind.SUBSCRIPTION_ENDED,
    "invoice.payment_failed": NotificationKind.PAYMENT_FAILED,
    "invoice.payment_succeeded": NotificationKind.PAYMENT_RECOVERED,
    "invoice.paid": NotificationKind.PAYMENT_RECOVERED,
}


@dataclass(frozen=True)
class Classified:
    """A notification the tier resolver knows how to apply."""

    kind: NotificationKind
    notification_id: str
    event_time: datetime
    subscription_ref: str
    customer_ref: str | None = None
    account_id: uuid_pkg.UUID | None = None
    state: SubscriptionState | None = None
    plan_ref: str | None = None
    period_end: datetime | None = None
    cancel_at_period_end: bool | None = None
    provider_event_type: str = ""

    @property
    def needs_subscription_details(self) -> bool:
        """Checkout sessions and paid invoices carry no plan or period; the subscription does."""
        return (
            self.kind in (NotificationKind.SUBSCRIPTION_ACTIVATED, NotificationKind.PAYMENT_RECOVERED)
            and self.plan_ref is None
        )

    def with_subscription(self, subscription: dict[str, Any]) -> "Classified":
        """Fill in plan, period and status from a retrieved subscription."""
        state = subscription_state(subscription)
        return replace(
            self,
            customer_ref=self.customer_ref or _ref(subscription.get("customer")),
            account_id=self.account_id or _account_id(subscription.get("metadata")),
            state=state if state is not None else self.state,
            plan_ref=plan_ref(subscription) or self.plan_ref,
            period_end=period_end(subscription) or self.period_end,
            cancel_at_period_end=cancels_at_period_end(subscription),
        )


@dataclass(frozen=True)
class Unclassified:
    """A verified event that needs no tier change, only an acknowledgement."""

    notification_id: str | None
    provider_event_type: str
    event_time: datetime | None
    reason: str


Notification = Classified | Unclassified


# ─────────────────────────────────────────────────────────────────────────────
# Field helpers
# ─────────────────────────────────────────────────────────────────────────────


def to_datetime(timestamp: Any) -> datetime | None:
    """Stripe timestamps are Unix seconds."""
    if timestamp is None:
        return None
    try:
        return datetime.fromtimestamp(int(timestamp), UTC)
    except (TypeError, ValueError, OverflowError):
        return None


def _ref(value: Any) -> str | None:
    """An ID field may be a bare ID or an expanded object."""
    if isinstance(value, str):
        return value or None
    if isinstance(value, dict):
        return value.get("id")
    return None


def _account_id(metadata: Any) -> uuid_pkg.UUID | None:
    if not isinstance(metadata, dict):
        return None
    return _parse_uuid(metadata.get("account_id"))


def _parse_uuid(value: Any) -> uuid_pkg.UUID | None:
    if not value:
        return None
    try:
        return uuid_pkg.UUID(str(value))
    except ValueError:
        logger.warning(f"Ignoring malformed account_id in Stripe metadata: {value!r}")
        return None


def _first_item(subscription: dict[str, Any]) -> dict[str, Any]:
    items = (subscription.get("items") or {}).get("data") or []
    return items[0] if items else {}


def plan_ref(subscription: dict[str, Any]) -> str | None:
    """Price ID of the subscription's first item."""
    price = _first_item(subscription).get("price")
    return _ref(price)


def period_end(subscription: dict[str, Any]) -> datetime | None:
    """
    End of the current paid period.

    Older API versions report it on the subscription, newer ones on each
    subscription item.
    """
    value = subscription.get("current_period_end")
    if value is None:
        value = _first_item(subscription).get("current_period_end")
    return to_datetime(value)


def cancels_at_period_end(subscription: dict[str, Any]) -> bool:
    return bool(subscription.get("cancel_at_period_end") or subscription.get("cancel_at"))


def subscription_state(subscription: dict[str, Any]) -> SubscriptionState | None:
    """
    Map a Stripe subscription status onto the states we track.

    Returns None for statuses that say nothing about entitlement yet
    (incomplete, paused).
    """
    status = subscription.get("status")
    if status in ("active", "trialing"):
        if cancels_at_period_end(subscription):
            return SubscriptionState.GRACE_CANCELLED
        return SubscriptionState.ACTIVE
    if status in ("past_due", "unpaid"):
        return SubscriptionState.PAST_DUE
    if status in ("canceled", "incomplete_expired"):
        return SubscriptionState.ENDED
    return None


def _invoice_subscription(invoice: dict[str, Any]) -> tuple[str | None, dict[str, Any] | None]:
    """Subscription ID and metadata of an invoice, across API versions."""
    details = (invoice.get("parent") or {}).get("subscription_details")
    if details:
        return _ref(details.get("subscription")), details.get("metadata")
    legacy = invoice.get("subscription_details") or {}
    return _ref(invoice.get("subscription")), legacy.get("metadata")


# ─────────────────────────────────────────────────────────────────────────────
# Classification
# ─────────────────────────────────────────────────────────────────────────────


def classify(event: dict[str, Any]) -> Notification:
    """Classify a verified Stripe event payload."""
    notification_id = event.get("id")
    event_type = event.get("type") or ""
    event_time = to_datetime(event.get("created"))
    obj = (event.get("data") or {}).get("object") or {}

    if not notification_id or event_time is None:
        return Unclassified(notification_id, event_type, event_time, "malformed event")

    kind = EVENT_KINDS.get(event_type)
    if kind is None:
        return Unclassified(notification_id, event_type, event_time, "unhandled event type")

    base = {
        "kind": kind,
        "notification_id": notification_id,
        "event_time": event_time,
        "provider_event_type": event_type,
        "customer_ref": _ref(obj.get("customer")),
    }

    if event_type == "checkout.session.completed":
        subscription_ref = _ref(obj.get("subscription"))
        if obj.get("mode") != "subscription" or not subscription_ref:
            return Unclassified(notification_id, event_type, event_time, "checkout without subscription")
        account_id = _account_id(obj.get("metadata")) or _parse_uuid(obj.get("client_reference_id"))
        return Classified(
            subscription_ref=subscription_ref,
            account_id=account_id,
            state=SubscriptionState.ACTIVE,
            **base,
        )

    if event_type.startswith("customer.subscription."):
        subscription_ref = _ref(obj.get("id"))
        if not subscription_ref:
            return Unclassified(notification_id, event_type, event_time, "subscription without id")
        state = (
            SubscriptionState.ENDED
            if kind == NotificationKind.SUBSCRIPTION_ENDED
            else subscription_state(obj)
        )
        return Classified(
            subscription_ref=subscription_ref,
            account_id=_account_id(obj.get("metadata")),
            state=state,
            plan_ref=plan_ref(obj),
            period_end=period_end(obj),
            cancel_at_period_end=cancels_at_period_end(obj),
            **base,
        )

    # Invoice events
    subscription_ref, metadata = _invoice_subscription(obj)
    if not subscription_ref:
        return Unclassified(notification_id, event_type, event_time, "invoice without subscription")
    return Classified(
        subscription_ref=subscription_ref,
        account_id=_account_id(metadata),
        **base,
    )
