from app.models.account import PAID_TIERS, Account, TierStatus
from app.models.billing import (
    BillingEvent,
    BillingEventType,
    NotificationOutcome,
    ProcessedNotification,
)
from app.models.event import Event, EventCreate, EventRead

__all__ = [
    "Account",
    "TierStatus",
    "PAID_TIERS",
    "Event",
    "EventCreate",
    "EventRead",
    "BillingEvent",
    "BillingEventType",
    "NotificationOutcome",
    "ProcessedNotification",
]
