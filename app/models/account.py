"""Account model - a restaurant's login and its billing tier."""

from datetime import datetime
from enum import Enum

from sqlalchemy import Column, DateTime, String, text
from sqlmodel import Field, SQLModel

from app.models.base import TimestampMixin, UUIDMixin


class TierStatus(str, Enum):
    """Billing tier derived from Stripe notifications."""

    FREE = "free"
    ACTIVE = "active"
    PAST_DUE = "past_due"
    GRACE_CANCELLED = "grace_cancelled"  # Cancelled, but paid up until period_end


PAID_TIERS = frozenset(
    {TierStatus.ACTIVE.value, TierStatus.PAST_DUE.value, TierStatus.GRACE_CANCELLED.value}
)


class Account(UUIDMixin, TimestampMixin, SQLModel, table=True):
    """
    Account model - one row per restaurant.

    Tier fields are written only by the notification ingestor (and the
    reconciliation sweep, which goes through the same path). Checkout may
    set external_customer_ref, nothing else.

    Invariant: tier_status == "free" exactly when external_subscription_ref is NULL.
    """

    __tablename__ = "accounts"

    email: str = Field(max_length=255, nullable=False, unique=True, index=True)
    restaurant_name: str = Field(max_length=255, nullable=False)

    tier_status: str = Field(
        default=TierStatus.FREE.value,
        sa_column=Column(
            String(20),
            nullable=False,
            server_default=TierStatus.FREE.value,
            index=True,
        ),
    )

    # Stripe references
    external_customer_ref: str | None = Field(
        default=None,
        max_length=255,
        unique=True,
        index=True,
        sa_column_kwargs={"comment": "Stripe customer (cus_...). Set once, never cleared"},
    )
    external_subscription_ref: str | None = Field(
        default=None,
        max_length=255,
        index=True,
        sa_column_kwargs={"comment": "Live Stripe subscription (sub_...). Cleared when it ends"},
    )
    plan_ref: str | None = Field(
        default=None,
        max_length=255,
        sa_column_kwargs={"comment": "Stripe price ID of the active plan"},
    )
    period_end: datetime | None = Field(
        default=None,
        sa_column=Column(DateTime(timezone=True), nullable=True),
    )
    cancel_at_period_end: bool = Field(
        default=False,
        nullable=False,
        sa_column_kwargs={"server_default": text("false")},
    )

    # Ordering bookkeeping
    last_subscription_ref: str | None = Field(
        default=None,
        max_length=255,
        index=True,
        sa_column_kwargs={
            "comment": "Subscription that subscription_event_at refers to; kept after it ends"
        },
    )
    subscription_event_at: datetime | None = Field(
        default=None,
        sa_column=Column(
            DateTime(timezone=True),
            nullable=True,
            comment="Provider timestamp of the last applied notification",
        ),
    )
    last_notification_at: datetime | None = Field(
        default=None,
        sa_column=Column(
            DateTime(timezone=True),
            nullable=True,
            comment="When we last applied a notification (drives reconciliation)",
        ),
    )
