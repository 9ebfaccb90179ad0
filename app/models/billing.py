"""Billing models - processed notifications and the billing audit log."""

import uuid as uuid_pkg
from datetime import UTC, datetime
from enum import Enum
from typing import Any

from sqlalchemy import JSON, Column, DateTime, ForeignKey, String, Uuid
from sqlmodel import Field, SQLModel


class BillingEventType(str, Enum):
    """Types of billing events for audit logging."""

    CUSTOMER_CREATED = "customer.created"
    SUBSCRIPTION_ACTIVATED = "subscription.activated"
    SUBSCRIPTION_UPDATED = "subscription.updated"
    SUBSCRIPTION_ENDED = "subscription.ended"
    PAYMENT_FAILED = "payment.failed"
    PAYMENT_RECOVERED = "payment.recovered"
    RECONCILED = "reconciliation.corrected"


class NotificationOutcome(str, Enum):
    """What the ingestor did with a notification."""

    APPLIED = "applied"
    STALE = "stale"
    IGNORED = "ignored"
    UNMATCHED = "unmatched"


class ProcessedNotification(SQLModel, table=True):
    """
    One row per Stripe event id that has been handled.

    Written in the same transaction as the account change the event caused,
    so a committed row means the change is durable. Never deleted.
    """

    __tablename__ = "processed_notifications"

    notification_id: str = Field(
        primary_key=True,
        max_length=255,
        sa_column_kwargs={"comment": "Stripe event id (evt_...)"},
    )
    account_id: uuid_pkg.UUID | None = Field(
        default=None,
        sa_column=Column(
            Uuid(as_uuid=True),
            ForeignKey("accounts.id", ondelete="SET NULL"),
            nullable=True,
            index=True,
        ),
    )
    notification_type: str = Field(
        sa_column=Column(String(100), nullable=False),
    )
    outcome: str = Field(
        sa_column=Column(String(20), nullable=False),
    )
    event_time: datetime | None = Field(
        default=None,
        sa_column=Column(DateTime(timezone=True), nullable=True),
    )
    applied_at: datetime = Field(  # type: ignore[call-overload]
        default_factory=lambda: datetime.now(UTC),
        nullable=False,
        sa_type=DateTime(timezone=True),
    )


class BillingEvent(SQLModel, table=True):
    """
    Billing event audit log.

    Tracks all billing-related changes for audit and debugging.
    """

    __tablename__ = "billing_events"

    id: uuid_pkg.UUID = Field(
        default_factory=uuid_pkg.uuid4,
        primary_key=True,
        nullable=False,
    )
    account_id: uuid_pkg.UUID = Field(
        sa_column=Column(
            Uuid(as_uuid=True),
            ForeignKey("accounts.id", ondelete="CASCADE"),
            nullable=False,
            index=True,
        ),
    )

    event_type: str = Field(
        sa_column=Column(String(50), nullable=False, index=True),
    )
    description: str | None = Field(default=None, max_length=500, nullable=True)

    # Change tracking
    previous_value: dict[str, Any] | None = Field(
        default=None,
        sa_column=Column(JSON, nullable=True),
    )
    new_value: dict[str, Any] | None = Field(
        default=None,
        sa_column=Column(JSON, nullable=True),
    )

    # Stripe reference (if applicable)
    notification_id: str | None = Field(
        default=None,
        max_length=255,
        nullable=True,
        index=True,
    )

    created_at: datetime = Field(  # type: ignore[call-overload]
        default_factory=lambda: datetime.now(UTC),
        nullable=False,
        sa_type=DateTime(timezone=True),
    )
