"""create_accounts_events_and_billing_tables

Revision ID: 6b1e0c2f9a41
Revises:
Create Date: 2026-10-18 10:12:44.519203

This migration creates:
1. accounts - restaurant accounts with their derived billing tier
2. events - group bookings, the resource gated by tier
3. processed_notifications - one row per handled Stripe event id
4. billing_events - audit log of tier changes

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "6b1e0c2f9a41"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "accounts",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("email", sa.String(length=255), nullable=False),
        sa.Column("restaurant_name", sa.String(length=255), nullable=False),
        sa.Column("tier_status", sa.String(length=20), server_default="free", nullable=False),
        sa.Column(
            "external_customer_ref",
            sa.String(length=255),
            nullable=True,
            comment="Stripe customer (cus_...). Set once, never cleared",
        ),
        sa.Column(
            "external_subscription_ref",
            sa.String(length=255),
            nullable=True,
            comment="Live Stripe subscription (sub_...). Cleared when it ends",
        ),
        sa.Column(
            "plan_ref",
            sa.String(length=255),
            nullable=True,
            comment="Stripe price ID of the active plan",
        ),
        sa.Column("period_end", sa.DateTime(timezone=True), nullable=True),
        sa.Column(
            "last_subscription_ref",
            sa.String(length=255),
            nullable=True,
            comment="Subscription that subscription_event_at refers to; kept after it ends",
        ),
        sa.Column(
            "subscription_event_at",
            sa.DateTime(timezone=True),
            nullable=True,
            comment="Provider timestamp of the last applied notification",
        ),
        sa.Column(
            "last_notification_at",
            sa.DateTime(timezone=True),
            nullable=True,
            comment="When we last applied a notification (drives reconciliation)",
        ),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_accounts_id"), "accounts", ["id"], unique=False)
    op.create_index(op.f("ix_accounts_email"), "accounts", ["email"], unique=True)
    op.create_index(op.f("ix_accounts_tier_status"), "accounts", ["tier_status"], unique=False)
    op.create_index(
        op.f("ix_accounts_external_customer_ref"), "accounts", ["external_customer_ref"], unique=True
    )
    op.create_index(
        op.f("ix_accounts_external_subscription_ref"),
        "accounts",
        ["external_subscription_ref"],
        unique=False,
    )
    op.create_index(
        op.f("ix_accounts_last_subscription_ref"), "accounts", ["last_subscription_ref"], unique=False
    )

    op.create_table(
        "events",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("account_id", sa.Uuid(), nullable=False),
        sa.Column("event_name", sa.String(length=255), nullable=False),
        sa.Column("event_date_time", sa.DateTime(timezone=True), nullable=False),
        sa.Column("cutoff_datetime", sa.DateTime(timezone=True), nullable=True),
        sa.Column("party_lead_name", sa.String(length=255), nullable=True),
        sa.Column("party_lead_email", sa.String(length=255), nullable=True),
        sa.Column("party_lead_phone", sa.String(length=50), nullable=True),
        sa.Column("link_token", sa.String(length=64), nullable=False, comment="Public guest link token"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["account_id"], ["accounts.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_events_id"), "events", ["id"], unique=False)
    op.create_index(op.f("ix_events_account_id"), "events", ["account_id"], unique=False)
    op.create_index(op.f("ix_events_link_token"), "events", ["link_token"], unique=True)

    op.create_table(
        "processed_notifications",
        sa.Column("notification_id", sa.String(length=255), nullable=False, comment="Stripe event id (evt_...)"),
        sa.Column("account_id", sa.Uuid(), nullable=True),
        sa.Column("notification_type", sa.String(length=100), nullable=False),
        sa.Column("outcome", sa.String(length=20), nullable=False),
        sa.Column("event_time", sa.DateTime(timezone=True), nullable=True),
        sa.Column("applied_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["account_id"], ["accounts.id"], ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("notification_id"),
    )
    op.create_index(
        op.f("ix_processed_notifications_account_id"),
        "processed_notifications",
        ["account_id"],
        unique=False,
    )

    op.create_table(
        "billing_events",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("account_id", sa.Uuid(), nullable=False),
        sa.Column("event_type", sa.String(length=50), nullable=False),
        sa.Column("description", sa.String(length=500), nullable=True),
        sa.Column("previous_value", sa.JSON(), nullable=True),
        sa.Column("new_value", sa.JSON(), nullable=True),
        sa.Column("notification_id", sa.String(length=255), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["account_id"], ["accounts.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_billing_events_account_id"), "billing_events", ["account_id"], unique=False)
    op.create_index(op.f("ix_billing_events_event_type"), "billing_events", ["event_type"], unique=False)
    op.create_index(
        op.f("ix_billing_events_notification_id"), "billing_events", ["notification_id"], unique=False
    )


def downgrade() -> None:
    op.drop_table("billing_events")
    op.drop_table("processed_notifications")
    op.drop_table("events")
    op.drop_table("accounts")
