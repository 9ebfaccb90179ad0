"""add_cancel_at_period_end_to_accounts

Revision ID: 9d3f27a8c510
Revises: 6b1e0c2f9a41
Create Date: 2026-10-19 09:31:07.204118

Tracks whether the live subscription is set to cancel at period end, so a
paid invoice after a failed payment returns the account to its grace period
rather than to active.
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "9d3f27a8c510"
down_revision: Union[str, None] = "6b1e0c2f9a41"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.add_column(
        "accounts",
        sa.Column(
            "cancel_at_period_end",
            sa.Boolean(),
            nullable=False,
            server_default=sa.text("false"),
        ),
    )
    # Accounts already in their grace period have a cancellation scheduled
    op.execute(
        "UPDATE accounts SET cancel_at_period_end = true WHERE tier_status = 'grace_cancelled'"
    )


def downgrade() -> None:
    op.drop_column("accounts", "cancel_at_period_end")
