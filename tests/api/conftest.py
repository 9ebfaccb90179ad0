"""API test fixtures: accounts in specific billing states plus their headers.

Builds on root conftest fixtures (session_maker, test_account,
paid_account, api_client, mock_stripe_sdk).
"""

from __future__ import annotations

from datetime import UTC, datetime, timedelta

import pytest

from tests.helpers.auth import auth_headers
from tests.helpers.factories import TestDataFactory


@pytest.fixture
def paid_headers(paid_account):
    """Bearer headers for paid_account."""
    return auth_headers(paid_account.id)


@pytest.fixture
async def lapsed_account(session_maker):
    """A cancelled subscription whose paid period ran out, owning one event."""
    async with session_maker() as db:
        account = await TestDataFactory.create_paid_account(
            db,
            tier_status="grace_cancelled",
            cancel_at_period_end=True,
            period_end=datetime.now(UTC) - timedelta(days=1),
        )
        await TestDataFactory.create_event(db, account)
        await db.commit()
    return account
