"""Domain integration test fixtures.

Extends the root conftest fixtures with helpers that drive the billing
services the way the API does: one session per delivery or request.
"""

from __future__ import annotations

import uuid
from typing import Any

import pytest
from sqlalchemy import select

from app.domain.account_operations import account_ops
from app.models.account import Account
from app.models.billing import BillingEvent, ProcessedNotification
from app.services.billing import notification_ingestor

from tests.helpers.stripe_events import signed_delivery


@pytest.fixture
def deliver(session_maker):
    """Deliver a Stripe event to the ingestor, signed with the test secret."""

    async def _deliver(event: dict[str, Any]):
        payload, signature = signed_delivery(event)
        async with session_maker() as db:
            return await notification_ingestor.ingest(db, payload, signature)

    return _deliver


@pytest.fixture
def load_account(session_maker):
    """Read an account's committed state in a fresh session."""

    async def _load(account_id: uuid.UUID) -> Account:
        async with session_maker() as db:
            account = await account_ops.get(db, account_id)
            assert account is not None
            return account

    return _load


@pytest.fixture
def processed_rows(session_maker):
    """All processed-notification rows for an event id."""

    async def _rows(notification_id: str) -> list[ProcessedNotification]:
        async with session_maker() as db:
            result = await db.execute(
                select(ProcessedNotification).where(
                    ProcessedNotification.notification_id == notification_id
                )
            )
            return list(result.scalars().all())

    return _rows


@pytest.fixture
def audit_log(session_maker):
    """Billing audit entries for an account, oldest first."""

    async def _audit(account_id: uuid.UUID) -> list[BillingEvent]:
        async with session_maker() as db:
            events = await account_ops.get_events(db, account_id)
            return sorted(events, key=lambda e: e.created_at)

    return _audit
