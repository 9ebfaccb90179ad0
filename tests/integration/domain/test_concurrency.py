"""Concurrency tests for the entitlement gate.

Each task uses its own session (and connection), so the requests really
race. SQLite serializes them through BEGIN IMMEDIATE; PostgreSQL does the
same with the account row lock.
"""

from __future__ import annotations

import asyncio
import uuid
from datetime import UTC, datetime, timedelta

from sqlalchemy import func, select

from app.models.account import Account
from app.models.event import Event, EventCreate
from app.services.billing import Allow, Deny, DenyReason, entitlement_gate

from tests.helpers.factories import TestDataFactory

CONCURRENT_REQUESTS = 50


def event_data(n: int) -> EventCreate:
    return EventCreate(
        event_name=f"__test_party_{n}",
        event_date_time=datetime.now(UTC) + timedelta(days=10),
    )


async def count_events(session_maker, account_id) -> int:
    async with session_maker() as db:
        result = await db.execute(select(func.count()).select_from(Event).where(Event.account_id == account_id))
        return result.scalar_one()


class TestConcurrentCreation:
    """Parallel create requests never exceed the free limit."""

    async def test_free_account_gets_exactly_one_event(self, session_maker, test_account):
        async def attempt(n: int):
            async with session_maker() as db:
                decision, _ = await entitlement_gate.create_event(db, test_account.id, event_data(n))
                return decision

        decisions = await asyncio.gather(*(attempt(n) for n in range(CONCURRENT_REQUESTS)))

        allowed = [d for d in decisions if isinstance(d, Allow)]
        denied = [d for d in decisions if isinstance(d, Deny)]
        assert len(allowed) == 1
        assert len(denied) == CONCURRENT_REQUESTS - 1
        assert {d.reason for d in denied} == {DenyReason.AT_LIMIT}
        assert await count_events(session_maker, test_account.id) == 1

    async def test_paid_account_creates_all(self, session_maker, paid_account):
        async def attempt(n: int):
            async with session_maker() as db:
                decision, _ = await entitlement_gate.create_event(db, paid_account.id, event_data(n))
                return decision

        decisions = await asyncio.gather(*(attempt(n) for n in range(10)))

        assert all(isinstance(d, Allow) for d in decisions)
        assert await count_events(session_maker, paid_account.id) == 10

    async def test_upgrade_between_requests_lifts_limit(self, session_maker, test_account):
        async with session_maker() as db:
            first, _ = await entitlement_gate.create_event(db, test_account.id, event_data(1))
        async with session_maker() as db:
            second, _ = await entitlement_gate.create_event(db, test_account.id, event_data(2))
        assert isinstance(first, Allow)
        assert isinstance(second, Deny)

        async with session_maker() as db:
            account = await db.get(Account, test_account.id)
            account.tier_status = "active"
            await db.commit()

        async with session_maker() as db:
            third, event = await entitlement_gate.create_event(db, test_account.id, event_data(3))
        assert isinstance(third, Allow)
        assert event is not None


class TestGateEdges:
    """Non-concurrent edges of the gated insert."""

    async def test_unknown_account_is_denied(self, session_maker):
        async with session_maker() as db:
            decision, event = await entitlement_gate.create_event(db, uuid.uuid4(), event_data(1))

        assert decision == Deny(DenyReason.ACCOUNT_NOT_FOUND)
        assert event is None

    async def test_lapsed_grace_requires_subscription(self, session_maker):
        async with session_maker() as db:
            account = await TestDataFactory.create_paid_account(
                db,
                tier_status="grace_cancelled",
                cancel_at_period_end=True,
                period_end=datetime.now(UTC) - timedelta(days=2),
            )
            await TestDataFactory.create_event(db, account)
            await db.commit()

        async with session_maker() as db:
            decision, event = await entitlement_gate.create_event(db, account.id, event_data(1))

        assert isinstance(decision, Deny)
        assert decision.reason == DenyReason.SUBSCRIPTION_REQUIRED
        assert event is None

    async def test_advisory_check_matches_gate(self, session_maker, test_account):
        async with session_maker() as db:
            before = await entitlement_gate.may_create(db, test_account.id)
        async with session_maker() as db:
            await entitlement_gate.create_event(db, test_account.id, event_data(1))
        async with session_maker() as db:
            after = await entitlement_gate.may_create(db, test_account.id)

        assert isinstance(before, Allow)
        assert isinstance(after, Deny)
        assert after.reason == DenyReason.AT_LIMIT
