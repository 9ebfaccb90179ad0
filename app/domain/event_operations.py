import uuid as uuid_pkg
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.event import Event, EventCreate


class EventOperations:
    """Operations for Event model."""

    async def count_by_account(self, db: AsyncSession, account_id: uuid_pkg.UUID) -> int:
        """Count events owned by an account. Always hits the database."""
        statement = select(func.count()).select_from(Event).where(Event.account_id == account_id)
        result = await db.execute(statement)
        return result.scalar_one()

    async def get_multi_by_account(
        self,
        db: AsyncSession,
        account_id: uuid_pkg.UUID,
        skip: int = 0,
        limit: int = 100,
    ) -> list[Event]:
        statement = (
            select(Event)
            .where(Event.account_id == account_id)
            .order_by(Event.created_at.desc())
            .offset(skip)
            .limit(limit)
        )
        result = await db.execute(statement)
        return list(result.scalars().all())

    async def create(
        self,
        db: AsyncSession,
        account_id: uuid_pkg.UUID,
        obj_in: EventCreate | dict[str, Any],
    ) -> Event:
        """Insert an event. Callers are responsible for the entitlement check."""
        event = Event.from_create(account_id, obj_in)
        db.add(event)
        await db.flush()
        await db.refresh(event)
        return event


event_ops = EventOperations()
