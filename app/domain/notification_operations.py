"""Domain operations for the processed-notification record."""

import uuid as uuid_pkg
from datetime import datetime

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.billing import NotificationOutcome, ProcessedNotification


class NotificationOperations:
    """Operations for ProcessedNotification model."""

    async def get(
        self,
        db: AsyncSession,
        notification_id: str,
    ) -> ProcessedNotification | None:
        statement = select(ProcessedNotification).where(
            ProcessedNotification.notification_id == notification_id
        )
        result = await db.execute(statement)
        return result.scalar_one_or_none()

    async def is_processed(self, db: AsyncSession, notification_id: str) -> bool:
        return await self.get(db, notification_id) is not None

    async def record(
        self,
        db: AsyncSession,
        notification_id: str,
        notification_type: str,
        outcome: NotificationOutcome,
        account_id: uuid_pkg.UUID | None = None,
        event_time: datetime | None = None,
    ) -> ProcessedNotification:
        """
        Record a notification as handled.

        Flushes immediately so a concurrent delivery of the same id surfaces
        as an IntegrityError here, before the caller commits.
        """
        processed = ProcessedNotification(
            notification_id=notification_id,
            notification_type=notification_type,
            outcome=outcome.value,
            account_id=account_id,
            event_time=event_time,
        )
        db.add(processed)
        await db.flush()
        return processed


notification_ops = NotificationOperations()
