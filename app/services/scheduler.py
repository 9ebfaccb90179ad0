"""Internal task scheduler using APScheduler.

Runs the billing reconciliation sweep within the FastAPI process.
Uses PostgreSQL advisory locks to prevent duplicate execution when
multiple instances are running (e.g., Fly.io auto-scaling).
"""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import asdict
from typing import Any

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from sqlalchemy import text

from app.config import settings
from app.core.database import async_session_maker

logger = logging.getLogger(__name__)

# Advisory lock IDs (arbitrary unique integers: one per job)
RECONCILE_LOCK_ID = 891250


@asynccontextmanager
async def advisory_lock(lock_id: int) -> AsyncIterator[bool]:
    """
    Acquire a PostgreSQL advisory lock for the duration of the context.

    Advisory locks are session-level and automatically released when the
    session ends. We use pg_try_advisory_lock() which returns immediately
    (non-blocking): if the lock is held by another process, we skip.

    Other backends (SQLite for local development) run a single process,
    so the lock is always granted there.
    """
    async with async_session_maker() as session:
        if session.get_bind().dialect.name != "postgresql":
            yield True
            return

        result = await session.execute(
            text("SELECT pg_try_advisory_lock(:lock_id)"),
            {"lock_id": lock_id},
        )
        acquired = result.scalar()

        if not acquired:
            yield False
            return

        try:
            yield True
        finally:
            await session.execute(
                text("SELECT pg_advisory_unlock(:lock_id)"),
                {"lock_id": lock_id},
            )
            await session.commit()


async def run_reconciliation() -> dict[str, Any] | None:
    """
    Execute the reconciliation sweep with advisory lock protection.

    Returns the report dict if executed, None if skipped (lock held by another instance).
    """
    if not settings.stripe_enabled:
        logger.info("[scheduler] Reconciliation: skipped (Stripe not configured)")
        return None

    async with advisory_lock(RECONCILE_LOCK_ID) as acquired:
        if not acquired:
            logger.info("[scheduler] Reconciliation: skipped (another instance is running)")
            return None

        logger.info("[scheduler] Reconciliation: starting")

        try:
            from app.services.billing.reconciliation import reconciliation_sweep

            report = await reconciliation_sweep.run(async_session_maker)

            logger.info(
                f"[scheduler] Reconciliation: completed "
                f"({report.accounts_checked} checked, "
                f"{report.accounts_corrected} corrected, "
                f"{report.accounts_skipped} skipped, "
                f"{report.accounts_failed} failed, "
                f"{report.duration_seconds}s)"
            )
            return asdict(report)

        except Exception as e:
            logger.exception(f"[scheduler] Reconciliation: failed with error: {e}")
            return None


class Scheduler:
    """Manages the APScheduler instance and job registration."""

    def __init__(self) -> None:
        self._scheduler: AsyncIOScheduler | None = None

    def start(self) -> None:
        """Start the scheduler and register jobs."""
        if not settings.scheduler_enabled:
            logger.info("[scheduler] Disabled via SCHEDULER_ENABLED=false")
            return

        self._scheduler = AsyncIOScheduler()

        # Reconciliation: hourly at the configured minute
        self._scheduler.add_job(
            run_reconciliation,
            trigger=CronTrigger(minute=settings.reconcile_minute),
            id="billing_reconciliation",
            name="Billing Reconciliation Sweep",
            replace_existing=True,
        )

        self._scheduler.start()
        logger.info(
            f"[scheduler] Started with billing reconciliation hourly at "
            f":{settings.reconcile_minute:02d}"
        )

    def stop(self) -> None:
        """Gracefully shut down the scheduler."""
        if self._scheduler:
            self._scheduler.shutdown(wait=False)
            logger.info("[scheduler] Stopped")

    async def trigger_now(self, job_id: str) -> dict[str, Any] | None:
        """
        Manually trigger a job immediately (for testing/debugging).

        Returns the job result or None if job not found.
        """
        if job_id == "billing_reconciliation":
            return await run_reconciliation()
        return None


scheduler = Scheduler()
