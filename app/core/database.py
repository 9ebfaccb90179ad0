from collections.abc import AsyncGenerator
from typing import Any

from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlmodel import SQLModel

from app.config import settings


def _engine_kwargs(url: str) -> dict[str, Any]:
    """Connection pool settings for the configured backend."""
    if url.startswith("sqlite"):
        # Writers queue on the database lock instead of failing with "database is locked"
        return {"connect_args": {"timeout": 30}}

    # Pool sizing: pool_size=10 base + max_overflow=20 = 30 max connections
    return {
        "pool_size": 10,
        "max_overflow": 20,
        "pool_pre_ping": True,  # Detects stale connections before use
        "pool_recycle": 300,
        "pool_timeout": 30,
        "connect_args": {"command_timeout": 60},  # Query timeout in seconds
    }


def enable_sqlite_immediate_transactions(engine: AsyncEngine) -> None:
    """Make every SQLite transaction take the write lock up front.

    SQLite has no row locks and ignores SELECT ... FOR UPDATE, so the
    account-level serialization that PostgreSQL gives us through row locks
    is provided by BEGIN IMMEDIATE instead. Without it two deferred
    transactions can both read and then deadlock on lock promotion.
    """

    @event.listens_for(engine.sync_engine, "connect")
    def _disable_driver_begin(dbapi_connection, _connection_record):  # type: ignore[no-untyped-def]
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _begin_immediate(conn):  # type: ignore[no-untyped-def]
        conn.exec_driver_sql("BEGIN IMMEDIATE")


def build_engine(url: str) -> AsyncEngine:
    """Create an async engine configured for the backend in ``url``."""
    engine = create_async_engine(url, echo=False, future=True, **_engine_kwargs(url))
    if url.startswith("sqlite"):
        enable_sqlite_immediate_transactions(engine)
    return engine


engine = build_engine(settings.database_url)

async_session_maker = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autoflush=False,
)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Dependency that yields an async database session.

    Commits on success and rolls back on error. Services that need to
    acknowledge only after a durable write (webhooks, gated creates)
    commit explicitly; the trailing commit is then a no-op.
    """
    async with async_session_maker() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


async def init_db() -> None:
    """Create all tables (for development only - use Alembic in production)."""
    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)
