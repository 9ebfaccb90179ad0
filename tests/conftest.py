"""Root conftest: test infrastructure for all backend tests.

Provides:
- Test settings (set before the app is imported)
- Per-test SQLite database with the same BEGIN IMMEDIATE locking as dev
- session_maker / db_session fixtures
- Test account fixtures
- API client with dependency overrides and signed bearer tokens
- Autouse mock for the Stripe SDK (no network calls)
"""

from __future__ import annotations

import os

# Settings are read once at import time, so these must be set before any app import
os.environ["DATABASE_URL"] = "sqlite+aiosqlite://"
os.environ["JWT_SECRET"] = "test-jwt-secret"
os.environ["STRIPE_SECRET_KEY"] = "sk_test_groupbook"
os.environ["STRIPE_WEBHOOK_SECRET"] = "whsec_test_groupbook"
os.environ["STRIPE_PRICE_MONTHLY"] = "price_monthly_test"
os.environ["STRIPE_PRICE_ANNUAL"] = "price_annual_test"
os.environ["FREE_EVENT_LIMIT"] = "1"
os.environ["SCHEDULER_ENABLED"] = "false"
os.environ["FRONTEND_URL"] = "http://localhost:3000"

from unittest.mock import MagicMock, patch  # noqa: E402

import pytest  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine  # noqa: E402
from sqlalchemy.pool import NullPool  # noqa: E402
from sqlmodel import SQLModel  # noqa: E402
from stripe import InvalidRequestError  # noqa: E402

import app.models  # noqa: E402, F401
from app.core.database import enable_sqlite_immediate_transactions  # noqa: E402

from tests.helpers.auth import auth_headers  # noqa: E402
from tests.helpers.factories import TestDataFactory  # noqa: E402


def pytest_configure(config: pytest.Config) -> None:
    config.addinivalue_line("markers", "integration: tests that use a real (SQLite) database")


# ─────────────────────────────────────────────────────────────────────────────
# Database
# ─────────────────────────────────────────────────────────────────────────────


@pytest.fixture
async def test_engine(tmp_path):
    """A fresh file-backed SQLite database per test.

    File-backed (not :memory:) so that every session gets its own
    connection, which is what the locking tests need. NullPool closes
    connections as soon as a session is done with them.
    """
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'groupbook-test.db'}",
        poolclass=NullPool,
        connect_args={"timeout": 30},
    )
    enable_sqlite_immediate_transactions(engine)

    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)

    yield engine
    await engine.dispose()


@pytest.fixture
def session_maker(test_engine):
    """Session factory bound to the per-test database."""
    return async_sessionmaker(
        test_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


@pytest.fixture
async def db_session(session_maker):
    """A session for arranging and asserting.

    Every read starts a write-locking transaction on SQLite, so end it
    (commit/rollback) before handing control to code that opens its own
    sessions.
    """
    async with session_maker() as session:
        yield session


# ─────────────────────────────────────────────────────────────────────────────
# Accounts
# ─────────────────────────────────────────────────────────────────────────────


@pytest.fixture
async def test_account(session_maker):
    """A committed account on the free tier."""
    async with session_maker() as db:
        account = await TestDataFactory.create_account(db)
        await db.commit()
    return account


@pytest.fixture
async def paid_account(session_maker):
    """A committed account with a live monthly subscription."""
    async with session_maker() as db:
        account = await TestDataFactory.create_paid_account(db)
        await db.commit()
    return account


# ─────────────────────────────────────────────────────────────────────────────
# API Client
# ─────────────────────────────────────────────────────────────────────────────


@pytest.fixture
async def api_client(session_maker):
    """HTTP client against the app, with get_db pointed at the test database.

    Each request gets its own session, like in production. Authenticate
    with ``headers=auth_headers(account.id)``.
    """
    from app.core.database import get_db
    from app.main import app

    async def override_get_db():
        async with session_maker() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()


@pytest.fixture
def account_headers(test_account):
    """Bearer headers for test_account."""
    return auth_headers(test_account.id)


# ─────────────────────────────────────────────────────────────────────────────
# External Service Mocks (autouse)
# ─────────────────────────────────────────────────────────────────────────────


@pytest.fixture(autouse=True)
def mock_stripe_sdk():
    """Prevent any real Stripe API calls.

    Patches the SDK entry points the app uses. Subscriptions can only be
    retrieved once a test registers them:
    ``mock_stripe_sdk["subscriptions"]["sub_123"] = subscription_object(...)``.
    """
    subscriptions: dict[str, dict] = {}

    def retrieve(subscription_id, *args, **kwargs):
        if subscription_id not in subscriptions:
            raise InvalidRequestError(f"No such subscription: '{subscription_id}'", param="id")
        return MagicMock(to_dict=MagicMock(return_value=subscriptions[subscription_id]))

    with (
        patch("stripe.Customer.create") as customer_create,
        patch("stripe.checkout.Session.create") as checkout_create,
        patch("stripe.billing_portal.Session.create") as portal_create,
        patch("stripe.Subscription.retrieve") as subscription_retrieve,
    ):
        customer_create.return_value = MagicMock(id="cus_test_new")
        checkout_create.return_value = MagicMock(url="https://checkout.stripe.com/c/pay/cs_test_123")
        portal_create.return_value = MagicMock(url="https://billing.stripe.com/p/session/test_123")
        subscription_retrieve.side_effect = retrieve

        yield {
            "customer_create": customer_create,
            "checkout_create": checkout_create,
            "portal_create": portal_create,
            "subscription_retrieve": subscription_retrieve,
            "subscriptions": subscriptions,
        }
