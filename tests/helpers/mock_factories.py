"""Mock object factories for unit tests.

Creates consistent mock objects that match the real model shapes.
Used in unit tests where the database is fully mocked.
"""

from __future__ import annotations

import uuid
from datetime import UTC, datetime
from unittest.mock import MagicMock


def make_mock_account(**overrides: object) -> MagicMock:
    account = MagicMock()
    account.id = overrides.get("id", uuid.uuid4())
    account.email = overrides.get("email", "owner@example.com")
    account.restaurant_name = overrides.get("restaurant_name", "__test_restaurant")
    account.tier_status = overrides.get("tier_status", "free")
    account.external_customer_ref = overrides.get("external_customer_ref")
    account.external_subscription_ref = overrides.get("external_subscription_ref")
    account.plan_ref = overrides.get("plan_ref")
    account.period_end = overrides.get("period_end")
    account.last_subscription_ref = overrides.get("last_subscription_ref")
    account.subscription_event_at = overrides.get("subscription_event_at")
    account.last_notification_at = overrides.get("last_notification_at")
    account.created_at = overrides.get("created_at", datetime.now(UTC))
    account.updated_at = overrides.get("updated_at")
    return account


def mock_scalars_result(values: list) -> MagicMock:
    """Create a mock execute() result that yields values via .scalars().all()."""
    result = MagicMock()
    result.scalars.return_value.all.return_value = values
    result.scalars.return_value.first.return_value = values[0] if values else None
    return result


def mock_scalar_result(value: object) -> MagicMock:
    """Create a mock execute() result that yields a single value."""
    result = MagicMock()
    result.scalar_one_or_none.return_value = value
    result.scalar.return_value = value
    result.scalar_one.return_value = value
    return result
