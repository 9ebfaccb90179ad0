"""Shared assertion helpers for authorization boundary tests.

Usage:
    await assert_requires_auth(api_client, "get", "/api/v1/events")
    await assert_payment_required(api_client, "post", url, "AT_LIMIT", json={...}, headers=...)
"""

from __future__ import annotations

from httpx import AsyncClient


async def assert_requires_auth(
    client: AsyncClient, method: str, url: str, **kwargs
) -> None:
    """Verify endpoint returns 401 without valid auth."""
    resp = await getattr(client, method)(url, **kwargs)
    assert resp.status_code == 401, (
        f"{method.upper()} {url} expected 401, got {resp.status_code}: {resp.text}"
    )


async def assert_payment_required(
    client: AsyncClient, method: str, url: str, code: str, **kwargs
) -> None:
    """Verify endpoint returns 402 with the given deny code."""
    resp = await getattr(client, method)(url, **kwargs)
    assert resp.status_code == 402, (
        f"{method.upper()} {url} expected 402, got {resp.status_code}: {resp.text}"
    )
    assert resp.json()["detail"]["code"] == code
