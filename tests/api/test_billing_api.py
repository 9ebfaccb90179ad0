"""Billing API tests: plans, status, entitlement, checkout and portal."""

from __future__ import annotations

from unittest.mock import patch

import pytest
from httpx import AsyncClient
from stripe import StripeError

from tests.helpers.auth_assertions import assert_requires_auth

EVENT_BODY = {"event_name": "Team lunch", "event_date_time": "2026-11-20T12:30:00Z"}


class TestBillingRequireAuth:
    @pytest.mark.parametrize(
        "method,url,body",
        [
            ("get", "/api/v1/billing/status", None),
            ("get", "/api/v1/billing/entitlement", None),
            ("post", "/api/v1/billing/checkout", {"plan": "monthly"}),
            ("post", "/api/v1/billing/portal", None),
        ],
    )
    async def test_unauth_returns_401(self, api_client: AsyncClient, method: str, url: str, body):
        kwargs = {"json": body} if body else {}
        await assert_requires_auth(api_client, method, url, **kwargs)


class TestPlans:
    """GET /billing/plans should be accessible without auth."""

    async def test_lists_paid_plans(self, api_client: AsyncClient):
        resp = await api_client.get("/api/v1/billing/plans")

        assert resp.status_code == 200
        plans = {p["plan"]: p for p in resp.json()}
        assert set(plans) == {"monthly", "annual"}
        assert plans["monthly"]["price_amount"] == 1500
        assert plans["annual"]["interval"] == "year"


class TestStatus:
    """GET /billing/status"""

    async def test_free_account(self, api_client: AsyncClient, account_headers):
        resp = await api_client.get("/api/v1/billing/status", headers=account_headers)

        assert resp.status_code == 200
        assert resp.json() == {
            "status": "free",
            "plan": None,
            "current_period_end": None,
            "event_count": 0,
            "event_limit": 1,
        }

    async def test_paid_account(self, api_client: AsyncClient, paid_headers):
        resp = await api_client.get("/api/v1/billing/status", headers=paid_headers)

        body = resp.json()
        assert body["status"] == "active"
        assert body["plan"] == "monthly"
        assert body["current_period_end"].endswith("+00:00")
        assert body["event_limit"] is None


class TestEntitlement:
    """GET /billing/entitlement"""

    async def test_reflects_usage(self, api_client: AsyncClient, account_headers):
        before = (await api_client.get("/api/v1/billing/entitlement", headers=account_headers)).json()
        await api_client.post("/api/v1/events", json=EVENT_BODY, headers=account_headers)
        after = (await api_client.get("/api/v1/billing/entitlement", headers=account_headers)).json()

        assert before == {"tier_status": "free", "limit": 1, "current_count": 0, "may_create": True}
        assert after == {"tier_status": "free", "limit": 1, "current_count": 1, "may_create": False}

    async def test_paid_is_unbounded(self, api_client: AsyncClient, paid_headers):
        body = (await api_client.get("/api/v1/billing/entitlement", headers=paid_headers)).json()
        assert body["limit"] is None
        assert body["may_create"] is True


class TestCheckout:
    """POST /billing/checkout"""

    async def test_returns_checkout_url(self, api_client: AsyncClient, account_headers, mock_stripe_sdk):
        resp = await api_client.post(
            "/api/v1/billing/checkout", json={"plan": "annual"}, headers=account_headers
        )

        assert resp.status_code == 200
        assert resp.json() == {"checkout_url": "https://checkout.stripe.com/c/pay/cs_test_123"}
        assert mock_stripe_sdk["checkout_create"].call_args[1]["line_items"][0]["price"] == "price_annual_test"

    async def test_checkout_does_not_upgrade(self, api_client: AsyncClient, account_headers):
        await api_client.post("/api/v1/billing/checkout", json={"plan": "monthly"}, headers=account_headers)

        status = (await api_client.get("/api/v1/billing/status", headers=account_headers)).json()
        assert status["status"] == "free"

    async def test_unknown_plan_is_400(self, api_client: AsyncClient, account_headers):
        resp = await api_client.post(
            "/api/v1/billing/checkout", json={"plan": "lifetime"}, headers=account_headers
        )

        assert resp.status_code == 400
        assert resp.json()["detail"]["code"] == "UNKNOWN_PLAN"

    async def test_stripe_outage_is_502(self, api_client: AsyncClient, account_headers, mock_stripe_sdk):
        mock_stripe_sdk["checkout_create"].side_effect = StripeError("Service unavailable")

        resp = await api_client.post(
            "/api/v1/billing/checkout", json={"plan": "monthly"}, headers=account_headers
        )

        assert resp.status_code == 502

    async def test_payments_not_configured(self, api_client: AsyncClient, account_headers):
        with patch("app.api.v1.billing.settings") as mock_settings:
            mock_settings.stripe_enabled = False
            resp = await api_client.post(
                "/api/v1/billing/checkout", json={"plan": "monthly"}, headers=account_headers
            )

        assert resp.status_code == 400


class TestPortal:
    """POST /billing/portal"""

    async def test_free_account_without_customer_is_400(self, api_client: AsyncClient, account_headers):
        resp = await api_client.post("/api/v1/billing/portal", headers=account_headers)

        assert resp.status_code == 400
        assert resp.json()["detail"]["code"] == "NO_BILLING_ACCOUNT"

    async def test_returns_portal_url(self, api_client: AsyncClient, paid_headers):
        resp = await api_client.post("/api/v1/billing/portal", headers=paid_headers)

        assert resp.status_code == 200
        assert resp.json() == {"portal_url": "https://billing.stripe.com/p/session/test_123"}


class TestHealth:
    async def test_health(self, api_client: AsyncClient):
        resp = await api_client.get("/health")
        assert resp.json() == {"status": "healthy"}
