"""Billing API endpoints for subscription management via Stripe."""

import logging

from fastapi import APIRouter, HTTPException, Request
from pydantic import BaseModel
from stripe import StripeError

from app.api.deps import CurrentAccount, CurrentAccountId, DbSession
from app.config import settings
from app.config.plans import PLANS, get_plan_by_price
from app.services.billing import (
    IngestStatus,
    InvalidSignature,
    PersistenceFailure,
    SessionDeny,
    SessionDenyReason,
    billing_sessions,
    entitlement_gate,
    notification_ingestor,
)
from app.services.billing.tier_resolver import as_utc

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/billing", tags=["billing"])


# ─────────────────────────────────────────────────────────────────────────────
# Request/Response Schemas
# ─────────────────────────────────────────────────────────────────────────────


class PlanInfo(BaseModel):
    """Public plan information."""

    plan: str
    display_name: str
    price_amount: int  # pence per interval
    interval: str


class BillingStatus(BaseModel):
    """Billing summary for the current account."""

    status: str
    plan: str | None
    current_period_end: str | None
    event_count: int
    event_limit: int | None  # None = unlimited


class EntitlementInfo(BaseModel):
    """What the current account may do right now."""

    tier_status: str
    limit: int | None  # None = unlimited
    current_count: int
    may_create: bool


class CheckoutRequest(BaseModel):
    """Request to create a checkout session."""

    plan: str  # "monthly" or "annual"


class CheckoutResponse(BaseModel):
    """Response with checkout URL."""

    checkout_url: str


class PortalResponse(BaseModel):
    """Response with portal URL."""

    portal_url: str


WEBHOOK_RESPONSE_STATUS = {
    IngestStatus.APPLIED: "ok",
    IngestStatus.DUPLICATE: "already_processed",
    IngestStatus.STALE: "stale",
    IngestStatus.IGNORED: "ignored",
    IngestStatus.UNKNOWN: "ignored",
    IngestStatus.UNMATCHED: "unmatched",
}


def _session_error(deny: SessionDeny) -> HTTPException:
    if deny.reason == SessionDenyReason.ACCOUNT_NOT_FOUND:
        return HTTPException(401, "Account not found")
    if deny.reason == SessionDenyReason.NO_BILLING_ACCOUNT:
        return HTTPException(
            400,
            {"code": deny.reason.value, "message": "No billing account found. Subscribe first."},
        )
    if deny.reason == SessionDenyReason.UNKNOWN_PLAN:
        return HTTPException(
            400,
            {"code": deny.reason.value, "message": f"Invalid plan. Must be one of: {list(PLANS)}"},
        )
    return HTTPException(400, {"code": deny.reason.value, "message": "Plan is not available"})


# ─────────────────────────────────────────────────────────────────────────────
# Public Endpoints
# ─────────────────────────────────────────────────────────────────────────────


@router.get("/plans", response_model=list[PlanInfo])
async def list_plans() -> list[PlanInfo]:
    """
    List all available paid plans (public endpoint).

    No authentication required.
    """
    return [
        PlanInfo(
            plan=plan.plan,
            display_name=plan.display_name,
            price_amount=plan.price_amount,
            interval=plan.interval,
        )
        for plan in PLANS.values()
    ]


# ─────────────────────────────────────────────────────────────────────────────
# Authenticated Endpoints
# ─────────────────────────────────────────────────────────────────────────────


@router.get("/status", response_model=BillingStatus)
async def get_billing_status(
    db: DbSession,
    current_account: CurrentAccount,
) -> BillingStatus:
    """Get plan, period and event usage for the current account."""
    entitlement = await entitlement_gate.status(db, current_account)
    plan = get_plan_by_price(current_account.plan_ref)
    period_end = as_utc(current_account.period_end)

    return BillingStatus(
        status=current_account.tier_status,
        plan=plan.plan if plan else None,
        current_period_end=period_end.isoformat() if period_end else None,
        event_count=entitlement.current_count,
        event_limit=entitlement.limit,
    )


@router.get("/entitlement", response_model=EntitlementInfo)
async def get_entitlement(
    db: DbSession,
    current_account: CurrentAccount,
) -> EntitlementInfo:
    """
    Whether the current account may create another event.

    Advisory only: event creation re-checks under a lock.
    """
    entitlement = await entitlement_gate.status(db, current_account)
    return EntitlementInfo(
        tier_status=entitlement.tier_status,
        limit=entitlement.limit,
        current_count=entitlement.current_count,
        may_create=entitlement.may_create,
    )


@router.post("/checkout", response_model=CheckoutResponse)
async def create_checkout(
    request: CheckoutRequest,
    db: DbSession,
    account_id: CurrentAccountId,
) -> CheckoutResponse:
    """
    Create a Stripe Checkout session for a paid plan.

    Returns a URL to redirect the user to Stripe Checkout. The tier changes
    only once Stripe confirms the subscription via webhook.
    """
    if not settings.stripe_enabled:
        raise HTTPException(400, "Payments not configured")

    try:
        result = await billing_sessions.start_checkout(db, account_id, request.plan)
    except StripeError:
        raise HTTPException(502, "Payment provider unavailable, please try again") from None

    if isinstance(result, SessionDeny):
        raise _session_error(result)
    return CheckoutResponse(checkout_url=result.url)


@router.post("/portal", response_model=PortalResponse)
async def create_portal(
    db: DbSession,
    account_id: CurrentAccountId,
) -> PortalResponse:
    """
    Create a Stripe Customer Portal session for self-service billing.

    Returns a URL to redirect the user to Stripe Portal.
    """
    if not settings.stripe_enabled:
        raise HTTPException(400, "Payments not configured")

    try:
        result = await billing_sessions.start_portal(db, account_id)
    except StripeError:
        raise HTTPException(502, "Payment provider unavailable, please try again") from None

    if isinstance(result, SessionDeny):
        raise _session_error(result)
    return PortalResponse(portal_url=result.url)


# ─────────────────────────────────────────────────────────────────────────────
# Stripe Webhooks
# ─────────────────────────────────────────────────────────────────────────────


@router.post("/webhooks/stripe")
async def handle_stripe_webhook(
    request: Request,
    db: DbSession,
) -> dict[str, str]:
    """
    Handle Stripe webhook events.

    This endpoint is called by Stripe when subscription events occur.
    Verifies the webhook signature before processing.
    No authentication required (verified by Stripe signature).

    A 2xx response is only sent once the outcome is committed; a 503 makes
    Stripe redeliver the event later.
    """
    payload = await request.body()
    sig_header = request.headers.get("stripe-signature", "")

    try:
        result = await notification_ingestor.ingest(db, payload, sig_header)
    except InvalidSignature:
        raise HTTPException(400, "Invalid webhook signature") from None
    except PersistenceFailure:
        raise HTTPException(503, "Temporarily unable to process webhook") from None

    return {"status": WEBHOOK_RESPONSE_STATUS[result.status]}
