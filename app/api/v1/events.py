"""Event endpoints. Creation is gated by the account's billing tier."""

import logging

from fastapi import APIRouter, HTTPException, status

from app.api.deps import CurrentAccount, CurrentAccountId, DbSession
from app.core.exceptions import AuthenticationError, PaymentRequiredError
from app.domain.event_operations import event_ops
from app.models.event import EventCreate, EventRead
from app.services.billing import Deny, DenyReason, entitlement_gate

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/events", tags=["events"])

DENY_MESSAGES = {
    DenyReason.AT_LIMIT: "Free accounts are limited to {limit} event(s). Upgrade to create more.",
    DenyReason.SUBSCRIPTION_REQUIRED: "Your subscription has ended. Renew to create more events.",
}


@router.get("", response_model=list[EventRead])
async def list_events(
    db: DbSession,
    current_account: CurrentAccount,
    skip: int = 0,
    limit: int = 100,
) -> list[EventRead]:
    """List events owned by the current account."""
    events = await event_ops.get_multi_by_account(db, current_account.id, skip=skip, limit=limit)
    return [EventRead.model_validate(event) for event in events]


@router.post("", response_model=EventRead, status_code=status.HTTP_201_CREATED)
async def create_event(
    data: EventCreate,
    db: DbSession,
    account_id: CurrentAccountId,
) -> EventRead:
    """
    Create an event if the account's tier allows another one.

    Returns 402 with code AT_LIMIT (upgrade) or SUBSCRIPTION_REQUIRED
    (renew) when it does not.
    """
    decision, event = await entitlement_gate.create_event(db, account_id, data)

    if isinstance(decision, Deny):
        if decision.reason == DenyReason.ACCOUNT_NOT_FOUND:
            raise AuthenticationError("Account not found")
        raise PaymentRequiredError(
            decision.reason.value,
            DENY_MESSAGES[decision.reason].format(limit=decision.limit),
        )

    if event is None:
        raise HTTPException(500, "Event was not created")
    return EventRead.model_validate(event)
