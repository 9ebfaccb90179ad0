"""Billing services - Stripe notifications, tier resolution and entitlements."""

from app.services.billing.entitlement import (
    Allow,
    Decision,
    Deny,
    DenyReason,
    EntitlementStatus,
    derive_limit,
    entitlement_gate,
)
from app.services.billing.exceptions import BillingError, InvalidSignature, PersistenceFailure
from app.services.billing.ingestor import IngestResult, IngestStatus, notification_ingestor
from app.services.billing.reconciliation import ReconciliationReport, reconciliation_sweep
from app.services.billing.sessions import (
    SessionDeny,
    SessionDenyReason,
    SessionUrl,
    billing_sessions,
)
from app.services.billing.tier_resolver import AccountState, Resolution, ResolutionOutcome, resolve

__all__ = [
    # Ingestion
    "notification_ingestor",
    "IngestResult",
    "IngestStatus",
    # Resolution
    "AccountState",
    "Resolution",
    "ResolutionOutcome",
    "resolve",
    # Entitlements
    "entitlement_gate",
    "Allow",
    "Deny",
    "Decision",
    "DenyReason",
    "EntitlementStatus",
    "derive_limit",
    # Sessions
    "billing_sessions",
    "SessionUrl",
    "SessionDeny",
    "SessionDenyReason",
    # Reconciliation
    "reconciliation_sweep",
    "ReconciliationReport",
    # Errors
    "BillingError",
    "InvalidSignature",
    "PersistenceFailure",
]
