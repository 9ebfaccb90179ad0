"""Errors raised by the billing services.

Expected outcomes (stale or unknown notifications, gate denials) are
returned as values, not raised. These exceptions are for the cases where
the caller must not acknowledge the request.
"""


class BillingError(Exception):
    """Base class for billing service errors."""


class InvalidSignature(BillingError):
    """The webhook signature did not verify. Nothing was changed."""


class PersistenceFailure(BillingError):
    """The database write failed. The provider should redeliver."""
