"""Custom exception classes for the billing engine.

Provides domain-specific exceptions for clear error handling and reporting.
"""


class BillingError(Exception):
    """Base exception for billing engine errors."""

    pass


class ValidationError(BillingError):
    """Rejected input (negative amount, component sum mismatch, missing id).

    Raised before any mutation, so nothing needs to be rolled back.
    """

    pass


class ConsistencyError(BillingError):
    """Stored data or configuration is self-contradictory.

    Examples: a bill whose balance is not max(0, total - paid), or water tier
    boundaries that are not strictly ascending. The engine refuses to compute.
    """

    pass


class ConcurrencyError(BillingError):
    """Lock or version conflict on a unit's ledger. Safe to retry."""

    pass


class NotFoundError(BillingError):
    """Referenced unit, payment or rate settings row does not exist."""

    pass
