"""
Ledger Exceptions

Every rejection raised by the engine derives from LedgerError so callers
can catch the whole family at the presentation boundary.

Validation errors carry a human-readable reason and the list of issues
found. They are raised BEFORE any state is replaced, so a rejected
operation never leaves a partial mutation behind.
"""

from typing import Optional


class LedgerError(Exception):
    """Base exception for ledger engine operations."""
    pass


class LedgerValidationError(LedgerError):
    """
    An intent was rejected by validation.

    Attributes:
        reason: Short message suitable for showing to the user
        issues: The ValidationIssue objects that caused the rejection
    """

    def __init__(self, reason: str, issues: Optional[list] = None):
        super().__init__(reason)
        self.reason = reason
        self.issues = issues or []


class TransactionNotFoundError(LedgerError):
    """No transaction with the requested id exists in the ledger."""

    def __init__(self, transaction_id: str):
        super().__init__(f"Transaction not found: {transaction_id}")
        self.transaction_id = transaction_id


class DuplicateTransactionError(LedgerError):
    """A transaction id is already present in the ledger."""

    def __init__(self, transaction_id: str):
        super().__init__(f"Duplicate transaction id: {transaction_id}")
        self.transaction_id = transaction_id


class LoanIntegrityError(LedgerError):
    """An operation would break a loan facility's schedule."""
    pass


class QueueStateError(LedgerError):
    """A realization action was requested while nothing is presented."""
    pass
