"""
Settlement Engine

Two distinct settlement paths:

FACILITY SETTLEMENT - a repayment against a record's outstanding debt
(a loan parent, or any transaction saved with an unpaid remainder).
The debt's settled_amount is reduced and floored at zero, and a new
Expense record flagged as a settlement is appended. A payment larger than
the outstanding amount is capped: the excess is discarded, not carried
forward or refunded.

DEFERRED SETTLEMENT - a single expense/transfer saved while the account
cannot cover it. Only the part paid now moves money; the remainder is
recorded as owed on the same record.
"""

from datetime import datetime
from decimal import Decimal
from typing import Callable, Iterable, Optional

from pydantic import BaseModel, ConfigDict

from cashflow.engine.store import add_transactions, get_transaction, replace_transaction
from cashflow.exceptions import LedgerValidationError
from cashflow.models.ledger import (
    Transaction,
    TransactionRole,
    TransactionStatus,
    TransactionType,
    new_id,
)
from cashflow.utils.dates import ensure_aware, utc_now

ZERO = Decimal("0")


class SettlementResult(BaseModel):
    """Outcome of a facility settlement."""
    model_config = ConfigDict(frozen=True)

    updated_parent: Transaction
    new_transaction: Transaction

    @property
    def remaining(self) -> Decimal:
        return self.updated_parent.settled_amount or ZERO

    def apply_to(self, transactions: Iterable[Transaction]) -> tuple[Transaction, ...]:
        """Return a new collection with the debt replaced and the payment prepended."""
        updated = replace_transaction(transactions, self.updated_parent)
        return add_transactions(updated, [self.new_transaction])


def settle_debt(
    debt: Transaction,
    payment_amount: Decimal,
    date: Optional[datetime] = None,
    account_id: Optional[str] = None,
    note: Optional[str] = None,
    now: Optional[datetime] = None,
    id_factory: Callable[[], str] = new_id,
) -> SettlementResult:
    """
    Apply a repayment against one record's outstanding amount.

    Args:
        debt: The loan parent (or deferred transaction) being paid down
        payment_amount: Amount paid; must be positive
        date: When the payment happens (defaults to now)
        account_id: Paying account (defaults to the debt's account)
        note: Free text for the payment record
        now: Reference instant; a payment dated later is stored pending

    Raises:
        LedgerValidationError: Non-positive payment, or nothing owed
    """
    now = now or utc_now()
    date = ensure_aware(date) if date is not None else now
    payment_amount = Decimal(str(payment_amount))

    if payment_amount <= 0:
        raise LedgerValidationError("Settlement amount must be greater than zero")
    current_due = debt.settled_amount or ZERO
    if debt.is_settled or current_due <= 0:
        raise LedgerValidationError(f"Nothing is outstanding on transaction {debt.id}")

    new_due = max(ZERO, current_due - payment_amount)
    updated = debt.model_copy(update={
        "settled_amount": new_due,
        "is_settled": new_due <= 0,
    })

    payment = Transaction(
        id=id_factory(),
        amount=payment_amount,
        type=TransactionType.EXPENSE,
        category_id=debt.category_id,
        account_id=account_id or debt.account_id,
        date=date,
        note=note or f"Settlement: {debt.note or 'Expense'}",
        description="Repayment",
        status=TransactionStatus.PENDING if date > now else TransactionStatus.VERIFIED,
        role=TransactionRole.SETTLEMENT,
        is_settlement=True,
        related_transaction_id=debt.id,
        is_settled=True,
    )
    return SettlementResult(updated_parent=updated, new_transaction=payment)


def settle_facility(
    transactions: Iterable[Transaction],
    parent_id: str,
    payment_amount: Decimal,
    **kwargs,
) -> SettlementResult:
    """Look up the debt by id and settle it. See settle_debt for arguments."""
    debt = get_transaction(transactions, parent_id)
    return settle_debt(debt, payment_amount, **kwargs)


def apply_deferred_settlement(
    tx: Transaction,
    requested_amount: Decimal,
    paid_now: Decimal,
) -> Transaction:
    """
    Record that only part of a transaction was paid now.

    amount becomes the paid part, original_amount keeps the full request,
    settled_amount holds what is still owed.
    """
    requested_amount = Decimal(str(requested_amount))
    paid_now = Decimal(str(paid_now))
    owed = max(ZERO, requested_amount - paid_now)
    return tx.model_copy(update={
        "amount": paid_now,
        "original_amount": requested_amount,
        "settled_amount": owed,
        "is_settled": owed <= 0,
    })


def default_settlement_amount(tx: Transaction) -> Decimal:
    """Suggested payment: one installment if the facility has a fee, else the full due."""
    due = tx.settled_amount or ZERO
    if tx.installment_fee and tx.installment_fee > 0:
        return tx.installment_fee
    return due


def outstanding_debt(transactions: Iterable[Transaction]) -> Decimal:
    """Total still owed across the ledger."""
    return sum((tx.outstanding for tx in transactions), ZERO)
