"""
Loan Decomposer

Expands a loan facility request into ledger entries, and undoes it.

A facility is stored as:
1. a parent record (is_loan_parent=True) - a grouping header that never
   touches a balance, carrying the repayable total in settled_amount
2. a cash income child (CASH loans only) - the principal received
3. a down payment child (when down_payment > 0) - paid on the setup date
4. one installment child per scheduled month - pending until its date

Every child points at the parent through related_transaction_id.

Editing a facility deletes the parent and its children and re-creates
them under the SAME parent id. Settlement records paid against the
facility are not loan children: they survive the edit and are re-applied
to the new parent's outstanding amount. Prior installment verification
is reset, since the schedule is regenerated from the request.
"""

from datetime import datetime
from decimal import Decimal
from typing import Callable, Iterable, Optional

from pydantic import BaseModel, ConfigDict

from cashflow.engine.store import add_transactions, find_transaction, remove_transactions
from cashflow.exceptions import LoanIntegrityError, TransactionNotFoundError
from cashflow.models.ledger import (
    DOWN_PAYMENT_SUBCATEGORY,
    INSTALLMENT_SUBCATEGORY,
    LoanRequest,
    LoanType,
    Transaction,
    TransactionRole,
    TransactionStatus,
    TransactionType,
    new_id,
)
from cashflow.utils.dates import add_months, utc_now

ZERO = Decimal("0")


def _first_installment_date(request: LoanRequest) -> datetime:
    return request.first_installment_date or add_months(request.setup_date, 1)


def create_loan(
    request: LoanRequest,
    existing_parent_id: Optional[str] = None,
    now: Optional[datetime] = None,
    id_factory: Callable[[], str] = new_id,
) -> list[Transaction]:
    """
    Decompose a loan request into its ledger records.

    Args:
        request: The facility to set up
        existing_parent_id: Reuse this id for the parent (edit path)
        now: Reference instant for deciding installment status
        id_factory: Id generator for new records

    Returns:
        [parent, cash income?, down payment?, installment 1..N]
    """
    now = now or utc_now()
    parent_id = existing_parent_id or id_factory()
    down_payment = request.effective_down_payment
    first_date = _first_installment_date(request)
    note = request.note
    repayable = max(ZERO, request.amount - down_payment)

    parent = Transaction(
        id=parent_id,
        amount=request.amount,
        type=TransactionType.EXPENSE,
        category_id=request.category_id,
        account_id=request.account_id,
        date=request.setup_date,
        note=note,
        description=request.description or f"{request.loan_type.value} Loan Facility",
        status=TransactionStatus.VERIFIED,
        role=TransactionRole.LOAN_PARENT,
        is_loan_parent=True,
        loan_type=request.loan_type,
        total_installments=request.total_installments,
        remaining_installments=request.total_installments,
        installment_fee=request.installment_fee,
        down_payment=down_payment,
        first_installment_date=first_date,
        settled_amount=repayable,
        is_settled=repayable <= 0,
    )
    records = [parent]

    if request.loan_type == LoanType.CASH:
        records.append(Transaction(
            id=id_factory(),
            amount=request.amount,
            type=TransactionType.INCOME,
            category_id=request.category_id,
            account_id=request.account_id,
            date=request.setup_date,
            note=f"Loan Received: {note}",
            description=f"Principal amount for {note}",
            status=TransactionStatus.VERIFIED,
            role=TransactionRole.LOAN_INCOME,
            related_transaction_id=parent_id,
            is_settled=True,
        ))

    if down_payment > 0:
        records.append(Transaction(
            id=id_factory(),
            amount=down_payment,
            type=TransactionType.EXPENSE,
            category_id=request.category_id,
            sub_category=DOWN_PAYMENT_SUBCATEGORY,
            account_id=request.account_id,
            date=request.setup_date,
            note=f"Downpayment: {note}",
            description=f"Setup cost for {note}",
            status=TransactionStatus.VERIFIED,
            role=TransactionRole.LOAN_DOWN_PAYMENT,
            related_transaction_id=parent_id,
            is_settled=True,
        ))

    total = request.total_installments
    for i in range(total):
        installment_date = add_months(first_date, i)
        status = TransactionStatus.PENDING if installment_date > now else TransactionStatus.VERIFIED
        records.append(Transaction(
            id=id_factory(),
            amount=request.installment_fee,
            type=TransactionType.EXPENSE,
            category_id=request.category_id,
            sub_category=INSTALLMENT_SUBCATEGORY,
            account_id=request.account_id,
            date=installment_date,
            note=f"Installment {i + 1}/{total}: {note}",
            description=f"Monthly repayment for {note}",
            status=status,
            role=TransactionRole.LOAN_INSTALLMENT,
            related_transaction_id=parent_id,
            is_settlement=True,
        ))

    return records


def _require_parent(transactions: Iterable[Transaction], parent_id: str) -> Transaction:
    parent = find_transaction(transactions, parent_id)
    if parent is None:
        raise TransactionNotFoundError(parent_id)
    if not parent.is_loan_parent:
        raise LoanIntegrityError(f"Transaction {parent_id} is not a loan facility")
    return parent


def delete_loan(transactions: Iterable[Transaction], parent_id: str) -> list[str]:
    """Ids to remove: the parent plus every record related to it, nothing else."""
    transactions = tuple(transactions)
    _require_parent(transactions, parent_id)
    return [parent_id] + [
        tx.id for tx in transactions if tx.related_transaction_id == parent_id
    ]


def edit_loan(
    transactions: Iterable[Transaction],
    parent_id: str,
    request: LoanRequest,
    now: Optional[datetime] = None,
    id_factory: Callable[[], str] = new_id,
) -> tuple[Transaction, ...]:
    """
    Replace a facility with a freshly decomposed one under the same id.

    The parent and every record related to it are removed first, repayments
    included, so the new facility starts with its full amount owed.

    Returns the full new transaction collection.
    """
    transactions = tuple(transactions)
    doomed = delete_loan(transactions, parent_id)
    records = create_loan(request, existing_parent_id=parent_id, now=now, id_factory=id_factory)
    return add_transactions(remove_transactions(transactions, doomed), records)


def deletion_ids(transactions: Iterable[Transaction], transaction_id: str) -> list[str]:
    """
    Resolve which ids a delete request removes.

    Loan parents cascade to their children. Installments cannot be deleted
    on their own; down payments, cash income children and ordinary records
    are removed individually.
    """
    transactions = tuple(transactions)
    tx = find_transaction(transactions, transaction_id)
    if tx is None:
        raise TransactionNotFoundError(transaction_id)
    if tx.is_loan_parent:
        return delete_loan(transactions, transaction_id)
    if tx.role == TransactionRole.LOAN_INSTALLMENT:
        raise LoanIntegrityError(
            "Loan installments cannot be deleted individually; edit or delete the facility instead"
        )
    return [transaction_id]


# =============================================================================
# FACILITY SUMMARY
# =============================================================================

class LoanSummary(BaseModel):
    """Progress of one loan facility."""
    model_config = ConfigDict(frozen=True)

    parent_id: str
    total_facility: Decimal
    repayable_total: Decimal
    repaid: Decimal
    remaining: Decimal
    progress_percent: float
    outstanding: Decimal
    down_payment: Optional[Transaction] = None
    next_installment: Optional[Transaction] = None
    repayments: tuple[Transaction, ...] = ()


_REPAYMENT_ROLES = frozenset({TransactionRole.LOAN_INSTALLMENT, TransactionRole.SETTLEMENT})


def loan_summary(parent: Transaction, transactions: Iterable[Transaction]) -> LoanSummary:
    """
    Summarize repayment progress for a facility.

    Repaid counts verified installments and settlement payments; the down
    payment is reported separately and never counts toward repayment.
    """
    parts = [tx for tx in transactions if tx.related_transaction_id == parent.id]
    down_payment = next(
        (tx for tx in parts if tx.role == TransactionRole.LOAN_DOWN_PAYMENT), None
    )
    repayable = Decimal(parent.total_installments or 0) * (parent.installment_fee or ZERO)
    repayments = sorted(
        (tx for tx in parts if tx.role in _REPAYMENT_ROLES and not tx.is_pending),
        key=lambda tx: tx.date,
        reverse=True,
    )
    repaid = sum((tx.amount for tx in repayments), ZERO)
    upcoming = sorted(
        (tx for tx in parts if tx.role == TransactionRole.LOAN_INSTALLMENT and tx.is_pending),
        key=lambda tx: tx.date,
    )
    progress = float(repaid / repayable * 100) if repayable > 0 else 0.0

    return LoanSummary(
        parent_id=parent.id,
        total_facility=parent.amount,
        repayable_total=repayable,
        repaid=repaid,
        remaining=max(ZERO, repayable - repaid),
        progress_percent=min(progress, 100.0),
        outstanding=parent.outstanding,
        down_payment=down_payment,
        next_installment=upcoming[0] if upcoming else None,
        repayments=tuple(repayments),
    )
