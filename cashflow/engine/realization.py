"""
Realization Queue

Pending transactions whose date has arrived are "due". They are offered
to the user one at a time to be confirmed (realized), rescheduled, or
skipped.

State machine per transaction:

    scheduled (pending, future) -> due (pending, date <= now)
        due -> realized     (verified)
        due -> rescheduled  (pending, new future date)
        due -> skipped      (unchanged; offered again on a later refresh)

The queue is an immutable value: every operation returns a new queue
(and, where the ledger changes, a new transaction collection). At most
one item is presented at a time, and an item is presented whenever the
queue holds anything. Closing the prompt is not an operation: the caller
keeps the queue it has, untouched.
"""

from datetime import datetime
from decimal import Decimal
from typing import Iterable, Optional

from pydantic import BaseModel, ConfigDict

from cashflow.engine.store import find_transaction, get_transaction, replace_transaction
from cashflow.exceptions import LedgerValidationError, QueueStateError, TransactionNotFoundError
from cashflow.models.ledger import Transaction, TransactionStatus
from cashflow.utils.dates import ensure_aware


def is_due(tx: Transaction, now: datetime) -> bool:
    return tx.is_pending and tx.date <= now


def due_transactions(transactions: Iterable[Transaction], now: datetime) -> list[Transaction]:
    """Pending transactions dated at or before now, oldest first."""
    now = ensure_aware(now)
    return sorted((tx for tx in transactions if is_due(tx, now)), key=lambda tx: tx.date)


def queue_pending_due(transactions: Iterable[Transaction], now: datetime) -> list[str]:
    """Ordered ids of every due transaction."""
    return [tx.id for tx in due_transactions(transactions, now)]


def realize_transaction(
    tx: Transaction,
    actual_amount: Decimal,
    actual_date: datetime,
    now: datetime,
    loan_deficit: Optional[Decimal] = None,
) -> Transaction:
    """
    Confirm that a scheduled transaction happened.

    A future actual_date keeps the record pending under the new date.
    A loan_deficit records the part of the amount that could not be paid:
    it becomes the outstanding settled_amount.

    Raises:
        LedgerValidationError: Non-positive amount or negative deficit
    """
    actual_amount = Decimal(str(actual_amount))
    actual_date = ensure_aware(actual_date)
    deficit = Decimal(str(loan_deficit)) if loan_deficit else Decimal("0")
    if actual_amount <= 0:
        raise LedgerValidationError("Amount must be greater than zero")
    if deficit < 0:
        raise LedgerValidationError("The unpaid amount cannot be negative")
    status = TransactionStatus.PENDING if actual_date > ensure_aware(now) else TransactionStatus.VERIFIED
    return tx.model_copy(update={
        "amount": actual_amount,
        "original_amount": actual_amount + deficit,
        "settled_amount": deficit,
        "is_settled": deficit <= 0,
        "date": actual_date,
        "status": status,
    })


def reschedule_transaction(
    tx: Transaction,
    new_date: datetime,
    now: Optional[datetime] = None,
) -> Transaction:
    """
    Move a pending transaction to a new date.

    When now is given the new date must be later than it.
    """
    new_date = ensure_aware(new_date)
    if now is not None and new_date <= ensure_aware(now):
        raise LedgerValidationError("A rescheduled transaction must be dated in the future")
    return tx.model_copy(update={
        "date": new_date,
        "status": TransactionStatus.PENDING,
    })


class RealizationQueue(BaseModel):
    """
    FIFO of due transaction ids plus the one currently presented.

    Attributes:
        current: Id being presented to the user, if any
        waiting: Ids queued behind it, in presentation order
    """
    model_config = ConfigDict(frozen=True)

    current: Optional[str] = None
    waiting: tuple[str, ...] = ()

    def __len__(self) -> int:
        return len(self.waiting) + (1 if self.current else 0)

    @property
    def is_empty(self) -> bool:
        return self.current is None and not self.waiting

    def refresh(self, transactions: Iterable[Transaction], now: datetime) -> "RealizationQueue":
        """
        Re-evaluate against the ledger and the clock.

        Newly due ids go to the tail, never duplicating a queued or
        presented id and never displacing the presented one. Ids that are
        gone or no longer due are dropped.
        """
        transactions = tuple(transactions)
        now = ensure_aware(now)
        due_ids = queue_pending_due(transactions, now)
        still_due = set(due_ids)

        current = self.current
        if current is not None:
            tx = find_transaction(transactions, current)
            if tx is None or not tx.is_pending:
                current = None

        waiting = [tx_id for tx_id in self.waiting if tx_id in still_due and tx_id != current]
        queued = set(waiting)
        for tx_id in due_ids:
            if tx_id not in queued and tx_id != current:
                waiting.append(tx_id)
                queued.add(tx_id)

        if current is None and waiting:
            current = waiting.pop(0)
        return RealizationQueue(current=current, waiting=tuple(waiting))

    def advance(self) -> "RealizationQueue":
        """Present the next waiting id (or nothing)."""
        if not self.waiting:
            return RealizationQueue()
        return RealizationQueue(current=self.waiting[0], waiting=self.waiting[1:])

    def present(self, transactions: Iterable[Transaction], transaction_id: str) -> "RealizationQueue":
        """
        Present a specific pending transaction right away.

        The previously presented id returns to the head of the line.
        """
        tx = find_transaction(transactions, transaction_id)
        if tx is None:
            raise TransactionNotFoundError(transaction_id)
        if not tx.is_pending:
            raise QueueStateError(f"Transaction {transaction_id} is already realized")
        if self.current == transaction_id:
            return self
        waiting = [tx_id for tx_id in self.waiting if tx_id != transaction_id]
        if self.current is not None:
            waiting.insert(0, self.current)
        return RealizationQueue(current=transaction_id, waiting=tuple(waiting))

    def _require_current(self) -> str:
        if self.current is None:
            raise QueueStateError("No transaction is awaiting realization")
        return self.current

    def confirm_current(
        self,
        transactions: Iterable[Transaction],
        actual_amount: Decimal,
        actual_date: datetime,
        now: datetime,
        loan_deficit: Optional[Decimal] = None,
    ) -> tuple[tuple[Transaction, ...], "RealizationQueue"]:
        """Realize the presented transaction and move on to the next."""
        transactions = tuple(transactions)
        tx = get_transaction(transactions, self._require_current())
        updated = realize_transaction(tx, actual_amount, actual_date, now, loan_deficit)
        return replace_transaction(transactions, updated), self.advance()

    def reschedule_current(
        self,
        transactions: Iterable[Transaction],
        new_date: datetime,
        now: Optional[datetime] = None,
    ) -> tuple[tuple[Transaction, ...], "RealizationQueue"]:
        """Move the presented transaction to a new date and move on."""
        transactions = tuple(transactions)
        tx = get_transaction(transactions, self._require_current())
        moved = reschedule_transaction(tx, new_date, now)
        return replace_transaction(transactions, moved), self.advance()

    def skip_current(self) -> "RealizationQueue":
        """Leave the presented transaction untouched and move on."""
        self._require_current()
        return self.advance()
