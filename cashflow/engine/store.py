"""
Ledger Store

The ordered collection of transactions is the single source of truth.
These helpers never mutate their input: each returns a new tuple (or a
new LedgerState) so readers always see a consistent snapshot.

New records are prepended, keeping the collection newest-first.
"""

from collections import defaultdict
from typing import Iterable, Optional

from cashflow.exceptions import DuplicateTransactionError, TransactionNotFoundError
from cashflow.models.ledger import Transaction


def find_transaction(
    transactions: Iterable[Transaction],
    transaction_id: str,
) -> Optional[Transaction]:
    for tx in transactions:
        if tx.id == transaction_id:
            return tx
    return None


def get_transaction(
    transactions: Iterable[Transaction],
    transaction_id: str,
) -> Transaction:
    """Like find_transaction, but raises TransactionNotFoundError."""
    tx = find_transaction(transactions, transaction_id)
    if tx is None:
        raise TransactionNotFoundError(transaction_id)
    return tx


def add_transactions(
    transactions: Iterable[Transaction],
    new: Iterable[Transaction],
) -> tuple[Transaction, ...]:
    """Prepend new records. Ids must not collide with existing ones or each other."""
    existing = tuple(transactions)
    new = tuple(new)
    seen = {tx.id for tx in existing}
    for tx in new:
        if tx.id in seen:
            raise DuplicateTransactionError(tx.id)
        seen.add(tx.id)
    return new + existing


def replace_transaction(
    transactions: Iterable[Transaction],
    updated: Transaction,
) -> tuple[Transaction, ...]:
    """Swap the record carrying updated.id, keeping its position."""
    result = []
    found = False
    for tx in transactions:
        if tx.id == updated.id:
            result.append(updated)
            found = True
        else:
            result.append(tx)
    if not found:
        raise TransactionNotFoundError(updated.id)
    return tuple(result)


def remove_transactions(
    transactions: Iterable[Transaction],
    ids: Iterable[str],
) -> tuple[Transaction, ...]:
    """Drop exactly the given ids; unknown ids are ignored."""
    doomed = set(ids)
    return tuple(tx for tx in transactions if tx.id not in doomed)


class LedgerIndex:
    """
    Id lookup plus the parent -> children forest.

    Edges follow related_transaction_id: loan children and settlement
    records both point at the record they belong to. Settlement records
    are told apart by their role, so the forest has no cycles.
    """

    def __init__(self, transactions: Iterable[Transaction]):
        self._by_id: dict[str, Transaction] = {}
        self._children: dict[str, list[Transaction]] = defaultdict(list)
        for tx in transactions:
            self._by_id[tx.id] = tx
            if tx.related_transaction_id:
                self._children[tx.related_transaction_id].append(tx)

    def __contains__(self, transaction_id: str) -> bool:
        return transaction_id in self._by_id

    def __len__(self) -> int:
        return len(self._by_id)

    def get(self, transaction_id: str) -> Optional[Transaction]:
        return self._by_id.get(transaction_id)

    def children_of(self, parent_id: str) -> list[Transaction]:
        return list(self._children.get(parent_id, ()))

    def parent_of(self, tx: Transaction) -> Optional[Transaction]:
        if not tx.related_transaction_id:
            return None
        return self._by_id.get(tx.related_transaction_id)

    def loan_parents(self) -> list[Transaction]:
        return [tx for tx in self._by_id.values() if tx.is_loan_parent]
