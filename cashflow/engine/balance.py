"""
Balance Engine

Folds the transaction collection into one scalar balance per account.

The fold starts from the account's baseline and is commutative: the order
of the collection never changes the result. Three kinds of record are
excluded:
- pending transactions (not realized yet)
- loan facility parents (grouping headers, not cash movements)
- anything dated before the account's most recent Opening Balance entry

CASH accounts are clamped at zero. SAVINGS and FIXED_DEPOSIT balances are
returned as-is and may be negative.
"""

from datetime import datetime
from decimal import Decimal
from typing import Iterable, Optional

from cashflow.models.ledger import (
    Account,
    AccountType,
    CategoryRole,
    Transaction,
    TransactionRole,
    TransactionType,
    classify_category,
)

ZERO = Decimal("0")


def is_opening_balance(tx: Transaction) -> bool:
    return (
        tx.role == TransactionRole.OPENING_BALANCE
        or classify_category(tx.category_id) == CategoryRole.OPENING_BALANCE
    )


def opening_cutoff(account_id: str, transactions: Iterable[Transaction]) -> Optional[datetime]:
    """Date of the most recent Opening Balance entry for the account, if any."""
    cutoff = None
    for tx in transactions:
        if tx.account_id != account_id or not is_opening_balance(tx):
            continue
        if cutoff is None or tx.date > cutoff:
            cutoff = tx.date
    return cutoff


def counts_toward_balance(tx: Transaction, cutoff: Optional[datetime] = None) -> bool:
    if tx.is_pending or tx.is_loan_parent:
        return False
    if cutoff is not None and tx.date < cutoff:
        return False
    return True


def signed_effect(tx: Transaction, account_id: str) -> Decimal:
    """Effect of one transaction on one account, ignoring exclusion rules."""
    effect = ZERO
    if tx.account_id == account_id:
        if tx.type == TransactionType.INCOME:
            effect += tx.amount
        else:
            # EXPENSE and TRANSFER both leave the source account
            effect -= tx.amount
    if tx.type == TransactionType.TRANSFER and tx.to_account_id == account_id:
        effect += tx.amount
    return effect


def raw_balance(account: Account, transactions: Iterable[Transaction]) -> Decimal:
    """The fold without the cash clamp."""
    transactions = tuple(transactions)
    cutoff = opening_cutoff(account.id, transactions)
    balance = account.balance
    for tx in transactions:
        if counts_toward_balance(tx, cutoff):
            balance += signed_effect(tx, account.id)
    return balance


def compute_balance(
    account_id: str,
    accounts: Iterable[Account],
    transactions: Iterable[Transaction],
    clamp_cash: bool = True,
) -> Decimal:
    """
    Current balance of one account.

    Args:
        account_id: The account to fold
        accounts: All accounts (the baseline is read from the match)
        transactions: The full transaction collection
        clamp_cash: Floor CASH accounts at zero

    Returns:
        The balance; 0 for an unknown account
    """
    account = next((a for a in accounts if a.id == account_id), None)
    if account is None:
        return ZERO
    balance = raw_balance(account, transactions)
    if clamp_cash and account.type == AccountType.CASH:
        return max(ZERO, balance)
    return balance


def compute_balances(
    accounts: Iterable[Account],
    transactions: Iterable[Transaction],
    clamp_cash: bool = True,
) -> dict[str, Decimal]:
    """Balance of every account, keyed by account id."""
    accounts = tuple(accounts)
    transactions = tuple(transactions)
    return {
        account.id: compute_balance(account.id, accounts, transactions, clamp_cash)
        for account in accounts
    }
