"""
Plain Transactions, Onboarding and State Normalization

build_transactions turns a TransactionIntent into ledger records: the
primary record plus, when a fee is charged on an expense or transfer, a
separate fee expense from the same account.

normalize_state runs on every load. Older persisted documents carry no
role field and identify loan children and fees by id prefix; roles are
back-filled here, once, so nothing downstream ever inspects an id.
"""

from datetime import datetime
from decimal import Decimal
from typing import Callable, Iterable, Optional

import structlog

from cashflow.engine.settlement import apply_deferred_settlement
from cashflow.engine.store import LedgerIndex
from cashflow.exceptions import LoanIntegrityError
from cashflow.models.ledger import (
    DOWN_PAYMENT_SUBCATEGORY,
    INSTALLMENT_SUBCATEGORY,
    LOAN_CATEGORY,
    OPENING_BALANCE_CATEGORY,
    Account,
    CategoryRole,
    LedgerState,
    Transaction,
    TransactionIntent,
    TransactionRole,
    TransactionStatus,
    TransactionType,
    classify_category,
    new_id,
)
from cashflow.utils.dates import utc_now

logger = structlog.get_logger(__name__)

ZERO = Decimal("0")

FEE_DESCRIPTION = "Bank Charge"
OPENING_BALANCE_NOTE = "Opening Balance"


def _status_for(date: datetime, now: datetime) -> TransactionStatus:
    return TransactionStatus.PENDING if date > now else TransactionStatus.VERIFIED


def _primary_from_intent(
    intent: TransactionIntent,
    transaction_id: str,
    status: TransactionStatus,
    role: TransactionRole = TransactionRole.PRIMARY,
    related_transaction_id: Optional[str] = None,
) -> Transaction:
    is_transfer = intent.type == TransactionType.TRANSFER
    tx = Transaction(
        id=transaction_id,
        amount=intent.amount,
        type=intent.type,
        category_id="" if is_transfer else intent.category_id,
        sub_category=None if is_transfer else intent.sub_category,
        account_id=intent.account_id,
        to_account_id=intent.to_account_id if is_transfer else None,
        date=intent.date,
        note=intent.note,
        description=intent.description or "Transaction",
        status=status,
        role=role,
        original_amount=intent.amount,
        settled_amount=ZERO,
        is_settled=True,
        related_transaction_id=related_transaction_id or intent.related_transaction_id,
    )
    if intent.paid_now is not None:
        tx = apply_deferred_settlement(tx, intent.amount, intent.paid_now)
    return tx


def build_transactions(
    intent: TransactionIntent,
    now: Optional[datetime] = None,
    id_factory: Callable[[], str] = new_id,
) -> list[Transaction]:
    """
    Records for a new income/expense/transfer.

    Future-dated intents are stored pending. The optional fee becomes its
    own expense record pointing back at the primary record.
    """
    now = now or utc_now()
    status = _status_for(intent.date, now)
    primary = _primary_from_intent(intent, id_factory(), status)
    records = [primary]

    fee = intent.transfer_fee or ZERO
    if fee > 0 and intent.type in (TransactionType.EXPENSE, TransactionType.TRANSFER):
        fallback = "Fund Transfer" if intent.type == TransactionType.TRANSFER else "Expense"
        records.append(Transaction(
            id=id_factory(),
            amount=fee,
            type=TransactionType.EXPENSE,
            category_id="",
            account_id=intent.account_id,
            date=intent.date,
            note=f"Fee: {intent.note or fallback}",
            description=FEE_DESCRIPTION,
            status=status,
            role=TransactionRole.TRANSFER_FEE,
            related_transaction_id=primary.id,
            is_settled=True,
        ))
    return records


def rebuild_transaction(
    existing: Transaction,
    intent: TransactionIntent,
    now: Optional[datetime] = None,
) -> Transaction:
    """
    The edited version of an existing record, keeping its id and role.

    Loan facilities are edited through engine.loans.edit_loan instead.
    """
    if existing.is_loan_parent:
        raise LoanIntegrityError("Loan facilities must be edited with edit_loan")
    now = now or utc_now()
    return _primary_from_intent(
        intent,
        existing.id,
        _status_for(intent.date, now),
        role=existing.role,
        related_transaction_id=existing.related_transaction_id,
    )


def onboard(
    state: LedgerState,
    accounts: Optional[Iterable[Account]] = None,
    now: Optional[datetime] = None,
    id_factory: Callable[[], str] = new_id,
) -> LedgerState:
    """
    Record opening balances and mark the ledger onboarded.

    Each account with a positive balance gets a verified Opening Balance
    income entry dated now; the account baselines are then reset to zero
    so the opening entry is the only source of that value.
    """
    now = now or utc_now()
    accounts = tuple(accounts) if accounts is not None else state.accounts
    opening = [
        Transaction(
            id=id_factory(),
            amount=account.balance,
            type=TransactionType.INCOME,
            category_id=OPENING_BALANCE_CATEGORY.id,
            account_id=account.id,
            date=now,
            note=OPENING_BALANCE_NOTE,
            status=TransactionStatus.VERIFIED,
            role=TransactionRole.OPENING_BALANCE,
        )
        for account in accounts
        if account.balance > 0
    ]
    return state.model_copy(update={
        "accounts": tuple(a.model_copy(update={"balance": ZERO}) for a in accounts),
        "transactions": tuple(opening) + state.transactions,
        "has_onboarded": True,
    })


# =============================================================================
# LOAD-TIME NORMALIZATION
# =============================================================================

_LEGACY_PREFIXES = (
    ("inst-", TransactionRole.LOAN_INSTALLMENT),
    ("dp-", TransactionRole.LOAN_DOWN_PAYMENT),
    ("income-", TransactionRole.LOAN_INCOME),
    ("fee-", TransactionRole.TRANSFER_FEE),
    ("init-", TransactionRole.OPENING_BALANCE),
)


def infer_role(tx: Transaction, index: LedgerIndex) -> TransactionRole:
    """Best-effort role for a record persisted without one."""
    if tx.is_loan_parent:
        return TransactionRole.LOAN_PARENT
    for prefix, role in _LEGACY_PREFIXES:
        if tx.id.startswith(prefix):
            return role

    parent = index.parent_of(tx)
    if parent is not None and parent.is_loan_parent:
        # settle-flow repayments carry no sub-category
        if tx.sub_category == INSTALLMENT_SUBCATEGORY:
            return TransactionRole.LOAN_INSTALLMENT
        if tx.sub_category == DOWN_PAYMENT_SUBCATEGORY:
            return TransactionRole.LOAN_DOWN_PAYMENT
        if tx.type == TransactionType.INCOME:
            return TransactionRole.LOAN_INCOME
    if tx.is_settlement and tx.related_transaction_id:
        return TransactionRole.SETTLEMENT
    if classify_category(tx.category_id) == CategoryRole.OPENING_BALANCE:
        return TransactionRole.OPENING_BALANCE
    return TransactionRole.PRIMARY


def normalize_state(state: LedgerState) -> LedgerState:
    """
    Bring a freshly loaded state up to the current shape.

    - the Opening Balance category is always present (first)
    - the Loan category is always present
    - records without a role get one inferred from their shape
    - legacy fee records are linked to the transaction they were charged on
    """
    categories = list(state.categories)
    ids = {c.id for c in categories}
    if OPENING_BALANCE_CATEGORY.id not in ids:
        categories.insert(0, OPENING_BALANCE_CATEGORY)
    if LOAN_CATEGORY.id not in ids:
        categories.append(LOAN_CATEGORY)

    index = LedgerIndex(state.transactions)
    transactions = []
    back_filled = 0
    for tx in state.transactions:
        if tx.role == TransactionRole.PRIMARY:
            role = infer_role(tx, index)
            if role != TransactionRole.PRIMARY:
                back_filled += 1
                update = {"role": role}
                if role == TransactionRole.TRANSFER_FEE and not tx.related_transaction_id:
                    primary_id = tx.id[len("fee-"):]
                    if primary_id in index:
                        update["related_transaction_id"] = primary_id
                tx = tx.model_copy(update=update)
        transactions.append(tx)

    if back_filled or len(categories) != len(state.categories):
        logger.info(
            "legacy_state_normalized",
            roles_back_filled=back_filled,
            categories_added=len(categories) - len(state.categories),
        )

    return state.model_copy(update={
        "categories": tuple(categories),
        "transactions": tuple(transactions),
    })
