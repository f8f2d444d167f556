"""
Ledger & Loan Engine

Pure functions over immutable ledger values. Nothing in this package
performs I/O; persistence and audit logging live in the session layer.
"""

from cashflow.engine.balance import compute_balance, compute_balances, raw_balance
from cashflow.engine.loans import (
    LoanSummary,
    create_loan,
    delete_loan,
    deletion_ids,
    edit_loan,
    loan_summary,
)
from cashflow.engine.realization import (
    RealizationQueue,
    due_transactions,
    queue_pending_due,
    realize_transaction,
    reschedule_transaction,
)
from cashflow.engine.settlement import (
    SettlementResult,
    apply_deferred_settlement,
    default_settlement_amount,
    outstanding_debt,
    settle_debt,
    settle_facility,
)
from cashflow.engine.store import (
    LedgerIndex,
    add_transactions,
    find_transaction,
    get_transaction,
    remove_transactions,
    replace_transaction,
)
from cashflow.engine.transactions import build_transactions, normalize_state, onboard

__all__ = [
    # Balance
    "compute_balance",
    "compute_balances",
    "raw_balance",
    # Loans
    "LoanSummary",
    "create_loan",
    "delete_loan",
    "deletion_ids",
    "edit_loan",
    "loan_summary",
    # Realization
    "RealizationQueue",
    "due_transactions",
    "queue_pending_due",
    "realize_transaction",
    "reschedule_transaction",
    # Settlement
    "SettlementResult",
    "apply_deferred_settlement",
    "default_settlement_amount",
    "outstanding_debt",
    "settle_debt",
    "settle_facility",
    # Store
    "LedgerIndex",
    "add_transactions",
    "find_transaction",
    "get_transaction",
    "remove_transactions",
    "replace_transaction",
    # Plain transactions & lifecycle
    "build_transactions",
    "normalize_state",
    "onboard",
]
