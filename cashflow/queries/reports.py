"""
Ledger Reports

Read-only aggregations over a LedgerState: net worth, liabilities,
period totals and per-category breakdowns.

Conventions shared by every total:
- pending records never count toward realized totals
- loan parents are grouping headers and are never counted; the money
  moves through their children
- expenses count their original_amount when one was recorded, so a
  deferred settlement shows the full cost, not just the part paid
- generic settlement payments are not new spending and are excluded,
  except repayments against a loan facility
"""

from datetime import datetime
from decimal import Decimal
from typing import Iterable, Optional

import structlog
from pydantic import BaseModel, ConfigDict

from cashflow.engine.balance import compute_balances
from cashflow.engine.loans import LoanSummary, loan_summary
from cashflow.models.ledger import (
    AccountType,
    CategoryRole,
    LedgerState,
    Transaction,
    TransactionRole,
    TransactionType,
    category_name,
    classify_category,
)
from cashflow.utils.dates import ensure_aware, utc_now

logger = structlog.get_logger(__name__)

ZERO = Decimal("0")


class CategoryTotal(BaseModel):
    """One slice of a category breakdown."""
    model_config = ConfigDict(frozen=True)

    key: str
    name: str
    amount: Decimal
    percentage: float


class FutureTotals(BaseModel):
    """Scheduled (pending) income and expense."""
    model_config = ConfigDict(frozen=True)

    income: Decimal
    expense: Decimal

    @property
    def net(self) -> Decimal:
        return self.income - self.expense


def reported_amount(tx: Transaction) -> Decimal:
    """Amount an expense contributes to spending totals."""
    if tx.type == TransactionType.EXPENSE and tx.original_amount:
        return tx.original_amount
    return tx.amount


def is_new_spending(tx: Transaction) -> bool:
    if tx.role != TransactionRole.SETTLEMENT:
        return True
    return classify_category(tx.category_id) == CategoryRole.LOAN_FACILITY


def _breakdown_key(tx: Transaction, categories) -> tuple[str, str]:
    if tx.role == TransactionRole.TRANSFER_FEE:
        return "transfer_fee", "Transfer Fees"
    if classify_category(tx.category_id) == CategoryRole.LOAN_FACILITY or tx.is_loan_child:
        if tx.type == TransactionType.INCOME:
            return "loan_cash", "Cash Loan"
        if tx.role == TransactionRole.LOAN_DOWN_PAYMENT:
            return "loan_dp", "Down Payment"
        if tx.role == TransactionRole.LOAN_INSTALLMENT:
            return "loan_inst", "Loan Installment"
        return "loan_other", "Loan Repayment"
    return tx.category_id, category_name(categories, tx.category_id)


class LedgerReporter:
    """
    Aggregations for dashboards and statistics screens.

    Balances are computed once per reporter; build a new reporter after the
    state changes.
    """

    def __init__(self, state: LedgerState, now: Optional[datetime] = None, clamp_cash: bool = True):
        self._state = state
        self._now = ensure_aware(now) if now is not None else utc_now()
        self._balances = compute_balances(state.accounts, state.transactions, clamp_cash)

    @property
    def balances(self) -> dict[str, Decimal]:
        return dict(self._balances)

    # -------------------------------------------------------------------------
    # Net worth
    # -------------------------------------------------------------------------

    def total_liabilities(self) -> Decimal:
        """Everything still owed: unsettled settled_amount across the ledger."""
        return sum((tx.outstanding for tx in self._state.transactions), ZERO)

    def total_assets(self) -> Decimal:
        """Sum of account balances, each floored at zero."""
        return sum((max(ZERO, b) for b in self._balances.values()), ZERO)

    def net_worth(self) -> Decimal:
        return self.total_assets() - self.total_liabilities()

    def liquid_balance(self) -> Decimal:
        """Assets excluding fixed deposits."""
        return sum(
            (
                max(ZERO, self._balances[account.id])
                for account in self._state.accounts
                if account.type != AccountType.FIXED_DEPOSIT
            ),
            ZERO,
        )

    # -------------------------------------------------------------------------
    # Period totals
    # -------------------------------------------------------------------------

    def _fixed_deposit_ids(self) -> set[str]:
        return {a.id for a in self._state.accounts if a.type == AccountType.FIXED_DEPOSIT}

    def _realized(
        self,
        tx_type: TransactionType,
        start: Optional[datetime],
        end: Optional[datetime],
    ) -> Iterable[Transaction]:
        excluded_accounts = self._fixed_deposit_ids()
        start = ensure_aware(start) if start is not None else None
        end = ensure_aware(end) if end is not None else None
        for tx in self._state.transactions:
            if tx.type != tx_type or tx.is_pending or tx.is_loan_parent:
                continue
            if tx.account_id in excluded_accounts:
                continue
            if start is not None and tx.date < start:
                continue
            if end is not None and tx.date > end:
                continue
            yield tx

    def income_total(self, start: Optional[datetime] = None, end: Optional[datetime] = None) -> Decimal:
        """Realized income in [start, end]; opening balances are not earnings."""
        return sum(
            (
                tx.amount
                for tx in self._realized(TransactionType.INCOME, start, end)
                if tx.role != TransactionRole.OPENING_BALANCE
            ),
            ZERO,
        )

    def expense_total(self, start: Optional[datetime] = None, end: Optional[datetime] = None) -> Decimal:
        """Realized spending in [start, end]."""
        return sum(
            (
                reported_amount(tx)
                for tx in self._realized(TransactionType.EXPENSE, start, end)
                if is_new_spending(tx)
            ),
            ZERO,
        )

    def future_totals(self) -> FutureTotals:
        pending = [tx for tx in self._state.transactions if tx.is_pending]
        return FutureTotals(
            income=sum((tx.amount for tx in pending if tx.type == TransactionType.INCOME), ZERO),
            expense=sum((tx.amount for tx in pending if tx.type == TransactionType.EXPENSE), ZERO),
        )

    def category_breakdown(
        self,
        tx_type: TransactionType,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> list[CategoryTotal]:
        """
        Realized amounts grouped by category, largest first.

        Loan activity is split into cash loans, down payments, installments
        and other repayments; fees are grouped on their own.
        """
        totals: dict[str, tuple[str, Decimal]] = {}
        for tx in self._realized(tx_type, start, end):
            if tx_type == TransactionType.EXPENSE and not is_new_spending(tx):
                continue
            if tx.role == TransactionRole.OPENING_BALANCE:
                continue
            key, name = _breakdown_key(tx, self._state.categories)
            _, running = totals.get(key, (name, ZERO))
            totals[key] = (name, running + reported_amount(tx))

        grand_total = sum((amount for _, amount in totals.values()), ZERO)
        breakdown = [
            CategoryTotal(
                key=key,
                name=name,
                amount=amount,
                percentage=float(amount / grand_total * 100) if grand_total > 0 else 0.0,
            )
            for key, (name, amount) in totals.items()
        ]
        breakdown.sort(key=lambda item: item.amount, reverse=True)
        return breakdown

    # -------------------------------------------------------------------------
    # Loans
    # -------------------------------------------------------------------------

    def _loan_parents(self) -> list[Transaction]:
        return [tx for tx in self._state.transactions if tx.is_loan_parent]

    def active_loans(self) -> list[LoanSummary]:
        """Facilities with an outstanding balance."""
        return [
            loan_summary(parent, self._state.transactions)
            for parent in self._loan_parents()
            if parent.outstanding > 0
        ]

    def settled_loans(self) -> list[LoanSummary]:
        return [
            loan_summary(parent, self._state.transactions)
            for parent in self._loan_parents()
            if parent.outstanding <= 0
        ]

    def summary(self) -> dict:
        """Headline figures, as logged on session start."""
        future = self.future_totals()
        figures = {
            "total_assets": self.total_assets(),
            "total_liabilities": self.total_liabilities(),
            "net_worth": self.net_worth(),
            "liquid_balance": self.liquid_balance(),
            "future_income": future.income,
            "future_expense": future.expense,
            "active_loans": len(self.active_loans()),
        }
        logger.debug("ledger_summary", **{k: str(v) for k, v in figures.items()})
        return figures
