"""
Ledger Session

This module ties together all the components and defines the
end-to-end flow of every ledger mutation:

    validate -> apply engine function -> replace state -> refresh queue
             -> audit -> persist

DESIGN DECISION: The session enforces the boundaries:
- A rejected intent never changes the state (validation runs first and
  raises before anything is replaced)
- The engine is pure; the session is the only place that owns state
- Every mutation is audited
- A persistence failure is logged and audited, never raised: the
  in-memory ledger stays authoritative and the next save retries
"""

from datetime import datetime, timedelta
from decimal import Decimal
from typing import Callable, Iterable, Optional

import structlog
from pydantic import BaseModel, ConfigDict

from cashflow.audit import AuditLogger, create_correlation_id
from cashflow.config import get_settings
from cashflow.engine import loans as loan_engine
from cashflow.engine.balance import compute_balance, compute_balances
from cashflow.engine.realization import RealizationQueue, due_transactions
from cashflow.engine.settlement import settle_debt
from cashflow.engine.store import (
    add_transactions,
    find_transaction,
    get_transaction,
    remove_transactions,
    replace_transaction,
)
from cashflow.engine.transactions import build_transactions, onboard, rebuild_transaction
from cashflow.exceptions import LedgerValidationError, QueueStateError
from cashflow.models.ledger import (
    Account,
    LedgerState,
    LoanRequest,
    Transaction,
    TransactionIntent,
    TransactionType,
    new_id,
)
from cashflow.models.validation import ValidationResult
from cashflow.services.storage import (
    JsonFileStateStorage,
    JsonlAuditStorage,
    StateStorageInterface,
    StorageError,
)
from cashflow.utils.dates import ensure_aware, is_same_day, utc_now
from cashflow.validation import TransactionValidator

logger = structlog.get_logger(__name__)


class DueNotification(BaseModel):
    """Reminder composed when scheduled transactions are waiting."""
    model_config = ConfigDict(frozen=True)

    title: str
    body: str
    count: int


class LedgerSession:
    """
    Owns the single authoritative LedgerState and the realization queue.

    Reads (state, balances, current_realization) are always consistent
    snapshots: every mutation builds a complete new state before swapping
    it in.
    """

    def __init__(
        self,
        state: Optional[LedgerState] = None,
        storage: Optional[StateStorageInterface] = None,
        audit_logger: Optional[AuditLogger] = None,
        validator: Optional[TransactionValidator] = None,
        clock: Callable[[], datetime] = utc_now,
        id_factory: Callable[[], str] = new_id,
    ):
        self._storage = storage
        self._audit_logger = audit_logger
        self._validator = validator or TransactionValidator()
        self._clock = clock
        self._id_factory = id_factory
        self._settings = get_settings().ledger

        self._state = state if state is not None else self._load_initial_state()
        self._queue = RealizationQueue().refresh(self._state.transactions, self.now)

    # -------------------------------------------------------------------------
    # State plumbing
    # -------------------------------------------------------------------------

    def _load_initial_state(self) -> LedgerState:
        if self._storage is None:
            return LedgerState()
        try:
            loaded = self._storage.load_state()
        except StorageError as e:
            logger.error("state_load_failed", error=str(e))
            if self._audit_logger:
                self._audit_logger.log_state_load_failed(str(e))
            return LedgerState()
        return loaded if loaded is not None else LedgerState()

    @property
    def now(self) -> datetime:
        return ensure_aware(self._clock())

    @property
    def state(self) -> LedgerState:
        return self._state

    @property
    def transactions(self) -> tuple[Transaction, ...]:
        return self._state.transactions

    @property
    def queue(self) -> RealizationQueue:
        return self._queue

    @property
    def realization_check_interval(self) -> timedelta:
        """How often a host should call refresh_queue()."""
        return timedelta(seconds=self._settings.realization_check_interval_seconds)

    def _persist(self) -> bool:
        if self._storage is None:
            return True
        try:
            return self._storage.save_state(self._state)
        except Exception as e:
            # Keep the in-memory ledger; the next mutation saves again
            logger.error("state_save_failed", error=str(e))
            if self._audit_logger:
                self._audit_logger.log_state_save_failed(str(e))
            return False

    def _commit(self, state: LedgerState) -> None:
        self._state = state
        self._queue = self._queue.refresh(state.transactions, self.now)
        self._persist()

    def _commit_transactions(self, transactions: Iterable[Transaction]) -> None:
        self._commit(self._state.with_transactions(transactions))

    def _reject(
        self,
        operation: str,
        result: ValidationResult,
        correlation_id,
        reason: Optional[str] = None,
    ) -> None:
        if self._audit_logger:
            self._audit_logger.log_validation_failed(operation, result.issues, correlation_id)
        if reason is None:
            first = result.first_error
            reason = first.message if first else self._validator.get_user_friendly_summary(result)
        raise LedgerValidationError(reason, result.issues)

    def _check(
        self,
        operation: str,
        intent: TransactionIntent,
        state: LedgerState,
        correlation_id,
        settlement_due: Optional[Decimal] = None,
    ) -> ValidationResult:
        result = self._validator.validate(intent, state, settlement_due=settlement_due, now=self.now)
        return self._enforce(operation, result, correlation_id)

    def _enforce(self, operation: str, result: ValidationResult, correlation_id) -> ValidationResult:
        if not result.is_valid:
            self._reject(operation, result, correlation_id)
        if result.requires_confirmation:
            issue = result.find("insufficient_funds")
            self._reject(operation, result, correlation_id, reason=issue.message)
        return result

    # -------------------------------------------------------------------------
    # Balances
    # -------------------------------------------------------------------------

    def compute_balance(self, account_id: str) -> Decimal:
        return compute_balance(
            account_id,
            self._state.accounts,
            self._state.transactions,
            clamp_cash=self._settings.clamp_cash_balances,
        )

    def balances(self) -> dict[str, Decimal]:
        return compute_balances(
            self._state.accounts,
            self._state.transactions,
            clamp_cash=self._settings.clamp_cash_balances,
        )

    # -------------------------------------------------------------------------
    # Plain transactions
    # -------------------------------------------------------------------------

    def add_transaction(self, intent: TransactionIntent) -> list[Transaction]:
        """
        Record an income, expense or transfer.

        An expense the source account cannot cover is rejected with an
        insufficient_funds issue; re-submit with paid_now set to record it
        as a deferred settlement.

        Returns:
            The records created (primary first, then any fee)

        Raises:
            LedgerValidationError: The intent was rejected
        """
        correlation_id = create_correlation_id()
        self._check("add_transaction", intent, self._state, correlation_id)

        records = build_transactions(intent, now=self.now, id_factory=self._id_factory)
        self._commit_transactions(add_transactions(self._state.transactions, records))

        if self._audit_logger:
            for record in records:
                self._audit_logger.log_transaction_added(
                    transaction_id=record.id,
                    transaction_type=record.type.value,
                    amount=record.amount,
                    correlation_id=correlation_id,
                    deferred=record.outstanding > 0,
                )
        return records

    def edit_transaction(self, transaction_id: str, intent: TransactionIntent) -> Transaction:
        """
        Replace a record with an edited version under the same id.

        Funds are checked as if the original record had never been posted.
        Loan facilities are edited with edit_loan.
        """
        correlation_id = create_correlation_id()
        existing = get_transaction(self._state.transactions, transaction_id)
        without = self._state.with_transactions(
            remove_transactions(self._state.transactions, [transaction_id])
        )
        self._check("edit_transaction", intent, without, correlation_id)

        updated = rebuild_transaction(existing, intent, now=self.now)
        self._commit_transactions(replace_transaction(self._state.transactions, updated))

        if self._audit_logger:
            self._audit_logger.log_transaction_edited(transaction_id, correlation_id)
        return updated

    def delete_transaction(self, transaction_id: str) -> list[str]:
        """
        Delete a record.

        Deleting a loan facility removes its whole family; installments
        cannot be deleted on their own.

        Returns:
            The ids removed
        """
        correlation_id = create_correlation_id()
        tx = get_transaction(self._state.transactions, transaction_id)
        removed = loan_engine.deletion_ids(self._state.transactions, transaction_id)
        self._commit_transactions(remove_transactions(self._state.transactions, removed))

        if self._audit_logger:
            if tx.is_loan_parent:
                self._audit_logger.log_loan_deleted(transaction_id, removed, correlation_id)
            else:
                self._audit_logger.log_transaction_deleted(transaction_id, removed, correlation_id)
        return removed

    # -------------------------------------------------------------------------
    # Loan facilities
    # -------------------------------------------------------------------------

    def _check_loan(self, operation: str, request: LoanRequest, correlation_id) -> None:
        result = self._validator.validate_loan(request)
        if not result.is_valid:
            self._reject(operation, result, correlation_id)

    def create_loan(self, request: LoanRequest) -> list[Transaction]:
        """Decompose a facility into parent, principal, down payment and installments."""
        correlation_id = create_correlation_id()
        self._check_loan("create_loan", request, correlation_id)

        records = loan_engine.create_loan(request, now=self.now, id_factory=self._id_factory)
        self._commit_transactions(add_transactions(self._state.transactions, records))

        if self._audit_logger:
            self._audit_logger.log_loan_created(
                parent_id=records[0].id,
                loan_type=request.loan_type.value,
                amount=request.amount,
                record_count=len(records),
                correlation_id=correlation_id,
            )
        return records

    def edit_loan(self, parent_id: str, request: LoanRequest) -> list[Transaction]:
        """
        Re-create a facility under the same parent id.

        Returns:
            The facility's records after the edit, parent first
        """
        correlation_id = create_correlation_id()
        self._check_loan("edit_loan", request, correlation_id)

        transactions = loan_engine.edit_loan(
            self._state.transactions,
            parent_id,
            request,
            now=self.now,
            id_factory=self._id_factory,
        )
        self._commit_transactions(transactions)

        family = [tx for tx in transactions if tx.id == parent_id] + [
            tx for tx in transactions if tx.related_transaction_id == parent_id
        ]
        if self._audit_logger:
            self._audit_logger.log_loan_created(
                parent_id=parent_id,
                loan_type=request.loan_type.value,
                amount=request.amount,
                record_count=len(family),
                correlation_id=correlation_id,
                edited=True,
            )
        return family

    def delete_loan(self, parent_id: str) -> list[str]:
        """Remove a facility and everything related to it."""
        correlation_id = create_correlation_id()
        removed = loan_engine.delete_loan(self._state.transactions, parent_id)
        self._commit_transactions(remove_transactions(self._state.transactions, removed))

        if self._audit_logger:
            self._audit_logger.log_loan_deleted(parent_id, removed, correlation_id)
        return removed

    def settle_facility(
        self,
        debt_id: str,
        payment_amount: Decimal,
        date: Optional[datetime] = None,
        account_id: Optional[str] = None,
        note: Optional[str] = None,
    ) -> Transaction:
        """
        Pay down a loan facility or a deferred transaction.

        Returns:
            The settlement record created

        Raises:
            LedgerValidationError: Amount not positive, above what is owed,
                or more than the paying account holds
        """
        correlation_id = create_correlation_id()
        debt = get_transaction(self._state.transactions, debt_id)
        due = debt.outstanding
        intent = TransactionIntent(
            amount=Decimal(str(payment_amount)),
            type=TransactionType.EXPENSE,
            category_id=debt.category_id,
            account_id=account_id or debt.account_id,
            date=date or self.now,
            note=note,
        )
        self._check("settle_facility", intent, self._state, correlation_id, settlement_due=due)

        result = settle_debt(
            debt,
            intent.amount,
            date=intent.date,
            account_id=intent.account_id,
            note=note,
            now=self.now,
            id_factory=self._id_factory,
        )
        self._commit_transactions(result.apply_to(self._state.transactions))

        if self._audit_logger:
            self._audit_logger.log_facility_settled(
                debt_id=debt_id,
                payment=intent.amount,
                remaining=result.remaining,
                settlement_id=result.new_transaction.id,
                correlation_id=correlation_id,
            )
        return result.new_transaction

    # -------------------------------------------------------------------------
    # Realization queue
    # -------------------------------------------------------------------------

    def refresh_queue(self) -> Optional[Transaction]:
        """Pick up newly due transactions; returns the one presented."""
        self._queue = self._queue.refresh(self._state.transactions, self.now)
        return self.current_realization

    @property
    def current_realization(self) -> Optional[Transaction]:
        if self._queue.current is None:
            return None
        return find_transaction(self._state.transactions, self._queue.current)

    def present(self, transaction_id: str) -> Transaction:
        """Bring a specific pending transaction to the front."""
        self._queue = self._queue.present(self._state.transactions, transaction_id)
        return self.current_realization

    def _require_presented(self) -> Transaction:
        tx = self.current_realization
        if tx is None:
            raise QueueStateError("No transaction is awaiting realization")
        return tx

    def confirm_current(
        self,
        actual_amount: Decimal,
        actual_date: Optional[datetime] = None,
        loan_deficit: Optional[Decimal] = None,
    ) -> Transaction:
        """
        Confirm the presented transaction with what actually happened.

        An expense or transfer the account cannot cover is rejected with an
        insufficient_funds issue; confirm again with loan_deficit set to
        record the unpaid part as owed.

        Returns:
            The updated record

        Raises:
            LedgerValidationError: The confirmation was rejected
            QueueStateError: Nothing is presented
        """
        correlation_id = create_correlation_id()
        tx = self._require_presented()
        actual_date = actual_date or self.now
        result = self._validator.validate_realization(
            tx, actual_amount, actual_date, self._state, loan_deficit=loan_deficit, now=self.now
        )
        self._enforce("confirm_current", result, correlation_id)

        transactions, queue = self._queue.confirm_current(
            self._state.transactions,
            actual_amount,
            actual_date,
            self.now,
            loan_deficit,
        )
        self._queue = queue
        self._commit_transactions(transactions)

        if self._audit_logger:
            self._audit_logger.log_transaction_realized(
                transaction_id=tx.id,
                amount=Decimal(str(actual_amount)),
                deficit=Decimal(str(loan_deficit)) if loan_deficit else None,
                correlation_id=correlation_id,
            )
        return get_transaction(self._state.transactions, tx.id)

    def reschedule_current(self, new_date: datetime) -> Transaction:
        """Move the presented transaction to a later date."""
        correlation_id = create_correlation_id()
        tx = self._require_presented()
        self._enforce(
            "reschedule_current",
            self._validator.validate_reschedule(new_date, now=self.now),
            correlation_id,
        )
        transactions, queue = self._queue.reschedule_current(
            self._state.transactions, new_date, now=self.now
        )
        self._queue = queue
        self._commit_transactions(transactions)

        if self._audit_logger:
            self._audit_logger.log_transaction_rescheduled(
                transaction_id=tx.id,
                new_date=ensure_aware(new_date),
                correlation_id=correlation_id,
            )
        return get_transaction(self._state.transactions, tx.id)

    def skip_current(self) -> Optional[Transaction]:
        """
        Defer the presented transaction.

        It stays pending and is offered again once the queue is refreshed
        after the items behind it.
        """
        transaction_id = self._queue.current
        self._queue = self._queue.skip_current()
        if self._audit_logger:
            self._audit_logger.log_realization_skipped(transaction_id)
        return self.current_realization

    def pending_notification(self) -> Optional[DueNotification]:
        """
        Compose a reminder when due transactions are waiting.

        Composed at most once per calendar day; composing one stamps
        last_notification_date on the state.
        """
        state = self._state
        if not state.notifications_enabled or not state.has_onboarded:
            return None
        now = self.now
        due = due_transactions(state.transactions, now)
        if not due:
            return None
        if (
            self._settings.notify_once_per_day
            and state.last_notification_date is not None
            and is_same_day(state.last_notification_date, now)
        ):
            return None

        count = len(due)
        notification = DueNotification(
            title="Action Required",
            body=f"You have {count} scheduled transaction{'s' if count > 1 else ''} pending realization.",
            count=count,
        )
        self._state = state.model_copy(update={"last_notification_date": now})
        self._persist()
        return notification

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    def onboard(self, accounts: Optional[Iterable[Account]] = None) -> LedgerState:
        """Record opening balances for the given (or current) accounts."""
        previous = {tx.id for tx in self._state.transactions}
        state = onboard(self._state, accounts, now=self.now, id_factory=self._id_factory)
        self._commit(state)

        if self._audit_logger:
            self._audit_logger.log_ledger_onboarded(
                [tx.id for tx in state.transactions if tx.id not in previous]
            )
        return state

    def update_settings(self, **changes) -> LedgerState:
        """Change UI-level fields (theme, notifications_enabled, ...)."""
        self._commit(self._state.model_copy(update=changes))
        return self._state

    def clear(self) -> LedgerState:
        """Wipe all data and start over from the initial state."""
        if self._storage is not None:
            try:
                self._storage.clear_state()
            except StorageError as e:
                logger.error("state_clear_failed", error=str(e))
                if self._audit_logger:
                    self._audit_logger.log_error("state_clear_failed", str(e))
        self._state = LedgerState()
        self._queue = RealizationQueue()
        if self._audit_logger:
            self._audit_logger.log_ledger_cleared()
        return self._state


def create_ledger_session(
    use_storage: bool = True,
    clock: Callable[[], datetime] = utc_now,
) -> LedgerSession:
    """
    Factory function to create a fully wired session.

    Args:
        use_storage: Whether to persist to the configured JSON files.
                    Set to False for an in-memory session.
        clock: Source of the current instant

    Returns:
        A LedgerSession, loaded from disk when storage is enabled
    """
    storage = None
    audit_logger = None

    if use_storage:
        try:
            storage = JsonFileStateStorage()
            audit_logger = AuditLogger(JsonlAuditStorage())
        except Exception as e:
            # Storage not configured - continue without it
            logger.warning("storage_not_configured", error=str(e))
            storage = None
            audit_logger = AuditLogger()  # Local-only logging
    else:
        audit_logger = AuditLogger()  # Local-only logging

    session = LedgerSession(storage=storage, audit_logger=audit_logger, clock=clock)
    logger.info(
        "ledger_session_created",
        environment=get_settings().app.app_environment,
        persistent=storage is not None,
        transactions=len(session.transactions),
    )
    return session
