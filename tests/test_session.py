"""End-to-end tests for LedgerSession."""

from datetime import timedelta
from decimal import Decimal

import pytest

from cashflow.audit import AuditLogger
from cashflow.config import get_settings
from cashflow.exceptions import LedgerValidationError, LoanIntegrityError, QueueStateError
from cashflow.models.audit import AuditEventType
from cashflow.models.ledger import LedgerState, LoanRequest, LoanType, TransactionStatus
from cashflow.services.storage import (
    InMemoryAuditStorage,
    InMemoryStateStorage,
    JsonFileStateStorage,
    StorageError,
)
from cashflow.session import LedgerSession, create_ledger_session


def event_types(audit_storage) -> list[AuditEventType]:
    return [e.event_type for e in audit_storage.events]


class FailingStateStorage:
    """State backend whose saves always fail."""

    def load_state(self):
        return None

    def save_state(self, state):
        raise StorageError("disk full")

    def clear_state(self):
        return False


class TestScheduledTransactions:
    """Tests for the pending -> realized lifecycle."""

    def test_pending_expense_realized_later(self, session, clock, make_intent):
        """Test that a scheduled bill only moves money once realized."""
        [bill] = session.add_transaction(
            make_intent(amount=Decimal("2000"), date=clock.now + timedelta(days=2), note="Electricity")
        )
        assert bill.status == TransactionStatus.PENDING
        assert session.compute_balance("cash") == Decimal("10000")
        assert session.current_realization is None

        clock.now = clock.now + timedelta(days=3)
        assert session.refresh_queue().id == bill.id

        realized = session.confirm_current(Decimal("1500"))
        assert realized.status == TransactionStatus.VERIFIED
        assert realized.amount == Decimal("1500")
        assert session.compute_balance("cash") == Decimal("8500")
        assert session.current_realization is None

    def test_reschedule_and_skip(self, session, clock, make_intent):
        """Test rescheduling one item and skipping another."""
        first = session.add_transaction(make_intent(date=clock.now + timedelta(days=1)))[0]
        second = session.add_transaction(make_intent(date=clock.now + timedelta(days=2)))[0]
        clock.now = clock.now + timedelta(days=5)
        session.refresh_queue()

        moved = session.reschedule_current(clock.now + timedelta(days=10))
        assert moved.id == first.id
        assert session.current_realization.id == second.id

        assert session.skip_current() is None
        assert session.refresh_queue().id == second.id

    def test_present_out_of_order(self, session, clock, make_intent):
        """Test processing a scheduled item before it is due."""
        [tx] = session.add_transaction(make_intent(date=clock.now + timedelta(days=30)))
        assert session.present(tx.id).id == tx.id
        realized = session.confirm_current(Decimal("1000"))
        assert realized.status == TransactionStatus.VERIFIED
        assert session.compute_balance("cash") == Decimal("9000")

    def test_non_positive_confirmation_rejected(self, session, clock, make_intent):
        """Test that a negative confirmed amount is refused and nothing changes."""
        [bill] = session.add_transaction(make_intent(date=clock.now + timedelta(days=1)))
        clock.now = clock.now + timedelta(days=2)
        session.refresh_queue()
        before = session.state

        with pytest.raises(LedgerValidationError) as exc_info:
            session.confirm_current(Decimal("-500"))
        assert exc_info.value.issues[0].field == "actual_amount"
        assert session.state is before
        assert session.current_realization.id == bill.id
        assert session.compute_balance("cash") == Decimal("10000")

        with pytest.raises(LedgerValidationError):
            session.confirm_current(Decimal("1000"), loan_deficit=Decimal("-1"))

    def test_uncovered_confirmation_needs_deficit(self, session, clock, make_intent):
        """Test that confirming more than the account holds asks for the unpaid part."""
        [bill] = session.add_transaction(
            make_intent(amount=Decimal("12000"), date=clock.now + timedelta(days=1), note="Rent")
        )
        clock.now = clock.now + timedelta(days=2)
        session.refresh_queue()

        with pytest.raises(LedgerValidationError) as exc_info:
            session.confirm_current(Decimal("12000"))
        assert exc_info.value.issues[0].issue_type == "insufficient_funds"
        assert session.current_realization.id == bill.id

        realized = session.confirm_current(Decimal("10000"), loan_deficit=Decimal("2000"))
        assert realized.status == TransactionStatus.VERIFIED
        assert realized.outstanding == Decimal("2000")
        assert session.compute_balance("cash") == Decimal("0")

    def test_reschedule_into_the_past_rejected(self, session, clock, make_intent):
        """Test that a presented item cannot be moved to a date already gone."""
        [bill] = session.add_transaction(make_intent(date=clock.now + timedelta(days=1)))
        clock.now = clock.now + timedelta(days=2)
        session.refresh_queue()

        with pytest.raises(LedgerValidationError) as exc_info:
            session.reschedule_current(clock.now - timedelta(days=10))
        assert exc_info.value.reason == "A rescheduled transaction must be dated in the future"
        assert session.current_realization.id == bill.id
        assert next(t for t in session.transactions if t.id == bill.id).date == bill.date

    def test_actions_need_a_presented_item(self, session, clock):
        """Test confirming or rescheduling with an empty queue."""
        with pytest.raises(QueueStateError):
            session.confirm_current(Decimal("100"))
        with pytest.raises(QueueStateError):
            session.reschedule_current(clock.now + timedelta(days=1))

    def test_check_interval_from_settings(self, session, accounts, clock, monkeypatch):
        """Test that the refresh cadence follows the ledger settings."""
        assert session.realization_check_interval == timedelta(seconds=60)

        monkeypatch.setenv("CASHFLOW_REALIZATION_CHECK_INTERVAL_SECONDS", "30")
        get_settings.cache_clear()
        other = LedgerSession(state=LedgerState(accounts=accounts), clock=clock)
        assert other.realization_check_interval == timedelta(seconds=30)


class TestLoans:
    """Tests for loan facilities through the session."""

    def test_cash_loan_and_settlement(self, session, now):
        """Test a 12,000 cash loan paid down by one installment."""
        parent, income, *installments = session.create_loan(LoanRequest(
            loan_type=LoanType.CASH,
            amount=Decimal("12000"),
            total_installments=12,
            installment_fee=Decimal("1000"),
            setup_date=now,
            account_id="cash",
            note="Family loan",
        ))
        assert len(installments) == 12
        assert session.compute_balance("cash") == Decimal("22000")

        payment = session.settle_facility(parent.id, Decimal("1000"))
        assert payment.related_transaction_id == parent.id
        updated = next(t for t in session.transactions if t.id == parent.id)
        assert updated.settled_amount == Decimal("11000")
        assert session.compute_balance("cash") == Decimal("21000")

    def test_asset_loan_outstanding(self, session, now):
        """Test that an ASSET facility owes amount minus down payment."""
        parent = session.create_loan(LoanRequest(
            loan_type=LoanType.ASSET,
            amount=Decimal("50000"),
            down_payment=Decimal("5000"),
            total_installments=9,
            installment_fee=Decimal("5000"),
            setup_date=now,
            account_id="bank",
            note="Laptop",
        ))[0]
        assert parent.settled_amount == Decimal("45000")
        assert session.compute_balance("bank") == Decimal("45000")

    def test_edit_loan_discards_repayments(self, session, now):
        """Test that re-creating a facility drops what was repaid against it."""
        request = LoanRequest(
            loan_type=LoanType.CASH,
            amount=Decimal("6000"),
            total_installments=6,
            installment_fee=Decimal("1000"),
            setup_date=now,
            account_id="cash",
            note="Bike",
        )
        parent = session.create_loan(request)[0]
        payment = session.settle_facility(parent.id, Decimal("1000"))

        family = session.edit_loan(parent.id, request.model_copy(update={"total_installments": 3,
                                                                          "installment_fee": Decimal("2000")}))
        assert family[0].id == parent.id
        assert family[0].settled_amount == Decimal("6000")
        assert len(family) == 1 + 1 + 3
        assert all(t.id != payment.id for t in session.transactions)
        assert session.compute_balance("cash") == Decimal("16000")

    def test_settlement_above_due_rejected(self, session, now):
        """Test that paying more than is owed is refused."""
        parent = session.create_loan(LoanRequest(
            loan_type=LoanType.CASH,
            amount=Decimal("1000"),
            total_installments=1,
            installment_fee=Decimal("1000"),
            setup_date=now,
            account_id="cash",
            note="Short loan",
        ))[0]
        with pytest.raises(LedgerValidationError):
            session.settle_facility(parent.id, Decimal("1500"))

    def test_installment_cannot_be_deleted(self, session, now):
        """Test that one installment cannot be removed on its own."""
        records = session.create_loan(LoanRequest(
            loan_type=LoanType.CASH,
            amount=Decimal("3000"),
            total_installments=3,
            installment_fee=Decimal("1000"),
            setup_date=now,
            account_id="cash",
            note="Phone",
        ))
        with pytest.raises(LoanIntegrityError):
            session.delete_transaction(records[-1].id)

    def test_deleting_parent_removes_family(self, session, now):
        """Test cascading delete."""
        records = session.create_loan(LoanRequest(
            loan_type=LoanType.CASH,
            amount=Decimal("3000"),
            total_installments=3,
            installment_fee=Decimal("1000"),
            setup_date=now,
            account_id="cash",
            note="Phone",
        ))
        removed = session.delete_transaction(records[0].id)
        assert set(removed) == {r.id for r in records}
        assert session.compute_balance("cash") == Decimal("10000")


class TestValidationBoundary:
    """Tests for rejected intents."""

    def test_rejected_intent_leaves_state_untouched(self, session, audit_storage, make_intent):
        """Test that nothing changes when validation fails."""
        before = session.state
        with pytest.raises(LedgerValidationError) as exc_info:
            session.add_transaction(make_intent(amount=Decimal("0")))

        assert exc_info.value.reason == "Amount must be greater than zero"
        assert session.state is before
        assert event_types(audit_storage)[-1] == AuditEventType.VALIDATION_FAILED

    def test_insufficient_funds_then_deferred(self, session, make_intent):
        """Test the warning, then the paid_now resubmission."""
        with pytest.raises(LedgerValidationError) as exc_info:
            session.add_transaction(make_intent(amount=Decimal("12000")))
        assert exc_info.value.issues[0].issue_type == "insufficient_funds"

        [tx] = session.add_transaction(make_intent(amount=Decimal("12000"), paid_now=Decimal("10000")))
        assert tx.outstanding == Decimal("2000")
        assert session.compute_balance("cash") == Decimal("0")

    def test_edit_checks_funds_without_original(self, session, make_intent):
        """Test that editing a record may reuse its own amount."""
        [tx] = session.add_transaction(make_intent(amount=Decimal("9000")))
        edited = session.edit_transaction(tx.id, make_intent(amount=Decimal("10000")))
        assert edited.id == tx.id
        assert session.compute_balance("cash") == Decimal("0")

    def test_transfer_to_unknown_account(self, session, make_intent):
        """Test that money cannot be sent to an account that does not exist."""
        before = session.state
        with pytest.raises(LedgerValidationError) as exc_info:
            session.add_transaction(make_intent(type="Transfer", to_account_id="nope", category_id=""))
        assert exc_info.value.issues[0].issue_type == "unknown_reference"
        assert session.state is before


class TestPersistence:
    """Tests for saving and recovering."""

    def test_every_mutation_is_saved(self, session, state_storage, make_intent):
        """Test that the stored document follows the session."""
        session.add_transaction(make_intent())
        loaded = state_storage.load_state()
        assert loaded.transactions == session.transactions

    def test_save_failure_keeps_state(self, accounts, clock, id_factory, make_intent):
        """Test that a failed save is audited but never raised."""
        audit_storage = InMemoryAuditStorage()
        session = LedgerSession(
            state=LedgerState(accounts=accounts),
            storage=FailingStateStorage(),
            audit_logger=AuditLogger(audit_storage),
            clock=clock,
            id_factory=id_factory,
        )
        session.onboard()
        [tx] = session.add_transaction(make_intent())

        assert session.transactions[0].id == tx.id
        assert AuditEventType.STATE_SAVE_FAILED in event_types(audit_storage)

    def test_session_loads_saved_state(self, session, state_storage, clock, make_intent):
        """Test that a new session picks up where the last one stopped."""
        session.add_transaction(make_intent())
        reopened = LedgerSession(storage=state_storage, clock=clock)
        assert reopened.compute_balance("cash") == Decimal("9000")

    def test_corrupt_state_starts_fresh(self, clock):
        """Test that an unreadable document is logged and replaced by the initial state."""
        audit_storage = InMemoryAuditStorage()
        session = LedgerSession(
            storage=InMemoryStateStorage(document="{broken"),
            audit_logger=AuditLogger(audit_storage),
            clock=clock,
        )
        assert session.transactions == ()
        assert event_types(audit_storage) == [AuditEventType.STATE_LOAD_FAILED]

    def test_undecodable_state_file_starts_fresh(self, tmp_path, clock):
        """Test that a state file that is not UTF-8 does not stop the session."""
        path = tmp_path / "state.json"
        path.write_bytes(b"\xff\xfe\x00garbage")
        audit_storage = InMemoryAuditStorage()
        session = LedgerSession(
            storage=JsonFileStateStorage(path),
            audit_logger=AuditLogger(audit_storage),
            clock=clock,
        )
        assert session.transactions == ()
        assert event_types(audit_storage) == [AuditEventType.STATE_LOAD_FAILED]

    def test_clear(self, session, state_storage, audit_storage):
        """Test wiping the ledger."""
        state = session.clear()
        assert state.transactions == ()
        assert state.has_onboarded is False
        assert state_storage.document is None
        assert event_types(audit_storage)[-1] == AuditEventType.LEDGER_CLEARED

    def test_factory_without_storage(self, clock):
        """Test an in-memory session."""
        session = create_ledger_session(use_storage=False, clock=clock)
        assert session.state.transactions == ()

    def test_factory_with_storage(self, tmp_path, clock):
        """Test that the factory saves to the configured path."""
        session = create_ledger_session(clock=clock)
        session.onboard()
        assert (tmp_path / "state.json").exists()
        assert (tmp_path / "audit.jsonl").exists()


class TestNotifications:
    """Tests for the due reminder."""

    def test_once_per_day(self, session, clock, make_intent):
        """Test that the reminder is composed at most once per day."""
        session.update_settings(notifications_enabled=True)
        session.add_transaction(make_intent(date=clock.now + timedelta(hours=1)))
        assert session.pending_notification() is None

        clock.now = clock.now + timedelta(hours=2)
        notification = session.pending_notification()
        assert notification.count == 1
        assert notification.title == "Action Required"
        assert notification.body == "You have 1 scheduled transaction pending realization."
        assert session.pending_notification() is None

        clock.now = clock.now + timedelta(days=1)
        assert session.pending_notification() is not None

    def test_disabled(self, session, clock, make_intent):
        """Test that nothing is composed when reminders are off."""
        session.add_transaction(make_intent(date=clock.now + timedelta(hours=1)))
        clock.now = clock.now + timedelta(hours=2)
        assert session.pending_notification() is None


class TestAuditTrail:
    """Tests for what the session records."""

    def test_events_share_correlation_id(self, session, audit_storage, make_intent, now):
        """Test that a transfer with a fee logs two linked events."""
        session.add_transaction(make_intent(
            type="Transfer", to_account_id="bank", category_id="", transfer_fee=Decimal("25")
        ))
        added = [e for e in audit_storage.events if e.event_type == AuditEventType.TRANSACTION_ADDED]
        assert len(added) == 2
        assert added[0].correlation_id == added[1].correlation_id

    def test_onboarding_logged(self, session, audit_storage):
        """Test that the fixture's onboarding is on record."""
        assert event_types(audit_storage)[0] == AuditEventType.LEDGER_ONBOARDED
