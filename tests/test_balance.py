"""Tests for the balance fold."""

import random
from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from cashflow.engine.balance import compute_balance, compute_balances, raw_balance
from cashflow.models.ledger import (
    Account,
    AccountType,
    Transaction,
    TransactionRole,
    TransactionStatus,
    TransactionType,
)

DAY = datetime(2024, 6, 15, tzinfo=timezone.utc)


def tx(amount, tx_type=TransactionType.EXPENSE, account="cash", **kwargs):
    return Transaction(
        amount=Decimal(str(amount)),
        type=tx_type,
        account_id=account,
        date=kwargs.pop("date", DAY),
        category_id=kwargs.pop("category_id", "4"),
        **kwargs,
    )


@pytest.fixture
def ledger_accounts():
    return (
        Account(id="cash", name="Cash", type=AccountType.CASH),
        Account(id="bank", name="Bank", type=AccountType.SAVINGS),
    )


class TestComputeBalance:
    """Tests for compute_balance."""

    def test_income_and_expense(self, ledger_accounts):
        """Test the basic fold from a zero baseline."""
        transactions = [
            tx(10000, TransactionType.INCOME, category_id="0", role=TransactionRole.OPENING_BALANCE),
            tx(1500),
            tx(500, TransactionType.INCOME, category_id="1"),
        ]
        assert compute_balance("cash", ledger_accounts, transactions) == Decimal("9000")

    def test_pending_is_excluded(self, ledger_accounts):
        """Test that a pending record never moves the balance."""
        transactions = [
            tx(10000, TransactionType.INCOME, category_id="0", role=TransactionRole.OPENING_BALANCE),
            tx(2000, status=TransactionStatus.PENDING, date=DAY + timedelta(days=3)),
        ]
        assert compute_balance("cash", ledger_accounts, transactions) == Decimal("10000")

    def test_loan_parent_is_excluded(self, ledger_accounts):
        """Test that facility headers are not cash movements."""
        transactions = [
            tx(100, TransactionType.INCOME, account="bank", category_id="1"),
            tx(50000, account="bank", is_loan_parent=True, role=TransactionRole.LOAN_PARENT),
        ]
        assert compute_balance("bank", ledger_accounts, transactions) == Decimal("100")

    def test_transfer_moves_between_accounts(self, ledger_accounts):
        """Test that a transfer debits the source and credits the destination."""
        transactions = [
            tx(5000, TransactionType.INCOME, account="bank", category_id="1"),
            tx(2000, TransactionType.TRANSFER, account="bank", to_account_id="cash", category_id=""),
        ]
        balances = compute_balances(ledger_accounts, transactions)
        assert balances == {"cash": Decimal("2000"), "bank": Decimal("3000")}

    def test_cash_is_clamped_at_zero(self, ledger_accounts):
        """Test that CASH never reports a negative balance."""
        transactions = [tx(300)]
        assert compute_balance("cash", ledger_accounts, transactions) == Decimal("0")
        assert raw_balance(ledger_accounts[0], transactions) == Decimal("-300")

    def test_clamp_can_be_disabled(self, ledger_accounts):
        """Test clamp_cash=False."""
        assert compute_balance("cash", ledger_accounts, [tx(300)], clamp_cash=False) == Decimal("-300")

    def test_savings_may_go_negative(self, ledger_accounts):
        """Test that non-cash accounts are not clamped."""
        assert compute_balance("bank", ledger_accounts, [tx(300, account="bank")]) == Decimal("-300")

    def test_unknown_account_is_zero(self, ledger_accounts):
        """Test the unknown-account edge case."""
        assert compute_balance("nope", ledger_accounts, [tx(100)]) == Decimal("0")

    def test_records_before_latest_opening_balance_are_ignored(self, ledger_accounts):
        """Test that the most recent opening balance resets history."""
        transactions = [
            tx(999, date=DAY - timedelta(days=10)),
            tx(5000, TransactionType.INCOME, category_id="0", date=DAY - timedelta(days=5),
               role=TransactionRole.OPENING_BALANCE),
            tx(7000, TransactionType.INCOME, category_id="0", date=DAY,
               role=TransactionRole.OPENING_BALANCE),
            tx(1000, date=DAY + timedelta(hours=1)),
        ]
        assert compute_balance("cash", ledger_accounts, transactions) == Decimal("6000")

    def test_baseline_is_included(self):
        """Test that the account baseline seeds the fold."""
        accounts = [Account(id="bank", name="Bank", type=AccountType.SAVINGS, balance=Decimal("250"))]
        assert compute_balance("bank", accounts, [tx(50, account="bank")]) == Decimal("200")

    def test_order_does_not_matter(self, ledger_accounts):
        """Test that the fold is commutative."""
        transactions = [
            tx(10000, TransactionType.INCOME, category_id="0", date=DAY - timedelta(days=1),
               role=TransactionRole.OPENING_BALANCE),
            tx(120),
            tx(3000, TransactionType.TRANSFER, to_account_id="bank", category_id=""),
            tx(45, TransactionType.INCOME, category_id="2"),
            tx(700, status=TransactionStatus.PENDING, date=DAY + timedelta(days=2)),
        ]
        expected = compute_balances(ledger_accounts, transactions)
        shuffled = list(transactions)
        random.Random(7).shuffle(shuffled)
        assert compute_balances(ledger_accounts, shuffled) == expected
        assert expected["cash"] == Decimal("6925")
