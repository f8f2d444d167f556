"""
Shared pytest fixtures

Every test runs against a fixed clock; nothing reads the wall clock or
the network.
"""

from datetime import datetime, timezone
from decimal import Decimal
from itertools import count

import pytest

from cashflow.audit import AuditLogger
from cashflow.config import get_settings
from cashflow.models.ledger import (
    Account,
    AccountType,
    LedgerState,
    TransactionIntent,
    TransactionType,
)
from cashflow.services.storage import InMemoryAuditStorage, InMemoryStateStorage
from cashflow.session import LedgerSession

NOW = datetime(2024, 6, 15, 12, 0, tzinfo=timezone.utc)


@pytest.fixture(autouse=True)
def isolated_settings(monkeypatch, tmp_path):
    """Point settings at a temp dir and reset the settings cache."""
    monkeypatch.setenv("CASHFLOW_STORAGE_STATE_PATH", str(tmp_path / "state.json"))
    monkeypatch.setenv("CASHFLOW_STORAGE_AUDIT_PATH", str(tmp_path / "audit.jsonl"))
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def now() -> datetime:
    return NOW


@pytest.fixture
def id_factory():
    """Deterministic ids: tx-1, tx-2, ..."""
    counter = count(1)
    return lambda: f"tx-{next(counter)}"


@pytest.fixture
def accounts() -> tuple[Account, ...]:
    return (
        Account(id="cash", name="Cash in Hand", type=AccountType.CASH, balance=Decimal("10000")),
        Account(id="bank", name="Savings Account", type=AccountType.SAVINGS, balance=Decimal("50000")),
        Account(id="fd", name="Fixed Deposit", type=AccountType.FIXED_DEPOSIT, balance=Decimal("0")),
    )


@pytest.fixture
def empty_state(accounts) -> LedgerState:
    return LedgerState(accounts=accounts, has_onboarded=True)


@pytest.fixture
def state_storage() -> InMemoryStateStorage:
    return InMemoryStateStorage()


@pytest.fixture
def audit_storage() -> InMemoryAuditStorage:
    return InMemoryAuditStorage()


@pytest.fixture
def clock():
    """Mutable clock: tests move time by assigning clock.now."""
    class Clock:
        def __init__(self):
            self.now = NOW

        def __call__(self):
            return self.now

    return Clock()


@pytest.fixture
def session(accounts, state_storage, audit_storage, clock, id_factory) -> LedgerSession:
    """A session with Cash 10,000 and Savings 50,000 recorded as opening balances."""
    s = LedgerSession(
        state=LedgerState(accounts=accounts),
        storage=state_storage,
        audit_logger=AuditLogger(audit_storage),
        clock=clock,
        id_factory=id_factory,
    )
    s.onboard()
    return s


@pytest.fixture
def make_intent():
    """Builder for an expense of 1,000 from cash today, with overrides."""
    def build(**overrides) -> TransactionIntent:
        data = {
            "amount": Decimal("1000"),
            "type": TransactionType.EXPENSE,
            "category_id": "4",
            "account_id": "cash",
            "date": NOW,
            "note": "Groceries",
        }
        data.update(overrides)
        return TransactionIntent(**data)

    return build
