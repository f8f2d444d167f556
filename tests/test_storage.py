"""Tests for JSON file, JSON-lines audit and in-memory storage."""

import json
from decimal import Decimal
from uuid import uuid4

import pytest

from cashflow.engine.transactions import build_transactions, onboard
from cashflow.models.audit import AuditEventBuilder
from cashflow.models.ledger import LedgerState, TransactionRole
from cashflow.services.storage import (
    CorruptStateError,
    InMemoryAuditStorage,
    InMemoryStateStorage,
    JsonFileStateStorage,
    JsonlAuditStorage,
)


@pytest.fixture
def sample_state(accounts, now, id_factory, make_intent) -> LedgerState:
    state = onboard(LedgerState(accounts=accounts, theme="light"), now=now, id_factory=id_factory)
    records = build_transactions(
        make_intent(amount=Decimal("1234.56"), transfer_fee=Decimal("10")), now=now, id_factory=id_factory
    )
    return state.with_transactions(records + list(state.transactions))


class TestJsonFileStateStorage:
    """Tests for JsonFileStateStorage."""

    def test_missing_file_loads_nothing(self, tmp_path):
        """Test that a fresh install has no saved state."""
        assert JsonFileStateStorage(tmp_path / "state.json").load_state() is None

    def test_save_and_load(self, tmp_path, sample_state):
        """Test that a saved ledger loads back unchanged."""
        storage = JsonFileStateStorage(tmp_path / "state.json")
        assert storage.save_state(sample_state) is True
        loaded = storage.load_state()

        assert loaded.transactions == sample_state.transactions
        assert loaded.accounts == sample_state.accounts
        assert loaded.theme == "light"
        assert loaded.transactions[0].amount == Decimal("1234.56")
        assert loaded.transactions[0].date.tzinfo is not None

    def test_document_uses_camel_case(self, tmp_path, sample_state):
        """Test the persisted key names."""
        path = tmp_path / "state.json"
        JsonFileStateStorage(path).save_state(sample_state)
        document = json.loads(path.read_text())
        assert "hasOnboarded" in document
        assert "accountId" in document["transactions"][0]

    def test_save_rotates_backups(self, tmp_path, sample_state):
        """Test that the previous document is kept as a backup."""
        path = tmp_path / "state.json"
        storage = JsonFileStateStorage(path, backup_count=2)
        storage.save_state(sample_state)
        storage.save_state(sample_state.model_copy(update={"theme": "dark"}))
        storage.save_state(sample_state.model_copy(update={"theme": "blue"}))

        assert json.loads(path.read_text())["theme"] == "blue"
        assert json.loads((tmp_path / "state.json.1").read_text())["theme"] == "dark"
        assert json.loads((tmp_path / "state.json.2").read_text())["theme"] == "light"
        assert not list(tmp_path.glob("*.tmp"))

    def test_corrupt_file(self, tmp_path):
        """Test that garbage raises CorruptStateError."""
        path = tmp_path / "state.json"
        path.write_text("{not json")
        with pytest.raises(CorruptStateError):
            JsonFileStateStorage(path).load_state()

    def test_undecodable_file(self, tmp_path):
        """Test that bytes that are not UTF-8 are reported as corrupt."""
        path = tmp_path / "state.json"
        path.write_bytes(b"\xff\xfe{\"transactions\": []}")
        with pytest.raises(CorruptStateError):
            JsonFileStateStorage(path).load_state()

    def test_wrong_shape(self, tmp_path):
        """Test that a JSON document of the wrong shape is corrupt."""
        path = tmp_path / "state.json"
        path.write_text(json.dumps({"transactions": [{"id": "x"}]}))
        with pytest.raises(CorruptStateError):
            JsonFileStateStorage(path).load_state()

    def test_legacy_document_loads(self, tmp_path):
        """Test a wrapped browser export with numeric amounts and no roles."""
        path = tmp_path / "state.json"
        path.write_text(json.dumps({
            "cashflow_app_v1": {
                "transactions": [
                    {"id": "init-1", "amount": 10000, "type": "Income", "categoryId": "0",
                     "accountId": "1", "date": "2024-06-01T00:00:00.000Z"},
                    {"id": "t1", "amount": 12.1, "type": "Expense", "categoryId": "4",
                     "accountId": "1", "date": "2024-06-02T00:00:00.000Z"},
                ],
                "accounts": [{"id": "1", "name": "Cash in Hand", "type": "Cash", "balance": 0}],
                "categories": [{"id": "4", "name": "Food", "type": "Expense", "icon": "Utensils",
                                "subCategories": ["Groceries"]}],
                "hasOnboarded": True,
                "pinCode": "0000",
            }
        }))
        state = JsonFileStateStorage(path).load_state()

        assert state.has_onboarded is True
        assert state.transactions[0].role == TransactionRole.OPENING_BALANCE
        assert state.transactions[1].amount == Decimal("12.1")
        assert {c.id for c in state.categories} >= {"0", "4", "loan_category"}
        assert state.model_dump(by_alias=True)["pinCode"] == "0000"

    def test_clear_state(self, tmp_path, sample_state):
        """Test removing the file."""
        storage = JsonFileStateStorage(tmp_path / "state.json")
        storage.save_state(sample_state)
        assert storage.clear_state() is True
        assert storage.clear_state() is False
        assert storage.load_state() is None

    def test_defaults_come_from_settings(self, tmp_path):
        """Test that the configured path is used."""
        assert JsonFileStateStorage().path == tmp_path / "state.json"


class TestJsonlAuditStorage:
    """Tests for JsonlAuditStorage."""

    def test_append_and_query(self, tmp_path):
        """Test correlation and entity lookups."""
        storage = JsonlAuditStorage(tmp_path / "audit.jsonl")
        correlation_id = uuid4()
        storage.append_event(AuditEventBuilder.transaction_added("t1", "Expense", "10", correlation_id))
        storage.append_event(AuditEventBuilder.transaction_edited("t1", correlation_id))
        storage.append_event(AuditEventBuilder.transaction_deleted("t2", ["t2"]))

        assert len(storage.get_events_by_correlation_id(correlation_id)) == 2
        assert len(storage.get_events_by_entity("transaction", "t1")) == 2
        assert storage.get_recent_events(limit=1)[0].entity_id == "t2"

    def test_unreadable_lines_are_skipped(self, tmp_path):
        """Test that one bad line does not hide the rest."""
        path = tmp_path / "audit.jsonl"
        storage = JsonlAuditStorage(path)
        storage.append_event(AuditEventBuilder.ledger_cleared())
        with path.open("a") as handle:
            handle.write("garbage\n")
        assert len(storage.get_recent_events()) == 1


class TestInMemoryStorage:
    """Tests for the in-memory backends."""

    def test_state_round_trip(self, sample_state):
        """Test that the in-memory backend uses the document format."""
        storage = InMemoryStateStorage()
        assert storage.load_state() is None
        storage.save_state(sample_state)
        assert storage.load_state().transactions == sample_state.transactions
        assert storage.save_count == 1

    def test_audit_recent_events(self):
        """Test newest-first ordering."""
        storage = InMemoryAuditStorage()
        storage.append_event(AuditEventBuilder.ledger_onboarded(["a"]))
        storage.append_event(AuditEventBuilder.ledger_cleared())
        assert [e.event_type.value for e in storage.get_recent_events()][0] == "ledger_cleared"
