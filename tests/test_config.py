"""Tests for environment-driven settings."""

from pathlib import Path

import pytest
from pydantic import ValidationError

from cashflow.config import get_settings, validate_all_settings
from cashflow.config.settings import LedgerSettings, StorageSettings


class TestSettings:
    """Tests for the settings classes."""

    def test_ledger_defaults(self):
        """Test the default ledger behaviour."""
        settings = LedgerSettings()
        assert settings.currency == "LKR"
        assert settings.clamp_cash_balances is True
        assert settings.strict_settlement_amount is True
        assert settings.notify_once_per_day is True

    def test_env_overrides(self, monkeypatch):
        """Test that CASHFLOW_ variables are read."""
        monkeypatch.setenv("CASHFLOW_CURRENCY", " usd ")
        monkeypatch.setenv("CASHFLOW_STRICT_SETTLEMENT_AMOUNT", "false")
        settings = LedgerSettings()
        assert settings.currency == "USD"
        assert settings.strict_settlement_amount is False

    def test_storage_paths_from_env(self, tmp_path):
        """Test that the test environment points storage at tmp_path."""
        storage = get_settings().storage
        assert storage.state_path == tmp_path / "state.json"
        assert storage.audit_path == tmp_path / "audit.jsonl"

    def test_invalid_backup_count(self, monkeypatch):
        """Test range checks on numeric settings."""
        monkeypatch.setenv("CASHFLOW_STORAGE_BACKUP_COUNT", "-1")
        with pytest.raises(ValidationError):
            StorageSettings()

    def test_validate_all_settings(self, monkeypatch):
        """Test the startup check reports a broken section."""
        assert validate_all_settings() == {"storage": True, "ledger": True, "app": True}

        monkeypatch.setenv("CASHFLOW_REALIZATION_CHECK_INTERVAL_SECONDS", "0")
        results = validate_all_settings()
        assert results["ledger"] is False
        assert "ledger_error" in results

    def test_default_state_path(self, monkeypatch):
        """Test the default file name when nothing is configured."""
        monkeypatch.delenv("CASHFLOW_STORAGE_STATE_PATH")
        assert StorageSettings().state_path == Path("cashflow_state.json")
