"""
Configuration Management for Cashflow

Uses pydantic-settings for type-safe configuration from environment variables.

DESIGN DECISION: All configuration is centralized here.
The engine itself is pure and reads nothing from the environment; only
the session, storage backends, validator and logging consult settings.
"""

from functools import lru_cache
from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class StorageSettings(BaseSettings):
    """Local persistence configuration."""

    model_config = SettingsConfigDict(
        env_prefix="CASHFLOW_STORAGE_",
        extra="ignore"
    )

    state_path: Path = Field(
        default=Path("cashflow_state.json"),
        description="JSON document holding the whole ledger state"
    )
    audit_path: Path = Field(
        default=Path("cashflow_audit.jsonl"),
        description="Append-only JSON-lines audit trail"
    )
    backup_count: int = Field(
        default=1,
        ge=0,
        le=20,
        description="Rotated copies of the state file kept on save"
    )


class LedgerSettings(BaseSettings):
    """Ledger behaviour configuration."""

    model_config = SettingsConfigDict(
        env_prefix="CASHFLOW_",
        extra="ignore"
    )

    currency: str = Field(
        default="LKR",
        min_length=1,
        max_length=8,
        description="Currency label used in messages"
    )
    clamp_cash_balances: bool = Field(
        default=True,
        description="Floor CASH account balances at zero"
    )
    strict_settlement_amount: bool = Field(
        default=True,
        description="Reject settlement payments above the amount owed"
    )
    realization_check_interval_seconds: int = Field(
        default=60,
        ge=1,
        le=3600,
        description="How often a host should call refresh_queue()"
    )
    notify_once_per_day: bool = Field(
        default=True,
        description="Compose at most one due-items notification per calendar day"
    )

    @field_validator("currency")
    @classmethod
    def normalize_currency(cls, v: str) -> str:
        return v.strip().upper()


class AppSettings(BaseSettings):
    """
    Main application settings.

    Loads configuration from environment variables and .env file.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    # Environment
    app_environment: str = Field(
        default="development",
        description="Application environment"
    )
    debug_mode: bool = Field(
        default=False,
        description="Enable debug mode"
    )


class Settings(BaseSettings):
    """
    Root settings container.

    Aggregates all sub-settings for easy access.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    # Note: These are loaded lazily to allow partial configuration

    @property
    def storage(self) -> StorageSettings:
        return StorageSettings()

    @property
    def ledger(self) -> LedgerSettings:
        return LedgerSettings()

    @property
    def app(self) -> AppSettings:
        return AppSettings()


@lru_cache()
def get_settings() -> Settings:
    """
    Get application settings (cached).

    Uses LRU cache to ensure settings are only loaded once.
    Call get_settings.cache_clear() to reload if needed.
    """
    return Settings()


def validate_all_settings() -> dict[str, bool]:
    """
    Validate all settings are properly configured.

    Returns a dict of {setting_name: is_valid}.
    Useful for startup checks.
    """
    results = {}

    settings = get_settings()

    for name in ("storage", "ledger", "app"):
        try:
            getattr(settings, name)
            results[name] = True
        except Exception as e:
            results[name] = False
            results[f"{name}_error"] = str(e)

    return results
