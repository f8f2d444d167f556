"""Intent validation."""

from cashflow.validation.validator import TransactionValidator

__all__ = ["TransactionValidator"]
