"""Small shared helpers."""

from cashflow.utils.dates import add_months, ensure_aware, is_same_day, utc_now

__all__ = ["add_months", "ensure_aware", "is_same_day", "utc_now"]
