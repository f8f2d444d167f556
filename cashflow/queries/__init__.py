"""Read-only ledger reports."""

from cashflow.queries.reports import CategoryTotal, FutureTotals, LedgerReporter

__all__ = ["CategoryTotal", "FutureTotals", "LedgerReporter"]
