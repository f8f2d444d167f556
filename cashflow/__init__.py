"""
Cashflow - Ledger & Loan Engine

A personal finance ledger: accounts, income/expense/transfer records,
loan facilities decomposed into scheduled installments, and a queue of
scheduled transactions awaiting confirmation.

DESIGN PRINCIPLES:
1. Balances are derived, never stored
2. Records are immutable values; every edit produces a new state
3. No silent corrections - rejections carry the reason
4. Every mutation is auditable
5. Storage layer is swappable
"""

__version__ = "1.0.0"
__author__ = "Cashflow Team"
