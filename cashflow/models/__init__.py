"""
Data Models Package

This package contains all Pydantic models used by the Cashflow ledger engine.
All data flowing through the engine must conform to these schemas.
"""

from cashflow.models.ledger import (
    DOWN_PAYMENT_SUBCATEGORY,
    INITIAL_ACCOUNTS,
    INITIAL_CATEGORIES,
    INSTALLMENT_SUBCATEGORY,
    LOAN_CATEGORY,
    LOAN_CATEGORY_ID,
    LOAN_CHILD_ROLES,
    OPENING_BALANCE_CATEGORY,
    OPENING_BALANCE_CATEGORY_ID,
    UNKNOWN_CATEGORY_NAME,
    Account,
    AccountType,
    Category,
    CategoryRole,
    LedgerState,
    LoanRequest,
    LoanType,
    Transaction,
    TransactionIntent,
    TransactionRole,
    TransactionStatus,
    TransactionType,
    category_name,
    classify_category,
    new_id,
)
from cashflow.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)
from cashflow.models.validation import ValidationIssue, ValidationResult

__all__ = [
    # Reserved identifiers and defaults
    "DOWN_PAYMENT_SUBCATEGORY",
    "INITIAL_ACCOUNTS",
    "INITIAL_CATEGORIES",
    "INSTALLMENT_SUBCATEGORY",
    "LOAN_CATEGORY",
    "LOAN_CATEGORY_ID",
    "LOAN_CHILD_ROLES",
    "OPENING_BALANCE_CATEGORY",
    "OPENING_BALANCE_CATEGORY_ID",
    "UNKNOWN_CATEGORY_NAME",
    # Ledger models
    "Account",
    "AccountType",
    "Category",
    "CategoryRole",
    "LedgerState",
    "LoanRequest",
    "LoanType",
    "Transaction",
    "TransactionIntent",
    "TransactionRole",
    "TransactionStatus",
    "TransactionType",
    "category_name",
    "classify_category",
    "new_id",
    # Audit models
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
    # Validation models
    "ValidationIssue",
    "ValidationResult",
]
