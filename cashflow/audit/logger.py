"""
Audit Logger

DESIGN DECISION: Every ledger mutation is logged.
This provides:
1. Complete traceability of balances back to the actions that moved them
2. Debugging capability when a persisted ledger looks wrong
3. A history that survives edits and deletes

The audit logger:
- Gracefully handles failures (never breaks a ledger operation)
- Supports correlation IDs to trace the events of one user action
"""

from datetime import datetime
from decimal import Decimal
from typing import Optional
from uuid import UUID, uuid4

import structlog

from cashflow.models.audit import AuditEvent, AuditEventBuilder
from cashflow.models.validation import ValidationIssue
from cashflow.services.storage import AuditStorageInterface


# Configure structlog for local logging
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer()
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)


def _money(value: Optional[Decimal]) -> Optional[str]:
    return None if value is None else str(value)


class AuditLogger:
    """
    Central audit logging service.

    Logs events both to:
    1. Structured local log (for debugging)
    2. An audit storage backend (for persistence), when one is configured
    """

    def __init__(
        self,
        storage: Optional[AuditStorageInterface] = None,
    ):
        """
        Initialize audit logger.

        Args:
            storage: Storage backend for persistence.
                    If None, only logs locally.
        """
        self._storage = storage
        self._logger = structlog.get_logger(__name__)

    def log(self, event: AuditEvent) -> bool:
        """
        Log an audit event.

        Always logs locally. Persists to storage if available.

        Returns True if storage write succeeded (or no storage configured).
        """
        log_dict = event.to_log_dict()

        if event.severity.value in ("error", "critical"):
            self._logger.error("audit_event", **log_dict)
        elif event.severity.value == "warning":
            self._logger.warning("audit_event", **log_dict)
        elif event.severity.value == "debug":
            self._logger.debug("audit_event", **log_dict)
        else:
            self._logger.info("audit_event", **log_dict)

        if self._storage:
            try:
                return self._storage.append_event(event)
            except Exception as e:
                # Log failure but don't raise
                self._logger.error(
                    "audit_storage_failed",
                    error=str(e),
                    event_id=str(event.event_id),
                )
                return False

        return True

    def log_transaction_added(
        self,
        transaction_id: str,
        transaction_type: str,
        amount: Decimal,
        correlation_id: Optional[UUID] = None,
        deferred: bool = False,
    ) -> None:
        """Log a new income/expense/transfer."""
        self.log(AuditEventBuilder.transaction_added(
            transaction_id=transaction_id,
            transaction_type=transaction_type,
            amount=_money(amount),
            correlation_id=correlation_id,
            deferred=deferred,
        ))

    def log_transaction_edited(
        self,
        transaction_id: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        self.log(AuditEventBuilder.transaction_edited(
            transaction_id=transaction_id,
            correlation_id=correlation_id,
        ))

    def log_transaction_deleted(
        self,
        transaction_id: str,
        removed_ids: list[str],
        correlation_id: Optional[UUID] = None,
    ) -> None:
        self.log(AuditEventBuilder.transaction_deleted(
            transaction_id=transaction_id,
            removed_ids=removed_ids,
            correlation_id=correlation_id,
        ))

    def log_loan_created(
        self,
        parent_id: str,
        loan_type: str,
        amount: Decimal,
        record_count: int,
        correlation_id: Optional[UUID] = None,
        edited: bool = False,
    ) -> None:
        """Log a facility decomposition (new or re-created on edit)."""
        self.log(AuditEventBuilder.loan_created(
            parent_id=parent_id,
            loan_type=loan_type,
            amount=_money(amount),
            record_count=record_count,
            correlation_id=correlation_id,
            edited=edited,
        ))

    def log_loan_deleted(
        self,
        parent_id: str,
        removed_ids: list[str],
        correlation_id: Optional[UUID] = None,
    ) -> None:
        self.log(AuditEventBuilder.loan_deleted(
            parent_id=parent_id,
            removed_ids=removed_ids,
            correlation_id=correlation_id,
        ))

    def log_facility_settled(
        self,
        debt_id: str,
        payment: Decimal,
        remaining: Decimal,
        settlement_id: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        self.log(AuditEventBuilder.facility_settled(
            debt_id=debt_id,
            payment=_money(payment),
            remaining=_money(remaining),
            settlement_id=settlement_id,
            correlation_id=correlation_id,
        ))

    def log_transaction_realized(
        self,
        transaction_id: str,
        amount: Decimal,
        deficit: Optional[Decimal] = None,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        self.log(AuditEventBuilder.transaction_realized(
            transaction_id=transaction_id,
            amount=_money(amount),
            deficit=_money(deficit),
            correlation_id=correlation_id,
        ))

    def log_transaction_rescheduled(
        self,
        transaction_id: str,
        new_date: datetime,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        self.log(AuditEventBuilder.transaction_rescheduled(
            transaction_id=transaction_id,
            new_date=new_date,
            correlation_id=correlation_id,
        ))

    def log_realization_skipped(
        self,
        transaction_id: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        self.log(AuditEventBuilder.realization_skipped(
            transaction_id=transaction_id,
            correlation_id=correlation_id,
        ))

    def log_validation_failed(
        self,
        operation: str,
        issues: list[ValidationIssue],
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log a rejected intent."""
        self.log(AuditEventBuilder.validation_failed(
            operation=operation,
            issues=[issue.model_dump(mode="json") for issue in issues],
            correlation_id=correlation_id,
        ))

    def log_ledger_onboarded(self, opening_ids: list[str]) -> None:
        self.log(AuditEventBuilder.ledger_onboarded(opening_ids=opening_ids))

    def log_ledger_cleared(self) -> None:
        self.log(AuditEventBuilder.ledger_cleared())

    def log_state_save_failed(self, error_message: str) -> None:
        self.log(AuditEventBuilder.state_save_failed(error_message))

    def log_state_load_failed(self, error_message: str) -> None:
        self.log(AuditEventBuilder.state_load_failed(error_message))

    def log_error(
        self,
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log an error."""
        self.log(AuditEventBuilder.system_error(
            error_type=error_type,
            error_message=error_message,
            details=details,
            correlation_id=correlation_id,
        ))


def create_correlation_id() -> UUID:
    """
    Create a new correlation ID for tracking related events.

    Use this at the start of a new user action (e.g., saving a loan).
    Pass it through all subsequent operations.
    """
    return uuid4()
