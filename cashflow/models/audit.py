"""
Audit Models for Cashflow

Every mutation of the ledger is recorded as an audit event. This provides:
1. Traceability of every transaction, loan and settlement change
2. Debugging information when a persisted state looks wrong
3. A history that survives even when the ledger itself is edited

Audit logs are append-only. Events are never modified or deleted.
"""

import json
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class AuditEventType(str, Enum):
    """
    Types of events we audit.

    Each engine operation has its own event type.
    """
    # Plain transactions
    TRANSACTION_ADDED = "transaction_added"
    TRANSACTION_EDITED = "transaction_edited"
    TRANSACTION_DELETED = "transaction_deleted"

    # Loan facilities
    LOAN_CREATED = "loan_created"
    LOAN_EDITED = "loan_edited"
    LOAN_DELETED = "loan_deleted"
    FACILITY_SETTLED = "facility_settled"

    # Realization queue
    TRANSACTION_REALIZED = "transaction_realized"
    TRANSACTION_RESCHEDULED = "transaction_rescheduled"
    REALIZATION_SKIPPED = "realization_skipped"

    # Validation
    VALIDATION_FAILED = "validation_failed"

    # Lifecycle / persistence
    LEDGER_ONBOARDED = "ledger_onboarded"
    LEDGER_CLEARED = "ledger_cleared"
    STATE_LOAD_FAILED = "state_load_failed"
    STATE_SAVE_FAILED = "state_save_failed"

    # System events
    SYSTEM_ERROR = "system_error"


class AuditSeverity(str, Enum):
    """Severity level for audit events."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class AuditEvent(BaseModel):
    """
    A single audit event.

    This is the core unit of our audit trail.
    Every ledger mutation creates one of these.
    """

    # Identity
    event_id: UUID = Field(
        default_factory=uuid4,
        description="Unique event identifier"
    )
    timestamp: datetime = Field(
        default_factory=_utcnow,
        description="When the event occurred (UTC)"
    )

    # Event classification
    event_type: AuditEventType = Field(
        ...,
        description="Type of event"
    )
    severity: AuditSeverity = Field(
        default=AuditSeverity.INFO,
        description="Event severity"
    )

    # Context - what entity is this about?
    entity_type: Optional[str] = Field(
        default=None,
        description="Type of entity (e.g., 'transaction', 'loan', 'ledger')"
    )
    entity_id: Optional[str] = Field(
        default=None,
        description="Id of the entity this event relates to"
    )

    # Correlation - for tracking related events
    correlation_id: Optional[UUID] = Field(
        default=None,
        description="Groups the events produced by one user action"
    )

    description: str = Field(
        ...,
        max_length=500,
        description="Human-readable description of what happened"
    )
    details: dict[str, Any] = Field(
        default_factory=dict,
        description="Additional event-specific data"
    )

    # Error information (if applicable)
    error_code: Optional[str] = None
    error_message: Optional[str] = None

    is_user_action: bool = Field(
        default=False,
        description="Was this triggered by a user action?"
    )

    def to_log_dict(self) -> dict:
        """
        Convert to a dictionary suitable for structured logging.
        """
        return {
            "event_id": str(self.event_id),
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type.value,
            "severity": self.severity.value,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "correlation_id": str(self.correlation_id) if self.correlation_id else None,
            "description": self.description,
            "details": self.details,
            "error_code": self.error_code,
            "error_message": self.error_message,
            "is_user_action": self.is_user_action,
        }

    def to_jsonl_line(self) -> str:
        """Serialize as one line of a JSON-lines audit file."""
        return json.dumps(self.model_dump(mode="json"), sort_keys=True)


class AuditEventBuilder:
    """
    Helper class to build audit events with common patterns.

    Usage:
        event = AuditEventBuilder.transaction_added(tx_id, "Expense", "1500")
        event = AuditEventBuilder.loan_created(parent_id, "CASH", "12000", 13)
    """

    @staticmethod
    def transaction_added(
        transaction_id: str,
        transaction_type: str,
        amount: str,
        correlation_id: Optional[UUID] = None,
        deferred: bool = False,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TRANSACTION_ADDED,
            entity_type="transaction",
            entity_id=transaction_id,
            correlation_id=correlation_id,
            description=f"{transaction_type} recorded: {amount}",
            details={
                "type": transaction_type,
                "amount": amount,
                "deferred_settlement": deferred,
            },
            is_user_action=True,
        )

    @staticmethod
    def transaction_edited(
        transaction_id: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TRANSACTION_EDITED,
            entity_type="transaction",
            entity_id=transaction_id,
            correlation_id=correlation_id,
            description="Transaction edited",
            is_user_action=True,
        )

    @staticmethod
    def transaction_deleted(
        transaction_id: str,
        removed_ids: list[str],
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TRANSACTION_DELETED,
            entity_type="transaction",
            entity_id=transaction_id,
            correlation_id=correlation_id,
            description=f"Deleted {len(removed_ids)} transaction(s)",
            details={"removed_ids": removed_ids},
            is_user_action=True,
        )

    @staticmethod
    def loan_created(
        parent_id: str,
        loan_type: str,
        amount: str,
        record_count: int,
        correlation_id: Optional[UUID] = None,
        edited: bool = False,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.LOAN_EDITED if edited else AuditEventType.LOAN_CREATED,
            entity_type="loan",
            entity_id=parent_id,
            correlation_id=correlation_id,
            description=f"{loan_type} loan facility {'re-created' if edited else 'created'}: {amount}",
            details={
                "loan_type": loan_type,
                "amount": amount,
                "record_count": record_count,
            },
            is_user_action=True,
        )

    @staticmethod
    def loan_deleted(
        parent_id: str,
        removed_ids: list[str],
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.LOAN_DELETED,
            entity_type="loan",
            entity_id=parent_id,
            correlation_id=correlation_id,
            description=f"Loan facility deleted with {len(removed_ids) - 1} child record(s)",
            details={"removed_ids": removed_ids},
            is_user_action=True,
        )

    @staticmethod
    def facility_settled(
        debt_id: str,
        payment: str,
        remaining: str,
        settlement_id: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.FACILITY_SETTLED,
            entity_type="loan",
            entity_id=debt_id,
            correlation_id=correlation_id,
            description=f"Settlement of {payment} applied, {remaining} outstanding",
            details={
                "payment": payment,
                "remaining": remaining,
                "settlement_id": settlement_id,
            },
            is_user_action=True,
        )

    @staticmethod
    def transaction_realized(
        transaction_id: str,
        amount: str,
        deficit: Optional[str],
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TRANSACTION_REALIZED,
            entity_type="transaction",
            entity_id=transaction_id,
            correlation_id=correlation_id,
            description=f"Scheduled transaction realized at {amount}",
            details={"amount": amount, "deficit": deficit},
            is_user_action=True,
        )

    @staticmethod
    def transaction_rescheduled(
        transaction_id: str,
        new_date: datetime,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TRANSACTION_RESCHEDULED,
            entity_type="transaction",
            entity_id=transaction_id,
            correlation_id=correlation_id,
            description=f"Scheduled transaction moved to {new_date.isoformat()}",
            details={"new_date": new_date.isoformat()},
            is_user_action=True,
        )

    @staticmethod
    def realization_skipped(
        transaction_id: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.REALIZATION_SKIPPED,
            severity=AuditSeverity.DEBUG,
            entity_type="transaction",
            entity_id=transaction_id,
            correlation_id=correlation_id,
            description="Realization deferred",
            is_user_action=True,
        )

    @staticmethod
    def validation_failed(
        operation: str,
        issues: list[dict],
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.VALIDATION_FAILED,
            severity=AuditSeverity.WARNING,
            entity_type="intent",
            correlation_id=correlation_id,
            description=f"{operation} rejected with {len(issues)} issue(s)",
            details={
                "operation": operation,
                "issues": issues,
            },
        )

    @staticmethod
    def ledger_onboarded(
        opening_ids: list[str],
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.LEDGER_ONBOARDED,
            entity_type="ledger",
            description=f"Ledger onboarded with {len(opening_ids)} opening balance(s)",
            details={"opening_ids": opening_ids},
            is_user_action=True,
        )

    @staticmethod
    def ledger_cleared() -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.LEDGER_CLEARED,
            severity=AuditSeverity.WARNING,
            entity_type="ledger",
            description="All ledger data cleared",
            is_user_action=True,
        )

    @staticmethod
    def state_save_failed(error_message: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.STATE_SAVE_FAILED,
            severity=AuditSeverity.ERROR,
            entity_type="ledger",
            description="Ledger state could not be persisted",
            error_message=error_message,
        )

    @staticmethod
    def state_load_failed(error_message: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.STATE_LOAD_FAILED,
            severity=AuditSeverity.ERROR,
            entity_type="ledger",
            description="Ledger state could not be loaded; starting fresh",
            error_message=error_message,
        )

    @staticmethod
    def system_error(
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SYSTEM_ERROR,
            severity=AuditSeverity.ERROR,
            description=f"System error: {error_type}",
            error_message=error_message,
            details=details or {},
            correlation_id=correlation_id,
        )
