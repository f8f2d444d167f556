"""
Abstract Storage Interface

DESIGN DECISION: We define an abstract interface for storage operations.
This allows us to:
1. Keep the ledger engine free of any I/O
2. Use in-memory storage for testing
3. Swap the JSON file for another backend later

The ledger is persisted as ONE document: the whole LedgerState is loaded
at startup and written back after every mutation. There is no per-record
API on purpose.
"""

from abc import ABC, abstractmethod
from typing import Optional
from uuid import UUID

from cashflow.models.audit import AuditEvent
from cashflow.models.ledger import LedgerState


class StateStorageInterface(ABC):
    """
    Abstract interface for ledger state persistence.

    Any storage implementation must implement these methods.
    """

    @abstractmethod
    def load_state(self) -> Optional[LedgerState]:
        """
        Load the persisted ledger.

        Returns:
            The normalized state, or None when nothing has been saved yet

        Raises:
            CorruptStateError: If a document exists but cannot be parsed
            StorageError: If the backend cannot be read
        """
        pass

    @abstractmethod
    def save_state(self, state: LedgerState) -> bool:
        """
        Persist the whole ledger, replacing what was stored.

        Args:
            state: The state to save

        Returns:
            True if saved successfully

        Raises:
            StorageError: If save fails
        """
        pass

    @abstractmethod
    def clear_state(self) -> bool:
        """
        Remove the persisted ledger.

        Returns:
            True if something was removed
        """
        pass


class AuditStorageInterface(ABC):
    """
    Abstract interface for audit log storage.

    Audit logs are append-only - we never delete or modify them.
    """

    @abstractmethod
    def append_event(self, event: AuditEvent) -> bool:
        """
        Append an audit event to the log.

        Args:
            event: The audit event to log

        Returns:
            True if logged successfully
        """
        pass

    @abstractmethod
    def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        """
        Get all events for a correlation ID (e.g., one loan setup).

        Args:
            correlation_id: The correlation identifier

        Returns:
            List of related events in chronological order
        """
        pass

    @abstractmethod
    def get_events_by_entity(
        self,
        entity_type: str,
        entity_id: str,
    ) -> list[AuditEvent]:
        """
        Get all events for a specific entity.

        Args:
            entity_type: Type of entity (e.g., 'transaction', 'loan')
            entity_id: The entity's id

        Returns:
            List of events in chronological order
        """
        pass

    @abstractmethod
    def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        """
        Get the most recent audit events.

        Args:
            limit: Maximum number of events to return

        Returns:
            List of recent events (newest first)
        """
        pass


class StorageError(Exception):
    """Base exception for storage operations."""
    pass


class CorruptStateError(StorageError):
    """A persisted document exists but is not a valid ledger."""
    pass
