"""
In-Memory Storage

Process-local backends used by tests and by sessions created with
use_storage=False. The state backend round-trips through the same JSON
document format as the file backend, so a test exercises the real
serialization path.
"""

from typing import Optional
from uuid import UUID

from cashflow.models.audit import AuditEvent
from cashflow.models.ledger import LedgerState
from cashflow.services.storage.interface import AuditStorageInterface, StateStorageInterface
from cashflow.services.storage.json_file import dump_state_document, parse_state_document


class InMemoryStateStorage(StateStorageInterface):

    def __init__(self, document: Optional[str] = None):
        self.document = document
        self.save_count = 0

    def load_state(self) -> Optional[LedgerState]:
        if self.document is None:
            return None
        return parse_state_document(self.document)

    def save_state(self, state: LedgerState) -> bool:
        self.document = dump_state_document(state)
        self.save_count += 1
        return True

    def clear_state(self) -> bool:
        existed = self.document is not None
        self.document = None
        return existed


class InMemoryAuditStorage(AuditStorageInterface):

    def __init__(self):
        self.events: list[AuditEvent] = []

    def append_event(self, event: AuditEvent) -> bool:
        self.events.append(event)
        return True

    def get_events_by_correlation_id(self, correlation_id: UUID) -> list[AuditEvent]:
        return sorted(
            (e for e in self.events if e.correlation_id == correlation_id),
            key=lambda e: e.timestamp,
        )

    def get_events_by_entity(self, entity_type: str, entity_id: str) -> list[AuditEvent]:
        return sorted(
            (e for e in self.events if e.entity_type == entity_type and e.entity_id == entity_id),
            key=lambda e: e.timestamp,
        )

    def get_recent_events(self, limit: int = 100) -> list[AuditEvent]:
        return sorted(self.events, key=lambda e: e.timestamp, reverse=True)[:limit]
