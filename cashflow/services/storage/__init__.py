"""
Storage Services Package

Provides abstract interfaces and concrete implementations for persistence.
Currently implements a local JSON document plus a JSON-lines audit trail,
but designed to be swappable.
"""

from cashflow.services.storage.interface import (
    AuditStorageInterface,
    CorruptStateError,
    StateStorageInterface,
    StorageError,
)
from cashflow.services.storage.json_file import (
    JsonFileStateStorage,
    JsonlAuditStorage,
    dump_state_document,
    parse_state_document,
)
from cashflow.services.storage.memory import InMemoryAuditStorage, InMemoryStateStorage

__all__ = [
    # Interfaces
    "AuditStorageInterface",
    "StateStorageInterface",
    # Exceptions
    "CorruptStateError",
    "StorageError",
    # Local file implementation
    "JsonFileStateStorage",
    "JsonlAuditStorage",
    "dump_state_document",
    "parse_state_document",
    # In-memory implementation
    "InMemoryAuditStorage",
    "InMemoryStateStorage",
]
