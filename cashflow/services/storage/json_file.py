"""
JSON File Storage Implementation

The ledger lives in a single JSON document with camelCase keys
(transactions, accounts, categories, hasOnboarded, ...). Instants are
written as ISO-8601 strings and revived as timezone-aware datetimes;
money is written as decimal strings and read back without float rounding.

Saves are atomic: the document is written to a temporary file in the same
directory, then moved over the old one. Earlier versions are rotated into
numbered backups (state.json.1, state.json.2, ...).
"""

import json
import os
import tempfile
from decimal import Decimal
from pathlib import Path
from typing import Optional
from uuid import UUID

import structlog
from pydantic import ValidationError
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from cashflow.config import get_settings
from cashflow.engine.transactions import normalize_state
from cashflow.models.audit import AuditEvent
from cashflow.models.ledger import LedgerState
from cashflow.services.storage.interface import (
    AuditStorageInterface,
    CorruptStateError,
    StateStorageInterface,
    StorageError,
)

logger = structlog.get_logger(__name__)

# Documents exported from the browser build are wrapped under this key.
LEGACY_DOCUMENT_KEY = "cashflow_app_v1"


def parse_state_document(raw: str) -> LedgerState:
    """
    Parse a persisted document into a normalized LedgerState.

    Raises:
        CorruptStateError: Not JSON, or not a ledger
    """
    try:
        data = json.loads(raw, parse_float=Decimal)
    except json.JSONDecodeError as e:
        raise CorruptStateError(f"State document is not valid JSON: {e}")

    if isinstance(data, dict) and isinstance(data.get(LEGACY_DOCUMENT_KEY), dict):
        data = data[LEGACY_DOCUMENT_KEY]
    if not isinstance(data, dict):
        raise CorruptStateError("State document must be a JSON object")

    try:
        state = LedgerState.model_validate(data)
    except ValidationError as e:
        raise CorruptStateError(f"State document failed validation: {e.error_count()} error(s)")
    return normalize_state(state)


def dump_state_document(state: LedgerState) -> str:
    return json.dumps(state.model_dump(mode="json", by_alias=True), indent=2)


class JsonFileStateStorage(StateStorageInterface):
    """Ledger state persisted to one JSON file on local disk."""

    def __init__(self, path: Optional[Path] = None, backup_count: Optional[int] = None):
        settings = get_settings().storage
        self._path = Path(path) if path is not None else settings.state_path
        self._backup_count = settings.backup_count if backup_count is None else backup_count

    @property
    def path(self) -> Path:
        return self._path

    def load_state(self) -> Optional[LedgerState]:
        """Load the ledger; None when the file does not exist yet."""
        if not self._path.exists():
            return None
        try:
            raw = self._path.read_text(encoding="utf-8")
        except UnicodeDecodeError as e:
            raise CorruptStateError(f"State file {self._path} is not UTF-8 text: {e}")
        except OSError as e:
            raise StorageError(f"Failed to read state file {self._path}: {e}")
        state = parse_state_document(raw)
        logger.info(
            "state_loaded",
            path=str(self._path),
            transactions=len(state.transactions),
        )
        return state

    def _rotate_backups(self) -> None:
        if self._backup_count <= 0 or not self._path.exists():
            return
        for i in range(self._backup_count - 1, 0, -1):
            older = self._path.with_name(f"{self._path.name}.{i}")
            if older.exists():
                os.replace(older, self._path.with_name(f"{self._path.name}.{i + 1}"))
        os.replace(self._path, self._path.with_name(f"{self._path.name}.1"))

    @retry(
        retry=retry_if_exception_type(StorageError),
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    def save_state(self, state: LedgerState) -> bool:
        """Atomically replace the state file."""
        document = dump_state_document(state)
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(
                dir=self._path.parent, prefix=f".{self._path.name}.", suffix=".tmp"
            )
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as handle:
                    handle.write(document)
                    handle.flush()
                    os.fsync(handle.fileno())
                self._rotate_backups()
                os.replace(tmp_name, self._path)
            except BaseException:
                Path(tmp_name).unlink(missing_ok=True)
                raise
        except OSError as e:
            raise StorageError(f"Failed to save state to {self._path}: {e}")

        logger.debug("state_saved", path=str(self._path), transactions=len(state.transactions))
        return True

    def clear_state(self) -> bool:
        if not self._path.exists():
            return False
        try:
            self._path.unlink()
        except OSError as e:
            raise StorageError(f"Failed to remove state file {self._path}: {e}")
        logger.info("state_cleared", path=str(self._path))
        return True


class JsonlAuditStorage(AuditStorageInterface):
    """
    Append-only audit trail, one JSON object per line.

    Unreadable lines are skipped on read; they never make the whole trail
    unavailable.
    """

    def __init__(self, path: Optional[Path] = None):
        self._path = Path(path) if path is not None else get_settings().storage.audit_path

    @property
    def path(self) -> Path:
        return self._path

    @retry(
        retry=retry_if_exception_type(OSError),
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    def _append_line(self, line: str) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        with self._path.open("a", encoding="utf-8") as handle:
            handle.write(line + "\n")

    def append_event(self, event: AuditEvent) -> bool:
        """Append an audit event."""
        try:
            self._append_line(event.to_jsonl_line())
            return True
        except OSError as e:
            # audit logging must not break the main flow
            logger.warning("audit_append_failed", error=str(e), path=str(self._path))
            return False

    def _read_events(self) -> list[AuditEvent]:
        if not self._path.exists():
            return []
        try:
            lines = self._path.read_text(encoding="utf-8").splitlines()
        except OSError as e:
            raise StorageError(f"Failed to read audit log {self._path}: {e}")

        events = []
        for line in lines:
            if not line.strip():
                continue
            try:
                events.append(AuditEvent.model_validate_json(line))
            except ValidationError:
                logger.warning("audit_line_skipped", path=str(self._path))
                continue
        return events

    def get_events_by_correlation_id(self, correlation_id: UUID) -> list[AuditEvent]:
        events = [e for e in self._read_events() if e.correlation_id == correlation_id]
        events.sort(key=lambda e: e.timestamp)
        return events

    def get_events_by_entity(self, entity_type: str, entity_id: str) -> list[AuditEvent]:
        events = [
            e for e in self._read_events()
            if e.entity_type == entity_type and e.entity_id == entity_id
        ]
        events.sort(key=lambda e: e.timestamp)
        return events

    def get_recent_events(self, limit: int = 100) -> list[AuditEvent]:
        events = self._read_events()
        events.sort(key=lambda e: e.timestamp, reverse=True)
        return events[:limit]
