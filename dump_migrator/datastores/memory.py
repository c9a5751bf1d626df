"""In-memory datastore for tests and dry runs."""

import itertools
import logging
import threading
from copy import deepcopy
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from ..errors import DatastoreConnectionError, DatastoreRowError
from .base import Datastore, DedupKey, StoredRecord

logger = logging.getLogger(__name__)


class InMemoryDatastore(Datastore):
    """
    Thread-safe datastore kept in a dict of tables.

    Lookups are exact and strongly consistent: a record is visible to
    find_by_key as soon as insert returns. Failures can be injected for
    tests through ``reject_when``, ``fail_after_writes`` and ``available``.
    """

    def __init__(
        self,
        reject_when: Optional[Callable[[str, Dict[str, Any]], Optional[str]]] = None,
        fail_after_writes: Optional[int] = None,
        fail_activity_log: bool = False
    ):
        """
        Initialize the datastore.

        Args:
            reject_when: Called with (target, record) before each write; a
                returned message rejects that record
            fail_after_writes: Lose the connection once this many writes succeeded
            fail_activity_log: Make log_activity raise
        """
        super().__init__()
        self.reject_when = reject_when
        self.fail_after_writes = fail_after_writes
        self.fail_activity_log = fail_activity_log
        self.available = True
        self.activities: List[Dict[str, Any]] = []
        self.writes = 0
        self._tables: Dict[str, Dict[str, StoredRecord]] = {}
        self._ids = itertools.count(1)
        self._lock = threading.RLock()

    def _ensure_available(self) -> None:
        if not self.available:
            raise DatastoreConnectionError("In-memory datastore is unavailable")

    def _before_write(self, target: str, record: Dict[str, Any]) -> None:
        self._ensure_available()
        if self.fail_after_writes is not None and self.writes >= self.fail_after_writes:
            self.available = False
            raise DatastoreConnectionError(f"Connection lost after {self.writes} writes")
        if self.reject_when:
            message = self.reject_when(target, record)
            if message:
                raise DatastoreRowError(message)

    def seed(self, target: str, record: Dict[str, Any]) -> str:
        """Add a record directly, bypassing failure injection."""
        with self._lock:
            record_id = str(next(self._ids))
            self._tables.setdefault(target, {})[record_id] = StoredRecord(record_id, deepcopy(record))
            return record_id

    def records(self, target: str) -> List[Dict[str, Any]]:
        """Snapshot of a table, ids included."""
        with self._lock:
            return [deepcopy(r.to_dict()) for r in self._tables.get(target, {}).values()]

    def count(self, target: str) -> int:
        with self._lock:
            return len(self._tables.get(target, {}))

    def find_by_key(
        self,
        target: str,
        key: DedupKey,
        scope: Optional[Dict[str, Any]] = None
    ) -> Optional[StoredRecord]:
        with self._lock:
            self._ensure_available()
            for stored in self._tables.get(target, {}).values():
                if scope and any(stored.data.get(k) != v for k, v in scope.items()):
                    continue
                if key.matches(stored.data):
                    return StoredRecord(stored.id, deepcopy(stored.data))
            return None

    def insert(self, target: str, record: Dict[str, Any], acting_user_id: str) -> str:
        with self._lock:
            self._before_write(target, record)
            record_id = str(next(self._ids))
            data = deepcopy(record)
            data["created_by"] = acting_user_id
            data["created_at"] = datetime.utcnow().isoformat()
            self._tables.setdefault(target, {})[record_id] = StoredRecord(record_id, data)
            self.writes += 1
            logger.debug(f"Inserted {target} {record_id}")
            return record_id

    def update(self, target: str, record_id: str, record: Dict[str, Any], acting_user_id: str) -> None:
        with self._lock:
            self._before_write(target, record)
            stored = self._tables.get(target, {}).get(record_id)
            if stored is None:
                raise DatastoreRowError(f"No {target} record with id {record_id}")
            stored.data.update(deepcopy(record))
            stored.data["updated_by"] = acting_user_id
            stored.data["updated_at"] = datetime.utcnow().isoformat()
            self.writes += 1
            logger.debug(f"Updated {target} {record_id}")

    def log_activity(self, user_id: str, action: str, details: Dict[str, Any]) -> None:
        with self._lock:
            if self.fail_activity_log:
                raise DatastoreRowError("Activity log is not writable")
            self.activities.append({
                "user_id": user_id,
                "action": action,
                "details": deepcopy(details),
                "created_at": datetime.utcnow().isoformat(),
            })

    def check_connection(self) -> bool:
        return self.available
