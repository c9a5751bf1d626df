"""Datastore interface the migration engine writes through."""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from contextlib import contextmanager
from typing import Any, ContextManager, Dict, FrozenSet, Iterator, Optional, Tuple
import logging
import threading

from ..models.record import FieldValue

logger = logging.getLogger(__name__)

# Separates key parts when a composite key is rendered as one token
KEY_SEPARATOR = "\x1f"


@dataclass(frozen=True)
class DedupKey:
    """
    Natural key of a candidate record.

    ``values`` holds (field, text) pairs in dedup-key order. Fields listed
    in ``case_insensitive`` compare upper-cased.
    """
    target: str
    values: Tuple[Tuple[str, str], ...]
    case_insensitive: FrozenSet[str] = frozenset()

    @property
    def fields(self) -> Tuple[str, ...]:
        return tuple(name for name, _ in self.values)

    def normalized(self, name: str, text: str) -> str:
        """Normalise one key part for comparison."""
        return text.upper() if name in self.case_insensitive else text

    @property
    def token(self) -> str:
        """The key as one hashable string, used for locking."""
        parts = [self.normalized(name, text) for name, text in self.values]
        return f"{self.target}:{KEY_SEPARATOR.join(parts)}"

    def matches(self, data: Dict[str, Any]) -> bool:
        """Check whether a stored record carries this key."""
        for name, text in self.values:
            stored = data.get(name)
            if stored is None:
                return False
            stored_text = FieldValue.of(stored).as_text()
            if self.normalized(name, stored_text) != self.normalized(name, text):
                return False
        return True

    def to_dict(self) -> Dict[str, str]:
        return dict(self.values)


@dataclass
class StoredRecord:
    """A record as held by the datastore."""
    id: str
    data: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.id, **self.data}


class _LockEntry:
    """A lock and the number of writers waiting on or holding it."""

    def __init__(self):
        self.lock = threading.Lock()
        self.users = 0


class KeyLocks:
    """
    One lock per dedup key, kept only while some writer needs it.

    Writers holding the lock for a key see each other's inserts, so two
    runs sharing a datastore handle cannot both insert the same key.
    """

    def __init__(self):
        self._guard = threading.Lock()
        self._entries: Dict[str, _LockEntry] = {}

    @contextmanager
    def hold(self, token: str) -> Iterator[None]:
        """Hold the lock for a key. The entry is dropped when its last user leaves."""
        with self._guard:
            entry = self._entries.get(token)
            if entry is None:
                entry = _LockEntry()
                self._entries[token] = entry
            entry.users += 1
        try:
            with entry.lock:
                yield
        finally:
            with self._guard:
                entry.users -= 1
                if entry.users == 0:
                    del self._entries[token]

    def __len__(self) -> int:
        with self._guard:
            return len(self._entries)


class Datastore(ABC):
    """
    Base class for migration datastores.

    Implementations raise DatastoreRowError when a single record is
    rejected and DatastoreConnectionError when the store cannot be reached.
    """

    def __init__(self):
        self.key_locks = KeyLocks()

    def hold_key(self, key: DedupKey) -> ContextManager[None]:
        """Serialise writes for a dedup key while the context is open."""
        return self.key_locks.hold(key.token)

    @abstractmethod
    def find_by_key(
        self,
        target: str,
        key: DedupKey,
        scope: Optional[Dict[str, Any]] = None
    ) -> Optional[StoredRecord]:
        """
        Find an existing record by its natural key.

        Args:
            target: Target table
            key: Dedup key of the candidate
            scope: Optional column filters limiting the search, e.g. {"hospital_id": "h1"}

        Returns:
            The stored record, or None
        """
        pass

    @abstractmethod
    def insert(self, target: str, record: Dict[str, Any], acting_user_id: str) -> str:
        """Insert a record and return its id."""
        pass

    @abstractmethod
    def update(self, target: str, record_id: str, record: Dict[str, Any], acting_user_id: str) -> None:
        """Replace the mapped fields of an existing record."""
        pass

    def log_activity(self, user_id: str, action: str, details: Dict[str, Any]) -> None:
        """Write an audit entry. The default only logs it."""
        logger.info(f"Activity {action} by {user_id}: {details}")

    def check_connection(self) -> bool:
        """Validate the connection to the datastore."""
        return True
