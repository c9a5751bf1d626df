"""Record models for migration data."""

from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from types import MappingProxyType
from typing import Any, Dict, Mapping, Optional, Tuple


class ValueKind(str, Enum):
    """Kinds a mapped field value can take."""
    STRING = "string"
    NUMBER = "number"
    DATE = "date"
    BOOLEAN = "boolean"
    NULL = "null"


@dataclass(frozen=True)
class FieldValue:
    """A tagged value in a candidate record."""
    kind: ValueKind
    value: Any = None

    @classmethod
    def of(cls, raw: Any) -> "FieldValue":
        """Classify a raw Python value."""
        if raw is None:
            return cls(ValueKind.NULL)
        if isinstance(raw, FieldValue):
            return raw
        # bool is a subclass of int
        if isinstance(raw, bool):
            return cls(ValueKind.BOOLEAN, raw)
        if isinstance(raw, (int, float, Decimal)):
            return cls(ValueKind.NUMBER, raw)
        if isinstance(raw, (date, datetime)):
            return cls(ValueKind.DATE, raw)
        if isinstance(raw, str):
            return cls(ValueKind.STRING, raw)
        return cls(ValueKind.STRING, str(raw))

    @property
    def is_empty(self) -> bool:
        """True for null and blank strings."""
        if self.kind == ValueKind.NULL:
            return True
        return self.kind == ValueKind.STRING and self.value.strip() == ""

    def as_text(self) -> str:
        """Render the value as text, e.g. for key comparison."""
        if self.kind == ValueKind.NULL:
            return ""
        if self.kind == ValueKind.BOOLEAN:
            return "true" if self.value else "false"
        if self.kind == ValueKind.DATE:
            return self.value.isoformat()
        if self.kind == ValueKind.NUMBER and isinstance(self.value, float) and self.value.is_integer():
            return str(int(self.value))
        return str(self.value)

    def to_python(self) -> Any:
        """Unwrap to a plain Python value."""
        return self.value


CandidateRecord = Dict[str, FieldValue]


@dataclass(frozen=True)
class SourceRow:
    """One tuple of a legacy INSERT statement, paired with its columns."""
    table: str
    position: int  # 1-based ordinal over all tuples in the dump
    line: int  # 1-based line where the tuple starts
    values: Mapping[str, Any]

    def __post_init__(self):
        object.__setattr__(self, "values", MappingProxyType(dict(self.values)))

    def get(self, column: str, default: Any = None) -> Any:
        """Get a raw literal by column name."""
        return self.values.get(column, default)


@dataclass(frozen=True)
class ParseIssue:
    """A malformed tuple or unusable statement found while parsing."""
    message: str
    line: int
    position: Optional[int] = None  # None for statement-level issues
    table: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "message": self.message,
            "line": self.line,
            "position": self.position,
            "table": self.table,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ParseIssue":
        """Create from dictionary representation."""
        return cls(
            message=data.get("message", ""),
            line=data.get("line", 0),
            position=data.get("position"),
            table=data.get("table"),
        )


@dataclass(frozen=True)
class FieldError:
    """A validation error on one field of a candidate record."""
    field: str
    message: str
    error_type: str = "validation"
    value: Optional[Any] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "field": self.field,
            "message": self.message,
            "error_type": self.error_type,
            "value": self.value,
        }


@dataclass(frozen=True)
class RowError:
    """All field errors that caused one row to be skipped."""
    position: int
    line: int
    errors: Tuple[FieldError, ...]

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "position": self.position,
            "line": self.line,
            "errors": [e.to_dict() for e in self.errors],
        }


class RowAction(str, Enum):
    """What happened to a row during execution."""
    INSERTED = "inserted"
    UPDATED = "updated"
    SKIPPED = "skipped"
    ABORTED = "aborted"


@dataclass(frozen=True)
class RowOutcome:
    """Outcome of processing one source row."""
    position: int
    line: int
    action: RowAction
    errors: Tuple[FieldError, ...] = ()
    record_id: Optional[str] = None
    error: Optional[Dict[str, Any]] = None  # Call-level error, only for ABORTED


@dataclass(frozen=True)
class MigrationResult:
    """Summary of one execution. Created once, never mutated."""
    success: bool
    records_inserted: int = 0
    records_updated: int = 0
    records_skipped: int = 0
    row_errors: Tuple[RowError, ...] = ()
    parse_errors: Tuple[ParseIssue, ...] = ()
    completed: bool = True
    error: Optional[Dict[str, Any]] = None
    target: str = ""
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    @property
    def records_processed(self) -> int:
        """Rows considered for execution."""
        return self.records_inserted + self.records_updated + self.records_skipped

    @property
    def duration_seconds(self) -> Optional[float]:
        """Get duration in seconds."""
        if self.started_at and self.completed_at:
            return (self.completed_at - self.started_at).total_seconds()
        return None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "success": self.success,
            "target": self.target,
            "recordsProcessed": self.records_processed,
            "recordsInserted": self.records_inserted,
            "recordsUpdated": self.records_updated,
            "recordsSkipped": self.records_skipped,
            "perRowErrors": [e.to_dict() for e in self.row_errors],
            "parseErrors": [e.to_dict() for e in self.parse_errors],
            "completed": self.completed,
            "error": self.error,
            "startedAt": self.started_at.isoformat() if self.started_at else None,
            "completedAt": self.completed_at.isoformat() if self.completed_at else None,
        }
