"""Error taxonomy for the migration engine.

Row-scoped errors (parse, validation, single-record datastore failures) are
recovered inside a run and reported in the MigrationResult. Call-scoped
errors (unknown target, invalid mapping, lost datastore connection) are
raised to the caller, who converts them to a structured payload.
"""

from typing import Any, Dict, Optional


class MigrationError(Exception):
    """Base class for all engine errors. Carries a kind and a message."""

    kind = "migration_error"

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        """Convert to the structured error payload."""
        result: Dict[str, Any] = {"kind": self.kind, "message": self.message}
        if self.details:
            result["details"] = self.details
        return result


class ParseError(MigrationError):
    """A dump tuple or statement could not be turned into a row."""

    kind = "parse_error"


class UnknownTargetError(MigrationError):
    """The requested target is not in the catalog."""

    kind = "unknown_target"

    def __init__(self, target: str):
        super().__init__(f"Unknown migration target: {target!r}", {"target": target})
        self.target = target


class InvalidMappingError(MigrationError):
    """The field mapping does not fit the target schema."""

    kind = "invalid_mapping"


class ValidationError(MigrationError):
    """A candidate record failed one or more field rules."""

    kind = "validation_error"


class DatastoreRowError(MigrationError):
    """The datastore rejected a single record (constraint violation etc.)."""

    kind = "datastore_row_error"


class DatastoreConnectionError(MigrationError):
    """The datastore could not be reached. Aborts the whole run."""

    kind = "datastore_connection_error"


class ConfigError(MigrationError):
    """A configuration value could not be used."""

    kind = "config_error"
