"""Data models for the migration engine."""

from .schema import (
    FieldType,
    FieldRule,
    TargetSchema,
    FieldMapping,
)
from .migration import MigrationConfig
from .preview import PreviewData
from .record import (
    ValueKind,
    FieldValue,
    CandidateRecord,
    SourceRow,
    ParseIssue,
    FieldError,
    RowError,
    RowAction,
    RowOutcome,
    MigrationResult,
)

__all__ = [
    "FieldType",
    "FieldRule",
    "TargetSchema",
    "FieldMapping",
    "MigrationConfig",
    "PreviewData",
    "ValueKind",
    "FieldValue",
    "CandidateRecord",
    "SourceRow",
    "ParseIssue",
    "FieldError",
    "RowError",
    "RowAction",
    "RowOutcome",
    "MigrationResult",
]
