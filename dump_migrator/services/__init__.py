"""Service layer for the migration engine."""

from .schema_catalog import SchemaCatalog, default_catalog
from .validator import RecordValidator, validate, validate_rows
from .preview import PreviewBuilder, suggest_mapping, suggest_alternatives

__all__ = [
    "SchemaCatalog",
    "default_catalog",
    "RecordValidator",
    "validate",
    "validate_rows",
    "PreviewBuilder",
    "suggest_mapping",
    "suggest_alternatives",
]
