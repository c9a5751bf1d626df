"""Preview model handed to the operator before a migration is confirmed."""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional
import json

from .record import ParseIssue
from .schema import FieldMapping


@dataclass
class PreviewData:
    """
    Sampled, tentatively mapped view of a dump.

    Transient: it is returned to the caller for client-side caching between
    the preview and confirm steps, so it must survive a JSON round trip.
    """
    source: str
    target: str
    columns: List[str] = field(default_factory=list)
    sample: List[Dict[str, Any]] = field(default_factory=list)
    total_rows: int = 0
    suggested_mapping: FieldMapping = field(default_factory=FieldMapping)
    tables: List[str] = field(default_factory=list)
    malformed_rows: int = 0
    parse_errors: List[ParseIssue] = field(default_factory=list)
    unmapped_fields: List[str] = field(default_factory=list)
    missing_required: List[str] = field(default_factory=list)
    alternatives: Dict[str, List[str]] = field(default_factory=dict)
    sample_size: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "source": self.source,
            "target": self.target,
            "tables": list(self.tables),
            "columns": list(self.columns),
            "sample": [dict(row) for row in self.sample],
            "sample_size": self.sample_size,
            "total_rows": self.total_rows,
            "malformed_rows": self.malformed_rows,
            "parse_errors": [issue.to_dict() for issue in self.parse_errors],
            "suggested_mapping": self.suggested_mapping.to_dict(),
            "unmapped_fields": list(self.unmapped_fields),
            "missing_required": list(self.missing_required),
            "alternatives": {k: list(v) for k, v in self.alternatives.items()},
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PreviewData":
        """Create from dictionary representation."""
        return cls(
            source=data.get("source", ""),
            target=data.get("target", ""),
            tables=list(data.get("tables", [])),
            columns=list(data.get("columns", [])),
            sample=[dict(row) for row in data.get("sample", [])],
            sample_size=data.get("sample_size"),
            total_rows=data.get("total_rows", 0),
            malformed_rows=data.get("malformed_rows", 0),
            parse_errors=[ParseIssue.from_dict(i) for i in data.get("parse_errors", [])],
            suggested_mapping=FieldMapping.from_dict(data.get("suggested_mapping", {})),
            unmapped_fields=list(data.get("unmapped_fields", [])),
            missing_required=list(data.get("missing_required", [])),
            alternatives={k: list(v) for k, v in data.get("alternatives", {}).items()},
        )

    def to_json(self) -> str:
        """Serialize for a client-held cache."""
        return json.dumps(self.to_dict())

    @classmethod
    def from_json(cls, payload: str) -> "PreviewData":
        """Restore from a client-held cache."""
        return cls.from_dict(json.loads(payload))
