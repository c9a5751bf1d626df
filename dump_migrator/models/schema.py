"""Schema models for migration targets and field mappings."""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple
from enum import Enum
import json


class FieldType(str, Enum):
    """Supported target field types."""
    STRING = "string"
    NUMBER = "number"
    DATE = "date"
    EMAIL = "email"
    ENUM = "enum"


@dataclass(frozen=True)
class FieldRule:
    """Validation rule for one field of a target table."""
    name: str
    type: FieldType = FieldType.STRING
    required: bool = False
    max_length: Optional[int] = None
    enum_values: Optional[Tuple[str, ...]] = None
    pattern: Optional[str] = None  # Full-match regex, checked after max_length
    case_sensitive: bool = True  # Only affects dedup key comparison
    description: str = ""

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        result: Dict[str, Any] = {
            "name": self.name,
            "type": self.type.value,
            "required": self.required,
        }
        if self.max_length:
            result["max_length"] = self.max_length
        if self.enum_values:
            result["enum"] = list(self.enum_values)
        if self.pattern:
            result["pattern"] = self.pattern
        if not self.case_sensitive:
            result["case_sensitive"] = False
        if self.description:
            result["description"] = self.description
        return result


@dataclass(frozen=True)
class TargetSchema:
    """A migration target: its ordered rule set and natural key."""
    name: str
    fields: Tuple[FieldRule, ...]
    dedup_key: Tuple[str, ...]
    description: str = ""
    scope_field: Optional[str] = None  # Organisational unit column, e.g. hospital_id
    metadata_field: Optional[str] = None  # Catch-all JSON column for unmapped columns

    @property
    def field_names(self) -> List[str]:
        """Target field names in rule order."""
        return [rule.name for rule in self.fields]

    @property
    def required_fields(self) -> List[str]:
        """Names of required fields in rule order."""
        return [rule.name for rule in self.fields if rule.required]

    def get_rule(self, name: str) -> Optional[FieldRule]:
        """Get a field rule by name."""
        for rule in self.fields:
            if rule.name == name:
                return rule
        return None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "name": self.name,
            "description": self.description,
            "fields": [rule.to_dict() for rule in self.fields],
            "dedup_key": list(self.dedup_key),
            "scope_field": self.scope_field,
            "metadata_field": self.metadata_field,
        }


@dataclass
class FieldMapping:
    """Operator-confirmed mapping of target field -> source column."""
    fields: Dict[str, str] = field(default_factory=dict)

    def source_for(self, target_field: str) -> Optional[str]:
        """Get the source column mapped onto a target field."""
        return self.fields.get(target_field)

    @property
    def target_fields(self) -> List[str]:
        """Mapped target field names."""
        return list(self.fields.keys())

    @property
    def source_columns(self) -> List[str]:
        """Source columns referenced by the mapping."""
        return list(self.fields.values())

    def unmapped(self, schema: TargetSchema) -> List[str]:
        """Target fields of the schema with no source column."""
        return [name for name in schema.field_names if name not in self.fields]

    def to_dict(self) -> Dict[str, str]:
        """Convert to dictionary representation."""
        return dict(self.fields)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "FieldMapping":
        """Create from dictionary representation. Empty source columns are dropped."""
        fields = {}
        for target_field, source_column in data.items():
            if source_column is None or str(source_column).strip() == "":
                continue
            fields[str(target_field)] = str(source_column)
        return cls(fields=fields)

    @classmethod
    def from_json_file(cls, file_path: str) -> "FieldMapping":
        """Load a mapping from a JSON file.

        Accepts either a bare ``{target_field: source_column}`` object, an
        object with a ``mapping`` key, or a saved preview (its
        ``suggested_mapping`` is used).
        """
        with open(file_path, 'r', encoding="utf-8") as f:
            data = json.load(f)
        if "suggested_mapping" in data:
            data = data["suggested_mapping"]
        elif "mapping" in data and isinstance(data["mapping"], dict):
            data = data["mapping"]
        return cls.from_dict(data)

    def save_to_json(self, file_path: str) -> None:
        """Save mapping to JSON file."""
        with open(file_path, 'w', encoding="utf-8") as f:
            json.dump(self.to_dict(), f, indent=2)
