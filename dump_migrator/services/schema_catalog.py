"""Catalog of supported migration targets."""

import logging
from typing import Any, Dict, List

from ..errors import UnknownTargetError
from ..models.schema import (
    FieldType,
    FieldRule,
    TargetSchema,
    FieldMapping,
)

logger = logging.getLogger(__name__)

GENDER_VALUES = ("male", "female", "other", "M", "F", "O", "V", "H")
BLOOD_TYPES = ("A+", "A-", "B+", "B-", "AB+", "AB-", "O+", "O-")

PATIENTS = TargetSchema(
    name="patients",
    description="Patient demographics and history",
    fields=(
        FieldRule("first_name", FieldType.STRING, required=True, max_length=50),
        FieldRule("last_name", FieldType.STRING, required=True, max_length=50),
        FieldRule("middle_name", FieldType.STRING, max_length=50),
        FieldRule(
            "identification_card_number",
            FieldType.STRING,
            required=True,
            max_length=16,
            pattern=r"[0-9]{16}",
            description="16-digit national identification card number",
        ),
        FieldRule("date_of_birth", FieldType.DATE),
        FieldRule("gender", FieldType.ENUM, enum_values=GENDER_VALUES),
        FieldRule("email", FieldType.EMAIL),
        FieldRule("phone", FieldType.STRING, max_length=30),
        FieldRule("address", FieldType.STRING, max_length=255),
        FieldRule("place_of_birth", FieldType.STRING, max_length=100),
        FieldRule("date_of_death", FieldType.DATE),
        FieldRule("health_card_number", FieldType.STRING, max_length=30),
        FieldRule("social_security_number", FieldType.STRING, max_length=30),
        FieldRule("insurance_provider", FieldType.STRING, max_length=100),
        FieldRule("blood_type", FieldType.ENUM, enum_values=BLOOD_TYPES),
        FieldRule("ethnicity", FieldType.STRING, max_length=50),
        FieldRule("allergies", FieldType.STRING),
        FieldRule("medical_history", FieldType.STRING),
        FieldRule("family_medical_history", FieldType.STRING),
        FieldRule("lifestyle", FieldType.STRING),
        FieldRule("mental_health_history", FieldType.STRING),
    ),
    dedup_key=("identification_card_number",),
    scope_field="hospital_id",
    metadata_field="open_metadata",
)

LAB_RESULTS = TargetSchema(
    name="lab_results",
    description="Laboratory test results",
    fields=(
        FieldRule(
            "test_number",
            FieldType.STRING,
            required=True,
            max_length=50,
            case_sensitive=False,
            description="Laboratory test number, compared case-insensitively",
        ),
        FieldRule("patient_id", FieldType.NUMBER, required=True),
        FieldRule("result_type", FieldType.STRING, required=True, max_length=100),
        FieldRule("test_date", FieldType.DATE),
        FieldRule("diagnosis_id", FieldType.NUMBER),
        FieldRule("result_value", FieldType.STRING, max_length=255),
        FieldRule("result_unit", FieldType.STRING, max_length=50),
        FieldRule("reference_range", FieldType.STRING, max_length=100),
        FieldRule("notes", FieldType.STRING),
        FieldRule("file_path", FieldType.STRING, max_length=500),
    ),
    dedup_key=("test_number",),
    scope_field="hospital_id",
    metadata_field="open_metadata",
)

BUILTIN_TARGETS = (PATIENTS, LAB_RESULTS)


class SchemaCatalog:
    """
    Read-only lookup of target schemas.

    The set of targets is fixed when the catalog is built; lookups of
    anything else raise UnknownTargetError.
    """

    def __init__(self, schemas=BUILTIN_TARGETS):
        self._schemas: Dict[str, TargetSchema] = {schema.name: schema for schema in schemas}

    def get_schema(self, target: str) -> TargetSchema:
        """Get a target schema by name."""
        schema = self._schemas.get(target)
        if schema is None:
            raise UnknownTargetError(target)
        return schema

    def rules_for(self, target: str) -> List[FieldRule]:
        """Ordered field rules of a target."""
        return list(self.get_schema(target).fields)

    def dedup_key_for(self, target: str) -> List[str]:
        """Ordered field names forming the target's natural key."""
        return list(self.get_schema(target).dedup_key)

    def list_targets(self) -> List[str]:
        """List all target names."""
        return list(self._schemas.keys())

    def __contains__(self, target: str) -> bool:
        return target in self._schemas

    def validate_mapping(self, target: str, mapping: FieldMapping) -> List[str]:
        """
        Check a mapping against a target schema.

        Returns:
            List of validation error messages (empty when usable)
        """
        schema = self.get_schema(target)
        errors = []

        for target_field in mapping.target_fields:
            if schema.get_rule(target_field) is None:
                errors.append(f"Target field not found in {target}: {target_field}")

        for field_name in schema.required_fields:
            if field_name not in mapping.fields:
                errors.append(f"Required target field has no mapping: {field_name}")

        return errors

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        return {name: schema.to_dict() for name, schema in self._schemas.items()}


default_catalog = SchemaCatalog()
