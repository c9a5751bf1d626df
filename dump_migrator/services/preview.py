"""Preview builder: sample a dump and suggest a column mapping."""

import logging
import re
from difflib import SequenceMatcher
from typing import Dict, List, Optional, Sequence

from ..errors import ParseError
from ..extractors.base import ParsedDump
from ..extractors.sql_dump import parse_dump
from ..models.migration import MigrationConfig
from ..models.preview import PreviewData
from ..models.schema import FieldMapping, TargetSchema
from .schema_catalog import SchemaCatalog, default_catalog

logger = logging.getLogger(__name__)

# Legacy column names known to feed a target field
SYNONYMS: Dict[str, Sequence[str]] = {
    "first_name": ("fname", "firstname", "given_name", "name", "nombre"),
    "last_name": ("lname", "lastname", "surname", "surname1", "family_name"),
    "middle_name": ("mname", "middlename", "surname2", "second_surname"),
    "identification_card_number": ("icn", "nif", "dni", "id_card", "national_id"),
    "date_of_birth": ("dob", "birth_date", "birthdate", "born"),
    "gender": ("sex",),
    "phone": ("phone_contact", "telephone", "tel", "phone_number", "mobile"),
    "email": ("mail", "email_address", "e_mail"),
    "ethnicity": ("race",),
    "place_of_birth": ("birth_place", "birthplace"),
    "date_of_death": ("decease_date", "death_date", "dod"),
    "health_card_number": ("nts", "health_card"),
    "social_security_number": ("nss", "ssn"),
    "insurance_provider": ("insurance_company", "insurer"),
    "medical_history": ("birth_growth",),
    "lifestyle": ("habits",),
    "allergies": ("medicinal_intolerance",),
    "mental_health_history": ("mental_illness",),
    "family_medical_history": ("family_illness",),
    "test_number": ("test_no", "test_num", "id_test", "test_code"),
    "patient_id": ("id_patient", "patient"),
    "diagnosis_id": ("id_problem", "problem_id"),
    "result_type": ("document_type", "test_type"),
    "test_date": ("date_test", "performed_at"),
    "file_path": ("path_filename", "filename"),
}

ALTERNATIVE_THRESHOLD = 0.5
MAX_ALTERNATIVES = 3


def normalize_name(name: str) -> str:
    """Lowercase and drop separators, so first_name == FirstName == first-name."""
    return re.sub(r"[_\-\s]", "", name).lower()


def suggest_mapping(columns: Sequence[str], schema: TargetSchema) -> FieldMapping:
    """
    Suggest a source column for each target field.

    Tries, in order: an exact case-insensitive match, a known synonym, and
    a match ignoring separators. Each source column is used at most once.

    Args:
        columns: Source columns in first-seen order
        schema: Target schema

    Returns:
        Suggested mapping (fields without a match are left out)
    """
    used = set()
    fields: Dict[str, str] = {}

    strategies = (
        lambda name, column: column.lower() == name.lower(),
        lambda name, column: column.lower() in SYNONYMS.get(name, ()),
        lambda name, column: normalize_name(column) == normalize_name(name),
    )

    # Strategy by strategy, so an exact match elsewhere wins over a synonym
    for matches in strategies:
        for name in schema.field_names:
            if name in fields:
                continue
            for column in columns:
                if column not in used and matches(name, column):
                    fields[name] = column
                    used.add(column)
                    break

    ordered = {name: fields[name] for name in schema.field_names if name in fields}
    return FieldMapping(fields=ordered)


def suggest_alternatives(
    columns: Sequence[str],
    schema: TargetSchema,
    mapping: Optional[FieldMapping] = None
) -> Dict[str, List[str]]:
    """
    Rank near-miss source columns for target fields left unmapped.

    These are shown to the operator only; they are never applied.
    """
    mapping = mapping or FieldMapping()
    used = set(mapping.source_columns)
    free = [column for column in columns if column not in used]
    alternatives: Dict[str, List[str]] = {}

    for name in mapping.unmapped(schema):
        target_norm = normalize_name(name)
        scored = []
        for column in free:
            score = SequenceMatcher(None, normalize_name(column), target_norm).ratio()
            if score >= ALTERNATIVE_THRESHOLD:
                scored.append((score, column))
        if scored:
            scored.sort(key=lambda item: -item[0])
            alternatives[name] = [column for _, column in scored[:MAX_ALTERNATIVES]]

    return alternatives


class PreviewBuilder:
    """
    Build a sampled, tentatively mapped view of a dump.

    The builder only reads: it never talks to a datastore, so previews can
    be taken as often as the operator likes.
    """

    def __init__(
        self,
        catalog: Optional[SchemaCatalog] = None,
        config: Optional[MigrationConfig] = None
    ):
        self.catalog = catalog or default_catalog
        self.config = config or MigrationConfig()

    def preview(
        self,
        dump_text: str,
        target: str,
        source_table: Optional[str] = None
    ) -> PreviewData:
        """
        Preview a dump against a target.

        Args:
            dump_text: Raw SQL dump
            target: Target name
            source_table: Only consider rows of this table

        Returns:
            PreviewData with counts over the whole dump and a bounded sample

        Raises:
            UnknownTargetError: if the target is not in the catalog
            ParseError: if the dump holds no usable INSERT rows
        """
        schema = self.catalog.get_schema(target)
        parsed = parse_dump(dump_text, source_name=source_table or "dump")
        return self.build(parsed, schema, source_table)

    def build(
        self,
        parsed: ParsedDump,
        schema: TargetSchema,
        source_table: Optional[str] = None
    ) -> PreviewData:
        """Build a preview from an already parsed dump."""
        if not parsed.tables:
            raise ParseError(
                "No INSERT statements with a column list were found in the dump",
                {"issues": [issue.to_dict() for issue in parsed.issues[:20]]},
            )
        if source_table is not None and source_table not in parsed.tables:
            raise ParseError(
                f"Table {source_table!r} not found in the dump",
                {"tables": list(parsed.tables)},
            )

        tables = [source_table] if source_table else list(parsed.tables)
        columns: List[str] = []
        for table in tables:
            for column in parsed.columns_by_table.get(table, []):
                if column not in columns:
                    columns.append(column)

        rows = parsed.rows_for(source_table)
        issues = [
            issue for issue in parsed.issues
            if source_table is None or issue.table in (None, source_table)
        ]

        mapping = suggest_mapping(columns, schema)
        unmapped = mapping.unmapped(schema)
        sample_size = self.config.sample_size

        preview = PreviewData(
            source=tables[0],
            target=schema.name,
            tables=list(parsed.tables),
            columns=columns,
            sample=[dict(row.values) for row in rows[:sample_size]],
            sample_size=sample_size,
            total_rows=len(rows),
            malformed_rows=sum(1 for issue in issues if issue.position is not None),
            parse_errors=issues,
            suggested_mapping=mapping,
            unmapped_fields=unmapped,
            missing_required=[name for name in schema.required_fields if name in unmapped],
            alternatives=suggest_alternatives(columns, schema, mapping),
        )

        logger.info(
            f"Preview of {preview.source} -> {schema.name}: {preview.total_rows} rows, "
            f"{preview.malformed_rows} malformed, {len(mapping.fields)} fields mapped"
        )
        if preview.missing_required:
            logger.warning(f"Required fields without a suggestion: {', '.join(preview.missing_required)}")

        return preview
