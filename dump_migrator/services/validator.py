"""Validation service for candidate records."""

import math
import re
import logging
from concurrent.futures import ThreadPoolExecutor
from datetime import date
from typing import Any, List, Optional, Sequence

from dateutil import parser as date_parser

from ..models.schema import (
    FieldType,
    FieldRule,
)
from ..models.record import (
    CandidateRecord,
    FieldError,
    FieldValue,
    ValueKind,
)
from .schema_catalog import SchemaCatalog, default_catalog

logger = logging.getLogger(__name__)

EMAIL_PATTERN = re.compile(r"^[A-Za-z0-9._%+-]+@[A-Za-z0-9-]+(\.[A-Za-z0-9-]+)*\.[A-Za-z]{2,}$")


class RecordValidator:
    """
    Validator for candidate records before they are written.

    Supports:
    - Required field validation (short-circuits further checks)
    - Type validation
    - Max length, pattern and enum validation
    - Number, calendar date and email shape checks
    """

    def __init__(self, catalog: Optional[SchemaCatalog] = None):
        """Initialize the validator."""
        self.catalog = catalog or default_catalog

    def validate(self, record: CandidateRecord, target: str) -> List[FieldError]:
        """
        Validate a candidate record against a target's rule set.

        Args:
            record: Candidate record keyed by target field name
            target: Target name

        Returns:
            List of field errors, in rule order (empty means valid)
        """
        errors: List[FieldError] = []
        for rule in self.catalog.rules_for(target):
            value = record.get(rule.name)
            if value is not None and not isinstance(value, FieldValue):
                value = FieldValue.of(value)
            errors.extend(self._validate_field(rule, value))
        return errors

    def validate_rows(
        self,
        records: Sequence[CandidateRecord],
        target: str,
        workers: int = 1
    ) -> List[List[FieldError]]:
        """
        Validate many records, optionally on a thread pool.

        Records share no state, so order of evaluation does not matter;
        results are returned in input order.
        """
        # Fail fast on unknown targets before any thread is started
        self.catalog.get_schema(target)

        if workers <= 1 or len(records) < 2:
            return [self.validate(record, target) for record in records]

        with ThreadPoolExecutor(max_workers=workers) as pool:
            return list(pool.map(lambda r: self.validate(r, target), records))

    def is_valid(self, record: CandidateRecord, target: str) -> bool:
        """Quick check if a record is valid."""
        return not self.validate(record, target)

    def _validate_field(self, rule: FieldRule, value: Optional[FieldValue]) -> List[FieldError]:
        """Validate a single field."""
        if value is None or value.is_empty:
            if rule.required:
                return [FieldError(
                    field=rule.name,
                    message=f"{rule.name} is required",
                    error_type="required",
                )]
            return []

        if rule.type == FieldType.STRING:
            return self._validate_string(rule, value)
        if rule.type == FieldType.ENUM:
            return self._validate_enum(rule, value)
        if rule.type == FieldType.NUMBER:
            return self._validate_number(rule, value)
        if rule.type == FieldType.DATE:
            return self._validate_date(rule, value)
        if rule.type == FieldType.EMAIL:
            return self._validate_email(rule, value)

        raise ValueError(f"Unsupported field type: {rule.type}")

    def _type_error(self, rule: FieldRule, value: FieldValue, expected: str) -> FieldError:
        return FieldError(
            field=rule.name,
            message=f"{rule.name} must be {expected}, got {value.kind.value}",
            error_type="type",
            value=value.to_python(),
        )

    def _validate_string(self, rule: FieldRule, value: FieldValue) -> List[FieldError]:
        if value.kind != ValueKind.STRING:
            return [self._type_error(rule, value, "a string")]

        errors = []
        text = value.value

        if rule.max_length and len(text) > rule.max_length:
            errors.append(FieldError(
                field=rule.name,
                message=f"{rule.name} must be at most {rule.max_length} characters",
                error_type="max_length",
                value=len(text),
            ))

        if rule.pattern and not re.fullmatch(rule.pattern, text):
            errors.append(FieldError(
                field=rule.name,
                message=f"{rule.name} has an invalid format",
                error_type="pattern",
                value=text,
            ))

        if rule.enum_values and text not in rule.enum_values:
            errors.append(self._enum_error(rule, text))

        return errors

    def _validate_enum(self, rule: FieldRule, value: FieldValue) -> List[FieldError]:
        if value.kind != ValueKind.STRING:
            return [self._type_error(rule, value, "a string")]
        if rule.enum_values and value.value not in rule.enum_values:
            return [self._enum_error(rule, value.value)]
        return []

    def _enum_error(self, rule: FieldRule, text: str) -> FieldError:
        return FieldError(
            field=rule.name,
            message=f"{rule.name} must be one of: {', '.join(rule.enum_values or ())}",
            error_type="enum",
            value=text,
        )

    def _validate_number(self, rule: FieldRule, value: FieldValue) -> List[FieldError]:
        if coerce_number(value) is None:
            return [FieldError(
                field=rule.name,
                message=f"{rule.name} must be a number",
                error_type="number",
                value=value.to_python(),
            )]
        return []

    def _validate_date(self, rule: FieldRule, value: FieldValue) -> List[FieldError]:
        if coerce_date(value) is None:
            return [FieldError(
                field=rule.name,
                message=f"{rule.name} must be a valid date",
                error_type="date",
                value=value.to_python(),
            )]
        return []

    def _validate_email(self, rule: FieldRule, value: FieldValue) -> List[FieldError]:
        if value.kind != ValueKind.STRING or not EMAIL_PATTERN.match(value.value.strip()):
            return [FieldError(
                field=rule.name,
                message=f"{rule.name} must be a valid email address",
                error_type="email",
                value=value.to_python(),
            )]
        return []


def coerce_number(value: FieldValue) -> Optional[Any]:
    """Return the numeric value, or None when it is not a finite number."""
    if value.kind == ValueKind.NUMBER:
        number = value.value
    elif value.kind == ValueKind.STRING:
        text = value.value.strip()
        try:
            number = int(text)
        except ValueError:
            try:
                number = float(text)
            except ValueError:
                return None
    else:
        return None

    if isinstance(number, float) and not math.isfinite(number):
        return None
    return number


def coerce_date(value: FieldValue) -> Optional[date]:
    """Return the calendar date, or None when the value is not a date."""
    if value.kind == ValueKind.DATE:
        return value.value if type(value.value) is date else value.value.date()
    if value.kind != ValueKind.STRING:
        return None

    text = value.value.strip()
    try:
        return date.fromisoformat(text)
    except ValueError:
        return _parse_loose_date(text)


def _parse_loose_date(text: str) -> Optional[date]:
    # Bare digit runs (ids, counters) are not dates even if dateutil accepts them
    if text.isdigit():
        return None
    try:
        return date_parser.parse(text).date()
    except (ValueError, OverflowError):
        return None


_default_validator = RecordValidator()


def validate(record: CandidateRecord, target: str) -> List[FieldError]:
    """Validate a candidate record with the default catalog."""
    return _default_validator.validate(record, target)


def validate_rows(
    records: Sequence[CandidateRecord],
    target: str,
    workers: int = 1
) -> List[List[FieldError]]:
    """Validate many candidate records with the default catalog."""
    return _default_validator.validate_rows(records, target, workers=workers)
