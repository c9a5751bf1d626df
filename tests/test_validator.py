"""Tests for the field validator."""

import pytest

from dump_migrator.errors import UnknownTargetError
from dump_migrator.models.record import FieldValue
from dump_migrator.services.validator import RecordValidator, validate, validate_rows


def patient(**overrides):
    values = {
        "first_name": "Ann",
        "last_name": "Lee",
        "identification_card_number": "1234567890123456",
    }
    values.update(overrides)
    return {name: FieldValue.of(value) for name, value in values.items()}


def lab_result(**overrides):
    values = {"test_number": "LAB-1", "patient_id": 7, "result_type": "blood"}
    values.update(overrides)
    return {name: FieldValue.of(value) for name, value in values.items()}


def error_types(errors):
    return [(e.field, e.error_type) for e in errors]


class TestRequired:

    def test_valid_record_has_no_errors(self):
        assert validate(patient(), "patients") == []

    def test_blank_required_field_gets_one_error(self):
        errors = validate(patient(identification_card_number="   "), "patients")

        assert error_types(errors) == [("identification_card_number", "required")]

    def test_absent_and_null_required_fields(self):
        record = patient(first_name=None)
        del record["last_name"]

        errors = validate(record, "patients")

        assert error_types(errors) == [("first_name", "required"), ("last_name", "required")]

    def test_empty_optional_fields_are_skipped(self):
        assert validate(patient(email="", date_of_birth=None), "patients") == []


class TestStringRules:

    def test_pattern_failure(self):
        errors = validate(patient(identification_card_number="bad-icn"), "patients")

        assert error_types(errors) == [("identification_card_number", "pattern")]

    def test_max_length_checked_before_pattern(self):
        errors = validate(patient(identification_card_number="12345678901234567"), "patients")

        assert error_types(errors) == [
            ("identification_card_number", "max_length"),
            ("identification_card_number", "pattern"),
        ]

    def test_number_is_not_a_string(self):
        errors = validate(patient(identification_card_number=1234567890123456), "patients")

        assert error_types(errors) == [("identification_card_number", "type")]

    def test_max_length(self):
        errors = validate(patient(first_name="x" * 51), "patients")

        assert error_types(errors) == [("first_name", "max_length")]


class TestTypedRules:

    def test_enum(self):
        assert validate(patient(gender="F"), "patients") == []
        assert error_types(validate(patient(gender="X"), "patients")) == [("gender", "enum")]

    def test_email(self):
        assert validate(patient(email="ann@example.com"), "patients") == []
        assert error_types(validate(patient(email="ann@"), "patients")) == [("email", "email")]

    @pytest.mark.parametrize("value", ["1990-05-15", "15 May 1990", "1990-05-15T08:30:00"])
    def test_valid_dates(self, value):
        assert validate(patient(date_of_birth=value), "patients") == []

    @pytest.mark.parametrize("value", ["1990-13-45", "not a date", "12345"])
    def test_invalid_dates(self, value):
        errors = validate(patient(date_of_birth=value), "patients")

        assert error_types(errors) == [("date_of_birth", "date")]

    @pytest.mark.parametrize("value", [7, 4.5, "42", " 3.25 "])
    def test_valid_numbers(self, value):
        assert validate(lab_result(patient_id=value), "lab_results") == []

    @pytest.mark.parametrize("value", ["abc", True, "nan", "inf"])
    def test_invalid_numbers(self, value):
        errors = validate(lab_result(patient_id=value), "lab_results")

        assert error_types(errors) == [("patient_id", "number")]

    def test_errors_follow_rule_order(self):
        record = lab_result(test_number=None, patient_id="x", result_type="y" * 101)

        errors = validate(record, "lab_results")

        assert [e.field for e in errors] == ["test_number", "patient_id", "result_type"]


class TestValidator:

    def test_unknown_target(self):
        with pytest.raises(UnknownTargetError):
            validate(patient(), "invoices")

    def test_plain_values_are_accepted(self):
        record = {"first_name": "Ann", "last_name": "Lee", "identification_card_number": "1234567890123456"}

        assert RecordValidator().is_valid(record, "patients")

    def test_validate_rows_keeps_input_order(self):
        records = [
            patient(first_name=None) if i % 3 == 0 else patient()
            for i in range(30)
        ]

        results = validate_rows(records, "patients", workers=4)

        assert len(results) == 30
        assert [bool(errors) for errors in results] == [i % 3 == 0 for i in range(30)]
