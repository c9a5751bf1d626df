"""
Tests for the SQL dump parser.

Tests cover:
- Literal decoding (strings, numbers, NULL, booleans, opaque tokens)
- Quoting and escapes
- Statements spanning lines, comments, non-INSERT statements
- Malformed tuples and statements
- Single-pass consumption
"""

import pytest

from dump_migrator.extractors.sql_dump import SQLDumpParser, decode_bare_literal, parse_dump


class TestLiteralDecoding:
    """Bare literal decoding never fails."""

    def test_null_and_booleans(self):
        assert decode_bare_literal("NULL") is None
        assert decode_bare_literal("null") is None
        assert decode_bare_literal("TRUE") is True
        assert decode_bare_literal("false") is False

    def test_numbers(self):
        assert decode_bare_literal("42") == 42
        assert decode_bare_literal("-7") == -7
        assert decode_bare_literal("3.5") == 3.5
        assert decode_bare_literal("1e3") == 1000.0

    def test_opaque_tokens_stay_strings(self):
        assert decode_bare_literal("NOW()") == "NOW()"
        assert decode_bare_literal("0x1F") == "0x1F"

    def test_mixed_tuple(self):
        dump = "INSERT INTO t (a, b, c, d, e, f) VALUES ('x', 42, 3.5, NULL, TRUE, NOW());"
        parsed = parse_dump(dump)

        assert len(parsed.rows) == 1
        assert dict(parsed.rows[0].values) == {
            "a": "x", "b": 42, "c": 3.5, "d": None, "e": True, "f": "NOW()",
        }


class TestQuoting:
    """Quoted strings, escapes and quoted identifiers."""

    def test_backslash_and_doubled_quote_escapes(self):
        dump = r"INSERT INTO t (a, b, c, d) VALUES ('It\'s', 'a''b', 'line\nbreak', " + '"dq");'
        row = parse_dump(dump).rows[0]

        assert row.get("a") == "It's"
        assert row.get("b") == "a'b"
        assert row.get("c") == "line\nbreak"
        assert row.get("d") == "dq"

    def test_separators_inside_strings_are_data(self):
        dump = "INSERT INTO t (a, b, c) VALUES ('a;b', '(x)', 'c,d'); INSERT INTO t (a, b, c) VALUES ('1', '2', '3');"
        parsed = parse_dump(dump)

        assert [row.get("a") for row in parsed.rows] == ["a;b", "1"]
        assert parsed.rows[0].get("b") == "(x)"
        assert parsed.rows[0].get("c") == "c,d"

    def test_quoted_and_qualified_identifiers(self):
        dump = "INSERT INTO `legacy`.`patient_tbl` (`id`, \"first name\") VALUES (1, 'Ann');"
        parsed = parse_dump(dump)

        assert parsed.tables == ["patient_tbl"]
        assert parsed.columns_by_table["patient_tbl"] == ["id", "first name"]
        assert parsed.rows[0].table == "patient_tbl"
        assert parsed.rows[0].get("first name") == "Ann"


class TestStatements:
    """Statement handling across a whole dump."""

    def test_multi_line_statement_and_line_numbers(self):
        dump = "INSERT INTO t (a, b)\nVALUES\n  (1, 'x'),\n  (2, 'y');\n"
        parsed = parse_dump(dump)

        assert [row.line for row in parsed.rows] == [3, 4]
        assert [row.position for row in parsed.rows] == [1, 2]

    def test_comments_and_other_statements_are_skipped(self):
        dump = """
-- MySQL dump
/*!40101 SET NAMES utf8 */;
# another comment
CREATE TABLE t (a int, b varchar(10));
LOCK TABLES `t` WRITE;
INSERT INTO t (a, b) VALUES (1, 'x');
UNLOCK TABLES;
"""
        parsed = parse_dump(dump)

        assert len(parsed.rows) == 1
        assert parsed.issues == []

    def test_insert_modifiers_and_replace(self):
        dump = (
            "INSERT IGNORE INTO t (a) VALUES (1);\n"
            "REPLACE INTO t (a) VALUES (2);\n"
            "insert into t (a) values (3);"
        )
        parsed = parse_dump(dump)

        assert [row.get("a") for row in parsed.rows] == [1, 2, 3]

    def test_on_duplicate_key_update_is_ignored(self):
        dump = (
            "INSERT INTO t (a) VALUES (1) ON DUPLICATE KEY UPDATE a=VALUES(a);\n"
            "INSERT INTO t (a) VALUES (2);"
        )
        parsed = parse_dump(dump)

        assert [row.get("a") for row in parsed.rows] == [1, 2]

    def test_byte_order_mark_is_ignored(self):
        parsed = parse_dump("\ufeffINSERT INTO t (a) VALUES (1);")

        assert len(parsed.rows) == 1

    def test_tables_and_columns_in_first_seen_order(self):
        dump = (
            "INSERT INTO b_tbl (x) VALUES (1);\n"
            "INSERT INTO a_tbl (y, z) VALUES (2, 3);\n"
            "INSERT INTO b_tbl (x, w) VALUES (4, 5);"
        )
        parsed = parse_dump(dump)

        assert parsed.tables == ["b_tbl", "a_tbl"]
        assert parsed.columns_by_table["b_tbl"] == ["x", "w"]
        assert len(parsed.rows_for("b_tbl")) == 2


class TestMalformedInput:
    """Malformed tuples are reported and excluded; parsing continues."""

    def test_value_count_mismatch(self):
        dump = "INSERT INTO t (a, b, c) VALUES ('a','b','c'), ('a','b'), ('d','e','f');"
        parsed = parse_dump(dump)

        assert [row.position for row in parsed.rows] == [1, 3]
        assert len(parsed.issues) == 1
        issue = parsed.issues[0]
        assert issue.position == 2
        assert issue.table == "t"
        assert "Expected 3 values but found 2" in issue.message
        assert parsed.malformed_rows == 1

    def test_insert_without_column_list_uses_positional_names(self):
        dump = (
            "INSERT INTO `patient_tbl` VALUES ('Ann','Lee','1234567890123456'),('Bo','Ng','2234567890123456');\n"
            "INSERT INTO u (a) VALUES (5);"
        )
        parsed = parse_dump(dump)

        assert [row.table for row in parsed.rows] == ["patient_tbl", "patient_tbl", "u"]
        assert parsed.tables == ["patient_tbl", "u"]
        assert parsed.columns_by_table["patient_tbl"] == ["field0", "field1", "field2"]
        assert parsed.rows[1].get("field2") == "2234567890123456"
        assert parsed.issues == []

    def test_positional_arity_comes_from_first_tuple(self):
        parsed = parse_dump("INSERT INTO t VALUES (1, 2), (3), (4, 5);")

        assert [row.position for row in parsed.rows] == [1, 3]
        assert parsed.malformed_rows == 1
        assert "Expected 2 values but found 1" in parsed.issues[0].message

    def test_unterminated_string_at_end_of_input(self):
        dump = "INSERT INTO t (a) VALUES ('ok'), ('abc"
        parsed = parse_dump(dump)

        assert [row.get("a") for row in parsed.rows] == ["ok"]
        assert len(parsed.issues) == 1
        assert parsed.issues[0].position == 2
        assert "Unterminated" in parsed.issues[0].message


class TestSinglePass:
    """The parser is a lazy, single-use generator."""

    def test_rows_is_lazy_and_collects_issues(self):
        parser = SQLDumpParser("INSERT INTO t (a, b) VALUES (1), (1, 2);")
        rows = parser.rows()
        assert parser.issues == []

        first = next(rows)
        assert first.position == 2
        assert len(parser.issues) == 1

    def test_rows_cannot_be_restarted(self):
        parser = SQLDumpParser("INSERT INTO t (a) VALUES (1);")
        list(parser.rows())

        with pytest.raises(RuntimeError):
            parser.rows()

    def test_source_row_values_are_read_only(self):
        row = parse_dump("INSERT INTO t (a) VALUES (1);").rows[0]

        with pytest.raises(TypeError):
            row.values["a"] = 2
