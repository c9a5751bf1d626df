"""Extractor for SQL dumps made of INSERT statements."""

import bisect
import logging
import re
from typing import Any, Iterator, List, Optional, Tuple

from .base import BaseExtractor, ParsedDump
from ..models.record import SourceRow

logger = logging.getLogger(__name__)

_IDENT_RE = re.compile(r"[A-Za-z0-9_$]+")
_NUMBER_RE = re.compile(r"[+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?")
_INSERT_MODIFIERS = ("LOW_PRIORITY", "DELAYED", "HIGH_PRIORITY", "IGNORE")
_QUOTE_CHARS = "'\""
_IDENT_QUOTES = {"`": "`", '"': '"', "[": "]"}
_ESCAPES = {
    "n": "\n",
    "t": "\t",
    "r": "\r",
    "0": "\0",
    "b": "\b",
    "Z": "\x1a",
}
_STRING_STOPS = {q: re.compile(r"[\\" + q + "]") for q in _QUOTE_CHARS}


class _UnterminatedString(Exception):
    """A quoted literal ran to the end of the input."""


def decode_bare_literal(token: str) -> Any:
    """Decode an unquoted literal. Never fails: unknown tokens stay strings."""
    upper = token.upper()
    if upper == "NULL":
        return None
    if upper == "TRUE":
        return True
    if upper == "FALSE":
        return False
    if _NUMBER_RE.fullmatch(token):
        if any(c in token for c in ".eE"):
            return float(token)
        return int(token)
    return token


def positional_columns(count: int) -> List[str]:
    """Column names for an INSERT without a column list: field0, field1, ..."""
    return [f"field{i}" for i in range(count)]


class SQLDumpParser(BaseExtractor):
    """
    Single-pass scanner over ``INSERT INTO t (cols) VALUES (...), (...);``.

    Handles:
    - Multi-line statements and multi-row VALUES lists
    - Quoted strings with backslash and doubled-quote escapes
    - ``--``, ``#`` and ``/* */`` comments between statements
    - Quoted and schema-qualified identifiers

    Any statement that is not an INSERT is skipped. A tuple whose value
    count differs from the column count is reported as an issue and left
    out; the scan carries on with the next tuple.
    """

    def __init__(self, text: str, source_name: str = "dump"):
        super().__init__(source_name)
        if text.startswith("\ufeff"):
            text = text[1:]
        self.text = text
        self._pos = 0
        self._length = len(text)
        self._position = 0
        self._newlines = [m.start() for m in re.finditer("\n", text)]

    # -- cursor helpers -------------------------------------------------

    def _line_at(self, pos: int) -> int:
        return bisect.bisect_left(self._newlines, pos) + 1

    @property
    def _at_end(self) -> bool:
        return self._pos >= self._length

    def _peek(self, offset: int = 0) -> str:
        idx = self._pos + offset
        return self.text[idx] if idx < self._length else ""

    def _skip_whitespace_and_comments(self) -> None:
        text = self.text
        while self._pos < self._length:
            ch = text[self._pos]
            if ch.isspace():
                self._pos += 1
            elif ch == "-" and self._peek(1) == "-":
                self._skip_to_line_end()
            elif ch == "#":
                self._skip_to_line_end()
            elif ch == "/" and self._peek(1) == "*":
                end = text.find("*/", self._pos + 2)
                self._pos = self._length if end == -1 else end + 2
            else:
                break

    def _skip_to_line_end(self) -> None:
        end = self.text.find("\n", self._pos)
        self._pos = self._length if end == -1 else end + 1

    def _match_keyword(self, word: str) -> bool:
        end = self._pos + len(word)
        if self.text[self._pos:end].upper() != word:
            return False
        if end < self._length and (self.text[end].isalnum() or self.text[end] in "_$"):
            return False
        self._pos = end
        return True

    def _skip_quoted(self, quote: str) -> None:
        """Move past a quoted section, starting on the opening quote."""
        closing = _IDENT_QUOTES.get(quote, quote)
        self._pos += 1
        while self._pos < self._length:
            ch = self.text[self._pos]
            if ch == "\\" and quote in _QUOTE_CHARS:
                self._pos += 2
            elif ch == closing:
                if self._peek(1) == closing:
                    self._pos += 2
                else:
                    self._pos += 1
                    return
            else:
                self._pos += 1

    def _skip_statement(self) -> None:
        """Skip to just past the next top-level semicolon."""
        while self._pos < self._length:
            ch = self.text[self._pos]
            if ch in _QUOTE_CHARS or ch == "`":
                self._skip_quoted(ch)
            elif ch == "-" and self._peek(1) == "-":
                self._skip_to_line_end()
            elif ch == "#":
                self._skip_to_line_end()
            elif ch == "/" and self._peek(1) == "*":
                end = self.text.find("*/", self._pos + 2)
                self._pos = self._length if end == -1 else end + 2
            elif ch == ";":
                self._pos += 1
                return
            else:
                self._pos += 1

    # -- identifiers ----------------------------------------------------

    def _read_identifier(self) -> Optional[str]:
        ch = self._peek()
        if ch in _IDENT_QUOTES:
            closing = _IDENT_QUOTES[ch]
            start = self._pos + 1
            parts = []
            self._pos += 1
            while self._pos < self._length:
                end = self.text.find(closing, self._pos)
                if end == -1:
                    self._pos = self._length
                    return None
                parts.append(self.text[self._pos:end])
                if self.text[end + 1:end + 2] == closing:
                    parts.append(closing)
                    self._pos = end + 2
                    continue
                self._pos = end + 1
                name = "".join(parts)
                return name if name else None
            logger.debug(f"Unterminated identifier starting at offset {start}")
            return None

        match = _IDENT_RE.match(self.text, self._pos)
        if not match:
            return None
        self._pos = match.end()
        return match.group(0)

    def _read_table_name(self) -> Optional[str]:
        name = self._read_identifier()
        while name is not None and self._peek() == ".":
            self._pos += 1
            name = self._read_identifier()
        return name

    def _read_column_list(self) -> Optional[List[str]]:
        """Read ``(a, b, c)``. Returns None when the list is malformed."""
        self._pos += 1
        columns: List[str] = []
        while True:
            self._skip_whitespace_and_comments()
            column = self._read_identifier()
            if column is None:
                return None
            columns.append(column)
            self._skip_whitespace_and_comments()
            ch = self._peek()
            if ch == ",":
                self._pos += 1
            elif ch == ")":
                self._pos += 1
                return columns
            else:
                return None

    # -- literals -------------------------------------------------------

    def _read_quoted_literal(self, quote: str) -> str:
        text = self.text
        stops = _STRING_STOPS[quote]
        buf: List[str] = []
        self._pos += 1
        while True:
            match = stops.search(text, self._pos)
            if match is None:
                self._pos = self._length
                raise _UnterminatedString()
            idx = match.start()
            buf.append(text[self._pos:idx])
            if text[idx] == "\\":
                if idx + 1 >= self._length:
                    self._pos = self._length
                    raise _UnterminatedString()
                escaped = text[idx + 1]
                buf.append(_ESCAPES.get(escaped, escaped))
                self._pos = idx + 2
            elif text[idx + 1:idx + 2] == quote:
                buf.append(quote)
                self._pos = idx + 2
            else:
                self._pos = idx + 1
                return "".join(buf)

    def _read_bare_literal(self) -> str:
        """Read up to the next top-level ',' or ')' (function calls may nest)."""
        start = self._pos
        depth = 0
        while self._pos < self._length:
            ch = self.text[self._pos]
            if ch in _QUOTE_CHARS:
                self._skip_quoted(ch)
                continue
            if ch == "(":
                depth += 1
            elif ch == ")":
                if depth == 0:
                    break
                depth -= 1
            elif ch == "," and depth == 0:
                break
            self._pos += 1
        return self.text[start:self._pos].strip()

    def _skip_rest_of_tuple(self) -> None:
        """Recover from a bad tuple by moving past its closing parenthesis."""
        self._read_bare_literal()
        while self._peek() == ",":
            self._pos += 1
            self._read_bare_literal()
        if self._peek() == ")":
            self._pos += 1

    def _read_tuple(self) -> Tuple[List[Any], Optional[str]]:
        """Read ``( v1, v2, ... )``. Returns the values and an error message, if any."""
        self._pos += 1
        values: List[Any] = []
        self._skip_whitespace_and_comments()
        if self._peek() == ")":
            self._pos += 1
            return values, None

        while True:
            self._skip_whitespace_and_comments()
            ch = self._peek()
            if ch == "":
                return values, "Unexpected end of input inside VALUES tuple"
            if ch in _QUOTE_CHARS:
                try:
                    values.append(self._read_quoted_literal(ch))
                except _UnterminatedString:
                    return values, "Unterminated string literal"
            else:
                token = self._read_bare_literal()
                if token == "" and self._peek() in (",", ")"):
                    self._skip_rest_of_tuple()
                    return values, "Empty value in VALUES tuple"
                values.append(decode_bare_literal(token))

            self._skip_whitespace_and_comments()
            ch = self._peek()
            if ch == ",":
                self._pos += 1
            elif ch == ")":
                self._pos += 1
                return values, None
            elif ch == "":
                return values, "Unexpected end of input inside VALUES tuple"
            else:
                self._skip_rest_of_tuple()
                return values, f"Unexpected character {ch!r} after value {len(values)}"

    # -- statements -----------------------------------------------------

    def _iter_rows(self) -> Iterator[SourceRow]:
        while True:
            self._skip_whitespace_and_comments()
            if self._at_end:
                return
            if self._match_keyword("INSERT") or self._match_keyword("REPLACE"):
                yield from self._parse_insert()
            else:
                self._skip_statement()

    def _parse_insert(self) -> Iterator[SourceRow]:
        statement_line = self._line_at(self._pos)

        self._skip_whitespace_and_comments()
        matched = True
        while matched:
            matched = any(self._match_keyword(m) for m in _INSERT_MODIFIERS)
            self._skip_whitespace_and_comments()
        self._match_keyword("INTO")
        self._skip_whitespace_and_comments()

        table = self._read_table_name()
        if table is None:
            self.add_issue("INSERT statement without a readable table name", statement_line)
            self._skip_statement()
            return

        self._skip_whitespace_and_comments()
        columns: Optional[List[str]] = None
        if self._peek() == "(":
            columns = self._read_column_list()
            if columns is None:
                self.add_issue(f"Malformed column list for table {table}", statement_line, table=table)
                self._skip_statement()
                return
            if len(set(columns)) != len(columns):
                self.add_issue(f"Duplicate column names for table {table}", statement_line, table=table)
                self._skip_statement()
                return
            self.register_columns(table, columns)
        else:
            logger.debug(f"INSERT into {table} at line {statement_line} has no column list; using positional names")

        self._skip_whitespace_and_comments()
        if not (self._match_keyword("VALUES") or self._match_keyword("VALUE")):
            self.add_issue(f"Expected VALUES in INSERT into {table}", statement_line, table=table)
            self._skip_statement()
            return

        while True:
            self._skip_whitespace_and_comments()
            if self._peek() != "(":
                self.add_issue(
                    f"Expected '(' to start a VALUES tuple for table {table}",
                    self._line_at(self._pos),
                    table=table,
                )
                self._skip_statement()
                return

            line = self._line_at(self._pos)
            self._position += 1
            position = self._position
            values, error = self._read_tuple()

            if error:
                self.add_issue(error, line, position=position, table=table)
            elif columns is None and not values:
                self.add_issue("Empty VALUES tuple", line, position=position, table=table)
            elif columns is None:
                # The first usable tuple fixes the arity of the statement
                columns = positional_columns(len(values))
                self.register_columns(table, columns)
                yield SourceRow(
                    table=table,
                    position=position,
                    line=line,
                    values=dict(zip(columns, values)),
                )
            elif len(values) != len(columns):
                self.add_issue(
                    f"Expected {len(columns)} values but found {len(values)}",
                    line,
                    position=position,
                    table=table,
                )
            else:
                yield SourceRow(
                    table=table,
                    position=position,
                    line=line,
                    values=dict(zip(columns, values)),
                )

            if self._at_end:
                return

            self._skip_whitespace_and_comments()
            ch = self._peek()
            if ch == ",":
                self._pos += 1
            elif ch == ";" or ch == "":
                self._pos += 1
                return
            elif self._match_keyword("ON"):
                # ON DUPLICATE KEY UPDATE ... carries no row data
                self._skip_statement()
                return
            else:
                self.add_issue(
                    f"Unexpected {ch!r} after VALUES tuple for table {table}",
                    self._line_at(self._pos),
                    table=table,
                )
                self._skip_statement()
                return


def parse_dump(text: str, source_name: str = "dump") -> ParsedDump:
    """Parse a whole dump and collect rows, issues and discovered columns."""
    return SQLDumpParser(text, source_name=source_name).extract()
