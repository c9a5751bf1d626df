"""Extractors turning legacy dumps into source rows."""

from .base import BaseExtractor, ParsedDump
from .sql_dump import SQLDumpParser, parse_dump

__all__ = [
    "BaseExtractor",
    "ParsedDump",
    "SQLDumpParser",
    "parse_dump",
]
