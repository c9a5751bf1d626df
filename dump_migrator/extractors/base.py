"""Base extractor interface."""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Dict, Iterator, List, Optional
from datetime import datetime
import logging

from ..models.record import ParseIssue, SourceRow

logger = logging.getLogger(__name__)


@dataclass
class ParsedDump:
    """Result of running an extractor to completion."""
    rows: List[SourceRow] = field(default_factory=list)
    issues: List[ParseIssue] = field(default_factory=list)
    tables: List[str] = field(default_factory=list)
    columns_by_table: Dict[str, List[str]] = field(default_factory=dict)
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    @property
    def malformed_rows(self) -> int:
        """Count of row-level issues (statement-level issues excluded)."""
        return sum(1 for issue in self.issues if issue.position is not None)

    @property
    def duration_seconds(self) -> Optional[float]:
        """Get duration in seconds."""
        if self.started_at and self.completed_at:
            return (self.completed_at - self.started_at).total_seconds()
        return None

    def rows_for(self, table: Optional[str]) -> List[SourceRow]:
        """Rows of one table, or all rows when table is None."""
        if table is None:
            return list(self.rows)
        return [row for row in self.rows if row.table == table]


class BaseExtractor(ABC):
    """
    Base class for dump extractors.

    Extractors turn raw dump text into SourceRow objects. They make a
    single forward pass: rows() can be consumed once. Problems found
    along the way are collected in ``issues`` and never stop the scan.
    """

    def __init__(self, source_name: str = "dump"):
        """
        Initialize the extractor.

        Args:
            source_name: Label used in log messages
        """
        self.source_name = source_name
        self.issues: List[ParseIssue] = []
        self.tables: List[str] = []
        self.columns_by_table: Dict[str, List[str]] = {}
        self._consumed = False

    @abstractmethod
    def _iter_rows(self) -> Iterator[SourceRow]:
        """Yield rows in source order."""

    def rows(self) -> Iterator[SourceRow]:
        """
        Lazily yield every well-formed row.

        Raises:
            RuntimeError: if called a second time
        """
        if self._consumed:
            raise RuntimeError(f"Extractor for {self.source_name} has already been consumed")
        self._consumed = True
        return self._iter_rows()

    def extract(self) -> ParsedDump:
        """Run the extractor to completion."""
        started_at = datetime.utcnow()
        rows = list(self.rows())
        result = ParsedDump(
            rows=rows,
            issues=list(self.issues),
            tables=list(self.tables),
            columns_by_table={k: list(v) for k, v in self.columns_by_table.items()},
            started_at=started_at,
            completed_at=datetime.utcnow(),
        )
        logger.info(
            f"Extracted {len(rows)} rows from {len(self.tables)} table(s) in {self.source_name}"
            f" ({result.malformed_rows} malformed, {result.duration_seconds:.2f}s)"
        )
        return result

    def add_issue(
        self,
        message: str,
        line: int,
        position: Optional[int] = None,
        table: Optional[str] = None
    ) -> None:
        """Record a malformed row or unusable statement."""
        self.issues.append(ParseIssue(message=message, line=line, position=position, table=table))
        if position is None:
            logger.warning(f"Parse issue at line {line}: {message}")
        else:
            logger.debug(f"Malformed row {position} at line {line}: {message}")

    def register_columns(self, table: str, columns: List[str]) -> None:
        """Track tables and their columns in first-seen order."""
        if table not in self.columns_by_table:
            self.tables.append(table)
            self.columns_by_table[table] = []
        known = self.columns_by_table[table]
        for column in columns:
            if column not in known:
                known.append(column)
