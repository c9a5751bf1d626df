"""Migration executor - reconciles dump rows into a datastore."""

import logging
from dataclasses import dataclass, replace
from datetime import datetime
from functools import reduce
from typing import Any, Dict, Iterator, List, Optional, Sequence, Tuple, Union

from .datastores.base import Datastore, DedupKey
from .errors import (
    DatastoreConnectionError,
    DatastoreRowError,
    InvalidMappingError,
    MigrationError,
)
from .extractors.base import ParsedDump
from .extractors.sql_dump import parse_dump
from .models.migration import MigrationConfig
from .models.preview import PreviewData
from .models.record import (
    CandidateRecord,
    FieldError,
    FieldValue,
    MigrationResult,
    RowAction,
    RowError,
    RowOutcome,
    SourceRow,
    ValueKind,
)
from .models.schema import FieldMapping, FieldType, TargetSchema
from .services.preview import PreviewBuilder
from .services.schema_catalog import SchemaCatalog, default_catalog
from .services.validator import RecordValidator, coerce_date, coerce_number

logger = logging.getLogger(__name__)

AUDIT_ACTION = "DATA_MIGRATION"


@dataclass(frozen=True)
class MigrationTally:
    """Running counts of a migration. Each step returns a new tally."""
    inserted: int = 0
    updated: int = 0
    skipped: int = 0
    row_errors: Tuple[RowError, ...] = ()
    aborted: bool = False
    error: Optional[Dict[str, Any]] = None

    def add(self, outcome: RowOutcome) -> "MigrationTally":
        """Fold one row outcome into the tally."""
        if outcome.action == RowAction.INSERTED:
            return replace(self, inserted=self.inserted + 1)
        if outcome.action == RowAction.UPDATED:
            return replace(self, updated=self.updated + 1)
        if outcome.action == RowAction.SKIPPED:
            row_error = RowError(position=outcome.position, line=outcome.line, errors=outcome.errors)
            return replace(self, skipped=self.skipped + 1, row_errors=self.row_errors + (row_error,))
        return replace(self, aborted=True, error=outcome.error)

    @property
    def processed(self) -> int:
        return self.inserted + self.updated + self.skipped


def project_row(
    row: SourceRow,
    mapping: FieldMapping
) -> Tuple[CandidateRecord, Dict[str, Any]]:
    """
    Project a source row through a mapping.

    Returns:
        Tuple of (candidate record, columns the mapping does not reference).
        A mapped column missing from the row leaves its field absent.
    """
    candidate: CandidateRecord = {}
    for target_field, column in mapping.fields.items():
        if column in row.values:
            candidate[target_field] = FieldValue.of(row.values[column])

    referenced = set(mapping.source_columns)
    unmapped = {column: value for column, value in row.values.items() if column not in referenced}
    return candidate, unmapped


def to_storage(field_type: FieldType, value: FieldValue) -> Any:
    """Convert a validated value to what the datastore stores."""
    if value.is_empty:
        return None
    if field_type == FieldType.NUMBER:
        number = coerce_number(value)
        if isinstance(number, float) and number.is_integer():
            return int(number)
        return number if isinstance(number, (int, float)) else float(number)
    if field_type == FieldType.DATE:
        return coerce_date(value).isoformat()
    if value.kind == ValueKind.STRING:
        return value.value.strip()
    return value.as_text()


def build_dedup_key(schema: TargetSchema, candidate: CandidateRecord) -> Optional[DedupKey]:
    """Build the natural key of a candidate, or None when a key part is empty."""
    parts = []
    case_insensitive = set()
    for name in schema.dedup_key:
        value = candidate.get(name)
        if value is None or value.is_empty:
            return None
        parts.append((name, value.as_text().strip()))
        rule = schema.get_rule(name)
        if rule is not None and not rule.case_sensitive:
            case_insensitive.add(name)
    return DedupKey(target=schema.name, values=tuple(parts), case_insensitive=frozenset(case_insensitive))


class MigrationRun:
    """
    One execution, consumed as an iterator of RowOutcome.

    Rows are handled in file order, one per ``next()``. A caller may stop
    at any point; ``result()`` then reports the counts so far with
    ``completed=False``.
    """

    def __init__(
        self,
        executor: "MigrationExecutor",
        parsed: ParsedDump,
        schema: TargetSchema,
        mapping: FieldMapping,
        acting_user_id: str,
        scope: Optional[str] = None,
        source_table: Optional[str] = None
    ):
        self.executor = executor
        self.parsed = parsed
        self.schema = schema
        self.mapping = mapping
        self.acting_user_id = acting_user_id
        self.scope = scope
        self.source_table = source_table
        self.source = source_table or (parsed.tables[0] if parsed.tables else "")
        self.rows = parsed.rows_for(source_table)
        self.parse_errors = [
            issue for issue in parsed.issues
            if source_table is None or issue.table in (None, source_table)
        ]
        self.started_at = datetime.utcnow()
        self.completed_at: Optional[datetime] = None
        self._tally = MigrationTally()
        self._outcomes = self._generate()
        self._finished = False
        self._cancelled = False

    def __iter__(self) -> Iterator[RowOutcome]:
        return self

    def __next__(self) -> RowOutcome:
        if self._finished:
            raise StopIteration
        try:
            outcome = next(self._outcomes)
        except StopIteration:
            self._finish()
            raise
        self._tally = self._tally.add(outcome)
        return outcome

    @property
    def finished(self) -> bool:
        return self._finished

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    @property
    def tally(self) -> MigrationTally:
        return self._tally

    def cancel(self) -> None:
        """Stop the run between rows. Remaining rows are not counted."""
        if self._finished:
            return
        self._cancelled = True
        self._outcomes.close()
        logger.warning(f"Migration into {self.schema.name} cancelled after {self._tally.processed} rows")
        self._finish()

    def result(self, tally: Optional[MigrationTally] = None) -> MigrationResult:
        """
        Build the result from a tally (the run's own by default).

        An unfinished or cancelled run reports ``completed=False``.
        """
        if tally is None:
            tally = self._tally
        completed = self._finished and not self._cancelled and not tally.aborted
        return MigrationResult(
            success=completed and tally.skipped == 0,
            records_inserted=tally.inserted,
            records_updated=tally.updated,
            records_skipped=tally.skipped,
            row_errors=tally.row_errors,
            parse_errors=tuple(self.parse_errors),
            completed=completed,
            error=tally.error,
            target=self.schema.name,
            started_at=self.started_at,
            completed_at=self.completed_at or datetime.utcnow(),
        )

    def _finish(self) -> None:
        self._finished = True
        self.completed_at = datetime.utcnow()
        tally = self._tally
        logger.info(
            f"Migration into {self.schema.name} finished: {tally.inserted} inserted, "
            f"{tally.updated} updated, {tally.skipped} skipped"
        )
        self.executor.write_audit(self, tally)

    def _generate(self) -> Iterator[RowOutcome]:
        chunk_size = max(1, self.executor.config.validation_chunk_size)
        for start in range(0, len(self.rows), chunk_size):
            chunk = self.rows[start:start + chunk_size]
            projected = [project_row(row, self.mapping) for row in chunk]
            all_errors = self.executor.validator.validate_rows(
                [candidate for candidate, _ in projected],
                self.schema.name,
                workers=self.executor.config.workers,
            )

            for row, (candidate, unmapped), errors in zip(chunk, projected, all_errors):
                if errors:
                    logger.debug(f"Skipping row {row.position} (line {row.line}): {len(errors)} field error(s)")
                    yield self._skipped(row, errors)
                    continue

                try:
                    yield self._write(row, candidate, unmapped)
                except DatastoreRowError as e:
                    logger.warning(f"Datastore rejected row {row.position} (line {row.line}): {e.message}")
                    yield self._skipped(row, [FieldError(
                        field="datastore",
                        message="The datastore rejected this record",
                        error_type="datastore",
                        value=e.message,
                    )])
                except DatastoreConnectionError as e:
                    logger.error(f"Datastore connection lost at row {row.position}: {e.message}")
                    yield RowOutcome(
                        position=row.position,
                        line=row.line,
                        action=RowAction.ABORTED,
                        error=e.to_dict(),
                    )
                    return

    def _skipped(self, row: SourceRow, errors: Sequence[FieldError]) -> RowOutcome:
        return RowOutcome(
            position=row.position,
            line=row.line,
            action=RowAction.SKIPPED,
            errors=tuple(errors),
        )

    def _write(self, row: SourceRow, candidate: CandidateRecord, unmapped: Dict[str, Any]) -> RowOutcome:
        key = build_dedup_key(self.schema, candidate)
        if key is None:
            return self._skipped(row, [FieldError(
                field=self.schema.dedup_key[0],
                message=f"Missing unique identifier ({', '.join(self.schema.dedup_key)})",
                error_type="required",
            )])

        record = self.executor.build_record(self.schema, candidate, unmapped, self.scope)
        scope_filter = None
        if self.schema.scope_field and self.scope is not None:
            scope_filter = {self.schema.scope_field: self.scope}

        datastore = self.executor.datastore
        with datastore.hold_key(key):
            existing = datastore.find_by_key(self.schema.name, key, scope_filter)
            if existing is not None:
                datastore.update(self.schema.name, existing.id, record, self.acting_user_id)
                return RowOutcome(row.position, row.line, RowAction.UPDATED, record_id=existing.id)

            record_id = datastore.insert(self.schema.name, record, self.acting_user_id)
            return RowOutcome(row.position, row.line, RowAction.INSERTED, record_id=record_id)


class MigrationExecutor:
    """
    Runs a confirmed mapping over a full dump.

    Handles:
    - Mapping and target checks before any row is touched
    - Projection and validation of every row (validation may use threads)
    - Insert-or-update by natural key, serialised per key
    - The audit entry once a run ends
    """

    def __init__(
        self,
        datastore: Datastore,
        catalog: Optional[SchemaCatalog] = None,
        config: Optional[MigrationConfig] = None
    ):
        """
        Initialize the executor.

        Args:
            datastore: Datastore handle, shared by concurrent runs
            catalog: Target schemas
            config: Execution options
        """
        self.datastore = datastore
        self.catalog = catalog or default_catalog
        self.config = config or MigrationConfig()
        self.validator = RecordValidator(self.catalog)

    def start(
        self,
        dump_text: str,
        target: str,
        mapping: Union[FieldMapping, Dict[str, str]],
        acting_user_id: str,
        scope: Optional[str] = None,
        source_table: Optional[str] = None
    ) -> MigrationRun:
        """
        Check the call and start a lazy run.

        Raises:
            UnknownTargetError: if the target is not in the catalog
            InvalidMappingError: if the mapping does not fit the target
        """
        schema = self.catalog.get_schema(target)
        if not isinstance(mapping, FieldMapping):
            mapping = FieldMapping.from_dict(mapping)

        errors = self.catalog.validate_mapping(target, mapping)
        if errors:
            raise InvalidMappingError(
                f"Mapping does not fit target {target}: {'; '.join(errors)}",
                {"errors": errors},
            )

        parsed = parse_dump(dump_text, source_name=source_table or "dump")
        if source_table is not None and source_table not in parsed.tables:
            logger.warning(f"Table {source_table} not found in dump; nothing to migrate")

        known_columns = set()
        for table in ([source_table] if source_table else parsed.tables):
            known_columns.update(parsed.columns_by_table.get(table, []))
        missing = [c for c in mapping.source_columns if c not in known_columns]
        if missing and parsed.tables:
            logger.warning(f"Mapped columns not found in dump: {', '.join(missing)}")

        scope = scope if scope is not None else self.config.default_scope
        run = MigrationRun(self, parsed, schema, mapping, acting_user_id, scope, source_table)
        logger.info(
            f"Starting migration of {len(run.rows)} rows from {run.source or 'dump'} into {target}"
            f" ({len(run.parse_errors)} parse issue(s))"
        )
        return run

    def execute(
        self,
        dump_text: str,
        target: str,
        mapping: Union[FieldMapping, Dict[str, str]],
        acting_user_id: str,
        scope: Optional[str] = None,
        source_table: Optional[str] = None
    ) -> MigrationResult:
        """
        Run a migration to completion.

        Args:
            dump_text: Raw SQL dump, re-parsed in full
            target: Target name
            mapping: Confirmed target field -> source column mapping
            acting_user_id: User the writes and audit entry are attributed to
            scope: Organisational unit (e.g. hospital id), defaults to config
            source_table: Only migrate rows of this table

        Returns:
            MigrationResult; call-level failures raise MigrationError instead,
            except a lost connection, which ends the run as not completed
        """
        run = self.start(dump_text, target, mapping, acting_user_id, scope, source_table)
        tally = reduce(MigrationTally.add, run, MigrationTally())
        return run.result(tally)

    def build_record(
        self,
        schema: TargetSchema,
        candidate: CandidateRecord,
        unmapped: Dict[str, Any],
        scope: Optional[str]
    ) -> Dict[str, Any]:
        """Build the datastore payload of a validated candidate."""
        record: Dict[str, Any] = {}
        for rule in schema.fields:
            if rule.name in candidate:
                record[rule.name] = to_storage(rule.type, candidate[rule.name])

        if schema.scope_field and scope is not None:
            record[schema.scope_field] = scope
        if self.config.preserve_unmapped and schema.metadata_field:
            record[schema.metadata_field] = dict(unmapped)
        return record

    def write_audit(self, run: MigrationRun, tally: MigrationTally) -> None:
        """Record the run in the activity log. Failures never change the result."""
        details = {
            "source": run.source,
            "target": run.schema.name,
            "recordsProcessed": tally.processed,
            "recordsInserted": tally.inserted,
            "recordsUpdated": tally.updated,
            "recordsSkipped": tally.skipped,
            "completed": not tally.aborted and not run.cancelled,
        }
        try:
            self.datastore.log_activity(run.acting_user_id, AUDIT_ACTION, details)
        except MigrationError as e:
            logger.warning(f"Failed to write audit entry for migration into {run.schema.name}: {e.message}")


class MigrationEngine:
    """
    Facade over preview and execution for one datastore.

    Example:
        engine = MigrationEngine(InMemoryDatastore())
        preview = engine.preview(dump, "patients")
        result = engine.execute(dump, "patients", preview.suggested_mapping, "user-1")
    """

    def __init__(
        self,
        datastore: Datastore,
        catalog: Optional[SchemaCatalog] = None,
        config: Optional[MigrationConfig] = None
    ):
        self.catalog = catalog or default_catalog
        self.config = config or MigrationConfig()
        self.previewer = PreviewBuilder(self.catalog, self.config)
        self.executor = MigrationExecutor(datastore, self.catalog, self.config)

    @property
    def datastore(self) -> Datastore:
        return self.executor.datastore

    def targets(self) -> List[str]:
        return self.catalog.list_targets()

    def preview(self, dump_text: str, target: str, source_table: Optional[str] = None) -> PreviewData:
        return self.previewer.preview(dump_text, target, source_table)

    def start(self, *args, **kwargs) -> MigrationRun:
        return self.executor.start(*args, **kwargs)

    def execute(
        self,
        dump_text: str,
        target: str,
        mapping: Union[FieldMapping, Dict[str, str]],
        acting_user_id: str,
        scope: Optional[str] = None,
        source_table: Optional[str] = None
    ) -> MigrationResult:
        return self.executor.execute(dump_text, target, mapping, acting_user_id, scope, source_table)
