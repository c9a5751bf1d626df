"""Command line interface for the dump migration engine."""

import argparse
import json
import logging
import sys
from typing import List, Optional

from .datastores import InMemoryDatastore, create_datastore
from .errors import MigrationError
from .executor import MigrationEngine
from .models.migration import MigrationConfig
from .models.preview import PreviewData
from .models.record import MigrationResult
from .models.schema import FieldMapping
from .services.schema_catalog import default_catalog

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_ROWS_SKIPPED = 1
EXIT_CALL_ERROR = 2


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point for the CLI."""
    parser = argparse.ArgumentParser(
        prog="dump-migrator",
        description="Dump Migrator - Move legacy SQL dump rows into the hospital record schema"
    )

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    # List targets
    targets_parser = subparsers.add_parser("targets", help="List migration targets")
    targets_parser.add_argument("target", nargs="?", help="Show the rules of one target")
    targets_parser.add_argument("--verbose", "-v", action="store_true", help="Verbose output")

    # Preview a dump
    preview_parser = subparsers.add_parser("preview", help="Preview a dump and suggest a mapping")
    preview_parser.add_argument("--dump", required=True, help="Path to the SQL dump")
    preview_parser.add_argument("--target", required=True, help="Target name")
    preview_parser.add_argument("--source-table", help="Only consider rows of this table")
    preview_parser.add_argument("--output", help="Save the preview JSON here")
    preview_parser.add_argument("--config", help="Path to config JSON file")
    preview_parser.add_argument("--encoding", default="utf-8", help="Dump file encoding")
    preview_parser.add_argument("--verbose", "-v", action="store_true", help="Verbose output")

    # Validate a mapping
    validate_parser = subparsers.add_parser("validate", help="Check a mapping against a target")
    validate_parser.add_argument("--mapping", required=True, help="Mapping JSON or saved preview")
    validate_parser.add_argument("--target", required=True, help="Target name")
    validate_parser.add_argument("--verbose", "-v", action="store_true", help="Verbose output")

    # Run migration
    run_parser = subparsers.add_parser("run", help="Run a migration")
    run_parser.add_argument("--dump", required=True, help="Path to the SQL dump")
    run_parser.add_argument("--target", required=True, help="Target name")
    run_parser.add_argument("--mapping", required=True, help="Mapping JSON or saved preview")
    run_parser.add_argument("--user", required=True, help="Acting user id")
    run_parser.add_argument("--scope", help="Organisational unit, e.g. a hospital id")
    run_parser.add_argument("--source-table", help="Only migrate rows of this table")
    run_parser.add_argument("--config", help="Path to config JSON file")
    run_parser.add_argument("--output", help="Save the result JSON here")
    run_parser.add_argument("--encoding", default="utf-8", help="Dump file encoding")
    run_parser.add_argument("--dry-run", action="store_true", help="Run against an in-memory datastore")
    run_parser.add_argument("--verbose", "-v", action="store_true", help="Verbose output")

    args = parser.parse_args(argv)

    # Set up logging
    log_level = logging.DEBUG if getattr(args, "verbose", False) else logging.INFO
    logging.basicConfig(
        level=log_level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )

    commands = {
        "targets": run_targets,
        "preview": run_preview,
        "validate": run_validate,
        "run": run_migration,
    }
    command = commands.get(args.command)
    if command is None:
        parser.print_help()
        return EXIT_CALL_ERROR

    try:
        return command(args)
    except MigrationError as e:
        logger.error(f"{e.kind}: {e.message}")
        print(json.dumps(e.to_dict(), indent=2), file=sys.stderr)
        return EXIT_CALL_ERROR
    except (OSError, UnicodeDecodeError, json.JSONDecodeError) as e:
        logger.error(f"Could not read input: {e}")
        return EXIT_CALL_ERROR


def load_config(path: Optional[str]) -> MigrationConfig:
    """Config from a JSON file on top of the environment, or the environment alone."""
    if path:
        return MigrationConfig.from_json_file(path)
    return MigrationConfig.from_env()


def read_dump(path: str, encoding: str = "utf-8") -> str:
    with open(path, 'r', encoding=encoding) as f:
        return f.read()


def run_targets(args) -> int:
    """List targets, or print one target's rules."""
    if args.target:
        schema = default_catalog.get_schema(args.target)
        print(f"\n=== {schema.name} ===")
        print(f"Description: {schema.description}")
        print(f"Dedup key: {', '.join(schema.dedup_key)}")
        print(f"\nFields ({len(schema.fields)}):")
        for rule in schema.fields:
            req = "*" if rule.required else " "
            print(f"  {req} {rule.name}: {rule.type.value}", end="")
            if rule.max_length:
                print(f" (max: {rule.max_length})", end="")
            if rule.enum_values:
                print(f" [{', '.join(rule.enum_values)}]", end="")
            print()
        return EXIT_OK

    print("\n=== Available Targets ===")
    for i, name in enumerate(default_catalog.list_targets(), 1):
        schema = default_catalog.get_schema(name)
        print(f"{i}. {name} - {schema.description}")
    return EXIT_OK


def run_preview(args) -> int:
    """Preview a dump against a target."""
    config = load_config(args.config)
    engine = MigrationEngine(InMemoryDatastore(), config=config)
    preview = engine.preview(read_dump(args.dump, args.encoding), args.target, args.source_table)

    print_preview(preview)

    if args.output:
        with open(args.output, 'w', encoding="utf-8") as f:
            json.dump(preview.to_dict(), f, indent=2, default=str)
        print(f"\nPreview saved to {args.output}")

    return EXIT_OK


def print_preview(preview: PreviewData) -> None:
    print("\n" + "=" * 60)
    print(f"PREVIEW: {preview.source} -> {preview.target}")
    print("=" * 60)
    print(f"Tables: {', '.join(preview.tables)}")
    print(f"Rows: {preview.total_rows} ({preview.malformed_rows} malformed)")
    print(f"Columns: {', '.join(preview.columns)}")

    print("\nSuggested mapping:")
    for target_field, column in preview.suggested_mapping.fields.items():
        print(f"  {target_field} <- {column}")
    for name in preview.unmapped_fields:
        req = " (required)" if name in preview.missing_required else ""
        hint = preview.alternatives.get(name)
        hint_text = f"  maybe: {', '.join(hint)}" if hint else ""
        print(f"  {name} <- ?{req}{hint_text}")

    if preview.sample:
        print(f"\nSample ({len(preview.sample)} rows):")
        for row in preview.sample:
            print(f"  {json.dumps(row, default=str)}")

    for issue in preview.parse_errors[:10]:
        print(f"  ! line {issue.line}: {issue.message}")


def run_validate(args) -> int:
    """Validate a mapping against a target."""
    mapping = FieldMapping.from_json_file(args.mapping)
    errors = default_catalog.validate_mapping(args.target, mapping)

    print(f"\n=== Validating Mapping for {args.target} ===")
    if not errors:
        print("\nMapping is valid!")
        return EXIT_OK

    for error in errors:
        print(f"  - {error}")
    print(f"\nFound {len(errors)} validation errors")
    return EXIT_CALL_ERROR


def run_migration(args) -> int:
    """Run a migration."""
    config = load_config(args.config)

    if args.dry_run:
        datastore = InMemoryDatastore()
        logger.info("Dry run: writing to an in-memory datastore")
    elif config.datastore_url:
        datastore = create_datastore(config)
    else:
        logger.error("No datastore configured. Set DUMP_MIGRATOR_DATASTORE_URL or use --dry-run")
        return EXIT_CALL_ERROR

    mapping = FieldMapping.from_json_file(args.mapping)
    engine = MigrationEngine(datastore, config=config)
    result = engine.execute(
        read_dump(args.dump, args.encoding),
        args.target,
        mapping,
        args.user,
        scope=args.scope,
        source_table=args.source_table,
    )

    print_result(result)

    if args.output:
        with open(args.output, 'w', encoding="utf-8") as f:
            json.dump(result.to_dict(), f, indent=2, default=str)
        print(f"\nResult saved to {args.output}")

    return EXIT_OK if result.success else EXIT_ROWS_SKIPPED


def print_result(result: MigrationResult) -> None:
    print("\n" + "=" * 60)
    print("MIGRATION COMPLETE" if result.completed else "MIGRATION ABORTED")
    print("=" * 60)
    print(f"Target: {result.target}")
    print(f"Records Processed: {result.records_processed}")
    print(f"Inserted: {result.records_inserted}")
    print(f"Updated: {result.records_updated}")
    print(f"Skipped: {result.records_skipped}")
    print(f"Parse Errors: {len(result.parse_errors)}")
    if result.duration_seconds:
        print(f"Duration: {result.duration_seconds:.2f} seconds")
    if result.error:
        print(f"Error: {result.error['message']}")

    for row_error in result.row_errors[:20]:
        messages = "; ".join(e.message for e in row_error.errors)
        print(f"  row {row_error.position} (line {row_error.line}): {messages}")


if __name__ == "__main__":
    sys.exit(main())
