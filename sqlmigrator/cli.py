"""
Command line front end for sqlmigrator.

Examples:
    sqlmigrator --database app.db --service billing --migrations ./migrations migrate
    sqlmigrator --database app.db --service billing --migrations ./migrations migrate --dry-run
    sqlmigrator --database app.db --service billing --migrations ./migrations status
    sqlmigrator --database app.db --service billing --migrations ./migrations rollback
    sqlmigrator --database app.db --service billing --migrations ./migrations failed --limit 5
"""

from __future__ import annotations

import argparse
import logging
import os
import sys
from pathlib import Path

from .config import ConfigurationError, MigratorConfig
from .connection import SQLiteHandle
from .migrations import MigrationError, MigrationRunner
from .utils.sql import enforce_limit
from .utils.structured_logging import setup_logging

LOGGER = logging.getLogger(__name__)

MAX_LIST_LIMIT = 1000


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="sqlmigrator",
        description="Apply versioned SQL migrations and track them in a per-service ledger",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument(
        "--database",
        default=os.environ.get("SQLMIGRATOR_DATABASE"),
        help="SQLite database file (default: $SQLMIGRATOR_DATABASE)",
    )
    parser.add_argument(
        "--service",
        default=os.environ.get("SQLMIGRATOR_SERVICE", "default"),
        help="Service name; the ledger table is _migrations_<service>",
    )
    parser.add_argument(
        "--migrations",
        type=Path,
        default=Path(os.environ.get("SQLMIGRATOR_MIGRATIONS", "migrations")),
        help="Directory containing V<n>__<name>.sql files",
    )
    parser.add_argument("--config", type=Path, help="JSON file with migrator settings")
    parser.add_argument("--env-file", type=Path, help=".env file with migrator settings")
    parser.add_argument(
        "--continue-on-failure",
        action="store_true",
        default=None,
        help="Keep applying later migrations after one fails",
    )
    parser.add_argument(
        "--no-validate-checksums",
        dest="validate_checksums",
        action="store_false",
        default=None,
        help="Skip checksum drift detection for applied migrations",
    )
    parser.add_argument(
        "--sequential-scan",
        dest="concurrent_file_scan",
        action="store_false",
        default=None,
        help="Read migration files one at a time",
    )
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default="INFO",
        help="Logging level",
    )
    parser.add_argument("--json-logs", action="store_true", help="Emit JSON log lines")
    parser.add_argument("--log-file", type=Path, help="Also write logs to this file")

    subparsers = parser.add_subparsers(dest="command", required=True)

    migrate = subparsers.add_parser("migrate", help="Apply pending migrations")
    migrate.add_argument("--dry-run", action="store_true", help="Only show what would run")
    migrate.add_argument("--target", help="Apply migrations up to this version")

    subparsers.add_parser("status", help="Show ledger status and pending migrations")
    subparsers.add_parser("rollback", help="Roll back the last applied migration")

    failed = subparsers.add_parser("failed", help="List failed migration attempts")
    failed.add_argument("--limit", type=int, default=20, help="Maximum rows to show")

    history = subparsers.add_parser("history", help="List recorded migration attempts")
    history.add_argument("--version", dest="migration_version", help="Only this version")
    history.add_argument("--limit", type=int, default=100, help="Maximum rows to show")

    return parser


def load_config(args: argparse.Namespace) -> MigratorConfig:
    """Resolve settings: command line flags > environment > .env file > JSON file > defaults."""
    base = MigratorConfig.from_file(args.config) if args.config else MigratorConfig()
    config = MigratorConfig.from_env(env_file=args.env_file, base=base)

    overrides = {
        key: getattr(args, key)
        for key in ("continue_on_failure", "validate_checksums", "concurrent_file_scan")
        if getattr(args, key) is not None
    }
    if overrides:
        config = MigratorConfig.from_mapping({**config.model_dump(), **overrides})
    return config


def _print_records(records: list) -> None:
    if not records:
        print("No records")
        return
    for record in records:
        state = "ok" if record.success else "FAILED"
        line = (
            f"{record.version:>6}  {state:<6}  {record.applied_at:%Y-%m-%d %H:%M:%S}  "
            f"{record.execution_time_ms:>7} ms  {record.name}"
        )
        if record.error_message:
            line += f"\n        {record.error_message}"
        print(line)


def run_command(args: argparse.Namespace, runner: MigrationRunner) -> int:
    if args.command == "migrate":
        summary = runner.migrate(dry_run=args.dry_run, target_version=args.target)
        print(summary)
        return 1 if summary.has_failures else 0

    if args.command == "status":
        print(runner.get_migration_status())
        return 0

    if args.command == "rollback":
        migration = runner.rollback_last()
        print(f"Rolled back {migration.version}: {migration.name}")
        return 0

    if args.command == "failed":
        _print_records(runner.get_failed_migrations(enforce_limit(args.limit, MAX_LIST_LIMIT)))
        return 0

    if args.command == "history":
        if args.migration_version:
            _print_records(runner.get_migration_logs(args.migration_version))
        else:
            _print_records(runner.get_migration_history(enforce_limit(args.limit, MAX_LIST_LIMIT)))
        return 0

    raise ValueError(f"Unknown command: {args.command}")


def main(argv: list[str] | None = None) -> int:
    """Main entry point; returns the process exit status."""
    parser = build_parser()
    args = parser.parse_args(argv)

    setup_logging(level=args.log_level, json_format=args.json_logs, log_file=args.log_file)

    if not args.database:
        parser.error("--database is required (or set SQLMIGRATOR_DATABASE)")

    try:
        config = load_config(args)
    except ConfigurationError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 2

    with SQLiteHandle(args.database) as handle:
        runner = MigrationRunner(handle, args.service, args.migrations, config)
        try:
            return run_command(args, runner)
        except MigrationError as e:
            LOGGER.error("%s", e)
            print(f"Error: {e}", file=sys.stderr)
            return 1


if __name__ == "__main__":
    sys.exit(main())
