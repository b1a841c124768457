"""
SQL Migration System

Versioned ``V<n>__<name>.sql`` files are discovered on disk, validated against
a per-service ledger table and executed in version order.
"""

from .base import (
    FailedMigration,
    MigrationError,
    MigrationExecutionError,
    MigrationFile,
    MigrationParseError,
    MigrationRecord,
    MigrationRollbackError,
    MigrationStatus,
    MigrationSummary,
    MigrationValidationError,
    MigrationVersion,
    RunOutcome,
)
from .history import MigrationHistory, migrations_table_name
from .loader import parse_migration_file, scan_migration_files
from .runner import MigrationRunner
from .splitter import split_sql_statements
from .validator import validate_migrations

__all__ = [
    "FailedMigration",
    "MigrationError",
    "MigrationExecutionError",
    "MigrationFile",
    "MigrationHistory",
    "MigrationParseError",
    "MigrationRecord",
    "MigrationRollbackError",
    "MigrationRunner",
    "MigrationStatus",
    "MigrationSummary",
    "MigrationValidationError",
    "MigrationVersion",
    "RunOutcome",
    "migrations_table_name",
    "parse_migration_file",
    "scan_migration_files",
    "split_sql_statements",
    "validate_migrations",
]
