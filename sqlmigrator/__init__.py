"""
sqlmigrator - versioned SQL schema migrations with a durable per-service ledger.
"""

from .config import ConfigurationError, MigratorConfig
from .connection import DatabaseHandle, SQLiteHandle
from .migrations import (
    MigrationError,
    MigrationRunner,
    MigrationSummary,
    MigrationValidationError,
    RunOutcome,
)

__version__ = "1.0.0"

__all__ = [
    "ConfigurationError",
    "DatabaseHandle",
    "MigrationError",
    "MigrationRunner",
    "MigrationSummary",
    "MigrationValidationError",
    "MigratorConfig",
    "RunOutcome",
    "SQLiteHandle",
]
