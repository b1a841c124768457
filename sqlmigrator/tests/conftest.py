"""
Shared fixtures and test configuration for migration tests
"""

from pathlib import Path
import tempfile

import pytest

from sqlmigrator.config import MigratorConfig
from sqlmigrator.connection import SQLiteHandle
from sqlmigrator.migrations.runner import MigrationRunner


SERVICE_NAME = "test_service"
LEDGER_TABLE = f"_migrations_{SERVICE_NAME}"


class LiteralSQLiteHandle(SQLiteHandle):
    """SQLite handle that only accepts raw statement text, like drivers without binding."""

    supports_parameters = False

    def __init__(self, database):
        super().__init__(database)
        self.statements: list[str] = []

    def execute(self, sql, params=()):
        assert not params, "literal handle received bound parameters"
        self.statements.append(sql)
        super().execute(sql)

    def fetch_all(self, sql, params=()):
        assert not params, "literal handle received bound parameters"
        self.statements.append(sql)
        return super().fetch_all(sql)

    def table_exists(self, table_name):
        return bool(
            self.fetch_all(
                f"SELECT name FROM sqlite_master WHERE type = 'table' AND name = '{table_name}'"
            )
        )


def write_migration(directory: Path, filename: str, content: str) -> Path:
    """Write a migration file and return its path."""
    path = directory / filename
    path.write_text(content, encoding="utf-8")
    return path


def table_names(handle: SQLiteHandle) -> set[str]:
    rows = handle.fetch_all("SELECT name FROM sqlite_master WHERE type = 'table'")
    return {row[0] for row in rows}


def ledger_rows(handle: SQLiteHandle) -> list[tuple]:
    return handle.fetch_all(
        f"SELECT version, success, error_message FROM {LEDGER_TABLE} ORDER BY applied_at, rowid"
    )


@pytest.fixture
def temp_db():
    """Create a temporary SQLite database handle for testing."""
    with tempfile.NamedTemporaryFile(suffix=".db", delete=False) as f:
        db_path = f.name

    handle = SQLiteHandle(db_path)
    yield handle
    handle.close()

    # Clean up
    Path(db_path).unlink(missing_ok=True)


@pytest.fixture
def literal_db():
    """Temporary database behind a handle without parameter binding."""
    with tempfile.NamedTemporaryFile(suffix=".db", delete=False) as f:
        db_path = f.name

    handle = LiteralSQLiteHandle(db_path)
    yield handle
    handle.close()

    Path(db_path).unlink(missing_ok=True)


@pytest.fixture
def migrations_dir():
    """Create a temporary migrations directory."""
    with tempfile.TemporaryDirectory() as temp_dir:
        yield Path(temp_dir)


@pytest.fixture
def make_runner(temp_db, migrations_dir):
    """Factory for runners bound to the temporary database and directory."""

    def _make(**config_values) -> MigrationRunner:
        return MigrationRunner(
            temp_db, SERVICE_NAME, migrations_dir, MigratorConfig(**config_values)
        )

    return _make
