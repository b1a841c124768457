"""
Database handle abstractions used by the migration engine.

The engine only needs to run statement text and read rows back; any driver
can be plugged in by implementing DatabaseHandle. SQLiteHandle is the
bundled implementation on top of the standard sqlite3 driver.
"""

from __future__ import annotations

import logging
import sqlite3
from pathlib import Path
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

if TYPE_CHECKING:
    from collections.abc import Sequence


LOGGER = logging.getLogger(__name__)


@runtime_checkable
class DatabaseHandle(Protocol):
    """Minimal database surface the migration engine depends on."""

    supports_parameters: bool

    def execute(self, sql: str, params: Sequence[Any] = ()) -> None:
        """Execute one statement; raise on failure."""
        ...

    def fetch_all(self, sql: str, params: Sequence[Any] = ()) -> list[tuple]:
        """Execute a query and return every row."""
        ...

    def table_exists(self, table_name: str) -> bool:
        """Check whether a table exists in the current database."""
        ...


class SQLiteHandle:
    """
    DatabaseHandle backed by sqlite3.

    The connection runs in autocommit mode: every statement is durable as soon
    as it returns, so the ledger is consistent up to the last recorded attempt
    even if a run is interrupted.
    """

    supports_parameters = True

    def __init__(self, database: str | Path, timeout: float = 5.0):
        """
        Initialize the handle.

        Args:
            database: Path to the database file, or ":memory:"
            timeout: Seconds to wait on a locked database
        """
        self.database = str(database)
        self.timeout = timeout
        self._conn: sqlite3.Connection | None = None

    @property
    def connection(self) -> sqlite3.Connection:
        if self._conn is None:
            self._conn = self._connect()
        return self._conn

    def _connect(self) -> sqlite3.Connection:
        if self.database != ":memory:":
            db_path = Path(self.database)
            if not db_path.parent.exists():
                LOGGER.info("Creating database folder %s", db_path.parent)
                db_path.parent.mkdir(parents=True, exist_ok=True)

        conn = sqlite3.connect(self.database, timeout=self.timeout, isolation_level=None)
        # Test the connection
        conn.execute("SELECT 1")
        LOGGER.debug("Connected to SQLite database %s", self.database)
        return conn

    def execute(self, sql: str, params: Sequence[Any] = ()) -> None:
        self.connection.execute(sql, tuple(params))

    def fetch_all(self, sql: str, params: Sequence[Any] = ()) -> list[tuple]:
        cursor = self.connection.execute(sql, tuple(params))
        return cursor.fetchall()

    def table_exists(self, table_name: str) -> bool:
        rows = self.fetch_all(
            "SELECT name FROM sqlite_master WHERE type = 'table' AND name = ?", (table_name,)
        )
        return bool(rows)

    def close(self) -> None:
        if self._conn is not None:
            self._conn.close()
            self._conn = None

    def __enter__(self) -> SQLiteHandle:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def __repr__(self) -> str:
        return f"SQLiteHandle(database='{self.database}')"
