"""
Migration history store: the per-service ledger of execution attempts.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from ..utils.sql import normalize_identifier, render_statement, validate_identifier
from .base import MigrationParseError, MigrationRecord, MigrationVersion, format_timestamp

if TYPE_CHECKING:
    from collections.abc import Sequence

    from ..connection import DatabaseHandle


LOGGER = logging.getLogger(__name__)

TABLE_PREFIX = "_migrations_"
RECORD_COLUMNS = "version, name, applied_at, execution_time_ms, checksum, success, error_message"


def migrations_table_name(service_name: str) -> str:
    """Derive the ledger table name for a service, e.g. "billing-api" -> "_migrations_billing_api"."""
    return validate_identifier(TABLE_PREFIX + normalize_identifier(service_name))


class MigrationHistory:
    """
    Append-only ledger of migration attempts for one service.

    Every attempt, failed or not, becomes a new row; rows are never updated.
    A version counts as applied when it has at least one successful row.
    """

    def __init__(self, handle: DatabaseHandle, service_name: str):
        """
        Initialize the history store.

        Args:
            handle: Database handle shared with the runner
            service_name: Identifier the ledger table name is derived from
        """
        self.handle = handle
        self.service_name = service_name
        self.table_name = migrations_table_name(service_name)

    def _execute(self, sql: str, params: Sequence[Any] = ()) -> None:
        if params and not self.handle.supports_parameters:
            self.handle.execute(render_statement(sql, params))
        else:
            self.handle.execute(sql, params)

    def _fetch_all(self, sql: str, params: Sequence[Any] = ()) -> list[tuple]:
        if params and not self.handle.supports_parameters:
            return self.handle.fetch_all(render_statement(sql, params))
        return self.handle.fetch_all(sql, params)

    def ensure_table(self) -> None:
        """Create the ledger table and its index if they do not exist."""
        self._execute(
            f"""
            CREATE TABLE IF NOT EXISTS {self.table_name} (
                version TEXT NOT NULL,
                name TEXT NOT NULL,
                applied_at TEXT NOT NULL DEFAULT (strftime('%Y-%m-%d %H:%M:%f', 'now')),
                execution_time_ms INTEGER NOT NULL DEFAULT 0 CHECK (execution_time_ms >= 0),
                checksum TEXT NOT NULL,
                success INTEGER NOT NULL CHECK (success IN (0, 1)),
                error_message TEXT NOT NULL DEFAULT ''
            )
            """
        )
        self._execute(
            f"CREATE INDEX IF NOT EXISTS idx{self.table_name}_version "
            f"ON {self.table_name}(version)"
        )
        LOGGER.debug("Migration table %s ensured", self.table_name)

    def table_exists(self) -> bool:
        return self.handle.table_exists(self.table_name)

    def insert_record(self, record: MigrationRecord) -> None:
        """Append one attempt to the ledger."""
        self._execute(
            f"INSERT INTO {self.table_name} ({RECORD_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?)",
            (
                record.version,
                record.name,
                format_timestamp(record.applied_at),
                max(0, int(record.execution_time_ms)),
                record.checksum,
                1 if record.success else 0,
                record.error_message or "",
            ),
        )

    def get_applied_versions(self) -> set[str]:
        """Versions with at least one successful attempt."""
        rows = self._fetch_all(
            f"SELECT DISTINCT version FROM {self.table_name} WHERE success = 1"
        )
        return {row[0] for row in rows}

    def get_applied_checksums(self) -> list[tuple[str, str]]:
        """(version, checksum) for every successful attempt, oldest first."""
        rows = self._fetch_all(
            f"SELECT version, checksum FROM {self.table_name} "
            "WHERE success = 1 ORDER BY applied_at, rowid"
        )
        return [(row[0], row[1]) for row in rows]

    def get_all_records(self, limit: int | None = None) -> list[MigrationRecord]:
        """Every attempt in the order it was recorded."""
        # rowid breaks same-millisecond ties in insertion order
        sql = f"SELECT {RECORD_COLUMNS} FROM {self.table_name} ORDER BY applied_at, rowid"
        params: tuple[Any, ...] = ()
        if limit is not None:
            sql += " LIMIT ?"
            params = (int(limit),)
        return [MigrationRecord.from_row(row) for row in self._fetch_all(sql, params)]

    def get_failed_records(self, limit: int | None = None) -> list[MigrationRecord]:
        """Failed attempts, most recent first."""
        sql = (
            f"SELECT {RECORD_COLUMNS} FROM {self.table_name} "
            "WHERE success = 0 ORDER BY applied_at DESC, rowid DESC"
        )
        params: tuple[Any, ...] = ()
        if limit is not None:
            sql += " LIMIT ?"
            params = (int(limit),)
        return [MigrationRecord.from_row(row) for row in self._fetch_all(sql, params)]

    def get_records_for_version(self, version: str) -> list[MigrationRecord]:
        """Every attempt for one version, most recent first."""
        rows = self._fetch_all(
            f"SELECT {RECORD_COLUMNS} FROM {self.table_name} "
            "WHERE version = ? ORDER BY applied_at DESC, rowid DESC",
            (version,),
        )
        return [MigrationRecord.from_row(row) for row in rows]

    def get_last_applied(self) -> MigrationRecord | None:
        """
        The successful attempt with the highest numeric version.

        Versions are stored as text, so ordering happens here rather than in SQL
        ("10" sorts before "9" as text).
        """
        rows = self._fetch_all(
            f"SELECT {RECORD_COLUMNS} FROM {self.table_name} "
            "WHERE success = 1 ORDER BY applied_at DESC, rowid DESC"
        )
        best: tuple[MigrationVersion, MigrationRecord] | None = None
        for row in rows:
            record = MigrationRecord.from_row(row)
            try:
                version = MigrationVersion.parse(record.version)
            except MigrationParseError:
                LOGGER.warning("Ignoring ledger entry with non-numeric version %r", record.version)
                continue
            if best is None or version > best[0]:
                best = (version, record)
        return best[1] if best else None

    def delete_version(self, version: str) -> None:
        """Remove every ledger row for a version. Used by rollback only."""
        self._execute(f"DELETE FROM {self.table_name} WHERE version = ?", (version,))
