"""
Migration runner for executing SQL migrations in order.
"""

from __future__ import annotations

import logging
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import TYPE_CHECKING

from ..config import MigratorConfig
from .base import (
    FailedMigration,
    MigrationExecutionError,
    MigrationFile,
    MigrationRecord,
    MigrationRollbackError,
    MigrationStatus,
    MigrationSummary,
    MigrationValidationError,
    MigrationVersion,
)
from .history import MigrationHistory
from .loader import scan_migration_files
from .splitter import split_sql_statements
from .validator import (
    check_checksums,
    check_duplicate_versions,
    get_pending_migrations,
    validate_migrations,
)

if TYPE_CHECKING:
    from ..connection import DatabaseHandle


LOGGER = logging.getLogger(__name__)

PREVIEW_CHARS = 100


def _preview(statement: str) -> str:
    flat = " ".join(statement.split())
    return flat if len(flat) <= PREVIEW_CHARS else flat[:PREVIEW_CHARS] + "..."


class MigrationRunner:
    """
    Discovers, validates and executes SQL migrations for one service.

    Usage:
        with SQLiteHandle("app.db") as handle:
            runner = MigrationRunner(handle, "billing", Path("migrations"))
            summary = runner.migrate()
    """

    def __init__(
        self,
        handle: DatabaseHandle,
        service_name: str,
        migrations_dir: Path | str,
        config: MigratorConfig | None = None,
    ):
        """
        Initialize the migration runner.

        Args:
            handle: Database handle; owned by the caller, borrowed per call
            service_name: Service identifier (names the ledger table)
            migrations_dir: Directory holding ``V<n>__<name>.sql`` files
            config: Run policy; fixed for the lifetime of the runner
        """
        self.handle = handle
        self.service_name = service_name
        self.migrations_dir = Path(migrations_dir)
        self.config = config or MigratorConfig()
        self.history = MigrationHistory(handle, service_name)

    def scan(self) -> list[MigrationFile]:
        """Discover and parse migration files. Results are never cached."""
        return scan_migration_files(
            self.migrations_dir,
            concurrent_scan=self.config.concurrent_file_scan,
            max_workers=self.config.max_scan_workers,
        )

    def get_pending_migrations(self) -> list[MigrationFile]:
        """
        Get migrations that haven't been applied yet.

        Raises:
            MigrationValidationError: On duplicate versions or checksum drift
        """
        self.history.ensure_table()
        return validate_migrations(
            self.scan(),
            self.history.get_applied_checksums(),
            validate_checksums=self.config.validate_checksums,
        )

    def migrate(self, dry_run: bool = False, target_version: str | None = None) -> MigrationSummary:
        """
        Run all pending migrations.

        Args:
            dry_run: If True, report the plan without executing anything
            target_version: If specified, run migrations up to this version

        Returns:
            Summary of the run

        Raises:
            MigrationValidationError: If validation fails; nothing is executed
            MigrationParseError: If target_version is not a number
        """
        start = time.perf_counter()
        LOGGER.info("Starting migration for service '%s'", self.service_name)

        self.history.ensure_table()

        files = self.scan()
        if not files:
            LOGGER.warning("No migration files found in %s", self.migrations_dir)
            return MigrationSummary(total_time=time.perf_counter() - start, dry_run=dry_run)

        pending = validate_migrations(
            files,
            self.history.get_applied_checksums(),
            validate_checksums=self.config.validate_checksums,
        )

        if target_version is not None:
            target = MigrationVersion.parse(target_version)
            pending = [m for m in pending if m.migration_version <= target]

        if not pending:
            LOGGER.info("No pending migrations for service '%s'", self.service_name)
            return MigrationSummary(total_time=time.perf_counter() - start, dry_run=dry_run)

        LOGGER.info("Found %d pending migrations", len(pending))
        for migration in pending:
            LOGGER.info(
                "Pending migration %s: %s (baseline=%s, checksum=%s)",
                migration.version,
                migration.name,
                migration.is_baseline,
                migration.checksum[:8],
            )

        if dry_run:
            LOGGER.info(
                "DRY RUN: Would execute %d migrations for service '%s': %s",
                len(pending),
                self.service_name,
                [m.full_name for m in pending],
            )
            return MigrationSummary(
                total_time=time.perf_counter() - start, pending=pending, dry_run=True
            )

        summary = MigrationSummary(pending=pending)
        for index, migration in enumerate(pending, 1):
            LOGGER.info("Executing migration %d/%d: %s", index, len(pending), migration.full_name)
            record = self._execute_migration(migration)

            try:
                self.history.insert_record(record)
            except Exception as e:  # driver errors vary by handle
                LOGGER.warning(
                    "Failed to save migration record for %s; ledger is out of sync: %s",
                    migration.version,
                    e,
                )
                summary.unrecorded.append(migration.version)

            if record.success:
                summary.successful.append(record)
                continue

            summary.failed.append(
                FailedMigration(migration.version, migration.name, record.error_message)
            )
            if not self.config.continue_on_failure:
                LOGGER.error("Stopping migration execution due to failure of %s", migration.version)
                break
            LOGGER.warning("Continuing with remaining migrations after failure of %s", migration.version)

        summary.total_time = time.perf_counter() - start
        LOGGER.info(
            "Migration completed for service '%s': %d successful, %d failed in %d ms",
            self.service_name,
            len(summary.successful),
            len(summary.failed),
            summary.total_time_ms,
        )
        return summary

    def _execute_migration(self, migration: MigrationFile) -> MigrationRecord:
        """Run one migration and describe the attempt. Never raises for SQL errors."""
        start = time.perf_counter()
        error_message = ""

        if migration.is_baseline:
            LOGGER.info("Baseline migration %s detected, skipping SQL execution", migration.version)
        else:
            try:
                self._execute_sql(migration.up_sql)
            except MigrationExecutionError as e:
                error_message = f"Failed to execute migration {migration.full_name}: {e}"

        elapsed_ms = int((time.perf_counter() - start) * 1000)
        if error_message:
            LOGGER.error("Migration %s failed after %d ms: %s", migration.version, elapsed_ms, error_message)
        else:
            LOGGER.info("Migration %s completed successfully in %d ms", migration.version, elapsed_ms)

        return MigrationRecord(
            version=migration.version,
            name=migration.name,
            applied_at=datetime.now(timezone.utc),
            execution_time_ms=elapsed_ms,
            checksum=migration.checksum,
            success=not error_message,
            error_message=error_message,
        )

    def _execute_sql(self, sql: str) -> None:
        """
        Execute a migration body statement by statement.

        Raises:
            MigrationExecutionError: On the first failing statement
        """
        statements = split_sql_statements(sql)
        if not statements:
            LOGGER.debug("Empty SQL content, skipping execution")
            return

        total = len(statements)
        for i, statement in enumerate(statements, 1):
            LOGGER.debug("Executing statement %d/%d: %s", i, total, _preview(statement))
            try:
                self.handle.execute(statement)
            except Exception as e:  # driver errors vary by handle
                raise MigrationExecutionError(
                    f"statement {i}/{total} failed: {_preview(statement)}: {e}"
                ) from e

    def rollback_last(self) -> MigrationFile:
        """
        Roll back the most recently applied (highest version) migration.

        Returns:
            The migration that was rolled back

        Raises:
            MigrationRollbackError: If nothing can be rolled back or the down SQL fails
        """
        self.history.ensure_table()

        last = self.history.get_last_applied()
        if last is None:
            raise MigrationRollbackError("No successful migration to roll back")

        files = self.scan()
        try:
            check_duplicate_versions(files)
        except MigrationValidationError as e:
            raise MigrationRollbackError(f"Cannot roll back migration {last.version}: {e}") from e

        target = MigrationVersion.parse(last.version)
        migration = next((m for m in files if m.migration_version == target), None)
        if migration is None:
            raise MigrationRollbackError(f"Migration file for version {last.version} not found")
        if self.config.validate_checksums and migration.checksum != last.checksum:
            raise MigrationRollbackError(
                f"Migration {last.version}: checksum mismatch "
                f"(expected: {last.checksum}, found: {migration.checksum}); refusing to roll back"
            )
        if not migration.supports_rollback:
            raise MigrationRollbackError(f"Migration {last.version} does not support rollback")

        LOGGER.info(
            "Rolling back migration %s for service '%s'", migration.full_name, self.service_name
        )
        try:
            self._execute_sql(migration.down_sql or "")
        except MigrationExecutionError as e:
            error_msg = f"Failed to rollback migration {migration.full_name}: {e}"
            LOGGER.error(error_msg)
            raise MigrationRollbackError(error_msg) from e

        self.history.delete_version(last.version)
        LOGGER.info("Successfully rolled back migration %s", migration.full_name)
        return migration

    def get_migration_status(self) -> MigrationStatus:
        """
        Get the current migration status.

        Checksum drift is reported in the status instead of raised, so the
        status stays readable in the situation that blocks migrate().

        Raises:
            MigrationValidationError: If the files on disk share a version
        """
        table_exists = self.history.table_exists()
        if not table_exists:
            pending = validate_migrations(self.scan(), [], validate_checksums=False)
            return MigrationStatus(
                service_name=self.service_name,
                migrations_table=self.history.table_name,
                table_exists=False,
                total_migrations=0,
                last_migration=None,
                pending_versions=[m.version for m in pending],
            )

        files = self.scan()
        applied_rows = self.history.get_applied_checksums()
        check_duplicate_versions(files)

        mismatches: list[str] = []
        if self.config.validate_checksums:
            try:
                check_checksums(files, applied_rows)
            except MigrationValidationError as e:
                mismatches = e.errors

        last = self.history.get_last_applied()
        pending = get_pending_migrations(files, [version for version, _ in applied_rows])
        return MigrationStatus(
            service_name=self.service_name,
            migrations_table=self.history.table_name,
            table_exists=True,
            total_migrations=len(self.history.get_applied_versions()),
            last_migration=last.version if last else None,
            pending_versions=[m.version for m in pending],
            failed_attempts=len(self.history.get_failed_records()),
            checksum_mismatches=mismatches,
        )

    def get_failed_migrations(self, limit: int | None = None) -> list[MigrationRecord]:
        """Failed attempts, most recent first."""
        if not self.history.table_exists():
            return []
        return self.history.get_failed_records(limit)

    def get_migration_history(self, limit: int | None = None) -> list[MigrationRecord]:
        """Every recorded attempt, oldest first."""
        if not self.history.table_exists():
            return []
        return self.history.get_all_records(limit)

    def get_migration_logs(self, version: str) -> list[MigrationRecord]:
        """
        Every recorded attempt for one version, most recent first.

        Raises:
            MigrationParseError: If version is not a number
        """
        MigrationVersion.parse(version)
        if not self.history.table_exists():
            return []
        return self.history.get_records_for_version(version)
