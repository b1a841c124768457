"""
Base migration types and errors for the sqlmigrator migration system.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from pathlib import Path


BASELINE_VERSION = 0
TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S.%f"


class MigrationError(Exception):
    """Exception raised during migration processing."""


class MigrationParseError(MigrationError):
    """A migration file name or body could not be parsed."""


class MigrationValidationError(MigrationError):
    """Discovered migrations are inconsistent with each other or with the ledger."""

    def __init__(self, errors: list[str]):
        self.errors = list(errors)
        super().__init__("Migration validation failed:\n" + "\n".join(self.errors))


class MigrationExecutionError(MigrationError):
    """A migration statement failed against the database."""


class MigrationRollbackError(MigrationError):
    """The last applied migration could not be rolled back."""


def format_timestamp(value: datetime) -> str:
    """Render a timestamp with millisecond precision, as stored in the ledger."""
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc)
    return value.strftime(TIMESTAMP_FORMAT)[:-3]


def parse_timestamp(value: str | datetime) -> datetime:
    """Parse a ledger timestamp into an aware UTC datetime."""
    parsed = value if isinstance(value, datetime) else datetime.fromisoformat(str(value))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


@dataclass(frozen=True, order=True)
class MigrationVersion:
    """Numeric migration version; the original spelling is kept for display."""

    number: int
    original: str = field(compare=False)

    @classmethod
    def parse(cls, version: str) -> MigrationVersion:
        """
        Parse a version string such as "001".

        Raises:
            MigrationParseError: If the value is not an unsigned integer
        """
        text = str(version).strip()
        if not text.isdigit() or not text.isascii():
            raise MigrationParseError(f"Invalid version number: {version}")
        return cls(int(text), text)

    def __str__(self) -> str:
        return self.original


@dataclass(frozen=True)
class MigrationFile:
    """A migration discovered on disk. Immutable once parsed."""

    version: str
    name: str
    up_sql: str
    down_sql: str | None
    checksum: str
    is_baseline: bool
    path: Path | None = field(default=None, compare=False)

    @property
    def migration_version(self) -> MigrationVersion:
        return MigrationVersion.parse(self.version)

    @property
    def full_name(self) -> str:
        """Get the full migration identifier."""
        return f"{self.version}_{self.name}"

    @property
    def supports_rollback(self) -> bool:
        return bool(self.down_sql and self.down_sql.strip())

    def __str__(self) -> str:
        return f"Migration({self.full_name})"


@dataclass
class MigrationRecord:
    """One ledger row: a single execution attempt of a migration."""

    version: str
    name: str
    applied_at: datetime
    execution_time_ms: int
    checksum: str
    success: bool
    error_message: str = ""

    @property
    def full_name(self) -> str:
        """Get the full migration identifier."""
        return f"{self.version}_{self.name}"

    @classmethod
    def from_row(cls, row: tuple) -> MigrationRecord:
        """Create a MigrationRecord from a ledger row."""
        version, name, applied_at, execution_time_ms, checksum, success, error_message = row
        return cls(
            version=str(version),
            name=name,
            applied_at=parse_timestamp(applied_at),
            execution_time_ms=int(execution_time_ms or 0),
            checksum=checksum or "",
            success=bool(int(success)),
            error_message=error_message or "",
        )

    def __str__(self) -> str:
        state = "ok" if self.success else "failed"
        return f"MigrationRecord({self.full_name}, {state}, applied_at={format_timestamp(self.applied_at)})"


@dataclass
class FailedMigration:
    version: str
    name: str
    error: str


class RunOutcome(str, Enum):
    """Terminal state of one migrate() invocation."""

    NO_OP = "no_op"
    SUCCESS = "success"
    PARTIAL_FAILURE = "partial_failure"


@dataclass
class MigrationSummary:
    """Result of one migrate() invocation. Not persisted."""

    successful: list[MigrationRecord] = field(default_factory=list)
    failed: list[FailedMigration] = field(default_factory=list)
    total_time: float = 0.0
    pending: list[MigrationFile] = field(default_factory=list)
    dry_run: bool = False
    unrecorded: list[str] = field(default_factory=list)

    @property
    def total_executed(self) -> int:
        return len(self.successful) + len(self.failed)

    @property
    def is_success(self) -> bool:
        return not self.failed

    @property
    def has_failures(self) -> bool:
        return bool(self.failed)

    @property
    def total_time_ms(self) -> int:
        return int(self.total_time * 1000)

    @property
    def outcome(self) -> RunOutcome:
        if self.failed:
            return RunOutcome.PARTIAL_FAILURE
        if self.successful:
            return RunOutcome.SUCCESS
        return RunOutcome.NO_OP

    def __str__(self) -> str:
        if self.dry_run:
            lines = [f"Migration plan: {len(self.pending)} pending migration(s)"]
            lines.extend(f"  - {m.version}: {m.name}" for m in self.pending)
            return "\n".join(lines)

        if self.outcome is RunOutcome.NO_OP:
            return "No pending migrations; database is up to date"

        lines = [
            "Migration Summary:",
            f"  Ran: {self.total_executed}",
            f"  Successful: {len(self.successful)}",
            f"  Failed: {len(self.failed)}",
            f"  Total time: {self.total_time_ms} ms",
        ]
        for record in self.successful:
            lines.append(f"  + {record.version}: {record.name} ({record.execution_time_ms} ms)")
        if self.failed:
            lines.append("")
            lines.append("Failed migrations:")
            lines.extend(f"  - {f.version} ({f.name}): {f.error}" for f in self.failed)
        if self.unrecorded:
            lines.append("")
            lines.append("Ledger write failed for: " + ", ".join(self.unrecorded))
        return "\n".join(lines)


@dataclass
class MigrationStatus:
    """Point-in-time view of the ledger against the files on disk."""

    service_name: str
    migrations_table: str
    table_exists: bool
    total_migrations: int
    last_migration: str | None
    pending_versions: list[str] = field(default_factory=list)
    failed_attempts: int = 0
    checksum_mismatches: list[str] = field(default_factory=list)

    @property
    def is_up_to_date(self) -> bool:
        return not self.pending_versions

    @property
    def has_drift(self) -> bool:
        return bool(self.checksum_mismatches)

    def __str__(self) -> str:
        lines = [
            f"Migration Status for service: {self.service_name}",
            f"  Table: {self.migrations_table}",
            f"  Table exists: {self.table_exists}",
            f"  Total applied migrations: {self.total_migrations}",
        ]
        if self.last_migration is not None:
            lines.append(f"  Last migration: {self.last_migration}")
        lines.append(f"  Pending migrations: {len(self.pending_versions)}")
        if self.pending_versions:
            lines.append("    " + ", ".join(self.pending_versions))
        if self.failed_attempts:
            lines.append(f"  Failed attempts recorded: {self.failed_attempts}")
        if self.checksum_mismatches:
            lines.append(f"  Checksum mismatches: {len(self.checksum_mismatches)}")
            lines.extend(f"    {mismatch}" for mismatch in self.checksum_mismatches)
        return "\n".join(lines)
