"""
Version and checksum validation for discovered migrations.
"""

from __future__ import annotations

import logging
from collections import Counter
from typing import TYPE_CHECKING

from .base import MigrationParseError, MigrationValidationError, MigrationVersion

if TYPE_CHECKING:
    from collections.abc import Iterable

    from .base import MigrationFile


LOGGER = logging.getLogger(__name__)


def _numeric_versions(versions: Iterable[str]) -> set[int]:
    numbers = set()
    for version in versions:
        try:
            numbers.add(MigrationVersion.parse(version).number)
        except MigrationParseError:
            LOGGER.warning("Ignoring ledger entry with non-numeric version %r", version)
    return numbers


def check_duplicate_versions(files: Iterable[MigrationFile]) -> None:
    """
    Reject migration sets where two files resolve to the same numeric version.

    Raises:
        MigrationValidationError: Naming every duplicated version
    """
    counts = Counter(f.migration_version.number for f in files)
    duplicates = sorted(number for number, count in counts.items() if count > 1)
    if duplicates:
        raise MigrationValidationError(
            [f"Duplicate migration version: {number}" for number in duplicates]
        )


def check_checksums(
    files: Iterable[MigrationFile], applied_rows: Iterable[tuple[str, str]]
) -> None:
    """
    Compare stored checksums of successful migrations with the files on disk.

    Args:
        files: Discovered migrations
        applied_rows: (version, checksum) pairs for successful ledger rows

    Raises:
        MigrationValidationError: Listing every mismatched version
    """
    by_number = {f.migration_version.number: f for f in files}
    errors: list[str] = []

    for version, stored_checksum in applied_rows:
        try:
            number = MigrationVersion.parse(version).number
        except MigrationParseError:
            LOGGER.warning("Ignoring ledger entry with non-numeric version %r", version)
            continue

        migration = by_number.get(number)
        if migration is None:
            LOGGER.warning("Applied migration %s not found in migration files", version)
            continue

        if migration.checksum != stored_checksum:
            errors.append(
                f"Migration {version}: checksum mismatch "
                f"(expected: {stored_checksum}, found: {migration.checksum})"
            )

    if errors:
        raise MigrationValidationError(errors)


def get_pending_migrations(
    files: Iterable[MigrationFile], applied_versions: Iterable[str]
) -> list[MigrationFile]:
    """
    Get migrations that have no successful ledger entry.

    Returns:
        Pending migrations in ascending numeric version order
    """
    applied = _numeric_versions(applied_versions)
    pending = [f for f in files if f.migration_version.number not in applied]
    pending.sort(key=lambda f: f.migration_version)
    return pending


def validate_migrations(
    files: list[MigrationFile],
    applied_rows: list[tuple[str, str]],
    validate_checksums: bool = True,
) -> list[MigrationFile]:
    """
    Validate the discovered set against the ledger and compute what is pending.

    Args:
        files: All migrations discovered on disk
        applied_rows: (version, checksum) pairs for successful ledger rows
        validate_checksums: Compare stored checksums with the files on disk

    Returns:
        Pending migrations sorted by version

    Raises:
        MigrationValidationError: On duplicate versions or checksum drift
    """
    check_duplicate_versions(files)

    if validate_checksums:
        check_checksums(files, applied_rows)
    else:
        known = {f.migration_version.number for f in files}
        for version in sorted(_numeric_versions(v for v, _ in applied_rows) - known):
            LOGGER.warning("Applied migration %s not found in migration files", version)

    return get_pending_migrations(files, [version for version, _ in applied_rows])
