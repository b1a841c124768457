"""
Migration loader utilities for discovering and parsing SQL migration files.
"""

from __future__ import annotations

import hashlib
import logging
import re
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path

from .base import BASELINE_VERSION, MigrationFile, MigrationParseError, MigrationVersion

LOGGER = logging.getLogger(__name__)

FILENAME_PATTERN = re.compile(r"^V([0-9]+)__(.+)$")
EXPECTED_FORMAT = "V001__description.sql"
UP_MARKER = "-- +migrate Up"
DOWN_MARKER = "-- +migrate Down"
DEFAULT_SCAN_WORKERS = 8


def parse_migration_filename(filename: str) -> tuple[str, str]:
    """
    Split a migration filename into its version and human-readable name.

    Args:
        filename: File name with or without the ``.sql`` extension

    Returns:
        (version, name) where name has underscores replaced by spaces

    Raises:
        MigrationParseError: If the name does not follow ``V<digits>__<description>``
    """
    stem = Path(filename).stem
    match = FILENAME_PATTERN.match(stem)
    if not match:
        raise MigrationParseError(
            f"Invalid migration filename format: {stem} (expected: {EXPECTED_FORMAT})"
        )
    return match.group(1), match.group(2).replace("_", " ")


def _is_metadata_comment(stripped: str) -> bool:
    # "-- note" is metadata; lines carrying a block comment or a second
    # comment marker are kept as written
    if not stripped.startswith("-- "):
        return False
    rest = stripped[3:]
    return "/*" not in rest and "--" not in rest


def parse_sql_content(content: str) -> tuple[str, str | None]:
    """
    Separate a migration body into its up and down sections.

    Returns:
        (up_sql, down_sql); down_sql is None when there is no Down marker
    """
    up_lines: list[str] = []
    down_lines: list[str] | None = None
    in_down = False

    # only "\n" ends a line; str.splitlines() would also break on form feeds
    # and unicode separators inside string literals
    for line in content.split("\n"):
        if line.endswith("\r"):
            line = line[:-1]
        stripped = line.strip()

        if stripped == UP_MARKER:
            in_down = False
            continue
        if stripped == DOWN_MARKER:
            in_down = True
            if down_lines is None:
                down_lines = []
            continue

        if _is_metadata_comment(stripped):
            continue

        if in_down and down_lines is not None:
            down_lines.append(line + "\n")
        else:
            up_lines.append(line + "\n")

    up_sql = "".join(up_lines).strip()
    down_sql = "".join(down_lines).strip() if down_lines is not None else None
    return up_sql, down_sql


def calculate_checksum(up_sql: str) -> str:
    """SHA-256 hex digest of the trimmed up body."""
    return hashlib.sha256(up_sql.strip().encode("utf-8")).hexdigest()


def parse_migration_file(filename: str, content: str, path: Path | None = None) -> MigrationFile:
    """
    Build a MigrationFile from a file name and its full text.

    Raises:
        MigrationParseError: If the file name is malformed
    """
    version, name = parse_migration_filename(filename)
    up_sql, down_sql = parse_sql_content(content)
    is_baseline = MigrationVersion.parse(version).number == BASELINE_VERSION or not up_sql

    return MigrationFile(
        version=version,
        name=name,
        up_sql=up_sql,
        down_sql=down_sql,
        checksum=calculate_checksum(up_sql),
        is_baseline=is_baseline,
        path=path,
    )


def load_migration_file(migration_file: Path) -> MigrationFile:
    """
    Read and parse one migration file.

    Raises:
        MigrationParseError: If the file name is malformed
        OSError, UnicodeDecodeError: If the file cannot be read
    """
    content = migration_file.read_text(encoding="utf-8")
    return parse_migration_file(migration_file.name, content, path=migration_file)


def scan_migration_files(
    migrations_dir: Path | str,
    concurrent_scan: bool = True,
    max_workers: int = DEFAULT_SCAN_WORKERS,
) -> list[MigrationFile]:
    """
    Load all ``*.sql`` migrations from a directory.

    Files that cannot be read or whose names are malformed are logged and
    skipped; one bad file does not stop discovery of the rest.

    Args:
        migrations_dir: Directory containing migration files
        concurrent_scan: Read files on a thread pool
        max_workers: Thread pool size when reading concurrently

    Returns:
        Parsed migrations sorted by numeric version
    """
    migrations_dir = Path(migrations_dir)
    if not migrations_dir.is_dir():
        LOGGER.warning("Migrations directory does not exist: %s", migrations_dir)
        return []

    sql_files = [p for p in migrations_dir.glob("*.sql") if p.is_file()]

    if concurrent_scan and len(sql_files) > 1:
        with ThreadPoolExecutor(max_workers=max(1, max_workers)) as executor:
            loaded = list(executor.map(_load_or_skip, sql_files))
    else:
        loaded = [_load_or_skip(sql_file) for sql_file in sql_files]

    migrations = [m for m in loaded if m is not None]
    migrations.sort(key=lambda m: (m.migration_version, m.name))
    LOGGER.info("Scanned %d migration files in %s", len(migrations), migrations_dir)
    return migrations


def _load_or_skip(sql_file: Path) -> MigrationFile | None:
    try:
        migration = load_migration_file(sql_file)
    except (MigrationParseError, OSError, UnicodeDecodeError) as e:
        LOGGER.warning("Skipping migration file %s: %s", sql_file, e)
        return None
    LOGGER.debug("Parsed migration: %s", migration.full_name)
    return migration
