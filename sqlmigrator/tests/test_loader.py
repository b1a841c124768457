"""
Tests for parsing and discovering migration files.
"""

import hashlib
import logging

import pytest

from sqlmigrator.migrations.base import MigrationParseError, MigrationVersion
from sqlmigrator.migrations.loader import (
    calculate_checksum,
    parse_migration_file,
    parse_migration_filename,
    parse_sql_content,
    scan_migration_files,
)

from .conftest import write_migration


class TestParseMigrationFilename:
    """Test filename grammar V<digits>__<description>."""

    @pytest.mark.parametrize("version", ["0", "7", "042", "1000"])
    def test_version_and_name_round_trip(self, version):
        """Test that the version is kept verbatim and the name is space separated."""
        parsed_version, name = parse_migration_filename(f"V{version}__add_user_status.sql")

        assert parsed_version == version
        assert name == "add user status"
        assert MigrationVersion.parse(parsed_version).number == int(version)

    def test_extension_is_optional(self):
        """Test parsing a bare stem."""
        assert parse_migration_filename("V003__create_user_profiles_table") == (
            "003",
            "create user profiles table",
        )

    def test_non_ascii_description(self):
        """Test that any description text is accepted."""
        assert parse_migration_filename("V006__改变数据类型.sql") == ("006", "改变数据类型")

    @pytest.mark.parametrize(
        "filename",
        ["001_create.sql", "V1_create.sql", "v001__create.sql", "V__create.sql", "Vabc__x.sql"],
    )
    def test_invalid_filenames(self, filename):
        """Test that malformed names report the expected format."""
        with pytest.raises(MigrationParseError) as exc_info:
            parse_migration_filename(filename)

        assert "expected: V001__description.sql" in str(exc_info.value)


class TestParseSqlContent:
    """Test up/down section parsing."""

    def test_up_and_down_sections(self):
        """Test splitting on both markers; blank lines are kept."""
        content = (
            "-- +migrate Up\n"
            "CREATE TABLE a (id INT);\n"
            "\n"
            "INSERT INTO a VALUES (1);\n"
            "-- +migrate Down\n"
            "DROP TABLE a;\n"
        )

        up_sql, down_sql = parse_sql_content(content)

        assert up_sql == "CREATE TABLE a (id INT);\n\nINSERT INTO a VALUES (1);"
        assert down_sql == "DROP TABLE a;"

    def test_no_markers_is_all_up(self):
        """Test that a file without markers is entirely up SQL."""
        up_sql, down_sql = parse_sql_content("CREATE TABLE b (id INT);\n")

        assert up_sql == "CREATE TABLE b (id INT);"
        assert down_sql is None

    def test_text_before_first_marker_is_up(self):
        """Test that leading SQL belongs to the up section."""
        up_sql, down_sql = parse_sql_content(
            "CREATE TABLE pre (id INT);\n-- +migrate Down\nDROP TABLE pre;\n"
        )

        assert up_sql == "CREATE TABLE pre (id INT);"
        assert down_sql == "DROP TABLE pre;"

    def test_markers_match_trimmed_lines(self):
        """Test that surrounding whitespace on marker lines is ignored."""
        up_sql, down_sql = parse_sql_content(
            "   -- +migrate Up  \nSELECT 1;\n\t-- +migrate Down\nSELECT 2;\n"
        )

        assert up_sql == "SELECT 1;"
        assert down_sql == "SELECT 2;"

    def test_metadata_comments_dropped(self):
        """Test that plain descriptive comments are removed from the body."""
        content = (
            "-- V002__add_user_status_column.sql\n"
            "-- +migrate Up\n"
            "-- add the status column\n"
            "ALTER TABLE users ADD COLUMN status TEXT;\n"
        )

        up_sql, _ = parse_sql_content(content)

        assert up_sql == "ALTER TABLE users ADD COLUMN status TEXT;"

    def test_other_comment_lines_kept(self):
        """Test that comments carrying other markers are kept verbatim."""
        content = "-- see /* legacy */ notes\n-- a -- b\n--tight\nSELECT 1;\n"

        up_sql, _ = parse_sql_content(content)

        assert up_sql == "-- see /* legacy */ notes\n-- a -- b\n--tight\nSELECT 1;"

    @pytest.mark.parametrize(
        "separator", ["\x0b", "\x0c", "\x1c", "\x1e", "\x85", "\u2028", "\u2029"]
    )
    def test_only_newline_ends_a_line(self, separator):
        """Test that other line-break characters inside literals survive unchanged."""
        body = f"INSERT INTO kv VALUES ('a{separator}b');"

        up_sql, _ = parse_sql_content(f"-- +migrate Up\n{body}\n")

        assert up_sql == body
        assert parse_migration_file("V001__kv.sql", body).checksum == calculate_checksum(body)

    def test_crlf_line_endings(self):
        """Test that Windows line endings still match markers."""
        up_sql, down_sql = parse_sql_content(
            "-- +migrate Up\r\nSELECT 1;\r\nSELECT 2;\r\n-- +migrate Down\r\nSELECT 3;\r\n"
        )

        assert up_sql == "SELECT 1;\nSELECT 2;"
        assert down_sql == "SELECT 3;"

    def test_empty_down_section(self):
        """Test that a Down marker with no body yields an empty string."""
        _, down_sql = parse_sql_content("SELECT 1;\n-- +migrate Down\n-- nothing to undo\n")

        assert down_sql == ""


class TestChecksum:
    """Test content checksums."""

    def test_checksum_is_sha256_of_trimmed_up_body(self):
        """Test the digest algorithm and input."""
        assert calculate_checksum("  SELECT 1;\n") == hashlib.sha256(b"SELECT 1;").hexdigest()

    def test_reparse_is_stable(self):
        """Test that parsing an unchanged file twice yields the same checksum."""
        content = "-- +migrate Up\nCREATE TABLE a (id INT);\n-- +migrate Down\nDROP TABLE a;\n"

        first = parse_migration_file("V001__a.sql", content)
        second = parse_migration_file("V001__a.sql", content)

        assert first.checksum == second.checksum
        assert first == second

    def test_one_character_changes_checksum(self):
        """Test that any edit to the up body is detected."""
        original = parse_migration_file("V001__a.sql", "CREATE TABLE a (id INT);")
        edited = parse_migration_file("V001__a.sql", "CREATE TABLE b (id INT);")

        assert original.checksum != edited.checksum

    def test_down_body_does_not_affect_checksum(self):
        """Test that only the up body is hashed."""
        first = parse_migration_file("V001__a.sql", "SELECT 1;\n-- +migrate Down\nSELECT 2;")
        second = parse_migration_file("V001__a.sql", "SELECT 1;\n-- +migrate Down\nSELECT 3;")

        assert first.checksum == second.checksum

    def test_fixture_set_has_no_collisions(self):
        """Test distinct bodies produce distinct checksums."""
        bodies = [f"CREATE TABLE t{i} (id INT);" for i in range(50)]

        assert len({calculate_checksum(body) for body in bodies}) == len(bodies)


class TestParseMigrationFile:
    """Test building MigrationFile records."""

    def test_regular_migration(self):
        """Test fields of an ordinary migration."""
        migration = parse_migration_file(
            "V001__create_users_table.sql",
            "CREATE TABLE users (id INT);\n-- +migrate Down\nDROP TABLE users;",
        )

        assert migration.version == "001"
        assert migration.name == "create users table"
        assert migration.full_name == "001_create users table"
        assert migration.is_baseline is False
        assert migration.supports_rollback is True

    def test_version_zero_is_baseline(self):
        """Test that version 000 is a baseline even with SQL in it."""
        migration = parse_migration_file("V000__baseline.sql", "CREATE TABLE x (id INT);")

        assert migration.is_baseline is True

    def test_empty_up_body_is_baseline(self):
        """Test that a migration without executable SQL is a baseline."""
        migration = parse_migration_file(
            "V004__adopt.sql", "-- +migrate Up\n-- schema already exists\n-- +migrate Down\n"
        )

        assert migration.up_sql == ""
        assert migration.is_baseline is True
        assert migration.supports_rollback is False


class TestScanMigrationFiles:
    """Test directory discovery."""

    def test_scan_sorted_and_filtered(self, migrations_dir):
        """Test that only well-formed .sql files are returned, in version order."""
        write_migration(migrations_dir, "V003__third.sql", "SELECT 3;")
        write_migration(migrations_dir, "V001__first.sql", "SELECT 1;")
        write_migration(migrations_dir, "V002__second.sql", "SELECT 2;")
        write_migration(migrations_dir, "README.md", "docs")
        write_migration(migrations_dir, "V004__wrong_ext.txt", "SELECT 4;")
        (migrations_dir / "V005__directory.sql").mkdir()

        migrations = scan_migration_files(migrations_dir)

        assert [m.version for m in migrations] == ["001", "002", "003"]
        assert migrations[0].path == migrations_dir / "V001__first.sql"

    def test_numeric_ordering(self, migrations_dir):
        """Test that versions sort as numbers, not text."""
        write_migration(migrations_dir, "V10__ten.sql", "SELECT 10;")
        write_migration(migrations_dir, "V9__nine.sql", "SELECT 9;")

        assert [m.version for m in scan_migration_files(migrations_dir)] == ["9", "10"]

    def test_malformed_file_skipped(self, migrations_dir, caplog):
        """Test that one bad file does not abort discovery."""
        write_migration(migrations_dir, "V001__good.sql", "SELECT 1;")
        write_migration(migrations_dir, "bad_name.sql", "SELECT 2;")
        (migrations_dir / "V002__binary.sql").write_bytes(b"\xff\xfe\xfa")

        with caplog.at_level(logging.WARNING):
            migrations = scan_migration_files(migrations_dir)

        assert [m.version for m in migrations] == ["001"]
        assert "bad_name.sql" in caplog.text
        assert "V002__binary.sql" in caplog.text

    def test_concurrent_and_sequential_agree(self, migrations_dir):
        """Test that fan-out reading produces the same result."""
        for i in range(1, 12):
            write_migration(migrations_dir, f"V{i:03d}__step_{i}.sql", f"CREATE TABLE t{i} (id INT);")

        concurrent = scan_migration_files(migrations_dir, concurrent_scan=True, max_workers=4)
        sequential = scan_migration_files(migrations_dir, concurrent_scan=False)

        assert concurrent == sequential
        assert len(concurrent) == 11

    def test_missing_directory(self, migrations_dir, caplog):
        """Test that a missing directory yields nothing."""
        with caplog.at_level(logging.WARNING):
            assert scan_migration_files(migrations_dir / "absent") == []

        assert "does not exist" in caplog.text
