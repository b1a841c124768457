"""
Configuration for sqlmigrator runs.

A MigratorConfig is built once (from defaults, a JSON file, or the
environment) and handed to MigrationRunner at construction time. The runner
never consults the process environment itself.

Precedence when combining sources: environment > .env file > JSON file > defaults.
"""

from __future__ import annotations

import json
import logging
import os
from collections.abc import Mapping
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field, ValidationError, field_validator
from pydantic.config import ConfigDict

LOGGER = logging.getLogger(__name__)

ENV_MAPPINGS: dict[str, str] = {
    "CONTINUE_ON_MIGRATION_FAILURE": "continue_on_failure",
    "VALIDATE_MIGRATION_CHECKSUMS": "validate_checksums",
    "CONCURRENT_FILE_SCAN": "concurrent_file_scan",
    "MIGRATION_SCAN_WORKERS": "max_scan_workers",
}

_TRUE_VALUES = {"true", "1", "yes", "on"}
_FALSE_VALUES = {"false", "0", "no", "off"}


class ConfigurationError(Exception):
    """Configuration-specific exception"""


def load_env_file(env_path: Path) -> dict[str, str]:
    """Load KEY=VALUE pairs from a .env file; a missing file yields nothing."""
    env_vars: dict[str, str] = {}
    if not env_path.exists():
        return env_vars
    try:
        with open(env_path, encoding="utf-8") as f:
            for line in f:
                line = line.strip()
                if line and not line.startswith("#") and "=" in line:
                    key, value = line.split("=", 1)
                    # Remove quotes if present
                    value = value.strip().strip('"').strip("'")
                    env_vars[key.strip()] = value
    except (OSError, UnicodeDecodeError) as e:
        raise ConfigurationError(f"Error loading .env file {env_path}: {e}") from e
    return env_vars


class MigratorConfig(BaseModel):
    """
    Run policy for a migration runner.
    """

    # keep going after a failed migration instead of halting the run
    continue_on_failure: bool = False
    # compare stored checksums of applied migrations with the files on disk
    validate_checksums: bool = True
    # read migration files on a thread pool
    concurrent_file_scan: bool = True
    max_scan_workers: int = Field(default=8, ge=1, le=64)

    model_config = ConfigDict(frozen=True, extra="forbid")

    @field_validator("continue_on_failure", "validate_checksums", "concurrent_file_scan", mode="before")
    @classmethod
    def _parse_flag(cls, value: Any) -> Any:
        if isinstance(value, str):
            lowered = value.strip().lower()
            if lowered in _TRUE_VALUES:
                return True
            if lowered in _FALSE_VALUES:
                return False
            raise ValueError(f"expected a boolean flag, got {value!r}")
        return value

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> MigratorConfig:
        """
        Build a config from plain data.

        Raises:
            ConfigurationError: If a key is unknown or a value is invalid
        """
        try:
            return cls(**dict(data))
        except ValidationError as e:
            raise ConfigurationError(f"Invalid migrator configuration: {e}") from e

    @classmethod
    def from_file(cls, config_path: Path | str) -> MigratorConfig:
        """
        Load a config from a JSON object file.

        Raises:
            ConfigurationError: If the file is unreadable or invalid
        """
        config_path = Path(config_path)
        try:
            with open(config_path, encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise ConfigurationError(f"Error loading config {config_path}: {e}") from e
        if not isinstance(data, dict):
            raise ConfigurationError(f"Config file {config_path} must contain a JSON object")
        LOGGER.debug("Loaded migrator config from %s", config_path)
        return cls.from_mapping(data)

    @classmethod
    def from_env(
        cls,
        environ: Mapping[str, str] | None = None,
        env_file: Path | None = None,
        base: MigratorConfig | None = None,
    ) -> MigratorConfig:
        """
        Build a config from environment variables.

        Args:
            environ: Variables to read (defaults to os.environ)
            env_file: Optional .env file; real environment variables win over it
            base: Config whose values are kept where no variable is set

        Raises:
            ConfigurationError: If a variable holds an invalid value
        """
        environ = os.environ if environ is None else environ
        file_vars = load_env_file(env_file) if env_file is not None else {}

        data = (base or cls()).model_dump()
        for env_key, field_name in ENV_MAPPINGS.items():
            if env_key in environ:
                data[field_name] = environ[env_key]
            elif env_key in file_vars:
                data[field_name] = file_vars[env_key]
        return cls.from_mapping(data)
