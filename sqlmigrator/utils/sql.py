"""
SQL safety helpers for sqlmigrator.

This module provides small utilities used when building ledger statements.

Rules of thumb:
- ALWAYS bind dynamic values using placeholders (?, ?, ...) and a tuple of params
  when the database handle supports parameter binding.
- Fall back to render_statement() only for handles that accept raw statement text.
- Table and column names cannot be parameterized: validate them.

Functions:
- validate_identifier(name: str, kind: str) -> str
- normalize_identifier(name: str) -> str
- quote_literal(value: object) -> str
- render_statement(sql: str, params: Sequence[object]) -> str
- enforce_limit(limit: int, max_limit: int) -> int

Examples:

    from sqlmigrator.utils.sql import quote_literal, render_statement

    quote_literal("O'Brien")              # "'O''Brien'"
    render_statement("DELETE FROM t WHERE version = ?", ("002",))
    # "DELETE FROM t WHERE version = '002'"

Notes:
- quote_literal doubles embedded single quotes and removes NUL characters,
  which most engines reject inside statement text.
- render_statement only substitutes ? placeholders; statement templates must
  not contain a literal question mark.
"""

from __future__ import annotations

import re
from datetime import datetime
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Sequence


_IDENTIFIER_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")
_NON_IDENTIFIER_CHARS = re.compile(r"[^A-Za-z0-9_]")


def enforce_limit(limit: int, max_limit: int) -> int:
    """Clamp a requested LIMIT value to a safe maximum.

    Args:
        limit: Requested limit (may be negative or excessively large).
        max_limit: Maximum allowed limit (must be positive).

    Returns:
        A safe positive integer in range [1, max_limit].
    """
    if max_limit <= 0:
        raise ValueError("max_limit must be > 0")
    try:
        n = int(limit)
    except (TypeError, ValueError):
        return max_limit
    if n <= 0:
        return 1
    if n > max_limit:
        return max_limit
    return n


def validate_identifier(name: str, kind: str = "table") -> str:
    """Validate a SQL identifier (table/column) using a conservative regex.

    Args:
        name: Identifier to validate
        kind: 'table' or 'column' (for error messages)

    Returns:
        The identifier, unchanged

    Raises:
        ValueError if the identifier is invalid.
    """
    if not _IDENTIFIER_RE.match(name):
        raise ValueError(f"Invalid {kind} identifier: {name!r}")
    return name


def normalize_identifier(name: str) -> str:
    """Map an arbitrary service name onto a valid identifier fragment.

    Characters outside [A-Za-z0-9_] become underscores; the result is
    lowercased. "Billing-API" -> "billing_api".

    Raises:
        ValueError if nothing usable remains.
    """
    normalized = _NON_IDENTIFIER_CHARS.sub("_", name.strip()).lower()
    if not normalized.strip("_"):
        raise ValueError(f"Cannot derive an identifier from {name!r}")
    return normalized


def quote_literal(value: object) -> str:
    """Render a Python value as a SQL literal for raw statement text."""
    if value is None:
        return "NULL"
    if isinstance(value, bool):
        return "1" if value else "0"
    if isinstance(value, int | float):
        return str(value)
    if isinstance(value, datetime):
        value = value.isoformat(sep=" ")
    text = str(value).replace("\x00", "").replace("'", "''")
    return f"'{text}'"


def render_statement(sql: str, params: Sequence[object]) -> str:
    """Substitute ? placeholders with escaped literals, left to right.

    Raises:
        ValueError if the placeholder count does not match params.
    """
    parts = sql.split("?")
    if len(parts) - 1 != len(params):
        raise ValueError(
            f"Statement has {len(parts) - 1} placeholders but {len(params)} params were given"
        )
    rendered = [parts[0]]
    for value, tail in zip(params, parts[1:]):
        rendered.append(quote_literal(value))
        rendered.append(tail)
    return "".join(rendered)
