"""
Utils Package - SQL safety and logging helpers for sqlmigrator
"""

from .sql import enforce_limit, quote_literal, render_statement, validate_identifier
from .structured_logging import setup_logging

__all__ = [
    "enforce_limit",
    "quote_literal",
    "render_statement",
    "setup_logging",
    "validate_identifier",
]
