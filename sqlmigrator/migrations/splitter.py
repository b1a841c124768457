"""
Split a migration body into individually executable SQL statements.
"""

from __future__ import annotations


def split_sql_statements(sql: str) -> list[str]:
    """
    Split SQL text on ``;`` without breaking string literals or line comments.

    Single- and double-quoted strings toggle on an unescaped quote of the same
    kind. ``--`` outside a string starts a comment that runs to the end of the
    line; comment text is not part of any emitted statement.

    Args:
        sql: Raw SQL text, e.g. one migration's up or down body

    Returns:
        Trimmed, non-empty statements in source order
    """
    statements: list[str] = []
    current: list[str] = []
    in_single_quote = False
    in_double_quote = False
    in_comment = False
    prev_char = ""

    for ch in sql:
        if in_comment:
            if ch == "\n":
                in_comment = False
                current.append(ch)
            prev_char = ch
            continue

        if ch == "'" and not in_double_quote:
            if prev_char != "\\":
                in_single_quote = not in_single_quote
            current.append(ch)
        elif ch == '"' and not in_single_quote:
            if prev_char != "\\":
                in_double_quote = not in_double_quote
            current.append(ch)
        elif ch == "-" and prev_char == "-" and not in_single_quote and not in_double_quote:
            # the first dash is already buffered
            current.pop()
            in_comment = True
        elif ch == ";" and not in_single_quote and not in_double_quote:
            statement = "".join(current).strip()
            if statement:
                statements.append(statement)
            current = []
        else:
            current.append(ch)
        prev_char = ch

    statement = "".join(current).strip()
    if statement:
        statements.append(statement)

    return statements
