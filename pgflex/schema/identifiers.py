"""SQL identifier validation.

Table and column names are placed into SQL text, never bound as values,
so every name passes through this module before interpolation.
"""

import re

from pgflex.exceptions import InvalidIdentifierError

IDENTIFIER_PATTERN = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


def sanitize_identifier(name: object, kind: str = "identifier") -> str:
    """Validate a SQL identifier.

    Args:
        name: Candidate table or column name.
        kind: Label used in the error message ("table", "column", ...).

    Returns:
        The name unchanged.

    Raises:
        InvalidIdentifierError: If the name is empty or outside
            ``[A-Za-z_][A-Za-z0-9_]*``.
    """
    if not isinstance(name, str) or not name:
        raise InvalidIdentifierError(
            f"{kind.capitalize()} name cannot be empty",
            details={"kind": kind, "name": name},
        )

    # fullmatch so a trailing newline is rejected too
    if not IDENTIFIER_PATTERN.fullmatch(name):
        raise InvalidIdentifierError(
            f"Invalid {kind} name: {name}. "
            "Only alphanumeric characters and underscores allowed.",
            details={"kind": kind, "name": name},
        )

    return name


def sanitize_table_name(name: object) -> str:
    """Validate a table name."""
    return sanitize_identifier(name, kind="table")


def sanitize_column_name(name: object) -> str:
    """Validate a column name."""
    return sanitize_identifier(name, kind="column")


def quote_identifier(name: str) -> str:
    """Validate and double-quote an identifier.

    Dotted names (``schema.table``) are quoted per part.
    """
    return ".".join(f'"{sanitize_identifier(part)}"' for part in name.split("."))


def quote_literal(value: str) -> str:
    """Render a string as a SQL literal for DDL, which cannot bind parameters."""
    return "'" + str(value).replace("'", "''") + "'"
