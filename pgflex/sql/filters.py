"""Parameterized WHERE clause builders.

Column names are sanitized and interpolated; every value is bound to a
numbered placeholder. Builders take the first placeholder index from
the caller so several fragments can share one statement.
"""

import json
from collections.abc import Iterable, Mapping, Sequence
from typing import Any

from pgflex.schema.identifiers import sanitize_column_name
from pgflex.sql.models import SqlFragment


def build_equality_clause(
    filters: Mapping[str, Any],
    start_index: int = 1,
) -> SqlFragment:
    """Build an AND-joined equality clause.

    ``None`` becomes ``IS NULL``, lists/tuples/sets become
    ``= ANY($n)`` bound as a single array value, anything else is
    ``= $n``.

    Args:
        filters: Column -> value, applied in insertion order.
        start_index: Number of the first placeholder.

    Returns:
        SqlFragment; empty text for an empty filter.

    Raises:
        InvalidIdentifierError: If a key is not a safe column name.
    """
    conditions: list[str] = []
    values: list[Any] = []
    index = start_index

    for key, value in filters.items():
        column = sanitize_column_name(key)

        if value is None:
            conditions.append(f"{column} IS NULL")
        elif isinstance(value, list | tuple | set | frozenset):
            conditions.append(f"{column} = ANY(${index})")
            values.append(list(value))
            index += 1
        else:
            conditions.append(f"{column} = ${index}")
            values.append(value)
            index += 1

    return SqlFragment(text=" AND ".join(conditions), values=values)


def build_json_containment(
    column: str,
    filter_object: Mapping[str, Any],
    start_index: int = 1,
) -> SqlFragment:
    """Build a JSONB containment (``@>``) condition.

    Matches rows whose document is a superset of ``filter_object``.

    Args:
        column: JSONB column name.
        filter_object: Object the column must contain.
        start_index: Placeholder number for the serialized filter.

    Returns:
        SqlFragment binding the filter as JSON text.
    """
    safe_column = sanitize_column_name(column)
    return SqlFragment(
        text=f"{safe_column} @> ${start_index}::jsonb",
        values=[json.dumps(filter_object)],
    )


def build_batch_values(
    rows: Sequence[Mapping[str, Any]],
    columns: Sequence[str],
    start_index: int = 1,
) -> SqlFragment:
    """Build multi-row VALUES placeholders.

    Produces ``($1, $2), ($3, $4)`` and the flattened values; a key
    missing from a row binds ``None``.
    """
    if not rows:
        return SqlFragment()

    safe_columns = [sanitize_column_name(column) for column in columns]
    values: list[Any] = []
    groups: list[str] = []
    index = start_index

    for row in rows:
        placeholders = []
        for column in safe_columns:
            placeholders.append(f"${index}")
            values.append(row.get(column))
            index += 1
        groups.append(f"({', '.join(placeholders)})")

    return SqlFragment(text=", ".join(groups), values=values)


def where(conditions: Iterable[str]) -> str:
    """Render `` WHERE a AND b`` or an empty string."""
    parts = [condition for condition in conditions if condition]
    if not parts:
        return ""
    return " WHERE " + " AND ".join(parts)
