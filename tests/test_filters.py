"""Tests for WHERE clause builders."""

import json

import pytest

from pgflex.exceptions import InvalidIdentifierError
from pgflex.sql.filters import (
    build_batch_values,
    build_equality_clause,
    build_json_containment,
    where,
)


class TestEqualityClause:
    """Tests for build_equality_clause."""

    def test_scalar_values(self) -> None:
        """Scalars bind one placeholder each, in key order."""
        fragment = build_equality_clause({"author": "ann", "year": 2024})

        assert fragment.text == "author = $1 AND year = $2"
        assert fragment.values == ["ann", 2024]

    def test_none_is_null_check(self) -> None:
        """None becomes IS NULL and binds nothing."""
        fragment = build_equality_clause({"deleted_at": None, "lang": "en"})

        assert fragment.text == "deleted_at IS NULL AND lang = $1"
        assert fragment.values == ["en"]

    def test_list_becomes_any(self) -> None:
        """Sequences bind as one array value."""
        fragment = build_equality_clause({"tag": ("a", "b")}, start_index=4)

        assert fragment.text == "tag = ANY($4)"
        assert fragment.values == [["a", "b"]]

    def test_start_index(self) -> None:
        """Numbering starts at the given index."""
        fragment = build_equality_clause({"a": 1, "b": 2}, start_index=3)
        assert fragment.text == "a = $3 AND b = $4"

    def test_empty_filter(self) -> None:
        """An empty filter yields an empty, falsy fragment."""
        fragment = build_equality_clause({})

        assert fragment.text == ""
        assert fragment.values == []
        assert not fragment

    def test_rejects_unsafe_key(self) -> None:
        """Filter keys pass the identifier gate."""
        with pytest.raises(InvalidIdentifierError):
            build_equality_clause({"a = 1 OR 1": 1})


class TestJsonContainment:
    """Tests for build_json_containment."""

    def test_binds_json_text(self) -> None:
        """The filter object is bound as JSON text."""
        fragment = build_json_containment("metadata", {"lang": "en"}, start_index=3)

        assert fragment.text == "metadata @> $3::jsonb"
        assert json.loads(fragment.values[0]) == {"lang": "en"}

    def test_rejects_unsafe_column(self) -> None:
        """The column passes the identifier gate."""
        with pytest.raises(InvalidIdentifierError):
            build_json_containment("meta data", {})


class TestBatchValues:
    """Tests for build_batch_values."""

    def test_multi_row(self) -> None:
        """Rows produce numbered groups and flattened values."""
        fragment = build_batch_values(
            [{"a": 1, "b": 2}, {"a": 3}],
            ["a", "b"],
        )

        assert fragment.text == "($1, $2), ($3, $4)"
        assert fragment.values == [1, 2, 3, None]

    def test_empty_rows(self) -> None:
        """No rows yields an empty fragment."""
        assert not build_batch_values([], ["a"])


class TestWhere:
    """Tests for the WHERE combinator."""

    def test_joins_conditions(self) -> None:
        """Non-empty conditions are ANDed."""
        assert where(["a = $1", "", "b = $2"]) == " WHERE a = $1 AND b = $2"

    def test_empty(self) -> None:
        """No conditions renders nothing."""
        assert where([]) == ""
