"""Statement builders and row mappers for vector store operations.

Every function here is pure: it turns a SchemaConfig plus a request
into a Statement, or a result row into a response model. Identifiers
come only from the validated SchemaConfig or pass through the
sanitizer; all data values are bound positionally.
"""

import json
from collections.abc import Mapping
from typing import Any

from pgflex.exceptions import InvalidSchemaError, MissingSelectorError, ValidationError
from pgflex.schema.identifiers import sanitize_column_name
from pgflex.schema.models import SchemaConfig
from pgflex.sql.distance import DistanceMetric, query_operator
from pgflex.sql.filters import build_equality_clause, build_json_containment, where
from pgflex.sql.models import Statement
from pgflex.vectorstore.models import (
    DeleteRequest,
    GetRequest,
    GetRow,
    QueryRequest,
    QueryRow,
    UpsertRequest,
    UpsertResult,
)

DEFAULT_PARTITION = "default"
DEFAULT_TOP_K = 10


def serialize_embedding(embedding: list[float]) -> str:
    """Vector as JSON array text, the pgvector input format."""
    return json.dumps([float(value) for value in embedding])


def parse_embedding(value: Any) -> list[float] | None:
    """Vector from its wire form (``"[1,2,3]"``) or any sequence."""
    if value is None:
        return None
    if isinstance(value, str):
        value = json.loads(value)
    elif hasattr(value, "tolist"):
        value = value.tolist()
    return [float(item) for item in value]


def parse_metadata(value: Any) -> dict[str, Any]:
    """Metadata from JSON text or an already-decoded mapping."""
    if value is None:
        return {}
    if isinstance(value, str):
        value = json.loads(value)
    return dict(value)


def as_list(value: str | list[str]) -> list[str]:
    """A single id or a list of ids, as a list."""
    return [value] if isinstance(value, str) else list(value)


def _extra_columns(schema: SchemaConfig, extra: Mapping[str, Any]) -> list[tuple[str, Any]]:
    """Sanitized extra columns, refusing names already mapped."""
    mapped = set(schema.columns.configured().values())
    columns = []
    for name, value in extra.items():
        column = sanitize_column_name(name)
        if column in mapped:
            raise ValidationError(
                f"Extra column {column} duplicates a mapped column",
                details={"column": column},
            )
        columns.append((column, value))
    return columns


def _require_metadata_column(schema: SchemaConfig) -> str:
    if not schema.columns.metadata:
        raise InvalidSchemaError(
            "Metadata filter requires a metadata column",
            details={"table": schema.table},
        )
    return schema.columns.metadata


def _returning(schema: SchemaConfig) -> str:
    cols = schema.columns
    fields = [cols.id]
    if cols.external_id:
        fields.append(cols.external_id)
    if cols.partition:
        fields.append(cols.partition)
    return ", ".join(field for field in fields if field)


def build_upsert(schema: SchemaConfig, request: UpsertRequest) -> Statement:
    """Build the INSERT for one record.

    Conflict target, in order of preference: the primary key when an
    id is given; (partition, external_id) when an external id is given
    and both columns exist; otherwise none (plain insert). ``xmax = 0``
    in RETURNING is true only for rows the statement inserted.
    """
    cols = schema.columns
    metadata = json.dumps(request.metadata or {})
    embedding = serialize_embedding(request.embedding)
    extras = _extra_columns(schema, request.extra_columns)

    insert_cols: list[str] = []
    update_cols: list[str] = []
    values: list[Any] = []

    def add(column: str, value: Any, updatable: bool = True) -> None:
        insert_cols.append(column)
        values.append(value)
        if updatable:
            update_cols.append(f"{column} = EXCLUDED.{column}")

    if request.id is not None:
        add(cols.id, request.id, updatable=False)
        if cols.partition and request.partition_value is not None:
            add(cols.partition, request.partition_value)
        if cols.external_id:
            add(cols.external_id, request.external_id)
        conflict = f"ON CONFLICT ({cols.id})"
    elif request.external_id is not None and schema.supports_external_id_upsert:
        add(cols.partition, request.partition_value or DEFAULT_PARTITION, updatable=False)
        add(cols.external_id, request.external_id, updatable=False)
        conflict = (
            f"ON CONFLICT ({cols.partition}, {cols.external_id}) "
            f"WHERE {cols.external_id} IS NOT NULL"
        )
    else:
        if cols.partition:
            add(cols.partition, request.partition_value or DEFAULT_PARTITION)
        if cols.external_id and request.external_id is not None:
            add(cols.external_id, request.external_id)
        conflict = None

    if cols.content:
        add(cols.content, request.content)
    if cols.metadata:
        add(cols.metadata, metadata)
    add(cols.embedding, embedding)
    for column, value in extras:
        add(column, value)

    placeholders = ", ".join(f"${i}" for i in range(1, len(values) + 1))
    sql = (
        f"INSERT INTO {schema.table} ({', '.join(insert_cols)}) "
        f"VALUES ({placeholders})"
    )

    if conflict is None:
        sql += f" RETURNING {_returning(schema)}, true AS inserted"
    else:
        if cols.updated_at:
            update_cols.append(f"{cols.updated_at} = NOW()")
        sql += (
            f" {conflict} DO UPDATE SET {', '.join(update_cols)}"
            f" RETURNING {_returning(schema)}, (xmax = 0) AS inserted"
        )

    return Statement(sql=sql, values=values)


def build_query(
    schema: SchemaConfig,
    request: QueryRequest,
    default_top_k: int = DEFAULT_TOP_K,
    default_metric: DistanceMetric = DistanceMetric.COSINE,
) -> Statement:
    """Build the similarity search SELECT.

    Placeholders are numbered: embedding, partition, metadata filter,
    extra filters, limit, offset; absent parts take no number.
    """
    cols = schema.columns
    operator = query_operator(request.metric or default_metric)
    top_k = default_top_k if request.top_k is None else request.top_k

    values: list[Any] = [serialize_embedding(request.embedding)]
    conditions: list[str] = []

    if cols.partition and request.partition_value is not None:
        values.append(request.partition_value)
        conditions.append(f"{cols.partition} = ${len(values)}")

    if request.metadata_filter:
        fragment = build_json_containment(
            _require_metadata_column(schema),
            request.metadata_filter,
            len(values) + 1,
        )
        conditions.append(fragment.text)
        values.extend(fragment.values)

    if request.extra_filters:
        fragment = build_equality_clause(request.extra_filters, len(values) + 1)
        conditions.append(fragment.text)
        values.extend(fragment.values)

    limit_index = len(values) + 1
    values.extend([top_k, request.offset])

    sql = (
        f"SELECT {schema.select_list(request.include_embedding)}, "
        f"{cols.embedding} {operator} $1::vector AS score "
        f"FROM {schema.table}"
        f"{where(conditions)}"
        f" ORDER BY score LIMIT ${limit_index} OFFSET ${limit_index + 1}"
    )
    return Statement(sql=sql, values=values)


def build_delete(schema: SchemaConfig, request: DeleteRequest) -> Statement:
    """Build the DELETE for ids, or for a partition narrowed by filters.

    Raises:
        MissingSelectorError: If neither ids nor a partition selector is
            available.
    """
    cols = schema.columns

    if request.id is not None:
        return Statement(
            sql=f"DELETE FROM {schema.table} WHERE {cols.id} = ANY($1)",
            values=[as_list(request.id)],
        )

    if not cols.partition or request.partition_value is None:
        raise MissingSelectorError(
            "Either id or (partition column + partition value) must be provided for delete",
            details={"table": schema.table},
        )

    values: list[Any] = [request.partition_value]
    conditions = [f"{cols.partition} = $1"]

    if request.external_id is not None:
        if not cols.external_id:
            raise InvalidSchemaError(
                "External id filter requires an external id column",
                details={"table": schema.table},
            )
        values.append(as_list(request.external_id))
        conditions.append(f"{cols.external_id} = ANY(${len(values)})")

    if request.metadata_filter:
        fragment = build_json_containment(
            _require_metadata_column(schema),
            request.metadata_filter,
            len(values) + 1,
        )
        conditions.append(fragment.text)
        values.extend(fragment.values)

    return Statement(
        sql=f"DELETE FROM {schema.table}{where(conditions)}",
        values=values,
    )


def build_get(schema: SchemaConfig, request: GetRequest) -> Statement:
    """Build the SELECT for ids, or for external ids within a partition.

    Raises:
        MissingSelectorError: If neither selector is complete.
    """
    cols = schema.columns
    fields = schema.select_list(request.include_embedding, include_timestamps=True)

    if request.id is not None:
        return Statement(
            sql=f"SELECT {fields} FROM {schema.table} WHERE {cols.id} = ANY($1)",
            values=[as_list(request.id)],
        )

    if (
        not cols.partition
        or not cols.external_id
        or request.partition_value is None
        or request.external_id is None
    ):
        raise MissingSelectorError(
            "Either id or (partition value + external id) must be provided for get",
            details={"table": schema.table},
        )

    return Statement(
        sql=(
            f"SELECT {fields} FROM {schema.table} "
            f"WHERE {cols.partition} = $1 AND {cols.external_id} = ANY($2)"
        ),
        values=[request.partition_value, as_list(request.external_id)],
    )


def _optional(row: Mapping[str, Any], column: str | None) -> Any:
    return row.get(column) if column else None


def _optional_str(row: Mapping[str, Any], column: str | None) -> str | None:
    value = _optional(row, column)
    return None if value is None else str(value)


def _extra(schema: SchemaConfig, row: Mapping[str, Any]) -> dict[str, Any] | None:
    if not schema.extra_return_columns:
        return None
    return {column: row.get(column) for column in schema.extra_return_columns}


def map_upsert_row(schema: SchemaConfig, row: Mapping[str, Any]) -> UpsertResult:
    """Map an upsert RETURNING row."""
    cols = schema.columns
    return UpsertResult(
        id=str(row[cols.id]),
        external_id=_optional_str(row, cols.external_id),
        partition_value=_optional_str(row, cols.partition),
        was_insert=bool(row.get("inserted", True)),
    )


def map_query_row(
    schema: SchemaConfig,
    row: Mapping[str, Any],
    include_embedding: bool = False,
) -> QueryRow:
    """Map a similarity search row."""
    cols = schema.columns
    return QueryRow(
        id=str(row[cols.id]),
        external_id=_optional_str(row, cols.external_id),
        partition_value=_optional_str(row, cols.partition),
        content=_optional(row, cols.content),
        metadata=parse_metadata(_optional(row, cols.metadata)),
        score=float(row["score"]),
        embedding=parse_embedding(row.get(cols.embedding)) if include_embedding else None,
        extra=_extra(schema, row),
    )


def map_get_row(
    schema: SchemaConfig,
    row: Mapping[str, Any],
    include_embedding: bool = False,
) -> GetRow:
    """Map a fetched record."""
    cols = schema.columns
    return GetRow(
        id=str(row[cols.id]),
        external_id=_optional_str(row, cols.external_id),
        partition_value=_optional_str(row, cols.partition),
        content=_optional(row, cols.content),
        metadata=parse_metadata(_optional(row, cols.metadata)),
        embedding=parse_embedding(row.get(cols.embedding)) if include_embedding else None,
        created_at=_optional(row, cols.created_at),
        updated_at=_optional(row, cols.updated_at),
        extra=_extra(schema, row),
    )
