"""Schema configuration models.

Maps logical fields (id, embedding, content, ...) onto the physical
columns of a caller-owned table, and derives the SQL fragments that
depend only on that mapping.
"""

import math
from collections.abc import Mapping
from numbers import Real
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

from pgflex.exceptions import ErrorCode, InvalidSchemaError
from pgflex.schema.identifiers import sanitize_column_name, sanitize_table_name

MAX_DIMENSIONS = 16000

OPTIONAL_COLUMNS = (
    "content",
    "metadata",
    "partition",
    "external_id",
    "created_at",
    "updated_at",
)


def validate_dimensions(dimensions: object) -> int:
    """Validate a vector dimension count.

    Args:
        dimensions: Candidate dimension count.

    Returns:
        The dimension count as an int.

    Raises:
        InvalidSchemaError: If not an integer, not positive, or above
            the pgvector limit.
    """
    details = {"dimensions": dimensions}

    if (
        isinstance(dimensions, bool)
        or not isinstance(dimensions, Real)
        or not math.isfinite(dimensions)
        or math.floor(dimensions) != dimensions
    ):
        raise InvalidSchemaError(
            f"Dimensions must be an integer, got: {dimensions}",
            code=ErrorCode.INVALID_DIMENSIONS,
            details=details,
        )

    if dimensions <= 0:
        raise InvalidSchemaError(
            f"Dimensions must be positive, got: {dimensions}",
            code=ErrorCode.INVALID_DIMENSIONS,
            details=details,
        )

    if dimensions > MAX_DIMENSIONS:
        raise InvalidSchemaError(
            f"Dimensions too large (max {MAX_DIMENSIONS} for pgvector), got: {dimensions}",
            code=ErrorCode.INVALID_DIMENSIONS,
            details=details,
        )

    return int(dimensions)


class ColumnMapping(BaseModel):
    """Logical field to physical column mapping.

    ``id`` and ``embedding`` are required. Optional fields left empty
    are treated as not present in the table.

    Attributes:
        id: Primary key column.
        embedding: pgvector column.
        content: Text content column.
        metadata: JSONB metadata column.
        partition: Collection/tenant discriminator column.
        external_id: Caller-supplied stable identifier column.
        created_at: Creation timestamp column.
        updated_at: Update timestamp column.
    """

    model_config = ConfigDict(
        frozen=True,
        populate_by_name=True,
        alias_generator=to_camel,
        extra="forbid",
    )

    id: str | None = Field(default=None, description="Primary key column")
    embedding: str | None = Field(default=None, description="Vector column")
    content: str | None = Field(default=None, description="Text content column")
    metadata: str | None = Field(default=None, description="JSONB metadata column")
    partition: str | None = Field(default=None, description="Partition column")
    external_id: str | None = Field(default=None, description="External ID column")
    created_at: str | None = Field(default=None, description="Created timestamp")
    updated_at: str | None = Field(default=None, description="Updated timestamp")

    @field_validator("*", mode="before")
    @classmethod
    def _sanitize(cls, value: Any) -> str | None:
        if value is None or value == "":
            return None
        return sanitize_column_name(value)

    @model_validator(mode="after")
    def _require_core_columns(self) -> "ColumnMapping":
        missing = [name for name in ("id", "embedding") if not getattr(self, name)]
        if missing:
            raise InvalidSchemaError(
                f"Column mapping must define: {', '.join(missing)}",
                details={"missing": missing},
            )
        return self

    def configured(self) -> dict[str, str]:
        """Return logical name -> column for every configured field."""
        return {
            name: column
            for name, column in self.model_dump().items()
            if column is not None
        }


class SchemaConfig(BaseModel):
    """Validated, immutable schema configuration.

    Attributes:
        table_name: Target table.
        columns: Column mapping.
        extra_return_columns: Additional columns returned by query/get.
        create_table: Whether the engine owns the table DDL.
        dimensions: Vector dimensions (required when create_table is set).
    """

    model_config = ConfigDict(
        frozen=True,
        populate_by_name=True,
        alias_generator=to_camel,
        extra="forbid",
    )

    table_name: str | None = Field(
        default=None,
        validate_default=True,
        description="Target table",
    )
    columns: ColumnMapping = Field(description="Column mapping")
    extra_return_columns: tuple[str, ...] = Field(
        default=(),
        description="Extra columns returned by query and get",
    )
    create_table: bool = Field(
        default=False,
        description="Create the table if it does not exist",
    )
    dimensions: int | None = Field(default=None, description="Vector dimensions")

    @field_validator("table_name", mode="before")
    @classmethod
    def _sanitize_table(cls, value: Any) -> str:
        return sanitize_table_name(value)

    @field_validator("extra_return_columns", mode="before")
    @classmethod
    def _sanitize_extra_columns(cls, value: Any) -> tuple[str, ...]:
        if not value:
            return ()
        if isinstance(value, str):
            value = [part.strip() for part in value.split(",") if part.strip()]
        return tuple(sanitize_column_name(column) for column in value)

    @field_validator("dimensions", mode="before")
    @classmethod
    def _check_dimensions(cls, value: Any) -> int | None:
        if value is None:
            return None
        return validate_dimensions(value)

    @model_validator(mode="after")
    def _require_dimensions_for_create(self) -> "SchemaConfig":
        if self.create_table and self.dimensions is None:
            raise InvalidSchemaError(
                "dimensions is required when createTable is true",
                details={"table": self.table_name},
            )
        return self

    @property
    def table(self) -> str:
        """Sanitized table name."""
        return self.table_name or ""

    @property
    def has_partition(self) -> bool:
        """Whether a partition column is configured."""
        return self.columns.partition is not None

    @property
    def supports_external_id_upsert(self) -> bool:
        """Whether (partition, external_id) can act as a conflict target."""
        return self.columns.partition is not None and self.columns.external_id is not None

    def select_fields(
        self,
        include_embedding: bool = False,
        include_timestamps: bool = False,
    ) -> list[str]:
        """Ordered SELECT column list.

        Order is ``id, external_id, partition, content, metadata,
        embedding, created_at, updated_at, *extra_return_columns`` with
        unconfigured or unrequested entries skipped.
        """
        cols = self.columns
        fields = [cols.id or ""]

        for column in (cols.external_id, cols.partition, cols.content, cols.metadata):
            if column:
                fields.append(column)

        if include_embedding:
            fields.append(cols.embedding or "")

        if include_timestamps:
            for column in (cols.created_at, cols.updated_at):
                if column:
                    fields.append(column)

        fields.extend(self.extra_return_columns)
        return fields

    def select_list(
        self,
        include_embedding: bool = False,
        include_timestamps: bool = False,
    ) -> str:
        """SELECT column list joined for interpolation."""
        return ", ".join(self.select_fields(include_embedding, include_timestamps))

    def unique_index_name(self) -> str | None:
        """Name of the (partition, external_id) unique index, if any."""
        if not self.supports_external_id_upsert:
            return None
        return f"{self.table}_{self.columns.partition}_{self.columns.external_id}_key"

    def create_table_statements(self) -> list[str]:
        """DDL statements creating the table and its unique index.

        Raises:
            InvalidSchemaError: If dimensions are not configured.
        """
        if self.dimensions is None:
            raise InvalidSchemaError(
                "dimensions is required when createTable is true",
                details={"table": self.table},
            )

        cols = self.columns
        lines = [f"{cols.id} UUID PRIMARY KEY DEFAULT gen_random_uuid()"]

        if cols.partition:
            lines.append(f"{cols.partition} TEXT NOT NULL")
        if cols.external_id:
            lines.append(f"{cols.external_id} TEXT")
        if cols.content:
            lines.append(f"{cols.content} TEXT")
        if cols.metadata:
            lines.append(f"{cols.metadata} JSONB NOT NULL DEFAULT '{{}}'::jsonb")

        lines.append(f"{cols.embedding} vector({self.dimensions}) NOT NULL")

        if cols.created_at:
            lines.append(f"{cols.created_at} TIMESTAMPTZ NOT NULL DEFAULT NOW()")
        if cols.updated_at:
            lines.append(f"{cols.updated_at} TIMESTAMPTZ NOT NULL DEFAULT NOW()")

        body = ",\n  ".join(lines)
        statements = [f"CREATE TABLE IF NOT EXISTS {self.table} (\n  {body}\n)"]

        unique_index = self.unique_index_name()
        if unique_index:
            statements.append(
                f"CREATE UNIQUE INDEX IF NOT EXISTS {unique_index} "
                f"ON {self.table} ({cols.partition}, {cols.external_id}) "
                f"WHERE {cols.external_id} IS NOT NULL"
            )

        return statements

    def create_table_sql(self) -> str:
        """All CREATE statements as one script."""
        return ";\n\n".join(self.create_table_statements())


DEFAULT_SCHEMA = SchemaConfig(
    table_name="embeddings",
    columns=ColumnMapping(
        id="id",
        embedding="embedding",
        content="content",
        metadata="metadata",
        partition="collection",
        external_id="external_id",
        created_at="created_at",
        updated_at="updated_at",
    ),
    create_table=True,
    dimensions=1536,
)


def _by_field_name(data: Mapping[str, Any], model: type[BaseModel]) -> dict[str, Any]:
    """Re-key a mapping from camelCase aliases to field names."""
    aliases = {field.alias: name for name, field in model.model_fields.items()}
    return {aliases.get(key, key): value for key, value in data.items()}


def merge_with_defaults(
    partial: Mapping[str, Any] | None = None,
    defaults: SchemaConfig = DEFAULT_SCHEMA,
) -> SchemaConfig:
    """Merge a partial schema configuration over defaults.

    Column entries override per key, so an empty string disables a
    default optional column. ``create_table`` and ``dimensions`` fall
    back only when absent or ``None``.

    Args:
        partial: Caller-supplied configuration (snake_case or camelCase keys).
        defaults: Base configuration.

    Returns:
        Validated SchemaConfig.
    """
    data = _by_field_name(partial or {}, SchemaConfig)

    columns = defaults.columns.model_dump()
    columns.update(_by_field_name(data.get("columns") or {}, ColumnMapping))

    create_table = data.get("create_table")
    dimensions = data.get("dimensions")

    return SchemaConfig(
        table_name=data.get("table_name") or defaults.table_name,
        columns=ColumnMapping(**columns),
        extra_return_columns=data.get("extra_return_columns")
        or defaults.extra_return_columns,
        create_table=defaults.create_table if create_table is None else create_table,
        dimensions=defaults.dimensions if dimensions is None else dimensions,
    )


def validate_schema_config(config: SchemaConfig | Mapping[str, Any]) -> SchemaConfig:
    """Validate (or re-validate) a schema configuration.

    Args:
        config: A SchemaConfig or a plain mapping.

    Returns:
        A freshly validated SchemaConfig.

    Raises:
        InvalidIdentifierError: If a table or column name is unsafe.
        InvalidSchemaError: If required columns or dimensions are missing.
    """
    if isinstance(config, SchemaConfig):
        config = config.model_dump()
    return SchemaConfig.model_validate(config)
