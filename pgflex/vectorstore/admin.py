"""Idempotent schema management for pgvector tables.

Every ``ensure_*`` call may be repeated: tables and extensions use
``IF NOT EXISTS``, indexes are looked up in ``pg_indexes`` first, and
the updated-at trigger is dropped and recreated under a fixed name.
"""

import hashlib
import re
from collections.abc import Sequence
from typing import Any

from pgflex.db.executor import ExecutionResult, QueryExecutor, execute_checked
from pgflex.exceptions import DatabaseError, NoPartitionColumnError
from pgflex.logging_config import get_logger
from pgflex.schema.identifiers import quote_literal
from pgflex.schema.models import SchemaConfig, validate_dimensions, validate_schema_config
from pgflex.sql.distance import (
    IVFFLAT_LISTS,
    DistanceMetric,
    IndexType,
    index_operator_class,
    resolve_index_type,
)
from pgflex.vectorstore.models import DropCollectionResult

logger = get_logger(__name__)

# PostgreSQL truncates identifiers beyond this many bytes.
MAX_IDENTIFIER_LENGTH = 63

# duplicate_table (index exists) and unique_violation on the catalog
_DUPLICATE_SQLSTATES = {"42P07", "23505"}

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9_]")

INDEX_EXISTS_SQL = "SELECT 1 FROM pg_indexes WHERE indexname = $1"


def _short_hash(value: str) -> str:
    return hashlib.sha1(value.encode("utf-8")).hexdigest()[:8]


def _fit_identifier(name: str) -> str:
    """Keep generated names under the identifier limit, deterministically."""
    if len(name) <= MAX_IDENTIFIER_LENGTH:
        return name
    suffix = _short_hash(name)
    return f"{name[:MAX_IDENTIFIER_LENGTH - len(suffix) - 1]}_{suffix}"


def index_name(
    table: str,
    partition_value: str | None,
    index_type: IndexType | str,
) -> str:
    """Deterministic vector index name for a table/partition/type.

    Characters outside ``[A-Za-z0-9_]`` become ``_``; when that changes
    the value a hash suffix keeps distinct partitions distinct.
    """
    index_type = resolve_index_type(index_type)
    if partition_value is None:
        part = "all"
    else:
        part = _UNSAFE_CHARS.sub("_", partition_value)
        if part != partition_value or not part:
            part = f"{part}_{_short_hash(partition_value)}"
    return _fit_identifier(f"idx_{table}_{part}_{index_type.value}")


class SchemaAdministrator:
    """DDL for one SchemaConfig: extension, table, trigger, indexes."""

    def __init__(self, executor: QueryExecutor, schema: SchemaConfig) -> None:
        """Initialize the administrator.

        Args:
            executor: Statement executor.
            schema: Schema configuration; re-validated here.
        """
        self._executor = executor
        self._schema = validate_schema_config(schema)
        self._current_dimensions: int | None = None

    @property
    def schema(self) -> SchemaConfig:
        """The validated schema configuration."""
        return self._schema

    @property
    def current_dimensions(self) -> int | None:
        """Dimensions recorded by the last ``ensure_table`` call."""
        return self._current_dimensions

    async def _run(self, sql: str, values: Sequence[Any] = ()) -> ExecutionResult:
        return await execute_checked(self._executor, sql, values)

    async def ensure_extension(self) -> None:
        """Enable the vector and uuid-ossp extensions."""
        await self._run("CREATE EXTENSION IF NOT EXISTS vector")
        await self._run('CREATE EXTENSION IF NOT EXISTS "uuid-ossp"')

    async def ensure_table(self, dimensions: int | None = None) -> int:
        """Create the table (and updated-at trigger) if the engine owns it.

        Args:
            dimensions: Overrides the configured dimensions. ``0`` is
                rejected, not treated as unset.

        Returns:
            The effective dimensions.

        Raises:
            InvalidSchemaError: If the dimensions are invalid.
        """
        effective = validate_dimensions(
            self._schema.dimensions if dimensions is None else dimensions
        )
        self._current_dimensions = effective

        if not self._schema.create_table:
            logger.debug(f"Table {self._schema.table} is externally managed")
            return effective

        schema = self._schema
        if schema.dimensions != effective:
            schema = schema.model_copy(update={"dimensions": effective})

        for statement in schema.create_table_statements():
            await self._run(statement)

        if schema.columns.updated_at:
            await self._install_updated_at_trigger()

        logger.info(
            f"Ensured table {schema.table}",
            extra={"dimensions": effective},
        )
        return effective

    async def _install_updated_at_trigger(self) -> None:
        table = self._schema.table
        column = self._schema.columns.updated_at
        function = _fit_identifier(f"{table}_set_{column}")
        trigger = _fit_identifier(f"{table}_{column}_trigger")

        await self._run(
            f"CREATE OR REPLACE FUNCTION {function}() "
            "RETURNS TRIGGER AS $$ "
            f"BEGIN NEW.{column} = NOW(); RETURN NEW; END; "
            "$$ LANGUAGE plpgsql"
        )
        await self._run(f"DROP TRIGGER IF EXISTS {trigger} ON {table}")
        await self._run(
            f"CREATE TRIGGER {trigger} BEFORE UPDATE ON {table} "
            f"FOR EACH ROW EXECUTE FUNCTION {function}()"
        )

    async def _index_exists(self, name: str) -> bool:
        result = await self._run(INDEX_EXISTS_SQL, [name])
        return len(result.rows) > 0

    async def ensure_index(
        self,
        partition_value: str | None = None,
        index_type: IndexType | str = IndexType.HNSW,
        metric: DistanceMetric | str = DistanceMetric.COSINE,
    ) -> bool:
        """Create a vector index, partial to one partition when possible.

        Use the same metric here as in queries; an index built for one
        metric's operator class does not serve another metric.

        Args:
            partition_value: Partition to index; None indexes all rows.
            index_type: hnsw or ivfflat.
            metric: Distance metric the index should accelerate.

        Returns:
            True if an index was created, False if it already existed.

        Raises:
            NoPartitionColumnError: If a partition value is given but no
                partition column is configured.
        """
        index_type = resolve_index_type(index_type)
        op_class = index_operator_class(metric)
        cols = self._schema.columns
        table = self._schema.table
        if partition_value is not None and not cols.partition:
            raise NoPartitionColumnError(
                "Cannot build a partition index: no partition column configured",
                details={"table": table, "partition_value": partition_value},
            )
        name = index_name(table, partition_value, index_type)

        if await self._index_exists(name):
            logger.debug(f"Index {name} already exists")
            return False

        sql = (
            f"CREATE INDEX {name} ON {table} "
            f"USING {index_type.value} ({cols.embedding} {op_class})"
        )
        if index_type is IndexType.IVFFLAT:
            sql += f" WITH (lists = {IVFFLAT_LISTS})"
        if partition_value is not None:
            sql += f" WHERE {cols.partition} = {quote_literal(partition_value)}"

        try:
            await self._run(sql)
        except DatabaseError as e:
            # Another caller created it between the check and the CREATE.
            if e.details.get("sqlstate") in _DUPLICATE_SQLSTATES:
                logger.debug(f"Index {name} created concurrently")
                return False
            raise

        logger.info(
            f"Created index {name}",
            extra={"index_type": index_type.value, "op_class": op_class},
        )
        return True

    async def ensure_metadata_index(self) -> bool:
        """Create a GIN index on the metadata column, if configured.

        Returns:
            True if an index was created.
        """
        column = self._schema.columns.metadata
        if not column:
            return False

        table = self._schema.table
        name = _fit_identifier(f"idx_{table}_{column}")
        if await self._index_exists(name):
            return False

        await self._run(f"CREATE INDEX {name} ON {table} USING GIN ({column})")
        logger.info(f"Created metadata index {name}")
        return True

    async def ensure_schema(self, dimensions: int | None = None) -> int:
        """Extension, table and metadata index in one call."""
        await self.ensure_extension()
        effective = await self.ensure_table(dimensions)
        await self.ensure_metadata_index()
        return effective

    async def drop_collection(self, partition_value: str) -> DropCollectionResult:
        """Delete every row of a partition.

        Raises:
            NoPartitionColumnError: If no partition column is configured.
        """
        column = self._schema.columns.partition
        if not column:
            raise NoPartitionColumnError(
                "Cannot drop a collection: no partition column configured",
                details={"table": self._schema.table},
            )

        result = await self._run(
            f"DELETE FROM {self._schema.table} WHERE {column} = $1",
            [partition_value],
        )
        logger.info(
            f"Dropped collection {partition_value}",
            extra={"deleted": result.affected_rows},
        )
        return DropCollectionResult(deleted_count=result.affected_rows)
