"""Vector store interface and pgvector implementation."""

import asyncio
import re
import time
from abc import ABC, abstractmethod
from collections.abc import Iterator, Mapping
from contextlib import contextmanager
from typing import Any

from pgflex.config import StoreSettings, get_settings
from pgflex.db.executor import (
    SQL_CONTEXT_CHARS,
    ExecutionResult,
    QueryExecutor,
    execute_checked,
)
from pgflex.exceptions import (
    ErrorCode,
    MissingSelectorError,
    VectorStoreError,
)
from pgflex.logging_config import get_logger
from pgflex.observability.metrics import track_upsert_batch, track_vectorstore_operation
from pgflex.schema.models import SchemaConfig, merge_with_defaults, validate_schema_config
from pgflex.sql.distance import DistanceMetric, resolve_metric
from pgflex.sql.models import SqlTemplateConfig, Statement
from pgflex.sql.templates import (
    build_custom_delete_query,
    build_custom_get_query,
    build_custom_insert_query,
    build_custom_search_query,
    prepare_template,
)
from pgflex.vectorstore import statements
from pgflex.vectorstore.admin import SchemaAdministrator
from pgflex.vectorstore.models import (
    DeleteRequest,
    DeleteResult,
    GetRequest,
    GetRow,
    QueryRequest,
    QueryRow,
    UpsertRequest,
    UpsertResult,
)

logger = get_logger(__name__)


class VectorStore(ABC):
    """Abstract base class for vector stores.

    Defines the record-level interface; schema management lives with
    the implementation.
    """

    @abstractmethod
    async def upsert(self, request: UpsertRequest) -> UpsertResult:
        """Insert or update one record.

        Args:
            request: Record to write.

        Returns:
            Identity of the written row and whether it was inserted.

        Raises:
            DatabaseError: If the statement fails.
        """
        ...

    @abstractmethod
    async def upsert_batch(self, requests: list[UpsertRequest]) -> list[UpsertResult]:
        """Upsert many records.

        Args:
            requests: Records to write.

        Returns:
            Results in input order.
        """
        ...

    @abstractmethod
    async def query(self, request: QueryRequest) -> list[QueryRow]:
        """Search for the nearest records.

        Args:
            request: Query vector and filters.

        Returns:
            Rows ordered nearest first.
        """
        ...

    @abstractmethod
    async def delete(self, request: DeleteRequest) -> DeleteResult:
        """Delete records by id or by partition selector.

        Raises:
            MissingSelectorError: If no usable selector is given.
        """
        ...

    @abstractmethod
    async def get(self, request: GetRequest) -> list[GetRow]:
        """Fetch records by id or by partition and external id.

        Raises:
            MissingSelectorError: If no usable selector is given.
        """
        ...


class PgVectorStore(VectorStore):
    """pgvector store over a configurable table.

    Statements come from the pure builders in
    ``pgflex.vectorstore.statements``, or from caller-supplied SQL
    templates for the operations a ``SqlTemplateConfig`` sets.
    """

    def __init__(
        self,
        executor: QueryExecutor,
        schema: SchemaConfig | Mapping[str, Any] | None = None,
        settings: StoreSettings | None = None,
        templates: SqlTemplateConfig | None = None,
    ) -> None:
        """Initialize the store.

        Args:
            executor: Statement executor (pool, connection or mock).
            schema: Schema configuration; defaults are derived from
                store settings when omitted.
            settings: Store configuration.
            templates: Optional SQL templates replacing generated
                statements.
        """
        self._executor = executor
        self._settings = settings or get_settings().store

        if schema is None:
            self._schema = merge_with_defaults(
                {
                    "table_name": self._settings.table_name,
                    "dimensions": self._settings.dimensions,
                    "create_table": self._settings.create_table,
                }
            )
        else:
            self._schema = validate_schema_config(schema)

        self._default_metric = resolve_metric(self._settings.default_metric)
        self._templates = templates or SqlTemplateConfig()
        self._admin = SchemaAdministrator(executor, self._schema)

        if configured := self._templates.configured():
            logger.info(
                f"Using SQL templates for {', '.join(sorted(configured))}",
                extra={"table": self._schema.table},
            )

    @property
    def schema(self) -> SchemaConfig:
        """The validated schema configuration."""
        return self._schema

    @property
    def admin(self) -> SchemaAdministrator:
        """DDL helper bound to the same executor and schema."""
        return self._admin

    @contextmanager
    def _tracked(self, operation: str) -> Iterator[None]:
        start = time.perf_counter()
        try:
            yield
        except Exception:
            track_vectorstore_operation(operation, time.perf_counter() - start, success=False)
            raise
        track_vectorstore_operation(operation, time.perf_counter() - start)

    async def _execute(self, statement: Statement) -> ExecutionResult:
        return await execute_checked(self._executor, statement.sql, statement.values)

    # Generated statements

    async def upsert(self, request: UpsertRequest) -> UpsertResult:
        """Insert or update one record."""
        if self._templates.insert_query:
            return await self._upsert_from_template(request)

        with self._tracked("upsert"):
            result = await self._execute(statements.build_upsert(self._schema, request))
            if not result.rows:
                raise VectorStoreError(
                    "Upsert returned no row",
                    code=ErrorCode.VECTOR_STORE_ERROR,
                    details={"table": self._schema.table},
                )
            upserted = statements.map_upsert_row(self._schema, result.rows[0])

        logger.debug(
            f"Upserted record {upserted.id}",
            extra={"operation": upserted.operation},
        )
        return upserted

    async def upsert_batch(self, requests: list[UpsertRequest]) -> list[UpsertResult]:
        """Upsert records chunk by chunk.

        Each chunk of ``batch_size`` records runs concurrently; the next
        chunk starts only after the previous one finished.
        """
        if not requests:
            return []

        batch_size = self._settings.batch_size
        track_upsert_batch(len(requests))
        results: list[UpsertResult] = []

        with self._tracked("upsert_batch"):
            for start in range(0, len(requests), batch_size):
                chunk = requests[start : start + batch_size]
                results.extend(await asyncio.gather(*(self.upsert(r) for r in chunk)))

        logger.info(
            f"Upserted {len(results)} records",
            extra={"table": self._schema.table, "batch_size": batch_size},
        )
        return results

    async def query(self, request: QueryRequest) -> list[QueryRow]:
        """Search for the nearest records."""
        if self._templates.search_query:
            return await self._query_from_template(request)

        with self._tracked("query"):
            statement = statements.build_query(
                self._schema,
                request,
                default_top_k=self._settings.default_top_k,
                default_metric=self._default_metric,
            )
            result = await self._execute(statement)

        logger.debug(f"Query returned {len(result.rows)} rows")
        return [
            statements.map_query_row(self._schema, row, request.include_embedding)
            for row in result.rows
        ]

    async def delete(self, request: DeleteRequest) -> DeleteResult:
        """Delete records by id or by partition selector."""
        if isinstance(request.id, list) and not request.id:
            return DeleteResult(deleted_count=0)

        if self._templates.delete_query:
            return await self._delete_from_template(request)

        with self._tracked("delete"):
            result = await self._execute(statements.build_delete(self._schema, request))

        logger.debug(f"Deleted {result.affected_rows} records")
        return DeleteResult(deleted_count=result.affected_rows)

    async def get(self, request: GetRequest) -> list[GetRow]:
        """Fetch records by id or by partition and external id."""
        if isinstance(request.id, list) and not request.id:
            return []

        if self._templates.get_query:
            return await self._get_from_template(request)

        with self._tracked("get"):
            result = await self._execute(statements.build_get(self._schema, request))

        return [
            statements.map_get_row(self._schema, row, request.include_embedding)
            for row in result.rows
        ]

    # Template statements

    def _render(
        self,
        template: str,
        metric: DistanceMetric | None = None,
        include_embedding: bool = False,
    ) -> str:
        return prepare_template(
            template,
            self._schema,
            metric or self._default_metric,
            include_embedding,
        )

    async def _upsert_from_template(self, request: UpsertRequest) -> UpsertResult:
        with self._tracked("upsert"):
            statement = build_custom_insert_query(
                self._render(self._templates.insert_query),
                embedding=request.embedding,
                id=request.id,
                partition=request.partition_value or statements.DEFAULT_PARTITION,
                external_id=request.external_id,
                content=request.content,
                metadata=request.metadata,
            )
            result = await self._execute(statement)
            if not result.rows:
                raise VectorStoreError(
                    "Insert template returned no row; add a RETURNING clause",
                    code=ErrorCode.VECTOR_STORE_ERROR,
                    details={"sql": statement.sql[:SQL_CONTEXT_CHARS]},
                )
            return statements.map_upsert_row(self._schema, result.rows[0])

    async def _query_from_template(self, request: QueryRequest) -> list[QueryRow]:
        with self._tracked("query"):
            statement = build_custom_search_query(
                self._render(
                    self._templates.search_query,
                    request.metric,
                    request.include_embedding,
                ),
                embedding=request.embedding,
                partition=request.partition_value,
                limit=self._settings.default_top_k if request.top_k is None else request.top_k,
                offset=request.offset,
                metadata_filter=request.metadata_filter,
            )
            result = await self._execute(statement)

        return [
            statements.map_query_row(self._schema, row, request.include_embedding)
            for row in result.rows
        ]

    def _template_selector(
        self,
        sql: str,
        request: DeleteRequest | GetRequest,
        operation: str,
    ) -> dict[str, Any]:
        """Arguments for a delete/get template: ids, or partition + external ids.

        A template binding ``$2`` selects by partition and external id;
        otherwise it selects by id.
        """
        by_external_id = re.search(r"\$2(?!\d)", sql) is not None
        if not by_external_id and request.id is not None:
            return {"ids": statements.as_list(request.id)}
        if by_external_id and request.partition_value and request.external_id is not None:
            return {
                "partition": request.partition_value,
                "external_ids": statements.as_list(request.external_id),
            }
        raise MissingSelectorError(
            f"{operation.capitalize()} template needs id or (partition value + external id)",
            details={"table": self._schema.table},
        )

    async def _delete_from_template(self, request: DeleteRequest) -> DeleteResult:
        with self._tracked("delete"):
            sql = self._render(self._templates.delete_query)
            statement = build_custom_delete_query(
                sql, **self._template_selector(sql, request, "delete")
            )
            result = await self._execute(statement)

        return DeleteResult(deleted_count=result.affected_rows)

    async def _get_from_template(self, request: GetRequest) -> list[GetRow]:
        with self._tracked("get"):
            sql = self._render(self._templates.get_query)
            statement = build_custom_get_query(
                sql, **self._template_selector(sql, request, "get")
            )
            result = await self._execute(statement)

        return [
            statements.map_get_row(self._schema, row, request.include_embedding)
            for row in result.rows
        ]
