"""Tests for vector store module."""

import asyncio
from unittest.mock import AsyncMock

import pytest

from pgflex.config import StoreSettings
from pgflex.db.executor import ExecutionResult
from pgflex.exceptions import (
    DatabaseError,
    InvalidIdentifierError,
    MissingSelectorError,
    VectorStoreError,
)
from pgflex.schema.models import SchemaConfig
from pgflex.sql.models import SqlTemplateConfig
from pgflex.sql.templates import DEFAULT_TEMPLATES
from pgflex.vectorstore.admin import SchemaAdministrator
from pgflex.vectorstore.models import (
    DeleteRequest,
    GetRequest,
    QueryRequest,
    UpsertRequest,
)
from pgflex.vectorstore.service import PgVectorStore


def _upsert_row(values: list, inserted: bool = True) -> ExecutionResult:
    """RETURNING row echoing the bound partition and external id."""
    return ExecutionResult(
        rows=[
            {
                "id": f"id-{values[1]}",
                "collection": values[0],
                "external_id": values[1],
                "inserted": inserted,
            }
        ],
        affected_rows=1,
    )


class TestPgVectorStoreInit:
    """Tests for store construction."""

    def test_schema_from_settings(self, executor: AsyncMock) -> None:
        """Without a schema, defaults follow store settings."""
        settings = StoreSettings(table_name="docs", dimensions=3, create_table=False)
        store = PgVectorStore(executor, settings=settings)

        assert store.schema.table == "docs"
        assert store.schema.dimensions == 3
        assert store.schema.create_table is False
        assert store.schema.columns.partition == "collection"

    def test_schema_mapping_validated(self, executor: AsyncMock) -> None:
        """A plain mapping is validated at construction."""
        with pytest.raises(InvalidIdentifierError):
            PgVectorStore(
                executor,
                schema={"tableName": "bad table", "columns": {"id": "id", "embedding": "e"}},
            )

    def test_admin_shares_schema(self, executor: AsyncMock, schema: SchemaConfig) -> None:
        """The administrator uses the store's schema."""
        store = PgVectorStore(executor, schema=schema)

        assert isinstance(store.admin, SchemaAdministrator)
        assert store.admin.schema == store.schema


class TestUpsert:
    """Tests for single upserts."""

    @pytest.mark.asyncio
    async def test_insert_then_update(
        self,
        executor: AsyncMock,
        schema: SchemaConfig,
        store_settings: StoreSettings,
    ) -> None:
        """The same external id reports insert first, then update."""
        executor.execute.side_effect = [
            ExecutionResult(rows=[{"id": "u1", "external_id": "e1", "collection": "docs", "inserted": True}]),
            ExecutionResult(rows=[{"id": "u1", "external_id": "e1", "collection": "docs", "inserted": False}]),
        ]
        store = PgVectorStore(executor, schema=schema, settings=store_settings)
        request = UpsertRequest(partition_value="docs", external_id="e1", embedding=[1.0])

        first = await store.upsert(request)
        second = await store.upsert(request.model_copy(update={"content": "changed"}))

        assert first.was_insert is True
        assert second.was_insert is False
        assert first.id == second.id == "u1"
        sql = executor.execute.call_args.args[0]
        assert "ON CONFLICT (collection, external_id)" in sql

    @pytest.mark.asyncio
    async def test_no_row_returned(
        self,
        executor: AsyncMock,
        schema: SchemaConfig,
        store_settings: StoreSettings,
    ) -> None:
        """An upsert returning nothing is an error."""
        store = PgVectorStore(executor, schema=schema, settings=store_settings)

        with pytest.raises(VectorStoreError):
            await store.upsert(UpsertRequest(embedding=[1.0]))

    @pytest.mark.asyncio
    async def test_raw_errors_wrapped(
        self,
        executor: AsyncMock,
        schema: SchemaConfig,
        store_settings: StoreSettings,
    ) -> None:
        """Errors the executor left unwrapped become DatabaseError."""
        executor.execute.side_effect = RuntimeError("connection reset")
        store = PgVectorStore(executor, schema=schema, settings=store_settings)

        with pytest.raises(DatabaseError) as exc_info:
            await store.upsert(UpsertRequest(embedding=[1.0]))

        assert "connection reset" in exc_info.value.message
        assert exc_info.value.details["sql"].startswith("INSERT INTO embeddings")
        assert len(exc_info.value.details["sql"]) <= 200

    @pytest.mark.asyncio
    async def test_wrapped_errors_pass_through(
        self,
        executor: AsyncMock,
        schema: SchemaConfig,
        store_settings: StoreSettings,
    ) -> None:
        """DatabaseError from the executor is not wrapped twice."""
        original = DatabaseError("duplicate key", details={"sqlstate": "23505"})
        executor.execute.side_effect = original
        store = PgVectorStore(executor, schema=schema, settings=store_settings)

        with pytest.raises(DatabaseError) as exc_info:
            await store.upsert(UpsertRequest(embedding=[1.0]))

        assert exc_info.value is original


class TestUpsertBatch:
    """Tests for chunked batch upserts."""

    @pytest.mark.asyncio
    async def test_results_in_input_order(
        self, executor: AsyncMock, schema: SchemaConfig
    ) -> None:
        """Results follow input order even when completion order differs."""

        async def execute(sql: str, values: list) -> ExecutionResult:
            # later records finish first
            await asyncio.sleep(0.001 * (10 - int(values[1])))
            return _upsert_row(values)

        executor.execute.side_effect = execute
        settings = StoreSettings(batch_size=4)
        store = PgVectorStore(executor, schema=schema, settings=settings)
        requests = [
            UpsertRequest(partition_value="docs", external_id=str(i), embedding=[float(i)])
            for i in range(10)
        ]

        results = await store.upsert_batch(requests)

        assert [r.external_id for r in results] == [str(i) for i in range(10)]

    @pytest.mark.asyncio
    async def test_chunks_run_sequentially(
        self, executor: AsyncMock, schema: SchemaConfig
    ) -> None:
        """No more than batch_size upserts are in flight at once."""
        in_flight = 0
        peak = 0

        async def execute(sql: str, values: list) -> ExecutionResult:
            nonlocal in_flight, peak
            in_flight += 1
            peak = max(peak, in_flight)
            await asyncio.sleep(0)
            in_flight -= 1
            return _upsert_row(values)

        executor.execute.side_effect = execute
        settings = StoreSettings(batch_size=3)
        store = PgVectorStore(executor, schema=schema, settings=settings)
        requests = [
            UpsertRequest(partition_value="docs", external_id=str(i), embedding=[1.0])
            for i in range(7)
        ]

        results = await store.upsert_batch(requests)

        assert len(results) == 7
        assert peak == 3
        assert executor.execute.await_count == 7

    @pytest.mark.asyncio
    async def test_empty_batch(
        self,
        executor: AsyncMock,
        schema: SchemaConfig,
        store_settings: StoreSettings,
    ) -> None:
        """An empty batch executes nothing."""
        store = PgVectorStore(executor, schema=schema, settings=store_settings)

        assert await store.upsert_batch([]) == []
        executor.execute.assert_not_called()


class TestQuery:
    """Tests for similarity search."""

    @pytest.mark.asyncio
    async def test_concrete_scenario(
        self,
        executor: AsyncMock,
        schema: SchemaConfig,
        store_settings: StoreSettings,
    ) -> None:
        """Nearest row to [1,0,0] under cosine is 'a' with distance 0."""
        executor.execute.return_value = ExecutionResult(
            rows=[
                {
                    "id": "u-a",
                    "external_id": "a",
                    "collection": "docs",
                    "content": "cat",
                    "metadata": "{}",
                    "score": 0.0,
                }
            ],
            affected_rows=1,
        )
        store = PgVectorStore(executor, schema=schema, settings=store_settings)

        rows = await store.query(
            QueryRequest(
                embedding=[1, 0, 0],
                metric="cosine",
                top_k=1,
                partition_value="docs",
            )
        )

        assert len(rows) == 1
        assert rows[0].external_id == "a"
        assert rows[0].content == "cat"
        assert rows[0].score == pytest.approx(0.0)
        sql, values = executor.execute.call_args.args
        assert "embedding <=> $1::vector AS score" in sql
        assert values == ["[1.0, 0.0, 0.0]", "docs", 1, 0]

    @pytest.mark.asyncio
    async def test_defaults_from_settings(
        self, executor: AsyncMock, schema: SchemaConfig
    ) -> None:
        """Missing top_k and metric fall back to store settings."""
        settings = StoreSettings(default_top_k=3, default_metric="l2")
        store = PgVectorStore(executor, schema=schema, settings=settings)

        await store.query(QueryRequest(embedding=[1.0]))

        sql, values = executor.execute.call_args.args
        assert "<->" in sql
        assert values[-2:] == [3, 0]

    @pytest.mark.asyncio
    async def test_empty_result(
        self,
        executor: AsyncMock,
        schema: SchemaConfig,
        store_settings: StoreSettings,
    ) -> None:
        """No matches yields an empty list."""
        store = PgVectorStore(executor, schema=schema, settings=store_settings)
        assert await store.query(QueryRequest(embedding=[1.0])) == []


class TestDelete:
    """Tests for deletes."""

    @pytest.mark.asyncio
    async def test_by_ids(
        self,
        executor: AsyncMock,
        schema: SchemaConfig,
        store_settings: StoreSettings,
    ) -> None:
        """Deleted count comes from the command status."""
        executor.execute.return_value = ExecutionResult(affected_rows=2)
        store = PgVectorStore(executor, schema=schema, settings=store_settings)

        result = await store.delete(DeleteRequest(id=["a", "b"]))

        assert result.deleted_count == 2

    @pytest.mark.asyncio
    async def test_empty_id_list(
        self,
        executor: AsyncMock,
        schema: SchemaConfig,
        store_settings: StoreSettings,
    ) -> None:
        """An empty id list deletes nothing without a round trip."""
        store = PgVectorStore(executor, schema=schema, settings=store_settings)

        result = await store.delete(DeleteRequest(id=[]))

        assert result.deleted_count == 0
        executor.execute.assert_not_called()

    @pytest.mark.asyncio
    async def test_missing_selector_executes_nothing(
        self,
        executor: AsyncMock,
        schema: SchemaConfig,
        store_settings: StoreSettings,
    ) -> None:
        """Without a selector no statement is sent."""
        store = PgVectorStore(executor, schema=schema, settings=store_settings)

        with pytest.raises(MissingSelectorError):
            await store.delete(DeleteRequest(metadata_filter={"status": "archived"}))

        executor.execute.assert_not_called()


class TestGet:
    """Tests for fetching records."""

    @pytest.mark.asyncio
    async def test_round_trip_fields(
        self,
        executor: AsyncMock,
        schema: SchemaConfig,
        store_settings: StoreSettings,
    ) -> None:
        """Metadata and the vector parse back from their wire forms."""
        executor.execute.return_value = ExecutionResult(
            rows=[
                {
                    "id": "u1",
                    "external_id": "e1",
                    "collection": "docs",
                    "content": None,
                    "metadata": '{"nested": {"k": [1, 2]}}',
                    "embedding": "[0.25,0.5,1]",
                    "created_at": None,
                    "updated_at": None,
                }
            ],
            affected_rows=1,
        )
        store = PgVectorStore(executor, schema=schema, settings=store_settings)

        rows = await store.get(
            GetRequest(partition_value="docs", external_id="e1", include_embedding=True)
        )

        assert len(rows) == 1
        assert rows[0].metadata == {"nested": {"k": [1, 2]}}
        assert rows[0].embedding == [0.25, 0.5, 1.0]

    @pytest.mark.asyncio
    async def test_nothing_found(
        self,
        executor: AsyncMock,
        schema: SchemaConfig,
        store_settings: StoreSettings,
    ) -> None:
        """No match is an empty list, not an error."""
        store = PgVectorStore(executor, schema=schema, settings=store_settings)
        assert await store.get(GetRequest(id="missing")) == []

    @pytest.mark.asyncio
    async def test_missing_selector(
        self,
        executor: AsyncMock,
        minimal_schema: SchemaConfig,
        store_settings: StoreSettings,
    ) -> None:
        """Without id or partition selector the call is refused."""
        store = PgVectorStore(executor, schema=minimal_schema, settings=store_settings)

        with pytest.raises(MissingSelectorError):
            await store.get(GetRequest(partition_value="docs", external_id="a"))

        executor.execute.assert_not_called()


class TestTemplateMode:
    """Tests for caller-supplied SQL templates."""

    @pytest.mark.asyncio
    async def test_search_template(
        self,
        executor: AsyncMock,
        schema: SchemaConfig,
        store_settings: StoreSettings,
    ) -> None:
        """The search template is rendered and bound positionally."""
        templates = SqlTemplateConfig(search_query=DEFAULT_TEMPLATES["search"])
        store = PgVectorStore(executor, schema=schema, settings=store_settings, templates=templates)

        await store.query(
            QueryRequest(embedding=[1.0], partition_value="docs", metric="inner_product", top_k=2)
        )

        sql, values = executor.execute.call_args.args
        assert "embedding <#> $1::vector" in sql
        assert "{{" not in sql
        assert values == ["[1.0]", "docs", 2, 0, "{}"]

    @pytest.mark.asyncio
    async def test_insert_template(
        self,
        executor: AsyncMock,
        schema: SchemaConfig,
        store_settings: StoreSettings,
    ) -> None:
        """The insert template receives the five-value layout."""
        executor.execute.return_value = ExecutionResult(
            rows=[{"id": "u1", "external_id": None, "collection": "default", "inserted": True}]
        )
        templates = SqlTemplateConfig(insert_query=DEFAULT_TEMPLATES["insert"])
        store = PgVectorStore(executor, schema=schema, settings=store_settings, templates=templates)

        result = await store.upsert(UpsertRequest(content="cat", embedding=[1.0]))

        assert result.id == "u1"
        _, values = executor.execute.call_args.args
        assert values == ["default", None, "cat", "{}", "[1.0]"]

    @pytest.mark.asyncio
    async def test_delete_template_by_external_id(
        self,
        executor: AsyncMock,
        schema: SchemaConfig,
        store_settings: StoreSettings,
    ) -> None:
        """A two-placeholder delete template selects by external id."""
        executor.execute.return_value = ExecutionResult(affected_rows=1)
        templates = SqlTemplateConfig(delete_query=DEFAULT_TEMPLATES["delete_by_external_id"])
        store = PgVectorStore(executor, schema=schema, settings=store_settings, templates=templates)

        result = await store.delete(DeleteRequest(partition_value="docs", external_id="a"))

        assert result.deleted_count == 1
        _, values = executor.execute.call_args.args
        assert values == ["docs", ["a"]]

    @pytest.mark.asyncio
    async def test_get_template_needs_matching_selector(
        self,
        executor: AsyncMock,
        schema: SchemaConfig,
        store_settings: StoreSettings,
    ) -> None:
        """An id-only get template refuses an external-id request."""
        templates = SqlTemplateConfig(get_query=DEFAULT_TEMPLATES["get_by_id"])
        store = PgVectorStore(executor, schema=schema, settings=store_settings, templates=templates)

        with pytest.raises(MissingSelectorError):
            await store.get(GetRequest(partition_value="docs", external_id="a"))

    @pytest.mark.asyncio
    async def test_unset_templates_use_generated_sql(
        self,
        executor: AsyncMock,
        schema: SchemaConfig,
        store_settings: StoreSettings,
    ) -> None:
        """Operations without a template keep the generated statements."""
        executor.execute.return_value = ExecutionResult(affected_rows=1)
        templates = SqlTemplateConfig(search_query=DEFAULT_TEMPLATES["search"])
        store = PgVectorStore(executor, schema=schema, settings=store_settings, templates=templates)

        await store.delete(DeleteRequest(id="x"))

        sql, _ = executor.execute.call_args.args
        assert sql == "DELETE FROM embeddings WHERE id = ANY($1)"
