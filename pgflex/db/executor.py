"""Query executor interface and asyncpg implementation.

The vector store only needs ``execute(sql, values)`` and a transaction
primitive. Values are bound positionally to ``$1..$n``. Vector and
JSONB values travel as text: asyncpg falls back to text I/O for the
``vector`` extension type, and its default jsonb codec takes and
returns JSON strings.
"""

import asyncio
import time
from collections.abc import AsyncIterator, Sequence
from contextlib import AbstractAsyncContextManager, asynccontextmanager
from typing import Any, Protocol

import asyncpg
from pydantic import BaseModel, Field

from pgflex.config import DatabaseSettings, get_settings
from pgflex.exceptions import ConfigurationError, DatabaseError, ErrorCode, PgFlexError
from pgflex.logging_config import get_logger
from pgflex.observability.metrics import track_db_query

logger = get_logger(__name__)

SQL_CONTEXT_CHARS = 200


class ExecutionResult(BaseModel):
    """Rows and affected row count of one statement.

    Attributes:
        rows: Returned rows keyed by column name.
        affected_rows: Rows inserted/updated/deleted/selected.
    """

    rows: list[dict[str, Any]] = Field(default_factory=list, description="Rows")
    affected_rows: int = Field(default=0, description="Affected row count")


class QueryExecutor(Protocol):
    """Anything that can run a parameterized statement."""

    async def execute(
        self,
        sql: str,
        values: Sequence[Any] = (),
        *,
        timeout_ms: int | None = None,
    ) -> ExecutionResult:
        """Run one statement with positional values."""
        ...

    def transaction(self) -> AbstractAsyncContextManager["QueryExecutor"]:
        """Run the enclosed statements atomically."""
        ...


def parse_affected_rows(status: str | None) -> int:
    """Extract the row count from a command tag such as ``DELETE 3``."""
    if not status:
        return 0
    last = status.rsplit(" ", 1)[-1]
    return int(last) if last.isdigit() else 0


def database_error(sql: str, error: Exception) -> DatabaseError:
    """Wrap a driver failure with the statement and sqlstate."""
    return DatabaseError(
        f"Database query failed: {error}",
        details={
            "sql": sql[:SQL_CONTEXT_CHARS],
            "error": str(error),
            "sqlstate": getattr(error, "sqlstate", None),
        },
    )


async def execute_checked(
    executor: QueryExecutor,
    sql: str,
    values: Sequence[Any] = (),
) -> ExecutionResult:
    """Run a statement on any executor, wrapping errors it left raw.

    Errors that are already ``PgFlexError`` pass through unchanged, so
    a failure is wrapped exactly once.
    """
    try:
        return await executor.execute(sql, values)
    except PgFlexError:
        raise
    except Exception as e:
        raise database_error(sql, e) from e


class ConnectionExecutor:
    """Executor bound to a single acquired connection."""

    def __init__(
        self,
        connection: Any,
        default_timeout_ms: int | None = None,
    ) -> None:
        self._connection = connection
        self._default_timeout_ms = default_timeout_ms

    async def execute(
        self,
        sql: str,
        values: Sequence[Any] = (),
        *,
        timeout_ms: int | None = None,
    ) -> ExecutionResult:
        """Run one statement on this connection.

        Raises:
            DatabaseError: On any driver or server failure.
        """
        timeout_ms = timeout_ms or self._default_timeout_ms
        start = time.perf_counter()

        try:
            if timeout_ms:
                await self._connection.execute(f"SET statement_timeout = {int(timeout_ms)}")
            try:
                statement = await self._connection.prepare(sql)
                records = await statement.fetch(*values)
                status = statement.get_statusmsg()
            finally:
                if timeout_ms:
                    await self._reset_timeout()

        except PgFlexError:
            track_db_query(time.perf_counter() - start, success=False)
            raise
        except Exception as e:
            track_db_query(time.perf_counter() - start, success=False)
            raise database_error(sql, e) from e

        track_db_query(time.perf_counter() - start)
        return ExecutionResult(
            rows=[dict(record) for record in records],
            affected_rows=parse_affected_rows(status),
        )

    async def _reset_timeout(self) -> None:
        # An aborted transaction rejects RESET; its rollback restores the setting.
        try:
            await self._connection.execute("RESET statement_timeout")
        except asyncpg.exceptions.InFailedSQLTransactionError:
            logger.debug("statement_timeout reset deferred to rollback")

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator["ConnectionExecutor"]:
        """Nested transaction (savepoint) on this connection."""
        async with self._connection.transaction():
            yield self


class AsyncpgExecutor:
    """Pooled asyncpg executor.

    The pool is created on first use and owned by this executor unless
    one is passed in.
    """

    def __init__(
        self,
        settings: DatabaseSettings | None = None,
        pool: Any | None = None,
    ) -> None:
        """Initialize the executor.

        Args:
            settings: Database configuration.
            pool: Existing asyncpg pool (for testing or sharing).

        Raises:
            ConfigurationError: If the pool bounds are inconsistent.
        """
        self._settings = settings or get_settings().database
        if self._settings.min_pool_size > self._settings.max_pool_size:
            raise ConfigurationError(
                "min_pool_size cannot exceed max_pool_size",
                details={
                    "min_pool_size": self._settings.min_pool_size,
                    "max_pool_size": self._settings.max_pool_size,
                },
            )
        self._pool = pool
        self._owns_pool = pool is None
        self._closed = False
        self._pool_lock = asyncio.Lock()

    async def _get_pool(self) -> Any:
        """Get or create the connection pool."""
        if self._closed:
            raise DatabaseError(
                "Cannot execute query: database connection is closed",
                code=ErrorCode.DATABASE_CLOSED,
            )

        if self._pool is None:
            async with self._pool_lock:
                if self._pool is None:
                    try:
                        self._pool = await asyncpg.create_pool(
                            host=self._settings.host,
                            port=self._settings.port,
                            user=self._settings.user,
                            password=self._settings.password.get_secret_value(),
                            database=self._settings.database,
                            min_size=self._settings.min_pool_size,
                            max_size=self._settings.max_pool_size,
                            timeout=self._settings.connect_timeout,
                        )
                    except Exception as e:
                        raise DatabaseError(
                            f"Failed to connect: {e}",
                            details={"dsn": self._settings.dsn, "error": str(e)},
                        ) from e
                    logger.info(f"Connected to {self._settings.dsn}")
        return self._pool

    async def execute(
        self,
        sql: str,
        values: Sequence[Any] = (),
        *,
        timeout_ms: int | None = None,
    ) -> ExecutionResult:
        """Run one statement on a pooled connection."""
        pool = await self._get_pool()
        async with pool.acquire() as connection:
            executor = ConnectionExecutor(connection, self._settings.statement_timeout_ms)
            return await executor.execute(sql, values, timeout_ms=timeout_ms)

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[ConnectionExecutor]:
        """Run statements in one transaction.

        Commits when the block exits normally, rolls back and re-raises
        on any exception, and always releases the connection.
        """
        pool = await self._get_pool()
        async with pool.acquire() as connection:
            async with connection.transaction():
                yield ConnectionExecutor(connection, self._settings.statement_timeout_ms)

    async def close(self) -> None:
        """Close the pool if we own it. Safe to call twice."""
        if self._closed:
            return
        self._closed = True
        if self._owns_pool and self._pool is not None:
            await self._pool.close()
            self._pool = None

    async def test_connection(self) -> bool:
        """Check that a trivial statement succeeds."""
        try:
            await self.execute("SELECT 1")
        except DatabaseError as e:
            logger.warning(f"Connection test failed: {e.message}")
            return False
        return True

    def get_stats(self) -> dict[str, int]:
        """Pool size statistics."""
        if self._pool is None:
            return {"size": 0, "idle": 0, "max_size": self._settings.max_pool_size}
        return {
            "size": self._pool.get_size(),
            "idle": self._pool.get_idle_size(),
            "max_size": self._pool.get_max_size(),
        }
