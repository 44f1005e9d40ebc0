"""Database access module."""

from pgflex.db.executor import (
    AsyncpgExecutor,
    ConnectionExecutor,
    ExecutionResult,
    QueryExecutor,
)

__all__ = [
    "AsyncpgExecutor",
    "ConnectionExecutor",
    "ExecutionResult",
    "QueryExecutor",
]
