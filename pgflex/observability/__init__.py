"""Observability module for metrics and monitoring."""

from pgflex.observability.metrics import (
    get_metrics,
    track_db_query,
    track_upsert_batch,
    track_vectorstore_operation,
)

__all__ = [
    "get_metrics",
    "track_db_query",
    "track_upsert_batch",
    "track_vectorstore_operation",
]
