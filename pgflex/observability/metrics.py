"""Prometheus metrics for the vector store engine.

Provides metrics instrumentation for:
- Vector store operation latency and counts
- Upsert batch sizes
- Executor round-trip latency
"""

from prometheus_client import (
    CONTENT_TYPE_LATEST,
    Counter,
    Histogram,
    generate_latest,
)

# Vector Store Metrics
VECTORSTORE_OPERATION_DURATION = Histogram(
    "vectorstore_operation_duration_seconds",
    "Vector store operation duration",
    ["operation", "status"],
    buckets=[0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.0],
)

VECTORSTORE_OPERATION_TOTAL = Counter(
    "vectorstore_operations_total",
    "Total vector store operations",
    ["operation", "status"],
)

VECTORSTORE_UPSERT_BATCH_SIZE = Histogram(
    "vectorstore_upsert_batch_size",
    "Records per upsert batch call",
    buckets=[1, 5, 10, 25, 50, 100, 250, 500, 1000],
)

# Executor Metrics
DB_QUERY_DURATION = Histogram(
    "db_query_duration_seconds",
    "Database statement round-trip duration",
    ["status"],
    buckets=[0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 5.0],
)


def get_metrics() -> bytes:
    """Generate Prometheus metrics output."""
    return generate_latest()


def get_metrics_content_type() -> str:
    """Get the content type for metrics response."""
    return CONTENT_TYPE_LATEST


def track_vectorstore_operation(
    operation: str,
    duration: float,
    success: bool = True,
) -> None:
    """Track a vector store operation.

    Args:
        operation: Operation name (upsert, query, delete, get, ...).
        duration: Operation duration in seconds.
        success: Whether the operation succeeded.
    """
    status = "success" if success else "error"

    VECTORSTORE_OPERATION_DURATION.labels(operation=operation, status=status).observe(
        duration
    )
    VECTORSTORE_OPERATION_TOTAL.labels(operation=operation, status=status).inc()


def track_upsert_batch(batch_size: int) -> None:
    """Track the size of an upsert batch call."""
    VECTORSTORE_UPSERT_BATCH_SIZE.observe(batch_size)


def track_db_query(duration: float, success: bool = True) -> None:
    """Track a single executor round trip.

    Args:
        duration: Round-trip duration in seconds.
        success: Whether the statement succeeded.
    """
    status = "success" if success else "error"
    DB_QUERY_DURATION.labels(status=status).observe(duration)
