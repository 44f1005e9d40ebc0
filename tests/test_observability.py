"""Tests for observability module."""

from prometheus_client import REGISTRY

from pgflex.observability.metrics import (
    get_metrics,
    get_metrics_content_type,
    track_db_query,
    track_upsert_batch,
    track_vectorstore_operation,
)


def _sample(name: str, labels: dict[str, str] | None = None) -> float:
    return REGISTRY.get_sample_value(name, labels or {}) or 0.0


class TestMetricsFunctions:
    """Tests for metrics tracking functions."""

    def test_get_metrics_returns_bytes(self) -> None:
        """get_metrics returns the exposition format."""
        assert isinstance(get_metrics(), bytes)
        assert "text/plain" in get_metrics_content_type()

    def test_track_vectorstore_operation_success(self) -> None:
        """Successful operations increment the success counter."""
        labels = {"operation": "query", "status": "success"}
        before = _sample("vectorstore_operations_total", labels)

        track_vectorstore_operation("query", 0.02)

        assert _sample("vectorstore_operations_total", labels) == before + 1
        assert "vectorstore_operation_duration_seconds" in get_metrics().decode()

    def test_track_vectorstore_operation_failure(self) -> None:
        """Failures are labelled as errors."""
        labels = {"operation": "upsert", "status": "error"}
        before = _sample("vectorstore_operations_total", labels)

        track_vectorstore_operation("upsert", 0.5, success=False)

        assert _sample("vectorstore_operations_total", labels) == before + 1

    def test_track_upsert_batch(self) -> None:
        """Batch sizes are observed."""
        before = _sample("vectorstore_upsert_batch_size_sum")

        track_upsert_batch(25)

        assert _sample("vectorstore_upsert_batch_size_sum") == before + 25

    def test_track_db_query(self) -> None:
        """Executor round trips are observed by status."""
        labels = {"status": "error"}
        before = _sample("db_query_duration_seconds_count", labels)

        track_db_query(0.003, success=False)

        assert _sample("db_query_duration_seconds_count", labels) == before + 1
