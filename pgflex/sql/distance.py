"""Distance metric and index type resolution.

The query-time operator and the index-time operator class for a metric
come from one table. An index built with one metric's operator class
is not used by queries ordering on another metric's operator, so the
metric passed to ``ensure_index`` should match the one used to query.
"""

from enum import Enum

from pgflex.exceptions import InvalidIndexTypeError, UnknownMetricError


class DistanceMetric(str, Enum):
    """Supported similarity metrics."""

    COSINE = "cosine"
    L2 = "l2"
    INNER_PRODUCT = "inner_product"


class IndexType(str, Enum):
    """Supported pgvector index methods."""

    HNSW = "hnsw"
    IVFFLAT = "ivfflat"


# metric -> (query operator, index operator class)
_METRIC_OPERATORS: dict[DistanceMetric, tuple[str, str]] = {
    DistanceMetric.COSINE: ("<=>", "vector_cosine_ops"),
    DistanceMetric.L2: ("<->", "vector_l2_ops"),
    DistanceMetric.INNER_PRODUCT: ("<#>", "vector_ip_ops"),
}

IVFFLAT_LISTS = 100


def resolve_metric(metric: DistanceMetric | str) -> DistanceMetric:
    """Coerce a metric name to DistanceMetric.

    Raises:
        UnknownMetricError: If the value is not a supported metric.
    """
    try:
        return DistanceMetric(metric)
    except ValueError:
        raise UnknownMetricError(
            f"Unknown distance metric: {metric}. "
            f"Must be one of: {', '.join(m.value for m in DistanceMetric)}",
            details={"metric": str(metric)},
        ) from None


def resolve_index_type(index_type: IndexType | str) -> IndexType:
    """Coerce an index type name to IndexType.

    Raises:
        InvalidIndexTypeError: If the value is not a supported index type.
    """
    try:
        return IndexType(index_type)
    except ValueError:
        raise InvalidIndexTypeError(
            f"Invalid index type: {index_type}. "
            f"Must be one of: {', '.join(t.value for t in IndexType)}",
            details={"index_type": str(index_type)},
        ) from None


def query_operator(metric: DistanceMetric | str) -> str:
    """Distance operator used in ORDER BY for a metric."""
    return _METRIC_OPERATORS[resolve_metric(metric)][0]


def index_operator_class(metric: DistanceMetric | str) -> str:
    """Operator class used when indexing for a metric."""
    return _METRIC_OPERATORS[resolve_metric(metric)][1]
