"""SQL construction module."""

from pgflex.sql.distance import (
    DistanceMetric,
    IndexType,
    index_operator_class,
    query_operator,
    resolve_index_type,
    resolve_metric,
)
from pgflex.sql.filters import (
    build_batch_values,
    build_equality_clause,
    build_json_containment,
    where,
)
from pgflex.sql.models import (
    SqlFragment,
    SqlTemplateConfig,
    Statement,
    TemplateInfo,
    TemplateValidation,
)

__all__ = [
    "DistanceMetric",
    "IndexType",
    "SqlFragment",
    "SqlTemplateConfig",
    "Statement",
    "TemplateInfo",
    "TemplateValidation",
    "build_batch_values",
    "build_equality_clause",
    "build_json_containment",
    "index_operator_class",
    "query_operator",
    "resolve_index_type",
    "resolve_metric",
    "where",
]
