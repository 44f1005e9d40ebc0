"""Schema configuration module."""

from pgflex.schema.identifiers import (
    quote_identifier,
    sanitize_column_name,
    sanitize_identifier,
    sanitize_table_name,
)
from pgflex.schema.models import (
    DEFAULT_SCHEMA,
    MAX_DIMENSIONS,
    ColumnMapping,
    SchemaConfig,
    merge_with_defaults,
    validate_dimensions,
    validate_schema_config,
)

__all__ = [
    "DEFAULT_SCHEMA",
    "MAX_DIMENSIONS",
    "ColumnMapping",
    "SchemaConfig",
    "merge_with_defaults",
    "quote_identifier",
    "sanitize_column_name",
    "sanitize_identifier",
    "sanitize_table_name",
    "validate_dimensions",
    "validate_schema_config",
]
