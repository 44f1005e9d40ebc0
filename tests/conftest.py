"""Pytest configuration and shared fixtures."""

from unittest.mock import AsyncMock

import pytest

from pgflex.config import StoreSettings
from pgflex.db.executor import ExecutionResult
from pgflex.schema.models import SchemaConfig, merge_with_defaults


@pytest.fixture
def schema() -> SchemaConfig:
    """Default schema with every optional column configured."""
    return merge_with_defaults()


@pytest.fixture
def minimal_schema() -> SchemaConfig:
    """Schema with only the required id and embedding columns."""
    return SchemaConfig(
        table_name="vectors",
        columns={"id": "id", "embedding": "embedding"},
    )


@pytest.fixture
def executor() -> AsyncMock:
    """Mock executor returning an empty result.

    Tests set ``execute.return_value`` or ``execute.side_effect``.
    """
    mock = AsyncMock()
    mock.execute = AsyncMock(return_value=ExecutionResult())
    return mock


@pytest.fixture
def store_settings() -> StoreSettings:
    """Store settings with the documented defaults."""
    return StoreSettings(
        table_name="embeddings",
        dimensions=1536,
        create_table=True,
        batch_size=100,
        default_metric="cosine",
        default_top_k=10,
    )
