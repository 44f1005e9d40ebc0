"""Vector store data models."""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from pgflex.sql.distance import DistanceMetric, resolve_metric


class _RequestModel(BaseModel):
    """Accepts snake_case or camelCase keys."""

    model_config = ConfigDict(populate_by_name=True, alias_generator=to_camel)


def _blank_to_none(value: Any) -> Any:
    if value == "":
        return None
    return value


class UpsertRequest(_RequestModel):
    """A record to insert or update.

    Attributes:
        id: Primary key; when set the upsert conflicts on it.
        partition_value: Collection the record belongs to.
        external_id: Caller identity; conflicts on (partition, external_id)
            when no id is given.
        content: Text content.
        metadata: JSON metadata.
        embedding: The embedding vector.
        extra_columns: Values for additional table columns.
    """

    id: str | None = Field(default=None, description="Primary key")
    partition_value: str | None = Field(default=None, description="Partition value")
    external_id: str | None = Field(default=None, description="External identifier")
    content: str | None = Field(default=None, description="Text content")
    metadata: dict[str, Any] = Field(default_factory=dict, description="Metadata")
    embedding: list[float] = Field(min_length=1, description="Embedding vector")
    extra_columns: dict[str, Any] = Field(
        default_factory=dict,
        description="Additional column values",
    )

    @field_validator("id", "external_id", mode="before")
    @classmethod
    def _blank_ids(cls, value: Any) -> Any:
        return _blank_to_none(value)

    @field_validator("metadata", mode="before")
    @classmethod
    def _null_metadata(cls, value: Any) -> Any:
        return {} if value is None else value


class UpsertResult(BaseModel):
    """Outcome of one upsert.

    Attributes:
        id: Primary key of the written row.
        external_id: External identifier, if the column is configured.
        partition_value: Partition value, if the column is configured.
        was_insert: True when a new row was created.
    """

    id: str = Field(description="Primary key")
    external_id: str | None = Field(default=None, description="External identifier")
    partition_value: str | None = Field(default=None, description="Partition value")
    was_insert: bool = Field(description="Whether a new row was inserted")

    @property
    def operation(self) -> str:
        """``insert`` or ``update``."""
        return "insert" if self.was_insert else "update"


class QueryRequest(_RequestModel):
    """Similarity search parameters.

    ``top_k`` and ``metric`` fall back to store settings when omitted.
    """

    embedding: list[float] = Field(min_length=1, description="Query vector")
    top_k: int | None = Field(default=None, ge=0, description="Maximum results")
    offset: int = Field(default=0, ge=0, description="Results to skip")
    metric: DistanceMetric | None = Field(default=None, description="Distance metric")
    partition_value: str | None = Field(default=None, description="Partition value")
    metadata_filter: dict[str, Any] | None = Field(
        default=None,
        description="JSON containment filter on metadata",
    )
    extra_filters: dict[str, Any] | None = Field(
        default=None,
        description="Column equality filters",
    )
    include_embedding: bool = Field(default=False, description="Return vectors")

    @field_validator("metric", mode="before")
    @classmethod
    def _resolve_metric(cls, value: Any) -> DistanceMetric | None:
        if value is None or value == "":
            return None
        return resolve_metric(value)


class QueryRow(BaseModel):
    """One similarity search hit.

    Attributes:
        score: Raw distance from the metric's operator; lower is closer.
    """

    id: str
    external_id: str | None = None
    partition_value: str | None = None
    content: str | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)
    score: float
    embedding: list[float] | None = None
    extra: dict[str, Any] | None = None


class DeleteRequest(_RequestModel):
    """Delete selector: ids, or a partition with optional narrowing."""

    id: str | list[str] | None = Field(default=None, description="Primary key(s)")
    partition_value: str | None = Field(default=None, description="Partition value")
    external_id: str | list[str] | None = Field(
        default=None,
        description="External identifier(s)",
    )
    metadata_filter: dict[str, Any] | None = Field(
        default=None,
        description="JSON containment filter on metadata",
    )

    @field_validator("id", "external_id", mode="before")
    @classmethod
    def _blank_ids(cls, value: Any) -> Any:
        return _blank_to_none(value)


class DeleteResult(BaseModel):
    """Number of rows removed."""

    deleted_count: int = Field(default=0, description="Rows deleted")


class GetRequest(_RequestModel):
    """Fetch selector: ids, or a partition plus external ids."""

    id: str | list[str] | None = Field(default=None, description="Primary key(s)")
    partition_value: str | None = Field(default=None, description="Partition value")
    external_id: str | list[str] | None = Field(
        default=None,
        description="External identifier(s)",
    )
    include_embedding: bool = Field(default=False, description="Return vectors")

    @field_validator("id", "external_id", mode="before")
    @classmethod
    def _blank_ids(cls, value: Any) -> Any:
        return _blank_to_none(value)


class GetRow(BaseModel):
    """One stored record."""

    id: str
    external_id: str | None = None
    partition_value: str | None = None
    content: str | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)
    embedding: list[float] | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None
    extra: dict[str, Any] | None = None


class DropCollectionResult(BaseModel):
    """Number of rows removed from a partition."""

    deleted_count: int = Field(default=0, description="Rows deleted")
