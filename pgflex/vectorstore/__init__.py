"""Vector store module."""

from pgflex.vectorstore.admin import SchemaAdministrator, index_name
from pgflex.vectorstore.models import (
    DeleteRequest,
    DeleteResult,
    DropCollectionResult,
    GetRequest,
    GetRow,
    QueryRequest,
    QueryRow,
    UpsertRequest,
    UpsertResult,
)
from pgflex.vectorstore.service import PgVectorStore, VectorStore

__all__ = [
    "DeleteRequest",
    "DeleteResult",
    "DropCollectionResult",
    "GetRequest",
    "GetRow",
    "PgVectorStore",
    "QueryRequest",
    "QueryRow",
    "SchemaAdministrator",
    "UpsertRequest",
    "UpsertResult",
    "VectorStore",
    "index_name",
]
