"""Engine exception hierarchy.

All custom exceptions inherit from PgFlexError.
Each exception has an error code for structured error handling.
"""

from enum import Enum
from typing import Any


class ErrorCode(str, Enum):
    """Error codes for structured error handling."""

    # General errors (1xxx)
    INTERNAL_ERROR = "PGV-1000"
    CONFIGURATION_ERROR = "PGV-1001"
    VALIDATION_ERROR = "PGV-1002"

    # Schema errors (2xxx)
    INVALID_IDENTIFIER = "PGV-2000"
    INVALID_SCHEMA = "PGV-2001"
    INVALID_DIMENSIONS = "PGV-2002"
    NO_PARTITION_COLUMN = "PGV-2003"

    # Query construction errors (3xxx)
    MISSING_SELECTOR = "PGV-3000"
    UNKNOWN_METRIC = "PGV-3001"
    INVALID_INDEX_TYPE = "PGV-3002"

    # Template errors (4xxx)
    TEMPLATE_ERROR = "PGV-4000"
    TEMPLATE_DANGEROUS = "PGV-4001"

    # Database errors (5xxx)
    DATABASE_ERROR = "PGV-5000"
    DATABASE_CLOSED = "PGV-5001"

    # Vector store errors (6xxx)
    VECTOR_STORE_ERROR = "PGV-6000"


class PgFlexError(Exception):
    """Base exception for all engine errors.

    Attributes:
        message: Human-readable error message.
        code: Structured error code.
        details: Additional error context.
    """

    def __init__(
        self,
        message: str,
        code: ErrorCode = ErrorCode.INTERNAL_ERROR,
        details: dict[str, Any] | None = None,
    ) -> None:
        self.message = message
        self.code = code
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> dict[str, Any]:
        """Convert exception to a plain dictionary."""
        return {
            "error": {
                "code": self.code.value,
                "message": self.message,
                "details": self.details,
            }
        }


class ConfigurationError(PgFlexError):
    """Configuration or environment error."""

    def __init__(
        self,
        message: str,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, ErrorCode.CONFIGURATION_ERROR, details)


class ValidationError(PgFlexError):
    """Input validation error."""

    def __init__(
        self,
        message: str,
        code: ErrorCode = ErrorCode.VALIDATION_ERROR,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, code, details)


class InvalidIdentifierError(ValidationError):
    """Table or column name failed the identifier grammar."""

    def __init__(
        self,
        message: str,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, ErrorCode.INVALID_IDENTIFIER, details)


class InvalidSchemaError(ValidationError):
    """Schema configuration is incomplete or inconsistent."""

    def __init__(
        self,
        message: str,
        code: ErrorCode = ErrorCode.INVALID_SCHEMA,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, code, details)


class NoPartitionColumnError(InvalidSchemaError):
    """Operation needs a partition column but none is configured."""

    def __init__(
        self,
        message: str = "No partition column configured",
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, ErrorCode.NO_PARTITION_COLUMN, details)


class MissingSelectorError(ValidationError):
    """Delete/get called without an id or a partition selector."""

    def __init__(
        self,
        message: str,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, ErrorCode.MISSING_SELECTOR, details)


class UnknownMetricError(ValidationError):
    """Distance metric is not one of the supported values."""

    def __init__(
        self,
        message: str,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, ErrorCode.UNKNOWN_METRIC, details)


class InvalidIndexTypeError(ValidationError):
    """Index type is not one of the supported values."""

    def __init__(
        self,
        message: str,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, ErrorCode.INVALID_INDEX_TYPE, details)


class TemplateError(PgFlexError):
    """Caller-supplied SQL template is unusable."""

    def __init__(
        self,
        message: str,
        code: ErrorCode = ErrorCode.TEMPLATE_ERROR,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, code, details)


class DatabaseError(PgFlexError):
    """Driver or database failure, wrapped with statement context."""

    def __init__(
        self,
        message: str,
        code: ErrorCode = ErrorCode.DATABASE_ERROR,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, code, details)


class VectorStoreError(PgFlexError):
    """Vector store operation error."""

    def __init__(
        self,
        message: str,
        code: ErrorCode = ErrorCode.VECTOR_STORE_ERROR,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, code, details)
