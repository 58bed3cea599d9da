"""Application exception hierarchy.

All custom exceptions inherit from DocIndexError.
Each exception has an error code for structured error handling
and says whether retrying the failed operation can succeed.
"""

from enum import Enum
from typing import Any


class ErrorCode(str, Enum):
    """Error codes for structured error handling."""

    # General errors (1xxx)
    INTERNAL_ERROR = "IDX-1000"
    CONFIGURATION_ERROR = "IDX-1001"
    VALIDATION_ERROR = "IDX-1002"
    PIPELINE_TIMEOUT = "IDX-1003"

    # Document errors (2xxx)
    DOCUMENT_ERROR = "IDX-2000"
    PAYLOAD_ENCODING_ERROR = "IDX-2001"

    # Embedding errors (3xxx)
    EMBEDDING_SERVICE_ERROR = "IDX-3000"
    ALIGNMENT_ERROR = "IDX-3001"

    # Vector store errors (4xxx)
    VECTOR_STORE_ERROR = "IDX-4000"
    COLLECTION_NOT_FOUND = "IDX-4001"
    COLLECTION_EXISTS = "IDX-4002"
    SCHEMA_MISMATCH = "IDX-4003"
    INDEX_WRITE_ERROR = "IDX-4004"
    INDEX_QUERY_ERROR = "IDX-4005"


class DocIndexError(Exception):
    """Base exception for all docindex errors.

    Attributes:
        message: Human-readable error message.
        code: Structured error code.
        details: Additional error context.
        retryable: Whether repeating the operation may succeed.
    """

    retryable: bool = False

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
        """Convert exception to dictionary for API responses."""
        return {
            "error": {
                "code": self.code.value,
                "message": self.message,
                "details": self.details,
                "retryable": self.retryable,
            }
        }


class ConfigurationError(DocIndexError):
    """Configuration or environment error."""

    def __init__(
        self,
        message: str,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, ErrorCode.CONFIGURATION_ERROR, details)


class ValidationError(DocIndexError):
    """Input validation error."""

    def __init__(
        self,
        message: str,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, ErrorCode.VALIDATION_ERROR, details)


class PipelineTimeoutError(DocIndexError):
    """A pipeline run exceeded its deadline and was abandoned."""

    def __init__(
        self,
        message: str,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, ErrorCode.PIPELINE_TIMEOUT, details)


class PayloadEncodingError(DocIndexError):
    """A document's metadata value cannot be stored as a payload scalar."""

    def __init__(
        self,
        message: str,
        field: str,
        details: dict[str, Any] | None = None,
    ) -> None:
        self.field = field
        super().__init__(
            message,
            ErrorCode.PAYLOAD_ENCODING_ERROR,
            {"field": field, **(details or {})},
        )


class EmbeddingError(DocIndexError):
    """Embedding engine error.

    Opaque to the pipeline: no partial embedding output is trusted.
    """

    def __init__(
        self,
        message: str,
        code: ErrorCode = ErrorCode.EMBEDDING_SERVICE_ERROR,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, code, details)


class AlignmentError(EmbeddingError):
    """Embedding count does not match the document count."""

    def __init__(
        self,
        documents: int,
        embeddings: int,
        details: dict[str, Any] | None = None,
    ) -> None:
        self.documents = documents
        self.embeddings = embeddings
        super().__init__(
            f"Embedding engine returned {embeddings} vectors for {documents} documents",
            code=ErrorCode.ALIGNMENT_ERROR,
            details={"documents": documents, "embeddings": embeddings, **(details or {})},
        )


class VectorStoreError(DocIndexError):
    """Vector store operation error."""

    def __init__(
        self,
        message: str,
        code: ErrorCode = ErrorCode.VECTOR_STORE_ERROR,
        details: dict[str, Any] | None = None,
        retryable: bool = False,
    ) -> None:
        super().__init__(message, code, details)
        self.retryable = retryable


class SchemaMismatchError(VectorStoreError):
    """Collection dimension or metric conflicts with what was requested."""

    def __init__(
        self,
        message: str,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, ErrorCode.SCHEMA_MISMATCH, details, retryable=False)


class IndexWriteError(VectorStoreError):
    """Transient failure while writing points."""

    def __init__(
        self,
        message: str,
        details: dict[str, Any] | None = None,
        retryable: bool = True,
    ) -> None:
        super().__init__(message, ErrorCode.INDEX_WRITE_ERROR, details, retryable=retryable)


class IndexQueryError(VectorStoreError):
    """Transient failure while querying points."""

    def __init__(
        self,
        message: str,
        details: dict[str, Any] | None = None,
        retryable: bool = True,
    ) -> None:
        super().__init__(message, ErrorCode.INDEX_QUERY_ERROR, details, retryable=retryable)
