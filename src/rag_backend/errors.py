"""
Retrieval Error Classes

This module defines the exception hierarchy for the retrieval core. Each error
carries an HTTP-like status code and a category string so outer layers can
present provider failures, unknown documents and malformed requests as
distinct outcomes.
"""

from typing import Any


class RagBackendError(Exception):
    """Base exception for all retrieval core errors."""

    category = "internal"

    def __init__(self, message: str, code: int = 500, context: dict[str, Any] | None = None):
        super().__init__(message)
        self.message = message
        self.code = code
        self.context = context or {}

    def to_dict(self) -> dict[str, Any]:
        """Serialize the error for API responses."""
        payload: dict[str, Any] = {
            "error": self.category,
            "details": self.message,
            "code": self.code,
        }
        if self.context:
            payload["context"] = self.context
        return payload


class InvalidArgumentError(RagBackendError, ValueError):
    """Exception raised for malformed requests, before any side effect."""

    category = "validation"

    def __init__(self, message: str, context: dict[str, Any] | None = None):
        super().__init__(message, 400, context)


class DocumentNotFoundError(RagBackendError):
    """Exception raised when a document id is not present in the catalog."""

    category = "not_found"

    def __init__(self, document_id: str, context: dict[str, Any] | None = None):
        super().__init__(f"Document with ID {document_id} not found", 404, context)
        self.document_id = document_id


class AIServiceError(RagBackendError):
    """Base exception for embedding and generation provider failures."""

    category = "ai_service_unavailable"

    def __init__(self, message: str, context: dict[str, Any] | None = None):
        super().__init__(message, 503, context)


class EmbeddingUnavailableError(AIServiceError):
    """Exception raised when the embedding provider is unconfigured or failing."""


class GenerationUnavailableError(AIServiceError):
    """Exception raised when the answer generation model is unconfigured or failing."""


class IndexBuildError(RagBackendError):
    """Exception raised when an index snapshot cannot be constructed.

    The previously published snapshot stays live when this is raised.
    """

    category = "index_build_failed"

    def __init__(self, message: str, context: dict[str, Any] | None = None):
        super().__init__(message, 500, context)
