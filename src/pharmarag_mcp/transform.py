"""Translate backend results and errors into MCP tool payloads."""

from __future__ import annotations

from typing import Any

from rag_backend.errors import RagBackendError
from rag_backend.models import Answer, CatalogStats, DocumentMetadata

ERROR_TITLES: dict[str, str] = {
    "validation": "Validation error",
    "not_found": "Not found",
    "ai_service_unavailable": "AI service unavailable",
    "index_build_failed": "Internal server error",
    "internal": "Internal server error",
}


def translate_backend_error(error: RagBackendError) -> dict[str, Any]:
    """Return an error payload with a user-facing title and category."""

    return {
        "error": ERROR_TITLES.get(error.category, "Internal server error"),
        "category": error.category,
        "code": error.code,
        "details": error.message,
    }


def answer_payload(answer: Answer) -> dict[str, Any]:
    return answer.model_dump(mode="json")


def document_payload(metadata: DocumentMetadata) -> dict[str, Any]:
    return metadata.model_dump(mode="json")


def document_list_payload(
    documents: list[DocumentMetadata], stats: CatalogStats
) -> dict[str, Any]:
    return {
        "documents": [document_payload(doc) for doc in documents],
        "stats": stats.model_dump(),
    }
