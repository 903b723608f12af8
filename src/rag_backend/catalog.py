"""In-memory document metadata catalog."""

from loguru import logger

from rag_backend.models import CatalogStats, DocumentMetadata


class DocumentCatalog:
    """Tracks uploaded documents by id, in upload order."""

    def __init__(self) -> None:
        self._documents: dict[str, DocumentMetadata] = {}

    def register(self, metadata: DocumentMetadata) -> None:
        self._documents[metadata.id] = metadata
        logger.debug(f"Registered document {metadata.id} ({metadata.chunk_count} chunks)")

    def unregister(self, document_id: str) -> DocumentMetadata | None:
        """Remove a document. Returns the removed entry, or None if unknown."""
        return self._documents.pop(document_id, None)

    def get(self, document_id: str) -> DocumentMetadata | None:
        return self._documents.get(document_id)

    def has(self, document_id: str) -> bool:
        return document_id in self._documents

    def list_documents(self) -> list[DocumentMetadata]:
        return list(self._documents.values())

    def stats(self) -> CatalogStats:
        return CatalogStats(
            total_documents=len(self._documents),
            total_chunks=sum(doc.chunk_count for doc in self._documents.values()),
        )

    def clear(self) -> None:
        """Remove every document (used for test isolation)."""
        self._documents.clear()
