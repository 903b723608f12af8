"""Unit tests for the document catalog."""

from rag_backend.catalog import DocumentCatalog
from rag_backend.models import DocumentMetadata


def _doc(document_id: str, chunks: int = 3) -> DocumentMetadata:
    return DocumentMetadata(
        id=document_id, filename=f"{document_id}.pdf", chunk_count=chunks, page_count=2
    )


class TestDocumentCatalog:
    """Tests for DocumentCatalog."""

    def test_register_and_get(self):
        catalog = DocumentCatalog()
        catalog.register(_doc("a"))

        assert catalog.has("a")
        assert catalog.get("a").filename == "a.pdf"
        assert catalog.get("missing") is None

    def test_list_preserves_upload_order(self):
        catalog = DocumentCatalog()
        for document_id in ["c", "a", "b"]:
            catalog.register(_doc(document_id))

        assert [d.id for d in catalog.list_documents()] == ["c", "a", "b"]

    def test_stats(self):
        catalog = DocumentCatalog()
        catalog.register(_doc("a", chunks=3))
        catalog.register(_doc("b", chunks=5))

        stats = catalog.stats()

        assert stats.total_documents == 2
        assert stats.total_chunks == 8

    def test_unregister(self):
        catalog = DocumentCatalog()
        catalog.register(_doc("a"))

        removed = catalog.unregister("a")

        assert removed.id == "a"
        assert catalog.unregister("a") is None
        assert catalog.stats().total_documents == 0

    def test_clear(self):
        catalog = DocumentCatalog()
        catalog.register(_doc("a"))

        catalog.clear()

        assert catalog.list_documents() == []
