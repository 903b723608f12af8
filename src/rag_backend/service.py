"""Caller-facing facade over the retrieval core.

Combines PDF extraction, chunking, embedding, the vector index and the
document catalog, and keeps the catalog's chunk counts equal to the index's
per-document record counts.
"""

import asyncio
import uuid
from collections.abc import Sequence
from pathlib import Path

from loguru import logger

from rag_backend.catalog import DocumentCatalog
from rag_backend.chunking import Chunk, Chunker, RecursiveTokenChunker
from rag_backend.config import RagConfig, UploadConfig
from rag_backend.embedding import EmbeddingClient, create_embedding_client, embed_texts
from rag_backend.errors import DocumentNotFoundError, InvalidArgumentError
from rag_backend.generation import GenerationClient, create_generation_client
from rag_backend.index import VectorIndexManager
from rag_backend.loaders import load_pdf_pages
from rag_backend.models import Answer, CatalogStats, DocumentMetadata, Message, VectorRecord
from rag_backend.retrieval import RetrievalConfig, RetrievalPipeline


class RagService:
    """Upload, query and delete documents.

    Handles the complete workflow:
    1. Extract page text from a PDF
    2. Chunk pages into passages
    3. Embed passages (once per distinct text)
    4. Insert records into the index and register the document
    """

    def __init__(
        self,
        index: VectorIndexManager,
        embedding_client: EmbeddingClient,
        generation_client: GenerationClient,
        catalog: DocumentCatalog | None = None,
        chunker: Chunker | None = None,
        retrieval_config: RetrievalConfig | None = None,
        upload_config: UploadConfig | None = None,
        embedding_batch_size: int = 100,
    ):
        self.index = index
        self.catalog = catalog or DocumentCatalog()
        self.embedding_client = embedding_client
        self.chunker = chunker or RecursiveTokenChunker()
        self.upload_config = upload_config or UploadConfig()
        self.embedding_batch_size = embedding_batch_size
        self.pipeline = RetrievalPipeline(
            index=index,
            embedding_client=embedding_client,
            generation_client=generation_client,
            config=retrieval_config,
        )
        # Index mutation and catalog update happen as one step
        self._lock = asyncio.Lock()

    @classmethod
    def from_config(cls, config: RagConfig) -> "RagService":
        """Build a service with provider clients created from config."""
        return cls(
            index=VectorIndexManager(metric=config.index.metric),
            embedding_client=create_embedding_client(config.embedding),
            generation_client=create_generation_client(config.generation),
            chunker=RecursiveTokenChunker(config.chunking),
            retrieval_config=config.retrieval,
            upload_config=config.upload,
            embedding_batch_size=config.embedding.batch_size,
        )

    async def insert(
        self,
        document_id: str,
        chunks: Sequence[Chunk],
        filename: str | None = None,
        page_count: int | None = None,
    ) -> int:
        """Embed and index a document's chunks, then register it.

        Args:
            document_id: New document identifier
            chunks: Ordered passages with page numbers
            filename: Display name used for citations (defaults to document_id)
            page_count: Pages in the source file (defaults to highest chunk page)

        Returns:
            Number of chunks indexed

        Raises:
            InvalidArgumentError: If chunks is empty or document_id is blank or
                already registered
            EmbeddingUnavailableError: If embedding fails; nothing is indexed
            IndexBuildError: If the index cannot be updated; nothing is registered
        """
        if not document_id or not document_id.strip():
            raise InvalidArgumentError("document_id must be a non-empty string")
        if not chunks:
            raise InvalidArgumentError(f"Document {document_id} has no chunks to index")
        if self.catalog.has(document_id):
            raise InvalidArgumentError(f"Document {document_id} is already indexed")

        source = filename or document_id
        vectors = await embed_texts(
            self.embedding_client, [c.text for c in chunks], self.embedding_batch_size
        )

        try:
            records = [
                VectorRecord(
                    vector=tuple(vector),
                    text=chunk.text,
                    document_id=document_id,
                    page=chunk.page,
                    chunk_index=chunk.chunk_index,
                    source=source,
                )
                for chunk, vector in zip(chunks, vectors, strict=True)
            ]
        except ValueError as exc:
            raise InvalidArgumentError(f"Invalid chunk for document {document_id}: {exc}") from exc

        async with self._lock:
            if self.catalog.has(document_id):
                raise InvalidArgumentError(f"Document {document_id} is already indexed")
            await self.index.insert(records)
            self.catalog.register(
                DocumentMetadata(
                    id=document_id,
                    filename=source,
                    chunk_count=len(records),
                    page_count=page_count or max(c.page for c in chunks),
                )
            )

        logger.info(f"Indexed document {document_id} ({source}): {len(records)} chunks")
        return len(records)

    async def ingest_pdf(self, path: str | Path, filename: str | None = None) -> DocumentMetadata:
        """Process an uploaded PDF file.

        Args:
            path: Path to the uploaded file
            filename: Original filename (defaults to the file's name)

        Returns:
            Catalog entry for the new document

        Raises:
            InvalidArgumentError: If the file is missing, not a PDF, too large,
                or contains no text
        """
        pdf_path = Path(path)
        display_name = filename or pdf_path.name

        if not pdf_path.is_file():
            raise InvalidArgumentError(f"No file uploaded at {pdf_path}")
        if Path(display_name).suffix.lower() != ".pdf":
            raise InvalidArgumentError("Only PDF files are allowed")
        size = pdf_path.stat().st_size
        if size > self.upload_config.max_file_size_bytes:
            raise InvalidArgumentError(
                f"File too large: {size} bytes (limit {self.upload_config.max_file_size_bytes})"
            )

        logger.info(f"Processing document: {display_name}")
        pages = await asyncio.to_thread(load_pdf_pages, pdf_path)
        logger.info(f"Loaded {len(pages)} pages")

        try:
            chunks = self.chunker.chunk_pages(pages)
        except ValueError as exc:
            raise InvalidArgumentError(f"{display_name}: {exc}") from exc
        logger.info(f"Split into {len(chunks)} chunks")

        document_id = str(uuid.uuid4())
        await self.insert(document_id, chunks, filename=display_name, page_count=len(pages))

        metadata = self.catalog.get(document_id)
        assert metadata is not None
        return metadata

    async def ask(
        self, question: str, history: Sequence[Message] = (), k: int | None = None
    ) -> Answer:
        """Answer a question from the indexed documents.

        Args:
            question: Natural language question
            history: Prior conversation turns
            k: Passages to retrieve (defaults to retrieval.top_k)
        """
        return await self.pipeline.answer(question, history, k=k)

    async def delete_document(self, document_id: str) -> int:
        """Remove a document from the index and the catalog.

        Returns:
            Number of index records removed

        Raises:
            DocumentNotFoundError: If the catalog does not know document_id
        """
        async with self._lock:
            metadata = self.catalog.get(document_id)
            if metadata is None:
                raise DocumentNotFoundError(document_id)

            logger.info(f"Deleting document: {metadata.filename} ({document_id})")
            removed = await self.index.delete_by_document(document_id)
            self.catalog.unregister(document_id)

        if removed != metadata.chunk_count:
            logger.warning(
                f"Catalog recorded {metadata.chunk_count} chunks for {document_id} "
                f"but {removed} were removed from the index"
            )
        return removed

    def list_documents(self) -> tuple[list[DocumentMetadata], CatalogStats]:
        """Return every catalog entry with aggregate stats."""
        return self.catalog.list_documents(), self.catalog.stats()

    async def reset(self) -> None:
        """Drop every document (used for test isolation)."""
        async with self._lock:
            await self.index.reset()
            self.catalog.clear()
