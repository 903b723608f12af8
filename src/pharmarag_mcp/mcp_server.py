"""MCP server entry point exposing document upload, question answering and deletion."""

from __future__ import annotations

import asyncio
import inspect
import os
from collections.abc import Awaitable, Callable, Coroutine
from importlib import metadata
from typing import Any, cast

from loguru import logger

from rag_backend.config import load_config
from rag_backend.errors import DocumentNotFoundError, RagBackendError
from rag_backend.models import Message
from rag_backend.service import RagService

from .transform import (
    answer_payload,
    document_list_payload,
    document_payload,
    translate_backend_error,
)

ResourceHandler = Callable[[], Awaitable[dict[str, Any]]]
ResourceDecorator = Callable[[ResourceHandler], ResourceHandler]

FastMCP: type[Any] | None = None

__all__ = [
    "run_server",
    "run",
    "build_service",
    "__version__",
    "FastMCP",
]


def _resolve_version() -> str:
    """Return the installed distribution version or fall back to the project default."""

    try:
        return metadata.version("pharmarag")
    except metadata.PackageNotFoundError:
        return "0.1.0"


__version__ = _resolve_version()


def _import_fastmcp() -> type[Any]:
    """Import FastMCP lazily so tests can stub the implementation."""

    global FastMCP
    if FastMCP is not None:
        return FastMCP

    try:
        import fastmcp
        from fastmcp import FastMCP as FastMCPClass

        # Disable banner for stdio transport compatibility
        fastmcp.settings.show_cli_banner = False
    except ModuleNotFoundError as exc:  # pragma: no cover - exercised in tests
        raise ImportError(
            "FastMCP is required to run the PharmaRAG MCP server. Install `fastmcp` to proceed."
        ) from exc

    FastMCP = cast(type[Any], FastMCPClass)
    return FastMCP


def build_service() -> RagService:
    """Create the process-wide service from the configured Hydra config."""

    config_name = os.environ.get("PHARMARAG_CONFIG", "default")
    config = load_config(config_name)
    logger.info(
        f"Embedding model: {config.embedding.model}, generation model: {config.generation.model}"
    )
    return RagService.from_config(config)


async def run_server(service: RagService | None = None) -> None:
    """Run the MCP server event loop."""

    rag_service = service or build_service()
    fastmcp_class = _import_fastmcp()

    server = _instantiate_fastmcp(
        fastmcp_class,
        server_id="pharmarag-mcp",
        name="PharmaRAG Server",
        version=__version__,
        description="Question answering over uploaded drug leaflets with page citations.",
    )

    resource_decorator = cast(ResourceDecorator, server.resource("pharmarag://documents"))

    @resource_decorator
    async def list_documents_resource() -> dict[str, Any]:
        documents, stats = rag_service.list_documents()
        return {
            "resource": "pharmarag://documents",
            **document_list_payload(documents, stats),
        }

    @server.tool()  # type: ignore[misc]
    async def upload_document(path: str, filename: str | None = None) -> dict[str, Any]:
        """Upload and index a PDF drug leaflet.

        Args:
            path: Local path to the PDF file
            filename: Display name used in citations (defaults to the file name)

        Returns:
            Dictionary with:
            - success: True when the document was indexed
            - document_id: Identifier to use with delete_document
            - filename: Display name
            - chunk_count: Number of passages indexed
        """
        logger.info(f"upload_document called with path={path}")
        try:
            doc = await rag_service.ingest_pdf(path, filename=filename)
        except RagBackendError as error:
            logger.error(f"Upload failed: {error.message}")
            return translate_backend_error(error)

        return {
            "success": True,
            "document_id": doc.id,
            "filename": doc.filename,
            "chunk_count": doc.chunk_count,
        }

    @server.tool()  # type: ignore[misc]
    async def ask_documents(
        question: str,
        conversation_history: list[dict[str, str]] | None = None,
        top_k: int | None = None,
    ) -> dict[str, Any]:
        """Ask a question about the uploaded documents.

        Args:
            question: Natural language question
            conversation_history: Prior messages as {"role", "content"} dictionaries
            top_k: Number of passages to retrieve (server default when omitted)

        Returns:
            Dictionary with:
            - answer: Generated answer (or a fixed message when nothing relevant is found)
            - sources: List of {"document", "page"} citations
            - disclaimer: Safety disclaimer
            - grounded: False when no relevant passages were found
        """
        logger.info(f"ask_documents called: {question[:50]!r}")
        try:
            history = [Message.model_validate(m) for m in conversation_history or []]
            answer = await rag_service.ask(question, history, k=top_k)
        except RagBackendError as error:
            logger.error(f"Question failed: {error.message}")
            return translate_backend_error(error)
        except ValueError as exc:
            return {
                "error": "Validation error",
                "category": "validation",
                "code": 400,
                "details": str(exc),
            }

        return answer_payload(answer)

    @server.tool()  # type: ignore[misc]
    async def list_documents() -> dict[str, Any]:
        """List uploaded documents with chunk and page counts."""
        documents, stats = rag_service.list_documents()
        logger.info(
            f"Documents list: {stats.total_documents} documents, {stats.total_chunks} chunks"
        )
        return document_list_payload(documents, stats)

    @server.tool()  # type: ignore[misc]
    async def get_document(document_id: str) -> dict[str, Any]:
        """Return catalog metadata for one document."""
        doc = rag_service.catalog.get(document_id)
        if doc is None:
            return translate_backend_error(DocumentNotFoundError(document_id))
        return document_payload(doc)

    @server.tool()  # type: ignore[misc]
    async def delete_document(document_id: str) -> dict[str, Any]:
        """Delete a document and all of its indexed passages.

        Deletion rebuilds the in-memory index, so its cost grows with the
        total number of indexed passages.
        """
        try:
            removed = await rag_service.delete_document(document_id)
        except RagBackendError as error:
            logger.error(f"Delete failed: {error.message}")
            return translate_backend_error(error)

        return {
            "success": True,
            "document_id": document_id,
            "deleted_chunks": removed,
        }

    await server.run_async()


def run(main: Callable[[], Coroutine[Any, Any, None]] | None = None) -> None:
    """Synchronous helper for CLI entry points."""
    entry = main or run_server
    try:
        asyncio.run(entry())
    except KeyboardInterrupt:
        logger.warning("MCP server interrupted by user.")
    except Exception as exc:  # noqa: BLE001
        logger.exception("Unhandled MCP server failure: {}", exc)
        raise


def _instantiate_fastmcp(class_: type[Any], **metadata: Any) -> Any:
    signature = inspect.signature(class_.__init__)
    parameters = signature.parameters

    filtered: dict[str, Any] = {key: value for key, value in metadata.items() if key in parameters}

    if "server_id" in metadata and "server_id" not in filtered and "id" in parameters:
        filtered["id"] = metadata["server_id"]

    if not filtered and any(
        param.kind == inspect.Parameter.VAR_KEYWORD for param in parameters.values()
    ):
        filtered = metadata

    return class_(**filtered)
