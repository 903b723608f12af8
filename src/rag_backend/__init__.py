"""Retrieval core for document question answering.

This package provides passage chunking, embedding, an in-memory vector index
and the retrieval pipeline, independent of any server interface. The MCP
server in `pharmarag_mcp` consumes this backend as a service layer.

Architecture:
    - chunking: Token-aware page splitting
    - embedding: Model-agnostic embedding client (OpenAI-compatible APIs)
    - index: In-memory vector index with atomic snapshot publication
    - retrieval: Question answering with source deduplication and safety fallback
    - catalog: Document metadata
    - service: Upload/query/delete facade
    - models: Pydantic schemas for records, results and answers

Usage:
    >>> from rag_backend import RagService, load_config
    >>> service = RagService.from_config(load_config("default"))
    >>> answer = await service.ask("What is the maximum daily dose?")
"""

__version__ = "0.1.0"

from rag_backend.config import RagConfig, load_config
from rag_backend.errors import (
    AIServiceError,
    DocumentNotFoundError,
    EmbeddingUnavailableError,
    GenerationUnavailableError,
    IndexBuildError,
    InvalidArgumentError,
    RagBackendError,
)
from rag_backend.index import VectorIndexManager
from rag_backend.models import (
    Answer,
    DocumentMetadata,
    IndexState,
    Message,
    RetrievalResult,
    Source,
    VectorRecord,
)
from rag_backend.retrieval import RetrievalPipeline
from rag_backend.service import RagService

__all__ = [
    "AIServiceError",
    "Answer",
    "DocumentMetadata",
    "DocumentNotFoundError",
    "EmbeddingUnavailableError",
    "GenerationUnavailableError",
    "IndexBuildError",
    "IndexState",
    "InvalidArgumentError",
    "Message",
    "RagBackendError",
    "RagConfig",
    "RagService",
    "RetrievalPipeline",
    "RetrievalResult",
    "Source",
    "VectorIndexManager",
    "VectorRecord",
    "load_config",
]
