"""Retrieval pipeline: question → passages → grounded answer or safety fallback.

Steps:
1. Embed the question
2. Search the vector index for the top-k passages
3. Return the fixed insufficient-information answer when nothing is found,
   without calling the generation model
4. Otherwise build a context block in relevance order, append recent
   conversation history, and ask the generation model
"""

from collections.abc import Sequence

from loguru import logger
from pydantic import BaseModel, Field

from rag_backend.embedding import EmbeddingClient
from rag_backend.errors import (
    EmbeddingUnavailableError,
    GenerationUnavailableError,
    InvalidArgumentError,
)
from rag_backend.generation import GenerationClient
from rag_backend.index import VectorIndexManager
from rag_backend.models import Answer, Message, RetrievalResult, Source, VectorRecord
from rag_backend.prompts import DISCLAIMER, NO_DOCUMENTS_MESSAGE, build_system_prompt


class RetrievalConfig(BaseModel):
    """Retrieval configuration.

    Attributes:
        top_k: Number of passages retrieved per question
        min_score: Optional similarity threshold; passages scoring below it are
            dropped. None keeps whatever top-k exists.
        history_messages: Number of trailing conversation messages sent to the model
    """

    top_k: int = Field(default=4, ge=1, le=100)
    min_score: float | None = None
    history_messages: int = Field(default=10, ge=0, le=100)


def extract_sources(records: Sequence[VectorRecord]) -> list[Source]:
    """Deduplicate citations by (document, page), keeping first-seen order."""
    seen: dict[tuple[str, int], Source] = {}
    for record in records:
        key = (record.source, record.page)
        if key not in seen:
            seen[key] = Source(document=record.source, page=record.page)
    return list(seen.values())


def format_context(records: Sequence[VectorRecord]) -> str:
    """Render passages as one context block, tagged with source and page."""
    return "\n\n".join(
        f"[Document {i}: {record.source}, Page {record.page}]\n{record.text}\n---"
        for i, record in enumerate(records, start=1)
    )


def format_history(messages: Sequence[Message]) -> str:
    return "\n".join(
        f"{'User' if msg.role == 'user' else 'Assistant'}: {msg.content}" for msg in messages
    )


class RetrievalPipeline:
    """Turns natural-language questions into grounded answers."""

    def __init__(
        self,
        index: VectorIndexManager,
        embedding_client: EmbeddingClient,
        generation_client: GenerationClient,
        config: RetrievalConfig | None = None,
    ):
        """Initialize pipeline.

        Args:
            index: Shared vector index manager
            embedding_client: Client used to embed questions
            generation_client: Client used to produce answers
            config: Retrieval configuration (uses defaults if None)
        """
        self.index = index
        self.embedding_client = embedding_client
        self.generation_client = generation_client
        self.config = config or RetrievalConfig()

    async def retrieve(self, question: str, k: int | None = None) -> RetrievalResult:
        """Embed question and return the best matching passages.

        Raises:
            InvalidArgumentError: If question is blank or k <= 0
            EmbeddingUnavailableError: If the question cannot be embedded
        """
        if not question or not question.strip():
            raise InvalidArgumentError("Question is required and must be a non-empty string")

        top_k = self.config.top_k if k is None else k
        if top_k <= 0:
            raise InvalidArgumentError(f"k must be a positive integer, got {top_k!r}")

        try:
            query_vector = await self.embedding_client.embed_single(question)
        except EmbeddingUnavailableError:
            raise
        except Exception as exc:
            logger.error(f"Failed to embed question: {exc}")
            raise EmbeddingUnavailableError(f"Embedding provider failed: {exc}") from exc

        result = await self.index.search(query_vector, top_k)

        if self.config.min_score is not None and not result.is_empty:
            kept = [(r, s) for r, s in result.pairs() if s >= self.config.min_score]
            if len(kept) < len(result):
                logger.debug(
                    f"Dropped {len(result) - len(kept)} passages below "
                    f"min_score={self.config.min_score}"
                )
            result = RetrievalResult(
                records=[r for r, _ in kept],
                scores=[s for _, s in kept],
            )

        logger.debug(f"Retrieved {len(result)} passages (k={top_k})")
        return result

    async def answer(
        self,
        question: str,
        history: Sequence[Message] = (),
        k: int | None = None,
    ) -> Answer:
        """Answer question from the indexed documents.

        Returns:
            Answer with deduplicated sources, or the safety fallback when
            retrieval finds nothing

        Raises:
            InvalidArgumentError: If question is blank or k <= 0
            EmbeddingUnavailableError: If the question cannot be embedded
            GenerationUnavailableError: If the generation model fails
        """
        question = question.strip() if question else question
        logger.info(f"RAG query: {question[:50]!r}" if question else "RAG query: <empty>")

        result = await self.retrieve(question, k)

        if result.is_empty:
            logger.info("No relevant passages found; returning safety fallback")
            return Answer(
                answer=NO_DOCUMENTS_MESSAGE,
                sources=[],
                disclaimer=DISCLAIMER,
                grounded=False,
            )

        sources = extract_sources(result.records)
        recent: list[Message] = []
        if self.config.history_messages:
            recent = list(history)[-self.config.history_messages :]
        system_prompt = build_system_prompt(
            context=format_context(result.records),
            history=format_history(recent),
            question=question,
        )

        try:
            text = await self.generation_client.generate(system_prompt, question)
        except Exception as exc:
            diagnostics = {
                "retrieved": len(result),
                "sources": [s.model_dump() for s in sources],
            }
            logger.error(f"Generation failed after retrieving {len(result)} passages: {exc}")
            if isinstance(exc, GenerationUnavailableError):
                exc.context.update(diagnostics)
                raise
            raise GenerationUnavailableError(
                "Failed to generate response from AI service", context=diagnostics
            ) from exc

        logger.info(f"Generated response with {len(sources)} sources")
        return Answer(
            answer=text,
            sources=sources,
            disclaimer=DISCLAIMER,
            grounded=True,
            records=list(result.records),
        )
