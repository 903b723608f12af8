"""Unit tests for the retrieval pipeline.

Covers:
- Safety fallback on empty retrieval (generation model never called)
- Page-level source deduplication in relevance order
- Context and history formatting
- Optional minimum-score threshold
- Provider failure mapping
"""

from unittest.mock import AsyncMock

import pytest

from rag_backend.errors import (
    EmbeddingUnavailableError,
    GenerationUnavailableError,
    InvalidArgumentError,
)
from rag_backend.index import VectorIndexManager
from rag_backend.models import Message, Source
from rag_backend.prompts import DISCLAIMER, NO_DOCUMENTS_MESSAGE
from rag_backend.retrieval import (
    RetrievalConfig,
    RetrievalPipeline,
    extract_sources,
    format_context,
    format_history,
)
from tests.test_rag_backend.fakes import (
    KeywordEmbedding,
    RecordingGenerator,
    keyword_vector,
    make_record,
)


@pytest.fixture
def pipeline(index, embedder, generator) -> RetrievalPipeline:
    return RetrievalPipeline(index=index, embedding_client=embedder, generation_client=generator)


async def _load_leaflets(index):
    await index.insert(
        [
            make_record("A", "Ibuprofen dose for headache.", page=1, chunk_index=0, source="a.pdf"),
            make_record("A", "Ibuprofen headache dose.", page=1, chunk_index=1, source="a.pdf"),
            make_record("A", "Ibuprofen dose limits.", page=2, chunk_index=2, source="a.pdf"),
        ]
    )
    await index.insert(
        [make_record("B", "Warfarin bleeding risk.", page=1, chunk_index=0, source="b.pdf")]
    )


class TestHelpers:
    """Tests for module-level formatting helpers."""

    def test_extract_sources_dedupes_by_page_in_first_seen_order(self):
        records = [
            make_record("A", "one", page=2, chunk_index=0, source="a.pdf"),
            make_record("B", "two", page=1, chunk_index=0, source="b.pdf"),
            make_record("A", "three", page=2, chunk_index=5, source="a.pdf"),
            make_record("A", "four", page=1, chunk_index=1, source="a.pdf"),
        ]

        assert extract_sources(records) == [
            Source(document="a.pdf", page=2),
            Source(document="b.pdf", page=1),
            Source(document="a.pdf", page=1),
        ]

    def test_format_context_tags_source_and_page(self):
        records = [
            make_record("A", "First passage", page=3, source="a.pdf"),
            make_record("B", "Second passage", page=1, source="b.pdf"),
        ]

        context = format_context(records)

        assert context == (
            "[Document 1: a.pdf, Page 3]\nFirst passage\n---\n\n"
            "[Document 2: b.pdf, Page 1]\nSecond passage\n---"
        )

    def test_format_history(self):
        history = [
            Message(role="user", content="Hi"),
            Message(role="assistant", content="Hello"),
        ]

        assert format_history(history) == "User: Hi\nAssistant: Hello"
        assert format_history([]) == ""


class TestSafetyFallback:
    """Empty retrieval must never reach the generation model."""

    @pytest.mark.asyncio
    async def test_empty_index_returns_fixed_message(self, pipeline, generator):
        answer = await pipeline.answer("What is the ibuprofen dose?")

        assert answer.answer == NO_DOCUMENTS_MESSAGE
        assert answer.sources == []
        assert answer.disclaimer == DISCLAIMER
        assert answer.grounded is False
        assert generator.prompts == []

    @pytest.mark.asyncio
    async def test_index_emptied_by_delete_returns_fixed_message(self, pipeline, index, generator):
        await _load_leaflets(index)
        await index.delete_by_documents(["A", "B"])

        answer = await pipeline.answer("What is the ibuprofen dose?")

        assert answer.grounded is False
        assert generator.prompts == []

    @pytest.mark.asyncio
    async def test_min_score_threshold_can_trigger_fallback(self, index, embedder, generator):
        await _load_leaflets(index)
        pipeline = RetrievalPipeline(
            index, embedder, generator, RetrievalConfig(min_score=0.99)
        )

        answer = await pipeline.answer("pregnancy")

        assert answer.grounded is False
        assert generator.prompts == []


class TestGroundedAnswer:
    """Tests for the generation path."""

    @pytest.mark.asyncio
    async def test_answer_with_sources_in_relevance_order(self, pipeline, index, generator):
        await _load_leaflets(index)

        answer = await pipeline.answer("ibuprofen dose", k=4)

        assert answer.grounded is True
        assert answer.answer == generator.answer
        assert answer.sources[0].document == "a.pdf"
        assert Source(document="a.pdf", page=1) in answer.sources
        assert len(answer.sources) == len(set(answer.sources))
        assert [r.document_id for r in answer.records[:3]] == ["A", "A", "A"]

    @pytest.mark.asyncio
    async def test_same_page_chunks_cited_once(self, pipeline, index):
        await _load_leaflets(index)

        answer = await pipeline.answer("ibuprofen headache", k=2)

        assert answer.sources == [Source(document="a.pdf", page=1)]

    @pytest.mark.asyncio
    async def test_prompt_contains_context_history_and_question(self, pipeline, index, generator):
        await _load_leaflets(index)
        history = [
            Message(role="user" if i % 2 == 0 else "assistant", content=f"turn {i}")
            for i in range(14)
        ]

        await pipeline.answer("  ibuprofen dose  ", history=history)

        system_prompt, question = generator.prompts[0]
        assert question == "ibuprofen dose"
        assert "[Document 1: a.pdf" in system_prompt
        assert "USER QUESTION: ibuprofen dose" in system_prompt
        # Only the last 10 messages are forwarded
        assert "turn 3" not in system_prompt
        assert "turn 4" in system_prompt
        assert "turn 13" in system_prompt

    @pytest.mark.asyncio
    async def test_empty_history_uses_placeholder(self, pipeline, index, generator):
        await _load_leaflets(index)

        await pipeline.answer("warfarin")

        assert "No previous conversation." in generator.prompts[0][0]

    @pytest.mark.asyncio
    async def test_default_k_from_config(self, index, embedder, generator):
        await _load_leaflets(index)
        pipeline = RetrievalPipeline(index, embedder, generator, RetrievalConfig(top_k=2))

        answer = await pipeline.answer("ibuprofen")

        assert len(answer.records) == 2


class TestValidationAndErrors:
    """Tests for argument validation and provider failures."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize("question", ["", "   "])
    async def test_blank_question_rejected(self, pipeline, question):
        with pytest.raises(InvalidArgumentError, match="Question is required"):
            await pipeline.answer(question)

    @pytest.mark.asyncio
    async def test_non_positive_k_rejected(self, pipeline):
        with pytest.raises(InvalidArgumentError, match="k must be a positive integer"):
            await pipeline.retrieve("ibuprofen", k=0)

    @pytest.mark.asyncio
    async def test_embedding_failure_is_embedding_unavailable(self, index, generator):
        pipeline = RetrievalPipeline(index, KeywordEmbedding(fail=True), generator)

        with pytest.raises(EmbeddingUnavailableError, match="provider down"):
            await pipeline.answer("ibuprofen")
        assert generator.prompts == []

    @pytest.mark.asyncio
    async def test_generation_failure_reports_retrieval_diagnostics(self, index, embedder):
        await _load_leaflets(index)
        generator = RecordingGenerator(error=TimeoutError("model timed out"))
        pipeline = RetrievalPipeline(index, embedder, generator)

        with pytest.raises(GenerationUnavailableError) as excinfo:
            await pipeline.answer("ibuprofen dose")

        error = excinfo.value
        assert error.category == "ai_service_unavailable"
        assert error.code == 503
        assert error.context["retrieved"] == 4
        assert {"document": "a.pdf", "page": 1} in error.context["sources"]

    @pytest.mark.asyncio
    async def test_generation_unavailable_passes_through(self, index, embedder):
        await _load_leaflets(index)
        generator = RecordingGenerator(error=GenerationUnavailableError("no key"))
        pipeline = RetrievalPipeline(index, embedder, generator)

        with pytest.raises(GenerationUnavailableError, match="no key") as excinfo:
            await pipeline.answer("ibuprofen dose")
        assert excinfo.value.context["retrieved"] == 4


class TestCollaboratorCalls:
    """Tests that check how the pipeline drives its collaborators."""

    @pytest.mark.asyncio
    async def test_query_embedded_once_and_generator_called_once(self, index):
        await _load_leaflets(index)
        embedder = AsyncMock()
        embedder.embed_single.return_value = keyword_vector("warfarin bleeding")
        generator = AsyncMock()
        generator.generate.return_value = "Warfarin increases bleeding risk."
        pipeline = RetrievalPipeline(index, embedder, generator)

        answer = await pipeline.answer("Does warfarin cause bleeding?", k=1)

        embedder.embed_single.assert_awaited_once_with("Does warfarin cause bleeding?")
        generator.generate.assert_awaited_once()
        assert answer.sources == [Source(document="b.pdf", page=1)]

    @pytest.mark.asyncio
    async def test_fallback_skips_generator(self):
        embedder = AsyncMock()
        embedder.embed_single.return_value = keyword_vector("ibuprofen")
        generator = AsyncMock()
        pipeline = RetrievalPipeline(VectorIndexManager(), embedder, generator)

        answer = await pipeline.answer("ibuprofen")

        assert answer.grounded is False
        generator.generate.assert_not_awaited()
