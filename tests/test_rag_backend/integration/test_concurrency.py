"""Concurrency tests for the vector index and document service.

Builds are slowed down with a sleeping wrapper so that searches and other
mutations genuinely overlap with them.
"""

import asyncio
import time

import pytest

from rag_backend.index import IndexSnapshot, VectorIndexManager
from rag_backend.service import RagService
from tests.test_rag_backend.fakes import keyword_vector, make_chunks, make_record

BUILD_DELAY = 0.05


def _document(document_id: str, size: int = 3):
    return [
        make_record(document_id, f"Ibuprofen dose passage {i}", chunk_index=i, source=document_id)
        for i in range(size)
    ]


@pytest.fixture
def slow_build(monkeypatch):
    """Slow down first builds and record their batch sizes."""
    original = IndexSnapshot.build.__func__
    builds: list[int] = []

    def build(cls, records, metric, generation):
        builds.append(len(records))
        time.sleep(BUILD_DELAY)
        return original(cls, records, metric, generation)

    monkeypatch.setattr(IndexSnapshot, "build", classmethod(build))
    return builds


@pytest.fixture
def slow_select(monkeypatch):
    original = IndexSnapshot.select

    def select(self, positions, generation):
        time.sleep(BUILD_DELAY)
        return original(self, positions, generation)

    monkeypatch.setattr(IndexSnapshot, "select", select)


@pytest.mark.asyncio
async def test_concurrent_first_inserts_build_once(slow_build):
    index = VectorIndexManager()

    await asyncio.gather(*(index.insert(_document(doc_id)) for doc_id in ["A", "B", "C", "D"]))

    assert slow_build == [3]
    assert index.document_counts() == {"A": 3, "B": 3, "C": 3, "D": 3}
    assert index.count() == 12


@pytest.mark.asyncio
async def test_search_during_initialization_waits_for_first_build(slow_build):
    index = VectorIndexManager()

    insert_task = asyncio.create_task(index.insert(_document("A")))
    await asyncio.sleep(BUILD_DELAY / 5)

    result = await index.search(keyword_vector("ibuprofen dose"), k=3)
    await insert_task

    assert len(result) == 3
    assert {r.document_id for r in result.records} == {"A"}


@pytest.mark.asyncio
async def test_search_during_delete_sees_whole_document_or_none(slow_select):
    index = VectorIndexManager()
    await index.insert(_document("A"))
    await index.insert(_document("B"))

    delete_task = asyncio.create_task(index.delete_by_document("A"))
    observed: list[int] = []
    while not delete_task.done():
        result = await index.search(keyword_vector("ibuprofen dose"), k=10)
        observed.append(sum(1 for r in result.records if r.document_id == "A"))
        await asyncio.sleep(BUILD_DELAY / 10)

    assert await delete_task == 3
    assert set(observed) <= {0, 3}
    # The pre-delete snapshot served searches while the rebuild ran
    assert 3 in observed
    result = await index.search(keyword_vector("ibuprofen dose"), k=10)
    assert {r.document_id for r in result.records} == {"B"}


@pytest.mark.asyncio
async def test_search_during_insert_sees_whole_batch_or_none(monkeypatch):
    index = VectorIndexManager()
    await index.insert(_document("A"))

    original = IndexSnapshot.extend

    def slow_extend(self, records, generation):
        time.sleep(BUILD_DELAY)
        return original(self, records, generation)

    monkeypatch.setattr(IndexSnapshot, "extend", slow_extend)

    insert_task = asyncio.create_task(index.insert(_document("B", size=4)))
    observed: list[int] = []
    while not insert_task.done():
        result = await index.search(keyword_vector("ibuprofen"), k=20)
        observed.append(sum(1 for r in result.records if r.document_id == "B"))
        await asyncio.sleep(BUILD_DELAY / 10)
    await insert_task

    assert set(observed) <= {0, 4}
    assert index.count("B") == 4


@pytest.mark.asyncio
async def test_interleaved_uploads_and_deletes_keep_catalog_consistent(
    embedder, generator, slow_select
):
    service = RagService(VectorIndexManager(), embedder, generator)
    await service.insert("A", make_chunks([("Ibuprofen dose.", 1), ("Headache.", 2)]))
    await service.insert("B", make_chunks([("Warfarin bleeding.", 1)]))

    await asyncio.gather(
        service.delete_document("A"),
        service.insert("C", make_chunks([("Paracetamol liver.", 1)] * 3)),
        service.insert("D", make_chunks([("Pregnancy warning.", 1)])),
        service.delete_document("B"),
    )

    documents, stats = service.list_documents()
    assert {d.id: d.chunk_count for d in documents} == {"C": 3, "D": 1}
    assert service.index.document_counts() == {"C": 3, "D": 1}
    assert stats.total_chunks == service.index.count()
