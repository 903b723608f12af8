"""Fixtures shared by retrieval backend tests."""

from __future__ import annotations

import pytest

from rag_backend.index import VectorIndexManager
from tests.test_rag_backend.fakes import KeywordEmbedding, RecordingGenerator


@pytest.fixture
def index() -> VectorIndexManager:
    return VectorIndexManager()


@pytest.fixture
def embedder() -> KeywordEmbedding:
    return KeywordEmbedding()


@pytest.fixture
def generator() -> RecordingGenerator:
    return RecordingGenerator()
