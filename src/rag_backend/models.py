"""Pydantic models for retrieval data structures.

All data flowing through the retrieval core is validated against these schemas.
This ensures fail-fast behavior at the boundary: malformed chunks never reach
the vector index.
"""

import math
from datetime import UTC, datetime
from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


class VectorRecord(BaseModel):
    """A single embedded passage stored in the vector index.

    Records are immutable once created. The index never edits them in place;
    deleting a document removes its records wholesale.

    Attributes:
        vector: Embedding vector
        text: Passage text
        document_id: Owning document identifier
        page: 1-indexed page number the passage came from
        chunk_index: 0-indexed position of the passage within its document
        source: Display name used for citations (defaults to document_id)
    """

    model_config = ConfigDict(frozen=True)

    vector: tuple[float, ...] = Field(min_length=1)
    text: str = Field(min_length=1)
    document_id: str = Field(min_length=1)
    page: int = Field(ge=1)
    chunk_index: int = Field(ge=0)
    source: str = ""

    @model_validator(mode="before")
    @classmethod
    def default_source(cls, data: Any) -> Any:
        """Use the document id as citation name when no source is given."""
        if isinstance(data, dict) and not data.get("source"):
            return {**data, "source": data.get("document_id", "")}
        return data

    @field_validator("document_id")
    @classmethod
    def validate_document_id(cls, v: str) -> str:
        """Reject whitespace-only document ids."""
        if not v.strip():
            raise ValueError("document_id must not be blank")
        return v

    @field_validator("vector")
    @classmethod
    def validate_vector_values(cls, v: tuple[float, ...]) -> tuple[float, ...]:
        """Ensure vector contains valid finite floats."""
        for i, val in enumerate(v):
            if not math.isfinite(val):
                raise ValueError(f"Vector contains non-finite value at index {i}: {val}")
        return v


class IndexState(str, Enum):
    """Observable state of the vector index."""

    EMPTY = "empty"
    READY = "ready"


class RetrievalResult(BaseModel):
    """Records returned by a similarity search, best match first.

    Attributes:
        records: Matched records ordered by descending similarity
        scores: Similarity score for each record (parallel to records)
    """

    records: list[VectorRecord] = Field(default_factory=list)
    scores: list[float] = Field(default_factory=list)

    @model_validator(mode="after")
    def check_parallel(self) -> "RetrievalResult":
        if len(self.records) != len(self.scores):
            raise ValueError(
                f"records ({len(self.records)}) and scores ({len(self.scores)}) "
                "must have the same length"
            )
        return self

    @property
    def is_empty(self) -> bool:
        return not self.records

    def __len__(self) -> int:
        return len(self.records)

    def pairs(self) -> list[tuple[VectorRecord, float]]:
        """Return (record, score) tuples in ranking order."""
        return list(zip(self.records, self.scores, strict=True))


class Source(BaseModel):
    """A page-level citation shown to the end user."""

    model_config = ConfigDict(frozen=True)

    document: str
    page: int = Field(ge=1)


class Message(BaseModel):
    """A single turn of conversation history."""

    role: Literal["user", "assistant"]
    content: str


class Answer(BaseModel):
    """Response to a question.

    Attributes:
        answer: Generated answer, or the fixed insufficient-information message
        sources: Deduplicated (document, page) citations in relevance order
        disclaimer: Safety disclaimer shown with every answer
        grounded: False when the safety fallback was returned
        records: Retrieved passages (kept for diagnostics, never serialized)
    """

    answer: str
    sources: list[Source] = Field(default_factory=list)
    disclaimer: str
    grounded: bool = True
    records: list[VectorRecord] = Field(default_factory=list, exclude=True)


class DocumentMetadata(BaseModel):
    """Catalog entry for an uploaded document.

    Attributes:
        id: Document identifier (uuid4 for uploads)
        filename: Original filename
        uploaded_at: Upload timestamp
        chunk_count: Number of passages stored in the index for this document
        page_count: Number of pages in the source file
    """

    id: str = Field(min_length=1)
    filename: str
    uploaded_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    chunk_count: int = Field(ge=0)
    page_count: int = Field(default=0, ge=0)


class CatalogStats(BaseModel):
    """Aggregate counts across the document catalog."""

    total_documents: int = Field(ge=0)
    total_chunks: int = Field(ge=0)


class IndexStats(BaseModel):
    """Statistics about the live vector index.

    Attributes:
        state: EMPTY before the first insert and after the last document is deleted
        total_records: Number of records in the live snapshot
        total_documents: Number of distinct document ids in the live snapshot
        dimension: Vector dimensionality (None when empty)
        generation: Counter bumped every time a new snapshot is published
    """

    state: IndexState
    total_records: int = Field(ge=0)
    total_documents: int = Field(ge=0)
    dimension: int | None = None
    generation: int = Field(ge=0)
