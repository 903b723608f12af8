"""In-memory vector index management and search operations.

The index is a sequence of immutable snapshots. Each snapshot holds the
records of one generation together with a read-only float32 matrix of their
vectors. Searches read the live snapshot reference once and work against it,
so they never observe a half-applied mutation.

Mutations (insert, delete, reset) are serialized by a single asyncio lock.
Each one builds the replacement snapshot privately and publishes it with one
reference assignment:

- insert on an empty index builds the first snapshot directly from the
  inserted records (no placeholder entries)
- insert on a ready index publishes a snapshot extended with the new rows
- delete enumerates every stored record, keeps the ones that do not belong
  to the target document and rebuilds from them. This is O(total records),
  not O(records deleted); batch deletions with ``delete_by_documents``.
"""

import asyncio
from collections import Counter
from collections.abc import Iterable, Sequence
from dataclasses import dataclass

import numpy as np
from loguru import logger

from rag_backend.errors import IndexBuildError, InvalidArgumentError
from rag_backend.models import IndexState, IndexStats, RetrievalResult, VectorRecord

METRICS = ("cosine", "l2")

# Relative gap under which two scores count as equal. Rows are stored as
# float32, so parallel vectors of different length normalize to rows that
# differ in the last bits.
TIE_TOLERANCE = 1e-6


def _as_matrix(records: Sequence[VectorRecord], metric: str) -> np.ndarray:
    dimensions = {len(record.vector) for record in records}
    if len(dimensions) != 1:
        raise IndexBuildError(f"Inconsistent vector dimensions: {sorted(dimensions)}")

    matrix = np.asarray([record.vector for record in records], dtype=np.float32)
    if metric == "cosine":
        norms = np.linalg.norm(matrix, axis=1, keepdims=True)
        matrix = np.divide(matrix, norms, out=np.zeros_like(matrix), where=norms > 0)
    return matrix


def _rank(keys: np.ndarray, k: int) -> np.ndarray:
    """Positions of the k smallest keys. Keys within tolerance keep insertion order."""
    order = np.argsort(keys, kind="stable")
    if order.size > 1:
        sorted_keys = keys[order]
        gaps = np.diff(sorted_keys, prepend=sorted_keys[0])
        groups = np.cumsum(gaps > TIE_TOLERANCE * np.maximum(1.0, np.abs(sorted_keys)))
        order = order[np.lexsort((order, groups))]
    return order[:k]


@dataclass(frozen=True)
class IndexSnapshot:
    """One published generation of the index. Never mutated after build."""

    records: tuple[VectorRecord, ...]
    matrix: np.ndarray
    metric: str
    generation: int

    @classmethod
    def build(
        cls, records: Sequence[VectorRecord], metric: str, generation: int
    ) -> "IndexSnapshot":
        """Build a snapshot from scratch.

        Raises:
            IndexBuildError: If records are empty or have mixed dimensions
        """
        if not records:
            raise IndexBuildError("Cannot build an index from zero records")
        matrix = _as_matrix(records, metric)
        matrix.setflags(write=False)
        return cls(tuple(records), matrix, metric, generation)

    @property
    def dimension(self) -> int:
        return int(self.matrix.shape[1])

    def extend(self, records: Sequence[VectorRecord], generation: int) -> "IndexSnapshot":
        """Return a new snapshot with records appended after the existing ones."""
        new_rows = _as_matrix(records, self.metric)
        if new_rows.shape[1] != self.dimension:
            raise IndexBuildError(
                f"Vector dimension {new_rows.shape[1]} does not match "
                f"index dimension {self.dimension}"
            )
        matrix = np.vstack([self.matrix, new_rows])
        matrix.setflags(write=False)
        return IndexSnapshot(self.records + tuple(records), matrix, self.metric, generation)

    def select(self, positions: Sequence[int], generation: int) -> "IndexSnapshot":
        """Return a new snapshot holding only the records at positions (in order)."""
        if not positions:
            raise IndexBuildError("Cannot build an index from zero records")
        matrix = self.matrix[np.asarray(positions, dtype=np.intp)]
        matrix.setflags(write=False)
        records = tuple(self.records[i] for i in positions)
        return IndexSnapshot(records, matrix, self.metric, generation)

    def search(self, query_vector: Sequence[float], k: int) -> RetrievalResult:
        """Exact k-nearest-neighbor search.

        Scores that agree within TIE_TOLERANCE count as ties. Ties keep
        insertion order, so earlier records win.
        """
        query = np.asarray(query_vector, dtype=np.float32)
        if query.shape != (self.dimension,):
            raise InvalidArgumentError(
                f"Query vector dimension {query.size} does not match "
                f"index dimension {self.dimension}"
            )

        if self.metric == "cosine":
            norm = float(np.linalg.norm(query))
            if norm == 0.0:
                logger.debug("Zero-norm query vector; returning no matches")
                return RetrievalResult()
            similarities = self.matrix @ (query.astype(np.float64) / norm)
            order = _rank(-similarities, k)
            scores = np.minimum.accumulate(similarities[order])
        else:
            distances = np.linalg.norm(self.matrix - query.astype(np.float64), axis=1)
            order = _rank(distances, k)
            scores = 1.0 / (1.0 + np.maximum.accumulate(distances[order]))

        return RetrievalResult(
            records=[self.records[i] for i in order],
            scores=[float(s) for s in scores],
        )


class VectorIndexManager:
    """Single source of truth for all vector records.

    Create one instance per process (or per test) and share it between the
    upload path and the query path.
    """

    def __init__(self, metric: str = "cosine"):
        """Initialize an empty index manager.

        Args:
            metric: Distance metric, "cosine" or "l2"
        """
        if metric not in METRICS:
            raise InvalidArgumentError(f"metric must be one of {METRICS}, got {metric!r}")

        self.metric = metric
        self._snapshot: IndexSnapshot | None = None
        self._generation = 0
        self._write_lock = asyncio.Lock()
        self._initializing: asyncio.Event | None = None

    @property
    def state(self) -> IndexState:
        return IndexState.EMPTY if self._snapshot is None else IndexState.READY

    def _publish(self, snapshot: IndexSnapshot | None) -> None:
        self._snapshot = snapshot

    def _next_generation(self) -> int:
        self._generation += 1
        return self._generation

    async def insert(self, records: Sequence[VectorRecord]) -> None:
        """Add records to the index.

        The first insert constructs the index from these records. Concurrent
        inserts wait for it and then append, so only one build ever happens.

        Args:
            records: Records to add (non-empty)

        Raises:
            InvalidArgumentError: If records is empty
            IndexBuildError: If the snapshot cannot be built; the index keeps
                its prior state
        """
        if not records:
            raise InvalidArgumentError("Cannot insert an empty batch of records")
        for record in records:
            if not isinstance(record, VectorRecord):
                raise InvalidArgumentError(
                    f"Expected VectorRecord, got {type(record).__name__}"
                )

        batch = list(records)

        async with self._write_lock:
            current = self._snapshot
            generation = self._next_generation()

            if current is None:
                initializing = asyncio.Event()
                self._initializing = initializing
                try:
                    snapshot = await asyncio.to_thread(
                        IndexSnapshot.build, batch, self.metric, generation
                    )
                    self._publish(snapshot)
                except IndexBuildError:
                    logger.error(f"Index initialization failed for {len(batch)} records")
                    raise
                except Exception as exc:
                    logger.exception(f"Index initialization failed: {exc}")
                    raise IndexBuildError(f"Index initialization failed: {exc}") from exc
                finally:
                    self._initializing = None
                    initializing.set()

                logger.info(
                    f"Vector index initialized with {len(batch)} records "
                    f"(dimension={snapshot.dimension}, metric={self.metric})"
                )
                return

            try:
                snapshot = await asyncio.to_thread(current.extend, batch, generation)
            except IndexBuildError:
                logger.error(f"Failed to add {len(batch)} records; index unchanged")
                raise
            except Exception as exc:
                logger.exception(f"Failed to add records: {exc}")
                raise IndexBuildError(f"Failed to add records: {exc}") from exc

            self._publish(snapshot)
            logger.info(
                f"Added {len(batch)} records to vector index "
                f"(total={len(snapshot.records)})"
            )

    async def search(self, query_vector: Sequence[float], k: int) -> RetrievalResult:
        """Return up to k records closest to query_vector, best first.

        An index that has never received records returns an empty result.

        Raises:
            InvalidArgumentError: If k is not a positive integer or the query
                dimension does not match the index
        """
        if isinstance(k, bool) or not isinstance(k, int) or k <= 0:
            raise InvalidArgumentError(f"k must be a positive integer, got {k!r}")

        pending = self._initializing
        if self._snapshot is None and pending is not None:
            await pending.wait()

        snapshot = self._snapshot
        if snapshot is None:
            return RetrievalResult()

        return snapshot.search(query_vector, k)

    async def delete_by_document(self, document_id: str) -> int:
        """Remove every record belonging to document_id.

        Deleting an unknown id is a no-op returning 0.

        Returns:
            Number of records removed
        """
        return await self.delete_by_documents([document_id])

    async def delete_by_documents(self, document_ids: Iterable[str]) -> int:
        """Remove every record belonging to any of document_ids with one rebuild.

        Concurrent searches keep reading the pre-delete snapshot until the
        rebuilt one is published.

        Returns:
            Number of records removed

        Raises:
            IndexBuildError: If the rebuild fails; the index keeps its prior state
        """
        targets = set(document_ids)
        if not targets:
            return 0

        async with self._write_lock:
            current = self._snapshot
            if current is None:
                return 0

            keep = [i for i, r in enumerate(current.records) if r.document_id not in targets]
            removed = len(current.records) - len(keep)
            if removed == 0:
                return 0

            if keep:
                generation = self._next_generation()
                try:
                    snapshot = await asyncio.to_thread(current.select, keep, generation)
                except Exception as exc:
                    logger.exception(f"Index rebuild failed: {exc}")
                    raise IndexBuildError(f"Index rebuild failed: {exc}") from exc
                self._publish(snapshot)
            else:
                self._next_generation()
                self._publish(None)

            logger.info(
                f"Deleted {removed} records for documents {sorted(targets)} "
                f"(remaining={len(keep)})"
            )
            return removed

    async def reset(self) -> None:
        """Return the index to the EMPTY state."""
        async with self._write_lock:
            self._next_generation()
            self._publish(None)
        logger.debug("Vector index reset")

    def records(self) -> tuple[VectorRecord, ...]:
        """Return every stored record in insertion order."""
        snapshot = self._snapshot
        return () if snapshot is None else snapshot.records

    def count(self, document_id: str | None = None) -> int:
        """Count stored records, optionally for one document."""
        records = self.records()
        if document_id is None:
            return len(records)
        return sum(1 for r in records if r.document_id == document_id)

    def document_counts(self) -> dict[str, int]:
        """Return the number of stored records per document id."""
        return dict(Counter(r.document_id for r in self.records()))

    def stats(self) -> IndexStats:
        snapshot = self._snapshot
        if snapshot is None:
            return IndexStats(
                state=IndexState.EMPTY,
                total_records=0,
                total_documents=0,
                generation=self._generation,
            )
        return IndexStats(
            state=IndexState.READY,
            total_records=len(snapshot.records),
            total_documents=len({r.document_id for r in snapshot.records}),
            dimension=snapshot.dimension,
            generation=snapshot.generation,
        )
