"""In-process reference implementation of the vector store contract.

Similarity search is a brute-force scan over every stored entry: correct and
dependency-free, but O(n) per query and confined to one process. It is the
baseline the other backends are measured against, not a store for large or
shared corpora.

``close()`` drops all entries; the store's lifetime is its session.
"""

from typing import Dict, List, Optional, Sequence

import numpy as np
import structlog

from mailsearch.common.errors import (
    IndexNotInitializedError,
    VectorStoreError,
    VectorStoreQueryError,
)

from .base import (
    DEFAULT_BATCH_SIZE,
    VectorEntry,
    VectorSearchResult,
    VectorStore,
    cosine_similarity,
    iter_batches,
)
from .filters import MetadataFilter

logger = structlog.get_logger("vector_store.memory")


class MemoryVectorStore(VectorStore):
    """Dictionary-backed vector store with exact cosine ranking."""

    name = "memory"

    def __init__(self, batch_size: int = DEFAULT_BATCH_SIZE):
        self.batch_size = batch_size
        self.vector_dimension: Optional[int] = None
        self._entries: Dict[str, VectorEntry] = {}
        self._initialized = False

    def _ensure_initialized(self) -> None:
        if not self._initialized:
            raise IndexNotInitializedError("MemoryVectorStore not initialized")

    async def initialize(self, dimensions: int) -> None:
        if dimensions <= 0:
            raise ValueError("dimensions must be positive")
        if self._entries and self.vector_dimension not in (None, dimensions):
            raise VectorStoreError(
                f"Cannot change dimension from {self.vector_dimension} to {dimensions} "
                "on a non-empty store"
            )
        self.vector_dimension = dimensions
        self._initialized = True
        logger.debug("Memory vector store initialized", dimensions=dimensions)

    async def upsert(self, entries: List[VectorEntry]) -> None:
        self._ensure_initialized()
        for batch in iter_batches(entries, self.batch_size):
            # validate the whole batch first so a batch lands entirely or not at all
            for entry in batch:
                if len(entry.vector) != self.vector_dimension:
                    raise VectorStoreError(
                        f"Entry {entry.id} has dimension {len(entry.vector)}, "
                        f"expected {self.vector_dimension}"
                    )
            for entry in batch:
                self._entries[entry.id] = VectorEntry(
                    id=entry.id,
                    vector=list(entry.vector),
                    metadata=dict(entry.metadata),
                    content=entry.content,
                )
        logger.debug("Upserted vectors", count=len(entries), total=len(self._entries))

    async def search(
        self,
        vector: Sequence[float],
        limit: int,
        filter: Optional[MetadataFilter] = None
    ) -> List[VectorSearchResult]:
        self._ensure_initialized()
        if limit <= 0 or not self._entries:
            return []

        query = np.asarray(vector, dtype=np.float64)
        if query.ndim != 1 or query.shape[0] != self.vector_dimension:
            raise VectorStoreQueryError(
                f"Query vector has dimension {query.shape[-1] if query.ndim else 0}, "
                f"expected {self.vector_dimension}"
            )

        scored: List[VectorSearchResult] = []
        for entry in self._entries.values():
            if filter is not None and not filter.matches(entry.metadata):
                continue
            scored.append(VectorSearchResult(
                id=entry.id,
                score=cosine_similarity(query, entry.vector),
                metadata=dict(entry.metadata),
                content=entry.content,
            ))

        scored.sort(key=lambda r: (-r.score, r.id))
        return scored[:limit]

    async def delete(self, ids: List[str]) -> None:
        self._ensure_initialized()
        removed = 0
        for entry_id in ids:
            if self._entries.pop(entry_id, None) is not None:
                removed += 1
        logger.debug("Deleted vectors", requested=len(ids), removed=removed)

    async def count(self) -> int:
        self._ensure_initialized()
        return len(self._entries)

    async def close(self) -> None:
        self._entries.clear()
        self._initialized = False
