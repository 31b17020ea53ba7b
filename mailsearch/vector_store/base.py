"""Base vector store interface.

Defines the abstract contract the search engine depends on, independent of
the backing implementation (in-memory, PgVector, OpenSearch).

All methods are asynchronous; backends perform network-bound work and the
engine awaits them cooperatively.

Contract
- ``initialize(dimensions)`` is idempotent; changing the dimension is only
  allowed while the store is empty
- ``upsert`` replaces by id and commits batch by batch (no cross-batch
  atomicity: a failure leaves earlier batches committed)
- ``search`` ranks by cosine similarity, highest first
- ``close`` may be called repeatedly; afterwards every operation raises
  ``IndexNotInitializedError`` until ``initialize`` is called again
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, List, Optional, Sequence

import numpy as np

from .filters import MetadataFilter

DEFAULT_BATCH_SIZE = 100


@dataclass
class VectorEntry:
    """A stored chunk: embedding, metadata, and the chunk text itself."""
    id: str
    vector: List[float]
    metadata: Dict[str, Any] = field(default_factory=dict)
    content: str = ""


@dataclass
class VectorSearchResult:
    """A similarity hit returned by ``VectorStore.search``."""
    id: str
    score: float
    metadata: Dict[str, Any] = field(default_factory=dict)
    content: str = ""


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """Cosine similarity of two vectors.

    Returns ``0.0`` when either vector has zero norm instead of dividing by
    zero. Raises ``ValueError`` for vectors of different length.
    """
    va = np.asarray(a, dtype=np.float64)
    vb = np.asarray(b, dtype=np.float64)
    if va.shape != vb.shape:
        raise ValueError(f"Vector length mismatch: {va.shape[0]} vs {vb.shape[0]}")

    denom = float(np.linalg.norm(va) * np.linalg.norm(vb))
    if denom == 0.0:
        return 0.0
    return max(-1.0, min(1.0, float(np.dot(va, vb)) / denom))


def iter_batches(items: Sequence[Any], batch_size: int) -> Iterator[Sequence[Any]]:
    """Yield consecutive slices of ``items`` of at most ``batch_size``."""
    if batch_size <= 0:
        raise ValueError("batch_size must be positive")
    for start in range(0, len(items), batch_size):
        yield items[start:start + batch_size]


class VectorStore(ABC):
    """Abstract base class for vector stores.

    Implementations translate ``MetadataFilter`` into their native query
    language and report similarity as cosine similarity so scores are
    comparable across backends.
    """

    name: str = "abstract"

    @abstractmethod
    async def initialize(self, dimensions: int) -> None:
        """Create the backing collection/table/connection (idempotent)."""
        pass

    @abstractmethod
    async def upsert(self, entries: List[VectorEntry]) -> None:
        """Insert or replace entries by id, batch by batch."""
        pass

    @abstractmethod
    async def search(
        self,
        vector: Sequence[float],
        limit: int,
        filter: Optional[MetadataFilter] = None
    ) -> List[VectorSearchResult]:
        """Return up to ``limit`` entries by descending cosine similarity."""
        pass

    @abstractmethod
    async def delete(self, ids: List[str]) -> None:
        """Delete entries by id; unknown ids are ignored."""
        pass

    @abstractmethod
    async def count(self) -> int:
        """Number of stored entries."""
        pass

    @abstractmethod
    async def close(self) -> None:
        """Release resources. Safe to call multiple times."""
        pass
