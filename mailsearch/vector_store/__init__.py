"""Vector store adapters and utilities.

Primary components:
- ``base``: abstract ``VectorStore`` interface, entries and results.
- ``filters``: the ``MetadataFilter`` AST every backend translates.
- ``memory``: brute-force in-process implementation.
- ``pgvector`` / ``opensearch``: database-backed implementations (imported
  lazily by the factory).
- ``factory``: helpers to construct a store from typed config.
"""

from .base import VectorEntry, VectorSearchResult, VectorStore, cosine_similarity
from .factory import (
    VectorStoreFactory,
    VectorStoreType,
    create_vector_store,
    create_vector_store_from_config,
)
from .filters import FilterCondition, FilterOp, MetadataFilter
from .memory import MemoryVectorStore

__all__ = [
    "FilterCondition",
    "FilterOp",
    "MemoryVectorStore",
    "MetadataFilter",
    "VectorEntry",
    "VectorSearchResult",
    "VectorStore",
    "VectorStoreFactory",
    "VectorStoreType",
    "cosine_similarity",
    "create_vector_store",
    "create_vector_store_from_config",
]
