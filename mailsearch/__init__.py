"""Hybrid email retrieval: BM25 lexical ranking fused with vector similarity.

Subpackages:
- ``mailsearch.common``: configuration, logging, metrics, and error taxonomy.
- ``mailsearch.vector_store``: vector store contract, filter AST, and backends.
- ``mailsearch.search``: query parsing, inverted index, chunking, semantic and
  hybrid search, and the ``SearchEngine`` orchestrator.

Usage:
- ``from mailsearch.search import SearchEngine, create_search_engine``
- ``from mailsearch.vector_store import MemoryVectorStore``
"""

__version__ = "0.1.0"
