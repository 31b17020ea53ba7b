"""Search engine facade.

Owns the lexical index, drives the vector store and embedding collaborators,
and exposes the three search modes.

Indexing pipeline (per email)
- flatten to plain text, split into overlapping chunks
- embed every chunk in one call
- build one vector entry per chunk (email metadata + chunk position)
- persist the raw email when storage is configured

All entries of one ``index`` call are upserted together, then the lexical
index is updated.

Vector dimensionality
- the store is first initialized with the configured guess
- the first successful embedding batch establishes the real dimension and
  re-initializes the store if the guess was wrong
- any later batch with a different dimension raises
  ``DimensionMismatchError``
"""

import time
from typing import Any, Dict, List, Optional, Set

import structlog

from mailsearch.common.config import SearchEngineConfig
from mailsearch.common.errors import (
    DimensionMismatchError,
    EmbeddingError,
    PreconditionError,
)
from mailsearch.common.logging import configure_logging_from_config
from mailsearch.common.metrics import MetricsCollector
from mailsearch.vector_store.base import VectorEntry, VectorStore
from mailsearch.vector_store.factory import create_vector_store_from_config

from .chunking import (
    DEFAULT_CHUNK_OVERLAP,
    DEFAULT_CHUNK_SIZE,
    chunk_ids,
    chunk_text,
    email_to_plain_text,
)
from .embeddings import Embedder
from .hybrid import HybridSearch
from .inverted_index import InvertedIndex
from .models import Email, HybridSearchOptions, Pagination, SearchOptions, SearchResult, to_epoch_ms
from .query_parser import parse_query
from .semantic import SemanticSearch
from .storage import DocumentStorage

logger = structlog.get_logger("search.engine")

DEFAULT_DIMENSIONS = 1536
DEFAULT_CHUNK_ID_GUESS_LIMIT = 100
DEFAULT_REINDEX_PAGE_SIZE = 10000


def email_metadata(email: Email) -> Dict[str, Any]:
    """Metadata stored with every chunk vector of ``email``."""
    return {
        "email_id": email.id,
        "from": email.from_.address,
        "subject": email.subject,
        "date": to_epoch_ms(email.date),
        "folder": email.folder,
        "labels": list(email.labels),
        "is_read": email.is_read,
        "is_starred": email.is_starred,
        "has_attachments": email.has_attachments,
        "thread_id": email.thread_id,
    }


class SearchEngine:
    """Hybrid email search engine.

    Parameters
    - vector_store: Backend for chunk vectors (initialized lazily)
    - embedder: Produces vectors for chunks and queries
    - storage: Optional raw email storage, required by ``reindex``
    - dimensions: Initial guess for the vector dimensionality
    - chunk_size / chunk_overlap: Chunking window in characters
    - chunk_id_guess_limit: Chunk ids to try when removing an untracked email
    - reindex_page_size: Emails fetched from storage by ``reindex``
    - metrics: Optional ``MetricsCollector``
    """

    def __init__(
        self,
        vector_store: VectorStore,
        embedder: Embedder,
        storage: Optional[DocumentStorage] = None,
        dimensions: int = DEFAULT_DIMENSIONS,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        chunk_overlap: int = DEFAULT_CHUNK_OVERLAP,
        chunk_id_guess_limit: int = DEFAULT_CHUNK_ID_GUESS_LIMIT,
        reindex_page_size: int = DEFAULT_REINDEX_PAGE_SIZE,
        metrics: Optional[MetricsCollector] = None,
    ):
        if chunk_overlap >= chunk_size:
            raise ValueError("chunk_overlap must be smaller than chunk_size")
        self.vector_store = vector_store
        self.embedder = embedder
        self.storage = storage
        self.chunk_size = chunk_size
        self.chunk_overlap = chunk_overlap
        self.chunk_id_guess_limit = chunk_id_guess_limit
        self.reindex_page_size = reindex_page_size
        self.metrics = metrics

        self.lexical_index = InvertedIndex()
        self.semantic_search = SemanticSearch(vector_store, embedder, storage)
        self.hybrid_search = HybridSearch(self.semantic_search, self.lexical_index)

        self._dimensions = dimensions
        self._dimension_established = False
        self._initialized = False
        self._chunk_counts: Dict[str, int] = {}

    @property
    def dimensions(self) -> int:
        return self._dimensions

    @property
    def lexical_document_count(self) -> int:
        return self.lexical_index.document_count

    async def _ensure_initialized(self) -> None:
        if self._initialized:
            return
        await self.vector_store.initialize(self._dimensions)
        self._initialized = True

    def _record_vector_op(self, operation: str) -> None:
        if self.metrics:
            self.metrics.record_vector_store_operation(operation, self.vector_store.name)

    async def _embed_chunks(self, email_id: str, chunks: List[str]) -> List[List[float]]:
        try:
            vectors = await self.embedder.embed(chunks)
        except Exception as e:
            if self.metrics:
                self.metrics.record_embedding("failure")
            logger.error("Embedding failed", email_id=email_id, error=str(e))
            if isinstance(e, EmbeddingError):
                raise
            raise EmbeddingError(f"Failed to generate embeddings for email {email_id}: {e}") from e

        if self.metrics:
            self.metrics.record_embedding("success")
        if len(vectors) != len(chunks):
            raise EmbeddingError(
                f"Embedder returned {len(vectors)} vectors for {len(chunks)} chunks of email {email_id}"
            )
        await self._check_dimensions(vectors)
        return vectors

    async def _check_dimensions(self, vectors: List[List[float]]) -> None:
        for vector in vectors:
            actual = len(vector)
            if self._dimension_established:
                if actual != self._dimensions:
                    raise DimensionMismatchError(self._dimensions, actual)
                continue

            if actual != self._dimensions:
                logger.info(
                    "Re-initializing vector store with embedder dimension",
                    configured=self._dimensions,
                    actual=actual
                )
                await self.vector_store.initialize(actual)
                self._dimensions = actual
            self._dimension_established = True

    async def _build_entries(self, email: Email) -> List[VectorEntry]:
        chunks = chunk_text(email_to_plain_text(email), self.chunk_size, self.chunk_overlap)
        vectors = await self._embed_chunks(email.id, chunks)
        metadata = email_metadata(email)
        ids = chunk_ids(email.id, len(chunks))

        return [
            VectorEntry(
                id=ids[i],
                vector=vectors[i],
                metadata={**metadata, "chunk_index": i, "total_chunks": len(chunks)},
                content=chunk,
            )
            for i, chunk in enumerate(chunks)
        ]

    async def _write_vectors(self, emails: List[Email], persist: bool) -> None:
        entries: List[VectorEntry] = []
        stale: Set[str] = set()
        counts = dict(self._chunk_counts)

        for email in emails:
            email_entries = await self._build_entries(email)
            entries.extend(email_entries)

            previous = counts.get(email.id)
            if previous is not None:
                stale.update(set(chunk_ids(email.id, previous)) - {e.id for e in email_entries})
            counts[email.id] = len(email_entries)

            if persist and self.storage is not None:
                await self.storage.save_document(email)

        if entries:
            await self.vector_store.upsert(entries)
            self._record_vector_op("upsert")

        # an email listed twice keeps only the ids of its last version
        for email_id in {email.id for email in emails}:
            stale.difference_update(chunk_ids(email_id, counts[email_id]))
        if stale:
            await self.vector_store.delete(sorted(stale))
            self._record_vector_op("delete")
            logger.debug("Deleted stale chunk vectors", count=len(stale))

        self._chunk_counts = counts

    async def index(self, emails: List[Email]) -> None:
        """Index (or re-index) emails in both the vector store and the lexical index."""
        await self._ensure_initialized()
        emails = list(emails)

        await self._write_vectors(emails, persist=True)
        self.lexical_index.index_documents(emails)

        if self.metrics:
            self.metrics.record_indexed(len(emails))
            self.metrics.set_lexical_documents(self.lexical_index.document_count)
        logger.info("Indexed emails", count=len(emails))

    async def index_email(self, email: Email) -> None:
        await self.index([email])

    async def remove_from_index(self, email_id: str) -> None:
        """Remove an email from the vector store, lexical index and storage."""
        await self._ensure_initialized()

        tracked = self._chunk_counts.pop(email_id, None)
        if tracked is not None:
            ids = chunk_ids(email_id, tracked)
        else:
            # indexed elsewhere: try the single-chunk id and a bounded range of chunk ids
            ids = [email_id] + [f"{email_id}:chunk:{i}" for i in range(self.chunk_id_guess_limit)]

        await self.vector_store.delete(ids)
        self._record_vector_op("delete")
        self.lexical_index.remove_document(email_id)

        if self.storage is not None:
            await self.storage.delete_document(email_id)

        if self.metrics:
            self.metrics.set_lexical_documents(self.lexical_index.document_count)
        logger.info("Removed email from index", email_id=email_id, vector_ids=len(ids))

    async def reindex(self) -> None:
        """Rebuild both indices from storage.

        Reads a single page of ``reindex_page_size`` emails; a larger corpus is
        only partially rebuilt.
        """
        if self.storage is None:
            raise PreconditionError("Storage is required for reindex")

        await self._ensure_initialized()
        self.lexical_index.clear()
        self._chunk_counts.clear()

        page = await self.storage.list_documents(Pagination(limit=self.reindex_page_size, offset=0))
        if page.has_more:
            logger.warning(
                "Reindex limited to a single page",
                page_size=self.reindex_page_size,
                total=page.total
            )

        await self._write_vectors(page.items, persist=False)
        self.lexical_index.index_documents(page.items)

        if self.metrics:
            self.metrics.set_lexical_documents(self.lexical_index.document_count)
        logger.info("Reindexed emails", count=len(page.items), total=page.total)

    async def get_indexed_count(self) -> int:
        """Number of vectors (chunks) held by the vector store."""
        await self._ensure_initialized()
        return await self.vector_store.count()

    async def search_lexical(self, query: str, options: Optional[SearchOptions] = None) -> List[SearchResult]:
        start_time = time.perf_counter()
        results = self.lexical_index.search(parse_query(query), options)
        self._record_search("lexical", start_time)
        return results

    async def search_semantic(self, query: str, options: Optional[SearchOptions] = None) -> List[SearchResult]:
        await self._ensure_initialized()
        start_time = time.perf_counter()
        results = await self.semantic_search.search(query, options)
        self._record_vector_op("search")
        self._record_search("semantic", start_time)
        return results

    async def search_hybrid(self, query: str, options: Optional[HybridSearchOptions] = None) -> List[SearchResult]:
        await self._ensure_initialized()
        start_time = time.perf_counter()
        results = await self.hybrid_search.search(query, options)
        self._record_search("hybrid", start_time)
        return results

    def _record_search(self, mode: str, start_time: float) -> None:
        duration = time.perf_counter() - start_time
        if self.metrics:
            self.metrics.record_search(mode, duration)
        logger.debug("Search completed", mode=mode, duration_ms=duration * 1000)

    async def close(self) -> None:
        """Close the vector store; the next operation re-initializes it."""
        await self.vector_store.close()
        self._initialized = False


def create_search_engine(
    config: SearchEngineConfig,
    embedder: Embedder,
    storage: Optional[DocumentStorage] = None,
    metrics: Optional[MetricsCollector] = None,
    configure_logs: bool = True
) -> SearchEngine:
    """Build a ``SearchEngine`` with the vector backend named in ``config``.

    Unless ``configure_logs`` is False, logging is set up from the
    ``mailsearch_log_level`` and ``mailsearch_log_format`` settings first.
    """
    if configure_logs:
        configure_logging_from_config(config)
    return SearchEngine(
        vector_store=create_vector_store_from_config(config),
        embedder=embedder,
        storage=storage,
        dimensions=config.mailsearch_vector_dimension,
        chunk_size=config.mailsearch_chunk_size,
        chunk_overlap=config.mailsearch_chunk_overlap,
        chunk_id_guess_limit=config.mailsearch_chunk_id_guess_limit,
        reindex_page_size=config.mailsearch_reindex_page_size,
        metrics=metrics,
    )
