"""Semantic search over the vector store.

The query is embedded with the same ``Embedder`` used for indexing and the
store is asked for ``limit * 2`` nearest chunks, which leaves room for hits
dropped by ``min_score`` or collapsed because they belong to an email already
in the results.
"""

from typing import Any, Dict, List, Optional, Set

import structlog

from mailsearch.common.errors import EmbeddingError
from mailsearch.vector_store.base import VectorStore
from mailsearch.vector_store.filters import FilterOp, MetadataFilter

from .embeddings import Embedder
from .models import (
    Email,
    EmailAddress,
    EmailBody,
    MatchType,
    SearchOptions,
    SearchResult,
    from_epoch_ms,
    to_epoch_ms,
)
from .storage import DocumentStorage

logger = structlog.get_logger("search.semantic")

SNIPPET_LENGTH = 200


def build_metadata_filter(options: SearchOptions) -> Optional[MetadataFilter]:
    """Map option filters onto the vector metadata written at index time."""
    metadata_filter = MetadataFilter()
    if options.folder:
        metadata_filter = metadata_filter.where("folder", FilterOp.EQ, options.folder)
    if options.label:
        metadata_filter = metadata_filter.where("labels", FilterOp.CONTAINS, options.label)
    if options.from_:
        metadata_filter = metadata_filter.where("from", FilterOp.EQ, options.from_)
    if options.after:
        metadata_filter = metadata_filter.where("date", FilterOp.GTE, to_epoch_ms(options.after))
    if options.before:
        metadata_filter = metadata_filter.where("date", FilterOp.LTE, to_epoch_ms(options.before))
    return None if metadata_filter.is_empty() else metadata_filter


def email_from_metadata(metadata: Dict[str, Any], content: str) -> Email:
    """Best-effort email rebuilt from chunk metadata when storage is unavailable.

    Recipients, thread linkage and most flags are not stored with vectors, so
    they take defaults.
    """
    labels = metadata.get("labels")
    return Email(
        id=metadata.get("email_id") or metadata.get("id") or "",
        subject=metadata.get("subject") or "",
        from_=EmailAddress(address=metadata.get("from") or ""),
        date=from_epoch_ms(metadata.get("date")),
        body=EmailBody(text=content),
        folder=metadata.get("folder") or "",
        labels=list(labels) if isinstance(labels, list) else [],
        is_read=True,
        thread_id=metadata.get("thread_id"),
    )


class SemanticSearch:
    """Embedding-similarity search resolving chunk hits to emails."""

    def __init__(
        self,
        vector_store: VectorStore,
        embedder: Embedder,
        storage: Optional[DocumentStorage] = None
    ):
        self.vector_store = vector_store
        self.embedder = embedder
        self.storage = storage

    async def embed_query(self, query: str) -> List[float]:
        try:
            vectors = await self.embedder.embed([query])
        except EmbeddingError:
            raise
        except Exception as e:
            logger.error("Query embedding failed", error=str(e))
            raise EmbeddingError(f"Failed to generate query embedding: {e}") from e
        if len(vectors) != 1:
            raise EmbeddingError(f"Expected one query vector, got {len(vectors)}")
        return vectors[0]

    async def search(self, query: str, options: Optional[SearchOptions] = None) -> List[SearchResult]:
        options = options or SearchOptions()
        query_vector = await self.embed_query(query)
        metadata_filter = build_metadata_filter(options)

        hits = await self.vector_store.search(query_vector, options.limit * 2, metadata_filter)

        results: List[SearchResult] = []
        seen: Set[str] = set()
        for hit in hits:
            if hit.score < options.min_score:
                continue
            if len(results) >= options.limit:
                break

            email_id = hit.metadata.get("email_id") or hit.id
            if email_id in seen:
                continue
            seen.add(email_id)

            email = await self._resolve_email(email_id, hit.metadata, hit.content)
            results.append(SearchResult(
                email=email,
                score=hit.score,
                match_type=MatchType.SEMANTIC,
                highlights=[hit.content[:SNIPPET_LENGTH]],
            ))

        logger.debug(
            "Semantic search completed",
            hits=len(hits),
            results_count=len(results),
            filters=metadata_filter.to_dict() if metadata_filter else {}
        )
        return results

    async def _resolve_email(self, email_id: str, metadata: Dict[str, Any], content: str) -> Email:
        if self.storage is not None:
            email = await self.storage.get_document(email_id)
            if email is not None:
                return email
        return email_from_metadata(metadata, content)
