"""OpenSearch vector store implementation."""

import asyncio
from typing import Any, Dict, List, Optional, Sequence

import structlog
from opensearchpy import OpenSearch
from opensearchpy.helpers import bulk

from mailsearch.common.errors import (
    IndexNotInitializedError,
    VectorStoreConnectionError,
    VectorStoreError,
    VectorStoreQueryError,
)

from .base import DEFAULT_BATCH_SIZE, VectorEntry, VectorSearchResult, VectorStore, iter_batches
from .filters import FilterOp, MetadataFilter

logger = structlog.get_logger("vector_store.opensearch")


def build_filter_clauses(metadata_filter: Optional[MetadataFilter]) -> List[Dict[str, Any]]:
    """Translate a ``MetadataFilter`` into OpenSearch bool-filter clauses.

    Metadata lives under the ``meta`` object; string values are mapped as
    ``keyword`` so ``term`` matches exactly.
    """
    if metadata_filter is None:
        return []

    clauses: List[Dict[str, Any]] = []
    for condition in metadata_filter:
        path = f"meta.{condition.field}"
        if condition.op in (FilterOp.EQ, FilterOp.CONTAINS):
            # term on an array field matches when any element equals the value
            clauses.append({"term": {path: condition.value}})
        elif condition.op is FilterOp.IN:
            clauses.append({"terms": {path: list(condition.value)}})
        else:
            clauses.append({"range": {path: {condition.op.value: condition.value}}})
    return clauses


def score_to_cosine(score: float) -> float:
    """Convert an nmslib ``cosinesimil`` score back to cosine similarity.

    OpenSearch reports ``1 / (2 - cos)`` for this space type.
    """
    if score <= 0:
        return -1.0
    return max(-1.0, min(1.0, 2.0 - 1.0 / score))


class OpenSearchVectorStore(VectorStore):
    """OpenSearch-based vector store implementation.

    The ``opensearch-py`` client is synchronous; calls are moved off the event
    loop with ``asyncio.to_thread``.
    """

    name = "opensearch"

    def __init__(
        self,
        hosts: List[str],
        index_name: str = "mailsearch_vectors",
        username: Optional[str] = None,
        password: Optional[str] = None,
        verify_certs: bool = False,
        batch_size: int = DEFAULT_BATCH_SIZE,
        client: Optional[OpenSearch] = None,
    ):
        """Initialize OpenSearch vector store.

        Args:
            hosts: List of OpenSearch host URLs
            index_name: Name of the index to store vectors
            username: OpenSearch username
            password: OpenSearch password
            verify_certs: Whether to verify SSL certificates
            batch_size: Documents per bulk request
            client: Preconfigured client (used instead of building one)
        """
        if not hosts and client is None:
            raise ValueError("OpenSearch requires at least one host")
        self.hosts = hosts
        self.index_name = index_name
        self.username = username
        self.password = password
        self.verify_certs = verify_certs
        self.batch_size = batch_size
        self.vector_dimension: Optional[int] = None
        self.client = client
        self._owns_client = client is None
        self._initialized = False

    def _build_client(self) -> OpenSearch:
        return OpenSearch(
            hosts=self.hosts,
            http_auth=(self.username, self.password) if self.username and self.password else None,
            verify_certs=self.verify_certs,
            ssl_show_warn=False,
            use_ssl=self.hosts[0].startswith("https"),
        )

    def _index_body(self, dimensions: int) -> Dict[str, Any]:
        return {
            "mappings": {
                "dynamic_templates": [
                    {
                        "meta_strings": {
                            "path_match": "meta.*",
                            "match_mapping_type": "string",
                            "mapping": {"type": "keyword"}
                        }
                    }
                ],
                "properties": {
                    "vector": {
                        "type": "knn_vector",
                        "dimension": dimensions,
                        "method": {
                            "name": "hnsw",
                            "space_type": "cosinesimil",
                            "engine": "nmslib",
                            "parameters": {
                                "ef_construction": 128,
                                "m": 24
                            }
                        }
                    },
                    "meta": {"type": "object"},
                    "content": {"type": "text", "index": False}
                }
            },
            "settings": {
                "index": {
                    "knn": True,
                    "knn.algo_param.ef_search": 100,
                    "number_of_shards": 1,
                    "number_of_replicas": 0
                }
            }
        }

    def _ensure_initialized(self) -> OpenSearch:
        if not self._initialized or self.client is None:
            raise IndexNotInitializedError("OpenSearchVectorStore not initialized")
        return self.client

    async def _existing_dimension(self, client: OpenSearch) -> Optional[int]:
        mapping = await asyncio.to_thread(client.indices.get_mapping, index=self.index_name)
        properties = mapping.get(self.index_name, {}).get("mappings", {}).get("properties", {})
        dimension = properties.get("vector", {}).get("dimension")
        return int(dimension) if dimension is not None else None

    async def initialize(self, dimensions: int) -> None:
        """Create the index, recreating an empty one whose dimension differs."""
        if dimensions <= 0:
            raise ValueError("dimensions must be positive")
        if self.client is None:
            self.client = self._build_client()
        client = self.client

        try:
            exists = await asyncio.to_thread(client.indices.exists, index=self.index_name)
            current = await self._existing_dimension(client) if exists else None
            stored = 0
            if current is not None and current != dimensions:
                response = await asyncio.to_thread(client.count, index=self.index_name)
                stored = int(response["count"])
        except Exception as e:
            logger.error("Failed to initialize OpenSearch vector store", error=str(e))
            raise VectorStoreConnectionError(f"Failed to initialize index: {e}") from e

        if stored:
            raise VectorStoreError(
                f"Cannot change dimension of index {self.index_name} from {current} to {dimensions}: "
                f"it holds {stored} vectors"
            )

        try:
            if current is not None and current != dimensions:
                await asyncio.to_thread(client.indices.delete, index=self.index_name)
                exists = False
                logger.info(
                    "Dropped empty OpenSearch index to change dimension",
                    index_name=self.index_name,
                    previous=current,
                    dimensions=dimensions
                )
            if not exists:
                await asyncio.to_thread(
                    client.indices.create,
                    index=self.index_name,
                    body=self._index_body(dimensions)
                )
                logger.info("OpenSearch index created", index_name=self.index_name)
        except Exception as e:
            logger.error("Failed to initialize OpenSearch vector store", error=str(e))
            raise VectorStoreConnectionError(f"Failed to initialize index: {e}") from e

        self.vector_dimension = dimensions
        self._initialized = True
        logger.info("OpenSearch vector store initialized", index_name=self.index_name, dimensions=dimensions)

    async def upsert(self, entries: List[VectorEntry]) -> None:
        client = self._ensure_initialized()
        stored = 0
        for batch in iter_batches(entries, self.batch_size):
            actions = [
                {
                    "_index": self.index_name,
                    "_id": entry.id,
                    "_source": {
                        "vector": list(entry.vector),
                        "meta": entry.metadata,
                        "content": entry.content,
                    }
                }
                for entry in batch
            ]
            try:
                await asyncio.to_thread(bulk, client, actions, refresh=True)
            except Exception as e:
                logger.error(
                    "Bulk upsert failed in OpenSearch",
                    committed=stored,
                    batch_size=len(actions),
                    error=str(e)
                )
                raise VectorStoreQueryError(f"Bulk upsert failed: {e}") from e
            stored += len(actions)

        logger.info("Batch stored vectors in OpenSearch", count=stored)

    async def search(
        self,
        vector: Sequence[float],
        limit: int,
        filter: Optional[MetadataFilter] = None
    ) -> List[VectorSearchResult]:
        """Search for similar vectors using kNN."""
        client = self._ensure_initialized()
        if limit <= 0:
            return []

        query = {
            "size": limit,
            "query": {
                "bool": {
                    "must": [
                        {
                            "knn": {
                                "vector": {
                                    "vector": list(vector),
                                    "k": limit
                                }
                            }
                        }
                    ],
                    "filter": build_filter_clauses(filter)
                }
            }
        }

        try:
            response = await asyncio.to_thread(client.search, index=self.index_name, body=query)
        except Exception as e:
            logger.error("OpenSearch similarity search failed", error=str(e))
            raise VectorStoreQueryError(f"Search failed: {e}") from e

        results = []
        for hit in response["hits"]["hits"]:
            source = hit["_source"]
            results.append(VectorSearchResult(
                id=hit["_id"],
                score=score_to_cosine(float(hit["_score"])),
                metadata=source.get("meta", {}),
                content=source.get("content", ""),
            ))

        logger.debug("OpenSearch similarity search completed", results_count=len(results))
        return results

    async def delete(self, ids: List[str]) -> None:
        client = self._ensure_initialized()
        if not ids:
            return
        try:
            await asyncio.to_thread(
                client.delete_by_query,
                index=self.index_name,
                body={"query": {"ids": {"values": list(ids)}}},
                refresh=True
            )
        except Exception as e:
            logger.error("Failed to delete vectors from OpenSearch", count=len(ids), error=str(e))
            raise VectorStoreQueryError(f"Delete failed: {e}") from e

    async def count(self) -> int:
        client = self._ensure_initialized()
        try:
            response = await asyncio.to_thread(client.count, index=self.index_name)
        except Exception as e:
            raise VectorStoreQueryError(f"Count failed: {e}") from e
        return int(response["count"])

    async def close(self) -> None:
        if self.client is not None and self._owns_client:
            await asyncio.to_thread(self.client.close)
            self.client = None
        self._initialized = False
