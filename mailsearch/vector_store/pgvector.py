"""PgVector implementation of the vector store contract.

This implementation stores vectors in PostgreSQL using the pgvector extension.
Cosine distance is computed with the ``<=>`` operator and converted to cosine
similarity (``1 - distance``) for consistency with the other backends.

Connection management
- ``initialize`` creates the extension, the table and a shared asyncpg pool
- An empty table whose ``vector(N)`` differs from the requested dimension is
  dropped and recreated; a non-empty one raises ``VectorStoreError``
- Queries are funneled through ``_execute`` for uniform error handling

Schema
- ``id TEXT PRIMARY KEY, embedding vector(N), metadata JSONB, content TEXT``
- Metadata filters are rendered over JSONB by ``build_where_clause``

Tolerated failures
- The ivfflat index is an optimization; creating it can fail on small or
  empty tables. That failure is logged and ``initialize`` still succeeds.
"""

import json
import re
from typing import Any, List, Optional, Sequence, Tuple

import asyncpg
import numpy as np
import structlog
from asyncpg import Connection, Pool
from pgvector.asyncpg import register_vector

from mailsearch.common.errors import (
    IndexNotInitializedError,
    VectorStoreConnectionError,
    VectorStoreError,
    VectorStoreQueryError,
)

from .base import DEFAULT_BATCH_SIZE, VectorEntry, VectorSearchResult, VectorStore, iter_batches
from .filters import FilterOp, MetadataFilter

logger = structlog.get_logger("vector_store.pgvector")

_IDENTIFIER_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")

_RANGE_SQL = {
    FilterOp.GTE: ">=",
    FilterOp.LTE: "<=",
    FilterOp.GT: ">",
    FilterOp.LT: "<",
}


def build_where_clause(
    metadata_filter: Optional[MetadataFilter],
    start_index: int = 1
) -> Tuple[str, List[Any]]:
    """Translate a ``MetadataFilter`` into a SQL ``WHERE`` clause over JSONB.

    Parameters
    - metadata_filter: Filter AST (``None`` or empty yields no clause)
    - start_index: Number of the first ``$n`` placeholder to use

    Returns
    - ``(clause, params)`` where ``clause`` is ``""`` or ``"WHERE ..."``
    """
    if metadata_filter is None or metadata_filter.is_empty():
        return "", []

    conditions: List[str] = []
    params: List[Any] = []
    index = start_index
    for condition in metadata_filter:
        # field names are validated identifiers, values always go through params
        field = condition.field
        if condition.op is FilterOp.EQ:
            conditions.append(f"metadata->'{field}' = ${index}::jsonb")
            params.append(json.dumps(condition.value))
        elif condition.op is FilterOp.IN:
            conditions.append(f"metadata->'{field}' = ANY(${index}::jsonb[])")
            params.append([json.dumps(v) for v in condition.value])
        elif condition.op is FilterOp.CONTAINS:
            conditions.append(f"metadata->'{field}' @> ${index}::jsonb")
            params.append(json.dumps([condition.value]))
        else:
            conditions.append(
                f"(metadata->>'{field}')::double precision {_RANGE_SQL[condition.op]} ${index}"
            )
            params.append(float(condition.value))
        index += 1

    return "WHERE " + " AND ".join(conditions), params


class PgVectorStore(VectorStore):
    """PgVector implementation of vector store."""

    name = "pgvector"

    def __init__(
        self,
        dsn: str,
        table_name: str = "mailsearch_vectors",
        pool_size: int = 10,
        max_queries: int = 50000,
        command_timeout: int = 60,
        batch_size: int = DEFAULT_BATCH_SIZE,
    ):
        """Configure a PgVector-backed vector store.

        Parameters
        - dsn: PostgreSQL DSN including database and credentials
        - table_name: Table holding the vectors (validated identifier)
        - pool_size: Max size of asyncpg connection pool
        - max_queries: Queries per connection before recycling
        - command_timeout: Seconds to allow per DB command
        - batch_size: Rows per upsert transaction
        """
        if not _IDENTIFIER_RE.match(table_name):
            raise ValueError(f"Invalid table name: {table_name!r}")
        self.dsn = dsn
        self.table_name = table_name
        self.pool_size = pool_size
        self.max_queries = max_queries
        self.command_timeout = command_timeout
        self.batch_size = batch_size
        self.vector_dimension: Optional[int] = None
        self._pool: Optional[Pool] = None

    async def _init_connection(self, conn: Connection) -> None:
        """Register the pgvector codec for asyncpg connections."""
        await register_vector(conn)

    async def _create_pool(self) -> Pool:
        try:
            # the extension must exist before pooled connections register its codec
            conn = await asyncpg.connect(self.dsn, timeout=self.command_timeout)
            try:
                await conn.execute("CREATE EXTENSION IF NOT EXISTS vector")
            finally:
                await conn.close()

            pool = await asyncpg.create_pool(
                self.dsn,
                min_size=1,
                max_size=self.pool_size,
                max_queries=self.max_queries,
                command_timeout=self.command_timeout,
                init=self._init_connection,
            )
            logger.info("Created PgVector connection pool", pool_size=self.pool_size)
            return pool
        except Exception as e:
            logger.error("Failed to create PgVector connection pool", error=str(e))
            raise VectorStoreConnectionError(f"Failed to create connection pool: {e}") from e

    def _get_pool(self) -> Pool:
        if self._pool is None:
            raise IndexNotInitializedError("PgVectorStore not initialized")
        return self._pool

    async def _execute(self, query: str, *args: Any, fetch: bool = False, fetch_one: bool = False) -> Any:
        """Execute a query with error handling.

        All failures are wrapped in ``VectorStoreQueryError`` for consistency.
        """
        pool = self._get_pool()
        try:
            async with pool.acquire() as conn:
                if fetch_one:
                    return await conn.fetchrow(query, *args)
                if fetch:
                    return await conn.fetch(query, *args)
                return await conn.execute(query, *args)
        except Exception as e:
            logger.error("Query execution failed", table=self.table_name, error=str(e))
            raise VectorStoreQueryError(f"Query failed: {e}") from e

    async def _existing_dimension(self) -> Optional[int]:
        """Dimension of the ``embedding`` column, or None when the table is absent."""
        row = await self._execute(
            """
            SELECT atttypmod FROM pg_attribute
            WHERE attrelid = to_regclass($1) AND attname = 'embedding' AND NOT attisdropped
            """,
            self.table_name,
            fetch_one=True
        )
        if row is None or row["atttypmod"] <= 0:
            return None
        return int(row["atttypmod"])

    async def initialize(self, dimensions: int) -> None:
        if dimensions <= 0:
            raise ValueError("dimensions must be positive")
        if self._pool is None:
            self._pool = await self._create_pool()

        current = await self._existing_dimension()
        if current is not None and current != dimensions:
            stored = await self.count()
            if stored:
                raise VectorStoreError(
                    f"Cannot change dimension of {self.table_name} from {current} to {dimensions}: "
                    f"it holds {stored} vectors"
                )
            await self._execute(f"DROP TABLE {self.table_name}")
            logger.info(
                "Dropped empty PgVector table to change dimension",
                table=self.table_name,
                previous=current,
                dimensions=dimensions
            )

        await self._execute(f"""
            CREATE TABLE IF NOT EXISTS {self.table_name} (
                id TEXT PRIMARY KEY,
                embedding vector({dimensions}),
                metadata JSONB NOT NULL DEFAULT '{{}}',
                content TEXT NOT NULL DEFAULT ''
            )
        """)

        try:
            await self._execute(f"""
                CREATE INDEX IF NOT EXISTS idx_{self.table_name}_embedding
                ON {self.table_name} USING ivfflat (embedding vector_cosine_ops)
                WITH (lists = 100)
            """)
        except VectorStoreQueryError as e:
            logger.warning("Skipped ivfflat index creation", table=self.table_name, error=str(e))

        self.vector_dimension = dimensions
        logger.info("PgVector store initialized", table=self.table_name, dimensions=dimensions)

    async def upsert(self, entries: List[VectorEntry]) -> None:
        pool = self._get_pool()
        query = f"""
            INSERT INTO {self.table_name} (id, embedding, metadata, content)
            VALUES ($1, $2, $3::jsonb, $4)
            ON CONFLICT (id) DO UPDATE SET
                embedding = EXCLUDED.embedding,
                metadata = EXCLUDED.metadata,
                content = EXCLUDED.content
        """
        stored = 0
        for batch in iter_batches(entries, self.batch_size):
            rows = [
                (e.id, np.asarray(e.vector, dtype=np.float32), json.dumps(e.metadata), e.content)
                for e in batch
            ]
            try:
                async with pool.acquire() as conn:
                    async with conn.transaction():
                        await conn.executemany(query, rows)
            except Exception as e:
                logger.error(
                    "Batch upsert failed",
                    committed=stored,
                    batch_size=len(rows),
                    error=str(e)
                )
                raise VectorStoreQueryError(f"Batch upsert failed: {e}") from e
            stored += len(rows)

        logger.info("Upserted vectors", count=stored, table=self.table_name)

    async def search(
        self,
        vector: Sequence[float],
        limit: int,
        filter: Optional[MetadataFilter] = None
    ) -> List[VectorSearchResult]:
        if limit <= 0:
            return []
        where, params = build_where_clause(filter, start_index=3)
        query = f"""
            SELECT id, 1 - (embedding <=> $1) AS score, metadata, content
            FROM {self.table_name}
            {where}
            ORDER BY embedding <=> $1
            LIMIT $2
        """
        rows = await self._execute(
            query,
            np.asarray(vector, dtype=np.float32),
            limit,
            *params,
            fetch=True
        )

        results = []
        for row in rows:
            metadata = row["metadata"]
            if isinstance(metadata, str):
                metadata = json.loads(metadata)
            results.append(VectorSearchResult(
                id=row["id"],
                score=float(row["score"]),
                metadata=metadata or {},
                content=row["content"] or "",
            ))

        logger.debug("Vector similarity search completed", limit=limit, results_count=len(results))
        return results

    async def delete(self, ids: List[str]) -> None:
        if not ids:
            self._get_pool()
            return
        await self._execute(f"DELETE FROM {self.table_name} WHERE id = ANY($1::text[])", list(ids))

    async def count(self) -> int:
        row = await self._execute(f"SELECT COUNT(*) AS count FROM {self.table_name}", fetch_one=True)
        return int(row["count"]) if row else 0

    async def close(self) -> None:
        """Close the connection pool."""
        if self._pool is not None:
            await self._pool.close()
            self._pool = None
            logger.info("Closed PgVector connection pool")
