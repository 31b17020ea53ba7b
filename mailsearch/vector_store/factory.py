"""Vector store factory for creating different implementations.

Centralizes creation of concrete ``VectorStore`` backends so callers don't
depend on implementation details. Backend modules are imported only when
selected, so the database drivers are needed only by deployments that use
them.
"""

from enum import Enum
from typing import Any, Dict

import structlog

from mailsearch.common.config import SearchEngineConfig
from mailsearch.common.errors import VectorStoreUnavailableError

from .base import DEFAULT_BATCH_SIZE, VectorStore
from .memory import MemoryVectorStore

logger = structlog.get_logger("vector_store.factory")


class VectorStoreType(Enum):
    """Supported vector store types."""
    MEMORY = "memory"
    PGVECTOR = "pgvector"
    OPENSEARCH = "opensearch"


class VectorStoreFactory:
    """Factory for creating vector store instances."""

    @staticmethod
    def create(
        store_type: VectorStoreType,
        config: Dict[str, Any],
        **kwargs: Any
    ) -> VectorStore:
        """Create a vector store instance.

        Parameters
        - store_type: A ``VectorStoreType`` enum value
        - config: Backend-specific parameters (e.g., DSN for pgvector)
        - kwargs: Additional optional overrides forwarded to implementation
        """
        batch_size = config.get("batch_size", DEFAULT_BATCH_SIZE)

        if store_type == VectorStoreType.MEMORY:
            return MemoryVectorStore(batch_size=batch_size, **kwargs)

        elif store_type == VectorStoreType.PGVECTOR:
            dsn = config.get("dsn")
            if not dsn:
                raise ValueError("PgVector requires 'dsn' in config")
            try:
                from .pgvector import PgVectorStore
            except ImportError as e:
                raise VectorStoreUnavailableError(
                    "pgvector backend requires the 'asyncpg' and 'pgvector' packages"
                ) from e

            return PgVectorStore(
                dsn=dsn,
                table_name=config.get("table_name", "mailsearch_vectors"),
                pool_size=config.get("pool_size", 10),
                max_queries=config.get("max_queries", 50000),
                command_timeout=config.get("command_timeout", 60),
                batch_size=batch_size,
                **kwargs
            )

        elif store_type == VectorStoreType.OPENSEARCH:
            hosts = config.get("hosts", ["http://localhost:9200"])
            if not hosts:
                raise ValueError("OpenSearch requires 'hosts' in config")
            try:
                from .opensearch import OpenSearchVectorStore
            except ImportError as e:
                raise VectorStoreUnavailableError(
                    "opensearch backend requires the 'opensearch-py' package"
                ) from e

            return OpenSearchVectorStore(
                hosts=hosts,
                index_name=config.get("index_name", "mailsearch_vectors"),
                username=config.get("username"),
                password=config.get("password"),
                verify_certs=config.get("verify_certs", False),
                batch_size=batch_size,
                **kwargs
            )

        else:
            raise VectorStoreUnavailableError(f"Unsupported vector store type: {store_type}")

    @staticmethod
    def create_from_config(config: Dict[str, Any]) -> VectorStore:
        """Create vector store from configuration dictionary.

        Expects a ``type`` key and any implementation-specific fields.
        """
        store_type_str = config.get("type", "memory")

        try:
            store_type = VectorStoreType(store_type_str)
        except ValueError:
            raise VectorStoreUnavailableError(f"Unsupported vector store type: {store_type_str}")

        return VectorStoreFactory.create(store_type, config)


def create_vector_store(
    store_type: str,
    config: Dict[str, Any],
    **kwargs: Any
) -> VectorStore:
    """Convenience function to create a vector store."""
    try:
        store_type_enum = VectorStoreType(store_type)
    except ValueError:
        raise VectorStoreUnavailableError(f"Unsupported vector store type: {store_type}")
    return VectorStoreFactory.create(store_type_enum, config, **kwargs)


def create_vector_store_from_config(config: SearchEngineConfig) -> VectorStore:
    """Create vector store from typed settings.

    Parameters
    - config: ``SearchEngineConfig`` (usually populated from the environment)

    Returns
    - A ``VectorStore`` for ``mailsearch_vector_backend``, not yet initialized
    """
    store_config = config.vector_store_config()
    logger.info("Creating vector store", backend=store_config["type"])
    return VectorStoreFactory.create_from_config(store_config)
