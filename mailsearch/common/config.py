"""Configuration management for the search engine.

This module centralizes environment-driven configuration for the engine,
its vector backend, chunking, and the HTTP embedding client. It builds on
``pydantic_settings.BaseSettings`` so configuration can be provided via
environment variables, ``.env`` files, or defaults.

Highlights
- Strongly‑typed settings with sensible defaults
- One place to discover commonly used environment variables
- Field names match their environment variables (case-insensitive)

Usage
- ``config = SearchEngineConfig()``
- ``config = SearchEngineConfig(mailsearch_vector_backend="pgvector", ...)``
"""

from typing import Any, Dict, List, Optional

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class BaseConfig(BaseSettings):
    """Base configuration shared by every entrypoint.

    Parameters are read from the process environment with the given names.
    Defaults keep local development convenient while still being explicit.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )

    # Environment
    mailsearch_env: str = Field(default="local")

    # Logging
    mailsearch_log_level: str = Field(default="INFO")
    mailsearch_log_format: str = Field(default="json")


class SearchEngineConfig(BaseConfig):
    """Configuration for the search engine and its collaborators.

    Notes
    - ``mailsearch_vector_dimension`` is only the initial guess; the first
      successful embedding batch establishes the real dimensionality.
    - ``mailsearch_reindex_page_size`` bounds ``reindex()`` to a single page.
    """

    # Vector store
    mailsearch_vector_backend: str = Field(default="memory")
    mailsearch_vector_dimension: int = Field(default=1536, gt=0)
    mailsearch_vector_batch_size: int = Field(default=100, gt=0)

    # PgVector
    mailsearch_vector_db_dsn: Optional[str] = Field(default=None)
    mailsearch_vector_table: str = Field(default="mailsearch_vectors")
    mailsearch_vector_pool_size: int = Field(default=10, gt=0)
    mailsearch_vector_command_timeout: int = Field(default=60, gt=0)

    # OpenSearch
    mailsearch_opensearch_hosts: str = Field(default="http://localhost:9200")
    mailsearch_opensearch_index: str = Field(default="mailsearch_vectors")
    mailsearch_opensearch_username: Optional[str] = Field(default=None)
    mailsearch_opensearch_password: Optional[str] = Field(default=None)
    mailsearch_opensearch_verify_certs: bool = Field(default=False)

    # Chunking
    mailsearch_chunk_size: int = Field(default=1000, gt=0)
    mailsearch_chunk_overlap: int = Field(default=200, ge=0)

    # Index lifecycle
    mailsearch_chunk_id_guess_limit: int = Field(default=100, ge=0)
    mailsearch_reindex_page_size: int = Field(default=10000, gt=0)

    # Embedding service
    mailsearch_embedding_service_url: str = Field(default="http://localhost:9006")
    mailsearch_embedding_model: str = Field(default="default")
    mailsearch_embedding_timeout: float = Field(default=30.0, gt=0)
    mailsearch_embedding_retry_attempts: int = Field(default=3, ge=1)

    @model_validator(mode="after")
    def _check_chunk_window(self) -> "SearchEngineConfig":
        if self.mailsearch_chunk_overlap >= self.mailsearch_chunk_size:
            raise ValueError("mailsearch_chunk_overlap must be smaller than mailsearch_chunk_size")
        return self

    @property
    def opensearch_hosts(self) -> List[str]:
        """OpenSearch hosts as a list (the env var is comma-separated)."""
        return [h.strip() for h in self.mailsearch_opensearch_hosts.split(",") if h.strip()]

    def vector_store_config(self) -> Dict[str, Any]:
        """Flatten the backend-relevant settings for the vector store factory."""
        backend = self.mailsearch_vector_backend.lower()
        config: Dict[str, Any] = {
            "type": backend,
            "batch_size": self.mailsearch_vector_batch_size,
        }
        if backend == "pgvector":
            config.update({
                "dsn": self.mailsearch_vector_db_dsn,
                "table_name": self.mailsearch_vector_table,
                "pool_size": self.mailsearch_vector_pool_size,
                "command_timeout": self.mailsearch_vector_command_timeout,
            })
        elif backend == "opensearch":
            config.update({
                "hosts": self.opensearch_hosts,
                "index_name": self.mailsearch_opensearch_index,
                "username": self.mailsearch_opensearch_username,
                "password": self.mailsearch_opensearch_password,
                "verify_certs": self.mailsearch_opensearch_verify_certs,
            })
        return config
