"""Embedding collaborators.

``Embedder`` is the contract the engine needs: an ordered batch of texts in,
one vector per text out. ``HttpEmbedder`` talks to an embedding service over
HTTP (``POST {url}/api/v1/embed``) and retries transient failures with
exponential backoff.
"""

import asyncio
from abc import ABC, abstractmethod
from typing import Any, Awaitable, Callable, List, Optional

import httpx
import structlog

from mailsearch.common.errors import EmbeddingError

logger = structlog.get_logger("search.embeddings")


class Embedder(ABC):
    """Maps texts to fixed-length vectors, preserving order."""

    @abstractmethod
    async def embed(self, texts: List[str]) -> List[List[float]]:
        pass


class _RetryableStatus(Exception):
    """A 5xx response; worth another attempt."""

    def __init__(self, status_code: int):
        super().__init__(f"Embedding service returned status {status_code}")
        self.status_code = status_code


class HttpEmbedder(Embedder):
    """Embedding service client.

    Parameters
    - service_url: Base URL of the embedding service
    - model: Model name forwarded with every request
    - timeout: Per-request timeout in seconds
    - retry_attempts: Total attempts for transport errors and 5xx responses
    - retry_base_delay / retry_max_delay: Backoff bounds in seconds
    - client: Preconfigured ``httpx.AsyncClient`` (not closed by ``aclose``)
    """

    def __init__(
        self,
        service_url: str,
        model: str = "default",
        timeout: float = 30.0,
        retry_attempts: int = 3,
        retry_base_delay: float = 0.5,
        retry_max_delay: float = 5.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        if retry_attempts < 1:
            raise ValueError("retry_attempts must be at least 1")
        self.service_url = service_url.rstrip("/")
        self.model = model
        self.retry_attempts = retry_attempts
        self.retry_base_delay = retry_base_delay
        self.retry_max_delay = retry_max_delay
        self._owns_client = client is None
        self.http_client = client or httpx.AsyncClient(timeout=timeout)

    async def _call_with_retry(
        self,
        func: Callable[[], Awaitable[Any]],
        operation_name: str
    ) -> Any:
        """Execute a coroutine-returning callable with retry and backoff."""
        for attempt in range(1, self.retry_attempts + 1):
            try:
                return await func()
            except (httpx.TransportError, _RetryableStatus) as exc:
                if attempt == self.retry_attempts:
                    logger.error(
                        "Operation failed after retries",
                        operation=operation_name,
                        attempts=attempt,
                        error=str(exc)
                    )
                    raise

                delay = min(self.retry_base_delay * (2 ** (attempt - 1)), self.retry_max_delay)
                logger.warning(
                    "Operation failed, retrying",
                    operation=operation_name,
                    attempt=attempt,
                    max_attempts=self.retry_attempts,
                    delay_seconds=delay,
                    error=str(exc)
                )
                await asyncio.sleep(delay)

    async def embed(self, texts: List[str]) -> List[List[float]]:
        if not texts:
            return []

        async def call_embedding_service() -> List[List[float]]:
            response = await self.http_client.post(
                f"{self.service_url}/api/v1/embed",
                json={
                    "items": [{"text": t} for t in texts],
                    "model": self.model
                }
            )
            if response.status_code >= 500:
                raise _RetryableStatus(response.status_code)
            if response.status_code != 200:
                raise EmbeddingError(f"Embedding service returned status {response.status_code}")
            return response.json().get("vectors", [])

        try:
            vectors = await self._call_with_retry(
                call_embedding_service,
                operation_name="embedding_service_request"
            )
        except EmbeddingError:
            raise
        except Exception as e:
            raise EmbeddingError(f"Embedding service call failed: {e}") from e

        if len(vectors) != len(texts):
            raise EmbeddingError(
                f"Embedding service returned {len(vectors)} vectors for {len(texts)} texts"
            )
        return [[float(x) for x in v] for v in vectors]

    async def aclose(self) -> None:
        if self._owns_client:
            await self.http_client.aclose()
