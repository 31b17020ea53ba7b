"""Exception taxonomy for the search engine.

Collaborator failures (embedding service, vector backends) are wrapped in the
matching subclass with the original exception chained as ``__cause__``; the
kind of failure is preserved, only context is added.

Storage lookups never raise for a missing document, they return ``None``.
"""

from typing import Optional


class MailSearchError(Exception):
    """Base exception for all search engine errors."""

    @property
    def cause(self) -> Optional[BaseException]:
        """The wrapped collaborator exception, if any."""
        return self.__cause__


class IndexNotInitializedError(MailSearchError):
    """Operation attempted before the store was initialized (or after close)."""
    pass


class PreconditionError(MailSearchError):
    """A required collaborator or argument is missing; raised before any work."""
    pass


class EmbeddingError(MailSearchError):
    """The embedding collaborator could not produce vectors."""
    pass


class DimensionMismatchError(EmbeddingError):
    """An embedding batch disagrees with the established dimensionality."""

    def __init__(self, expected: int, actual: int):
        super().__init__(
            f"Embedding dimension changed: expected {expected}, got {actual}"
        )
        self.expected = expected
        self.actual = actual


class VectorStoreError(MailSearchError):
    """Base exception for vector store operations."""
    pass


class VectorStoreConnectionError(VectorStoreError):
    """Connection error to vector store."""
    pass


class VectorStoreQueryError(VectorStoreError):
    """Query error in vector store."""
    pass


class VectorStoreUnavailableError(VectorStoreError):
    """Requested backend is unknown or its driver cannot be imported."""
    pass
