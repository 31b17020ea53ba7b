"""Document storage contract.

The engine persists raw emails through a ``DocumentStorage`` so that
``reindex`` can rebuild both indices and semantic hits can be resolved to full
emails. Lookups of unknown ids return ``None`` rather than raising.
"""

from abc import ABC, abstractmethod
from typing import Dict, Optional

from .models import Email, Page, Pagination


class DocumentStorage(ABC):
    """Keyed email storage."""

    @abstractmethod
    async def get_document(self, document_id: str) -> Optional[Email]:
        pass

    @abstractmethod
    async def save_document(self, email: Email) -> None:
        pass

    @abstractmethod
    async def delete_document(self, document_id: str) -> None:
        pass

    @abstractmethod
    async def list_documents(self, pagination: Pagination) -> Page[Email]:
        pass


class InMemoryDocumentStorage(DocumentStorage):
    """Dictionary-backed storage, listed in insertion order."""

    def __init__(self):
        self._documents: Dict[str, Email] = {}

    async def get_document(self, document_id: str) -> Optional[Email]:
        return self._documents.get(document_id)

    async def save_document(self, email: Email) -> None:
        self._documents[email.id] = email

    async def delete_document(self, document_id: str) -> None:
        self._documents.pop(document_id, None)

    async def list_documents(self, pagination: Pagination) -> Page[Email]:
        items = list(self._documents.values())
        window = items[pagination.offset:pagination.offset + pagination.limit]
        return Page(
            items=window,
            total=len(items),
            has_more=pagination.offset + len(window) < len(items),
        )

    def __len__(self) -> int:
        return len(self._documents)
