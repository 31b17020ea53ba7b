"""Shared fixtures: fake embedders, sample emails and in-memory collaborators."""

from datetime import datetime, timezone
from typing import List, Optional

import pytest

from mailsearch.search.embeddings import Embedder
from mailsearch.search.models import Attachment, Email, EmailAddress, EmailBody
from mailsearch.search.storage import InMemoryDocumentStorage
from mailsearch.vector_store.memory import MemoryVectorStore

VOCABULARY = ["budget", "meeting", "invoice", "travel", "lunch", "report", "project", "deadline"]


class KeywordEmbedder(Embedder):
    """Deterministic embedder: one dimension per vocabulary word plus a bias."""

    def __init__(self, vocabulary: Optional[List[str]] = None):
        self.vocabulary = vocabulary or VOCABULARY
        self.calls: List[List[str]] = []

    @property
    def dimension(self) -> int:
        return len(self.vocabulary) + 1

    async def embed(self, texts: List[str]) -> List[List[float]]:
        self.calls.append(list(texts))
        vectors = []
        for text in texts:
            lower = text.lower()
            vectors.append([float(lower.count(word)) for word in self.vocabulary] + [0.01])
        return vectors


class ConstantEmbedder(Embedder):
    """Returns the same vector of ``dimension`` ones for every text."""

    def __init__(self, dimension: int):
        self.dimension = dimension

    async def embed(self, texts: List[str]) -> List[List[float]]:
        return [[1.0] * self.dimension for _ in texts]


class FailingEmbedder(Embedder):
    async def embed(self, texts: List[str]) -> List[List[float]]:
        raise RuntimeError("model unavailable")


def make_email(
    email_id: str,
    subject: str = "",
    body: str = "",
    sender: str = "alice@example.com",
    to: Optional[List[str]] = None,
    folder: str = "inbox",
    labels: Optional[List[str]] = None,
    date: Optional[datetime] = None,
    is_read: bool = False,
    is_starred: bool = False,
    attachments: Optional[List[Attachment]] = None,
    html: Optional[str] = None,
) -> Email:
    return Email(
        id=email_id,
        subject=subject,
        body=EmailBody(text=body if html is None else None, html=html),
        from_=EmailAddress(address=sender),
        to=[EmailAddress(address=a) for a in (to or ["bob@example.com"])],
        date=date or datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc),
        folder=folder,
        labels=labels or [],
        is_read=is_read,
        is_starred=is_starred,
        attachments=attachments or [],
    )


@pytest.fixture
def sample_emails() -> List[Email]:
    return [
        make_email(
            "e1",
            subject="Quarterly budget review",
            body="Please review the budget before the meeting on Friday.",
            sender="alice@example.com",
            labels=["finance"],
            date=datetime(2024, 1, 10, tzinfo=timezone.utc),
        ),
        make_email(
            "e2",
            subject="Travel plans",
            body="Booking travel for the offsite. Lunch is included.",
            sender="carol@example.com",
            folder="archive",
            date=datetime(2024, 2, 15, tzinfo=timezone.utc),
            is_read=True,
        ),
        make_email(
            "e3",
            subject="Invoice 4411",
            body="Attached is the invoice for the project deadline work.",
            sender="billing@vendor.com",
            labels=["finance", "vendor"],
            attachments=[Attachment(filename="invoice.pdf", content_type="application/pdf", size=2048)],
            date=datetime(2024, 3, 20, tzinfo=timezone.utc),
            is_starred=True,
        ),
    ]


@pytest.fixture
def embedder() -> KeywordEmbedder:
    return KeywordEmbedder()


@pytest.fixture
def storage() -> InMemoryDocumentStorage:
    return InMemoryDocumentStorage()


@pytest.fixture
def memory_store() -> MemoryVectorStore:
    return MemoryVectorStore()
