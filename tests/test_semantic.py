"""Tests for semantic search."""

from datetime import datetime, timezone

import pytest

from mailsearch.common.errors import EmbeddingError
from mailsearch.search.engine import SearchEngine
from mailsearch.search.models import MatchType, SearchOptions
from mailsearch.search.semantic import SemanticSearch, build_metadata_filter, email_from_metadata
from mailsearch.vector_store import FilterOp, MemoryVectorStore
from tests.conftest import FailingEmbedder, make_email


async def indexed_engine(emails, embedder, storage=None, **kwargs) -> SearchEngine:
    engine = SearchEngine(MemoryVectorStore(), embedder, storage, **kwargs)
    await engine.index(emails)
    return engine


@pytest.mark.asyncio
async def test_semantic_ranks_by_similarity(sample_emails, embedder):
    engine = await indexed_engine(sample_emails, embedder)

    results = await engine.search_semantic("invoice", SearchOptions(limit=1))
    assert [r.email.id for r in results] == ["e3"]
    assert results[0].match_type is MatchType.SEMANTIC
    assert results[0].score > 0.5


@pytest.mark.asyncio
async def test_semantic_option_filters(sample_emails, embedder):
    engine = await indexed_engine(sample_emails, embedder)

    archive = await engine.search_semantic("travel", SearchOptions(folder="archive"))
    assert [r.email.id for r in archive] == ["e2"]

    vendor = await engine.search_semantic("budget", SearchOptions(label="vendor"))
    assert [r.email.id for r in vendor] == ["e3"]

    sender = await engine.search_semantic("budget", SearchOptions(**{"from": "alice@example.com"}))
    assert [r.email.id for r in sender] == ["e1"]

    recent = await engine.search_semantic("budget", SearchOptions(after=datetime(2024, 3, 1, tzinfo=timezone.utc)))
    assert [r.email.id for r in recent] == ["e3"]


@pytest.mark.asyncio
async def test_semantic_min_score(sample_emails, embedder):
    engine = await indexed_engine(sample_emails, embedder)
    results = await engine.search_semantic("invoice", SearchOptions(min_score=0.5))
    assert [r.email.id for r in results] == ["e3"]


@pytest.mark.asyncio
async def test_hits_resolve_through_storage(sample_emails, embedder, storage):
    engine = await indexed_engine(sample_emails, embedder, storage)
    results = await engine.search_semantic("invoice", SearchOptions(limit=1))
    assert results[0].email is await storage.get_document("e3")


@pytest.mark.asyncio
async def test_hits_rebuilt_from_metadata_without_storage(sample_emails, embedder):
    engine = await indexed_engine(sample_emails, embedder)
    results = await engine.search_semantic("invoice", SearchOptions(limit=1))

    email = results[0].email
    assert email.id == "e3"
    assert email.from_.address == "billing@vendor.com"
    assert email.labels == ["finance", "vendor"]
    assert email.date == datetime(2024, 3, 20, tzinfo=timezone.utc)
    assert email.to == []
    assert results[0].highlights[0] == email.body.text[:200]


@pytest.mark.asyncio
async def test_chunks_of_one_email_are_collapsed(embedder):
    long_body = " ".join(["The invoice for the project is attached."] * 30)
    engine = await indexed_engine(
        [make_email("long", subject="Invoice", body=long_body), make_email("short", body="invoice")],
        embedder,
        chunk_size=200,
        chunk_overlap=20,
    )
    assert await engine.get_indexed_count() > 2

    results = await engine.search_semantic("invoice project")
    ids = [r.email.id for r in results]
    assert len(ids) == len(set(ids))
    assert set(ids) == {"long", "short"}
    assert all(len(r.highlights[0]) <= 200 for r in results)


@pytest.mark.asyncio
async def test_query_embedding_failure_is_wrapped():
    search = SemanticSearch(MemoryVectorStore(), FailingEmbedder())
    with pytest.raises(EmbeddingError) as exc_info:
        await search.search("anything")
    assert isinstance(exc_info.value.cause, RuntimeError)


def test_build_metadata_filter():
    assert build_metadata_filter(SearchOptions()) is None

    metadata_filter = build_metadata_filter(SearchOptions(
        folder="inbox",
        label="finance",
        **{"from": "alice@example.com"},
        before=datetime(1970, 1, 1, 0, 0, 1, tzinfo=timezone.utc),
    ))
    assert [(c.field, c.op) for c in metadata_filter] == [
        ("folder", FilterOp.EQ),
        ("labels", FilterOp.CONTAINS),
        ("from", FilterOp.EQ),
        ("date", FilterOp.LTE),
    ]
    assert list(metadata_filter)[-1].value == 1000


def test_email_from_metadata_defaults():
    email = email_from_metadata({}, "chunk text")
    assert email.id == ""
    assert email.body.text == "chunk text"
    assert email.date == datetime(1970, 1, 1, tzinfo=timezone.utc)
    assert email.is_read is True
