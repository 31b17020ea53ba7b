"""Email search: lexical (BM25), semantic (embeddings) and hybrid (RRF)."""

from .engine import SearchEngine, create_search_engine
from .embeddings import Embedder, HttpEmbedder
from .inverted_index import InvertedIndex
from .models import (
    Attachment,
    Email,
    EmailAddress,
    EmailBody,
    HybridSearchOptions,
    MatchType,
    Page,
    Pagination,
    SearchOptions,
    SearchResult,
)
from .query_parser import ParsedQuery, parse_query, tokenize
from .storage import DocumentStorage, InMemoryDocumentStorage

__all__ = [
    "Attachment",
    "DocumentStorage",
    "Email",
    "EmailAddress",
    "EmailBody",
    "Embedder",
    "HttpEmbedder",
    "HybridSearchOptions",
    "InMemoryDocumentStorage",
    "InvertedIndex",
    "MatchType",
    "Page",
    "Pagination",
    "ParsedQuery",
    "SearchEngine",
    "SearchOptions",
    "SearchResult",
    "create_search_engine",
    "parse_query",
    "tokenize",
]
