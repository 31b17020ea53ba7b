"""In-process inverted index with BM25 ranking.

Each indexed email contributes the tokens of its subject, text body, sender
address and recipient addresses. Per term the index keeps a posting map
``doc_id -> term frequency``; the document frequency is always the size of
that map.

Scoring (Okapi BM25, ``k1=1.5``, ``b=0.75``)::

    idf   = ln(1 + (N - df + 0.5) / (df + 0.5))
    score = sum over query terms of
            idf * tf * (k1 + 1) / (tf + k1 * (1 - b + b * len / avg_len))

The index is not thread-safe; writers must be serialized by the caller.
"""

import math
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Set

import structlog

from .models import Email, MatchType, SearchOptions, SearchResult
from .query_parser import ParsedQuery, tokenize

logger = structlog.get_logger("search.inverted_index")

K1 = 1.5
B = 0.75

HIGHLIGHT_CONTEXT = 40
MAX_HIGHLIGHTS = 3


def idf(n_docs: int, doc_freq: int) -> float:
    """Inverse document frequency; strictly decreasing in ``doc_freq``."""
    return math.log(1 + (n_docs - doc_freq + 0.5) / (doc_freq + 0.5))


def bm25_term_score(tf: int, doc_len: int, avg_len: float) -> float:
    """Length-normalized term frequency component of BM25 (without idf)."""
    norm_length = doc_len / (avg_len or 1)
    return (tf * (K1 + 1)) / (tf + K1 * (1 - B + B * norm_length))


@dataclass
class TermStats:
    doc_freq: int = 0
    postings: Dict[str, int] = field(default_factory=dict)


@dataclass
class _DocInfo:
    email: Email
    length: int
    field_lengths: Dict[str, int]


def matches_options(email: Email, options: SearchOptions) -> bool:
    """Whether ``email`` satisfies the option filters of a search request."""
    if options.folder and email.folder != options.folder:
        return False
    if options.label and options.label not in email.labels:
        return False
    if options.from_ and options.from_.lower() not in email.from_.address.lower():
        return False
    if options.after and email.date < options.after:
        return False
    if options.before and email.date > options.before:
        return False
    return True


def generate_highlights(email: Email, terms: List[str]) -> List[str]:
    """Snippets of the text body around the first occurrence of each term."""
    if not terms:
        return []
    text = email.body.text or ""
    lower_text = text.lower()
    highlights: List[str] = []

    for term in terms:
        idx = lower_text.find(term)
        if idx == -1:
            continue

        start = max(0, idx - HIGHLIGHT_CONTEXT)
        end = min(len(text), idx + len(term) + HIGHLIGHT_CONTEXT)
        snippet = text[start:end].strip()
        if start > 0:
            snippet = "..." + snippet
        if end < len(text):
            snippet = snippet + "..."
        highlights.append(snippet)

        if len(highlights) >= MAX_HIGHLIGHTS:
            break

    return highlights


class InvertedIndex:
    """BM25 inverted index over emails."""

    def __init__(self):
        self._terms: Dict[str, TermStats] = {}
        self._docs: Dict[str, _DocInfo] = {}
        self._avg_doc_length = 0.0

    # ------------------------------------------------------------------ stats

    @property
    def document_count(self) -> int:
        return len(self._docs)

    @property
    def avg_doc_length(self) -> float:
        return self._avg_doc_length

    def term_stats(self, term: str) -> Optional[TermStats]:
        return self._terms.get(term)

    def doc_length(self, doc_id: str) -> Optional[int]:
        doc = self._docs.get(doc_id)
        return doc.length if doc else None

    def field_lengths(self, doc_id: str) -> Optional[Dict[str, int]]:
        doc = self._docs.get(doc_id)
        return dict(doc.field_lengths) if doc else None

    def terms(self) -> List[str]:
        return sorted(self._terms)

    def __contains__(self, doc_id: str) -> bool:
        return doc_id in self._docs

    # -------------------------------------------------------------- mutation

    def index_document(self, email: Email) -> None:
        """Add or replace a single email."""
        self._index_one(email)
        self._recalc_avg_length()

    def index_documents(self, emails: Iterable[Email]) -> None:
        """Add or replace many emails; the average length is recomputed once."""
        count = 0
        for email in emails:
            self._index_one(email)
            count += 1
        self._recalc_avg_length()
        logger.debug("Indexed documents", count=count, total=len(self._docs))

    def remove_document(self, doc_id: str) -> None:
        """Remove an email from every posting; unknown ids are ignored."""
        if doc_id not in self._docs:
            return
        self._drop_postings(doc_id)
        del self._docs[doc_id]
        self._recalc_avg_length()

    def clear(self) -> None:
        self._terms.clear()
        self._docs.clear()
        self._avg_doc_length = 0.0

    def _drop_postings(self, doc_id: str, keep: Optional[Set[str]] = None) -> None:
        for term in list(self._terms):
            if keep is not None and term in keep:
                continue
            stats = self._terms[term]
            if stats.postings.pop(doc_id, None) is None:
                continue
            if stats.postings:
                stats.doc_freq = len(stats.postings)
            else:
                del self._terms[term]

    def _index_one(self, email: Email) -> None:
        subject_text = email.subject or ""
        body_text = email.body.text or ""
        from_text = email.from_.address
        to_text = " ".join(a.address for a in email.to)

        tokens = tokenize(f"{subject_text} {body_text} {from_text} {to_text}")

        term_freqs: Dict[str, int] = {}
        for token in tokens:
            term_freqs[token] = term_freqs.get(token, 0) + 1

        if email.id in self._docs:
            # terms the new version no longer contains must lose this posting
            self._drop_postings(email.id, keep=set(term_freqs))

        for term, freq in term_freqs.items():
            stats = self._terms.get(term)
            if stats is None:
                stats = TermStats()
                self._terms[term] = stats
            stats.postings[email.id] = freq
            stats.doc_freq = len(stats.postings)

        self._docs[email.id] = _DocInfo(
            email=email,
            length=len(tokens),
            field_lengths={
                "subject": len(tokenize(subject_text)),
                "body": len(tokenize(body_text)),
                "from": len(tokenize(from_text)),
                "to": len(tokenize(to_text)),
            },
        )

    def _recalc_avg_length(self) -> None:
        if not self._docs:
            self._avg_doc_length = 0.0
            return
        self._avg_doc_length = sum(d.length for d in self._docs.values()) / len(self._docs)

    # ---------------------------------------------------------------- search

    def _filter_candidates(self, parsed: ParsedQuery, options: SearchOptions) -> Optional[Set[str]]:
        if not parsed.has_filters() and not options.has_filters():
            return None
        return {
            doc_id
            for doc_id, doc in self._docs.items()
            if parsed.matches(doc.email) and matches_options(doc.email, options)
        }

    def search(self, parsed: ParsedQuery, options: Optional[SearchOptions] = None) -> List[SearchResult]:
        """Rank indexed emails against a parsed query.

        Only emails containing at least one query term can score, so a query
        made only of filters yields no results.
        """
        options = options or SearchOptions()
        candidates = self._filter_candidates(parsed, options)
        n_docs = len(self._docs)
        scores: Dict[str, float] = {}

        for term in parsed.terms:
            stats = self._terms.get(term)
            if stats is None:
                continue

            term_idf = idf(n_docs, stats.doc_freq)
            for doc_id, tf in stats.postings.items():
                if candidates is not None and doc_id not in candidates:
                    continue
                doc = self._docs[doc_id]
                score = term_idf * bm25_term_score(tf, doc.length, self._avg_doc_length)
                scores[doc_id] = scores.get(doc_id, 0.0) + score

        ranked = sorted(
            ((doc_id, score) for doc_id, score in scores.items() if score >= options.min_score),
            key=lambda item: (-item[1], item[0]),
        )

        results = []
        for doc_id, score in ranked[:options.limit]:
            email = self._docs[doc_id].email
            results.append(SearchResult(
                email=email,
                score=score,
                match_type=MatchType.LEXICAL,
                highlights=generate_highlights(email, parsed.terms),
            ))
        return results
