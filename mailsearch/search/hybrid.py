"""Hybrid search: semantic and lexical rankings fused with weighted RRF."""

import asyncio
from dataclasses import replace
from typing import Dict, List, Optional

import structlog

from .inverted_index import InvertedIndex
from .models import HybridSearchOptions, MatchType, SearchOptions, SearchResult
from .query_parser import parse_query
from .semantic import SemanticSearch

logger = structlog.get_logger("search.hybrid")

RRF_K = 60
FETCH_MULTIPLIER = 3
MAX_MERGED_HIGHLIGHTS = 5


def merge_highlights(a: List[str], b: List[str], cap: int = MAX_MERGED_HIGHLIGHTS) -> List[str]:
    """Order-preserving union of two highlight lists."""
    merged: List[str] = []
    for highlight in list(a) + list(b):
        if highlight not in merged:
            merged.append(highlight)
    return merged[:cap]


class ReciprocalRankFusion:
    """Weighted Reciprocal Rank Fusion.

    ``score = alpha / (k + rank_sem + 1) + (1 - alpha) / (k + rank_lex + 1)``
    with 0-based ranks; a ranker that did not return a document contributes 0.
    Ties are broken by the best rank either ranker gave, then by email id.
    """

    def __init__(self, k: float = RRF_K):
        self.k = k

    def fuse_results(
        self,
        semantic_results: List[SearchResult],
        lexical_results: List[SearchResult],
        alpha: float,
        limit: int
    ) -> List[SearchResult]:
        fused: Dict[str, Dict] = {}

        for rank, result in enumerate(semantic_results):
            fused[result.email.id] = {
                "score": alpha / (self.k + rank + 1),
                "best_rank": rank,
                "result": result,
                "highlights": list(result.highlights),
            }

        for rank, result in enumerate(lexical_results):
            contribution = (1 - alpha) / (self.k + rank + 1)
            entry = fused.get(result.email.id)
            if entry is None:
                fused[result.email.id] = {
                    "score": contribution,
                    "best_rank": rank,
                    "result": result,
                    "highlights": list(result.highlights),
                }
                continue
            entry["score"] += contribution
            entry["best_rank"] = min(entry["best_rank"], rank)
            entry["highlights"] = merge_highlights(entry["highlights"], result.highlights)
            # the lexical index holds the full email, semantic hits may be rebuilt from metadata
            entry["result"] = replace(entry["result"], email=result.email)

        ordered = sorted(
            fused.items(),
            key=lambda item: (-item[1]["score"], item[1]["best_rank"], item[0])
        )

        logger.debug(
            "RRF fusion completed",
            semantic_count=len(semantic_results),
            lexical_count=len(lexical_results),
            fused_count=len(fused),
            k_parameter=self.k
        )

        return [
            replace(
                entry["result"],
                score=entry["score"],
                match_type=MatchType.HYBRID,
                highlights=entry["highlights"][:MAX_MERGED_HIGHLIGHTS],
            )
            for _, entry in ordered[:limit]
        ]


class HybridSearch:
    """Runs the enabled rankers concurrently and fuses their results."""

    def __init__(
        self,
        semantic: SemanticSearch,
        lexical: InvertedIndex,
        fusion: Optional[ReciprocalRankFusion] = None
    ):
        self.semantic = semantic
        self.lexical = lexical
        self.fusion = fusion or ReciprocalRankFusion()

    async def _semantic(self, query: str, options: SearchOptions) -> List[SearchResult]:
        return await self.semantic.search(query, options)

    async def _lexical(self, query: str, options: SearchOptions) -> List[SearchResult]:
        return self.lexical.search(parse_query(query), options)

    async def _skip(self) -> List[SearchResult]:
        return []

    async def search(self, query: str, options: Optional[HybridSearchOptions] = None) -> List[SearchResult]:
        options = options or HybridSearchOptions()
        alpha = options.alpha
        ranker_options = options.base_options(options.limit * FETCH_MULTIPLIER)

        semantic_results, lexical_results = await asyncio.gather(
            self._semantic(query, ranker_options) if alpha > 0 else self._skip(),
            self._lexical(query, ranker_options) if alpha < 1 else self._skip(),
        )

        return self.fusion.fuse_results(semantic_results, lexical_results, alpha, options.limit)
