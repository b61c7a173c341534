"""Hybrid search combining vector similarity and full-text search.

The two ranked candidate lists are merged with reciprocal rank fusion:
each chunk scores sum(1 / (k + rank + 1)) over the lists it appears in,
with rank counted from zero. Raw similarity and ts_rank values only decide
the order within each list.
"""
from __future__ import annotations
import asyncio
import logging
import time
from typing import Optional

from ..config import SearchSettings
from ..knowledge_base.models import ChunkCandidate, SearchResponse, SearchResult

logger = logging.getLogger(__name__)


def reciprocal_rank_fusion(
    *ranked_lists: list[ChunkCandidate],
    k: int = 60,
) -> list[tuple[ChunkCandidate, float]]:
    """Fuse ranked candidate lists.

    Args:
        ranked_lists: Candidate lists, best first
        k: Fusion constant

    Returns:
        (candidate, fused score) pairs sorted by score descending, ties
        broken by chunk id
    """
    scores: dict[str, float] = {}
    items: dict[str, ChunkCandidate] = {}

    for ranked in ranked_lists:
        for rank, candidate in enumerate(ranked):
            scores[candidate.id] = scores.get(candidate.id, 0.0) + 1.0 / (k + rank + 1)
            items.setdefault(candidate.id, candidate)

    ordered = sorted(scores.items(), key=lambda item: (-item[1], item[0]))
    return [(items[chunk_id], score) for chunk_id, score in ordered]


def effective_limit(limit: Optional[int], settings: SearchSettings) -> int:
    if limit is None or limit <= 0:
        limit = settings.default_limit
    return min(limit, settings.max_limit)


async def hybrid_search(
    query: str,
    source_ids: list[str],
    store,
    embedder,
    limit: Optional[int] = None,
    version: Optional[str] = None,
    settings: Optional[SearchSettings] = None,
) -> SearchResponse:
    """Search the chunks of the given sources.

    Args:
        query: Natural language or technical query
        source_ids: Sources in scope; empty means nothing is searched
        store: DocStore providing vector_search and fts_search
        embedder: EmbeddingClient used for the query vector
        limit: Results to return (default 8, capped at 20)
        version: Exact source version filter
        settings: Fusion constant and limits

    Returns:
        SearchResponse with fused results
    """
    settings = settings or SearchSettings()
    started = time.perf_counter()

    if not source_ids:
        return SearchResponse(query_time_ms=(time.perf_counter() - started) * 1000)

    query_vector = await embedder.embed_one(query, "query")

    vector_hits, text_hits = await asyncio.gather(
        store.vector_search(query_vector, source_ids, settings.candidate_limit, version),
        store.fts_search(query, source_ids, settings.candidate_limit, version),
    )

    fused = reciprocal_rank_fusion(vector_hits, text_hits, k=settings.rrf_k)
    fused = fused[:effective_limit(limit, settings)]

    results = [
        SearchResult(
            chunk_id=candidate.id,
            content=candidate.content,
            heading=candidate.heading,
            source_name=candidate.source_name,
            source_url=candidate.url,
            file_path=candidate.file_path,
            version=candidate.version,
            relevance_score=score,
        )
        for candidate, score in fused
    ]

    elapsed_ms = (time.perf_counter() - started) * 1000
    logger.debug(
        f"Hybrid search '{query}': {len(vector_hits)} vector + {len(text_hits)} text "
        f"candidates -> {len(results)} results in {elapsed_ms:.0f}ms"
    )

    return SearchResponse(
        results=results,
        total_results=len(results),
        sources_searched=list(dict.fromkeys(r.source_name for r in results)),
        query_time_ms=elapsed_ms,
    )
