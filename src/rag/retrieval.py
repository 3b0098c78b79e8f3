from __future__ import annotations

"""Multi-strategy retrieval: semantic, keyword and question-variation search.

The three strategies run concurrently. Each one is isolated: an embedding or
store failure (or a timeout) inside a strategy is logged and turns into an
empty result for that strategy only, so a degraded backend never blocks the
others. Hits are then deduplicated by content, ranked by similarity and cut
to ``limit``.
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Awaitable, Iterable, TypeVar

from src.app.metrics import (
    record_search_latency,
    record_strategy_failure,
    record_strategy_hits,
)
from src.rag.embeddings import EmbeddingProvider, EmbeddingServiceError
from src.rag.expansion import QueryExpander
from src.rag.keywords import KeyTermExtractor
from src.rag.types import MatchType, SearchHit
from src.vectorstore.base import StoreOperationError, VectorStore

logger = logging.getLogger(__name__)

CONTEXT_SEPARATOR = "\n\n"

T = TypeVar("T")


def merge_hits(hits: Iterable[SearchHit], limit: int) -> list[SearchHit]:
    """Deduplicate hits by content and return the top ``limit`` by similarity.

    For each content string the hit with the strictly highest similarity wins
    (absent similarity counts as 0); on a tie the first hit seen is kept.
    """
    best: dict[str, SearchHit] = {}
    for hit in hits:
        existing = best.get(hit.content)
        if existing is None or hit.effective_similarity > existing.effective_similarity:
            best[hit.content] = hit
    ranked = sorted(best.values(), key=lambda hit: hit.effective_similarity, reverse=True)
    return ranked[:limit]


async def _gather_or_cancel(*calls: Awaitable[T]) -> list[T]:
    """Run calls concurrently; if one raises, cancel and drain the rest."""
    tasks = [asyncio.ensure_future(call) for call in calls]
    try:
        return await asyncio.gather(*tasks)
    except BaseException:
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        raise


@dataclass
class RetrievalOrchestrator:
    embedder: EmbeddingProvider
    vectorstore: VectorStore
    extractor: KeyTermExtractor = field(default_factory=KeyTermExtractor)
    expander: QueryExpander = field(default_factory=QueryExpander)
    similarity_threshold: float = 0.30
    keyword_similarity: float = 0.5
    max_variations: int = 2
    variation_match_count: int = 3
    strategy_timeout: float | None = None
    default_limit: int = 5

    async def search(self, query: str, limit: int | None = None) -> str:
        """Return relevant chunk contents joined by blank lines, or ``""``."""
        hits = await self.retrieve(query, limit)
        if not hits:
            logger.info("rag_no_documents_found", extra={"query_length": len(query)})
            return ""
        return CONTEXT_SEPARATOR.join(hit.content for hit in hits)

    async def retrieve(self, query: str, limit: int | None = None) -> list[SearchHit]:
        """Run all strategies and return ranked, deduplicated hits."""
        if limit is None:
            limit = self.default_limit
        if isinstance(limit, bool) or not isinstance(limit, int) or limit <= 0:
            raise ValueError(f"limit must be a positive integer, got {limit!r}")
        if not query or not query.strip():
            return []

        start = time.monotonic()
        semantic, keyword, variation = await _gather_or_cancel(
            self._guarded(MatchType.SEMANTIC, self._semantic_hits(query, limit)),
            self._guarded(MatchType.KEYWORD, self._keyword_hits(query, limit)),
            self._variation_hits(query),
        )
        hits = merge_hits([*semantic, *keyword, *variation], limit)
        record_search_latency(time.monotonic() - start)

        logger.info(
            "rag_search_complete",
            extra={
                "results": len(hits),
                "semantic_hits": len(semantic),
                "keyword_hits": len(keyword),
                "variation_hits": len(variation),
                "query_length": len(query),
            },
        )
        for rank, hit in enumerate(hits, start=1):
            logger.debug(
                "rag_hit rank=%d type=%s similarity=%s preview=%r",
                rank,
                hit.match_type.value,
                f"{hit.similarity:.3f}" if hit.similarity is not None else "n/a",
                hit.content[:80],
            )
        return hits

    async def _guarded(
        self, strategy: MatchType, call: Awaitable[list[SearchHit]]
    ) -> list[SearchHit]:
        """Await a strategy, degrading known failures to an empty result."""
        try:
            if self.strategy_timeout is not None:
                hits = await asyncio.wait_for(call, timeout=self.strategy_timeout)
            else:
                hits = await call
        except (EmbeddingServiceError, StoreOperationError, asyncio.TimeoutError) as exc:
            logger.warning(
                "rag_strategy_failed",
                extra={"strategy": strategy.value, "detail": type(exc).__name__, "error": str(exc)},
            )
            record_strategy_failure(strategy.value)
            return []
        record_strategy_hits(strategy.value, len(hits))
        return hits

    async def _semantic_hits(self, query: str, limit: int) -> list[SearchHit]:
        embedding = await self.embedder.embed(query, "query")
        records = await self.vectorstore.nearest_neighbors(
            embedding, self.similarity_threshold, limit
        )
        return [SearchHit.from_record(record, MatchType.SEMANTIC) for record in records]

    async def _keyword_hits(self, query: str, limit: int) -> list[SearchHit]:
        terms = self.extractor.extract(query)
        if not terms:
            return []
        records = await self.vectorstore.substring_search(terms, limit)
        return [
            SearchHit.from_record(record, MatchType.KEYWORD, similarity=self.keyword_similarity)
            for record in records
        ]

    async def _variation_hits(self, query: str) -> list[SearchHit]:
        variations = self.expander.expand(query)[: self.max_variations]
        if not variations:
            return []
        results = await _gather_or_cancel(
            *(
                self._guarded(MatchType.VARIATION, self._single_variation_hits(variation))
                for variation in variations
            )
        )
        return [hit for hits in results for hit in hits]

    async def _single_variation_hits(self, variation: str) -> list[SearchHit]:
        embedding = await self.embedder.embed(variation, "query")
        records = await self.vectorstore.nearest_neighbors(
            embedding, self.similarity_threshold, self.variation_match_count
        )
        return [SearchHit.from_record(record, MatchType.VARIATION) for record in records]
