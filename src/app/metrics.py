from __future__ import annotations

from prometheus_client import Counter, Histogram

from src.app.settings import settings

STRATEGY_HITS = Counter(
    "rag_strategy_hits_total",
    "Hits returned per retrieval strategy",
    ["strategy"],
)
STRATEGY_FAILURES = Counter(
    "rag_strategy_failures_total",
    "Retrieval strategy calls that degraded to empty results",
    ["strategy"],
)
SEARCH_LATENCY = Histogram(
    "rag_search_duration_seconds",
    "End-to-end multi-strategy search duration in seconds",
)
INGESTED_CHUNKS = Counter(
    "rag_ingested_chunks_total",
    "Chunks processed during ingestion",
    ["status"],
)
SCHEMA_FALLBACKS = Counter(
    "rag_schema_fallbacks_total",
    "Inserts retried without an unsupported optional field",
    ["field"],
)


def record_strategy_hits(strategy: str, count: int) -> None:
    if settings.metrics_enabled and count:
        STRATEGY_HITS.labels(strategy).inc(count)


def record_strategy_failure(strategy: str) -> None:
    if settings.metrics_enabled:
        STRATEGY_FAILURES.labels(strategy).inc()


def record_search_latency(duration: float) -> None:
    if settings.metrics_enabled:
        SEARCH_LATENCY.observe(duration)


def record_ingested_chunk(status: str) -> None:
    if settings.metrics_enabled:
        INGESTED_CHUNKS.labels(status).inc()


def record_schema_fallback(field: str) -> None:
    if settings.metrics_enabled:
        SCHEMA_FALLBACKS.labels(field).inc()
