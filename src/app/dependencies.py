from __future__ import annotations

import logging
from functools import lru_cache

from src.app.settings import settings
from src.loaders.chunking import RecursiveChunker
from src.rag.embeddings import (
    EmbeddingConfigError,
    EmbeddingProvider,
    HashEmbedder,
    NvidiaEmbedder,
)
from src.rag.keywords import KeyTermExtractor
from src.rag.pipeline import IngestionPipeline
from src.rag.retrieval import RetrievalOrchestrator
from src.vectorstore.base import VectorStore, VectorStoreConfigError
from src.vectorstore.inmemory import InMemoryVectorStore
from src.vectorstore.milvus import MilvusConfig, MilvusVectorStore
from src.vectorstore.supabase import SupabaseVectorStore

logger = logging.getLogger(__name__)


def configure_logging() -> None:
    """Configure root logging using environment settings."""
    level_name = settings.log_level.strip().upper()
    level = getattr(logging, level_name, logging.INFO)
    root_logger = logging.getLogger()
    if not root_logger.handlers:
        logging.basicConfig(
            level=level,
            format="%(asctime)s %(levelname)s %(name)s %(message)s",
        )
    logging.getLogger("src").setLevel(level)


@lru_cache
def get_embedder() -> EmbeddingProvider:
    return build_embedder()


@lru_cache
def get_vectorstore() -> VectorStore:
    return build_vectorstore()


@lru_cache
def get_ingestion_pipeline() -> IngestionPipeline:
    configure_logging()
    return IngestionPipeline(
        embedder=get_embedder(),
        vectorstore=get_vectorstore(),
        chunker=RecursiveChunker(
            chunk_size=settings.chunk_size,
            chunk_overlap=settings.chunk_overlap,
        ),
    )


@lru_cache
def get_orchestrator() -> RetrievalOrchestrator:
    configure_logging()
    return RetrievalOrchestrator(
        embedder=get_embedder(),
        vectorstore=get_vectorstore(),
        extractor=KeyTermExtractor.with_extra_stop_words(
            settings.extra_stop_words, max_terms=settings.max_key_terms
        ),
        similarity_threshold=settings.similarity_threshold,
        keyword_similarity=settings.keyword_similarity,
        max_variations=settings.max_variations,
        variation_match_count=settings.variation_match_count,
        strategy_timeout=settings.strategy_timeout,
        default_limit=settings.search_limit,
    )


def reset_caches() -> None:
    get_orchestrator.cache_clear()
    get_ingestion_pipeline.cache_clear()
    get_vectorstore.cache_clear()
    get_embedder.cache_clear()


def build_embedder() -> EmbeddingProvider:
    provider = settings.embedding_provider.lower().strip()
    if provider in {"", "hash"}:
        if settings.embedding_dimension <= 0:
            raise EmbeddingConfigError("EMBEDDING_DIMENSION must be greater than zero for hash embeddings")
        return HashEmbedder(dimension=settings.embedding_dimension)
    if provider == "nvidia":
        return NvidiaEmbedder(
            api_key=settings.nvidia_api_key or "",
            model=settings.nvidia_embedding_model,
            base_url=settings.nvidia_base_url,
            dimension=settings.embedding_dimension,
            timeout=settings.embedding_timeout,
        )
    raise EmbeddingConfigError(f"Unsupported embedding provider: {provider}")


def build_vectorstore() -> VectorStore:
    backend = settings.vectorstore_backend.lower().strip()
    if backend in {"", "memory"}:
        return InMemoryVectorStore()
    if backend == "supabase":
        return SupabaseVectorStore(
            url=settings.supabase_url or "",
            api_key=settings.supabase_key or "",
            table=settings.supabase_table,
            match_function=settings.supabase_match_function,
            timeout=settings.supabase_timeout,
        )
    if backend == "milvus":
        config = MilvusConfig(
            uri=settings.milvus_uri,
            token=settings.milvus_token,
            collection=settings.milvus_collection,
            dimension=settings.embedding_dimension,
            consistency=settings.milvus_consistency,
            index_type=settings.milvus_index_type,
            metric_type=settings.milvus_metric_type,
            nlist=settings.milvus_nlist,
            nprobe=settings.milvus_nprobe,
            category_field=settings.milvus_category_field,
        )
        return MilvusVectorStore(config=config)
    raise VectorStoreConfigError(f"Unsupported vector store backend: {backend}")
