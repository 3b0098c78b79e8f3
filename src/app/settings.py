from __future__ import annotations

import os
from dataclasses import dataclass

try:
    from dotenv import load_dotenv
except ImportError:  # pragma: no cover - optional in minimal setups
    load_dotenv = None

if load_dotenv is not None:
    load_dotenv()


@dataclass(frozen=True)
class Settings:
    chunk_size: int = int(os.getenv("RAG_CHUNK_SIZE", "1000"))
    chunk_overlap: int = int(os.getenv("RAG_CHUNK_OVERLAP", "200"))
    similarity_threshold: float = float(os.getenv("RAG_SIMILARITY_THRESHOLD", "0.30"))
    keyword_similarity: float = float(os.getenv("RAG_KEYWORD_SIMILARITY", "0.5"))
    search_limit: int = int(os.getenv("RAG_SEARCH_LIMIT", "5"))
    max_variations: int = int(os.getenv("RAG_MAX_VARIATIONS", "2"))
    variation_match_count: int = int(os.getenv("RAG_VARIATION_MATCH_COUNT", "3"))
    max_key_terms: int = int(os.getenv("RAG_MAX_KEY_TERMS", "5"))
    extra_stop_words_raw: str = os.getenv("RAG_EXTRA_STOP_WORDS", "")
    strategy_timeout_raw: float = float(os.getenv("RAG_STRATEGY_TIMEOUT", "0"))
    vectorstore_backend: str = os.getenv("RAG_VECTORSTORE", "memory")
    embedding_provider: str = os.getenv("EMBEDDING_PROVIDER", "hash")
    embedding_dimension: int = int(os.getenv("EMBEDDING_DIMENSION", "256"))
    embedding_timeout: float = float(os.getenv("EMBEDDING_TIMEOUT", "30"))
    nvidia_api_key: str | None = os.getenv("NVIDIA_API_KEY")
    nvidia_embedding_model: str = os.getenv("NVIDIA_EMBEDDING_MODEL", "nvidia/nv-embedqa-e5-v5")
    nvidia_base_url: str = os.getenv("NVIDIA_BASE_URL", "https://integrate.api.nvidia.com/v1")
    supabase_url: str | None = os.getenv("SUPABASE_URL")
    supabase_key: str | None = os.getenv("SUPABASE_KEY")
    supabase_table: str = os.getenv("SUPABASE_TABLE", "documents")
    supabase_match_function: str = os.getenv("SUPABASE_MATCH_FUNCTION", "match_documents")
    supabase_timeout: float = float(os.getenv("SUPABASE_TIMEOUT", "15"))
    milvus_uri: str = os.getenv("MILVUS_URI", "http://localhost:19530")
    milvus_token: str | None = os.getenv("MILVUS_TOKEN")
    milvus_collection: str = os.getenv("MILVUS_COLLECTION", "documents")
    milvus_consistency: str = os.getenv("MILVUS_CONSISTENCY", "Strong")
    milvus_index_type: str = os.getenv("MILVUS_INDEX_TYPE", "IVF_FLAT")
    milvus_metric_type: str = os.getenv("MILVUS_METRIC_TYPE", "COSINE")
    milvus_nlist: int = int(os.getenv("MILVUS_NLIST", "1024"))
    milvus_nprobe: int = int(os.getenv("MILVUS_NPROBE", "10"))
    milvus_category_field: bool = os.getenv("MILVUS_CATEGORY_FIELD", "true").lower() in {"1", "true", "yes"}
    log_level: str = os.getenv("LOG_LEVEL", "INFO")
    metrics_enabled: bool = os.getenv("RAG_METRICS_ENABLED", "true").lower() in {"1", "true", "yes"}

    @property
    def extra_stop_words(self) -> set[str]:
        raw = os.getenv("RAG_EXTRA_STOP_WORDS", self.extra_stop_words_raw)
        return {value.strip().lower() for value in raw.split(",") if value.strip()}

    @property
    def strategy_timeout(self) -> float | None:
        if self.strategy_timeout_raw <= 0:
            return None
        return self.strategy_timeout_raw


settings = Settings()
