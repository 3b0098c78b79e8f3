from __future__ import annotations

"""Embedding providers for query and passage vectors."""

import hashlib
import logging
import math
import re
from dataclasses import dataclass, field
from typing import Any, Protocol

import httpx

from src.rag.types import EMBEDDING_MODES, EmbeddingMode

_TOKEN_RE = re.compile(r"[a-z0-9]+")

logger = logging.getLogger(__name__)


class EmbeddingServiceError(RuntimeError):
    """Raised when the embedding provider fails or returns malformed data."""

    def __init__(self, status: int | None, message: str) -> None:
        self.status = status
        self.message = message
        prefix = f"Embedding API error: {status}" if status is not None else "Embedding API error"
        super().__init__(f"{prefix} {message}".strip())


class EmbeddingConfigError(RuntimeError):
    """Raised when embedding configuration is invalid."""
    pass


class EmbeddingProvider(Protocol):
    """Protocol for embedding providers."""
    dimension: int

    async def embed(self, text: str, mode: EmbeddingMode) -> list[float]:
        """Return an embedding vector for the provided text and usage mode."""
        raise NotImplementedError


def check_mode(mode: str) -> None:
    if mode not in EMBEDDING_MODES:
        raise ValueError(f"Unsupported embedding mode: {mode!r}")


def validate_vector(vector: list[float], dimension: int) -> list[float]:
    """Validate embedding vectors; a dimension of 0 skips the length check."""
    if dimension > 0 and len(vector) != dimension:
        raise EmbeddingServiceError(
            None, f"Embedding dimension mismatch: expected {dimension}, got {len(vector)}"
        )
    cleaned: list[float] = []
    for value in vector:
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise EmbeddingServiceError(None, "Embedding contains a non-numeric value")
        if not math.isfinite(value):
            raise EmbeddingServiceError(None, "Embedding contains a non-finite value")
        cleaned.append(float(value))
    return cleaned


@dataclass
class HashEmbedder:
    """Deterministic hash-based embedder for testing or offline use."""
    dimension: int = 256

    async def embed(self, text: str, mode: EmbeddingMode = "passage") -> list[float]:
        """Embed text using token hashing and L2 normalization."""
        check_mode(mode)
        tokens = _TOKEN_RE.findall(text.lower())
        if not tokens:
            return validate_vector([0.0] * self.dimension, self.dimension)
        vector = [0.0] * self.dimension
        for token in tokens:
            digest = hashlib.sha256(token.encode("utf-8")).digest()
            idx = digest[0] % self.dimension
            vector[idx] += 1.0
        return validate_vector(self._l2_normalize(vector), self.dimension)

    def _l2_normalize(self, vector: list[float]) -> list[float]:
        """Normalize vector magnitude to 1.0."""
        norm = math.sqrt(sum(value * value for value in vector))
        if norm == 0.0:
            return vector
        return [value / norm for value in vector]


@dataclass
class NvidiaEmbedder:
    """Embedding provider using the NVIDIA retrieval embeddings API.

    The API distinguishes ``query`` and ``passage`` inputs, so vectors
    produced for stored chunks and for search queries are not interchangeable.
    No retries are attempted; callers own the retry policy.
    """
    api_key: str
    model: str = "nvidia/nv-embedqa-e5-v5"
    base_url: str = "https://integrate.api.nvidia.com/v1"
    dimension: int = 0
    timeout: float = 30.0
    client: httpx.AsyncClient | None = field(default=None, repr=False)

    def __post_init__(self) -> None:
        """Validate provider configuration."""
        if not self.api_key:
            raise EmbeddingConfigError("NVIDIA_API_KEY is required for NvidiaEmbedder")
        if not self.model:
            raise EmbeddingConfigError("NVIDIA_EMBEDDING_MODEL is required for NvidiaEmbedder")
        self.base_url = self.base_url.rstrip("/")

    async def embed(self, text: str, mode: EmbeddingMode) -> list[float]:
        """Embed a single text with the given input type."""
        check_mode(mode)
        payload = {
            "model": self.model,
            "input": [text],
            "input_type": mode,
            "encoding_format": "float",
            "truncate": "END",
        }
        headers = {"Authorization": f"Bearer {self.api_key}"}
        owns_client = self.client is None
        client = self.client or httpx.AsyncClient(timeout=self.timeout)
        try:
            response = await client.post(
                f"{self.base_url}/embeddings",
                json=payload,
                headers=headers,
            )
        except httpx.HTTPError as exc:
            raise EmbeddingServiceError(None, str(exc) or type(exc).__name__) from exc
        finally:
            if owns_client:
                await client.aclose()

        if not response.is_success:
            logger.error(
                "embedding_request_failed",
                extra={"status": response.status_code, "mode": mode},
            )
            raise EmbeddingServiceError(response.status_code, response.text)
        return validate_vector(self._parse_embedding(response), self.dimension)

    def _parse_embedding(self, response: httpx.Response) -> list[float]:
        """Extract ``data[0].embedding`` from the provider response."""
        try:
            data: Any = response.json()
        except ValueError as exc:
            raise EmbeddingServiceError(
                response.status_code, "Embedding response is not valid JSON"
            ) from exc
        items = data.get("data") if isinstance(data, dict) else None
        if not isinstance(items, list) or not items or not isinstance(items[0], dict):
            raise EmbeddingServiceError(
                response.status_code, "Embedding response missing data[0].embedding"
            )
        embedding = items[0].get("embedding")
        if not isinstance(embedding, list) or not embedding:
            raise EmbeddingServiceError(
                response.status_code, "Embedding response missing data[0].embedding"
            )
        return embedding
