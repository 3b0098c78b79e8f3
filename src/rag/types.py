from __future__ import annotations

"""Core data types for chunks and retrieval."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Literal

EmbeddingMode = Literal["query", "passage"]
EMBEDDING_MODES: frozenset[str] = frozenset({"query", "passage"})


class MatchType(str, Enum):
    """Strategy that produced a search hit."""
    SEMANTIC = "semantic"
    KEYWORD = "keyword"
    VARIATION = "variation"


@dataclass(frozen=True)
class ChunkDraft:
    """Chunk text with provenance metadata, before embedding."""
    content: str
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class Chunk:
    """Embedded chunk as written to the vector store."""
    content: str
    metadata: dict[str, Any]
    embedding: list[float]


@dataclass(frozen=True)
class StoredRecord:
    """Row returned by a vector store search call."""
    id: Any
    content: str
    metadata: dict[str, Any] = field(default_factory=dict)
    similarity: float | None = None


@dataclass(frozen=True)
class SearchHit:
    """Search result tagged with the strategy that found it."""
    id: Any
    content: str
    metadata: dict[str, Any]
    similarity: float | None
    match_type: MatchType

    @property
    def effective_similarity(self) -> float:
        return self.similarity if self.similarity is not None else 0.0

    @classmethod
    def from_record(
        cls,
        record: StoredRecord,
        match_type: MatchType,
        similarity: float | None = None,
    ) -> SearchHit:
        return cls(
            id=record.id,
            content=record.content,
            metadata=record.metadata,
            similarity=record.similarity if similarity is None else similarity,
            match_type=match_type,
        )
