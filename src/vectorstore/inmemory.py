from __future__ import annotations

"""In-memory vector store for local testing and small datasets."""

import itertools
import math
from dataclasses import dataclass, field
from typing import Any, Sequence

from src.rag.types import StoredRecord
from src.vectorstore.base import StoreOperationError, StoreSchemaMismatchError

REQUIRED_FIELDS = frozenset({"content", "metadata", "embedding"})


@dataclass
class InMemoryVectorStore:
    """Simple in-memory vector store with cosine similarity search.

    ``supported_fields`` lists the optional row fields the emulated schema
    accepts; rows carrying any other field are rejected the way a SQL-backed
    store would reject an unknown column.
    """
    supported_fields: frozenset[str] = frozenset({"category_id"})
    rows: list[dict[str, Any]] = field(default_factory=list)
    _ids: Any = field(default_factory=lambda: itertools.count(1), repr=False)

    async def insert(self, row: dict[str, Any]) -> None:
        """Store a row after validating its shape."""
        missing = REQUIRED_FIELDS.difference(row)
        if missing:
            raise StoreOperationError(f"Row is missing required fields: {sorted(missing)}")
        for name in row:
            if name not in REQUIRED_FIELDS and name not in self.supported_fields:
                raise StoreSchemaMismatchError(
                    name, f"Could not find the '{name}' column of 'documents' in the schema"
                )
        stored = dict(row)
        stored["id"] = next(self._ids)
        self.rows.append(stored)

    async def nearest_neighbors(
        self, embedding: list[float], threshold: float, count: int
    ) -> list[StoredRecord]:
        """Rank rows by cosine similarity, keeping those at or above ``threshold``."""
        if count <= 0:
            return []
        scored: list[StoredRecord] = []
        for row in self.rows:
            if len(row["embedding"]) != len(embedding):
                raise StoreOperationError(
                    f"different vector dimensions {len(row['embedding'])} and {len(embedding)}"
                )
            similarity = self._cosine_similarity(embedding, row["embedding"])
            if similarity < threshold:
                continue
            scored.append(self._record(row, similarity))
        scored.sort(key=lambda item: item.similarity or 0.0, reverse=True)
        return scored[:count]

    async def substring_search(self, patterns: Sequence[str], count: int) -> list[StoredRecord]:
        """Case-insensitive contains match across any of ``patterns``."""
        needles = [pattern.lower() for pattern in patterns if pattern]
        if not needles or count <= 0:
            return []
        matches: list[StoredRecord] = []
        for row in self.rows:
            content = str(row["content"]).lower()
            if any(needle in content for needle in needles):
                matches.append(self._record(row, None))
            if len(matches) >= count:
                break
        return matches

    def _record(self, row: dict[str, Any], similarity: float | None) -> StoredRecord:
        return StoredRecord(
            id=row["id"],
            content=row["content"],
            metadata=dict(row.get("metadata") or {}),
            similarity=similarity,
        )

    def _cosine_similarity(self, a: list[float], b: list[float]) -> float:
        """Compute cosine similarity between two vectors."""
        dot = sum(x * y for x, y in zip(a, b))
        norm_a = math.sqrt(sum(x * x for x in a))
        norm_b = math.sqrt(sum(y * y for y in b))
        if norm_a == 0.0 or norm_b == 0.0:
            return 0.0
        return dot / (norm_a * norm_b)
