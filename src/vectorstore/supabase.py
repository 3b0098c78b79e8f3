from __future__ import annotations

"""Supabase (PostgREST + pgvector) backed vector store."""

import logging
from dataclasses import dataclass, field
from typing import Any, Sequence

import httpx

from src.rag.types import StoredRecord
from src.vectorstore.base import (
    StoreOperationError,
    StoreSchemaMismatchError,
    VectorStoreConfigError,
    find_schema_field,
)

logger = logging.getLogger(__name__)


@dataclass
class SupabaseVectorStore:
    """Vector store that talks to a Supabase project over its REST API.

    Nearest-neighbor search goes through a SQL function (``match_documents``
    by default) taking ``query_embedding``, ``match_threshold`` and
    ``match_count`` and returning ``id, content, metadata, similarity``.
    """
    url: str
    api_key: str
    table: str = "documents"
    match_function: str = "match_documents"
    timeout: float = 15.0
    client: httpx.AsyncClient | None = field(default=None, repr=False)

    def __post_init__(self) -> None:
        """Validate connection settings."""
        if not self.url:
            raise VectorStoreConfigError("SUPABASE_URL is required for SupabaseVectorStore")
        if not self.api_key:
            raise VectorStoreConfigError("SUPABASE_KEY is required for SupabaseVectorStore")
        self.url = self.url.rstrip("/")

    async def insert(self, row: dict[str, Any]) -> None:
        """Insert one row into the documents table."""
        response = await self._request(
            "POST",
            f"/rest/v1/{self.table}",
            json=row,
            headers={"Prefer": "return=minimal"},
        )
        if response.is_success:
            return
        message = self._error_message(response)
        field_name = find_schema_field(message, row.keys())
        if field_name is not None:
            raise StoreSchemaMismatchError(field_name, message)
        raise StoreOperationError(f"Supabase insert failed ({response.status_code}): {message}")

    async def nearest_neighbors(
        self, embedding: list[float], threshold: float, count: int
    ) -> list[StoredRecord]:
        """Call the match function; the threshold is applied server-side."""
        response = await self._request(
            "POST",
            f"/rest/v1/rpc/{self.match_function}",
            json={
                "query_embedding": embedding,
                "match_threshold": threshold,
                "match_count": count,
            },
        )
        rows = self._rows(response, "match")
        return [self._record(row, with_similarity=True) for row in rows]

    async def substring_search(self, patterns: Sequence[str], count: int) -> list[StoredRecord]:
        """Select rows whose content ``ilike`` any of the patterns."""
        terms = [pattern for pattern in patterns if pattern]
        if not terms:
            return []
        clauses = ",".join(f"content.ilike.*{term}*" for term in terms)
        response = await self._request(
            "GET",
            f"/rest/v1/{self.table}",
            params={
                "select": "id,content,metadata",
                "or": f"({clauses})",
                "limit": str(count),
            },
        )
        rows = self._rows(response, "substring search")
        return [self._record(row, with_similarity=False) for row in rows]

    async def _request(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        headers = {
            "apikey": self.api_key,
            "Authorization": f"Bearer {self.api_key}",
        }
        headers.update(kwargs.pop("headers", {}) or {})
        owns_client = self.client is None
        client = self.client or httpx.AsyncClient(timeout=self.timeout)
        try:
            return await client.request(method, f"{self.url}{path}", headers=headers, **kwargs)
        except httpx.HTTPError as exc:
            raise StoreOperationError(f"Supabase request failed: {exc}") from exc
        finally:
            if owns_client:
                await client.aclose()

    def _rows(self, response: httpx.Response, operation: str) -> list[dict[str, Any]]:
        if not response.is_success:
            message = self._error_message(response)
            raise StoreOperationError(
                f"Supabase {operation} failed ({response.status_code}): {message}"
            )
        try:
            data = response.json()
        except ValueError as exc:
            raise StoreOperationError(f"Supabase {operation} returned invalid JSON") from exc
        if not isinstance(data, list):
            raise StoreOperationError(f"Supabase {operation} returned unexpected payload")
        return [row for row in data if isinstance(row, dict)]

    def _record(self, row: dict[str, Any], with_similarity: bool) -> StoredRecord:
        similarity = row.get("similarity") if with_similarity else None
        metadata = row.get("metadata")
        return StoredRecord(
            id=row.get("id"),
            content=str(row.get("content") or ""),
            metadata=metadata if isinstance(metadata, dict) else {},
            similarity=float(similarity) if similarity is not None else None,
        )

    def _error_message(self, response: httpx.Response) -> str:
        """Extract the PostgREST error message, falling back to the raw body."""
        try:
            data = response.json()
        except ValueError:
            return response.text
        if isinstance(data, dict):
            parts = [str(data[key]) for key in ("message", "details", "hint") if data.get(key)]
            if parts:
                return " ".join(parts)
        return response.text
