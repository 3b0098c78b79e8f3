from __future__ import annotations

"""Milvus-backed vector store."""

import asyncio
import json
from dataclasses import dataclass
from typing import Any, Sequence

from src.rag.types import StoredRecord
from src.vectorstore.base import (
    StoreOperationError,
    StoreSchemaMismatchError,
    VectorStoreConfigError,
    find_schema_field,
)

_OUTPUT_FIELDS = ["id", "content", "metadata"]
CATEGORY_FIELD = "category_id"


class MilvusDependencyError(RuntimeError):
    """Raised when Milvus dependencies are missing."""
    pass


@dataclass
class MilvusConfig:
    """Configuration for Milvus connection and indexing."""
    uri: str
    token: str | None
    collection: str
    dimension: int
    consistency: str = "Strong"
    index_type: str = "IVF_FLAT"
    metric_type: str = "COSINE"
    nlist: int = 1024
    nprobe: int = 10
    category_field: bool = True
    max_content_length: int = 65535


@dataclass
class MilvusVectorStore:
    """Milvus collection storing content, JSON metadata and dense embeddings.

    Collections created by older deployments may lack the ``category_id``
    field; inserts carrying it then fail with a schema error naming the field.
    """
    config: MilvusConfig
    collection: Any = None

    def __post_init__(self) -> None:
        """Connect to Milvus and ensure the collection exists."""
        if self.collection is not None:
            return
        try:
            from pymilvus import connections
        except ImportError as exc:
            raise MilvusDependencyError("pymilvus is required for MilvusVectorStore") from exc
        if self.config.dimension <= 0:
            raise VectorStoreConfigError(
                "Embedding dimension must be set before initializing MilvusVectorStore"
            )
        connections.connect(alias="default", uri=self.config.uri, token=self.config.token)
        self.ensure_collection()

    def ensure_collection(self) -> None:
        """Create collection schema and index when missing."""
        from pymilvus import Collection, CollectionSchema, DataType, FieldSchema, utility

        if utility.has_collection(self.config.collection):
            self.collection = Collection(
                self.config.collection, consistency_level=self.config.consistency
            )
            return

        fields = [
            FieldSchema(name="id", dtype=DataType.INT64, is_primary=True, auto_id=True),
            FieldSchema(
                name="content",
                dtype=DataType.VARCHAR,
                max_length=self.config.max_content_length,
            ),
            FieldSchema(name="metadata", dtype=DataType.JSON),
            FieldSchema(name="embedding", dtype=DataType.FLOAT_VECTOR, dim=self.config.dimension),
        ]
        if self.config.category_field:
            fields.append(
                FieldSchema(name=CATEGORY_FIELD, dtype=DataType.VARCHAR, max_length=256)
            )
        schema = CollectionSchema(fields=fields, description="Knowledge base chunks")
        self.collection = Collection(
            self.config.collection,
            schema,
            consistency_level=self.config.consistency,
        )
        self.collection.create_index(
            field_name="embedding",
            index_params={
                "index_type": self.config.index_type,
                "metric_type": self.config.metric_type,
                "params": {"nlist": self.config.nlist},
            },
        )

    async def insert(self, row: dict[str, Any]) -> None:
        """Insert a single row.

        Uncategorized rows get an empty ``category_id`` when the collection
        declares that field, since Milvus rejects rows missing a scalar field.
        """
        entity = dict(row)
        entity["content"] = str(entity["content"])[: self.config.max_content_length]
        category_id = entity.pop(CATEGORY_FIELD, None)
        if category_id is not None:
            entity[CATEGORY_FIELD] = str(category_id)
        elif CATEGORY_FIELD in self._field_names():
            entity[CATEGORY_FIELD] = ""
        try:
            await asyncio.to_thread(self.collection.insert, [entity])
        except Exception as exc:
            message = str(exc)
            field_name = find_schema_field(message, entity.keys())
            if field_name is not None:
                raise StoreSchemaMismatchError(field_name, message) from exc
            raise StoreOperationError(f"Milvus insert failed: {message}") from exc

    async def nearest_neighbors(
        self, embedding: list[float], threshold: float, count: int
    ) -> list[StoredRecord]:
        """Range search returning hits with similarity >= ``threshold``."""
        if count <= 0:
            return []
        params = {
            "metric_type": self.config.metric_type,
            "params": {"nprobe": self.config.nprobe, "radius": threshold, "range_filter": 1.0},
        }
        try:
            await asyncio.to_thread(self.collection.load)
            results = await asyncio.to_thread(
                self.collection.search,
                data=[embedding],
                anns_field="embedding",
                param=params,
                limit=count,
                output_fields=_OUTPUT_FIELDS,
            )
        except Exception as exc:
            raise StoreOperationError(f"Milvus search failed: {exc}") from exc
        records: list[StoredRecord] = []
        for hit in results[0]:
            entity = hit.entity
            records.append(
                StoredRecord(
                    id=entity.get("id"),
                    content=entity.get("content"),
                    metadata=self._deserialize_metadata(entity.get("metadata")),
                    similarity=float(hit.score),
                )
            )
        return records

    async def substring_search(self, patterns: Sequence[str], count: int) -> list[StoredRecord]:
        """Match content with ``like`` over lower, capitalized and upper term variants."""
        expr = self._like_expr(patterns)
        if not expr or count <= 0:
            return []
        try:
            await asyncio.to_thread(self.collection.load)
            rows = await asyncio.to_thread(
                self.collection.query,
                expr=expr,
                output_fields=_OUTPUT_FIELDS,
                limit=count,
            )
        except Exception as exc:
            raise StoreOperationError(f"Milvus query failed: {exc}") from exc
        return [
            StoredRecord(
                id=row.get("id"),
                content=row.get("content"),
                metadata=self._deserialize_metadata(row.get("metadata")),
            )
            for row in rows
        ]

    def _field_names(self) -> set[str]:
        """Return the field names declared by the collection schema."""
        schema = getattr(self.collection, "schema", None)
        return {field.name for field in getattr(schema, "fields", None) or []}

    def _like_expr(self, patterns: Sequence[str]) -> str:
        """Build an OR of ``content like`` clauses (Milvus ``like`` is case-sensitive)."""
        variants: list[str] = []
        for pattern in patterns:
            cleaned = pattern.replace("\\", "").replace('"', "").replace("%", "")
            if not cleaned:
                continue
            for variant in (cleaned.lower(), cleaned.capitalize(), cleaned.upper()):
                if variant not in variants:
                    variants.append(variant)
        return " or ".join(f'content like "%{variant}%"' for variant in variants)

    def _deserialize_metadata(self, value: Any) -> dict[str, Any]:
        """Deserialize metadata from storage."""
        if value is None:
            return {}
        if isinstance(value, dict):
            return value
        if isinstance(value, str):
            try:
                return json.loads(value)
            except json.JSONDecodeError:
                return {"raw": value}
        return {"raw": value}
