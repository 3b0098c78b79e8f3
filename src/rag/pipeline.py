from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

from src.app.metrics import record_ingested_chunk
from src.loaders.chunking import RecursiveChunker, merge_metadata
from src.rag.embeddings import EmbeddingProvider, EmbeddingServiceError
from src.rag.types import Chunk
from src.vectorstore.base import StoreOperationError, VectorStore, insert_with_optional_fields

logger = logging.getLogger(__name__)

CATEGORY_FIELD = "category_id"
_CATEGORY_METADATA_KEYS = ("category_id", "categoryId")


def _extract_category(metadata: dict[str, Any]) -> Any | None:
    for key in _CATEGORY_METADATA_KEYS:
        value = metadata.get(key)
        if value not in (None, ""):
            return value
    return None


@dataclass
class IngestionPipeline:
    """Chunk, embed and store documents.

    Ingestion is not transactional: when a chunk fails, chunks stored before
    it stay in the store and the document is reported as failed.
    """
    embedder: EmbeddingProvider
    vectorstore: VectorStore
    chunker: RecursiveChunker = field(default_factory=RecursiveChunker)

    async def add_document(self, content: str, metadata: dict[str, Any] | None = None) -> bool:
        metadata = dict(metadata or {})
        category_id = _extract_category(metadata)
        chunks = self.chunker.chunk(content)
        logger.info(
            "rag_add_document",
            extra={"content_length": len(content), "category_id": category_id or "none"},
        )

        stored = 0
        try:
            for draft in chunks:
                embedding = await self.embedder.embed(draft.content, "passage")
                chunk = Chunk(
                    content=draft.content,
                    metadata=merge_metadata(metadata, draft.metadata),
                    embedding=embedding,
                )
                row: dict[str, Any] = {
                    "content": chunk.content,
                    "metadata": chunk.metadata,
                    "embedding": chunk.embedding,
                }
                if category_id is not None:
                    row[CATEGORY_FIELD] = category_id
                await insert_with_optional_fields(
                    self.vectorstore, row, optional_keys=(CATEGORY_FIELD,)
                )
                stored += 1
                record_ingested_chunk("stored")
                logger.debug("rag_chunk_inserted preview=%r", draft.content[:50])
        except (EmbeddingServiceError, StoreOperationError) as exc:
            record_ingested_chunk("failed")
            logger.error(
                "rag_add_document_failed",
                extra={
                    "detail": type(exc).__name__,
                    "error": str(exc),
                    "stored_chunks": stored,
                },
            )
            return False

        logger.info("rag_document_stored", extra={"chunks": stored})
        return True
