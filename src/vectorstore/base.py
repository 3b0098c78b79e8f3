from __future__ import annotations

"""Vector store contract, error taxonomy, and optional-field insert fallback."""

import logging
import re
from typing import Any, Iterable, Protocol, Sequence

from src.app.metrics import record_schema_fallback
from src.rag.types import StoredRecord

logger = logging.getLogger(__name__)

_SCHEMA_HINT_RE = re.compile(r"\b(column|field)s?\b", re.IGNORECASE)


class StoreOperationError(RuntimeError):
    """Raised when a vector store call fails."""
    pass


class StoreSchemaMismatchError(StoreOperationError):
    """Raised when the store rejects a row because a named field is not in its schema."""

    def __init__(self, field: str, message: str) -> None:
        self.field = field
        super().__init__(message)


class VectorStoreConfigError(RuntimeError):
    """Raised when vector store configuration is invalid."""
    pass


class VectorStore(Protocol):
    """Calls the retrieval engine makes into a content and vector store."""

    async def insert(self, row: dict[str, Any]) -> None:
        """Persist one row of content, metadata, embedding and optional fields."""
        raise NotImplementedError

    async def nearest_neighbors(
        self, embedding: list[float], threshold: float, count: int
    ) -> list[StoredRecord]:
        """Return up to ``count`` records with similarity >= ``threshold``, best first."""
        raise NotImplementedError

    async def substring_search(self, patterns: Sequence[str], count: int) -> list[StoredRecord]:
        """Return up to ``count`` records whose content contains any pattern, ignoring case."""
        raise NotImplementedError


def find_schema_field(message: str, fields: Iterable[str]) -> str | None:
    """Return the row field a store error message reports as unsupported.

    The message must talk about a column or field and name one of ``fields``
    in quotes or backticks, e.g. ``Could not find the 'category_id' column``.
    """
    if not message or not _SCHEMA_HINT_RE.search(message):
        return None
    for name in fields:
        for quote in ("'", '"', "`"):
            if f"{quote}{name}{quote}" in message:
                return name
    return None


async def insert_with_optional_fields(
    store: VectorStore,
    row: dict[str, Any],
    optional_keys: Iterable[str],
) -> dict[str, Any]:
    """Insert ``row``, dropping optional fields the store schema does not support.

    Returns the row as finally stored. A schema mismatch on a required field is
    re-raised unchanged.
    """
    optional = set(optional_keys)
    current = dict(row)
    while True:
        try:
            await store.insert(current)
            return current
        except StoreSchemaMismatchError as exc:
            if exc.field not in optional or exc.field not in current:
                raise
            logger.info(
                "rag_optional_field_unsupported",
                extra={"field": exc.field},
            )
            record_schema_fallback(exc.field)
            current = {key: value for key, value in current.items() if key != exc.field}
            optional.discard(exc.field)
