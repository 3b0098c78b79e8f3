from __future__ import annotations

"""Recursive character chunking with overlap."""

from dataclasses import dataclass, field
from typing import Any, Iterator

from langchain_text_splitters import RecursiveCharacterTextSplitter

from src.rag.types import ChunkDraft

DEFAULT_SEPARATORS: tuple[str, ...] = ("\n\n", "\n", ". ", " ", "")


def merge_metadata(base: dict[str, Any] | None, overrides: dict[str, Any] | None) -> dict[str, Any]:
    """Return a new mapping of ``base`` updated with ``overrides`` (overrides win)."""
    merged = dict(base or {})
    merged.update(overrides or {})
    return merged


@dataclass(frozen=True)
class RecursiveChunker:
    """Split text on natural boundaries first, falling back to hard cuts.

    Separators are tried in order (paragraph, line, sentence, word, character)
    and each one stays attached to the start of the piece that follows it.
    """
    chunk_size: int = 1000
    chunk_overlap: int = 200
    separators: tuple[str, ...] = DEFAULT_SEPARATORS
    _splitter: RecursiveCharacterTextSplitter = field(
        init=False, repr=False, compare=False
    )

    def __post_init__(self) -> None:
        if self.chunk_size <= 0:
            raise ValueError("chunk_size must be greater than zero")
        if self.chunk_overlap < 0:
            object.__setattr__(self, "chunk_overlap", 0)
        if self.chunk_overlap >= self.chunk_size:
            object.__setattr__(self, "chunk_overlap", max(0, self.chunk_size // 4))
        object.__setattr__(
            self,
            "_splitter",
            RecursiveCharacterTextSplitter(
                chunk_size=self.chunk_size,
                chunk_overlap=self.chunk_overlap,
                separators=list(self.separators),
                keep_separator=True,
                add_start_index=True,
                length_function=len,
            ),
        )

    def chunk(self, text: str) -> ChunkSequence:
        """Return a lazy, restartable sequence of chunk drafts."""
        return ChunkSequence(self, text)

    def split(self, text: str) -> list[tuple[str, int]]:
        """Split text into ``(content, start_index)`` pairs."""
        if not text or not text.strip():
            return []
        documents = self._splitter.create_documents([text])
        return [(document.page_content, document.metadata["start_index"]) for document in documents]


class ChunkSequence:
    """Iterable over the chunks of one text; each iteration re-splits lazily."""

    def __init__(self, chunker: RecursiveChunker, text: str) -> None:
        self._chunker = chunker
        self._text = text

    def __iter__(self) -> Iterator[ChunkDraft]:
        for idx, (content, start) in enumerate(self._chunker.split(self._text), start=1):
            yield ChunkDraft(
                content=content,
                metadata={"chunk_index": idx, "start_index": start},
            )
