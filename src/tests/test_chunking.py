from __future__ import annotations

"""Chunking behavior tests."""

from src.loaders.chunking import RecursiveChunker, merge_metadata


def _numbered_words(count: int) -> str:
    return " ".join(f"w{i:03d}" for i in range(count))


def test_chunks_respect_size_and_overlap() -> None:
    """Consecutive chunks share their boundary words."""
    text = _numbered_words(300)
    chunker = RecursiveChunker(chunk_size=200, chunk_overlap=20)

    chunks = [draft.content for draft in chunker.chunk(text)]

    assert len(chunks) > 1
    assert all(len(chunk) <= 200 for chunk in chunks)
    assert chunks[0].endswith("w036 w037 w038 w039")
    assert chunks[1].startswith("w036 w037 w038 w039 w040")
    assert chunks[-1].endswith("w299")


def test_chunk_count_matches_overlap_arithmetic() -> None:
    text = _numbered_words(300)
    chunker = RecursiveChunker(chunk_size=200, chunk_overlap=20)

    chunks = list(chunker.chunk(text))

    expected = (len(text) - 20) / (200 - 20)
    assert expected <= len(chunks) <= 2 * expected + 1


def test_prefers_paragraph_boundaries() -> None:
    text = "A" * 600 + "\n\n" + "B" * 600
    chunker = RecursiveChunker(chunk_size=1000, chunk_overlap=200)

    chunks = [draft.content for draft in chunker.chunk(text)]

    assert chunks == ["A" * 600, "B" * 600]


def test_hard_cut_when_no_separator() -> None:
    chunker = RecursiveChunker(chunk_size=100, chunk_overlap=10)

    chunks = [draft.content for draft in chunker.chunk("x" * 250)]

    assert len(chunks) == 3
    assert all(len(chunk) <= 100 for chunk in chunks)


def test_empty_input_yields_no_chunks() -> None:
    chunker = RecursiveChunker()

    assert list(chunker.chunk("")) == []
    assert list(chunker.chunk("   \n\n  ")) == []


def test_sequence_is_restartable() -> None:
    chunker = RecursiveChunker(chunk_size=50, chunk_overlap=10)
    sequence = chunker.chunk(_numbered_words(40))

    assert list(sequence) == list(sequence)


def test_chunk_metadata_records_position() -> None:
    text = _numbered_words(100)
    drafts = list(RecursiveChunker(chunk_size=100, chunk_overlap=20).chunk(text))

    assert [draft.metadata["chunk_index"] for draft in drafts] == list(range(1, len(drafts) + 1))
    for draft in drafts:
        start = draft.metadata["start_index"]
        assert text[start:start + len(draft.content)] == draft.content


def test_overlap_larger_than_size_is_clamped() -> None:
    chunker = RecursiveChunker(chunk_size=100, chunk_overlap=150)

    assert chunker.chunk_overlap == 25


def test_merge_metadata_override_wins() -> None:
    base = {"a": 1, "b": 2}

    merged = merge_metadata(base, {"b": 3, "c": 4})

    assert merged == {"a": 1, "b": 3, "c": 4}
    assert base == {"a": 1, "b": 2}
