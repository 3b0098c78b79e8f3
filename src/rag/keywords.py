from __future__ import annotations

"""Key term extraction for lexical search."""

import re
from dataclasses import dataclass, field
from functools import lru_cache
from pathlib import Path
from typing import Iterable

STOP_WORDS_PATH = Path(__file__).with_name("stopwords.txt")

_PUNCTUATION_RE = re.compile(r"[^\w\s]")


def load_stop_words(path: Path = STOP_WORDS_PATH) -> frozenset[str]:
    """Read a stop-word file: one word per line, ``#`` starts a comment."""
    words: set[str] = set()
    for line in path.read_text(encoding="utf-8").splitlines():
        word = line.split("#", 1)[0].strip().lower()
        if word:
            words.add(word)
    return frozenset(words)


@lru_cache
def default_stop_words() -> frozenset[str]:
    return load_stop_words()


@dataclass(frozen=True)
class KeyTermExtractor:
    """Reduce a query to a few salient tokens."""
    stop_words: frozenset[str] = field(default_factory=default_stop_words)
    max_terms: int = 5
    min_length: int = 3

    @classmethod
    def with_extra_stop_words(cls, extra: Iterable[str], max_terms: int = 5) -> KeyTermExtractor:
        words = default_stop_words().union(word.lower() for word in extra)
        return cls(stop_words=frozenset(words), max_terms=max_terms)

    def extract(self, query: str) -> list[str]:
        """Return up to ``max_terms`` unique non-stop-word tokens in query order."""
        cleaned = _PUNCTUATION_RE.sub("", query.lower())
        terms: list[str] = []
        for word in cleaned.split():
            if len(word) < self.min_length or word in self.stop_words or word in terms:
                continue
            terms.append(word)
            if len(terms) >= self.max_terms:
                break
        return terms
