from __future__ import annotations

"""Heuristic query expansion into canned question variations."""

from dataclasses import dataclass


@dataclass(frozen=True)
class QueryTopic:
    """Topic detected by substring triggers, mapped to paraphrases."""
    name: str
    triggers: tuple[str, ...]
    variations: tuple[str, ...]

    def matches(self, lowered_query: str) -> bool:
        return any(trigger in lowered_query for trigger in self.triggers)


DEFAULT_TOPICS: tuple[QueryTopic, ...] = (
    QueryTopic(
        name="pricing",
        triggers=("price", "cost", "magkano", "presyo"),
        variations=("What is the price?", "How much does it cost?", "Magkano?"),
    ),
    QueryTopic(
        name="product",
        triggers=("product", "produkto", "item"),
        variations=("What products do you have?", "Tell me about your products"),
    ),
    QueryTopic(
        name="delivery",
        triggers=("deliver", "shipping", "padala"),
        variations=("Do you deliver?", "How much is shipping?", "Nagdedeliver ba kayo?"),
    ),
    QueryTopic(
        name="payment",
        triggers=("pay", "bayad", "gcash", "bank"),
        variations=("What payment methods do you accept?", "How can I pay?"),
    ),
)


@dataclass(frozen=True)
class QueryExpander:
    """Generate question variations for every topic the query touches.

    Variations are returned in topic order, then phrase order, without any
    ranking; callers decide how many to use.
    """
    topics: tuple[QueryTopic, ...] = DEFAULT_TOPICS

    def expand(self, query: str) -> list[str]:
        lowered = query.lower()
        variations: list[str] = []
        for topic in self.topics:
            if topic.matches(lowered):
                variations.extend(topic.variations)
        return variations
