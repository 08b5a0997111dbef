"""Keyword lexicons and text statistics shared by the scoring heuristics."""

import math
from collections.abc import Iterable, Sequence

# Group tone (conversation health positivity)
TONE_POSITIVE = (
    "good",
    "great",
    "awesome",
    "love",
    "happy",
    "thanks",
    "thank you",
    "please",
    "nice",
    "wonderful",
)
TONE_NEGATIVE = (
    "bad",
    "terrible",
    "hate",
    "angry",
    "frustrated",
    "disappointed",
    "sorry",
    "problem",
    "issue",
    "complain",
)

# 1:1 sentiment (premium contact ranking)
SENTIMENT_POSITIVE = (
    "good",
    "great",
    "awesome",
    "love",
    "happy",
    "thanks",
    "nice",
    "wonderful",
    "excellent",
    "amazing",
)
SENTIMENT_NEGATIVE = (
    "bad",
    "terrible",
    "hate",
    "angry",
    "frustrated",
    "disappointed",
    "sad",
    "upset",
    "problem",
    "issue",
)


def count_hits(text: str, keywords: Iterable[str]) -> int:
    """Number of keywords occurring as substrings of `text` (case-insensitive)."""
    lowered = text.lower()
    return sum(1 for keyword in keywords if keyword in lowered)


def mean_and_stddev(values: Sequence[float]) -> tuple[float, float]:
    """Population mean and standard deviation."""
    if not values:
        return 0.0, 0.0
    mean = sum(values) / len(values)
    variance = sum((value - mean) ** 2 for value in values) / len(values)
    return mean, math.sqrt(variance)


def clamp(value: float, low: float = 0.0, high: float = 1.0) -> float:
    return min(max(value, low), high)
