"""
Text similarity metrics for duplicate detection.

All functions are pure, symmetric and bounded to [0.0, 1.0]. Empty or
missing input never raises: two empty texts are considered identical.

Blend: 0.4 * Jaccard (words) + 0.3 * Levenshtein (characters)
     + 0.3 * character bigrams.
"""

import re
from typing import Optional

from app.config import SimilarityWeights

DEFAULT_WEIGHTS = SimilarityWeights()

_PUNCTUATION = re.compile(r"[^\w\s]")
_WHITESPACE = re.compile(r"\s+")


def normalize_text(text: Optional[str]) -> str:
    """Lowercase, turn punctuation into spaces, collapse whitespace."""
    if not text:
        return ""
    s = _PUNCTUATION.sub(" ", str(text).lower())
    return _WHITESPACE.sub(" ", s).strip()


def _tokens(text: str) -> set[str]:
    # Tokens of 1-2 characters ("a", "is", "on") carry no signal
    return {w for w in text.split() if len(w) > 2}


def _set_similarity(a: set[str], b: set[str]) -> float:
    if not a and not b:
        return 1.0
    return len(a & b) / len(a | b)


def jaccard_similarity(text1: str, text2: str) -> float:
    """Word-level Jaccard index over tokens longer than two characters."""
    return _set_similarity(_tokens(text1), _tokens(text2))


def levenshtein_distance(s1: str, s2: str) -> int:
    """Classic edit distance (insert, delete, substitute all cost 1)."""
    if s1 == s2:
        return 0
    if not s1:
        return len(s2)
    if not s2:
        return len(s1)

    # Two-row dynamic programming matrix
    previous = list(range(len(s2) + 1))
    for i, c1 in enumerate(s1, start=1):
        current = [i]
        for j, c2 in enumerate(s2, start=1):
            if c1 == c2:
                current.append(previous[j - 1])
            else:
                current.append(min(
                    previous[j - 1] + 1,  # substitution
                    current[j - 1] + 1,   # insertion
                    previous[j] + 1,      # deletion
                ))
        previous = current
    return previous[-1]


def levenshtein_similarity(text1: str, text2: str) -> float:
    max_length = max(len(text1), len(text2))
    if max_length == 0:
        return 1.0
    return 1.0 - levenshtein_distance(text1, text2) / max_length


def generate_ngrams(text: str, n: int = 2) -> set[str]:
    """Character n-grams with all whitespace removed."""
    clean = _WHITESPACE.sub("", text)
    return {clean[i:i + n] for i in range(len(clean) - n + 1)}


def ngram_similarity(text1: str, text2: str, n: int = 2) -> float:
    return _set_similarity(generate_ngrams(text1, n), generate_ngrams(text2, n))


def text_similarity(
    text1: Optional[str],
    text2: Optional[str],
    weights: SimilarityWeights = DEFAULT_WEIGHTS,
) -> float:
    """
    Combined similarity of two free-text descriptions.
    Identical text after normalization short-circuits to 1.0.
    """
    a = normalize_text(text1)
    b = normalize_text(text2)

    if a == b:
        return 1.0

    combined = (
        weights.jaccard * jaccard_similarity(a, b)
        + weights.levenshtein * levenshtein_similarity(a, b)
        + weights.ngram * ngram_similarity(a, b, 2)
    )
    return min(1.0, max(0.0, combined))
