"""
Tests for text similarity metrics.
"""

import pytest

from app.config import SimilarityWeights
from app.lifecycle.similarity import (
    generate_ngrams,
    jaccard_similarity,
    levenshtein_distance,
    levenshtein_similarity,
    ngram_similarity,
    normalize_text,
    text_similarity,
)


class TestNormalizeText:

    def test_lowercase_and_punctuation(self):
        assert normalize_text("Light NOT working!!") == "light not working"

    def test_collapses_whitespace(self):
        assert normalize_text("  socket \t  sparking \n") == "socket sparking"

    def test_punctuation_becomes_space(self):
        assert normalize_text("fan,broken") == "fan broken"

    def test_none_and_empty(self):
        assert normalize_text(None) == ""
        assert normalize_text("") == ""


class TestJaccard:

    def test_short_tokens_ignored(self):
        # "is" and "on" are dropped; {the, light, broken} vs {the, light, flickering}
        assert jaccard_similarity("the light is broken", "the light is flickering") == pytest.approx(0.5)

    def test_identical(self):
        assert jaccard_similarity("door handle loose", "door handle loose") == 1.0

    def test_both_empty(self):
        assert jaccard_similarity("", "") == 1.0

    def test_disjoint(self):
        assert jaccard_similarity("socket sparking", "window jammed") == 0.0


class TestLevenshtein:

    def test_classic_distance(self):
        assert levenshtein_distance("kitten", "sitting") == 3

    def test_empty_sides(self):
        assert levenshtein_distance("", "abc") == 3
        assert levenshtein_distance("abc", "") == 3
        assert levenshtein_distance("", "") == 0

    def test_similarity_normalised_by_longer(self):
        assert levenshtein_similarity("kitten", "sitting") == pytest.approx(1 - 3 / 7)

    def test_similarity_empty(self):
        assert levenshtein_similarity("", "") == 1.0


class TestNgrams:

    def test_whitespace_removed(self):
        assert generate_ngrams("ab cd") == {"ab", "bc", "cd"}

    def test_short_text_has_no_bigrams(self):
        assert generate_ngrams("a") == set()

    def test_similarity(self):
        # {ab, bc} vs {ab, bd}: one shared out of three
        assert ngram_similarity("abc", "abd") == pytest.approx(1 / 3)


class TestTextSimilarity:

    def test_exact_after_normalisation(self):
        assert text_similarity("Light not working!", "light  not working") == 1.0

    def test_missing_values(self):
        assert text_similarity(None, None) == 1.0
        assert text_similarity(None, "") == 1.0

    def test_empty_vs_text(self):
        assert text_similarity("", "abc") == 0.0

    def test_symmetric(self):
        a = "Fluorescent tube flickering"
        b = "Tube light flickers on and off"
        assert text_similarity(a, b) == pytest.approx(text_similarity(b, a))

    def test_bounded(self):
        pairs = [
            ("socket sparking near desk", "socket sparks near the desk"),
            ("aaaa", "zzzz"),
            ("air conditioner leaking water", "ac unit leaks"),
        ]
        for a, b in pairs:
            assert 0.0 <= text_similarity(a, b) <= 1.0

    def test_similar_scores_above_unrelated(self):
        base = "ceiling fan making loud noise"
        close = "ceiling fan makes a loud noise"
        far = "broken window latch"
        assert text_similarity(base, close) > text_similarity(base, far)

    def test_custom_weights(self):
        jaccard_only = SimilarityWeights(jaccard=1.0, levenshtein=0.0, ngram=0.0)
        score = text_similarity("the light is broken", "the light is flickering", jaccard_only)
        assert score == pytest.approx(0.5)
