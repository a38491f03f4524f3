# Copyright © 2025 Ed Nutting
# SPDX-License-Identifier: MIT
# See LICENSE file for details

"""
Tests for tolerating misrecognized words, and for the paragraph token cache.
"""

import pytest

from speechcreek.matcher import MatchResult, MatchScorer
from speechcreek.segmenter import Paragraph, segment


@pytest.fixture
def paragraphs(speech: str) -> list[Paragraph]:
    return segment(speech)


class TestFuzzyMatching:
    """Tests for edit-distance matching of near misses."""

    def test_misspelled_word_still_matches(self, paragraphs: list[Paragraph]) -> None:
        """One dropped letter is close enough, at reduced weight."""
        scorer: MatchScorer = MatchScorer()
        result: MatchResult = scorer.score("engineers shiped seven", paragraphs)
        assert result.paragraph_index == 2
        assert 0.9 < result.confidence < 1.0

    def test_threshold_of_one_requires_exact_words(self, paragraphs: list[Paragraph]) -> None:
        scorer: MatchScorer = MatchScorer(fuzzy_threshold=1.0)
        result: MatchResult = scorer.score("engineers shiped seven", paragraphs)
        assert result.paragraph_index == 2
        # Two of three words, both in order
        assert result.confidence == pytest.approx((2 / 3 + 1.0) / 2)

    def test_distant_words_do_not_match(self, paragraphs: list[Paragraph]) -> None:
        assert MatchScorer().score("zebra quartz", paragraphs).confidence == 0.0


class TestTokenCache:
    """Tests for caching paragraph tokens between fragments."""

    def test_same_script_reuses_tokens(self, paragraphs: list[Paragraph]) -> None:
        scorer: MatchScorer = MatchScorer()
        scorer.score("seven major releases", paragraphs)
        cached = scorer._cache
        scorer.score("remarkable year", list(paragraphs))
        assert scorer._cache is cached

    def test_new_script_rebuilds_tokens(self, paragraphs: list[Paragraph]) -> None:
        scorer: MatchScorer = MatchScorer()
        assert scorer.score("seven major releases", paragraphs).paragraph_index == 2

        replaced: list[Paragraph] = segment("Seven major releases.\n\nSomething else.")
        assert scorer.score("seven major releases", replaced) == MatchResult(0, 1.0)
