# Copyright © 2025 Ed Nutting
# SPDX-License-Identifier: MIT
# See LICENSE file for details

"""
Paragraph matching module that scores spoken text against script paragraphs.

Spoken words are matched exactly where possible, falling back to normalized
edit-distance similarity to tolerate speech recognition errors. Matches that
appear in the same order as the paragraph text earn a sequential bonus.
"""

import logging
from bisect import bisect_right
from collections.abc import Sequence
from dataclasses import dataclass, field

from rapidfuzz import process
from rapidfuzz.distance import Levenshtein

from .segmenter import Paragraph, tokenize

logger = logging.getLogger(__name__)

# Articles, common pronouns and conjunctions carry no position information
STOP_WORDS: frozenset[str] = frozenset([
    'a', 'an', 'the',
    'i', 'me', 'my', 'you', 'your', 'he', 'him', 'his', 'she', 'her',
    'it', 'its', 'we', 'us', 'our', 'they', 'them', 'their',
    'this', 'that', 'these', 'those', 'there',
    'and', 'but', 'or', 'nor', 'for', 'so', 'yet', 'then', 'than',
])


@dataclass(frozen=True)
class MatchResult:
    """Best paragraph for a piece of spoken text."""
    paragraph_index: int
    confidence: float  # 0-1, 0 means no usable match


@dataclass
class _ParagraphTokens:
    """Filtered tokens of one paragraph with their positions."""
    positions: dict[str, list[int]] = field(default_factory=dict)
    vocabulary: list[str] = field(default_factory=list)


class MatchScorer:
    """
    Scores spoken text against a list of paragraphs.

    Paragraph tokens are cached for the last paragraph list seen, since the
    same script is scored against every incoming fragment.
    """

    min_word_length: int
    fuzzy_threshold: float
    stop_words: frozenset[str]

    def __init__(
        self,
        min_word_length: int = 3,
        fuzzy_threshold: float = 0.75,
        stop_words: frozenset[str] = STOP_WORDS
    ) -> None:
        """
        Initialize the scorer.

        Args:
            min_word_length: Tokens shorter than this are ignored
            fuzzy_threshold: Minimum edit-distance similarity (0-1) for a
                non-exact token to count as a match
            stop_words: Words ignored on both sides
        """
        self.min_word_length = min_word_length
        self.fuzzy_threshold = fuzzy_threshold
        self.stop_words = stop_words

        self._cache_key: tuple[str, ...] | None = None
        self._cache: list[_ParagraphTokens] = []

    def significant_words(self, text: str) -> list[str]:
        """Tokenize text and drop stop words and short tokens."""
        return [
            w for w in tokenize(text)
            if len(w) >= self.min_word_length and w not in self.stop_words
        ]

    def _paragraph_tokens(self, paragraphs: Sequence[Paragraph]) -> list[_ParagraphTokens]:
        """Get (cached) filtered tokens for each paragraph."""
        key: tuple[str, ...] = tuple(p.text for p in paragraphs)
        if key == self._cache_key:
            return self._cache

        indexed: list[_ParagraphTokens] = []
        for paragraph in paragraphs:
            tokens = _ParagraphTokens()
            for pos, word in enumerate(self.significant_words(paragraph.text)):
                tokens.positions.setdefault(word, []).append(pos)
            tokens.vocabulary = list(tokens.positions)
            indexed.append(tokens)

        self._cache_key = key
        self._cache = indexed
        return indexed

    def _find_word(
        self,
        word: str,
        tokens: _ParagraphTokens
    ) -> tuple[list[int], float] | None:
        """Find a spoken word in a paragraph.

        Returns:
            (positions of the matched paragraph token, similarity), or None
        """
        positions: list[int] | None = tokens.positions.get(word)
        if positions is not None:
            return positions, 1.0

        if not tokens.vocabulary:
            return None

        # Similarity is 1 - distance / max(len), the best paragraph token wins
        best = process.extractOne(
            word,
            tokens.vocabulary,
            scorer=Levenshtein.normalized_similarity,
            score_cutoff=self.fuzzy_threshold
        )
        if best is None:
            return None
        choice, similarity, _ = best
        return tokens.positions[choice], float(similarity)

    def _score_paragraph(self, spoken_words: list[str], tokens: _ParagraphTokens) -> float:
        """Blend match ratio and sequential bonus into a confidence."""
        matching_words: float = 0.0
        sequential_matches: float = 0.0
        last_position: int = -1

        for word in spoken_words:
            found = self._find_word(word, tokens)
            if found is None:
                continue
            positions, weight = found

            # Prefer the first occurrence after the previous match, so repeated
            # words in the paragraph still read as being in order
            after: int = bisect_right(positions, last_position)
            position: int = positions[after] if after < len(positions) else positions[0]

            matching_words += weight
            if position > last_position:
                sequential_matches += weight
            last_position = position

        match_ratio: float = matching_words / max(len(spoken_words), 1)
        sequential_bonus: float = sequential_matches / max(matching_words, 1)
        return min(max((match_ratio + sequential_bonus) / 2, 0.0), 1.0)

    def score(self, spoken_text: str, paragraphs: Sequence[Paragraph]) -> MatchResult:
        """
        Find the paragraph that best matches the spoken text.

        Args:
            spoken_text: Transcript fragment (interim or final)
            paragraphs: Paragraphs in document order

        Returns:
            MatchResult; ties keep the earliest paragraph, and
            MatchResult(0, 0.0) means nothing usable matched
        """
        if not spoken_text or not spoken_text.strip() or not paragraphs:
            return MatchResult(paragraph_index=0, confidence=0.0)

        spoken_words: list[str] = self.significant_words(spoken_text)
        if not spoken_words:
            logger.debug("No significant words in '%s'", spoken_text)
            return MatchResult(paragraph_index=0, confidence=0.0)

        best_index: int = 0
        best_confidence: float = 0.0
        for index, tokens in enumerate(self._paragraph_tokens(paragraphs)):
            confidence: float = self._score_paragraph(spoken_words, tokens)
            if confidence > best_confidence:
                best_confidence = confidence
                best_index = index

        logger.debug(
            "Matched '%s' to paragraph %d (confidence %.2f)",
            spoken_text[-60:], best_index, best_confidence
        )
        return MatchResult(paragraph_index=best_index, confidence=best_confidence)


def score(
    spoken_text: str,
    paragraphs: Sequence[Paragraph],
    min_word_length: int = 3
) -> MatchResult:
    """Score spoken text with a one-off MatchScorer."""
    return MatchScorer(min_word_length=min_word_length).score(spoken_text, paragraphs)
