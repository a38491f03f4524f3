# Copyright © 2025 Ed Nutting
# SPDX-License-Identifier: MIT
# See LICENSE file for details

"""
Tests for speaking rate estimation and the speed curve.
"""

import math

import pytest

from speechcreek.rate import (
    DEFAULT_LEVEL,
    RateEstimate,
    SpeakingRateEstimator,
    clamp_level,
    estimate,
    level_from_wpm,
    speed_factor,
)


class TestEstimate:
    """Tests for words-per-minute estimation."""

    def test_medium_pace(self) -> None:
        """Five words in two seconds is 150 wpm, the medium level."""
        result: RateEstimate = estimate("the quick brown fox jumps", 2.0)
        assert result.words_per_minute == pytest.approx(150.0)
        assert result.level == 3

    def test_fast_pace(self) -> None:
        result: RateEstimate = estimate("one two three four five six seven eight nine ten", 2.0)
        assert result.words_per_minute == pytest.approx(300.0)
        assert result.level == 5

    def test_slow_pace(self) -> None:
        result: RateEstimate = estimate("slowly and carefully", 3.0)
        assert result.words_per_minute == pytest.approx(60.0)
        assert result.level == 1

    @pytest.mark.parametrize("duration", [0.0, -1.0, math.nan, math.inf, "abc", None])
    def test_unmeasurable_duration(self, duration: object) -> None:
        """Bad durations give the default level, never an error."""
        result: RateEstimate = estimate("some words here", duration)  # type: ignore[arg-type]
        assert result == RateEstimate(words_per_minute=0.0, level=DEFAULT_LEVEL)

    @pytest.mark.parametrize("text", ["", "   ", "\n\t"])
    def test_no_words(self, text: str) -> None:
        assert estimate(text, 2.0).level == DEFAULT_LEVEL

    def test_level_always_in_range(self) -> None:
        for words in range(1, 60):
            for duration in (0.1, 0.5, 1.0, 5.0, 60.0):
                level: int = estimate(" ".join(["word"] * words), duration).level
                assert 1 <= level <= 5


class TestLevelMapping:
    """Tests for the two wpm to level policies."""

    @pytest.mark.parametrize("wpm,level", [
        (0.0, 1), (99.9, 1),
        (100.0, 2), (129.9, 2),
        (130.0, 3), (169.9, 3),
        (170.0, 4), (199.9, 4),
        (200.0, 5), (1000.0, 5),
    ])
    def test_bucket_boundaries(self, wpm: float, level: int) -> None:
        assert level_from_wpm(wpm) == level

    @pytest.mark.parametrize("wpm,level", [
        (30.0, 1), (120.0, 2), (180.0, 3), (240.0, 4), (300.0, 5), (600.0, 5),
    ])
    def test_linear_policy(self, wpm: float, level: int) -> None:
        assert level_from_wpm(wpm, "linear") == level

    def test_policies_differ(self) -> None:
        """The same pace maps to different levels under each policy."""
        assert level_from_wpm(120.0, "buckets") == 2
        assert level_from_wpm(180.0, "buckets") == 4
        assert level_from_wpm(180.0, "linear") == 3

    def test_estimator_uses_policy(self) -> None:
        result: RateEstimate = SpeakingRateEstimator("linear").estimate("one two three", 1.0)
        assert result.words_per_minute == pytest.approx(180.0)
        assert result.level == 3

    def test_unknown_policy(self) -> None:
        with pytest.raises(ValueError):
            level_from_wpm(150.0, "quadratic")
        with pytest.raises(ValueError):
            SpeakingRateEstimator("quadratic")


class TestSpeedCurve:
    """Tests for the forward projection per speed level."""

    def test_medium_level_is_base_distance(self) -> None:
        assert speed_factor(3) == pytest.approx(2.0)

    def test_levels(self) -> None:
        assert speed_factor(5) == pytest.approx(2.0 * 1.8 ** 2)
        assert speed_factor(1) == pytest.approx(2.0 / 1.8 ** 2)

    def test_strictly_increasing(self) -> None:
        factors: list[float] = [speed_factor(level) for level in range(1, 6)]
        assert factors == sorted(factors)
        assert len(set(factors)) == 5

    def test_custom_curve(self) -> None:
        assert speed_factor(4, base=2.0, distance=10.0) == pytest.approx(20.0)

    @pytest.mark.parametrize("level,clamped", [(-3, 1), (0, 1), (1, 1), (3, 3), (5, 5), (9, 5)])
    def test_clamp_level(self, level: int, clamped: int) -> None:
        assert clamp_level(level) == clamped
