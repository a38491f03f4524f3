# Copyright © 2025 Ed Nutting
# SPDX-License-Identifier: MIT
# See LICENSE file for details

"""
Speaking rate estimation.

Turns a finalized transcript span and how long it took to say into a
discrete speed level from 1 (slow) to 5 (fast).
"""

import logging
import math
from dataclasses import dataclass

logger = logging.getLogger(__name__)

MIN_LEVEL: int = 1
MAX_LEVEL: int = 5
# Medium pace, used whenever the input can't be measured
DEFAULT_LEVEL: int = 3

# Upper words-per-minute bound (exclusive) for levels 1-4; faster is level 5
WPM_BUCKETS: tuple[tuple[float, int], ...] = (
    (100.0, 1),
    (130.0, 2),
    (170.0, 3),
    (200.0, 4),
)


@dataclass(frozen=True)
class RateEstimate:
    """Measured speaking pace."""
    words_per_minute: float
    level: int  # 1-5


def clamp_level(level: int) -> int:
    """Clamp a speed level to the supported range."""
    return max(MIN_LEVEL, min(MAX_LEVEL, level))


def level_from_wpm(words_per_minute: float, policy: str = "buckets") -> int:
    """
    Map words per minute to a speed level.

    Args:
        words_per_minute: Measured pace
        policy: "buckets" for the fixed thresholds, or "linear" for one
            level per 60 wpm

    Returns:
        Level between 1 and 5
    """
    if policy == "linear":
        return clamp_level(round(words_per_minute / 60))
    if policy != "buckets":
        raise ValueError(f"Unknown rate policy: {policy}")
    for upper, level in WPM_BUCKETS:
        if words_per_minute < upper:
            return level
    return MAX_LEVEL


def speed_factor(level: int, base: float = 1.8, distance: float = 2.0) -> float:
    """Forward projection for a speed level: distance * base^(level - 3)."""
    return distance * base ** (level - DEFAULT_LEVEL)


class SpeakingRateEstimator:
    """Estimates speaking rate from finalized transcript spans."""

    def __init__(self, policy: str = "buckets") -> None:
        if policy not in ("buckets", "linear"):
            raise ValueError(f"Unknown rate policy: {policy}")
        self.policy: str = policy

    def estimate(self, text: str, duration_seconds: float) -> RateEstimate:
        """
        Estimate the speaking rate of a span.

        Unmeasurable input (no words, non-positive or non-numeric duration)
        gives the default level instead of an error.

        Args:
            text: Finalized transcript text
            duration_seconds: How long the span took to say

        Returns:
            RateEstimate with words per minute and level
        """
        word_count: int = len(text.split()) if isinstance(text, str) else 0
        try:
            duration: float = float(duration_seconds)
        except (TypeError, ValueError):
            duration = 0.0

        if word_count == 0 or not math.isfinite(duration) or duration <= 0:
            logger.debug(
                "Unmeasurable rate input (%d words, %r s), using level %d",
                word_count, duration_seconds, DEFAULT_LEVEL
            )
            return RateEstimate(words_per_minute=0.0, level=DEFAULT_LEVEL)

        wpm: float = word_count / (duration / 60)
        level: int = level_from_wpm(wpm, self.policy)
        logger.debug("Speech rate: %.1f wpm -> level %d", wpm, level)
        return RateEstimate(words_per_minute=wpm, level=level)


def estimate(text: str, duration_seconds: float, policy: str = "buckets") -> RateEstimate:
    """Estimate a speaking rate with the given policy."""
    return SpeakingRateEstimator(policy).estimate(text, duration_seconds)
