"""
SpeechCreek - Teleprompter that follows your voice.

Matches live speech recognition against a script's paragraphs and scrolls
the prompter smoothly, at a pace adapted to the speaker.
"""

__version__ = "0.1.0"

from .config import SyncConfig, load_config
from .matcher import MatchResult, MatchScorer
from .rate import RateEstimate, SpeakingRateEstimator
from .scroll import AsyncioFrameScheduler, ScrollController, ScrollMode, ScrollState
from .segmenter import Paragraph, join_paragraphs, segment
from .sync import SyncOrchestrator, SyncSnapshot

__all__ = [
    "SyncConfig",
    "load_config",
    "Paragraph",
    "segment",
    "join_paragraphs",
    "MatchResult",
    "MatchScorer",
    "RateEstimate",
    "SpeakingRateEstimator",
    "ScrollController",
    "ScrollMode",
    "ScrollState",
    "AsyncioFrameScheduler",
    "SyncOrchestrator",
    "SyncSnapshot",
]
