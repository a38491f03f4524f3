# Copyright © 2025 Ed Nutting
# SPDX-License-Identifier: MIT
# See LICENSE file for details

"""
Synchronization orchestrator.

Receives recognition events one at a time, matches what was said against the
script's paragraphs, and decides when to move the view and how fast the
speaker is going. Owns the presentation state (highlighted paragraphs, speed
level, listening flag, last error) that the renderer displays.
"""

import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass

from .autoscroll import AutoScroller
from .config import SyncConfig
from .errors import RecognitionUnsupported
from .matcher import MatchResult, MatchScorer
from .rate import DEFAULT_LEVEL, SpeakingRateEstimator, clamp_level
from .recognition import (
    RecognitionEnded,
    RecognitionEvent,
    RecognitionFailed,
    RecognitionResult,
    RecognitionStarted,
    Recognizer,
    TranscriptFragment,
)
from .scroll import FrameScheduler, ScrollController
from .segmenter import Paragraph, estimate_paragraph_offset, segment

logger = logging.getLogger(__name__)

UNSUPPORTED_MESSAGE: str = "Speech recognition is not supported on this system."


@dataclass(frozen=True)
class SyncSnapshot:
    """Everything the renderer needs to draw the prompter."""
    paragraphs: tuple[str, ...]
    current_paragraph_index: int
    next_paragraph_index: int | None
    speed_level: int
    listening: bool
    error: str | None
    voice_enabled: bool
    scroll_offset: float
    playing: bool

    def to_dict(self) -> dict[str, object]:
        """Serialize for the WebSocket protocol (camelCase keys)."""
        return {
            "currentParagraphIndex": self.current_paragraph_index,
            "nextParagraphIndex": self.next_paragraph_index,
            "speedLevel": self.speed_level,
            "listening": self.listening,
            "error": self.error,
            "voiceEnabled": self.voice_enabled,
            "scrollOffset": self.scroll_offset,
            "playing": self.playing,
        }


class SyncOrchestrator:
    """
    Keeps the prompter view in step with the speaker.

    All state changes happen inside handle() or one of the public methods,
    each running to completion on the event loop before the next event.

    Usage:
        sync = SyncOrchestrator(recognizer, AsyncioFrameScheduler())
        sync.load_script(script_text)
        sync.update_layout(client_height=600, content_height=4000)
        sync.start_listening()
    """

    def __init__(
        self,
        recognizer: Recognizer | None,
        scheduler: FrameScheduler,
        config: SyncConfig | None = None,
        on_change: Callable[[SyncSnapshot], None] | None = None,
        on_scroll: Callable[[float], None] | None = None,
        auto_restart: bool = True
    ) -> None:
        """
        Initialize the orchestrator.

        Args:
            recognizer: Speech recognizer, or None when voice sync is unavailable
            scheduler: Frame scheduler shared by scrolling and play mode
            config: Sync tuning values
            on_change: Called with a snapshot whenever presentation state changes
            on_scroll: Called with the new offset whenever the view moves
            auto_restart: Restart the recognizer if it ends while still wanted
        """
        self.config: SyncConfig = config or SyncConfig()
        self.recognizer: Recognizer | None = recognizer
        self.on_change: Callable[[SyncSnapshot], None] | None = on_change
        self.on_scroll: Callable[[float], None] | None = on_scroll
        self.auto_restart: bool = auto_restart

        self.controller: ScrollController = ScrollController(
            scheduler, self.config, on_scroll=self._on_controller_scroll
        )
        self.autoscroller: AutoScroller = AutoScroller(
            self.controller,
            scheduler,
            bounds=lambda: (self.client_height, self.content_height),
            on_stop=self._notify
        )
        self.scorer: MatchScorer = MatchScorer(
            min_word_length=self.config.min_word_length,
            fuzzy_threshold=self.config.fuzzy_threshold
        )
        self.estimator: SpeakingRateEstimator = SpeakingRateEstimator(self.config.rate_policy)

        # Script and layout
        self.paragraphs: list[Paragraph] = []
        self.paragraph_offsets: list[float] | None = None
        self.client_height: float = 0.0
        self.content_height: float = 0.0

        # Presentation state
        self.current_paragraph_index: int = 0
        self.speed_level: int = DEFAULT_LEVEL
        self.listening: bool = False
        self.error: str | None = None
        self.voice_enabled: bool = recognizer is not None

        # Whether the user wants to be listening (drives auto-restart)
        self.wants_listening: bool = False
        # Start of the transcript span being timed for the rate estimate
        self._span_start: float | None = None

        if recognizer is not None:
            recognizer.set_listener(self.handle)
        else:
            self.error = UNSUPPORTED_MESSAGE

    @property
    def max_scroll(self) -> float:
        """Largest scroll offset the viewport can reach."""
        return max(self.content_height - self.client_height, 0.0)

    @property
    def next_paragraph_index(self) -> int | None:
        """Paragraph after the current one, or None at the end."""
        following: int = self.current_paragraph_index + 1
        return following if following < len(self.paragraphs) else None

    # Script and viewport

    def load_script(self, script: str) -> list[Paragraph]:
        """
        Replace the script, re-segmenting it from scratch.

        Highlight and measured offsets refer to the old paragraphs, so both
        are reset and the view returns to the top.
        """
        self.paragraphs = segment(script)
        self.paragraph_offsets = None
        self.current_paragraph_index = 0
        self._span_start = None
        self.autoscroller.pause()
        self.controller.jump_to(0.0)
        logger.info("Script loaded: %d paragraphs", len(self.paragraphs))
        self._notify()
        return self.paragraphs

    def update_layout(
        self,
        client_height: float,
        content_height: float,
        paragraph_offsets: Sequence[float] | None = None
    ) -> None:
        """
        Record viewport measurements from the renderer.

        Args:
            client_height: Visible height of the viewport
            content_height: Full scrollable height of the content
            paragraph_offsets: Top offset of each paragraph, in order
        """
        self.client_height = float(client_height)
        self.content_height = float(content_height)
        if paragraph_offsets is not None:
            if len(paragraph_offsets) == len(self.paragraphs):
                self.paragraph_offsets = [float(o) for o in paragraph_offsets]
            else:
                logger.warning(
                    "Ignoring %d paragraph offsets for %d paragraphs",
                    len(paragraph_offsets), len(self.paragraphs)
                )

    def report_scroll(self, offset: float) -> None:
        """The user scrolled the view by hand; take that as the new position."""
        self.controller.jump_to(max(0.0, float(offset)))

    def paragraph_offset(self, index: int) -> float:
        """Vertical offset of a paragraph, measured if known, else estimated."""
        if self.paragraph_offsets is not None and 0 <= index < len(self.paragraph_offsets):
            return self.paragraph_offsets[index]
        return estimate_paragraph_offset(
            self.paragraphs, index, self.config.char_height_ratio
        )

    # Recognition events

    def handle(self, event: RecognitionEvent) -> None:
        """Process one recognition event to completion."""
        if isinstance(event, RecognitionResult):
            self._on_result(event)
        elif isinstance(event, RecognitionStarted):
            self._on_started(event)
        elif isinstance(event, RecognitionFailed):
            self._on_failed(event)
        elif isinstance(event, RecognitionEnded):
            self._on_ended(event)
        else:
            logger.warning("Unhandled recognition event: %r", event)

    def _on_started(self, event: RecognitionStarted) -> None:
        logger.info("Speech recognition started")
        self.listening = True
        self.error = None
        self._span_start = event.timestamp
        self._notify()

    def _on_result(self, event: RecognitionResult) -> None:
        fragment: TranscriptFragment = event.fragment
        if not fragment.text.strip():
            return
        if self._span_start is None:
            self._span_start = fragment.timestamp

        if fragment.is_final:
            self._update_speed(fragment.text, fragment.timestamp - self._span_start)
            self._span_start = None

        self.follow(fragment.text)
        self._notify()

    def _on_failed(self, event: RecognitionFailed) -> None:
        self.error = event.message or f"Speech recognition error: {event.code}"
        logger.warning("%s", self.error)
        # No automatic retry; the user may start listening again
        self.wants_listening = False
        self.listening = False
        self._notify()

    def _on_ended(self, _event: RecognitionEnded) -> None:
        logger.info("Speech recognition ended")
        self.listening = False
        self._span_start = None
        if (self.wants_listening and self.auto_restart and self.recognizer is not None
                and not self.recognizer.is_running):
            logger.info("Recognition ended unexpectedly, restarting")
            self._start_recognizer(self.recognizer)
        self._notify()

    def _update_speed(self, text: str, duration: float) -> None:
        """Estimate pace over a finalized span and project the view ahead."""
        estimate = self.estimator.estimate(text, duration)
        self.speed_level = clamp_level(estimate.level)
        logger.debug(
            "Speaking rate %.0f wpm over %.2fs -> level %d",
            estimate.words_per_minute, duration, self.speed_level
        )
        if not self.autoscroller.playing:
            self.controller.set_speed_level(self.speed_level, max_position=self.max_scroll)

    def follow(self, spoken_text: str) -> MatchResult:
        """
        Match spoken text and move the view if the paragraph left the reading band.

        A match at or below match_floor leaves everything untouched.

        Returns:
            The match result
        """
        result: MatchResult = self.scorer.score(spoken_text, self.paragraphs)
        if result.confidence <= self.config.match_floor:
            logger.debug("No usable match for '%s'", spoken_text[-60:])
            return result

        self.current_paragraph_index = result.paragraph_index

        # Play mode owns the motion while it runs
        if self.autoscroller.playing or self.client_height <= 0:
            return result

        offset: float = self.paragraph_offset(result.paragraph_index)
        if not self._outside_reading_band(offset):
            return result

        target: float = offset - self.client_height * self.config.ideal_fraction
        target = min(max(target, 0.0), self.max_scroll)
        logger.debug(
            "Paragraph %d at %.0f outside reading band, target %.1f (confidence %.2f)",
            result.paragraph_index, offset, target, result.confidence
        )
        self.controller.set_target(target, result.confidence)
        return result

    def _outside_reading_band(self, offset: float) -> bool:
        """Whether a paragraph offset lies above or below the ideal reading band."""
        relative: float = offset - self.controller.current
        top: float = self.client_height * self.config.band_top_fraction
        bottom: float = (self.client_height * self.config.band_bottom_fraction
                         - self.config.control_panel_allowance)
        return relative < top or relative > bottom

    # Listening control

    def start_listening(self) -> bool:
        """
        Start (or restart) voice-driven sync.

        Returns:
            True if the recognizer was started
        """
        if self.recognizer is None or not self.voice_enabled:
            self.error = UNSUPPORTED_MESSAGE
            self._notify()
            return False

        self.error = None
        if self.recognizer.is_running:
            # Restart cleanly; don't let the stop trigger an auto-restart
            self.wants_listening = False
            self.recognizer.stop()

        self.wants_listening = True
        started: bool = self._start_recognizer(self.recognizer)
        self._notify()
        return started

    def _start_recognizer(self, recognizer: Recognizer) -> bool:
        try:
            recognizer.start()
        except RecognitionUnsupported as e:
            logger.error("Speech recognition unavailable: %s", e)
            self.voice_enabled = False
            self.wants_listening = False
            self.listening = False
            self.error = str(e) or UNSUPPORTED_MESSAGE
            return False
        return True

    def stop_listening(self) -> None:
        """Stop voice-driven sync; the view stays where it is."""
        self.wants_listening = False
        self.listening = False
        if self.recognizer is not None and self.recognizer.is_running:
            self.recognizer.stop()
        self._notify()

    def end_session(self) -> None:
        """End the presentation: freeze the view and release the microphone."""
        self.controller.stop()
        self.autoscroller.pause()
        self.stop_listening()
        logger.info("Presentation session ended")

    # Manual controls

    def play(self) -> None:
        self.autoscroller.play()
        self._notify()

    def pause(self) -> None:
        self.autoscroller.pause()
        self._notify()

    def toggle_play(self) -> bool:
        playing: bool = self.autoscroller.toggle()
        self._notify()
        return playing

    def set_play_speed(self, level: int) -> None:
        """Set the manual play-mode speed level (1-5)."""
        self.autoscroller.set_speed_level(level)
        self._notify()

    # Presentation state

    def state(self) -> SyncSnapshot:
        """Snapshot of the presentation state."""
        return SyncSnapshot(
            paragraphs=tuple(p.text for p in self.paragraphs),
            current_paragraph_index=self.current_paragraph_index,
            next_paragraph_index=self.next_paragraph_index,
            speed_level=self.speed_level,
            listening=self.listening,
            error=self.error,
            voice_enabled=self.voice_enabled,
            scroll_offset=self.controller.current,
            playing=self.autoscroller.playing,
        )

    def _on_controller_scroll(self, offset: float) -> None:
        if self.on_scroll is not None:
            self.on_scroll(offset)

    def _notify(self) -> None:
        if self.on_change is not None:
            self.on_change(self.state())
