# Copyright © 2025 Ed Nutting
# SPDX-License-Identifier: MIT
# See LICENSE file for details

"""
Fixed-cadence scrolling for manual "play" mode.

Moves the view one unit at a time at an interval chosen by the speed level,
and rewinds to the top when the end of the script is reached. All movement
goes through the ScrollController so it stays the only writer of position.
"""

import logging
from collections.abc import Callable
from typing import Any

from .rate import clamp_level
from .scroll import FrameScheduler, ScrollController

logger = logging.getLogger(__name__)

# Milliseconds per unit of movement for each speed level
INTERVAL_MS: dict[int, int] = {
    1: 30,  # Slow
    2: 25,
    3: 20,  # Normal
    4: 15,
    5: 10,  # Fast
}

# Distance from the bottom at which play stops
END_TOLERANCE: float = 10.0


class AutoScroller:
    """Constant-speed scrolling driven by the frame scheduler."""

    def __init__(
        self,
        controller: ScrollController,
        scheduler: FrameScheduler,
        bounds: Callable[[], tuple[float, float]],
        speed_level: int = 2,
        on_stop: Callable[[], None] | None = None
    ) -> None:
        """
        Initialize the auto-scroller.

        Args:
            controller: Controller that owns the view position
            scheduler: Frame scheduler used for the step interval
            bounds: Returns (client_height, content_height) of the viewport
            speed_level: Initial speed level (1-5)
            on_stop: Called when play stops at the end of the script
        """
        self.controller: ScrollController = controller
        self.scheduler: FrameScheduler = scheduler
        self.bounds: Callable[[], tuple[float, float]] = bounds
        self.speed_level: int = clamp_level(speed_level)
        self.on_stop: Callable[[], None] | None = on_stop
        self.playing: bool = False
        self._handle: Any = None

    @property
    def interval(self) -> float:
        """Seconds between steps at the current speed level."""
        return INTERVAL_MS[self.speed_level] / 1000

    def play(self) -> None:
        """Start scrolling from the current position."""
        if self.playing:
            return
        self.playing = True
        self.controller.stop()
        self._handle = self.scheduler.schedule(self._step, self.interval)
        logger.info("Auto-scroll playing at level %d", self.speed_level)

    def pause(self) -> None:
        """Stop scrolling, leaving the view where it is."""
        if self._handle is not None:
            self.scheduler.cancel(self._handle)
            self._handle = None
        if self.playing:
            logger.info("Auto-scroll paused")
        self.playing = False

    def toggle(self) -> bool:
        """Play if paused, pause if playing. Returns the new playing state."""
        if self.playing:
            self.pause()
        else:
            self.play()
        return self.playing

    def set_speed_level(self, level: int) -> None:
        """Change speed; takes effect from the next step."""
        self.speed_level = clamp_level(level)

    def _step(self) -> None:
        self._handle = None
        if not self.playing:
            return

        self.controller.jump_to(self.controller.current + 1)

        client_height, content_height = self.bounds()
        if content_height - self.controller.current <= client_height + END_TOLERANCE:
            self.pause()
            self.controller.jump_to(0.0)
            logger.info("Auto-scroll reached the end, rewound to top")
            if self.on_stop is not None:
                self.on_stop()
            return

        self._handle = self.scheduler.schedule(self._step, self.interval)
