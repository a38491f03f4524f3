# Copyright © 2025 Ed Nutting
# SPDX-License-Identifier: MIT
# See LICENSE file for details

"""
Scroll motion control.

ScrollController owns the viewport position and eases it toward a target one
animation frame at a time. Each tick closes a fixed fraction of the remaining
distance (exponential convergence) and snaps once the step gets below half a
unit. Weak matches only nudge the view rather than jump it.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from collections.abc import Callable
from dataclasses import dataclass, replace
from enum import Enum
from typing import Any

from .config import SyncConfig
from .rate import DEFAULT_LEVEL, clamp_level, speed_factor

logger = logging.getLogger(__name__)

# Steps at or below this snap straight to the target
SNAP_DISTANCE: float = 0.5


class ScrollMode(Enum):
    """Animation state of the controller."""
    IDLE = "idle"
    ANIMATING = "animating"


@dataclass
class ScrollState:
    """Viewport position, the position it is heading to, and the mode."""
    current: float = 0.0
    target: float = 0.0
    mode: ScrollMode = ScrollMode.IDLE


class FrameScheduler(ABC):
    """Schedules callbacks at the host's frame cadence."""

    @abstractmethod
    def schedule(self, callback: Callable[[], None], delay: float | None = None) -> Any:
        """Run callback on the next frame (or after delay seconds).

        Returns:
            A handle for cancel()
        """

    @abstractmethod
    def cancel(self, handle: Any) -> None:
        """Cancel a scheduled callback. Cancelling twice is harmless."""


class AsyncioFrameScheduler(FrameScheduler):
    """Frame scheduler backed by the asyncio event loop."""

    def __init__(
        self,
        interval: float = 1 / 60,
        loop: asyncio.AbstractEventLoop | None = None
    ) -> None:
        self.interval: float = interval
        self._loop: asyncio.AbstractEventLoop | None = loop

    @property
    def loop(self) -> asyncio.AbstractEventLoop:
        """The loop ticks run on (the running loop unless one was given)."""
        if self._loop is None:
            self._loop = asyncio.get_running_loop()
        return self._loop

    def schedule(
        self,
        callback: Callable[[], None],
        delay: float | None = None
    ) -> asyncio.TimerHandle:
        return self.loop.call_later(self.interval if delay is None else delay, callback)

    def cancel(self, handle: asyncio.TimerHandle) -> None:
        handle.cancel()


class ScrollController:
    """
    Animates a single viewport toward confidence-gated targets.

    The controller is the only writer of its ScrollState. The caller clamps
    targets to the scrollable range; the controller does not know content
    bounds. Changing the target mid-animation reuses the running tick chain,
    so there is never more than one pending tick.
    """

    def __init__(
        self,
        scheduler: FrameScheduler,
        config: SyncConfig | None = None,
        on_scroll: Callable[[float], None] | None = None,
        position: float = 0.0
    ) -> None:
        """
        Initialize the controller.

        Args:
            scheduler: Frame scheduling primitive
            config: Tuning values (smoothness, thresholds, speed curve)
            on_scroll: Called with the new offset whenever it changes
            position: Initial viewport offset
        """
        self.scheduler: FrameScheduler = scheduler
        self.config: SyncConfig = config or SyncConfig()
        self.on_scroll: Callable[[float], None] | None = on_scroll
        self.speed_level: int = DEFAULT_LEVEL

        self._state: ScrollState = ScrollState(current=position, target=position)
        self._handle: Any = None

    @property
    def state(self) -> ScrollState:
        """A copy of the current scroll state."""
        return replace(self._state)

    @property
    def current(self) -> float:
        return self._state.current

    @property
    def target(self) -> float:
        return self._state.target

    @property
    def mode(self) -> ScrollMode:
        return self._state.mode

    @property
    def is_animating(self) -> bool:
        return self._state.mode is ScrollMode.ANIMATING

    def set_target(self, position: float, confidence: float) -> None:
        """
        Head toward a position, trusting it in proportion to confidence.

        At or above min_confidence the position becomes the target. Below it
        the view is nudged toward the position by at most
        max_low_confidence_adjustment (or left alone under the "suppress"
        policy).

        Args:
            position: Desired offset, already clamped by the caller
            confidence: Match confidence (0-1)
        """
        current: float = self._state.current
        min_confidence: float = self.config.min_confidence

        if confidence >= min_confidence:
            self._state.target = position
        elif self.config.low_confidence_policy == "suppress":
            logger.debug("Ignoring low confidence target %.1f (%.2f)", position, confidence)
            return
        else:
            adjustment: float = (position - current) * (confidence / min_confidence)
            limit: float = self.config.max_low_confidence_adjustment
            adjustment = max(-limit, min(limit, adjustment))
            self._state.target = current + adjustment
            logger.debug(
                "Low confidence (%.2f): nudging %.1f toward %.1f",
                confidence, adjustment, position
            )

        if self._state.mode is ScrollMode.IDLE and self._state.target != current:
            self._state.mode = ScrollMode.ANIMATING
            self._handle = self.scheduler.schedule(self._tick)

    def set_speed_level(self, level: int, max_position: float | None = None) -> None:
        """
        Project the target ahead by the speed curve for a level (1-5).

        Args:
            level: Speed level, clamped to 1-5
            max_position: Largest scroll offset the view can reach, if known
        """
        self.speed_level = clamp_level(level)
        projected: float = self._state.current + speed_factor(
            self.speed_level,
            base=self.config.speed_base,
            distance=self.config.speed_distance
        )
        if max_position is not None:
            projected = min(max(projected, 0.0), max_position)
        logger.debug("Speed level %d: projecting to %.1f", self.speed_level, projected)
        self.set_target(projected, 1.0)

    def stop(self) -> None:
        """Cancel the pending tick and freeze the view where it is."""
        if self._handle is not None:
            self.scheduler.cancel(self._handle)
            self._handle = None
        if self._state.mode is ScrollMode.ANIMATING:
            logger.debug("Scroll stopped at %.1f", self._state.current)
        self._state.mode = ScrollMode.IDLE

    def jump_to(self, position: float) -> None:
        """Stop and move straight to a position (manual scroll or rewind)."""
        self.stop()
        changed: bool = position != self._state.current
        self._state.current = position
        self._state.target = position
        if changed:
            self._notify()

    def _tick(self) -> None:
        """Advance one frame toward the target."""
        self._handle = None
        if self._state.mode is not ScrollMode.ANIMATING:
            return

        step: float = (self._state.target - self._state.current) * (1 - self.config.smoothness)
        if abs(step) > SNAP_DISTANCE:
            self._state.current += step
            self._handle = self.scheduler.schedule(self._tick)
        else:
            self._state.current = self._state.target
            self._state.mode = ScrollMode.IDLE
            logger.debug("Scroll settled at %.1f", self._state.current)
        self._notify()

    def _notify(self) -> None:
        if self.on_scroll is not None:
            self.on_scroll(self._state.current)
