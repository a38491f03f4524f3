# Copyright © 2025 Ed Nutting
# SPDX-License-Identifier: MIT
# See LICENSE file for details

"""
Shared fixtures: a frame scheduler stepped by hand and a scripted recognizer.
"""

from collections.abc import Callable
from typing import Any

import pytest

from speechcreek.errors import RecognitionUnsupported
from speechcreek.recognition import (
    RecognitionEnded,
    RecognitionFailed,
    RecognitionResult,
    RecognitionStarted,
    Recognizer,
)
from speechcreek.scroll import FrameScheduler

SPEECH: str = """Good evening everyone, and welcome to the annual meeting.

Tonight we celebrate a remarkable year of growth.

Our engineers shipped seven major releases.

We shall fight on the beaches and never surrender.

Customers around the world trusted our platform.

Thank you all for listening so patiently."""

# Measured top offset of each paragraph of SPEECH
SPEECH_OFFSETS: list[float] = [0.0, 300.0, 600.0, 1000.0, 1400.0, 1800.0]


class ManualFrameScheduler(FrameScheduler):
    """Frame scheduler whose callbacks run only when the test says so."""

    def __init__(self) -> None:
        self.pending: dict[int, tuple[Callable[[], None], float | None]] = {}
        self._next_id: int = 0

    def schedule(self, callback: Callable[[], None], delay: float | None = None) -> int:
        self._next_id += 1
        self.pending[self._next_id] = (callback, delay)
        return self._next_id

    def cancel(self, handle: Any) -> None:
        self.pending.pop(handle, None)

    def next_delay(self) -> float | None:
        """Delay of the oldest pending callback."""
        return self.pending[min(self.pending)][1]

    def run_next(self) -> bool:
        """Run the oldest pending callback. Returns False if none was pending."""
        if not self.pending:
            return False
        callback, _ = self.pending.pop(min(self.pending))
        callback()
        return True

    def run_all(self, limit: int = 10000) -> int:
        """Run callbacks until none are pending. Returns how many ran."""
        count: int = 0
        while self.run_next():
            count += 1
            if count >= limit:
                raise AssertionError("Scheduler did not settle")
        return count


class FakeRecognizer(Recognizer):
    """Recognizer driven by the test, delivering events synchronously."""

    def __init__(self, unsupported: bool = False) -> None:
        super().__init__()
        self.unsupported: bool = unsupported
        self.running: bool = False
        self.start_calls: int = 0
        self.stop_calls: int = 0

    @property
    def is_running(self) -> bool:
        return self.running

    def start(self) -> None:
        self.start_calls += 1
        if self.unsupported:
            raise RecognitionUnsupported("No microphone available")
        self.running = True
        self.emit(RecognitionStarted(timestamp=0.0))

    def stop(self) -> None:
        self.stop_calls += 1
        if not self.running:
            return
        self.running = False
        self.emit(RecognitionEnded())

    def say(self, text: str, is_final: bool = False, timestamp: float = 1.0) -> None:
        self.emit(RecognitionResult(text, is_final=is_final, timestamp=timestamp))

    def finish(self) -> None:
        """End on its own, as engines do after a silence timeout."""
        self.running = False
        self.emit(RecognitionEnded())

    def fail(self, code: str) -> None:
        self.running = False
        self.emit(RecognitionFailed(code, f"Speech recognition error: {code}"))
        self.emit(RecognitionEnded())


@pytest.fixture
def scheduler() -> ManualFrameScheduler:
    return ManualFrameScheduler()


@pytest.fixture
def recognizer() -> FakeRecognizer:
    return FakeRecognizer()


@pytest.fixture
def unsupported_recognizer() -> FakeRecognizer:
    return FakeRecognizer(unsupported=True)


@pytest.fixture
def speech() -> str:
    return SPEECH


@pytest.fixture
def speech_offsets() -> list[float]:
    return list(SPEECH_OFFSETS)
