# Copyright © 2025 Ed Nutting
# SPDX-License-Identifier: MIT
# See LICENSE file for details

"""
Speech recognition contract.

Recognizers report what they hear as typed events delivered to a single
listener; the sync orchestrator is that listener. This module defines the
events and the interface every recognizer implements.
"""

import time
from abc import ABC, abstractmethod
from collections.abc import Callable
from dataclasses import dataclass, field

from .errors import RecognitionError


@dataclass(frozen=True)
class TranscriptFragment:
    """A unit of recognized speech, interim or final."""
    text: str
    is_final: bool
    timestamp: float  # time.monotonic() seconds


@dataclass(frozen=True)
class RecognitionStarted:
    """The recognizer began listening."""
    timestamp: float = field(default_factory=time.monotonic)


@dataclass(frozen=True)
class RecognitionResult:
    """Recognized speech; interim results may be revised by later ones."""
    transcript: str
    is_final: bool
    confidence: float = 1.0
    timestamp: float = field(default_factory=time.monotonic)

    def __repr__(self) -> str:
        status: str = "final" if self.is_final else "interim"
        return f"RecognitionResult({status}: '{self.transcript}')"

    @property
    def fragment(self) -> TranscriptFragment:
        return TranscriptFragment(self.transcript, self.is_final, self.timestamp)


@dataclass(frozen=True)
class RecognitionFailed:
    """The recognizer hit a runtime error and stopped listening."""
    code: str
    message: str = ""

    @classmethod
    def from_error(cls, error: RecognitionError) -> 'RecognitionFailed':
        return cls(code=error.code, message=str(error))


@dataclass(frozen=True)
class RecognitionEnded:
    """The recognizer stopped, on request or on its own."""
    timestamp: float = field(default_factory=time.monotonic)


RecognitionEvent = RecognitionStarted | RecognitionResult | RecognitionFailed | RecognitionEnded

EventListener = Callable[[RecognitionEvent], None]


class Recognizer(ABC):
    """Base interface for speech recognizers.

    Recognizers run continuously with interim results enabled, and deliver
    events on the event loop thread so the listener never runs concurrently
    with itself.
    """

    language: str = "en-US"

    def __init__(self) -> None:
        self._listener: EventListener | None = None

    def set_listener(self, listener: EventListener | None) -> None:
        """Register the callback that receives recognition events."""
        self._listener = listener

    def emit(self, event: RecognitionEvent) -> None:
        """Deliver an event to the listener, if any."""
        if self._listener is not None:
            self._listener(event)

    @property
    @abstractmethod
    def is_running(self) -> bool:
        """Whether the recognizer is currently listening."""

    @abstractmethod
    def start(self) -> None:
        """
        Start listening.

        Raises:
            RecognitionUnsupported: If the host cannot recognize speech
        """

    @abstractmethod
    def stop(self) -> None:
        """Stop listening; a RecognitionEnded event follows."""
