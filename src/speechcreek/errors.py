# Copyright © 2025 Ed Nutting
# SPDX-License-Identifier: MIT
# See LICENSE file for details

"""
Exceptions raised by SpeechCreek.

Match misses and unusable rate input are not errors: the matcher reports a
zero-confidence result and the rate estimator falls back to its default level.
"""


class SpeechCreekError(Exception):
    """Base class for all SpeechCreek errors."""


class RecognitionUnsupported(SpeechCreekError):
    """The host cannot do speech recognition (no input device or no model).

    Surfaced once; voice-driven sync is disabled and never retried.
    """


class RecognitionError(SpeechCreekError):
    """A runtime failure reported by the recognizer while listening."""

    def __init__(self, code: str, message: str | None = None) -> None:
        self.code: str = code
        super().__init__(message or f"Speech recognition error: {code}")
