# Copyright © 2025 Ed Nutting
# SPDX-License-Identifier: MIT
# See LICENSE file for details

"""Tests for wiring the application together."""

from unittest.mock import patch

import pytest

from speechcreek.config import SyncConfig
from speechcreek.main import SpeechCreekApp


@pytest.fixture(autouse=True)
def no_devices():
    """Keep the microphone and Vosk model out of reach while wiring."""
    with patch("speechcreek.recognizer.AudioCapture") as audio_cls, \
            patch("speechcreek.recognizer.Model") as model_cls:
        yield audio_cls, model_cls


def test_build_wires_components(no_devices):
    """The recognizer feeds the orchestrator, which publishes through the server."""
    app = SpeechCreekApp(
        port=8765,
        chunk_ms=50,
        recognition_settings={
            "language": "en-GB",
            "model_path": None,
            "sample_rate": 16000,
            "auto_restart": False,
        },
        sync_config=SyncConfig(min_confidence=0.05, frame_interval=0.02),
    )
    sync = app.build()

    assert app.recognizer.language == "en-GB"
    assert app.recognizer.chunk_ms == 50
    assert sync.recognizer is app.recognizer
    assert sync.auto_restart is False
    assert sync.config.min_confidence == 0.05
    assert sync.controller.scheduler.interval == 0.02
    assert app.server.port == 8765
    assert sync.on_change == app.server.publish_state

    audio_cls, model_cls = no_devices
    audio_cls.assert_not_called()
    model_cls.assert_not_called()


def test_defaults(no_devices):
    app = SpeechCreekApp()
    sync = app.build()
    assert app.recognizer.language == "en-US"
    assert sync.config == SyncConfig()
    assert sync.voice_enabled is True
