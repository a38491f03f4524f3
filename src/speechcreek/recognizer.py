# Copyright © 2025 Ed Nutting
# SPDX-License-Identifier: MIT
# See LICENSE file for details

"""
Vosk speech recognizer.

Runs offline recognition on microphone audio and reports interim and final
results as recognition events. Blocking capture and decoding run in the
default executor; events are emitted from a task on the event loop.
"""

import asyncio
import json
import logging
import os
import tempfile
import urllib.request
import zipfile
from collections.abc import Callable
from pathlib import Path
from typing import Any

from vosk import KaldiRecognizer, Model, SetLogLevel

from .audio import AudioCapture
from .errors import RecognitionError, RecognitionUnsupported
from .recognition import (
    RecognitionEnded,
    RecognitionFailed,
    RecognitionResult,
    RecognitionStarted,
    Recognizer,
)

logger = logging.getLogger(__name__)

# Suppress Vosk's verbose logging
SetLogLevel(-1)

MODEL_CACHE_DIR: Path = Path.home() / ".cache" / "speechcreek" / "models"

# Small Vosk models by lower-cased language tag
MODELS: dict[str, dict[str, Any]] = {
    "en-us": {
        "dir": "vosk-model-small-en-us-0.15",
        "size_mb": 40,
        "url": "https://alphacephei.com/vosk/models/vosk-model-small-en-us-0.15.zip",
    },
    "en-gb": {
        "dir": "vosk-model-small-en-gb-0.15",
        "size_mb": 40,
        "url": "https://alphacephei.com/vosk/models/vosk-model-small-en-gb-0.15.zip",
    },
}


def model_dir_for(language: str, target_dir: Path | None = None) -> Path:
    """
    Get the directory a language's model is stored in.

    Raises:
        ValueError: If no model is known for the language
    """
    info: dict[str, Any] | None = MODELS.get(language.lower())
    if not info:
        raise ValueError(
            f"No Vosk model for language: {language}. "
            f"Choose from: {list(MODELS.keys())}"
        )
    return (target_dir or MODEL_CACHE_DIR) / info["dir"]


def download_model(
    language: str = "en-US",
    target_dir: str | None = None,
    progress_callback: Callable[[str, int], None] | None = None
) -> str:
    """
    Download the Vosk model for a language.

    Args:
        language: Language tag (e.g., "en-US")
        target_dir: Directory to save the model, or None for default
        progress_callback: Optional callback(stage, percent) for progress updates

    Returns:
        Path to the downloaded model as a string.
    """
    target_path: Path = Path(target_dir) if target_dir else MODEL_CACHE_DIR
    model_path: Path = model_dir_for(language, target_path)
    target_path.mkdir(parents=True, exist_ok=True)

    if model_path.exists():
        print(f"Model already exists at {model_path}")
        if progress_callback:
            progress_callback("complete", 100)
        return str(model_path)

    url: str = MODELS[language.lower()]["url"]
    print(f"Downloading {language} model from {url}...")

    with tempfile.NamedTemporaryFile(suffix=".zip", delete=False) as tmp:
        tmp_path = tmp.name
        if progress_callback:
            progress_callback("downloading", 0)

        def download_hook(block_count: int, block_size: int, total_size: int) -> None:
            if progress_callback and total_size > 0:
                downloaded = block_count * block_size
                percent = min(100, int((downloaded / total_size) * 100))
                progress_callback("downloading", percent)

        urllib.request.urlretrieve(url, tmp_path, download_hook)

    try:
        print("Extracting model...")
        if progress_callback:
            progress_callback("extracting", 0)
        with zipfile.ZipFile(tmp_path, "r") as zf:
            zf.extractall(target_path)
        if progress_callback:
            progress_callback("complete", 100)
    finally:
        try:
            os.unlink(tmp_path)
        except OSError as e:
            print(f"Warning: Could not delete temporary file {tmp_path}: {e}")

    print(f"Model installed to {model_path}")
    return str(model_path)


class VoskRecognizer(Recognizer):
    """Continuous microphone recognition with interim results."""

    def __init__(
        self,
        language: str = "en-US",
        model_path: str | None = None,
        sample_rate: int = 16000,
        chunk_ms: int = 100,
        device: int | None = None
    ) -> None:
        """
        Initialize the recognizer. The model is loaded on first start().

        Args:
            language: Language tag used to pick a downloaded model
            model_path: Custom model directory (overrides language)
            sample_rate: Audio sample rate (must match audio capture)
            chunk_ms: Audio chunk size in milliseconds
            device: Audio input device index, or None for default
        """
        super().__init__()
        self.language = language
        self.model_path: str | None = model_path
        self.sample_rate: int = sample_rate
        self.chunk_ms: int = chunk_ms
        self.device: int | None = device

        self.model: Model | None = None
        self.recognizer: KaldiRecognizer | None = None
        self.audio: AudioCapture | None = None
        self._task: asyncio.Task[None] | None = None

    @property
    def is_running(self) -> bool:
        return self._task is not None

    def _resolve_model_path(self) -> str:
        if self.model_path:
            return self.model_path
        try:
            return str(model_dir_for(self.language))
        except ValueError as e:
            raise RecognitionUnsupported(str(e)) from e

    def _load_model(self) -> Model:
        """Load (once) the Vosk model."""
        if self.model is not None:
            return self.model

        path: str = self._resolve_model_path()
        if not os.path.exists(path):
            raise RecognitionUnsupported(
                f"Vosk model not found at {path}. "
                f"Please download it with: speechcreek --download-model"
            )
        logger.info("Loading Vosk model from: %s", path)
        try:
            self.model = Model(path)
        except Exception as e:
            # Vosk reports a bad model directory with a plain Exception
            raise RecognitionUnsupported(f"Could not load Vosk model: {e}") from e
        return self.model

    def _new_recognizer(self, model: Model) -> KaldiRecognizer:
        recognizer = KaldiRecognizer(model, self.sample_rate)
        recognizer.SetWords(True)  # Per-word confidences
        return recognizer

    def start(self) -> None:
        """
        Start listening on the microphone.

        Must be called from the event loop thread.

        Raises:
            RecognitionUnsupported: No usable model or input device
        """
        if self.is_running:
            return

        model: Model = self._load_model()
        self.recognizer = self._new_recognizer(model)
        self.audio = AudioCapture(
            sample_rate=self.sample_rate,
            chunk_duration_ms=self.chunk_ms,
            device=self.device
        )
        self.audio.start()

        self._task = asyncio.get_running_loop().create_task(self._run())
        self.emit(RecognitionStarted())

    def stop(self) -> None:
        """Stop listening and release the microphone."""
        task: asyncio.Task[None] | None = self._task
        if task is None:
            return
        self._task = None
        task.cancel()
        self._close_audio()
        self.emit(RecognitionEnded())

    def _close_audio(self) -> None:
        if self.audio:
            self.audio.stop()
            self.audio = None

    async def _run(self) -> None:
        """Pull audio chunks and decode them until stopped or failing."""
        loop: asyncio.AbstractEventLoop = asyncio.get_running_loop()
        audio: AudioCapture | None = self.audio
        recognizer: KaldiRecognizer | None = self.recognizer
        assert audio is not None and recognizer is not None, "start() must run first"

        failure: RecognitionFailed | None = None
        try:
            while True:
                chunk: bytes | None = await loop.run_in_executor(None, audio.get_chunk, 0.05)
                if not chunk:
                    continue
                result: RecognitionResult | None = await loop.run_in_executor(
                    None, self.process_audio, recognizer, chunk
                )
                if result is not None:
                    self.emit(result)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error("Error in recognition loop: %s", e, exc_info=True)
            failure = RecognitionFailed.from_error(
                RecognitionError(type(e).__name__, f"Speech recognition error: {e}")
            )
        finally:
            # Only report the end here if stop() didn't already
            if self._task is asyncio.current_task():
                self._task = None
                self._close_audio()
                if failure is not None:
                    self.emit(failure)
                self.emit(RecognitionEnded())

    def process_audio(
        self,
        recognizer: KaldiRecognizer,
        audio_data: bytes
    ) -> RecognitionResult | None:
        """
        Feed an audio chunk to Vosk and return any result.

        Args:
            recognizer: The Kaldi recognizer for this session
            audio_data: Raw audio bytes (16-bit PCM, mono)

        Returns:
            Interim or final result, or None if nothing was recognized
        """
        if recognizer.AcceptWaveform(audio_data):
            result: dict[str, Any] = json.loads(recognizer.Result())
            text: str = result.get("text", "").strip()
            if text and not self._is_vosk_artifact(text):
                return RecognitionResult(
                    text, is_final=True, confidence=self._confidence(result)
                )
        else:
            partial: dict[str, Any] = json.loads(recognizer.PartialResult())
            text = partial.get("partial", "").strip()
            if text and not self._is_vosk_artifact(text):
                return RecognitionResult(text, is_final=False)

        return None

    @staticmethod
    def _confidence(result: dict[str, Any]) -> float:
        """Mean per-word confidence of a final result (1.0 if unreported)."""
        words: list[dict[str, Any]] = result.get("result", [])
        confs: list[float] = [float(w["conf"]) for w in words if "conf" in w]
        return sum(confs) / len(confs) if confs else 1.0

    @staticmethod
    def _is_vosk_artifact(text: str) -> bool:
        """Vosk sometimes returns a lone "the" when there's no valid sound input."""
        return text.lower() == "the"
