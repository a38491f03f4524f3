# Copyright © 2025 Ed Nutting
# SPDX-License-Identifier: MIT
# See LICENSE file for details

"""Tests for the Vosk recognizer, with the model and microphone mocked out."""

import asyncio
import json
import tempfile
import zipfile
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest

from speechcreek.errors import RecognitionUnsupported
from speechcreek.recognition import (
    RecognitionEnded,
    RecognitionFailed,
    RecognitionResult,
    RecognitionStarted,
)

from speechcreek.recognizer import VoskRecognizer, download_model, model_dir_for


def _final(text, confs=None):
    words = [{"word": w, "conf": c} for w, c in zip(text.split(), confs or [])]
    return json.dumps({"text": text, "result": words})


class TestProcessAudio:
    """Test turning Vosk output into recognition results."""

    def test_final_result_with_confidence(self):
        kaldi = MagicMock()
        kaldi.AcceptWaveform.return_value = True
        kaldi.Result.return_value = _final("hello there", [0.8, 1.0])

        result = VoskRecognizer().process_audio(kaldi, b"\x00\x00")
        assert isinstance(result, RecognitionResult)
        assert result.transcript == "hello there"
        assert result.is_final is True
        assert result.confidence == pytest.approx(0.9)

    def test_final_result_without_word_confidence(self):
        kaldi = MagicMock()
        kaldi.AcceptWaveform.return_value = True
        kaldi.Result.return_value = json.dumps({"text": "hello"})

        result = VoskRecognizer().process_audio(kaldi, b"\x00\x00")
        assert result.confidence == 1.0

    def test_partial_result(self):
        kaldi = MagicMock()
        kaldi.AcceptWaveform.return_value = False
        kaldi.PartialResult.return_value = json.dumps({"partial": "hello th"})

        result = VoskRecognizer().process_audio(kaldi, b"\x00\x00")
        assert result.transcript == "hello th"
        assert result.is_final is False

    def test_empty_results_ignored(self):
        kaldi = MagicMock()
        kaldi.AcceptWaveform.return_value = False
        kaldi.PartialResult.return_value = json.dumps({"partial": ""})
        assert VoskRecognizer().process_audio(kaldi, b"\x00\x00") is None

    @pytest.mark.parametrize("accepted", [True, False])
    def test_lone_the_is_ignored(self, accepted):
        """Vosk emits a stray "the" on silence."""
        kaldi = MagicMock()
        kaldi.AcceptWaveform.return_value = accepted
        kaldi.Result.return_value = _final("the")
        kaldi.PartialResult.return_value = json.dumps({"partial": "The"})
        assert VoskRecognizer().process_audio(kaldi, b"\x00\x00") is None


class TestModelLoading:
    """Test model lookup failures surface as unsupported recognition."""

    def test_missing_model_path(self):
        recognizer = VoskRecognizer(model_path="/nonexistent/vosk-model")
        with pytest.raises(RecognitionUnsupported):
            recognizer.start()
        assert recognizer.is_running is False

    def test_unknown_language(self):
        recognizer = VoskRecognizer(language="xx-XX")
        with pytest.raises(RecognitionUnsupported):
            recognizer.start()

    def test_model_dir_for(self):
        path = model_dir_for("en-GB", Path("/models"))
        assert path == Path("/models/vosk-model-small-en-gb-0.15")
        with pytest.raises(ValueError):
            model_dir_for("xx-XX")


class TestDownloadModel:
    """Test model download and extraction."""

    def test_download_skips_if_exists(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            model_path = model_dir_for("en-US", Path(tmpdir))
            model_path.mkdir()

            with patch("urllib.request.urlretrieve") as mock_retrieve:
                result = download_model("en-US", tmpdir)

            assert result == str(model_path)
            mock_retrieve.assert_not_called()

    def test_download_extracts_archive(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            archive_path = Path(tmpdir) / "model.zip"
            with zipfile.ZipFile(archive_path, "w") as zf:
                zf.writestr("vosk-model-small-en-us-0.15/README", "model")

            def mock_urlretrieve(url, filename, hook=None):
                Path(filename).write_bytes(archive_path.read_bytes())
                return filename, None

            stages = []
            cache_dir = Path(tmpdir) / "cache"
            with patch("urllib.request.urlretrieve", side_effect=mock_urlretrieve):
                result = download_model(
                    "en-US", str(cache_dir),
                    progress_callback=lambda stage, pct: stages.append(stage)
                )

            assert (Path(result) / "README").read_text() == "model"
            assert stages[-1] == "complete"


class TestRecognitionLoop:
    """Test the event sequence of a listening session."""

    @pytest.fixture
    def mocked(self):
        with patch("speechcreek.recognizer.AudioCapture") as audio_cls, \
                patch("speechcreek.recognizer.KaldiRecognizer") as kaldi_cls, \
                patch.object(VoskRecognizer, "_load_model", return_value=MagicMock()):
            audio_cls.return_value.get_chunk.return_value = None
            yield audio_cls.return_value, kaldi_cls.return_value

    @pytest.mark.asyncio
    async def test_start_and_stop(self, mocked):
        audio, _ = mocked
        events = []
        recognizer = VoskRecognizer()
        recognizer.set_listener(events.append)

        recognizer.start()
        assert recognizer.is_running
        audio.start.assert_called_once()

        await asyncio.sleep(0.01)
        recognizer.stop()
        assert not recognizer.is_running
        audio.stop.assert_called_once()
        assert [type(e) for e in events] == [RecognitionStarted, RecognitionEnded]

    @pytest.mark.asyncio
    async def test_results_are_emitted(self, mocked):
        audio, kaldi = mocked
        audio.get_chunk.return_value = b"\x00\x00"
        kaldi.AcceptWaveform.return_value = False
        kaldi.PartialResult.return_value = json.dumps({"partial": "good evening"})

        events = []
        recognizer = VoskRecognizer()
        recognizer.set_listener(events.append)
        recognizer.start()
        for _ in range(100):
            if any(isinstance(e, RecognitionResult) for e in events):
                break
            await asyncio.sleep(0.01)
        recognizer.stop()

        results = [e for e in events if isinstance(e, RecognitionResult)]
        assert results[0].transcript == "good evening"
        assert results[0].is_final is False

    @pytest.mark.asyncio
    async def test_decoder_error_reports_failure(self, mocked):
        audio, kaldi = mocked
        audio.get_chunk.return_value = b"\x00\x00"
        kaldi.AcceptWaveform.side_effect = RuntimeError("decoder crashed")

        events = []
        recognizer = VoskRecognizer()
        recognizer.set_listener(events.append)
        recognizer.start()
        for _ in range(100):
            if not recognizer.is_running:
                break
            await asyncio.sleep(0.01)

        assert not recognizer.is_running
        assert [type(e) for e in events] == [
            RecognitionStarted, RecognitionFailed, RecognitionEnded
        ]
        assert events[1].code == "RuntimeError"
        assert "decoder crashed" in events[1].message
        audio.stop.assert_called_once()
