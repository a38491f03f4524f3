# Copyright © 2025 Ed Nutting
# SPDX-License-Identifier: MIT
# See LICENSE file for details

"""
Main SpeechCreek application.
Wires speech recognition, the sync orchestrator and the web UI together.
"""

import argparse
import asyncio
import contextlib
import logging
import signal
from pathlib import Path

from .audio import list_devices
from .config import (
    DEFAULT_CONFIG,
    Config,
    RecognitionSettings,
    SyncConfig,
    get_config_path,
    get_recognition_settings,
    get_sync_config,
    load_config,
    save_config,
)
from .recognizer import VoskRecognizer, download_model
from .scroll import AsyncioFrameScheduler
from .server import WebServer
from .sync import SyncOrchestrator

logger = logging.getLogger(__name__)


class SpeechCreekApp:
    """
    Main application that coordinates all components.
    """

    def __init__(
        self,
        host: str = "127.0.0.1",
        port: int = 8000,
        audio_device: int | None = None,
        chunk_ms: int = 100,
        recognition_settings: RecognitionSettings | None = None,
        sync_config: SyncConfig | None = None,
        script_path: Path | None = None
    ) -> None:
        self.host: str = host
        self.port: int = port
        self.audio_device: int | None = audio_device
        self.chunk_ms: int = chunk_ms
        self.recognition_settings: RecognitionSettings = (
            recognition_settings or DEFAULT_CONFIG["recognition"]  # type: ignore[assignment]
        )
        self.sync_config: SyncConfig = sync_config or SyncConfig()
        self.script_path: Path | None = script_path

        self.recognizer: VoskRecognizer | None = None
        self.sync: SyncOrchestrator | None = None
        self.server: WebServer | None = None

        self.running: bool = False
        self._stopped: asyncio.Event | None = None

    def build(self) -> SyncOrchestrator:
        """Create the recognizer, orchestrator and server."""
        self.recognizer = VoskRecognizer(
            language=self.recognition_settings.get("language", self.sync_config.language),
            model_path=self.recognition_settings.get("model_path"),
            sample_rate=self.recognition_settings.get("sample_rate", 16000),
            chunk_ms=self.chunk_ms,
            device=self.audio_device
        )
        self.sync = SyncOrchestrator(
            self.recognizer,
            AsyncioFrameScheduler(interval=self.sync_config.frame_interval),
            config=self.sync_config,
            auto_restart=self.recognition_settings.get("auto_restart", True)
        )
        self.server = WebServer(self.sync, host=self.host, port=self.port)
        return self.sync

    async def start(self) -> None:
        """Start the application and run until stopped."""
        print("Starting SpeechCreek...")
        sync: SyncOrchestrator = self.build()
        assert self.server is not None, "Server must be initialized"

        if self.script_path is not None:
            sync.load_script(self.script_path.read_text(encoding="utf-8"))
            print(f"Script loaded: {len(sync.paragraphs)} paragraphs")

        await self.server.start()
        self.running = True
        self._stopped = asyncio.Event()

        print("\n✓ SpeechCreek ready!")
        print(f"  Open http://{self.host}:{self.port} in your browser")
        print("  Press Ctrl+C to stop\n")

        await self._stopped.wait()

    def request_stop(self) -> None:
        """Ask start() to return."""
        self.running = False
        if self._stopped is not None:
            self._stopped.set()

    async def stop(self) -> None:
        """Stop the application, releasing the microphone."""
        print("\nStopping SpeechCreek...")
        self.running = False

        if self.sync:
            self.sync.end_session()

        if self.server:
            await self.server.stop()

        print("SpeechCreek stopped.")


def main() -> None:
    """Main entry point."""
    # Load config first to use as defaults
    config: Config = load_config()
    recognition: RecognitionSettings = get_recognition_settings(config)

    parser: argparse.ArgumentParser = argparse.ArgumentParser(
        description="SpeechCreek - Teleprompter that follows your voice"
    )

    parser.add_argument(
        "script",
        nargs="?",
        type=Path,
        help="Script file to load on start (optional)"
    )

    parser.add_argument(
        "--host",
        default=config.get("host", "127.0.0.1"),
        help="Web server host (default: from config or 127.0.0.1)"
    )

    parser.add_argument(
        "--port", "-p",
        type=int,
        default=config.get("port", 8000),
        help="Web server port (default: from config or 8000)"
    )

    parser.add_argument(
        "--device", "-d",
        type=int,
        default=config.get("audio_device"),
        help="Audio input device index"
    )

    parser.add_argument(
        "--list-devices",
        action="store_true",
        help="List available audio input devices and exit"
    )

    parser.add_argument(
        "--language", "-l",
        default=recognition.get("language", "en-US"),
        help="Recognition language tag (default: from config or en-US)"
    )

    parser.add_argument(
        "--model-path",
        default=recognition.get("model_path"),
        help="Path to custom Vosk model directory (optional)"
    )

    parser.add_argument(
        "--download-model",
        action="store_true",
        help="Download the model for --language and exit"
    )

    parser.add_argument(
        "--chunk-ms",
        type=int,
        default=config.get("chunk_ms", 100),
        help="Audio chunk size in milliseconds (default: from config or 100)"
    )

    parser.add_argument(
        "--save-config",
        action="store_true",
        help="Save current CLI options to config file and exit"
    )

    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Log sync decisions (matches, targets, speed changes)"
    )

    args: argparse.Namespace = parser.parse_args()

    logging.basicConfig(
        level=logging.WARNING,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S"
    )
    if args.verbose:
        logging.getLogger("speechcreek").setLevel(logging.DEBUG)

    # Handle special commands
    if args.list_devices:
        list_devices()
        return

    if args.download_model:
        print(f"Downloading model for: {args.language}")
        download_model(args.language)
        return

    recognition["language"] = args.language
    recognition["model_path"] = args.model_path
    config["recognition"] = recognition

    if args.save_config:
        config["host"] = args.host
        config["port"] = args.port
        config["audio_device"] = args.device
        config["chunk_ms"] = args.chunk_ms

        if save_config(config):
            print(f"Configuration saved to {get_config_path()}")
        return

    try:
        sync_config: SyncConfig = get_sync_config(config)
    except ValueError as e:
        parser.error(f"Invalid sync settings in {get_config_path()}: {e}")

    app: SpeechCreekApp = SpeechCreekApp(
        host=args.host,
        port=args.port,
        audio_device=args.device,
        chunk_ms=args.chunk_ms,
        recognition_settings=recognition,
        sync_config=sync_config,
        script_path=args.script
    )

    loop: asyncio.AbstractEventLoop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)

    def shutdown(sig: int, frame: object) -> None:
        """Handle shutdown signals (SIGINT, SIGTERM) gracefully."""
        print("\nReceived shutdown signal...")
        loop.call_soon_threadsafe(app.request_stop)

    signal.signal(signal.SIGINT, shutdown)
    signal.signal(signal.SIGTERM, shutdown)

    try:
        loop.run_until_complete(app.start())
    except KeyboardInterrupt:
        app.running = False
    finally:
        with contextlib.suppress(Exception):
            loop.run_until_complete(app.stop())
        pending: set[asyncio.Task[object]] = asyncio.all_tasks(loop)
        for task in pending:
            task.cancel()
        if pending:
            loop.run_until_complete(asyncio.gather(
                *pending, return_exceptions=True))
        loop.close()


if __name__ == "__main__":
    main()
