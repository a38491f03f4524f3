# Copyright © 2025 Ed Nutting
# SPDX-License-Identifier: MIT
# See LICENSE file for details

"""
Web server for the SpeechCreek interface.
Serves the prompter page and bridges it to the sync orchestrator over a
WebSocket: the page reports its layout and manual scrolling, the server
pushes scroll offsets and highlight state back.
"""

import asyncio
import contextlib
import json
import logging
import math
from collections.abc import Awaitable, Callable, Sequence
from pathlib import Path
from typing import Any

import markdown
from aiohttp import web

from .segmenter import Paragraph
from .sync import SyncOrchestrator, SyncSnapshot

logger = logging.getLogger(__name__)

MessageHandler = Callable[[web.WebSocketResponse, dict[str, Any]], Awaitable[None]]


def render_paragraphs(paragraphs: Sequence[Paragraph]) -> list[dict[str, object]]:
    """Render each paragraph's Markdown to HTML for display."""
    return [
        {
            "index": p.index,
            "text": p.text,
            "html": markdown.markdown(p.text, extensions=['nl2br', 'sane_lists']),
        }
        for p in paragraphs
    ]


def _as_float(value: object, default: float = 0.0) -> float:
    """Coerce a JSON value to a finite float, falling back to default."""
    if isinstance(value, bool):
        return default
    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str):
        try:
            number = float(value)
        except ValueError:
            return default
    else:
        return default
    # NaN and infinities would poison offsets and level conversion
    return number if math.isfinite(number) else default


class WebServer:
    """
    Serves the prompter page and manages WebSocket connections.
    """

    def __init__(
        self,
        sync: SyncOrchestrator,
        host: str = "127.0.0.1",
        port: int = 8000
    ) -> None:
        self.sync: SyncOrchestrator = sync
        self.host: str = host
        self.port: int = port
        self.app: web.Application = web.Application()
        self.websockets: set[web.WebSocketResponse] = set()
        self.runner: web.AppRunner | None = None
        self._pending: set[asyncio.Task[None]] = set()

        sync.on_change = self.publish_state
        sync.on_scroll = self.publish_scroll

        self._setup_routes()

    def _setup_routes(self) -> None:
        """Set up HTTP routes."""
        self.app.router.add_get('/', self._handle_index)
        self.app.router.add_get('/ws', self._handle_websocket)
        self.app.router.add_post('/script', self._handle_script_upload)
        self.app.router.add_get('/state', self._handle_get_state)

    async def _handle_index(self, request: web.Request) -> web.Response:
        """Serve the main HTML page."""
        return web.Response(text=self._get_html(), content_type='text/html')

    async def _handle_websocket(self, request: web.Request) -> web.WebSocketResponse:
        """Handle WebSocket connections for real-time updates."""
        ws = web.WebSocketResponse()
        await ws.prepare(request)
        self.websockets.add(ws)
        logger.info("WebSocket connected. Total: %d", len(self.websockets))

        try:
            await ws.send_json({
                "type": "init",
                "paragraphs": render_paragraphs(self.sync.paragraphs),
                "state": self.sync.state().to_dict(),
            })

            async for msg in ws:
                if msg.type == web.WSMsgType.TEXT:
                    try:
                        data = json.loads(msg.data)
                    except json.JSONDecodeError:
                        logger.warning("Ignoring malformed WebSocket message")
                        continue
                    if isinstance(data, dict):
                        await self._handle_ws_message(ws, data)
                elif msg.type == web.WSMsgType.ERROR:
                    logger.warning("WebSocket error: %s", ws.exception())
        finally:
            self.websockets.discard(ws)
            logger.info("WebSocket disconnected. Total: %d", len(self.websockets))

        return ws

    async def _handle_ws_message(self, ws: web.WebSocketResponse, data: dict[str, Any]) -> None:
        """Handle incoming WebSocket messages using dispatch pattern."""
        msg_type: object = data.get("type")
        if not msg_type:
            return

        handlers: dict[str, MessageHandler] = {
            "script": self._on_script_message,
            "layout": self._on_layout_message,
            "scroll": self._on_scroll_message,
            "start_listening": self._on_start_listening_message,
            "stop_listening": self._on_stop_listening_message,
            "end_session": self._on_end_session_message,
            "play": self._on_play_message,
            "pause": self._on_pause_message,
            "speed": self._on_speed_message,
        }

        handler: MessageHandler | None = handlers.get(str(msg_type))
        if handler:
            await handler(ws, data)
        else:
            logger.warning("Unhandled WebSocket message: %s", msg_type)

    async def _on_script_message(self, _ws: web.WebSocketResponse, data: dict[str, Any]) -> None:
        """Handle script update message."""
        self.sync.load_script(str(data.get("text", "")))
        await self.send_script()

    async def _on_layout_message(self, _ws: web.WebSocketResponse, data: dict[str, Any]) -> None:
        """Handle viewport measurements from the page."""
        offsets_raw: object = data.get("paragraphOffsets")
        offsets: list[float] | None = None
        if isinstance(offsets_raw, list):
            offsets = [_as_float(o) for o in offsets_raw]
        self.sync.update_layout(
            client_height=_as_float(data.get("clientHeight")),
            content_height=_as_float(data.get("contentHeight")),
            paragraph_offsets=offsets
        )

    async def _on_scroll_message(self, _ws: web.WebSocketResponse, data: dict[str, Any]) -> None:
        """Handle a manual scroll by the user."""
        self.sync.report_scroll(_as_float(data.get("offset")))

    async def _on_start_listening_message(
        self,
        _ws: web.WebSocketResponse,
        _data: dict[str, Any]
    ) -> None:
        self.sync.start_listening()

    async def _on_stop_listening_message(
        self,
        _ws: web.WebSocketResponse,
        _data: dict[str, Any]
    ) -> None:
        self.sync.stop_listening()

    async def _on_end_session_message(
        self,
        _ws: web.WebSocketResponse,
        _data: dict[str, Any]
    ) -> None:
        self.sync.end_session()

    async def _on_play_message(self, _ws: web.WebSocketResponse, _data: dict[str, Any]) -> None:
        self.sync.play()

    async def _on_pause_message(self, _ws: web.WebSocketResponse, _data: dict[str, Any]) -> None:
        self.sync.pause()

    async def _on_speed_message(self, _ws: web.WebSocketResponse, data: dict[str, Any]) -> None:
        """Handle a play-mode speed change from the slider."""
        self.sync.set_play_speed(int(_as_float(data.get("level"), 2)))

    async def _handle_script_upload(self, request: web.Request) -> web.Response:
        """Handle script upload via POST (plain text or {"text": ...})."""
        if request.content_type == 'application/json':
            try:
                body: object = await request.json()
            except json.JSONDecodeError:
                return web.json_response({"error": "Invalid JSON"}, status=400)
            text = str(body.get("text", "")) if isinstance(body, dict) else ""
        else:
            text = await request.text()

        paragraphs = self.sync.load_script(text)
        await self.send_script()
        return web.json_response({"paragraphs": len(paragraphs)})

    async def _handle_get_state(self, _request: web.Request) -> web.Response:
        """Return the current presentation state."""
        return web.json_response(self.sync.state().to_dict())

    async def broadcast(self, message: dict[str, object]) -> None:
        """Send a message to all connected WebSocket clients."""
        if not self.websockets:
            return

        dead: set[web.WebSocketResponse] = set()
        # Other broadcasts may add or prune clients while this one awaits
        for ws in list(self.websockets):
            try:
                await ws.send_json(message)
            except (ConnectionError, RuntimeError) as e:
                logger.warning("Error sending to WebSocket: %s", e)
                dead.add(ws)

        self.websockets -= dead

    async def send_script(self) -> None:
        """Send the current paragraphs to all clients."""
        await self.broadcast({
            "type": "script",
            "paragraphs": render_paragraphs(self.sync.paragraphs),
        })

    def publish_state(self, snapshot: SyncSnapshot) -> None:
        """Queue a state broadcast (called synchronously by the orchestrator)."""
        self._schedule({"type": "state", "state": snapshot.to_dict()})

    def publish_scroll(self, offset: float) -> None:
        """Queue a scroll offset broadcast (called on every animation tick)."""
        self._schedule({"type": "scroll", "offset": offset})

    def _schedule(self, message: dict[str, object]) -> None:
        if not self.websockets:
            return
        task = asyncio.get_running_loop().create_task(self.broadcast(message))
        self._pending.add(task)
        task.add_done_callback(self._on_broadcast_done)

    def _on_broadcast_done(self, task: asyncio.Task[None]) -> None:
        self._pending.discard(task)
        if task.cancelled():
            return
        error: BaseException | None = task.exception()
        if error is not None:
            logger.error("Broadcast failed: %s", error, exc_info=error)

    async def start(self) -> None:
        """Start the web server."""
        self.runner = web.AppRunner(self.app)
        await self.runner.setup()
        site: web.TCPSite = web.TCPSite(self.runner, self.host, self.port)
        await site.start()
        print(f"Web server running at http://{self.host}:{self.port}")

    async def stop(self) -> None:
        """Stop the web server."""
        for ws in list(self.websockets):
            with contextlib.suppress(Exception):
                await ws.close()
        self.websockets.clear()

        if self.runner:
            await self.runner.cleanup()

    def _get_html(self) -> str:
        """Load and return the HTML for the prompter page from static/index.html."""
        static_dir: Path = Path(__file__).parent / "static"
        html_path: Path = static_dir / "index.html"
        return html_path.read_text(encoding="utf-8")
