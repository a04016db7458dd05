"""
Webcam Server - aiohttp WebSocket endpoint for live webcam streams.

Clients connect to ``/ws``, list capture devices and start or stop
streams; frames come back as base64 JPEG inside JSON messages. ``/health``
reports liveness and the number of connected clients.
"""

from __future__ import annotations

import itertools
from typing import Optional, Set

from aiohttp import web

from webcam_stream.app.config import AppConfig
from webcam_stream.core.logging_utils import get_module_logger
from webcam_stream.server.connection import ClientConnection
from webcam_stream.stream.backends import CaptureBackend, get_backend
from webcam_stream.stream.enumerator import DeviceEnumerator
from webcam_stream.stream.events import EventChannel
from webcam_stream.stream.process import CaptureProcess
from webcam_stream.stream.registry import SessionRegistry, Spawner

logger = get_module_logger("WebcamServer")


class WebcamServer:
    """
    WebSocket server for webcam streaming.

    Runs on its own port so webcam traffic is isolated from anything else
    the host serves. Each connection gets an independent SessionRegistry;
    closing the socket stops every stream that connection started.
    """

    def __init__(
        self,
        config: Optional[AppConfig] = None,
        *,
        backend: Optional[CaptureBackend] = None,
        spawner: Spawner = CaptureProcess.spawn,
    ):
        """
        Initialize the webcam server.

        Args:
            config: Application configuration (host, port, capture defaults)
            backend: Capture backend; chosen from ``config.input_format`` if omitted
            spawner: Coroutine that starts a capture command (replaced in tests)
        """
        self.config = config or AppConfig()
        self.backend = backend or get_backend(self.config.input_format)
        self.spawner = spawner

        self._app: Optional[web.Application] = None
        self._runner: Optional[web.AppRunner] = None
        self._site: Optional[web.TCPSite] = None
        self._running = False
        self._connections: Set[ClientConnection] = set()
        self._ids = itertools.count(1)

    def create_app(self) -> web.Application:
        """Create and configure the aiohttp application."""
        app = web.Application()
        app["webcam_server"] = self
        app.router.add_get("/ws", self.handle_websocket)
        app.router.add_get("/health", self.handle_health)
        app.on_shutdown.append(self._on_shutdown)
        return app

    def create_connection(self, ws: web.WebSocketResponse) -> ClientConnection:
        name = f"client-{next(self._ids)}"
        channel = EventChannel(name)
        registry = SessionRegistry(
            channel,
            settings=self.config.capture,
            backend=self.backend,
            ffmpeg_path=self.config.ffmpeg_path,
            max_buffer_bytes=self.config.max_buffer_bytes,
            spawner=self.spawner,
        )
        enumerator = DeviceEnumerator(channel, backend=self.backend, ffmpeg_path=self.config.ffmpeg_path)
        return ClientConnection(ws, registry, enumerator, name=name)

    async def handle_websocket(self, request: web.Request) -> web.WebSocketResponse:
        ws = web.WebSocketResponse()
        await ws.prepare(request)

        connection = self.create_connection(ws)
        self._connections.add(connection)
        logger.info("Client connected (%d total)", len(self._connections))
        try:
            await connection.run()
        finally:
            self._connections.discard(connection)
            logger.info("Client disconnected (%d remaining)", len(self._connections))
        return ws

    async def handle_health(self, request: web.Request) -> web.Response:
        return web.json_response({"status": "ok", "clients": len(self._connections)})

    async def _on_shutdown(self, app: web.Application) -> None:
        for connection in list(self._connections):
            connection.registry.stop_all_streams()
            await connection.ws.close()

    async def start(self) -> None:
        """Start the server (non-blocking)."""
        if self._running:
            logger.warning("Webcam server already running")
            return

        self._app = self.create_app()
        self._runner = web.AppRunner(self._app)
        await self._runner.setup()

        self._site = web.TCPSite(self._runner, self.config.host, self.config.port)
        await self._site.start()

        self._running = True
        logger.info("Webcam server running on ws://%s:%d/ws (%s)", self.config.host, self.config.port, self.backend.input_format)

    async def stop(self) -> None:
        """Stop the server, closing every client and its streams."""
        if not self._running:
            return

        logger.info("Stopping webcam server...")

        if self._site:
            await self._site.stop()
            self._site = None

        if self._runner:
            await self._runner.cleanup()
            self._runner = None

        self._app = None
        self._running = False

        logger.info("Webcam server stopped")

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def client_count(self) -> int:
        return len(self._connections)

    @property
    def url(self) -> str:
        return f"ws://{self.config.host}:{self.config.port}/ws"


__all__ = ["WebcamServer"]
