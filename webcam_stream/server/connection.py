"""
Client Connection - one WebSocket peer and the streams it controls.

Every connection owns a private EventChannel, SessionRegistry and
DeviceEnumerator, so two browsers never share or stop each other's
streams. Channel events are converted to JSON and queued; a single sender
task drains the queue onto the socket.
"""

from __future__ import annotations

import asyncio
from typing import Any, Dict, Optional

from aiohttp import WSMsgType, web

from webcam_stream.core.asyncio_utils import cancel_tasks, create_logged_task
from webcam_stream.core.logging_utils import get_module_logger
from webcam_stream.server import protocol
from webcam_stream.stream.enumerator import DeviceEnumerator
from webcam_stream.stream.events import EventChannel, EventKind, FrameEvent, StreamEvent
from webcam_stream.stream.registry import SessionRegistry

# Frames are dropped while this many messages wait for a slow client
MAX_QUEUED_MESSAGES = 64


class ClientConnection:

    def __init__(
        self,
        ws: web.WebSocketResponse,
        registry: SessionRegistry,
        enumerator: DeviceEnumerator,
        *,
        name: str = "client",
    ) -> None:
        self.ws = ws
        self.registry = registry
        self.enumerator = enumerator
        self.channel: EventChannel = registry.channel
        self.logger = get_module_logger("WebcamServer").getChild(name)
        self.frames_dropped = 0

        self._outbox: "asyncio.Queue[Optional[Dict[str, Any]]]" = asyncio.Queue()
        self._sender_task: Optional[asyncio.Task] = None

        for kind in EventKind:
            self.channel.subscribe(kind, self._on_event)

    async def run(self) -> None:
        """Serve the socket until the peer goes away, then stop every stream."""
        self._sender_task = create_logged_task(
            self._send_loop(),
            logger=self.logger,
            context="ws-sender",
        )
        self.send(protocol.status_message("connected"))

        try:
            async for msg in self.ws:
                if msg.type == WSMsgType.TEXT:
                    await self.handle_message(msg.data)
                elif msg.type == WSMsgType.ERROR:
                    self.logger.error("WebSocket error: %s", self.ws.exception())
                    break
        finally:
            await self.close()

    async def close(self) -> None:
        self.registry.stop_all_streams()
        self.channel.clear()
        self._outbox.put_nowait(None)
        if self._sender_task is not None:
            try:
                await asyncio.wait_for(self._sender_task, timeout=1.0)
            except asyncio.TimeoutError:
                cancel_tasks((self._sender_task,))
            self._sender_task = None
        if self.frames_dropped:
            self.logger.info("Dropped %d frames for a slow client", self.frames_dropped)

    def send(self, message: Dict[str, Any]) -> None:
        self._outbox.put_nowait(message)

    async def handle_message(self, raw: str) -> None:
        try:
            message = protocol.parse_message(raw)
        except protocol.ProtocolError as exc:
            self.send(protocol.error_message(str(exc)))
            return

        kind = message.get("type")
        device_id = protocol.device_id_of(message)

        if kind == protocol.MSG_LIST:
            devices = await self.enumerator.list_devices()
            self.send({"type": protocol.MSG_DEVICES, "devices": [d.to_dict() for d in devices]})
        elif kind == protocol.MSG_START:
            if device_id:
                resolution = message.get("resolution") or None
                await self.registry.start_stream(
                    device_id,
                    resolution=resolution if isinstance(resolution, str) else None,
                    frame_rate=protocol.frame_rate_of(message),
                )
        elif kind == protocol.MSG_STOP:
            if device_id:
                self.registry.stop_stream(device_id)
        elif kind == protocol.MSG_RESOLUTION:
            resolution = message.get("resolution")
            if device_id and isinstance(resolution, str) and resolution:
                frame_rate = protocol.frame_rate_of(message)
                self.logger.info(
                    "Resolution change requested: %s -> %s%s",
                    device_id,
                    resolution,
                    f" @ {frame_rate}fps" if frame_rate else "",
                )
                await self.registry.set_resolution(device_id, resolution, frame_rate)
        else:
            self.send(protocol.error_message(f"Unknown message type: {kind}"))

    def _on_event(self, event: StreamEvent) -> None:
        if isinstance(event, FrameEvent) and self._outbox.qsize() >= MAX_QUEUED_MESSAGES:
            self.frames_dropped += 1
            return
        self.send(protocol.event_to_message(event))

    async def _send_loop(self) -> None:
        while True:
            message = await self._outbox.get()
            if message is None:
                return
            if self.ws.closed:
                continue
            try:
                await self.ws.send_json(message)
            except ConnectionResetError as exc:
                self.logger.debug("Send failed, peer gone: %s", exc)
                return


__all__ = ["ClientConnection", "MAX_QUEUED_MESSAGES"]
