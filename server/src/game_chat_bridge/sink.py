"""Output sinks and renderers.

The bridge hands finished messages to an OutputSink:
- LogSink: writes deliveries to the log (no chat gateway configured)
- WebSocketSink: pushes deliveries to a chat gateway over WebSocket

Status updates go through a StatusRenderer first, which turns them into
a rich message and sends that through the sink.
"""

from __future__ import annotations

import asyncio
import contextlib
import json
import logging
from collections import deque
from typing import Any, Protocol

import websockets
from websockets.exceptions import ConnectionClosed, WebSocketException

from game_chat_bridge.models import StatusUpdate
from game_chat_bridge.render import StatusEmbed, render_status, render_status_text

logger = logging.getLogger(__name__)

# Chat platform limit for a plain message
MAX_MESSAGE_LENGTH = 2000


class SinkError(Exception):
    """Raised when a message cannot be accepted for delivery."""


class OutputSink(Protocol):
    """Delivers messages to output channels."""

    async def send(self, channel: str, payload: str | StatusEmbed) -> None:
        """Deliver a plain message or rich status message to a channel."""
        ...


class StatusRenderer(Protocol):
    """Displays status updates on output channels."""

    async def render(self, channel: str, update: StatusUpdate) -> None:
        """Render a status update and deliver it to a channel."""
        ...


def build_frame(channel: str, payload: str | StatusEmbed) -> dict[str, Any]:
    """Build the gateway frame for a delivery.

    Args:
        channel: Output channel identifier
        payload: Plain text or a rich status message

    Returns:
        JSON-serializable frame

    Raises:
        SinkError: If plain text is empty or exceeds the message limit
    """
    if isinstance(payload, StatusEmbed):
        return {"type": "embed", "channel": channel, "embed": payload.model_dump()}

    if not payload:
        raise SinkError("Refusing to send an empty message")
    if len(payload) > MAX_MESSAGE_LENGTH:
        raise SinkError(
            f"Message of {len(payload)} characters exceeds the "
            f"{MAX_MESSAGE_LENGTH} character limit"
        )
    return {"type": "message", "channel": channel, "content": payload}


class LogSink:
    """Sink that writes every delivery to the log.

    Keeps the frames it produced so callers can inspect what was sent.
    """

    def __init__(self, history_size: int = 50) -> None:
        self.sent: deque[dict[str, Any]] = deque(maxlen=history_size)

    async def send(self, channel: str, payload: str | StatusEmbed) -> None:
        frame = build_frame(channel, payload)
        self.sent.append(frame)
        if isinstance(payload, StatusEmbed):
            logger.info(f"[{channel}] status: {payload.title}")
        else:
            logger.info(f"[{channel}] {payload}")


class WebSocketSink:
    """Sink that pushes deliveries to a chat gateway over WebSocket.

    This client:
    - Connects to the gateway and keeps the connection open
    - Sends each delivery as a JSON frame
    - Queues frames while disconnected (up to max_queue_size, oldest dropped)
    - Reconnects after the connection is lost
    """

    def __init__(
        self,
        url: str,
        reconnect_delay_ms: int = 2000,
        max_queue_size: int = 100,
    ) -> None:
        """Initialize the WebSocket sink.

        Args:
            url: Gateway URL, e.g. ws://127.0.0.1:8765
            reconnect_delay_ms: Delay between reconnection attempts (milliseconds)
            max_queue_size: Maximum frames to queue while disconnected
        """
        self._url = url
        self._reconnect_delay_ms = reconnect_delay_ms
        self._max_queue_size = max_queue_size

        self._websocket: Any = None
        self._connection_task: asyncio.Task[None] | None = None
        self._stop_event: asyncio.Event | None = None
        self._queue: deque[dict[str, Any]] = deque(maxlen=max_queue_size)
        self._connected = False
        self._running = False

    @property
    def is_connected(self) -> bool:
        """Return True if the gateway connection is open."""
        return self._connected and self._websocket is not None

    @property
    def queued(self) -> int:
        """Number of frames waiting for a connection."""
        return len(self._queue)

    async def start(self) -> None:
        """Start connection loop (runs in background task)."""
        if self._running:
            logger.warning("WebSocketSink already running")
            return

        self._running = True
        self._stop_event = asyncio.Event()
        self._connection_task = asyncio.create_task(self._connection_loop())
        logger.info(f"Output sink starting, will connect to {self._url}")

    async def stop(self) -> None:
        """Stop connection loop and close the WebSocket."""
        if not self._running:
            return

        self._running = False

        if self._stop_event:
            self._stop_event.set()

        if self._websocket:
            try:
                await self._websocket.close()
            except Exception as e:
                logger.debug(f"Error closing WebSocket: {e}")
            self._websocket = None
            self._connected = False

        if self._connection_task:
            self._connection_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._connection_task
            self._connection_task = None

        logger.info("Output sink stopped")

    async def send(self, channel: str, payload: str | StatusEmbed) -> None:
        """Send a delivery, queueing it if the gateway is unreachable.

        Raises:
            SinkError: If the payload cannot be delivered at all
        """
        frame = build_frame(channel, payload)

        if self.is_connected:
            try:
                await self._websocket.send(json.dumps(frame))
                return
            except WebSocketException as e:
                logger.warning(f"Failed to send to gateway, queueing: {e}")

        if len(self._queue) == self._max_queue_size:
            logger.warning(
                f"Output queue full ({self._max_queue_size}), dropping oldest message"
            )
        self._queue.append(frame)
        logger.debug(f"Queued message for {channel} (queue size: {len(self._queue)})")

    async def _connection_loop(self) -> None:
        """Background task: maintain connection with reconnection backoff."""
        while self._running:
            try:
                logger.debug(f"Attempting to connect to {self._url}")
                self._websocket = await websockets.connect(self._url)
                self._connected = True
                logger.info(f"Connected to chat gateway at {self._url}")

                await self._flush_queue()

                # Gateway replies are not used; iterating detects disconnects
                try:
                    async for _ in self._websocket:
                        pass
                except ConnectionClosed:
                    logger.info("Chat gateway connection closed")

            except (OSError, asyncio.TimeoutError, WebSocketException) as e:
                logger.warning(f"Failed to connect to chat gateway at {self._url}: {e}")

            finally:
                self._connected = False
                self._websocket = None

            if not self._running:
                break

            # Wait before reconnecting (with early exit on stop)
            delay_seconds = self._reconnect_delay_ms / 1000.0
            try:
                if self._stop_event:
                    await asyncio.wait_for(
                        self._stop_event.wait(),
                        timeout=delay_seconds,
                    )
                    break
            except asyncio.TimeoutError:
                pass

    async def _flush_queue(self) -> None:
        """Send all queued frames."""
        while self._queue and self.is_connected:
            frame = self._queue.popleft()
            try:
                await self._websocket.send(json.dumps(frame))
                logger.debug("Sent queued message")
            except WebSocketException as e:
                logger.warning(f"Failed to send queued message: {e}")
                self._queue.appendleft(frame)
                break


class EmbedRenderer:
    """Renders status updates as rich messages and sends them to a sink."""

    def __init__(self, sink: OutputSink) -> None:
        self._sink = sink

    async def render(self, channel: str, update: StatusUpdate) -> None:
        embed = render_status(update)
        logger.debug(f"Rendered status for {channel}:\n{render_status_text(update)}")
        await self._sink.send(channel, embed)
