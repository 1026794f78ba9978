"""Connection gate for backend servers.

Provides:
- ConnectionState: Per-connection authentication state
- ConnectionGate: Async TCP server accepting one authenticated backend
  connection per configured server and forwarding its payloads

Connection lifecycle:
    Listening -> Connected (unauthenticated) -> Connected (authenticated) -> Closed

The first line of a connection must be "PASS <secret>". The gate answers
200 on success and 401 otherwise; failed attempts may be retried. After
authentication every received block of data is forwarded, except lines
starting with PASS, which are dropped so the secret never reaches a
chat channel.
"""

from __future__ import annotations

import asyncio
import codecs
import contextlib
import hmac
import logging
import re
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any, Protocol

from game_chat_bridge.config import ServerConnectionConfig
from game_chat_bridge.dispatcher import InboundMessage
from game_chat_bridge.protocol import (
    AUTH_COMMAND,
    AUTH_OK,
    AUTH_REJECTED,
    POLL_INTERVAL,
    READ_BUFFER_SIZE,
    is_auth_line,
    strip_line_endings,
)

logger = logging.getLogger(__name__)

_LINE_SPLIT = re.compile(r"(?<=\n)")


class MessageHandler(Protocol):
    """Receives payloads from authenticated connections."""

    async def dispatch(self, inbound: InboundMessage) -> None:
        """Process one inbound payload."""
        ...


class ConnectionTimeout(Exception):
    """Raised when a client stays silent longer than the idle timeout."""


@dataclass
class ConnectionState:
    """State of one accepted client connection.

    A new connection always starts unauthenticated. Once closed, a state
    object is never reused.
    """

    config: ServerConnectionConfig
    peer: Any
    writer: asyncio.StreamWriter
    authenticated: bool = False
    closed: bool = False


def drop_auth_lines(message: str) -> tuple[str, int]:
    """Remove lines starting with PASS from a payload.

    Args:
        message: Payload received after authentication

    Returns:
        The remaining payload and the number of lines removed
    """
    lines = [line for line in _LINE_SPLIT.split(message) if line]
    kept = [line for line in lines if not is_auth_line(line)]
    return "".join(kept), len(lines) - len(kept)


class ConnectionGate:
    """TCP listener for one configured backend server.

    Accepts connections on the server's port, runs the PASS handshake and
    forwards payloads to the message handler tagged with the server name
    and output channel. Only the most recent connection is served: when a
    new client connects, the previous connection is closed.
    """

    def __init__(
        self,
        config: ServerConnectionConfig,
        handler: MessageHandler,
        host: str = "0.0.0.0",
        idle_timeout: float | None = None,
    ) -> None:
        """Initialize the connection gate.

        Args:
            config: Settings of the backend server this gate serves
            handler: Receiver of payloads from authenticated clients
            host: Address to bind to
            idle_timeout: Seconds of client silence before disconnecting,
                None to wait indefinitely
        """
        self._config = config
        self._handler = handler
        self._host = host
        self._idle_timeout = idle_timeout
        self._server: asyncio.Server | None = None
        self._serve_task: asyncio.Task[None] | None = None
        self._running = False
        self._active: ConnectionState | None = None

    @property
    def name(self) -> str:
        """Name of the backend server."""
        return self._config.name

    @property
    def config(self) -> ServerConnectionConfig:
        """Settings of the backend server."""
        return self._config

    @property
    def is_running(self) -> bool:
        """Check if the gate is listening."""
        return self._running

    @property
    def active_connection(self) -> ConnectionState | None:
        """State of the connection currently being served, if any."""
        return self._active

    @property
    def client_name(self) -> str:
        """Name used for the backend client in log messages."""
        return f"{self._config.name} Client"

    async def start(self) -> None:
        """Start listening on the configured port.

        Raises:
            OSError: If the port cannot be bound
        """
        if self._running:
            return

        logger.info(f"Starting TCP server {self.name} on port {self._config.port}...")
        try:
            self._server = await asyncio.start_server(
                self._handle_client,
                self._host,
                self._config.port,
            )
        except OSError as e:
            logger.error(f"Error on server {self.name}: {e}")
            raise

        self._running = True
        logger.info(f"Server {self.name} listening on {self._host}:{self._config.port}")

        self._serve_task = asyncio.create_task(self._serve())

    async def _serve(self) -> None:
        """Background task to serve connections."""
        if self._server is None:
            return
        async with self._server:
            await self._server.serve_forever()

    async def stop(self) -> None:
        """Stop listening and close the active connection."""
        if not self._running:
            return

        self._running = False

        if self._active is not None:
            self._teardown(self._active)

        if self._serve_task is not None:
            self._serve_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._serve_task
            self._serve_task = None

        if self._server is not None:
            self._server.close()
            await self._server.wait_closed()
            self._server = None

        logger.info(f"Server {self.name} stopped")

    async def _handle_client(
        self,
        reader: asyncio.StreamReader,
        writer: asyncio.StreamWriter,
    ) -> None:
        """Serve one client connection from accept to teardown.

        Args:
            reader: Stream reader for incoming data
            writer: Stream writer for authentication replies
        """
        peer = writer.get_extra_info("peername")
        state = ConnectionState(config=self._config, peer=peer, writer=writer)

        previous = self._active
        if previous is not None and not previous.closed:
            logger.warning(
                f"{self.client_name} reconnected from {peer}, "
                f"closing previous connection from {previous.peer}"
            )
            self._teardown(previous)
        self._active = state
        logger.info(f"{self.client_name} connected from {peer}!")

        try:
            if await self._authenticate(state, reader):
                await self._relay(state, reader)
        except ConnectionTimeout:
            logger.info(f"{self.client_name} timed out.")
        except ConnectionResetError:
            logger.warning(f"{self.client_name} errored: connection reset")
        except asyncio.CancelledError:
            logger.info(f"{self.client_name} handler cancelled")
        except (OSError, ValueError) as e:
            logger.error(f"{self.client_name} errored: {e}")
        except Exception as e:
            logger.error(
                f"Unexpected error handling {self.client_name}: {e}",
                exc_info=True,
            )
        finally:
            self._teardown(state)
            with contextlib.suppress(OSError, asyncio.CancelledError):
                await writer.wait_closed()

    async def _receive(
        self,
        state: ConnectionState,
        read: Callable[[], Awaitable[bytes]],
    ) -> bytes:
        """Wait for data while the connection is still being served.

        Returns:
            The data read, or empty bytes if the connection ended or was
            superseded

        Raises:
            ConnectionTimeout: If the idle timeout elapses without data
        """
        poll = POLL_INTERVAL
        if self._idle_timeout is not None:
            poll = min(poll, self._idle_timeout)

        idle = 0.0
        while self._running and not state.closed:
            try:
                return await asyncio.wait_for(read(), timeout=poll)
            except asyncio.TimeoutError:
                idle += poll
                if self._idle_timeout is not None and idle >= self._idle_timeout:
                    raise ConnectionTimeout from None
        return b""

    async def _authenticate(
        self, state: ConnectionState, reader: asyncio.StreamReader
    ) -> bool:
        """Run the PASS handshake until it succeeds or the connection ends.

        Returns:
            True once the client has authenticated
        """
        expected = f"{AUTH_COMMAND} {self._config.password}".encode("utf-8")

        while not state.authenticated:
            line_bytes = await self._receive(state, reader.readline)
            if not line_bytes or state.closed:
                logger.info(f"{self.client_name} disconnected.")
                return False

            line = strip_line_endings(line_bytes.decode("utf-8", errors="replace"))
            if hmac.compare_digest(line.encode("utf-8"), expected):
                state.authenticated = True
                state.writer.write(AUTH_OK)
                logger.info(f"{self.client_name} logged in to {self.name}.")
            else:
                state.writer.write(AUTH_REJECTED)
                logger.warning(f"{self.client_name} failed to authenticate to {self.name}")
            await state.writer.drain()

        return True

    async def _relay(self, state: ConnectionState, reader: asyncio.StreamReader) -> None:
        """Forward payloads from an authenticated client until it disconnects."""
        decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")

        while True:
            data = await self._receive(state, lambda: reader.read(READ_BUFFER_SIZE))
            if not data or state.closed:
                logger.info(f"{self.client_name} disconnected.")
                return

            message = strip_line_endings(decoder.decode(data))
            await self._forward(state, message)

    async def _forward(self, state: ConnectionState, message: str) -> None:
        """Hand a payload from an authenticated client to the handler."""
        message, dropped = drop_auth_lines(message)
        if dropped:
            logger.warning(f"Password was sent when already authed on {self.name}...")

        if not message.strip():
            return

        if self._config.debug:
            logger.info(f"{self.client_name}: {message}")

        inbound = InboundMessage(
            message=message,
            server=self._config.name,
            channel=self._config.channel,
        )
        try:
            await self._handler.dispatch(inbound)
        except Exception as e:
            logger.error(
                f"Error dispatching message from {self.client_name}: {e}",
                exc_info=True,
            )

    def _teardown(self, state: ConnectionState) -> None:
        """Invalidate a connection and close its socket."""
        if not state.closed:
            logger.info(f"Cleaning up client ({self.client_name}).")
        state.closed = True
        state.authenticated = False
        if self._active is state:
            self._active = None
        state.writer.close()
