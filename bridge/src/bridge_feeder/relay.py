"""Async feeder from stdin to the Game Chat Bridge.

Relays lines read from stdin to the bridge over TCP, authenticating
first and splitting long messages into SPLIT_MSG chunks.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import sys
from asyncio import StreamReader, StreamWriter
from typing import Protocol

from bridge_feeder.protocol import (
    AUTH_OK,
    DEFAULT_HOST,
    DEFAULT_MAX_CHUNK_SIZE,
    DEFAULT_MAX_RECONNECT_ATTEMPTS,
    DEFAULT_PORT,
    DEFAULT_RECONNECT_DELAY,
    build_auth_line,
    frame_message,
    is_valid_message,
    split_message,
)

logger = logging.getLogger(__name__)

# Seconds to wait for the bridge's reply to the PASS line
AUTH_REPLY_TIMEOUT: float = 5.0


class AuthenticationError(Exception):
    """Raised when the bridge rejects the shared secret."""


class AsyncLineReader(Protocol):
    """Protocol for async line readers (duck typing for StreamReader)."""

    async def readline(self) -> bytes:
        """Read a line asynchronously."""
        ...


class Feeder:
    """Async client sending messages to one bridge port.

    The feeder:
    1. Connects to the bridge and sends "PASS <password>"
    2. Waits for the 200 reply (401 raises AuthenticationError)
    3. Sends each message followed by a blank line, split into
       SPLIT_MSG chunks when longer than max_chunk_size
    4. Reconnects and re-authenticates when the connection drops

    Attributes:
        host: The bridge host to connect to
        port: The bridge port to connect to
        max_chunk_size: Largest data segment per chunk
        reconnect_delay: Seconds to wait between reconnect attempts
        max_reconnect_attempts: Maximum number of reconnect attempts
    """

    def __init__(
        self,
        password: str,
        *,
        host: str = DEFAULT_HOST,
        port: int = DEFAULT_PORT,
        max_chunk_size: int = DEFAULT_MAX_CHUNK_SIZE,
        reconnect_delay: float = DEFAULT_RECONNECT_DELAY,
        max_reconnect_attempts: int = DEFAULT_MAX_RECONNECT_ATTEMPTS,
    ) -> None:
        """Initialize the feeder.

        Args:
            password: Shared secret configured for this server on the bridge
            host: The bridge host to connect to
            port: The bridge port to connect to
            max_chunk_size: Largest data segment per chunk
            reconnect_delay: Seconds to wait between reconnect attempts
            max_reconnect_attempts: Maximum number of reconnect attempts
        """
        self._password = password
        self.host = host
        self.port = port
        self.max_chunk_size = max_chunk_size
        self.reconnect_delay = reconnect_delay
        self.max_reconnect_attempts = max_reconnect_attempts

        self._reader: StreamReader | None = None
        self._writer: StreamWriter | None = None

    @property
    def is_connected(self) -> bool:
        """Check if currently connected and authenticated."""
        return self._writer is not None and not self._writer.is_closing()

    async def connect(self) -> bool:
        """Connect to the bridge and authenticate.

        Returns:
            True if connected and authenticated, False if the bridge is
            unreachable

        Raises:
            AuthenticationError: If the bridge rejects the password
        """
        try:
            reader, writer = await asyncio.open_connection(self.host, self.port)
        except OSError as e:
            logger.error(
                "Failed to connect to bridge at %s:%d: %s",
                self.host,
                self.port,
                e,
            )
            return False

        try:
            writer.write(build_auth_line(self._password).encode("utf-8"))
            await writer.drain()
            reply = await asyncio.wait_for(reader.readline(), timeout=AUTH_REPLY_TIMEOUT)
        except (OSError, asyncio.TimeoutError) as e:
            logger.error("No authentication reply from bridge: %s", e)
            await self._close_writer(writer)
            return False

        code = reply.decode("utf-8", errors="replace").strip()
        if code != AUTH_OK:
            await self._close_writer(writer)
            raise AuthenticationError(
                f"Bridge at {self.host}:{self.port} rejected the password "
                f"({code or 'no reply'})"
            )

        self._reader, self._writer = reader, writer
        logger.info("Authenticated with bridge at %s:%d", self.host, self.port)
        return True

    async def connect_with_retry(self) -> bool:
        """Connect to the bridge with exponential backoff retry.

        Retries connection with exponential backoff up to max_reconnect_attempts.
        Backoff is bounded at 10 seconds.

        Returns:
            True if connection successful, False if all attempts failed

        Raises:
            AuthenticationError: If the bridge rejects the password
        """
        attempt = 0
        max_backoff = 10.0

        while attempt < self.max_reconnect_attempts:
            if await self.connect():
                return True

            attempt += 1
            if attempt < self.max_reconnect_attempts:
                backoff = min(self.reconnect_delay * (2 ** (attempt - 1)), max_backoff)
                logger.info(
                    "Connection attempt %d/%d failed, retrying in %.2fs",
                    attempt,
                    self.max_reconnect_attempts,
                    backoff,
                )
                await asyncio.sleep(backoff)

        logger.error("Failed to connect after %d attempts", self.max_reconnect_attempts)
        return False

    async def _send_raw(self, text: str) -> bool:
        """Write text to the bridge connection.

        Returns:
            True if sent successfully, False otherwise
        """
        if self._writer is None:
            return False

        try:
            self._writer.write(text.encode("utf-8"))
            await self._writer.drain()
            return True
        except OSError as e:
            logger.error("Failed to send to bridge: %s", e)
            await self._close_writer(self._writer)
            self._writer = None
            self._reader = None
            return False

    async def send_message(self, message: str) -> bool:
        """Send one message, splitting it into chunks if needed.

        Empty and whitespace-only messages are skipped. A dropped
        connection is re-established once before giving up.

        Args:
            message: The message to send

        Returns:
            True if every part was sent, False otherwise
        """
        if not is_valid_message(message):
            return True

        parts = split_message(message.rstrip("\r\n"), self.max_chunk_size)
        if len(parts) > 1:
            logger.debug("Splitting message into %d chunks", len(parts))

        for part in parts:
            framed = frame_message(part)
            if not self.is_connected and not await self.connect_with_retry():
                return False
            if not await self._send_raw(framed):
                if not await self.connect_with_retry():
                    return False
                if not await self._send_raw(framed):
                    return False
        return True

    async def close(self) -> None:
        """Close the bridge connection."""
        if self._writer:
            await self._close_writer(self._writer)
            self._writer = None
            self._reader = None
            logger.info("Connection closed")

    @staticmethod
    async def _close_writer(writer: StreamWriter) -> None:
        writer.close()
        with contextlib.suppress(OSError):
            await writer.wait_closed()

    async def run(self, stdin: AsyncLineReader) -> None:
        """Relay stdin lines to the bridge until EOF.

        Args:
            stdin: The async stdin stream reader
        """
        if not await self.connect_with_retry():
            logger.error("Initial connection failed after retries, exiting")
            return

        try:
            while True:
                line_bytes = await stdin.readline()
                if not line_bytes:
                    logger.info("EOF on stdin, shutting down")
                    break
                await self.send_message(line_bytes.decode("utf-8"))
        except asyncio.CancelledError:
            logger.info("Feeder cancelled")
        finally:
            await self.close()


async def create_stdin_reader() -> AsyncLineReader:
    """Create an async reader for stdin.

    Returns:
        An async reader with a readline() method
    """
    loop = asyncio.get_running_loop()
    reader = asyncio.StreamReader()
    protocol = asyncio.StreamReaderProtocol(reader)
    await loop.connect_read_pipe(lambda: protocol, sys.stdin)
    return reader


async def run_feeder(
    password: str,
    host: str = DEFAULT_HOST,
    port: int = DEFAULT_PORT,
    max_chunk_size: int = DEFAULT_MAX_CHUNK_SIZE,
) -> int:
    """Run the stdin to bridge feeder.

    Args:
        password: Shared secret for the bridge port
        host: The bridge host
        port: The bridge port
        max_chunk_size: Largest data segment per chunk

    Returns:
        Exit code (0 for success, 1 for failure)
    """
    feeder = Feeder(password, host=host, port=port, max_chunk_size=max_chunk_size)

    try:
        stdin_reader = await create_stdin_reader()
        await feeder.run(stdin_reader)
        return 0
    except AuthenticationError as e:
        logger.error("%s", e)
        return 1
    except asyncio.CancelledError:
        logger.info("Feeder cancelled")
        return 0
    except OSError as e:
        logger.error("Feeder I/O error: %s", e)
        return 1
    except Exception as e:
        logger.exception("Feeder failed with unexpected error: %s", e)
        return 1
