"""Message dispatch.

Turns one raw payload from a backend server into zero or more deliveries:
split wrappers go through the ChunkReassembler, status payloads through
the status parser and renderer, everything else goes to the sink as
plain text.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from game_chat_bridge.protocol import SPLIT_MARKER, STATUS_MARKER, split_messages
from game_chat_bridge.reassembly import ChunkReassembler
from game_chat_bridge.sink import OutputSink, StatusRenderer
from game_chat_bridge.status import StatusParseError, parse_status

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class InboundMessage:
    """A payload received from an authenticated backend server."""

    message: str
    server: str
    channel: str


class MessageDispatcher:
    """Routes inbound payloads to the renderer or the output sink.

    Delivery failures are logged and never interrupt the remaining
    messages of the same payload.
    """

    def __init__(
        self,
        sink: OutputSink,
        renderer: StatusRenderer,
        reassembler: ChunkReassembler,
    ) -> None:
        """Initialize the dispatcher.

        Args:
            sink: Destination for plain text messages
            renderer: Destination for status updates
            reassembler: Shared reassembler for split messages
        """
        self._sink = sink
        self._renderer = renderer
        self._reassembler = reassembler

    @property
    def reassembler(self) -> ChunkReassembler:
        """The reassembler used for split messages."""
        return self._reassembler

    async def dispatch(self, inbound: InboundMessage) -> None:
        """Process every message contained in an inbound payload.

        Args:
            inbound: The payload along with its origin and destination
        """
        for candidate in split_messages(inbound.message):
            await self._dispatch_one(candidate, inbound.server, inbound.channel)

    async def _dispatch_one(self, text: str, server: str, channel: str) -> None:
        if text.startswith(SPLIT_MARKER):
            reassembled = await self._reassembler.feed(
                channel, text[len(SPLIT_MARKER) :]
            )
            if reassembled is None:
                logger.debug(f"Awaiting remaining chunks from {server} for {channel}")
                return
            text = reassembled

        if text.startswith(STATUS_MARKER):
            await self._dispatch_status(text[len(STATUS_MARKER) :], server, channel)
            return

        try:
            await self._sink.send(channel, text)
        except Exception as e:
            logger.error(
                f"Failed to send message from {server} to channel {channel}: {e}",
                exc_info=True,
            )

    async def _dispatch_status(self, payload: str, server: str, channel: str) -> None:
        try:
            update = parse_status(payload)
        except StatusParseError as e:
            truncated = payload[:200] + "..." if len(payload) > 200 else payload
            logger.error(
                f"Invalid game status from {server}: {e}. "
                f"Payload (truncated): {truncated}"
            )
            return

        try:
            await self._renderer.render(channel, update)
        except Exception as e:
            logger.error(
                f"Failed to send game status for {update.server_name} "
                f"to channel {channel}: {e}",
                exc_info=True,
            )
