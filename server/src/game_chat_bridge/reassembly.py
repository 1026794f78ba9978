"""Reassembly of messages split into SPLIT_MSG chunks.

Backend servers can only send lines up to a fixed size, so longer messages
arrive as a series of envelopes:

    SPLIT_MSG:{"chunk": 1, "total": 3, "data": "..."}

Chunks are collected per output channel until the number of stored chunks
reaches the declared total, then joined in index order. A buffer that does
not complete within the timeout is dropped.
"""

from __future__ import annotations

import asyncio
import json
import logging
import time
from dataclasses import dataclass, field

from pydantic import ValidationError

from game_chat_bridge.models import ChunkEnvelope
from game_chat_bridge.protocol import DEFAULT_REASSEMBLY_TIMEOUT

logger = logging.getLogger(__name__)


class ChunkError(Exception):
    """Raised when a chunk envelope is invalid or a message cannot be drained."""


@dataclass
class ReassemblyBuffer:
    """Chunks received so far for one output channel."""

    total: int
    chunks: dict[int, str] = field(default_factory=dict)
    created_at: float = field(default_factory=time.monotonic)
    timer: asyncio.TimerHandle | None = None

    @property
    def is_complete(self) -> bool:
        """Completion is judged by chunk count against the declared total."""
        return len(self.chunks) == self.total

    def drain(self) -> str:
        """Join chunks 1..total in order.

        Raises:
            ChunkError: If any index in 1..total is missing
        """
        missing = [i for i in range(1, self.total + 1) if i not in self.chunks]
        if missing:
            raise ChunkError(
                f"missing chunk(s) {missing} of {self.total} "
                f"(received indices {sorted(self.chunks)})"
            )
        return "".join(self.chunks[i] for i in range(1, self.total + 1))


def parse_envelope(payload: str) -> ChunkEnvelope:
    """Parse the JSON part of a SPLIT_MSG wrapper.

    Args:
        payload: Text following the SPLIT_MSG: marker

    Returns:
        The validated envelope

    Raises:
        ChunkError: If the payload is not valid JSON or fails validation
    """
    try:
        raw = json.loads(payload)
    except json.JSONDecodeError as e:
        raise ChunkError(f"invalid JSON at position {e.pos}: {e.msg}") from e

    if not isinstance(raw, dict):
        raise ChunkError(f"expected a JSON object, got {type(raw).__name__}")

    try:
        return ChunkEnvelope.model_validate(raw)
    except ValidationError as e:
        errors = "; ".join(
            f"{'.'.join(str(p) for p in err['loc']) or 'envelope'}: {err['msg']}"
            for err in e.errors()
        )
        raise ChunkError(f"invalid chunk metadata: {errors}") from e


class ChunkReassembler:
    """Collects split message chunks per output channel.

    At most one buffer exists per channel. Mutations of a channel's buffer
    are serialized by a per-channel lock; buffers for different channels
    never wait on each other. Buffers are not tied to the connection that
    started them and survive a disconnect until they complete or expire.
    """

    def __init__(self, timeout: float = DEFAULT_REASSEMBLY_TIMEOUT) -> None:
        """Initialize the reassembler.

        Args:
            timeout: Seconds a buffer may wait for its remaining chunks
        """
        self._timeout = timeout
        self._buffers: dict[str, ReassemblyBuffer] = {}
        self._locks: dict[str, asyncio.Lock] = {}

    @property
    def timeout(self) -> float:
        """Seconds a buffer may wait for its remaining chunks."""
        return self._timeout

    @property
    def pending_channels(self) -> list[str]:
        """Channels with a reassembly in flight."""
        return list(self._buffers)

    def get_buffer(self, channel: str) -> ReassemblyBuffer | None:
        """Get the in-flight buffer for a channel, if any."""
        return self._buffers.get(channel)

    def _lock_for(self, channel: str) -> asyncio.Lock:
        lock = self._locks.get(channel)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[channel] = lock
        return lock

    async def feed(self, channel: str, payload: str) -> str | None:
        """Add one wrapped chunk for a channel.

        Args:
            channel: Output channel the chunk is destined for
            payload: Text following the SPLIT_MSG: marker

        Returns:
            The reassembled message once every chunk has arrived,
            None while chunks are outstanding or if the chunk was rejected
        """
        async with self._lock_for(channel):
            try:
                envelope = parse_envelope(payload)
            except ChunkError as e:
                truncated = payload[:200] + "..." if len(payload) > 200 else payload
                logger.error(
                    f"Rejected split message chunk for channel {channel}: {e}. "
                    f"Payload (truncated): {truncated}"
                )
                self._discard(channel)
                return None

            buffer = self._buffers.get(channel)
            if buffer is None:
                buffer = ReassemblyBuffer(total=envelope.total)
                buffer.timer = asyncio.get_running_loop().call_later(
                    self._timeout, self._expire, channel, buffer
                )
                self._buffers[channel] = buffer
                logger.debug(
                    f"Started reassembly for channel {channel} "
                    f"({envelope.total} chunks expected)"
                )

            buffer.total = envelope.total
            buffer.chunks[envelope.chunk] = envelope.data
            logger.debug(
                f"Stored chunk {envelope.chunk}/{envelope.total} "
                f"for channel {channel} ({len(buffer.chunks)} received)"
            )

            if not buffer.is_complete:
                return None

            try:
                message = buffer.drain()
            except ChunkError as e:
                logger.error(f"Failed to reassemble message for channel {channel}: {e}")
                return None
            finally:
                self._discard(channel)

            logger.debug(
                f"Reassembled {buffer.total} chunks for channel {channel} "
                f"({len(message)} characters)"
            )
            return message

    def _expire(self, channel: str, buffer: ReassemblyBuffer) -> None:
        """Timer callback: drop a buffer that did not complete in time."""
        if self._buffers.get(channel) is not buffer:
            return
        del self._buffers[channel]
        age = time.monotonic() - buffer.created_at
        logger.warning(
            f"Reassembly for channel {channel} timed out after {age:.1f}s "
            f"with {len(buffer.chunks)}/{buffer.total} chunks, discarding"
        )

    def _discard(self, channel: str) -> None:
        buffer = self._buffers.pop(channel, None)
        if buffer is not None and buffer.timer is not None:
            buffer.timer.cancel()

    def clear(self) -> None:
        """Drop every buffer and cancel its timer."""
        for channel in list(self._buffers):
            self._discard(channel)
