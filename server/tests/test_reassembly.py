"""Tests for split message reassembly.

Tests the reassembler's ability to:
- Join chunks in index order regardless of arrival order
- Reject invalid envelopes and chunk metadata
- Drop buffers that do not complete before the timeout
- Keep channels independent of each other
"""

from __future__ import annotations

import asyncio
import json
import logging
import re
from typing import Any

import pytest

from game_chat_bridge.reassembly import (
    ChunkError,
    ChunkReassembler,
    ReassemblyBuffer,
    parse_envelope,
)

CHANNEL = "123456789"


def envelope(chunk: Any, total: Any, data: Any) -> str:
    """Build the JSON part of a SPLIT_MSG wrapper."""
    return json.dumps({"chunk": chunk, "total": total, "data": data})


# ==============================================================================
# Envelope Parsing
# ==============================================================================


class TestParseEnvelope:
    def test_valid_envelope(self) -> None:
        parsed = parse_envelope(envelope(2, 3, "abc"))
        assert (parsed.chunk, parsed.total, parsed.data) == (2, 3, "abc")

    def test_invalid_json(self) -> None:
        with pytest.raises(ChunkError, match="invalid JSON"):
            parse_envelope('{"chunk": 1, "total"')

    def test_non_object(self) -> None:
        with pytest.raises(ChunkError, match="JSON object"):
            parse_envelope("[1, 2, 3]")

    @pytest.mark.parametrize(
        "raw",
        [
            {"total": 2, "data": "x"},
            {"chunk": 1, "data": "x"},
            {"chunk": 1, "total": 2},
        ],
    )
    def test_missing_fields(self, raw: dict[str, Any]) -> None:
        with pytest.raises(ChunkError, match="invalid chunk metadata"):
            parse_envelope(json.dumps(raw))

    @pytest.mark.parametrize(
        ("chunk", "total", "data"),
        [
            (0, 2, "x"),
            (1, 0, "x"),
            (-1, 2, "x"),
            (1.5, 2, "x"),
            ("1", 2, "x"),
            (True, 2, "x"),
            (1, 2, 42),
            (1, 2, None),
        ],
    )
    def test_invalid_metadata(self, chunk: Any, total: Any, data: Any) -> None:
        with pytest.raises(ChunkError):
            parse_envelope(envelope(chunk, total, data))

    def test_chunk_beyond_total(self) -> None:
        with pytest.raises(ChunkError, match="exceeds declared total"):
            parse_envelope(envelope(3, 2, "x"))


class TestReassemblyBuffer:
    def test_complete_by_count(self) -> None:
        buffer = ReassemblyBuffer(total=2, chunks={1: "a", 2: "b"})
        assert buffer.is_complete
        assert buffer.drain() == "ab"

    def test_drain_reports_missing_index(self) -> None:
        buffer = ReassemblyBuffer(total=2, chunks={1: "a", 3: "c"})
        assert buffer.is_complete
        with pytest.raises(ChunkError, match=r"missing chunk\(s\) \[2\]"):
            buffer.drain()


# ==============================================================================
# Reassembly
# ==============================================================================


class TestChunkReassembler:
    async def test_single_chunk_message(self, reassembler: ChunkReassembler) -> None:
        assert await reassembler.feed(CHANNEL, envelope(1, 1, "whole")) == "whole"
        assert reassembler.pending_channels == []

    async def test_in_order_chunks(self, reassembler: ChunkReassembler) -> None:
        assert await reassembler.feed(CHANNEL, envelope(1, 3, "Hel")) is None
        assert await reassembler.feed(CHANNEL, envelope(2, 3, "lo ")) is None
        assert await reassembler.feed(CHANNEL, envelope(3, 3, "you")) == "Hello you"
        assert reassembler.get_buffer(CHANNEL) is None

    async def test_reordered_chunks_match_in_order(
        self, reassembler: ChunkReassembler
    ) -> None:
        """Arrival order does not change the reassembled text."""
        parts = ["alpha ", "beta ", "gamma ", "delta"]
        total = len(parts)

        results = []
        for index in (2, 4, 3, 1):
            results.append(
                await reassembler.feed(CHANNEL, envelope(index, total, parts[index - 1]))
            )

        assert results[:-1] == [None, None, None]
        assert results[-1] == "".join(parts)

    async def test_duplicate_index_overwrites(
        self, reassembler: ChunkReassembler
    ) -> None:
        assert await reassembler.feed(CHANNEL, envelope(1, 2, "old")) is None
        assert await reassembler.feed(CHANNEL, envelope(1, 2, "new")) is None
        assert await reassembler.feed(CHANNEL, envelope(2, 2, "!")) == "new!"

    async def test_count_reached_without_coverage_fails(
        self, reassembler: ChunkReassembler, caplog: Any
    ) -> None:
        """Completion is by count; a gap in the indices fails on drain."""
        assert await reassembler.feed(CHANNEL, envelope(2, 3, "b")) is None
        assert await reassembler.feed(CHANNEL, envelope(3, 3, "c")) is None
        # The sender lowers the total; count now matches but index 1 is missing
        with caplog.at_level(logging.ERROR):
            assert await reassembler.feed(CHANNEL, envelope(2, 2, "B")) is None

        assert reassembler.get_buffer(CHANNEL) is None
        assert any("Failed to reassemble" in r.message for r in caplog.records)

    async def test_invalid_chunk_discards_buffer(
        self, reassembler: ChunkReassembler, caplog: Any
    ) -> None:
        assert await reassembler.feed(CHANNEL, envelope(1, 2, "a")) is None

        with caplog.at_level(logging.ERROR):
            assert await reassembler.feed(CHANNEL, "{broken") is None

        assert reassembler.get_buffer(CHANNEL) is None
        assert any("Rejected split message chunk" in r.message for r in caplog.records)

    async def test_channels_are_independent(
        self, reassembler: ChunkReassembler
    ) -> None:
        assert await reassembler.feed("a", envelope(1, 2, "A1")) is None
        assert await reassembler.feed("b", envelope(1, 2, "B1")) is None
        assert sorted(reassembler.pending_channels) == ["a", "b"]

        assert await reassembler.feed("b", envelope(2, 2, "B2")) == "B1B2"
        assert await reassembler.feed("a", envelope(2, 2, "A2")) == "A1A2"

    async def test_concurrent_feeds_same_channel(
        self, reassembler: ChunkReassembler
    ) -> None:
        """Concurrent producers for one channel yield exactly one message."""
        total = 20
        results = await asyncio.gather(
            *(
                reassembler.feed(CHANNEL, envelope(i, total, f"{i:02d}"))
                for i in range(1, total + 1)
            )
        )

        completed = [r for r in results if r is not None]
        assert completed == ["".join(f"{i:02d}" for i in range(1, total + 1))]

    async def test_clear_cancels_pending(self, reassembler: ChunkReassembler) -> None:
        await reassembler.feed(CHANNEL, envelope(1, 2, "a"))
        buffer = reassembler.get_buffer(CHANNEL)
        assert buffer is not None and buffer.timer is not None

        reassembler.clear()

        assert reassembler.pending_channels == []
        assert buffer.timer.cancelled()


# ==============================================================================
# Timeout
# ==============================================================================


class TestReassemblyTimeout:
    async def test_stale_buffer_discarded(self, caplog: Any) -> None:
        reassembler = ChunkReassembler(timeout=0.05)
        assert await reassembler.feed(CHANNEL, envelope(1, 2, "a")) is None

        with caplog.at_level(logging.WARNING):
            await asyncio.sleep(0.15)

        assert reassembler.get_buffer(CHANNEL) is None
        assert any("timed out" in r.message for r in caplog.records)

    async def test_timeout_reports_buffer_age(self, caplog: Any) -> None:
        reassembler = ChunkReassembler(timeout=0.05)
        await reassembler.feed(CHANNEL, envelope(1, 2, "a"))
        buffer = reassembler.get_buffer(CHANNEL)
        assert buffer is not None
        buffer.created_at -= 10.0

        with caplog.at_level(logging.WARNING):
            await asyncio.sleep(0.15)

        messages = [r.message for r in caplog.records if "timed out" in r.message]
        assert len(messages) == 1
        assert re.search(r"after 10\.\ds with 1/2 chunks", messages[0])

    async def test_late_chunk_starts_fresh_buffer(self) -> None:
        reassembler = ChunkReassembler(timeout=0.05)
        assert await reassembler.feed(CHANNEL, envelope(1, 2, "a")) is None
        await asyncio.sleep(0.15)

        # The late second chunk does not resume the expired buffer
        assert await reassembler.feed(CHANNEL, envelope(2, 2, "b")) is None
        buffer = reassembler.get_buffer(CHANNEL)
        assert buffer is not None
        assert buffer.chunks == {2: "b"}

        assert await reassembler.feed(CHANNEL, envelope(1, 2, "A")) == "Ab"

    async def test_completion_cancels_timer(self) -> None:
        reassembler = ChunkReassembler(timeout=0.05)
        await reassembler.feed(CHANNEL, envelope(1, 2, "a"))
        buffer = reassembler.get_buffer(CHANNEL)
        assert buffer is not None

        assert await reassembler.feed(CHANNEL, envelope(2, 2, "b")) == "ab"
        assert buffer.timer is not None and buffer.timer.cancelled()

    async def test_expiry_does_not_touch_newer_buffer(self) -> None:
        """An old timer firing never removes a buffer started after it."""
        reassembler = ChunkReassembler(timeout=0.1)
        await reassembler.feed(CHANNEL, envelope(1, 1, "done"))
        await reassembler.feed(CHANNEL, envelope(1, 2, "a"))
        newer = reassembler.get_buffer(CHANNEL)

        await asyncio.sleep(0.05)
        assert reassembler.get_buffer(CHANNEL) is newer
