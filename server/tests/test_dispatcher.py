"""Tests for message dispatch.

Tests the dispatcher's ability to:
- Split payloads into independent messages
- Forward plain text to the sink
- Route GAME_STATUS payloads to the renderer
- Route SPLIT_MSG chunks through reassembly
- Contain parse and delivery failures to the affected message
"""

from __future__ import annotations

import json
import logging
from typing import Any

from game_chat_bridge.dispatcher import InboundMessage, MessageDispatcher

CHANNEL = "123456789"


def inbound(message: str) -> InboundMessage:
    return InboundMessage(message=message, server="Arena", channel=CHANNEL)


def split_msg(chunk: int, total: int, data: str) -> str:
    return "SPLIT_MSG:" + json.dumps({"chunk": chunk, "total": total, "data": data})


class TestPlainText:
    async def test_plain_text_forwarded(
        self, dispatcher: MessageDispatcher, sink: Any
    ) -> None:
        await dispatcher.dispatch(inbound("Hello world"))
        assert sink.sent == [(CHANNEL, "Hello world")]

    async def test_multiple_messages_in_order(
        self, dispatcher: MessageDispatcher, sink: Any
    ) -> None:
        await dispatcher.dispatch(inbound("first\r\n\r\nsecond\nthird"))
        assert sink.texts == ["first", "second", "third"]

    async def test_blank_payload_sends_nothing(
        self, dispatcher: MessageDispatcher, sink: Any
    ) -> None:
        await dispatcher.dispatch(inbound("\r\n  \r\n"))
        assert sink.sent == []

    async def test_sink_failure_does_not_stop_batch(
        self, dispatcher: MessageDispatcher, sink: Any, caplog: Any
    ) -> None:
        sink.fail_on.add("bad")

        with caplog.at_level(logging.ERROR):
            await dispatcher.dispatch(inbound("one\r\nbad\r\ntwo"))

        assert sink.texts == ["one", "two"]
        assert any("Failed to send message" in r.message for r in caplog.records)


class TestStatus:
    async def test_status_rendered(
        self, dispatcher: MessageDispatcher, sink: Any, renderer: Any
    ) -> None:
        await dispatcher.dispatch(
            inbound('GAME_STATUS:{"serverName":"Arena","gameMode":"DM","map":"DM-Deck"}')
        )

        assert sink.sent == []
        assert len(renderer.updates) == 1
        channel, update = renderer.updates[0]
        assert channel == CHANNEL
        assert update.map_name == "DM-Deck"

    async def test_invalid_status_dropped_not_forwarded(
        self, dispatcher: MessageDispatcher, sink: Any, renderer: Any, caplog: Any
    ) -> None:
        with caplog.at_level(logging.ERROR):
            await dispatcher.dispatch(inbound('GAME_STATUS:{"gameMode":"DM"}'))

        assert renderer.updates == []
        assert sink.sent == []
        assert any("Invalid game status" in r.message for r in caplog.records)

    async def test_renderer_failure_contained(
        self, dispatcher: MessageDispatcher, sink: Any, renderer: Any, caplog: Any
    ) -> None:
        renderer.fail = True
        status = 'GAME_STATUS:{"serverName":"A","gameMode":"DM","map":"M"}'

        with caplog.at_level(logging.ERROR):
            await dispatcher.dispatch(inbound(f"{status}\r\n\r\nafter"))

        assert sink.texts == ["after"]
        assert any("Failed to send game status" in r.message for r in caplog.records)


class TestSplitMessages:
    async def test_chunks_reassembled_to_text(
        self, dispatcher: MessageDispatcher, sink: Any
    ) -> None:
        await dispatcher.dispatch(inbound(split_msg(1, 2, "Hello ")))
        assert sink.sent == []

        await dispatcher.dispatch(inbound(split_msg(2, 2, "world")))
        assert sink.texts == ["Hello world"]

    async def test_chunks_reassembled_to_status(
        self, dispatcher: MessageDispatcher, sink: Any, renderer: Any
    ) -> None:
        status = 'GAME_STATUS:{"serverName":"Arena","gameMode":"DM","map":"DM-Deck"}'
        first, second = status[:20], status[20:]

        await dispatcher.dispatch(
            inbound(f"{split_msg(1, 2, first)}\r\n\r\n{split_msg(2, 2, second)}")
        )

        assert sink.sent == []
        assert len(renderer.updates) == 1
        assert renderer.updates[0][1].server_name == "Arena"

    async def test_invalid_chunk_skipped_siblings_delivered(
        self, dispatcher: MessageDispatcher, sink: Any
    ) -> None:
        await dispatcher.dispatch(inbound("SPLIT_MSG:{nope}\r\n\r\nstill here"))
        assert sink.texts == ["still here"]

    async def test_reassembled_split_marker_not_reprocessed(
        self, dispatcher: MessageDispatcher, sink: Any
    ) -> None:
        """Reassembled text is classified once, never fed back as a chunk."""
        inner = split_msg(1, 1, "x")
        await dispatcher.dispatch(inbound(split_msg(1, 1, inner)))
        assert sink.texts == [inner]
