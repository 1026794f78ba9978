"""Test doubles shared by the server unit tests and the integration tests."""

from __future__ import annotations

import pytest

from game_chat_bridge.models import StatusUpdate
from game_chat_bridge.render import StatusEmbed
from game_chat_bridge.sink import SinkError


class RecordingSink:
    """Output sink that records deliveries instead of sending them."""

    def __init__(self) -> None:
        self.sent: list[tuple[str, str | StatusEmbed]] = []
        self.fail_on: set[str] = set()

    async def send(self, channel: str, payload: str | StatusEmbed) -> None:
        if isinstance(payload, str) and payload in self.fail_on:
            raise SinkError(f"refusing {payload!r}")
        self.sent.append((channel, payload))

    @property
    def texts(self) -> list[str]:
        return [payload for _, payload in self.sent if isinstance(payload, str)]


class RecordingRenderer:
    """Status renderer that records updates instead of rendering them."""

    def __init__(self) -> None:
        self.updates: list[tuple[str, StatusUpdate]] = []
        self.fail = False

    async def render(self, channel: str, update: StatusUpdate) -> None:
        if self.fail:
            raise SinkError("renderer unavailable")
        self.updates.append((channel, update))


@pytest.fixture
def sink() -> RecordingSink:
    return RecordingSink()


@pytest.fixture
def renderer() -> RecordingRenderer:
    return RecordingRenderer()
