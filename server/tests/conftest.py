"""Shared fixtures for bridge server tests.

The recording sink and renderer fixtures live in the repository-level
conftest.py so the integration tests use the same doubles.
"""

from __future__ import annotations

import socket
from collections.abc import Callable
from typing import Any

import pytest

from game_chat_bridge.config import ServerConnectionConfig
from game_chat_bridge.dispatcher import MessageDispatcher
from game_chat_bridge.reassembly import ChunkReassembler


def get_free_port() -> int:
    """Get a free port for testing."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind(("127.0.0.1", 0))
        return s.getsockname()[1]


@pytest.fixture
def reassembler() -> ChunkReassembler:
    """Reassembler with the production timeout; tests needing expiry build their own."""
    return ChunkReassembler()


@pytest.fixture
def dispatcher(
    sink: Any,
    renderer: Any,
    reassembler: ChunkReassembler,
) -> MessageDispatcher:
    return MessageDispatcher(sink, renderer, reassembler)


@pytest.fixture
def server_config() -> ServerConnectionConfig:
    return ServerConnectionConfig(
        name="Arena",
        port=get_free_port(),
        password="secret",
        channel="123456789",
    )


@pytest.fixture
def port_factory() -> Callable[[], int]:
    """Return a function handing out free local ports."""
    return get_free_port
