"""Pytest configuration and shared fixtures."""

from __future__ import annotations

import json
import socket
import sys
from pathlib import Path
from typing import Any

import pytest

# Add both server and feeder src directories to Python path
# This enables integration tests to import from both packages
_repo_root = Path(__file__).parent.parent
_server_src = _repo_root / "server" / "src"
_bridge_src = _repo_root / "bridge" / "src"

if str(_server_src) not in sys.path:
    sys.path.insert(0, str(_server_src))
if str(_bridge_src) not in sys.path:
    sys.path.insert(0, str(_bridge_src))


@pytest.fixture
def fixtures_dir() -> Path:
    """Return the path to the test fixtures directory."""
    return Path(__file__).parent / "fixtures"


@pytest.fixture
def arena_status(fixtures_dir: Path) -> dict[str, Any]:
    """Load the sample status payload of a deathmatch server."""
    with open(fixtures_dir / "status" / "arena.json", encoding="utf-8") as f:
        return json.load(f)


@pytest.fixture
def free_port() -> int:
    """Get a free port for testing."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind(("127.0.0.1", 0))
        return s.getsockname()[1]
