"""Protocol constants and message framing for the feeder.

Handles:
- Protocol constants (host, port, auth command and replies)
- Blank-line message framing
- Splitting long messages into SPLIT_MSG chunk envelopes
"""

from __future__ import annotations

import json
import math

# =============================================================================
# Protocol Constants
# =============================================================================

# Default bridge connection settings
DEFAULT_HOST: str = "127.0.0.1"
DEFAULT_PORT: int = 7777

# Authentication
AUTH_COMMAND: str = "PASS"
AUTH_OK: str = "200"
AUTH_REJECTED: str = "401"

# Message markers
SPLIT_MARKER: str = "SPLIT_MSG:"
STATUS_MARKER: str = "GAME_STATUS:"

# Largest data segment carried by one chunk
DEFAULT_MAX_CHUNK_SIZE: int = 400

# Reconnection settings
DEFAULT_RECONNECT_DELAY: float = 1.0  # seconds
DEFAULT_MAX_RECONNECT_ATTEMPTS: int = 5

MESSAGE_TERMINATOR: str = "\r\n\r\n"


# =============================================================================
# Message Framing
# =============================================================================


def is_valid_message(line: str) -> bool:
    """Check if a line is a valid message to relay.

    Empty lines and whitespace-only lines are not valid messages.

    Args:
        line: The line to check

    Returns:
        True if the line is a valid message to relay
    """
    return bool(line.strip())


def build_auth_line(password: str) -> str:
    """Build the authentication line for a shared secret."""
    return f"{AUTH_COMMAND} {password}\r\n"


def frame_message(message: str) -> str:
    """Terminate a message with a blank line.

    Args:
        message: The message to frame

    Returns:
        The message without trailing line breaks, followed by a blank line
    """
    return message.rstrip("\r\n") + MESSAGE_TERMINATOR


def status_message(status: dict[str, object]) -> str:
    """Build a GAME_STATUS message from a status dictionary."""
    return STATUS_MARKER + json.dumps(status, separators=(",", ":"))


def split_message(message: str, max_chunk_size: int = DEFAULT_MAX_CHUNK_SIZE) -> list[str]:
    """Split a message into SPLIT_MSG chunk envelopes.

    Messages that fit within max_chunk_size are returned unchanged as a
    single-element list.

    Args:
        message: The message to split
        max_chunk_size: Largest data segment per chunk

    Returns:
        The messages to send, in order

    Raises:
        ValueError: If max_chunk_size is not positive
    """
    if max_chunk_size < 1:
        raise ValueError(f"max_chunk_size must be positive, got {max_chunk_size}")

    if len(message) <= max_chunk_size:
        return [message]

    total = math.ceil(len(message) / max_chunk_size)
    chunks = []
    for index in range(total):
        data = message[index * max_chunk_size : (index + 1) * max_chunk_size]
        envelope = {"chunk": index + 1, "total": total, "data": data}
        chunks.append(SPLIT_MARKER + json.dumps(envelope, separators=(",", ":")))
    return chunks
