"""Wire protocol constants for backend server connections.

Handles:
- Authentication line and reply codes
- Message markers for split wrappers and structured status
- Splitting a raw payload into message candidates
"""

from __future__ import annotations

import re

# =============================================================================
# Protocol Constants
# =============================================================================

# Authentication
AUTH_COMMAND: str = "PASS"
AUTH_OK: bytes = b"200\r\n"
AUTH_REJECTED: bytes = b"401\r\n"

# Message markers
SPLIT_MARKER: str = "SPLIT_MSG:"
STATUS_MARKER: str = "GAME_STATUS:"

# Reassembly buffers are dropped if not completed within this window
DEFAULT_REASSEMBLY_TIMEOUT: float = 30.0  # seconds

# Buffer sizes
READ_BUFFER_SIZE: int = 65536  # 64KB read buffer

# Interval at which idle connections re-check listener state
POLL_INTERVAL: float = 1.0  # seconds

_MESSAGE_DELIMITER = re.compile(r"(?:\r?\n)+")
_TRAILING_NEWLINES = re.compile(r"[\r\n]*$")


# =============================================================================
# Payload Handling
# =============================================================================


def strip_line_endings(data: str) -> str:
    """Remove trailing CR/LF characters from received data."""
    return _TRAILING_NEWLINES.sub("", data)


def is_auth_line(line: str) -> bool:
    """Check whether a line is an authentication attempt.

    Args:
        line: A received line with line endings removed

    Returns:
        True if the line starts with the PASS command
    """
    return line.startswith(AUTH_COMMAND)


def split_messages(payload: str) -> list[str]:
    """Split a raw payload into independent message candidates.

    Runs of line breaks (LF or CRLF) separate messages. Empty and
    whitespace-only candidates are discarded.

    Args:
        payload: The raw text received from a backend server

    Returns:
        The message candidates in the order they were received
    """
    return [part for part in _MESSAGE_DELIMITER.split(payload) if part.strip()]
