"""Parsing of GAME_STATUS payloads into StatusUpdate objects."""

from __future__ import annotations

import json
import logging
from typing import Any

from pydantic import ValidationError

from game_chat_bridge.models import StatusUpdate

logger = logging.getLogger(__name__)

REQUIRED_FIELDS: tuple[str, ...] = ("serverName", "gameMode", "map")


class StatusParseError(Exception):
    """Raised when a status payload is malformed or incomplete."""


def _is_missing(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def parse_status(payload: str) -> StatusUpdate:
    """Parse and validate a structured status payload.

    The payload must be a JSON object carrying at least serverName,
    gameMode and map. Teams, spectators and the server address are
    optional.

    Args:
        payload: Text following the GAME_STATUS: marker

    Returns:
        The validated StatusUpdate

    Raises:
        StatusParseError: If the payload is not a JSON object, lacks a
            required field, or contains values of the wrong shape
    """
    try:
        data = json.loads(payload)
    except json.JSONDecodeError as e:
        raise StatusParseError(f"invalid JSON at position {e.pos}: {e.msg}") from e

    if not isinstance(data, dict):
        raise StatusParseError(f"expected a JSON object, got {type(data).__name__}")

    missing = [name for name in REQUIRED_FIELDS if _is_missing(data.get(name))]
    if missing:
        raise StatusParseError(f"missing required field(s): {', '.join(missing)}")

    try:
        return StatusUpdate.model_validate(data)
    except ValidationError as e:
        errors = "; ".join(
            f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in e.errors()
        )
        raise StatusParseError(f"invalid status fields: {errors}") from e
