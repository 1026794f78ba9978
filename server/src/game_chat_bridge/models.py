"""Bridge data models.

Pydantic models for split-message envelopes and game status updates.
"""

from __future__ import annotations

from typing import Any

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
    model_validator,
)

# Server address a backend reports when it has no public address configured
EMPTY_SERVER_ADDRESS = "unreal://"


class BaseBridgeModel(BaseModel):
    """Base model for all payload entities.

    Configured to ignore extra fields that backend servers may send
    but we don't model. Field names follow Python conventions, payload
    keys are accepted through aliases.
    """

    model_config = ConfigDict(extra="ignore", populate_by_name=True)


class ChunkEnvelope(BaseBridgeModel):
    """One fragment of a message the sender had to split.

    `chunk` is the 1-based position of this fragment and `total` the
    number of fragments in the whole message.
    """

    chunk: int = Field(strict=True, ge=1)
    total: int = Field(strict=True, ge=1)
    data: str = Field(strict=True)

    @model_validator(mode="after")
    def validate_position(self) -> ChunkEnvelope:
        """Validate that the chunk index lies within the declared total."""
        if self.chunk > self.total:
            raise ValueError(
                f"chunk index {self.chunk} exceeds declared total {self.total}"
            )
        return self


def _has_name(entry: Any) -> bool:
    name = entry.get("name") if isinstance(entry, dict) else None
    return isinstance(name, str) and bool(name.strip())


def _lenient_number(v: Any) -> Any:
    if isinstance(v, (int, float)) and not isinstance(v, bool):
        return v
    try:
        return float(v)
    except (TypeError, ValueError):
        return 0


class Player(BaseBridgeModel):
    """A player listed on a team.

    Backends report score and efficiency in whatever form they track them,
    so both are kept as sent.
    """

    name: str
    score: int | float | str = 0
    efficiency: int | float | str | None = None


class Team(BaseBridgeModel):
    """One side of a team game.

    Player entries without a usable name are skipped rather than failing
    the whole update.
    """

    score: int | float = 0
    players: list[Player] = Field(default_factory=list)

    @field_validator("score", mode="before")
    @classmethod
    def normalize_score(cls, v: Any) -> Any:
        """Team scores are compared, so anything non-numeric counts as 0."""
        return _lenient_number(v)

    @field_validator("players", mode="before")
    @classmethod
    def drop_unnamed_players(cls, v: Any) -> Any:
        if not isinstance(v, list):
            return []
        return [item for item in v if _has_name(item)]


class Spectator(BaseBridgeModel):
    """A connected client that is not playing."""

    name: str


class StatusUpdate(BaseBridgeModel):
    """Snapshot of a running game, as reported by a backend server.

    Only the server name, game mode and map are required. Malformed
    optional sections are dropped instead of rejecting the update.
    `spectators` distinguishes an absent list (None) from an explicitly
    empty one, since only the latter is displayed.
    """

    server_name: str = Field(alias="serverName", min_length=1)
    game_mode: str = Field(alias="gameMode", min_length=1)
    map_name: str = Field(alias="map", min_length=1)
    time_remaining: str | int | float | None = Field(default=None, alias="timeRemaining")
    red_team: Team | None = Field(default=None, alias="redTeam")
    blue_team: Team | None = Field(default=None, alias="blueTeam")
    spectators: list[Spectator] | None = None
    server_address: str | None = Field(default=None, alias="serverIP")

    @field_validator("time_remaining", mode="before")
    @classmethod
    def normalize_time_remaining(cls, v: Any) -> Any:
        if isinstance(v, (str, int, float)) and not isinstance(v, bool):
            return v
        return None

    @field_validator("red_team", "blue_team", mode="before")
    @classmethod
    def normalize_team(cls, v: Any) -> Any:
        return v if isinstance(v, dict) else None

    @field_validator("spectators", mode="before")
    @classmethod
    def normalize_spectators(cls, v: Any) -> Any:
        """Accept bare names as well as {"name": ...} objects."""
        if v is None:
            return None
        if not isinstance(v, list):
            return []
        entries = [{"name": item} if isinstance(item, str) else item for item in v]
        return [entry for entry in entries if _has_name(entry)]

    @field_validator("server_address", mode="before")
    @classmethod
    def normalize_server_address(cls, v: Any) -> Any:
        """Treat an empty or scheme-only address as no address."""
        if not isinstance(v, str) or v.strip() in ("", EMPTY_SERVER_ADDRESS):
            return None
        return v

    @property
    def teams(self) -> list[tuple[str, Team]]:
        """Teams that are present and have at least one player."""
        teams = [("Red Team", self.red_team), ("Blue Team", self.blue_team)]
        return [(label, team) for label, team in teams if team and team.players]
