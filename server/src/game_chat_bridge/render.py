"""Status update rendering.

Turns a StatusUpdate into a chat-native rich message (an embed with a
title, description and fields), and into plain text for log output.
Chat platforms reject empty field values, so every field rendered here
carries some text.
"""

from __future__ import annotations

from pydantic import BaseModel, Field

from game_chat_bridge.models import Player, Spectator, StatusUpdate, Team

# Chat platform limits
MAX_FIELD_VALUE_LENGTH = 1024
MAX_TITLE_LENGTH = 256

NO_SPECTATORS = "No spectators"
TRUNCATION_SUFFIX = "\n..."

RED_COLOR = 0xE74C3C
BLUE_COLOR = 0x3498DB
NEUTRAL_COLOR = 0x95A5A6


class EmbedField(BaseModel):
    """A single named field of a rich message."""

    name: str = Field(min_length=1)
    value: str = Field(min_length=1, max_length=MAX_FIELD_VALUE_LENGTH)
    inline: bool = False


class StatusEmbed(BaseModel):
    """A rich message describing a game status."""

    title: str = Field(min_length=1, max_length=MAX_TITLE_LENGTH)
    description: str = ""
    color: int = NEUTRAL_COLOR
    fields: list[EmbedField] = Field(default_factory=list)


def truncate(text: str, limit: int = MAX_FIELD_VALUE_LENGTH) -> str:
    """Shorten text to fit a length limit, marking the cut."""
    if len(text) <= limit:
        return text
    return text[: limit - len(TRUNCATION_SUFFIX)] + TRUNCATION_SUFFIX


def format_number(value: int | float | str | None) -> str:
    """Format a score or efficiency value for display."""
    if value is None:
        return "-"
    if isinstance(value, float):
        return f"{value:g}"
    return str(value)


def format_player(player: Player) -> str:
    """Render one player line, e.g. "Alice: 12 (85%)"."""
    line = f"{player.name}: {format_number(player.score)}"
    if player.efficiency is not None:
        efficiency = format_number(player.efficiency)
        if not efficiency.endswith("%"):
            efficiency += "%"
        line += f" ({efficiency})"
    return line


def format_team(team: Team) -> str:
    """Render a team's player listing."""
    return "\n".join(format_player(player) for player in team.players)


def format_spectators(spectators: list[Spectator]) -> str:
    """Render a spectator listing, with a placeholder when there are none."""
    if not spectators:
        return NO_SPECTATORS
    return ", ".join(spectator.name for spectator in spectators)


def describe(update: StatusUpdate) -> str:
    """Summary line: game mode, map and time remaining."""
    parts = [f"**{update.game_mode}** on **{update.map_name}**"]
    if update.time_remaining not in (None, ""):
        parts.append(f"Time remaining: {update.time_remaining}")
    return "\n".join(parts)


def _winning_color(update: StatusUpdate) -> int:
    if update.red_team is None or update.blue_team is None:
        return NEUTRAL_COLOR
    if update.red_team.score > update.blue_team.score:
        return RED_COLOR
    if update.blue_team.score > update.red_team.score:
        return BLUE_COLOR
    return NEUTRAL_COLOR


def render_status(update: StatusUpdate) -> StatusEmbed:
    """Build the rich message for a status update.

    Teams are shown only when present with at least one player. The
    spectator field is shown whenever the list was sent, including an
    empty list. The server address is shown only when the backend
    reported one.

    Args:
        update: The status update to render

    Returns:
        The rich message
    """
    fields: list[EmbedField] = []

    for label, team in update.teams:
        fields.append(
            EmbedField(
                name=f"{label} ({format_number(team.score)})",
                value=truncate(format_team(team)),
                inline=True,
            )
        )

    if update.spectators is not None:
        fields.append(
            EmbedField(
                name="Spectators",
                value=truncate(format_spectators(update.spectators)),
            )
        )

    if update.server_address:
        fields.append(EmbedField(name="Join", value=truncate(update.server_address)))

    return StatusEmbed(
        title=truncate(update.server_name, MAX_TITLE_LENGTH),
        description=describe(update),
        color=_winning_color(update),
        fields=fields,
    )


def render_status_text(update: StatusUpdate) -> str:
    """Render a status update as plain text.

    Args:
        update: The status update to render

    Returns:
        Multi-line text with the same content as the rich message
    """
    embed = render_status(update)
    lines = [embed.title, embed.description.replace("**", "")]
    for embed_field in embed.fields:
        lines.append(f"[{embed_field.name}]")
        lines.append(embed_field.value)
    return "\n".join(lines)
