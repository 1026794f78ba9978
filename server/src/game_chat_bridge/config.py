"""Configuration management for the Game Chat Bridge.

This module provides centralized configuration with support for:
- A JSON configuration file listing the backend servers
- Environment variables for everything else
- Type validation via Pydantic
- Easy testing through config overrides

Environment Variables:
    GCB_CONFIG_FILE: Path to the JSON configuration file (default: config.json)
    GCB_HOST: Address the per-server listeners bind to (default: 0.0.0.0)
    GCB_LOG_LEVEL: Logging level (default: INFO)
    GCB_DEBUG: Log every received payload (default: false)
    GCB_SINK_URL: WebSocket URL of the chat gateway (default: log only)
    GCB_REASSEMBLY_TIMEOUT: Seconds before a partial message is dropped (default: 30)
    GCB_IDLE_TIMEOUT: Seconds of client silence before disconnecting (default: off)

Configuration file:
    {
        "debug": false,
        "servers": [
            {"name": "Arena", "port": 7777, "password": "secret", "channel": "1234"}
        ]
    }

Usage:
    from game_chat_bridge.config import load_config

    config = load_config("config.json")
    for server in config.servers:
        print(server.name, server.port)
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from game_chat_bridge.protocol import DEFAULT_REASSEMBLY_TIMEOUT


class ConfigError(Exception):
    """Raised when the configuration file cannot be read or parsed."""


class ServerConnectionConfig(BaseModel):
    """Settings for one backend server connection.

    Attributes:
        name: Display name of the backend server
        port: TCP port the bridge listens on for this server
        password: Shared secret expected in the PASS line
        channel: Identifier of the output channel messages are sent to
        debug: Log every payload received from this server
    """

    model_config = ConfigDict(frozen=True, extra="ignore")

    name: str = Field(min_length=1)
    port: int = Field(ge=1, le=65535)
    password: str = Field(min_length=1, repr=False)
    channel: str = Field(min_length=1)
    debug: bool = False

    @field_validator("channel", mode="before")
    @classmethod
    def coerce_channel(cls, v: Any) -> Any:
        """Channel ids are often written as JSON numbers."""
        if isinstance(v, int) and not isinstance(v, bool):
            return str(v)
        return v


class Config(BaseSettings):
    """Application configuration with environment variable support.

    All settings can be overridden via environment variables prefixed with GCB_.
    For example, GCB_LOG_LEVEL=DEBUG sets log_level to DEBUG.

    Attributes:
        host: Address the per-server listeners bind to
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        debug: Log every received payload, applied to every server
        sink_url: WebSocket URL of the chat gateway, None for log-only delivery
        sink_reconnect_delay_ms: Delay between gateway reconnection attempts
        sink_queue_size: Messages kept while the gateway is unreachable
        reassembly_timeout: Seconds before an incomplete split message is dropped
        idle_timeout: Seconds of client silence before disconnecting, None to disable
        servers: Backend servers, in configuration order
    """

    model_config = SettingsConfigDict(
        env_prefix="GCB_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Network configuration
    host: str = Field(
        default="0.0.0.0",
        description="Address the per-server listeners bind to",
    )

    # Logging configuration
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        description="Logging level",
    )
    debug: bool = Field(
        default=False,
        description="Log every received payload",
    )

    # Delivery configuration
    sink_url: str | None = Field(
        default=None,
        description="WebSocket URL of the chat gateway",
    )
    sink_reconnect_delay_ms: int = Field(
        default=2000,
        ge=0,
        description="Delay between gateway reconnection attempts (milliseconds)",
    )
    sink_queue_size: int = Field(
        default=100,
        ge=1,
        description="Messages queued while the gateway is unreachable",
    )

    # Protocol configuration
    reassembly_timeout: float = Field(
        default=DEFAULT_REASSEMBLY_TIMEOUT,
        gt=0,
        description="Seconds before an incomplete split message is dropped",
    )
    idle_timeout: float | None = Field(
        default=None,
        gt=0,
        description="Seconds of client silence before disconnecting",
    )

    servers: list[ServerConnectionConfig] = Field(default_factory=list)

    @field_validator("log_level", mode="before")
    @classmethod
    def normalize_log_level(cls, v: Any) -> Any:
        """Normalize log level to uppercase."""
        if isinstance(v, str):
            return v.upper()
        return v

    @model_validator(mode="after")
    def validate_servers(self) -> Config:
        """Validate server uniqueness and apply the global debug flag."""
        names = [server.name for server in self.servers]
        duplicates = sorted({name for name in names if names.count(name) > 1})
        if duplicates:
            raise ValueError(f"Duplicate server names: {', '.join(duplicates)}")

        ports = [server.port for server in self.servers]
        duplicate_ports = sorted({port for port in ports if ports.count(port) > 1})
        if duplicate_ports:
            raise ValueError(
                f"Duplicate server ports: {', '.join(map(str, duplicate_ports))}"
            )

        if self.debug:
            self.servers = [
                server.model_copy(update={"debug": True}) for server in self.servers
            ]
        return self

    def setup_logging(self) -> None:
        """Configure logging based on config settings."""
        logging.basicConfig(
            level=getattr(logging, self.log_level, logging.INFO),
            format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert config to dictionary for logging/debugging.

        Passwords are left out.

        Returns:
            Dictionary of config values
        """
        return {
            "host": self.host,
            "log_level": self.log_level,
            "debug": self.debug,
            "sink_url": self.sink_url,
            "reassembly_timeout": self.reassembly_timeout,
            "idle_timeout": self.idle_timeout,
            "servers": [
                {"name": s.name, "port": s.port, "channel": s.channel}
                for s in self.servers
            ],
        }


def read_json_config(path: str | Path) -> dict[str, Any]:
    """Read a JSON configuration file.

    Args:
        path: Path to the configuration file

    Returns:
        The decoded JSON object

    Raises:
        ConfigError: If the file cannot be read or is not a JSON object
    """
    try:
        text = Path(path).read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigError(f"Unable to read configuration file {path}: {e}") from e

    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        raise ConfigError("The configuration file contains invalid JSON.") from e

    if not isinstance(data, dict):
        raise ConfigError("The configuration file must contain a JSON object.")
    return data


def load_config(path: str | Path) -> Config:
    """Load configuration from a JSON file, with environment fallbacks.

    Values from the file take precedence over GCB_ environment variables.

    Args:
        path: Path to the configuration file

    Returns:
        A validated Config

    Raises:
        ConfigError: If the file cannot be read or parsed
        pydantic.ValidationError: If the configuration values are invalid
    """
    return Config(**read_json_config(path))


# Module-level singleton instance
_config_instance: Config | None = None


def get_config() -> Config:
    """Get the singleton configuration instance.

    Creates the config on first call, caching it for subsequent calls.
    The config is loaded from environment variables and optional .env file.

    Returns:
        The Config singleton instance

    Note:
        For testing, use set_config() to inject a test configuration,
        or call reset_config() to force reloading from environment.
    """
    global _config_instance
    if _config_instance is None:
        _config_instance = Config()
    return _config_instance


def set_config(config: Config) -> None:
    """Set the configuration instance.

    Args:
        config: Config instance to use as the singleton
    """
    global _config_instance
    _config_instance = config


def reset_config() -> None:
    """Reset the configuration singleton.

    Forces the next get_config() call to reload from environment.
    """
    global _config_instance
    _config_instance = None
