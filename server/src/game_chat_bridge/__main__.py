"""Entry point for the Game Chat Bridge.

Usage:
    python -m game_chat_bridge [config.json]

Environment Variables:
    GCB_CONFIG_FILE: Path to the JSON configuration file (default: config.json)
    GCB_HOST: Address the per-server listeners bind to (default: 0.0.0.0)
    GCB_LOG_LEVEL: Logging level (default: INFO)
    GCB_DEBUG: Log every received payload (default: false)
    GCB_SINK_URL: WebSocket URL of the chat gateway (default: log only)
    GCB_REASSEMBLY_TIMEOUT: Seconds before a partial message is dropped (default: 30)
    GCB_IDLE_TIMEOUT: Seconds of client silence before disconnecting (default: off)
"""

from __future__ import annotations

import asyncio
import logging
import os
import sys

from pydantic import ValidationError

from game_chat_bridge import __version__
from game_chat_bridge.config import Config, ConfigError, load_config, set_config
from game_chat_bridge.server import BridgeServer, create_context

DEFAULT_CONFIG_FILE = "config.json"


def resolve_config_path(argv: list[str]) -> str:
    """Pick the configuration file from the command line or environment."""
    if argv:
        return argv[0]
    return os.environ.get("GCB_CONFIG_FILE", DEFAULT_CONFIG_FILE)


def print_banner(config: Config) -> None:
    """Print version and configuration summary to stdout."""
    print(f"Game Chat Bridge v{__version__}")
    print("Configuration:")
    print(f"  Bind address: {config.host}")
    print(f"  Log level: {config.log_level}")
    print(f"  Output: {config.sink_url or 'log only'}")
    print(f"  Reassembly timeout: {config.reassembly_timeout:g}s")
    for server in config.servers:
        print(f"  Server {server.name}: port {server.port} -> channel {server.channel}")


def run_server(config: Config) -> int:
    """Run the bridge until interrupted.

    Args:
        config: Application configuration

    Returns:
        Exit code (0 for success, non-zero for error)
    """
    logger = logging.getLogger(__name__)
    server = BridgeServer(create_context(config))

    try:
        asyncio.run(server.serve_forever())
        return 0
    except KeyboardInterrupt:
        return 0
    except Exception as e:
        logger.error(f"Server error: {e}", exc_info=True)
        print(f"Error: {e}", file=sys.stderr)
        return 1


def main(argv: list[str] | None = None) -> int:
    """Main entry point."""
    path = resolve_config_path(sys.argv[1:] if argv is None else argv)

    try:
        config = load_config(path)
    except (ConfigError, ValidationError) as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return 1

    config.setup_logging()
    set_config(config)

    if not config.servers:
        print("Configuration error: no servers configured", file=sys.stderr)
        return 1

    print_banner(config)
    return run_server(config)


if __name__ == "__main__":
    sys.exit(main())
