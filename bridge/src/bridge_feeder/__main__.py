"""Entry point for the Bridge Feeder.

Reads messages from stdin, one per line, and sends them to the
Game Chat Bridge.

Usage:
    FEEDER_PASSWORD=secret python -m bridge_feeder < messages.txt

Environment Variables:
    FEEDER_HOST: Bridge host (default: 127.0.0.1)
    FEEDER_PORT: Bridge port (default: 7777)
    FEEDER_PASSWORD: Shared secret for the port (required)
    FEEDER_MAX_CHUNK_SIZE: Largest data segment per chunk (default: 400)
    FEEDER_LOG_LEVEL: Logging level (default: INFO)
"""

from __future__ import annotations

import asyncio
import logging
import os
import sys

from bridge_feeder.protocol import DEFAULT_HOST, DEFAULT_MAX_CHUNK_SIZE, DEFAULT_PORT
from bridge_feeder.relay import run_feeder


def setup_logging() -> None:
    """Configure logging for the feeder process."""
    log_level = os.environ.get("FEEDER_LOG_LEVEL", "INFO").upper()
    logging.basicConfig(
        level=getattr(logging, log_level, logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        stream=sys.stderr,
    )


def main() -> int:
    """Main entry point."""
    setup_logging()

    password = os.environ.get("FEEDER_PASSWORD")
    if not password:
        print("FEEDER_PASSWORD must be set", file=sys.stderr)
        return 1

    host = os.environ.get("FEEDER_HOST", DEFAULT_HOST)
    port = int(os.environ.get("FEEDER_PORT", str(DEFAULT_PORT)))
    max_chunk_size = int(
        os.environ.get("FEEDER_MAX_CHUNK_SIZE", str(DEFAULT_MAX_CHUNK_SIZE))
    )

    return asyncio.run(
        run_feeder(password, host=host, port=port, max_chunk_size=max_chunk_size)
    )


if __name__ == "__main__":
    sys.exit(main())
