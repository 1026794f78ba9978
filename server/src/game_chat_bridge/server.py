"""Bridge server setup.

Key responsibilities:
- Build the output sink and status renderer from configuration
- Share one ChunkReassembler and MessageDispatcher between all servers
- Start one ConnectionGate per configured backend server
- Keep other servers running when one port cannot be bound

Configuration is managed via the config module. See config.py for details.
"""

from __future__ import annotations

import asyncio
import errno
import logging
from dataclasses import dataclass, field

from game_chat_bridge.config import Config
from game_chat_bridge.dispatcher import MessageDispatcher
from game_chat_bridge.gate import ConnectionGate
from game_chat_bridge.reassembly import ChunkReassembler
from game_chat_bridge.sink import (
    EmbedRenderer,
    LogSink,
    OutputSink,
    StatusRenderer,
    WebSocketSink,
)

logger = logging.getLogger(__name__)


@dataclass
class AppContext:
    """Components shared by all connection gates."""

    config: Config
    sink: OutputSink
    renderer: StatusRenderer
    reassembler: ChunkReassembler
    dispatcher: MessageDispatcher
    gates: list[ConnectionGate] = field(default_factory=list)


def create_sink(config: Config) -> OutputSink:
    """Create the output sink selected by configuration.

    Args:
        config: Application configuration

    Returns:
        A WebSocketSink when a gateway URL is configured, a LogSink otherwise
    """
    if config.sink_url:
        return WebSocketSink(
            config.sink_url,
            reconnect_delay_ms=config.sink_reconnect_delay_ms,
            max_queue_size=config.sink_queue_size,
        )
    logger.info("No chat gateway configured, messages will be logged only")
    return LogSink()


def create_context(
    config: Config,
    sink: OutputSink | None = None,
    renderer: StatusRenderer | None = None,
) -> AppContext:
    """Wire up the bridge components for a configuration.

    Args:
        config: Application configuration
        sink: Output sink override (defaults to create_sink(config))
        renderer: Status renderer override (defaults to an EmbedRenderer)

    Returns:
        The assembled context, with one gate per configured server
    """
    sink = sink if sink is not None else create_sink(config)
    renderer = renderer if renderer is not None else EmbedRenderer(sink)
    reassembler = ChunkReassembler(timeout=config.reassembly_timeout)
    dispatcher = MessageDispatcher(sink, renderer, reassembler)

    gates = [
        ConnectionGate(
            server_config,
            dispatcher,
            host=config.host,
            idle_timeout=config.idle_timeout,
        )
        for server_config in config.servers
    ]
    return AppContext(
        config=config,
        sink=sink,
        renderer=renderer,
        reassembler=reassembler,
        dispatcher=dispatcher,
        gates=gates,
    )


class BridgeServer:
    """Runs every configured connection gate and the output sink."""

    def __init__(self, context: AppContext) -> None:
        self._context = context
        self._started: list[ConnectionGate] = []

    @property
    def context(self) -> AppContext:
        return self._context

    @property
    def running_gates(self) -> list[ConnectionGate]:
        """Gates that are currently listening."""
        return [gate for gate in self._started if gate.is_running]

    async def start(self) -> None:
        """Start the sink and all gates.

        A gate whose port cannot be bound is logged and skipped.
        """
        start_sink = getattr(self._context.sink, "start", None)
        if start_sink is not None:
            await start_sink()

        for gate in self._context.gates:
            try:
                await gate.start()
            except OSError as e:
                if e.errno == errno.EADDRINUSE:
                    logger.error(
                        f"Server {gate.name} could not listen on port "
                        f"{gate.config.port}: port is already in use"
                    )
                else:
                    logger.error(
                        f"Server {gate.name} could not listen on port "
                        f"{gate.config.port}: {e}"
                    )
                continue
            self._started.append(gate)

        if not self._started:
            logger.error("No servers are listening")

    async def stop(self) -> None:
        """Stop all gates and the sink and drop pending reassemblies."""
        for gate in self._started:
            await gate.stop()
        self._started = []

        self._context.reassembler.clear()

        stop_sink = getattr(self._context.sink, "stop", None)
        if stop_sink is not None:
            await stop_sink()

    async def serve_forever(self) -> None:
        """Start, then wait until cancelled."""
        await self.start()
        try:
            await asyncio.Event().wait()
        finally:
            await self.stop()
