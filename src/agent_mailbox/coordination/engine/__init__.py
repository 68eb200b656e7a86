"""Agent engines: the reasoning loop behind masters and workers."""

from __future__ import annotations

from agent_mailbox.coordination.engine.base import (
    AgentEngine,
    BaseEngine,
    EngineConfig,
    EngineError,
    EngineEvent,
    EngineEventType,
)
from agent_mailbox.coordination.engine.cli_engine import CliAgentEngine
from agent_mailbox.coordination.engine.echo_engine import EchoEngine


def create_engine(config: EngineConfig) -> BaseEngine:
    """Instantiate the engine named by ``config.provider``."""

    if config.requires_credential and not config.api_key:
        raise EngineError(f"Provider {config.provider!r} needs an API key.")
    if config.provider == "echo":
        return EchoEngine(config)
    if config.provider == "cli":
        return CliAgentEngine(config)
    raise EngineError(f"Unsupported engine provider: {config.provider!r}")


__all__ = [
    "AgentEngine",
    "BaseEngine",
    "CliAgentEngine",
    "EchoEngine",
    "EngineConfig",
    "EngineError",
    "EngineEvent",
    "EngineEventType",
    "create_engine",
]
