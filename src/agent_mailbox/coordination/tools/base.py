"""Tool contract shared by every agent engine."""

from __future__ import annotations

import time
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from agent_mailbox.coordination.cursors import CursorStore
from agent_mailbox.coordination.mailbox import MailboxStore
from agent_mailbox.coordination.registry import AgentRegistry
from agent_mailbox.coordination.signals import (
    DEFAULT_POLL_INTERVAL_SECONDS,
    DEFAULT_TIMEOUT_SECONDS,
    CancellationToken,
)


@dataclass(slots=True)
class ToolResult:
    """Text handed back to the engine plus structured details for callers."""

    text: str
    details: dict[str, Any] = field(default_factory=dict)
    is_error: bool = False


@dataclass(slots=True)
class Tool:
    """A named callable an engine may invoke with JSON arguments."""

    name: str
    label: str
    description: str
    parameters: dict[str, Any]
    handler: Callable[..., ToolResult]

    def execute(self, args: Mapping[str, Any] | None = None) -> ToolResult:
        return self.handler(**dict(args or {}))

    def describe(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "parameters": self.parameters,
        }


@dataclass(slots=True)
class ToolContext:
    """Everything a tool factory may need; factories read only their own fields."""

    mailbox_base: Path
    agent_id: str | None = None
    workspace_dir: Path | None = None
    cursors: dict[str, int] = field(default_factory=dict)
    supervisor: Any = None
    cancel_token: CancellationToken | None = None
    poll_interval_seconds: float = DEFAULT_POLL_INTERVAL_SECONDS
    wait_timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS
    reply_timeout_seconds: float = 120.0
    clock: Callable[[], float] = time.monotonic
    sleep: Callable[[float], None] | None = None

    @property
    def mailbox(self) -> MailboxStore:
        return MailboxStore(self.mailbox_base)

    @property
    def registry(self) -> AgentRegistry:
        return AgentRegistry(self.mailbox_base)

    @property
    def cursor_store(self) -> CursorStore:
        return CursorStore(self.mailbox_base)

    def require_agent_id(self) -> str:
        if not self.agent_id:
            raise ValueError("This tool needs the calling agent's id in its context.")
        return self.agent_id


def object_schema(properties: dict[str, dict[str, Any]], required: list[str]) -> dict[str, Any]:
    """JSON schema of a tool's argument object."""

    return {"type": "object", "properties": properties, "required": required}
