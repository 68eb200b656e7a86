"""Engine interface for running an agent turn with tools."""

from __future__ import annotations

import hashlib
import logging
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass
from enum import Enum
from typing import Any, Protocol

from agent_mailbox.config import CREDENTIAL_FREE_PROVIDERS, EngineSettings
from agent_mailbox.coordination.signals import WaitCancelledError
from agent_mailbox.coordination.tools.base import Tool, ToolResult

logger = logging.getLogger(__name__)


class EngineError(RuntimeError):
    """The engine could not be configured or a turn failed."""


class EngineEventType(str, Enum):
    AGENT_START = "agent_start"
    TURN_START = "turn_start"
    TOOL_EXECUTION_START = "tool_execution_start"
    TOOL_EXECUTION_END = "tool_execution_end"
    MESSAGE_END = "message_end"
    AGENT_END = "agent_end"


@dataclass(slots=True)
class EngineEvent:
    """One progress event streamed to engine subscribers."""

    type: EngineEventType
    tool_name: str | None = None
    args: dict[str, Any] | None = None
    result: ToolResult | None = None
    is_error: bool = False
    message: dict[str, Any] | None = None


EngineListener = Callable[[EngineEvent], None]


@dataclass(slots=True)
class EngineConfig:
    """Provider selection for one agent; the fingerprint detects config changes."""

    provider: str = "echo"
    model: str = "echo-1"
    api_key: str | None = None
    command_template: str = ""
    timeout_seconds: int = 600
    graceful_shutdown_seconds: int = 5

    @property
    def requires_credential(self) -> bool:
        return self.provider not in CREDENTIAL_FREE_PROVIDERS

    def fingerprint(self) -> str:
        material = "\x00".join((self.provider, self.model, self.api_key or ""))
        return hashlib.sha256(material.encode("utf-8")).hexdigest()

    @classmethod
    def from_settings(
        cls,
        settings: EngineSettings,
        *,
        graceful_shutdown_seconds: int = 5,
    ) -> EngineConfig:
        return cls(
            provider=settings.provider,
            model=settings.model,
            api_key=settings.api_key,
            command_template=settings.command_template,
            timeout_seconds=settings.timeout_seconds,
            graceful_shutdown_seconds=graceful_shutdown_seconds,
        )


class AgentEngine(Protocol):
    """Protocol implemented by engines that drive an agent."""

    history: list[dict[str, Any]]

    def set_system_prompt(self, prompt: str) -> None: ...

    def set_tools(self, tools: Sequence[Tool]) -> None: ...

    def subscribe(self, listener: EngineListener) -> Callable[[], None]: ...

    def prompt(self, text: str) -> str:
        """Run one user turn to completion and return the final assistant text."""


class BaseEngine:
    """Listener fan-out, tool dispatch and conversation history."""

    def __init__(self, config: EngineConfig) -> None:
        self.config = config
        self.system_prompt = ""
        self.tools: dict[str, Tool] = {}
        self.history: list[dict[str, Any]] = []
        self.shutdown_requested: Callable[[], bool] | None = None
        self._listeners: list[EngineListener] = []

    def set_system_prompt(self, prompt: str) -> None:
        self.system_prompt = prompt

    def set_tools(self, tools: Sequence[Tool]) -> None:
        self.tools = {tool.name: tool for tool in tools}

    def subscribe(self, listener: EngineListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def prompt(self, text: str) -> str:
        self._emit(EngineEvent(type=EngineEventType.AGENT_START))
        self.history.append({"role": "user", "content": text})
        try:
            reply = self._run(text)
            message = {"role": "assistant", "content": reply}
            self.history.append(message)
            self._emit(EngineEvent(type=EngineEventType.MESSAGE_END, message=message))
            return reply
        finally:
            self._emit(EngineEvent(type=EngineEventType.AGENT_END))

    def run_tool(self, name: str, args: Mapping[str, Any] | None = None) -> ToolResult:
        """Execute a tool, reporting failures as error results instead of raising."""

        arguments = dict(args or {})
        self._emit(
            EngineEvent(type=EngineEventType.TOOL_EXECUTION_START, tool_name=name, args=arguments),
        )
        tool = self.tools.get(name)
        if tool is None:
            result = ToolResult(text=f"Unknown tool: {name}", is_error=True)
        else:
            try:
                result = tool.execute(arguments)
            except WaitCancelledError:
                raise
            except Exception as error:  # noqa: BLE001
                logger.warning("Tool %s failed: %s", name, error)
                result = ToolResult(
                    text=f"Tool {name} failed: {error}",
                    details={"error": str(error)},
                    is_error=True,
                )
        self._emit(
            EngineEvent(
                type=EngineEventType.TOOL_EXECUTION_END,
                tool_name=name,
                result=result,
                is_error=result.is_error,
            ),
        )
        return result

    def _start_turn(self) -> None:
        self._emit(EngineEvent(type=EngineEventType.TURN_START))

    def _emit(self, event: EngineEvent) -> None:
        for listener in list(self._listeners):
            listener(event)

    def _run(self, text: str) -> str:
        raise NotImplementedError
