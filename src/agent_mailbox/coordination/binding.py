"""Bind an engine, its tools and live status tracking to one agent."""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from agent_mailbox.config import Settings
from agent_mailbox.coordination.agent_store import AgentStore
from agent_mailbox.coordination.contracts import now_ms
from agent_mailbox.coordination.engine import (
    BaseEngine,
    EngineConfig,
    EngineEvent,
    EngineEventType,
    create_engine,
)
from agent_mailbox.coordination.mailbox import MailboxStore
from agent_mailbox.coordination.models import WorkerType
from agent_mailbox.coordination.registry import AgentRegistry
from agent_mailbox.coordination.signals import CancellationToken
from agent_mailbox.coordination.supervisor import WorkerSupervisor
from agent_mailbox.coordination.tools import (
    Tool,
    ToolContext,
    create_coding_tools,
    create_master_tools,
    create_worker_tools,
    discover_tools,
)

logger = logging.getLogger(__name__)

_RESPONSE_PREVIEW_CHARS = 200


class StatusTracker:
    """Engine listener that mirrors progress counters into ``status.json``."""

    def __init__(
        self,
        mailbox: MailboxStore,
        agent_id: str,
        *,
        clock: Callable[[], int] = now_ms,
    ) -> None:
        self.mailbox = mailbox
        self.agent_id = agent_id
        self._clock = clock
        current = mailbox.get_status(agent_id) or {}
        self.turns = _counter(current.get("turns"))
        self.tool_calls = _counter(current.get("toolCalls"))

    def __call__(self, event: EngineEvent) -> None:
        if event.type is EngineEventType.AGENT_START:
            logger.info("[%s] Agent started", self.agent_id)
        elif event.type is EngineEventType.TURN_START:
            self.turns += 1
            self.mailbox.update_status(
                self.agent_id,
                {"turns": self.turns, "lastActivity": self._clock()},
            )
        elif event.type is EngineEventType.TOOL_EXECUTION_START:
            self.tool_calls += 1
            self.mailbox.update_status(
                self.agent_id,
                {
                    "toolCalls": self.tool_calls,
                    "lastToolName": event.tool_name,
                    "lastActivity": self._clock(),
                },
            )
            logger.info("[%s] Tool: %s(%s)", self.agent_id, event.tool_name, event.args)
        elif event.type is EngineEventType.TOOL_EXECUTION_END:
            if event.is_error:
                logger.warning("[%s] Tool error: %s", self.agent_id, event.tool_name)
        elif event.type is EngineEventType.MESSAGE_END:
            content = (event.message or {}).get("content") or ""
            if content:
                logger.info(
                    "[%s] Response: %s",
                    self.agent_id,
                    str(content)[:_RESPONSE_PREVIEW_CHARS],
                )
        elif event.type is EngineEventType.AGENT_END:
            logger.info("[%s] Agent finished", self.agent_id)


def _counter(value: object) -> int:
    return value if isinstance(value, int) and not isinstance(value, bool) else 0


@dataclass(slots=True)
class AgentBinding:
    """An engine wired to an agent's tools, status file and history."""

    agent_id: str
    engine: BaseEngine
    tools: list[Tool]
    context: ToolContext
    tracker: StatusTracker
    system_prompt: Callable[[], str]
    agent_store: AgentStore | None = None
    supervisor: WorkerSupervisor | None = None
    _unsubscribe: Callable[[], None] | None = field(default=None, repr=False)

    def run_turn(self, text: str) -> str:
        """Prompt the engine once; the system prompt is re-rendered per turn."""

        self.engine.set_system_prompt(self.system_prompt())
        try:
            return self.engine.prompt(text)
        finally:
            if self.agent_store is not None:
                self.agent_store.save_history(self.agent_id, self.engine.history)

    def close(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None


def master_system_prompt(agent_id: str, registry: AgentRegistry) -> str:
    return (
        f"You are {agent_id}, the master agent of this project. You break work into "
        "tasks, spawn workers for them, answer their questions and collect their "
        "results. Use wait_for_signals when you have nothing else to do.\n\n"
        f"## Tools\n{discover_tools(['communication', 'orchestration'])}\n\n"
        f"## Known agents\n{registry.render_snapshot()}"
    )


def worker_system_prompt(agent_id: str, task: str, worker_type: str) -> str:
    role = (
        "a code worker with read/write access to the workspace"
        if worker_type == WorkerType.CODE.value
        else "a worker agent"
    )
    return (
        f"You are {agent_id}, {role}. Work on your task, use send_to_master for "
        "progress or questions (then wait_for_reply), and finish with "
        f"report_complete.\n\n## Your Task\n{task}"
    )


def worker_env(settings: Settings, config: EngineConfig) -> dict[str, str]:
    """Environment handing the master's engine choice down to its workers."""

    env = settings.engine_env()
    env.update(
        {
            "AGENT_MAILBOX_LLM_PROVIDER": config.provider,
            "AGENT_MAILBOX_LLM_MODEL": config.model,
            "AGENT_MAILBOX_LLM_COMMAND_TEMPLATE": config.command_template,
            "AGENT_MAILBOX_LLM_TIMEOUT_SECONDS": str(config.timeout_seconds),
        },
    )
    if config.api_key:
        env["AGENT_MAILBOX_LLM_API_KEY"] = config.api_key
    return env


def _tool_context(settings: Settings, **fields: Any) -> ToolContext:
    return ToolContext(
        poll_interval_seconds=settings.mailbox.poll_interval_seconds,
        wait_timeout_seconds=settings.mailbox.wait_timeout_seconds,
        reply_timeout_seconds=settings.mailbox.reply_timeout_seconds,
        **fields,
    )


def bind_master(  # noqa: PLR0913
    *,
    agent_store: AgentStore,
    agent_id: str,
    config: EngineConfig,
    settings: Settings,
    workspace: str | None = None,
    cancel_token: CancellationToken | None = None,
    engine_factory: Callable[[EngineConfig], BaseEngine] = create_engine,
) -> AgentBinding:
    """Bind a master: its workers live in the agent's ``workers/`` mailbox base."""

    workers_base = agent_store.workers_dir(agent_id)
    mailbox = MailboxStore(workers_base)
    registry = AgentRegistry(workers_base)
    supervisor = WorkerSupervisor(
        mailbox=mailbox,
        registry=registry,
        python_executable=settings.worker.python_executable,
        env=worker_env(settings, config),
        parent_agent=agent_id,
        workspace=workspace,
        detached=settings.worker.detached,
        graceful_shutdown_seconds=settings.worker.graceful_shutdown_seconds,
    )
    context = _tool_context(
        settings,
        mailbox_base=workers_base,
        agent_id=agent_id,
        supervisor=supervisor,
        cancel_token=cancel_token,
    )
    tools = create_master_tools(context)

    engine = engine_factory(config)
    engine.set_tools(tools)
    engine.history = agent_store.load_history(agent_id)
    if cancel_token is not None:
        engine.shutdown_requested = lambda: cancel_token.cancelled
    tracker = StatusTracker(agent_store.mailbox, agent_id)
    unsubscribe = engine.subscribe(tracker)

    return AgentBinding(
        agent_id=agent_id,
        engine=engine,
        tools=tools,
        context=context,
        tracker=tracker,
        system_prompt=lambda: master_system_prompt(agent_id, registry),
        agent_store=agent_store,
        supervisor=supervisor,
        _unsubscribe=unsubscribe,
    )


def bind_worker(  # noqa: PLR0913
    *,
    mailbox_base: Path,
    agent_id: str,
    task: str,
    worker_type: str,
    config: EngineConfig,
    settings: Settings,
    workspace_dir: Path | None = None,
    cancel_token: CancellationToken | None = None,
    engine_factory: Callable[[EngineConfig], BaseEngine] = create_engine,
) -> AgentBinding:
    context = _tool_context(
        settings,
        mailbox_base=mailbox_base,
        agent_id=agent_id,
        workspace_dir=workspace_dir,
        cancel_token=cancel_token,
    )
    tools = create_worker_tools(context)
    if worker_type == WorkerType.CODE.value:
        tools.extend(create_coding_tools(context))

    engine = engine_factory(config)
    engine.set_tools(tools)
    if cancel_token is not None:
        engine.shutdown_requested = lambda: cancel_token.cancelled
    tracker = StatusTracker(context.mailbox, agent_id)
    unsubscribe = engine.subscribe(tracker)

    return AgentBinding(
        agent_id=agent_id,
        engine=engine,
        tools=tools,
        context=context,
        tracker=tracker,
        system_prompt=lambda: worker_system_prompt(agent_id, task, worker_type),
        _unsubscribe=unsubscribe,
    )
