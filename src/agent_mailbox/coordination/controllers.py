"""Controllers for mailbox CLI commands."""

from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import Path

from agent_mailbox.config import Settings
from agent_mailbox.coordination.agent_store import AgentStore
from agent_mailbox.coordination.mailbox import MailboxStore
from agent_mailbox.coordination.models import status_of
from agent_mailbox.coordination.registry import AgentRegistry
from agent_mailbox.coordination.sessions import SessionManager, engine_config_from_settings
from agent_mailbox.coordination.supervisor import SpawnError, WorkerSupervisor
from agent_mailbox.coordination.tools import Tool, ToolContext, create_master_tools

OPERATOR_ID = "operator"


@dataclass(slots=True)
class WorkerSpawnCommand:
    """CLI input for launching one worker."""

    mailbox_root: Path | None
    task: str
    type: str
    wait: bool
    timeout_seconds: float
    workspace: Path | None = None


@dataclass(slots=True)
class WorkerListCommand:
    mailbox_root: Path | None
    status: str | None


@dataclass(slots=True)
class WorkerOutputCommand:
    mailbox_root: Path | None
    agent_id: str
    limit: int


@dataclass(slots=True)
class SendCommand:
    """CLI input for writing into a worker's inbox."""

    mailbox_root: Path | None
    agent_id: str
    message: str


@dataclass(slots=True)
class SignalsWaitCommand:
    mailbox_root: Path | None
    timeout_seconds: float | None


@dataclass(slots=True)
class RegistrySnapshotCommand:
    mailbox_root: Path | None
    limit: int
    as_json: bool


@dataclass(slots=True)
class AgentsListCommand:
    agents_root: Path | None


@dataclass(slots=True)
class ChatCommand:
    """CLI input for a scripted master session."""

    agents_root: Path | None
    session_id: str
    agent_id: str | None
    messages: tuple[str, ...]
    provider: str | None
    model: str | None
    workspace: Path | None = None


class MailboxCliController:
    """Operator view of a mailbox base: the operator acts as the master."""

    def spawn_worker(self, command: WorkerSpawnCommand) -> list[str]:
        settings = _settings(command.mailbox_root)
        supervisor = _supervisor(settings, workspace=command.workspace)
        tools = _operator_tools(settings, supervisor)
        result = tools["spawn_worker"].execute({"task": command.task, "type": command.type})
        if result.is_error:
            raise SpawnError(result.text)
        lines = [result.text]
        if not command.wait:
            return lines

        agent_id = result.details["agentId"]
        exit_code = supervisor.wait(agent_id, timeout=command.timeout_seconds)
        if exit_code is None:
            lines.append(f"Worker {agent_id} still running after {command.timeout_seconds:g}s.")
            return lines
        status = supervisor.mailbox.get_status(agent_id) or {}
        lifecycle = status_of(status)
        lines.append(
            f"Worker {agent_id} exited: code={exit_code} "
            f"status={lifecycle.value if lifecycle else 'unknown'}",
        )
        if status.get("result"):
            lines.append(f"Result: {status['result']}")
        return lines

    def list_workers(self, command: WorkerListCommand) -> list[str]:
        settings = _settings(command.mailbox_root)
        tools = _operator_tools(settings, _supervisor(settings))
        return tools["list_workers"].execute({"status": command.status}).text.splitlines()

    def worker_output(self, command: WorkerOutputCommand) -> list[str]:
        settings = _settings(command.mailbox_root)
        tools = _operator_tools(settings, _supervisor(settings))
        result = tools["get_worker_output"].execute(
            {"agent_id": command.agent_id, "limit": command.limit},
        )
        return result.text.splitlines()

    def send(self, command: SendCommand) -> list[str]:
        settings = _settings(command.mailbox_root)
        mailbox = MailboxStore(settings.mailbox.root)
        if not mailbox.exists(command.agent_id):
            raise ValueError(f"No mailbox for agent {command.agent_id}.")
        message = mailbox.send_message(command.agent_id, command.message, sender=OPERATOR_ID)
        return [f"Sent {message.id} to {command.agent_id}."]

    def wait_signals(self, command: SignalsWaitCommand) -> list[str]:
        settings = _settings(command.mailbox_root)
        tools = _operator_tools(settings, _supervisor(settings))
        result = tools["wait_for_signals"].execute({"timeout_seconds": command.timeout_seconds})
        return result.text.splitlines()

    def registry_snapshot(self, command: RegistrySnapshotCommand) -> list[str]:
        settings = _settings(command.mailbox_root)
        registry = AgentRegistry(settings.mailbox.root)
        if command.as_json:
            snapshot = registry.get_registry_snapshot()[-command.limit :]
            return [json.dumps(snapshot, ensure_ascii=False, indent=2)]
        return registry.render_snapshot(limit=command.limit).splitlines()

    def list_agents(self, command: AgentsListCommand) -> list[str]:
        settings = Settings.from_env()
        store = AgentStore(command.agents_root or settings.agents_root)
        agents = store.list_agents()
        if not agents:
            return ["No agents found."]
        return [
            f"{agent.agent_id} [{agent.lifecycle}] {agent.config.provider}/{agent.config.model} "
            f"created={agent.config.created_at}"
            for agent in agents
        ]

    def chat(self, command: ChatCommand) -> list[str]:
        settings = Settings.from_env()
        if command.provider:
            settings.engine.provider = command.provider.strip().lower()
        settings.validate()
        config = engine_config_from_settings(settings, model=command.model)
        store = AgentStore(command.agents_root or settings.agents_root)

        lines: list[str] = []
        workspace = str(command.workspace) if command.workspace else None
        with SessionManager(
            agent_store=store,
            settings=settings,
            workspace=workspace,
        ) as manager:
            session = manager.get_or_create_session(
                command.session_id,
                config,
                agent_id=command.agent_id,
            )
            lines.append(f"Session {session.session_id} -> agent {session.agent_id}")
            for message in command.messages:
                lines.append(f"> {message}")
                lines.extend(session.prompt(message).splitlines() or [""])
            supervisor = session.binding.supervisor
            if supervisor is not None:
                for agent_id in supervisor.active_workers():
                    supervisor.wait(agent_id, timeout=settings.mailbox.wait_timeout_seconds)
                supervisor.shutdown()
        return lines


def _settings(mailbox_root: Path | None) -> Settings:
    settings = Settings.from_env(mailbox_root=mailbox_root)
    settings.validate()
    return settings


def _supervisor(settings: Settings, *, workspace: Path | None = None) -> WorkerSupervisor:
    return WorkerSupervisor(
        mailbox=MailboxStore(settings.mailbox.root),
        registry=AgentRegistry(settings.mailbox.root),
        workspace=str(workspace) if workspace else None,
        python_executable=settings.worker.python_executable,
        env=settings.engine_env(),
        detached=settings.worker.detached,
        graceful_shutdown_seconds=settings.worker.graceful_shutdown_seconds,
    )


def _operator_tools(settings: Settings, supervisor: WorkerSupervisor) -> dict[str, Tool]:
    context = ToolContext(
        mailbox_base=settings.mailbox.root,
        supervisor=supervisor,
        poll_interval_seconds=settings.mailbox.poll_interval_seconds,
        wait_timeout_seconds=settings.mailbox.wait_timeout_seconds,
        reply_timeout_seconds=settings.mailbox.reply_timeout_seconds,
    )
    return {tool.name: tool for tool in create_master_tools(context)}
