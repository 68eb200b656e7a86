"""Worker lifecycle tools for master agents."""

from __future__ import annotations

from typing import Any

from agent_mailbox.coordination.contracts import now_ms
from agent_mailbox.coordination.models import WorkerType
from agent_mailbox.coordination.supervisor import SpawnError
from agent_mailbox.coordination.tools.base import Tool, ToolContext, ToolResult, object_schema

DEFAULT_OUTPUT_LIMIT = 20
_OUTPUT_PREVIEW_CHARS = 200
_STATUS_MARKERS = {"complete": "✅", "error": "❌", "running": "🔄"}


def format_age(ms: int) -> str:
    """Compact age: ``850ms``, ``42s``, ``3m7s``."""

    if ms < 1000:
        return f"{ms}ms"
    seconds = round(ms / 1000)
    if seconds < 60:
        return f"{seconds}s"
    return f"{seconds // 60}m{seconds % 60}s"


def create_spawn_worker(ctx: ToolContext) -> Tool:
    if ctx.supervisor is None:
        raise ValueError("spawn_worker needs a worker supervisor in its context.")

    def spawn_worker(task: str, type: str = WorkerType.GENERAL.value) -> ToolResult:  # noqa: A002
        try:
            worker = ctx.supervisor.spawn_worker(task, type or WorkerType.GENERAL.value)
        except SpawnError as error:
            return ToolResult(text=str(error), details={"error": str(error)}, is_error=True)
        return ToolResult(
            text=f'Spawned worker {worker.agent_id} (pid={worker.pid}) for task: "{task}"',
            details={
                "agentId": worker.agent_id,
                "pid": worker.pid,
                "task": task,
                "type": worker.type,
            },
        )

    return Tool(
        name="spawn_worker",
        label="Spawn Worker",
        description="Spawn a worker agent to perform a task. Returns the agent ID.",
        parameters=object_schema(
            {
                "task": {"type": "string", "description": "Task description for the worker"},
                "type": {
                    "type": "string",
                    "enum": [item.value for item in WorkerType],
                    "description": 'Worker type: "general" or "code"',
                    "default": WorkerType.GENERAL.value,
                },
            },
            ["task"],
        ),
        handler=spawn_worker,
    )


def create_list_workers(ctx: ToolContext) -> Tool:
    def list_workers(status: str | None = None) -> ToolResult:
        now = now_ms()
        workers: list[dict[str, Any]] = []
        for agent_id, entry in ctx.registry.load_registry().agents.items():
            doc = ctx.mailbox.get_status(agent_id) or {}
            started_at = doc.get("startedAt")
            last_activity = doc.get("lastActivity")
            workers.append(
                {
                    "agentId": agent_id,
                    "task": entry.task,
                    "type": entry.type,
                    "status": doc.get("status") or "unknown",
                    "pid": doc.get("pid"),
                    "uptime": format_age(now - started_at)
                    if isinstance(started_at, int)
                    else "?",
                    "lastActive": f"{format_age(now - last_activity)} ago"
                    if isinstance(last_activity, int)
                    else "never",
                    "toolCalls": doc.get("toolCalls") or 0,
                    "turns": doc.get("turns") or 0,
                    "lastToolName": doc.get("lastToolName"),
                    "result": doc.get("result"),
                },
            )

        if status:
            workers = [worker for worker in workers if worker["status"] == status]
        if not workers:
            text = f'No workers with status "{status}".' if status else "No workers registered."
            return ToolResult(text=text, details={"workers": []})

        lines = [f"{len(workers)} worker(s):"]
        for worker in workers:
            marker = _STATUS_MARKERS.get(worker["status"], "❓")
            tool_info = (
                f" | {worker['toolCalls']} tools (last: {worker['lastToolName']})"
                if worker["toolCalls"]
                else ""
            )
            lines.append(
                f"{marker} {worker['agentId']} [{worker['status']}] ({worker['type']}) - "
                f"uptime: {worker['uptime']}, active: {worker['lastActive']}{tool_info}",
            )
            lines.append(f"   Task: {worker['task']}")
        return ToolResult(text="\n".join(lines), details={"workers": workers})

    return Tool(
        name="list_workers",
        label="List Workers",
        description="List all registered worker agents with their status, uptime, and activity.",
        parameters=object_schema(
            {
                "status": {
                    "type": "string",
                    "description": 'Filter by status: "running", "complete", or "error"',
                },
            },
            [],
        ),
        handler=list_workers,
    )


def create_get_worker_output(ctx: ToolContext) -> Tool:
    def get_worker_output(agent_id: str, limit: int | None = None) -> ToolResult:
        if not ctx.mailbox.exists(agent_id):
            return ToolResult(
                text=f"Worker {agent_id} not found or has no output.",
                details={"messages": []},
            )
        messages = ctx.mailbox.read_outbox(agent_id).messages
        if not messages:
            return ToolResult(
                text=f"Worker {agent_id} has no output yet.",
                details={"messages": []},
            )
        shown = messages[-(limit or DEFAULT_OUTPUT_LIMIT) :]
        lines = [
            f"[{index}] {message.sender or 'unknown'}: {message.text()[:_OUTPUT_PREVIEW_CHARS]}"
            for index, message in enumerate(shown, start=1)
        ]
        return ToolResult(
            text="\n".join(lines),
            details={
                "messages": [message.to_record() for message in shown],
                "count": len(shown),
            },
        )

    return Tool(
        name="get_worker_output",
        label="Get Worker Output",
        description=(
            "Read messages and results from a specific worker agent. "
            "Returns the worker's outbox messages."
        ),
        parameters=object_schema(
            {
                "agent_id": {
                    "type": "string",
                    "description": "The worker agent ID to read output from",
                },
                "limit": {
                    "type": "integer",
                    "description": f"Max messages to return (default: {DEFAULT_OUTPUT_LIMIT})",
                },
            },
            ["agent_id"],
        ),
        handler=get_worker_output,
    )
