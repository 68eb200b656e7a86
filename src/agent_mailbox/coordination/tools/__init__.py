"""Tool registry and the per-role tool composers."""

from __future__ import annotations

from collections.abc import Callable, Iterable
from dataclasses import dataclass

from agent_mailbox.coordination.supervisor import WorkerSupervisor
from agent_mailbox.coordination.tools.base import Tool, ToolContext, ToolResult
from agent_mailbox.coordination.tools.coding import (
    create_list_files,
    create_read_file,
    create_write_file,
)
from agent_mailbox.coordination.tools.communication import (
    create_report_complete,
    create_send_to_master,
    create_send_to_worker,
    create_wait_for_reply,
    create_wait_for_signals,
)
from agent_mailbox.coordination.tools.orchestration import (
    create_get_worker_output,
    create_list_workers,
    create_spawn_worker,
)


@dataclass(slots=True, frozen=True)
class ToolSpec:
    factory: Callable[[ToolContext], Tool]
    description: str
    required_ctx: tuple[str, ...] = ()


@dataclass(slots=True, frozen=True)
class ToolCategory:
    description: str
    tools: dict[str, ToolSpec]


TOOL_REGISTRY: dict[str, ToolCategory] = {
    "communication": ToolCategory(
        description="Inter-agent messaging: send/receive messages between master and workers",
        tools={
            "send_to_master": ToolSpec(
                create_send_to_master,
                "Worker -> master message",
                ("agent_id", "mailbox_base"),
            ),
            "send_to_worker": ToolSpec(
                create_send_to_worker,
                "Master -> worker message",
                ("mailbox_base",),
            ),
            "wait_for_reply": ToolSpec(
                create_wait_for_reply,
                "Worker blocks until master replies",
                ("agent_id", "mailbox_base"),
            ),
            "wait_for_signals": ToolSpec(
                create_wait_for_signals,
                "Master blocks until worker signal",
                ("mailbox_base", "cursors"),
            ),
            "report_complete": ToolSpec(
                create_report_complete,
                "Worker signals task completion",
                ("agent_id", "mailbox_base"),
            ),
        },
    ),
    "orchestration": ToolCategory(
        description="Agent lifecycle: spawn and monitor worker agents",
        tools={
            "spawn_worker": ToolSpec(
                create_spawn_worker,
                "Spawn a worker as child process",
                ("mailbox_base", "supervisor"),
            ),
            "list_workers": ToolSpec(
                create_list_workers,
                "List all workers with status/uptime",
                ("mailbox_base",),
            ),
            "get_worker_output": ToolSpec(
                create_get_worker_output,
                "Read a worker's outbox messages",
                ("mailbox_base",),
            ),
        },
    ),
    "coding": ToolCategory(
        description="File I/O for code tasks",
        tools={
            "read_file": ToolSpec(create_read_file, "Read file contents"),
            "write_file": ToolSpec(create_write_file, "Write file contents"),
            "list_files": ToolSpec(create_list_files, "List files"),
        },
    ),
}


def discover_tools(categories: Iterable[str] | None = None) -> str:
    """Human-readable catalog of the registry, optionally limited to ``categories``."""

    wanted = set(categories) if categories is not None else None
    blocks = []
    for name, category in TOOL_REGISTRY.items():
        if wanted is not None and name not in wanted:
            continue
        listing = "\n".join(
            f"  - {tool_name}: {spec.description}" for tool_name, spec in category.tools.items()
        )
        blocks.append(f"[{name}] {category.description}\n{listing}")
    return "\n\n".join(blocks)


def instantiate_tools(names: Iterable[str], ctx: ToolContext) -> list[Tool]:
    """Build the named tools with a shared context; unknown names are skipped.

    Raises ``ValueError`` when the context lacks a field a named tool needs.
    """

    tools = []
    for name in names:
        for category in TOOL_REGISTRY.values():
            spec = category.tools.get(name)
            if spec is not None:
                missing = [field for field in spec.required_ctx if getattr(ctx, field) is None]
                if missing:
                    raise ValueError(f"Tool {name} needs context fields: {', '.join(missing)}")
                tools.append(spec.factory(ctx))
                break
    return tools


def create_master_tools(ctx: ToolContext) -> list[Tool]:
    """Orchestration tools sharing one cursor map restored from ``cursors.json``."""

    ctx.cursors = ctx.cursor_store.load()

    def on_worker_spawned(agent_id: str) -> None:
        ctx.cursors.setdefault(agent_id, 0)

    if ctx.supervisor is None:
        ctx.supervisor = WorkerSupervisor(
            mailbox=ctx.mailbox,
            registry=ctx.registry,
            parent_agent=ctx.agent_id,
            on_spawned=on_worker_spawned,
        )
    elif ctx.supervisor.on_spawned is None:
        ctx.supervisor.on_spawned = on_worker_spawned

    return [
        create_spawn_worker(ctx),
        create_send_to_worker(ctx),
        create_list_workers(ctx),
        create_get_worker_output(ctx),
        create_wait_for_signals(ctx),
    ]


def create_worker_tools(ctx: ToolContext) -> list[Tool]:
    return [create_send_to_master(ctx), create_wait_for_reply(ctx), create_report_complete(ctx)]


def create_coding_tools(ctx: ToolContext) -> list[Tool]:
    return [create_read_file(ctx), create_write_file(ctx), create_list_files(ctx)]


__all__ = [
    "TOOL_REGISTRY",
    "Tool",
    "ToolCategory",
    "ToolContext",
    "ToolResult",
    "ToolSpec",
    "create_coding_tools",
    "create_master_tools",
    "create_worker_tools",
    "discover_tools",
    "instantiate_tools",
]
