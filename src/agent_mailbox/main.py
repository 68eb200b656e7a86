"""CLI entrypoint for agent-mailbox."""

import logging
from pathlib import Path

import rich_click as click

from agent_mailbox import __version__
from agent_mailbox.coordination.controllers import (
    AgentsListCommand,
    ChatCommand,
    MailboxCliController,
    RegistrySnapshotCommand,
    SendCommand,
    SignalsWaitCommand,
    WorkerListCommand,
    WorkerOutputCommand,
    WorkerSpawnCommand,
)
from agent_mailbox.coordination.engine import EngineError
from agent_mailbox.coordination.models import WorkerType
from agent_mailbox.coordination.sessions import SessionConfigError
from agent_mailbox.coordination.supervisor import SpawnError

click.rich_click.USE_MARKDOWN = True
CONTROLLER = MailboxCliController()

_MAILBOX_ROOT_OPTION = click.option(
    "--mailbox-root",
    type=click.Path(path_type=Path),
    default=None,
    help="Mailbox base directory. Defaults to AGENT_MAILBOX_ROOT or .agents/mailbox.",
)

_WORKSPACE_OPTION = click.option(
    "--workspace",
    type=click.Path(path_type=Path, file_okay=False),
    default=None,
    help="Directory code workers read and write. Defaults to the current directory.",
)


@click.group()
@click.version_option(version=__version__, prog_name="agent-mailbox")
@click.option(
    "--log-level",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    default="WARNING",
    show_default=True,
    help="Log level for diagnostics written to stderr.",
)
def agent_mailbox(log_level: str) -> None:
    """File-based mailbox and worker orchestration for agents."""

    logging.basicConfig(
        level=log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


@agent_mailbox.group()
def workers() -> None:
    """Worker lifecycle commands."""


@workers.command("spawn")
@_MAILBOX_ROOT_OPTION
@click.option("--task", required=True, help="Task description for the worker.")
@click.option(
    "--type",
    "worker_type",
    type=click.Choice([item.value for item in WorkerType]),
    default=WorkerType.GENERAL.value,
    show_default=True,
)
@click.option(
    "--wait/--no-wait",
    default=True,
    show_default=True,
    help="Wait for the worker to exit and apply the exit safety net.",
)
@click.option(
    "--timeout-seconds",
    type=click.FloatRange(min=0),
    default=300.0,
    show_default=True,
    help="How long --wait waits for the worker.",
)
@_WORKSPACE_OPTION
def workers_spawn(  # noqa: PLR0913
    mailbox_root: Path | None,
    task: str,
    worker_type: str,
    wait: bool,
    timeout_seconds: float,
    workspace: Path | None,
) -> None:
    """Spawn a worker process for a task."""

    try:
        lines = CONTROLLER.spawn_worker(
            WorkerSpawnCommand(
                mailbox_root=mailbox_root,
                task=task,
                type=worker_type,
                wait=wait,
                timeout_seconds=timeout_seconds,
                workspace=workspace,
            ),
        )
    except (SpawnError, ValueError) as error:
        raise click.ClickException(str(error)) from error
    _emit_lines(lines)


@workers.command("list")
@_MAILBOX_ROOT_OPTION
@click.option("--status", default=None, help="Filter by status, for example running.")
def workers_list(mailbox_root: Path | None, status: str | None) -> None:
    """List registered workers with status, uptime and activity."""

    _emit_lines(
        CONTROLLER.list_workers(WorkerListCommand(mailbox_root=mailbox_root, status=status)),
    )


@workers.command("output")
@_MAILBOX_ROOT_OPTION
@click.argument("agent_id")
@click.option(
    "--limit",
    type=click.IntRange(min=1, max=1000),
    default=20,
    show_default=True,
    help="How many latest outbox messages to print.",
)
def workers_output(mailbox_root: Path | None, agent_id: str, limit: int) -> None:
    """Print the latest messages a worker sent to its master."""

    try:
        lines = CONTROLLER.worker_output(
            WorkerOutputCommand(mailbox_root=mailbox_root, agent_id=agent_id, limit=limit),
        )
    except ValueError as error:
        raise click.ClickException(str(error)) from error
    _emit_lines(lines)


@agent_mailbox.command("send")
@_MAILBOX_ROOT_OPTION
@click.argument("agent_id")
@click.argument("message")
def send(mailbox_root: Path | None, agent_id: str, message: str) -> None:
    """Append a message to a worker's inbox."""

    try:
        lines = CONTROLLER.send(
            SendCommand(mailbox_root=mailbox_root, agent_id=agent_id, message=message),
        )
    except ValueError as error:
        raise click.ClickException(str(error)) from error
    _emit_lines(lines)


@agent_mailbox.group()
def signals() -> None:
    """Signal polling commands."""


@signals.command("wait")
@_MAILBOX_ROOT_OPTION
@click.option(
    "--timeout-seconds",
    type=click.FloatRange(min=0, min_open=True),
    default=None,
    help="Max seconds to wait. Defaults to AGENT_MAILBOX_WAIT_TIMEOUT_SECONDS.",
)
def signals_wait(mailbox_root: Path | None, timeout_seconds: float | None) -> None:
    """Block until a worker message or exit arrives, advancing persisted cursors."""

    _emit_lines(
        CONTROLLER.wait_signals(
            SignalsWaitCommand(mailbox_root=mailbox_root, timeout_seconds=timeout_seconds),
        ),
    )


@agent_mailbox.group()
def registry() -> None:
    """Agent registry commands."""


@registry.command("snapshot")
@_MAILBOX_ROOT_OPTION
@click.option(
    "--limit",
    type=click.IntRange(min=1, max=1000),
    default=50,
    show_default=True,
)
@click.option("--json", "as_json", is_flag=True, default=False, help="Print raw JSON.")
def registry_snapshot(mailbox_root: Path | None, limit: int, as_json: bool) -> None:
    """Show the registered agents."""

    _emit_lines(
        CONTROLLER.registry_snapshot(
            RegistrySnapshotCommand(mailbox_root=mailbox_root, limit=limit, as_json=as_json),
        ),
    )


@agent_mailbox.group()
def agents() -> None:
    """Persisted master agent commands."""


@agents.command("list")
@click.option("--agents-root", type=click.Path(path_type=Path), default=None)
def agents_list(agents_root: Path | None) -> None:
    """List persisted agents, newest first."""

    _emit_lines(CONTROLLER.list_agents(AgentsListCommand(agents_root=agents_root)))


@agent_mailbox.command("chat")
@click.option("--agents-root", type=click.Path(path_type=Path), default=None)
@click.option("--session", "session_id", default="cli", show_default=True)
@click.option("--agent-id", default=None, help="Rebind an existing agent instead of minting one.")
@click.option(
    "--message",
    "messages",
    multiple=True,
    required=True,
    help="Message for the master agent. Can be repeated.",
)
@click.option("--provider", default=None, help="Engine provider override (echo or cli).")
@click.option("--model", default=None, help="Model override.")
@_WORKSPACE_OPTION
def chat(  # noqa: PLR0913
    agents_root: Path | None,
    session_id: str,
    agent_id: str | None,
    messages: tuple[str, ...],
    provider: str | None,
    model: str | None,
    workspace: Path | None,
) -> None:
    """Send messages to a master agent session and print its replies."""

    try:
        lines = CONTROLLER.chat(
            ChatCommand(
                agents_root=agents_root,
                session_id=session_id,
                agent_id=agent_id,
                messages=messages,
                provider=provider,
                model=model,
                workspace=workspace,
            ),
        )
    except (SessionConfigError, EngineError, ValueError) as error:
        raise click.ClickException(str(error)) from error
    _emit_lines(lines)


def _emit_lines(lines: list[str]) -> None:
    for line in lines:
        click.echo(line)


if __name__ == "__main__":  # pragma: no cover
    agent_mailbox()
