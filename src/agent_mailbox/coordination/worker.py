"""Worker process entry point.

Usage: ``python -m agent_mailbox.coordination.worker --id <id> --mailbox <dir>
--task <task> [--type general|code]``. The exit code is 0 on success and 1 on
failure; the final state is also written to the worker's ``status.json``.
"""

from __future__ import annotations

import argparse
import logging
import os
import signal
import sys
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

from agent_mailbox.config import Settings
from agent_mailbox.coordination.binding import bind_worker
from agent_mailbox.coordination.contracts import now_ms
from agent_mailbox.coordination.engine import EngineConfig
from agent_mailbox.coordination.mailbox import MailboxStore
from agent_mailbox.coordination.models import AgentStatus, WorkerType, status_of
from agent_mailbox.coordination.signals import CancellationToken, WaitCancelledError

logger = logging.getLogger("agent_mailbox.worker")

UNREPORTED_RESULT = "Worker finished without explicit report_complete"


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="agent-mailbox-worker")
    parser.add_argument("--id", required=True, dest="agent_id")
    parser.add_argument("--mailbox", required=True)
    parser.add_argument("--task", required=True)
    parser.add_argument(
        "--type",
        default=WorkerType.GENERAL.value,
        choices=[item.value for item in WorkerType],
        dest="worker_type",
    )
    parser.add_argument("--workspace", default=None)
    return parser


def main(argv: list[str] | None = None) -> int:
    """Run one worker task to completion."""

    args = _build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.INFO,
        stream=sys.stdout,
        format="%(levelname)s %(name)s: %(message)s",
    )

    mailbox_base = Path(args.mailbox)
    mailbox = MailboxStore(mailbox_base)
    mailbox.create_mailbox(args.agent_id)
    mailbox.update_status(
        args.agent_id,
        {
            "status": AgentStatus.RUNNING.value,
            "pid": os.getpid(),
            "startedAt": now_ms(),
            "toolCalls": 0,
            "turns": 0,
        },
    )
    logger.info("[%s] Starting (type=%s)", args.agent_id, args.worker_type)
    logger.info("[%s] Task: %s", args.agent_id, args.task)

    token = CancellationToken()
    try:
        settings = Settings.from_env(mailbox_root=mailbox_base)
        config = EngineConfig.from_settings(
            settings.engine,
            graceful_shutdown_seconds=settings.worker.graceful_shutdown_seconds,
        )
        with _signal_handlers(token):
            binding = bind_worker(
                mailbox_base=mailbox_base,
                agent_id=args.agent_id,
                task=args.task,
                worker_type=args.worker_type,
                config=config,
                settings=settings,
                workspace_dir=Path(args.workspace) if args.workspace else None,
                cancel_token=token,
            )
            try:
                binding.run_turn(args.task)
            finally:
                binding.close()
    except WaitCancelledError:
        logger.warning("[%s] Cancelled", args.agent_id)
        _mark_failed(mailbox, args.agent_id, "Worker cancelled by signal")
        return 1
    except Exception as error:  # noqa: BLE001
        logger.exception("[%s] Error: %s", args.agent_id, error)
        _mark_failed(mailbox, args.agent_id, str(error))
        return 1

    if status_of(mailbox.get_status(args.agent_id)) is AgentStatus.RUNNING:
        mailbox.update_status(
            args.agent_id,
            {
                "status": AgentStatus.COMPLETE.value,
                "result": UNREPORTED_RESULT,
                "exitCode": 0,
            },
        )
    logger.info("[%s] Done", args.agent_id)
    return 0


def _mark_failed(mailbox: MailboxStore, agent_id: str, reason: str) -> None:
    mailbox.update_status(
        agent_id,
        {"status": AgentStatus.ERROR.value, "result": reason, "exitCode": 1},
    )


@contextmanager
def _signal_handlers(token: CancellationToken) -> Iterator[None]:
    if not hasattr(signal, "SIGTERM"):
        yield
        return

    original_sigint = signal.getsignal(signal.SIGINT)
    original_sigterm = signal.getsignal(signal.SIGTERM)

    def _handler(signum: int, _: object | None) -> None:
        try:
            name = signal.Signals(signum).name
        except ValueError:
            name = str(signum)
        logger.warning("Received %s; cancelling", name)
        token.cancel()

    try:
        signal.signal(signal.SIGINT, _handler)
        signal.signal(signal.SIGTERM, _handler)
    except ValueError:
        # Signal handlers can only be installed in main thread.
        yield
        return
    try:
        yield
    finally:
        signal.signal(signal.SIGINT, original_sigint)
        signal.signal(signal.SIGTERM, original_sigterm)


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
