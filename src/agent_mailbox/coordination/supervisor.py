"""Spawns worker processes and guarantees each one ends in a terminal status."""

from __future__ import annotations

import logging
import os
import subprocess
import sys
import threading
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import IO

from agent_mailbox.coordination.ids import mint_worker_id
from agent_mailbox.coordination.mailbox import MailboxStore
from agent_mailbox.coordination.models import AgentStatus, WorkerType, status_of
from agent_mailbox.coordination.processes import terminate_process
from agent_mailbox.coordination.registry import AgentRegistry

logger = logging.getLogger(__name__)

WORKER_MODULE = "agent_mailbox.coordination.worker"


class SpawnError(RuntimeError):
    """The worker process could not be started."""


@dataclass(slots=True)
class SpawnedWorker:
    """Handle of a worker launched by this supervisor."""

    agent_id: str
    pid: int
    task: str
    type: str
    process: subprocess.Popen[str]
    watcher: threading.Thread


class WorkerSupervisor:
    """Owns the OS-level lifecycle of workers under one mailbox base.

    Worker stdout/stderr is relayed to this module's logger for diagnostics
    only; the message protocol runs exclusively through the mailbox files.
    """

    def __init__(  # noqa: PLR0913
        self,
        *,
        mailbox: MailboxStore,
        registry: AgentRegistry,
        python_executable: str = sys.executable,
        env: Mapping[str, str] | None = None,
        parent_agent: str | None = None,
        workspace: str | None = None,
        detached: bool = True,
        graceful_shutdown_seconds: int = 5,
        on_spawned: Callable[[str], None] | None = None,
    ) -> None:
        self.mailbox = mailbox
        self.registry = registry
        self.python_executable = python_executable
        self.env = dict(env or {})
        self.parent_agent = parent_agent
        self.workspace = workspace
        self.detached = detached
        self.graceful_shutdown_seconds = graceful_shutdown_seconds
        self.on_spawned = on_spawned
        self._workers: dict[str, SpawnedWorker] = {}
        self._lock = threading.Lock()

    def build_command(self, agent_id: str, task: str, worker_type: str) -> list[str]:
        command = [
            self.python_executable,
            "-m",
            WORKER_MODULE,
            "--id",
            agent_id,
            "--mailbox",
            str(self.mailbox.base_dir.resolve()),
            "--task",
            task,
            "--type",
            worker_type,
        ]
        if self.workspace:
            command.extend(["--workspace", str(Path(self.workspace).resolve())])
        return command

    def spawn_worker(
        self,
        task: str,
        type: str = WorkerType.GENERAL.value,  # noqa: A002
    ) -> SpawnedWorker:
        """Register a new worker, launch it, and start watching for its exit."""

        if not task.strip():
            raise ValueError("Worker task must not be empty.")
        worker_type = WorkerType(type).value

        agent_id = self._mint_unique_id()
        self.mailbox.create_mailbox(agent_id)
        self.mailbox.update_status(
            agent_id,
            {"status": AgentStatus.RUNNING.value, "task": task, "type": worker_type},
        )
        self.registry.register_agent(
            agent_id,
            task=task,
            type=worker_type,
            workspace=self.workspace,
            parent_agent=self.parent_agent,
            status=AgentStatus.RUNNING.value,
        )
        if self.on_spawned is not None:
            self.on_spawned(agent_id)

        env = os.environ.copy()
        env.update(self.env)
        command = self.build_command(agent_id, task, worker_type)
        try:
            process = subprocess.Popen(  # noqa: S603
                command,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                text=True,
                env=env,
                start_new_session=self.detached,
            )
        except OSError as error:
            self.mailbox.update_status(
                agent_id,
                {
                    "status": AgentStatus.ERROR.value,
                    "result": f"Worker failed to start: {error}",
                },
            )
            self.registry.mark_status(agent_id, AgentStatus.ERROR.value)
            raise SpawnError(f"Worker {agent_id} failed to start: {error}") from error

        self.mailbox.update_status(agent_id, {"pid": process.pid})
        relays = [
            _start_relay(process.stdout, agent_id=agent_id, level=logging.INFO, label=""),
            _start_relay(process.stderr, agent_id=agent_id, level=logging.WARNING, label=" ERR"),
        ]
        watcher = threading.Thread(
            target=self._watch,
            args=(agent_id, process, relays),
            daemon=True,
            name=f"watch-{agent_id}",
        )
        worker = SpawnedWorker(
            agent_id=agent_id,
            pid=process.pid,
            task=task,
            type=worker_type,
            process=process,
            watcher=watcher,
        )
        with self._lock:
            self._workers[agent_id] = worker
        watcher.start()
        logger.info("Spawned worker %s (pid=%s) for task: %s", agent_id, process.pid, task)
        return worker

    def handle_exit(self, agent_id: str, exit_code: int) -> dict[str, object] | None:
        """Force a terminal status on a worker that exited while still ``running``."""

        status = self.mailbox.get_status(agent_id)
        lifecycle = status_of(status)
        if lifecycle is AgentStatus.RUNNING:
            final = AgentStatus.COMPLETE if exit_code == 0 else AgentStatus.ERROR
            logger.warning(
                "Worker %s exited with code %s without reporting; marking %s",
                agent_id,
                exit_code,
                final.value,
            )
            status = self.mailbox.update_status(
                agent_id,
                {"status": final.value, "exitCode": exit_code},
            )
            lifecycle = final
        else:
            logger.info("Worker %s exited with code %s", agent_id, exit_code)
        if lifecycle is not None:
            self.registry.mark_status(agent_id, lifecycle.value)
        return status

    def wait(self, agent_id: str, timeout: float | None = None) -> int | None:
        """Wait for a spawned worker and its exit handling; ``None`` if still running."""

        with self._lock:
            worker = self._workers.get(agent_id)
        if worker is None:
            raise KeyError(f"Unknown worker: {agent_id}")
        worker.watcher.join(timeout=timeout)
        if worker.watcher.is_alive():
            return None
        return worker.process.returncode

    def active_workers(self) -> list[str]:
        with self._lock:
            return [
                agent_id
                for agent_id, worker in self._workers.items()
                if worker.process.poll() is None
            ]

    def shutdown(self) -> None:
        """Terminate workers still running, then let exit handling settle."""

        with self._lock:
            workers = list(self._workers.values())
        for worker in workers:
            if worker.process.poll() is None:
                logger.info("Stopping worker %s (pid=%s)", worker.agent_id, worker.pid)
                terminate_process(worker.process, grace_seconds=self.graceful_shutdown_seconds)
        for worker in workers:
            worker.watcher.join(timeout=self.graceful_shutdown_seconds + 2)

    def _mint_unique_id(self) -> str:
        while True:
            agent_id = mint_worker_id()
            if not self.mailbox.exists(agent_id):
                return agent_id

    def _watch(
        self,
        agent_id: str,
        process: subprocess.Popen[str],
        relays: list[threading.Thread],
    ) -> None:
        exit_code = process.wait()
        for relay in relays:
            relay.join(timeout=2)
        try:
            self.handle_exit(agent_id, exit_code)
        except OSError:
            logger.exception("Failed to record exit of worker %s", agent_id)


def _start_relay(
    stream: IO[str] | None,
    *,
    agent_id: str,
    level: int,
    label: str,
) -> threading.Thread:
    thread = threading.Thread(
        target=_relay_lines,
        args=(stream, agent_id, level, label),
        daemon=True,
        name=f"relay-{agent_id}{label.strip().lower()}",
    )
    thread.start()
    return thread


def _relay_lines(stream: IO[str] | None, agent_id: str, level: int, label: str) -> None:
    if stream is None:
        return
    with stream:
        for line in stream:
            text = line.rstrip()
            if text:
                logger.log(level, "[%s%s] %s", agent_id, label, text)

