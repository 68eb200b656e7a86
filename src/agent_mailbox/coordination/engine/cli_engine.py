"""Engine that runs an external CLI agent once per turn."""

from __future__ import annotations

import json
import logging
import os
import shlex
import subprocess
import tempfile
import time
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path
from typing import IO, Any

from agent_mailbox.coordination.engine.base import BaseEngine, EngineConfig, EngineError
from agent_mailbox.coordination.processes import terminate_process

logger = logging.getLogger(__name__)

DEFAULT_MAX_TURNS = 8
HISTORY_WINDOW = 20
_POLL_SECONDS = 0.1


@dataclass(slots=True)
class CliRunResult:
    exit_code: int
    timed_out: bool


class CliAgentEngine(BaseEngine):
    """Render the command template per turn and read the reply from stdout.

    Tool calls are requested by the CLI agent as reply lines of the form
    ``/<tool_name> <json object>``; their results are fed back as the next
    turn's input until a reply contains no tool call.
    """

    def __init__(
        self,
        config: EngineConfig,
        *,
        workdir: Path | None = None,
        max_turns: int = DEFAULT_MAX_TURNS,
    ) -> None:
        super().__init__(config)
        if not config.command_template.strip():
            raise EngineError("CLI engine command template is empty.")
        self.workdir = workdir
        self.max_turns = max_turns

    def _run(self, text: str) -> str:
        request = text
        reply = ""
        for _ in range(self.max_turns):
            self._start_turn()
            reply = self._invoke(self._compose_prompt(request))
            calls = extract_tool_calls(reply, self.tools)
            if not calls:
                return reply
            outcomes = []
            for name, args in calls:
                result = self.run_tool(name, args)
                outcomes.append(f"/{name} -> {'ERROR: ' if result.is_error else ''}{result.text}")
            request = "Tool results:\n" + "\n".join(outcomes)
        logger.warning("CLI engine stopped after %s turns with pending tool calls", self.max_turns)
        return reply

    def _compose_prompt(self, request: str) -> str:
        sections = []
        if self.system_prompt:
            sections.append(self.system_prompt)
        if self.tools:
            listing = "\n".join(
                f"- /{tool.name} {json.dumps(tool.parameters['properties'])}: {tool.description}"
                for tool in self.tools.values()
            )
            sections.append(
                "## Tools\n"
                "To call a tool, put a line `/<tool_name> <json arguments>` in your reply.\n"
                f"{listing}",
            )
        earlier = self.history[:-1][-HISTORY_WINDOW:]
        if earlier:
            transcript = "\n".join(f"{item['role']}: {item['content']}" for item in earlier)
            sections.append(f"## Conversation so far\n{transcript}")
        sections.append(f"## Request\n{request}")
        return "\n\n".join(sections)

    def _invoke(self, prompt: str) -> str:
        if self.workdir is not None:
            return self._invoke_in(self.workdir, prompt)
        with tempfile.TemporaryDirectory(prefix="agent-mailbox-turn-") as tmp:
            return self._invoke_in(Path(tmp), prompt)

    def _invoke_in(self, workdir: Path, prompt: str) -> str:
        workdir.mkdir(parents=True, exist_ok=True)
        prompt_file = workdir / "turn_prompt.txt"
        prompt_file.write_text(prompt, "utf-8")
        stdout_path = workdir / "turn_stdout.txt"
        stderr_path = workdir / "turn_stderr.txt"

        run_args, command_head = build_run_args(
            command_template=self.config.command_template,
            model=self.config.model,
            prompt=prompt,
            prompt_file=prompt_file,
        )
        env = os.environ.copy()
        env["AGENT_MAILBOX_LLM_MODEL"] = self.config.model
        if self.config.api_key:
            env["AGENT_MAILBOX_LLM_API_KEY"] = self.config.api_key

        try:
            with (
                stdout_path.open("w", encoding="utf-8") as stdout_handle,
                stderr_path.open("w", encoding="utf-8") as stderr_handle,
            ):
                result = run_subprocess_with_shutdown(
                    run_args=run_args,
                    env=env,
                    timeout_seconds=self.config.timeout_seconds,
                    stdout_handle=stdout_handle,
                    stderr_handle=stderr_handle,
                    shutdown_requested=self.shutdown_requested,
                    graceful_shutdown_seconds=self.config.graceful_shutdown_seconds,
                )
        except FileNotFoundError as error:
            raise EngineError(f"CLI engine command not found: {command_head}") from error
        except OSError as error:
            raise EngineError(f"CLI engine failed to start: {error}") from error

        if result.timed_out:
            raise EngineError(
                f"CLI engine turn stopped after {self.config.timeout_seconds}s "
                "(timeout or shutdown).",
            )
        if result.exit_code != 0:
            stderr_tail = stderr_path.read_text("utf-8").strip()[-500:]
            raise EngineError(f"CLI engine exited with code {result.exit_code}: {stderr_tail}")
        return stdout_path.read_text("utf-8").strip()


def extract_tool_calls(reply: str, tools: dict[str, Any]) -> list[tuple[str, dict[str, Any]]]:
    """Tool call lines of a reply, limited to tools the agent actually has."""

    calls = []
    for line in reply.splitlines():
        stripped = line.strip()
        if not stripped.startswith("/"):
            continue
        name, _, raw_args = stripped[1:].partition(" ")
        if name not in tools:
            continue
        try:
            args = json.loads(raw_args) if raw_args.strip() else {}
        except json.JSONDecodeError:
            logger.debug("Skipping tool call with malformed arguments: %s", stripped)
            continue
        if isinstance(args, dict):
            calls.append((name, args))
    return calls


def build_run_args(
    *,
    command_template: str,
    model: str,
    prompt: str,
    prompt_file: Path,
) -> tuple[list[str], str]:
    stripped = command_template.strip()
    if not stripped:
        raise EngineError("CLI engine command template is empty.")
    if "{prompt}" not in stripped and "{prompt_file}" not in stripped:
        raise EngineError("CLI engine command template must include {prompt} or {prompt_file}.")

    try:
        rendered = stripped.format(
            model=shlex.quote(model),
            prompt=shlex.quote(prompt),
            prompt_file=shlex.quote(str(prompt_file)),
        )
    except (KeyError, IndexError) as error:
        raise EngineError(f"Unsupported command template placeholder: {error}") from error

    argv = shlex.split(rendered)
    if not argv:
        raise EngineError("CLI engine command template rendered empty command.")
    return argv, argv[0]


def run_subprocess_with_shutdown(  # noqa: PLR0913
    *,
    run_args: list[str],
    env: dict[str, str],
    timeout_seconds: int,
    stdout_handle: IO[str],
    stderr_handle: IO[str],
    shutdown_requested: Callable[[], bool] | None,
    graceful_shutdown_seconds: int | None,
) -> CliRunResult:
    process = subprocess.Popen(  # noqa: S603
        run_args,
        env=env,
        stdin=subprocess.DEVNULL,
        stdout=stdout_handle,
        stderr=stderr_handle,
        text=True,
    )
    start_monotonic = time.monotonic()
    shutdown_deadline: float | None = None
    graceful_seconds = max(0, graceful_shutdown_seconds or 0)

    while True:
        returncode = process.poll()
        if returncode is not None:
            return CliRunResult(exit_code=returncode, timed_out=False)

        now = time.monotonic()
        if now - start_monotonic >= timeout_seconds:
            terminate_process(process)
            return CliRunResult(exit_code=124, timed_out=True)

        if shutdown_requested is not None and shutdown_requested():
            if shutdown_deadline is None:
                shutdown_deadline = now + graceful_seconds
            if now >= shutdown_deadline:
                terminate_process(process)
                return CliRunResult(exit_code=124, timed_out=True)

        time.sleep(_POLL_SECONDS)

