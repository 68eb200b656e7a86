"""Runtime configuration for mailboxes, sessions, workers and engines."""

from __future__ import annotations

import os
import sys
from dataclasses import dataclass, field
from pathlib import Path

SUPPORTED_PROVIDERS = ("echo", "cli")
CREDENTIAL_FREE_PROVIDERS = frozenset({"echo"})


@dataclass(slots=True)
class MailboxSettings:
    """Mailbox location and polling cadence."""

    root: Path = Path(".agents/mailbox")
    poll_interval_seconds: float = 0.5
    wait_timeout_seconds: float = 60.0
    reply_timeout_seconds: float = 120.0


@dataclass(slots=True)
class SessionSettings:
    """Idle eviction settings for master sessions."""

    ttl_seconds: float = 1_800.0
    sweep_interval_seconds: float = 300.0


@dataclass(slots=True)
class EngineSettings:
    """LLM engine selection passed to masters and spawned workers."""

    provider: str = "echo"
    model: str = "echo-1"
    api_key: str | None = None
    command_template: str = ""
    timeout_seconds: int = 600


@dataclass(slots=True)
class WorkerSettings:
    """How worker processes are launched and stopped."""

    python_executable: str = sys.executable
    graceful_shutdown_seconds: int = 5
    detached: bool = True


@dataclass(slots=True)
class Settings:
    """Application settings grouped by domain concerns."""

    agents_root: Path = Path(".agents/agents")
    mailbox: MailboxSettings = field(default_factory=MailboxSettings)
    sessions: SessionSettings = field(default_factory=SessionSettings)
    engine: EngineSettings = field(default_factory=EngineSettings)
    worker: WorkerSettings = field(default_factory=WorkerSettings)

    @classmethod
    def from_env(cls, mailbox_root: Path | None = None) -> Settings:
        """Load settings from environment with sane defaults for local development."""

        return cls(
            agents_root=Path(os.getenv("AGENT_MAILBOX_AGENTS_ROOT", ".agents/agents")),
            mailbox=MailboxSettings(
                root=mailbox_root or Path(os.getenv("AGENT_MAILBOX_ROOT", ".agents/mailbox")),
                poll_interval_seconds=float(
                    os.getenv("AGENT_MAILBOX_POLL_INTERVAL_SECONDS", "0.5"),
                ),
                wait_timeout_seconds=float(
                    os.getenv("AGENT_MAILBOX_WAIT_TIMEOUT_SECONDS", "60"),
                ),
                reply_timeout_seconds=float(
                    os.getenv("AGENT_MAILBOX_REPLY_TIMEOUT_SECONDS", "120"),
                ),
            ),
            sessions=SessionSettings(
                ttl_seconds=float(os.getenv("AGENT_MAILBOX_SESSION_TTL_SECONDS", "1800")),
                sweep_interval_seconds=float(
                    os.getenv("AGENT_MAILBOX_SESSION_SWEEP_SECONDS", "300"),
                ),
            ),
            engine=EngineSettings(
                provider=os.getenv("AGENT_MAILBOX_LLM_PROVIDER", "echo").strip().lower(),
                model=os.getenv("AGENT_MAILBOX_LLM_MODEL", "echo-1"),
                api_key=_first_env(
                    "AGENT_MAILBOX_LLM_API_KEY",
                    "LLM_API_KEY",
                    "ANTHROPIC_API_KEY",
                ),
                command_template=os.getenv("AGENT_MAILBOX_LLM_COMMAND_TEMPLATE", ""),
                timeout_seconds=int(os.getenv("AGENT_MAILBOX_LLM_TIMEOUT_SECONDS", "600")),
            ),
            worker=WorkerSettings(
                python_executable=os.getenv("AGENT_MAILBOX_WORKER_PYTHON", sys.executable),
                graceful_shutdown_seconds=int(
                    os.getenv("AGENT_MAILBOX_WORKER_SHUTDOWN_SECONDS", "5"),
                ),
                detached=_env_bool("AGENT_MAILBOX_WORKER_DETACHED", default=True),
            ),
        )

    def validate(self) -> None:
        """Raise configuration error on values the runtime cannot work with."""

        if self.mailbox.poll_interval_seconds <= 0:
            raise ValueError("AGENT_MAILBOX_POLL_INTERVAL_SECONDS must be > 0.")
        if self.mailbox.wait_timeout_seconds < 0:
            raise ValueError("AGENT_MAILBOX_WAIT_TIMEOUT_SECONDS must be >= 0.")
        if self.mailbox.reply_timeout_seconds < 0:
            raise ValueError("AGENT_MAILBOX_REPLY_TIMEOUT_SECONDS must be >= 0.")
        if self.sessions.ttl_seconds <= 0:
            raise ValueError("AGENT_MAILBOX_SESSION_TTL_SECONDS must be > 0.")
        if self.sessions.sweep_interval_seconds <= 0:
            raise ValueError("AGENT_MAILBOX_SESSION_SWEEP_SECONDS must be > 0.")
        if self.engine.provider not in SUPPORTED_PROVIDERS:
            raise ValueError(
                f"Unsupported AGENT_MAILBOX_LLM_PROVIDER: {self.engine.provider!r}. "
                f"Expected one of: {', '.join(SUPPORTED_PROVIDERS)}.",
            )
        if self.engine.provider == "cli" and "{prompt" not in self.engine.command_template:
            raise ValueError(
                "AGENT_MAILBOX_LLM_COMMAND_TEMPLATE must include {prompt} or {prompt_file} "
                "when the cli provider is selected.",
            )
        if self.engine.timeout_seconds <= 0:
            raise ValueError("AGENT_MAILBOX_LLM_TIMEOUT_SECONDS must be > 0.")
        if self.worker.graceful_shutdown_seconds < 0:
            raise ValueError("AGENT_MAILBOX_WORKER_SHUTDOWN_SECONDS must be >= 0.")

    def engine_env(self) -> dict[str, str]:
        """Environment variables that carry engine selection into worker processes."""

        env = {
            "AGENT_MAILBOX_LLM_PROVIDER": self.engine.provider,
            "AGENT_MAILBOX_LLM_MODEL": self.engine.model,
            "AGENT_MAILBOX_LLM_COMMAND_TEMPLATE": self.engine.command_template,
            "AGENT_MAILBOX_LLM_TIMEOUT_SECONDS": str(self.engine.timeout_seconds),
            "AGENT_MAILBOX_REPLY_TIMEOUT_SECONDS": str(self.mailbox.reply_timeout_seconds),
            "AGENT_MAILBOX_POLL_INTERVAL_SECONDS": str(self.mailbox.poll_interval_seconds),
        }
        if self.engine.api_key:
            env["AGENT_MAILBOX_LLM_API_KEY"] = self.engine.api_key
        return env


def _first_env(*names: str) -> str | None:
    for name in names:
        value = os.getenv(name, "").strip()
        if value:
            return value
    return None


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "on"}:
        return True
    if normalized in {"0", "false", "no", "off"}:
        return False
    raise ValueError(f"Invalid boolean value for {name}: {value!r}")
