"""Persistent agent directories for long-lived master agents.

Each agent owns ``<base>/<agentId>/`` holding ``config.json``, ``history.json``
and the same ``inbox.jsonl``/``outbox.jsonl``/``status.json`` files a worker
mailbox has, plus a ``workers/`` directory used as the mailbox base of the
workers that agent spawns.
"""

from __future__ import annotations

import json
import logging
import shutil
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from agent_mailbox.coordination.contracts import load_json_object, now_ms, write_json
from agent_mailbox.coordination.ids import display_name, generate_agent_id
from agent_mailbox.coordination.mailbox import MailboxStore
from agent_mailbox.coordination.models import AgentStatus

logger = logging.getLogger(__name__)

CONFIG_FILENAME = "config.json"
HISTORY_FILENAME = "history.json"
WORKERS_DIRNAME = "workers"
_RESERVED_DIRS = frozenset({"memory"})


@dataclass(slots=True)
class AgentConfig:
    """Immutable identity and engine choice of a persisted agent."""

    agent_id: str
    type: str = "master"
    display_name: str = ""
    soul: str | None = None
    provider: str = "echo"
    model: str = "echo-1"
    workspace: str | None = None
    parent_id: str | None = None
    created_at: str = ""

    def to_record(self) -> dict[str, Any]:
        return {
            "agentId": self.agent_id,
            "type": self.type,
            "displayName": self.display_name,
            "soul": self.soul,
            "provider": self.provider,
            "model": self.model,
            "workspace": self.workspace,
            "parentId": self.parent_id,
            "createdAt": self.created_at,
        }

    @classmethod
    def from_record(cls, record: dict[str, Any]) -> AgentConfig:
        agent_id = str(record["agentId"])
        return cls(
            agent_id=agent_id,
            type=str(record.get("type") or "master"),
            display_name=str(record.get("displayName") or display_name(agent_id)),
            soul=record.get("soul"),
            provider=str(record.get("provider") or "echo"),
            model=str(record.get("model") or "echo-1"),
            workspace=record.get("workspace"),
            parent_id=record.get("parentId"),
            created_at=str(record.get("createdAt") or ""),
        )


@dataclass(slots=True)
class AgentRecord:
    """A persisted agent as found on disk."""

    config: AgentConfig
    status: dict[str, Any]
    agent_dir: Path

    @property
    def agent_id(self) -> str:
        return self.config.agent_id

    @property
    def lifecycle(self) -> str:
        value = self.status.get("status")
        return value if isinstance(value, str) else "unknown"


class AgentStore:
    def __init__(self, base_dir: Path) -> None:
        self.base_dir = base_dir
        self.mailbox = MailboxStore(base_dir)

    def agent_dir(self, agent_id: str) -> Path:
        return self.mailbox.mailbox_dir(agent_id)

    def workers_dir(self, agent_id: str) -> Path:
        return self.agent_dir(agent_id) / WORKERS_DIRNAME

    def create_agent(  # noqa: PLR0913
        self,
        *,
        agent_id: str | None = None,
        type: str = "master",  # noqa: A002
        soul: str | None = None,
        provider: str = "echo",
        model: str = "echo-1",
        workspace: str | None = None,
        parent_id: str | None = None,
    ) -> AgentRecord:
        """Create a new agent directory; refuses to overwrite an existing agent."""

        agent_id = agent_id or generate_agent_id()
        paths = self.mailbox.paths(agent_id)
        config_path = paths.dir / CONFIG_FILENAME
        if config_path.exists():
            raise FileExistsError(f"Agent already exists: {agent_id}")

        config = AgentConfig(
            agent_id=agent_id,
            type=type,
            display_name=display_name(agent_id),
            soul=soul,
            provider=provider,
            model=model,
            workspace=workspace,
            parent_id=parent_id,
            created_at=datetime.now(UTC).isoformat(),
        )
        self.mailbox.create_mailbox(agent_id)
        write_json(config_path, config.to_record())
        status = {
            "agentId": agent_id,
            "status": AgentStatus.CREATED.value,
            "lastAccess": now_ms(),
        }
        write_json(paths.status, status)
        history_path = paths.dir / HISTORY_FILENAME
        if not history_path.exists():
            history_path.write_text("[]", "utf-8")
        self.workers_dir(agent_id).mkdir(parents=True, exist_ok=True)
        logger.info("Created agent %s (%s)", agent_id, config.display_name)
        return AgentRecord(config=config, status=status, agent_dir=paths.dir)

    def ensure_agent(self, agent_id: str, **config: Any) -> AgentRecord:
        """Load ``agent_id``, creating its directory on first use only."""

        existing = self.load_agent(agent_id)
        if existing is not None:
            return existing
        return self.create_agent(agent_id=agent_id, **config)

    def load_agent(self, agent_id: str) -> AgentRecord | None:
        agent_dir = self.agent_dir(agent_id)
        record = load_json_object(agent_dir / CONFIG_FILENAME)
        if record is None or not isinstance(record.get("agentId"), str):
            return None
        status = self.mailbox.get_status(agent_id) or {"status": "unknown"}
        return AgentRecord(
            config=AgentConfig.from_record(record),
            status=status,
            agent_dir=agent_dir,
        )

    def list_agents(self) -> list[AgentRecord]:
        """Every persisted agent, newest first."""

        if not self.base_dir.is_dir():
            return []
        agents: list[AgentRecord] = []
        for entry in self.base_dir.iterdir():
            if not entry.is_dir() or entry.name in _RESERVED_DIRS:
                continue
            agent = self.load_agent(entry.name)
            if agent is not None:
                agents.append(agent)
        agents.sort(key=lambda agent: agent.config.created_at, reverse=True)
        return agents

    def update_agent_status(
        self,
        agent_id: str,
        updates: dict[str, Any],
        *,
        reopen: bool = False,
    ) -> dict[str, Any]:
        return self.mailbox.update_status(
            agent_id,
            {**updates, "lastAccess": now_ms()},
            reopen=reopen,
        )

    def save_history(self, agent_id: str, messages: list[dict[str, Any]]) -> None:
        path = self.agent_dir(agent_id) / HISTORY_FILENAME
        tmp = path.with_name(f".{path.name}.tmp")
        tmp.write_text(json.dumps(messages, ensure_ascii=False, indent=2), "utf-8")
        tmp.replace(path)

    def load_history(self, agent_id: str) -> list[dict[str, Any]]:
        path = self.agent_dir(agent_id) / HISTORY_FILENAME
        try:
            payload = json.loads(path.read_text("utf-8"))
        except (OSError, json.JSONDecodeError):
            return []
        if not isinstance(payload, list):
            return []
        return [item for item in payload if isinstance(item, dict)]

    def delete_agent(self, agent_id: str) -> bool:
        agent_dir = self.agent_dir(agent_id)
        if not agent_dir.exists():
            return False
        shutil.rmtree(agent_dir)
        logger.info("Deleted agent %s", agent_id)
        return True
