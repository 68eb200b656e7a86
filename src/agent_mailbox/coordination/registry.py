"""Shared registry of agents living under one mailbox base."""

from __future__ import annotations

import logging
import threading
from pathlib import Path
from typing import Any

from agent_mailbox.coordination.contracts import load_json_object, now_ms, write_json
from agent_mailbox.coordination.models import RegistryDocument, RegistryEntry, WorkerType

logger = logging.getLogger(__name__)

REGISTRY_FILENAME = "registry.json"

_path_locks: dict[Path, threading.Lock] = {}
_path_locks_guard = threading.Lock()


def _lock_for(path: Path) -> threading.Lock:
    key = path.resolve()
    with _path_locks_guard:
        return _path_locks.setdefault(key, threading.Lock())


class AgentRegistry:
    """Advisory ``registry.json`` document.

    Authoritative lifecycle state lives in each agent's ``status.json``; the
    registry only makes agents discoverable without scanning directories.
    Every mutation is a whole-document read-modify-write. Writers within one
    process are serialized; across processes the last write wins.
    """

    def __init__(self, base_dir: Path) -> None:
        self.base_dir = base_dir
        self.path = base_dir / REGISTRY_FILENAME
        self._lock = _lock_for(self.path)

    def load_registry(self) -> RegistryDocument:
        payload = load_json_object(self.path)
        if payload is None:
            return RegistryDocument()
        raw_agents = payload.get("agents")
        if not isinstance(raw_agents, dict):
            logger.debug("Registry %s has no agents mapping", self.path)
            return RegistryDocument()
        return RegistryDocument(
            agents={
                agent_id: RegistryEntry.from_record(agent_id, record)
                for agent_id, record in raw_agents.items()
                if isinstance(agent_id, str) and isinstance(record, dict)
            },
        )

    def save_registry(self, document: RegistryDocument) -> None:
        write_json(self.path, document.to_record())

    def register_agent(  # noqa: PLR0913
        self,
        agent_id: str,
        *,
        task: str | None = None,
        type: str = WorkerType.GENERAL.value,  # noqa: A002
        workspace: str | None = None,
        parent_agent: str | None = None,
        status: str | None = None,
    ) -> RegistryEntry:
        entry = RegistryEntry(
            agent_id=agent_id,
            type=type,
            task=task,
            workspace=workspace,
            parent_agent=parent_agent,
            status=status,
            registered_at=now_ms(),
        )
        with self._lock:
            document = self.load_registry()
            document.agents[agent_id] = entry
            self.save_registry(document)
        return entry

    def unregister_agent(self, agent_id: str) -> bool:
        with self._lock:
            document = self.load_registry()
            if document.agents.pop(agent_id, None) is None:
                return False
            self.save_registry(document)
        return True

    def mark_status(self, agent_id: str, status: str) -> RegistryEntry | None:
        """Refresh the advisory status of a registered agent."""

        with self._lock:
            document = self.load_registry()
            entry = document.agents.get(agent_id)
            if entry is None:
                return None
            entry.status = status
            self.save_registry(document)
        return entry

    def agent_ids(self) -> list[str]:
        return list(self.load_registry().agents)

    def get(self, agent_id: str) -> RegistryEntry | None:
        return self.load_registry().agents.get(agent_id)

    def find_agents_by_workspace(self, workspace: str) -> list[RegistryEntry]:
        return [
            entry
            for entry in self.load_registry().agents.values()
            if entry.workspace == workspace
        ]

    def find_agents_by_parent(self, parent_id: str) -> list[RegistryEntry]:
        return [
            entry
            for entry in self.load_registry().agents.values()
            if entry.parent_agent == parent_id
        ]

    def get_registry_snapshot(self) -> list[dict[str, Any]]:
        """Compact projection of every agent for prompt injection."""

        return [
            {
                "agentId": agent_id,
                "type": entry.type or "unknown",
                "workspace": entry.workspace,
                "status": entry.status or "unknown",
                "task": entry.task,
            }
            for agent_id, entry in self.load_registry().agents.items()
        ]

    def render_snapshot(self, *, limit: int = 50, task_chars: int = 120) -> str:
        """Bounded human-readable snapshot, newest registrations last."""

        snapshot = self.get_registry_snapshot()
        if not snapshot:
            return "No agents registered."
        shown = snapshot[-limit:]
        lines = [f"{len(snapshot)} agent(s) registered:"]
        if len(shown) < len(snapshot):
            lines.append(f"(showing the latest {len(shown)})")
        for item in shown:
            task = (item["task"] or "")[:task_chars]
            workspace = f" workspace={item['workspace']}" if item["workspace"] else ""
            lines.append(
                f"- {item['agentId']} [{item['status']}] ({item['type']}){workspace}: {task}",
            )
        return "\n".join(lines)
