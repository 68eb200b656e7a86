"""Domain models for mailboxes, registry entries and poll signals."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any


class AgentStatus(str, Enum):
    """Lifecycle states persisted in ``status.json``."""

    STARTING = "starting"
    CREATED = "created"
    RUNNING = "running"
    COMPLETE = "complete"
    ERROR = "error"
    STOPPED = "stopped"


TERMINAL_STATUSES = frozenset({AgentStatus.COMPLETE, AgentStatus.ERROR})


class WorkerType(str, Enum):
    """Worker flavours accepted by the worker entry point."""

    GENERAL = "general"
    CODE = "code"


class MessageKind(str, Enum):
    """Tag describing how a mailbox line's ``content`` should be read."""

    TEXT = "text"
    RESULT = "result"
    COMPLETION = "completion"


class SignalType(str, Enum):
    """Discrete events produced by polling mailbox state."""

    AGENT_MESSAGE = "agent_message"
    AGENT_EXIT = "agent_exit"
    TIMEOUT = "timeout"


def parse_status(value: object) -> AgentStatus | None:
    if isinstance(value, AgentStatus):
        return value
    try:
        return AgentStatus(value)
    except ValueError:
        return None


def status_of(document: dict[str, Any] | None) -> AgentStatus | None:
    """Lifecycle state of a status document, ``None`` when absent or unknown."""

    if document is None:
        return None
    return parse_status(document.get("status"))


@dataclass(slots=True, frozen=True)
class MailboxMessage:
    """One immutable inbox or outbox line."""

    id: str
    content: Any
    timestamp: int
    kind: MessageKind = MessageKind.TEXT
    sender: str | None = None

    def to_record(self) -> dict[str, Any]:
        record: dict[str, Any] = {
            "id": self.id,
            "kind": self.kind.value,
            "content": self.content,
            "timestamp": self.timestamp,
        }
        if self.sender is not None:
            record["from"] = self.sender
        return record

    @classmethod
    def from_record(cls, record: dict[str, Any]) -> MailboxMessage | None:
        """Rebuild a message from its JSON line; ``None`` for unusable records."""

        message_id = record.get("id")
        if not isinstance(message_id, str) or "content" not in record:
            return None
        timestamp = record.get("timestamp")
        if not isinstance(timestamp, int) or isinstance(timestamp, bool):
            timestamp = 0
        sender = record.get("from")
        return cls(
            id=message_id,
            content=record["content"],
            timestamp=timestamp,
            kind=_resolve_kind(record.get("kind"), record["content"]),
            sender=sender if isinstance(sender, str) else None,
        )

    def text(self) -> str:
        """Content rendered as text for prompts and CLI output."""

        if isinstance(self.content, str):
            return self.content
        if self.content is None:
            return ""
        return json.dumps(self.content, ensure_ascii=False, sort_keys=True)


def infer_kind(content: Any) -> MessageKind:
    return MessageKind.RESULT if isinstance(content, (dict, list)) else MessageKind.TEXT


def _resolve_kind(raw: object, content: Any) -> MessageKind:
    if isinstance(raw, str):
        try:
            return MessageKind(raw)
        except ValueError:
            pass
    return infer_kind(content)


@dataclass(slots=True)
class ReadResult:
    """Slice of a mailbox file after a cursor, with the full line count."""

    messages: list[MailboxMessage]
    total_lines: int


@dataclass(slots=True, frozen=True)
class MailboxPaths:
    """Canonical paths of one agent's mailbox."""

    dir: Path
    inbox: Path
    outbox: Path
    status: Path


@dataclass(slots=True)
class RegistryEntry:
    """Descriptive metadata for one registered agent."""

    agent_id: str
    type: str = WorkerType.GENERAL.value
    task: str | None = None
    workspace: str | None = None
    parent_agent: str | None = None
    status: str | None = None
    registered_at: int = 0

    def to_record(self) -> dict[str, Any]:
        record: dict[str, Any] = {
            "agentId": self.agent_id,
            "type": self.type,
            "registeredAt": self.registered_at,
        }
        optional = {
            "task": self.task,
            "workspace": self.workspace,
            "parentAgent": self.parent_agent,
            "status": self.status,
        }
        record.update({key: value for key, value in optional.items() if value is not None})
        return record

    @classmethod
    def from_record(cls, agent_id: str, record: dict[str, Any]) -> RegistryEntry:
        registered_at = record.get("registeredAt")
        return cls(
            agent_id=agent_id,
            type=_optional_str(record.get("type")) or WorkerType.GENERAL.value,
            task=_optional_str(record.get("task")),
            workspace=_optional_str(record.get("workspace")),
            parent_agent=_optional_str(record.get("parentAgent")),
            status=_optional_str(record.get("status")),
            registered_at=registered_at if isinstance(registered_at, int) else 0,
        )


def _optional_str(value: object) -> str | None:
    return value if isinstance(value, str) and value else None


@dataclass(slots=True)
class RegistryDocument:
    """Whole ``registry.json`` document."""

    agents: dict[str, RegistryEntry] = field(default_factory=dict)

    def to_record(self) -> dict[str, Any]:
        return {
            "agents": {agent_id: entry.to_record() for agent_id, entry in self.agents.items()},
        }


@dataclass(slots=True)
class Signal:
    """One observation produced by a poll pass."""

    type: SignalType
    agent_id: str | None = None
    status: AgentStatus | None = None
    result: Any = None
    exit_code: int | None = None
    messages: list[MailboxMessage] = field(default_factory=list)
    new_cursor: int | None = None

    def describe(self) -> str:
        """One-line summary suitable for an LLM tool result."""

        if self.type is SignalType.AGENT_EXIT:
            status = self.status.value if self.status is not None else "unknown"
            return f"[EXIT] {self.agent_id}: status={status}, exitCode={self.exit_code}"
        if self.type is SignalType.AGENT_MESSAGE:
            joined = "; ".join(message.text() for message in self.messages)
            return f"[MSG] {self.agent_id}: {joined}"
        return "[TIMEOUT] No signals received"

    def to_record(self) -> dict[str, Any]:
        record: dict[str, Any] = {"type": self.type.value}
        if self.agent_id is not None:
            record["agentId"] = self.agent_id
        if self.type is SignalType.AGENT_EXIT:
            record["status"] = self.status.value if self.status is not None else None
            record["result"] = self.result
            record["exitCode"] = self.exit_code
        if self.type is SignalType.AGENT_MESSAGE:
            record["messages"] = [message.to_record() for message in self.messages]
            record["newCursor"] = self.new_cursor
        return record
