"""Per-agent mailbox directories: inbox, outbox and status document."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

from agent_mailbox.coordination.contracts import (
    append_jsonl,
    load_json_object,
    now_ms,
    read_jsonl,
    touch,
    write_json,
)
from agent_mailbox.coordination.ids import mint_message_id
from agent_mailbox.coordination.models import (
    TERMINAL_STATUSES,
    AgentStatus,
    MailboxMessage,
    MailboxPaths,
    MessageKind,
    ReadResult,
    infer_kind,
    parse_status,
    status_of,
)

logger = logging.getLogger(__name__)

INBOX_FILENAME = "inbox.jsonl"
OUTBOX_FILENAME = "outbox.jsonl"
STATUS_FILENAME = "status.json"


class MailboxStore:
    """Durable message and status storage for every agent under one base directory.

    Appends need no locking: only the owning process appends to its outbox,
    and inbox appends are single ``write`` calls of one line each. The status
    document is read-modify-write and last write wins.
    """

    def __init__(self, base_dir: Path) -> None:
        self.base_dir = base_dir

    def mailbox_dir(self, agent_id: str) -> Path:
        _validate_agent_id(agent_id)
        return self.base_dir / agent_id

    def paths(self, agent_id: str) -> MailboxPaths:
        mailbox_dir = self.mailbox_dir(agent_id)
        return MailboxPaths(
            dir=mailbox_dir,
            inbox=mailbox_dir / INBOX_FILENAME,
            outbox=mailbox_dir / OUTBOX_FILENAME,
            status=mailbox_dir / STATUS_FILENAME,
        )

    def exists(self, agent_id: str) -> bool:
        return self.mailbox_dir(agent_id).is_dir()

    def create_mailbox(self, agent_id: str) -> MailboxPaths:
        """Create the mailbox directory and its three files if absent."""

        paths = self.paths(agent_id)
        paths.dir.mkdir(parents=True, exist_ok=True)
        touch(paths.inbox)
        touch(paths.outbox)
        if not paths.status.exists():
            write_json(
                paths.status,
                {
                    "agentId": agent_id,
                    "status": AgentStatus.STARTING.value,
                    "task": "",
                    "pid": None,
                    "result": None,
                    "exitCode": None,
                    "createdAt": now_ms(),
                },
            )
        return paths

    def send_message(
        self,
        agent_id: str,
        content: Any,
        *,
        kind: MessageKind | None = None,
        sender: str | None = None,
    ) -> MailboxMessage:
        """Append a message to the agent's inbox."""

        message = _new_message(content, kind=kind, sender=sender)
        inbox = self.paths(agent_id).inbox
        inbox.parent.mkdir(parents=True, exist_ok=True)
        append_jsonl(inbox, message.to_record())
        return message

    def write_outbox(
        self,
        agent_id: str,
        content: Any,
        *,
        kind: MessageKind | None = None,
    ) -> MailboxMessage:
        """Append a message emitted by ``agent_id`` to its own outbox."""

        message = _new_message(content, kind=kind, sender=agent_id)
        outbox = self.paths(agent_id).outbox
        outbox.parent.mkdir(parents=True, exist_ok=True)
        append_jsonl(outbox, message.to_record())
        return message

    def read_inbox(self, agent_id: str, after_line: int = 0) -> ReadResult:
        return _read_after(self.paths(agent_id).inbox, after_line)

    def read_outbox(self, agent_id: str, after_line: int = 0) -> ReadResult:
        return _read_after(self.paths(agent_id).outbox, after_line)

    def update_status(
        self,
        agent_id: str,
        patch: dict[str, Any],
        *,
        reopen: bool = False,
    ) -> dict[str, Any]:
        """Merge ``patch`` into the status document and write it back whole.

        ``complete`` and ``error`` are terminal: a status change away from them
        is dropped unless ``reopen`` is set by a caller binding a new process
        instance to a persisted agent.
        """

        status_path = self.paths(agent_id).status
        current = load_json_object(status_path) or {}
        changes = {
            key: value.value if isinstance(value, AgentStatus) else value
            for key, value in patch.items()
        }

        current_status = status_of(current)
        requested = parse_status(changes.get("status")) if "status" in changes else None
        if (
            not reopen
            and current_status in TERMINAL_STATUSES
            and "status" in changes
            and requested is not current_status
        ):
            logger.warning(
                "Ignoring status change %s -> %s for %s: status is terminal",
                current_status.value,
                changes["status"],
                agent_id,
            )
            changes.pop("status")

        merged = {**current, **changes, "updatedAt": now_ms()}
        write_json(status_path, merged)
        return merged

    def get_status(self, agent_id: str) -> dict[str, Any] | None:
        """Parsed status document, or ``None`` when missing or corrupt."""

        return load_json_object(self.paths(agent_id).status)


def _new_message(
    content: Any,
    *,
    kind: MessageKind | None,
    sender: str | None,
) -> MailboxMessage:
    timestamp = now_ms()
    return MailboxMessage(
        id=mint_message_id(timestamp),
        content=content,
        timestamp=timestamp,
        kind=kind or infer_kind(content),
        sender=sender,
    )


def _read_after(path: Path, after_line: int) -> ReadResult:
    messages = [
        message
        for message in (MailboxMessage.from_record(record) for record in read_jsonl(path))
        if message is not None
    ]
    return ReadResult(messages=messages[max(0, after_line) :], total_lines=len(messages))


def _validate_agent_id(agent_id: str) -> None:
    if not agent_id or agent_id in {".", ".."} or "/" in agent_id or "\\" in agent_id:
        raise ValueError(f"Invalid agent id: {agent_id!r}")
