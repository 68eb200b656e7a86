from __future__ import annotations

import json
from pathlib import Path

import allure
import pytest

from agent_mailbox.coordination.mailbox import MailboxStore
from agent_mailbox.coordination.models import MessageKind

pytestmark = [
    allure.epic("Agent Mailbox"),
    allure.feature("Mailbox Store"),
]


def test_create_mailbox_is_idempotent_and_never_truncates(mailbox_base: Path) -> None:
    store = MailboxStore(mailbox_base)
    store.create_mailbox("a1")
    store.send_message("a1", "hello")

    paths = store.create_mailbox("a1")

    assert paths.inbox.read_text("utf-8").count("\n") == 1
    assert paths.outbox.exists()
    status = store.get_status("a1")
    assert status is not None
    assert status["status"] == "starting"
    assert status["agentId"] == "a1"
    assert status["exitCode"] is None


@pytest.mark.parametrize("bad_id", ["", ".", "..", "a/b", "a\\b"])
def test_mailbox_rejects_unsafe_agent_ids(mailbox_base: Path, bad_id: str) -> None:
    with pytest.raises(ValueError, match="Invalid agent id"):
        MailboxStore(mailbox_base).create_mailbox(bad_id)


def test_inbox_reads_are_ordered_and_respect_cursor(mailbox_base: Path) -> None:
    store = MailboxStore(mailbox_base)
    store.create_mailbox("a1")
    for text in ("one", "two", "three"):
        store.send_message("a1", text, sender="master")

    first = store.read_inbox("a1")
    after_two = store.read_inbox("a1", after_line=2)

    assert [message.content for message in first.messages] == ["one", "two", "three"]
    assert first.total_lines == 3
    assert [message.content for message in after_two.messages] == ["three"]
    assert after_two.total_lines == 3
    assert first.messages[0].sender == "master"
    assert first.messages[0].id.startswith("msg-")


def test_outbox_round_trip_sets_sender_and_kind(mailbox_base: Path) -> None:
    store = MailboxStore(mailbox_base)
    store.create_mailbox("w1")
    store.write_outbox("w1", {"answer": 42})
    store.write_outbox("w1", "[COMPLETE] done", kind=MessageKind.COMPLETION)

    messages = store.read_outbox("w1").messages

    assert messages[0].sender == "w1"
    assert messages[0].kind is MessageKind.RESULT
    assert messages[0].content == {"answer": 42}
    assert messages[1].kind is MessageKind.COMPLETION


def test_read_skips_corrupt_and_partial_lines(mailbox_base: Path) -> None:
    store = MailboxStore(mailbox_base)
    paths = store.create_mailbox("a1")
    good = {"id": "msg-1-aaaaaa", "content": "ok", "timestamp": 1}
    legacy = {"id": "msg-2-bbbbbb", "content": {"k": "v"}, "timestamp": 2}
    paths.inbox.write_text(
        json.dumps(good) + "\n" + "{not json\n" + json.dumps(legacy) + "\n" + '{"id": "msg-3',
        "utf-8",
    )

    read = store.read_inbox("a1")

    assert [message.id for message in read.messages] == ["msg-1-aaaaaa", "msg-2-bbbbbb"]
    assert read.messages[1].kind is MessageKind.RESULT
    assert read.total_lines == 2


def test_missing_mailbox_reads_empty(mailbox_base: Path) -> None:
    store = MailboxStore(mailbox_base)

    assert store.read_outbox("ghost").messages == []
    assert store.read_outbox("ghost").total_lines == 0
    assert store.get_status("ghost") is None


def test_update_status_merges_patches(mailbox_base: Path) -> None:
    store = MailboxStore(mailbox_base)
    store.create_mailbox("a1")

    store.update_status("a1", {"status": "running"})
    merged = store.update_status("a1", {"turns": 3})

    assert merged["status"] == "running"
    assert merged["turns"] == 3
    assert isinstance(merged["updatedAt"], int)
    assert store.get_status("a1") == merged


def test_terminal_status_is_not_left_without_reopen(mailbox_base: Path) -> None:
    store = MailboxStore(mailbox_base)
    store.create_mailbox("a1")
    store.update_status("a1", {"status": "complete", "exitCode": 0})

    after = store.update_status("a1", {"status": "running", "turns": 1})
    assert after["status"] == "complete"
    assert after["turns"] == 1

    reopened = store.update_status("a1", {"status": "running"}, reopen=True)
    assert reopened["status"] == "running"


def test_corrupt_status_reads_as_missing(mailbox_base: Path) -> None:
    store = MailboxStore(mailbox_base)
    paths = store.create_mailbox("a1")
    paths.status.write_text("{broken", "utf-8")

    assert store.get_status("a1") is None
    assert store.update_status("a1", {"status": "running"})["status"] == "running"
