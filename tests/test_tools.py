from __future__ import annotations

from pathlib import Path

import allure
import pytest

from agent_mailbox.coordination.mailbox import MailboxStore
from agent_mailbox.coordination.models import MessageKind
from agent_mailbox.coordination.registry import AgentRegistry
from agent_mailbox.coordination.supervisor import SpawnError
from agent_mailbox.coordination.tools import (
    TOOL_REGISTRY,
    ToolContext,
    create_coding_tools,
    create_master_tools,
    create_worker_tools,
    discover_tools,
    instantiate_tools,
)
from agent_mailbox.coordination.tools.orchestration import format_age

pytestmark = [
    allure.epic("Agent Mailbox"),
    allure.feature("Agent Tools"),
]


class _FakeWorker:
    def __init__(self, agent_id: str, pid: int, type: str) -> None:  # noqa: A002
        self.agent_id = agent_id
        self.pid = pid
        self.type = type


class _FakeSupervisor:
    def __init__(self, *, fail: bool = False) -> None:
        self.fail = fail
        self.on_spawned = None
        self.spawned: list[tuple[str, str]] = []

    def spawn_worker(self, task: str, type: str = "general") -> _FakeWorker:  # noqa: A002
        if self.fail:
            raise SpawnError("no python")
        self.spawned.append((task, type))
        if self.on_spawned is not None:
            self.on_spawned("w9")
        return _FakeWorker("w9", 4242, type)


def _by_name(tools) -> dict:
    return {tool.name: tool for tool in tools}


def test_worker_tools_message_master_and_complete(mailbox_base: Path, fake_clock) -> None:
    ctx = ToolContext(
        mailbox_base=mailbox_base,
        agent_id="w1",
        clock=fake_clock,
        sleep=fake_clock.sleep,
    )
    tools = _by_name(create_worker_tools(ctx))
    mailbox = MailboxStore(mailbox_base)
    mailbox.create_mailbox("w1")

    sent = tools["send_to_master"].execute({"message": "half way"})
    done = tools["report_complete"].execute({"summary": "all done"})

    assert sent.text == 'Message sent to master: "half way"'
    assert done.text == "Task completed: all done"
    outbox = mailbox.read_outbox("w1").messages
    assert [message.content for message in outbox] == ["half way", "[COMPLETE] all done"]
    assert outbox[1].kind is MessageKind.COMPLETION
    status = mailbox.get_status("w1")
    assert (status["status"], status["result"], status["exitCode"]) == ("complete", "all done", 0)


def test_report_failure_marks_error(mailbox_base: Path) -> None:
    ctx = ToolContext(mailbox_base=mailbox_base, agent_id="w1")
    report = _by_name(create_worker_tools(ctx))["report_complete"]

    result = report.execute({"summary": "could not", "success": False})

    assert result.text == "Task failed: could not"
    status = MailboxStore(mailbox_base).get_status("w1")
    assert (status["status"], status["exitCode"]) == ("error", 1)


def test_wait_for_reply_returns_new_inbox_messages(mailbox_base: Path, fake_clock) -> None:
    ctx = ToolContext(
        mailbox_base=mailbox_base,
        agent_id="w1",
        clock=fake_clock,
        sleep=fake_clock.sleep,
    )
    wait = _by_name(create_worker_tools(ctx))["wait_for_reply"]
    mailbox = MailboxStore(mailbox_base)
    mailbox.create_mailbox("w1")
    mailbox.send_message("w1", "use option B", sender="m1")

    first = wait.execute({"timeout_seconds": 5})
    second = wait.execute({"timeout_seconds": 2})

    assert first.text == 'Reply from master: "use option B"'
    assert second.text == "Timeout: no reply received from master."
    assert second.details == {"timeout": True}
    assert sum(fake_clock.sleeps) == pytest.approx(2)


def test_worker_tools_need_agent_id(mailbox_base: Path) -> None:
    with pytest.raises(ValueError):
        create_worker_tools(ToolContext(mailbox_base=mailbox_base))


def test_master_tools_spawn_and_signal_flow(mailbox_base: Path, fake_clock) -> None:
    supervisor = _FakeSupervisor()
    ctx = ToolContext(
        mailbox_base=mailbox_base,
        agent_id="m1",
        supervisor=supervisor,
        clock=fake_clock,
        sleep=fake_clock.sleep,
    )
    tools = _by_name(create_master_tools(ctx))
    assert list(tools) == [
        "spawn_worker",
        "send_to_worker",
        "list_workers",
        "get_worker_output",
        "wait_for_signals",
    ]

    spawned = tools["spawn_worker"].execute({"task": "count words", "type": "code"})
    assert spawned.text == 'Spawned worker w9 (pid=4242) for task: "count words"'
    assert spawned.details["type"] == "code"
    assert ctx.cursors == {"w9": 0}

    mailbox = MailboxStore(mailbox_base)
    mailbox.create_mailbox("w9")
    mailbox.update_status("w9", {"status": "running"})
    AgentRegistry(mailbox_base).register_agent("w9", task="count words", status="running")
    mailbox.write_outbox("w9", "42 words")

    signals = tools["wait_for_signals"].execute({"timeout_seconds": 1})
    assert signals.text == "[MSG] w9: 42 words"
    assert ctx.cursors == {"w9": 1}

    quiet = tools["wait_for_signals"].execute({"timeout_seconds": 1})
    assert quiet.text == "[TIMEOUT] No signals received"

    sent = tools["send_to_worker"].execute({"agent_id": "w9", "message": "thanks"})
    assert sent.text == 'Sent message to w9: "thanks"'
    assert mailbox.read_inbox("w9").messages[0].sender == "m1"


def test_master_tools_restore_persisted_cursors(mailbox_base: Path) -> None:
    ctx = ToolContext(mailbox_base=mailbox_base, agent_id="m1", supervisor=_FakeSupervisor())
    ctx.cursor_store.save({"w1": 3})

    create_master_tools(ctx)

    assert ctx.cursors == {"w1": 3}


def test_spawn_failure_is_reported_as_tool_error(mailbox_base: Path) -> None:
    ctx = ToolContext(
        mailbox_base=mailbox_base,
        agent_id="m1",
        supervisor=_FakeSupervisor(fail=True),
    )
    spawn = _by_name(create_master_tools(ctx))["spawn_worker"]

    result = spawn.execute({"task": "x"})

    assert result.is_error
    assert result.text == "no python"


def test_list_workers_and_filter(mailbox_base: Path) -> None:
    ctx = ToolContext(mailbox_base=mailbox_base, agent_id="m1", supervisor=_FakeSupervisor())
    tools = _by_name(create_master_tools(ctx))
    assert tools["list_workers"].execute({}).text == "No workers registered."

    mailbox = MailboxStore(mailbox_base)
    registry = AgentRegistry(mailbox_base)
    mailbox.create_mailbox("w1")
    mailbox.update_status(
        "w1",
        {"status": "complete", "toolCalls": 2, "lastToolName": "report_complete"},
    )
    registry.register_agent("w1", task="first")

    listed = tools["list_workers"].execute({}).text.splitlines()
    assert listed[0] == "1 worker(s):"
    assert listed[1].startswith("✅ w1 [complete] (general) - uptime: ?, active: never")
    assert listed[1].endswith("| 2 tools (last: report_complete)")
    assert listed[2] == "   Task: first"
    filtered = tools["list_workers"].execute({"status": "error"})
    assert filtered.text == 'No workers with status "error".'


def test_get_worker_output(mailbox_base: Path) -> None:
    ctx = ToolContext(mailbox_base=mailbox_base, agent_id="m1", supervisor=_FakeSupervisor())
    output = _by_name(create_master_tools(ctx))["get_worker_output"]
    mailbox = MailboxStore(mailbox_base)

    assert output.execute({"agent_id": "ghost"}).text == "Worker ghost not found or has no output."
    mailbox.create_mailbox("w1")
    assert output.execute({"agent_id": "w1"}).text == "Worker w1 has no output yet."

    for index in range(3):
        mailbox.write_outbox("w1", f"line {index}")
    assert output.execute({"agent_id": "w1", "limit": 2}).text == "[1] w1: line 1\n[2] w1: line 2"


def test_coding_tools_stay_inside_workspace(tmp_path: Path) -> None:
    workspace = tmp_path / "ws"
    workspace.mkdir()
    ctx = ToolContext(mailbox_base=tmp_path / "mailbox", workspace_dir=workspace)
    tools = _by_name(create_coding_tools(ctx))

    written = tools["write_file"].execute({"path": "pkg/notes.txt", "content": "a\nb\nc"})
    assert written.text == "Wrote 5 bytes to pkg/notes.txt"
    sliced = tools["read_file"].execute({"path": "pkg/notes.txt", "offset": 2, "limit": 1})
    assert sliced.text == "b"
    assert tools["list_files"].execute({}).text == "pkg/notes.txt"

    escaped = tools["read_file"].execute({"path": "../secret.txt"})
    assert escaped.is_error
    assert escaped.text.startswith("Error: Path is outside the workspace")
    assert tools["write_file"].execute({"path": "/etc/evil", "content": "x"}).is_error
    assert tools["read_file"].execute({"path": "missing.txt"}).is_error


def test_list_files_empty_workspace(tmp_path: Path) -> None:
    ctx = ToolContext(mailbox_base=tmp_path, workspace_dir=tmp_path / "empty")
    (tmp_path / "empty").mkdir()

    assert _by_name(create_coding_tools(ctx))["list_files"].execute({}).text == "(empty)"


def test_discover_and_instantiate_tools(mailbox_base: Path) -> None:
    catalog = discover_tools(["coding"])
    assert catalog.startswith("[coding] File I/O for code tasks")
    assert "spawn_worker" not in catalog
    assert "spawn_worker" in discover_tools()
    assert set(TOOL_REGISTRY) == {"communication", "orchestration", "coding"}

    ctx = ToolContext(mailbox_base=mailbox_base, agent_id="w1")
    tools = instantiate_tools(["send_to_master", "nope", "list_files"], ctx)

    assert [tool.name for tool in tools] == ["send_to_master", "list_files"]
    assert tools[0].describe()["parameters"]["required"] == ["message"]


@pytest.mark.parametrize(
    ("ms", "expected"),
    [(850, "850ms"), (42_000, "42s"), (187_000, "3m7s")],
)
def test_format_age(ms: int, expected: str) -> None:
    assert format_age(ms) == expected


def test_instantiate_tools_rejects_context_missing_required_fields(mailbox_base: Path) -> None:
    ctx = ToolContext(mailbox_base=mailbox_base)

    with pytest.raises(ValueError, match="send_to_master needs context fields: agent_id"):
        instantiate_tools(["send_to_master"], ctx)
    with pytest.raises(ValueError, match="supervisor"):
        instantiate_tools(["spawn_worker"], ctx)
    assert [tool.name for tool in instantiate_tools(["send_to_worker"], ctx)] == ["send_to_worker"]


def test_zero_timeout_polls_once_instead_of_default(mailbox_base: Path, fake_clock) -> None:
    MailboxStore(mailbox_base).create_mailbox("w1")
    ctx = ToolContext(
        mailbox_base=mailbox_base,
        agent_id="w1",
        clock=fake_clock,
        sleep=fake_clock.sleep,
    )
    wait_for_reply = _by_name(create_worker_tools(ctx))["wait_for_reply"]
    wait_for_signals = _by_name(create_master_tools(ctx))["wait_for_signals"]

    reply = wait_for_reply.execute({"timeout_seconds": 0})
    signals = wait_for_signals.execute({"timeout_seconds": 0})

    assert reply.details == {"timeout": True}
    assert signals.text == "[TIMEOUT] No signals received"
    assert fake_clock.sleeps == []
