from __future__ import annotations

import json
from pathlib import Path

import allure
from click.testing import CliRunner

from agent_mailbox.coordination.agent_store import AgentStore
from agent_mailbox.coordination.mailbox import MailboxStore
from agent_mailbox.coordination.registry import AgentRegistry
from agent_mailbox.main import agent_mailbox

pytestmark = [
    allure.epic("Agent Mailbox"),
    allure.feature("CLI"),
]


def _seed_worker(base: Path, agent_id: str = "w1", *, status: str = "running") -> MailboxStore:
    mailbox = MailboxStore(base)
    mailbox.create_mailbox(agent_id)
    mailbox.update_status(agent_id, {"status": status})
    AgentRegistry(base).register_agent(agent_id, task="seeded task", status=status)
    return mailbox


def test_workers_spawn_waits_for_echo_worker(mailbox_base: Path, worker_env, monkeypatch) -> None:
    for name, value in worker_env.items():
        monkeypatch.setenv(name, value)
    runner = CliRunner()

    result = runner.invoke(
        agent_mailbox,
        ["workers", "spawn", "--mailbox-root", str(mailbox_base), "--task", "write haiku"],
    )

    assert result.exit_code == 0, result.output
    lines = result.output.splitlines()
    assert lines[0].startswith("Spawned worker worker-")
    assert "exited: code=0 status=complete" in lines[1]
    assert lines[2] == "Result: Echo: write haiku"

    listed = runner.invoke(
        agent_mailbox,
        ["workers", "list", "--mailbox-root", str(mailbox_base), "--status", "complete"],
    )
    assert listed.exit_code == 0, listed.output
    assert listed.output.startswith("1 worker(s):")
    assert "   Task: write haiku" in listed.output


def test_workers_spawn_code_worker_uses_workspace(
    mailbox_base: Path,
    tmp_path: Path,
    worker_env,
    monkeypatch,
) -> None:
    for name, value in worker_env.items():
        monkeypatch.setenv(name, value)
    workspace = tmp_path / "ws"
    workspace.mkdir()

    result = CliRunner().invoke(
        agent_mailbox,
        [
            "workers",
            "spawn",
            "--mailbox-root",
            str(mailbox_base),
            "--type",
            "code",
            "--workspace",
            str(workspace),
            "--task",
            '/write_file {"path": "a.txt", "content": "from cli"}',
        ],
    )

    assert result.exit_code == 0, result.output
    assert (workspace / "a.txt").read_text("utf-8") == "from cli"
    (entry,) = AgentRegistry(mailbox_base).load_registry().agents.values()
    assert entry.workspace == str(workspace)


def test_workers_spawn_rejects_blank_task(mailbox_base: Path) -> None:
    result = CliRunner().invoke(
        agent_mailbox,
        ["workers", "spawn", "--mailbox-root", str(mailbox_base), "--task", "  "],
    )

    assert result.exit_code != 0
    assert "must not be empty" in result.output


def test_workers_output_and_send(mailbox_base: Path) -> None:
    mailbox = _seed_worker(mailbox_base)
    mailbox.write_outbox("w1", "progress 50%")
    runner = CliRunner()

    output = runner.invoke(
        agent_mailbox,
        ["workers", "output", "--mailbox-root", str(mailbox_base), "w1"],
    )
    sent = runner.invoke(
        agent_mailbox,
        ["send", "--mailbox-root", str(mailbox_base), "w1", "carry on"],
    )
    missing = runner.invoke(
        agent_mailbox,
        ["send", "--mailbox-root", str(mailbox_base), "ghost", "hello?"],
    )

    assert output.exit_code == 0, output.output
    assert output.output.strip() == "[1] w1: progress 50%"
    assert sent.exit_code == 0, sent.output
    assert sent.output.startswith("Sent msg-")
    (message,) = mailbox.read_inbox("w1").messages
    assert (message.content, message.sender) == ("carry on", "operator")
    assert missing.exit_code != 0
    assert "No mailbox for agent ghost." in missing.output


def test_signals_wait_advances_persisted_cursors(mailbox_base: Path) -> None:
    mailbox = _seed_worker(mailbox_base)
    mailbox.write_outbox("w1", "first result")
    runner = CliRunner()
    args = ["signals", "wait", "--mailbox-root", str(mailbox_base), "--timeout-seconds", "0.2"]

    first = runner.invoke(agent_mailbox, args)
    second = runner.invoke(agent_mailbox, args)

    assert first.exit_code == 0, first.output
    assert first.output.strip() == "[MSG] w1: first result"
    assert second.output.strip() == "[TIMEOUT] No signals received"
    cursors = json.loads((mailbox_base / "cursors.json").read_text("utf-8"))
    assert cursors == {"w1": 1}


def test_registry_snapshot_text_and_json(mailbox_base: Path) -> None:
    _seed_worker(mailbox_base)
    runner = CliRunner()

    text = runner.invoke(
        agent_mailbox,
        ["registry", "snapshot", "--mailbox-root", str(mailbox_base)],
    )
    raw = runner.invoke(
        agent_mailbox,
        ["registry", "snapshot", "--mailbox-root", str(mailbox_base), "--json"],
    )

    assert text.exit_code == 0, text.output
    assert text.output.splitlines() == [
        "1 agent(s) registered:",
        "- w1 [running] (general): seeded task",
    ]
    assert json.loads(raw.output)[0]["agentId"] == "w1"


def test_agents_list_and_chat(tmp_path: Path) -> None:
    agents_root = tmp_path / "agents"
    runner = CliRunner()

    empty = runner.invoke(agent_mailbox, ["agents", "list", "--agents-root", str(agents_root)])
    chat = runner.invoke(
        agent_mailbox,
        [
            "chat",
            "--agents-root",
            str(agents_root),
            "--agent-id",
            "m1",
            "--message",
            "hello",
            "--message",
            "/list_workers",
        ],
    )
    listed = runner.invoke(agent_mailbox, ["agents", "list", "--agents-root", str(agents_root)])

    assert empty.output.strip() == "No agents found."
    assert chat.exit_code == 0, chat.output
    assert chat.output.splitlines() == [
        "Session cli -> agent m1",
        "> hello",
        "Echo: hello",
        "> /list_workers",
        "No workers registered.",
    ]
    assert listed.output.startswith("m1 [stopped] echo/echo-1 created=")
    history = AgentStore(agents_root).load_history("m1")
    assert [item["role"] for item in history] == ["user", "assistant", "user", "assistant"]


def test_chat_rejects_cli_provider_without_key(tmp_path: Path, monkeypatch) -> None:
    monkeypatch.setenv("AGENT_MAILBOX_LLM_COMMAND_TEMPLATE", "agent {prompt}")

    result = CliRunner().invoke(
        agent_mailbox,
        ["chat", "--agents-root", str(tmp_path), "--provider", "cli", "--message", "hi"],
    )

    assert result.exit_code != 0
    assert "needs an API key" in result.output
