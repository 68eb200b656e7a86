from __future__ import annotations

from pathlib import Path

import allure

from agent_mailbox.config import Settings
from agent_mailbox.coordination.agent_store import AgentStore
from agent_mailbox.coordination.binding import (
    StatusTracker,
    bind_master,
    bind_worker,
    master_system_prompt,
    worker_env,
)
from agent_mailbox.coordination.engine import EngineConfig, EngineEvent, EngineEventType
from agent_mailbox.coordination.mailbox import MailboxStore
from agent_mailbox.coordination.registry import AgentRegistry

pytestmark = [
    allure.epic("Agent Mailbox"),
    allure.feature("Agent Binding"),
]


def test_status_tracker_counts_turns_and_tool_calls(mailbox_base: Path) -> None:
    mailbox = MailboxStore(mailbox_base)
    mailbox.create_mailbox("w1")
    mailbox.update_status("w1", {"turns": 2})
    tracker = StatusTracker(mailbox, "w1", clock=lambda: 777)

    tracker(EngineEvent(type=EngineEventType.TURN_START))
    tracker(EngineEvent(type=EngineEventType.TOOL_EXECUTION_START, tool_name="send_to_master"))
    tracker(EngineEvent(type=EngineEventType.TOOL_EXECUTION_START, tool_name="report_complete"))
    tracker(EngineEvent(type=EngineEventType.AGENT_END))

    status = mailbox.get_status("w1")
    assert status["turns"] == 3
    assert status["toolCalls"] == 2
    assert status["lastToolName"] == "report_complete"
    assert status["lastActivity"] == 777


def test_bind_worker_adds_coding_tools_for_code_workers(tmp_path: Path) -> None:
    settings = Settings()

    general = bind_worker(
        mailbox_base=tmp_path,
        agent_id="w1",
        task="t",
        worker_type="general",
        config=EngineConfig(),
        settings=settings,
    )
    code = bind_worker(
        mailbox_base=tmp_path,
        agent_id="w2",
        task="t",
        worker_type="code",
        config=EngineConfig(),
        settings=settings,
        workspace_dir=tmp_path,
    )

    assert [tool.name for tool in general.tools] == [
        "send_to_master",
        "wait_for_reply",
        "report_complete",
    ]
    assert [tool.name for tool in code.tools][-3:] == ["read_file", "write_file", "list_files"]


def test_bound_worker_turn_tracks_progress(tmp_path: Path) -> None:
    binding = bind_worker(
        mailbox_base=tmp_path,
        agent_id="w1",
        task="say hi",
        worker_type="general",
        config=EngineConfig(),
        settings=Settings(),
    )

    assert binding.run_turn("say hi") == "Echo: say hi"
    binding.close()

    status = MailboxStore(tmp_path).get_status("w1")
    assert status["status"] == "complete"
    assert status["turns"] == 1
    assert status["toolCalls"] == 1
    assert "## Your Task\nsay hi" in binding.engine.system_prompt


def test_bind_master_restores_and_saves_history(tmp_path: Path) -> None:
    store = AgentStore(tmp_path)
    store.create_agent(agent_id="m1")
    store.save_history("m1", [{"role": "user", "content": "earlier"}])

    binding = bind_master(
        agent_store=store,
        agent_id="m1",
        config=EngineConfig(),
        settings=Settings(),
    )
    binding.run_turn("status?")

    assert binding.supervisor is not None
    assert binding.context.mailbox_base == store.workers_dir("m1")
    assert [item["content"] for item in store.load_history("m1")] == [
        "earlier",
        "status?",
        "Echo: status?",
    ]
    assert "## Known agents\nNo agents registered." in binding.engine.system_prompt


def test_master_system_prompt_lists_known_agents(mailbox_base: Path) -> None:
    registry = AgentRegistry(mailbox_base)
    registry.register_agent("w1", task="index docs", status="running")

    prompt = master_system_prompt("m1", registry)

    assert "You are m1" in prompt
    assert "- w1 [running] (general): index docs" in prompt
    assert "[orchestration]" in prompt
    assert "[coding]" not in prompt


def test_worker_env_hands_down_engine_choice() -> None:
    env = worker_env(
        Settings(),
        EngineConfig(provider="cli", model="m", api_key="secret", command_template="a {prompt}"),
    )

    assert env["AGENT_MAILBOX_LLM_PROVIDER"] == "cli"
    assert env["AGENT_MAILBOX_LLM_MODEL"] == "m"
    assert env["AGENT_MAILBOX_LLM_API_KEY"] == "secret"
    assert env["AGENT_MAILBOX_LLM_COMMAND_TEMPLATE"] == "a {prompt}"
