from __future__ import annotations

from pathlib import Path

import allure
import pytest

from agent_mailbox.config import Settings

pytestmark = [
    allure.epic("Agent Mailbox"),
    allure.feature("Configuration"),
]


def test_defaults_are_valid() -> None:
    settings = Settings.from_env()

    settings.validate()
    assert settings.mailbox.root == Path(".agents/mailbox")
    assert settings.engine.provider == "echo"
    assert settings.engine.api_key is None
    assert settings.worker.detached is True


def test_from_env_reads_overrides(monkeypatch, tmp_path: Path) -> None:
    monkeypatch.setenv("AGENT_MAILBOX_ROOT", str(tmp_path / "mb"))
    monkeypatch.setenv("AGENT_MAILBOX_POLL_INTERVAL_SECONDS", "0.25")
    monkeypatch.setenv("AGENT_MAILBOX_SESSION_TTL_SECONDS", "90")
    monkeypatch.setenv("AGENT_MAILBOX_LLM_PROVIDER", " CLI ")
    monkeypatch.setenv("AGENT_MAILBOX_LLM_COMMAND_TEMPLATE", "agent --file {prompt_file}")
    monkeypatch.setenv("AGENT_MAILBOX_WORKER_DETACHED", "no")

    settings = Settings.from_env()

    assert settings.mailbox.root == tmp_path / "mb"
    assert settings.mailbox.poll_interval_seconds == 0.25
    assert settings.sessions.ttl_seconds == 90
    assert settings.engine.provider == "cli"
    assert settings.worker.detached is False
    settings.validate()


def test_explicit_mailbox_root_wins(monkeypatch, tmp_path: Path) -> None:
    monkeypatch.setenv("AGENT_MAILBOX_ROOT", "/elsewhere")

    assert Settings.from_env(mailbox_root=tmp_path).mailbox.root == tmp_path


def test_api_key_falls_back_through_env_names(monkeypatch) -> None:
    monkeypatch.setenv("ANTHROPIC_API_KEY", "third")
    assert Settings.from_env().engine.api_key == "third"

    monkeypatch.setenv("LLM_API_KEY", "second")
    assert Settings.from_env().engine.api_key == "second"

    monkeypatch.setenv("AGENT_MAILBOX_LLM_API_KEY", "first")
    assert Settings.from_env().engine.api_key == "first"


def test_invalid_boolean_is_rejected(monkeypatch) -> None:
    monkeypatch.setenv("AGENT_MAILBOX_WORKER_DETACHED", "sometimes")

    with pytest.raises(ValueError, match="Invalid boolean value"):
        Settings.from_env()


@pytest.mark.parametrize(
    ("name", "value", "message"),
    [
        ("AGENT_MAILBOX_POLL_INTERVAL_SECONDS", "0", "POLL_INTERVAL"),
        ("AGENT_MAILBOX_SESSION_TTL_SECONDS", "-1", "SESSION_TTL"),
        ("AGENT_MAILBOX_LLM_PROVIDER", "gpt", "Unsupported AGENT_MAILBOX_LLM_PROVIDER"),
        ("AGENT_MAILBOX_LLM_TIMEOUT_SECONDS", "0", "LLM_TIMEOUT"),
    ],
)
def test_validate_rejects_bad_values(monkeypatch, name: str, value: str, message: str) -> None:
    monkeypatch.setenv(name, value)

    with pytest.raises(ValueError, match=message):
        Settings.from_env().validate()


def test_cli_provider_needs_prompt_placeholder(monkeypatch) -> None:
    monkeypatch.setenv("AGENT_MAILBOX_LLM_PROVIDER", "cli")
    monkeypatch.setenv("AGENT_MAILBOX_LLM_COMMAND_TEMPLATE", "agent --model {model}")

    with pytest.raises(ValueError, match="COMMAND_TEMPLATE"):
        Settings.from_env().validate()


def test_engine_env_carries_engine_and_polling(monkeypatch) -> None:
    monkeypatch.setenv("AGENT_MAILBOX_LLM_API_KEY", "k")

    env = Settings.from_env().engine_env()

    assert env["AGENT_MAILBOX_LLM_PROVIDER"] == "echo"
    assert env["AGENT_MAILBOX_LLM_API_KEY"] == "k"
    assert env["AGENT_MAILBOX_POLL_INTERVAL_SECONDS"] == "0.5"
