"""Shared test fixtures."""

from __future__ import annotations

import os
from pathlib import Path

import pytest

import agent_mailbox

SRC_DIR = Path(agent_mailbox.__file__).resolve().parent.parent

_ENGINE_ENV_VARS = ("LLM_API_KEY", "ANTHROPIC_API_KEY")


class FakeClock:
    """Monotonic clock whose ``sleep`` only advances time."""

    def __init__(self, start: float = 1_000.0) -> None:
        self.now = start
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


@pytest.fixture(autouse=True)
def _isolated_env(monkeypatch):
    """Tests never inherit mailbox or engine settings from the developer shell."""

    for name in list(os.environ):
        if name.startswith("AGENT_MAILBOX_") or name in _ENGINE_ENV_VARS:
            monkeypatch.delenv(name, raising=False)


@pytest.fixture()
def fake_clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def mailbox_base(tmp_path: Path) -> Path:
    base = tmp_path / "mailbox"
    base.mkdir()
    return base


@pytest.fixture()
def worker_env() -> dict[str, str]:
    """Child-process environment that can import the package from a source checkout."""

    python_path = os.environ.get("PYTHONPATH")
    return {
        "PYTHONPATH": os.pathsep.join(filter(None, [str(SRC_DIR), python_path])),
        "AGENT_MAILBOX_LLM_PROVIDER": "echo",
    }
