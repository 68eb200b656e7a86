"""Persisted outbox cursors so a restarted master resumes where it stopped."""

from __future__ import annotations

from collections.abc import Mapping
from pathlib import Path

from agent_mailbox.coordination.contracts import load_json_object, write_json

CURSORS_FILENAME = "cursors.json"


class CursorStore:
    """``cursors.json``: agent id -> number of outbox lines already consumed."""

    def __init__(self, base_dir: Path) -> None:
        self.base_dir = base_dir
        self.path = base_dir / CURSORS_FILENAME

    def load(self) -> dict[str, int]:
        payload = load_json_object(self.path) or {}
        return {
            agent_id: value
            for agent_id, value in payload.items()
            if isinstance(value, int) and not isinstance(value, bool) and value >= 0
        }

    def save(self, cursors: Mapping[str, int]) -> dict[str, int]:
        """Persist cursors merged with disk; a cursor never moves backwards."""

        merged = self.load()
        for agent_id, value in cursors.items():
            merged[agent_id] = max(merged.get(agent_id, 0), int(value))
        write_json(self.path, merged)
        return merged

    def forget(self, agent_id: str) -> None:
        cursors = self.load()
        if cursors.pop(agent_id, None) is not None:
            write_json(self.path, cursors)
