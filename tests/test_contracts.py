from __future__ import annotations

import json
import threading
from pathlib import Path

import allure

from agent_mailbox.coordination.contracts import write_json

pytestmark = [
    allure.epic("Agent Mailbox"),
    allure.feature("File Contracts"),
]


def test_write_json_from_many_threads_stays_atomic(tmp_path: Path) -> None:
    path = tmp_path / "doc.json"
    errors: list[BaseException] = []

    def write_many(writer: int) -> None:
        try:
            for step in range(40):
                write_json(path, {"writer": writer, "step": step})
        except BaseException as error:  # noqa: BLE001
            errors.append(error)

    threads = [threading.Thread(target=write_many, args=(writer,)) for writer in range(6)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert errors == []
    assert json.loads(path.read_text("utf-8"))["step"] == 39
    assert [item.name for item in tmp_path.iterdir()] == ["doc.json"]
