"""JSON and JSON-lines file helpers shared by the mailbox documents."""

from __future__ import annotations

import json
import logging
import os
import time
import uuid
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)


def now_ms() -> int:
    """Current wall clock time in epoch milliseconds."""

    return int(time.time() * 1000)


def write_json(path: Path, payload: dict[str, Any]) -> None:
    """Replace a JSON document atomically so readers never see a torn write."""

    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = path.with_name(f".{path.name}.{uuid.uuid4().hex}.tmp")
    with tmp.open("w", encoding="utf-8") as fh:
        json.dump(payload, fh, ensure_ascii=False, indent=2)
        fh.write("\n")
        fh.flush()
        os.fsync(fh.fileno())
    tmp.replace(path)


def load_json_object(path: Path) -> dict[str, Any] | None:
    """Load a JSON object, or ``None`` when the file is missing or unreadable."""

    try:
        payload = json.loads(path.read_text("utf-8"))
    except FileNotFoundError:
        return None
    except (OSError, UnicodeDecodeError, json.JSONDecodeError) as error:
        logger.debug("Ignoring unreadable JSON document %s: %s", path, error)
        return None
    if not isinstance(payload, dict):
        logger.debug("Ignoring non-object JSON document %s", path)
        return None
    return payload


def touch(path: Path) -> None:
    """Create an empty file if absent; existing content is left untouched."""

    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("a", encoding="utf-8"):
        pass


def append_jsonl(path: Path, record: dict[str, Any]) -> None:
    """Append one record as a single newline-terminated JSON line."""

    line = json.dumps(record, ensure_ascii=False) + "\n"
    with path.open("a", encoding="utf-8") as fh:
        fh.write(line)
        fh.flush()


def read_jsonl(path: Path) -> list[dict[str, Any]]:
    """Parse every complete line of a JSON-lines file.

    Corrupt lines are dropped. A final line without its newline is an append
    still in progress and is left for the next read.
    """

    try:
        raw = path.read_text("utf-8")
    except FileNotFoundError:
        return []
    except (OSError, UnicodeDecodeError) as error:
        logger.debug("Ignoring unreadable JSONL file %s: %s", path, error)
        return []

    lines = raw.split("\n")
    # Last element is "" for a newline-terminated file, else a partial append.
    complete = lines[:-1]
    records: list[dict[str, Any]] = []
    for line in complete:
        line = line.strip()
        if not line:
            continue
        try:
            record = json.loads(line)
        except json.JSONDecodeError:
            continue
        if isinstance(record, dict):
            records.append(record)
    return records
