"""Agent id minting and parsing.

Two schemes produce agent ids:

- human-readable ``YYYY-MM-DD-HH-MM-SS-adjective-noun`` for persisted agents
  (60 adjectives x 60 nouns, unique enough within one project);
- ``worker-<epoch_ms>-<random4>`` for workers minted by the supervisor.
"""

from __future__ import annotations

import random
import string
import time
from dataclasses import dataclass
from datetime import datetime

ADJECTIVES = (
    "bold", "brave", "calm", "cool", "dark", "dawn", "deep", "fast", "gold", "keen",
    "kind", "late", "lean", "live", "long", "loud", "main", "mild", "neat", "open",
    "pale", "pure", "rare", "real", "rich", "safe", "slim", "soft", "sure", "tall",
    "thin", "true", "vast", "warm", "wide", "wild", "wise", "able", "arch", "awry",
    "bare", "blue", "busy", "deft", "dual", "fair", "fine", "firm", "flat", "free",
    "full", "glad", "good", "gray", "half", "hard", "high", "iron", "just", "next",
)  # fmt: skip

NOUNS = (
    "arch", "bark", "bell", "bolt", "cape", "cave", "claw", "coin", "crow", "dawn",
    "deer", "dock", "dove", "drum", "dusk", "edge", "fawn", "fern", "fire", "flax",
    "fork", "fox", "gate", "gale", "glen", "glow", "gull", "hare", "hawk", "helm",
    "hill", "hive", "iris", "jade", "kite", "lake", "lark", "leaf", "lime", "lynx",
    "mare", "mesa", "mint", "moon", "moth", "muse", "nest", "node", "opal", "owl",
    "palm", "peak", "pine", "plum", "pond", "reef", "sage", "star", "thorn", "wolf",
)  # fmt: skip

_TIMESTAMP_PARTS = 6
_ID_ALPHABET = string.ascii_lowercase + string.digits


@dataclass(slots=True, frozen=True)
class ParsedAgentId:
    """Components of a human-readable agent id."""

    timestamp: str
    created_at: datetime
    adjective: str
    noun: str
    display_name: str


def generate_agent_id(now: datetime | None = None, rng: random.Random | None = None) -> str:
    """Mint ``YYYY-MM-DD-HH-MM-SS-adjective-noun`` in local time."""

    moment = now or datetime.now()
    chooser = rng or random
    adjective = chooser.choice(ADJECTIVES)
    noun = chooser.choice(NOUNS)
    return f"{moment.strftime('%Y-%m-%d-%H-%M-%S')}-{adjective}-{noun}"


def parse_agent_id(agent_id: str) -> ParsedAgentId | None:
    """Split a human-readable id into its parts; ``None`` when malformed."""

    parts = agent_id.split("-")
    if len(parts) != _TIMESTAMP_PARTS + 2:
        return None
    stamp_parts, (adjective, noun) = parts[:_TIMESTAMP_PARTS], parts[_TIMESTAMP_PARTS:]
    if not adjective.isalpha() or not noun.isalpha():
        return None
    timestamp = "-".join(stamp_parts)
    try:
        created_at = datetime.strptime(timestamp, "%Y-%m-%d-%H-%M-%S")
    except ValueError:
        return None
    return ParsedAgentId(
        timestamp=timestamp,
        created_at=created_at,
        adjective=adjective,
        noun=noun,
        display_name=f"{adjective}-{noun}",
    )


def display_name(agent_id: str) -> str:
    parsed = parse_agent_id(agent_id)
    return parsed.display_name if parsed is not None else agent_id


def mint_worker_id(now_ms: int | None = None, rng: random.Random | None = None) -> str:
    """Mint ``worker-<epoch_ms>-<random4>``."""

    chooser = rng or random
    stamp = now_ms if now_ms is not None else int(time.time() * 1000)
    suffix = "".join(chooser.choice(_ID_ALPHABET) for _ in range(4))
    return f"worker-{stamp}-{suffix}"


def mint_message_id(now_ms: int, rng: random.Random | None = None) -> str:
    chooser = rng or random
    suffix = "".join(chooser.choice(_ID_ALPHABET) for _ in range(6))
    return f"msg-{now_ms}-{suffix}"
