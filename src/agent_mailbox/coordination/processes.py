"""Child process helpers shared by the supervisor and the CLI engine."""

from __future__ import annotations

import subprocess


def terminate_process(process: subprocess.Popen[str], *, grace_seconds: float = 2) -> None:
    """SIGTERM, then SIGKILL once ``grace_seconds`` pass without an exit."""

    try:
        process.terminate()
    except OSError:
        return
    try:
        process.wait(timeout=grace_seconds)
    except subprocess.TimeoutExpired:
        try:
            process.kill()
        except OSError:
            return
        process.wait(timeout=2)
