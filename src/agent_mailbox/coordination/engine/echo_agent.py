"""Local demo CLI agent for CLI engine integration tests."""

from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path

REQUEST_HEADER = "## Request\n"
TOOL_RESULTS_PREFIX = "Tool results:"


def main(argv: list[str] | None = None) -> int:
    """Answer one rendered turn prompt deterministically."""

    parser = argparse.ArgumentParser()
    parser.add_argument("--prompt-file", required=True)
    args = parser.parse_args(argv)

    prompt = Path(args.prompt_file).read_text("utf-8")
    _, _, request = prompt.rpartition(REQUEST_HEADER)
    request = request.strip()

    if request.startswith(TOOL_RESULTS_PREFIX):
        print("Done.")
        return 0
    reply = f"Echo: {request}"
    print(reply)
    if "/report_complete " in prompt:
        print(f"/report_complete {json.dumps({'summary': reply})}")
    return 0


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
