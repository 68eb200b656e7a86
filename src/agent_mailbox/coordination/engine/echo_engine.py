"""Deterministic local engine for demos and integration tests."""

from __future__ import annotations

import json

from agent_mailbox.coordination.engine.base import BaseEngine, EngineError

REPORT_TOOL = "report_complete"


class EchoEngine(BaseEngine):
    """Echoes the prompt back in a single turn.

    A prompt of the form ``/<tool_name> <json object>`` calls that tool directly
    and replies with its result, so scripted sessions can drive every tool
    without a model. Plain prompts are echoed and, when the agent owns
    ``report_complete``, reported as the task result.
    """

    def _run(self, text: str) -> str:
        self._start_turn()
        stripped = text.strip()
        if stripped.startswith("/"):
            name, _, raw_args = stripped[1:].partition(" ")
            try:
                args = json.loads(raw_args) if raw_args.strip() else {}
            except json.JSONDecodeError as error:
                raise EngineError(f"Invalid arguments for {name}: {error}") from error
            if not isinstance(args, dict):
                raise EngineError(f"Arguments for {name} must be a JSON object.")
            return self.run_tool(name, args).text

        reply = f"Echo: {stripped}"
        if REPORT_TOOL in self.tools:
            self.run_tool(REPORT_TOOL, {"summary": reply})
        return reply
