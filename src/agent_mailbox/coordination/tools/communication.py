"""Inter-agent messaging tools: master <-> worker over mailbox files."""

from __future__ import annotations

import logging

from agent_mailbox.coordination.models import AgentStatus, MessageKind
from agent_mailbox.coordination.signals import SignalPoller, advance_cursors, poll_until
from agent_mailbox.coordination.tools.base import Tool, ToolContext, ToolResult, object_schema

logger = logging.getLogger(__name__)


def _timeout_schema(default: float) -> dict[str, object]:
    return {"type": "number", "description": f"Max seconds to wait (default: {default:g})"}


def create_send_to_master(ctx: ToolContext) -> Tool:
    agent_id = ctx.require_agent_id()

    def send_to_master(message: str) -> ToolResult:
        sent = ctx.mailbox.write_outbox(agent_id, message)
        return ToolResult(
            text=f'Message sent to master: "{message}"',
            details={"sent": sent.to_record()},
        )

    return Tool(
        name="send_to_master",
        label="Send to Master",
        description=(
            "Send a message to the master agent. Use this to report progress, "
            "ask questions, or request input."
        ),
        parameters=object_schema(
            {"message": {"type": "string", "description": "Message to send to the master agent"}},
            ["message"],
        ),
        handler=send_to_master,
    )


def create_send_to_worker(ctx: ToolContext) -> Tool:
    def send_to_worker(agent_id: str, message: str) -> ToolResult:
        sent = ctx.mailbox.send_message(agent_id, message, sender=ctx.agent_id)
        return ToolResult(
            text=f'Sent message to {agent_id}: "{message}"',
            details={"sent": sent.to_record()},
        )

    return Tool(
        name="send_to_worker",
        label="Send to Worker",
        description="Send a message to a worker agent.",
        parameters=object_schema(
            {
                "agent_id": {"type": "string", "description": "The worker agent ID"},
                "message": {"type": "string", "description": "Message content to send"},
            },
            ["agent_id", "message"],
        ),
        handler=send_to_worker,
    )


def create_wait_for_reply(ctx: ToolContext) -> Tool:
    agent_id = ctx.require_agent_id()
    inbox_cursor = 0

    def wait_for_reply(timeout_seconds: float | None = None) -> ToolResult:
        nonlocal inbox_cursor
        timeout = ctx.reply_timeout_seconds if timeout_seconds is None else timeout_seconds

        def probe():
            read = ctx.mailbox.read_inbox(agent_id, inbox_cursor)
            return read if read.messages else None

        read = poll_until(
            probe,
            interval_seconds=ctx.poll_interval_seconds,
            timeout_seconds=timeout,
            cancel_token=ctx.cancel_token,
            clock=ctx.clock,
            sleep=ctx.sleep,
        )
        if read is None:
            return ToolResult(
                text="Timeout: no reply received from master.",
                details={"timeout": True},
            )
        inbox_cursor = read.total_lines
        reply = read.messages[-1]
        return ToolResult(
            text=f'Reply from master: "{reply.text()}"',
            details={
                "messages": [message.to_record() for message in read.messages],
                "reply": reply.to_record(),
            },
        )

    return Tool(
        name="wait_for_reply",
        label="Wait for Reply",
        description=(
            "Wait for a reply from the master agent. Blocks until a new message arrives "
            "in your inbox. Use this after sending a message that requires a response."
        ),
        parameters=object_schema(
            {"timeout_seconds": _timeout_schema(ctx.reply_timeout_seconds)},
            [],
        ),
        handler=wait_for_reply,
    )


def create_wait_for_signals(ctx: ToolContext) -> Tool:
    poller = SignalPoller(
        mailbox=ctx.mailbox,
        registry=ctx.registry,
        clock=ctx.clock,
        sleep=ctx.sleep,
    )
    cursor_store = ctx.cursor_store

    def wait_for_signals(timeout_seconds: float | None = None) -> ToolResult:
        if timeout_seconds is None:
            timeout_seconds = ctx.wait_timeout_seconds
        signals = poller.wait_for_signals(
            ctx.cursors,
            poll_interval_seconds=ctx.poll_interval_seconds,
            timeout_seconds=timeout_seconds,
            cancel_token=ctx.cancel_token,
        )
        advance_cursors(ctx.cursors, signals)
        ctx.cursors.update(cursor_store.save(ctx.cursors))
        return ToolResult(
            text="\n".join(signal.describe() for signal in signals),
            details={"signals": [signal.to_record() for signal in signals]},
        )

    return Tool(
        name="wait_for_signals",
        label="Wait for Signals",
        description=(
            "Block and wait for signals from worker agents. Returns when a worker sends "
            "a message, a worker exits, or the wait times out. Use this when you have "
            "nothing to do and are waiting for workers."
        ),
        parameters=object_schema(
            {"timeout_seconds": _timeout_schema(ctx.wait_timeout_seconds)},
            [],
        ),
        handler=wait_for_signals,
    )


def create_report_complete(ctx: ToolContext) -> Tool:
    agent_id = ctx.require_agent_id()

    def report_complete(summary: str, success: bool = True) -> ToolResult:
        ctx.mailbox.write_outbox(agent_id, f"[COMPLETE] {summary}", kind=MessageKind.COMPLETION)
        ctx.mailbox.update_status(
            agent_id,
            {
                "status": AgentStatus.COMPLETE if success else AgentStatus.ERROR,
                "result": summary,
                "exitCode": 0 if success else 1,
            },
        )
        logger.info("Agent %s reported %s", agent_id, "completion" if success else "failure")
        return ToolResult(
            text=f"Task {'completed' if success else 'failed'}: {summary}",
            details={"success": success, "summary": summary},
        )

    return Tool(
        name="report_complete",
        label="Report Complete",
        description=(
            "Report that your task is complete. Include a summary of what you "
            "accomplished. This will signal the master and end your session."
        ),
        parameters=object_schema(
            {
                "summary": {"type": "string", "description": "Summary of what was accomplished"},
                "success": {
                    "type": "boolean",
                    "description": "Whether the task was successful (default: true)",
                    "default": True,
                },
            },
            ["summary"],
        ),
        handler=report_complete,
    )
