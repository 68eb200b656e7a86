"""Signal detection over mailbox state and the cooperative wait primitive."""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable, Iterable, Mapping, MutableMapping
from typing import TypeVar

from agent_mailbox.coordination.mailbox import MailboxStore
from agent_mailbox.coordination.models import (
    TERMINAL_STATUSES,
    Signal,
    SignalType,
    status_of,
)
from agent_mailbox.coordination.registry import AgentRegistry

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_POLL_INTERVAL_SECONDS = 0.5
DEFAULT_TIMEOUT_SECONDS = 60.0


class WaitCancelledError(RuntimeError):
    """Raised when a wait is aborted through its cancellation token."""


class CancellationToken:
    """Thread-safe flag a caller fires to abort a pending wait."""

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def wait(self, seconds: float) -> bool:
        """Sleep up to ``seconds``; returns early with ``True`` once cancelled."""

        return self._event.wait(timeout=max(0.0, seconds))

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise WaitCancelledError("Wait cancelled")


def poll_until(  # noqa: PLR0913
    probe: Callable[[], T | None],
    *,
    interval_seconds: float = DEFAULT_POLL_INTERVAL_SECONDS,
    timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
    cancel_token: CancellationToken | None = None,
    clock: Callable[[], float] = time.monotonic,
    sleep: Callable[[float], None] | None = None,
) -> T | None:
    """Call ``probe`` every ``interval_seconds`` until it returns a value.

    Returns ``None`` once ``timeout_seconds`` have elapsed and raises
    :class:`WaitCancelledError` when ``cancel_token`` fires. The pause between
    probes is clipped to the remaining time, so the deadline is honoured to
    within one probe.
    """

    if interval_seconds <= 0:
        raise ValueError("interval_seconds must be > 0")
    deadline = clock() + max(0.0, timeout_seconds)
    while True:
        if cancel_token is not None:
            cancel_token.raise_if_cancelled()
        result = probe()
        if result is not None:
            return result
        remaining = deadline - clock()
        if remaining <= 0:
            return None
        pause = min(interval_seconds, remaining)
        if sleep is not None:
            sleep(pause)
        elif cancel_token is not None:
            cancel_token.wait(pause)
        else:
            time.sleep(pause)


class SignalPoller:
    """Turns registry + mailbox state into ``agent_exit``/``agent_message`` signals."""

    def __init__(
        self,
        *,
        mailbox: MailboxStore,
        registry: AgentRegistry,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] | None = None,
    ) -> None:
        self.mailbox = mailbox
        self.registry = registry
        self._clock = clock
        self._sleep = sleep

    def poll_signals(self, cursors: Mapping[str, int]) -> list[Signal]:
        """One non-blocking pass over every registered agent.

        Exit signals repeat on every pass while the agent stays registered;
        callers wanting edge-triggered exits unregister handled agents.
        """

        signals: list[Signal] = []
        for agent_id in self.registry.agent_ids():
            status = self.mailbox.get_status(agent_id)
            lifecycle = status_of(status)
            if status is not None and lifecycle in TERMINAL_STATUSES:
                exit_code = status.get("exitCode")
                signals.append(
                    Signal(
                        type=SignalType.AGENT_EXIT,
                        agent_id=agent_id,
                        status=lifecycle,
                        result=status.get("result"),
                        exit_code=exit_code if isinstance(exit_code, int) else None,
                    ),
                )

            read = self.mailbox.read_outbox(agent_id, cursors.get(agent_id, 0))
            if read.messages:
                signals.append(
                    Signal(
                        type=SignalType.AGENT_MESSAGE,
                        agent_id=agent_id,
                        messages=read.messages,
                        new_cursor=read.total_lines,
                    ),
                )
        return signals

    def wait_for_signals(
        self,
        cursors: Mapping[str, int],
        *,
        poll_interval_seconds: float = DEFAULT_POLL_INTERVAL_SECONDS,
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
        cancel_token: CancellationToken | None = None,
    ) -> list[Signal]:
        """Block cooperatively until signals appear, the deadline passes, or cancel.

        A passed deadline yields a single ``timeout`` signal; cancellation raises
        :class:`WaitCancelledError`.
        """

        found = poll_until(
            lambda: self.poll_signals(cursors) or None,
            interval_seconds=poll_interval_seconds,
            timeout_seconds=timeout_seconds,
            cancel_token=cancel_token,
            clock=self._clock,
            sleep=self._sleep,
        )
        if found is None:
            logger.debug("No signals within %.1fs", timeout_seconds)
            return [Signal(type=SignalType.TIMEOUT)]
        return found


def advance_cursors(cursors: MutableMapping[str, int], signals: Iterable[Signal]) -> None:
    """Move cursors past the messages delivered in ``signals``."""

    for signal in signals:
        if signal.type is SignalType.AGENT_MESSAGE and signal.agent_id is not None:
            if signal.new_cursor is not None:
                cursors[signal.agent_id] = max(cursors.get(signal.agent_id, 0), signal.new_cursor)
