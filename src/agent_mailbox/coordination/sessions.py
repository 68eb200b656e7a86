"""Long-lived master agent sessions keyed by session id."""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path
from types import TracebackType
from typing import Any

from agent_mailbox.config import Settings
from agent_mailbox.coordination.agent_store import AgentStore
from agent_mailbox.coordination.binding import AgentBinding, bind_master
from agent_mailbox.coordination.engine import BaseEngine, EngineConfig, create_engine
from agent_mailbox.coordination.ids import generate_agent_id
from agent_mailbox.coordination.models import AgentStatus

logger = logging.getLogger(__name__)


class SessionConfigError(ValueError):
    """Session configuration cannot produce a working engine."""


@dataclass(slots=True)
class Session:
    """One in-memory master binding."""

    session_id: str
    agent_id: str
    binding: AgentBinding
    mailbox_base: Path
    fingerprint: str
    created_at: float
    last_access: float

    def prompt(self, text: str) -> str:
        return self.binding.run_turn(text)


@dataclass(slots=True, frozen=True)
class SessionSummary:
    session_id: str
    agent_id: str
    created_at: float
    last_access: float
    age_seconds: int


class SessionManager:
    """Session map with idle eviction.

    Sessions live only in memory; the agent directories they bind persist, so
    a later session (or a restarted process) can rebind the same agent.
    """

    def __init__(  # noqa: PLR0913
        self,
        *,
        agent_store: AgentStore,
        settings: Settings | None = None,
        ttl_seconds: float | None = None,
        sweep_interval_seconds: float | None = None,
        engine_factory: Callable[[EngineConfig], BaseEngine] = create_engine,
        binder: Callable[..., AgentBinding] = bind_master,
        clock: Callable[[], float] = time.time,
        workspace: str | None = None,
    ) -> None:
        self.agent_store = agent_store
        self.workspace = workspace
        self.settings = settings or Settings()
        self.ttl_seconds = (
            ttl_seconds if ttl_seconds is not None else self.settings.sessions.ttl_seconds
        )
        self.sweep_interval_seconds = (
            sweep_interval_seconds
            if sweep_interval_seconds is not None
            else self.settings.sessions.sweep_interval_seconds
        )
        self._engine_factory = engine_factory
        self._binder = binder
        self._clock = clock
        self._sessions: dict[str, Session] = {}
        self._bound_agents: dict[str, str] = {}
        self._lock = threading.RLock()
        self._sweep_stop = threading.Event()
        self._sweep_thread: threading.Thread | None = None

    def get_or_create_session(
        self,
        session_id: str,
        config: EngineConfig,
        agent_id: str | None = None,
    ) -> Session:
        """Return the live session, recreating it when the engine config changed."""

        fingerprint = config.fingerprint()
        with self._lock:
            session = self._sessions.get(session_id)
            if session is not None:
                same_agent = agent_id is None or agent_id == session.agent_id
                if session.fingerprint == fingerprint and same_agent:
                    session.last_access = self._clock()
                    return session
                logger.info("Session %s configuration changed; recreating", session_id)
                self.destroy_session(session_id)
            return self._create_session(session_id, config, agent_id, fingerprint)

    def _create_session(
        self,
        session_id: str,
        config: EngineConfig,
        agent_id: str | None,
        fingerprint: str,
    ) -> Session:
        if config.requires_credential and not config.api_key:
            raise SessionConfigError(
                f"Provider {config.provider!r} needs an API key "
                "(set AGENT_MAILBOX_LLM_API_KEY).",
            )

        resolved = agent_id or self._bound_agents.get(session_id) or generate_agent_id()
        self.agent_store.ensure_agent(resolved, provider=config.provider, model=config.model)
        binding = self._binder(
            agent_store=self.agent_store,
            agent_id=resolved,
            config=config,
            settings=self.settings,
            workspace=self.workspace,
            engine_factory=self._engine_factory,
        )
        now = self._clock()
        session = Session(
            session_id=session_id,
            agent_id=resolved,
            binding=binding,
            mailbox_base=self.agent_store.workers_dir(resolved),
            fingerprint=fingerprint,
            created_at=now,
            last_access=now,
        )
        self._sessions[session_id] = session
        self._bound_agents[session_id] = resolved
        self.agent_store.update_agent_status(
            resolved,
            {"status": AgentStatus.RUNNING.value},
            reopen=True,
        )
        logger.info("Session %s bound to agent %s", session_id, resolved)
        return session

    def get_session(self, session_id: str) -> Session | None:
        with self._lock:
            return self._sessions.get(session_id)

    def destroy_session(self, session_id: str) -> bool:
        """Drop the in-memory session; the agent's files are kept."""

        with self._lock:
            session = self._sessions.pop(session_id, None)
        if session is None:
            return False
        session.binding.close()
        try:
            self.agent_store.update_agent_status(
                session.agent_id,
                {"status": AgentStatus.STOPPED.value},
            )
        except OSError as error:
            logger.warning("Could not mark agent %s stopped: %s", session.agent_id, error)
        logger.info("Session %s destroyed", session_id)
        return True

    def destroy_all(self) -> None:
        with self._lock:
            session_ids = list(self._sessions)
        for session_id in session_ids:
            self.destroy_session(session_id)

    def cleanup_sessions(self) -> list[str]:
        """Destroy sessions idle for longer than the TTL; returns evicted ids."""

        now = self._clock()
        with self._lock:
            expired = [
                session_id
                for session_id, session in self._sessions.items()
                if now - session.last_access > self.ttl_seconds
            ]
        for session_id in expired:
            logger.info("Session %s idle past %.0fs; evicting", session_id, self.ttl_seconds)
            self.destroy_session(session_id)
        return expired

    def list_sessions(self) -> list[SessionSummary]:
        now = self._clock()
        with self._lock:
            sessions = list(self._sessions.values())
        return [
            SessionSummary(
                session_id=session.session_id,
                agent_id=session.agent_id,
                created_at=session.created_at,
                last_access=session.last_access,
                age_seconds=round(now - session.created_at),
            )
            for session in sessions
        ]

    def start(self) -> None:
        """Run the idle sweep on a daemon thread."""

        if self._sweep_thread is not None:
            return
        self._sweep_stop.clear()
        self._sweep_thread = threading.Thread(
            target=self._sweep_loop,
            daemon=True,
            name="session-sweep",
        )
        self._sweep_thread.start()
        logger.info("Session sweep started (every %.0fs)", self.sweep_interval_seconds)

    def stop(self) -> None:
        if self._sweep_thread is None:
            return
        self._sweep_stop.set()
        self._sweep_thread.join(timeout=15)
        self._sweep_thread = None
        logger.info("Session sweep stopped")

    def _sweep_loop(self) -> None:
        while not self._sweep_stop.wait(self.sweep_interval_seconds):
            try:
                self.cleanup_sessions()
            except OSError:
                logger.exception("Session sweep failed")

    def __enter__(self) -> SessionManager:
        self.start()
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        traceback: TracebackType | None,
    ) -> None:
        self.stop()
        self.destroy_all()


def engine_config_from_settings(settings: Settings, **overrides: Any) -> EngineConfig:
    config = EngineConfig.from_settings(
        settings.engine,
        graceful_shutdown_seconds=settings.worker.graceful_shutdown_seconds,
    )
    for name, value in overrides.items():
        if value is not None:
            setattr(config, name, value)
    return config
