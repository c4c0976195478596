"""In-memory session/agent aggregation.

The store owns the session map behind a single lock. Event application and
staleness sweeps are both mutations and are serialized; snapshots copy the
state into immutable views while holding the lock briefly.
"""
from __future__ import annotations

import asyncio
import itertools
import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import PurePath
from typing import Iterable, Optional

from claude_monitor import config
from claude_monitor.date_utils import seconds_between, utc_now
from claude_monitor.models import (
    AgentStatus,
    AgentView,
    EventKind,
    EventRecord,
    SessionStatus,
    SessionView,
)
from claude_monitor.parsers.hook_events import is_safe_session_id
from claude_monitor.state.notifier import ChangeNotifier
from claude_monitor.state.transitions import is_permission_request, resolve_status

logger = logging.getLogger("claude_monitor.store")

_STICKY_FIELDS = (
    "working_directory",
    "transcript_reference",
    "user_prompt_text",
    "terminal_identifier",
)


@dataclass
class _AgentState:
    agent_key: str
    agent_id: str
    display_name: str
    agent_type: str
    status: AgentStatus
    created_at: datetime
    last_updated_at: datetime
    order: int
    stopped_at: Optional[datetime] = None

    def to_view(self) -> AgentView:
        return AgentView(
            agent_key=self.agent_key,
            agent_id=self.agent_id,
            display_name=self.display_name,
            agent_type=self.agent_type,
            status=self.status,
            created_at=self.created_at,
            last_updated_at=self.last_updated_at,
            stopped_at=self.stopped_at,
        )


@dataclass
class _SessionState:
    session_id: str
    status: SessionStatus
    created_at: datetime
    last_updated_at: datetime
    order: int
    working_directory: str = ""
    transcript_reference: str = ""
    user_prompt_text: str = ""
    terminal_identifier: str = ""
    agents: dict[str, _AgentState] = field(default_factory=dict)

    def fingerprint(self) -> tuple:
        """Observable state used to decide whether an apply changed anything."""
        agents = tuple(
            (key, agent.agent_type, agent.display_name, agent.status, agent.created_at)
            for key, agent in sorted(self.agents.items())
        )
        sticky = tuple(getattr(self, name) for name in _STICKY_FIELDS)
        return (self.status, sticky, agents)

    def to_view(self) -> SessionView:
        agents = sorted(self.agents.values(), key=lambda agent: (agent.created_at, agent.order))
        return SessionView(
            session_id=self.session_id,
            status=self.status,
            project_name=project_name_for(self.working_directory),
            working_directory=self.working_directory,
            transcript_reference=self.transcript_reference,
            user_prompt_text=self.user_prompt_text,
            terminal_identifier=self.terminal_identifier,
            created_at=self.created_at,
            last_updated_at=self.last_updated_at,
            agents=[agent.to_view() for agent in agents],
        )


@dataclass(frozen=True)
class SweepResult:
    idled_sessions: int = 0
    completed_agents: int = 0
    removed_agents: int = 0

    @property
    def changed(self) -> bool:
        return bool(self.idled_sessions or self.completed_agents or self.removed_agents)


def project_name_for(working_directory: str) -> str:
    if not working_directory:
        return "unknown"
    return PurePath(working_directory.rstrip("/\\") or working_directory).name or working_directory


class SessionStore:
    """Aggregates lifecycle events into per-session display status."""

    def __init__(
        self,
        *,
        notifier: ChangeNotifier | None = None,
        permission_keywords: Iterable[str] | None = None,
        session_stale_seconds: float | None = None,
        agent_stale_seconds: float | None = None,
        agent_remove_seconds: float | None = None,
    ):
        self.notifier = notifier or ChangeNotifier()
        keywords = config.PERMISSION_KEYWORDS if permission_keywords is None else permission_keywords
        self.permission_keywords = tuple(keyword.lower() for keyword in keywords if keyword)
        self.session_stale_seconds = float(
            config.SESSION_STALE_SECONDS if session_stale_seconds is None else session_stale_seconds
        )
        self.agent_stale_seconds = float(
            config.AGENT_STALE_SECONDS if agent_stale_seconds is None else agent_stale_seconds
        )
        self.agent_remove_seconds = float(
            config.AGENT_REMOVE_SECONDS if agent_remove_seconds is None else agent_remove_seconds
        )
        self._lock = threading.RLock()
        self._sessions: dict[str, _SessionState] = {}
        self._order = itertools.count()

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)

    @staticmethod
    def accepts(event: EventRecord) -> bool:
        """True when the event carries a session id that is safe to key the store by."""
        return is_safe_session_id(event.session_id)

    # ── Mutations ───────────────────────────────────────────────────

    def apply(self, event: EventRecord) -> None:
        """Fold one event into the store.

        Events with an empty or unsafe session id are dropped without error.
        Publishes at most one change signal per call.
        """
        if not self.accepts(event):
            logger.debug("Dropping event with unusable session id %r", event.session_id)
            return

        with self._lock:
            changed = self._apply_locked(event)

        if changed:
            self.notifier.publish()

    def _apply_locked(self, event: EventRecord) -> bool:
        session_id = event.session_id
        session = self._sessions.get(session_id)

        if event.event_kind == EventKind.SESSION_END:
            if session is None:
                return False
            del self._sessions[session_id]
            logger.info("Session %s ended (%d agents dropped)", session_id, len(session.agents))
            return True

        created = session is None
        if session is None:
            session = _SessionState(
                session_id=session_id,
                status=SessionStatus.ACTIVE,
                created_at=event.timestamp,
                last_updated_at=event.timestamp,
                order=next(self._order),
            )
            before = None
        else:
            before = session.fingerprint()

        self._merge_sticky_fields(session, event)

        is_permission = event.event_kind == EventKind.NOTIFICATION and is_permission_request(
            event.notification_kind,
            event.notification_message,
            self.permission_keywords,
        )
        next_status = resolve_status(
            event,
            None if created else session.status,
            is_permission=is_permission,
        )
        if next_status is not None:
            session.status = next_status
        if event.timestamp > session.last_updated_at:
            session.last_updated_at = event.timestamp

        self._apply_agent_event(session, event)

        if created:
            self._sessions[session_id] = session
            logger.info("Tracking new session %s (%s)", session_id, session.status.value)
            return True
        return session.fingerprint() != before

    @staticmethod
    def _merge_sticky_fields(session: _SessionState, event: EventRecord) -> None:
        # First non-empty value wins; empty values never clear.
        for name in _STICKY_FIELDS:
            incoming = getattr(event, name)
            if incoming and not getattr(session, name):
                setattr(session, name, incoming)

    def _apply_agent_event(self, session: _SessionState, event: EventRecord) -> None:
        key = event.agent_key
        if not key:
            return

        if event.event_kind == EventKind.SUBAGENT_START:
            session.agents[key] = _AgentState(
                agent_key=key,
                agent_id=event.agent_id or key,
                display_name=event.agent_display_name or event.agent_type or key,
                agent_type=event.agent_type,
                status=AgentStatus.ACTIVE,
                created_at=event.timestamp,
                last_updated_at=event.timestamp,
                order=next(self._order),
            )
        elif event.event_kind == EventKind.SUBAGENT_STOP:
            agent = session.agents.get(key)
            if agent is None or agent.status == AgentStatus.COMPLETED:
                return
            agent.status = AgentStatus.COMPLETED
            agent.stopped_at = event.timestamp
            agent.last_updated_at = event.timestamp

    def sweep(self, now: datetime | None = None) -> SweepResult:
        """Demote stale sessions and agents toward terminal states.

        Active sessions idle after ``session_stale_seconds`` without updates;
        active agents complete ``agent_stale_seconds`` after they started;
        completed agents are removed ``agent_remove_seconds`` after stopping.
        Nothing is ever promoted.
        """
        now = now or utc_now()
        idled = completed = removed = 0

        with self._lock:
            for session in self._sessions.values():
                if (
                    session.status == SessionStatus.ACTIVE
                    and seconds_between(session.last_updated_at, now) > self.session_stale_seconds
                ):
                    session.status = SessionStatus.IDLE
                    idled += 1

                for key, agent in list(session.agents.items()):
                    if agent.status == AgentStatus.ACTIVE:
                        if seconds_between(agent.created_at, now) > self.agent_stale_seconds:
                            agent.status = AgentStatus.COMPLETED
                            agent.stopped_at = now
                            agent.last_updated_at = now
                            completed += 1
                    elif seconds_between(agent.last_updated_at, now) > self.agent_remove_seconds:
                        del session.agents[key]
                        removed += 1

        result = SweepResult(idled_sessions=idled, completed_agents=completed, removed_agents=removed)
        if result.changed:
            logger.debug(
                "Sweep idled %d sessions, completed %d agents, removed %d agents",
                idled, completed, removed,
            )
            self.notifier.publish()
        return result

    def dismiss(self, session_id: str) -> bool:
        """Remove a session on operator request. Idempotent; returns True if it existed."""
        with self._lock:
            removed = self._sessions.pop(session_id, None)
        if removed is None:
            return False
        logger.info("Session %s dismissed", session_id)
        self.notifier.publish()
        return True

    delete = dismiss

    def clear_all(self) -> int:
        """Drop every session and agent. Returns the number of sessions removed."""
        with self._lock:
            count = len(self._sessions)
            self._sessions.clear()
        if count:
            logger.info("Cleared %d sessions", count)
            self.notifier.publish()
        return count

    # ── Reads ───────────────────────────────────────────────────────

    def snapshot(self) -> list[SessionView]:
        """Point-in-time views, oldest session first."""
        with self._lock:
            sessions = sorted(self._sessions.values(), key=lambda s: (s.created_at, s.order))
            return [session.to_view() for session in sessions]

    def get(self, session_id: str) -> SessionView | None:
        with self._lock:
            session = self._sessions.get(session_id)
            return session.to_view() if session else None

    def changed(self) -> asyncio.Queue[int]:
        """Subscribe to change signals; each item is the store version after a mutation."""
        return self.notifier.subscribe()

    @property
    def version(self) -> int:
        return self.notifier.version
