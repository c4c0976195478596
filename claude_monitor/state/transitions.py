"""Session status state machine.

``resolve_status`` maps (event, current status) to the next session status.
Every ``EventKind`` has exactly one resolver in ``_RESOLVERS``; adding a kind
without a resolver fails at import time rather than silently falling through.
"""
from __future__ import annotations

from typing import Callable, Iterable, Optional

from claude_monitor.models import EventKind, EventRecord, SessionStatus

PERMISSION_PROMPT = "permission_prompt"

_Resolver = Callable[[EventRecord, Optional[SessionStatus], bool], Optional[SessionStatus]]


def is_permission_request(notification_kind: str, message: str, keywords: Iterable[str]) -> bool:
    """Classify a Notification as a permission request by type or by keyword (case-insensitive)."""
    if (notification_kind or "").strip() == PERMISSION_PROMPT:
        return True
    lowered = (message or "").lower()
    if not lowered:
        return False
    return any(keyword and keyword.lower() in lowered for keyword in keywords)


def _active(event, current, is_permission):
    return SessionStatus.ACTIVE


def _keep_or_active(event, current, is_permission):
    return current or SessionStatus.ACTIVE


def _tool_failure(event, current, is_permission):
    if event.is_interrupted:
        return SessionStatus.WAITING_FOR_INPUT
    return current or SessionStatus.ACTIVE


def _subagent_start(event, current, is_permission):
    # A session that is already busy or blocked on the user keeps that status.
    if current in (None, SessionStatus.IDLE, SessionStatus.COMPLETED):
        return SessionStatus.ACTIVE
    return current


def _notification(event, current, is_permission):
    if is_permission:
        return SessionStatus.NEEDS_PERMISSION
    return SessionStatus.WAITING_FOR_INPUT


def _stop(event, current, is_permission):
    if current is None or current == SessionStatus.ACTIVE:
        return SessionStatus.IDLE
    return current


def _session_end(event, current, is_permission):
    return None


_RESOLVERS: dict[EventKind, _Resolver] = {
    EventKind.SESSION_START: _active,
    EventKind.USER_PROMPT_SUBMIT: _active,
    EventKind.PRE_TOOL_USE: _active,
    EventKind.POST_TOOL_USE: _active,
    EventKind.POST_TOOL_USE_FAILURE: _tool_failure,
    EventKind.SUBAGENT_START: _subagent_start,
    EventKind.SUBAGENT_STOP: _keep_or_active,
    EventKind.NOTIFICATION: _notification,
    EventKind.STOP: _stop,
    EventKind.SESSION_END: _session_end,
    EventKind.UNKNOWN: _keep_or_active,
}

_missing = set(EventKind) - set(_RESOLVERS)
if _missing:
    raise RuntimeError(f"No status resolver for event kinds: {sorted(kind.value for kind in _missing)}")


def resolve_status(
    event: EventRecord,
    current: SessionStatus | None,
    *,
    is_permission: bool = False,
) -> SessionStatus | None:
    """Return the next session status, or None when the session must be deleted.

    ``current`` is None for a session that does not exist yet.
    """
    return _RESOLVERS[event.event_kind](event, current, is_permission)
