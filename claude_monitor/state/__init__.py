"""Session/agent state aggregation."""

from claude_monitor.state.notifier import ChangeNotifier
from claude_monitor.state.store import SessionStore, SweepResult
from claude_monitor.state.sweeper import StalenessSweeper
from claude_monitor.state.transitions import is_permission_request, resolve_status

__all__ = [
    "ChangeNotifier",
    "SessionStore",
    "StalenessSweeper",
    "SweepResult",
    "is_permission_request",
    "resolve_status",
]
