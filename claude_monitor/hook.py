"""Claude CLI hook producer.

Invoked once per hook callback with the hook payload on stdin. Adds a
timestamp and the controlling terminal, then delivers the record to the
monitor over HTTP, falling back to the spool directory. Never fails the
calling CLI.
"""
from __future__ import annotations

import json
import logging
import os
import subprocess
import sys
import time
from pathlib import Path
from typing import Any, TextIO

import requests

from claude_monitor import config
from claude_monitor.parsers.hook_events import is_safe_session_id
from claude_monitor.services.spool import write_spool_record

logger = logging.getLogger("claude_monitor.hook")

TRANSPORTS = ("http", "file", "auto")


def _run(args: list[str]) -> str:
    try:
        result = subprocess.run(args, capture_output=True, text=True, check=False, timeout=1.0)
    except (OSError, subprocess.SubprocessError):
        return ""
    return result.stdout.strip()


def _parent_tty() -> str:
    tty = _run(["ps", "-p", str(os.getppid()), "-o", "tty="])
    if tty in ("", "?", "??"):
        return ""
    return tty


def terminal_identifier() -> str:
    """The terminal hosting the CLI: the tmux client tty inside tmux, else the parent's tty."""
    if os.environ.get("TMUX"):
        client_tty = _run(["tmux", "display-message", "-p", "#{client_tty}"])
        if client_tty.startswith("/dev/"):
            client_tty = client_tty[len("/dev/"):]
        if client_tty:
            return client_tty
    return _parent_tty()


def build_record(data: Any, *, fallback_kind: str = "", terminal: str = "") -> dict[str, Any] | None:
    """Normalize a raw hook payload into an event record, or None if it must be dropped."""
    if not isinstance(data, dict):
        return None

    session_id = data.get("session_id", "")
    if not is_safe_session_id(session_id):
        return None

    kind = data.get("hook_event_name") or fallback_kind
    if not isinstance(kind, str) or not kind:
        return None

    record = dict(data)
    record["hook_event_name"] = kind
    record.setdefault("timestamp", time.time())
    if terminal and not record.get("tty"):
        record["tty"] = terminal
    return record


def post_record(record: dict[str, Any], url: str, timeout: float) -> None:
    response = requests.post(f"{url.rstrip('/')}/api/events", json=record, timeout=timeout)
    response.raise_for_status()


def deliver(
    record: dict[str, Any],
    *,
    transport: str | None = None,
    url: str | None = None,
    timeout: float | None = None,
    spool_dir: Path | None = None,
) -> str:
    """Send one record. Returns the transport that took it: "http", "file" or "dropped"."""
    mode = (transport or config.TRANSPORT).lower()
    if mode not in TRANSPORTS:
        mode = "auto"

    if mode in ("http", "auto"):
        try:
            post_record(record, url or config.MONITOR_URL, config.HOOK_TIMEOUT_SECONDS if timeout is None else timeout)
            return "http"
        except requests.RequestException as e:
            logger.debug(f"Monitor not reachable over HTTP: {e}")
            if mode == "http":
                return "dropped"

    try:
        write_spool_record(Path(spool_dir or config.SESSIONS_DIR), record["session_id"], record)
        return "file"
    except OSError as e:
        logger.debug(f"Could not write spool record: {e}")
        return "dropped"


def run_hook(stdin: TextIO | None = None, transport: str | None = None) -> int:
    """Read one hook payload from stdin and deliver it. Always returns 0."""
    stream = stdin or sys.stdin
    try:
        data = json.loads(stream.read())
    except (ValueError, OSError):
        return 0

    record = build_record(
        data,
        fallback_kind=os.environ.get("CLAUDE_HOOK_TYPE", ""),
        terminal=terminal_identifier(),
    )
    if record is None:
        return 0

    deliver(record, transport=transport)
    return 0
