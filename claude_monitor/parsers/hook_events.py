"""Decode hook payloads and spool files into EventRecord models."""
from __future__ import annotations

import json
from pathlib import Path
from typing import Any

from claude_monitor.date_utils import coerce_timestamp
from claude_monitor.models import EventKind, EventRecord

_UNSAFE_ID_CHARS = ("/", "\\", "\x00")

# EventRecord field -> payload keys, first non-empty wins.
_TEXT_FIELD_KEYS: dict[str, tuple[str, ...]] = {
    "working_directory": ("working_directory", "cwd"),
    "transcript_reference": ("transcript_reference", "transcript_path"),
    "user_prompt_text": ("user_prompt_text", "user_prompt", "prompt"),
    "notification_kind": ("notification_kind", "notification_type"),
    "notification_message": ("notification_message", "message"),
    "agent_id": ("agent_id",),
    "agent_display_name": ("agent_display_name", "agent_name"),
    "agent_type": ("agent_type", "subagent_type"),
    "terminal_identifier": ("terminal_identifier", "tty"),
}
_KIND_KEYS = ("hook_event_name", "event_kind", "event_type")
_INTERRUPT_KEYS = ("is_interrupted", "is_interrupt")


def is_safe_session_id(session_id: Any) -> bool:
    """True for ids usable as a storage key: non-empty, no path separators, no leading dot."""
    if not isinstance(session_id, str):
        return False
    token = session_id.strip()
    if not token or token != session_id:
        return False
    if token.startswith("."):
        return False
    return not any(ch in token for ch in _UNSAFE_ID_CHARS)


def _as_text(value: Any) -> str:
    if isinstance(value, str):
        return value.strip()
    return ""


def _first_text(payload: dict[str, Any], keys: tuple[str, ...]) -> str:
    for key in keys:
        value = _as_text(payload.get(key))
        if value:
            return value
    return ""


def _as_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return value != 0
    if isinstance(value, str):
        return value.strip().lower() in {"1", "true", "yes", "on"}
    return False


def _load_payload(raw: Any) -> dict[str, Any] | None:
    if isinstance(raw, dict):
        return raw
    if isinstance(raw, (bytes, bytearray)):
        try:
            raw = raw.decode("utf-8")
        except UnicodeDecodeError:
            return None
    if not isinstance(raw, str) or not raw.strip():
        return None
    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError:
        return None
    return parsed if isinstance(parsed, dict) else None


def decode_event(raw: Any) -> EventRecord | None:
    """Build an EventRecord from a hook payload, or None when it is undecodable.

    Only ``session_id`` and an event kind are required. Every other field is
    optional and falls back to an empty value instead of failing the decode.
    Unrecognized kinds decode to ``EventKind.UNKNOWN`` with the raw name kept.
    """
    payload = _load_payload(raw)
    if payload is None:
        return None

    session_id = payload.get("session_id")
    if not isinstance(session_id, str) or not session_id:
        return None

    raw_kind = _first_text(payload, _KIND_KEYS)
    if not raw_kind:
        return None

    fields = {name: _first_text(payload, keys) for name, keys in _TEXT_FIELD_KEYS.items()}
    is_interrupted = any(_as_bool(payload.get(key)) for key in _INTERRUPT_KEYS)

    return EventRecord(
        session_id=session_id,
        event_kind=EventKind.parse(raw_kind),
        raw_kind=raw_kind,
        timestamp=coerce_timestamp(payload.get("timestamp")),
        is_interrupted=is_interrupted,
        **fields,
    )


def encode_event(event: EventRecord) -> str:
    """Serialize an EventRecord into the JSON shape decode_event reads back."""
    payload = event.model_dump(mode="json")
    payload["event_kind"] = event.raw_kind or event.event_kind.value
    payload.pop("raw_kind", None)
    return json.dumps(payload)


def parse_event_file(path: Path) -> EventRecord | None:
    """Decode a single spool file. Unreadable files decode to None."""
    try:
        content = path.read_bytes()
    except OSError:
        return None
    return decode_event(content)
