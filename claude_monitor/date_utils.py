"""Shared timestamp normalization helpers."""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

# Producers stamp events with epoch seconds; anything above this is epoch milliseconds.
_EPOCH_MS_THRESHOLD = 1e11


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def ensure_utc(value: datetime) -> datetime:
    dt = value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def format_datetime_utc(value: datetime) -> str:
    return ensure_utc(value).isoformat().replace("+00:00", "Z")


def _parse_datetime_token(token: str) -> datetime | None:
    cleaned = token.strip()
    if not cleaned:
        return None
    try:
        return datetime.fromisoformat(cleaned.replace("Z", "+00:00"))
    except Exception:
        pass
    for fmt in ("%Y-%m-%d %H:%M:%S", "%Y/%m/%d %H:%M:%S"):
        try:
            return datetime.strptime(cleaned, fmt).replace(tzinfo=timezone.utc)
        except Exception:
            continue
    return None


def _from_epoch(value: float) -> datetime | None:
    if value <= 0:
        return None
    if value > _EPOCH_MS_THRESHOLD:
        value = value / 1000.0
    try:
        return datetime.fromtimestamp(value, timezone.utc)
    except (OverflowError, OSError, ValueError):
        return None


def parse_timestamp(value: Any) -> datetime | None:
    """Convert epoch seconds/millis, ISO strings or datetimes into an aware UTC datetime."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, datetime):
        return ensure_utc(value)
    if isinstance(value, (int, float)):
        try:
            return _from_epoch(float(value))
        except (OverflowError, ValueError):
            return None
    if isinstance(value, str):
        token = value.strip()
        if not token:
            return None
        try:
            return _from_epoch(float(token))
        except (OverflowError, ValueError):
            pass
        parsed = _parse_datetime_token(token)
        return ensure_utc(parsed) if parsed else None
    return None


def coerce_timestamp(value: Any, default: datetime | None = None) -> datetime:
    parsed = parse_timestamp(value)
    if parsed is not None:
        return parsed
    return default if default is not None else utc_now()


def seconds_between(earlier: datetime, later: datetime) -> float:
    return (ensure_utc(later) - ensure_utc(earlier)).total_seconds()
