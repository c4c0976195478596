"""Claude Monitor configuration."""
import os
from pathlib import Path


def _env_bool(name: str, default: bool = False) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        return default


def _env_float(name: str, default: float) -> float:
    value = os.getenv(name)
    if value is None:
        return default
    try:
        return float(value)
    except ValueError:
        return default


def _env_list(name: str, default: tuple[str, ...]) -> tuple[str, ...]:
    value = os.getenv(name)
    if value is None:
        return default
    items = tuple(item.strip().lower() for item in value.split(",") if item.strip())
    return items or default


# Data paths
DATA_DIR = Path(os.getenv("CLAUDE_MONITOR_DATA_DIR", str(Path.home() / ".claude-monitor")))
DB_PATH = Path(os.getenv("CLAUDE_MONITOR_DB_PATH", str(DATA_DIR / "sessions.db")))
SESSIONS_DIR = Path(
    os.getenv("CLAUDE_MONITOR_SESSIONS_DIR", str(Path.home() / ".claude" / "monitor" / "sessions"))
)

# Staleness thresholds (seconds)
SESSION_STALE_SECONDS = _env_float("CLAUDE_MONITOR_SESSION_STALE_SECONDS", 30.0)
AGENT_STALE_SECONDS = _env_float("CLAUDE_MONITOR_AGENT_STALE_SECONDS", 120.0)
AGENT_REMOVE_SECONDS = _env_float("CLAUDE_MONITOR_AGENT_REMOVE_SECONDS", 15.0)

# Background ticks (seconds)
SWEEP_INTERVAL_SECONDS = _env_float("CLAUDE_MONITOR_SWEEP_INTERVAL_SECONDS", 10.0)
RESCAN_INTERVAL_SECONDS = _env_float("CLAUDE_MONITOR_RESCAN_INTERVAL_SECONDS", 2.0)

# Notification messages containing any of these are treated as permission requests
DEFAULT_PERMISSION_KEYWORDS = (
    "permission",
    "approve",
    "allow",
    "confirm",
    "unsafe",
    "dangerous",
    "trust",
    "grant",
)
PERMISSION_KEYWORDS = _env_list("CLAUDE_MONITOR_PERMISSION_KEYWORDS", DEFAULT_PERMISSION_KEYWORDS)

# Event journal
JOURNAL_ENABLED = _env_bool("CLAUDE_MONITOR_JOURNAL_ENABLED", True)
JOURNAL_RETENTION_HOURS = _env_int("CLAUDE_MONITOR_JOURNAL_RETENTION_HOURS", 24)
JOURNAL_PRUNE_INTERVAL_SECONDS = _env_float("CLAUDE_MONITOR_JOURNAL_PRUNE_INTERVAL_SECONDS", 3600.0)

# Spool directory watching
FILE_WATCH_ENABLED = _env_bool("CLAUDE_MONITOR_FILE_WATCH_ENABLED", True)

# Hook producer
TRANSPORT = os.getenv("CLAUDE_MONITOR_TRANSPORT", "auto").strip().lower() or "auto"
MONITOR_URL = os.getenv("CLAUDE_MONITOR_URL", "http://127.0.0.1:9147")
HOOK_TIMEOUT_SECONDS = _env_float("CLAUDE_MONITOR_HOOK_TIMEOUT_SECONDS", 2.0)

# Telemetry
OTEL_ENABLED = _env_bool("CLAUDE_MONITOR_OTEL_ENABLED", False)
OTEL_ENDPOINT = os.getenv("CLAUDE_MONITOR_OTEL_ENDPOINT", "http://localhost:4318")
OTEL_SERVICE_NAME = os.getenv("CLAUDE_MONITOR_OTEL_SERVICE_NAME", "claude-monitor")
PROM_PORT = _env_int("CLAUDE_MONITOR_PROM_PORT", 0)

# Server settings
HOST = os.getenv("CLAUDE_MONITOR_HOST", "127.0.0.1")
PORT = _env_int("CLAUDE_MONITOR_PORT", 9147)
VERSION = "0.1.0"
