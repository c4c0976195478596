"""Pydantic models shared by the store, the API and the hook producer."""
from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class EventKind(str, Enum):
    SESSION_START = "SessionStart"
    USER_PROMPT_SUBMIT = "UserPromptSubmit"
    PRE_TOOL_USE = "PreToolUse"
    POST_TOOL_USE = "PostToolUse"
    POST_TOOL_USE_FAILURE = "PostToolUseFailure"
    SUBAGENT_START = "SubagentStart"
    SUBAGENT_STOP = "SubagentStop"
    NOTIFICATION = "Notification"
    STOP = "Stop"
    SESSION_END = "SessionEnd"
    UNKNOWN = "Unknown"

    @classmethod
    def parse(cls, raw: str | None) -> EventKind:
        """Match hook event names ignoring case and separators (``session_end`` == ``SessionEnd``)."""
        token = _kind_token(raw)
        if not token:
            return cls.UNKNOWN
        return _KIND_BY_TOKEN.get(token, cls.UNKNOWN)


def _kind_token(raw: str | None) -> str:
    return "".join(ch for ch in str(raw or "").lower() if ch.isalnum())


_KIND_BY_TOKEN = {_kind_token(kind.value): kind for kind in EventKind if kind is not EventKind.UNKNOWN}


class SessionStatus(str, Enum):
    ACTIVE = "active"
    WAITING_FOR_INPUT = "waiting_input"
    NEEDS_PERMISSION = "needs_permission"
    IDLE = "idle"
    COMPLETED = "completed"


class AgentStatus(str, Enum):
    ACTIVE = "active"
    COMPLETED = "completed"


# ── Ingested records ────────────────────────────────────────────────

class EventRecord(BaseModel):
    """One lifecycle notification from a hook producer.

    Optional text fields default to ``""`` so that presence never has to be
    checked separately from emptiness.
    """

    model_config = ConfigDict(frozen=True)

    session_id: str
    event_kind: EventKind
    timestamp: datetime
    raw_kind: str = ""
    working_directory: str = ""
    transcript_reference: str = ""
    user_prompt_text: str = ""
    notification_kind: str = ""
    notification_message: str = ""
    agent_id: str = ""
    agent_display_name: str = ""
    agent_type: str = ""
    is_interrupted: bool = False
    terminal_identifier: str = ""

    @property
    def agent_key(self) -> str:
        return self.agent_id or self.agent_display_name


# ── Snapshot views ──────────────────────────────────────────────────

class AgentView(BaseModel):
    model_config = ConfigDict(frozen=True)

    agent_key: str
    agent_id: str = ""
    display_name: str = ""
    agent_type: str = ""
    status: AgentStatus
    created_at: datetime
    last_updated_at: datetime
    stopped_at: Optional[datetime] = None


class SessionView(BaseModel):
    model_config = ConfigDict(frozen=True)

    session_id: str
    status: SessionStatus
    project_name: str = "unknown"
    working_directory: str = ""
    transcript_reference: str = ""
    user_prompt_text: str = ""
    terminal_identifier: str = ""
    created_at: datetime
    last_updated_at: datetime
    agents: list[AgentView] = Field(default_factory=list)


# ── API payloads ────────────────────────────────────────────────────

class HealthResponse(BaseModel):
    status: str = "ok"
    version: str


class IngestResponse(BaseModel):
    accepted: bool


class ClearResponse(BaseModel):
    removed: int
