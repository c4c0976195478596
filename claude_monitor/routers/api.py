"""API routers for event ingestion, session snapshots and the live stream."""
from __future__ import annotations

import asyncio
import logging

from fastapi import APIRouter, HTTPException, Request, WebSocket

from claude_monitor import config
from claude_monitor.models import (
    ClearResponse,
    HealthResponse,
    IngestResponse,
    SessionView,
)

logger = logging.getLogger("claude_monitor.api")

health_router = APIRouter(tags=["health"])
events_router = APIRouter(prefix="/api/events", tags=["events"])
sessions_router = APIRouter(prefix="/api/sessions", tags=["sessions"])
stream_router = APIRouter(tags=["stream"])


def _get_store(request: Request):
    store = getattr(request.app.state, "session_store", None)
    if store is None:
        raise HTTPException(status_code=503, detail="Session store not initialized")
    return store


def _get_ingestor(request: Request):
    ingestor = getattr(request.app.state, "ingestor", None)
    if ingestor is None:
        raise HTTPException(status_code=503, detail="Event ingestion not initialized")
    return ingestor


def _snapshot_payload(store) -> list[dict]:
    return [session.model_dump(mode="json") for session in store.snapshot()]


# ── Health ──────────────────────────────────────────────────────────

@health_router.get("/health", response_model=HealthResponse)
async def health():
    return HealthResponse(status="ok", version=config.VERSION)


# ── Events ──────────────────────────────────────────────────────────

@events_router.post("", response_model=IngestResponse)
async def post_event(request: Request):
    """Ingest one hook record.

    Malformed records answer ``accepted: false`` with a 200 so best-effort
    producers never retry bad data.
    """
    ingestor = _get_ingestor(request)
    body = await request.body()
    accepted = await ingestor.ingest_raw(body, source="api")
    return IngestResponse(accepted=accepted)


# ── Sessions ────────────────────────────────────────────────────────

@sessions_router.get("", response_model=list[SessionView])
async def list_sessions(request: Request):
    """All tracked sessions, oldest first, with their agents."""
    return _get_store(request).snapshot()


@sessions_router.get("/{session_id}", response_model=SessionView)
async def get_session(session_id: str, request: Request):
    session = _get_store(request).get(session_id)
    if session is None:
        raise HTTPException(status_code=404, detail=f"Session {session_id} not found")
    return session


@sessions_router.delete("/{session_id}")
async def dismiss_session(session_id: str, request: Request):
    """Operator dismissal. Idempotent: dismissing an unknown session is not an error."""
    dismissed = await _get_ingestor(request).dismiss(session_id)
    return {"sessionId": session_id, "dismissed": dismissed}


@sessions_router.delete("", response_model=ClearResponse)
async def clear_sessions(request: Request):
    removed = await _get_ingestor(request).clear_all()
    return ClearResponse(removed=removed)


# ── Live stream ─────────────────────────────────────────────────────

async def _forward_changes(websocket: WebSocket, store, queue: asyncio.Queue) -> None:
    await websocket.send_json(_snapshot_payload(store))
    while True:
        await queue.get()
        await websocket.send_json(_snapshot_payload(store))


@stream_router.websocket("/ws")
async def session_stream(websocket: WebSocket):
    """Send the snapshot on connect, then a fresh snapshot after every change."""
    await websocket.accept()
    store = getattr(websocket.app.state, "session_store", None)
    if store is None:
        await websocket.close(code=1011)
        return

    queue = store.changed()
    sender = asyncio.create_task(_forward_changes(websocket, store, queue))
    try:
        # Drain client frames until the client disconnects.
        while True:
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                break
    finally:
        sender.cancel()
        await asyncio.gather(sender, return_exceptions=True)
        store.notifier.unsubscribe(queue)
        logger.info("WebSocket client disconnected")
