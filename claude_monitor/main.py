"""Claude Monitor FastAPI backend: main application entry point."""
from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from claude_monitor import config
from claude_monitor.routers.api import (
    events_router,
    health_router,
    sessions_router,
    stream_router,
)
from claude_monitor.db import connection
from claude_monitor.db.repositories.events import SqliteEventRepository
from claude_monitor.db.sqlite_migrations import run_migrations
from claude_monitor.observability import initialize as initialize_observability, shutdown as shutdown_observability
from claude_monitor.services.file_watcher import file_watcher
from claude_monitor.services.ingest import EventIngestor
from claude_monitor.services.spool import SpoolSync
from claude_monitor.state import SessionStore, StalenessSweeper

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger("claude_monitor")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup / shutdown lifecycle."""
    logger.info("Claude Monitor starting up")
    initialize_observability(app)

    # 1. In-memory store
    store = SessionStore()
    app.state.session_store = store

    # 2. Event journal (optional): open, migrate, replay
    journal = None
    if config.JOURNAL_ENABLED:
        db = await connection.get_connection()
        await run_migrations(db)
        journal = SqliteEventRepository(db)

    ingestor = EventIngestor(store, journal)
    app.state.ingestor = ingestor
    if journal is not None:
        await ingestor.replay()

    # 3. Staleness sweeper, which also keeps the journal inside its retention window
    sweeper = StalenessSweeper(store, prune_journal=ingestor.prune_journal if journal is not None else None)
    app.state.sweeper = sweeper
    await sweeper.start()

    # 4. Spool directory: periodic rescan plus push notifications from the watcher
    spool = SpoolSync(ingestor)
    app.state.spool = spool
    await spool.start()
    if config.FILE_WATCH_ENABLED:
        await file_watcher.start(spool)

    yield

    logger.info("Claude Monitor shutting down")

    await file_watcher.stop()
    await spool.stop()
    await sweeper.stop()
    shutdown_observability(app)
    if journal is not None:
        await connection.close_connection()


app = FastAPI(
    title="Claude Monitor API",
    description="Live status of Claude CLI sessions and their sub-agents",
    version=config.VERSION,
    lifespan=lifespan,
)

# CORS: the overlay and TUI clients connect from localhost
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)

# Register routers
app.include_router(health_router)
app.include_router(events_router)
app.include_router(sessions_router)
app.include_router(stream_router)

