"""Event ingestion: validate, apply to the store, journal.

Every transport (HTTP POST, spool files, journal replay) enters through
``EventIngestor`` so the store stays trigger-agnostic.
"""
from __future__ import annotations

import logging
from datetime import timedelta
from typing import Any

from claude_monitor import config
from claude_monitor.date_utils import utc_now
from claude_monitor.db.repositories.events import SqliteEventRepository
from claude_monitor.models import EventKind, EventRecord
from claude_monitor.observability import record_event, record_rejected, start_span
from claude_monitor.parsers.hook_events import decode_event
from claude_monitor.state.store import SessionStore

logger = logging.getLogger("claude_monitor.ingest")


class EventIngestor:
    """Feeds decoded events into a SessionStore and mirrors them into the journal."""

    def __init__(self, store: SessionStore, journal: SqliteEventRepository | None = None):
        self.store = store
        self.journal = journal

    async def ingest_raw(self, payload: Any, *, source: str = "api") -> bool:
        event = decode_event(payload)
        if event is None:
            logger.debug("Dropping undecodable %s payload", source)
            record_rejected("malformed", source=source)
            return False
        return await self.ingest(event, source=source)

    async def ingest(self, event: EventRecord, *, source: str = "api") -> bool:
        """Apply one event. Returns False when the record was dropped at the boundary."""
        if not self.store.accepts(event):
            logger.debug("Dropping %s event with unusable session id %r", source, event.session_id)
            record_rejected("session_id", source=source)
            return False

        self.store.apply(event)
        record_event(event.event_kind.value, source=source)
        await self._journal(event)
        return True

    async def _journal(self, event: EventRecord) -> None:
        if self.journal is None:
            return
        try:
            if event.event_kind == EventKind.SESSION_END:
                await self.journal.delete_session(event.session_id)
            else:
                await self.journal.append(event)
        except Exception as e:
            logger.warning(f"Failed to journal {event.event_kind.value} for {event.session_id}: {e}")

    async def dismiss(self, session_id: str) -> bool:
        removed = self.store.dismiss(session_id)
        if self.journal is not None:
            try:
                await self.journal.delete_session(session_id)
            except Exception as e:
                logger.warning(f"Failed to prune journal for {session_id}: {e}")
        return removed

    async def clear_all(self) -> int:
        removed = self.store.clear_all()
        if self.journal is not None:
            try:
                await self.journal.clear()
            except Exception as e:
                logger.warning(f"Failed to clear journal: {e}")
        return removed

    async def prune_journal(self, retention_hours: int | None = None) -> int:
        """Drop journaled sessions idle for longer than the retention window."""
        if self.journal is None:
            return 0
        hours = config.JOURNAL_RETENTION_HOURS if retention_hours is None else retention_hours
        if hours <= 0:
            return 0
        pruned = await self.journal.prune_before(utc_now() - timedelta(hours=hours))
        if pruned:
            logger.info(f"Pruned {pruned} journal events from sessions idle for over {hours}h")
        return pruned

    async def replay(self, retention_hours: int | None = None) -> int:
        """Rebuild the store from the journal after a restart. Returns events replayed."""
        if self.journal is None:
            return 0

        hours = config.JOURNAL_RETENTION_HOURS if retention_hours is None else retention_hours
        with start_span("journal.replay", {"retention_hours": hours}):
            await self.prune_journal(hours)
            events = await self.journal.list_for_replay()
            for event in events:
                self.store.apply(event)

        logger.info(f"Replayed {len(events)} journal events into {len(self.store)} sessions")
        return len(events)
