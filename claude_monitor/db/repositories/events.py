"""SQLite implementation of the event journal."""
from __future__ import annotations

from datetime import datetime, timezone

import aiosqlite

from claude_monitor.date_utils import format_datetime_utc
from claude_monitor.models import EventRecord
from claude_monitor.parsers.hook_events import decode_event, encode_event


class SqliteEventRepository:
    """Append-only journal of accepted events, in application order."""

    def __init__(self, db: aiosqlite.Connection):
        self.db = db

    async def append(self, event: EventRecord) -> int:
        now = datetime.now(timezone.utc).isoformat()
        cursor = await self.db.execute(
            """INSERT INTO events (
                session_id, event_kind, agent_key, timestamp, payload_json, received_at
            ) VALUES (?, ?, ?, ?, ?, ?)""",
            (
                event.session_id,
                event.event_kind.value,
                event.agent_key,
                format_datetime_utc(event.timestamp),
                encode_event(event),
                now,
            ),
        )
        await self.db.commit()
        return int(cursor.lastrowid or 0)

    async def list_for_replay(self) -> list[EventRecord]:
        """Decode every journaled event in insertion order; undecodable rows are skipped."""
        async with self.db.execute("SELECT payload_json FROM events ORDER BY seq ASC") as cur:
            rows = await cur.fetchall()
        events = []
        for row in rows:
            event = decode_event(row[0])
            if event is not None:
                events.append(event)
        return events

    async def delete_session(self, session_id: str) -> int:
        cursor = await self.db.execute("DELETE FROM events WHERE session_id = ?", (session_id,))
        await self.db.commit()
        return cursor.rowcount or 0

    async def clear(self) -> int:
        cursor = await self.db.execute("DELETE FROM events")
        await self.db.commit()
        return cursor.rowcount or 0

    async def prune_before(self, cutoff: datetime) -> int:
        """Drop whole sessions whose newest event was received before ``cutoff``.

        Sessions are never partially pruned, so replay always sees their first events.
        """
        cursor = await self.db.execute(
            """DELETE FROM events WHERE session_id IN (
                SELECT session_id FROM events GROUP BY session_id HAVING MAX(received_at) < ?
            )""",
            (cutoff.astimezone(timezone.utc).isoformat(),),
        )
        await self.db.commit()
        return cursor.rowcount or 0

    async def count(self) -> int:
        async with self.db.execute("SELECT COUNT(*) FROM events") as cur:
            row = await cur.fetchone()
            return int(row[0]) if row else 0
