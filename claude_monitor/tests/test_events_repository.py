import unittest
from datetime import datetime, timedelta, timezone

import aiosqlite

from claude_monitor.db.repositories.events import SqliteEventRepository
from claude_monitor.db.sqlite_migrations import SCHEMA_VERSION, run_migrations
from claude_monitor.models import EventKind, EventRecord

_T0 = datetime(2026, 2, 16, 12, 0, tzinfo=timezone.utc)


def _event(kind: EventKind, session_id: str = "s1", **fields) -> EventRecord:
    return EventRecord(session_id=session_id, event_kind=kind, timestamp=_T0, **fields)


class EventRepositoryTests(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self) -> None:
        self.db = await aiosqlite.connect(":memory:")
        self.db.row_factory = aiosqlite.Row
        await run_migrations(self.db)
        self.repo = SqliteEventRepository(self.db)

    async def asyncTearDown(self) -> None:
        await self.db.close()

    async def test_migrations_are_idempotent(self) -> None:
        await run_migrations(self.db)
        async with self.db.execute("SELECT MAX(version) FROM schema_version") as cur:
            row = await cur.fetchone()
        self.assertEqual(row[0], SCHEMA_VERSION)

    async def test_base_schema_carries_receive_time_and_index(self) -> None:
        async with self.db.execute("PRAGMA table_info(events)") as cur:
            columns = {row[1] for row in await cur.fetchall()}
        async with self.db.execute("PRAGMA index_list(events)") as cur:
            indexes = {row[1] for row in await cur.fetchall()}

        self.assertEqual(SCHEMA_VERSION, 1)
        self.assertIn("received_at", columns)
        self.assertIn("idx_events_received", indexes)

    async def test_replay_returns_events_in_append_order(self) -> None:
        first = _event(EventKind.SESSION_START, working_directory="/p")
        second = _event(EventKind.SUBAGENT_START, agent_id="a1", agent_type="Explore")
        third = _event(EventKind.UNKNOWN, raw_kind="PreCompact")
        for event in (first, second, third):
            await self.repo.append(event)

        replayed = await self.repo.list_for_replay()

        self.assertEqual(
            [event.model_dump(exclude={"raw_kind"}) for event in replayed],
            [event.model_dump(exclude={"raw_kind"}) for event in (first, second, third)],
        )
        self.assertEqual(replayed[2].raw_kind, "PreCompact")

    async def test_undecodable_rows_are_skipped(self) -> None:
        await self.repo.append(_event(EventKind.STOP))
        await self.db.execute(
            "INSERT INTO events (session_id, event_kind, timestamp, payload_json, received_at) VALUES (?, ?, ?, ?, ?)",
            ("s1", "Stop", "2026-02-16T12:00:00Z", "{broken", _T0.isoformat()),
        )
        await self.db.commit()

        replayed = await self.repo.list_for_replay()
        self.assertEqual([event.event_kind for event in replayed], [EventKind.STOP])

    async def test_delete_session(self) -> None:
        await self.repo.append(_event(EventKind.SESSION_START, "a"))
        await self.repo.append(_event(EventKind.SUBAGENT_START, "a", agent_id="x"))
        await self.repo.append(_event(EventKind.SESSION_START, "b"))

        self.assertEqual(await self.repo.delete_session("a"), 2)
        self.assertEqual(await self.repo.delete_session("a"), 0)
        self.assertEqual([event.session_id for event in await self.repo.list_for_replay()], ["b"])

    async def test_clear(self) -> None:
        await self.repo.append(_event(EventKind.SESSION_START, "a"))
        await self.repo.append(_event(EventKind.SESSION_START, "b"))
        self.assertEqual(await self.repo.clear(), 2)
        self.assertEqual(await self.repo.count(), 0)

    async def test_prune_before_uses_receive_time(self) -> None:
        await self.repo.append(_event(EventKind.SESSION_START, "old"))
        await self.db.execute("UPDATE events SET received_at = ?", ((_T0 - timedelta(days=3)).isoformat(),))
        await self.db.commit()
        await self.repo.append(_event(EventKind.SESSION_START, "fresh"))

        pruned = await self.repo.prune_before(datetime.now(timezone.utc) - timedelta(hours=24))

        self.assertEqual(pruned, 1)
        self.assertEqual([event.session_id for event in await self.repo.list_for_replay()], ["fresh"])

    async def test_prune_keeps_sessions_with_recent_events_whole(self) -> None:
        await self.repo.append(_event(EventKind.SESSION_START, "straddling", working_directory="/p"))
        await self.db.execute("UPDATE events SET received_at = ?", ((_T0 - timedelta(days=3)).isoformat(),))
        await self.db.commit()
        await self.repo.append(_event(EventKind.PRE_TOOL_USE, "straddling", working_directory="/p/sub"))

        pruned = await self.repo.prune_before(datetime.now(timezone.utc) - timedelta(hours=24))

        self.assertEqual(pruned, 0)
        replayed = await self.repo.list_for_replay()
        self.assertEqual([event.working_directory for event in replayed], ["/p", "/p/sub"])


if __name__ == "__main__":
    unittest.main()
