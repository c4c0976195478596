import threading
import unittest
from datetime import datetime, timedelta, timezone

from claude_monitor.models import AgentStatus, EventKind, EventRecord, SessionStatus
from claude_monitor.state.store import SessionStore, project_name_for

_T0 = datetime(2026, 2, 16, 12, 0, tzinfo=timezone.utc)


def _event(kind: EventKind, session_id: str = "s1", seconds: float = 0, **fields) -> EventRecord:
    return EventRecord(
        session_id=session_id,
        event_kind=kind,
        timestamp=_T0 + timedelta(seconds=seconds),
        **fields,
    )


class SessionStoreApplyTests(unittest.TestCase):
    def setUp(self) -> None:
        self.store = SessionStore(
            permission_keywords=("permission", "approve", "allow", "confirm", "unsafe", "dangerous", "trust", "grant"),
        )

    def test_end_to_end_scenario(self) -> None:
        events = [
            _event(EventKind.SESSION_START, seconds=0, working_directory="/p"),
            _event(EventKind.USER_PROMPT_SUBMIT, seconds=1, user_prompt_text="fix bug"),
            _event(EventKind.PRE_TOOL_USE, seconds=2),
            _event(EventKind.POST_TOOL_USE, seconds=3),
            _event(EventKind.SUBAGENT_START, seconds=4, agent_id="a1", agent_type="Explore"),
            _event(EventKind.SUBAGENT_STOP, seconds=5, agent_id="a1"),
            _event(EventKind.NOTIFICATION, seconds=6, notification_kind="permission_prompt"),
            _event(EventKind.STOP, seconds=7),
        ]
        for event in events:
            self.store.apply(event)

        [session] = self.store.snapshot()
        self.assertEqual(session.session_id, "s1")
        self.assertEqual(session.status, SessionStatus.NEEDS_PERMISSION)
        self.assertEqual(session.user_prompt_text, "fix bug")
        self.assertEqual(session.working_directory, "/p")
        self.assertEqual(session.project_name, "p")
        self.assertEqual([(a.agent_key, a.status) for a in session.agents], [("a1", AgentStatus.COMPLETED)])

    def test_stop_then_notification_ends_in_needs_permission(self) -> None:
        self.store.apply(_event(EventKind.SESSION_START))
        self.store.apply(_event(EventKind.STOP, seconds=1))
        self.assertEqual(self.store.get("s1").status, SessionStatus.IDLE)
        self.store.apply(_event(EventKind.NOTIFICATION, seconds=2, notification_kind="permission_prompt"))
        self.assertEqual(self.store.get("s1").status, SessionStatus.NEEDS_PERMISSION)

    def test_keyword_classification(self) -> None:
        self.store.apply(_event(EventKind.NOTIFICATION, "s1", notification_message="Please approve this dangerous change"))
        self.store.apply(_event(EventKind.NOTIFICATION, "s2", notification_message="Build succeeded"))
        self.assertEqual(self.store.get("s1").status, SessionStatus.NEEDS_PERMISSION)
        self.assertEqual(self.store.get("s2").status, SessionStatus.WAITING_FOR_INPUT)

    def test_duplicate_subagent_start_overwrites_single_entry(self) -> None:
        self.store.apply(_event(EventKind.SUBAGENT_START, seconds=0, agent_id="a", agent_type="Explore"))
        self.store.apply(_event(EventKind.SUBAGENT_START, seconds=1, agent_id="a", agent_type="Bash"))

        [session] = self.store.snapshot()
        self.assertEqual(len(session.agents), 1)
        self.assertEqual(session.agents[0].agent_type, "Bash")
        self.assertEqual(session.agents[0].created_at, _T0 + timedelta(seconds=1))

    def test_agent_key_falls_back_to_display_name(self) -> None:
        self.store.apply(_event(EventKind.SUBAGENT_START, agent_display_name="reviewer"))
        self.store.apply(_event(EventKind.SUBAGENT_STOP, seconds=1, agent_display_name="reviewer"))
        [agent] = self.store.get("s1").agents
        self.assertEqual(agent.agent_key, "reviewer")
        self.assertEqual(agent.status, AgentStatus.COMPLETED)
        self.assertEqual(agent.stopped_at, _T0 + timedelta(seconds=1))

    def test_stop_for_unknown_agent_creates_nothing(self) -> None:
        self.store.apply(_event(EventKind.SESSION_START))
        self.store.apply(_event(EventKind.SUBAGENT_STOP, seconds=1, agent_id="ghost"))
        self.assertEqual(self.store.get("s1").agents, [])

    def test_agents_sorted_by_creation(self) -> None:
        self.store.apply(_event(EventKind.SUBAGENT_START, seconds=5, agent_id="late"))
        self.store.apply(_event(EventKind.SUBAGENT_START, seconds=1, agent_id="early"))
        self.assertEqual([a.agent_key for a in self.store.get("s1").agents], ["early", "late"])

    def test_working_directory_is_first_non_empty(self) -> None:
        sequence = [
            _event(EventKind.SESSION_START, seconds=0),
            _event(EventKind.USER_PROMPT_SUBMIT, seconds=1, working_directory="/repo"),
            _event(EventKind.PRE_TOOL_USE, seconds=2, working_directory="/repo/sub"),
            _event(EventKind.POST_TOOL_USE, seconds=3, working_directory=""),
            _event(EventKind.UNKNOWN, seconds=4, raw_kind="PreCompact", working_directory="/elsewhere"),
        ]
        for event in sequence:
            self.store.apply(event)
        self.assertEqual(self.store.get("s1").working_directory, "/repo")

    def test_sticky_fields_are_never_cleared_or_overwritten(self) -> None:
        self.store.apply(
            _event(
                EventKind.SESSION_START,
                transcript_reference="/t/one.jsonl",
                terminal_identifier="ttys001",
            )
        )
        self.store.apply(_event(EventKind.USER_PROMPT_SUBMIT, seconds=1, user_prompt_text="first"))
        self.store.apply(
            _event(
                EventKind.USER_PROMPT_SUBMIT,
                seconds=2,
                user_prompt_text="second",
                transcript_reference="/t/two.jsonl",
                terminal_identifier="",
            )
        )
        session = self.store.get("s1")
        self.assertEqual(session.user_prompt_text, "first")
        self.assertEqual(session.transcript_reference, "/t/one.jsonl")
        self.assertEqual(session.terminal_identifier, "ttys001")

    def test_unknown_kind_still_updates_sticky_fields(self) -> None:
        self.store.apply(_event(EventKind.UNKNOWN, raw_kind="PreCompact", working_directory="/w"))
        session = self.store.get("s1")
        self.assertEqual(session.status, SessionStatus.ACTIVE)
        self.assertEqual(session.working_directory, "/w")

    def test_session_end_removes_session_until_restarted(self) -> None:
        self.store.apply(_event(EventKind.SESSION_START))
        self.store.apply(_event(EventKind.SUBAGENT_START, seconds=1, agent_id="a1"))
        self.store.apply(_event(EventKind.SESSION_END, seconds=2))
        self.assertEqual(self.store.snapshot(), [])

        self.store.apply(_event(EventKind.PRE_TOOL_USE, seconds=3))
        session = self.store.get("s1")
        self.assertIsNotNone(session)
        self.assertEqual(session.agents, [])

    def test_session_end_for_unknown_session_is_noop(self) -> None:
        version = self.store.version
        self.store.apply(_event(EventKind.SESSION_END, "nobody"))
        self.assertEqual(self.store.snapshot(), [])
        self.assertEqual(self.store.version, version)

    def test_sessions_are_isolated(self) -> None:
        self.store.apply(_event(EventKind.SESSION_START, "b", working_directory="/b", terminal_identifier="tty-b"))
        before = self.store.get("b")

        for event in (
            _event(EventKind.SESSION_START, "a", seconds=1, working_directory="/a"),
            _event(EventKind.SUBAGENT_START, "a", seconds=2, agent_id="x"),
            _event(EventKind.NOTIFICATION, "a", seconds=3, notification_kind="permission_prompt"),
            _event(EventKind.SESSION_END, "a", seconds=4),
        ):
            self.store.apply(event)

        self.assertEqual(self.store.get("b"), before)

    def test_snapshot_orders_sessions_by_creation(self) -> None:
        self.store.apply(_event(EventKind.SESSION_START, "newer", seconds=10))
        self.store.apply(_event(EventKind.SESSION_START, "older", seconds=0))
        self.store.apply(_event(EventKind.PRE_TOOL_USE, "newer", seconds=20))
        self.assertEqual([s.session_id for s in self.store.snapshot()], ["older", "newer"])

    def test_last_updated_never_moves_backwards(self) -> None:
        self.store.apply(_event(EventKind.PRE_TOOL_USE, seconds=10))
        self.store.apply(_event(EventKind.POST_TOOL_USE, seconds=5))
        self.assertEqual(self.store.get("s1").last_updated_at, _T0 + timedelta(seconds=10))

    def test_unsafe_session_ids_are_dropped(self) -> None:
        for session_id in ("", "../escape", "a/b", "a\\b", ".hidden"):
            with self.subTest(session_id=session_id):
                self.store.apply(_event(EventKind.SESSION_START, session_id))
        self.assertEqual(self.store.snapshot(), [])
        self.assertEqual(self.store.version, 0)


class SessionStoreNotificationTests(unittest.TestCase):
    def setUp(self) -> None:
        self.store = SessionStore(permission_keywords=("approve",))

    def test_one_signal_per_changing_apply(self) -> None:
        self.store.apply(
            _event(
                EventKind.SESSION_START,
                working_directory="/p",
                transcript_reference="/t.jsonl",
                terminal_identifier="ttys002",
            )
        )
        self.assertEqual(self.store.version, 1)

        self.store.apply(_event(EventKind.SUBAGENT_START, seconds=1, agent_id="a1", user_prompt_text="go"))
        self.assertEqual(self.store.version, 2)

    def test_no_signal_when_nothing_observable_changes(self) -> None:
        self.store.apply(_event(EventKind.SESSION_START))
        self.store.apply(_event(EventKind.PRE_TOOL_USE, seconds=1))
        self.store.apply(_event(EventKind.POST_TOOL_USE, seconds=2))
        self.store.apply(_event(EventKind.SUBAGENT_STOP, seconds=3, agent_id="ghost"))
        self.assertEqual(self.store.version, 1)

    def test_dismiss_is_idempotent(self) -> None:
        self.store.apply(_event(EventKind.SESSION_START))
        self.assertTrue(self.store.dismiss("s1"))
        self.assertFalse(self.store.dismiss("s1"))
        self.assertFalse(self.store.delete("never-seen"))
        self.assertEqual(self.store.version, 2)
        self.assertEqual(len(self.store), 0)

    def test_clear_all(self) -> None:
        self.store.apply(_event(EventKind.SESSION_START, "a"))
        self.store.apply(_event(EventKind.SESSION_START, "b"))
        self.store.apply(_event(EventKind.SUBAGENT_START, "b", agent_id="x"))
        self.assertEqual(self.store.clear_all(), 2)
        self.assertEqual(self.store.snapshot(), [])
        self.assertEqual(self.store.clear_all(), 0)


class SessionStoreConcurrencyTests(unittest.TestCase):
    def test_concurrent_producers_do_not_lose_agents(self) -> None:
        store = SessionStore(permission_keywords=())
        store.apply(_event(EventKind.SESSION_START))

        def produce(worker: int) -> None:
            for i in range(50):
                store.apply(_event(EventKind.SUBAGENT_START, seconds=i, agent_id=f"w{worker}-{i}"))

        threads = [threading.Thread(target=produce, args=(n,)) for n in range(8)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        self.assertEqual(len(store.get("s1").agents), 8 * 50)


class ProjectNameTests(unittest.TestCase):
    def test_project_name_uses_directory_basename(self) -> None:
        self.assertEqual(project_name_for("/Users/dev/projects/app"), "app")
        self.assertEqual(project_name_for("/Users/dev/projects/app/"), "app")
        self.assertEqual(project_name_for(""), "unknown")


if __name__ == "__main__":
    unittest.main()
