"""Tests for the session file watcher."""

import asyncio
import json

import pytest
import pytest_asyncio

from agent_trail.discovery.watcher import SessionWatcher, WatcherEvent
from agent_trail.store.models import Message, SessionStatus, SourceKind

from conftest import (
    LATIN1_USER_LINE,
    append_bytes,
    append_record,
    assistant_record,
    question_record,
    user_record,
    write_session,
)

DEBOUNCE = 0.2


async def wait_for(predicate, timeout=3.0):
    """Poll until predicate() is true or the timeout passes."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            return False
        await asyncio.sleep(0.05)
    return True


def of_type(events, event_type):
    return [e for e in events if e.type == event_type]


@pytest_asyncio.fixture
async def watcher():
    session_watcher = SessionWatcher(debounce_seconds=DEBOUNCE)
    yield session_watcher
    await session_watcher.shutdown()


@pytest.fixture
def session_file(tmp_path):
    return write_session(tmp_path, "-zz-proj", "s1", [user_record("Start")])


class TestWatchRegistration:
    """Tests for watch/unwatch bookkeeping."""

    @pytest.mark.asyncio
    async def test_watch_is_idempotent(self, watcher, session_file):
        await watcher.watch("s1", session_file)
        await watcher.watch("s1", session_file)

        assert watcher.is_watching("s1")
        assert watcher.watched_count == 1

    @pytest.mark.asyncio
    async def test_missing_file_is_not_watched(self, watcher, tmp_path):
        await watcher.watch("ghost", tmp_path / "ghost.jsonl")

        assert not watcher.is_watching("ghost")
        assert watcher.watched_count == 0

    @pytest.mark.asyncio
    async def test_unwatch(self, watcher, session_file):
        events = []
        watcher.subscribe(events.append)
        await watcher.watch("s1", session_file)

        watcher.unwatch("s1")
        append_record(session_file, assistant_record([{"type": "text", "text": "late"}]))
        watcher.handle_file_change("s1")

        assert not watcher.is_watching("s1")
        assert events == []

    @pytest.mark.asyncio
    async def test_unwatch_cancels_pending_status(self, watcher, session_file):
        events = []
        watcher.subscribe(events.append)
        await watcher.watch("s1", session_file)

        append_record(session_file, assistant_record([{"type": "text", "text": "Done"}]))
        watcher.handle_file_change("s1")
        watcher.unwatch("s1")
        await asyncio.sleep(DEBOUNCE * 2)

        assert len(of_type(events, "message")) == 1
        assert of_type(events, "status") == []

    @pytest.mark.asyncio
    async def test_unwatch_all_and_shutdown(self, watcher, tmp_path):
        first = write_session(tmp_path, "-zz-proj", "a", [user_record("A")])
        second = write_session(tmp_path, "-zz-proj", "b", [user_record("B")])
        await watcher.watch("a", first)
        await watcher.watch("b", second)
        assert watcher.watched_count == 2

        watcher.unwatch_all()
        assert watcher.watched_count == 0

        await watcher.shutdown()
        assert watcher.watched_count == 0

    @pytest.mark.asyncio
    async def test_unsubscribe(self, watcher, session_file):
        events = []
        unsubscribe = watcher.subscribe(events.append)
        await watcher.watch("s1", session_file)

        unsubscribe()
        unsubscribe()
        append_record(session_file, user_record("more"))
        watcher.handle_file_change("s1")

        assert events == []


class TestFileChanges:
    """Tests for change handling and event publication."""

    @pytest.mark.asyncio
    async def test_real_append_publishes_message_and_status(self, watcher, session_file):
        """Test the full path from a filesystem write to published events."""
        events = []
        watcher.subscribe(events.append)
        await watcher.watch("s1", session_file)
        # Give the watch task time to start listening
        await asyncio.sleep(0.3)

        append_record(session_file, question_record("q1"))

        assert await wait_for(lambda: of_type(events, "status"))
        messages = of_type(events, "message")
        assert len(messages) == 1
        assert messages[0].session_id == "s1"
        assert messages[0].data.tool_uses[0].name == "AskUserQuestion"
        assert [e.data for e in of_type(events, "status")] == [SessionStatus.AWAITING]

    @pytest.mark.asyncio
    async def test_rapid_changes_emit_one_status(self, watcher, session_file):
        """Test that only the status after the last change is published."""
        events = []
        watcher.subscribe(events.append)
        await watcher.watch("s1", session_file)

        append_record(session_file, assistant_record([{"type": "text", "text": "Done?"}]))
        watcher.handle_file_change("s1")
        append_record(session_file, user_record("Keep going"))
        watcher.handle_file_change("s1")
        append_record(
            session_file,
            assistant_record([{"type": "tool_use", "id": "t1", "name": "Bash", "input": {}}]),
        )
        watcher.handle_file_change("s1")

        await asyncio.sleep(DEBOUNCE / 2)
        assert of_type(events, "status") == []

        assert await wait_for(lambda: of_type(events, "status"))
        await asyncio.sleep(DEBOUNCE * 2)
        assert [e.data for e in of_type(events, "status")] == [SessionStatus.WORKING]
        assert len(of_type(events, "message")) == 3

    @pytest.mark.asyncio
    async def test_flip_back_emits_nothing(self, watcher, session_file):
        """Test a status that changes and returns within the debounce window."""
        events = []
        watcher.subscribe(events.append)
        await watcher.watch("s1", session_file)

        append_record(session_file, user_record("Go on"))
        watcher.handle_file_change("s1")
        assert await wait_for(lambda: of_type(events, "status"))

        append_record(session_file, assistant_record([{"type": "text", "text": "Done"}]))
        watcher.handle_file_change("s1")
        append_record(session_file, user_record("One more thing"))
        watcher.handle_file_change("s1")
        await asyncio.sleep(DEBOUNCE * 3)

        assert [e.data for e in of_type(events, "status")] == [SessionStatus.WORKING]

    @pytest.mark.asyncio
    async def test_unchanged_status_is_not_repeated(self, watcher, session_file):
        events = []
        watcher.subscribe(events.append)
        await watcher.watch("s1", session_file)

        append_record(session_file, user_record("Go on"))
        watcher.handle_file_change("s1")
        assert await wait_for(lambda: of_type(events, "status"))

        append_record(session_file, user_record("And this"))
        watcher.handle_file_change("s1")
        await asyncio.sleep(DEBOUNCE * 3)

        assert len(of_type(events, "status")) == 1
        assert len(of_type(events, "message")) == 2

    @pytest.mark.asyncio
    async def test_invalid_utf8_does_not_stop_updates(self, watcher, session_file):
        """Test that a bad byte sequence neither blocks this nor later appends."""
        events = []
        watcher.subscribe(events.append)
        await watcher.watch("s1", session_file)

        append_bytes(session_file, LATIN1_USER_LINE)
        watcher.handle_file_change("s1")
        append_record(session_file, user_record("Keep going"))
        watcher.handle_file_change("s1")

        texts = [e.data.content[0].text for e in of_type(events, "message")]
        assert texts == ["caf\ufffd order", "Keep going"]

    @pytest.mark.asyncio
    async def test_shrinking_file_is_ignored(self, watcher, session_file):
        events = []
        watcher.subscribe(events.append)
        await watcher.watch("s1", session_file)

        session_file.write_text(json.dumps(user_record("x")), encoding="utf-8")
        watcher.handle_file_change("s1")
        watcher.handle_file_change("s1")

        assert events == []

    @pytest.mark.asyncio
    async def test_failing_subscriber_does_not_block_others(self, watcher, session_file):
        def broken(event):
            raise RuntimeError("boom")

        events = []
        watcher.subscribe(broken)
        watcher.subscribe(events.append)
        await watcher.watch("s1", session_file)

        append_record(session_file, user_record("more"))
        watcher.handle_file_change("s1")

        assert len(events) == 1
        assert isinstance(events[0].data, Message)

    @pytest.mark.asyncio
    async def test_codex_session_uses_codex_parser(self, watcher, tmp_path):
        path = tmp_path / "rollout-abc.jsonl"
        path.write_text(
            json.dumps({"type": "session_meta", "payload": {"id": "abc", "cwd": "/x"}}),
            encoding="utf-8",
        )
        events = []
        watcher.subscribe(events.append)
        await watcher.watch("codex:rollout-abc", path, SourceKind.CODEX)

        append_record(
            path,
            {
                "type": "event_msg",
                "timestamp": "2026-01-26T10:00:01Z",
                "payload": {"type": "user_message", "message": "Run the tests"},
            },
        )
        watcher.handle_file_change("codex:rollout-abc")

        messages = of_type(events, "message")
        assert len(messages) == 1
        assert messages[0].data.content[0].text == "Run the tests"
        assert messages[0].payload()["type"] == "user"


class TestWatcherEvent:
    """Tests for event payloads."""

    def test_status_payload(self):
        event = WatcherEvent(type="status", session_id="s1", data=SessionStatus.IDLE)

        assert event.payload() == {"status": "idle"}
