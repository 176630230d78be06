"""File watcher for live session updates.

Watches individual session files and publishes ``message`` and ``status``
events to every subscriber.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable

from watchfiles import Change, awatch

from ..logging import get_logger
from ..store.models import Message, SessionStatus, SourceKind
from .parser import parse_transcript
from .status import determine_session_status

log = get_logger("watcher")

STATUS_DEBOUNCE_SECONDS = 1.0


@dataclass
class WatcherEvent:
    """An event published on the watcher bus."""

    type: str  # "message" or "status"
    session_id: str
    data: Message | SessionStatus

    def payload(self) -> dict[str, Any]:
        """JSON-ready body of the event."""
        if isinstance(self.data, Message):
            return self.data.to_dict()
        return {"status": self.data.value}


EventCallback = Callable[[WatcherEvent], None]


@dataclass
class _WatchedFile:
    path: Path
    source: SourceKind
    task: asyncio.Task | None = None
    stop_event: asyncio.Event | None = None


class SessionWatcher:
    """Registry of watched session files.

    One instance is shared by the whole process. Each watched session gets
    its own background task running watchfiles (based on Rust's notify).
    Only growth of a file is reported; the whole file is re-parsed and the
    last message published. Status changes are debounced per session.
    """

    def __init__(self, debounce_seconds: float = STATUS_DEBOUNCE_SECONDS) -> None:
        self.debounce_seconds = debounce_seconds
        self._watched: dict[str, _WatchedFile] = {}
        self._last_sizes: dict[str, int] = {}
        self._last_status: dict[str, SessionStatus] = {}
        self._pending_status: dict[str, SessionStatus] = {}
        self._debounce_timers: dict[str, asyncio.TimerHandle] = {}
        self._callbacks: list[EventCallback] = []
        # Watch tasks that were cancelled but may not have finished yet
        self._stopping: set[asyncio.Task] = set()

    # --- Bus ---

    def subscribe(self, callback: EventCallback) -> Callable[[], None]:
        """Register a listener for every event of every watched session.

        Returns:
            A function that removes the listener again
        """
        self._callbacks.append(callback)

        def unsubscribe() -> None:
            if callback in self._callbacks:
                self._callbacks.remove(callback)

        return unsubscribe

    def _emit(self, event: WatcherEvent) -> None:
        for callback in list(self._callbacks):
            try:
                callback(event)
            except Exception as e:
                log.error(f"Watcher subscriber failed on {event.type} event: {e}")

    # --- Registration ---

    def is_watching(self, session_id: str) -> bool:
        return session_id in self._watched

    @property
    def watched_count(self) -> int:
        return len(self._watched)

    async def watch(
        self,
        session_id: str,
        file_path: str | Path,
        source: SourceKind = SourceKind.CLAUDE,
    ) -> None:
        """Start watching a session file. Does nothing if already watched."""
        if session_id in self._watched:
            return

        path = Path(file_path)
        try:
            size = path.stat().st_size
        except OSError as e:
            log.error(f"Failed to watch session {session_id}: {e}")
            return

        watched = _WatchedFile(path=path, source=source, stop_event=asyncio.Event())
        self._last_sizes[session_id] = size
        self._watched[session_id] = watched
        watched.task = asyncio.create_task(self._watch_loop(session_id, watched))
        log.debug(f"Watching session {session_id}: {path}")

    async def _watch_loop(self, session_id: str, watched: _WatchedFile) -> None:
        try:
            async for changes in awatch(
                watched.path,
                stop_event=watched.stop_event,
                debounce=50,
                step=20,
            ):
                if any(change in (Change.modified, Change.added) for change, _ in changes):
                    self.handle_file_change(session_id)
        except asyncio.CancelledError:
            pass
        except Exception as e:
            log.error(f"Watch loop error for session {session_id}: {e}")

    def handle_file_change(self, session_id: str) -> None:
        """Process a change notification for a watched session file."""
        watched = self._watched.get(session_id)
        if watched is None:
            return

        try:
            size = watched.path.stat().st_size
            if size <= self._last_sizes.get(session_id, 0):
                return
            content = watched.path.read_text(encoding="utf-8", errors="replace")
        except OSError as e:
            log.error(f"Error handling file change for {session_id}: {e}")
            return

        messages = parse_transcript(content, watched.source)
        if messages:
            # Appends are assumed to add one message per notification
            self._emit(WatcherEvent(type="message", session_id=session_id, data=messages[-1]))

            status = determine_session_status(messages)
            if (
                status != self._last_status.get(session_id)
                or session_id in self._pending_status
            ):
                self._schedule_status(session_id, status)

        self._last_sizes[session_id] = size

    # --- Status debounce ---

    def _schedule_status(self, session_id: str, status: SessionStatus) -> None:
        timer = self._debounce_timers.pop(session_id, None)
        if timer is not None:
            timer.cancel()

        self._pending_status[session_id] = status
        loop = asyncio.get_running_loop()
        self._debounce_timers[session_id] = loop.call_later(
            self.debounce_seconds, self._flush_status, session_id
        )

    def _flush_status(self, session_id: str) -> None:
        self._debounce_timers.pop(session_id, None)
        status = self._pending_status.pop(session_id, None)
        if status is None or self._last_status.get(session_id) == status:
            return

        self._last_status[session_id] = status
        self._emit(WatcherEvent(type="status", session_id=session_id, data=status))

    # --- Teardown ---

    def unwatch(self, session_id: str) -> None:
        """Stop watching a session and forget everything tracked for it."""
        watched = self._watched.pop(session_id, None)
        if watched is not None:
            if watched.stop_event is not None:
                watched.stop_event.set()
            if watched.task is not None and not watched.task.done():
                watched.task.cancel()
                self._stopping.add(watched.task)
                watched.task.add_done_callback(self._stopping.discard)
            log.debug(f"Stopped watching session {session_id}")

        self._last_sizes.pop(session_id, None)
        self._last_status.pop(session_id, None)
        self._pending_status.pop(session_id, None)
        timer = self._debounce_timers.pop(session_id, None)
        if timer is not None:
            timer.cancel()

    def unwatch_all(self) -> None:
        """Stop watching every session."""
        for session_id in list(self._watched):
            self.unwatch(session_id)

    async def shutdown(self) -> None:
        """Unwatch everything and wait for the watch tasks to finish."""
        self.unwatch_all()
        if self._stopping:
            await asyncio.gather(*self._stopping, return_exceptions=True)
        log.info("Session watcher stopped")
