"""Per-viewer live update streams.

Each open stream gets its own queue fed by the shared session watcher and a
keep-alive timer. Events are yielded as dicts understood by
``sse_starlette.EventSourceResponse``.
"""

from __future__ import annotations

import asyncio
import json
import time
from typing import Any, AsyncGenerator

from .discovery.watcher import SessionWatcher, WatcherEvent
from .logging import get_logger
from .store.models import Session

log = get_logger("broadcast")

PING_INTERVAL_SECONDS = 30.0


def sse_event(event: str, data: dict[str, Any]) -> dict[str, str]:
    return {"event": event, "data": json.dumps(data)}


async def _ping_loop(queue: asyncio.Queue, interval: float) -> None:
    while True:
        await asyncio.sleep(interval)
        queue.put_nowait(sse_event("ping", {"time": int(time.time() * 1000)}))


async def session_event_stream(
    watcher: SessionWatcher,
    session: Session,
    ping_interval: float = PING_INTERVAL_SECONDS,
) -> AsyncGenerator[dict[str, str], None]:
    """Stream live events for one session.

    The first event is always the session's current ``status``. After
    that every ``message``/``status`` event the watcher publishes for this
    session is forwarded in order, interleaved with ``ping`` events.

    Closing the stream unsubscribes from the watcher but leaves the file
    watch in place, since other viewers may share it.
    """
    await watcher.watch(session.id, session.file_path, session.source)

    queue: asyncio.Queue[dict[str, str]] = asyncio.Queue()

    def on_event(event: WatcherEvent) -> None:
        if event.session_id != session.id:
            return
        queue.put_nowait(sse_event(event.type, event.payload()))

    # Subscribe before the first yield so nothing published meanwhile is lost
    unsubscribe = watcher.subscribe(on_event)
    ping_task = asyncio.create_task(_ping_loop(queue, ping_interval))
    log.debug(f"Viewer connected to session {session.id}")

    try:
        yield sse_event("status", {"status": session.status.value})
        while True:
            yield await queue.get()
    finally:
        ping_task.cancel()
        unsubscribe()
        log.debug(f"Viewer disconnected from session {session.id}")
