"""Session status detection.

Status is recomputed from the full message history every time, so nothing
needs to survive a restart.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Sequence

from ..store.models import Author, Message, SessionStatus, TextBlock, ToolResultBlock

STALE_THRESHOLD = timedelta(minutes=5)
RECENT_THRESHOLD = timedelta(seconds=30)

QUESTION_TOOL = "AskUserQuestion"


def _has_unanswered_tool_use(messages: Sequence[Message], last: Message) -> bool:
    tool_ids = {block.id for block in last.tool_uses}
    if not tool_ids:
        return False
    answered = {
        block.tool_use_id
        for message in messages
        for block in message.content
        if isinstance(block, ToolResultBlock)
    }
    return not tool_ids <= answered


def determine_session_status(
    messages: Sequence[Message],
    last_modified: datetime | None = None,
    now: datetime | None = None,
) -> SessionStatus:
    """Classify a session as idle, working or awaiting input.

    Args:
        messages: Full parsed history, oldest first
        last_modified: Modification time of the transcript file, if known
        now: Reference time; defaults to the current UTC time

    Returns:
        The session status; the first matching rule wins
    """
    if not messages:
        return SessionStatus.IDLE

    age: timedelta | None = None
    if last_modified is not None:
        if last_modified.tzinfo is None:
            last_modified = last_modified.astimezone()
        age = (now or datetime.now(timezone.utc)) - last_modified
        if age > STALE_THRESHOLD:
            return SessionStatus.IDLE

    last = messages[-1]

    if last.author is Author.HUMAN:
        return SessionStatus.WORKING

    tool_uses = last.tool_uses
    if any(block.name == QUESTION_TOOL for block in tool_uses):
        return SessionStatus.AWAITING

    if _has_unanswered_tool_use(messages, last):
        return SessionStatus.WORKING

    if age is not None and age < RECENT_THRESHOLD:
        return SessionStatus.WORKING

    has_text = any(
        isinstance(block, TextBlock) and block.text.strip() for block in last.content
    )
    if has_text and not tool_uses:
        return SessionStatus.AWAITING

    return SessionStatus.IDLE
