"""Parser for Claude Code JSONL session files.

Turns session records into canonical messages and derives session titles.
"""

from __future__ import annotations

import json
import re
import uuid
from datetime import datetime, timezone
from typing import Any

from ..logging import get_logger
from ..store.models import (
    Author,
    ContentBlock,
    Message,
    SourceKind,
    TextBlock,
    content_block_from_dict,
    format_timestamp,
)

log = get_logger("parser")

UNTITLED = "Untitled session"
TITLE_MAX_LENGTH = 100

# Internal marker sections injected into user turns by the CLI
_MARKER_PATTERNS = [
    re.compile(r"<system-[a-z-]+>[\s\S]*?</system-[a-z-]+>"),
    re.compile(r"<local-command-[a-z-]+>[\s\S]*?</local-command-[a-z-]+>"),
    re.compile(r"<command-[a-z-]+>[\s\S]*?</command-[a-z-]+>"),
    re.compile(r"<user-prompt-[a-z-]+>[\s\S]*?</user-prompt-[a-z-]+>"),
    re.compile(r"<[a-z-]+-reminder>[\s\S]*?</[a-z-]+-reminder>"),
    re.compile(r"<[a-z-]+-caveat>[\s\S]*?</[a-z-]+-caveat>"),
    re.compile(r"<[a-z-]+-hook>[\s\S]*?</[a-z-]+-hook>"),
]
_CAVEAT_LINE = re.compile(r"^Caveat:.*$", re.MULTILINE)
_EXTRA_NEWLINES = re.compile(r"\n{3,}")


def now_iso() -> str:
    """Current UTC time as an ISO 8601 string with a Z suffix."""
    return format_timestamp(datetime.now(timezone.utc))


def new_message_id() -> str:
    return str(uuid.uuid4())


def clean_system_content(text: str) -> str:
    """Strip internal marker sections and caveat lines from text."""
    cleaned = text
    for pattern in _MARKER_PATTERNS:
        cleaned = pattern.sub("", cleaned)
    cleaned = _CAVEAT_LINE.sub("", cleaned)
    cleaned = _EXTRA_NEWLINES.sub("\n\n", cleaned)
    return cleaned.strip()


def _clean_blocks(raw_content: Any) -> list[ContentBlock]:
    if isinstance(raw_content, str):
        text = clean_system_content(raw_content)
        return [TextBlock(text=text)] if text else []

    if not isinstance(raw_content, list):
        return []

    blocks: list[ContentBlock] = []
    for item in raw_content:
        block = content_block_from_dict(item)
        if block is None:
            continue
        if isinstance(block, TextBlock):
            text = clean_system_content(block.text)
            if not text:
                continue
            block = TextBlock(text=text)
        blocks.append(block)
    return blocks


def _parse_record(entry: Any) -> Message | None:
    if not isinstance(entry, dict):
        return None

    entry_type = entry.get("type")
    # Summaries and side conversations never show up in the transcript view
    if entry_type not in ("user", "assistant") or entry.get("isSidechain"):
        return None

    message = entry.get("message")
    if not isinstance(message, dict):
        return None

    blocks = _clean_blocks(message.get("content"))
    if not blocks:
        return None

    timestamp = entry.get("timestamp")
    return Message(
        id=str(message.get("id") or new_message_id()),
        author=Author(entry_type),
        timestamp=timestamp if isinstance(timestamp, str) and timestamp else now_iso(),
        content=tuple(blocks),
    )


def parse_session_file(content: str) -> list[Message]:
    """Parse the raw content of a Claude Code session file.

    Lines that are not valid JSON or not displayable records are skipped.

    Args:
        content: Full text of the JSONL file

    Returns:
        Messages in file order
    """
    messages: list[Message] = []
    skipped = 0

    for line in content.split("\n"):
        line = line.strip()
        if not line:
            continue

        try:
            entry = json.loads(line)
        except json.JSONDecodeError:
            skipped += 1
            continue

        message = _parse_record(entry)
        if message is not None:
            messages.append(message)

    if skipped:
        log.debug(f"Skipped {skipped} malformed lines")
    return messages


def parse_transcript(content: str, source: SourceKind) -> list[Message]:
    """Parse a transcript in whichever family ``source`` names."""
    if source is SourceKind.CODEX:
        from .codex_parser import parse_codex_session_file

        return parse_codex_session_file(content)
    return parse_session_file(content)


def is_sidechain_file(content: str) -> bool:
    """Check whether a session file is a side conversation branch.

    Only the first line is inspected; sub-agent transcripts mark it.
    """
    first_line = content.split("\n", 1)[0].strip()
    if not first_line:
        return False
    try:
        entry = json.loads(first_line)
    except json.JSONDecodeError:
        return False
    return isinstance(entry, dict) and entry.get("isSidechain") is True


def extract_first_user_message(messages: list[Message]) -> str:
    """Derive a session title from the first meaningful human message.

    Bare slash commands (``/clear``) are skipped. The first line is used,
    truncated to 100 characters.
    """
    for message in messages:
        if message.author is not Author.HUMAN:
            continue

        text_block = next((b for b in message.content if isinstance(b, TextBlock)), None)
        if text_block is None:
            continue

        text = text_block.text.strip()
        if not text:
            continue

        # Skip command invocations
        if text.startswith("/") and " " not in text:
            continue

        first_line = text.split("\n")[0].strip()
        if not first_line:
            continue

        if len(first_line) > TITLE_MAX_LENGTH:
            return f"{first_line[:TITLE_MAX_LENGTH]}..."
        return first_line

    return UNTITLED
