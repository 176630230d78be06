"""Parser for Codex CLI JSONL session files (~/.codex/sessions/**.jsonl).

Codex writes an event log rather than message records. Each line is
``{"type", "timestamp", "payload"}``; user turns arrive as ``event_msg``
records and assistant output as ``response_item`` records, with some
versions also echoing assistant text as plain ``agent_message`` events.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any

from ..store.models import Author, Message, TextBlock, ToolResultBlock, ToolUseBlock
from .parser import new_message_id, now_iso


@dataclass
class CodexSessionMeta:
    """Fields from a Codex ``session_meta`` record."""

    id: str | None = None
    cwd: str | None = None
    started_at: str | None = None


def _safe_json_loads(line: str) -> Any:
    try:
        return json.loads(line)
    except json.JSONDecodeError:
        return None


def _to_iso(ts: Any) -> str | None:
    # Codex stores ISO timestamps already
    if not isinstance(ts, str) or not ts.strip():
        return None
    return ts


def _str_or_none(value: Any) -> str | None:
    return value if isinstance(value, str) else None


def parse_arguments(raw: Any) -> dict[str, Any]:
    """Normalize function call arguments into a dict."""
    if isinstance(raw, dict):
        return raw
    if not isinstance(raw, str):
        return {"raw": raw}
    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError:
        return {"raw": raw}
    if isinstance(parsed, dict):
        return parsed
    return {"value": parsed}


def map_function_call(name: str, call_id: str, args: dict[str, Any]) -> ToolUseBlock:
    """Map a Codex function call onto the tool names the rest of the app knows."""
    if name == "exec_command":
        return ToolUseBlock(id=call_id, name="Bash", input={**args, "command": args.get("cmd")})

    if name == "apply_patch":
        patch = args.get("patch")
        if not isinstance(patch, str):
            patch = args.get("raw") if isinstance(args.get("raw"), str) else ""
        return ToolUseBlock(id=call_id, name="Write", input={"content": patch})

    if name == "request_user_input":
        return ToolUseBlock(id=call_id, name="AskUserQuestion", input=args)

    return ToolUseBlock(id=call_id, name=name, input=args)


def extract_codex_session_meta(content: str) -> CodexSessionMeta:
    """Return the fields of the first ``session_meta`` record, if any."""
    for line in content.split("\n"):
        if not line.strip():
            continue
        obj = _safe_json_loads(line)
        if not isinstance(obj, dict) or obj.get("type") != "session_meta":
            continue

        payload = obj.get("payload")
        if not isinstance(payload, dict):
            payload = {}
        return CodexSessionMeta(
            id=_str_or_none(payload.get("id")),
            cwd=_str_or_none(payload.get("cwd")),
            started_at=_to_iso(payload.get("timestamp")),
        )

    return CodexSessionMeta()


def _text_message(author: Author, timestamp: str, text: str) -> Message:
    return Message(
        id=new_message_id(),
        author=author,
        timestamp=timestamp,
        content=(TextBlock(text=text),),
    )


def _parse_response_item(payload: dict[str, Any], timestamp: str) -> tuple[Message | None, bool]:
    """Parse one ``response_item`` payload.

    Returns the message (if any) and whether it is structured assistant text.
    """
    payload_type = payload.get("type")

    if payload_type == "message":
        if payload.get("role") != "assistant":
            return None, False
        blocks = payload.get("content")
        texts = []
        for block in blocks if isinstance(blocks, list) else []:
            if not isinstance(block, dict) or block.get("type") != "output_text":
                continue
            text = block.get("text")
            if isinstance(text, str) and text.strip():
                texts.append(TextBlock(text=text.strip()))
        if not texts:
            return None, False
        message = Message(
            id=new_message_id(), author=Author.AGENT, timestamp=timestamp, content=tuple(texts)
        )
        return message, True

    if payload_type == "function_call":
        name = _str_or_none(payload.get("name"))
        call_id = _str_or_none(payload.get("call_id"))
        if not name or not call_id:
            return None, False
        tool_use = map_function_call(name, call_id, parse_arguments(payload.get("arguments")))
        message = Message(
            id=new_message_id(), author=Author.AGENT, timestamp=timestamp, content=(tool_use,)
        )
        return message, False

    if payload_type == "function_call_output":
        call_id = _str_or_none(payload.get("call_id"))
        if not call_id:
            return None, False
        output = payload.get("output")
        if not isinstance(output, str):
            output = json.dumps(output, separators=(",", ":"))
        result = ToolResultBlock(tool_use_id=call_id, content=output)
        message = Message(
            id=new_message_id(), author=Author.AGENT, timestamp=timestamp, content=(result,)
        )
        return message, False

    return None, False


def parse_codex_session_file(content: str) -> list[Message]:
    """Parse the raw content of a Codex session file.

    Plain ``agent_message`` events duplicate the structured assistant
    messages in newer logs. If the file contains any structured assistant
    text at all, every ``agent_message`` in the file is dropped.
    """
    # (message, came from a plain agent_message event)
    staged: list[tuple[Message, bool]] = []
    has_structured_text = False

    for line in content.split("\n"):
        if not line.strip():
            continue
        obj = _safe_json_loads(line)
        if not isinstance(obj, dict):
            continue

        record_type = obj.get("type")
        timestamp = _to_iso(obj.get("timestamp")) or now_iso()
        payload = obj.get("payload")
        if not isinstance(payload, dict):
            payload = {}

        if record_type == "event_msg":
            event_type = payload.get("type")
            text = payload.get("message")
            if not isinstance(text, str) or not text.strip():
                continue
            if event_type == "user_message":
                staged.append((_text_message(Author.HUMAN, timestamp, text.strip()), False))
            elif event_type == "agent_message":
                staged.append((_text_message(Author.AGENT, timestamp, text.strip()), True))

        elif record_type == "response_item":
            message, structured = _parse_response_item(payload, timestamp)
            if message is None:
                continue
            has_structured_text = has_structured_text or structured
            staged.append((message, False))

    if has_structured_text:
        return [message for message, plain in staged if not plain]
    return [message for message, _ in staged]
