"""Data models for AgentTrail."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional, Union


class Author(Enum):
    """Who wrote a message. Values match the transcript record types."""
    HUMAN = "user"
    AGENT = "assistant"


class SessionStatus(Enum):
    """Live status of a session."""
    IDLE = "idle"
    WORKING = "working"
    AWAITING = "awaiting"


def format_timestamp(moment: datetime) -> str:
    """ISO 8601 in UTC with millisecond precision and a Z suffix.

    Naive datetimes are taken as local time.
    """
    return moment.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


class SourceKind(Enum):
    """Transcript family a directory holds."""
    CLAUDE = "claude"
    CODEX = "codex"

    @property
    def assistant_label(self) -> str:
        return "Codex" if self is SourceKind.CODEX else "Claude"


# --- Content blocks ---


@dataclass(frozen=True)
class TextBlock:
    """Plain text."""
    text: str

    type = "text"

    def to_dict(self) -> dict[str, Any]:
        return {"type": self.type, "text": self.text}


@dataclass(frozen=True)
class ToolUseBlock:
    """A tool invocation requested by the agent."""
    id: str
    name: str
    input: dict[str, Any] = field(default_factory=dict)

    type = "tool_use"

    def to_dict(self) -> dict[str, Any]:
        return {"type": self.type, "id": self.id, "name": self.name, "input": self.input}


@dataclass(frozen=True)
class ToolResultBlock:
    """Outcome of a tool invocation, correlated by ``tool_use_id``.

    ``content`` is either a string or the raw list of nested blocks as
    recorded in the transcript.
    """
    tool_use_id: str
    content: Union[str, list[Any]] = ""

    type = "tool_result"

    def to_dict(self) -> dict[str, Any]:
        return {"type": self.type, "tool_use_id": self.tool_use_id, "content": self.content}


@dataclass(frozen=True)
class ThinkingBlock:
    """Internal reasoning note."""
    thinking: str

    type = "thinking"

    def to_dict(self) -> dict[str, Any]:
        return {"type": self.type, "thinking": self.thinking}


ContentBlock = Union[TextBlock, ToolUseBlock, ToolResultBlock, ThinkingBlock]


def content_block_from_dict(raw: Any) -> Optional[ContentBlock]:
    """Build a content block from a raw transcript object.

    Returns None for unknown block types or blocks missing required fields.
    """
    if not isinstance(raw, dict):
        return None

    block_type = raw.get("type")
    if block_type == "text":
        text = raw.get("text")
        return TextBlock(text=text) if isinstance(text, str) else None
    if block_type == "tool_use":
        name = raw.get("name")
        if not isinstance(name, str):
            return None
        tool_input = raw.get("input")
        return ToolUseBlock(
            id=str(raw.get("id") or ""),
            name=name,
            input=tool_input if isinstance(tool_input, dict) else {},
        )
    if block_type == "tool_result":
        content = raw.get("content", "")
        if content is None:
            content = ""
        elif not isinstance(content, (str, list)):
            content = str(content)
        return ToolResultBlock(tool_use_id=str(raw.get("tool_use_id") or ""), content=content)
    if block_type == "thinking":
        thinking = raw.get("thinking")
        return ThinkingBlock(thinking=thinking) if isinstance(thinking, str) else None
    return None


# --- Messages and sessions ---


@dataclass(frozen=True)
class Message:
    """A single message in a transcript."""
    id: str
    author: Author
    timestamp: str
    content: tuple[ContentBlock, ...]

    @property
    def tool_uses(self) -> list[ToolUseBlock]:
        return [b for b in self.content if isinstance(b, ToolUseBlock)]

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "type": self.author.value,
            "timestamp": self.timestamp,
            "content": [block.to_dict() for block in self.content],
        }


@dataclass
class DirectoryConfig:
    """A configured transcript root."""
    path: str
    label: str
    color: str = "#10b981"
    enabled: bool = True
    type: SourceKind = SourceKind.CLAUDE

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> DirectoryConfig:
        try:
            source = SourceKind(data.get("type") or "claude")
        except ValueError:
            source = SourceKind.CLAUDE
        return cls(
            path=str(data["path"]),
            label=str(data.get("label") or data["path"]),
            color=str(data.get("color") or "#10b981"),
            enabled=data.get("enabled") is not False,
            type=source,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "path": self.path,
            "label": self.label,
            "color": self.color,
            "enabled": self.enabled,
            "type": self.type.value,
        }


@dataclass
class Session:
    """A transcript file as seen by one discovery pass."""
    id: str
    directory: str
    directory_label: str
    directory_color: str
    source: SourceKind
    project: str
    project_name: str
    title: str
    timestamp: str
    last_modified: datetime
    message_count: int
    tags: list[str]
    status: SessionStatus
    file_path: str
    is_pinned: bool = False
    chain_id: Optional[str] = None
    chain_index: Optional[int] = None
    chain_length: Optional[int] = None

    def with_chain(self, chain_id: str, chain_index: int, chain_length: int) -> Session:
        """Return a copy placed in a chain."""
        return replace(
            self, chain_id=chain_id, chain_index=chain_index, chain_length=chain_length
        )

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "id": self.id,
            "directory": self.directory,
            "directoryLabel": self.directory_label,
            "directoryColor": self.directory_color,
            "project": self.project,
            "projectName": self.project_name,
            "title": self.title,
            "timestamp": self.timestamp,
            "lastModified": format_timestamp(self.last_modified),
            "messageCount": self.message_count,
            "tags": list(self.tags),
            "status": self.status.value,
            "filePath": self.file_path,
            "isPinned": self.is_pinned,
            "source": self.source.value,
            "assistantLabel": self.source.assistant_label,
        }
        if self.chain_id is not None:
            data["chainId"] = self.chain_id
            data["chainIndex"] = self.chain_index
            data["chainLength"] = self.chain_length
        return data


@dataclass
class SessionDetail:
    """A session together with its full message history."""
    session: Session
    messages: list[Message] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        data = self.session.to_dict()
        data["messages"] = [m.to_dict() for m in self.messages]
        return data
