"""Data models for sessions, messages and content blocks."""

from .models import (
    Author,
    ContentBlock,
    DirectoryConfig,
    Message,
    Session,
    SessionDetail,
    SessionStatus,
    SourceKind,
    TextBlock,
    ThinkingBlock,
    ToolResultBlock,
    ToolUseBlock,
    content_block_from_dict,
    format_timestamp,
)

__all__ = [
    "Author",
    "ContentBlock",
    "DirectoryConfig",
    "Message",
    "Session",
    "SessionDetail",
    "SessionStatus",
    "SourceKind",
    "TextBlock",
    "ThinkingBlock",
    "ToolResultBlock",
    "ToolUseBlock",
    "content_block_from_dict",
    "format_timestamp",
]
