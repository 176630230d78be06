"""Session discovery, parsing and watching."""

from .codex_parser import extract_codex_session_meta, parse_codex_session_file
from .parser import extract_first_user_message, parse_session_file, parse_transcript
from .scanner import (
    discover_sessions,
    get_directory_list,
    get_project_list,
    get_session_by_id,
    get_tag_counts,
)
from .status import determine_session_status
from .tagger import generate_tags
from .watcher import SessionWatcher, WatcherEvent

__all__ = [
    "SessionWatcher",
    "WatcherEvent",
    "determine_session_status",
    "discover_sessions",
    "extract_codex_session_meta",
    "extract_first_user_message",
    "generate_tags",
    "get_directory_list",
    "get_project_list",
    "get_session_by_id",
    "get_tag_counts",
    "parse_codex_session_file",
    "parse_session_file",
    "parse_transcript",
]
