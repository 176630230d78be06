"""Scanner for discovering agent sessions.

Walks every enabled transcript directory, parses each session file and
builds the session list shown by the API. Nothing is cached: every call
recomputes from the filesystem.
"""

from __future__ import annotations

import os
from collections import defaultdict
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from ..config import AgentTrailConfig, resolve_user_path
from ..logging import get_logger
from ..store.models import (
    DirectoryConfig,
    Message,
    Session,
    SessionDetail,
    SourceKind,
    format_timestamp,
)
from .codex_parser import extract_codex_session_meta, parse_codex_session_file
from .parser import (
    extract_first_user_message,
    is_sidechain_file,
    parse_session_file,
    parse_transcript,
)
from .status import determine_session_status
from .tagger import generate_tags

log = get_logger("scanner")

SESSION_SUFFIX = ".jsonl"
# Sub-agent transcripts live next to their parent session
AGENT_FILE_PREFIX = "agent-"
CODEX_ID_PREFIX = "codex:"
UNKNOWN_PROJECT = "Unknown"


def project_dir_to_path(dir_name: str) -> str:
    """Recover a project path from a Claude-encoded folder name.

    Claude replaces every ``/`` (and ``.``) in the working directory with
    ``-``, so ``-Users-me-my-app`` is ambiguous. Starting at the root, the
    longest run of remaining tokens that names an existing directory is
    taken, shrinking one token at a time. Whatever cannot be matched is
    appended literally.

    Example: -Users-me-my-app -> /Users/me/my-app (when that directory exists)
    """
    stripped = dir_name[1:] if dir_name.startswith("-") else dir_name
    parts = stripped.split("-")

    current = Path("/")
    i = 0
    while i < len(parts):
        found = False
        for length in range(len(parts) - i, 0, -1):
            candidate = current / "-".join(parts[i:i + length])
            if candidate.is_dir():
                current = candidate
                i += length
                found = True
                break

        if not found:
            current = current / "-".join(parts[i:])
            break

    return str(current)


def get_project_name(project_path: str, encoded_dir: str | None = None) -> str:
    """Short display name for a project path."""
    parts = [p for p in project_path.split("/") if p]
    if parts:
        return parts[-1]

    if encoded_dir and "-code-" in encoded_dir:
        return encoded_dir.rsplit("-code-", 1)[1]

    return project_path


def _mtime(stat_result: os.stat_result) -> datetime:
    return datetime.fromtimestamp(stat_result.st_mtime, tz=timezone.utc)


def _merge_tags(auto_tags: list[str], custom_tags: list[str]) -> list[str]:
    return list(dict.fromkeys([*auto_tags, *custom_tags]))


def _build_session(
    *,
    session_id: str,
    dir_config: DirectoryConfig,
    config: AgentTrailConfig,
    messages: list[Message],
    file_path: Path,
    last_modified: datetime,
    project: str,
    project_name: str,
    timestamp: str | None,
) -> Session:
    return Session(
        id=session_id,
        directory=dir_config.path,
        directory_label=dir_config.label,
        directory_color=dir_config.color,
        source=dir_config.type,
        project=project,
        project_name=project_name,
        title=extract_first_user_message(messages),
        timestamp=timestamp or messages[0].timestamp or format_timestamp(last_modified),
        last_modified=last_modified,
        message_count=len(messages),
        tags=_merge_tags(generate_tags(messages), config.get_custom_tags(session_id)),
        status=determine_session_status(messages, last_modified),
        file_path=str(file_path),
        is_pinned=config.is_pinned(session_id),
    )


def _discover_claude_sessions(
    dir_config: DirectoryConfig, config: AgentTrailConfig
) -> list[Session]:
    root = resolve_user_path(dir_config.path)
    sessions: list[Session] = []

    try:
        project_dirs = sorted(root.iterdir())
    except OSError as e:
        log.warning(f"Session directory unavailable: {root}: {e}")
        return []

    for project_dir in project_dirs:
        try:
            if not project_dir.is_dir():
                continue
            session_files = sorted(
                f for f in project_dir.glob(f"*{SESSION_SUFFIX}")
                if not f.name.startswith(AGENT_FILE_PREFIX)
            )
        except OSError as e:
            log.debug(f"Failed to list project directory {project_dir}: {e}")
            continue

        project: str | None = None
        for session_file in session_files:
            try:
                stat = session_file.stat()
                content = session_file.read_text(encoding="utf-8", errors="replace")
            except OSError as e:
                log.debug(f"Failed to read session file {session_file}: {e}")
                continue

            if is_sidechain_file(content):
                continue

            messages = parse_session_file(content)
            if not messages:
                continue

            # Probing the filesystem is slow, only do it once per folder
            if project is None:
                project = project_dir_to_path(project_dir.name)

            sessions.append(
                _build_session(
                    session_id=session_file.stem,
                    dir_config=dir_config,
                    config=config,
                    messages=messages,
                    file_path=session_file,
                    last_modified=_mtime(stat),
                    project=project,
                    project_name=get_project_name(project, project_dir.name),
                    timestamp=None,
                )
            )

    return sessions


def walk_session_files(root: Path) -> list[Path]:
    """Recursively collect every ``.jsonl`` file under ``root``.

    Unreadable subdirectories are skipped.
    """
    found: list[Path] = []

    def on_error(error: OSError) -> None:
        log.debug(f"Skipping unreadable directory: {error}")

    for dirpath, _dirnames, filenames in os.walk(root, onerror=on_error):
        for name in filenames:
            if name.endswith(SESSION_SUFFIX):
                found.append(Path(dirpath) / name)

    return sorted(found)


def _discover_codex_sessions(
    dir_config: DirectoryConfig, config: AgentTrailConfig
) -> list[Session]:
    root = resolve_user_path(dir_config.path)
    if not root.is_dir():
        log.warning(f"Session directory unavailable: {root}")
        return []

    sessions: list[Session] = []
    for session_file in walk_session_files(root):
        try:
            stat = session_file.stat()
            content = session_file.read_text(encoding="utf-8", errors="replace")
        except OSError as e:
            log.debug(f"Failed to read session file {session_file}: {e}")
            continue

        messages = parse_codex_session_file(content)
        if not messages:
            continue

        meta = extract_codex_session_meta(content)
        project = meta.cwd or UNKNOWN_PROJECT
        project_name = get_project_name(meta.cwd) if meta.cwd else UNKNOWN_PROJECT

        sessions.append(
            _build_session(
                session_id=f"{CODEX_ID_PREFIX}{session_file.stem}",
                dir_config=dir_config,
                config=config,
                messages=messages,
                file_path=session_file,
                last_modified=_mtime(stat),
                project=project,
                project_name=project_name,
                timestamp=meta.started_at,
            )
        )

    return sessions


def discover_sessions_in_directory(
    dir_config: DirectoryConfig, config: AgentTrailConfig
) -> list[Session]:
    """Discover sessions in a single configured directory."""
    if dir_config.type is SourceKind.CODEX:
        return _discover_codex_sessions(dir_config, config)
    return _discover_claude_sessions(dir_config, config)


def group_sessions_into_chains(sessions: list[Session]) -> list[Session]:
    """Group sessions continuing the same conversation and sort the result.

    Sessions sharing directory, project and (case/whitespace-insensitive)
    title form a chain; index 0 is the most recent. Pinned sessions come
    first, then everything by last modification, newest first.
    """
    chains: dict[tuple[str, str, str], list[Session]] = defaultdict(list)
    for session in sessions:
        key = (session.directory, session.project, session.title.strip().lower())
        chains[key].append(session)

    result: list[Session] = []
    for members in chains.values():
        members.sort(key=lambda s: s.last_modified, reverse=True)
        if len(members) == 1:
            result.append(members[0])
            continue

        chain_id = members[0].id
        for index, session in enumerate(members):
            result.append(session.with_chain(chain_id, index, len(members)))

    result.sort(key=lambda s: s.last_modified, reverse=True)
    result.sort(key=lambda s: not s.is_pinned)
    return result


def discover_sessions(config: AgentTrailConfig) -> list[Session]:
    """Scan every enabled directory for sessions.

    Args:
        config: Loaded configuration (directories, pins, custom tags)

    Returns:
        Chained sessions, pinned first, then newest first
    """
    all_sessions: list[Session] = []
    for dir_config in config.enabled_directories:
        all_sessions.extend(discover_sessions_in_directory(dir_config, config))

    log.debug(f"Found {len(all_sessions)} sessions")
    return group_sessions_into_chains(all_sessions)


def read_session_messages(session: Session) -> list[Message]:
    """Re-read and parse a session's transcript."""
    content = Path(session.file_path).read_text(encoding="utf-8", errors="replace")
    return parse_transcript(content, session.source)


def get_session_by_id(config: AgentTrailConfig, session_id: str) -> SessionDetail | None:
    """Find a session and load its full message history."""
    session = next((s for s in discover_sessions(config) if s.id == session_id), None)
    if session is None:
        return None

    try:
        messages = read_session_messages(session)
    except OSError as e:
        log.warning(f"Failed to read session {session_id}: {e}")
        return None

    return SessionDetail(session=session, messages=messages)


def get_project_list(config: AgentTrailConfig) -> list[dict[str, Any]]:
    """Projects with their session counts, most active first."""
    projects: dict[tuple[str, str], dict[str, Any]] = {}
    for session in discover_sessions(config):
        key = (session.directory, session.project)
        if key in projects:
            projects[key]["count"] += 1
        else:
            projects[key] = {
                "name": session.project_name,
                "path": session.project,
                "directory": session.directory,
                "count": 1,
            }

    return sorted(projects.values(), key=lambda p: p["count"], reverse=True)


def get_tag_counts(config: AgentTrailConfig) -> dict[str, int]:
    """Number of sessions carrying each tag."""
    counts: dict[str, int] = defaultdict(int)
    for session in discover_sessions(config):
        for tag in session.tags:
            counts[tag] += 1
    return dict(counts)


def get_directory_list(config: AgentTrailConfig) -> list[dict[str, Any]]:
    """Every configured directory with the number of sessions found in it."""
    counts: dict[str, int] = defaultdict(int)
    for session in discover_sessions(config):
        counts[session.directory] += 1

    return [
        {**directory.to_dict(), "count": counts.get(directory.path, 0)}
        for directory in config.directories
    ]
