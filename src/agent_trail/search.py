"""Session search.

``quick`` mode only looks at session metadata; ``deep`` mode also scans
the raw transcript of every session that did not match on metadata.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING, Any

from .discovery.scanner import discover_sessions
from .logging import get_logger
from .store.models import Session

if TYPE_CHECKING:
    from .config import AgentTrailConfig

log = get_logger("search")


class SearchMode(Enum):
    QUICK = "quick"
    DEEP = "deep"


@dataclass
class SearchResult:
    results: list[Session]
    mode: SearchMode
    query: str

    @property
    def total_matches(self) -> int:
        return len(self.results)

    def to_dict(self) -> dict[str, Any]:
        return {
            "results": [s.to_dict() for s in self.results],
            "mode": self.mode.value,
            "query": self.query,
            "totalMatches": self.total_matches,
        }


def matches_metadata(session: Session, lower_query: str) -> bool:
    """Case-insensitive match on title, project, directory label and tags."""
    return (
        lower_query in session.title.lower()
        or lower_query in session.project_name.lower()
        or lower_query in session.directory_label.lower()
        or any(lower_query in tag.lower() for tag in session.tags)
    )


def matches_content(session: Session, lower_query: str) -> bool:
    """Case-insensitive substring scan of the raw transcript file."""
    try:
        content = Path(session.file_path).read_text(encoding="utf-8", errors="replace")
    except OSError as e:
        log.debug(f"Skipping unreadable session file {session.file_path}: {e}")
        return False
    return lower_query in content.lower()


def quick_search(sessions: list[Session], query: str) -> list[Session]:
    lower_query = query.lower()
    return [s for s in sessions if matches_metadata(s, lower_query)]


def deep_search(sessions: list[Session], query: str) -> list[Session]:
    lower_query = query.lower()
    return [
        s for s in sessions
        if matches_metadata(s, lower_query) or matches_content(s, lower_query)
    ]


def search(
    config: AgentTrailConfig, query: str, mode: SearchMode = SearchMode.QUICK
) -> SearchResult:
    """Search every discovered session.

    An empty query matches nothing.
    """
    if not query:
        return SearchResult(results=[], mode=mode, query=query)

    sessions = discover_sessions(config)
    if mode is SearchMode.DEEP:
        results = deep_search(sessions, query)
    else:
        results = quick_search(sessions, query)
    return SearchResult(results=results, mode=mode, query=query)
