"""AgentTrail configuration store.

Holds the list of transcript directories, pinned sessions, custom tags and
server settings in a JSON file (``~/.agenttrail/config.json`` unless
``AGENTTRAIL_CONFIG`` points elsewhere). The file is read lazily, cached
in-process and written through on every change.
"""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from .logging import get_logger
from .store.models import DirectoryConfig, SourceKind

log = get_logger("config")

DEFAULT_PORT = 9847

# Server bind overrides
HOST = os.getenv("AGENTTRAIL_HOST", "127.0.0.1")
PORT_OVERRIDE = os.getenv("AGENTTRAIL_PORT")


def get_config_path() -> Path:
    """Path of the config file, honoring ``AGENTTRAIL_CONFIG``."""
    override = os.getenv("AGENTTRAIL_CONFIG")
    if override:
        return Path(override).expanduser()
    return Path.home() / ".agenttrail" / "config.json"


def resolve_user_path(path: str) -> Path:
    """Expand a leading ``~`` in a configured directory path."""
    return Path(path).expanduser()


@dataclass
class AgentTrailConfig:
    """Everything persisted between runs."""

    directories: list[DirectoryConfig] = field(default_factory=list)
    pins: list[str] = field(default_factory=list)
    custom_tags: dict[str, list[str]] = field(default_factory=dict)
    port: int = DEFAULT_PORT

    @property
    def enabled_directories(self) -> list[DirectoryConfig]:
        return [d for d in self.directories if d.enabled]

    @property
    def server_port(self) -> int:
        if PORT_OVERRIDE:
            try:
                return int(PORT_OVERRIDE)
            except ValueError:
                log.warning(f"Ignoring invalid AGENTTRAIL_PORT: {PORT_OVERRIDE}")
        return self.port

    def is_pinned(self, session_id: str) -> bool:
        return session_id in self.pins

    def get_custom_tags(self, session_id: str) -> list[str]:
        return list(self.custom_tags.get(session_id, []))

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> AgentTrailConfig:
        directories = []
        for raw in data.get("directories") or []:
            try:
                directories.append(DirectoryConfig.from_dict(raw))
            except (KeyError, TypeError, AttributeError) as e:
                log.warning(f"Skipping invalid directory entry {raw!r}: {e}")

        custom_tags = {
            str(session_id): [str(t) for t in tags]
            for session_id, tags in (data.get("customTags") or {}).items()
            if isinstance(tags, list)
        }
        server = data.get("server") or {}
        try:
            port = int(server.get("port", DEFAULT_PORT))
        except (TypeError, ValueError):
            port = DEFAULT_PORT

        return cls(
            directories=directories,
            pins=[str(p) for p in data.get("pins") or []],
            custom_tags=custom_tags,
            port=port,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "directories": [d.to_dict() for d in self.directories],
            "pins": list(self.pins),
            "customTags": {k: list(v) for k, v in self.custom_tags.items()},
            "server": {"port": self.port},
        }


def default_config() -> AgentTrailConfig:
    """Config used when no file exists yet: the standard transcript roots."""
    return AgentTrailConfig(
        directories=[
            DirectoryConfig(
                path="~/.claude/projects",
                label="Claude",
                color="#10b981",
                type=SourceKind.CLAUDE,
            ),
            DirectoryConfig(
                path="~/.codex/sessions",
                label="Codex",
                color="#6366f1",
                type=SourceKind.CODEX,
            ),
        ]
    )


_cache: dict[Path, AgentTrailConfig] = {}


def clear_config_cache() -> None:
    """Forget the cached config so the next load re-reads the file."""
    _cache.clear()


def load_config() -> AgentTrailConfig:
    """Load the config, falling back to defaults if missing or invalid."""
    path = get_config_path()
    cached = _cache.get(path)
    if cached is not None:
        return cached

    config = default_config()
    if path.exists():
        try:
            with open(path, "r", encoding="utf-8") as f:
                data = json.load(f)
            if isinstance(data, dict):
                config = AgentTrailConfig.from_dict(data)
            else:
                log.warning(f"Config file {path} is not a JSON object, using defaults")
        except (json.JSONDecodeError, OSError) as e:
            log.warning(f"Failed to load config from {path}: {e}")

    _cache[path] = config
    return config


def save_config(config: AgentTrailConfig) -> None:
    """Write the config file and refresh the cache."""
    path = get_config_path()
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        json.dump(config.to_dict(), f, indent=2)
    _cache[path] = config
    log.debug(f"Saved config to {path}")


# --- Directories ---


def add_directory(directory: DirectoryConfig) -> None:
    config = load_config()
    if any(d.path == directory.path for d in config.directories):
        raise ValueError(f"Directory already configured: {directory.path}")
    config.directories.append(directory)
    save_config(config)


def remove_directory(path: str) -> None:
    config = load_config()
    config.directories = [d for d in config.directories if d.path != path]
    save_config(config)


def update_directory(path: str, updates: dict[str, Any]) -> None:
    """Apply partial updates to the directory configured at ``path``.

    Raises:
        KeyError: If no such directory is configured
    """
    config = load_config()
    for i, directory in enumerate(config.directories):
        if directory.path == path:
            merged = {**directory.to_dict(), **{k: v for k, v in updates.items() if v is not None}}
            config.directories[i] = DirectoryConfig.from_dict(merged)
            save_config(config)
            return
    raise KeyError(path)


# --- Pins ---


def add_pin(session_id: str) -> None:
    config = load_config()
    if session_id not in config.pins:
        config.pins.append(session_id)
        save_config(config)


def remove_pin(session_id: str) -> None:
    config = load_config()
    if session_id in config.pins:
        config.pins.remove(session_id)
        save_config(config)


# --- Custom tags ---


def get_custom_tags(session_id: str) -> list[str]:
    return load_config().get_custom_tags(session_id)


def add_custom_tags(session_id: str, tags: list[str]) -> None:
    config = load_config()
    existing = config.custom_tags.setdefault(session_id, [])
    for tag in tags:
        tag = tag.strip()
        if tag and tag not in existing:
            existing.append(tag)
    save_config(config)


def remove_custom_tag(session_id: str, tag: str) -> None:
    config = load_config()
    existing = config.custom_tags.get(session_id)
    if not existing or tag not in existing:
        return
    existing.remove(tag)
    if not existing:
        del config.custom_tags[session_id]
    save_config(config)
