"""Shared fixtures and helpers for AgentTrail tests."""

import json
import os
import time
from dataclasses import dataclass
from pathlib import Path

import pytest

from agent_trail.config import clear_config_cache


SIMPLE_SESSION = [
    {
        "type": "user",
        "message": {"content": [{"type": "text", "text": "Fix the bug in login"}]},
        "timestamp": "2026-01-26T12:00:00.000Z",
    },
    {
        "type": "assistant",
        "message": {"content": [{"type": "text", "text": "I'll take a look."}]},
        "timestamp": "2026-01-26T12:01:00.000Z",
    },
]

SESSION_WITH_TOOLS = [
    {
        "type": "user",
        "message": {"content": [{"type": "text", "text": "Create a file"}]},
        "timestamp": "2026-01-26T12:02:00.000Z",
    },
    {
        "type": "assistant",
        "message": {
            "content": [
                {"type": "text", "text": "Creating file..."},
                {
                    "type": "tool_use",
                    "name": "Write",
                    "id": "tool-1",
                    "input": {"file_path": "/tmp/example.ts", "content": "hello"},
                },
            ]
        },
        "timestamp": "2026-01-26T12:03:00.000Z",
    },
]

SESSION_WITH_THINKING = [
    {
        "type": "user",
        "message": {"content": [{"type": "text", "text": "Debug this"}]},
        "timestamp": "2026-01-26T12:04:00.000Z",
    },
    {
        "type": "assistant",
        "message": {
            "content": [
                {"type": "thinking", "thinking": "Analyzing the problem..."},
                {"type": "text", "text": "Found it."},
            ]
        },
        "timestamp": "2026-01-26T12:05:00.000Z",
    },
]


def to_jsonl(records: list) -> str:
    return "\n".join(json.dumps(r) for r in records)


def user_record(text: str, timestamp: str = "2026-01-26T12:10:00.000Z") -> dict:
    return {
        "type": "user",
        "message": {"content": [{"type": "text", "text": text}]},
        "timestamp": timestamp,
    }


def assistant_record(content: list, timestamp: str = "2026-01-26T12:11:00.000Z") -> dict:
    return {"type": "assistant", "message": {"content": content}, "timestamp": timestamp}


def question_record(tool_id: str = "q1") -> dict:
    return assistant_record(
        [
            {
                "type": "tool_use",
                "name": "AskUserQuestion",
                "id": tool_id,
                "input": {"prompt": "Need input"},
            }
        ]
    )


def write_session(sessions_dir: Path, project: str, session_id: str, records: list) -> Path:
    """Write a Claude-style session file and return its path."""
    project_dir = sessions_dir / project
    project_dir.mkdir(parents=True, exist_ok=True)
    session_file = project_dir / f"{session_id}.jsonl"
    session_file.write_text(to_jsonl(records), encoding="utf-8")
    return session_file


def append_record(session_file: Path, record: dict) -> None:
    with open(session_file, "a", encoding="utf-8") as f:
        f.write("\n" + json.dumps(record))


# A user record whose text holds a Latin-1 byte that is not valid UTF-8
LATIN1_USER_LINE = b'{"type": "user", "message": {"content": "caf\xe9 order"}}'


def append_bytes(session_file: Path, raw: bytes) -> None:
    with open(session_file, "ab") as f:
        f.write(b"\n" + raw)


def set_mtime(path: Path, seconds_ago: float) -> None:
    stamp = time.time() - seconds_ago
    os.utime(path, (stamp, stamp))


@dataclass
class SessionEnv:
    root: Path
    config_path: Path
    sessions_dir: Path
    codex_dir: Path

    def write_config(self, **overrides) -> None:
        config = {
            "directories": [
                {
                    "path": str(self.sessions_dir),
                    "label": "Test",
                    "color": "#10b981",
                    "enabled": True,
                    "type": "claude",
                },
                {
                    "path": str(self.codex_dir),
                    "label": "Codex Test",
                    "color": "#6366f1",
                    "enabled": True,
                    "type": "codex",
                },
            ],
            "pins": [],
            "customTags": {},
            "server": {"port": 9847},
        }
        config.update(overrides)
        self.config_path.write_text(json.dumps(config, indent=2), encoding="utf-8")
        clear_config_cache()


@pytest.fixture
def env(tmp_path, monkeypatch):
    """Isolated config file plus empty Claude and Codex session roots."""
    sessions_dir = tmp_path / "sessions"
    codex_dir = tmp_path / "codex"
    sessions_dir.mkdir()
    codex_dir.mkdir()

    environment = SessionEnv(
        root=tmp_path,
        config_path=tmp_path / "config.json",
        sessions_dir=sessions_dir,
        codex_dir=codex_dir,
    )
    monkeypatch.setenv("AGENTTRAIL_CONFIG", str(environment.config_path))
    environment.write_config()

    yield environment

    clear_config_cache()
