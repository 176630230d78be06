"""Keyword based auto-tagging for sessions."""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Sequence

from ..store.models import Message, TextBlock, ToolUseBlock

MAX_AUTO_TAGS = 3


@dataclass(frozen=True)
class TagRule:
    tag: str
    keywords: tuple[str, ...]
    tool_patterns: tuple[str, ...] = ()


# Order matters: the first three matching rules win
TAG_RULES: tuple[TagRule, ...] = (
    TagRule(
        "debugging",
        (
            "bug", "fix", "error", "issue", "broken", "not working", "failing",
            "crash", "debug", "investigate", "401", "404", "500", "exception",
            "undefined", "null",
        ),
    ),
    TagRule(
        "feature",
        ("add", "implement", "create", "build", "new", "feature", "functionality", "support"),
    ),
    TagRule(
        "refactoring",
        (
            "refactor", "reorganize", "restructure", "clean up", "improve",
            "optimize", "simplify", "extract", "rename",
        ),
    ),
    TagRule(
        "git",
        (
            "commit", "push", "pull", "merge", "branch", "git", "pr",
            "pull request", "rebase", "checkout",
        ),
        tool_patterns=("git ",),
    ),
    TagRule(
        "testing",
        ("test", "spec", "jest", "vitest", "pytest", "coverage", "mock", "stub", "assert"),
        tool_patterns=("test", "jest", "vitest", "pytest"),
    ),
    TagRule(
        "docs",
        ("document", "readme", "comment", "explain", "description", "jsdoc", "docstring"),
    ),
    TagRule(
        "config",
        (
            "config", "configuration", "setup", "env", "environment", "settings",
            ".env", "package.json", "tsconfig",
        ),
    ),
    TagRule(
        "api",
        (
            "api", "endpoint", "route", "request", "response", "rest", "graphql",
            "fetch", "http",
        ),
    ),
    TagRule(
        "ui",
        (
            "ui", "css", "style", "component", "button", "form", "layout",
            "design", "frontend", "react", "vue", "html",
        ),
    ),
)


def _searchable_text(messages: Sequence[Message]) -> str:
    parts: list[str] = []
    for message in messages:
        for block in message.content:
            if isinstance(block, TextBlock) and block.text:
                parts.append(block.text.lower())
            elif isinstance(block, ToolUseBlock):
                if block.name:
                    parts.append(block.name.lower())
                if block.input:
                    parts.append(
                        json.dumps(
                            block.input, separators=(",", ":"), ensure_ascii=False, default=str
                        ).lower()
                    )
    return " ".join(parts)


def generate_tags(messages: Sequence[Message]) -> list[str]:
    """Return up to three tags describing what a session is about."""
    full_text = _searchable_text(messages)
    tags: list[str] = []

    for rule in TAG_RULES:
        if any(kw in full_text for kw in rule.keywords) or any(
            pattern in full_text for pattern in rule.tool_patterns
        ):
            tags.append(rule.tag)
        if len(tags) == MAX_AUTO_TAGS:
            break

    return tags
