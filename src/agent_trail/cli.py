"""CLI entry point for AgentTrail."""

from datetime import datetime, timezone

import click
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from . import __version__

STATUS_STYLES = {
    "working": "yellow",
    "awaiting": "blue",
    "idle": "dim",
}


def _age(last_modified: datetime) -> str:
    seconds = (datetime.now(timezone.utc) - last_modified).total_seconds()
    if seconds < 60:
        return "just now"
    if seconds < 3600:
        return f"{int(seconds // 60)}m ago"
    if seconds < 86400:
        return f"{int(seconds // 3600)}h ago"
    return f"{int(seconds // 86400)}d ago"


def _session_table(sessions, title: str) -> Table:
    table = Table(title=title, show_lines=False)
    table.add_column("ID", style="cyan", no_wrap=True)
    table.add_column("Project")
    table.add_column("Title", overflow="ellipsis")
    table.add_column("Tags")
    table.add_column("Status")
    table.add_column("Modified", justify="right")

    for s in sessions:
        marker = "* " if s.is_pinned else ""
        chain = f" [{s.chain_index + 1}/{s.chain_length}]" if s.chain_id else ""
        style = STATUS_STYLES.get(s.status.value, "")
        table.add_row(
            f"{marker}{s.id[:14]}",
            escape(s.project_name),
            escape(f"{s.title}{chain}"),
            escape(", ".join(s.tags)),
            f"[{style}]{s.status.value}[/{style}]" if style else s.status.value,
            _age(s.last_modified),
        )
    return table


@click.group(invoke_without_command=True)
@click.option("-v", "--verbose", is_flag=True, help="Enable verbose logging")
@click.version_option(version=__version__)
@click.pass_context
def main(ctx, verbose: bool):
    """AgentTrail - browse and live-follow your AI coding agent sessions.

    Reads Claude Code and Codex session transcripts from the configured
    directories and serves them over a small HTTP API with live updates.

    Usage:
        agent-trail          Start the server
        agent-trail scan     List discovered sessions
    """
    from .logging import setup_logging

    setup_logging(verbose=verbose)
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose

    # If no subcommand is given, run the server
    if ctx.invoked_subcommand is None:
        ctx.invoke(serve)


@main.command()
@click.option("--host", default=None, help="Interface to bind (default 127.0.0.1)")
@click.option("--port", default=None, type=int, help="Port to bind (default from config)")
def serve(host: str | None, port: int | None):
    """Start the AgentTrail API server."""
    import uvicorn

    from .config import HOST, load_config
    from .server import create_app

    config = load_config()
    host = host or HOST
    port = port or config.server_port

    click.echo(f"AgentTrail listening on http://{host}:{port}")
    uvicorn.run(create_app(), host=host, port=port, log_level="warning")


@main.command()
@click.option("--limit", default=50, help="Maximum sessions to display")
def scan(limit: int):
    """Scan and list discovered sessions.

    Pinned sessions are listed first and marked with '*'.
    """
    from .config import load_config
    from .discovery import discover_sessions

    sessions = discover_sessions(load_config())
    if not sessions:
        click.echo("No sessions found.")
        return

    shown = sessions[:limit]
    Console().print(_session_table(shown, f"{len(shown)} of {len(sessions)} sessions"))


@main.command()
@click.argument("query")
@click.option("--deep", is_flag=True, help="Also search transcript contents")
def search(query: str, deep: bool):
    """Search sessions by title, project, directory and tags."""
    from .config import load_config
    from .search import SearchMode, search as run_search

    result = run_search(load_config(), query, SearchMode.DEEP if deep else SearchMode.QUICK)
    if not result.results:
        click.echo(f"No sessions match '{query}'.")
        return

    title = f"{result.total_matches} matches for '{escape(query)}' ({result.mode.value})"
    Console().print(_session_table(result.results, title))


if __name__ == "__main__":
    main()
