"""FastAPI server with the session API and SSE live updates."""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, HTTPException, Query, Request
from pydantic import BaseModel, Field
from sse_starlette.sse import EventSourceResponse

from . import __version__
from . import config as config_store
from .broadcast import session_event_stream
from .discovery.scanner import (
    discover_sessions,
    get_directory_list,
    get_project_list,
    get_session_by_id,
    get_tag_counts,
)
from .discovery.watcher import SessionWatcher
from .logging import get_logger
from .search import SearchMode, search
from .store.models import DirectoryConfig, SourceKind

log = get_logger("server")


# --- Request bodies ---


class DirectoryBody(BaseModel):
    path: str
    label: str
    color: str
    enabled: bool = True
    type: SourceKind = SourceKind.CLAUDE

    def to_directory(self) -> DirectoryConfig:
        return DirectoryConfig(
            path=self.path,
            label=self.label,
            color=self.color,
            enabled=self.enabled,
            type=self.type,
        )


class DirectoryUpdateBody(BaseModel):
    path: Optional[str] = None
    label: Optional[str] = None
    color: Optional[str] = None
    enabled: Optional[bool] = None
    type: Optional[SourceKind] = None


class ServerBody(BaseModel):
    port: int = config_store.DEFAULT_PORT


class ConfigBody(BaseModel):
    directories: list[DirectoryBody]
    pins: list[str] = Field(default_factory=list)
    customTags: dict[str, list[str]] = Field(default_factory=dict)
    server: ServerBody = Field(default_factory=ServerBody)


class TagsBody(BaseModel):
    tags: list[str]


def _session_not_found() -> HTTPException:
    return HTTPException(status_code=404, detail="Session not found")


def create_app(watcher: SessionWatcher | None = None) -> FastAPI:
    """Build the API application.

    Args:
        watcher: Session watcher shared by every live stream. A new one is
            created when omitted; either way it is torn down on shutdown.
    """
    session_watcher = watcher or SessionWatcher()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        log.info("AgentTrail server starting")
        yield
        await session_watcher.shutdown()

    app = FastAPI(title="AgentTrail", version=__version__, lifespan=lifespan)
    app.state.watcher = session_watcher

    # --- Sessions ---

    @app.get("/api/sessions")
    async def list_sessions() -> dict:
        sessions = discover_sessions(config_store.load_config())
        return {"sessions": [s.to_dict() for s in sessions]}

    @app.get("/api/sessions/{session_id}")
    async def session_detail(session_id: str) -> dict:
        detail = get_session_by_id(config_store.load_config(), session_id)
        if detail is None:
            raise _session_not_found()
        return {"session": detail.to_dict()}

    @app.get("/api/sessions/{session_id}/events")
    async def session_events(session_id: str, request: Request) -> EventSourceResponse:
        config = config_store.load_config()
        session = next((s for s in discover_sessions(config) if s.id == session_id), None)
        if session is None:
            raise _session_not_found()
        stream = session_event_stream(request.app.state.watcher, session)
        return EventSourceResponse(stream)

    @app.post("/api/sessions/{session_id}/tags")
    async def add_session_tags(session_id: str, body: TagsBody) -> dict:
        config_store.add_custom_tags(session_id, body.tags)
        return {"success": True}

    @app.delete("/api/sessions/{session_id}/tags/{tag}")
    async def remove_session_tag(session_id: str, tag: str) -> dict:
        config_store.remove_custom_tag(session_id, tag)
        return {"success": True}

    # --- Projections ---

    @app.get("/api/directories")
    async def list_directories() -> dict:
        return {"directories": get_directory_list(config_store.load_config())}

    @app.get("/api/projects")
    async def list_projects() -> dict:
        return {"projects": get_project_list(config_store.load_config())}

    @app.get("/api/tags")
    async def list_tags() -> dict:
        return {"tags": get_tag_counts(config_store.load_config())}

    @app.get("/api/search")
    async def search_sessions(
        q: str = "", mode: SearchMode = Query(SearchMode.QUICK)
    ) -> dict:
        return search(config_store.load_config(), q, mode).to_dict()

    # --- Config ---

    @app.get("/api/config")
    async def get_config() -> dict:
        return {
            "config": config_store.load_config().to_dict(),
            "configPath": str(config_store.get_config_path()),
        }

    @app.put("/api/config")
    async def put_config(body: ConfigBody) -> dict:
        new_config = config_store.AgentTrailConfig(
            directories=[d.to_directory() for d in body.directories],
            pins=list(body.pins),
            custom_tags={k: list(v) for k, v in body.customTags.items()},
            port=body.server.port,
        )
        config_store.save_config(new_config)
        return {"success": True, "config": new_config.to_dict()}

    @app.post("/api/directories")
    async def add_directory(body: DirectoryBody) -> dict:
        try:
            config_store.add_directory(body.to_directory())
        except ValueError as e:
            raise HTTPException(status_code=409, detail=str(e))
        return _directories_response()

    @app.put("/api/directories/{path:path}")
    async def update_directory(path: str, body: DirectoryUpdateBody) -> dict:
        updates = body.model_dump(exclude_none=True)
        if "type" in updates:
            updates["type"] = updates["type"].value
        try:
            config_store.update_directory(_directory_path(path), updates)
        except KeyError:
            raise HTTPException(status_code=404, detail="Directory not found")
        return _directories_response()

    @app.delete("/api/directories/{path:path}")
    async def remove_directory(path: str) -> dict:
        config_store.remove_directory(_directory_path(path))
        return _directories_response()

    # --- Pins ---

    @app.post("/api/pins/{session_id}")
    async def pin_session(session_id: str) -> dict:
        config_store.add_pin(session_id)
        return {"success": True, "pinned": True}

    @app.delete("/api/pins/{session_id}")
    async def unpin_session(session_id: str) -> dict:
        config_store.remove_pin(session_id)
        return {"success": True, "pinned": False}

    @app.get("/health")
    async def health(request: Request) -> dict:
        return {"status": "ok", "watched": request.app.state.watcher.watched_count}

    return app


def _directory_path(path: str) -> str:
    # Accept absolute paths with or without their leading slash
    configured = {d.path for d in config_store.load_config().directories}
    if path not in configured and f"/{path}" in configured:
        return f"/{path}"
    return path


def _directories_response() -> dict:
    config = config_store.load_config()
    return {"success": True, "directories": [d.to_dict() for d in config.directories]}
