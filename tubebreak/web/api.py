"""Minimal FastAPI interface for managing break playlists."""

from __future__ import annotations

import threading
from datetime import datetime
from pathlib import Path
from typing import List, Optional

from fastapi import FastAPI, HTTPException, Query
from pydantic import BaseModel

from ..actions import DispatchError
from ..app_context import (
    AppContext,
    build_dispatcher,
    build_service,
    determine_paths,
    load_context,
)
from ..config import ConfigError
from ..dispatcher import TickContext
from ..playlists import add_playlist, refresh_playlists, remove_playlist
from ..schedule import classify, upcoming
from ..services import RateLimiter
from ..state import DuplicatePlaylistError, PlaylistSource, StateConflictError
from ..supervisor import resolve_timezone

app = FastAPI(title="tubebreak API", version="0.1.0")
app.state.limiter = None
_limiter_lock = threading.Lock()


class PlaylistPayload(BaseModel):
    playlist: str
    resolve: bool = True


class EnabledPayload(BaseModel):
    enabled: bool


class PlaylistSummary(BaseModel):
    id: str
    display_name: Optional[str] = None
    item_count: int
    items_resolved: bool


class StatusResponse(BaseModel):
    enabled: bool
    phase: str
    next_break: Optional[str] = None
    next_work: Optional[str] = None
    playlist_count: int
    last_status: Optional[str] = None
    last_status_at: Optional[str] = None


class RefreshResponse(BaseModel):
    id: str
    errors: List[str]


class OpenResponse(BaseModel):
    url: str


def _load_app_context(config_dir: Optional[str]) -> AppContext:
    try:
        paths = determine_paths(Path(config_dir) if config_dir else None)
        return load_context(paths)
    except ConfigError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc


def _shared_limiter(context: AppContext) -> RateLimiter:
    """Return the process-wide limiter, creating it on first use."""

    with _limiter_lock:
        if app.state.limiter is None:
            app.state.limiter = RateLimiter(context.global_config.fetch.min_interval_seconds)
        return app.state.limiter


def _summary(source: PlaylistSource) -> PlaylistSummary:
    return PlaylistSummary(
        id=source.id,
        display_name=source.display_name,
        item_count=len(source.items),
        items_resolved=source.items_resolved,
    )


@app.get("/status", response_model=StatusResponse)
def extension_status(config_dir: Optional[str] = Query(default=None)):
    context = _load_app_context(config_dir)
    config = context.store.load()
    tz, _ = resolve_timezone(context.global_config.runtime.timezone)
    now = datetime.now(tz)
    schedule = context.global_config.schedule
    next_break, next_work = upcoming(now, schedule)
    return StatusResponse(
        enabled=config.enabled,
        phase=classify(now, schedule).value,
        next_break=next_break.isoformat() if next_break else None,
        next_work=next_work.isoformat() if next_work else None,
        playlist_count=len(config.playlists),
        last_status=config.last_status,
        last_status_at=config.last_status_at,
    )


@app.get("/playlists", response_model=dict[str, list[PlaylistSummary]])
def list_playlists(config_dir: Optional[str] = Query(default=None)):
    context = _load_app_context(config_dir)
    return {"playlists": [_summary(source) for source in context.store.load().playlists]}


@app.post("/playlists", response_model=PlaylistSummary, status_code=201)
def create_playlist(body: PlaylistPayload, config_dir: Optional[str] = Query(default=None)):
    context = _load_app_context(config_dir)
    service = build_service(context, _shared_limiter(context)) if body.resolve else None
    try:
        source = add_playlist(context.store, body.playlist, service)
    except DuplicatePlaylistError as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except StateConflictError as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc
    return _summary(source)


@app.delete("/playlists/{playlist_id}", status_code=204)
def delete_playlist(playlist_id: str, config_dir: Optional[str] = Query(default=None)):
    context = _load_app_context(config_dir)
    try:
        remove_playlist(context.store, playlist_id)
    except KeyError as exc:
        raise HTTPException(status_code=404, detail=f"Unknown playlist: {playlist_id}") from exc


@app.post("/playlists/{playlist_id}/refresh", response_model=RefreshResponse)
def refresh_playlist(playlist_id: str, config_dir: Optional[str] = Query(default=None)):
    context = _load_app_context(config_dir)
    if context.store.load().find(playlist_id) is None:
        raise HTTPException(status_code=404, detail=f"Unknown playlist: {playlist_id}")
    service = build_service(context, _shared_limiter(context))
    results = refresh_playlists(context.store, service, playlist_id)
    return RefreshResponse(id=playlist_id, errors=results.get(playlist_id, []))


@app.put("/enabled", response_model=EnabledPayload)
def set_enabled(body: EnabledPayload, config_dir: Optional[str] = Query(default=None)):
    context = _load_app_context(config_dir)
    saved = context.store.update(lambda config: config.set_enabled(body.enabled))
    return EnabledPayload(enabled=saved.enabled)


@app.post("/open", response_model=OpenResponse)
def open_video(config_dir: Optional[str] = Query(default=None)):
    context = _load_app_context(config_dir)
    dispatcher = build_dispatcher(context, TickContext(limiter=_shared_limiter(context)))
    try:
        url = dispatcher.open_random()
    except DispatchError as exc:
        raise HTTPException(status_code=502, detail=str(exc)) from exc
    if url is None:
        raise HTTPException(status_code=404, detail="No videos available in the playlists.")
    return OpenResponse(url=url)
