"""Persistent extension state: the enabled flag and configured playlists."""

from __future__ import annotations

import json
import os
import re
import tempfile
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

_PLAYLIST_ID_PATTERN = re.compile(r"^[A-Za-z0-9_-]+$")


class StateConflictError(RuntimeError):
    """Raised when the state file changed between read and write."""


class DuplicatePlaylistError(ValueError):
    """Raised when adding a playlist that is already configured."""


def _utcnow_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def parse_playlist_id(value: str) -> str:
    """Extract a playlist id from a bare id or any URL carrying ``list=<id>``."""

    candidate = (value or "").strip()
    if "list=" in candidate:
        candidate = candidate.split("list=", 1)[1]
        candidate = re.split(r"[&#]", candidate, maxsplit=1)[0]
    if not candidate or not _PLAYLIST_ID_PATTERN.match(candidate):
        raise ValueError(f"Not a playlist URL or id: {value!r}")
    return candidate


class PlaylistSource(BaseModel):
    """A user-configured playlist and its cached member video ids."""

    id: str
    display_name: Optional[str] = None
    items: List[str] = Field(default_factory=list)
    items_resolved: bool = False

    model_config = ConfigDict(extra="ignore")


class ExtensionConfig(BaseModel):
    """Snapshot of the persisted extension state.

    ``revision`` is the on-disk revision the snapshot was read at; it is
    used by :class:`ConfigStore` to detect concurrent writers.
    """

    enabled: bool = True
    playlists: List[PlaylistSource] = Field(default_factory=list)
    last_status: Optional[str] = None
    last_status_at: Optional[str] = None
    revision: int = 0

    model_config = ConfigDict(extra="ignore")

    def find(self, playlist_id: str) -> Optional[PlaylistSource]:
        for source in self.playlists:
            if source.id == playlist_id:
                return source
        return None

    def get(self, playlist_id: str) -> PlaylistSource:
        source = self.find(playlist_id)
        if source is None:
            raise KeyError(f"Unknown playlist: {playlist_id}")
        return source

    def add_playlist(self, playlist_id: str) -> PlaylistSource:
        if self.find(playlist_id) is not None:
            raise DuplicatePlaylistError(f"Playlist already added: {playlist_id}")
        source = PlaylistSource(id=playlist_id)
        self.playlists.append(source)
        return source

    def remove_playlist(self, playlist_id: str) -> PlaylistSource:
        source = self.get(playlist_id)
        self.playlists.remove(source)
        return source

    def set_enabled(self, enabled: bool) -> None:
        self.enabled = bool(enabled)

    def store_items(self, playlist_id: str, items: List[str]) -> None:
        """Replace the cached items of ``playlist_id`` with a fresh resolution."""

        source = self.get(playlist_id)
        source.items = list(items)
        source.items_resolved = True

    def store_metadata(self, playlist_id: str, display_name: Optional[str]) -> None:
        self.get(playlist_id).display_name = display_name

    def set_status(self, status: str, at: Optional[datetime] = None) -> None:
        self.last_status = status
        self.last_status_at = (at or datetime.now(timezone.utc)).isoformat()


class ConfigStore:
    """JSON-file backed key-value store for :class:`ExtensionConfig`.

    Writes are compare-and-swap on ``revision``: a snapshot can only be
    saved if nobody else saved since it was loaded.
    """

    def __init__(self, path: Path) -> None:
        self.path = Path(path)
        self._lock = threading.RLock()

    def _read_payload(self) -> Dict[str, Any]:
        if not self.path.exists():
            return {}
        with self.path.open("r", encoding="utf-8") as handle:
            payload = json.load(handle) or {}
        if not isinstance(payload, dict):
            return {}
        return payload

    def load(self) -> ExtensionConfig:
        """Read the current state; a missing file yields defaults at revision 0."""

        with self._lock:
            payload = self._read_payload()
        payload.pop("updated_at", None)
        return ExtensionConfig.model_validate(payload)

    def save(self, config: ExtensionConfig) -> ExtensionConfig:
        """Persist ``config`` if the file is still at ``config.revision``.

        Returns the snapshot with its new revision. Raises
        :class:`StateConflictError` when another writer got there first.
        """

        with self._lock:
            current = int(self._read_payload().get("revision", 0) or 0)
            if current != config.revision:
                raise StateConflictError(
                    f"State changed on disk (expected revision {config.revision}, found {current})"
                )

            saved = config.model_copy(deep=True, update={"revision": current + 1})
            payload = {"updated_at": _utcnow_iso(), **saved.model_dump(mode="json")}

            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(prefix=".extension-", suffix=".json", dir=self.path.parent)
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as handle:
                    json.dump(payload, handle, indent=2)
                os.replace(tmp_name, self.path)
            except BaseException:
                if os.path.exists(tmp_name):
                    os.unlink(tmp_name)
                raise
            return saved

    def update(self, mutator: Callable[[ExtensionConfig], None], attempts: int = 3) -> ExtensionConfig:
        """Read-modify-write ``mutator`` against the latest state.

        On a revision conflict the mutator is replayed against a fresh read,
        so concurrent edits to different playlists merge instead of one
        silently overwriting the other.
        """

        last_error: Optional[StateConflictError] = None
        for _ in range(max(1, attempts)):
            with self._lock:
                config = self.load()
                mutator(config)
                try:
                    return self.save(config)
                except StateConflictError as exc:
                    last_error = exc
        assert last_error is not None
        raise last_error
