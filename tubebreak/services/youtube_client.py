"""YouTube Data API playlist resolver."""

from __future__ import annotations

from typing import Any, Dict, List, Optional, Union

import requests
import structlog

from ..config import YouTubeSettings
from ..logging import get_logger
from ..state import PlaylistSource
from .http import BackoffFetcher, FetchError, RateLimiter


class ResolveError(RuntimeError):
    """Base class for playlist resolution failures."""


class NoCredentialError(ResolveError):
    """No API key is configured; resolution is not attempted."""


class PlaylistNotFoundError(ResolveError):
    """The API returned no record for the requested playlist."""

    def __init__(self, playlist_id: str) -> None:
        super().__init__(f"Playlist not found: {playlist_id}")
        self.playlist_id = playlist_id


class FetchFailedError(ResolveError):
    """The underlying request failed; ``error`` holds the :class:`FetchError`."""

    def __init__(self, playlist_id: str, error: FetchError) -> None:
        super().__init__(f"Failed to fetch playlist {playlist_id}: {error}")
        self.playlist_id = playlist_id
        self.error = error


class YouTubeService:
    """Resolve playlist titles and member video ids.

    Every outbound request goes through the shared :class:`RateLimiter`
    first and is then executed by the :class:`BackoffFetcher`.
    """

    def __init__(
        self,
        api_key: Optional[str],
        *,
        fetcher: BackoffFetcher,
        limiter: RateLimiter,
        settings: Optional[YouTubeSettings] = None,
        session: Optional[requests.Session] = None,
        logger: Optional[structlog.stdlib.BoundLogger] = None,
    ) -> None:
        self.api_key = api_key
        self.fetcher = fetcher
        self.limiter = limiter
        self.settings = settings or YouTubeSettings()
        self.session = session or requests.Session()
        self.logger = logger or get_logger("tubebreak.youtube")

    def _get(self, endpoint: str, playlist_id: str, params: Dict[str, Any]) -> Dict[str, Any]:
        if not self.api_key:
            raise NoCredentialError("YouTube API key is not configured.")

        url = f"{self.settings.api_base_url.rstrip('/')}/{endpoint}"
        query = {**params, "key": self.api_key}

        self.limiter.throttle()
        try:
            response = self.fetcher.fetch(
                lambda: self.session.get(url, params=query, timeout=self.settings.request_timeout)
            )
        except FetchError as exc:
            raise FetchFailedError(playlist_id, exc) from exc

        try:
            payload = response.json()
        except ValueError as exc:
            error = FetchError(f"Invalid JSON from {endpoint}", status=response.status_code)
            raise FetchFailedError(playlist_id, error) from exc
        if not isinstance(payload, dict):
            raise FetchFailedError(playlist_id, FetchError(f"Unexpected payload from {endpoint}"))
        return payload

    # ------------------------------------------------------------------
    # Resolution
    # ------------------------------------------------------------------
    def resolve_metadata(self, playlist_id: str) -> PlaylistSource:
        payload = self._get("playlists", playlist_id, {"part": "snippet", "id": playlist_id})
        records = payload.get("items") or []
        if not records:
            raise PlaylistNotFoundError(playlist_id)

        first = records[0]
        title = (first.get("snippet") or {}).get("title")
        self.logger.debug("youtube.metadata_resolved", playlist_id=playlist_id, title=title)
        return PlaylistSource(id=first.get("id") or playlist_id, display_name=title)

    def resolve_items(self, source: Union[PlaylistSource, str]) -> List[str]:
        """Return member video ids in API order.

        An empty playlist yields an empty list, not an error. Pages are
        followed via ``nextPageToken`` up to ``max_pages``.
        """

        playlist_id = source.id if isinstance(source, PlaylistSource) else source
        params: Dict[str, Any] = {
            "part": "snippet",
            "maxResults": self.settings.page_size,
            "playlistId": playlist_id,
        }

        video_ids: List[str] = []
        for _ in range(self.settings.max_pages):
            payload = self._get("playlistItems", playlist_id, params)
            for record in payload.get("items") or []:
                resource = (record.get("snippet") or {}).get("resourceId") or {}
                video_id = resource.get("videoId")
                if video_id:
                    video_ids.append(video_id)

            next_token = payload.get("nextPageToken")
            if not next_token:
                break
            params = {**params, "pageToken": next_token}

        self.logger.debug("youtube.items_resolved", playlist_id=playlist_id, count=len(video_ids))
        return video_ids
