"""Playlist management shared by the CLI and the web API."""

from __future__ import annotations

from typing import List, Optional

import structlog

from .logging import get_logger
from .services.youtube_client import NoCredentialError, ResolveError, YouTubeService
from .state import ConfigStore, ExtensionConfig, PlaylistSource, parse_playlist_id


def add_playlist(
    store: ConfigStore,
    value: str,
    service: Optional[YouTubeService] = None,
    logger: Optional[structlog.stdlib.BoundLogger] = None,
) -> PlaylistSource:
    """Store a playlist given its URL or id, then resolve it when ``service`` is set.

    Raises ``ValueError`` for unparsable input or a duplicate playlist.
    Resolution failures are logged; the playlist stays stored unresolved.
    """

    log = logger or get_logger("tubebreak.playlists")
    playlist_id = parse_playlist_id(value)
    store.update(lambda config: config.add_playlist(playlist_id))
    log.info("playlists.added", playlist_id=playlist_id)

    if service is not None:
        resolve_playlist(store, playlist_id, service, log)
    return store.load().get(playlist_id)


def remove_playlist(store: ConfigStore, playlist_id: str) -> None:
    """Remove ``playlist_id``; raises ``KeyError`` when it is not configured."""

    store.update(lambda config: config.remove_playlist(playlist_id))


def resolve_playlist(
    store: ConfigStore,
    playlist_id: str,
    service: YouTubeService,
    logger: Optional[structlog.stdlib.BoundLogger] = None,
) -> List[str]:
    """Fetch title and items for one playlist; return the error messages, if any."""

    log = logger or get_logger("tubebreak.playlists")
    errors: List[str] = []

    try:
        metadata = service.resolve_metadata(playlist_id)
    except NoCredentialError as exc:
        log.warning("playlists.no_credential", playlist_id=playlist_id)
        return [str(exc)]
    except ResolveError as exc:
        log.warning("playlists.metadata_failed", playlist_id=playlist_id, error=str(exc))
        errors.append(str(exc))
    else:
        _apply(store, lambda config: config.store_metadata(playlist_id, metadata.display_name), playlist_id)

    try:
        items = service.resolve_items(playlist_id)
    except ResolveError as exc:
        log.warning("playlists.items_failed", playlist_id=playlist_id, error=str(exc))
        errors.append(str(exc))
    else:
        _apply(store, lambda config: config.store_items(playlist_id, items), playlist_id)
        log.info("playlists.resolved", playlist_id=playlist_id, count=len(items))

    return errors


def refresh_playlists(
    store: ConfigStore,
    service: YouTubeService,
    playlist_id: Optional[str] = None,
    logger: Optional[structlog.stdlib.BoundLogger] = None,
) -> dict:
    """Re-resolve one playlist or all of them.

    Cached items are only replaced by a successful resolution, so a failed
    refresh keeps serving the previous videos. Returns a mapping of
    playlist id to the list of error messages; raises ``KeyError`` for an
    unknown ``playlist_id``.
    """

    config = store.load()
    if playlist_id:
        targets = [config.get(playlist_id).id]
    else:
        targets = [source.id for source in config.playlists]
    return {target: resolve_playlist(store, target, service, logger) for target in targets}


def _apply(store: ConfigStore, mutate, playlist_id: str) -> None:
    def guarded(config: ExtensionConfig) -> None:
        # The playlist may have been removed while we were fetching.
        if config.find(playlist_id) is not None:
            mutate(config)

    store.update(guarded)
