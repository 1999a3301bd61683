"""Aggregate cached playlist items into one selectable pool."""

from __future__ import annotations

from typing import Dict, List, Optional, Protocol, Sequence

import structlog

from .logging import get_logger
from .services.youtube_client import NoCredentialError, ResolveError
from .state import ConfigStore, ExtensionConfig, PlaylistSource, StateConflictError


class ItemResolver(Protocol):
    def resolve_items(self, source: PlaylistSource) -> List[str]:
        """Return the member item ids of ``source``."""


class ItemPool:
    """Build the candidate pool, resolving playlists that have no cache yet."""

    def __init__(
        self,
        resolver: ItemResolver,
        store: Optional[ConfigStore] = None,
        logger: Optional[structlog.stdlib.BoundLogger] = None,
    ) -> None:
        self.resolver = resolver
        self.store = store
        self.logger = logger or get_logger("tubebreak.pool")

    def get_pool(self, sources: Sequence[PlaylistSource]) -> List[str]:
        """Return every source's items concatenated in configuration order.

        Unresolved sources are resolved in place. A source whose resolution
        fails contributes nothing to this call and is retried next time.
        Duplicates across sources are kept.
        """

        resolved: Dict[str, List[str]] = {}
        for source in sources:
            if source.items_resolved:
                continue
            try:
                items = self.resolver.resolve_items(source)
            except NoCredentialError as exc:
                self.logger.warning("pool.no_credential", playlist_id=source.id, error=str(exc))
                continue
            except ResolveError as exc:
                self.logger.error("pool.resolve_failed", playlist_id=source.id, error=str(exc))
                continue

            source.items = list(items)
            source.items_resolved = True
            resolved[source.id] = source.items
            self.logger.info("pool.resolved", playlist_id=source.id, count=len(items))

        if resolved:
            self._write_through(resolved)

        pool: List[str] = []
        for source in sources:
            pool.extend(source.items)
        return pool

    def _write_through(self, resolved: Dict[str, List[str]]) -> None:
        if self.store is None:
            return

        def apply(config: ExtensionConfig) -> None:
            for playlist_id, items in resolved.items():
                # Skip playlists removed by another writer since the tick started.
                if config.find(playlist_id) is not None:
                    config.store_items(playlist_id, items)

        try:
            self.store.update(apply)
        except (StateConflictError, OSError, ValueError) as exc:
            self.logger.error("pool.persist_failed", playlists=sorted(resolved), error=str(exc))
