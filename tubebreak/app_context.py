"""Shared application context for CLI commands, the web API and the supervisor."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from .actions import BrowserDisplay, DesktopNotifier
from .config import ConfigPaths, GlobalConfig, load_api_key, load_global_config, resolve_config_dir
from .dispatcher import ActionDispatcher, TickContext
from .logging import get_logger
from .pool import ItemPool
from .services import BackoffFetcher, RateLimiter, YouTubeService
from .state import ConfigStore


@dataclass
class AppContext:
    """Container for resolved configuration and the persisted store."""

    paths: ConfigPaths
    global_config: GlobalConfig
    store: ConfigStore
    api_key: Optional[str]


def determine_paths(config_dir: Optional[Path]) -> ConfigPaths:
    """Resolve configuration paths from a CLI override or the environment."""

    resolved = resolve_config_dir(config_dir)
    return ConfigPaths.from_base_dir(resolved) if resolved else ConfigPaths.default()


def load_context(paths: ConfigPaths) -> AppContext:
    """Load the global configuration and open the extension state store."""

    global_config = load_global_config(paths.global_config)
    api_key = load_api_key(global_config, paths)
    store = ConfigStore(paths.extension_state)
    return AppContext(paths=paths, global_config=global_config, store=store, api_key=api_key)


def build_tick_context(context: AppContext) -> TickContext:
    """Create the long-lived state the scheduling loop threads through ticks."""

    return TickContext(limiter=RateLimiter(context.global_config.fetch.min_interval_seconds))


def build_service(context: AppContext, limiter: RateLimiter) -> YouTubeService:
    fetch = context.global_config.fetch
    fetcher = BackoffFetcher(
        max_attempts=fetch.max_attempts,
        base_delay=fetch.base_delay_seconds,
    )
    return YouTubeService(
        context.api_key,
        fetcher=fetcher,
        limiter=limiter,
        settings=context.global_config.youtube,
    )


def build_dispatcher(context: AppContext, tick_context: TickContext) -> ActionDispatcher:
    """Wire the resolver, pool and user-visible actions into a dispatcher."""

    service = build_service(context, tick_context.limiter)
    display_settings = context.global_config.display
    return ActionDispatcher(
        store=context.store,
        pool=ItemPool(service, context.store),
        display=BrowserDisplay(display_settings),
        notifier=DesktopNotifier(
            app_name=display_settings.app_name,
            enabled=display_settings.notifications,
        ),
        schedule=context.global_config.schedule,
        logger=get_logger("tubebreak.dispatcher"),
    )
