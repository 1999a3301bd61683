"""Clients for external services used by tubebreak."""

from .http import BackoffFetcher, FetchError, FetchExhaustedError, RateLimiter
from .youtube_client import (
    FetchFailedError,
    NoCredentialError,
    PlaylistNotFoundError,
    ResolveError,
    YouTubeService,
)

__all__ = [
    "BackoffFetcher",
    "FetchError",
    "FetchExhaustedError",
    "FetchFailedError",
    "NoCredentialError",
    "PlaylistNotFoundError",
    "RateLimiter",
    "ResolveError",
    "YouTubeService",
]
