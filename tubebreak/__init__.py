"""Scheduled break videos picked from your YouTube playlists."""

__version__ = "0.1.0"
