"""User-visible effects: opening a video and desktop notifications."""

from __future__ import annotations

import webbrowser
from typing import Callable, Optional

from plyer import notification

from .config import DisplaySettings

EMBED_URL = "https://www.youtube.com/embed/{video_id}?autoplay=1"
WATCH_URL = "https://www.youtube.com/watch?v={video_id}"

BREAK_TITLE = "Break Time"
BREAK_MESSAGE = "Take a break! Here's a video for you."
WORK_TITLE = "Focus Time"
WORK_MESSAGE = "Break's over, back to work."


class DispatchError(RuntimeError):
    """A display or notification action failed."""


def build_video_url(video_id: str, mode: str = "embed") -> str:
    template = WATCH_URL if mode == "watch" else EMBED_URL
    return template.format(video_id=video_id)


class BrowserDisplay:
    """Open the selected video in a new browser tab or window."""

    def __init__(
        self,
        settings: Optional[DisplaySettings] = None,
        opener: Callable[..., bool] = webbrowser.open,
    ) -> None:
        self.settings = settings or DisplaySettings()
        self._opener = opener

    def show(self, video_id: str) -> str:
        url = build_video_url(video_id, self.settings.mode)
        new = 1 if self.settings.target == "window" else 2
        try:
            opened = self._opener(url, new=new)
        except Exception as exc:
            raise DispatchError(f"Failed to open {url}: {exc}") from exc
        if opened is False:
            raise DispatchError(f"No browser available to open {url}")
        return url


class DesktopNotifier:
    """Fire simple title/message alerts through the platform notifier."""

    def __init__(
        self,
        app_name: str = "tubebreak",
        enabled: bool = True,
        backend: Optional[Callable[..., None]] = None,
        timeout: int = 10,
    ) -> None:
        self.app_name = app_name
        self.enabled = enabled
        self.timeout = timeout
        self._backend = backend or notification.notify

    def notify(self, title: str, message: str) -> None:
        if not self.enabled:
            return
        try:
            self._backend(title=title, message=message, app_name=self.app_name, timeout=self.timeout)
        except Exception as exc:
            raise DispatchError(f"Notification failed: {exc}") from exc
