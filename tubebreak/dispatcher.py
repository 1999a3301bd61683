"""Per-tick orchestration: classify, gate, select and display."""

from __future__ import annotations

import random
import threading
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Optional

import structlog

from .actions import (
    BREAK_MESSAGE,
    BREAK_TITLE,
    WORK_MESSAGE,
    WORK_TITLE,
    BrowserDisplay,
    DesktopNotifier,
    DispatchError,
)
from .config import ScheduleSettings
from .logging import get_logger
from .pool import ItemPool
from .schedule import CooldownState, SchedulePhase, classify, record_action, should_act
from .selector import pick
from .services.http import RateLimiter
from .state import ConfigStore, ExtensionConfig, StateConflictError


@dataclass
class TickContext:
    """State owned by the scheduling loop and handed to every tick."""

    cooldown: CooldownState = field(default_factory=CooldownState)
    limiter: RateLimiter = field(default_factory=RateLimiter)


@dataclass
class TickOutcome:
    """What a single tick did, for logging and callers that care."""

    phase: SchedulePhase
    status: str
    video_id: Optional[str] = None
    url: Optional[str] = None
    error: Optional[str] = None


class ActionDispatcher:
    """Terminal error boundary of the tick pipeline.

    :meth:`on_tick` never raises: resolver, display and notification
    failures are logged and the loop carries on with the next tick.
    """

    def __init__(
        self,
        *,
        store: ConfigStore,
        pool: ItemPool,
        display: BrowserDisplay,
        notifier: DesktopNotifier,
        schedule: Optional[ScheduleSettings] = None,
        rng: Callable[[], float] = random.random,
        logger: Optional[structlog.stdlib.BoundLogger] = None,
    ) -> None:
        self.store = store
        self.pool = pool
        self.display = display
        self.notifier = notifier
        self.schedule = schedule or ScheduleSettings()
        self.rng = rng
        self.logger = logger or get_logger("tubebreak.dispatcher")
        self._tick_lock = threading.Lock()

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------
    def on_tick(self, now: datetime, context: TickContext) -> TickOutcome:
        if not self._tick_lock.acquire(blocking=False):
            self.logger.warning("dispatcher.tick_skipped", reason="previous_tick_running", at=now.isoformat())
            return TickOutcome(phase=classify(now, self.schedule), status="skipped")
        try:
            return self._run_tick(now, context)
        except Exception as exc:
            self.logger.exception("dispatcher.tick_failed", at=now.isoformat(), error=str(exc))
            return TickOutcome(phase=classify(now, self.schedule), status="error", error=str(exc))
        finally:
            self._tick_lock.release()

    def open_random(self) -> Optional[str]:
        """Pick and display a video immediately, ignoring schedule and cooldown.

        Returns the opened URL, or ``None`` when no videos are available.
        Errors propagate to the caller.
        """

        config = self.store.load()
        video_id = pick(self.pool.get_pool(config.playlists), self.rng)
        if video_id is None:
            self.logger.info("dispatcher.no_items", trigger="manual")
            return None
        url = self.display.show(video_id)
        self.logger.info("dispatcher.video_opened", trigger="manual", video_id=video_id, url=url)
        return url

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    def _run_tick(self, now: datetime, context: TickContext) -> TickOutcome:
        config = self.store.load()
        phase = classify(now, self.schedule)

        if not config.enabled:
            self.logger.debug("dispatcher.disabled", phase=phase.value)
            return TickOutcome(phase=phase, status="disabled")

        if phase is SchedulePhase.NONE:
            return TickOutcome(phase=phase, status="idle")

        if not should_act(phase, now, context.cooldown, self.schedule.break_cooldown_minutes):
            self.logger.info(
                "dispatcher.cooldown_active",
                last_action=context.cooldown.last_action.isoformat() if context.cooldown.last_action else None,
            )
            return TickOutcome(phase=phase, status="cooldown")

        if phase is SchedulePhase.BREAK_TIME:
            return self._start_break(now, context, config)
        return self._start_work(now)

    def _start_break(self, now: datetime, context: TickContext, config: ExtensionConfig) -> TickOutcome:
        # An attempted break counts against the cooldown even if nothing is shown.
        record_action(context.cooldown, now)
        self.logger.info("dispatcher.break_started", at=now.isoformat())
        self._record_status(BREAK_TITLE, now)

        video_id = pick(self.pool.get_pool(config.playlists), self.rng)
        if video_id is None:
            self.logger.info("dispatcher.no_items", trigger="schedule")
            return TickOutcome(phase=SchedulePhase.BREAK_TIME, status="no_items")

        url: Optional[str] = None
        error: Optional[str] = None
        try:
            url = self.display.show(video_id)
            self.logger.info("dispatcher.video_opened", trigger="schedule", video_id=video_id, url=url)
        except DispatchError as exc:
            error = str(exc)
            self.logger.error("dispatcher.display_failed", video_id=video_id, error=error)

        error = self._notify(BREAK_TITLE, BREAK_MESSAGE) or error
        return TickOutcome(
            phase=SchedulePhase.BREAK_TIME,
            status="shown" if url else "display_failed",
            video_id=video_id,
            url=url,
            error=error,
        )

    def _start_work(self, now: datetime) -> TickOutcome:
        self.logger.info("dispatcher.work_started", at=now.isoformat())
        self._record_status(WORK_TITLE, now)
        error = self._notify(WORK_TITLE, WORK_MESSAGE)
        return TickOutcome(phase=SchedulePhase.WORK_TIME, status="notified", error=error)

    def _notify(self, title: str, message: str) -> Optional[str]:
        try:
            self.notifier.notify(title, message)
        except DispatchError as exc:
            self.logger.error("dispatcher.notify_failed", title=title, error=str(exc))
            return str(exc)
        return None

    def _record_status(self, status: str, now: datetime) -> None:
        try:
            self.store.update(lambda config: config.set_status(status, now))
        except (StateConflictError, OSError, ValueError) as exc:
            self.logger.error("dispatcher.status_persist_failed", status=status, error=str(exc))
