"""Supervisor runtime: fires a tick at the top of every minute."""

from __future__ import annotations

import signal
import threading
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import structlog
import tzlocal
from apscheduler.executors.pool import ThreadPoolExecutor
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.cron import CronTrigger

from .app_context import AppContext, build_dispatcher, build_tick_context
from .dispatcher import ActionDispatcher, TickContext

TICK_JOB_ID = "tubebreak-tick"
LOCAL_TIMEZONE = "local"


@dataclass
class Supervisor:
    """Own the tick context and drive the dispatcher once per minute."""

    context: AppContext
    logger: structlog.stdlib.BoundLogger
    dispatcher: Optional[ActionDispatcher] = None
    tick_context: Optional[TickContext] = None
    _timezone: ZoneInfo = field(init=False, repr=False)
    _timezone_source: str = field(init=False, repr=False)
    _scheduler: BackgroundScheduler = field(init=False, repr=False)
    _stop_event: threading.Event = field(init=False, repr=False)

    def __post_init__(self) -> None:
        self._timezone, self._timezone_source = resolve_timezone(self.context.global_config.runtime.timezone)
        self._stop_event = threading.Event()
        if self.tick_context is None:
            self.tick_context = build_tick_context(self.context)
        if self.dispatcher is None:
            self.dispatcher = build_dispatcher(self.context, self.tick_context)
        self._scheduler = self._create_scheduler()

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------
    def run(self) -> None:
        """Start the scheduler and block until interrupted."""

        schedule = self.context.global_config.schedule
        self.logger.info(
            "supervisor.start",
            timezone=self._timezone_source,
            break_minutes=schedule.break_minutes,
            work_minutes=schedule.work_minutes,
            cooldown_minutes=schedule.break_cooldown_minutes,
            credential=bool(self.context.api_key),
        )

        configured = self.context.global_config.runtime.timezone
        if configured != LOCAL_TIMEZONE and self._timezone_source != configured:
            self.logger.warning(
                "supervisor.timezone_fallback",
                configured=configured,
                using=self._timezone_source,
            )

        if not self.context.api_key:
            self.logger.warning(
                "supervisor.no_credential",
                message="No YouTube API key configured; only cached playlist items can be shown.",
            )

        self._register_tick_job()
        self._scheduler.start()
        self._install_signal_handlers()

        try:
            while not self._stop_event.wait(timeout=1):
                pass
        except KeyboardInterrupt:
            self.logger.info("supervisor.stop", reason="keyboard_interrupt")
        finally:
            self.shutdown()

    def tick(self, now: Optional[datetime] = None):
        """Run one evaluation at ``now`` (defaults to the current local time)."""

        moment = now or datetime.now(self._timezone)
        outcome = self.dispatcher.on_tick(moment, self.tick_context)
        self.logger.debug("supervisor.tick", at=moment.isoformat(), phase=outcome.phase.value, status=outcome.status)
        return outcome

    def shutdown(self) -> None:
        if not self._stop_event.is_set():
            self._stop_event.set()

        if self._scheduler.running:
            self._scheduler.shutdown(wait=False)

        self.logger.info("supervisor.shutdown")

    @property
    def timezone(self) -> ZoneInfo:
        return self._timezone

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    def _create_scheduler(self) -> BackgroundScheduler:
        executors = {"default": ThreadPoolExecutor(max_workers=1)}
        return BackgroundScheduler(timezone=self._timezone, executors=executors)

    def _register_tick_job(self) -> None:
        # coalesce + max_instances=1: overlapping ticks are dropped and ticks
        # missed while the host was suspended collapse into one late run.
        self._scheduler.add_job(
            self.tick,
            trigger=CronTrigger(second=0, timezone=self._timezone),
            id=TICK_JOB_ID,
            name="tubebreak:tick",
            coalesce=True,
            max_instances=1,
            misfire_grace_time=30,
            replace_existing=True,
        )
        self.logger.info("supervisor.tick_scheduled", job_id=TICK_JOB_ID)

    def _install_signal_handlers(self) -> None:
        for sig in (signal.SIGINT, signal.SIGTERM):
            signal.signal(sig, self._signal_handler)

    def _signal_handler(self, signum, frame) -> None:  # pragma: no cover - OS signal handling
        self.logger.info("supervisor.signal", signal=signum)
        self._stop_event.set()


def resolve_timezone(tz_name: str) -> tuple[ZoneInfo, str]:
    """Return the configured zone, falling back to UTC when it is unknown.

    ``"local"`` selects the host's wall-clock zone.
    """

    try:
        tz = tzlocal.get_localzone() if tz_name == LOCAL_TIMEZONE else ZoneInfo(tz_name)
    except (ZoneInfoNotFoundError, ValueError):
        return ZoneInfo("UTC"), "UTC"
    return tz, getattr(tz, "key", None) or str(tz)
