"""Wall-clock break/work schedule and the break cooldown gate."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import Iterable, Optional, Tuple

from .config import ScheduleSettings

DEFAULT_SCHEDULE = ScheduleSettings()


class SchedulePhase(str, Enum):
    """Classification of a single minute."""

    NONE = "none"
    BREAK_TIME = "break"
    WORK_TIME = "work"


def classify(instant: datetime, schedule: ScheduleSettings = DEFAULT_SCHEDULE) -> SchedulePhase:
    """Classify the minute-of-hour of ``instant``.

    Pure function: the default schedule marks minutes 25 and 55 as breaks
    and minutes 0 and 30 as work boundaries.
    """

    minute = instant.minute
    if minute in schedule.break_minutes:
        return SchedulePhase.BREAK_TIME
    if minute in schedule.work_minutes:
        return SchedulePhase.WORK_TIME
    return SchedulePhase.NONE


def next_boundary(
    instant: datetime,
    minutes: Iterable[int],
) -> Optional[datetime]:
    """Return the first instant strictly after ``instant`` whose minute is in ``minutes``."""

    wanted = sorted(set(minutes))
    if not wanted:
        return None
    start = instant.replace(second=0, microsecond=0)
    for offset in range(1, 61):
        candidate = start + timedelta(minutes=offset)
        if candidate.minute in wanted:
            return candidate
    return None  # pragma: no cover - every minute set repeats within an hour


def upcoming(
    instant: datetime,
    schedule: ScheduleSettings = DEFAULT_SCHEDULE,
) -> Tuple[Optional[datetime], Optional[datetime]]:
    """Return the next break and next work boundaries after ``instant``."""

    return (
        next_boundary(instant, schedule.break_minutes),
        next_boundary(instant, schedule.work_minutes),
    )


@dataclass
class CooldownState:
    """In-memory record of the last break action; lost on restart."""

    last_action: Optional[datetime] = None


def should_act(
    phase: SchedulePhase,
    now: datetime,
    cooldown: CooldownState,
    cooldown_minutes: float = DEFAULT_SCHEDULE.break_cooldown_minutes,
) -> bool:
    """Decide whether the tick at ``now`` should perform its phase action.

    Breaks are gated by the cooldown window, work notifications are not,
    and ``NONE`` never acts.
    """

    if phase is SchedulePhase.WORK_TIME:
        return True
    if phase is not SchedulePhase.BREAK_TIME:
        return False
    if cooldown.last_action is None:
        return True
    return now - cooldown.last_action >= timedelta(minutes=cooldown_minutes)


def record_action(cooldown: CooldownState, now: datetime) -> None:
    """Advance ``cooldown`` to ``now``; older timestamps are ignored."""

    if cooldown.last_action is None or now > cooldown.last_action:
        cooldown.last_action = now
