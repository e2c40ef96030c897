# bookwise/services/slots.py
"""
Slot generation: turn a host's schedule for one local date into candidate
[start, end) UTC intervals on a fixed grid.

The functions here are pure. ``SlotGenerator`` only adds schedule loading
and the injected clock around them.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from typing import Iterable, Optional, Sequence
from zoneinfo import ZoneInfo

from bookwise.core.config import settings
from bookwise.core.logging import get_logger
from bookwise.crud.schedule import ScheduleStore
from bookwise.db.models.schedule import DateOverride, WeeklyAvailability
from bookwise.utils.timeutils import Clock, day_of_week, get_zone, local_to_utc, parse_hhmm, utc_now

logger = get_logger(__name__)


@dataclass(frozen=True, order=True)
class Slot:
    start: datetime
    end: datetime


@dataclass(frozen=True)
class SlotConfig:
    duration_minutes: int
    minimum_notice_minutes: int = 0
    interval_minutes: int = 15


def resolve_windows(
    weekly: Iterable[WeeklyAvailability],
    override: Optional[DateOverride],
    day: date,
) -> list[tuple[time, time]]:
    """Local (start, end) wall-clock windows in effect on ``day``."""
    if override is not None:
        if not override.is_available or not override.start_time or not override.end_time:
            return []
        return [(parse_hhmm(override.start_time), parse_hhmm(override.end_time))]

    weekday = day_of_week(day)
    windows = [
        (parse_hhmm(row.start_time), parse_hhmm(row.end_time))
        for row in weekly
        if row.day_of_week == weekday
    ]
    return sorted(windows)


def generate_slots(
    windows: Sequence[tuple[time, time]],
    tz: ZoneInfo,
    day: date,
    config: SlotConfig,
    now: datetime,
) -> list[Slot]:
    """
    Candidate slots for ``day``.

    Each window is converted to UTC for that specific date, then walked on a
    grid anchored at the window start. A candidate must end inside its
    window and start no earlier than ``now + minimum_notice``. Windows are not
    merged, so back-to-back windows yield separate runs.
    """
    duration = timedelta(minutes=config.duration_minutes)
    step = timedelta(minutes=config.interval_minutes)
    earliest = now + timedelta(minutes=config.minimum_notice_minutes)

    slots: list[Slot] = []
    for start_local, end_local in windows:
        window_start = local_to_utc(day, start_local, tz)
        window_end = local_to_utc(day, end_local, tz)

        current = window_start
        while current + duration <= window_end:
            if current >= earliest:
                slots.append(Slot(current, current + duration))
            current += step

    return sorted(slots)


class SlotGenerator:
    """Loads a host's schedule for a date and produces candidate slots."""

    def __init__(self, store: ScheduleStore, clock: Clock = utc_now,
                 interval_minutes: Optional[int] = None):
        self.store = store
        self.clock = clock
        self.interval_minutes = interval_minutes or settings.SLOT_INTERVAL_MINUTES

    async def candidates(
        self,
        user_id: str,
        day: date,
        duration_minutes: int,
        minimum_notice_minutes: int = 0,
    ) -> tuple[ZoneInfo, list[Slot]]:
        user, weekly, override = await self.store.load_day(user_id, day)
        tz = get_zone(user.timezone)
        windows = resolve_windows(weekly, override, day)
        config = SlotConfig(
            duration_minutes=duration_minutes,
            minimum_notice_minutes=minimum_notice_minutes,
            interval_minutes=self.interval_minutes,
        )
        slots = generate_slots(windows, tz, day, config, self.clock())
        logger.debug(
            "slots_generated",
            user_id=user_id,
            date=day.isoformat(),
            windows=len(windows),
            override=override is not None,
            candidates=len(slots),
        )
        return tz, slots
