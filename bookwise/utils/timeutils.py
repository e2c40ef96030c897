# bookwise/utils/timeutils.py
"""
Time helpers shared by the schedule store, slot generator and ledger.

All interval arithmetic happens on timezone-aware UTC datetimes. Local
"HH:MM" wall-clock bounds are converted per calendar date, so the offset in
effect on that date (DST included) is always the one applied.
"""
from __future__ import annotations

import re
from datetime import date, datetime, time, timedelta, timezone
from typing import Callable
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

UTC = timezone.utc

HHMM_RE = re.compile(r"^([0-1]?[0-9]|2[0-3]):[0-5][0-9]$")

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(UTC)


def parse_hhmm(value: str) -> time:
    if not isinstance(value, str) or not HHMM_RE.match(value):
        raise ValueError(f"Invalid time format {value!r}, expected HH:MM")
    hours, minutes = value.split(":")
    return time(int(hours), int(minutes))


def get_zone(tz_name: str) -> ZoneInfo:
    """Resolve an IANA timezone id, raising ValueError for unknown ids."""
    if not tz_name or not isinstance(tz_name, str):
        raise ValueError("Timezone is required")
    try:
        return ZoneInfo(tz_name)
    except (ZoneInfoNotFoundError, ValueError):
        raise ValueError(f"Unknown timezone {tz_name!r}")


def is_valid_timezone(tz_name: str) -> bool:
    try:
        get_zone(tz_name)
    except ValueError:
        return False
    return True


def local_to_utc(day: date, wall_clock: time, tz: ZoneInfo) -> datetime:
    """Wall-clock time on ``day`` in ``tz`` as a UTC instant."""
    return datetime.combine(day, wall_clock, tzinfo=tz).astimezone(UTC)


def to_utc(value: datetime, default_tz: ZoneInfo | None = None) -> datetime:
    """Normalise a datetime to UTC; naive values are read in ``default_tz`` (UTC if unset)."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=default_tz or UTC)
    return value.astimezone(UTC)


def day_of_week(day: date) -> int:
    """0 = Sunday ... 6 = Saturday."""
    return (day.weekday() + 1) % 7


def floor_to(value: datetime, minutes: int) -> datetime:
    step = minutes * 60
    ts = int(value.timestamp()) // step * step
    return datetime.fromtimestamp(ts, UTC)


def iter_buckets(start: datetime, end: datetime, minutes: int):
    """Bucket starts covering [floor(start), ceil(end)) on a fixed grid."""
    step = timedelta(minutes=minutes)
    current = floor_to(start, minutes)
    while current < end:
        yield current
        current += step
