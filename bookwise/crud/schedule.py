# bookwise/crud/schedule.py
"""
Schedule store: a host's recurring weekly windows and per-date overrides.

Weekly windows are always replaced wholesale. An override for a date is the
only source of truth for that date.
"""
from __future__ import annotations
from datetime import date
from typing import Any, Iterable, Optional, Sequence

import sqlalchemy as sa
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from bookwise.core.errors import NotFoundError, ValidationError
from bookwise.core.logging import get_logger
from bookwise.db.models.schedule import DateOverride, WeeklyAvailability
from bookwise.db.models.user import User
from bookwise.schemas.common import parse_model
from bookwise.schemas.schedule import DateOverrideIn, WeeklyWindow
from bookwise.utils.timeutils import day_of_week, parse_hhmm

logger = get_logger(__name__)


async def get_user(db: AsyncSession, user_id: str) -> Optional[User]:
    return await db.get(User, user_id)


async def _require_user(db: AsyncSession, user_id: str) -> User:
    user = await get_user(db, user_id)
    if user is None:
        raise NotFoundError(f"User {user_id} not found", user_id=user_id)
    return user


async def get_weekly_schedule(
    db: AsyncSession,
    user_id: str,
    *,
    weekday: Optional[int] = None,
) -> Sequence[WeeklyAvailability]:
    q = sa.select(WeeklyAvailability).where(WeeklyAvailability.user_id == user_id)
    if weekday is not None:
        q = q.where(WeeklyAvailability.day_of_week == weekday)
    q = q.order_by(WeeklyAvailability.day_of_week.asc(), WeeklyAvailability.start_time.asc())
    res = await db.execute(q)
    return res.scalars().all()


def _check_no_overlap(windows: list[WeeklyWindow]) -> None:
    by_day: dict[int, list[WeeklyWindow]] = {}
    for w in windows:
        by_day.setdefault(w.day_of_week, []).append(w)
    for day, rows in by_day.items():
        rows.sort(key=lambda w: parse_hhmm(w.start_time))
        for prev, cur in zip(rows, rows[1:]):
            if parse_hhmm(cur.start_time) < parse_hhmm(prev.end_time):
                raise ValidationError(
                    f"Overlapping windows on day {day}: {prev.start_time}-{prev.end_time} and "
                    f"{cur.start_time}-{cur.end_time}",
                    day_of_week=day,
                )


async def set_weekly_schedule(
    db: AsyncSession,
    user_id: str,
    windows: Iterable[WeeklyWindow | dict[str, Any]],
) -> Sequence[WeeklyAvailability]:
    """Replace the user's whole weekly pattern."""
    parsed = [parse_model(WeeklyWindow, w) for w in windows]
    _check_no_overlap(parsed)
    await _require_user(db, user_id)

    await db.execute(sa.delete(WeeklyAvailability).where(WeeklyAvailability.user_id == user_id))
    rows = [
        WeeklyAvailability(
            user_id=user_id,
            day_of_week=w.day_of_week,
            start_time=w.start_time,
            end_time=w.end_time,
        )
        for w in parsed
    ]
    db.add_all(rows)
    await db.commit()
    logger.info("weekly_schedule_replaced", user_id=user_id, windows=len(rows))
    return await get_weekly_schedule(db, user_id)


async def get_date_override(db: AsyncSession, user_id: str, day: date) -> Optional[DateOverride]:
    res = await db.execute(
        sa.select(DateOverride).where(DateOverride.user_id == user_id, DateOverride.date == day)
    )
    return res.scalar_one_or_none()


async def list_date_overrides(
    db: AsyncSession,
    user_id: str,
    *,
    start: Optional[date] = None,
    end: Optional[date] = None,
) -> Sequence[DateOverride]:
    q = sa.select(DateOverride).where(DateOverride.user_id == user_id)
    if start is not None:
        q = q.where(DateOverride.date >= start)
    if end is not None:
        q = q.where(DateOverride.date <= end)
    res = await db.execute(q.order_by(DateOverride.date.asc()))
    return res.scalars().all()


async def set_date_override(
    db: AsyncSession,
    user_id: str,
    day: date,
    *,
    is_available: bool,
    start_time: Optional[str] = None,
    end_time: Optional[str] = None,
) -> DateOverride:
    """Create or replace the override for ``day``."""
    data = parse_model(
        DateOverrideIn,
        {"is_available": is_available, "start_time": start_time, "end_time": end_time},
    )
    await _require_user(db, user_id)

    override = await get_date_override(db, user_id, day)
    if override is None:
        override = DateOverride(user_id=user_id, date=day)
        db.add(override)
    override.is_available = data.is_available
    # an unavailable day carries no hours
    override.start_time = data.start_time if data.is_available else None
    override.end_time = data.end_time if data.is_available else None
    await db.commit()
    logger.info("date_override_set", user_id=user_id, date=day.isoformat(), is_available=data.is_available)
    return override


async def delete_date_override(db: AsyncSession, user_id: str, day: date) -> bool:
    res = await db.execute(
        sa.delete(DateOverride).where(DateOverride.user_id == user_id, DateOverride.date == day)
    )
    await db.commit()
    return bool(res.rowcount)


class ScheduleStore:
    """Session-owning facade over the schedule CRUD, injected into services."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    async def get_user(self, user_id: str) -> User:
        async with self._session_factory() as db:
            return await _require_user(db, user_id)

    async def get_weekly_schedule(self, user_id: str) -> Sequence[WeeklyAvailability]:
        async with self._session_factory() as db:
            return await get_weekly_schedule(db, user_id)

    async def set_weekly_schedule(self, user_id: str, windows) -> Sequence[WeeklyAvailability]:
        async with self._session_factory() as db:
            return await set_weekly_schedule(db, user_id, windows)

    async def get_date_override(self, user_id: str, day: date) -> Optional[DateOverride]:
        async with self._session_factory() as db:
            return await get_date_override(db, user_id, day)

    async def list_date_overrides(self, user_id: str, start: Optional[date] = None,
                                  end: Optional[date] = None) -> Sequence[DateOverride]:
        async with self._session_factory() as db:
            return await list_date_overrides(db, user_id, start=start, end=end)

    async def set_date_override(self, user_id: str, day: date, is_available: bool,
                                start_time: Optional[str] = None, end_time: Optional[str] = None) -> DateOverride:
        async with self._session_factory() as db:
            return await set_date_override(
                db, user_id, day, is_available=is_available, start_time=start_time, end_time=end_time
            )

    async def delete_date_override(self, user_id: str, day: date) -> bool:
        async with self._session_factory() as db:
            return await delete_date_override(db, user_id, day)

    async def load_day(
        self, user_id: str, day: date
    ) -> tuple[User, Sequence[WeeklyAvailability], Optional[DateOverride]]:
        """Everything the slot generator needs for one local date, in one session."""
        async with self._session_factory() as db:
            user = await _require_user(db, user_id)
            weekly = await get_weekly_schedule(db, user_id, weekday=day_of_week(day))
            override = await get_date_override(db, user_id, day)
            return user, weekly, override
