# bookwise/services/availability.py
"""
Availability service: the caller of the slot generator and conflict
resolver. Applies the booking window, loads bookings around the date and
subtracts busy time from connected calendars.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from bookwise.core.errors import BufferConflictError, SlotUnavailableError, ValidationError
from bookwise.core.logging import get_logger
from bookwise.crud.schedule import ScheduleStore
from bookwise.db.models.event_type import EventType
from bookwise.schemas.booking import TimeSlot
from bookwise.services.conflicts import ConflictResolver, filter_available, subtract_busy
from bookwise.services.external_calendar import ExternalCalendarChecker
from bookwise.services.slots import Slot, SlotGenerator, resolve_windows
from bookwise.utils.timeutils import Clock, get_zone, local_to_utc, utc_now

logger = get_logger(__name__)


@dataclass(frozen=True)
class SlotRules:
    """Per-event-type constraints; defaults apply when booking without one."""
    minimum_notice: int = 0
    max_booking_window: int = 60

    @classmethod
    def from_event_type(cls, event_type: Optional[EventType]) -> "SlotRules":
        if event_type is None:
            return cls()
        return cls(minimum_notice=event_type.minimum_notice, max_booking_window=event_type.max_booking_window)


class AvailabilityService:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        store: ScheduleStore,
        resolver: Optional[ConflictResolver] = None,
        external: Optional[ExternalCalendarChecker] = None,
        clock: Clock = utc_now,
        interval_minutes: Optional[int] = None,
    ):
        self._session_factory = session_factory
        self.store = store
        self.resolver = resolver or ConflictResolver()
        self.external = external
        self.clock = clock
        self.generator = SlotGenerator(store, clock=clock, interval_minutes=interval_minutes)

    async def get_available_slots(
        self,
        user_id: str,
        day: date,
        duration_minutes: int,
        event_type: Optional[EventType] = None,
        include_unavailable: bool = False,
    ) -> list[TimeSlot]:
        """
        Bookable slots for ``user_id`` on the host-local date ``day``.

        With ``include_unavailable`` the conflicting candidates are returned
        too, flagged ``available=False``.
        """
        if duration_minutes <= 0:
            raise ValidationError("duration must be positive", duration=duration_minutes)

        rules = SlotRules.from_event_type(event_type)
        user = await self.store.get_user(user_id)
        tz = get_zone(user.timezone)
        now = self.clock()

        today = now.astimezone(tz).date()
        if day < today or day > today + timedelta(days=rules.max_booking_window):
            return []

        _, candidates = await self.generator.candidates(
            user_id, day, duration_minutes, minimum_notice_minutes=rules.minimum_notice
        )
        horizon = now + timedelta(days=rules.max_booking_window)
        candidates = [s for s in candidates if s.start <= horizon]
        if not candidates:
            return []

        span_start, span_end = candidates[0].start, max(s.end for s in candidates)
        async with self._session_factory() as db:
            bookings = await self.resolver.active_bookings(db, user_id, span_start, span_end)
        available = filter_available(candidates, bookings)

        if self.external is not None and available:
            busy = await self.external.busy_intervals(user_id, span_start, span_end)
            available = subtract_busy(available, busy)

        logger.info(
            "availability_computed",
            user_id=user_id,
            date=day.isoformat(),
            candidates=len(candidates),
            available=len(available),
        )

        if not include_unavailable:
            return [TimeSlot(start_time=s.start, end_time=s.end, available=True) for s in available]
        free = set(available)
        return [TimeSlot(start_time=s.start, end_time=s.end, available=s in free) for s in candidates]

    async def is_slot_available(
        self,
        user_id: str,
        start: datetime,
        duration_minutes: int,
        exclude_booking_id: Optional[str] = None,
    ) -> bool:
        """True when [start, start + duration) lies inside a window and conflicts with nothing."""
        end = start + timedelta(minutes=duration_minutes)
        user = await self.store.get_user(user_id)
        tz = get_zone(user.timezone)
        day = start.astimezone(tz).date()

        _, weekly, override = await self.store.load_day(user_id, day)
        windows = resolve_windows(weekly, override, day)
        inside = any(
            local_to_utc(day, w_start, tz) <= start and end <= local_to_utc(day, w_end, tz)
            for w_start, w_end in windows
        )
        if not inside:
            return False

        async with self._session_factory() as db:
            try:
                await self.resolver.validate_slot(db, user_id, start, end, exclude_booking_id)
            except (SlotUnavailableError, BufferConflictError):
                return False
        return True

    async def get_availability(self, user_id: str, start_date: date, end_date: date) -> dict[date, list[Slot]]:
        """Resolved UTC windows per host-local date, for calendar views."""
        if end_date < start_date:
            raise ValidationError("end_date must not be before start_date")
        user = await self.store.get_user(user_id)
        tz = get_zone(user.timezone)

        result: dict[date, list[Slot]] = {}
        day = start_date
        while day <= end_date:
            _, weekly, override = await self.store.load_day(user_id, day)
            result[day] = [
                Slot(local_to_utc(day, w_start, tz), local_to_utc(day, w_end, tz))
                for w_start, w_end in resolve_windows(weekly, override, day)
            ]
            day += timedelta(days=1)
        return result

