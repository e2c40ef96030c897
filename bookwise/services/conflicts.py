# bookwise/services/conflicts.py
"""
Conflict resolution against existing bookings.

One overlap test is shared by the display filter and the authoritative
check: half-open intervals, so touching intervals never conflict.
"""
from __future__ import annotations

from datetime import datetime, timedelta
from typing import Iterable, Optional, Sequence, TYPE_CHECKING

from sqlalchemy.ext.asyncio import AsyncSession

from bookwise.core.errors import BufferConflictError, SlotUnavailableError
from bookwise.core.logging import get_logger
from bookwise.crud.booking import list_active_bookings
from bookwise.db.models.booking import Booking
from bookwise.schemas.event_type import MAX_BUFFER_MINUTES
from bookwise.services.slots import Slot

if TYPE_CHECKING:
    from bookwise.services.external_calendar import ExternalCalendarChecker

logger = get_logger(__name__)


def intervals_overlap(a_start: datetime, a_end: datetime, b_start: datetime, b_end: datetime) -> bool:
    return a_start < b_end and a_end > b_start


def buffered_interval(booking: Booking) -> tuple[datetime, datetime]:
    """The booking's interval widened by its own event type's buffers."""
    event_type = booking.event_type
    before = event_type.buffer_before if event_type is not None else 0
    after = event_type.buffer_after if event_type is not None else 0
    return (
        booking.start_time - timedelta(minutes=before),
        booking.end_time + timedelta(minutes=after),
    )


def filter_available(candidates: Iterable[Slot], bookings: Sequence[Booking]) -> list[Slot]:
    """Candidates clear of every booking's buffer-expanded interval."""
    blocked = [buffered_interval(b) for b in bookings]
    return [
        slot for slot in candidates
        if not any(intervals_overlap(slot.start, slot.end, b_start, b_end) for b_start, b_end in blocked)
    ]


def subtract_busy(candidates: Iterable[Slot], busy: Sequence[tuple[datetime, datetime]]) -> list[Slot]:
    return [
        slot for slot in candidates
        if not any(intervals_overlap(slot.start, slot.end, b_start, b_end) for b_start, b_end in busy)
    ]


class ConflictResolver:
    """Authoritative conflict check used at booking and reschedule time."""

    def __init__(self, external: Optional["ExternalCalendarChecker"] = None):
        self.external = external

    async def active_bookings(
        self,
        db: AsyncSession,
        user_id: str,
        start: datetime,
        end: datetime,
        exclude_booking_id: Optional[str] = None,
    ) -> Sequence[Booking]:
        # widen by the largest buffer any event type may carry
        margin = timedelta(minutes=MAX_BUFFER_MINUTES)
        return await list_active_bookings(
            db,
            user_id=user_id,
            start_utc=start - margin,
            end_utc=end + margin,
            exclude_booking_id=exclude_booking_id,
        )

    async def validate_slot(
        self,
        db: AsyncSession,
        user_id: str,
        start: datetime,
        end: datetime,
        exclude_booking_id: Optional[str] = None,
    ) -> None:
        """
        Raise if [start, end) cannot be booked for ``user_id``.

        Direct overlap with an active booking wins over a buffer overlap, so
        callers can tell "taken" from "too close to another meeting".
        """
        bookings = await self.active_bookings(db, user_id, start, end, exclude_booking_id)

        for booking in bookings:
            if intervals_overlap(start, end, booking.start_time, booking.end_time):
                raise SlotUnavailableError(
                    "The requested time overlaps an existing booking",
                    user_id=user_id,
                    start=start.isoformat(),
                )

        for booking in bookings:
            b_start, b_end = buffered_interval(booking)
            if intervals_overlap(start, end, b_start, b_end):
                raise BufferConflictError(
                    "The requested time falls inside the buffer around an existing booking",
                    user_id=user_id,
                    start=start.isoformat(),
                )

        if self.external is not None and await self.external.has_conflict(user_id, start, end):
            raise SlotUnavailableError(
                "The requested time overlaps a busy event in a connected calendar",
                user_id=user_id,
                start=start.isoformat(),
            )
