# bookwise/services/booking.py
"""
Booking ledger: the only writer of bookings.

Create and reschedule run validate -> write -> commit as one unit under a
per-host writer lock, so two requests for the same host calendar are
serialised in-process. Across processes, the slot-claim uniqueness constraint
rejects whichever transaction commits second. Side effects are published as
events only after the commit.
"""
from __future__ import annotations

import asyncio
import secrets
import weakref
from contextlib import asynccontextmanager
from datetime import datetime, timedelta
from typing import Any, Optional, Sequence

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from bookwise.core.errors import (
    AlreadyCancelledError,
    NotFoundError,
    SlotUnavailableError,
    ValidationError,
)
from bookwise.core.logging import get_logger
from bookwise.crud.booking import (
    add_slot_claims,
    get_booking,
    get_booking_by_token,
    list_bookings,
    release_slot_claims,
)
from bookwise.crud.event_type import get_event_type
from bookwise.db.models.booking import ACTIVE_STATUSES, Booking, BookingStatus
from bookwise.db.types import new_id
from bookwise.schemas.booking import BookingCreate, BookingReschedule
from bookwise.schemas.common import parse_model
from bookwise.schemas.questions import parse_questions, validate_responses
from bookwise.services.conflicts import ConflictResolver
from bookwise.services.events import BookingCancelled, BookingCreated, BookingRescheduled, EventBus
from bookwise.utils.timeutils import Clock, utc_now

logger = get_logger(__name__)

# Allowed status moves; anything else is rejected
TRANSITIONS: dict[BookingStatus, set[BookingStatus]] = {
    BookingStatus.PENDING: {BookingStatus.CONFIRMED, BookingStatus.CANCELLED},
    BookingStatus.CONFIRMED: {BookingStatus.CANCELLED, BookingStatus.COMPLETED, BookingStatus.NO_SHOW},
    BookingStatus.CANCELLED: set(),
    BookingStatus.COMPLETED: set(),
    BookingStatus.NO_SHOW: set(),
}

TOKEN_KINDS = ("reschedule", "cancel")


def new_token() -> str:
    return secrets.token_urlsafe(32)


class BookingLedger:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        resolver: Optional[ConflictResolver] = None,
        events: Optional[EventBus] = None,
        clock: Clock = utc_now,
    ):
        self._session_factory = session_factory
        self.resolver = resolver or ConflictResolver()
        self.events = events or EventBus()
        self.clock = clock
        # a host's lock lives only while some writer holds or awaits it
        self._locks: weakref.WeakValueDictionary[str, asyncio.Lock] = weakref.WeakValueDictionary()

    @asynccontextmanager
    async def _writer(self, host_id: str):
        """Single writer per host calendar within this process."""
        lock = self._locks.get(host_id)
        if lock is None:
            lock = self._locks[host_id] = asyncio.Lock()
        async with lock:
            yield

    async def _commit(self, db: AsyncSession, host_id: str, start: datetime) -> None:
        try:
            await db.commit()
        except IntegrityError:
            await db.rollback()
            logger.warning("slot_claim_conflict", user_id=host_id, start=start.isoformat())
            raise SlotUnavailableError(
                "The requested time overlaps an existing booking",
                user_id=host_id,
                start=start.isoformat(),
            )

    def _check_not_past(self, start: datetime) -> None:
        if start < self.clock():
            raise ValidationError("start_time is in the past", start=start.isoformat())

    # ---------- Reads ----------

    async def get(self, booking_id: str) -> Booking:
        async with self._session_factory() as db:
            booking = await get_booking(db, booking_id)
        if booking is None:
            raise NotFoundError(f"Booking {booking_id} not found", booking_id=booking_id)
        return booking

    async def get_by_token(self, token: str, kind: str) -> Booking:
        if kind not in TOKEN_KINDS:
            raise ValidationError(f"Unknown token type {kind!r}", kind=kind)
        async with self._session_factory() as db:
            booking = await get_booking_by_token(db, token, kind)
        if booking is None:
            raise NotFoundError("Invalid or expired link")
        return booking

    async def list_user_bookings(
        self,
        user_id: str,
        status: Optional[BookingStatus] = None,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> Sequence[Booking]:
        async with self._session_factory() as db:
            return await list_bookings(
                db,
                user_id=user_id,
                statuses=[status] if status is not None else None,
                start_utc=start,
                end_utc=end,
            )

    # ---------- Writes ----------

    async def create(self, request: BookingCreate | dict[str, Any], host_user_id: Optional[str] = None) -> Booking:
        """
        Reserve a slot for a guest.

        ``host_user_id`` overrides the event type owner (round-robin team
        bookings). Raises ValidationError, NotFoundError, SlotUnavailableError
        or BufferConflictError.
        """
        data = parse_model(BookingCreate, request)

        async with self._session_factory() as db:
            event_type = await get_event_type(db, data.event_type_id)
        if event_type is None or not event_type.is_active:
            raise NotFoundError(f"Event type {data.event_type_id} not found", event_type_id=data.event_type_id)

        answers = validate_responses(parse_questions(event_type.custom_questions), data.custom_responses)
        start = data.start_time
        end = data.end_time or start + timedelta(minutes=event_type.duration)
        self._check_not_past(start)
        host_id = host_user_id or event_type.user_id

        async with self._writer(host_id):
            async with self._session_factory() as db:
                await self.resolver.validate_slot(db, host_id, start, end)

                booking = Booking(
                    id=new_id(),
                    event_type_id=event_type.id,
                    user_id=host_id,
                    guest_name=data.guest_name,
                    guest_email=data.guest_email,
                    guest_phone=data.guest_phone,
                    guest_timezone=data.guest_timezone,
                    custom_responses=answers,
                    notes=data.notes,
                    start_time=start,
                    end_time=end,
                    status=BookingStatus.CONFIRMED,
                    location=event_type.location_details,
                    reschedule_token=new_token(),
                    cancel_token=new_token(),
                    created_at=self.clock(),
                )
                booking.event_type = await get_event_type(db, event_type.id)
                db.add(booking)
                await db.flush()
                add_slot_claims(db, booking)
                await self._commit(db, host_id, start)

        logger.info(
            "booking_created",
            booking_id=booking.id,
            user_id=host_id,
            event_type_id=event_type.id,
            start=start.isoformat(),
        )
        self.events.publish(BookingCreated(booking_id=booking.id, user_id=host_id, start=start, end=end))
        return booking

    async def reschedule(self, booking_id: str, new_start: datetime, new_end: Optional[datetime] = None) -> Booking:
        data = parse_model(BookingReschedule, {"start_time": new_start, "end_time": new_end})
        self._check_not_past(data.start_time)

        current = await self.get(booking_id)
        host_id = current.user_id

        async with self._writer(host_id):
            async with self._session_factory() as db:
                booking = await get_booking(db, booking_id)
                self._require_active(booking)

                start = data.start_time
                end = data.end_time or start + (booking.end_time - booking.start_time)
                previous_start, previous_end = booking.start_time, booking.end_time

                await self.resolver.validate_slot(db, host_id, start, end, exclude_booking_id=booking.id)

                booking.start_time = start
                booking.end_time = end
                await release_slot_claims(db, booking.id)
                await db.flush()
                add_slot_claims(db, booking)
                await self._commit(db, host_id, start)

        logger.info(
            "booking_rescheduled",
            booking_id=booking.id,
            user_id=host_id,
            previous_start=previous_start.isoformat(),
            start=start.isoformat(),
        )
        self.events.publish(BookingRescheduled(
            booking_id=booking.id,
            user_id=host_id,
            previous_start=previous_start,
            previous_end=previous_end,
            start=start,
            end=end,
        ))
        return booking

    async def cancel(self, booking_id: str, reason: Optional[str] = None) -> Booking:
        """Cancel once; a second cancel raises AlreadyCancelledError and publishes nothing."""
        current = await self.get(booking_id)

        async with self._writer(current.user_id):
            async with self._session_factory() as db:
                booking = await get_booking(db, booking_id)
                if booking.status == BookingStatus.CANCELLED:
                    raise AlreadyCancelledError("Booking is already cancelled", booking_id=booking_id)
                self._check_transition(booking, BookingStatus.CANCELLED)

                booking.status = BookingStatus.CANCELLED
                booking.cancellation_reason = reason
                await release_slot_claims(db, booking.id)
                await db.commit()

        logger.info("booking_cancelled", booking_id=booking.id, user_id=booking.user_id, reason=reason)
        self.events.publish(BookingCancelled(
            booking_id=booking.id,
            user_id=booking.user_id,
            reason=reason,
            meeting_id=booking.meeting_id,
            location_type=booking.event_type.location_type.value,
        ))
        return booking

    async def transition(self, booking_id: str, status: BookingStatus) -> Booking:
        """Move a booking through its lifecycle (confirm, complete, no-show)."""
        status = BookingStatus(status)
        if status == BookingStatus.CANCELLED:
            return await self.cancel(booking_id)

        current = await self.get(booking_id)
        async with self._writer(current.user_id):
            async with self._session_factory() as db:
                booking = await get_booking(db, booking_id)
                self._check_transition(booking, status)
                booking.status = status
                if status not in ACTIVE_STATUSES:
                    await release_slot_claims(db, booking.id)
                await db.commit()

        logger.info("booking_status_changed", booking_id=booking.id, status=status.value)
        return booking

    # ---------- Guest self-service ----------

    async def reschedule_by_token(self, token: str, new_start: datetime, new_end: Optional[datetime] = None) -> Booking:
        booking = await self.get_by_token(token, "reschedule")
        return await self.reschedule(booking.id, new_start, new_end)

    async def cancel_by_token(self, token: str, reason: Optional[str] = None) -> Booking:
        booking = await self.get_by_token(token, "cancel")
        return await self.cancel(booking.id, reason)

    # ---------- Helpers ----------

    @staticmethod
    def _require_active(booking: Booking) -> None:
        if booking.status == BookingStatus.CANCELLED:
            raise AlreadyCancelledError("Booking is cancelled", booking_id=booking.id)
        if booking.status not in ACTIVE_STATUSES:
            raise ValidationError(
                f"A {booking.status.value.lower()} booking cannot be changed",
                booking_id=booking.id,
                status=booking.status.value,
            )

    @staticmethod
    def _check_transition(booking: Booking, status: BookingStatus) -> None:
        if status not in TRANSITIONS[booking.status]:
            raise ValidationError(
                f"Cannot move booking from {booking.status.value} to {status.value}",
                booking_id=booking.id,
            )
