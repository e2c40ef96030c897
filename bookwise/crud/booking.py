# bookwise/crud/booking.py

from __future__ import annotations
from datetime import datetime
from typing import Iterable, Optional, Sequence

import sqlalchemy as sa
from sqlalchemy.ext.asyncio import AsyncSession

from bookwise.core.config import settings
from bookwise.db.models.booking import ACTIVE_STATUSES, Booking, BookingSlotClaim, BookingStatus
from bookwise.utils.timeutils import iter_buckets


async def get_booking(db: AsyncSession, booking_id: str) -> Optional[Booking]:
    return await db.get(Booking, booking_id)


async def get_booking_by_token(db: AsyncSession, token: str, kind: str) -> Optional[Booking]:
    column = Booking.reschedule_token if kind == "reschedule" else Booking.cancel_token
    res = await db.execute(sa.select(Booking).where(column == token))
    return res.scalar_one_or_none()


async def list_active_bookings(
    db: AsyncSession,
    *,
    user_id: str,
    start_utc: datetime,
    end_utc: datetime,
    exclude_booking_id: Optional[str] = None,
) -> Sequence[Booking]:
    """PENDING/CONFIRMED bookings of ``user_id`` touching [start_utc, end_utc)."""
    q = sa.select(Booking).where(
        Booking.user_id == user_id,
        Booking.status.in_(ACTIVE_STATUSES),
        Booking.start_time < end_utc,
        Booking.end_time > start_utc,
    )
    if exclude_booking_id is not None:
        q = q.where(Booking.id != exclude_booking_id)
    res = await db.execute(q.order_by(Booking.start_time.asc()))
    return res.scalars().all()


async def list_bookings(
    db: AsyncSession,
    *,
    user_id: Optional[str] = None,
    statuses: Optional[Iterable[BookingStatus]] = None,
    start_utc: Optional[datetime] = None,
    end_utc: Optional[datetime] = None,
    limit: int = 100,
) -> Sequence[Booking]:
    q = sa.select(Booking)
    if user_id is not None:
        q = q.where(Booking.user_id == user_id)
    if statuses is not None:
        q = q.where(Booking.status.in_(list(statuses)))
    if start_utc is not None:
        q = q.where(Booking.start_time >= start_utc)
    if end_utc is not None:
        q = q.where(Booking.start_time < end_utc)
    q = q.order_by(Booking.start_time.asc()).limit(limit)
    res = await db.execute(q)
    return res.scalars().all()


async def count_bookings(
    db: AsyncSession,
    *,
    user_ids: Sequence[str],
    statuses: Iterable[BookingStatus],
    created_since: Optional[datetime] = None,
    created_until: Optional[datetime] = None,
    event_type_id: Optional[str] = None,
) -> dict[str, int]:
    """Booking counts per host; hosts with none map to 0, in ``user_ids`` order."""
    q = sa.select(Booking.user_id, sa.func.count(Booking.id)).where(
        Booking.user_id.in_(list(user_ids)),
        Booking.status.in_(list(statuses)),
    )
    if created_since is not None:
        q = q.where(Booking.created_at >= created_since)
    if created_until is not None:
        q = q.where(Booking.created_at <= created_until)
    if event_type_id is not None:
        q = q.where(Booking.event_type_id == event_type_id)
    res = await db.execute(q.group_by(Booking.user_id))
    counts = {user_id: 0 for user_id in user_ids}
    counts.update({user_id: n for user_id, n in res.all()})
    return counts


def add_slot_claims(db: AsyncSession, booking: Booking, minutes: Optional[int] = None) -> int:
    """Stage one claim row per bucket covered by the booking's raw interval."""
    minutes = minutes or settings.SLOT_CLAIM_MINUTES
    claims = [
        BookingSlotClaim(user_id=booking.user_id, booking_id=booking.id, bucket_start=bucket)
        for bucket in iter_buckets(booking.start_time, booking.end_time, minutes)
    ]
    db.add_all(claims)
    return len(claims)


async def release_slot_claims(db: AsyncSession, booking_id: str) -> None:
    await db.execute(sa.delete(BookingSlotClaim).where(BookingSlotClaim.booking_id == booking_id))
