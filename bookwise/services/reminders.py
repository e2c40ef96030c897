# bookwise/services/reminders.py
"""
Reminder scheduling and delivery.

Reminders are rows with a send time; ``process_due_reminders`` is meant to be
run periodically (cron, worker loop) and sends whatever is due.
"""
from __future__ import annotations

from datetime import timedelta
from typing import Optional, Sequence

import sqlalchemy as sa
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from bookwise.core.config import settings
from bookwise.core.errors import ExternalServiceError, log_error
from bookwise.core.logging import get_logger
from bookwise.crud.booking import get_booking
from bookwise.db.models.booking import Booking, BookingStatus
from bookwise.db.models.reminder import Reminder, ReminderChannel, ReminderStatus
from bookwise.services.events import BookingCancelled, BookingCreated, BookingRescheduled, EventBus
from bookwise.services.notifications import LoggingSender, MessageSender, compose_reminder
from bookwise.utils.timeutils import Clock, utc_now

logger = get_logger(__name__)


class ReminderScheduler:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        clock: Clock = utc_now,
        offsets_minutes: Optional[Sequence[int]] = None,
        sms_enabled: Optional[bool] = None,
    ):
        self._session_factory = session_factory
        self.clock = clock
        self.offsets_minutes = list(offsets_minutes) if offsets_minutes is not None else settings.reminder_offsets
        self.sms_enabled = settings.SMS_REMINDERS_ENABLED if sms_enabled is None else sms_enabled

    def register(self, bus: EventBus) -> None:
        bus.subscribe(BookingCreated, self.on_created)
        bus.subscribe(BookingRescheduled, self.on_rescheduled)
        bus.subscribe(BookingCancelled, self.on_cancelled)

    def _channels(self, booking: Booking) -> list[ReminderChannel]:
        channels = [ReminderChannel.EMAIL]
        if self.sms_enabled and booking.guest_phone:
            channels.append(ReminderChannel.SMS)
        return channels

    async def _schedule(self, db: AsyncSession, booking: Booking) -> list[Reminder]:
        now = self.clock()
        reminders = []
        for offset in self.offsets_minutes:
            send_at = booking.start_time - timedelta(minutes=offset)
            # a reminder whose moment has passed is never sent
            if send_at <= now:
                continue
            for channel in self._channels(booking):
                reminders.append(Reminder(
                    booking_id=booking.id,
                    channel=channel,
                    minutes_before=offset,
                    scheduled_for=send_at,
                ))
        db.add_all(reminders)
        return reminders

    async def schedule_reminders(self, booking_id: str) -> list[Reminder]:
        async with self._session_factory() as db:
            booking = await get_booking(db, booking_id)
            if booking is None or not booking.is_active:
                return []
            reminders = await self._schedule(db, booking)
            await db.commit()
        logger.info("reminders_scheduled", booking_id=booking_id, count=len(reminders))
        return reminders

    async def cancel_reminders(self, booking_id: str) -> int:
        async with self._session_factory() as db:
            res = await db.execute(
                sa.update(Reminder)
                .where(Reminder.booking_id == booking_id, Reminder.status == ReminderStatus.PENDING)
                .values(status=ReminderStatus.CANCELLED)
            )
            await db.commit()
        logger.info("reminders_cancelled", booking_id=booking_id, count=res.rowcount)
        return res.rowcount

    async def reschedule_reminders(self, booking_id: str) -> list[Reminder]:
        """Drop pending reminders and rebuild them from the booking's current start."""
        async with self._session_factory() as db:
            await db.execute(
                sa.delete(Reminder).where(
                    Reminder.booking_id == booking_id, Reminder.status == ReminderStatus.PENDING
                )
            )
            booking = await get_booking(db, booking_id)
            reminders = []
            if booking is not None and booking.is_active:
                reminders = await self._schedule(db, booking)
            await db.commit()
        logger.info("reminders_rescheduled", booking_id=booking_id, count=len(reminders))
        return reminders

    async def list_reminders(self, booking_id: str) -> Sequence[Reminder]:
        async with self._session_factory() as db:
            res = await db.execute(
                sa.select(Reminder)
                .where(Reminder.booking_id == booking_id)
                .order_by(Reminder.scheduled_for.asc(), Reminder.channel.asc())
            )
            return res.scalars().all()

    async def process_due_reminders(self, sender: Optional[MessageSender] = None, limit: int = 100) -> dict[str, int]:
        """Send every pending reminder whose time has come."""
        sender = sender or LoggingSender()
        now = self.clock()
        stats = {"sent": 0, "failed": 0}

        async with self._session_factory() as db:
            res = await db.execute(
                sa.select(Reminder)
                .where(Reminder.status == ReminderStatus.PENDING, Reminder.scheduled_for <= now)
                .order_by(Reminder.scheduled_for.asc())
                .limit(limit)
            )
            for reminder in res.scalars().all():
                booking = await get_booking(db, reminder.booking_id)
                if booking is None or booking.status == BookingStatus.CANCELLED:
                    reminder.status = ReminderStatus.FAILED
                    reminder.error = "booking cancelled"
                    stats["failed"] += 1
                    continue

                recipient = booking.guest_phone if reminder.channel == ReminderChannel.SMS else booking.guest_email
                subject, body = compose_reminder(booking)
                try:
                    await sender.send(reminder.channel, recipient, subject, body)
                except ExternalServiceError as e:
                    log_error(e, {"service": reminder.channel.value.lower(), "booking_id": booking.id})
                    reminder.status = ReminderStatus.FAILED
                    reminder.error = str(e)[:500]
                    stats["failed"] += 1
                    continue

                reminder.status = ReminderStatus.SENT
                reminder.sent_at = now
                stats["sent"] += 1

            await db.commit()

        if stats["sent"] or stats["failed"]:
            logger.info("reminders_processed", **stats)
        return stats

    async def on_created(self, event: BookingCreated) -> None:
        await self.schedule_reminders(event.booking_id)

    async def on_rescheduled(self, event: BookingRescheduled) -> None:
        await self.reschedule_reminders(event.booking_id)

    async def on_cancelled(self, event: BookingCancelled) -> None:
        await self.cancel_reminders(event.booking_id)
