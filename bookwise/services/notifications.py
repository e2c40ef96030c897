# bookwise/services/notifications.py
"""
Guest-facing messages: confirmation, cancellation and reminders.

Composition is plain text; delivery goes through a ``MessageSender`` so the
transport (mail relay, SMS gateway) stays outside the engine.
"""
from __future__ import annotations

from typing import Optional, Protocol

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from bookwise.core.config import settings
from bookwise.core.errors import ExternalServiceError, log_error
from bookwise.core.logging import get_logger
from bookwise.crud.booking import get_booking
from bookwise.db.models.booking import Booking
from bookwise.db.models.event_type import LocationType
from bookwise.db.models.reminder import ReminderChannel
from bookwise.db.models.user import User
from bookwise.services.events import BookingCancelled, BookingLocationReady, EventBus
from bookwise.utils.timeutils import get_zone

logger = get_logger(__name__)

LOCATION_LABELS = {
    LocationType.VIDEO_ZOOM: "Zoom",
    LocationType.VIDEO_GOOGLE_MEET: "Google Meet",
    LocationType.VIDEO_TEAMS: "Microsoft Teams",
    LocationType.PHONE: "Phone call",
    LocationType.IN_PERSON: "In person",
    LocationType.CUSTOM: "Custom location",
}


class MessageSender(Protocol):
    async def send(self, channel: ReminderChannel, recipient: str, subject: str, body: str) -> None:
        ...


class LoggingSender:
    """Default sender: records the message instead of delivering it."""

    async def send(self, channel: ReminderChannel, recipient: str, subject: str, body: str) -> None:
        logger.info("message_sent", channel=channel.value, recipient=recipient, subject=subject)


def _local_when(booking: Booking) -> str:
    tz = get_zone(booking.guest_timezone)
    start = booking.start_time.astimezone(tz)
    end = booking.end_time.astimezone(tz)
    return f"{start.strftime('%A, %B %d, %Y')} {start.strftime('%I:%M %p')} - {end.strftime('%I:%M %p')} ({booking.guest_timezone})"


def manage_links(booking: Booking, base_url: Optional[str] = None) -> dict[str, str]:
    base = (base_url or settings.APP_BASE_URL).rstrip("/")
    return {
        "reschedule": f"{base}/booking/reschedule/{booking.reschedule_token}",
        "cancel": f"{base}/booking/cancel/{booking.cancel_token}",
    }


def compose_confirmation(booking: Booking, host: Optional[User] = None,
                         base_url: Optional[str] = None) -> tuple[str, str]:
    event_type = booking.event_type
    subject = f"Confirmed: {event_type.title} with {host.name if host else 'your host'}"
    lines = [
        f"Hi {booking.guest_name},",
        "",
        f"Your booking for {event_type.title} is confirmed.",
        "",
        f"When: {_local_when(booking)}",
        f"Where: {LOCATION_LABELS.get(event_type.location_type, 'TBD')}",
    ]
    if booking.meeting_link:
        lines.append(f"Join: {booking.meeting_link}")
        if booking.meeting_password:
            lines.append(f"Password: {booking.meeting_password}")
    elif booking.location:
        lines.append(f"Details: {booking.location}")
    links = manage_links(booking, base_url)
    lines += [
        "",
        f"Need to reschedule? {links['reschedule']}",
        f"Need to cancel? {links['cancel']}",
    ]
    return subject, "\n".join(lines)


def compose_cancellation(booking: Booking) -> tuple[str, str]:
    subject = f"Cancelled: {booking.event_type.title}"
    lines = [
        f"Hi {booking.guest_name},",
        "",
        f"Your booking on {_local_when(booking)} has been cancelled.",
    ]
    if booking.cancellation_reason:
        lines.append(f"Reason: {booking.cancellation_reason}")
    return subject, "\n".join(lines)


def compose_reminder(booking: Booking) -> tuple[str, str]:
    subject = f"Reminder: {booking.event_type.title}"
    body = f"Hi {booking.guest_name}, this is a reminder of your booking on {_local_when(booking)}."
    if booking.meeting_link:
        body += f"\nJoin: {booking.meeting_link}"
    return subject, body


class ConfirmationNotifier:
    """
    Sends confirmation and cancellation mail to the guest.

    Confirmations wait for meeting provisioning to settle so video bookings
    carry their join link.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        sender: Optional[MessageSender] = None,
        base_url: Optional[str] = None,
    ):
        self._session_factory = session_factory
        self.sender = sender or LoggingSender()
        self.base_url = base_url

    def register(self, bus: EventBus) -> None:
        bus.subscribe(BookingLocationReady, self.on_location_ready)
        bus.subscribe(BookingCancelled, self.on_cancelled)

    async def _deliver(self, booking: Booking, subject: str, body: str) -> None:
        try:
            await self.sender.send(ReminderChannel.EMAIL, booking.guest_email, subject, body)
        except ExternalServiceError as e:
            log_error(e, {"service": "email", "booking_id": booking.id})

    async def on_location_ready(self, event: BookingLocationReady) -> None:
        async with self._session_factory() as db:
            booking = await get_booking(db, event.booking_id)
            if booking is None or not booking.is_active:
                return
            host = await db.get(User, booking.user_id)
        subject, body = compose_confirmation(booking, host, self.base_url)
        await self._deliver(booking, subject, body)

    async def on_cancelled(self, event: BookingCancelled) -> None:
        async with self._session_factory() as db:
            booking = await get_booking(db, event.booking_id)
        if booking is None:
            return
        subject, body = compose_cancellation(booking)
        await self._deliver(booking, subject, body)
