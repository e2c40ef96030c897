# bookwise/services/meetings.py
"""
Meeting link provisioning for video event types.

Providers sit behind one small interface; ``get_provider`` maps a location
type to its provider. ``MeetingLinkSubscriber`` reacts to booking events and
never blocks a reservation: a failed provider call is logged and the booking
stands without a link.
"""
from __future__ import annotations

import asyncio
import json
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional

import httpx
from google.oauth2 import service_account
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from bookwise.core.config import settings
from bookwise.core.errors import ExternalServiceError, log_error
from bookwise.core.logging import get_logger
from bookwise.crud.booking import get_booking
from bookwise.db.models.booking import Booking
from bookwise.db.models.event_type import LocationType
from bookwise.services.events import (
    BookingCancelled,
    BookingCreated,
    BookingLocationReady,
    BookingRescheduled,
    EventBus,
)

logger = get_logger(__name__)


@dataclass(frozen=True)
class MeetingConfig:
    title: str
    start: datetime
    end: datetime
    guest_name: str
    guest_email: str

    @property
    def duration_minutes(self) -> int:
        return int((self.end - self.start).total_seconds() // 60)


@dataclass(frozen=True)
class MeetingDetails:
    link: str
    password: Optional[str] = None
    meeting_id: Optional[str] = None


class MeetingProvider(ABC):
    name: str

    @abstractmethod
    async def create_meeting(self, config: MeetingConfig) -> MeetingDetails:
        """Create a meeting, raising ExternalServiceError on failure."""

    @abstractmethod
    async def delete_meeting(self, meeting_id: str) -> None:
        ...


class _HttpMeetingProvider(MeetingProvider):
    base_url: str

    def __init__(self, token: Optional[str], client: Optional[httpx.AsyncClient] = None):
        self.token = token
        self._client = client

    async def _request(self, method: str, path: str, **kwargs) -> httpx.Response:
        if not self.token:
            raise ExternalServiceError(f"{self.name} is not configured", service=self.name)
        headers = {"Authorization": f"Bearer {self.token}"}
        try:
            if self._client is not None:
                response = await self._client.request(method, f"{self.base_url}{path}", headers=headers, **kwargs)
            else:
                async with httpx.AsyncClient(timeout=settings.MEETING_PROVIDER_TIMEOUT_SECONDS) as client:
                    response = await client.request(method, f"{self.base_url}{path}", headers=headers, **kwargs)
            response.raise_for_status()
        except httpx.HTTPError as e:
            raise ExternalServiceError(f"{self.name} request failed: {e}", service=self.name)
        return response


class ZoomProvider(_HttpMeetingProvider):
    name = "zoom"
    base_url = "https://api.zoom.us/v2"

    async def create_meeting(self, config: MeetingConfig) -> MeetingDetails:
        response = await self._request("POST", "/users/me/meetings", json={
            "topic": config.title,
            "type": 2,  # scheduled
            "start_time": config.start.strftime("%Y-%m-%dT%H:%M:%SZ"),
            "duration": config.duration_minutes,
            "timezone": "UTC",
            "settings": {"join_before_host": False, "waiting_room": True},
        })
        data = response.json()
        return MeetingDetails(link=data["join_url"], password=data.get("password"), meeting_id=str(data["id"]))

    async def delete_meeting(self, meeting_id: str) -> None:
        await self._request("DELETE", f"/meetings/{meeting_id}")


class TeamsProvider(_HttpMeetingProvider):
    name = "teams"
    base_url = "https://graph.microsoft.com/v1.0"

    async def create_meeting(self, config: MeetingConfig) -> MeetingDetails:
        response = await self._request("POST", "/me/onlineMeetings", json={
            "subject": config.title,
            "startDateTime": config.start.isoformat(),
            "endDateTime": config.end.isoformat(),
        })
        data = response.json()
        return MeetingDetails(link=data["joinWebUrl"], meeting_id=data.get("id"))

    async def delete_meeting(self, meeting_id: str) -> None:
        await self._request("DELETE", f"/me/onlineMeetings/{meeting_id}")


class GoogleMeetProvider(MeetingProvider):
    """Meet links come from a Calendar event with a conference request."""

    name = "google_meet"

    def __init__(self, service_account_json: Optional[str] = None, calendar_id: Optional[str] = None):
        self.service_account_json = service_account_json
        self.calendar_id = calendar_id or settings.GOOGLE_CALENDAR_ID
        self._service = None

    def _calendar_service(self):
        if self._service is not None:
            return self._service
        if not self.service_account_json:
            raise ExternalServiceError("Google Meet is not configured", service=self.name)
        try:
            info = json.loads(self.service_account_json)
        except json.JSONDecodeError as e:
            raise ExternalServiceError(f"Invalid GOOGLE_SERVICE_ACCOUNT_JSON: {e}", service=self.name)
        credentials = service_account.Credentials.from_service_account_info(
            info, scopes=["https://www.googleapis.com/auth/calendar"]
        )
        self._service = build("calendar", "v3", credentials=credentials, cache_discovery=False)
        return self._service

    async def create_meeting(self, config: MeetingConfig) -> MeetingDetails:
        body = {
            "summary": config.title,
            "start": {"dateTime": config.start.isoformat(), "timeZone": "UTC"},
            "end": {"dateTime": config.end.isoformat(), "timeZone": "UTC"},
            "attendees": [{"email": config.guest_email, "displayName": config.guest_name}],
            "conferenceData": {
                "createRequest": {
                    "requestId": f"bookwise-{int(config.start.timestamp())}-{config.guest_email}",
                    "conferenceSolutionKey": {"type": "hangoutsMeet"},
                }
            },
        }

        def _insert():
            return self._calendar_service().events().insert(
                calendarId=self.calendar_id, body=body, conferenceDataVersion=1
            ).execute()

        try:
            event = await asyncio.to_thread(_insert)
        except HttpError as e:
            raise ExternalServiceError(f"Google Calendar error: {e}", service=self.name)
        link = event.get("hangoutLink")
        if not link:
            raise ExternalServiceError("Google did not return a Meet link", service=self.name)
        return MeetingDetails(link=link, meeting_id=event.get("id"))

    async def delete_meeting(self, meeting_id: str) -> None:
        def _delete():
            self._calendar_service().events().delete(calendarId=self.calendar_id, eventId=meeting_id).execute()

        try:
            await asyncio.to_thread(_delete)
        except HttpError as e:
            raise ExternalServiceError(f"Google Calendar error: {e}", service=self.name)


def get_provider(location_type: LocationType) -> Optional[MeetingProvider]:
    """Provider for a video location type, None for every other location."""
    if location_type == LocationType.VIDEO_ZOOM:
        return ZoomProvider(settings.ZOOM_ACCESS_TOKEN)
    if location_type == LocationType.VIDEO_TEAMS:
        return TeamsProvider(settings.MS_GRAPH_ACCESS_TOKEN)
    if location_type == LocationType.VIDEO_GOOGLE_MEET:
        return GoogleMeetProvider(settings.GOOGLE_SERVICE_ACCOUNT_JSON)
    return None


ProviderFactory = Callable[[LocationType], Optional[MeetingProvider]]


class MeetingLinkSubscriber:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        provider_factory: ProviderFactory = get_provider,
        timeout_seconds: Optional[float] = None,
    ):
        self._session_factory = session_factory
        self.provider_factory = provider_factory
        self.timeout_seconds = timeout_seconds or settings.MEETING_PROVIDER_TIMEOUT_SECONDS
        self.events: Optional[EventBus] = None

    def register(self, bus: EventBus) -> None:
        self.events = bus
        bus.subscribe(BookingCreated, self.on_created)
        bus.subscribe(BookingRescheduled, self.on_rescheduled)
        bus.subscribe(BookingCancelled, self.on_cancelled)

    async def _provision(self, db: AsyncSession, booking: Booking) -> None:
        event_type = booking.event_type
        provider = self.provider_factory(event_type.location_type)
        if provider is None:
            return

        config = MeetingConfig(
            title=f"{event_type.title} with {booking.guest_name}",
            start=booking.start_time,
            end=booking.end_time,
            guest_name=booking.guest_name,
            guest_email=booking.guest_email,
        )
        try:
            details = await asyncio.wait_for(provider.create_meeting(config), timeout=self.timeout_seconds)
        except (ExternalServiceError, asyncio.TimeoutError) as e:
            log_error(e, {"service": provider.name, "booking_id": booking.id})
            if not booking.location:
                # video-only event type: the reservation stands, but the guest has nowhere to go yet
                logger.warning("booking_without_meeting_link", booking_id=booking.id, provider=provider.name)
            return

        booking.meeting_link = details.link
        booking.meeting_password = details.password
        booking.meeting_id = details.meeting_id
        booking.location = details.link
        await db.commit()
        logger.info("meeting_provisioned", booking_id=booking.id, provider=provider.name)

    async def _remove(self, location_type: LocationType, meeting_id: Optional[str], booking_id: str) -> None:
        provider = self.provider_factory(location_type)
        if provider is None or not meeting_id:
            return
        try:
            await asyncio.wait_for(provider.delete_meeting(meeting_id), timeout=self.timeout_seconds)
        except (ExternalServiceError, asyncio.TimeoutError) as e:
            log_error(e, {"service": provider.name, "booking_id": booking_id})

    def _settled(self, booking: Booking, rescheduled: bool) -> None:
        if self.events is not None:
            self.events.publish(BookingLocationReady(
                booking_id=booking.id, user_id=booking.user_id, rescheduled=rescheduled,
            ))

    async def on_created(self, event: BookingCreated) -> None:
        async with self._session_factory() as db:
            booking = await get_booking(db, event.booking_id)
            if booking is None or not booking.is_active:
                return
            try:
                await self._provision(db, booking)
            finally:
                self._settled(booking, rescheduled=False)

    async def on_rescheduled(self, event: BookingRescheduled) -> None:
        async with self._session_factory() as db:
            booking = await get_booking(db, event.booking_id)
            if booking is None or not booking.is_active:
                return
            await self._remove(booking.event_type.location_type, booking.meeting_id, booking.id)
            booking.meeting_link = booking.meeting_password = booking.meeting_id = None
            booking.location = booking.event_type.location_details
            await db.commit()
            try:
                await self._provision(db, booking)
            finally:
                self._settled(booking, rescheduled=True)

    async def on_cancelled(self, event: BookingCancelled) -> None:
        if event.location_type is None:
            return
        await self._remove(LocationType(event.location_type), event.meeting_id, event.booking_id)
