# bookwise/services/external_calendar.py
"""
Busy times from a host's connected third-party calendars.

Every connected calendar is queried concurrently under its own timeout. A
calendar that is slow or failing is logged and treated as "no additional
conflict known": availability stays up at the cost of strictness.
"""
from __future__ import annotations

import asyncio
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import date, datetime, time
from typing import Mapping, Optional, Sequence

import httpx
import sqlalchemy as sa
from google.oauth2.credentials import Credentials
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from bookwise.core.config import settings
from bookwise.core.errors import ExternalServiceError
from bookwise.core.logging import get_logger
from bookwise.db.models.calendar import CalendarProvider, ConnectedCalendar
from bookwise.utils.timeout_protection import with_timeout
from bookwise.utils.timeutils import UTC, to_utc

logger = get_logger(__name__)


@dataclass(frozen=True)
class BusyInterval:
    start: datetime
    end: datetime
    cancelled: bool = False


_FRACTION = re.compile(r"\.(\d+)")


def _parse_instant(value: str) -> datetime:
    # fromisoformat on 3.10 rejects a trailing Z and anything but 3 or 6 fractional digits;
    # Graph sends 7 ("2024-01-15T10:00:00.0000000")
    if value.endswith("Z"):
        value = value[:-1] + "+00:00"
    value = _FRACTION.sub(lambda m: "." + m.group(1)[:6].ljust(6, "0"), value, count=1)
    return to_utc(datetime.fromisoformat(value))


class BusySource(ABC):
    """Reads busy intervals from one calendar provider."""

    provider: CalendarProvider

    @abstractmethod
    async def get_busy_intervals(
        self, connection: ConnectedCalendar, start: datetime, end: datetime
    ) -> list[BusyInterval]:
        ...


class GoogleCalendarBusySource(BusySource):
    provider = CalendarProvider.GOOGLE

    def _service(self, connection: ConnectedCalendar):
        credentials = Credentials(token=connection.access_token, refresh_token=connection.refresh_token)
        return build("calendar", "v3", credentials=credentials, cache_discovery=False)

    def _fetch(self, connection: ConnectedCalendar, start: datetime, end: datetime) -> dict:
        service = self._service(connection)
        return service.events().list(
            calendarId=connection.calendar_id,
            timeMin=start.isoformat(),
            timeMax=end.isoformat(),
            singleEvents=True,
            orderBy="startTime",
        ).execute()

    @staticmethod
    def _bound(value: dict) -> datetime:
        if "dateTime" in value:
            return _parse_instant(value["dateTime"])
        # all-day events carry a bare date
        return datetime.combine(date.fromisoformat(value["date"]), time(0, 0), tzinfo=UTC)

    async def get_busy_intervals(self, connection, start, end):
        try:
            data = await asyncio.to_thread(self._fetch, connection, start, end)
        except HttpError as e:
            raise ExternalServiceError(f"Google Calendar error: {e}", service="google_calendar")

        intervals = []
        for item in data.get("items", []):
            # transparent events do not block time
            if item.get("transparency") == "transparent":
                continue
            intervals.append(BusyInterval(
                start=self._bound(item["start"]),
                end=self._bound(item["end"]),
                cancelled=item.get("status") == "cancelled",
            ))
        return intervals


class OutlookBusySource(BusySource):
    provider = CalendarProvider.OUTLOOK
    base_url = "https://graph.microsoft.com/v1.0"

    def __init__(self, client: Optional[httpx.AsyncClient] = None):
        self._client = client

    async def _get(self, url: str, **kwargs) -> httpx.Response:
        if self._client is not None:
            return await self._client.get(url, **kwargs)
        async with httpx.AsyncClient() as client:
            return await client.get(url, **kwargs)

    async def get_busy_intervals(self, connection, start, end):
        url = f"{self.base_url}/me/calendars/{connection.calendar_id}/calendarView"
        if connection.calendar_id == "primary":
            url = f"{self.base_url}/me/calendarView"
        try:
            response = await self._get(
                url,
                params={"startDateTime": start.isoformat(), "endDateTime": end.isoformat()},
                headers={
                    "Authorization": f"Bearer {connection.access_token}",
                    "Prefer": 'outlook.timezone="UTC"',
                },
            )
            response.raise_for_status()
        except httpx.HTTPError as e:
            raise ExternalServiceError(f"Outlook calendar error: {e}", service="outlook_calendar")

        intervals = []
        for item in response.json().get("value", []):
            if item.get("showAs") == "free":
                continue
            intervals.append(BusyInterval(
                start=_parse_instant(item["start"]["dateTime"]),
                end=_parse_instant(item["end"]["dateTime"]),
                cancelled=bool(item.get("isCancelled")),
            ))
        return intervals


def default_sources() -> dict[CalendarProvider, BusySource]:
    return {
        CalendarProvider.GOOGLE: GoogleCalendarBusySource(),
        CalendarProvider.OUTLOOK: OutlookBusySource(),
    }


class ExternalCalendarChecker:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        sources: Optional[Mapping[CalendarProvider, BusySource]] = None,
        timeout_seconds: Optional[float] = None,
    ):
        self._session_factory = session_factory
        self.sources = dict(sources) if sources is not None else default_sources()
        self.timeout_seconds = timeout_seconds or settings.EXTERNAL_CALENDAR_TIMEOUT_SECONDS

    async def _connections(self, user_id: str) -> Sequence[ConnectedCalendar]:
        async with self._session_factory() as db:
            res = await db.execute(
                sa.select(ConnectedCalendar).where(ConnectedCalendar.user_id == user_id)
            )
            return res.scalars().all()

    async def _query(self, connection: ConnectedCalendar, start: datetime, end: datetime) -> list[BusyInterval]:
        source = self.sources.get(connection.provider)
        if source is None:
            logger.warning("calendar_provider_unsupported", provider=connection.provider.value)
            return []

        result = await with_timeout(
            source.get_busy_intervals(connection, start, end),
            timeout_seconds=self.timeout_seconds,
            default_value=None,
            operation=f"busy_lookup:{connection.provider.value}",
        )
        if result is None:
            logger.warning(
                "external_calendar_skipped",
                calendar_id=connection.id,
                provider=connection.provider.value,
                user_id=connection.user_id,
                assumed="no_conflict",
            )
            return []
        return result

    async def busy_intervals(self, user_id: str, start: datetime, end: datetime) -> list[tuple[datetime, datetime]]:
        """Non-cancelled busy intervals across all of the user's calendars, sorted."""
        connections = await self._connections(user_id)
        if not connections:
            return []

        results = await asyncio.gather(*(self._query(c, start, end) for c in connections))
        busy = [
            (interval.start, interval.end)
            for intervals in results
            for interval in intervals
            if not interval.cancelled
        ]
        return sorted(busy)

    async def has_conflict(self, user_id: str, start: datetime, end: datetime) -> bool:
        busy = await self.busy_intervals(user_id, start, end)
        return any(b_start < end and b_end > start for b_start, b_end in busy)
