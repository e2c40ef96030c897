#!/usr/bin/env python3
"""
Tests for connected third-party calendars: busy time blocks slots, slow or
failing providers are treated as "no conflict known".
"""

from unittest.mock import patch

import httpx
import pytest

from bookwise.api.deps import build_container
from bookwise.core.errors import ExternalServiceError, SlotUnavailableError
from bookwise.db.models.calendar import CalendarProvider
from bookwise.services.external_calendar import (
    BusyInterval,
    ExternalCalendarChecker,
    GoogleCalendarBusySource,
    OutlookBusySource,
)

from tests.conftest import MONDAY, utc
from tests.mocks.external_services import StaticBusySource, video_only


def at(hour: int, minute: int = 0):
    return utc(2024, 1, 15, hour, minute)


@pytest.fixture
async def wired(session_factory, clock, meeting_provider, sender):
    """Container whose conflict checks consult a configurable busy source"""
    source = StaticBusySource()
    checker = ExternalCalendarChecker(
        session_factory, sources={CalendarProvider.GOOGLE: source}, timeout_seconds=0.05
    )
    container = build_container(
        session_factory,
        clock=clock,
        external=checker,
        provider_factory=video_only(meeting_provider),
        sender=sender,
    )
    yield container, checker, source
    await container.events.drain()


@pytest.mark.integration
class TestBusyTimeBlocksSlots:
    """Busy intervals from connected calendars"""

    @pytest.mark.asyncio
    async def test_busy_interval_removes_overlapping_slots(self, wired, seed, host):
        container, _, source = wired
        source.intervals = [BusyInterval(at(10), at(11))]
        await seed.calendar(host)

        slots = await container.availability.get_available_slots(host.id, MONDAY, 30)
        starts = [s.start_time for s in slots]

        assert len(slots) == 26
        assert at(9, 30) in starts and at(11) in starts
        assert not [s for s in starts if at(9, 30) < s < at(11)]

    @pytest.mark.asyncio
    async def test_cancelled_events_do_not_block(self, wired, seed, host):
        container, _, source = wired
        source.intervals = [BusyInterval(at(10), at(11), cancelled=True)]
        await seed.calendar(host)

        assert len(await container.availability.get_available_slots(host.id, MONDAY, 30)) == 31

    @pytest.mark.asyncio
    async def test_without_connections_no_lookup(self, wired, host):
        container, _, source = wired
        source.intervals = [BusyInterval(at(10), at(11))]

        assert len(await container.availability.get_available_slots(host.id, MONDAY, 30)) == 31
        assert source.calls == []

    @pytest.mark.asyncio
    async def test_every_connection_is_consulted(self, wired, seed, host):
        container, _, source = wired
        await seed.calendar(host, calendar_id="work")
        await seed.calendar(host, calendar_id="personal")

        await container.availability.get_available_slots(host.id, MONDAY, 30)
        assert sorted(call[0] for call in source.calls) == ["personal", "work"]

    @pytest.mark.asyncio
    async def test_booking_rejected_on_external_conflict(self, wired, seed, host):
        container, checker, source = wired
        source.intervals = [BusyInterval(at(10), at(11))]
        await seed.calendar(host)
        event_type = await seed.event_type(host)

        assert await checker.has_conflict(host.id, at(10, 30), at(11))
        assert not await checker.has_conflict(host.id, at(11), at(11, 30))
        with pytest.raises(SlotUnavailableError):
            await container.ledger.create({
                "event_type_id": event_type.id,
                "guest_name": "Jane Doe",
                "guest_email": "jane@example.com",
                "guest_timezone": "UTC",
                "start_time": at(10, 30).isoformat(),
            })


@pytest.mark.integration
class TestDegradedProviders:
    """A slow or broken provider never blocks availability or booking"""

    @pytest.mark.asyncio
    @pytest.mark.parametrize("delay,error", [
        (1.0, None),
        (0.0, ExternalServiceError("Google Calendar error: 500", service="google_calendar")),
    ])
    async def test_failure_means_no_conflict(self, wired, seed, host, delay, error):
        container, checker, source = wired
        source.intervals = [BusyInterval(at(10), at(11))]
        source.delay = delay
        source.error = error
        await seed.calendar(host)
        event_type = await seed.event_type(host)

        slots = await container.availability.get_available_slots(host.id, MONDAY, 30)
        assert len(slots) == 31
        assert not await checker.has_conflict(host.id, at(10), at(11))

        booking = await container.ledger.create({
            "event_type_id": event_type.id,
            "guest_name": "Jane Doe",
            "guest_email": "jane@example.com",
            "guest_timezone": "UTC",
            "start_time": at(10).isoformat(),
        })
        assert booking.start_time == at(10)

    @pytest.mark.asyncio
    async def test_unsupported_provider_is_skipped(self, wired, seed, host):
        _, checker, source = wired
        await seed.calendar(host, provider=CalendarProvider.OUTLOOK)

        assert await checker.busy_intervals(host.id, at(0), at(23)) == []
        assert source.calls == []


@pytest.mark.unit
class TestProviderSources:
    """Response parsing for the concrete calendar sources"""

    @pytest.mark.asyncio
    async def test_google_events_to_intervals(self):
        source = GoogleCalendarBusySource()
        payload = {"items": [
            {"start": {"dateTime": "2024-01-15T10:00:00Z"}, "end": {"dateTime": "2024-01-15T11:00:00Z"}},
            {"start": {"dateTime": "2024-01-15T07:00:00-05:00"}, "end": {"dateTime": "2024-01-15T08:00:00-05:00"},
             "status": "cancelled"},
            {"start": {"date": "2024-01-16"}, "end": {"date": "2024-01-17"}},
            {"start": {"dateTime": "2024-01-15T13:00:00Z"}, "end": {"dateTime": "2024-01-15T14:00:00Z"},
             "transparency": "transparent"},
        ]}
        connection = type("Conn", (), {"calendar_id": "primary"})()

        with patch.object(source, "_fetch", return_value=payload):
            intervals = await source.get_busy_intervals(connection, at(0), utc(2024, 1, 17))

        assert intervals == [
            BusyInterval(at(10), at(11)),
            BusyInterval(at(12), at(13), cancelled=True),
            BusyInterval(utc(2024, 1, 16), utc(2024, 1, 17)),
        ]

    @pytest.mark.asyncio
    async def test_outlook_calendar_view(self):
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json={"value": [
                {"start": {"dateTime": "2024-01-15T10:00:00+00:00"},
                 "end": {"dateTime": "2024-01-15T10:30:00+00:00"}, "showAs": "busy"},
                {"start": {"dateTime": "2024-01-15T12:00:00+00:00"},
                 "end": {"dateTime": "2024-01-15T13:00:00+00:00"}, "showAs": "free"},
                {"start": {"dateTime": "2024-01-15T14:00:00+00:00"},
                 "end": {"dateTime": "2024-01-15T15:00:00+00:00"}, "isCancelled": True},
            ]})

        connection = type("Conn", (), {"calendar_id": "primary", "access_token": "tok"})()
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            intervals = await OutlookBusySource(client=client).get_busy_intervals(connection, at(0), at(23))

        assert seen[0].url.path == "/v1.0/me/calendarView"
        assert seen[0].headers["Authorization"] == "Bearer tok"
        assert intervals == [
            BusyInterval(at(10), at(10, 30)),
            BusyInterval(at(14), at(15), cancelled=True),
        ]

    @pytest.mark.asyncio
    async def test_outlook_graph_timestamps(self):
        # Graph answers in the Prefer'd zone with seven fractional digits and no offset
        transport = httpx.MockTransport(lambda request: httpx.Response(200, json={"value": [
            {"start": {"dateTime": "2024-01-15T10:00:00.0000000", "timeZone": "UTC"},
             "end": {"dateTime": "2024-01-15T10:45:00.0000000", "timeZone": "UTC"}, "showAs": "busy"},
            {"start": {"dateTime": "2024-01-15T16:15:30.5", "timeZone": "UTC"},
             "end": {"dateTime": "2024-01-15T16:30:00.1234567", "timeZone": "UTC"}, "showAs": "tentative"},
        ]}))
        connection = type("Conn", (), {"calendar_id": "primary", "access_token": "tok"})()

        async with httpx.AsyncClient(transport=transport) as client:
            intervals = await OutlookBusySource(client=client).get_busy_intervals(connection, at(0), at(23))

        assert intervals == [
            BusyInterval(at(10), at(10, 45)),
            BusyInterval(at(16, 15).replace(second=30, microsecond=500000),
                         at(16, 30).replace(microsecond=123456)),
        ]

    @pytest.mark.asyncio
    async def test_outlook_error_is_external_service_error(self):
        transport = httpx.MockTransport(lambda request: httpx.Response(503))
        connection = type("Conn", (), {"calendar_id": "abc", "access_token": "tok"})()

        async with httpx.AsyncClient(transport=transport) as client:
            with pytest.raises(ExternalServiceError) as exc:
                await OutlookBusySource(client=client).get_busy_intervals(connection, at(0), at(23))
        assert exc.value.service == "outlook_calendar"
