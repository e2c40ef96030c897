#!/usr/bin/env python3
"""
Tests for the event bus: subscribers run after commit and fail alone.
"""

from unittest.mock import patch

import pytest

from bookwise.core.errors import ErrorAggregator, ExternalServiceError, log_error
from bookwise.db.models.booking import BookingStatus
from bookwise.services import events as events_module
from bookwise.services.events import BookingCancelled, BookingCreated, EventBus

from tests.conftest import utc


def created(booking_id: str = "b1") -> BookingCreated:
    return BookingCreated(
        booking_id=booking_id, user_id="u1", start=utc(2024, 1, 15, 10, 0), end=utc(2024, 1, 15, 10, 30)
    )


@pytest.mark.unit
class TestEventBus:
    """Dispatch and failure isolation"""

    @pytest.mark.asyncio
    async def test_handlers_receive_matching_events_only(self):
        bus = EventBus()
        seen = []

        async def on_created(event):
            seen.append(event)

        bus.subscribe(BookingCreated, on_created)
        bus.publish(BookingCancelled(booking_id="b1", user_id="u1"))
        bus.publish(created())
        await bus.drain()

        assert seen == [created()]

    @pytest.mark.asyncio
    async def test_failing_handler_does_not_affect_others(self):
        bus = EventBus()
        seen = []

        async def broken(event):
            raise RuntimeError("mailer down")

        async def healthy(event):
            seen.append(event.booking_id)

        bus.subscribe(BookingCreated, broken)
        bus.subscribe(BookingCreated, healthy)

        with patch.object(events_module, "log_error", wraps=log_error) as logged:
            bus.publish(created())
            await bus.drain()

        assert seen == ["b1"]
        error, context = logged.call_args.args
        assert isinstance(error, RuntimeError)
        assert context["event_name"] == "BookingCreated"
        assert context["booking_id"] == "b1"

    @pytest.mark.asyncio
    async def test_external_service_error_is_logged_not_raised(self):
        bus = EventBus()

        async def provider_down(event):
            raise ExternalServiceError("zoom unavailable", service="zoom")

        bus.subscribe(BookingCreated, provider_down)
        bus.publish(created())
        await bus.drain()

    @pytest.mark.asyncio
    async def test_drain_waits_for_events_published_by_handlers(self):
        bus = EventBus()
        seen = []

        async def follow_up(event):
            bus.publish(BookingCancelled(booking_id=event.booking_id, user_id=event.user_id))

        async def on_cancelled(event):
            seen.append(event.booking_id)

        bus.subscribe(BookingCreated, follow_up)
        bus.subscribe(BookingCancelled, on_cancelled)
        bus.publish(created())
        await bus.drain()

        assert seen == ["b1"]


@pytest.mark.unit
class TestErrorAggregator:
    """Caller context never collides with log record keys"""

    def test_reserved_keys_in_context(self):
        aggregator = ErrorAggregator()

        fingerprint = aggregator.log_error(RuntimeError("boom"), {"event": "BookingCreated", "error": "x"})

        assert aggregator.patterns[fingerprint].count == 1


@pytest.mark.integration
class TestLedgerSubscribers:
    """A broken subscriber leaves the booking and the other side effects alone"""

    @pytest.mark.asyncio
    async def test_booking_survives_a_broken_subscriber(self, container, seed, host, sender):
        event_type = await seed.event_type(host)

        async def broken(event):
            raise RuntimeError("analytics down")

        container.events.subscribe(BookingCreated, broken)
        booking = await container.ledger.create({
            "event_type_id": event_type.id,
            "guest_name": "Jane Doe",
            "guest_email": "jane@example.com",
            "guest_timezone": "UTC",
            "start_time": utc(2024, 1, 15, 10, 0).isoformat(),
        })
        await container.events.drain()

        stored = await container.ledger.get(booking.id)
        assert stored.status == BookingStatus.CONFIRMED
        assert sender.subjects() == ["Confirmed: Intro call with Alice Host"]
