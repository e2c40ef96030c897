# bookwise/api/deps.py
"""
Service wiring for the HTTP app. One Container per app; routes get it
through ``get_container``.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from fastapi import Request
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from bookwise.crud.schedule import ScheduleStore
from bookwise.services.availability import AvailabilityService
from bookwise.services.booking import BookingLedger
from bookwise.services.conflicts import ConflictResolver
from bookwise.services.events import EventBus
from bookwise.services.external_calendar import ExternalCalendarChecker
from bookwise.services.meetings import MeetingLinkSubscriber, ProviderFactory, get_provider
from bookwise.services.notifications import ConfirmationNotifier, MessageSender
from bookwise.services.reminders import ReminderScheduler
from bookwise.services.teams import TeamScheduler
from bookwise.utils.timeutils import Clock, utc_now


@dataclass
class Container:
    session_factory: async_sessionmaker[AsyncSession]
    events: EventBus
    store: ScheduleStore
    availability: AvailabilityService
    ledger: BookingLedger
    teams: TeamScheduler
    reminders: ReminderScheduler


def build_container(
    session_factory: async_sessionmaker[AsyncSession],
    *,
    clock: Clock = utc_now,
    external: Optional[ExternalCalendarChecker] = None,
    provider_factory: ProviderFactory = get_provider,
    sender: Optional[MessageSender] = None,
    use_external_calendars: bool = True,
    base_url: Optional[str] = None,
) -> Container:
    if external is None and use_external_calendars:
        external = ExternalCalendarChecker(session_factory)

    events = EventBus()
    store = ScheduleStore(session_factory)
    resolver = ConflictResolver(external=external)
    availability = AvailabilityService(session_factory, store, resolver=resolver, external=external, clock=clock)
    ledger = BookingLedger(session_factory, resolver=resolver, events=events, clock=clock)
    teams = TeamScheduler(session_factory, availability, ledger=ledger, clock=clock)
    reminders = ReminderScheduler(session_factory, clock=clock)

    MeetingLinkSubscriber(session_factory, provider_factory=provider_factory).register(events)
    reminders.register(events)
    ConfirmationNotifier(session_factory, sender=sender, base_url=base_url).register(events)

    return Container(
        session_factory=session_factory,
        events=events,
        store=store,
        availability=availability,
        ledger=ledger,
        teams=teams,
        reminders=reminders,
    )


def get_container(request: Request) -> Container:
    return request.app.state.container
