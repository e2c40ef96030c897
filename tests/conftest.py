#!/usr/bin/env python3
"""
Pytest configuration and shared fixtures.

Every test gets its own SQLite file (aiosqlite), a fixed clock and fake
collaborators, so nothing leaves the process and results are deterministic.
"""

import time
from datetime import date, datetime, timedelta, timezone
from typing import Iterable, Optional

import pytest
import pytest_asyncio

from bookwise.api.deps import build_container
from bookwise.crud.booking import add_slot_claims
from bookwise.crud.event_type import create_event_type
from bookwise.crud.schedule import set_date_override, set_weekly_schedule
from bookwise.db.base import init_db
from bookwise.db.models.booking import Booking, BookingStatus
from bookwise.db.models.calendar import CalendarProvider, ConnectedCalendar
from bookwise.db.models.team import Team, TeamMember
from bookwise.db.models.user import User
from bookwise.db.session import make_engine, make_session_factory
from bookwise.db.types import new_id
from bookwise.services.booking import new_token
from tests.mocks.external_services import FakeMeetingProvider, RecordingSender, video_only

# Sunday; the Monday after (2024-01-15) is the usual booking day in tests
TEST_NOW = datetime(2024, 1, 14, 12, 0, tzinfo=timezone.utc)
MONDAY = date(2024, 1, 15)
BASE_URL = "https://book.example.com"


def utc(*args) -> datetime:
    return datetime(*args, tzinfo=timezone.utc)


class FixedClock:
    """Injectable clock that only moves when told to"""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


class Seeder:
    """Writes fixture rows straight through the CRUD layer"""

    def __init__(self, session_factory):
        self.session_factory = session_factory
        self._members_added = 0

    async def user(self, name: str = "Host", tz: str = "UTC", email: Optional[str] = None) -> User:
        async with self.session_factory() as db:
            user = User(name=name, email=email or f"{new_id()[:8]}@example.com", timezone=tz)
            db.add(user)
            await db.commit()
            return user

    async def weekly(self, user: User, windows: Iterable[tuple]) -> None:
        rows = [{"day_of_week": d, "start_time": s, "end_time": e} for d, s, e in windows]
        async with self.session_factory() as db:
            await set_weekly_schedule(db, user.id, rows)

    async def override(self, user: User, day: date, is_available: bool,
                       start: Optional[str] = None, end: Optional[str] = None) -> None:
        async with self.session_factory() as db:
            await set_date_override(db, user.id, day, is_available=is_available, start_time=start, end_time=end)

    async def event_type(self, user: User, **fields):
        data = {"title": "Intro call", "duration": 30, "location_type": "IN_PERSON",
                "location_details": "Office 4B"}
        data.update(fields)
        async with self.session_factory() as db:
            return await create_event_type(db, user_id=user.id, data=data)

    async def team(self, members: Iterable[User], slug: Optional[str] = None, accepted: bool = True) -> Team:
        async with self.session_factory() as db:
            team = Team(name="Support", slug=slug or f"team-{new_id()[:8]}")
            db.add(team)
            await db.flush()
            for user in members:
                # explicit join times keep enumeration order deterministic
                self._members_added += 1
                db.add(TeamMember(
                    team_id=team.id,
                    user_id=user.id,
                    is_accepted=accepted,
                    created_at=TEST_NOW - timedelta(days=100) + timedelta(seconds=self._members_added),
                ))
            await db.commit()
            return team

    async def booking(
        self,
        user: User,
        event_type,
        start: datetime,
        end: datetime,
        status: BookingStatus = BookingStatus.CONFIRMED,
        created_at: Optional[datetime] = None,
    ) -> Booking:
        async with self.session_factory() as db:
            booking = Booking(
                id=new_id(),
                event_type_id=event_type.id,
                user_id=user.id,
                guest_name="Existing Guest",
                guest_email="existing@example.com",
                guest_timezone="UTC",
                custom_responses={},
                start_time=start,
                end_time=end,
                status=status,
                reschedule_token=new_token(),
                cancel_token=new_token(),
                created_at=created_at or TEST_NOW - timedelta(days=1),
            )
            db.add(booking)
            await db.flush()
            if booking.is_active:
                add_slot_claims(db, booking)
            await db.commit()
            await db.refresh(booking, attribute_names=["event_type"])
            return booking

    async def calendar(self, user: User, provider: CalendarProvider = CalendarProvider.GOOGLE,
                       calendar_id: str = "primary") -> ConnectedCalendar:
        async with self.session_factory() as db:
            connection = ConnectedCalendar(
                user_id=user.id, provider=provider, calendar_id=calendar_id, access_token="test-token"
            )
            db.add(connection)
            await db.commit()
            return connection


@pytest_asyncio.fixture
async def engine(tmp_path):
    engine = make_engine(f"sqlite+aiosqlite:///{tmp_path / 'bookwise_test.db'}")
    await init_db(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return make_session_factory(engine)


@pytest.fixture
def clock():
    return FixedClock(TEST_NOW)


@pytest.fixture
def seed(session_factory):
    return Seeder(session_factory)


@pytest.fixture
def meeting_provider():
    return FakeMeetingProvider()


@pytest.fixture
def sender():
    return RecordingSender()


@pytest_asyncio.fixture
async def container(session_factory, clock, meeting_provider, sender):
    container = build_container(
        session_factory,
        clock=clock,
        provider_factory=video_only(meeting_provider),
        sender=sender,
        use_external_calendars=False,
        base_url=BASE_URL,
    )
    yield container
    # side-effect handlers must finish before the engine goes away
    await container.events.drain()


@pytest_asyncio.fixture
async def host(seed):
    """UTC host working Monday-Friday 09:00-17:00"""
    user = await seed.user(name="Alice Host")
    await seed.weekly(user, [(d, "09:00", "17:00") for d in range(1, 6)])
    return user


@pytest.fixture(autouse=True)
def monitor_test_performance(request):
    """Warn about slow tests"""
    start_time = time.time()
    yield
    duration = time.time() - start_time
    node = request.node
    if node.get_closest_marker("unit") and duration > 1.0:
        print(f"⚠️ Unit test {node.name} took {duration:.2f}s (should be < 1s)")
    elif not node.get_closest_marker("slow") and duration > 10.0:
        print(f"⚠️ Test {node.name} took {duration:.2f}s (consider marking as @pytest.mark.slow)")


def pytest_configure(config):
    """Configure pytest with custom markers"""
    config.addinivalue_line("markers", "unit: Pure unit tests with no database")
    config.addinivalue_line("markers", "integration: Tests running services against SQLite")
    config.addinivalue_line("markers", "slow: Long-running tests (> 10 seconds each)")
