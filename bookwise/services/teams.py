# bookwise/services/teams.py
"""
Team scheduling: aggregate members' individual availability and pick a host
for round-robin bookings.

Members are evaluated concurrently, each against its own sessions, and each
member's date is read in that member's own timezone.
"""
from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from typing import Any, Optional, Sequence

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from bookwise.core.config import settings
from bookwise.core.errors import NotFoundError, SlotUnavailableError, ValidationError
from bookwise.core.logging import get_logger
from bookwise.crud.booking import count_bookings
from bookwise.crud.event_type import get_event_type
from bookwise.crud.team import get_team, list_team_members
from bookwise.db.models.booking import Booking, BookingStatus
from bookwise.db.models.event_type import EventType, SchedulingType
from bookwise.db.models.team import TeamMember
from bookwise.schemas.booking import BookingCreate, TimeSlot
from bookwise.schemas.common import parse_model
from bookwise.services.availability import AvailabilityService
from bookwise.services.booking import BookingLedger
from bookwise.utils.timeutils import Clock, utc_now

logger = get_logger(__name__)

# Bookings that count towards a member's load
LOAD_STATUSES = (BookingStatus.PENDING, BookingStatus.CONFIRMED, BookingStatus.COMPLETED)


@dataclass
class TeamAvailability:
    mode: SchedulingType
    slots: list[TimeSlot]
    members: dict[str, list[TimeSlot]] = field(default_factory=dict)


@dataclass
class TeamValidation:
    valid: bool
    assigned_user_id: Optional[str] = None
    unavailable_members: list[str] = field(default_factory=list)


def combine_slots(per_member: Sequence[Sequence[TimeSlot]], mode: SchedulingType) -> list[TimeSlot]:
    """COLLECTIVE keeps exact (start, end) matches shared by all; ROUND_ROBIN keeps any."""
    if not per_member:
        return []
    keyed = [{(s.start_time, s.end_time) for s in slots} for slots in per_member]
    if mode == SchedulingType.COLLECTIVE:
        keys = set.intersection(*keyed)
    else:
        keys = set.union(*keyed)
    return [TimeSlot(start_time=start, end_time=end) for start, end in sorted(keys)]


class TeamScheduler:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        availability: AvailabilityService,
        ledger: Optional[BookingLedger] = None,
        clock: Clock = utc_now,
        lookback_days: Optional[int] = None,
    ):
        self._session_factory = session_factory
        self.availability = availability
        self.ledger = ledger
        self.clock = clock
        self.lookback_days = lookback_days or settings.ROUND_ROBIN_LOOKBACK_DAYS

    async def _members(self, team_id: str) -> Sequence[TeamMember]:
        async with self._session_factory() as db:
            team = await get_team(db, team_id)
            if team is None:
                raise NotFoundError(f"Team {team_id} not found", team_id=team_id)
            return await list_team_members(db, team_id)

    async def get_team_availability(
        self,
        team_id: str,
        day: date,
        duration_minutes: int,
        mode: SchedulingType,
        event_type: Optional[EventType] = None,
    ) -> TeamAvailability:
        mode = SchedulingType(mode)
        members = await self._members(team_id)
        if not members:
            return TeamAvailability(mode=mode, slots=[])

        results = await asyncio.gather(*(
            self.availability.get_available_slots(m.user_id, day, duration_minutes, event_type=event_type)
            for m in members
        ))
        per_member = {m.user_id: slots for m, slots in zip(members, results)}
        slots = combine_slots(results, mode)
        logger.info(
            "team_availability_computed",
            team_id=team_id,
            mode=mode.value,
            members=len(members),
            slots=len(slots),
        )
        return TeamAvailability(mode=mode, slots=slots, members=per_member)

    async def _available_members(
        self, members: Sequence[TeamMember], start: datetime, duration_minutes: int
    ) -> list[tuple[TeamMember, bool]]:
        flags = await asyncio.gather(*(
            self.availability.is_slot_available(m.user_id, start, duration_minutes) for m in members
        ))
        return list(zip(members, flags))

    async def assign_round_robin_member(
        self,
        team_id: str,
        start: datetime,
        duration_minutes: int,
        event_type_id: Optional[str] = None,
    ) -> Optional[str]:
        """
        Least-loaded member free for [start, start + duration).

        Load is the number of bookings created in the lookback window; ties
        go to the member who joined first. None when nobody is free.
        """
        members = await self._members(team_id)
        free = [m for m, ok in await self._available_members(members, start, duration_minutes) if ok]
        if not free:
            logger.info("round_robin_no_member", team_id=team_id, start=start.isoformat())
            return None

        since = self.clock() - timedelta(days=self.lookback_days)
        async with self._session_factory() as db:
            counts = await count_bookings(
                db,
                user_ids=[m.user_id for m in free],
                statuses=LOAD_STATUSES,
                created_since=since,
                event_type_id=event_type_id,
            )

        chosen = min(enumerate(free), key=lambda pair: (counts[pair[1].user_id], pair[0]))[1]
        logger.info(
            "round_robin_assigned",
            team_id=team_id,
            user_id=chosen.user_id,
            load=counts[chosen.user_id],
            candidates=len(free),
        )
        return chosen.user_id

    async def validate_team_availability(
        self,
        team_id: str,
        start: datetime,
        duration_minutes: int,
        mode: SchedulingType,
    ) -> TeamValidation:
        mode = SchedulingType(mode)
        members = await self._members(team_id)
        if not members:
            return TeamValidation(valid=False)

        if mode == SchedulingType.COLLECTIVE:
            flags = await self._available_members(members, start, duration_minutes)
            busy = [m.user_id for m, ok in flags if not ok]
            return TeamValidation(valid=not busy, unavailable_members=busy)

        assigned = await self.assign_round_robin_member(team_id, start, duration_minutes)
        return TeamValidation(valid=assigned is not None, assigned_user_id=assigned)

    async def get_member_load_distribution(
        self, team_id: str, start: datetime, end: datetime
    ) -> list[dict[str, Any]]:
        """Bookings per member created between start and end, busiest first."""
        members = await self._members(team_id)
        async with self._session_factory() as db:
            counts = await count_bookings(
                db,
                user_ids=[m.user_id for m in members],
                statuses=LOAD_STATUSES,
                created_since=start,
                created_until=end,
            )
        rows = [
            {"user_id": m.user_id, "name": m.user.name, "bookings": counts[m.user_id], "order": i}
            for i, m in enumerate(members)
        ]
        rows.sort(key=lambda r: (-r["bookings"], r["order"]))
        for r in rows:
            del r["order"]
        return rows

    async def book_round_robin(self, team_id: str, request: BookingCreate | dict[str, Any]) -> Booking:
        """Pick a member for the requested time and book it on their calendar."""
        if self.ledger is None:
            raise RuntimeError("TeamScheduler was built without a BookingLedger")
        data = parse_model(BookingCreate, request)

        async with self._session_factory() as db:
            event_type = await get_event_type(db, data.event_type_id)
        if event_type is None or not event_type.is_active:
            raise NotFoundError(f"Event type {data.event_type_id} not found", event_type_id=data.event_type_id)
        if event_type.team_id != team_id or event_type.scheduling_type != SchedulingType.ROUND_ROBIN:
            raise ValidationError("Event type is not a round-robin event of this team", team_id=team_id)

        end = data.end_time or data.start_time + timedelta(minutes=event_type.duration)
        duration = int((end - data.start_time).total_seconds() // 60)
        assigned = await self.assign_round_robin_member(team_id, data.start_time, duration, event_type.id)
        if assigned is None:
            raise SlotUnavailableError("No team member is available at the requested time", team_id=team_id)
        return await self.ledger.create(data, host_user_id=assigned)
