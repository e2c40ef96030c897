#!/usr/bin/env python3
"""
Tests for the schedule store: weekly windows and date overrides.
"""

from datetime import date

import pytest

from bookwise.core.errors import NotFoundError, ValidationError
from bookwise.schemas.schedule import DateOverrideIn
from bookwise.utils.timeutils import parse_hhmm

from tests.conftest import MONDAY


@pytest.mark.unit
class TestTimeOfDay:
    """HH:MM parsing"""

    @pytest.mark.parametrize("value", ["9:00", "09:00", "23:59", "00:00"])
    def test_accepted(self, value):
        parse_hhmm(value)

    @pytest.mark.parametrize("value", ["24:00", "9", "09:60", "9am", "", None])
    def test_rejected(self, value):
        with pytest.raises(ValueError):
            parse_hhmm(value)

    def test_override_hours_required_when_available(self):
        with pytest.raises(ValueError):
            DateOverrideIn(is_available=True, start_time="10:00")
        with pytest.raises(ValueError):
            DateOverrideIn(is_available=True, start_time="12:00", end_time="10:00")
        assert DateOverrideIn(is_available=False).start_time is None


@pytest.mark.integration
class TestWeeklySchedule:
    """Replacing and reading the weekly pattern"""

    @pytest.mark.asyncio
    async def test_replace_is_total(self, container, host):
        rows = await container.store.set_weekly_schedule(host.id, [
            {"day_of_week": 3, "start_time": "14:00", "end_time": "18:00"},
            {"day_of_week": 3, "start_time": "08:00", "end_time": "12:00"},
        ])

        assert [(r.day_of_week, r.start_time, r.end_time) for r in rows] == [
            (3, "08:00", "12:00"),
            (3, "14:00", "18:00"),
        ]
        assert len(await container.store.get_weekly_schedule(host.id)) == 2

    @pytest.mark.asyncio
    async def test_touching_windows_allowed(self, container, host):
        rows = await container.store.set_weekly_schedule(host.id, [
            {"day_of_week": 1, "start_time": "09:00", "end_time": "12:00"},
            {"day_of_week": 1, "start_time": "12:00", "end_time": "15:00"},
        ])
        assert len(rows) == 2

    @pytest.mark.asyncio
    @pytest.mark.parametrize("windows", [
        [{"day_of_week": 1, "start_time": "09:00", "end_time": "12:00"},
         {"day_of_week": 1, "start_time": "11:30", "end_time": "13:00"}],
        [{"day_of_week": 7, "start_time": "09:00", "end_time": "12:00"}],
        [{"day_of_week": 1, "start_time": "12:00", "end_time": "09:00"}],
        [{"day_of_week": 1, "start_time": "9am", "end_time": "12:00"}],
    ])
    async def test_invalid_windows_leave_schedule_untouched(self, container, host, windows):
        with pytest.raises(ValidationError):
            await container.store.set_weekly_schedule(host.id, windows)
        assert len(await container.store.get_weekly_schedule(host.id)) == 5

    @pytest.mark.asyncio
    async def test_unknown_user(self, container):
        with pytest.raises(NotFoundError):
            await container.store.set_weekly_schedule("missing", [])


@pytest.mark.integration
class TestDateOverrides:
    """One override per user and date"""

    @pytest.mark.asyncio
    async def test_set_replaces_existing(self, container, host):
        await container.store.set_date_override(host.id, MONDAY, True, "10:00", "12:00")
        await container.store.set_date_override(host.id, MONDAY, False, "10:00", "12:00")

        overrides = await container.store.list_date_overrides(host.id)
        assert len(overrides) == 1
        assert overrides[0].is_available is False
        assert overrides[0].start_time is None

    @pytest.mark.asyncio
    async def test_list_within_range(self, container, host):
        for day in (date(2024, 1, 10), MONDAY, date(2024, 2, 1)):
            await container.store.set_date_override(host.id, day, False)

        listed = await container.store.list_date_overrides(host.id, date(2024, 1, 11), date(2024, 1, 31))
        assert [o.date for o in listed] == [MONDAY]

    @pytest.mark.asyncio
    async def test_delete(self, container, host):
        await container.store.set_date_override(host.id, MONDAY, False)

        assert await container.store.delete_date_override(host.id, MONDAY) is True
        assert await container.store.delete_date_override(host.id, MONDAY) is False
        assert await container.store.get_date_override(host.id, MONDAY) is None
