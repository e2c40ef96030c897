"""
Fake collaborators for tests: meeting providers, message senders and
external calendar sources that never leave the process.
"""

import asyncio
from datetime import datetime
from typing import Dict, Any, List, Optional, Sequence

from bookwise.core.errors import ExternalServiceError
from bookwise.db.models.calendar import CalendarProvider
from bookwise.db.models.event_type import LocationType
from bookwise.services.external_calendar import BusyInterval, BusySource
from bookwise.services.meetings import MeetingConfig, MeetingDetails, MeetingProvider


class FakeMeetingProvider(MeetingProvider):
    """Records meetings instead of calling a video platform"""

    name = "fake_video"

    def __init__(self, fail: bool = False, delay: float = 0.0):
        self.fail = fail
        self.delay = delay
        self.created: List[MeetingConfig] = []
        self.deleted: List[str] = []

    async def create_meeting(self, config: MeetingConfig) -> MeetingDetails:
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.fail:
            raise ExternalServiceError("video provider unavailable", service=self.name)
        self.created.append(config)
        n = len(self.created)
        return MeetingDetails(link=f"https://meet.example.com/m{n}", password="pw", meeting_id=f"m{n}")

    async def delete_meeting(self, meeting_id: str) -> None:
        self.deleted.append(meeting_id)


def video_only(provider: MeetingProvider):
    """Provider factory that serves ``provider`` for video location types only"""
    def factory(location_type: LocationType) -> Optional[MeetingProvider]:
        return provider if LocationType(location_type).is_video else None
    return factory


class RecordingSender:
    """MessageSender that keeps every message; channels in ``fail_channels`` raise"""

    def __init__(self, fail_channels: Sequence[Any] = ()):
        self.fail_channels = set(fail_channels)
        self.messages: List[Dict[str, Any]] = []

    async def send(self, channel, recipient: str, subject: str, body: str) -> None:
        if channel in self.fail_channels:
            raise ExternalServiceError(f"{channel.value} gateway down", service=channel.value.lower())
        self.messages.append({
            "channel": channel,
            "recipient": recipient,
            "subject": subject,
            "body": body,
        })

    def subjects(self) -> List[str]:
        return [m["subject"] for m in self.messages]


class StaticBusySource(BusySource):
    """Busy source returning canned intervals, optionally slow or broken"""

    def __init__(
        self,
        intervals: Sequence[BusyInterval] = (),
        provider: CalendarProvider = CalendarProvider.GOOGLE,
        delay: float = 0.0,
        error: Optional[Exception] = None,
    ):
        self.provider = provider
        self.intervals = list(intervals)
        self.delay = delay
        self.error = error
        self.calls: List[tuple] = []

    async def get_busy_intervals(self, connection, start: datetime, end: datetime) -> List[BusyInterval]:
        self.calls.append((connection.calendar_id, start, end))
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return list(self.intervals)
