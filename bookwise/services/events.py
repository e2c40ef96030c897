# bookwise/services/events.py
"""
Booking domain events and an in-process dispatcher.

The ledger publishes after its transaction commits. Each subscriber runs as
its own task, so a slow or failing collaborator never touches the booking or
the other subscribers.
"""
from __future__ import annotations

import asyncio
from collections import defaultdict
from dataclasses import dataclass
from datetime import datetime
from typing import Awaitable, Callable, Optional

from bookwise.core.errors import log_error
from bookwise.core.logging import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class BookingCreated:
    booking_id: str
    user_id: str
    start: datetime
    end: datetime


@dataclass(frozen=True)
class BookingRescheduled:
    booking_id: str
    user_id: str
    previous_start: datetime
    previous_end: datetime
    start: datetime
    end: datetime


@dataclass(frozen=True)
class BookingCancelled:
    booking_id: str
    user_id: str
    reason: Optional[str] = None
    meeting_id: Optional[str] = None
    location_type: Optional[str] = None


@dataclass(frozen=True)
class BookingLocationReady:
    """Meeting provisioning has settled for a new or moved booking, with or without a link."""
    booking_id: str
    user_id: str
    rescheduled: bool = False


BookingEvent = BookingCreated | BookingRescheduled | BookingCancelled | BookingLocationReady
Handler = Callable[[BookingEvent], Awaitable[None]]


class EventBus:
    def __init__(self):
        self._handlers: dict[type, list[Handler]] = defaultdict(list)
        self._tasks: set[asyncio.Task] = set()

    def subscribe(self, event_type: type, handler: Handler) -> None:
        self._handlers[event_type].append(handler)

    def publish(self, event: BookingEvent) -> list[asyncio.Task]:
        tasks = []
        for handler in self._handlers.get(type(event), []):
            task = asyncio.create_task(self._run(handler, event))
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)
            tasks.append(task)
        logger.debug("event_published", event_name=type(event).__name__, handlers=len(tasks))
        return tasks

    async def _run(self, handler: Handler, event: BookingEvent) -> None:
        try:
            await handler(event)
        except Exception as e:
            log_error(e, {
                "event_name": type(event).__name__,
                "handler": getattr(handler, "__qualname__", repr(handler)),
                "booking_id": event.booking_id,
            })

    async def drain(self) -> None:
        """Wait for every in-flight handler, including ones they spawn."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks))
