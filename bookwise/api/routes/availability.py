# bookwise/api/routes/availability.py

from __future__ import annotations
import datetime as dt
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, Response
from pydantic import BaseModel

from bookwise.api.deps import Container, get_container
from bookwise.core.errors import NotFoundError, ValidationError
from bookwise.crud.event_type import get_event_type
from bookwise.schemas.booking import TimeSlot
from bookwise.schemas.schedule import DateOverrideIn, DateOverrideOut, WeeklyWindow
from bookwise.utils.timeutils import is_valid_timezone

router = APIRouter(prefix="/users", tags=["availability"])


class SlotsOut(BaseModel):
    date: dt.date
    timezone: Optional[str] = None
    slots: List[TimeSlot]


@router.get("/{user_id}/slots", response_model=SlotsOut)
async def get_slots(
    user_id: str,
    day: dt.date = Query(..., alias="date", description="Host-local calendar date"),
    duration: Optional[int] = Query(None, ge=5, le=480, description="Minutes; defaults to the event type's"),
    event_type_id: Optional[str] = Query(None),
    timezone: Optional[str] = Query(None, description="Requester's IANA zone, echoed for display"),
    include_unavailable: bool = False,
    container: Container = Depends(get_container),
):
    if timezone is not None and not is_valid_timezone(timezone):
        raise ValidationError(f"Unknown timezone {timezone!r}", field="timezone")

    event_type = None
    if event_type_id is not None:
        async with container.session_factory() as db:
            event_type = await get_event_type(db, event_type_id)
        if event_type is None:
            raise NotFoundError(f"Event type {event_type_id} not found", event_type_id=event_type_id)

    if duration is None:
        if event_type is None:
            raise ValidationError("duration or event_type_id is required", field="duration")
        duration = event_type.duration

    slots = await container.availability.get_available_slots(
        user_id, day, duration, event_type=event_type, include_unavailable=include_unavailable
    )
    return SlotsOut(date=day, timezone=timezone, slots=slots)


@router.get("/{user_id}/schedule", response_model=List[WeeklyWindow])
async def get_schedule(user_id: str, container: Container = Depends(get_container)):
    await container.store.get_user(user_id)
    return await container.store.get_weekly_schedule(user_id)


@router.put("/{user_id}/schedule", response_model=List[WeeklyWindow])
async def put_schedule(
    user_id: str,
    windows: List[WeeklyWindow],
    container: Container = Depends(get_container),
):
    return await container.store.set_weekly_schedule(user_id, windows)


@router.get("/{user_id}/overrides", response_model=List[DateOverrideOut])
async def list_overrides(
    user_id: str,
    start: Optional[dt.date] = None,
    end: Optional[dt.date] = None,
    container: Container = Depends(get_container),
):
    return await container.store.list_date_overrides(user_id, start, end)


@router.put("/{user_id}/overrides/{day}", response_model=DateOverrideOut)
async def put_override(
    user_id: str,
    day: dt.date,
    payload: DateOverrideIn,
    container: Container = Depends(get_container),
):
    return await container.store.set_date_override(
        user_id, day, payload.is_available, payload.start_time, payload.end_time
    )


@router.delete("/{user_id}/overrides/{day}", status_code=204)
async def delete_override(user_id: str, day: dt.date, container: Container = Depends(get_container)):
    deleted = await container.store.delete_date_override(user_id, day)
    if not deleted:
        raise NotFoundError(f"No override on {day.isoformat()}", user_id=user_id)
    return Response(status_code=204)
