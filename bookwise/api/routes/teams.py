# bookwise/api/routes/teams.py

from __future__ import annotations
from datetime import date, datetime, timedelta
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field

from bookwise.api.deps import Container, get_container
from bookwise.db.models.event_type import SchedulingType
from bookwise.schemas.booking import BookingCreate, BookingCreatedOut, TimeSlot

router = APIRouter(prefix="/teams", tags=["teams"])


class TeamAvailabilityOut(BaseModel):
    mode: SchedulingType
    slots: List[TimeSlot]
    members: Dict[str, List[TimeSlot]] = Field(default_factory=dict)


class TeamValidateIn(BaseModel):
    start_time: datetime
    duration: int = Field(..., ge=5, le=480)
    mode: SchedulingType


class TeamValidateOut(BaseModel):
    valid: bool
    assigned_user_id: Optional[str] = None
    unavailable_members: List[str] = Field(default_factory=list)


@router.get("/{team_id}/availability", response_model=TeamAvailabilityOut)
async def team_availability(
    team_id: str,
    day: date = Query(..., alias="date"),
    duration: int = Query(..., ge=5, le=480),
    mode: SchedulingType = Query(SchedulingType.COLLECTIVE),
    container: Container = Depends(get_container),
):
    result = await container.teams.get_team_availability(team_id, day, duration, mode)
    return TeamAvailabilityOut(mode=result.mode, slots=result.slots, members=result.members)


@router.post("/{team_id}/validate", response_model=TeamValidateOut)
async def validate_team_slot(
    team_id: str,
    payload: TeamValidateIn,
    container: Container = Depends(get_container),
):
    result = await container.teams.validate_team_availability(
        team_id, payload.start_time, payload.duration, payload.mode
    )
    return TeamValidateOut(
        valid=result.valid,
        assigned_user_id=result.assigned_user_id,
        unavailable_members=result.unavailable_members,
    )


@router.get("/{team_id}/load", response_model=List[Dict[str, Any]])
async def load_distribution(
    team_id: str,
    days: int = Query(30, ge=1, le=365),
    container: Container = Depends(get_container),
):
    end = container.teams.clock()
    return await container.teams.get_member_load_distribution(team_id, end - timedelta(days=days), end)


@router.post("/{team_id}/bookings", response_model=BookingCreatedOut, status_code=201)
async def book_round_robin(
    team_id: str,
    payload: BookingCreate,
    container: Container = Depends(get_container),
):
    return await container.teams.book_round_robin(team_id, payload)
