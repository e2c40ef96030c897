# bookwise/schemas/event_type.py

from __future__ import annotations
from typing import Any, Optional

from pydantic import BaseModel, Field, field_validator
from pydantic.config import ConfigDict

from bookwise.db.models.event_type import LocationType, SchedulingType
from bookwise.schemas.questions import parse_questions

# Upper bound for buffer zones; conflict lookups widen their window by this much
MAX_BUFFER_MINUTES = 1440


class EventTypeCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=100)
    description: Optional[str] = Field(None, max_length=5000)
    duration: int = Field(30, ge=5, le=480)
    buffer_before: int = Field(0, ge=0, le=MAX_BUFFER_MINUTES)
    buffer_after: int = Field(0, ge=0, le=MAX_BUFFER_MINUTES)
    minimum_notice: int = Field(0, ge=0)
    max_booking_window: int = Field(60, ge=1, le=365)
    location_type: LocationType = LocationType.VIDEO_ZOOM
    location_details: Optional[str] = None
    custom_questions: list[dict[str, Any]] = Field(default_factory=list)
    scheduling_type: Optional[SchedulingType] = None
    team_id: Optional[str] = None

    @field_validator("custom_questions")
    @classmethod
    def _check_questions(cls, v: list[dict[str, Any]]) -> list[dict[str, Any]]:
        # normalised through the typed question union, stored as plain JSON
        return [q.model_dump() for q in parse_questions(v)]


class EventTypeOut(EventTypeCreate):
    id: str
    user_id: str
    is_active: bool
    model_config = ConfigDict(from_attributes=True)
