# bookwise/schemas/schedule.py

from __future__ import annotations
from datetime import date as _Date
from typing import Optional

from pydantic import BaseModel, Field, field_validator, model_validator
from pydantic.config import ConfigDict

from bookwise.utils.timeutils import parse_hhmm


def _check_hhmm(v: Optional[str]) -> Optional[str]:
    if v is None:
        return v
    t = parse_hhmm(v)
    return f"{t.hour:02d}:{t.minute:02d}"


class WeeklyWindow(BaseModel):
    """One recurring window; day_of_week 0 = Sunday ... 6 = Saturday."""
    day_of_week: int = Field(..., ge=0, le=6)
    start_time: str = Field(..., examples=["09:00"])
    end_time: str = Field(..., examples=["17:00"])
    model_config = ConfigDict(from_attributes=True)

    @field_validator("start_time", "end_time")
    @classmethod
    def _hhmm(cls, v: str) -> str:
        return _check_hhmm(v)

    @model_validator(mode="after")
    def _ordered(self) -> "WeeklyWindow":
        if parse_hhmm(self.start_time) >= parse_hhmm(self.end_time):
            raise ValueError("start_time must be before end_time")
        return self


class DateOverrideIn(BaseModel):
    is_available: bool
    start_time: Optional[str] = None
    end_time: Optional[str] = None

    @field_validator("start_time", "end_time")
    @classmethod
    def _hhmm(cls, v: Optional[str]) -> Optional[str]:
        return _check_hhmm(v)

    @model_validator(mode="after")
    def _bounds(self) -> "DateOverrideIn":
        if self.is_available:
            if self.start_time is None or self.end_time is None:
                raise ValueError("start_time and end_time are required when is_available is true")
            if parse_hhmm(self.start_time) >= parse_hhmm(self.end_time):
                raise ValueError("start_time must be before end_time")
        return self


class DateOverrideOut(DateOverrideIn):
    date: _Date
    model_config = ConfigDict(from_attributes=True)
