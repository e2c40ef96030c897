# bookwise/schemas/booking.py

from __future__ import annotations
from datetime import datetime
from typing import Any, Optional

import phonenumbers
from pydantic import BaseModel, EmailStr, Field, field_validator, model_validator
from pydantic.config import ConfigDict

from bookwise.db.models.booking import BookingStatus
from bookwise.utils.timeutils import is_valid_timezone, to_utc


def _clean_name(v: str) -> str:
    # trim + collapse internal extra spaces
    v = " ".join(v.strip().split())
    if not v:
        raise ValueError("guest_name cannot be empty")
    return v


def _utc(v: datetime) -> datetime:
    if v.tzinfo is None:
        raise ValueError("datetime must include a UTC offset")
    if v.second or v.microsecond:
        raise ValueError("times must fall on a whole minute")
    return to_utc(v)


class BookingCreate(BaseModel):
    """Incoming payload for creating a booking."""
    event_type_id: str = Field(..., min_length=1)
    guest_name: str = Field(..., min_length=1, max_length=100, examples=["Jane Doe"])
    guest_email: EmailStr
    guest_phone: Optional[str] = Field(None, examples=["+1 587 555 0123"])
    guest_timezone: str = Field(..., examples=["America/Edmonton"])
    start_time: datetime = Field(..., description="ISO8601 with offset")
    end_time: Optional[datetime] = Field(None, description="ISO8601 with offset; defaults to start + event duration")
    custom_responses: dict[str, Any] = Field(default_factory=dict)
    notes: Optional[str] = Field(None, max_length=500)

    @field_validator("guest_name")
    @classmethod
    def _clean_guest_name(cls, v: str) -> str:
        return _clean_name(v)

    @field_validator("guest_phone")
    @classmethod
    def _normalize_phone(cls, v: Optional[str]) -> Optional[str]:
        if v is None or not v.strip():
            return None
        try:
            parsed = phonenumbers.parse(v, None if v.strip().startswith("+") else "US")
        except phonenumbers.NumberParseException:
            raise ValueError("guest_phone is not a valid phone number")
        if not phonenumbers.is_possible_number(parsed):
            raise ValueError("guest_phone is not a valid phone number")
        return phonenumbers.format_number(parsed, phonenumbers.PhoneNumberFormat.E164)

    @field_validator("guest_timezone")
    @classmethod
    def _check_timezone(cls, v: str) -> str:
        if not is_valid_timezone(v):
            raise ValueError(f"Unknown timezone {v!r}")
        return v

    @field_validator("start_time", "end_time")
    @classmethod
    def _to_utc(cls, v: Optional[datetime]) -> Optional[datetime]:
        return None if v is None else _utc(v)

    @model_validator(mode="after")
    def _check_interval(self) -> "BookingCreate":
        if self.end_time is not None and self.end_time <= self.start_time:
            raise ValueError("end_time must be after start_time")
        return self


class BookingReschedule(BaseModel):
    start_time: datetime
    end_time: Optional[datetime] = None

    @field_validator("start_time", "end_time")
    @classmethod
    def _to_utc(cls, v: Optional[datetime]) -> Optional[datetime]:
        return None if v is None else _utc(v)

    @model_validator(mode="after")
    def _check_interval(self) -> "BookingReschedule":
        if self.end_time is not None and self.end_time <= self.start_time:
            raise ValueError("end_time must be after start_time")
        return self


class BookingCancel(BaseModel):
    reason: Optional[str] = Field(None, max_length=500)


class BookingOut(BaseModel):
    id: str
    event_type_id: str
    user_id: str
    guest_name: str
    guest_email: str
    guest_phone: Optional[str] = None
    guest_timezone: str
    start_time: datetime
    end_time: datetime
    status: BookingStatus
    cancellation_reason: Optional[str] = None
    location: Optional[str] = None
    meeting_link: Optional[str] = None
    custom_responses: dict[str, Any] = Field(default_factory=dict)
    notes: Optional[str] = None
    model_config = ConfigDict(from_attributes=True)


class BookingCreatedOut(BookingOut):
    """Returned once, to the guest who booked: carries the self-service tokens."""
    reschedule_token: str
    cancel_token: str


class TimeSlot(BaseModel):
    start_time: datetime
    end_time: datetime
    available: bool = True
