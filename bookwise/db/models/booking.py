# bookwise/db/models/booking.py

from __future__ import annotations
import enum
from datetime import datetime
from typing import Any
from sqlalchemy.orm import Mapped, mapped_column, relationship
import sqlalchemy as sa

from bookwise.db.session import Base
from bookwise.db.types import UTCDateTime, enum_column, new_id, utcnow
from bookwise.db.models.event_type import EventType


class BookingStatus(str, enum.Enum):
    PENDING = "PENDING"
    CONFIRMED = "CONFIRMED"
    CANCELLED = "CANCELLED"
    COMPLETED = "COMPLETED"
    NO_SHOW = "NO_SHOW"


# Statuses that hold the host's calendar
ACTIVE_STATUSES = (BookingStatus.PENDING, BookingStatus.CONFIRMED)


class Booking(Base):
    __tablename__ = "bookings"
    __table_args__ = (
        sa.Index("ix_bookings_user_id_start_time", "user_id", "start_time"),
        sa.Index("ix_bookings_event_type_id", "event_type_id"),
        sa.UniqueConstraint("reschedule_token", name="uq_bookings_reschedule_token"),
        sa.UniqueConstraint("cancel_token", name="uq_bookings_cancel_token"),
    )

    id: Mapped[str] = mapped_column(sa.String(36), primary_key=True, default=new_id)
    event_type_id: Mapped[str] = mapped_column(sa.String(36), sa.ForeignKey("event_types.id"), nullable=False)
    # Host whose calendar this booking occupies
    user_id: Mapped[str] = mapped_column(sa.String(36), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False)

    guest_name: Mapped[str] = mapped_column(sa.String(100), nullable=False)
    guest_email: Mapped[str] = mapped_column(sa.String(255), nullable=False)
    guest_phone: Mapped[str | None] = mapped_column(sa.String(20))
    guest_timezone: Mapped[str] = mapped_column(sa.String(64), nullable=False)
    custom_responses: Mapped[dict[str, Any]] = mapped_column(sa.JSON, nullable=False, default=dict)
    notes: Mapped[str | None] = mapped_column(sa.Text)

    # Store as timezone-aware UTC
    start_time: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)
    end_time: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)
    status: Mapped[BookingStatus] = mapped_column(
        enum_column(BookingStatus), nullable=False, default=BookingStatus.CONFIRMED
    )
    cancellation_reason: Mapped[str | None] = mapped_column(sa.Text)

    location: Mapped[str | None] = mapped_column(sa.Text)
    meeting_link: Mapped[str | None] = mapped_column(sa.Text)
    meeting_password: Mapped[str | None] = mapped_column(sa.String(64))
    meeting_id: Mapped[str | None] = mapped_column(sa.String(128))

    reschedule_token: Mapped[str] = mapped_column(sa.String(64), nullable=False)
    cancel_token: Mapped[str] = mapped_column(sa.String(64), nullable=False)

    created_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False, default=utcnow, onupdate=utcnow)

    # Buffers are read from the booking's own event type
    event_type: Mapped[EventType] = relationship(lazy="selectin")

    @property
    def is_active(self) -> bool:
        return self.status in ACTIVE_STATUSES


class BookingSlotClaim(Base):
    """
    One fixed-size time bucket of a host calendar held by an active booking.

    The unique (user_id, bucket_start) pair makes the database reject a second
    active booking over the same time, whichever process commits second.
    """

    __tablename__ = "booking_slot_claims"
    __table_args__ = (
        sa.UniqueConstraint("user_id", "bucket_start", name="uq_booking_slot_claims_user_id_bucket_start"),
        sa.Index("ix_booking_slot_claims_booking_id", "booking_id"),
    )

    id: Mapped[str] = mapped_column(sa.String(36), primary_key=True, default=new_id)
    user_id: Mapped[str] = mapped_column(sa.String(36), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    booking_id: Mapped[str] = mapped_column(sa.String(36), sa.ForeignKey("bookings.id", ondelete="CASCADE"), nullable=False)
    bucket_start: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)
