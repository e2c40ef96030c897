# bookwise/db/models/reminder.py

from __future__ import annotations
import enum
from datetime import datetime
from sqlalchemy.orm import Mapped, mapped_column
import sqlalchemy as sa

from bookwise.db.session import Base
from bookwise.db.types import UTCDateTime, enum_column, new_id, utcnow


class ReminderChannel(str, enum.Enum):
    EMAIL = "EMAIL"
    SMS = "SMS"


class ReminderStatus(str, enum.Enum):
    PENDING = "PENDING"
    SENT = "SENT"
    FAILED = "FAILED"
    CANCELLED = "CANCELLED"


class Reminder(Base):
    __tablename__ = "reminders"
    __table_args__ = (
        sa.Index("ix_reminders_status_scheduled_for", "status", "scheduled_for"),
        sa.Index("ix_reminders_booking_id", "booking_id"),
    )

    id: Mapped[str] = mapped_column(sa.String(36), primary_key=True, default=new_id)
    booking_id: Mapped[str] = mapped_column(sa.String(36), sa.ForeignKey("bookings.id", ondelete="CASCADE"), nullable=False)
    channel: Mapped[ReminderChannel] = mapped_column(enum_column(ReminderChannel), nullable=False)
    minutes_before: Mapped[int] = mapped_column(sa.Integer, nullable=False)
    scheduled_for: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)
    status: Mapped[ReminderStatus] = mapped_column(
        enum_column(ReminderStatus), nullable=False, default=ReminderStatus.PENDING
    )
    sent_at: Mapped[datetime | None] = mapped_column(UTCDateTime())
    error: Mapped[str | None] = mapped_column(sa.Text)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False, default=utcnow)
