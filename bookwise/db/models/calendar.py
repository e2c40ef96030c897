# bookwise/db/models/calendar.py

from __future__ import annotations
import enum
from datetime import datetime
from sqlalchemy.orm import Mapped, mapped_column
import sqlalchemy as sa

from bookwise.db.session import Base
from bookwise.db.types import UTCDateTime, enum_column, new_id, utcnow


class CalendarProvider(str, enum.Enum):
    GOOGLE = "GOOGLE"
    OUTLOOK = "OUTLOOK"


class ConnectedCalendar(Base):
    """A third-party calendar whose busy times block the owner's slots."""

    __tablename__ = "connected_calendars"
    __table_args__ = (
        sa.Index("ix_connected_calendars_user_id", "user_id"),
    )

    id: Mapped[str] = mapped_column(sa.String(36), primary_key=True, default=new_id)
    user_id: Mapped[str] = mapped_column(sa.String(36), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    provider: Mapped[CalendarProvider] = mapped_column(enum_column(CalendarProvider), nullable=False)
    calendar_id: Mapped[str] = mapped_column(sa.String(255), nullable=False, default="primary")
    access_token: Mapped[str] = mapped_column(sa.Text, nullable=False)
    refresh_token: Mapped[str | None] = mapped_column(sa.Text)
    expires_at: Mapped[datetime | None] = mapped_column(UTCDateTime())
    created_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False, default=utcnow)
