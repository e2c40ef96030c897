# bookwise/db/models/event_type.py

from __future__ import annotations
import enum
from datetime import datetime
from typing import Any
from sqlalchemy.orm import Mapped, mapped_column
import sqlalchemy as sa

from bookwise.db.session import Base
from bookwise.db.types import UTCDateTime, enum_column, new_id, utcnow


class LocationType(str, enum.Enum):
    VIDEO_ZOOM = "VIDEO_ZOOM"
    VIDEO_GOOGLE_MEET = "VIDEO_GOOGLE_MEET"
    VIDEO_TEAMS = "VIDEO_TEAMS"
    PHONE = "PHONE"
    IN_PERSON = "IN_PERSON"
    CUSTOM = "CUSTOM"

    @property
    def is_video(self) -> bool:
        return self.name.startswith("VIDEO_")


class SchedulingType(str, enum.Enum):
    COLLECTIVE = "COLLECTIVE"
    ROUND_ROBIN = "ROUND_ROBIN"


class EventType(Base):
    __tablename__ = "event_types"
    __table_args__ = (
        sa.Index("ix_event_types_user_id", "user_id"),
        sa.Index("ix_event_types_team_id", "team_id"),
    )

    id: Mapped[str] = mapped_column(sa.String(36), primary_key=True, default=new_id)
    user_id: Mapped[str] = mapped_column(sa.String(36), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    team_id: Mapped[str | None] = mapped_column(sa.String(36), sa.ForeignKey("teams.id", ondelete="SET NULL"))
    title: Mapped[str] = mapped_column(sa.String(100), nullable=False)
    description: Mapped[str | None] = mapped_column(sa.Text)

    # Minutes
    duration: Mapped[int] = mapped_column(sa.Integer, nullable=False, default=30)
    buffer_before: Mapped[int] = mapped_column(sa.Integer, nullable=False, default=0)
    buffer_after: Mapped[int] = mapped_column(sa.Integer, nullable=False, default=0)
    minimum_notice: Mapped[int] = mapped_column(sa.Integer, nullable=False, default=0)
    # Days
    max_booking_window: Mapped[int] = mapped_column(sa.Integer, nullable=False, default=60)

    location_type: Mapped[LocationType] = mapped_column(
        enum_column(LocationType), nullable=False, default=LocationType.VIDEO_ZOOM
    )
    location_details: Mapped[str | None] = mapped_column(sa.Text)
    custom_questions: Mapped[list[dict[str, Any]]] = mapped_column(sa.JSON, nullable=False, default=list)
    scheduling_type: Mapped[SchedulingType | None] = mapped_column(enum_column(SchedulingType))
    is_active: Mapped[bool] = mapped_column(sa.Boolean, nullable=False, default=True)

    created_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False, default=utcnow)
