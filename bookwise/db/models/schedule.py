# bookwise/db/models/schedule.py

from __future__ import annotations
import datetime as dt
from sqlalchemy.orm import Mapped, mapped_column
import sqlalchemy as sa

from bookwise.db.session import Base
from bookwise.db.types import new_id

class WeeklyAvailability(Base):
    """One recurring window: day_of_week (0 = Sunday) with local HH:MM bounds."""

    __tablename__ = "availability"
    __table_args__ = (
        sa.CheckConstraint("day_of_week >= 0 AND day_of_week <= 6", name="ck_availability_day_of_week"),
        sa.Index("ix_availability_user_id_day", "user_id", "day_of_week"),
    )

    id: Mapped[str] = mapped_column(sa.String(36), primary_key=True, default=new_id)
    user_id: Mapped[str] = mapped_column(sa.String(36), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    day_of_week: Mapped[int] = mapped_column(sa.Integer, nullable=False)
    start_time: Mapped[str] = mapped_column(sa.String(5), nullable=False)
    end_time: Mapped[str] = mapped_column(sa.String(5), nullable=False)


class DateOverride(Base):
    """Replaces the weekly pattern for one calendar date."""

    __tablename__ = "date_overrides"
    __table_args__ = (
        sa.UniqueConstraint("user_id", "date", name="uq_date_overrides_user_id_date"),
    )

    id: Mapped[str] = mapped_column(sa.String(36), primary_key=True, default=new_id)
    user_id: Mapped[str] = mapped_column(sa.String(36), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    date: Mapped[dt.date] = mapped_column(sa.Date, nullable=False)
    is_available: Mapped[bool] = mapped_column(sa.Boolean, nullable=False, default=False)
    start_time: Mapped[str | None] = mapped_column(sa.String(5))
    end_time: Mapped[str | None] = mapped_column(sa.String(5))
