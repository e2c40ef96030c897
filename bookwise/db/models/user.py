# bookwise/db/models/user.py

from __future__ import annotations
from datetime import datetime
from sqlalchemy.orm import Mapped, mapped_column
import sqlalchemy as sa

from bookwise.db.session import Base
from bookwise.db.types import UTCDateTime, new_id, utcnow

class User(Base):
    __tablename__ = "users"

    id: Mapped[str] = mapped_column(sa.String(36), primary_key=True, default=new_id)
    email: Mapped[str] = mapped_column(sa.String(255), nullable=False, unique=True)
    name: Mapped[str] = mapped_column(sa.String(120), nullable=False)
    # IANA id; every schedule row of this user is read in this zone
    timezone: Mapped[str] = mapped_column(sa.String(64), nullable=False, default="UTC")
    created_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False, default=utcnow)
