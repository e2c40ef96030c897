# bookwise/db/base.py

"""
This file imports all the ORM models so Alembic can discover them.
Whenever you add a new model, import it here.
"""
from bookwise.db.models.user import User
from bookwise.db.models.team import Team, TeamMember
from bookwise.db.models.schedule import WeeklyAvailability, DateOverride
from bookwise.db.models.event_type import EventType
from bookwise.db.models.booking import Booking, BookingSlotClaim
from bookwise.db.models.calendar import ConnectedCalendar
from bookwise.db.models.reminder import Reminder
from bookwise.db.session import engine, Base

__all__ = [
    "User", "Team", "TeamMember", "WeeklyAvailability", "DateOverride", "EventType",
    "Booking", "BookingSlotClaim", "ConnectedCalendar", "Reminder", "Base",
]

async def init_db(bind=None):
    """Initialize database by creating all tables"""
    async with (bind or engine).begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
