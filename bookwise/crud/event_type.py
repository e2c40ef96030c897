# bookwise/crud/event_type.py

from __future__ import annotations
from typing import Any, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from bookwise.db.models.event_type import EventType
from bookwise.schemas.common import parse_model
from bookwise.schemas.event_type import EventTypeCreate


async def get_event_type(db: AsyncSession, event_type_id: str) -> Optional[EventType]:
    return await db.get(EventType, event_type_id)


async def create_event_type(
    db: AsyncSession,
    *,
    user_id: str,
    data: EventTypeCreate | dict[str, Any],
) -> EventType:
    payload = parse_model(EventTypeCreate, data)
    event_type = EventType(user_id=user_id, **payload.model_dump())
    db.add(event_type)
    await db.commit()
    await db.refresh(event_type)
    return event_type
