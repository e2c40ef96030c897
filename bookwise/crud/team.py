# bookwise/crud/team.py

from __future__ import annotations
from typing import Optional, Sequence

import sqlalchemy as sa
from sqlalchemy.ext.asyncio import AsyncSession

from bookwise.db.models.team import Team, TeamMember


async def get_team(db: AsyncSession, team_id: str) -> Optional[Team]:
    return await db.get(Team, team_id)


async def list_team_members(
    db: AsyncSession,
    team_id: str,
    *,
    accepted_only: bool = True,
) -> Sequence[TeamMember]:
    """Members in enumeration order (joined first); round-robin ties follow it."""
    q = sa.select(TeamMember).where(TeamMember.team_id == team_id)
    if accepted_only:
        q = q.where(TeamMember.is_accepted.is_(True))
    q = q.order_by(TeamMember.created_at.asc(), TeamMember.id.asc())
    res = await db.execute(q)
    return res.scalars().all()
