"""Agent repository."""
from typing import Optional
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from db.models import Agent


async def get_by_id(session: AsyncSession, agent_id: UUID) -> Optional[Agent]:
    result = await session.execute(select(Agent).where(Agent.id == agent_id))
    return result.scalar_one_or_none()


async def get_calendar_id(session: AsyncSession, agent_id: UUID) -> Optional[str]:
    result = await session.execute(
        select(Agent.google_calendar_id).where(Agent.id == agent_id)
    )
    return result.scalar_one_or_none()
