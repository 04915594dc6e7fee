"""Appointment repository — the only writer of crm.appointments."""
import logging
from datetime import datetime
from typing import Optional
from uuid import UUID

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from db.models import Appointment

logger = logging.getLogger(__name__)

ACTIVE_STATUSES = ("scheduled", "rescheduled")


async def get_by_id(session: AsyncSession, appointment_id: UUID) -> Optional[Appointment]:
    result = await session.execute(
        select(Appointment).where(Appointment.id == appointment_id)
    )
    return result.scalar_one_or_none()


async def get_active_for_lead(session: AsyncSession, lead_id: UUID) -> Optional[Appointment]:
    """Return the lead's scheduled/rescheduled appointment, or None."""
    result = await session.execute(
        select(Appointment)
        .where(Appointment.lead_id == lead_id)
        .where(Appointment.status.in_(ACTIVE_STATUSES))
        .order_by(Appointment.start_time)
        .limit(1)
    )
    return result.scalar_one_or_none()


async def list_active_for_agent(
    session: AsyncSession, agent_id: UUID, start: datetime, end: datetime
) -> list[Appointment]:
    """Return the agent's active appointments starting in [start, end)."""
    result = await session.execute(
        select(Appointment)
        .where(Appointment.agent_id == agent_id)
        .where(Appointment.status.in_(ACTIVE_STATUSES))
        .where(Appointment.start_time >= start)
        .where(Appointment.start_time < end)
        .order_by(Appointment.start_time)
    )
    return list(result.scalars().all())


async def insert(session: AsyncSession, data: dict) -> Appointment:
    """Insert an appointment row.

    The partial unique indexes raise IntegrityError when the lead already
    has an active appointment or the agent's slot is already taken.
    """
    appointment = Appointment(**data)
    session.add(appointment)
    await session.flush()
    await session.refresh(appointment)
    logger.info(
        "Appointment row inserted id=%s lead_id=%s agent_id=%s start=%s",
        appointment.id,
        appointment.lead_id,
        appointment.agent_id,
        appointment.start_time.isoformat(),
    )
    return appointment


async def update_fields(
    session: AsyncSession, appointment_id: UUID, changes: dict
) -> Optional[Appointment]:
    result = await session.execute(
        update(Appointment)
        .where(Appointment.id == appointment_id)
        .values(**changes, updated_at=func.now())
        .returning(Appointment)
    )
    await session.flush()
    return result.scalar_one_or_none()
