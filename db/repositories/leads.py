"""Lead repository — reads and booking-status updates."""
import logging
from typing import Optional
from uuid import UUID

from sqlalchemy import func, select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.ext.asyncio import AsyncSession

from db.models import Lead

logger = logging.getLogger(__name__)


async def get_by_id(session: AsyncSession, lead_id: UUID) -> Optional[Lead]:
    result = await session.execute(select(Lead).where(Lead.id == lead_id))
    return result.scalar_one_or_none()


async def upsert(session: AsyncSession, data: dict) -> Lead:
    """Insert or update a lead by phone number (dedup key).

    data dict keys: phone_number, full_name, email, intent, budget, source,
    status, assigned_agent_id
    """
    data = {**data, "phone_number": data["phone_number"].strip()}
    stmt = (
        pg_insert(Lead)
        .values(**data)
        .on_conflict_do_update(
            index_elements=["phone_number"],
            set_={**{k: v for k, v in data.items() if k != "phone_number"}, "updated_at": func.now()},
        )
        .returning(Lead)
    )
    result = await session.execute(stmt, execution_options={"populate_existing": True})
    await session.flush()
    return result.scalar_one()


async def update_fields(session: AsyncSession, lead_id: UUID, changes: dict) -> Optional[Lead]:
    """Apply a partial update (status, booking_alternatives, tentative_booking_time...)."""
    result = await session.execute(
        update(Lead)
        .where(Lead.id == lead_id)
        .values(**changes, updated_at=func.now())
        .returning(Lead)
    )
    await session.flush()
    lead = result.scalar_one_or_none()
    if lead is None:
        logger.warning("Lead update matched no row lead_id=%s", lead_id)
    return lead
