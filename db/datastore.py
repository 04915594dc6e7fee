"""Postgres-backed Datastore for the appointment orchestrator.

Each call runs in its own session/transaction and returns pydantic
schemas, never ORM objects. SQLAlchemy errors are translated into the
booking error taxonomy so the retry policy can classify them.
"""
import logging
from contextlib import asynccontextmanager
from datetime import datetime
from enum import Enum
from typing import AsyncIterator, List, Optional
from uuid import UUID

from sqlalchemy.exc import (
    DBAPIError,
    IntegrityError,
    InterfaceError,
    OperationalError,
    SQLAlchemyError,
)
from sqlalchemy.ext.asyncio import AsyncSession

from booking.errors import ConflictError, DatabaseError, ValidationError
from db.connection import Database
from db.repositories import agents as agent_repo
from db.repositories import appointments as appointment_repo
from db.repositories import leads as lead_repo
from schemas import Agent, Appointment, Lead, NewAppointment

logger = logging.getLogger(__name__)

CONFLICT_CONSTRAINTS = ("uq_appointment_active_agent_start", "uq_appointment_active_lead")


def _plain(changes: dict) -> dict:
    return {k: v.value if isinstance(v, Enum) else v for k, v in changes.items()}


def translate_error(exc: Exception, action: str) -> Exception:
    """Map a SQLAlchemy exception onto ConflictError or DatabaseError."""
    if isinstance(exc, IntegrityError):
        detail = str(exc.orig)
        if any(name in detail for name in CONFLICT_CONSTRAINTS):
            return ConflictError(f"{action}: {detail}")
        return DatabaseError(f"{action}: integrity error: {detail}")
    if isinstance(exc, (OperationalError, InterfaceError)):
        return DatabaseError(f"{action}: {exc}", retryable=True)
    if isinstance(exc, DBAPIError) and exc.connection_invalidated:
        return DatabaseError(f"{action}: connection lost: {exc}", retryable=True)
    if isinstance(exc, OSError):
        return DatabaseError(f"{action}: {exc}", retryable=True)
    return DatabaseError(f"{action}: {exc}")


class SqlDatastore:
    def __init__(self, database: Database):
        self.database = database

    @asynccontextmanager
    async def _session(self, action: str) -> AsyncIterator[AsyncSession]:
        try:
            async with self.database.session() as session:
                yield session
        except (SQLAlchemyError, OSError) as exc:
            raise translate_error(exc, action) from exc

    # -- leads ---------------------------------------------------------------

    async def get_lead(self, lead_id: UUID) -> Optional[Lead]:
        async with self._session("get_lead") as session:
            row = await lead_repo.get_by_id(session, lead_id)
            return Lead.model_validate(row) if row else None

    async def update_lead(self, lead_id: UUID, changes: dict) -> None:
        async with self._session("update_lead") as session:
            await lead_repo.update_fields(session, lead_id, _plain(changes))

    # -- agents --------------------------------------------------------------

    async def get_agent(self, agent_id: UUID) -> Optional[Agent]:
        async with self._session("get_agent") as session:
            row = await agent_repo.get_by_id(session, agent_id)
            return Agent.model_validate(row) if row else None

    async def agent_calendar_id(self, agent_id: str) -> Optional[str]:
        """Calendar id lookup used by GoogleCalendarProvider."""
        async with self._session("agent_calendar_id") as session:
            return await agent_repo.get_calendar_id(session, UUID(agent_id))

    # -- appointments --------------------------------------------------------

    async def get_appointment(self, appointment_id: UUID) -> Optional[Appointment]:
        async with self._session("get_appointment") as session:
            row = await appointment_repo.get_by_id(session, appointment_id)
            return Appointment.model_validate(row) if row else None

    async def get_active_appointment_for_lead(self, lead_id: UUID) -> Optional[Appointment]:
        async with self._session("get_active_appointment_for_lead") as session:
            row = await appointment_repo.get_active_for_lead(session, lead_id)
            return Appointment.model_validate(row) if row else None

    async def list_active_appointments_for_agent(
        self, agent_id: UUID, start: datetime, end: datetime
    ) -> List[Appointment]:
        async with self._session("list_active_appointments_for_agent") as session:
            rows = await appointment_repo.list_active_for_agent(session, agent_id, start, end)
            return [Appointment.model_validate(r) for r in rows]

    async def insert_appointment(self, data: NewAppointment) -> Appointment:
        async with self._session("insert_appointment") as session:
            row = await appointment_repo.insert(session, _plain(data.model_dump()))
            return Appointment.model_validate(row)

    async def update_appointment(self, appointment_id: UUID, changes: dict) -> Appointment:
        async with self._session("update_appointment") as session:
            row = await appointment_repo.update_fields(session, appointment_id, _plain(changes))
            if row is None:
                raise ValidationError(f"appointment {appointment_id} not found")
            return Appointment.model_validate(row)
