"""SQLAlchemy 2.0 ORM models for the appointment scheduler.

Covers 3 tables in the crm schema:
  - agents: consultants who host consultations
  - leads: chatbot leads, with booking-related status fields
  - appointments: one row per booked consultation
"""

import uuid
from datetime import datetime
from typing import Any, Optional

from sqlalchemy import (
    UUID,
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    JSON,
    Text,
    UniqueConstraint,
    text,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship
from sqlalchemy.sql import func


# ---------------------------------------------------------------------------
# Shared base
# ---------------------------------------------------------------------------


class Base(DeclarativeBase):
    pass


# ---------------------------------------------------------------------------
# Status values used in CHECK constraints
# ---------------------------------------------------------------------------

LEAD_STATUSES = (
    "new",
    "qualifying",
    "qualified",
    "booking_alternatives_offered",
    "appointment_confirming",
    "booked",
    "appointment_cancelled",
    "needs_human_handoff",
)

APPOINTMENT_STATUSES = ("initial", "scheduled", "rescheduled", "cancelled", "completed")

_ACTIVE = "status IN ('scheduled', 'rescheduled')"


def _in_check(column: str, values) -> str:
    return f"{column} IN (" + ", ".join(f"'{v}'" for v in values) + ")"


# ===========================================================================
# Schema: crm
# ===========================================================================


class Agent(Base):
    """crm.agents — consultants with a calendar and a video account."""

    __tablename__ = "agents"
    __table_args__ = (
        UniqueConstraint("email", name="uq_agent_email"),
        {"schema": "crm"},
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    full_name: Mapped[str] = mapped_column(Text, nullable=False)
    email: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    google_calendar_id: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    zoom_user_id: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, server_default="true", nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False
    )

    leads: Mapped[list["Lead"]] = relationship(back_populates="assigned_agent")
    appointments: Mapped[list["Appointment"]] = relationship(back_populates="agent")


class Lead(Base):
    """crm.leads — WhatsApp leads. booking_alternatives holds ISO instants."""

    __tablename__ = "leads"
    __table_args__ = (
        CheckConstraint(_in_check("status", LEAD_STATUSES), name="ck_lead_status"),
        UniqueConstraint("phone_number", name="uq_lead_phone_number"),
        {"schema": "crm"},
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    full_name: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    phone_number: Mapped[str] = mapped_column(Text, nullable=False)
    email: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    intent: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    budget: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    source: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    status: Mapped[str] = mapped_column(Text, nullable=False, server_default="new")
    assigned_agent_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("crm.agents.id", ondelete="SET NULL"),
        nullable=True,
    )
    booking_alternatives: Mapped[list[Any]] = mapped_column(
        JSON, nullable=False, server_default=text("'[]'")
    )
    tentative_booking_time: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False
    )

    assigned_agent: Mapped[Optional["Agent"]] = relationship(back_populates="leads")
    appointments: Mapped[list["Appointment"]] = relationship(back_populates="lead")


class Appointment(Base):
    """crm.appointments — consultations backed by a calendar event and a video meeting.

    Two partial unique indexes guard the active statuses: one active
    appointment per lead, and no two active appointments for the same agent
    starting at the same instant.
    """

    __tablename__ = "appointments"
    __table_args__ = (
        CheckConstraint(_in_check("status", APPOINTMENT_STATUSES), name="ck_appointment_status"),
        CheckConstraint("duration_minutes > 0", name="ck_appointment_duration"),
        CheckConstraint(
            f"NOT ({_ACTIVE}) OR (calendar_event_id IS NOT NULL AND video_meeting_id IS NOT NULL)",
            name="ck_appointment_active_has_external_ids",
        ),
        Index(
            "uq_appointment_active_lead",
            "lead_id",
            unique=True,
            postgresql_where=text(_ACTIVE),
        ),
        Index(
            "uq_appointment_active_agent_start",
            "agent_id",
            "start_time",
            unique=True,
            postgresql_where=text(_ACTIVE),
        ),
        Index("ix_appointment_agent_start", "agent_id", "start_time"),
        {"schema": "crm"},
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    lead_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("crm.leads.id", ondelete="CASCADE"),
        nullable=False,
    )
    agent_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("crm.agents.id"),
        nullable=False,
    )
    start_time: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    duration_minutes: Mapped[int] = mapped_column(Integer, nullable=False, server_default="60")
    status: Mapped[str] = mapped_column(Text, nullable=False, server_default="initial")
    calendar_event_id: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    video_meeting_id: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    video_join_url: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False
    )

    lead: Mapped["Lead"] = relationship(back_populates="appointments")
    agent: Mapped["Agent"] = relationship(back_populates="appointments")
