"""Lead and agent views used by the booking subsystem.

Both records are owned by the surrounding chatbot; only the fields the
scheduler reads or writes are modelled here.
"""
from enum import Enum
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


class LeadStatus(str, Enum):
    NEW = "new"
    QUALIFYING = "qualifying"
    QUALIFIED = "qualified"
    BOOKING_ALTERNATIVES_OFFERED = "booking_alternatives_offered"
    APPOINTMENT_CONFIRMING = "appointment_confirming"
    BOOKED = "booked"
    APPOINTMENT_CANCELLED = "appointment_cancelled"
    NEEDS_HUMAN_HANDOFF = "needs_human_handoff"


class Lead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    full_name: Optional[str] = None
    phone_number: Optional[str] = None
    email: Optional[str] = None
    intent: Optional[str] = None
    budget: Optional[str] = None
    source: Optional[str] = None
    assigned_agent_id: Optional[UUID] = None
    status: str = LeadStatus.NEW.value
    booking_alternatives: List[str] = Field(default_factory=list)  # ISO instants
    tentative_booking_time: Optional[str] = None  # ISO instant


class Agent(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    full_name: Optional[str] = None
    google_calendar_id: Optional[str] = None
    zoom_user_id: Optional[str] = None
    is_active: bool = True
