"""Appointment, slot and booking request/result schemas."""
from datetime import datetime
from enum import Enum
from typing import List, Optional, Union
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator


class AppointmentStatus(str, Enum):
    INITIAL = "initial"
    SCHEDULED = "scheduled"
    RESCHEDULED = "rescheduled"
    CANCELLED = "cancelled"
    COMPLETED = "completed"


ACTIVE_STATUSES = (AppointmentStatus.SCHEDULED, AppointmentStatus.RESCHEDULED)


class Appointment(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    lead_id: UUID
    agent_id: UUID
    start_time: datetime
    duration_minutes: int = 60
    status: AppointmentStatus = AppointmentStatus.INITIAL
    calendar_event_id: Optional[str] = None
    video_meeting_id: Optional[str] = None
    video_join_url: Optional[str] = None
    notes: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @property
    def is_active(self) -> bool:
        return self.status in ACTIVE_STATUSES


class NewAppointment(BaseModel):
    """Row payload for the final step of the create saga."""

    lead_id: UUID
    agent_id: UUID
    start_time: datetime
    duration_minutes: int = 60
    status: AppointmentStatus = AppointmentStatus.SCHEDULED
    calendar_event_id: str
    video_meeting_id: str
    video_join_url: Optional[str] = None
    notes: Optional[str] = None


class BusyInterval(BaseModel):
    start: datetime
    end: datetime


class CandidateSlot(BaseModel):
    start: datetime
    end: datetime


class SlotMatch(BaseModel):
    preferred_time: Optional[datetime] = None
    exact_match: Optional[datetime] = None
    alternatives: List[CandidateSlot] = Field(default_factory=list)


class EventTimes(BaseModel):
    start: datetime
    end: datetime


class CalendarEventRequest(BaseModel):
    summary: str
    description: str = ""
    start_time: datetime
    end_time: datetime
    # Client-chosen event id (base32hex chars, 5-1024 long); reused across retries.
    event_id: Optional[str] = None


class CalendarEvent(BaseModel):
    id: str
    join_link: Optional[str] = None
    html_link: Optional[str] = None


class MeetingRequest(BaseModel):
    topic: str
    start_time: datetime
    duration_minutes: int = 60
    agenda: str = ""
    idempotency_key: Optional[str] = None


class VideoMeeting(BaseModel):
    id: str
    join_url: str
    host_ref: Optional[str] = None


class BookingRequest(BaseModel):
    lead_id: UUID
    agent_id: UUID
    user_message: str
    lead_name: str = "Lead"
    lead_phone: Optional[str] = None
    consultation_notes: str = ""


class RescheduleRequest(BaseModel):
    appointment_id: UUID
    new_appointment_time: Union[datetime, str]
    reason: str = "Rescheduled by user"

    @field_validator("new_appointment_time", mode="before")
    @classmethod
    def _strip(cls, value):
        if isinstance(value, str):
            return value.strip()
        return value


class CancelRequest(BaseModel):
    appointment_id: UUID
    reason: str = "Cancelled by user"


class BookingOutcome(str, Enum):
    EXACT_MATCH = "exact_match"
    CONFIRMATION_BOOKING = "confirmation_booking"
    ALTERNATIVES_OFFERED = "alternatives_offered"
    ASK_FOR_TIME_PREFERENCE = "ask_for_time_preference"
    NO_IMMEDIATE_AVAILABILITY = "no_immediate_availability"
    RESCHEDULED = "rescheduled"
    CANCELLED = "cancelled"
    ALREADY_CANCELLED = "already_cancelled"
    INVALID_REQUEST = "invalid_request"
    INVALID_STATE = "invalid_state"
    SLOT_CONFLICT = "slot_conflict"
    FAILED = "failed"


class BookingResult(BaseModel):
    success: bool
    message: str
    type: BookingOutcome
    appointment: Optional[Appointment] = None
    alternatives: List[datetime] = Field(default_factory=list)
