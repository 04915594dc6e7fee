"""Collaborator interfaces the orchestrator is constructed with."""
from datetime import datetime
from typing import List, Optional, Protocol
from uuid import UUID

from schemas import (
    Agent,
    Appointment,
    BusyInterval,
    CalendarEvent,
    CalendarEventRequest,
    EventTimes,
    Lead,
    MeetingRequest,
    NewAppointment,
    VideoMeeting,
)


class CalendarProvider(Protocol):
    async def check_availability(
        self, agent_id: str, start_iso: str, end_iso: str
    ) -> List[BusyInterval]: ...

    async def create_event(self, agent_id: str, event: CalendarEventRequest) -> CalendarEvent: ...

    async def update_event(self, agent_id: str, event_id: str, times: EventTimes) -> None: ...

    async def delete_event(self, agent_id: str, event_id: str) -> bool: ...


class VideoConferencingProvider(Protocol):
    async def create_meeting_for_user(self, user_ref: str, meeting: MeetingRequest) -> VideoMeeting: ...

    async def update_meeting(self, user_ref: str, meeting_id: str, times: EventTimes) -> None: ...

    async def delete_meeting_for_user(self, user_ref: str, meeting_id: str) -> None: ...


class Datastore(Protocol):
    async def get_lead(self, lead_id: UUID) -> Optional[Lead]: ...

    async def update_lead(self, lead_id: UUID, changes: dict) -> None: ...

    async def get_agent(self, agent_id: UUID) -> Optional[Agent]: ...

    async def get_appointment(self, appointment_id: UUID) -> Optional[Appointment]: ...

    async def get_active_appointment_for_lead(self, lead_id: UUID) -> Optional[Appointment]: ...

    async def list_active_appointments_for_agent(
        self, agent_id: UUID, start: datetime, end: datetime
    ) -> List[Appointment]: ...

    async def insert_appointment(self, data: NewAppointment) -> Appointment: ...

    async def update_appointment(self, appointment_id: UUID, changes: dict) -> Appointment: ...
