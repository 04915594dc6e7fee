"""In-memory calendar, video and datastore doubles for orchestrator tests.

Each fake records its calls and can be told to fail:
    fake.fail("create_event", CalendarProviderError("down", status_code=503))
fails every call; pass times=n to fail only the next n calls. Fakes that
share a ``journal`` list record into it in call order.
"""
import uuid
from datetime import datetime, timedelta
from typing import Dict, List, Optional
from uuid import UUID

from booking.errors import CalendarProviderError, ConflictError, VideoProviderError
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


class _Failing:
    def __init__(self):
        self.calls: List[tuple] = []
        self.journal: Optional[List[tuple]] = None
        self._failures: Dict[str, list] = {}

    def fail(self, method: str, exc: Exception, times: Optional[int] = None) -> None:
        self._failures[method] = [exc, times]

    def calls_to(self, method: str) -> List[tuple]:
        return [c for c in self.calls if c[0] == method]

    def _record(self, method: str, *args) -> None:
        self.calls.append((method, *args))
        if self.journal is not None:
            self.journal.append((method, *args))
        failure = self._failures.get(method)
        if failure is None:
            return
        exc, remaining = failure
        if remaining is not None:
            if remaining <= 0:
                return
            failure[1] = remaining - 1
        raise exc


class FakeCalendar(_Failing):
    def __init__(self, busy: Optional[List[BusyInterval]] = None):
        super().__init__()
        self.busy = list(busy or [])
        self.events: Dict[str, dict] = {}
        self._next = 0

    async def check_availability(self, agent_id: str, start_iso: str, end_iso: str) -> List[BusyInterval]:
        self._record("check_availability", agent_id, start_iso, end_iso)
        booked = [BusyInterval(start=e["start"], end=e["end"]) for e in self.events.values()]
        return self.busy + booked

    async def create_event(self, agent_id: str, event: CalendarEventRequest) -> CalendarEvent:
        self._record("create_event", agent_id, event)
        self._next += 1
        event_id = f"evt-{self._next}"
        self.events[event_id] = {
            "agent_id": agent_id,
            "summary": event.summary,
            "description": event.description,
            "start": event.start_time,
            "end": event.end_time,
        }
        return CalendarEvent(id=event_id, html_link=f"https://calendar.example/{event_id}")

    async def update_event(self, agent_id: str, event_id: str, times: EventTimes) -> None:
        self._record("update_event", agent_id, event_id, times)
        if event_id not in self.events:
            raise CalendarProviderError(f"event {event_id} not found", status_code=404)
        self.events[event_id].update(start=times.start, end=times.end)

    async def delete_event(self, agent_id: str, event_id: str) -> bool:
        self._record("delete_event", agent_id, event_id)
        self.events.pop(event_id, None)
        return True


class FakeVideo(_Failing):
    def __init__(self):
        super().__init__()
        self.meetings: Dict[str, dict] = {}
        self._next = 0

    async def create_meeting_for_user(self, user_ref: str, meeting: MeetingRequest) -> VideoMeeting:
        self._record("create_meeting_for_user", user_ref, meeting)
        self._next += 1
        meeting_id = str(90000 + self._next)
        self.meetings[meeting_id] = {
            "user_ref": user_ref,
            "topic": meeting.topic,
            "agenda": meeting.agenda,
            "start": meeting.start_time,
            "duration": meeting.duration_minutes,
        }
        return VideoMeeting(id=meeting_id, join_url=f"https://zoom.us/j/{meeting_id}", host_ref=user_ref)

    async def update_meeting(self, user_ref: str, meeting_id: str, times: EventTimes) -> None:
        self._record("update_meeting", user_ref, meeting_id, times)
        if meeting_id not in self.meetings:
            raise VideoProviderError(f"meeting {meeting_id} not found", status_code=404)
        self.meetings[meeting_id]["start"] = times.start

    async def delete_meeting_for_user(self, user_ref: str, meeting_id: str) -> None:
        self._record("delete_meeting_for_user", user_ref, meeting_id)
        self.meetings.pop(meeting_id, None)


class FakeDatastore(_Failing):
    """Enforces the same uniqueness rules as the partial indexes in Postgres."""

    def __init__(self):
        super().__init__()
        self.leads: Dict[UUID, Lead] = {}
        self.agents: Dict[UUID, Agent] = {}
        self.appointments: Dict[UUID, Appointment] = {}

    def add_lead(self, lead: Lead) -> Lead:
        self.leads[lead.id] = lead
        return lead

    def add_agent(self, agent: Agent) -> Agent:
        self.agents[agent.id] = agent
        return agent

    def add_appointment(self, appointment: Appointment) -> Appointment:
        self.appointments[appointment.id] = appointment
        return appointment

    async def get_lead(self, lead_id: UUID) -> Optional[Lead]:
        self._record("get_lead", lead_id)
        return self.leads.get(lead_id)

    async def update_lead(self, lead_id: UUID, changes: dict) -> None:
        self._record("update_lead", lead_id, changes)
        if lead_id in self.leads:
            self.leads[lead_id] = self.leads[lead_id].model_copy(update=changes)

    async def get_agent(self, agent_id: UUID) -> Optional[Agent]:
        self._record("get_agent", agent_id)
        return self.agents.get(agent_id)

    async def get_appointment(self, appointment_id: UUID) -> Optional[Appointment]:
        self._record("get_appointment", appointment_id)
        return self.appointments.get(appointment_id)

    async def get_active_appointment_for_lead(self, lead_id: UUID) -> Optional[Appointment]:
        self._record("get_active_appointment_for_lead", lead_id)
        return next(
            (a for a in self.appointments.values() if a.lead_id == lead_id and a.is_active),
            None,
        )

    async def list_active_appointments_for_agent(
        self, agent_id: UUID, start: datetime, end: datetime
    ) -> List[Appointment]:
        self._record("list_active_appointments_for_agent", agent_id, start, end)
        return sorted(
            (
                a
                for a in self.appointments.values()
                if a.agent_id == agent_id and a.is_active and start <= a.start_time < end
            ),
            key=lambda a: a.start_time,
        )

    async def insert_appointment(self, data: NewAppointment) -> Appointment:
        self._record("insert_appointment", data)
        for existing in self.appointments.values():
            if not existing.is_active:
                continue
            if existing.lead_id == data.lead_id:
                raise ConflictError("lead already has an active appointment")
            if existing.agent_id == data.agent_id and existing.start_time == data.start_time:
                raise ConflictError("agent slot already taken")
        appointment = Appointment(id=uuid.uuid4(), **data.model_dump())
        self.appointments[appointment.id] = appointment
        return appointment

    async def update_appointment(self, appointment_id: UUID, changes: dict) -> Appointment:
        self._record("update_appointment", appointment_id, changes)
        updated = self.appointments[appointment_id].model_copy(update=changes)
        self.appointments[appointment_id] = updated
        return updated


def make_appointment(lead: Lead, agent: Agent, start: datetime, **overrides) -> Appointment:
    data = dict(
        id=uuid.uuid4(),
        lead_id=lead.id,
        agent_id=agent.id,
        start_time=start,
        duration_minutes=60,
        status="scheduled",
        calendar_event_id=None,
        video_meeting_id=None,
        video_join_url=None,
    )
    data.update(overrides)
    return Appointment(**data)


def busy(start: datetime, hours: float = 1) -> BusyInterval:
    return BusyInterval(start=start, end=start + timedelta(hours=hours))
