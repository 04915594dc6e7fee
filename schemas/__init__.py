from .lead import Agent, Lead, LeadStatus
from .appointment import (
    ACTIVE_STATUSES,
    Appointment,
    AppointmentStatus,
    BookingOutcome,
    BookingRequest,
    BookingResult,
    BusyInterval,
    CalendarEvent,
    CalendarEventRequest,
    CancelRequest,
    CandidateSlot,
    EventTimes,
    MeetingRequest,
    NewAppointment,
    RescheduleRequest,
    SlotMatch,
    VideoMeeting,
)

__all__ = [
    "Agent", "Lead", "LeadStatus",
    "ACTIVE_STATUSES", "Appointment", "AppointmentStatus", "NewAppointment",
    "BusyInterval", "CandidateSlot", "SlotMatch", "EventTimes",
    "CalendarEvent", "CalendarEventRequest", "MeetingRequest", "VideoMeeting",
    "BookingRequest", "RescheduleRequest", "CancelRequest",
    "BookingOutcome", "BookingResult",
]
