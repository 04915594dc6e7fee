"""Lead appointment lifecycle.

States:
  initial          lead just started, no qualification yet
  qualifying       bot is gathering intent and budget
  qualified        intent and budget known, ready to book
  selecting_time   lead is choosing between offered alternatives
  confirming       appointment details are being confirmed
  booked           an active (scheduled/rescheduled) appointment exists
  rescheduling     an existing appointment is being moved
  cancelled        last appointment was cancelled, may book again
  needs_human_handoff  a human must take over

derive_state() is pure: it only reads the lead and the active appointment.
"""
from enum import Enum
from typing import Optional

from schemas import Appointment, Lead, LeadStatus


class LeadState(str, Enum):
    INITIAL = "initial"
    QUALIFYING = "qualifying"
    QUALIFIED = "qualified"
    SELECTING_TIME = "selecting_time"
    CONFIRMING = "confirming"
    BOOKED = "booked"
    RESCHEDULING = "rescheduling"
    CANCELLED = "cancelled"
    NEEDS_HUMAN = "needs_human_handoff"


class AppointmentAction(str, Enum):
    INITIATE_BOOKING = "initiate_booking"
    SELECT_ALTERNATIVE = "select_alternative"
    RESCHEDULE_APPOINTMENT = "reschedule_appointment"
    CANCEL_APPOINTMENT = "cancel_appointment"


TRANSITIONS = {
    LeadState.INITIAL: (LeadState.QUALIFYING, LeadState.NEEDS_HUMAN),
    LeadState.QUALIFYING: (LeadState.QUALIFIED, LeadState.INITIAL, LeadState.NEEDS_HUMAN),
    LeadState.QUALIFIED: (
        LeadState.SELECTING_TIME,
        LeadState.BOOKED,
        LeadState.QUALIFYING,
        LeadState.NEEDS_HUMAN,
    ),
    LeadState.SELECTING_TIME: (
        LeadState.CONFIRMING,
        LeadState.BOOKED,
        LeadState.QUALIFIED,
        LeadState.NEEDS_HUMAN,
    ),
    LeadState.CONFIRMING: (LeadState.BOOKED, LeadState.SELECTING_TIME, LeadState.NEEDS_HUMAN),
    LeadState.BOOKED: (LeadState.RESCHEDULING, LeadState.CANCELLED, LeadState.NEEDS_HUMAN),
    LeadState.RESCHEDULING: (
        LeadState.BOOKED,
        LeadState.CANCELLED,
        LeadState.SELECTING_TIME,
        LeadState.NEEDS_HUMAN,
    ),
    LeadState.CANCELLED: (LeadState.QUALIFIED, LeadState.SELECTING_TIME, LeadState.BOOKED, LeadState.NEEDS_HUMAN),
    LeadState.NEEDS_HUMAN: (LeadState.QUALIFIED, LeadState.BOOKED),
}

# (states the action is legal in, clarifying reply when it is not)
ACTION_RULES = {
    AppointmentAction.INITIATE_BOOKING: (
        (LeadState.QUALIFIED, LeadState.SELECTING_TIME, LeadState.CANCELLED),
        "Before I book a consultation I just need a little more about what you're looking for. "
        "Are you buying or renting, and roughly what's your budget?",
    ),
    AppointmentAction.SELECT_ALTERNATIVE: (
        (LeadState.SELECTING_TIME,),
        "I don't have any time options waiting for you yet. "
        "What day and time would suit you for a consultation?",
    ),
    AppointmentAction.RESCHEDULE_APPOINTMENT: (
        (LeadState.BOOKED, LeadState.RESCHEDULING),
        "I couldn't find an upcoming appointment to move. "
        "Would you like me to book a new consultation instead?",
    ),
    AppointmentAction.CANCEL_APPOINTMENT: (
        (LeadState.BOOKED, LeadState.RESCHEDULING),
        "I couldn't find an upcoming appointment to cancel.",
    ),
}

_missing = set(AppointmentAction) - set(ACTION_RULES)
if _missing:
    raise RuntimeError(f"No state rule for appointment actions: {sorted(a.value for a in _missing)}")

_STATUS_TO_STATE = {
    LeadStatus.NEW.value: LeadState.INITIAL,
    LeadStatus.QUALIFYING.value: LeadState.QUALIFYING,
    LeadStatus.BOOKING_ALTERNATIVES_OFFERED.value: LeadState.SELECTING_TIME,
    LeadStatus.APPOINTMENT_CONFIRMING.value: LeadState.CONFIRMING,
    LeadStatus.APPOINTMENT_CANCELLED.value: LeadState.CANCELLED,
    LeadStatus.NEEDS_HUMAN_HANDOFF.value: LeadState.NEEDS_HUMAN,
}


def derive_state(lead: Lead, active_appointment: Optional[Appointment] = None) -> LeadState:
    """Map a lead and its active appointment (if any) to a lifecycle state."""
    if active_appointment is not None and active_appointment.is_active:
        return LeadState.BOOKED

    status = lead.status or LeadStatus.NEW.value
    if status == LeadStatus.QUALIFIED.value:
        return LeadState.QUALIFIED if lead.intent and lead.budget else LeadState.QUALIFYING
    if status == LeadStatus.BOOKED.value:
        # Marked booked but nothing active: treat as ready to book again.
        return LeadState.QUALIFIED
    return _STATUS_TO_STATE.get(status, LeadState.INITIAL)


def validate_action(action: AppointmentAction, state: LeadState) -> bool:
    legal_states, _ = ACTION_RULES[action]
    return state in legal_states


def rejection_message(action: AppointmentAction) -> str:
    return ACTION_RULES[action][1]


def is_valid_transition(from_state: LeadState, to_state: LeadState) -> bool:
    return to_state in TRANSITIONS[from_state]


def next_states(state: LeadState) -> tuple:
    return TRANSITIONS[state]


_DESCRIPTIONS = {
    LeadState.INITIAL: "New lead - needs qualification",
    LeadState.QUALIFYING: "Gathering information about property needs",
    LeadState.QUALIFIED: "Ready to book consultation",
    LeadState.SELECTING_TIME: "Choosing from available time slots",
    LeadState.CONFIRMING: "Confirming appointment details",
    LeadState.BOOKED: "Has scheduled appointment",
    LeadState.RESCHEDULING: "Rescheduling existing appointment",
    LeadState.CANCELLED: "Previously cancelled appointment - can book new one",
    LeadState.NEEDS_HUMAN: "Requires human assistance",
}

_SUGGESTIONS = {
    LeadState.INITIAL: "Ask about property intent and budget",
    LeadState.QUALIFYING: "Continue gathering qualification information",
    LeadState.QUALIFIED: "Offer to book consultation appointment",
    LeadState.SELECTING_TIME: "Help choose from available time slots",
    LeadState.CONFIRMING: "Confirm appointment details",
    LeadState.BOOKED: "Provide appointment details or offer to reschedule",
    LeadState.RESCHEDULING: "Help find new appointment time",
    LeadState.CANCELLED: "Offer to book new appointment",
    LeadState.NEEDS_HUMAN: "Transfer to human agent",
}


def describe_state(state: LeadState) -> str:
    return _DESCRIPTIONS[state]


def suggest_next_action(state: LeadState) -> str:
    return _SUGGESTIONS[state]
