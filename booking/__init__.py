"""Appointment scheduling and booking orchestration.

Leaves first:
  retry          RetryPolicy wrapped around every external call
  availability   AvailabilityFinder (free hourly slots from busy intervals)
  time_parser    NaturalTimeParser ("tomorrow at 3pm" to an instant)
  slot_matcher   SlotMatcher (exact match or alternatives)
  state_machine  lead lifecycle state and action validation
  saga           ordered steps with reverse-order compensation
  orchestrator   create / reschedule / cancel entry points
"""
from booking.config import SchedulingConfig
from booking.orchestrator import AppointmentOrchestrator

__all__ = ["SchedulingConfig", "AppointmentOrchestrator"]
