"""Consultation scheduler — command-line entry point.

Wires the appointment orchestrator to Postgres, Google Calendar and Zoom.

Usage:
  # List open slots for an agent, nearest to a preference first
  python scheduler.py slots --agent-id <uuid> --prefer "tomorrow at 3pm"

  # Book from a lead's chat message
  python scheduler.py book --lead-id <uuid> --agent-id <uuid> --message "friday 2pm works"

  # Move or cancel an existing appointment
  python scheduler.py reschedule --appointment-id <uuid> --time 2026-03-03T15:00:00+08:00
  python scheduler.py cancel --appointment-id <uuid> --reason "Lead travelling"

  # Show where a lead is in the booking lifecycle
  python scheduler.py state --lead-id <uuid>
"""
import argparse
import asyncio
import json
import logging
import os
import sys
from uuid import UUID

from dotenv import load_dotenv

from booking import AppointmentOrchestrator, SchedulingConfig
from booking.state_machine import derive_state, describe_state, next_states, suggest_next_action
from db import Database, SqlDatastore
from schemas import BookingRequest, BookingResult, CancelRequest, RescheduleRequest
from tools.calendar_tools import GoogleCalendarProvider
from tools.zoom_tools import ZoomVideoProvider

logger = logging.getLogger(__name__)

load_dotenv()


def build_orchestrator(database: Database, config: SchedulingConfig) -> AppointmentOrchestrator:
    datastore = SqlDatastore(database)
    # Transport timeouts stay under the per-attempt bound so no timed-out
    # request is still in flight when its retry starts.
    transport_timeout = config.call_timeout * 2 / 3
    calendar = GoogleCalendarProvider(
        resolve_calendar_id=datastore.agent_calendar_id,
        time_zone=config.timezone,
        http_timeout=transport_timeout,
    )
    video = ZoomVideoProvider(time_zone=config.timezone, timeout=transport_timeout)
    return AppointmentOrchestrator(datastore, calendar, video, config=config)


def _print_result(result: BookingResult) -> None:
    print(f"\n[{result.type.value}] success={result.success}")
    print(result.message)
    if result.appointment:
        print(f"  Appointment: {result.appointment.id} ({result.appointment.status.value})")


async def run_command(args: argparse.Namespace) -> int:
    config = SchedulingConfig.from_env()
    database = Database().init()
    try:
        orchestrator = build_orchestrator(database, config)

        if args.command == "slots":
            preferred = orchestrator.parser.parse(args.prefer) if args.prefer else None
            slots = await orchestrator.finder.find_slots(
                str(args.agent_id), preferred_time=preferred, days_to_search=args.days
            )
            if not slots:
                print("No open slots found.")
            for i, slot in enumerate(slots, start=1):
                print(f"  {i}. {slot.start.astimezone(config.tz).strftime('%A, %d %B %Y at %I:%M %p')}")
            return 0

        if args.command == "book":
            result = await orchestrator.find_and_book_appointment(
                BookingRequest(
                    lead_id=args.lead_id,
                    agent_id=args.agent_id,
                    user_message=args.message,
                    consultation_notes=args.notes,
                )
            )
        elif args.command == "reschedule":
            result = await orchestrator.reschedule_appointment(
                RescheduleRequest(
                    appointment_id=args.appointment_id,
                    new_appointment_time=args.time,
                    reason=args.reason,
                )
            )
        elif args.command == "cancel":
            result = await orchestrator.cancel_appointment(
                CancelRequest(appointment_id=args.appointment_id, reason=args.reason)
            )
        elif args.command == "state":
            lead = await orchestrator.datastore.get_lead(args.lead_id)
            if lead is None:
                print(f"Lead {args.lead_id} not found.")
                return 1
            active = await orchestrator.datastore.get_active_appointment_for_lead(lead.id)
            state = derive_state(lead, active)
            print(json.dumps({
                "lead_id": str(lead.id),
                "status": lead.status,
                "state": state.value,
                "description": describe_state(state),
                "suggested_next_action": suggest_next_action(state),
                "next_states": [s.value for s in next_states(state)],
                "active_appointment": str(active.id) if active else None,
                "booking_alternatives": lead.booking_alternatives,
            }, indent=2))
            return 0
        else:
            raise ValueError(f"unknown command {args.command!r}")

        _print_result(result)
        return 0 if result.success else 2
    finally:
        await database.dispose()


def _build_arg_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Consultation scheduler: find slots, book, reschedule and cancel appointments",
    )
    sub = parser.add_subparsers(dest="command")

    slots = sub.add_parser("slots", help="List open slots for an agent")
    slots.add_argument("--agent-id", type=UUID, required=True)
    slots.add_argument("--prefer", default="", help='Free-text preference, e.g. "tomorrow at 3pm"')
    slots.add_argument("--days", type=int, default=None, help="Days to search (default from config)")

    book = sub.add_parser("book", help="Book a consultation from a lead's message")
    book.add_argument("--lead-id", type=UUID, required=True)
    book.add_argument("--agent-id", type=UUID, required=True)
    book.add_argument("--message", required=True, help="The lead's chat message")
    book.add_argument("--notes", default="", help="Extra consultation notes for the agent")

    reschedule = sub.add_parser("reschedule", help="Move an appointment to a new time")
    reschedule.add_argument("--appointment-id", type=UUID, required=True)
    reschedule.add_argument("--time", required=True, help="New start in ISO 8601 (e.g. 2026-03-03T15:00:00+08:00)")
    reschedule.add_argument("--reason", default="Rescheduled by user")

    cancel = sub.add_parser("cancel", help="Cancel an appointment")
    cancel.add_argument("--appointment-id", type=UUID, required=True)
    cancel.add_argument("--reason", default="Cancelled by user")

    state = sub.add_parser("state", help="Show a lead's booking state")
    state.add_argument("--lead-id", type=UUID, required=True)

    return parser


if __name__ == "__main__":
    logging.basicConfig(
        level=os.environ.get("LOG_LEVEL", "INFO").upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    parser = _build_arg_parser()
    args = parser.parse_args()

    if args.command is None:
        parser.print_help()
        sys.exit(1)

    sys.exit(asyncio.run(run_command(args)))
