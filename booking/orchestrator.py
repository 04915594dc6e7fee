"""Appointment orchestrator. The only component that writes appointment rows.

Entry points (called by the chat/dashboard layer):
  find_and_book_appointment  resolve a time from the lead's message and run
                             the create saga: video meeting, calendar
                             event, appointment row, then lead status
  reschedule_appointment     conflict check, then move the existing event
                             and meeting in place before updating the row
  cancel_appointment         idempotent; deletes both external resources
                             and marks the row cancelled

Every external call goes through RetryPolicy. Every failure is turned into a
BookingResult carrying a short, safe message; details only go to the logs.
"""
import logging
import re
import uuid
from datetime import datetime, timedelta
from typing import Any, Awaitable, Callable, List, Optional
from uuid import UUID

from dateutil.parser import isoparse

from booking.availability import AvailabilityFinder, utc_now
from booking.config import SchedulingConfig
from booking.errors import (
    ConflictError,
    DatabaseError,
    ProviderError,
    SagaFailed,
    StateError,
    ValidationError,
)
from booking.protocols import CalendarProvider, Datastore, VideoConferencingProvider
from booking.retry import RetryPolicy
from booking.saga import SagaRunner, SagaStep, orphan_logger
from booking.slot_matcher import SlotMatcher
from booking.state_machine import (
    AppointmentAction,
    LeadState,
    derive_state,
    rejection_message,
    validate_action,
)
from booking.time_parser import NaturalTimeParser
from schemas import (
    Agent,
    Appointment,
    AppointmentStatus,
    BookingOutcome,
    BookingRequest,
    BookingResult,
    CalendarEventRequest,
    CancelRequest,
    CandidateSlot,
    EventTimes,
    Lead,
    LeadStatus,
    MeetingRequest,
    NewAppointment,
    RescheduleRequest,
)

logger = logging.getLogger(__name__)

_CONFIRMATION_WORDS = ("yes", "sounds good", "that works", "ok", "okay", "sure", "perfect", "great")
_OPTION_PICK = re.compile(r"^\s*(?:option\s*)?#?(\d)\s*[.!]?\s*$|\boption\s*#?(\d)\b", re.IGNORECASE)

RETRY_LATER = (
    "Sorry, I couldn't finalise that booking just now. Please try again in a few minutes "
    "and one of our consultants will also follow up with you."
)


class AppointmentOrchestrator:
    def __init__(
        self,
        datastore: Datastore,
        calendar: CalendarProvider,
        video: VideoConferencingProvider,
        config: Optional[SchedulingConfig] = None,
        retry_policy: Optional[RetryPolicy] = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.datastore = datastore
        self.calendar = calendar
        self.video = video
        self.config = config or SchedulingConfig()
        self.retry = retry_policy or RetryPolicy.from_config(self.config)
        self.clock = clock
        self.finder = AvailabilityFinder(calendar, self.config, self.retry, clock)
        self.parser = NaturalTimeParser(self.config, clock)
        self.matcher = SlotMatcher(self.finder, self.parser, self.config.exact_match_tolerance_minutes)

    # ------------------------------------------------------------------
    # helpers
    # ------------------------------------------------------------------

    async def _db(self, name: str, operation: Callable[[], Awaitable[Any]]) -> Any:
        return await self.retry.run(operation, name=f"datastore.{name}")

    def _fmt(self, when: datetime) -> str:
        return when.astimezone(self.config.tz).strftime("%A, %d %B %Y at %I:%M %p")

    def _duration(self) -> timedelta:
        return timedelta(minutes=self.config.appointment_minutes)

    def _coerce_time(self, value) -> datetime:
        if isinstance(value, str):
            try:
                value = isoparse(value)
            except ValueError as exc:
                raise ValidationError(f"unparseable appointment time {value!r}") from exc
        if value.tzinfo is None:
            value = value.replace(tzinfo=self.config.tz)
        return value

    def _check_bookable(self, start: datetime) -> None:
        cfg = self.config
        local = start.astimezone(cfg.tz)
        if start <= self.clock():
            raise ValidationError(f"appointment time {start.isoformat()} is in the past")
        opening = local.replace(hour=cfg.opening_hour, minute=0, second=0, microsecond=0)
        closing = opening + timedelta(hours=cfg.closing_hour - cfg.opening_hour)
        if local < opening or local + self._duration() > closing:
            raise ValidationError(f"appointment time {local.isoformat()} is outside working hours")

    async def _load_lead(self, lead_id: UUID) -> Lead:
        lead = await self._db("get_lead", lambda: self.datastore.get_lead(lead_id))
        if lead is None:
            raise ValidationError(f"lead {lead_id} not found")
        return lead

    async def _load_agent(self, agent_id: UUID) -> Agent:
        agent = await self._db("get_agent", lambda: self.datastore.get_agent(agent_id))
        if agent is None or not agent.is_active:
            raise ValidationError(f"agent {agent_id} not found or inactive")
        if not agent.zoom_user_id:
            raise ValidationError(f"agent {agent_id} has no video-conferencing account")
        return agent

    async def _conflicts(
        self, agent_id: UUID, start: datetime, end: datetime, exclude_id: Optional[UUID] = None
    ) -> List[Appointment]:
        # Look back a day so long appointments that started earlier still count.
        existing = await self._db(
            "list_active_appointments_for_agent",
            lambda: self.datastore.list_active_appointments_for_agent(
                agent_id, start - timedelta(days=1), end
            ),
        )
        return [
            a
            for a in existing
            if a.id != exclude_id
            and a.start_time < end
            and a.start_time + timedelta(minutes=a.duration_minutes) > start
        ]

    async def _flag_for_human(self, lead_id: UUID, reason: str) -> None:
        try:
            await self._db(
                "update_lead",
                lambda: self.datastore.update_lead(
                    lead_id, {"status": LeadStatus.NEEDS_HUMAN_HANDOFF.value}
                ),
            )
            logger.warning("Lead flagged for human handoff lead_id=%s reason=%s", lead_id, reason)
        except Exception as exc:
            logger.error(
                "Could not flag lead for human handoff lead_id=%s reason=%s: %s", lead_id, reason, exc
            )

    def _consultation_notes(self, lead: Lead, request: BookingRequest) -> str:
        notes = [
            "=== LEAD QUALIFICATION ===",
            f"Intent: {lead.intent or 'Not specified'}",
            f"Budget: {lead.budget or 'Not specified'}",
            f"Status: {lead.status or 'new'}",
            f"Source: {lead.source or 'Unknown'}",
            "",
            "=== CONTACT DETAILS ===",
            f"Name: {lead.full_name or request.lead_name or 'Not provided'}",
            f"Phone: {lead.phone_number or request.lead_phone or 'Not provided'}",
        ]
        if lead.email:
            notes.append(f"Email: {lead.email}")
        if request.consultation_notes:
            notes += ["", "=== CONSULTATION NOTES ===", request.consultation_notes]
        return "\n".join(notes)

    def _selected_alternative(self, message: str, lead: Lead) -> Optional[datetime]:
        """Return the stored alternative the lead is agreeing to, if any."""
        if not lead.booking_alternatives or self.parser.parse(message) is not None:
            return None
        picked = None
        option = _OPTION_PICK.search(message)
        if option:
            index = int(option.group(1) or option.group(2)) - 1
            if 0 <= index < len(lead.booking_alternatives):
                picked = lead.booking_alternatives[index]
        elif any(re.search(rf"\b{re.escape(w)}\b", message.lower()) for w in _CONFIRMATION_WORDS):
            picked = lead.booking_alternatives[0]
        if picked is None:
            return None
        try:
            when = self._coerce_time(picked)
        except ValidationError:
            logger.warning("Stored booking alternative is unparseable lead_id=%s value=%r", lead.id, picked)
            return None
        return when if when > self.clock() else None

    def _state_reply(self, action: AppointmentAction, state: LeadState, active: Optional[Appointment]) -> str:
        if state == LeadState.BOOKED and active is not None:
            return (
                f"You already have a consultation booked for {self._fmt(active.start_time)}. "
                "Would you like to reschedule or cancel it?"
            )
        if state == LeadState.NEEDS_HUMAN:
            return "One of our consultants will be in touch shortly to arrange a time with you."
        return rejection_message(action)

    async def _offer_alternatives(
        self, lead: Lead, alternatives: List[CandidateSlot], outcome: BookingOutcome, intro: str
    ) -> BookingResult:
        starts = [slot.start for slot in alternatives]
        await self._db(
            "update_lead",
            lambda: self.datastore.update_lead(
                lead.id,
                {
                    "status": LeadStatus.BOOKING_ALTERNATIVES_OFFERED.value,
                    "booking_alternatives": [s.isoformat() for s in starts],
                    "tentative_booking_time": starts[0].isoformat(),
                },
            ),
        )
        logger.info(
            "Stored %d booking alternatives lead_id=%s nearest=%s",
            len(starts),
            lead.id,
            starts[0].isoformat(),
        )
        options = "\n".join(f"{i}. {self._fmt(s)}" for i, s in enumerate(starts, start=1))
        return BookingResult(
            success=False,
            type=outcome,
            alternatives=starts,
            message=(
                f"{intro} The closest times I have are:\n{options}\n\n"
                "Reply with the option number, or tell me another time that suits you."
            ),
        )

    # ------------------------------------------------------------------
    # create
    # ------------------------------------------------------------------

    async def find_and_book_appointment(self, request: BookingRequest) -> BookingResult:
        ctx = {"lead_id": request.lead_id, "agent_id": request.agent_id}
        try:
            lead = await self._load_lead(request.lead_id)
            agent = await self._load_agent(request.agent_id)
            if lead.assigned_agent_id and lead.assigned_agent_id != agent.id:
                raise ValidationError(
                    f"lead is assigned to agent {lead.assigned_agent_id}, not {agent.id}"
                )
            active = await self._db(
                "get_active_appointment_for_lead",
                lambda: self.datastore.get_active_appointment_for_lead(lead.id),
            )
            state = derive_state(lead, active)

            if state == LeadState.SELECTING_TIME:
                chosen = self._selected_alternative(request.user_message, lead)
                if chosen is not None:
                    if not validate_action(AppointmentAction.SELECT_ALTERNATIVE, state):
                        raise StateError(rejection_message(AppointmentAction.SELECT_ALTERNATIVE))
                    logger.info(
                        "Lead confirmed offered alternative lead_id=%s time=%s",
                        lead.id,
                        chosen.isoformat(),
                    )
                    return await self._book(
                        lead, agent, chosen, request, BookingOutcome.CONFIRMATION_BOOKING,
                        check_calendar=True,
                    )

            if not validate_action(AppointmentAction.INITIATE_BOOKING, state):
                logger.info(
                    "Booking rejected for lead state lead_id=%s state=%s", lead.id, state.value
                )
                return BookingResult(
                    success=False,
                    type=BookingOutcome.INVALID_STATE,
                    message=self._state_reply(AppointmentAction.INITIATE_BOOKING, state, active),
                    appointment=active,
                )

            match = await self.matcher.match(str(agent.id), request.user_message)
            if match.exact_match is not None:
                return await self._book(lead, agent, match.exact_match, request, BookingOutcome.EXACT_MATCH)

            if match.preferred_time is None:
                return BookingResult(
                    success=False,
                    type=BookingOutcome.ASK_FOR_TIME_PREFERENCE,
                    message=(
                        "I'd love to connect you with one of our consultants! "
                        "What day and time works best for you?"
                    ),
                )

            if not match.alternatives:
                return BookingResult(
                    success=False,
                    type=BookingOutcome.NO_IMMEDIATE_AVAILABILITY,
                    message=(
                        "That time isn't available and I can't see any open slots right now. "
                        "One of our consultants will follow up with you to arrange a time."
                    ),
                )

            return await self._offer_alternatives(
                lead,
                match.alternatives,
                BookingOutcome.ALTERNATIVES_OFFERED,
                "That time slot is already taken.",
            )

        except ValidationError as exc:
            logger.warning("Invalid booking request %s: %s", ctx, exc)
            return BookingResult(
                success=False,
                type=BookingOutcome.INVALID_REQUEST,
                message="Sorry, I couldn't set that up. One of our consultants will follow up with you.",
            )
        except StateError as exc:
            return BookingResult(success=False, type=BookingOutcome.INVALID_STATE, message=str(exc))
        except Exception as exc:
            logger.error("Booking failed %s: %s", ctx, exc, exc_info=True)
            return BookingResult(success=False, type=BookingOutcome.FAILED, message=RETRY_LATER)

    async def _book(
        self,
        lead: Lead,
        agent: Agent,
        start: datetime,
        request: BookingRequest,
        outcome: BookingOutcome,
        check_calendar: bool = False,
    ) -> BookingResult:
        end = start + self._duration()
        agent_ref = str(agent.id)
        video_user = agent.zoom_user_id
        name = lead.full_name or request.lead_name
        # Shared by every retry of this booking so provider creates stay idempotent.
        booking_ref = uuid.uuid4().hex
        ctx = {"lead_id": lead.id, "agent_id": agent.id, "start": start.isoformat()}

        self._check_bookable(start)
        if await self._conflicts(agent.id, start, end):
            return await self._slot_taken(lead, agent, start)
        if check_calendar:
            busy = await self.retry.run(
                lambda: self.calendar.check_availability(agent_ref, start.isoformat(), end.isoformat()),
                name=f"calendar.check_availability agent_id={agent_ref}",
            )
            if any(start < b.end and end > b.start for b in busy):
                return await self._slot_taken(lead, agent, start)

        notes = self._consultation_notes(lead, request)

        def _description(results) -> str:
            phone = lead.phone_number or request.lead_phone or "not provided"
            return (
                f"Property consultation with {name} ({phone})\n"
                f"Lead ID: {lead.id}\n\n"
                f"Zoom Meeting: {results['video_meeting'].join_url}\n\n"
                f"Consultation Notes:\n{notes}"
            )

        steps = [
            SagaStep(
                "video_meeting",
                lambda results: self.video.create_meeting_for_user(
                    video_user,
                    MeetingRequest(
                        topic=f"Property Consultation: {name}",
                        start_time=start,
                        duration_minutes=self.config.appointment_minutes,
                        agenda=notes,
                        idempotency_key=booking_ref,
                    ),
                ),
                compensation=lambda meeting: self.video.delete_meeting_for_user(video_user, meeting.id),
            ),
            SagaStep(
                "calendar_event",
                lambda results: self.calendar.create_event(
                    agent_ref,
                    CalendarEventRequest(
                        summary=f"Property Consultation: {name}",
                        description=_description(results),
                        start_time=start,
                        end_time=end,
                        event_id=booking_ref,
                    ),
                ),
                compensation=lambda event: self.calendar.delete_event(agent_ref, event.id),
            ),
            SagaStep(
                "appointment_row",
                lambda results: self.datastore.insert_appointment(
                    NewAppointment(
                        lead_id=lead.id,
                        agent_id=agent.id,
                        start_time=start,
                        duration_minutes=self.config.appointment_minutes,
                        status=AppointmentStatus.SCHEDULED,
                        calendar_event_id=results["calendar_event"].id,
                        video_meeting_id=results["video_meeting"].id,
                        video_join_url=results["video_meeting"].join_url,
                        notes=notes,
                    )
                ),
            ),
        ]

        try:
            results = await SagaRunner(self.retry, "create_appointment", ctx).run(steps)
        except SagaFailed as exc:
            if isinstance(exc.cause, ConflictError):
                logger.warning("Slot taken while booking %s: %s", ctx, exc.cause)
                return await self._slot_taken(lead, agent, start)
            logger.error(
                "Create saga failed %s step=%s orphaned=%s: %r",
                ctx, exc.step, exc.orphaned, exc.cause,
            )
            if not isinstance(exc.cause, (DatabaseError, ValidationError)):
                await self._flag_for_human(lead.id, f"create saga failed at {exc.step}")
            return BookingResult(success=False, type=BookingOutcome.FAILED, message=RETRY_LATER)

        appointment: Appointment = results["appointment_row"]
        try:
            await self._db(
                "update_lead",
                lambda: self.datastore.update_lead(
                    lead.id,
                    {
                        "status": LeadStatus.BOOKED.value,
                        "booking_alternatives": [],
                        "tentative_booking_time": None,
                    },
                ),
            )
        except Exception as exc:
            logger.warning(
                "Appointment created but lead status update failed %s appointment_id=%s: %s",
                ctx, appointment.id, exc,
            )

        logger.info(
            "Appointment booked %s appointment_id=%s calendar_event_id=%s video_meeting_id=%s",
            ctx, appointment.id, appointment.calendar_event_id, appointment.video_meeting_id,
        )
        return BookingResult(
            success=True,
            type=outcome,
            appointment=appointment,
            message=(
                f"Perfect! I've booked your consultation for {self._fmt(start)}.\n\n"
                f"Zoom Link: {appointment.video_join_url}"
            ),
        )

    async def _slot_taken(self, lead: Lead, agent: Agent, start: datetime) -> BookingResult:
        alternatives = [
            slot
            for slot in await self.finder.find_slots(str(agent.id), preferred_time=start)
            if slot.start != start
        ]
        if not alternatives:
            return BookingResult(
                success=False,
                type=BookingOutcome.SLOT_CONFLICT,
                message=(
                    "Sorry, that slot was just taken. "
                    "One of our consultants will follow up with you to find another time."
                ),
            )
        return await self._offer_alternatives(
            lead, alternatives, BookingOutcome.SLOT_CONFLICT, "Sorry, that slot was just taken."
        )

    # ------------------------------------------------------------------
    # reschedule
    # ------------------------------------------------------------------

    async def reschedule_appointment(self, request: RescheduleRequest) -> BookingResult:
        ctx = {"appointment_id": request.appointment_id}
        try:
            appointment = await self._db(
                "get_appointment", lambda: self.datastore.get_appointment(request.appointment_id)
            )
            if appointment is None:
                raise ValidationError(f"appointment {request.appointment_id} not found")
            ctx.update(lead_id=appointment.lead_id, agent_id=appointment.agent_id)

            lead = await self._load_lead(appointment.lead_id)
            state = derive_state(lead, appointment if appointment.is_active else None)
            if not appointment.is_active or not validate_action(AppointmentAction.RESCHEDULE_APPOINTMENT, state):
                raise StateError(rejection_message(AppointmentAction.RESCHEDULE_APPOINTMENT))

            new_start = self._coerce_time(request.new_appointment_time)
            self._check_bookable(new_start)
            duration = timedelta(minutes=appointment.duration_minutes)
            new_end = new_start + duration
            if new_start == appointment.start_time:
                return BookingResult(
                    success=True,
                    type=BookingOutcome.RESCHEDULED,
                    appointment=appointment,
                    message=f"Your consultation is already set for {self._fmt(new_start)}.",
                )

            clashes = await self._conflicts(appointment.agent_id, new_start, new_end, exclude_id=appointment.id)
            if clashes:
                raise ConflictError(
                    f"{new_start.isoformat()} overlaps appointment(s) {[str(a.id) for a in clashes]}"
                )

            agent = await self._load_agent(appointment.agent_id)
            agent_ref = str(agent.id)
            old_times = EventTimes(start=appointment.start_time, end=appointment.start_time + duration)
            new_times = EventTimes(start=new_start, end=new_end)
            note = f"Rescheduled from {appointment.start_time.isoformat()}: {request.reason}"
            notes = f"{appointment.notes}\n\n{note}" if appointment.notes else note

            steps = [
                SagaStep(
                    "calendar_event",
                    lambda results: self.calendar.update_event(
                        agent_ref, appointment.calendar_event_id, new_times
                    ),
                    compensation=lambda _: self.calendar.update_event(
                        agent_ref, appointment.calendar_event_id, old_times
                    ),
                ),
                SagaStep(
                    "video_meeting",
                    lambda results: self.video.update_meeting(
                        agent.zoom_user_id, appointment.video_meeting_id, new_times
                    ),
                    compensation=lambda _: self.video.update_meeting(
                        agent.zoom_user_id, appointment.video_meeting_id, old_times
                    ),
                ),
                SagaStep(
                    "appointment_row",
                    lambda results: self.datastore.update_appointment(
                        appointment.id,
                        {
                            "start_time": new_start,
                            "status": AppointmentStatus.RESCHEDULED,
                            "notes": notes,
                        },
                    ),
                ),
            ]
            try:
                results = await SagaRunner(self.retry, "reschedule_appointment", ctx).run(steps)
            except SagaFailed as exc:
                logger.error(
                    "Reschedule saga failed %s step=%s orphaned=%s: %r",
                    ctx, exc.step, exc.orphaned, exc.cause,
                )
                if isinstance(exc.cause, ProviderError):
                    await self._flag_for_human(lead.id, f"reschedule saga failed at {exc.step}")
                return BookingResult(
                    success=False,
                    type=BookingOutcome.FAILED,
                    appointment=appointment,
                    message=(
                        "Sorry, I couldn't move your consultation just now, so it stays at "
                        f"{self._fmt(appointment.start_time)}. Please try again in a few minutes."
                    ),
                )

            updated: Appointment = results["appointment_row"]
            logger.info(
                "Appointment rescheduled %s from=%s to=%s", ctx, appointment.start_time.isoformat(), new_start.isoformat()
            )
            return BookingResult(
                success=True,
                type=BookingOutcome.RESCHEDULED,
                appointment=updated,
                message=(
                    f"Done! Your consultation has been moved to {self._fmt(new_start)}.\n\n"
                    f"Your Zoom link stays the same: {updated.video_join_url}"
                ),
            )

        except ConflictError as exc:
            logger.info("Reschedule rejected, slot taken %s: %s", ctx, exc)
            return BookingResult(
                success=False,
                type=BookingOutcome.SLOT_CONFLICT,
                message="Sorry, that time is already booked. Could you suggest another time?",
            )
        except ValidationError as exc:
            logger.warning("Invalid reschedule request %s: %s", ctx, exc)
            return BookingResult(
                success=False,
                type=BookingOutcome.INVALID_REQUEST,
                message=(
                    "Sorry, I can't move your consultation to that time. "
                    f"Please pick a future time between {self.config.opening_hour}:00 "
                    f"and {self.config.closing_hour}:00."
                ),
            )
        except StateError as exc:
            return BookingResult(success=False, type=BookingOutcome.INVALID_STATE, message=str(exc))
        except Exception as exc:
            logger.error("Reschedule failed %s: %s", ctx, exc, exc_info=True)
            return BookingResult(success=False, type=BookingOutcome.FAILED, message=RETRY_LATER)

    # ------------------------------------------------------------------
    # cancel
    # ------------------------------------------------------------------

    async def cancel_appointment(self, request: CancelRequest) -> BookingResult:
        ctx = {"appointment_id": request.appointment_id}
        try:
            appointment = await self._db(
                "get_appointment", lambda: self.datastore.get_appointment(request.appointment_id)
            )
            if appointment is None:
                raise ValidationError(f"appointment {request.appointment_id} not found")
            ctx.update(lead_id=appointment.lead_id, agent_id=appointment.agent_id)

            if appointment.status == AppointmentStatus.CANCELLED:
                logger.info("Cancel is a no-op, already cancelled %s", ctx)
                return BookingResult(
                    success=True,
                    type=BookingOutcome.ALREADY_CANCELLED,
                    appointment=appointment,
                    message="Your consultation has already been cancelled.",
                )

            lead = await self._load_lead(appointment.lead_id)
            state = derive_state(lead, appointment if appointment.is_active else None)
            if not appointment.is_active or not validate_action(AppointmentAction.CANCEL_APPOINTMENT, state):
                raise StateError(rejection_message(AppointmentAction.CANCEL_APPOINTMENT))

            agent = await self._db("get_agent", lambda: self.datastore.get_agent(appointment.agent_id))
            await self._release_external_resources(appointment, agent, ctx)

            note = f"Cancelled: {request.reason}"
            cancelled = await self._db(
                "update_appointment",
                lambda: self.datastore.update_appointment(
                    appointment.id,
                    {
                        "status": AppointmentStatus.CANCELLED,
                        "notes": f"{appointment.notes}\n\n{note}" if appointment.notes else note,
                    },
                ),
            )
            try:
                await self._db(
                    "update_lead",
                    lambda: self.datastore.update_lead(
                        lead.id, {"status": LeadStatus.APPOINTMENT_CANCELLED.value}
                    ),
                )
            except Exception as exc:
                logger.warning("Appointment cancelled but lead status update failed %s: %s", ctx, exc)

            logger.info("Appointment cancelled %s", ctx)
            return BookingResult(
                success=True,
                type=BookingOutcome.CANCELLED,
                appointment=cancelled,
                message=(
                    f"Your consultation on {self._fmt(appointment.start_time)} has been cancelled. "
                    "Just let me know if you'd like to book another time!"
                ),
            )

        except ValidationError as exc:
            logger.warning("Invalid cancel request %s: %s", ctx, exc)
            return BookingResult(
                success=False,
                type=BookingOutcome.INVALID_REQUEST,
                message="Sorry, I couldn't find that appointment.",
            )
        except StateError as exc:
            return BookingResult(success=False, type=BookingOutcome.INVALID_STATE, message=str(exc))
        except Exception as exc:
            logger.error("Cancel failed %s: %s", ctx, exc, exc_info=True)
            return BookingResult(success=False, type=BookingOutcome.FAILED, message=RETRY_LATER)

    async def _release_external_resources(self, appointment: Appointment, agent: Optional[Agent], ctx: dict) -> None:
        """Delete the video meeting then the calendar event.

        A deletion that still fails after retries does not block the
        cancellation; it is logged as an orphaned resource instead.
        """
        deletions = []
        if appointment.video_meeting_id:
            if agent is not None and agent.zoom_user_id:
                deletions.append((
                    "video_meeting",
                    appointment.video_meeting_id,
                    lambda: self.video.delete_meeting_for_user(agent.zoom_user_id, appointment.video_meeting_id),
                ))
            else:
                orphan_logger.critical(
                    "ORPHANED RESOURCE: no video account to delete meeting %s %s",
                    appointment.video_meeting_id, ctx,
                )
        if appointment.calendar_event_id:
            deletions.append((
                "calendar_event",
                appointment.calendar_event_id,
                lambda: self.calendar.delete_event(str(appointment.agent_id), appointment.calendar_event_id),
            ))

        for kind, resource_id, delete in deletions:
            try:
                await self.retry.run(delete, name=f"cancel_appointment.delete_{kind}")
            except Exception as exc:
                orphan_logger.critical(
                    "ORPHANED RESOURCE: %s %s not deleted on cancel %s: %s", kind, resource_id, ctx, exc
                )
