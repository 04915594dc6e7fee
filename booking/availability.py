"""Free-slot search against an agent's calendar."""
import logging
from datetime import date, datetime, time, timedelta, timezone
from typing import Callable, List, Optional

from booking.config import SchedulingConfig
from booking.protocols import CalendarProvider
from booking.retry import RetryPolicy
from schemas import BusyInterval, CandidateSlot

logger = logging.getLogger(__name__)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class AvailabilityFinder:
    """Compute bookable hourly slots inside working hours.

    A calendar failure yields an empty list rather than an exception; callers
    treat "no slots" as "hand over to a human".
    """

    def __init__(
        self,
        calendar: CalendarProvider,
        config: SchedulingConfig,
        retry_policy: Optional[RetryPolicy] = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.calendar = calendar
        self.config = config
        self.retry_policy = retry_policy or RetryPolicy.from_config(config)
        self.clock = clock

    def _at(self, day: date, hour: int) -> datetime:
        return datetime.combine(day, time.min, tzinfo=self.config.tz) + timedelta(hours=hour)

    def window(
        self, now: datetime, preferred_time: Optional[datetime], days_to_search: int
    ) -> tuple[datetime, datetime]:
        """Return the (start, end) of the search window in local time."""
        cfg = self.config
        now = now.astimezone(cfg.tz)
        if preferred_time is not None and preferred_time > now:
            start = self._at(preferred_time.astimezone(cfg.tz).date(), cfg.opening_hour)
        elif now >= self._at(now.date(), cfg.closing_hour):
            start = self._at(now.date() + timedelta(days=1), cfg.opening_hour)
        elif now < self._at(now.date(), cfg.opening_hour):
            start = self._at(now.date(), cfg.opening_hour)
        else:
            start = now
        end = self._at((start + timedelta(days=days_to_search)).date(), cfg.closing_hour)
        return start, end

    def candidate_slots(self, start: datetime, end: datetime, now: datetime) -> List[CandidateSlot]:
        """Every slot boundary inside working hours between start and end."""
        cfg = self.config
        step = timedelta(minutes=cfg.slot_minutes)
        duration = timedelta(minutes=cfg.appointment_minutes)
        slots = []
        day = start.date()
        while day <= end.date():
            cursor = self._at(day, cfg.opening_hour)
            closing = self._at(day, cfg.closing_hour)
            while cursor + duration <= closing:
                if cursor >= start and cursor + duration <= end and cursor > now:
                    slots.append(CandidateSlot(start=cursor, end=cursor + duration))
                cursor += step
            day += timedelta(days=1)
        return slots

    async def find_slots(
        self,
        agent_id: str,
        preferred_time: Optional[datetime] = None,
        days_to_search: Optional[int] = None,
    ) -> List[CandidateSlot]:
        """Return up to ``max_slots`` free slots for the agent.

        With a preferred time the slots are ordered by distance to it,
        otherwise chronologically.
        """
        days = days_to_search or self.config.days_to_search
        now = self.clock().astimezone(self.config.tz)
        start, end = self.window(now, preferred_time, days)

        try:
            busy: List[BusyInterval] = await self.retry_policy.run(
                lambda: self.calendar.check_availability(
                    agent_id, start.isoformat(), end.isoformat()
                ),
                name=f"calendar.check_availability agent_id={agent_id}",
            )
        except Exception as exc:
            logger.error(
                "Availability lookup failed, returning no slots agent_id=%s window=%s..%s: %s",
                agent_id,
                start.isoformat(),
                end.isoformat(),
                exc,
                exc_info=True,
            )
            return []

        free = [
            slot
            for slot in self.candidate_slots(start, end, now)
            if not any(slot.start < b.end and slot.end > b.start for b in busy)
        ]

        if preferred_time is not None:
            free.sort(key=lambda s: (abs(s.start - preferred_time), s.start))

        logger.info(
            "Found %d free slots agent_id=%s busy_intervals=%d preferred=%s",
            len(free),
            agent_id,
            len(busy),
            preferred_time.isoformat() if preferred_time else None,
        )
        return free[: self.config.max_slots]
