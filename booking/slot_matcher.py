"""Turn a free-text time preference into an exact slot or a list of alternatives."""
import logging
from datetime import timedelta

from booking.availability import AvailabilityFinder
from booking.time_parser import NaturalTimeParser
from schemas import SlotMatch

logger = logging.getLogger(__name__)


class SlotMatcher:
    def __init__(self, finder: AvailabilityFinder, parser: NaturalTimeParser, tolerance_minutes: int = 30):
        self.finder = finder
        self.parser = parser
        self.tolerance = timedelta(minutes=tolerance_minutes)

    async def match(self, agent_id: str, user_message: str) -> SlotMatch:
        preferred = self.parser.parse(user_message)
        candidates = await self.finder.find_slots(agent_id, preferred_time=preferred)

        if preferred is None:
            return SlotMatch(alternatives=candidates)

        # Candidates arrive sorted by distance, so the first hit is the nearest.
        exact = next(
            (c for c in candidates if abs(c.start - preferred) <= self.tolerance),
            None,
        )
        alternatives = [c for c in candidates if c is not exact]

        logger.info(
            "Slot match agent_id=%s preferred=%s exact=%s alternatives=%d",
            agent_id,
            preferred.isoformat(),
            exact.start.isoformat() if exact else None,
            len(alternatives),
        )
        return SlotMatch(
            preferred_time=preferred,
            exact_match=exact.start if exact else None,
            alternatives=alternatives,
        )
