"""Extract a single preferred appointment time from a chat message.

Only a handful of phrasings are understood, tried in this order:

    "tomorrow at 3pm", "today 10:30am"
    "3pm tomorrow", "10:30am today"
    "friday at 2pm", "monday 9:15am"
    "4pm"

Anything else, or a time that is in the past or outside working hours,
parses to None.
"""
import re
from datetime import date, datetime, time, timedelta, timezone
from typing import Callable, Optional

from dateutil.relativedelta import FR, MO, SA, SU, TH, TU, WE, relativedelta

from booking.config import SchedulingConfig

_CLOCK = r"(?P<hour>\d{1,2})(?::(?P<minute>\d{2}))?\s*(?P<meridiem>am|pm)\b"
_DAY = r"(?P<day>today|tomorrow)"
_WEEKDAY = r"(?P<weekday>monday|tuesday|wednesday|thursday|friday|saturday|sunday)"

_PATTERNS = (
    re.compile(rf"\b{_DAY}\s+(?:at\s+)?{_CLOCK}", re.IGNORECASE),
    re.compile(rf"\b{_CLOCK}\s+{_DAY}\b", re.IGNORECASE),
    re.compile(rf"\b{_WEEKDAY}\s+(?:at\s+)?{_CLOCK}", re.IGNORECASE),
    re.compile(rf"\b{_CLOCK}", re.IGNORECASE),
)

_WEEKDAYS = {
    "monday": MO,
    "tuesday": TU,
    "wednesday": WE,
    "thursday": TH,
    "friday": FR,
    "saturday": SA,
    "sunday": SU,
}


def _to_24h(hour: int, meridiem: str) -> Optional[int]:
    if not 1 <= hour <= 12:
        return None
    if meridiem == "am":
        return 0 if hour == 12 else hour
    return 12 if hour == 12 else hour + 12


class NaturalTimeParser:
    def __init__(
        self,
        config: SchedulingConfig,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ):
        self.config = config
        self.clock = clock

    def _resolve_day(self, match: re.Match, today: date) -> date:
        groups = match.groupdict()
        if groups.get("day"):
            return today + timedelta(days=1) if groups["day"].lower() == "tomorrow" else today
        if groups.get("weekday"):
            # Strictly after today: naming today's weekday means next week.
            return today + relativedelta(days=+1, weekday=_WEEKDAYS[groups["weekday"].lower()])
        return today

    def parse(self, text: str) -> Optional[datetime]:
        if not text:
            return None
        cfg = self.config
        now = self.clock().astimezone(cfg.tz)

        for pattern in _PATTERNS:
            match = pattern.search(text)
            if match is None:
                continue
            hour = _to_24h(int(match.group("hour")), match.group("meridiem").lower())
            minute = int(match.group("minute") or 0)
            if hour is None or minute > 59:
                return None
            day = self._resolve_day(match, now.date())
            candidate = datetime.combine(day, time(hour, minute), tzinfo=cfg.tz)
            if candidate <= now or not cfg.opening_hour <= hour < cfg.closing_hour:
                return None
            return candidate
        return None
