"""Scheduling configuration loaded from the environment."""
import logging
import os
from dataclasses import dataclass
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from dotenv import load_dotenv

logger = logging.getLogger(__name__)

load_dotenv()


@dataclass(frozen=True)
class SchedulingConfig:
    """
    Working hours, slot sizing, matching tolerance and retry limits.

    Attributes:
        timezone: IANA zone that working hours are expressed in.
        opening_hour: First bookable hour of the day (inclusive).
        closing_hour: Hour at which the working day ends (exclusive).
        slot_minutes: Candidate slot granularity.
        appointment_minutes: Length of a booked consultation.
        days_to_search: Default availability search horizon.
        max_slots: Maximum candidates returned by the finder.
        exact_match_tolerance_minutes: Distance within which a candidate
            counts as the slot the lead asked for.
        retry_max_attempts: Attempts per external call, first one included.
        retry_base_delay: Backoff base in seconds, doubled per attempt.
        retry_max_delay: Backoff ceiling in seconds.
        call_timeout: Per-attempt timeout for every external call, in seconds.
    """

    timezone: str = "Asia/Singapore"
    opening_hour: int = 8
    closing_hour: int = 22
    slot_minutes: int = 60
    appointment_minutes: int = 60
    days_to_search: int = 14
    max_slots: int = 5
    exact_match_tolerance_minutes: int = 30
    retry_max_attempts: int = 3
    retry_base_delay: float = 1.0
    retry_max_delay: float = 10.0
    call_timeout: float = 15.0

    def __post_init__(self):
        try:
            ZoneInfo(self.timezone)
        except (ZoneInfoNotFoundError, ValueError) as exc:
            raise ValueError(f"Unknown timezone {self.timezone!r}") from exc

        if not 0 <= self.opening_hour < self.closing_hour <= 24:
            raise ValueError(
                f"Working hours must satisfy 0 <= opening < closing <= 24, "
                f"got {self.opening_hour}-{self.closing_hour}"
            )
        if self.slot_minutes <= 0 or self.appointment_minutes <= 0:
            raise ValueError("slot_minutes and appointment_minutes must be positive")
        if self.days_to_search < 1:
            raise ValueError(f"days_to_search must be at least 1, got {self.days_to_search}")
        if self.max_slots < 1:
            raise ValueError(f"max_slots must be at least 1, got {self.max_slots}")
        if self.exact_match_tolerance_minutes < 0:
            raise ValueError("exact_match_tolerance_minutes cannot be negative")
        if self.retry_max_attempts < 1:
            raise ValueError(
                f"retry_max_attempts must be at least 1, got {self.retry_max_attempts}"
            )
        if self.retry_base_delay < 0 or self.retry_max_delay < 0:
            raise ValueError("retry delays cannot be negative")
        if self.call_timeout <= 0:
            raise ValueError(f"call_timeout must be positive, got {self.call_timeout}")

    @property
    def tz(self) -> ZoneInfo:
        return ZoneInfo(self.timezone)

    @staticmethod
    def from_env() -> "SchedulingConfig":
        """
        Load configuration from BOOKING_* environment variables.

        Malformed numbers fall back to the default with a warning; values
        that parse but make no sense still raise ValueError.
        """
        defaults = SchedulingConfig()

        def _int(name: str, default: int) -> int:
            raw = os.environ.get(name)
            if raw is None:
                return default
            try:
                return int(raw)
            except ValueError:
                logger.warning("Invalid %s=%r, using default %s", name, raw, default)
                return default

        def _float(name: str, default: float) -> float:
            raw = os.environ.get(name)
            if raw is None:
                return default
            try:
                return float(raw)
            except ValueError:
                logger.warning("Invalid %s=%r, using default %s", name, raw, default)
                return default

        return SchedulingConfig(
            timezone=os.environ.get("BOOKING_TIMEZONE", defaults.timezone),
            opening_hour=_int("BOOKING_OPENING_HOUR", defaults.opening_hour),
            closing_hour=_int("BOOKING_CLOSING_HOUR", defaults.closing_hour),
            slot_minutes=_int("BOOKING_SLOT_MINUTES", defaults.slot_minutes),
            appointment_minutes=_int("BOOKING_APPOINTMENT_MINUTES", defaults.appointment_minutes),
            days_to_search=_int("BOOKING_DAYS_TO_SEARCH", defaults.days_to_search),
            max_slots=_int("BOOKING_MAX_SLOTS", defaults.max_slots),
            exact_match_tolerance_minutes=_int(
                "BOOKING_EXACT_MATCH_TOLERANCE_MINUTES",
                defaults.exact_match_tolerance_minutes,
            ),
            retry_max_attempts=_int("BOOKING_RETRY_MAX_ATTEMPTS", defaults.retry_max_attempts),
            retry_base_delay=_float("BOOKING_RETRY_BASE_DELAY", defaults.retry_base_delay),
            retry_max_delay=_float("BOOKING_RETRY_MAX_DELAY", defaults.retry_max_delay),
            call_timeout=_float("BOOKING_CALL_TIMEOUT", defaults.call_timeout),
        )
