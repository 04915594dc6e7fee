"""Error taxonomy for the booking subsystem.

Messages on these exceptions are for logs only. Callers of the orchestrator
receive a BookingResult with a safe, user-facing message instead.
"""
from typing import Optional


class BookingError(Exception):
    """Base class for every error raised inside the booking subsystem."""

    retryable = False


class ValidationError(BookingError):
    """Bad input. Never retried, never mutates anything."""


class ConflictError(BookingError):
    """The requested slot is taken. Never retried; routes to alternatives."""


class StateError(BookingError):
    """Action is illegal for the lead's current lifecycle state."""


class ProviderError(BookingError):
    """An external calendar or video provider call failed."""

    provider = "provider"

    def __init__(self, message: str, status_code: Optional[int] = None, retryable: Optional[bool] = None):
        super().__init__(message)
        self.status_code = status_code
        if retryable is None:
            # No status means the request never got an HTTP answer.
            retryable = status_code is None or status_code == 429 or status_code >= 500
        self.retryable = retryable

    def __str__(self) -> str:
        base = super().__str__()
        if self.status_code is not None:
            return f"{self.provider} error {self.status_code}: {base}"
        return f"{self.provider} error: {base}"


class CalendarProviderError(ProviderError):
    provider = "calendar"


class VideoProviderError(ProviderError):
    provider = "video"


class DatabaseError(BookingError):
    """Datastore failure. Transient ones (connection drops, timeouts) are retryable."""

    def __init__(self, message: str, retryable: bool = False):
        super().__init__(message)
        self.retryable = retryable


class SagaFailed(BookingError):
    """A saga step gave up after retries; completed steps were compensated.

    Attributes:
        step: Name of the step that failed.
        cause: The exception the step raised.
        orphaned: Names of completed steps whose compensation also failed.
    """

    def __init__(self, step: str, cause: BaseException, orphaned: Optional[list] = None):
        super().__init__(f"saga step {step!r} failed: {cause}")
        self.step = step
        self.cause = cause
        self.orphaned = list(orphaned or [])
