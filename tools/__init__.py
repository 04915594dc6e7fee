from .calendar_tools import GoogleCalendarProvider
from .zoom_tools import ZoomVideoProvider

__all__ = [
    "GoogleCalendarProvider",
    "ZoomVideoProvider",
]
