"""Google Calendar provider for the appointment orchestrator.

Wraps the synchronous googleapiclient with asyncio.to_thread so the
orchestrator can await it. Every failure is raised as CalendarProviderError
carrying the HTTP status when there is one.
"""
import asyncio
import logging
import os
from functools import partial
from typing import Any, Awaitable, Callable, Dict, List, Optional

import httplib2
from dateutil.parser import isoparse
from google.oauth2 import service_account
from google_auth_httplib2 import AuthorizedHttp
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError

from booking.errors import CalendarProviderError
from schemas import BusyInterval, CalendarEvent, CalendarEventRequest, EventTimes

logger = logging.getLogger(__name__)

SCOPES = ["https://www.googleapis.com/auth/calendar"]
HTTP_TIMEOUT = 10.0

CalendarIdResolver = Callable[[str], Awaitable[Optional[str]]]


def _service(http_timeout: float = HTTP_TIMEOUT):
    creds_path = os.environ["GOOGLE_APPLICATION_CREDENTIALS"]
    creds = service_account.Credentials.from_service_account_file(
        creds_path, scopes=SCOPES
    )
    # Socket timeout below the retry policy's per-attempt bound, so a timed-out
    # attempt has finished in its worker thread before the next one starts.
    http = AuthorizedHttp(creds, http=httplib2.Http(timeout=http_timeout))
    return build("calendar", "v3", http=http, cache_discovery=False)


def _to_provider_error(exc: Exception, action: str) -> CalendarProviderError:
    if isinstance(exc, CalendarProviderError):
        return exc
    if isinstance(exc, HttpError):
        return CalendarProviderError(f"{action}: {exc.reason}", status_code=exc.resp.status)
    if isinstance(exc, OSError):
        # Socket timeouts and dropped connections never produced a response.
        return CalendarProviderError(f"{action}: {exc}")
    return CalendarProviderError(f"{action}: {exc}", retryable=False)


class GoogleCalendarProvider:
    """Calendar operations against each agent's Google Calendar.

    Args:
        resolve_calendar_id: Async callable mapping an agent id to its
            calendar id. Agents without one use DEFAULT_CALENDAR_ID.
        time_zone: IANA zone written onto created events.
        http_timeout: Socket timeout for the default service. Keep it below
            the retry policy's per-attempt timeout.
        service_factory: Returns a Calendar v3 service; tests pass a mock.
    """

    def __init__(
        self,
        resolve_calendar_id: Optional[CalendarIdResolver] = None,
        time_zone: str = "Asia/Singapore",
        http_timeout: float = HTTP_TIMEOUT,
        service_factory: Optional[Callable[[], Any]] = None,
    ):
        self._resolve = resolve_calendar_id
        self.time_zone = time_zone
        self._service_factory = service_factory or partial(_service, http_timeout)
        self._client = None

    @property
    def service(self):
        if self._client is None:
            self._client = self._service_factory()
        return self._client

    async def _calendar_id(self, agent_id: str) -> str:
        cal_id = await self._resolve(agent_id) if self._resolve else None
        cal_id = cal_id or os.environ.get("DEFAULT_CALENDAR_ID")
        if not cal_id:
            raise CalendarProviderError(f"no calendar configured for agent {agent_id}", retryable=False)
        return cal_id

    async def _execute(self, request, action: str) -> Dict[str, Any]:
        try:
            return await asyncio.to_thread(request.execute)
        except Exception as exc:
            raise _to_provider_error(exc, action) from exc

    async def check_availability(self, agent_id: str, start_iso: str, end_iso: str) -> List[BusyInterval]:
        """Return the agent's busy intervals between two ISO timestamps."""
        cal_id = await self._calendar_id(agent_id)
        body = {
            "timeMin": start_iso,
            "timeMax": end_iso,
            "timeZone": self.time_zone,
            "items": [{"id": cal_id}],
        }
        result = await self._execute(self.service.freebusy().query(body=body), "freebusy")
        calendar = result.get("calendars", {}).get(cal_id, {})
        if calendar.get("errors"):
            reasons = ", ".join(e.get("reason", "unknown") for e in calendar["errors"])
            raise CalendarProviderError(f"freebusy for {cal_id}: {reasons}", retryable=False)

        busy = [
            BusyInterval(start=isoparse(b["start"]), end=isoparse(b["end"]))
            for b in calendar.get("busy", [])
        ]
        logger.debug("Calendar busy agent_id=%s intervals=%d", agent_id, len(busy))
        return busy

    async def create_event(self, agent_id: str, event: CalendarEventRequest) -> CalendarEvent:
        cal_id = await self._calendar_id(agent_id)
        body = {
            "summary": event.summary,
            "description": event.description,
            "start": {"dateTime": event.start_time.isoformat(), "timeZone": self.time_zone},
            "end": {"dateTime": event.end_time.isoformat(), "timeZone": self.time_zone},
            "reminders": {
                "useDefault": False,
                "overrides": [
                    {"method": "email", "minutes": 24 * 60},
                    {"method": "popup", "minutes": 30},
                ],
            },
        }
        if event.event_id:
            body["id"] = event.event_id
        try:
            created = await self._execute(
                self.service.events().insert(calendarId=cal_id, body=body),
                "events.insert",
            )
        except CalendarProviderError as exc:
            if exc.status_code != 409 or not event.event_id:
                raise
            # An earlier attempt got through even though its response was lost.
            created = await self._execute(
                self.service.events().get(calendarId=cal_id, eventId=event.event_id),
                "events.get",
            )
            logger.info("Calendar event already created agent_id=%s event_id=%s", agent_id, event.event_id)
        else:
            logger.info("Calendar event created agent_id=%s event_id=%s", agent_id, created.get("id"))
        return CalendarEvent(
            id=created["id"],
            join_link=created.get("hangoutLink"),
            html_link=created.get("htmlLink"),
        )

    async def update_event(self, agent_id: str, event_id: str, times: EventTimes) -> None:
        cal_id = await self._calendar_id(agent_id)
        body = {
            "start": {"dateTime": times.start.isoformat(), "timeZone": self.time_zone},
            "end": {"dateTime": times.end.isoformat(), "timeZone": self.time_zone},
        }
        await self._execute(
            self.service.events().patch(calendarId=cal_id, eventId=event_id, body=body),
            "events.patch",
        )
        logger.info("Calendar event moved agent_id=%s event_id=%s start=%s", agent_id, event_id, times.start.isoformat())

    async def delete_event(self, agent_id: str, event_id: str) -> bool:
        """Delete an event. An event that is already gone counts as deleted."""
        cal_id = await self._calendar_id(agent_id)
        try:
            await self._execute(
                self.service.events().delete(calendarId=cal_id, eventId=event_id),
                "events.delete",
            )
        except CalendarProviderError as exc:
            if exc.status_code in (404, 410):
                logger.info("Calendar event already gone agent_id=%s event_id=%s", agent_id, event_id)
                return True
            raise
        logger.info("Calendar event deleted agent_id=%s event_id=%s", agent_id, event_id)
        return True
