"""Unit tests for calendar_tools — GoogleCalendarProvider against a mocked service."""
import asyncio
import socket
import threading
import time
from unittest.mock import MagicMock, patch

import pytest
from googleapiclient.errors import HttpError

from booking.errors import CalendarProviderError
from booking.retry import RetryPolicy
from schemas import CalendarEventRequest, EventTimes
from tests.conftest import at, no_sleep


def http_error(status: int, message: str = "Backend Error") -> HttpError:
    resp = MagicMock(status=status, reason=message)
    return HttpError(resp, f'{{"error": {{"message": "{message}"}}}}'.encode())


@pytest.fixture
def service():
    return MagicMock()


@pytest.fixture
def provider(service):
    from tools.calendar_tools import GoogleCalendarProvider

    async def resolve(agent_id):
        return {"agent-1": "rachel@example.com"}.get(agent_id)

    return GoogleCalendarProvider(resolve_calendar_id=resolve, service_factory=lambda: service)


class TestCheckAvailability:
    @pytest.mark.asyncio
    async def test_parses_busy_intervals(self, provider, service):
        service.freebusy.return_value.query.return_value.execute.return_value = {
            "calendars": {
                "rachel@example.com": {
                    "busy": [
                        {"start": "2026-03-03T06:00:00Z", "end": "2026-03-03T08:00:00Z"},
                    ]
                }
            }
        }

        busy = await provider.check_availability("agent-1", at(3, 8).isoformat(), at(3, 22).isoformat())

        assert len(busy) == 1
        assert busy[0].start == at(3, 14)
        assert busy[0].end == at(3, 16)
        body = service.freebusy.return_value.query.call_args.kwargs["body"]
        assert body["items"] == [{"id": "rachel@example.com"}]
        assert body["timeZone"] == "Asia/Singapore"

    @pytest.mark.asyncio
    async def test_calendar_level_error_is_not_retryable(self, provider, service):
        service.freebusy.return_value.query.return_value.execute.return_value = {
            "calendars": {"rachel@example.com": {"errors": [{"reason": "notFound"}]}}
        }
        with pytest.raises(CalendarProviderError) as excinfo:
            await provider.check_availability("agent-1", "a", "b")
        assert not excinfo.value.retryable

    @pytest.mark.asyncio
    async def test_falls_back_to_default_calendar(self, provider, service, monkeypatch):
        monkeypatch.setenv("DEFAULT_CALENDAR_ID", "team@example.com")
        service.freebusy.return_value.query.return_value.execute.return_value = {"calendars": {}}

        assert await provider.check_availability("agent-unknown", "a", "b") == []
        body = service.freebusy.return_value.query.call_args.kwargs["body"]
        assert body["items"] == [{"id": "team@example.com"}]

    @pytest.mark.asyncio
    async def test_no_calendar_configured(self, provider, monkeypatch):
        monkeypatch.delenv("DEFAULT_CALENDAR_ID", raising=False)
        with pytest.raises(CalendarProviderError) as excinfo:
            await provider.check_availability("agent-unknown", "a", "b")
        assert not excinfo.value.retryable


class TestEvents:
    @pytest.mark.asyncio
    async def test_create_event(self, provider, service):
        service.events.return_value.insert.return_value.execute.return_value = {
            "id": "evt-123",
            "htmlLink": "https://calendar.google.com/event?eid=evt-123",
        }

        event = await provider.create_event(
            "agent-1",
            CalendarEventRequest(
                summary="Property Consultation: Jane Lim",
                description="Zoom Meeting: https://zoom.us/j/1",
                start_time=at(3, 15),
                end_time=at(3, 16),
            ),
        )

        assert event.id == "evt-123"
        assert event.html_link.endswith("evt-123")
        kwargs = service.events.return_value.insert.call_args.kwargs
        assert kwargs["calendarId"] == "rachel@example.com"
        assert kwargs["body"]["summary"] == "Property Consultation: Jane Lim"
        assert kwargs["body"]["start"] == {"dateTime": at(3, 15).isoformat(), "timeZone": "Asia/Singapore"}

    @pytest.mark.asyncio
    async def test_update_event_patches_times_only(self, provider, service):
        service.events.return_value.patch.return_value.execute.return_value = {}

        await provider.update_event("agent-1", "evt-123", EventTimes(start=at(5, 14), end=at(5, 15)))

        kwargs = service.events.return_value.patch.call_args.kwargs
        assert kwargs["eventId"] == "evt-123"
        assert set(kwargs["body"]) == {"start", "end"}

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status", [404, 410])
    async def test_delete_missing_event_counts_as_deleted(self, provider, service, status):
        service.events.return_value.delete.return_value.execute.side_effect = http_error(status, "Not Found")
        assert await provider.delete_event("agent-1", "evt-gone") is True

    @pytest.mark.asyncio
    async def test_delete_server_error_is_retryable(self, provider, service):
        service.events.return_value.delete.return_value.execute.side_effect = http_error(500)
        with pytest.raises(CalendarProviderError) as excinfo:
            await provider.delete_event("agent-1", "evt-123")
        assert excinfo.value.status_code == 500
        assert excinfo.value.retryable


class TestErrorMapping:
    @pytest.mark.asyncio
    async def test_http_error_carries_status(self, provider, service):
        service.events.return_value.insert.return_value.execute.side_effect = http_error(403, "Forbidden")
        with pytest.raises(CalendarProviderError) as excinfo:
            await provider.create_event(
                "agent-1",
                CalendarEventRequest(summary="x", start_time=at(3, 15), end_time=at(3, 16)),
            )
        assert excinfo.value.status_code == 403
        assert not excinfo.value.retryable

    @pytest.mark.asyncio
    async def test_socket_timeout_is_retryable(self, provider, service):
        service.freebusy.return_value.query.return_value.execute.side_effect = socket.timeout("timed out")
        with pytest.raises(CalendarProviderError) as excinfo:
            await provider.check_availability("agent-1", "a", "b")
        assert excinfo.value.status_code is None
        assert excinfo.value.retryable


class _Request:
    def __init__(self, run):
        self.execute = run


class SlowFirstInsertService:
    """Stores events by id like Google does; the first insert outlives the attempt timeout."""

    def __init__(self, delay: float):
        self.delay = delay
        self.stored = {}
        self.inserts = 0
        self._lock = threading.Lock()

    def events(self):
        return self

    def insert(self, calendarId, body):
        return _Request(lambda: self._insert(body))

    def get(self, calendarId, eventId):
        return _Request(lambda: self.stored[eventId])

    def _insert(self, body):
        with self._lock:
            self.inserts += 1
            first = self.inserts == 1
        if first:
            time.sleep(self.delay)
        with self._lock:
            if body["id"] in self.stored:
                raise http_error(409, "The requested identifier already exists.")
            self.stored[body["id"]] = {"id": body["id"], "htmlLink": f"https://calendar.google.com/{body['id']}"}
            return self.stored[body["id"]]


def event_request(event_id=None):
    return CalendarEventRequest(
        summary="Property Consultation: Jane Lim",
        start_time=at(3, 15),
        end_time=at(3, 16),
        event_id=event_id,
    )


class TestIdempotentCreate:
    @pytest.mark.asyncio
    async def test_client_event_id_is_sent(self, provider, service):
        service.events.return_value.insert.return_value.execute.return_value = {"id": "a1b2c3d4e5"}

        await provider.create_event("agent-1", event_request("a1b2c3d4e5"))

        assert service.events.return_value.insert.call_args.kwargs["body"]["id"] == "a1b2c3d4e5"

    @pytest.mark.asyncio
    async def test_duplicate_id_returns_existing_event(self, provider, service):
        service.events.return_value.insert.return_value.execute.side_effect = http_error(409, "duplicate")
        service.events.return_value.get.return_value.execute.return_value = {
            "id": "a1b2c3d4e5",
            "htmlLink": "https://calendar.google.com/a1b2c3d4e5",
        }

        event = await provider.create_event("agent-1", event_request("a1b2c3d4e5"))

        assert event.id == "a1b2c3d4e5"
        assert service.events.return_value.get.call_args.kwargs == {
            "calendarId": "rachel@example.com",
            "eventId": "a1b2c3d4e5",
        }

    @pytest.mark.asyncio
    async def test_conflict_without_client_id_is_raised(self, provider, service):
        service.events.return_value.insert.return_value.execute.side_effect = http_error(409, "conflict")
        with pytest.raises(CalendarProviderError) as excinfo:
            await provider.create_event("agent-1", event_request())
        assert excinfo.value.status_code == 409

    @pytest.mark.asyncio
    async def test_timed_out_insert_does_not_leave_a_second_event(self):
        from tools.calendar_tools import GoogleCalendarProvider

        service = SlowFirstInsertService(delay=0.3)
        provider = GoogleCalendarProvider(service_factory=lambda: service)
        provider._resolve = None
        policy = RetryPolicy(max_attempts=3, base_delay=0, max_delay=0, timeout=0.1, sleep=no_sleep)

        with patch.dict("os.environ", {"DEFAULT_CALENDAR_ID": "rachel@example.com"}):
            event = await policy.run(
                lambda: provider.create_event("agent-1", event_request("a1b2c3d4e5")),
                name="calendar.create_event",
            )
            # Let the abandoned first attempt finish in its worker thread.
            await asyncio.sleep(0.4)

        assert event.id == "a1b2c3d4e5"
        assert service.inserts == 2
        assert list(service.stored) == ["a1b2c3d4e5"]


class TestTransport:
    @patch("tools.calendar_tools.build")
    @patch("tools.calendar_tools.service_account.Credentials.from_service_account_file")
    def test_default_service_has_socket_timeout(self, mock_creds, mock_build, monkeypatch):
        from tools.calendar_tools import GoogleCalendarProvider

        monkeypatch.setenv("GOOGLE_APPLICATION_CREDENTIALS", "/secrets/calendar.json")
        provider = GoogleCalendarProvider(http_timeout=8)

        assert provider.service is mock_build.return_value
        mock_creds.assert_called_once()
        http = mock_build.call_args.kwargs["http"]
        assert http.http.timeout == 8
        assert "credentials" not in mock_build.call_args.kwargs
