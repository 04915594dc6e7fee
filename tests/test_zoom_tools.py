"""Unit tests for zoom_tools — token handling and meeting calls."""
from unittest.mock import MagicMock, patch

import pytest
import requests

from booking.errors import VideoProviderError
from booking.retry import RetryPolicy
from schemas import EventTimes, MeetingRequest
from tests.conftest import at, no_sleep

ZOOM_MODULE = "tools.zoom_tools"


def token_response():
    resp = MagicMock()
    resp.json.return_value = {"access_token": "tok-1", "expires_in": 3600}
    resp.raise_for_status.return_value = None
    return resp


def api_response(status=200, payload=None):
    resp = MagicMock()
    resp.status_code = status
    resp.content = b"{}" if payload is not None else b""
    resp.json.return_value = payload or {}
    if status >= 400:
        resp.raise_for_status.side_effect = requests.exceptions.HTTPError(f"{status} error", response=resp)
    else:
        resp.raise_for_status.return_value = None
    return resp


@pytest.fixture
def provider():
    from tools.zoom_tools import ZoomVideoProvider
    return ZoomVideoProvider(account_id="acct", client_id="cid", client_secret="secret")


def meeting_request(**extra):
    return MeetingRequest(topic="Property Consultation: Jane Lim", start_time=at(3, 15), agenda="notes", **extra)


class TestCreateMeeting:
    @pytest.mark.asyncio
    @patch(f"{ZOOM_MODULE}.requests.request")
    @patch(f"{ZOOM_MODULE}.requests.post")
    async def test_creates_scheduled_meeting(self, mock_post, mock_request, provider):
        mock_post.return_value = token_response()
        mock_request.return_value = api_response(
            201, {"id": 81234567, "join_url": "https://zoom.us/j/81234567", "host_email": "rachel@example.com"}
        )

        meeting = await provider.create_meeting_for_user("rachel@example.com", meeting_request())

        assert meeting.id == "81234567"
        assert meeting.join_url == "https://zoom.us/j/81234567"
        method, url = mock_request.call_args.args
        assert method == "POST"
        assert url == "https://api.zoom.us/v2/users/rachel%40example.com/meetings"
        payload = mock_request.call_args.kwargs["json"]
        assert payload["type"] == 2
        assert payload["start_time"] == "2026-03-03T15:00:00"
        assert payload["timezone"] == "Asia/Singapore"
        assert mock_request.call_args.kwargs["headers"]["Authorization"] == "Bearer tok-1"

    @pytest.mark.asyncio
    @patch(f"{ZOOM_MODULE}.requests.request")
    @patch(f"{ZOOM_MODULE}.requests.post")
    async def test_token_is_cached(self, mock_post, mock_request, provider):
        mock_post.return_value = token_response()
        mock_request.return_value = api_response(201, {"id": 1, "join_url": "https://zoom.us/j/1"})

        await provider.create_meeting_for_user("rachel@example.com", meeting_request())
        await provider.create_meeting_for_user("rachel@example.com", meeting_request())

        mock_post.assert_called_once()
        assert mock_post.call_args.kwargs["params"] == {"grant_type": "account_credentials", "account_id": "acct"}
        assert mock_post.call_args.kwargs["auth"] == ("cid", "secret")

    @pytest.mark.asyncio
    @patch(f"{ZOOM_MODULE}.requests.request")
    @patch(f"{ZOOM_MODULE}.requests.post")
    async def test_server_error_is_retryable(self, mock_post, mock_request, provider):
        mock_post.return_value = token_response()
        mock_request.return_value = api_response(500)

        with pytest.raises(VideoProviderError) as excinfo:
            await provider.create_meeting_for_user("rachel@example.com", meeting_request())
        assert excinfo.value.status_code == 500
        assert excinfo.value.retryable

    @pytest.mark.asyncio
    @patch(f"{ZOOM_MODULE}.requests.request")
    @patch(f"{ZOOM_MODULE}.requests.post")
    async def test_unauthorized_drops_token_and_retries(self, mock_post, mock_request, provider):
        mock_post.return_value = token_response()
        mock_request.return_value = api_response(401)

        with pytest.raises(VideoProviderError) as excinfo:
            await provider.create_meeting_for_user("rachel@example.com", meeting_request())
        assert excinfo.value.retryable
        assert provider._token is None

    @pytest.mark.asyncio
    @patch(f"{ZOOM_MODULE}.requests.request")
    @patch(f"{ZOOM_MODULE}.requests.post")
    async def test_connection_error_is_retryable(self, mock_post, mock_request, provider):
        mock_post.return_value = token_response()
        mock_request.side_effect = requests.exceptions.ConnectionError("reset")

        with pytest.raises(VideoProviderError) as excinfo:
            await provider.create_meeting_for_user("rachel@example.com", meeting_request())
        assert excinfo.value.status_code is None
        assert excinfo.value.retryable

    @pytest.mark.asyncio
    async def test_missing_credentials(self, monkeypatch):
        from tools.zoom_tools import ZoomVideoProvider

        for name in ("ZOOM_ACCOUNT_ID", "ZOOM_CLIENT_ID", "ZOOM_CLIENT_SECRET"):
            monkeypatch.delenv(name, raising=False)
        with pytest.raises(VideoProviderError) as excinfo:
            await ZoomVideoProvider().create_meeting_for_user("rachel@example.com", meeting_request())
        assert not excinfo.value.retryable


class TestUpdateAndDelete:
    @pytest.mark.asyncio
    @patch(f"{ZOOM_MODULE}.requests.request")
    @patch(f"{ZOOM_MODULE}.requests.post")
    async def test_update_sends_new_start_and_duration(self, mock_post, mock_request, provider):
        mock_post.return_value = token_response()
        mock_request.return_value = api_response(204)

        await provider.update_meeting("rachel@example.com", "81234567", EventTimes(start=at(5, 14), end=at(5, 15)))

        method, url = mock_request.call_args.args
        assert (method, url) == ("PATCH", "https://api.zoom.us/v2/meetings/81234567")
        assert mock_request.call_args.kwargs["json"]["start_time"] == "2026-03-05T14:00:00"
        assert mock_request.call_args.kwargs["json"]["duration"] == 60

    @pytest.mark.asyncio
    @patch(f"{ZOOM_MODULE}.requests.request")
    @patch(f"{ZOOM_MODULE}.requests.post")
    async def test_delete_missing_meeting_is_ok(self, mock_post, mock_request, provider):
        mock_post.return_value = token_response()
        mock_request.return_value = api_response(404)

        await provider.delete_meeting_for_user("rachel@example.com", "81234567")

        assert mock_request.call_args.args == ("DELETE", "https://api.zoom.us/v2/meetings/81234567")

    @pytest.mark.asyncio
    @patch(f"{ZOOM_MODULE}.requests.request")
    @patch(f"{ZOOM_MODULE}.requests.post")
    async def test_delete_forbidden_raises(self, mock_post, mock_request, provider):
        mock_post.return_value = token_response()
        mock_request.return_value = api_response(403)

        with pytest.raises(VideoProviderError) as excinfo:
            await provider.delete_meeting_for_user("rachel@example.com", "81234567")
        assert not excinfo.value.retryable


def upcoming(*meetings):
    return api_response(200, {"meetings": list(meetings)})


class TestRetriedCreate:
    @pytest.mark.asyncio
    @patch(f"{ZOOM_MODULE}.requests.request")
    @patch(f"{ZOOM_MODULE}.requests.post")
    async def test_timed_out_create_reuses_existing_meeting(self, mock_post, mock_request, provider):
        mock_post.return_value = token_response()
        mock_request.side_effect = [
            requests.exceptions.ReadTimeout("read timed out"),
            upcoming(
                {"id": 444, "topic": "Other", "start_time": "2026-03-03T07:00:00Z", "join_url": "https://zoom.us/j/444"},
                {
                    "id": 555,
                    "topic": "Property Consultation: Jane Lim",
                    "start_time": "2026-03-03T07:00:00Z",
                    "join_url": "https://zoom.us/j/555",
                },
            ),
        ]
        policy = RetryPolicy(max_attempts=3, base_delay=0, max_delay=0, timeout=None, sleep=no_sleep)

        meeting = await policy.run(
            lambda: provider.create_meeting_for_user("rachel@example.com", meeting_request(idempotency_key="bk-1")),
            name="zoom.create_meeting",
        )

        assert meeting.id == "555"
        assert meeting.host_ref == "rachel@example.com"
        assert [c.args[0] for c in mock_request.call_args_list] == ["POST", "GET"]
        assert mock_request.call_args.kwargs["params"] == {"type": "upcoming", "page_size": 300}
        assert provider._pending_creates == set()

    @pytest.mark.asyncio
    @patch(f"{ZOOM_MODULE}.requests.request")
    @patch(f"{ZOOM_MODULE}.requests.post")
    async def test_creates_again_when_no_meeting_matches(self, mock_post, mock_request, provider):
        mock_post.return_value = token_response()
        mock_request.side_effect = [
            requests.exceptions.ReadTimeout("read timed out"),
            upcoming(),
            api_response(201, {"id": 777, "join_url": "https://zoom.us/j/777"}),
        ]
        policy = RetryPolicy(max_attempts=3, base_delay=0, max_delay=0, timeout=None, sleep=no_sleep)

        meeting = await policy.run(
            lambda: provider.create_meeting_for_user("rachel@example.com", meeting_request(idempotency_key="bk-2")),
            name="zoom.create_meeting",
        )

        assert meeting.id == "777"
        assert [c.args[0] for c in mock_request.call_args_list] == ["POST", "GET", "POST"]
        assert provider._pending_creates == set()

    @pytest.mark.asyncio
    @patch(f"{ZOOM_MODULE}.requests.request")
    @patch(f"{ZOOM_MODULE}.requests.post")
    async def test_first_create_does_not_search(self, mock_post, mock_request, provider):
        mock_post.return_value = token_response()
        mock_request.return_value = api_response(201, {"id": 1, "join_url": "https://zoom.us/j/1"})

        await provider.create_meeting_for_user("rachel@example.com", meeting_request(idempotency_key="bk-3"))

        assert [c.args[0] for c in mock_request.call_args_list] == ["POST"]

    @pytest.mark.asyncio
    @patch(f"{ZOOM_MODULE}.requests.request")
    @patch(f"{ZOOM_MODULE}.requests.post")
    async def test_timeout_is_split_between_token_and_call(self, mock_post, mock_request):
        from tools.zoom_tools import ZoomVideoProvider

        provider = ZoomVideoProvider(account_id="acct", client_id="cid", client_secret="secret", timeout=8)
        mock_post.return_value = token_response()
        mock_request.return_value = api_response(201, {"id": 1, "join_url": "https://zoom.us/j/1"})

        await provider.create_meeting_for_user("rachel@example.com", meeting_request())

        assert mock_post.call_args.kwargs["timeout"] == 4
        assert mock_request.call_args.kwargs["timeout"] == 4
