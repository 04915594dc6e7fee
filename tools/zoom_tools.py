"""Zoom video-conferencing provider (Server-to-Server OAuth).

Calls the Zoom REST API directly with requests, run in a worker thread so
the orchestrator can await it.
"""
import asyncio
import logging
import os
import time
from typing import Any, Dict, Optional
from urllib.parse import quote
from zoneinfo import ZoneInfo

import requests
from dateutil.parser import isoparse

from booking.errors import VideoProviderError
from schemas import EventTimes, MeetingRequest, VideoMeeting

logger = logging.getLogger(__name__)

ZOOM_OAUTH_URL = "https://zoom.us/oauth/token"
ZOOM_API_BASE = "https://api.zoom.us/v2"
TOKEN_REFRESH_MARGIN = 60

MEETING_SETTINGS = {
    "host_video": True,
    "participant_video": True,
    "join_before_host": False,
    "mute_upon_entry": True,
    "waiting_room": True,
    "auto_recording": "none",
    "approval_type": 0,
}


class ZoomVideoProvider:
    """Zoom meetings hosted by each agent's Zoom user.

    ``timeout`` is the budget for one call, token refresh included; it is
    split between the token request and the API request and should stay
    below the retry policy's per-attempt timeout.
    """

    def __init__(
        self,
        account_id: Optional[str] = None,
        client_id: Optional[str] = None,
        client_secret: Optional[str] = None,
        time_zone: str = "Asia/Singapore",
        timeout: float = 10.0,
    ):
        self.account_id = account_id or os.environ.get("ZOOM_ACCOUNT_ID", "")
        self.client_id = client_id or os.environ.get("ZOOM_CLIENT_ID", "")
        self.client_secret = client_secret or os.environ.get("ZOOM_CLIENT_SECRET", "")
        self.time_zone = time_zone
        self.timeout = timeout
        self._token: Optional[str] = None
        self._token_expires_at = 0.0
        self._pending_creates: set = set()

    # -- auth ----------------------------------------------------------------

    def _access_token(self) -> str:
        if self._token and time.monotonic() < self._token_expires_at:
            return self._token
        if not (self.account_id and self.client_id and self.client_secret):
            raise VideoProviderError("Zoom credentials are not configured", retryable=False)

        resp = requests.post(
            ZOOM_OAUTH_URL,
            params={"grant_type": "account_credentials", "account_id": self.account_id},
            auth=(self.client_id, self.client_secret),
            timeout=self.timeout / 2,
        )
        resp.raise_for_status()
        data = resp.json()
        self._token = data["access_token"]
        self._token_expires_at = time.monotonic() + int(data.get("expires_in", 3600)) - TOKEN_REFRESH_MARGIN
        logger.debug("Zoom access token refreshed, expires_in=%s", data.get("expires_in"))
        return self._token

    def _request(
        self,
        method: str,
        path: str,
        payload: Optional[Dict[str, Any]] = None,
        params: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        token = self._access_token()
        resp = requests.request(
            method,
            f"{ZOOM_API_BASE}{path}",
            json=payload,
            params=params,
            headers={"Authorization": f"Bearer {token}", "Content-Type": "application/json"},
            timeout=self.timeout / 2,
        )
        if resp.status_code == 401:
            # Token revoked or expired early; next attempt fetches a fresh one.
            self._token = None
        resp.raise_for_status()
        return resp.json() if resp.content else {}

    async def _call(
        self,
        method: str,
        path: str,
        payload: Optional[Dict[str, Any]] = None,
        params: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        try:
            return await asyncio.to_thread(self._request, method, path, payload, params)
        except VideoProviderError:
            raise
        except requests.exceptions.HTTPError as exc:
            status = exc.response.status_code if exc.response is not None else None
            raise VideoProviderError(
                f"{method} {path}: {exc}",
                status_code=status,
                retryable=True if status == 401 else None,
            ) from exc
        except (requests.exceptions.ConnectionError, requests.exceptions.Timeout) as exc:
            raise VideoProviderError(f"{method} {path}: {exc}") from exc
        except requests.exceptions.RequestException as exc:
            raise VideoProviderError(f"{method} {path}: {exc}", retryable=False) from exc

    def _local(self, when) -> str:
        return when.astimezone(ZoneInfo(self.time_zone)).strftime("%Y-%m-%dT%H:%M:%S")

    # -- meetings ------------------------------------------------------------

    async def _find_meeting(self, user_ref: str, meeting: MeetingRequest) -> Optional[VideoMeeting]:
        data = await self._call(
            "GET",
            f"/users/{quote(user_ref, safe='')}/meetings",
            params={"type": "upcoming", "page_size": 300},
        )
        for existing in data.get("meetings", []):
            if existing.get("topic") != meeting.topic or not existing.get("start_time"):
                continue
            if isoparse(existing["start_time"]) == meeting.start_time:
                return VideoMeeting(
                    id=str(existing["id"]),
                    join_url=existing["join_url"],
                    host_ref=existing.get("host_email") or user_ref,
                )
        return None

    async def create_meeting_for_user(self, user_ref: str, meeting: MeetingRequest) -> VideoMeeting:
        """Schedule a meeting hosted by ``user_ref`` (Zoom user id or email).

        Zoom has no idempotency key. When a create with the same
        ``idempotency_key`` was already attempted, the user's upcoming
        meetings are searched by topic and start first, so a request that
        went through without its response is not created twice.
        """
        key = meeting.idempotency_key
        if key and key in self._pending_creates:
            existing = await self._find_meeting(user_ref, meeting)
            if existing is not None:
                self._pending_creates.discard(key)
                logger.info("Zoom meeting already created user=%s meeting_id=%s", user_ref, existing.id)
                return existing
        if key:
            self._pending_creates.add(key)

        payload = {
            "topic": meeting.topic,
            "type": 2,
            "start_time": self._local(meeting.start_time),
            "duration": meeting.duration_minutes,
            "timezone": self.time_zone,
            "agenda": meeting.agenda[:2000],
            "settings": MEETING_SETTINGS,
        }
        data = await self._call("POST", f"/users/{quote(user_ref, safe='')}/meetings", payload)
        if key:
            self._pending_creates.discard(key)
        logger.info("Zoom meeting created user=%s meeting_id=%s", user_ref, data.get("id"))
        return VideoMeeting(
            id=str(data["id"]),
            join_url=data["join_url"],
            host_ref=data.get("host_email") or user_ref,
        )

    async def update_meeting(self, user_ref: str, meeting_id: str, times: EventTimes) -> None:
        duration = int((times.end - times.start).total_seconds() // 60)
        await self._call(
            "PATCH",
            f"/meetings/{meeting_id}",
            {"start_time": self._local(times.start), "duration": duration, "timezone": self.time_zone},
        )
        logger.info("Zoom meeting moved user=%s meeting_id=%s start=%s", user_ref, meeting_id, times.start.isoformat())

    async def delete_meeting_for_user(self, user_ref: str, meeting_id: str) -> None:
        """Delete a meeting. A meeting that no longer exists counts as deleted."""
        try:
            await self._call("DELETE", f"/meetings/{meeting_id}")
        except VideoProviderError as exc:
            if exc.status_code in (404, 410):
                logger.info("Zoom meeting already gone user=%s meeting_id=%s", user_ref, meeting_id)
                return
            raise
        logger.info("Zoom meeting deleted user=%s meeting_id=%s", user_ref, meeting_id)
