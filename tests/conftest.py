"""Shared fixtures: a frozen clock, zero-delay retries and in-memory collaborators."""
import uuid
from datetime import datetime
from zoneinfo import ZoneInfo

import pytest

from booking.config import SchedulingConfig
from booking.orchestrator import AppointmentOrchestrator
from booking.retry import RetryPolicy
from schemas import Agent, Lead
from tests.fakes import FakeCalendar, FakeDatastore, FakeVideo

SGT = ZoneInfo("Asia/Singapore")

# Monday 2 March 2026, 10:00 in Singapore.
NOW = datetime(2026, 3, 2, 10, 0, tzinfo=SGT)


def at(day: int, hour: int, minute: int = 0) -> datetime:
    """A March 2026 instant in business-local time."""
    return datetime(2026, 3, day, hour, minute, tzinfo=SGT)


async def no_sleep(_seconds: float) -> None:
    return None


@pytest.fixture
def config():
    return SchedulingConfig()


@pytest.fixture
def clock():
    return lambda: NOW


@pytest.fixture
def retry_policy():
    return RetryPolicy(max_attempts=3, base_delay=0, max_delay=0, timeout=5, sleep=no_sleep)


@pytest.fixture
def calendar():
    return FakeCalendar()


@pytest.fixture
def video():
    return FakeVideo()


@pytest.fixture
def agent():
    return Agent(
        id=uuid.uuid4(),
        full_name="Rachel Tan",
        google_calendar_id="rachel@example.com",
        zoom_user_id="rachel@example.com",
    )


@pytest.fixture
def lead(agent):
    return Lead(
        id=uuid.uuid4(),
        full_name="Jane Lim",
        phone_number="+6591234567",
        intent="buy",
        budget="SGD 1.5M",
        source="whatsapp",
        status="qualified",
        assigned_agent_id=agent.id,
    )


@pytest.fixture
def datastore(agent, lead):
    store = FakeDatastore()
    store.add_agent(agent)
    store.add_lead(lead)
    return store


@pytest.fixture
def orchestrator(datastore, calendar, video, config, retry_policy, clock):
    return AppointmentOrchestrator(
        datastore, calendar, video, config=config, retry_policy=retry_policy, clock=clock
    )
