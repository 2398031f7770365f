from datetime import datetime, timedelta

import pytest
from dateutil import tz

from meetbot.config import LifecycleConfig
from meetbot.interactions import InteractionRegistry
from meetbot.models import MeetupInfo, Member, Recipient
from meetbot.registry import MeetupRegistry
from tests.fakes import FakeClock, FakeNotifier, FakeScheduler

BERLIN = tz.gettz("Europe/Berlin")
NOW = datetime(2026, 10, 19, 22, 0, tzinfo=BERLIN)

ALICE = Member(id=1, name="alice")
BOB = Member(id=2, name="bob")
CAROL = Member(id=3, name="carol")
DAVE = Member(id=4, name="dave")
EVE = Member(id=5, name="eve")

GROUP = Recipient(chat_id=-500)


def make_info(start_in=timedelta(hours=2), capacity=None, owner=ALICE, topic="catan-night") -> MeetupInfo:
    return MeetupInfo(owner=owner, topic=topic, start_at=NOW + start_in, capacity=capacity)


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture
def clock():
    return FakeClock(NOW)


@pytest.fixture
def scheduler(clock):
    return FakeScheduler(clock)


@pytest.fixture
def notifier():
    return FakeNotifier()


@pytest.fixture
def interactions():
    return InteractionRegistry()


@pytest.fixture
def lifecycle():
    return LifecycleConfig()


@pytest.fixture
def registry(notifier, scheduler, interactions, lifecycle, clock):
    return MeetupRegistry(notifier, scheduler, interactions, lifecycle, clock)
