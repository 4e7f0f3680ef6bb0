"""Shared fixtures for crisis engine tests."""
from datetime import timedelta

import pytest

from mentionguard.services.crisis_engine.bucket_store import InMemoryTimeBucketStore
from mentionguard.services.crisis_engine.events import InMemoryEventPublisher
from .helpers import CURRENT_HOUR, FakeClock


@pytest.fixture
def clock():
    return FakeClock(CURRENT_HOUR + timedelta(minutes=40))


@pytest.fixture
def store():
    return InMemoryTimeBucketStore()


@pytest.fixture
def publisher():
    return InMemoryEventPublisher()
