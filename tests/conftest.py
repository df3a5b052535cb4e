"""
Shared fixtures.

No real API calls in tests: provider traffic goes through a scripted
client or an httpx.MockTransport.
"""

import pytest

from src.config.settings import AssistantSettings
from src.queries import PrivacyAggregator
from src.services.storage import InMemoryFinanceStore
from tests.helpers import NOW, FakeClock, build_store


@pytest.fixture
def store() -> InMemoryFinanceStore:
    return build_store()


@pytest.fixture
def aggregator(store) -> PrivacyAggregator:
    return PrivacyAggregator(store, now=lambda: NOW)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def assistant_settings() -> AssistantSettings:
    return AssistantSettings(_env_file=None)
