import logging

import pytest

from pagepilot.llm.cost_tracker import CostTracker
from pagepilot.llm.llm_service import LLMService
from pagepilot.llm.provider_health_monitor import ProviderHealthMonitor
from pagepilot.llm.provider_registry import ProviderRegistry
from pagepilot.llm.retry import RetryPolicy
from pagepilot.storage.credential_service import InMemoryCredentialService
from pagepilot.utils.logging import ROOT_LOGGER_NAME
from tests.mocks import FakeRedis
from tests.utils.helpers import FakeClock, RecordingSleep


@pytest.fixture(autouse=True)
def capture_events(caplog):
    app_logger = logging.getLogger(ROOT_LOGGER_NAME)
    propagate = app_logger.propagate
    app_logger.propagate = True
    caplog.set_level(logging.DEBUG, logger=ROOT_LOGGER_NAME)
    yield caplog
    app_logger.propagate = propagate


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def health_monitor(clock) -> ProviderHealthMonitor:
    return ProviderHealthMonitor(clock=clock)


@pytest.fixture
def cost_tracker(clock) -> CostTracker:
    return CostTracker(clock=clock)


@pytest.fixture
def registry() -> ProviderRegistry:
    return ProviderRegistry()


@pytest.fixture
def credentials() -> InMemoryCredentialService:
    return InMemoryCredentialService()


@pytest.fixture
def fake_redis() -> FakeRedis:
    return FakeRedis()


@pytest.fixture
def recording_sleep() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture
def service(
    registry, health_monitor, cost_tracker, credentials, recording_sleep
) -> LLMService:
    return LLMService(
        registry=registry,
        health_monitor=health_monitor,
        cost_tracker=cost_tracker,
        credential_service=credentials,
        retry_policy=RetryPolicy(max_retries=3, base_delay=1.0, max_delay=10.0),
        sleep=recording_sleep,
    )
