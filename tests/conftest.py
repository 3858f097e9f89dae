"""Shared pytest fixtures for Aura Chat SDK tests."""

import pytest
from dotenv import load_dotenv

# Load environment variables from .env file for tests
load_dotenv()

from aura_chat_sdk.config.settings import ChatServiceConfig
from aura_chat_sdk.reliability.circuit_breaker import CircuitBreaker, CircuitBreakerConfig
from aura_chat_sdk.reliability.error_service import ErrorService
from aura_chat_sdk.reliability.retry import RetryManager
from aura_chat_sdk.reliability.storage import InMemoryStore
from aura_chat_sdk.services.chat_service import ResilientChatService
from tests.helpers.fakes import FakeChatProvider, FakeClock, SleepRecorder


def pytest_configure(config):
    config.addinivalue_line("markers", "unit: fast isolated tests")
    config.addinivalue_line("markers", "integration: tests wiring several components together")


@pytest.fixture(autouse=True)
def reset_error_service_singleton():
    """Restore global exception hooks installed by ErrorService.get_instance()."""
    yield
    ErrorService.reset_instance()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def sleeper(clock):
    return SleepRecorder(clock)


@pytest.fixture
def retry_manager(sleeper, clock):
    """RetryManager with recorded sleeps and jitter pinned to the full delay."""
    return RetryManager(sleep=sleeper, clock=clock, rng=lambda: 1.0)


@pytest.fixture
def store():
    return InMemoryStore()


@pytest.fixture
def error_service(store):
    return ErrorService(store=store)


@pytest.fixture
def fake_provider():
    return FakeChatProvider()


@pytest.fixture
def service_config():
    return ChatServiceConfig()


@pytest.fixture
def circuit_breaker(clock, service_config):
    return CircuitBreaker(
        "chat",
        CircuitBreakerConfig(
            failure_threshold=service_config.failure_threshold,
            reset_timeout=service_config.reset_timeout,
        ),
        clock=clock,
    )


@pytest.fixture
def chat_service(service_config, error_service, fake_provider, retry_manager, circuit_breaker):
    """Uninitialized chat service wired to the fake provider."""
    return ResilientChatService(
        config=service_config,
        error_service=error_service,
        provider_factory=lambda api_key: fake_provider,
        retry_manager=retry_manager,
        circuit_breaker=circuit_breaker,
    )
