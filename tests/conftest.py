"""Shared fixtures: in-memory database, fake queue, frozen clock."""

import pytest

from notifier.config import AppConfig, EnvironmentConfig
from notifier.container import build_services
from notifier.jobs import BatchProgressAggregator, JobStore
from notifier.logging import clear_log_context
from notifier.persistence import Database
from notifier.scheduling import NotificationScheduler
from tests.helpers import FakeQueueClient, FrozenClock

BASE_URL = "https://notify.example.com"


@pytest.fixture(autouse=True)
def _reset_log_context():
    yield
    clear_log_context()


@pytest.fixture
def clock():
    return FrozenClock()


@pytest.fixture
def database():
    db = Database("sqlite:///:memory:").init()
    yield db
    db.close()


@pytest.fixture
def store(database, clock):
    return JobStore(database, clock=clock)


@pytest.fixture
def aggregator(database, clock):
    return BatchProgressAggregator(database, clock=clock)


@pytest.fixture
def queue_client():
    return FakeQueueClient()


@pytest.fixture
def app_config():
    return AppConfig()


@pytest.fixture
def env_config():
    return EnvironmentConfig(
        queue_token="test-token",
        current_signing_key="current-key",
        next_signing_key="next-key",
        app_base_url=BASE_URL,
        database_url="sqlite:///:memory:",
        strict_signatures=True,
    )


@pytest.fixture
def scheduler(store, queue_client, app_config, clock):
    return NotificationScheduler(
        store=store,
        queue_client=queue_client,
        queue_config=app_config.queue,
        notifications_config=app_config.notifications,
        app_base_url=BASE_URL,
        clock=clock,
    )


@pytest.fixture
def services(app_config, env_config, database, queue_client, clock):
    return build_services(
        app_config, env_config, database=database, queue_client=queue_client, clock=clock
    )
