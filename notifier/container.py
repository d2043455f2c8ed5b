"""Wiring: builds the engine's services from configuration."""

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, Optional

from notifier.config import AppConfig, EnvironmentConfig, parse_duration
from notifier.jobs import BatchProgressAggregator, JobStore
from notifier.logging import get_logger
from notifier.maintenance import MaintenanceTasks
from notifier.persistence import Database
from notifier.queue import HttpQueueClient, QueueClient, SignatureVerifier
from notifier.scheduling import (
    BulkScheduler,
    EventSource,
    InMemoryEventSource,
    NotificationScheduler,
)
from notifier.status import StatusQueryService
from notifier.utils.timestamps import utc_now
from notifier.webhooks import CallbackHandler, FailureHandler

logger = get_logger(__name__, component="container")


@dataclass
class Services:
    """Everything the HTTP surface and the CLI need, sharing one database."""

    app_config: AppConfig
    env_config: EnvironmentConfig
    database: Database
    queue_client: QueueClient
    store: JobStore
    aggregator: BatchProgressAggregator
    scheduler: NotificationScheduler
    bulk_scheduler: BulkScheduler
    event_source: EventSource
    status: StatusQueryService
    verifier: SignatureVerifier
    callback_handler: CallbackHandler
    failure_handler: FailureHandler
    maintenance: MaintenanceTasks

    def close(self) -> None:
        self.database.close()


def build_services(
    app_config: AppConfig,
    env_config: EnvironmentConfig,
    database: Optional[Database] = None,
    queue_client: Optional[QueueClient] = None,
    event_source: Optional[EventSource] = None,
    clock: Callable[[], datetime] = utc_now,
) -> Services:
    """Build the service graph.

    Args:
        app_config: YAML configuration
        env_config: Environment configuration
        database: Initialized database; created from DATABASE_URL when None
        queue_client: Queue client; an HTTP client using QUEUE_TOKEN when None
        event_source: Where bulk scheduling looks events up; empty when None
        clock: Source of the current time for every service

    Raises:
        DatabaseConnectionError: If the database cannot be opened
    """
    if database is None:
        database = Database(env_config.database_url).init()
    if queue_client is None:
        queue_client = HttpQueueClient(
            api_url=app_config.queue.api_url,
            token=env_config.queue_token,
            timeout=app_config.queue.request_timeout,
        )
    if event_source is None:
        event_source = InMemoryEventSource([])

    store = JobStore(database, clock=clock)
    aggregator = BatchProgressAggregator(database, clock=clock)
    scheduler = NotificationScheduler(
        store=store,
        queue_client=queue_client,
        queue_config=app_config.queue,
        notifications_config=app_config.notifications,
        app_base_url=env_config.app_base_url,
        clock=clock,
    )
    verifier = SignatureVerifier(
        env_config.current_signing_key,
        env_config.next_signing_key,
        strict=env_config.strict_signatures,
    )

    services = Services(
        app_config=app_config,
        env_config=env_config,
        database=database,
        queue_client=queue_client,
        store=store,
        aggregator=aggregator,
        scheduler=scheduler,
        bulk_scheduler=BulkScheduler(scheduler, store, event_source, clock=clock),
        event_source=event_source,
        status=StatusQueryService(store),
        verifier=verifier,
        callback_handler=CallbackHandler(store, verifier),
        failure_handler=FailureHandler(store, verifier),
        maintenance=MaintenanceTasks(
            aggregator,
            scheduler,
            orphan_grace=timedelta(seconds=parse_duration(app_config.maintenance.orphan_grace)),
        ),
    )

    logger.info(
        "Services initialized",
        extra={
            "event": "services.initialized",
            "queue_configured": queue_client.configured,
            "strict_signatures": env_config.strict_signatures,
            "enabled_types": [t.value for t in app_config.notifications.enabled_types],
        },
    )
    return services
