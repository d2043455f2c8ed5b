"""Scheduling: turning domain events into jobs and delayed queue messages."""

from .bulk import BulkScheduler
from .events import EventSource, FileEventSource, InMemoryEventSource
from .models import (
    BulkScheduleResult,
    EventOutcome,
    EventScheduleResult,
    ReconcileResult,
    RetryReport,
    ScheduleResult,
)
from .service import PROBE_DELAY_SECONDS, NotificationScheduler, group_jobs

__all__ = [
    "NotificationScheduler",
    "BulkScheduler",
    "group_jobs",
    "PROBE_DELAY_SECONDS",
    "EventSource",
    "InMemoryEventSource",
    "FileEventSource",
    "ScheduleResult",
    "RetryReport",
    "ReconcileResult",
    "EventOutcome",
    "EventScheduleResult",
    "BulkScheduleResult",
]
