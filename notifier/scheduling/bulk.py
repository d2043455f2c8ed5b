"""Scheduling notifications for many events in one run.

Each event is handled on its own: a failure is recorded in that event's
result and the run continues with the next one.
"""

from datetime import datetime
from typing import Callable, Iterable, List, Optional

from notifier.domain.exceptions import NotifierError
from notifier.domain.models import Batch, DomainEvent, JobStatus
from notifier.jobs import JobStore
from notifier.logging import get_logger, log_context
from notifier.utils.timestamps import format_timestamp, utc_now

from .events import EventSource
from .models import BulkScheduleResult, EventOutcome, EventScheduleResult
from .service import NotificationScheduler

logger = get_logger(__name__, component="bulk_scheduler")

REASON_NO_START_TIME = "No start time"
REASON_START_IN_PAST = "Start time is in the past"
REASON_ACTIVE_BATCHES = "Active batches exist (use force to reschedule)"
REASON_DRY_RUN = "Dry run - would schedule"
REASON_NOTHING_ELIGIBLE = "No eligible notifications"


class BulkScheduler:
    """Schedules a set of events, with optional forced rescheduling."""

    def __init__(
        self,
        scheduler: NotificationScheduler,
        store: JobStore,
        source: EventSource,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.scheduler = scheduler
        self.store = store
        self.source = source
        self.clock = clock

    def schedule_events(
        self,
        event_ids: Optional[Iterable[str]] = None,
        events: Optional[Iterable[DomainEvent]] = None,
        force: bool = False,
        dry_run: bool = False,
        created_by: Optional[str] = None,
    ) -> BulkScheduleResult:
        """Schedule notifications for each event.

        Args:
            event_ids: Events to look up in the source; None means all upcoming
            events: Events supplied directly; takes precedence over ``event_ids``
            force: Delete existing batches (cancelling their messages) first
            dry_run: Report what would be scheduled without writing anything
            created_by: Recorded on every created batch

        Returns:
            Per-event results plus summary counts
        """
        now = self.clock()
        run = BulkScheduleResult(dry_run=dry_run)

        if events is not None:
            targets = list(events)
        elif event_ids is not None:
            targets = []
            for event_id in event_ids:
                event = self.source.get_event(event_id)
                if event is None:
                    run.results.append(
                        EventScheduleResult(
                            event_id=event_id,
                            event_type="Session",
                            start_time=None,
                            outcome=EventOutcome.FAILED,
                            error=f"Event {event_id} not found",
                        )
                    )
                    continue
                targets.append(event)
        else:
            targets = self.source.list_upcoming(now)

        logger.info(
            f"Bulk scheduling {len(targets)} events",
            extra={
                "event": "bulk.run.started",
                "event_count": len(targets),
                "force": force,
                "dry_run": dry_run,
            },
        )

        for event in targets:
            with log_context(session_id=event.id):
                try:
                    result = self._schedule_one(event, now, force, dry_run, created_by)
                except NotifierError as e:
                    logger.error(
                        f"Scheduling event {event.id} failed: {e}",
                        extra={"event": "bulk.event.failed", "error_type": type(e).__name__},
                    )
                    result = self._result(event, EventOutcome.FAILED, error=str(e))
            run.results.append(result)

        logger.info(
            f"Bulk scheduling finished: {run.as_dict()['message']}",
            extra={"event": "bulk.run.completed", **run.summary},
        )
        return run

    def _schedule_one(
        self,
        event: DomainEvent,
        now: datetime,
        force: bool,
        dry_run: bool,
        created_by: Optional[str],
    ) -> EventScheduleResult:
        if event.start_time is None:
            return self._result(event, EventOutcome.SKIPPED, reason=REASON_NO_START_TIME)
        if event.start_time <= now:
            return self._result(event, EventOutcome.SKIPPED, reason=REASON_START_IN_PAST)

        existing = self.store.list_batches_for_session(event.id)
        active = [batch for batch in existing if batch.is_active]
        if active and not force:
            return self._result(event, EventOutcome.SKIPPED, reason=REASON_ACTIVE_BATCHES)

        if dry_run:
            return self._result(event, EventOutcome.SKIPPED, reason=REASON_DRY_RUN)

        deleted = []
        if force:
            for batch in existing:
                self._cancel_outstanding(batch)
                if self.store.delete_batch(batch.batch_id):
                    deleted.append(batch.batch_id)
            if deleted:
                logger.info(
                    f"Deleted {len(deleted)} existing batches before rescheduling",
                    extra={"event": "bulk.event.batches_deleted", "batch_ids": deleted},
                )

        scheduled = self.scheduler.schedule_event_notifications(event, created_by=created_by)
        if scheduled is None:
            result = self._result(event, EventOutcome.SKIPPED, reason=REASON_NOTHING_ELIGIBLE)
        else:
            result = self._result(
                event,
                EventOutcome.SCHEDULED,
                batch_id=scheduled.batch_id,
                job_count=scheduled.job_count,
            )
        result.deleted_batches = deleted
        return result

    def _cancel_outstanding(self, batch: Batch) -> None:
        """Cancel the queue messages of jobs that have not been delivered yet."""
        message_ids: List[str] = []
        for job in self.store.get_batch_jobs(batch.batch_id):
            if job.status.is_terminal or job.status == JobStatus.IN_PROGRESS:
                continue
            message_id = job.metadata.external_message_id
            if message_id and message_id not in message_ids:
                message_ids.append(message_id)

        for message_id in message_ids:
            try:
                self.scheduler.cancel_message(message_id)
            except NotifierError as e:
                logger.warning(
                    f"Could not cancel message {message_id}: {e}",
                    extra={
                        "event": "bulk.message.cancel_failed",
                        "batch_id": batch.batch_id,
                        "message_id": message_id,
                    },
                )

    @staticmethod
    def _result(event: DomainEvent, outcome: EventOutcome, **kwargs) -> EventScheduleResult:
        return EventScheduleResult(
            event_id=event.id,
            event_type=event.type,
            start_time=format_timestamp(event.start_time) if event.start_time else None,
            outcome=outcome,
            **kwargs,
        )
