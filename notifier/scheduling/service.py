"""Scheduler: turns a domain event into jobs and delayed queue messages.

Jobs are persisted first, then published one message per
``(batch, type, scheduled_for)`` group. The two steps are not atomic: a crash
in between leaves ``pending`` jobs without an external message id, which
``reconcile_orphans`` finds and publishes again.
"""

from collections import OrderedDict
from datetime import datetime, timedelta
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from notifier.config.models import NotificationsConfig, QueueConfig
from notifier.domain.exceptions import InvalidStateError, NotFoundError, UpstreamError
from notifier.domain.models import (
    BatchSpec,
    DomainEvent,
    Job,
    JobMetadata,
    JobSpec,
    JobStatus,
    JobStatusUpdate,
)
from notifier.domain.state import check_resend
from notifier.domain.timing import receives, target_send_time
from notifier.jobs import JobStore
from notifier.logging import get_logger, log_context
from notifier.queue import DeliveryEnvelope, EnvelopeKind, PublishRequest, QueueClient
from notifier.utils.timestamps import format_timestamp, seconds_until, utc_now

from .models import ReconcileResult, RetryReport, ScheduleResult

logger = get_logger(__name__, component="scheduler")

# Probe messages are published with this delay and cancelled straight away
PROBE_DELAY_SECONDS = 300

GroupKey = Tuple[str, str, datetime]


def group_jobs(jobs: Sequence[Job]) -> List[List[Job]]:
    """Group jobs by (batch, type, scheduled_for), keeping first-seen order."""
    groups: "OrderedDict[GroupKey, List[Job]]" = OrderedDict()
    for job in jobs:
        groups.setdefault((job.batch_id, job.type.value, job.scheduled_for), []).append(job)
    return list(groups.values())


class NotificationScheduler:
    """Schedules notification deliveries through the delayed-delivery queue."""

    def __init__(
        self,
        store: JobStore,
        queue_client: QueueClient,
        queue_config: QueueConfig,
        notifications_config: NotificationsConfig,
        app_base_url: str,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.store = store
        self.queue_client = queue_client
        self.queue_config = queue_config
        self.notifications_config = notifications_config
        self.app_base_url = app_base_url.rstrip("/")
        self.clock = clock

    # ------------------------------------------------------------------
    # URLs
    # ------------------------------------------------------------------

    @property
    def worker_url(self) -> str:
        return f"{self.app_base_url}{self.queue_config.worker_path}"

    @property
    def callback_url(self) -> str:
        return f"{self.app_base_url}{self.queue_config.callback_path}"

    @property
    def failure_url(self) -> str:
        return f"{self.app_base_url}{self.queue_config.failure_path}"

    # ------------------------------------------------------------------
    # Scheduling an event
    # ------------------------------------------------------------------

    def build_job_specs(self, event: DomainEvent, now: datetime) -> List[JobSpec]:
        """Derive one job per (enabled type, receiving recipient) still in the future."""
        if event.start_time is None:
            return []

        duration = event.duration_minutes or self.notifications_config.default_duration_minutes
        context = {
            **event.context,
            "eventType": event.type,
            "startTime": format_timestamp(event.start_time),
            "durationMinutes": duration,
        }

        specs = []
        for notification_type in self.notifications_config.enabled_types:
            send_at = target_send_time(notification_type, event.start_time, duration)
            if send_at <= now:
                logger.info(
                    f"Skipping {notification_type.value}: send time already passed",
                    extra={
                        "event": "scheduler.type.skipped",
                        "notification_type": notification_type.value,
                        "target_time": format_timestamp(send_at),
                    },
                )
                continue

            for recipient in event.recipients:
                if not receives(notification_type, recipient.role):
                    continue
                specs.append(
                    JobSpec(
                        session_id=event.id,
                        type=notification_type,
                        recipient_email=recipient.email,
                        recipient_name=recipient.name or "there",
                        role=recipient.role,
                        scheduled_for=send_at,
                        context=context,
                    )
                )
        return specs

    def schedule_event_notifications(
        self, event: DomainEvent, created_by: Optional[str] = None
    ) -> Optional[ScheduleResult]:
        """Create a batch for ``event`` and publish its delayed messages.

        Performs no deduplication; callers check for active batches first.

        Returns:
            The result, or None when there is nothing to schedule (no start
            time, start already past, no recipients, or no eligible jobs)

        Raises:
            ConfigurationError: If the queue is not configured
            UpstreamError: If every message group failed to publish
        """
        now = self.clock()
        with log_context(session_id=event.id):
            if event.start_time is None:
                logger.info("Event has no start time; nothing to schedule",
                            extra={"event": "scheduler.event.skipped", "reason": "no_start_time"})
                return None
            if event.start_time <= now:
                logger.info("Event already started; nothing to schedule",
                            extra={"event": "scheduler.event.skipped", "reason": "start_in_past"})
                return None
            if not event.recipients:
                logger.info("Event has no recipients; nothing to schedule",
                            extra={"event": "scheduler.event.skipped", "reason": "no_recipients"})
                return None

            specs = self.build_job_specs(event, now)
            if not specs:
                logger.info("No eligible notifications for event",
                            extra={"event": "scheduler.event.skipped", "reason": "no_eligible_jobs"})
                return None

            batch = self.store.create_batch(
                BatchSpec(session_id=event.id, type=event.type, created_by=created_by, jobs=specs)
            )
            jobs = self.store.get_batch_jobs(batch.batch_id)
            groups = group_jobs(jobs)

            with log_context(batch_id=batch.batch_id):
                logger.info(
                    f"Created batch with {len(jobs)} jobs in {len(groups)} message groups",
                    extra={
                        "event": "scheduler.batch.created",
                        "job_count": len(jobs),
                        "group_count": len(groups),
                    },
                )

                published = 0
                for group in groups:
                    if self._publish_group(group, EnvelopeKind.BATCH, now) is not None:
                        published += 1

                result = ScheduleResult(
                    batch_id=batch.batch_id,
                    job_count=len(jobs),
                    message_count=published,
                    failed_groups=len(groups) - published,
                )
                if published == 0:
                    raise UpstreamError(
                        f"All {len(groups)} message groups failed to publish for batch {batch.batch_id}"
                    )

                logger.info(
                    f"Published {published} of {len(groups)} messages",
                    extra={"event": "scheduler.batch.published", **result.as_dict()},
                )
                return result

    def _publish_group(self, jobs: Sequence[Job], kind: EnvelopeKind, now: datetime) -> Optional[str]:
        """Publish one message for ``jobs`` and record the outcome on them.

        On success the jobs become ``scheduled`` with the message id. On an
        upstream failure they become ``failed`` (and are dead-lettered) and
        None is returned. ConfigurationError propagates and leaves the jobs
        ``pending`` for the reconciliation sweep.
        """
        envelope = DeliveryEnvelope.for_jobs(jobs, kind=kind)
        request = self._publish_request(envelope, seconds_until(envelope.scheduled_for, now))

        try:
            message_id = self.queue_client.publish(request)
        except UpstreamError as e:
            logger.error(
                f"Publish failed for {len(jobs)} {envelope.type.value} jobs: {e}",
                extra={
                    "event": "scheduler.group.publish_failed",
                    "batch_id": envelope.batch_id,
                    "notification_type": envelope.type.value,
                    "job_count": len(jobs),
                    "status_code": e.status_code,
                },
            )
            self.store.update_batch_job_statuses(
                [
                    JobStatusUpdate(
                        job_id=job.id,
                        status=JobStatus.FAILED,
                        metadata=JobMetadata(last_error=f"Publish failed: {e}"),
                    )
                    for job in jobs
                ]
            )
            return None

        self.store.update_batch_job_statuses(
            [
                JobStatusUpdate(
                    job_id=job.id,
                    status=JobStatus.SCHEDULED,
                    metadata=JobMetadata(external_message_id=message_id),
                )
                for job in jobs
            ]
        )
        logger.info(
            f"Group {envelope.type.value} ({len(jobs)} jobs) scheduled as {message_id}",
            extra={
                "event": "scheduler.group.published",
                "batch_id": envelope.batch_id,
                "notification_type": envelope.type.value,
                "job_count": len(jobs),
                "message_id": message_id,
                "delay_seconds": request.delay_seconds,
            },
        )
        return message_id

    def _publish_request(self, envelope: DeliveryEnvelope, delay_seconds: int) -> PublishRequest:
        return PublishRequest(
            destination=self.worker_url,
            body=envelope.to_payload(),
            delay_seconds=delay_seconds,
            retries=self.queue_config.retries,
            retry_delay=self.queue_config.retry_delay,
            callback_url=self.callback_url,
            failure_callback_url=self.failure_url,
            flow_control=self.queue_config.flow_control,
            headers={"Batch-Id": envelope.batch_id, "Session-Id": envelope.session_id},
        )

    # ------------------------------------------------------------------
    # Single jobs: retry and resend
    # ------------------------------------------------------------------

    def schedule_single_job(self, job: Job) -> str:
        """Publish one job as its own message (send immediately if overdue).

        Returns:
            The queue message id

        Raises:
            UpstreamError: If the publish fails; the job is then ``failed``
        """
        message_id = self._publish_group([job], EnvelopeKind.SINGLE, self.clock())
        if message_id is None:
            raise UpstreamError(f"Failed to publish job {job.id}")
        return message_id

    def retry_job(self, job_id: str) -> Job:
        """Reset a failed job to ``pending`` and publish it again.

        Raises:
            NotFoundError: If the job does not exist
            InvalidStateError: If the job is not ``failed``
            UpstreamError: If the publish fails (the job is ``failed`` again)
        """
        with log_context(job_id=job_id):
            job = self.store.retry_job(job_id)
            self.schedule_single_job(job)
            logger.info(
                f"Retried job {job_id}",
                extra={"event": "scheduler.job.retried", "batch_id": job.batch_id, "attempts": job.attempts},
            )
            return self.store.get_job(job_id)

    def resend_job(self, job_id: str) -> Job:
        """Send a completed job again as a new job in the same batch.

        Raises:
            NotFoundError: If the job does not exist
            InvalidStateError: If the job is not ``completed``
            UpstreamError: If the publish fails (the new job is ``failed``)
        """
        with log_context(job_id=job_id):
            original = self.store.get_job(job_id)
            if original is None:
                raise NotFoundError(f"Job {job_id} not found")
            check_resend(original.status)

            job = self.store.create_job(
                original.batch_id,
                JobSpec(
                    session_id=original.session_id,
                    type=original.type,
                    recipient_email=original.recipient_email,
                    recipient_name=original.recipient_name,
                    role=original.role,
                    scheduled_for=self.clock(),
                    context={**original.context, "resendOf": original.id},
                ),
            )
            self.schedule_single_job(job)
            logger.info(
                f"Resent job {job_id} as {job.id}",
                extra={"event": "scheduler.job.resent", "batch_id": job.batch_id, "new_job_id": job.id},
            )
            return self.store.get_job(job.id)

    def retry_failed_for_session(self, session_id: str) -> RetryReport:
        """Retry every failed job of an event, one message per (batch, type).

        Jobs that stop being ``failed`` between the read and the reset are
        skipped.
        """
        failed_jobs = [
            job for job in self.store.list_jobs_for_session(session_id)
            if job.status == JobStatus.FAILED
        ]
        report = RetryReport(total=len(failed_jobs))
        if not failed_jobs:
            return report

        reset: Dict[Tuple[str, str], List[Job]] = OrderedDict()
        for job in failed_jobs:
            try:
                job = self.store.retry_job(job.id)
            except (InvalidStateError, NotFoundError) as e:
                logger.warning(
                    f"Skipping retry of job {job.id}: {e}",
                    extra={"event": "scheduler.session_retry.skipped", "job_id": job.id},
                )
                report.failed += 1
                continue
            reset.setdefault((job.batch_id, job.type.value), []).append(job)

        now = self.clock()
        for jobs in reset.values():
            if self._publish_group(jobs, EnvelopeKind.BATCH, now) is not None:
                report.retried += len(jobs)
            else:
                report.failed += len(jobs)

        logger.info(
            f"Retried {report.retried} of {report.total} failed jobs",
            extra={"event": "scheduler.session_retry.completed", "session_id": session_id, **report.as_dict()},
        )
        return report

    # ------------------------------------------------------------------
    # Cancellation, reconciliation, probing
    # ------------------------------------------------------------------

    def cancel_message(self, message_id: str) -> None:
        """Cancel a published message. Job statuses are not touched.

        Raises:
            UpstreamError: If the queue refuses or cannot be reached
        """
        self.queue_client.cancel(message_id)
        logger.info(
            f"Cancelled message {message_id}",
            extra={"event": "scheduler.message.cancelled", "message_id": message_id},
        )

    def reconcile_orphans(self, grace: timedelta) -> ReconcileResult:
        """Publish pending jobs that have no message id and are older than ``grace``.

        Overdue jobs are sent immediately; future ones keep their send time.
        """
        now = self.clock()
        orphans = self.store.find_orphaned_jobs(now - grace)
        result = ReconcileResult(found=len(orphans))
        if not orphans:
            return result

        logger.warning(
            f"Found {len(orphans)} orphaned pending jobs",
            extra={"event": "scheduler.reconcile.found", "job_count": len(orphans)},
        )

        for group in group_jobs(orphans):
            message_id = self._publish_group(group, EnvelopeKind.BATCH, now)
            if message_id is None:
                result.failed += len(group)
            else:
                result.republished += len(group)
                result.message_ids.append(message_id)

        logger.info(
            f"Reconciled {result.republished} of {result.found} orphaned jobs",
            extra={"event": "scheduler.reconcile.completed", **result.as_dict()},
        )
        return result

    def probe(self) -> Dict[str, object]:
        """Publish a delayed test message and cancel it straight away.

        Returns:
            ``{"success": bool, "messageId"?: str, "error"?: str}``
        """
        request = PublishRequest(
            destination=self.worker_url,
            body={"probe": True, "sentAt": format_timestamp(self.clock())},
            delay_seconds=PROBE_DELAY_SECONDS,
            retries=0,
        )
        try:
            message_id = self.queue_client.publish(request)
        except UpstreamError as e:
            return {"success": False, "error": str(e)}

        try:
            self.queue_client.cancel(message_id)
        except UpstreamError as e:
            logger.warning(
                f"Probe message {message_id} could not be cancelled: {e}",
                extra={"event": "scheduler.probe.cancel_failed", "message_id": message_id},
            )
            return {"success": True, "messageId": message_id, "cancelled": False}

        return {"success": True, "messageId": message_id, "cancelled": True}
