"""Job Store: transactional operations over jobs, batches, and dead letters.

Every mutating operation runs in one database transaction that also
recomputes the affected batches, so a job's status and its batch's counts
never disagree after a commit. Any transition into ``failed`` appends exactly
one dead-letter entry in that same transaction.
"""

import uuid
from datetime import datetime
from typing import Callable, Dict, List, Optional, Sequence

from sqlalchemy.orm import Session

from notifier.domain.exceptions import InvalidStateError, ValidationError
from notifier.domain.models import (
    Batch,
    BatchSpec,
    DeadLetterEntry,
    Job,
    JobMetadata,
    JobSpec,
    JobStatus,
    JobStatusUpdate,
)
from notifier.domain.state import check_retry, check_transition
from notifier.logging import get_logger
from notifier.persistence import (
    BatchRepository,
    Database,
    DeadLetterRepository,
    JobRepository,
    RecordNotFoundError,
)
from notifier.utils.timestamps import utc_now

from .aggregator import recompute_batch
from .models import BulkUpdateResult, UpdateOutcome

logger = get_logger(__name__, component="job_store")

DEFAULT_FAILURE_REASON = "Unknown error after retries exhausted"


class JobStore:
    """Durable persistence for jobs, batches, and dead-letter entries."""

    def __init__(self, database: Database, clock: Callable[[], datetime] = utc_now):
        self.database = database
        self.clock = clock

    # ------------------------------------------------------------------
    # Creation
    # ------------------------------------------------------------------

    def create_batch(self, spec: BatchSpec) -> Batch:
        """Persist a batch together with all of its jobs.

        Returns:
            The created batch (status ``pending``, ``total`` = number of jobs)
        """
        now = self.clock()
        batch_id = str(uuid.uuid4())

        with self.database.session() as session:
            batches = BatchRepository(session)
            jobs = JobRepository(session)

            batches.add(
                Batch(
                    batch_id=batch_id,
                    session_id=spec.session_id,
                    type=spec.type,
                    created_by=spec.created_by,
                    created_at=now,
                    updated_at=now,
                )
            )
            for position, job_spec in enumerate(spec.jobs):
                jobs.add(self._new_job(batch_id, job_spec, now), position)

            batch = recompute_batch(session, batch_id, now)

        logger.info(
            f"Created batch {batch_id} with {batch.total} jobs",
            extra={
                "event": "store.batch.created",
                "batch_id": batch_id,
                "session_id": spec.session_id,
                "job_count": batch.total,
                "created_by": spec.created_by,
            },
        )
        return batch

    def create_job(self, batch_id: str, spec: JobSpec) -> Job:
        """Append one job to an existing batch.

        Raises:
            RecordNotFoundError: If the batch does not exist
            ValidationError: If the job belongs to a different event than the batch
        """
        now = self.clock()

        with self.database.session() as session:
            batch = BatchRepository(session).get(batch_id, for_update=True)
            if batch is None:
                raise RecordNotFoundError(f"Batch {batch_id} not found")
            if batch.session_id != spec.session_id:
                raise ValidationError(
                    f"Job for session {spec.session_id} cannot join batch of session {batch.session_id}"
                )

            jobs = JobRepository(session)
            job = jobs.add(self._new_job(batch_id, spec, now), jobs.next_position(batch_id))
            recompute_batch(session, batch_id, now)

        logger.info(
            f"Added job {job.id} to batch {batch_id}",
            extra={"event": "store.job.created", "batch_id": batch_id, "job_id": job.id},
        )
        return job

    def _new_job(self, batch_id: str, spec: JobSpec, now: datetime) -> Job:
        return Job(
            id=str(uuid.uuid4()),
            batch_id=batch_id,
            session_id=spec.session_id,
            type=spec.type,
            recipient_email=spec.recipient_email,
            recipient_name=spec.recipient_name,
            role=spec.role,
            scheduled_for=spec.scheduled_for,
            status=JobStatus.PENDING,
            attempts=0,
            created_at=now,
            updated_at=now,
            context=spec.context,
        )

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_job(self, job_id: str) -> Optional[Job]:
        with self.database.session() as session:
            return JobRepository(session).get(job_id)

    def get_batch(self, batch_id: str) -> Optional[Batch]:
        with self.database.session() as session:
            return BatchRepository(session).get(batch_id)

    def get_batch_jobs(self, batch_id: str) -> List[Job]:
        with self.database.session() as session:
            return JobRepository(session).list_for_batch(batch_id)

    def list_batches_for_session(self, session_id: str) -> List[Batch]:
        with self.database.session() as session:
            return BatchRepository(session).list_for_session(session_id)

    def list_batches_for_user(self, user_id: str, active_only: bool = False) -> List[Batch]:
        with self.database.session() as session:
            return BatchRepository(session).list_for_user(user_id, active_only=active_only)

    def list_active_batches(self) -> List[Batch]:
        with self.database.session() as session:
            return BatchRepository(session).list_active()

    def list_jobs_for_session(self, session_id: str) -> List[Job]:
        with self.database.session() as session:
            return JobRepository(session).list_for_session(session_id)

    def list_dead_letters(self, limit: int = 100) -> List[DeadLetterEntry]:
        """Newest-first slice of the dead-letter list."""
        if limit < 1:
            raise ValidationError("limit must be at least 1")
        with self.database.session() as session:
            return DeadLetterRepository(session).list_recent(limit)

    def count_dead_letters(self) -> int:
        with self.database.session() as session:
            return DeadLetterRepository(session).count()

    def find_orphaned_jobs(self, older_than: datetime) -> List[Job]:
        """Pending jobs never published and untouched since ``older_than``."""
        with self.database.session() as session:
            return JobRepository(session).find_orphaned(older_than)

    # ------------------------------------------------------------------
    # Status updates
    # ------------------------------------------------------------------

    def update_job_status(
        self,
        job_id: str,
        status: JobStatus,
        metadata: Optional[JobMetadata] = None,
    ) -> Job:
        """Move one job to ``status``, merging ``metadata`` into its metadata.

        Re-applying the current status is a no-op.

        Raises:
            RecordNotFoundError: If the job does not exist
            InvalidStateError: If the transition is not allowed
        """
        now = self.clock()
        with self.database.session() as session:
            job = JobRepository(session).get_required(job_id)
            outcome, job = self._apply(session, job, status, metadata, now)
            if outcome == UpdateOutcome.APPLIED:
                recompute_batch(session, job.batch_id, now)
        return job

    def update_batch_job_statuses(self, updates: Sequence[JobStatusUpdate]) -> BulkUpdateResult:
        """Apply many per-job status changes in one transaction.

        Missing jobs and refused transitions are logged and skipped; each
        affected batch is recomputed once after all changes.
        """
        result = BulkUpdateResult()
        if not updates:
            return result

        now = self.clock()
        with self.database.session() as session:
            jobs_repo = JobRepository(session)
            jobs: Dict[str, Job] = {
                job.id: job for job in jobs_repo.get_many(u.job_id for u in updates)
            }
            touched: List[str] = []

            for update in updates:
                job = jobs.get(update.job_id)
                if job is None:
                    result.record(update.job_id, UpdateOutcome.MISSING)
                    logger.warning(
                        f"Status update for unknown job {update.job_id}",
                        extra={"event": "store.job.missing", "job_id": update.job_id},
                    )
                    continue

                if _is_stale(job, update):
                    result.record(job.id, UpdateOutcome.STALE)
                    logger.warning(
                        f"Skipped status update for job {job.id} from superseded message "
                        f"{update.source_message_id}",
                        extra={
                            "event": "store.job.stale_update",
                            "job_id": job.id,
                            "batch_id": job.batch_id,
                            "source_message_id": update.source_message_id,
                            "current_message_id": job.metadata.external_message_id,
                            "requested_status": update.status.value,
                        },
                    )
                    continue

                try:
                    outcome, job = self._apply(session, job, update.status, update.metadata, now)
                except InvalidStateError as e:
                    result.record(update.job_id, UpdateOutcome.REJECTED)
                    logger.warning(
                        f"Skipped status update for job {job.id}: {e}",
                        extra={
                            "event": "store.job.transition_rejected",
                            "job_id": job.id,
                            "batch_id": job.batch_id,
                            "current_status": job.status.value,
                            "requested_status": update.status.value,
                        },
                    )
                    continue

                jobs[job.id] = job
                result.record(job.id, outcome)
                if outcome == UpdateOutcome.APPLIED:
                    if job.status == JobStatus.FAILED:
                        result.dead_lettered.append(job.id)
                    if job.batch_id not in touched:
                        touched.append(job.batch_id)

            for batch_id in touched:
                recompute_batch(session, batch_id, now)
            result.batch_ids = touched

        logger.info(
            f"Bulk status update: {len(result.applied)} applied, "
            f"{len(result.unchanged)} unchanged, {len(result.rejected)} rejected, "
            f"{len(result.missing)} missing, {len(result.stale)} stale",
            extra={"event": "store.jobs.bulk_updated", **result.as_dict()},
        )
        return result

    def _apply(
        self,
        session: Session,
        job: Job,
        status: JobStatus,
        metadata: Optional[JobMetadata],
        now: datetime,
    ):
        """Apply one transition inside ``session``; returns (outcome, job)."""
        if not check_transition(job.status, status):
            return UpdateOutcome.UNCHANGED, job

        updated = job.model_copy(
            update={
                "status": status,
                "metadata": job.metadata.merged(metadata),
                "updated_at": now,
            }
        )
        updated = JobRepository(session).save(updated)

        if status == JobStatus.FAILED:
            self._dead_letter(session, updated, updated.metadata.last_error, now)

        return UpdateOutcome.APPLIED, updated

    # ------------------------------------------------------------------
    # Retry, dead letters, deletion
    # ------------------------------------------------------------------

    def retry_job(self, job_id: str) -> Job:
        """Reset a failed job to ``pending`` under the same id.

        Increments ``attempts`` and clears the previous error and message id.

        Raises:
            RecordNotFoundError: If the job does not exist
            InvalidStateError: If the job is not ``failed``
        """
        now = self.clock()
        with self.database.session() as session:
            jobs = JobRepository(session)
            job = jobs.get_required(job_id)
            check_retry(job.status)

            job = jobs.save(
                job.model_copy(
                    update={
                        "status": JobStatus.PENDING,
                        "attempts": job.attempts + 1,
                        "metadata": JobMetadata(provider_message_id=job.metadata.provider_message_id),
                        "updated_at": now,
                    }
                )
            )
            recompute_batch(session, job.batch_id, now)

        logger.info(
            f"Job {job_id} reset for retry {job.attempts}",
            extra={
                "event": "store.job.retry_reset",
                "job_id": job_id,
                "batch_id": job.batch_id,
                "attempts": job.attempts,
            },
        )
        return job

    def add_to_dead_letter_queue(self, job: Job, error: str) -> DeadLetterEntry:
        """Append a dead-letter entry for ``job`` without touching its status."""
        with self.database.session() as session:
            return self._dead_letter(session, job, error, self.clock())

    def _dead_letter(
        self, session: Session, job: Job, error: Optional[str], now: datetime
    ) -> DeadLetterEntry:
        entry = DeadLetterRepository(session).append(
            DeadLetterEntry(job=job, error=error or DEFAULT_FAILURE_REASON, recorded_at=now)
        )
        logger.info(
            f"Dead-lettered job {job.id}",
            extra={
                "event": "store.dead_letter.recorded",
                "job_id": job.id,
                "batch_id": job.batch_id,
                "error": entry.error,
            },
        )
        return entry

    def delete_batch(self, batch_id: str) -> bool:
        """Delete a batch and all of its jobs.

        Returns:
            True if the batch existed
        """
        with self.database.session() as session:
            deleted_jobs = BatchRepository(session).delete(batch_id)

        if deleted_jobs < 0:
            return False

        logger.info(
            f"Deleted batch {batch_id} with {deleted_jobs} jobs",
            extra={"event": "store.batch.deleted", "batch_id": batch_id, "job_count": deleted_jobs},
        )
        return True


def _is_stale(job: Job, update: JobStatusUpdate) -> bool:
    """True if ``update`` was reported for a message other than the job's current one."""
    current = job.metadata.external_message_id
    return bool(update.source_message_id and current and update.source_message_id != current)
