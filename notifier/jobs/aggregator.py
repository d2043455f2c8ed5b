"""Batch progress aggregation.

A batch's ``total``, ``completed``, ``failed`` and ``status`` are always
derived from its job rows, never incremented, so replayed or reordered
callbacks cannot drift the counts.
"""

from datetime import datetime
from typing import Callable, Iterable, Optional

from sqlalchemy.orm import Session

from notifier.domain.models import Batch, BatchStatus, JobStatus
from notifier.logging import get_logger
from notifier.persistence import (
    BatchRepository,
    Database,
    JobRepository,
    PersistenceError,
    RecordNotFoundError,
)
from notifier.utils.timestamps import utc_now

from .models import RecalculationResult

logger = get_logger(__name__, component="aggregator")


def derive_batch_status(statuses: Iterable[JobStatus]) -> BatchStatus:
    """Roll job statuses up into a batch status.

    - ``completed`` iff every job completed
    - ``failed`` iff every job failed
    - ``partial_failure`` iff every job is terminal, with both outcomes present
    - ``in_progress`` if any job has left ``pending``
    - ``pending`` otherwise (including an empty batch)
    """
    statuses = list(statuses)
    total = len(statuses)
    if total == 0:
        return BatchStatus.PENDING

    completed = sum(1 for s in statuses if s == JobStatus.COMPLETED)
    failed = sum(1 for s in statuses if s == JobStatus.FAILED)

    if completed == total:
        return BatchStatus.COMPLETED
    if failed == total:
        return BatchStatus.FAILED
    if completed + failed == total:
        return BatchStatus.PARTIAL_FAILURE
    if any(s != JobStatus.PENDING for s in statuses):
        return BatchStatus.IN_PROGRESS
    return BatchStatus.PENDING


def recompute_batch(session: Session, batch_id: str, now: datetime) -> Optional[Batch]:
    """Recompute and store one batch's aggregate inside the caller's transaction.

    The batch row is locked first so concurrent writers serialize on it.

    Returns:
        The up-to-date batch, or None if it does not exist
    """
    batches = BatchRepository(session)
    batch = batches.get(batch_id, for_update=True)
    if batch is None:
        return None

    statuses = JobRepository(session).statuses_for_batch(batch_id)
    total = len(statuses)
    completed = sum(1 for s in statuses if s == JobStatus.COMPLETED)
    failed = sum(1 for s in statuses if s == JobStatus.FAILED)
    status = derive_batch_status(statuses)

    if (batch.total, batch.completed, batch.failed, batch.status) == (
        total,
        completed,
        failed,
        status,
    ):
        return batch

    batches.update_progress(batch_id, total, completed, failed, status, now)

    if status != batch.status:
        logger.info(
            f"Batch {batch_id} is now {status.value}",
            extra={
                "event": "aggregator.batch.status_changed",
                "batch_id": batch_id,
                "previous_status": batch.status.value,
                "status": status.value,
                "total": total,
                "completed": completed,
                "failed": failed,
            },
        )

    return batch.model_copy(
        update={
            "total": total,
            "completed": completed,
            "failed": failed,
            "status": status,
            "updated_at": now,
        }
    )


class BatchProgressAggregator:
    """Recomputes batch roll-ups on demand and as a maintenance sweep."""

    def __init__(self, database: Database, clock: Callable[[], datetime] = utc_now):
        self.database = database
        self.clock = clock

    def recompute(self, batch_id: str) -> Batch:
        """Recompute one batch in its own transaction.

        Raises:
            RecordNotFoundError: If the batch does not exist
        """
        with self.database.session() as session:
            batch = recompute_batch(session, batch_id, self.clock())
        if batch is None:
            raise RecordNotFoundError(f"Batch {batch_id} not found")
        return batch

    def recalculate_active(self) -> RecalculationResult:
        """Recompute every pending or in-progress batch.

        Each batch is recomputed in its own transaction; one failing batch is
        logged and does not stop the sweep.
        """
        result = RecalculationResult()

        with self.database.session() as session:
            active = BatchRepository(session).list_active()

        logger.info(
            f"Recalculating {len(active)} active batches",
            extra={"event": "aggregator.recalculate.started", "batch_count": len(active)},
        )

        for batch in active:
            result.checked += 1
            try:
                updated = self.recompute(batch.batch_id)
            except (PersistenceError, RecordNotFoundError) as e:
                result.errors.append(batch.batch_id)
                logger.error(
                    f"Failed to recalculate batch {batch.batch_id}: {e}",
                    extra={
                        "event": "aggregator.recalculate.batch_failed",
                        "batch_id": batch.batch_id,
                    },
                )
                continue

            if (updated.total, updated.completed, updated.failed, updated.status) != (
                batch.total,
                batch.completed,
                batch.failed,
                batch.status,
            ):
                result.changed.append(batch.batch_id)

        logger.info(
            "Batch recalculation complete",
            extra={"event": "aggregator.recalculate.completed", **result.as_dict()},
        )
        return result
