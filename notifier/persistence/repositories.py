"""Data access layer (repositories) for persistence operations.

This module provides repository classes for jobs, batches, and dead-letter
entries. Repositories encapsulate database operations and return domain models
rather than ORM models. They never open or commit transactions themselves; the
caller owns the session.
"""

import logging
from datetime import datetime
from typing import Dict, Iterable, List, Optional

from sqlalchemy import delete, func, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from notifier.domain.models import (
    ACTIVE_BATCH_STATUSES,
    Batch,
    BatchStatus,
    DeadLetterEntry,
    Job,
    JobStatus,
)

from .exceptions import DataIntegrityError, PersistenceError, RecordNotFoundError
from .schema import BatchModel, DeadLetterModel, JobModel, _format_datetime

logger = logging.getLogger(__name__)


class JobRepository:
    """Repository for job-related database operations."""

    def __init__(self, session: Session):
        """Initialize repository with database session.

        Args:
            session: SQLAlchemy session for database operations
        """
        self.session = session

    def get(self, job_id: str) -> Optional[Job]:
        """Retrieve job by primary key.

        Args:
            job_id: Job identifier

        Returns:
            Job domain model if found, None otherwise

        Raises:
            PersistenceError: If database error occurs
        """
        try:
            job_model = self.session.get(JobModel, job_id)
            return job_model.to_domain() if job_model is not None else None

        except SQLAlchemyError as e:
            logger.error(f"Error retrieving job {job_id}: {e}", exc_info=True)
            raise PersistenceError(f"Failed to retrieve job: {e}") from e

    def get_required(self, job_id: str) -> Job:
        """Retrieve job by primary key, raising if it does not exist.

        Raises:
            RecordNotFoundError: If job_id doesn't exist
            PersistenceError: If database error occurs
        """
        job = self.get(job_id)
        if job is None:
            raise RecordNotFoundError(f"Job {job_id} not found")
        return job

    def get_many(self, job_ids: Iterable[str]) -> List[Job]:
        """Retrieve every existing job among ``job_ids`` (unknown ids are skipped)."""
        ids = list(dict.fromkeys(job_ids))
        if not ids:
            return []
        try:
            stmt = select(JobModel).where(JobModel.id.in_(ids))
            by_id = {m.id: m.to_domain() for m in self.session.execute(stmt).scalars()}
            return [by_id[job_id] for job_id in ids if job_id in by_id]

        except SQLAlchemyError as e:
            logger.error(f"Error retrieving {len(ids)} jobs: {e}", exc_info=True)
            raise PersistenceError(f"Failed to retrieve jobs: {e}") from e

    def list_for_batch(self, batch_id: str) -> List[Job]:
        """Query all jobs of a batch in creation order."""
        try:
            stmt = (
                select(JobModel)
                .where(JobModel.batch_id == batch_id)
                .order_by(JobModel.position.asc())
            )
            return [m.to_domain() for m in self.session.execute(stmt).scalars()]

        except SQLAlchemyError as e:
            logger.error(f"Error retrieving jobs for batch {batch_id}: {e}", exc_info=True)
            raise PersistenceError(f"Failed to retrieve jobs: {e}") from e

    def list_for_session(self, session_id: str) -> List[Job]:
        """Query all jobs created for an event, newest batch first."""
        try:
            stmt = (
                select(JobModel)
                .where(JobModel.session_id == session_id)
                .order_by(JobModel.created_at.desc(), JobModel.position.asc())
            )
            return [m.to_domain() for m in self.session.execute(stmt).scalars()]

        except SQLAlchemyError as e:
            logger.error(f"Error retrieving jobs for session {session_id}: {e}", exc_info=True)
            raise PersistenceError(f"Failed to retrieve jobs: {e}") from e

    def statuses_for_batch(self, batch_id: str) -> List[JobStatus]:
        """Return only the status column of every job in a batch."""
        try:
            stmt = select(JobModel.status).where(JobModel.batch_id == batch_id)
            return [JobStatus(value) for value in self.session.execute(stmt).scalars()]

        except SQLAlchemyError as e:
            logger.error(f"Error reading job statuses for batch {batch_id}: {e}", exc_info=True)
            raise PersistenceError(f"Failed to read job statuses: {e}") from e

    def find_orphaned(self, cutoff: datetime) -> List[Job]:
        """Find pending jobs that were never published.

        Args:
            cutoff: Jobs last updated before this are considered abandoned

        Returns:
            List of Job domain models (ordered by scheduled_for ASC)
        """
        try:
            stmt = (
                select(JobModel)
                .where(
                    JobModel.status == JobStatus.PENDING.value,
                    JobModel.external_message_id.is_(None),
                    JobModel.updated_at < _format_datetime(cutoff),
                )
                .order_by(JobModel.scheduled_for.asc(), JobModel.position.asc())
            )
            return [m.to_domain() for m in self.session.execute(stmt).scalars()]

        except SQLAlchemyError as e:
            logger.error(f"Error retrieving orphaned jobs: {e}", exc_info=True)
            raise PersistenceError(f"Failed to retrieve orphaned jobs: {e}") from e

    def next_position(self, batch_id: str) -> int:
        """Position to give the next job appended to a batch."""
        stmt = select(func.max(JobModel.position)).where(JobModel.batch_id == batch_id)
        current = self.session.execute(stmt).scalar_one_or_none()
        return 0 if current is None else current + 1

    def add(self, job: Job, position: int) -> Job:
        """Insert a new job.

        Raises:
            DataIntegrityError: If the id already exists or the batch does not
            PersistenceError: If database error occurs
        """
        try:
            job_model = JobModel.from_domain(job, position=position)
            self.session.add(job_model)
            self.session.flush()
            return job_model.to_domain()

        except IntegrityError as e:
            logger.error(f"Integrity error inserting job {job.id}: {e}", exc_info=True)
            raise DataIntegrityError(f"Failed to insert job due to constraint violation: {e}") from e
        except SQLAlchemyError as e:
            logger.error(f"Error inserting job {job.id}: {e}", exc_info=True)
            raise PersistenceError(f"Failed to insert job: {e}") from e

    def save(self, job: Job) -> Job:
        """Write the mutable fields (status, attempts, metadata, updated_at) of a job.

        Raises:
            RecordNotFoundError: If the job doesn't exist
            PersistenceError: If database error occurs
        """
        try:
            existing = self.session.get(JobModel, job.id)
            if existing is None:
                raise RecordNotFoundError(f"Job {job.id} not found")

            existing.status = job.status.value
            existing.attempts = job.attempts
            existing.scheduled_for = _format_datetime(job.scheduled_for)
            existing.updated_at = _format_datetime(job.updated_at)
            existing.apply_metadata(job.metadata)

            self.session.flush()
            return existing.to_domain()

        except RecordNotFoundError:
            raise
        except SQLAlchemyError as e:
            logger.error(f"Error saving job {job.id}: {e}", exc_info=True)
            raise PersistenceError(f"Failed to save job: {e}") from e


class BatchRepository:
    """Repository for batch-related database operations."""

    def __init__(self, session: Session):
        """Initialize repository with database session.

        Args:
            session: SQLAlchemy session for database operations
        """
        self.session = session

    def get(self, batch_id: str, for_update: bool = False) -> Optional[Batch]:
        """Retrieve batch by primary key.

        Args:
            batch_id: Batch identifier
            for_update: Lock the row for the rest of the transaction

        Returns:
            Batch domain model if found, None otherwise
        """
        try:
            stmt = select(BatchModel).where(BatchModel.batch_id == batch_id)
            if for_update:
                stmt = stmt.with_for_update()
            batch_model = self.session.execute(stmt).scalar_one_or_none()
            if batch_model is None:
                return None
            return batch_model.to_domain(self._job_ids([batch_id])[batch_id])

        except SQLAlchemyError as e:
            logger.error(f"Error retrieving batch {batch_id}: {e}", exc_info=True)
            raise PersistenceError(f"Failed to retrieve batch: {e}") from e

    def list_for_session(self, session_id: str) -> List[Batch]:
        """Query all batches for an event (newest first)."""
        return self._list(BatchModel.session_id == session_id)

    def list_for_user(self, user_id: str, active_only: bool = False) -> List[Batch]:
        """Query all batches a user created (newest first)."""
        criteria = [BatchModel.created_by == user_id]
        if active_only:
            criteria.append(BatchModel.status.in_([s.value for s in ACTIVE_BATCH_STATUSES]))
        return self._list(*criteria)

    def list_active(self) -> List[Batch]:
        """Query all batches still pending or in progress (newest first)."""
        return self._list(BatchModel.status.in_([s.value for s in ACTIVE_BATCH_STATUSES]))

    def _list(self, *criteria) -> List[Batch]:
        try:
            stmt = select(BatchModel).where(*criteria).order_by(BatchModel.created_at.desc())
            models = self.session.execute(stmt).scalars().all()
            job_ids = self._job_ids([m.batch_id for m in models])
            return [m.to_domain(job_ids[m.batch_id]) for m in models]

        except SQLAlchemyError as e:
            logger.error(f"Error listing batches: {e}", exc_info=True)
            raise PersistenceError(f"Failed to list batches: {e}") from e

    def _job_ids(self, batch_ids: List[str]) -> Dict[str, List[str]]:
        """Ordered job ids per batch, read fresh from the jobs table."""
        result: Dict[str, List[str]] = {batch_id: [] for batch_id in batch_ids}
        if not batch_ids:
            return result
        stmt = (
            select(JobModel.batch_id, JobModel.id)
            .where(JobModel.batch_id.in_(batch_ids))
            .order_by(JobModel.batch_id, JobModel.position.asc())
        )
        for batch_id, job_id in self.session.execute(stmt):
            result[batch_id].append(job_id)
        return result

    def add(self, batch: Batch) -> None:
        """Insert a new batch row (jobs are inserted separately).

        Raises:
            DataIntegrityError: If the batch id already exists
            PersistenceError: If database error occurs
        """
        try:
            self.session.add(
                BatchModel(
                    batch_id=batch.batch_id,
                    session_id=batch.session_id,
                    type=batch.type,
                    created_by=batch.created_by,
                    total=batch.total,
                    completed=batch.completed,
                    failed=batch.failed,
                    status=batch.status.value,
                    created_at=_format_datetime(batch.created_at),
                    updated_at=_format_datetime(batch.updated_at),
                )
            )
            self.session.flush()

        except IntegrityError as e:
            logger.error(f"Integrity error inserting batch {batch.batch_id}: {e}", exc_info=True)
            raise DataIntegrityError(f"Failed to insert batch due to constraint violation: {e}") from e
        except SQLAlchemyError as e:
            logger.error(f"Error inserting batch {batch.batch_id}: {e}", exc_info=True)
            raise PersistenceError(f"Failed to insert batch: {e}") from e

    def update_progress(
        self,
        batch_id: str,
        total: int,
        completed: int,
        failed: int,
        status: BatchStatus,
        updated_at: datetime,
    ) -> None:
        """Overwrite the aggregate fields of a batch.

        Raises:
            RecordNotFoundError: If batch_id doesn't exist
            PersistenceError: If database error occurs
        """
        try:
            stmt = (
                update(BatchModel)
                .where(BatchModel.batch_id == batch_id)
                .values(
                    total=total,
                    completed=completed,
                    failed=failed,
                    status=status.value,
                    updated_at=_format_datetime(updated_at),
                )
                .execution_options(synchronize_session="fetch")
            )
            result = self.session.execute(stmt)
            self.session.flush()

            if result.rowcount == 0:
                raise RecordNotFoundError(f"Batch {batch_id} not found")

        except RecordNotFoundError:
            raise
        except SQLAlchemyError as e:
            logger.error(f"Error updating progress for batch {batch_id}: {e}", exc_info=True)
            raise PersistenceError(f"Failed to update batch progress: {e}") from e

    def delete(self, batch_id: str) -> int:
        """Delete a batch and all its jobs.

        Returns:
            Number of jobs deleted with the batch, or -1 if the batch did not exist
        """
        try:
            batch_model = self.session.get(BatchModel, batch_id)
            if batch_model is None:
                return -1

            job_count = self.session.execute(
                delete(JobModel).where(JobModel.batch_id == batch_id)
            ).rowcount
            self.session.delete(batch_model)
            self.session.flush()
            return job_count

        except SQLAlchemyError as e:
            logger.error(f"Error deleting batch {batch_id}: {e}", exc_info=True)
            raise PersistenceError(f"Failed to delete batch: {e}") from e


class DeadLetterRepository:
    """Repository for the append-only dead-letter list."""

    def __init__(self, session: Session):
        """Initialize repository with database session.

        Args:
            session: SQLAlchemy session for database operations
        """
        self.session = session

    def append(self, entry: DeadLetterEntry) -> DeadLetterEntry:
        """Insert a dead-letter entry.

        Returns:
            Persisted entry with its assigned id
        """
        try:
            model = DeadLetterModel.from_domain(entry)
            self.session.add(model)
            self.session.flush()
            return model.to_domain()

        except SQLAlchemyError as e:
            logger.error(f"Error recording dead letter for job {entry.job.id}: {e}", exc_info=True)
            raise PersistenceError(f"Failed to record dead letter: {e}") from e

    def list_recent(self, limit: int = 50) -> List[DeadLetterEntry]:
        """Read the newest ``limit`` entries, newest first."""
        try:
            stmt = (
                select(DeadLetterModel)
                .order_by(DeadLetterModel.recorded_at.desc(), DeadLetterModel.id.desc())
                .limit(limit)
            )
            return [m.to_domain() for m in self.session.execute(stmt).scalars()]

        except SQLAlchemyError as e:
            logger.error(f"Error listing dead letters: {e}", exc_info=True)
            raise PersistenceError(f"Failed to list dead letters: {e}") from e

    def list_for_job(self, job_id: str) -> List[DeadLetterEntry]:
        """Every entry recorded for one job, oldest first."""
        try:
            stmt = (
                select(DeadLetterModel)
                .where(DeadLetterModel.job_id == job_id)
                .order_by(DeadLetterModel.id.asc())
            )
            return [m.to_domain() for m in self.session.execute(stmt).scalars()]

        except SQLAlchemyError as e:
            logger.error(f"Error listing dead letters for job {job_id}: {e}", exc_info=True)
            raise PersistenceError(f"Failed to list dead letters: {e}") from e

    def count(self) -> int:
        """Total number of entries."""
        return self.session.execute(select(func.count(DeadLetterModel.id))).scalar_one()
