"""Database schema definition and ORM models.

This module defines SQLAlchemy ORM models for the database schema and provides
conversion methods between ORM models and domain models.
"""

import logging
from datetime import datetime, timezone
from typing import List, Optional

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
)
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base

from notifier.domain.models import (
    Batch,
    BatchStatus,
    DeadLetterEntry,
    Job,
    JobMetadata,
    JobStatus,
    NotificationType,
    RecipientRole,
)

logger = logging.getLogger(__name__)

# Create base class for ORM models
Base = declarative_base()


class BatchModel(Base):
    """ORM model for batches table.

    Counts and status are written only by the aggregator.
    """

    __tablename__ = "batches"

    batch_id = Column(String(36), primary_key=True, nullable=False)
    session_id = Column(String(255), nullable=False)
    type = Column(String(100), nullable=False)
    created_by = Column(String(255), nullable=True)

    total = Column(Integer, nullable=False, default=0)
    completed = Column(Integer, nullable=False, default=0)
    failed = Column(Integer, nullable=False, default=0)
    status = Column(String(32), nullable=False, default=BatchStatus.PENDING.value)

    # Timestamps (stored as ISO 8601 strings)
    created_at = Column(String(50), nullable=False)
    updated_at = Column(String(50), nullable=False)

    __table_args__ = (
        Index("idx_batches_session", "session_id"),
        Index("idx_batches_created_by", "created_by"),
        Index("idx_batches_status", "status"),
    )

    def to_domain(self, job_ids: List[str]) -> Batch:
        """Convert ORM model to domain model.

        Args:
            job_ids: Ordered ids of the jobs in this batch

        Returns:
            Batch: Domain model instance
        """
        return Batch(
            batch_id=self.batch_id,
            session_id=self.session_id,
            type=self.type,
            created_by=self.created_by,
            total=self.total,
            completed=self.completed,
            failed=self.failed,
            status=BatchStatus(self.status),
            job_ids=job_ids,
            created_at=_parse_datetime(self.created_at),
            updated_at=_parse_datetime(self.updated_at),
        )


class JobModel(Base):
    """ORM model for jobs table.

    One row per recipient per notification type. ``position`` preserves the
    order jobs were added to their batch.
    """

    __tablename__ = "jobs"

    id = Column(String(36), primary_key=True, nullable=False)
    batch_id = Column(
        String(36),
        ForeignKey("batches.batch_id", ondelete="CASCADE"),
        nullable=False,
    )
    position = Column(Integer, nullable=False, default=0)
    session_id = Column(String(255), nullable=False)
    type = Column(String(50), nullable=False)

    recipient_email = Column(String(320), nullable=False)
    recipient_name = Column(String(255), nullable=False)
    role = Column(String(20), nullable=False, default=RecipientRole.STUDENT.value)

    status = Column(String(32), nullable=False, default=JobStatus.PENDING.value)
    attempts = Column(Integer, nullable=False, default=0)

    # Timestamps (stored as ISO 8601 strings)
    scheduled_for = Column(String(50), nullable=False)
    created_at = Column(String(50), nullable=False)
    updated_at = Column(String(50), nullable=False)

    # Delivery metadata
    external_message_id = Column(String(255), nullable=True)
    provider_message_id = Column(String(255), nullable=True)
    last_error = Column(Text, nullable=True)
    delivery_attempts = Column(Integer, nullable=True)

    context = Column(JSON, nullable=False, default=dict)

    __table_args__ = (
        Index("idx_jobs_batch", "batch_id", "position"),
        Index("idx_jobs_session", "session_id"),
        Index("idx_jobs_status_updated", "status", "updated_at"),
    )

    def to_domain(self) -> Job:
        """Convert ORM model to domain model.

        Returns:
            Job: Domain model instance
        """
        return Job(
            id=self.id,
            batch_id=self.batch_id,
            session_id=self.session_id,
            type=NotificationType(self.type),
            recipient_email=self.recipient_email,
            recipient_name=self.recipient_name,
            role=RecipientRole(self.role),
            scheduled_for=_parse_datetime(self.scheduled_for),
            status=JobStatus(self.status),
            attempts=self.attempts,
            created_at=_parse_datetime(self.created_at),
            updated_at=_parse_datetime(self.updated_at),
            metadata=JobMetadata(
                external_message_id=self.external_message_id,
                provider_message_id=self.provider_message_id,
                last_error=self.last_error,
                delivery_attempts=self.delivery_attempts,
            ),
            context=dict(self.context or {}),
        )

    @classmethod
    def from_domain(cls, job: Job, position: int = 0) -> "JobModel":
        """Create ORM model from domain model.

        Args:
            job: Domain model instance
            position: Index of the job within its batch

        Returns:
            JobModel: ORM model instance
        """
        return cls(
            id=job.id,
            batch_id=job.batch_id,
            position=position,
            session_id=job.session_id,
            type=job.type.value,
            recipient_email=str(job.recipient_email),
            recipient_name=job.recipient_name,
            role=job.role.value,
            status=job.status.value,
            attempts=job.attempts,
            scheduled_for=_format_datetime(job.scheduled_for),
            created_at=_format_datetime(job.created_at),
            updated_at=_format_datetime(job.updated_at),
            external_message_id=job.metadata.external_message_id,
            provider_message_id=job.metadata.provider_message_id,
            last_error=job.metadata.last_error,
            delivery_attempts=job.metadata.delivery_attempts,
            context=dict(job.context),
        )

    def apply_metadata(self, metadata: JobMetadata) -> None:
        """Copy every field of ``metadata`` onto the row."""
        self.external_message_id = metadata.external_message_id
        self.provider_message_id = metadata.provider_message_id
        self.last_error = metadata.last_error
        self.delivery_attempts = metadata.delivery_attempts


class DeadLetterModel(Base):
    """ORM model for dead_letter_jobs table.

    Append-only. Holds a full snapshot of the job so the entry outlives the
    batch it came from.
    """

    __tablename__ = "dead_letter_jobs"

    id = Column(Integer, primary_key=True, autoincrement=True)
    job_id = Column(String(36), nullable=False)
    batch_id = Column(String(36), nullable=False)
    session_id = Column(String(255), nullable=False)
    job_snapshot = Column(JSON, nullable=False)
    error = Column(Text, nullable=False)
    recorded_at = Column(String(50), nullable=False)
    reviewed = Column(Boolean, nullable=False, default=False)

    __table_args__ = (
        Index("idx_dead_letter_recorded", "recorded_at"),
        Index("idx_dead_letter_job", "job_id"),
    )

    def to_domain(self) -> DeadLetterEntry:
        """Convert ORM model to domain model.

        Returns:
            DeadLetterEntry: Domain model instance
        """
        return DeadLetterEntry(
            id=self.id,
            job=Job.model_validate(self.job_snapshot),
            error=self.error,
            recorded_at=_parse_datetime(self.recorded_at),
            reviewed=bool(self.reviewed),
        )

    @classmethod
    def from_domain(cls, entry: DeadLetterEntry) -> "DeadLetterModel":
        """Create ORM model from domain model.

        Args:
            entry: Domain model instance

        Returns:
            DeadLetterModel: ORM model instance
        """
        return cls(
            job_id=entry.job.id,
            batch_id=entry.job.batch_id,
            session_id=entry.job.session_id,
            job_snapshot=entry.job.model_dump(mode="json"),
            error=entry.error,
            recorded_at=_format_datetime(entry.recorded_at),
            reviewed=entry.reviewed,
        )


def _format_datetime(dt: Optional[datetime]) -> Optional[str]:
    """Format datetime as ISO 8601 string for database storage.

    Args:
        dt: Datetime object (must be timezone-aware UTC)

    Returns:
        ISO 8601 formatted string or None
    """
    if dt is None:
        return None

    # Ensure datetime is UTC
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    else:
        dt = dt.astimezone(timezone.utc)

    # Fixed width with explicit Z suffix so string comparison orders correctly
    return dt.strftime("%Y-%m-%dT%H:%M:%S.%fZ")


def _parse_datetime(dt_str: Optional[str]) -> Optional[datetime]:
    """Parse ISO 8601 string to datetime object.

    Args:
        dt_str: ISO 8601 formatted string

    Returns:
        Timezone-aware datetime in UTC or None
    """
    if dt_str is None or dt_str == "":
        return None

    dt_str = dt_str.rstrip("Z")

    try:
        dt = datetime.strptime(dt_str, "%Y-%m-%dT%H:%M:%S.%f")
    except ValueError:
        dt = datetime.strptime(dt_str, "%Y-%m-%dT%H:%M:%S")

    return dt.replace(tzinfo=timezone.utc)


def create_schema(engine: Engine) -> None:
    """Create all tables and indexes if they don't exist (idempotent).

    Args:
        engine: SQLAlchemy engine instance
    """
    logger.info("Creating database schema if not exists")

    try:
        Base.metadata.create_all(engine, checkfirst=True)

        from sqlalchemy import inspect
        inspector = inspect(engine)
        tables = inspector.get_table_names()
        logger.info(f"Database schema ready. Tables: {', '.join(tables)}")

    except Exception as e:
        logger.error(f"Failed to create database schema: {e}", exc_info=True)
        raise
