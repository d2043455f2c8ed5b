"""Core domain models for notification jobs, batches, and dead-letter entries.

This module defines the data structures used throughout the engine:
- Job: one individually addressed, scheduled notification delivery
- Batch: the jobs created together for one triggering domain event
- DeadLetterEntry: immutable snapshot of a job that exhausted delivery
- DomainEvent: the external event record that notifications are derived from
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator


def _to_utc(v: Optional[datetime]) -> Optional[datetime]:
    if v is None:
        return None
    if v.tzinfo is None:
        return v.replace(tzinfo=timezone.utc)
    return v.astimezone(timezone.utc)


class JobStatus(str, Enum):
    """Lifecycle status of a single job."""

    PENDING = "pending"
    SCHEDULED = "scheduled"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.COMPLETED, JobStatus.FAILED)


class BatchStatus(str, Enum):
    """Roll-up status of a batch, derived from its jobs."""

    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    PARTIAL_FAILURE = "partial_failure"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (BatchStatus.COMPLETED, BatchStatus.PARTIAL_FAILURE, BatchStatus.FAILED)


ACTIVE_BATCH_STATUSES = (BatchStatus.PENDING, BatchStatus.IN_PROGRESS)


class NotificationType(str, Enum):
    """Kinds of time-triggered notifications derived from an event."""

    PREP_48H = "prep-48h"
    PREP_24H = "prep-24h"
    IMMEDIATE_FEEDBACK = "immediate-feedback"
    FOLLOWUP_24H = "followup-24h"


class RecipientRole(str, Enum):
    """Role of a recipient within the triggering event."""

    STUDENT = "student"
    MENTOR = "mentor"


class JobMetadata(BaseModel):
    """Delivery bookkeeping attached to a job.

    ``external_message_id`` is the queue message that will deliver the job,
    ``provider_message_id`` the email provider's id once sent,
    ``last_error`` the most recent failure reason and ``delivery_attempts``
    how many times the queue tried the current message.
    """

    external_message_id: Optional[str] = None
    provider_message_id: Optional[str] = None
    last_error: Optional[str] = None
    delivery_attempts: Optional[int] = Field(None, ge=1)

    def merged(self, patch: Optional["JobMetadata"]) -> "JobMetadata":
        """Return a copy with every non-None field of ``patch`` applied."""
        if patch is None:
            return self.model_copy()
        updates = patch.model_dump(exclude_none=True)
        return self.model_copy(update=updates)


class JobSpec(BaseModel):
    """A job to be created; identifiers and status are assigned by the store."""

    session_id: str = Field(..., min_length=1)
    type: NotificationType
    recipient_email: EmailStr
    recipient_name: str = "there"
    role: RecipientRole = RecipientRole.STUDENT
    scheduled_for: datetime
    context: Dict[str, Any] = Field(default_factory=dict)

    @field_validator("scheduled_for")
    @classmethod
    def ensure_utc(cls, v: datetime) -> datetime:
        """Ensure datetime is timezone-aware and in UTC."""
        return _to_utc(v)


class Job(BaseModel):
    """One trackable, individually addressed scheduled notification delivery.

    ``attempts`` counts manual retries of the job. Queue-side delivery
    attempts of the current message are in ``metadata.delivery_attempts``.
    """

    id: str = Field(..., description="Job identifier (UUID)")
    batch_id: str = Field(..., description="Parent batch identifier")
    session_id: str = Field(..., description="Correlation key into the external domain")
    type: NotificationType
    recipient_email: EmailStr
    recipient_name: str
    role: RecipientRole = RecipientRole.STUDENT
    scheduled_for: datetime
    status: JobStatus = JobStatus.PENDING
    attempts: int = Field(0, ge=0)
    created_at: datetime
    updated_at: datetime
    metadata: JobMetadata = Field(default_factory=JobMetadata)
    context: Dict[str, Any] = Field(default_factory=dict)

    @field_validator("scheduled_for", "created_at", "updated_at")
    @classmethod
    def ensure_utc(cls, v: datetime) -> datetime:
        """Ensure datetime is timezone-aware and in UTC."""
        return _to_utc(v)

    model_config = {"json_schema_extra": {"example": {
        "id": "0b6f6f1c-4c35-4f61-a1d5-1c1a8f3c9b27",
        "batch_id": "5d2bd1a4-0a44-4c2b-9b8e-5b8f0e4f9d11",
        "session_id": "rec8Hx2kQ",
        "type": "prep-24h",
        "recipient_email": "ada@example.com",
        "recipient_name": "Ada",
        "role": "student",
        "scheduled_for": "2026-11-03T17:00:00Z",
        "status": "scheduled",
        "attempts": 0,
        "created_at": "2026-11-01T09:00:00Z",
        "updated_at": "2026-11-01T09:00:01Z",
        "metadata": {"external_message_id": "msg_2b3c"},
    }}}


class Batch(BaseModel):
    """Group of jobs created together for one triggering event.

    ``status``, ``completed`` and ``failed`` are owned by the aggregator and
    always recomputed from the jobs, never incremented.
    """

    batch_id: str
    session_id: str
    type: str = Field(..., description="Event type label, e.g. 'Office Hours'")
    created_by: Optional[str] = None
    total: int = Field(0, ge=0)
    completed: int = Field(0, ge=0)
    failed: int = Field(0, ge=0)
    status: BatchStatus = BatchStatus.PENDING
    job_ids: List[str] = Field(default_factory=list)
    created_at: datetime
    updated_at: datetime

    @field_validator("created_at", "updated_at")
    @classmethod
    def ensure_utc(cls, v: datetime) -> datetime:
        """Ensure datetime is timezone-aware and in UTC."""
        return _to_utc(v)

    @property
    def is_active(self) -> bool:
        return self.status in ACTIVE_BATCH_STATUSES


class BatchSpec(BaseModel):
    """A batch to be created together with its jobs."""

    session_id: str = Field(..., min_length=1)
    type: str = "Session"
    created_by: Optional[str] = None
    jobs: List[JobSpec] = Field(..., min_length=1)


class JobStatusUpdate(BaseModel):
    """One per-job change inside a bulk status update.

    ``source_message_id`` names the queue message the change was reported
    for. When the job has since been republished under another message id
    the update is skipped as stale.
    """

    job_id: str
    status: JobStatus
    metadata: Optional[JobMetadata] = None
    source_message_id: Optional[str] = None


class DeadLetterEntry(BaseModel):
    """Immutable record of a job that exhausted its delivery attempts."""

    model_config = ConfigDict(frozen=True)

    id: Optional[int] = None
    job: Job
    error: str
    recorded_at: datetime
    reviewed: bool = False


class EventRecipient(BaseModel):
    """Recipient of an event, in the order the domain store lists them."""

    email: EmailStr
    name: Optional[str] = None
    role: RecipientRole = RecipientRole.STUDENT


class DomainEvent(BaseModel):
    """External event record with a known future start time."""

    id: str = Field(..., min_length=1)
    type: str = "Session"
    start_time: Optional[datetime] = None
    duration_minutes: Optional[int] = Field(None, gt=0)
    recipients: List[EventRecipient] = Field(default_factory=list)
    context: Dict[str, Any] = Field(default_factory=dict)

    @field_validator("start_time")
    @classmethod
    def ensure_utc(cls, v: Optional[datetime]) -> Optional[datetime]:
        """Ensure datetime is timezone-aware and in UTC."""
        return _to_utc(v)
