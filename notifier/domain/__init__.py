"""Domain models, state machine, and timing rules for notification jobs."""

from .exceptions import (
    InvalidStateError,
    NotFoundError,
    NotifierError,
    SignatureError,
    UpstreamError,
    ValidationError,
)
from .models import (
    ACTIVE_BATCH_STATUSES,
    Batch,
    BatchSpec,
    BatchStatus,
    DeadLetterEntry,
    DomainEvent,
    EventRecipient,
    Job,
    JobMetadata,
    JobSpec,
    JobStatus,
    JobStatusUpdate,
    NotificationType,
    RecipientRole,
)
from .state import check_resend, check_retry, check_transition
from .timing import RECIPIENT_ROLES, receives, target_send_time

__all__ = [
    # Models
    "Job",
    "JobSpec",
    "JobMetadata",
    "JobStatus",
    "JobStatusUpdate",
    "Batch",
    "BatchSpec",
    "BatchStatus",
    "ACTIVE_BATCH_STATUSES",
    "DeadLetterEntry",
    "DomainEvent",
    "EventRecipient",
    "NotificationType",
    "RecipientRole",
    # State machine
    "check_transition",
    "check_retry",
    "check_resend",
    # Timing
    "target_send_time",
    "receives",
    "RECIPIENT_ROLES",
    # Exceptions
    "NotifierError",
    "ValidationError",
    "NotFoundError",
    "InvalidStateError",
    "SignatureError",
    "UpstreamError",
]
