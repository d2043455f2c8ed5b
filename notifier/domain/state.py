"""Job status state machine.

Forward moves along ``pending -> scheduled -> in_progress -> terminal`` are
allowed, including skipping intermediate steps, because callbacks can arrive
before the scheduler has recorded the publish. Re-applying the current status
is a no-op. Anything else is rejected; the only ways out of a terminal status
are an explicit retry (``failed -> pending``) or a resend, which creates a new
job instead of touching the completed one.
"""

from .exceptions import InvalidStateError
from .models import JobStatus

_RANK = {
    JobStatus.PENDING: 0,
    JobStatus.SCHEDULED: 1,
    JobStatus.IN_PROGRESS: 2,
    JobStatus.COMPLETED: 3,
    JobStatus.FAILED: 3,
}


def check_transition(current: JobStatus, target: JobStatus) -> bool:
    """Validate a status transition.

    Args:
        current: Status the job is in now
        target: Requested status

    Returns:
        True if the job must change, False if the request is an idempotent repeat

    Raises:
        InvalidStateError: If the transition would regress or cross terminal states
    """
    if current == target:
        return False
    if current.is_terminal or _RANK[target] <= _RANK[current]:
        raise InvalidStateError(
            f"Cannot transition job from {current.value} to {target.value}"
        )
    return True


def check_retry(current: JobStatus) -> None:
    """Raise InvalidStateError unless a job in ``current`` may be retried."""
    if current != JobStatus.FAILED:
        raise InvalidStateError(
            f"Can only retry failed jobs. Current status: {current.value}"
        )


def check_resend(current: JobStatus) -> None:
    """Raise InvalidStateError unless a job in ``current`` may be resent."""
    if current != JobStatus.COMPLETED:
        raise InvalidStateError(
            f"Can only resend completed jobs. Current status: {current.value}"
        )
