"""Read-only status queries over the Job Store, plus batch deletion."""

from typing import Any, Dict, List

from notifier.domain.exceptions import NotFoundError
from notifier.jobs import JobStore
from notifier.logging import get_logger

from .views import dead_letter_dict, progress_dict

logger = get_logger(__name__, component="status")

DEFAULT_DEAD_LETTER_LIMIT = 100


class StatusQueryService:
    """Progress views for batches, events, users, and the dead-letter list."""

    def __init__(self, store: JobStore):
        self.store = store

    def batch_progress(self, batch_id: str, details: bool = False) -> Dict[str, Any]:
        """Progress of one batch.

        Raises:
            NotFoundError: If the batch does not exist
        """
        batch = self.store.get_batch(batch_id)
        if batch is None:
            raise NotFoundError(f"Batch {batch_id} not found")
        jobs = self.store.get_batch_jobs(batch_id) if details else None
        return progress_dict(batch, jobs)

    def session_batches(self, session_id: str) -> List[Dict[str, Any]]:
        return [progress_dict(b) for b in self.store.list_batches_for_session(session_id)]

    def user_batches(self, user_id: str, active_only: bool = True) -> List[Dict[str, Any]]:
        return [
            progress_dict(b)
            for b in self.store.list_batches_for_user(user_id, active_only=active_only)
        ]

    def active_batches(self) -> List[Dict[str, Any]]:
        return [progress_dict(b) for b in self.store.list_active_batches()]

    def dead_letters(self, limit: int = DEFAULT_DEAD_LETTER_LIMIT) -> List[Dict[str, Any]]:
        return [dead_letter_dict(e) for e in self.store.list_dead_letters(limit)]

    def delete_batch(self, batch_id: str) -> None:
        """Delete a batch and its jobs.

        Raises:
            NotFoundError: If the batch does not exist
        """
        if not self.store.delete_batch(batch_id):
            raise NotFoundError(f"Batch {batch_id} not found")

    def stats(self) -> Dict[str, int]:
        """Counts shown by the health check."""
        return {
            "activeBatchCount": len(self.store.list_active_batches()),
            "dlqCount": self.store.count_dead_letters(),
        }
