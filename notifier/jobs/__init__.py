"""Job Store facade and batch progress aggregation."""

from .aggregator import BatchProgressAggregator, derive_batch_status, recompute_batch
from .models import BulkUpdateResult, RecalculationResult, UpdateOutcome
from .store import DEFAULT_FAILURE_REASON, JobStore

__all__ = [
    "JobStore",
    "BatchProgressAggregator",
    "derive_batch_status",
    "recompute_batch",
    "BulkUpdateResult",
    "RecalculationResult",
    "UpdateOutcome",
    "DEFAULT_FAILURE_REASON",
]
