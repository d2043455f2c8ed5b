"""Repair jobs: batch recalculation and the orphaned-job sweep."""

from datetime import timedelta

from notifier.jobs import BatchProgressAggregator, RecalculationResult
from notifier.logging import get_logger
from notifier.scheduling import NotificationScheduler, ReconcileResult

logger = get_logger(__name__, component="maintenance")


class MaintenanceTasks:
    """The two periodic repairs, callable on demand or from the runner.

    Attributes:
        orphan_grace: Minimum age of an unpublished pending job before the
            sweep publishes it again
    """

    def __init__(
        self,
        aggregator: BatchProgressAggregator,
        scheduler: NotificationScheduler,
        orphan_grace: timedelta,
    ):
        self.aggregator = aggregator
        self.scheduler = scheduler
        self.orphan_grace = orphan_grace

    def recalculate(self) -> RecalculationResult:
        """Recompute every active batch from its jobs."""
        result = self.aggregator.recalculate_active()
        logger.info(
            f"Recalculated {result.checked} active batches, {len(result.changed)} corrected",
            extra={"event": "maintenance.recalculate.completed", **result.as_dict()},
        )
        return result

    def reconcile(self) -> ReconcileResult:
        """Publish pending jobs left without a queue message."""
        result = self.scheduler.reconcile_orphans(self.orphan_grace)
        logger.info(
            f"Reconciliation found {result.found} orphaned jobs",
            extra={"event": "maintenance.reconcile.completed", **result.as_dict()},
        )
        return result
