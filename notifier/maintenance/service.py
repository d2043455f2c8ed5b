"""Background runner for the periodic maintenance tasks."""

import threading
from datetime import datetime, timezone
from typing import Callable, Dict, Optional

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger

from notifier.logging import get_logger

from .tasks import MaintenanceTasks

logger = get_logger(__name__, component="maintenance")

RECALCULATE_JOB_ID = "recalculate-active-batches"
RECONCILE_JOB_ID = "reconcile-orphaned-jobs"


class MaintenanceRunner:
    """
    Runs recalculation and reconciliation on their own intervals.

    Uses BackgroundScheduler so the main thread stays free to handle signals.
    Each task runs at most once at a time and missed runs are coalesced.
    """

    def __init__(
        self,
        tasks: MaintenanceTasks,
        recalculate_interval: int,
        reconcile_interval: int,
        shutdown_event: Optional[threading.Event] = None,
    ):
        """
        Initialize the runner.

        Args:
            tasks: The maintenance tasks to run
            recalculate_interval: Seconds between batch recalculations
            reconcile_interval: Seconds between orphan sweeps
            shutdown_event: Optional event set on shutdown for coordination
        """
        self.tasks = tasks
        self.intervals: Dict[str, int] = {
            RECALCULATE_JOB_ID: recalculate_interval,
            RECONCILE_JOB_ID: reconcile_interval,
        }
        self.shutdown_event = shutdown_event

        self.scheduler = BackgroundScheduler(
            job_defaults={
                "max_instances": 1,
                "coalesce": True,
                "misfire_grace_time": min(self.intervals.values()),
            },
            timezone=timezone.utc,
        )

    def start(self) -> None:
        """Register both tasks and start; each runs once immediately."""
        next_run = datetime.now(timezone.utc)
        jobs = {
            RECALCULATE_JOB_ID: ("Recalculate active batches", self.tasks.recalculate),
            RECONCILE_JOB_ID: ("Reconcile orphaned jobs", self.tasks.reconcile),
        }

        for job_id, (name, func) in jobs.items():
            self.scheduler.add_job(
                func=self._guarded(job_id, func),
                trigger=IntervalTrigger(seconds=self.intervals[job_id], timezone=timezone.utc),
                id=job_id,
                name=name,
                replace_existing=True,
                next_run_time=next_run,
            )

        self.scheduler.start()

        logger.info(
            "Maintenance runner started",
            extra={
                "event": "maintenance.runner.started",
                "recalculate_interval_seconds": self.intervals[RECALCULATE_JOB_ID],
                "reconcile_interval_seconds": self.intervals[RECONCILE_JOB_ID],
                "next_run_time": next_run.isoformat(),
            },
        )

    def shutdown(self, wait: bool = False) -> None:
        """
        Stop the runner.

        Args:
            wait: If True, wait for running tasks to complete before returning
        """
        logger.info(
            "Shutting down maintenance runner",
            extra={"event": "maintenance.runner.stopping", "wait_for_jobs": wait},
        )

        if self.scheduler.running:
            self.scheduler.shutdown(wait=wait)

        if self.shutdown_event:
            self.shutdown_event.set()

        logger.info("Maintenance runner stopped", extra={"event": "maintenance.runner.stopped"})

    def is_running(self) -> bool:
        return self.scheduler.running

    def get_next_run_time(self, job_id: str) -> Optional[datetime]:
        job = self.scheduler.get_job(job_id)
        return job.next_run_time if job else None

    @staticmethod
    def _guarded(job_id: str, func: Callable[[], object]) -> Callable[[], None]:
        """Wrap a task so a failing run is logged and the next run still happens."""

        def run() -> None:
            try:
                func()
            except Exception as e:
                logger.error(
                    f"Maintenance task {job_id} failed: {e}",
                    exc_info=True,
                    extra={"event": "maintenance.task.failed", "task": job_id},
                )

        return run
