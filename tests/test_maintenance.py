"""Tests for the maintenance tasks and their background runner."""

import threading
import time
from datetime import timedelta
from unittest.mock import Mock

import pytest

from notifier.config import ConfigurationError
from notifier.domain.models import BatchStatus, JobStatus
from notifier.jobs import RecalculationResult
from notifier.maintenance import RECALCULATE_JOB_ID, RECONCILE_JOB_ID, MaintenanceRunner, MaintenanceTasks
from notifier.persistence import BatchRepository
from notifier.scheduling import ReconcileResult
from tests.helpers import make_event


def _wait_for(predicate, timeout=2.0):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.01)
    return False


class TestMaintenanceTasks:
    def test_recalculate_corrects_drifted_batch(self, services, database):
        result = services.scheduler.schedule_event_notifications(make_event())
        with database.session() as session:
            BatchRepository(session).update_progress(
                result.batch_id, total=7, completed=5, failed=0, status=BatchStatus.IN_PROGRESS,
                updated_at=services.store.clock(),
            )

        report = services.maintenance.recalculate()

        assert report.checked == 1
        assert report.changed == [result.batch_id]
        assert services.store.get_batch(result.batch_id).completed == 0

    def test_reconcile_uses_orphan_grace(self, services, queue_client, clock):
        queue_client.publish_errors.append(ConfigurationError("Queue token is not configured"))
        with pytest.raises(ConfigurationError):
            services.scheduler.schedule_event_notifications(make_event())

        assert services.maintenance.reconcile().found == 0

        clock.advance(minutes=11)
        report = services.maintenance.reconcile()

        assert report.republished == 7
        jobs = services.store.list_jobs_for_session("rec-1")
        assert all(job.status == JobStatus.SCHEDULED for job in jobs)

    def test_delegates_to_collaborators(self):
        aggregator = Mock()
        aggregator.recalculate_active.return_value = RecalculationResult(checked=2)
        scheduler = Mock()
        scheduler.reconcile_orphans.return_value = ReconcileResult(found=1, republished=1)
        tasks = MaintenanceTasks(aggregator, scheduler, orphan_grace=timedelta(minutes=10))

        assert tasks.recalculate().checked == 2
        assert tasks.reconcile().republished == 1
        scheduler.reconcile_orphans.assert_called_once_with(timedelta(minutes=10))


class TestMaintenanceRunner:
    def _runner(self, tasks=None, shutdown_event=None):
        return MaintenanceRunner(
            tasks or Mock(spec=MaintenanceTasks),
            recalculate_interval=900,
            reconcile_interval=300,
            shutdown_event=shutdown_event,
        )

    def test_job_defaults(self):
        runner = self._runner()
        defaults = runner.scheduler._job_defaults

        assert defaults["max_instances"] == 1
        assert defaults["coalesce"] is True
        assert defaults["misfire_grace_time"] == 300
        assert not runner.is_running()

    def test_start_runs_both_tasks_immediately(self):
        tasks = Mock(spec=MaintenanceTasks)
        shutdown_event = threading.Event()
        runner = self._runner(tasks, shutdown_event)

        runner.start()
        try:
            assert runner.is_running()
            assert runner.get_next_run_time(RECALCULATE_JOB_ID) is not None
            assert runner.get_next_run_time(RECONCILE_JOB_ID) is not None
            assert _wait_for(lambda: tasks.recalculate.called and tasks.reconcile.called)
        finally:
            runner.shutdown(wait=True)

        assert not runner.is_running()
        assert shutdown_event.is_set()

    def test_failing_task_does_not_stop_runner(self):
        tasks = Mock(spec=MaintenanceTasks)
        tasks.recalculate.side_effect = RuntimeError("database locked")
        runner = self._runner(tasks)

        runner.start()
        try:
            assert _wait_for(lambda: tasks.reconcile.called and tasks.recalculate.called)
            assert runner.is_running()
            assert runner.get_next_run_time(RECALCULATE_JOB_ID) is not None
        finally:
            runner.shutdown(wait=True)

    def test_unknown_job_has_no_next_run(self):
        assert self._runner().get_next_run_time("nope") is None

    def test_shutdown_before_start(self):
        shutdown_event = threading.Event()
        runner = self._runner(shutdown_event=shutdown_event)
        runner.shutdown()
        assert shutdown_event.is_set()
