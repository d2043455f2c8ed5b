"""Unit tests for bulk scheduling and event sources."""

from datetime import timedelta

import pytest

from notifier.domain import UpstreamError, ValidationError
from notifier.domain.models import JobStatus
from notifier.scheduling import BulkScheduler, EventOutcome, FileEventSource, InMemoryEventSource
from notifier.scheduling.bulk import (
    REASON_ACTIVE_BATCHES,
    REASON_DRY_RUN,
    REASON_NO_START_TIME,
    REASON_START_IN_PAST,
)
from tests.helpers import NOW, make_event


@pytest.fixture
def events():
    return [
        make_event("rec-1"),
        make_event("rec-2", start_in=timedelta(days=5)),
        make_event("rec-past", start_in=-timedelta(hours=2)),
    ]


@pytest.fixture
def bulk(scheduler, store, clock, events):
    return BulkScheduler(scheduler, store, InMemoryEventSource(events), clock=clock)


class TestScheduleEvents:
    def test_all_upcoming_events(self, bulk, store):
        run = bulk.schedule_events()

        assert run.summary == {"total": 2, "scheduled": 2, "skipped": 0, "failed": 0}
        assert [r.event_id for r in run.results] == ["rec-1", "rec-2"]
        assert len(store.list_batches_for_session("rec-2")) == 1
        assert run.as_dict()["message"] == "Scheduled 2 of 2 events"

    def test_skip_reasons(self, bulk, events):
        no_start = make_event("rec-nostart", start_in=None)
        run = bulk.schedule_events(events=[events[2], no_start])

        reasons = {r.event_id: r.reason for r in run.results}
        assert reasons == {"rec-past": REASON_START_IN_PAST, "rec-nostart": REASON_NO_START_TIME}
        assert run.summary["skipped"] == 2
        assert run.success is True

    def test_active_batches_block_without_force(self, bulk, store):
        bulk.schedule_events(event_ids=["rec-1"])
        run = bulk.schedule_events(event_ids=["rec-1"])

        assert run.results[0].outcome == EventOutcome.SKIPPED
        assert run.results[0].reason == REASON_ACTIVE_BATCHES
        assert len(store.list_batches_for_session("rec-1")) == 1

    def test_force_replaces_existing_batch(self, bulk, store, queue_client):
        first = bulk.schedule_events(event_ids=["rec-1"]).results[0]

        run = bulk.schedule_events(event_ids=["rec-1"], force=True)
        result = run.results[0]

        assert result.outcome == EventOutcome.SCHEDULED
        assert result.deleted_batches == [first.batch_id]
        assert store.get_batch(first.batch_id) is None
        assert [b.batch_id for b in store.list_batches_for_session("rec-1")] == [result.batch_id]
        assert sorted(queue_client.cancelled) == ["msg-1", "msg-2", "msg-3"]

    def test_force_cancel_failure_does_not_block_reschedule(self, bulk, store, queue_client):
        bulk.schedule_events(event_ids=["rec-1"])
        queue_client.cancel_error = UpstreamError("not found", status_code=404)

        result = bulk.schedule_events(event_ids=["rec-1"], force=True).results[0]

        assert result.outcome == EventOutcome.SCHEDULED
        assert len(store.list_batches_for_session("rec-1")) == 1

    def test_dry_run_changes_nothing(self, bulk, store, queue_client):
        bulk.schedule_events(event_ids=["rec-1"])

        run = bulk.schedule_events(event_ids=["rec-1", "rec-2"], force=True, dry_run=True)

        assert [r.reason for r in run.results] == [REASON_DRY_RUN, REASON_DRY_RUN]
        assert run.as_dict()["dryRun"] is True
        assert run.success is True
        assert len(store.list_batches_for_session("rec-1")) == 1
        assert store.list_batches_for_session("rec-2") == []
        assert queue_client.cancelled == []

    def test_unknown_event_id_is_a_failure(self, bulk):
        run = bulk.schedule_events(event_ids=["nope", "rec-1"])

        assert run.results[0].outcome == EventOutcome.FAILED
        assert "not found" in run.results[0].error
        assert run.results[1].outcome == EventOutcome.SCHEDULED
        assert run.success is False

    def test_one_event_failing_does_not_abort_others(self, bulk, store, queue_client):
        queue_client.fail_next(3)

        run = bulk.schedule_events(event_ids=["rec-1", "rec-2"])

        assert [r.outcome for r in run.results] == [EventOutcome.FAILED, EventOutcome.SCHEDULED]
        assert run.summary == {"total": 2, "scheduled": 1, "skipped": 0, "failed": 1}
        assert all(
            j.status == JobStatus.SCHEDULED for j in store.list_jobs_for_session("rec-2")
        )

    def test_created_by_is_recorded(self, bulk, store):
        bulk.schedule_events(event_ids=["rec-1"], created_by="admin-1")
        assert store.list_batches_for_user("admin-1")[0].session_id == "rec-1"


class TestEventSources:
    def test_in_memory_upcoming_is_sorted(self, events):
        source = InMemoryEventSource(events)
        assert [e.id for e in source.list_upcoming(NOW)] == ["rec-1", "rec-2"]
        assert source.get_event("rec-past").id == "rec-past"
        assert source.get_event("missing") is None

    def test_file_source_reads_events_mapping(self, tmp_path):
        path = tmp_path / "events.yaml"
        path.write_text(
            "events:\n"
            "  - id: rec-9\n"
            "    type: Workshop\n"
            "    start_time: 2026-11-05T17:00:00Z\n"
            "    duration_minutes: 90\n"
            "    recipients:\n"
            "      - {email: ada@example.com, name: Ada, role: student}\n"
            "      - {email: grace@example.com, role: mentor}\n"
        )

        source = FileEventSource(path)

        event = source.get_event("rec-9")
        assert event.type == "Workshop"
        assert event.duration_minutes == 90
        assert len(event.recipients) == 2

    def test_file_source_accepts_plain_list(self, tmp_path):
        path = tmp_path / "events.json"
        path.write_text('[{"id": "rec-1", "start_time": "2026-11-05T17:00:00Z"}]')
        assert len(FileEventSource(path)) == 1

    def test_file_source_rejects_invalid_events(self, tmp_path):
        path = tmp_path / "events.yaml"
        path.write_text("- id: rec-1\n  recipients:\n    - {email: not-an-email}\n")
        with pytest.raises(ValidationError, match="Invalid event #0"):
            FileEventSource(path)

    def test_file_source_missing_file(self, tmp_path):
        with pytest.raises(ValidationError):
            FileEventSource(tmp_path / "missing.yaml")
