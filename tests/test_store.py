"""Unit tests for the Job Store facade and batch aggregation."""

import threading
from datetime import timedelta

import pytest

from notifier.domain import InvalidStateError, NotFoundError, ValidationError
from notifier.domain.models import (
    BatchSpec,
    BatchStatus,
    JobMetadata,
    JobSpec,
    JobStatus,
    JobStatusUpdate,
    NotificationType,
)
from notifier.jobs import DEFAULT_FAILURE_REASON, JobStore, derive_batch_status
from notifier.persistence import BatchRepository, Database, JobRepository
from tests.helpers import NOW


def _spec(email="ada@example.com", session_id="rec-1", type=NotificationType.PREP_24H):
    return JobSpec(
        session_id=session_id,
        type=type,
        recipient_email=email,
        recipient_name="Ada",
        scheduled_for=NOW + timedelta(days=1),
    )


def _create(store, count=2, created_by="user-1"):
    specs = [_spec(f"user{i}@example.com") for i in range(count)]
    return store.create_batch(BatchSpec(session_id="rec-1", type="Office Hours", created_by=created_by, jobs=specs))


def _update(job_id, status, **metadata):
    return JobStatusUpdate(job_id=job_id, status=status, metadata=JobMetadata(**metadata) if metadata else None)


class TestDeriveBatchStatus:
    @pytest.mark.parametrize(
        "statuses,expected",
        [
            ([], BatchStatus.PENDING),
            ([JobStatus.PENDING, JobStatus.PENDING], BatchStatus.PENDING),
            ([JobStatus.PENDING, JobStatus.SCHEDULED], BatchStatus.IN_PROGRESS),
            ([JobStatus.COMPLETED, JobStatus.PENDING], BatchStatus.IN_PROGRESS),
            ([JobStatus.COMPLETED, JobStatus.COMPLETED], BatchStatus.COMPLETED),
            ([JobStatus.FAILED, JobStatus.FAILED], BatchStatus.FAILED),
            ([JobStatus.COMPLETED, JobStatus.FAILED], BatchStatus.PARTIAL_FAILURE),
        ],
    )
    def test_derivation(self, statuses, expected):
        assert derive_batch_status(statuses) == expected


class TestCreate:
    def test_create_batch_persists_jobs(self, store):
        batch = _create(store, count=3)

        assert batch.total == 3
        assert batch.status == BatchStatus.PENDING
        assert len(batch.job_ids) == 3

        jobs = store.get_batch_jobs(batch.batch_id)
        assert [j.id for j in jobs] == batch.job_ids
        assert all(j.status == JobStatus.PENDING and j.attempts == 0 for j in jobs)

    def test_create_job_appends_and_updates_total(self, store):
        batch = _create(store, count=1)
        job = store.create_job(batch.batch_id, _spec("late@example.com"))

        refreshed = store.get_batch(batch.batch_id)
        assert refreshed.total == 2
        assert refreshed.job_ids[-1] == job.id

    def test_create_job_unknown_batch(self, store):
        with pytest.raises(NotFoundError):
            store.create_job("missing", _spec())

    def test_create_job_rejects_other_session(self, store):
        batch = _create(store, count=1)
        with pytest.raises(ValidationError):
            store.create_job(batch.batch_id, _spec(session_id="rec-2"))


class TestStatusUpdates:
    def test_update_job_status_recomputes_batch(self, store):
        batch = _create(store, count=2)
        first, second = batch.job_ids

        store.update_job_status(first, JobStatus.COMPLETED, JobMetadata(provider_message_id="email-1"))
        assert store.get_batch(batch.batch_id).status == BatchStatus.IN_PROGRESS

        store.update_job_status(second, JobStatus.COMPLETED)
        refreshed = store.get_batch(batch.batch_id)
        assert refreshed.status == BatchStatus.COMPLETED
        assert refreshed.completed == 2
        assert store.get_job(first).metadata.provider_message_id == "email-1"

    def test_repeated_completion_is_idempotent(self, store):
        batch = _create(store, count=2)
        job_id = batch.job_ids[0]

        store.update_job_status(job_id, JobStatus.COMPLETED)
        store.update_job_status(job_id, JobStatus.COMPLETED)
        result = store.update_batch_job_statuses([_update(job_id, JobStatus.COMPLETED)])

        assert result.unchanged == [job_id]
        assert store.get_batch(batch.batch_id).completed == 1

    def test_terminal_job_cannot_regress(self, store):
        batch = _create(store, count=1)
        job_id = batch.job_ids[0]
        store.update_job_status(job_id, JobStatus.COMPLETED)

        with pytest.raises(InvalidStateError):
            store.update_job_status(job_id, JobStatus.FAILED)

        result = store.update_batch_job_statuses([_update(job_id, JobStatus.FAILED, last_error="late")])
        assert result.rejected == [job_id]
        assert store.get_job(job_id).status == JobStatus.COMPLETED
        assert store.count_dead_letters() == 0

    def test_update_unknown_job_raises(self, store):
        with pytest.raises(NotFoundError):
            store.update_job_status("missing", JobStatus.COMPLETED)

    def test_bulk_update_partial_failure(self, store):
        batch = _create(store, count=3)
        a, b, c = batch.job_ids

        result = store.update_batch_job_statuses(
            [
                _update(a, JobStatus.COMPLETED, provider_message_id="email-a"),
                _update(b, JobStatus.COMPLETED, provider_message_id="email-b"),
                _update(c, JobStatus.FAILED, last_error="mailbox full"),
                _update("missing", JobStatus.COMPLETED),
            ]
        )

        assert sorted(result.applied) == sorted([a, b, c])
        assert result.missing == ["missing"]
        assert result.dead_lettered == [c]
        assert result.batch_ids == [batch.batch_id]

        refreshed = store.get_batch(batch.batch_id)
        assert refreshed.status == BatchStatus.PARTIAL_FAILURE
        assert (refreshed.completed, refreshed.failed) == (2, 1)

        entries = store.list_dead_letters()
        assert len(entries) == 1
        assert entries[0].job.id == c
        assert entries[0].error == "mailbox full"

    def test_failure_without_error_uses_default_reason(self, store):
        batch = _create(store, count=1)
        store.update_job_status(batch.job_ids[0], JobStatus.FAILED)
        assert store.list_dead_letters()[0].error == DEFAULT_FAILURE_REASON

    def test_duplicate_failure_adds_one_dead_letter(self, store):
        batch = _create(store, count=1)
        job_id = batch.job_ids[0]
        update = _update(job_id, JobStatus.FAILED, last_error="bounced")

        store.update_batch_job_statuses([update])
        store.update_batch_job_statuses([update])

        assert store.count_dead_letters() == 1


class TestSupersededMessages:
    def test_update_from_old_message_is_skipped(self, store):
        batch = _create(store, count=1)
        job_id = batch.job_ids[0]
        store.update_job_status(job_id, JobStatus.SCHEDULED, JobMetadata(external_message_id="msg-2"))
        update = JobStatusUpdate(
            job_id=job_id,
            status=JobStatus.FAILED,
            metadata=JobMetadata(last_error="boom"),
            source_message_id="msg-1",
        )

        result = store.update_batch_job_statuses([update])

        assert result.stale == [job_id]
        assert result.applied == []
        assert result.as_dict()["stale"] == 1
        assert store.get_job(job_id).status == JobStatus.SCHEDULED
        assert store.count_dead_letters() == 0

    def test_update_from_current_message_applies(self, store):
        batch = _create(store, count=1)
        job_id = batch.job_ids[0]
        store.update_job_status(job_id, JobStatus.SCHEDULED, JobMetadata(external_message_id="msg-2"))
        update = JobStatusUpdate(
            job_id=job_id,
            status=JobStatus.COMPLETED,
            metadata=JobMetadata(provider_message_id="email-1", delivery_attempts=2),
            source_message_id="msg-2",
        )

        result = store.update_batch_job_statuses([update])

        assert result.applied == [job_id]
        job = store.get_job(job_id)
        assert job.status == JobStatus.COMPLETED
        assert job.metadata.delivery_attempts == 2

    def test_unpublished_job_accepts_any_message(self, store):
        batch = _create(store, count=1)
        job_id = batch.job_ids[0]
        update = JobStatusUpdate(job_id=job_id, status=JobStatus.COMPLETED, source_message_id="msg-9")

        assert store.update_batch_job_statuses([update]).applied == [job_id]


class TestConcurrentWriters:
    def test_racing_terminal_updates_apply_once(self, tmp_path, monkeypatch, clock):
        database = Database(f"sqlite:///{tmp_path / 'notifier.db'}").init()
        try:
            store = JobStore(database, clock=clock)
            job_id = _create(store, count=1).job_ids[0]
            store.update_job_status(job_id, JobStatus.SCHEDULED, JobMetadata(external_message_id="msg-1"))

            # Both writers read the job before either one writes
            barrier = threading.Barrier(2, timeout=10)
            get_many = JobRepository.get_many

            def gated_get_many(repo, job_ids):
                barrier.wait()
                return get_many(repo, job_ids)

            monkeypatch.setattr(JobRepository, "get_many", gated_get_many)

            results, errors = [], []

            def apply(update):
                try:
                    results.append(store.update_batch_job_statuses([update]))
                except Exception as e:
                    errors.append(e)

            threads = [
                threading.Thread(target=apply, args=(update,))
                for update in (
                    _update(job_id, JobStatus.COMPLETED, provider_message_id="email-1"),
                    _update(job_id, JobStatus.FAILED, last_error="bounced"),
                )
            ]
            for thread in threads:
                thread.start()
            for thread in threads:
                thread.join(timeout=30)

            assert errors == []
            assert sum(len(r.applied) for r in results) == 1
            assert sum(len(r.rejected) for r in results) == 1
            job = store.get_job(job_id)
            if job.status == JobStatus.COMPLETED:
                assert job.metadata.provider_message_id == "email-1"
                assert store.count_dead_letters() == 0
            else:
                assert job.status == JobStatus.FAILED
                assert store.count_dead_letters() == 1
        finally:
            database.close()


class TestRetry:
    def test_retry_failed_job_resets_to_pending(self, store):
        batch = _create(store, count=1)
        job_id = batch.job_ids[0]
        store.update_job_status(
            job_id, JobStatus.FAILED, JobMetadata(external_message_id="msg-1", last_error="boom")
        )

        job = store.retry_job(job_id)

        assert job.id == job_id
        assert job.status == JobStatus.PENDING
        assert job.attempts == 1
        assert job.metadata.last_error is None
        assert job.metadata.external_message_id is None
        assert store.get_batch(batch.batch_id).status == BatchStatus.PENDING

    def test_retry_completed_job_is_rejected(self, store):
        batch = _create(store, count=1)
        job_id = batch.job_ids[0]
        store.update_job_status(job_id, JobStatus.COMPLETED)

        with pytest.raises(InvalidStateError):
            store.retry_job(job_id)
        assert store.get_job(job_id).status == JobStatus.COMPLETED


class TestQueries:
    def test_list_batches(self, store, clock):
        first = _create(store)
        clock.advance(minutes=1)
        second = _create(store, created_by="user-2")

        assert [b.batch_id for b in store.list_batches_for_session("rec-1")] == [
            second.batch_id,
            first.batch_id,
        ]
        assert [b.batch_id for b in store.list_batches_for_user("user-2")] == [second.batch_id]
        assert len(store.list_active_batches()) == 2
        assert len(store.list_jobs_for_session("rec-1")) == 4

    def test_list_dead_letters_validates_limit(self, store):
        with pytest.raises(ValidationError):
            store.list_dead_letters(0)

    def test_find_orphaned_jobs(self, store, clock):
        batch = _create(store, count=2)
        store.update_job_status(
            batch.job_ids[0], JobStatus.SCHEDULED, JobMetadata(external_message_id="msg-1")
        )
        clock.advance(minutes=30)

        orphans = store.find_orphaned_jobs(clock() - timedelta(minutes=10))
        assert [j.id for j in orphans] == [batch.job_ids[1]]


class TestDeleteBatch:
    def test_delete_batch(self, store):
        batch = _create(store)
        assert store.delete_batch(batch.batch_id) is True
        assert store.get_batch(batch.batch_id) is None
        assert store.get_job(batch.job_ids[0]) is None
        assert store.delete_batch(batch.batch_id) is False

    def test_dead_letters_survive_batch_deletion(self, store):
        batch = _create(store, count=1)
        store.update_job_status(batch.job_ids[0], JobStatus.FAILED)
        store.delete_batch(batch.batch_id)
        assert store.count_dead_letters() == 1


class TestAggregator:
    def test_recalculate_active_repairs_drift(self, store, aggregator, database):
        batch = _create(store, count=2)
        for job_id in batch.job_ids:
            store.update_job_status(job_id, JobStatus.SCHEDULED)

        with database.session() as session:
            BatchRepository(session).update_progress(batch.batch_id, 2, 0, 0, BatchStatus.PENDING, NOW)

        result = aggregator.recalculate_active()

        assert result.checked == 1
        assert result.changed == [batch.batch_id]
        assert store.get_batch(batch.batch_id).status == BatchStatus.IN_PROGRESS

    def test_recalculate_is_a_no_op_when_consistent(self, store, aggregator):
        _create(store)
        result = aggregator.recalculate_active()
        assert result.checked == 1
        assert result.changed == []

    def test_recompute_unknown_batch(self, aggregator):
        with pytest.raises(NotFoundError):
            aggregator.recompute("missing")
