"""Tests for logging context propagation."""

import threading

import pytest

from notifier.logging.context import (
    clear_log_context,
    get_log_context,
    log_context,
    pop_log_context,
    push_log_context,
)


@pytest.fixture(autouse=True)
def clean_context():
    clear_log_context()
    yield
    clear_log_context()


def test_empty_context():
    assert get_log_context() == {}


def test_push_and_pop():
    token = push_log_context(batch_id="b-1", session_id="rec-1")
    assert get_log_context() == {"batch_id": "b-1", "session_id": "rec-1"}
    pop_log_context(token)
    assert get_log_context() == {}


def test_none_values_are_dropped():
    token = push_log_context(batch_id="b-1", message_id=None)
    assert get_log_context() == {"batch_id": "b-1"}
    pop_log_context(token)


def test_nested_push_restores_each_layer():
    token1 = push_log_context(request_id="req-1")
    token2 = push_log_context(batch_id="b-1")
    token3 = push_log_context(job_id="job-1")
    assert get_log_context() == {"request_id": "req-1", "batch_id": "b-1", "job_id": "job-1"}

    pop_log_context(token3)
    assert get_log_context() == {"request_id": "req-1", "batch_id": "b-1"}
    pop_log_context(token2)
    pop_log_context(token1)
    assert get_log_context() == {}


def test_inner_value_overrides_outer():
    with log_context(batch_id="b-1"):
        with log_context(batch_id="b-2"):
            assert get_log_context() == {"batch_id": "b-2"}
        assert get_log_context() == {"batch_id": "b-1"}


def test_context_manager_restores_after_exception():
    with pytest.raises(ValueError):
        with log_context(batch_id="b-1"):
            raise ValueError("boom")
    assert get_log_context() == {}


def test_get_returns_a_copy():
    with log_context(batch_id="b-1"):
        context = get_log_context()
        context["job_id"] = "modified"
        assert get_log_context() == {"batch_id": "b-1"}


def test_clear_context():
    push_log_context(batch_id="b-1", session_id="rec-1")
    clear_log_context()
    assert get_log_context() == {}


def test_threads_do_not_share_context():
    seen = {}

    def worker():
        seen["before"] = get_log_context()
        with log_context(job_id="job-2"):
            seen["inside"] = get_log_context()

    with log_context(batch_id="b-1"):
        thread = threading.Thread(target=worker)
        thread.start()
        thread.join()
        assert get_log_context() == {"batch_id": "b-1"}

    assert seen["before"] == {}
    assert seen["inside"] == {"job_id": "job-2"}
