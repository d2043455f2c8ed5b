"""End-to-end delivery flows over the HTTP API with a file-backed database."""

import json
from datetime import timedelta

import pytest
from fastapi.testclient import TestClient

from notifier.api import create_app
from notifier.config import AppConfig
from notifier.container import build_services
from notifier.persistence import Database
from notifier.queue import SIGNATURE_HEADER, DeliveryEnvelope, compute_signature, encode_body
from notifier.utils.timestamps import format_timestamp
from tests.helpers import NOW, FakeQueueClient, FrozenClock



@pytest.fixture
def engine(tmp_path, env_config):
    database = Database(f"sqlite:///{tmp_path / 'notifier.db'}").init()
    queue_client = FakeQueueClient()
    services = build_services(
        AppConfig(), env_config, database=database, queue_client=queue_client, clock=FrozenClock()
    )
    yield services, TestClient(create_app(services))
    services.close()


def _post_signed(client, path, payload):
    raw = json.dumps(payload).encode("utf-8")
    response = client.post(path, content=raw, headers={SIGNATURE_HEADER: compute_signature("current-key", raw)})
    assert response.status_code == 200
    return response.json()


def _deliver(client, request, errors=None):
    """Play the queue: report every recipient of ``request`` as delivered unless listed in ``errors``."""
    errors = errors or {}
    envelope = DeliveryEnvelope.decode(request.body)
    if envelope.kind.value == "single":
        worker = {"emailId": f"email-{envelope.job_ids[0]}"}
    else:
        worker = {
            "results": [
                {"jobId": job_id, "error": errors[job_id]} if job_id in errors
                else {"jobId": job_id, "emailId": f"email-{job_id}"}
                for job_id in envelope.job_ids
            ]
        }
    return _post_signed(
        client,
        "/api/queue/callback",
        {"status": 200, "sourceBody": encode_body(envelope.to_payload()), "body": encode_body(worker)},
    )


def _schedule(client):
    event = {
        "id": "rec-1",
        "type": "Office Hours",
        "start_time": format_timestamp(NOW + timedelta(days=3)),
        "recipients": [
            {"email": "ada@example.com", "name": "Ada"},
            {"email": "alan@example.com", "name": "Alan"},
            {"email": "grace@example.com", "name": "Grace", "role": "mentor"},
        ],
    }
    body = client.post("/api/admin/schedule", json={"events": [event], "createdBy": "user-1"}).json()
    assert body["summary"]["scheduled"] == 1
    return body["results"][0]["batchId"]


class TestDeliveryFlow:
    def test_partial_failure_then_retry_completes_batch(self, engine):
        services, client = engine
        batch_id = _schedule(client)
        published = list(services.queue_client.published)
        assert len(published) == 3

        failing_job = DeliveryEnvelope.decode(published[0].body).job_ids[0]
        _deliver(client, published[0], errors={failing_job: "mailbox full"})
        for request in published[1:]:
            _deliver(client, request)

        progress = client.get("/api/jobs/status", params={"batchId": batch_id}).json()["progress"]
        assert progress["status"] == "partial_failure"
        assert (progress["total"], progress["completed"], progress["failed"]) == (7, 6, 1)

        dlq = client.get("/api/jobs/status", params={"dlq": "true"}).json()
        assert dlq["count"] == 1
        assert dlq["deadLetterQueue"][0]["job"]["id"] == failing_job

        retried = client.post(f"/api/admin/jobs/{failing_job}/retry").json()["job"]
        assert retried["status"] == "scheduled"
        assert retried["attempts"] == 1
        _deliver(client, services.queue_client.published[-1])

        progress = client.get("/api/jobs/status", params={"batchId": batch_id}).json()["progress"]
        assert progress["status"] == "completed"
        assert progress["completed"] == 7
        assert client.get("/api/jobs/status", params={"dlq": "true"}).json()["count"] == 1

    def test_exhausted_message_then_session_retry(self, engine):
        services, client = engine
        batch_id = _schedule(client)
        first = services.queue_client.published[0]
        envelope = DeliveryEnvelope.decode(first.body)

        failure = _post_signed(
            client,
            "/api/queue/failure",
            {"retried": 5, "error": "Worker returned 500", "sourceBody": encode_body(envelope.to_payload())},
        )
        assert failure["deadLettered"] == 2

        report = client.post("/api/sessions/rec-1/retry-failed").json()
        assert report["retried"] == 2
        retry_message = services.queue_client.published[-1]
        assert DeliveryEnvelope.decode(retry_message.body).job_ids == envelope.job_ids

        for request in [retry_message] + services.queue_client.published[1:3]:
            _deliver(client, request)

        progress = client.get("/api/jobs/status", params={"sessionId": "rec-1"}).json()["batches"][0]
        assert progress["batchId"] == batch_id
        assert progress["status"] == "completed"
        assert services.store.count_dead_letters() == 2

    def test_state_survives_reopening_the_database(self, tmp_path, env_config):
        url = f"sqlite:///{tmp_path / 'notifier.db'}"
        services = build_services(
            AppConfig(), env_config, database=Database(url).init(),
            queue_client=FakeQueueClient(), clock=FrozenClock(),
        )
        batch_id = _schedule(TestClient(create_app(services)))
        services.close()

        reopened = build_services(
            AppConfig(), env_config, database=Database(url).init(),
            queue_client=FakeQueueClient(), clock=FrozenClock(),
        )
        try:
            batch = reopened.store.get_batch(batch_id)
            assert batch.total == 7
            assert batch.status.value == "in_progress"
        finally:
            reopened.close()
