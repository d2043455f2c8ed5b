"""Unit tests for the delivery envelope, queue client, and signatures."""

import json
from datetime import timedelta
from unittest.mock import Mock

import pytest
import requests

from notifier.config import ConfigurationError, FlowControlConfig
from notifier.domain import SignatureError, UpstreamError, ValidationError
from notifier.domain.models import Job, NotificationType
from notifier.queue import (
    DeliveryEnvelope,
    EnvelopeKind,
    HttpQueueClient,
    PublishRequest,
    QueueCallback,
    SignatureVerifier,
    compute_signature,
    encode_body,
)
from tests.helpers import NOW


def _job(job_id, type="prep-24h", batch_id="batch-1"):
    return Job(
        id=job_id,
        batch_id=batch_id,
        session_id="rec-1",
        type=type,
        recipient_email=f"{job_id}@example.com",
        recipient_name="Ada",
        scheduled_for=NOW + timedelta(days=1),
        created_at=NOW,
        updated_at=NOW,
        context={"sessionName": "Office Hours"},
    )


def _response(status_code=200, payload=None, text=""):
    response = Mock()
    response.status_code = status_code
    response.content = b"{}" if payload is not None else b""
    response.json.return_value = payload
    response.text = text
    response.reason = "Error"
    return response


class TestDeliveryEnvelope:
    def test_for_jobs_uses_camel_case_payload(self):
        envelope = DeliveryEnvelope.for_jobs([_job("job-1"), _job("job-2")])
        payload = envelope.to_payload()

        assert payload["v"] == 1
        assert payload["kind"] == "batch"
        assert payload["batchId"] == "batch-1"
        assert payload["type"] == "prep-24h"
        assert [r["jobId"] for r in payload["recipients"]] == ["job-1", "job-2"]
        assert payload["context"] == {"sessionName": "Office Hours"}

    def test_decode_from_json_bytes(self):
        envelope = DeliveryEnvelope.for_jobs([_job("job-1")], kind=EnvelopeKind.SINGLE)
        decoded = DeliveryEnvelope.decode(json.dumps(envelope.to_payload()).encode("utf-8"))
        assert decoded.job_ids == ["job-1"]
        assert decoded.scheduled_for == NOW + timedelta(days=1)

    def test_jobs_must_share_batch_and_type(self):
        with pytest.raises(ValidationError):
            DeliveryEnvelope.for_jobs([_job("job-1"), _job("job-2", type=NotificationType.PREP_48H)])

    def test_single_envelope_has_one_recipient(self):
        with pytest.raises(ValidationError):
            DeliveryEnvelope.for_jobs([_job("job-1"), _job("job-2")], kind=EnvelopeKind.SINGLE)

    def test_unknown_version_is_rejected(self):
        payload = DeliveryEnvelope.for_jobs([_job("job-1")]).to_payload()
        payload["v"] = 2
        with pytest.raises(ValidationError, match="Unsupported envelope version"):
            DeliveryEnvelope.decode(payload)

    def test_malformed_json_is_rejected(self):
        with pytest.raises(ValidationError):
            DeliveryEnvelope.decode(b"{not json")


class TestQueueCallback:
    def test_decodes_embedded_bodies(self):
        envelope = DeliveryEnvelope.for_jobs([_job("job-1")])
        callback = QueueCallback.parse(
            {
                "status": 200,
                "retried": 2,
                "sourceMessageId": "msg-1",
                "sourceBody": encode_body(envelope.to_payload()),
                "body": encode_body({"results": [{"jobId": "job-1", "emailId": "email-1"}]}),
            }
        )

        assert callback.attempts == 3
        assert callback.envelope().job_ids == ["job-1"]
        result = callback.worker_response().results[0]
        assert result.succeeded
        assert result.email_id == "email-1"

    def test_missing_body_gives_empty_response(self):
        envelope = DeliveryEnvelope.for_jobs([_job("job-1")])
        callback = QueueCallback.parse({"sourceBody": encode_body(envelope.to_payload())})
        assert callback.worker_response().results == []

    def test_missing_source_body_is_invalid(self):
        with pytest.raises(ValidationError):
            QueueCallback.parse(b'{"status": 200}')

    def test_bad_base64_is_invalid(self):
        callback = QueueCallback.parse({"sourceBody": "***"})
        with pytest.raises(ValidationError):
            callback.envelope()


class TestPublishRequest:
    def test_queue_headers(self):
        request = PublishRequest(
            destination="https://notify.example.com/api/notifications/send",
            body={},
            delay_seconds=90,
            retries=5,
            retry_delay="pow(2, retried) * 1000",
            callback_url="https://notify.example.com/api/queue/callback",
            failure_callback_url="https://notify.example.com/api/queue/failure",
            flow_control=FlowControlConfig(),
            headers={"Batch-Id": "batch-1"},
        )

        headers = request.queue_headers()

        assert headers["Upstash-Delay"] == "90s"
        assert headers["Upstash-Retries"] == "5"
        assert headers["Upstash-Retry-Delay"] == "pow(2, retried) * 1000"
        assert headers["Upstash-Callback"].endswith("/api/queue/callback")
        assert headers["Upstash-Failure-Callback"].endswith("/api/queue/failure")
        assert headers["Upstash-Flow-Control-Value"] == "rate=2,parallelism=1,period=1s"
        assert headers["Upstash-Forward-Batch-Id"] == "batch-1"


class TestHttpQueueClient:
    def _client(self, response=None, side_effect=None, token="token"):
        session = Mock(spec=requests.Session)
        session.request.return_value = response
        session.request.side_effect = side_effect
        return HttpQueueClient("https://qstash.example.com/", token, timeout=5, session=session), session

    def test_publish_returns_message_id(self):
        client, session = self._client(_response(201, {"messageId": "msg-1"}))
        request = PublishRequest(destination="https://notify.example.com/send", body={"a": 1}, delay_seconds=10)

        assert client.publish(request) == "msg-1"

        kwargs = session.request.call_args.kwargs
        assert kwargs["method"] == "POST"
        assert kwargs["url"] == "https://qstash.example.com/v2/publish/https://notify.example.com/send"
        assert kwargs["headers"]["Authorization"] == "Bearer token"
        assert kwargs["headers"]["Upstash-Delay"] == "10s"
        assert kwargs["json"] == {"a": 1}
        assert kwargs["timeout"] == 5

    def test_cancel_uses_delete(self):
        client, session = self._client(_response(200, None))
        client.cancel("msg-1")
        kwargs = session.request.call_args.kwargs
        assert kwargs["method"] == "DELETE"
        assert kwargs["url"] == "https://qstash.example.com/v2/messages/msg-1"

    def test_missing_token_is_configuration_error(self):
        client, session = self._client(token=None)
        assert client.configured is False
        with pytest.raises(ConfigurationError):
            client.publish(PublishRequest(destination="https://x", body={}))
        session.request.assert_not_called()

    def test_http_error_maps_to_upstream_error(self):
        client, _ = self._client(_response(401, None, text="unauthorized"))
        with pytest.raises(UpstreamError) as exc_info:
            client.cancel("msg-1")
        assert exc_info.value.status_code == 401

    def test_timeout_maps_to_upstream_error(self):
        client, _ = self._client(side_effect=requests.exceptions.Timeout("slow"))
        with pytest.raises(UpstreamError, match="timed out"):
            client.cancel("msg-1")

    def test_missing_message_id(self):
        client, _ = self._client(_response(201, {}))
        with pytest.raises(UpstreamError, match="messageId"):
            client.publish(PublishRequest(destination="https://x", body={}))


class TestSignatureVerifier:
    BODY = b'{"sourceBody": "e30="}'

    def test_current_key(self):
        verifier = SignatureVerifier("current", "next", strict=True)
        assert verifier.verify(self.BODY, compute_signature("current", self.BODY)) is True

    def test_next_key_is_accepted_during_rotation(self):
        verifier = SignatureVerifier("current", "next", strict=True)
        assert verifier.verify(self.BODY, "sha256=" + compute_signature("next", self.BODY)) is True

    def test_wrong_key_is_rejected(self):
        verifier = SignatureVerifier("current", "next")
        with pytest.raises(SignatureError):
            verifier.verify(self.BODY, compute_signature("other", self.BODY))

    def test_tampered_body_is_rejected(self):
        verifier = SignatureVerifier("current", "next")
        signature = compute_signature("current", self.BODY)
        with pytest.raises(SignatureError):
            verifier.verify(self.BODY + b" ", signature)

    def test_non_ascii_signature_is_rejected(self):
        verifier = SignatureVerifier("current", "next", strict=True)
        with pytest.raises(SignatureError):
            verifier.verify(self.BODY, "caf\xe9")

    def test_missing_signature(self):
        assert SignatureVerifier("current", "next", strict=False).verify(self.BODY, None) is False
        with pytest.raises(SignatureError):
            SignatureVerifier("current", "next", strict=True).verify(self.BODY, None)

    def test_no_keys(self):
        assert SignatureVerifier(None, None).verify(self.BODY, "abc") is False
        with pytest.raises(SignatureError):
            SignatureVerifier(None, None, strict=True).verify(self.BODY, "abc")
