"""Failure callback: the queue gave up on a message after its retries."""

import json
from typing import Any, Dict, Optional

from notifier.domain.models import JobMetadata, JobStatus, JobStatusUpdate
from notifier.jobs import DEFAULT_FAILURE_REASON
from notifier.logging import get_logger
from notifier.queue import DeliveryEnvelope, QueueCallback
from notifier.utils.timestamps import format_timestamp

from .common import WebhookHandler

logger = get_logger(__name__, component="failure")


def extract_error_message(error: Any, response_body: Any) -> str:
    """Best available failure reason from a failure callback.

    An ``error`` field in the worker's response body wins over the queue's
    own ``error``; with neither, the default reason is returned.
    """
    message = DEFAULT_FAILURE_REASON

    if error:
        if isinstance(error, str):
            message = error
        elif isinstance(error, dict) and error.get("message"):
            message = str(error["message"])
        else:
            message = json.dumps(error, default=str)

    body: Optional[Any] = response_body
    if isinstance(body, (bytes, str)):
        try:
            body = json.loads(body)
        except ValueError:
            body = None
    if isinstance(body, dict) and body.get("error"):
        message = str(body["error"])

    return message


class FailureHandler(WebhookHandler):
    """Marks every job of an exhausted message ``failed``.

    The store writes one dead-letter entry per job entering ``failed``, so
    repeated failure callbacks add nothing, and jobs already completed stay
    completed.
    """

    name = "failure"

    def process(self, callback: QueueCallback, envelope: DeliveryEnvelope) -> Dict[str, Any]:
        error = extract_error_message(callback.error, callback.response_body)
        attempts = callback.attempts

        outcome = self.store.update_batch_job_statuses(
            [
                JobStatusUpdate(
                    job_id=job_id,
                    status=JobStatus.FAILED,
                    metadata=JobMetadata(last_error=error, delivery_attempts=attempts),
                    source_message_id=callback.source_message_id,
                )
                for job_id in envelope.job_ids
            ]
        )

        timestamp = format_timestamp(self.store.clock())
        dead_lettered = set(outcome.dead_lettered)
        for recipient in envelope.recipients:
            if recipient.job_id not in dead_lettered:
                continue
            logger.error(
                f"Job {recipient.job_id} failed after {attempts} attempts: {error}",
                extra={
                    "event": "failure.dead_letter.recorded",
                    "job_id": recipient.job_id,
                    "batch_id": envelope.batch_id,
                    "session_id": envelope.session_id,
                    "notification_type": envelope.type.value,
                    "recipient": str(recipient.to),
                    "recipient_name": recipient.recipient_name,
                    "attempts": attempts,
                    "error": error,
                    "timestamp": timestamp,
                },
            )

        logger.error(
            f"Message for {len(envelope.recipients)} {envelope.type.value} emails exhausted "
            f"retries; {len(dead_lettered)} jobs dead-lettered",
            extra={
                "event": "failure.message.exhausted",
                "notification_type": envelope.type.value,
                "recipient_count": len(envelope.recipients),
                "attempts": attempts,
                "error": error,
                **outcome.as_dict(),
            },
        )
        return {
            "success": True,
            "isBatch": envelope.kind.value == "batch",
            "batchId": envelope.batch_id,
            "failedCount": len(outcome.applied),
            "deadLettered": len(dead_lettered),
            "error": error,
        }
