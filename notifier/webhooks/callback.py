"""Success callback: records the worker's per-recipient results."""

from typing import Any, Dict

from notifier.domain.models import JobMetadata, JobStatus, JobStatusUpdate
from notifier.logging import get_logger
from notifier.queue import DeliveryEnvelope, EnvelopeKind, QueueCallback

from .common import WebhookHandler

logger = get_logger(__name__, component="callback")


class CallbackHandler(WebhookHandler):
    """Applies the worker response of a delivered message.

    Batch envelopes: a result with an error marks its job ``failed``, any
    other result marks it ``completed`` with the provider's email id. Single
    envelopes: the one job is marked ``completed``.
    """

    name = "callback"

    def process(self, callback: QueueCallback, envelope: DeliveryEnvelope) -> Dict[str, Any]:
        response = callback.worker_response()

        if envelope.kind == EnvelopeKind.SINGLE:
            job_id = envelope.job_ids[0]
            outcome = self.store.update_batch_job_statuses(
                [
                    JobStatusUpdate(
                        job_id=job_id,
                        status=JobStatus.COMPLETED,
                        metadata=JobMetadata(
                            provider_message_id=response.email_id,
                            delivery_attempts=callback.attempts,
                        ),
                        source_message_id=callback.source_message_id,
                    )
                ]
            )
            logger.info(
                f"Job {job_id} delivered (emailId: {response.email_id or 'unknown'})",
                extra={
                    "event": "callback.single.applied",
                    "job_id": job_id,
                    "provider_message_id": response.email_id,
                    **outcome.as_dict(),
                },
            )
            return {"success": True, "jobId": job_id, "status": JobStatus.COMPLETED.value}

        expected = set(envelope.job_ids)
        updates = []
        for result in response.results:
            if result.job_id not in expected:
                logger.warning(
                    f"Ignoring result for job {result.job_id} not in this message",
                    extra={"event": "callback.result.unexpected_job", "job_id": result.job_id},
                )
                continue
            if result.error:
                updates.append(
                    JobStatusUpdate(
                        job_id=result.job_id,
                        status=JobStatus.FAILED,
                        metadata=JobMetadata(last_error=result.error, delivery_attempts=callback.attempts),
                        source_message_id=callback.source_message_id,
                    )
                )
            else:
                updates.append(
                    JobStatusUpdate(
                        job_id=result.job_id,
                        status=JobStatus.COMPLETED,
                        metadata=JobMetadata(
                            provider_message_id=result.email_id,
                            delivery_attempts=callback.attempts,
                        ),
                        source_message_id=callback.source_message_id,
                    )
                )

        if not response.results:
            logger.warning(
                "Worker response has no results for batch message",
                extra={"event": "callback.batch.no_results", "recipient_count": len(expected)},
            )

        outcome = self.store.update_batch_job_statuses(updates)
        completed = sum(1 for u in updates if u.status == JobStatus.COMPLETED)
        failed = len(updates) - completed

        logger.info(
            f"Batch callback for {len(envelope.recipients)} {envelope.type.value} emails: "
            f"{completed} succeeded, {failed} failed",
            extra={
                "event": "callback.batch.applied",
                "notification_type": envelope.type.value,
                "completed": completed,
                "failed": failed,
                **outcome.as_dict(),
            },
        )
        return {
            "success": True,
            "isBatch": True,
            "batchId": envelope.batch_id,
            "completed": completed,
            "failed": failed,
        }
