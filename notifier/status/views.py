"""JSON shapes returned by the status surface."""

from typing import Any, Dict, List, Optional

from notifier.domain.models import Batch, DeadLetterEntry, Job
from notifier.utils.timestamps import format_timestamp


def progress_dict(batch: Batch, jobs: Optional[List[Job]] = None) -> Dict[str, Any]:
    """Progress of one batch, optionally with its jobs."""
    data: Dict[str, Any] = {
        "batchId": batch.batch_id,
        "sessionId": batch.session_id,
        "type": batch.type,
        "createdBy": batch.created_by,
        "total": batch.total,
        "completed": batch.completed,
        "failed": batch.failed,
        "status": batch.status.value,
        "createdAt": format_timestamp(batch.created_at),
        "updatedAt": format_timestamp(batch.updated_at),
    }
    if jobs is not None:
        data["jobs"] = [job_dict(job) for job in jobs]
    return data


def job_dict(job: Job) -> Dict[str, Any]:
    return {
        "id": job.id,
        "batchId": job.batch_id,
        "sessionId": job.session_id,
        "type": job.type.value,
        "to": str(job.recipient_email),
        "recipientName": job.recipient_name,
        "role": job.role.value,
        "status": job.status.value,
        "attempts": job.attempts,
        "scheduledFor": format_timestamp(job.scheduled_for),
        "createdAt": format_timestamp(job.created_at),
        "updatedAt": format_timestamp(job.updated_at),
        "externalMessageId": job.metadata.external_message_id,
        "providerMessageId": job.metadata.provider_message_id,
        "lastError": job.metadata.last_error,
        "deliveryAttempts": job.metadata.delivery_attempts,
    }


def dead_letter_dict(entry: DeadLetterEntry) -> Dict[str, Any]:
    return {
        "id": entry.id,
        "job": job_dict(entry.job),
        "error": entry.error,
        "recordedAt": format_timestamp(entry.recorded_at),
        "reviewed": entry.reviewed,
    }
