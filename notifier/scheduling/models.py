"""Result types for scheduling operations."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional


@dataclass
class ScheduleResult:
    """
    Outcome of scheduling one event.

    Attributes:
        batch_id: Batch holding the created jobs
        job_count: Jobs created
        message_count: Queue messages published successfully
        failed_groups: Message groups whose publish failed (jobs now ``failed``)
    """

    batch_id: str
    job_count: int
    message_count: int = 0
    failed_groups: int = 0

    def as_dict(self) -> Dict[str, Any]:
        return {
            "batchId": self.batch_id,
            "jobCount": self.job_count,
            "messageCount": self.message_count,
            "failedGroups": self.failed_groups,
        }


@dataclass
class RetryReport:
    """Outcome of retrying every failed job of an event."""

    retried: int = 0
    failed: int = 0
    total: int = 0

    def as_dict(self) -> Dict[str, int]:
        return {"retried": self.retried, "failed": self.failed, "total": self.total}


@dataclass
class ReconcileResult:
    """
    Outcome of one reconciliation sweep.

    Attributes:
        found: Orphaned jobs found
        republished: Jobs published again
        failed: Jobs whose re-publish failed (now ``failed``)
        message_ids: Queue message ids created by the sweep
    """

    found: int = 0
    republished: int = 0
    failed: int = 0
    message_ids: List[str] = field(default_factory=list)

    def as_dict(self) -> Dict[str, Any]:
        return {
            "found": self.found,
            "republished": self.republished,
            "failed": self.failed,
            "messageIds": list(self.message_ids),
        }


class EventOutcome(str, Enum):
    SCHEDULED = "scheduled"
    SKIPPED = "skipped"
    FAILED = "failed"


@dataclass
class EventScheduleResult:
    """Per-event entry of a bulk scheduling run."""

    event_id: str
    event_type: str
    start_time: Optional[str]
    outcome: EventOutcome
    reason: Optional[str] = None
    batch_id: Optional[str] = None
    job_count: int = 0
    deleted_batches: List[str] = field(default_factory=list)
    error: Optional[str] = None

    @property
    def success(self) -> bool:
        return self.outcome != EventOutcome.FAILED

    def as_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "eventId": self.event_id,
            "eventType": self.event_type,
            "startTime": self.start_time,
            "success": self.success,
            "outcome": self.outcome.value,
        }
        if self.reason:
            data["reason"] = self.reason
        if self.batch_id:
            data["batchId"] = self.batch_id
            data["jobCount"] = self.job_count
        if self.deleted_batches:
            data["deletedBatches"] = list(self.deleted_batches)
        if self.error:
            data["error"] = self.error
        return data


@dataclass
class BulkScheduleResult:
    """All per-event results of a bulk scheduling run plus the summary counts."""

    results: List[EventScheduleResult] = field(default_factory=list)
    dry_run: bool = False

    @property
    def summary(self) -> Dict[str, int]:
        counts = {outcome: 0 for outcome in EventOutcome}
        for result in self.results:
            counts[result.outcome] += 1
        return {
            "total": len(self.results),
            "scheduled": counts[EventOutcome.SCHEDULED],
            "skipped": counts[EventOutcome.SKIPPED],
            "failed": counts[EventOutcome.FAILED],
        }

    @property
    def success(self) -> bool:
        return self.summary["failed"] == 0

    def as_dict(self) -> Dict[str, Any]:
        summary = self.summary
        return {
            "success": self.success,
            "dryRun": self.dry_run,
            "message": f"Scheduled {summary['scheduled']} of {summary['total']} events",
            "results": [r.as_dict() for r in self.results],
            "summary": summary,
        }
