"""Result types reported by Job Store and aggregator operations."""

from dataclasses import dataclass, field
from enum import Enum
from typing import List


class UpdateOutcome(str, Enum):
    """What happened to one job in a status update."""

    APPLIED = "applied"
    UNCHANGED = "unchanged"  # idempotent repeat
    REJECTED = "rejected"  # would regress or leave a terminal status
    MISSING = "missing"
    STALE = "stale"  # sent for a message the job no longer belongs to


@dataclass
class BulkUpdateResult:
    """
    Per-job outcomes of a bulk status update.

    Attributes:
        applied: Jobs whose status changed
        unchanged: Jobs already in the requested status
        rejected: Jobs whose transition was refused by the state machine
        missing: Job ids that do not exist
        stale: Jobs skipped because the update came from a superseded queue message
        dead_lettered: Jobs that entered ``failed`` and got a dead-letter entry
        batch_ids: Batches recomputed after the update
    """

    applied: List[str] = field(default_factory=list)
    unchanged: List[str] = field(default_factory=list)
    rejected: List[str] = field(default_factory=list)
    missing: List[str] = field(default_factory=list)
    stale: List[str] = field(default_factory=list)
    dead_lettered: List[str] = field(default_factory=list)
    batch_ids: List[str] = field(default_factory=list)

    def record(self, job_id: str, outcome: UpdateOutcome) -> None:
        getattr(self, outcome.value).append(job_id)

    def as_dict(self) -> dict:
        return {
            "applied": len(self.applied),
            "unchanged": len(self.unchanged),
            "rejected": len(self.rejected),
            "missing": len(self.missing),
            "stale": len(self.stale),
            "deadLettered": len(self.dead_lettered),
        }


@dataclass
class RecalculationResult:
    """
    Outcome of recalculating every active batch.

    Attributes:
        checked: Batches examined
        changed: Batch ids whose stored aggregate differed from their jobs
        errors: Batch ids that could not be recalculated
    """

    checked: int = 0
    changed: List[str] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)

    def as_dict(self) -> dict:
        return {
            "checked": self.checked,
            "changed": len(self.changed),
            "errors": len(self.errors),
        }
