"""Status query surface and client-side progress polling."""

from .polling import PollingPolicy, StatusPoller, TrackedBatches, is_active
from .service import DEFAULT_DEAD_LETTER_LIMIT, StatusQueryService
from .views import dead_letter_dict, job_dict, progress_dict

__all__ = [
    "StatusQueryService",
    "DEFAULT_DEAD_LETTER_LIMIT",
    "PollingPolicy",
    "TrackedBatches",
    "StatusPoller",
    "is_active",
    "progress_dict",
    "job_dict",
    "dead_letter_dict",
]
