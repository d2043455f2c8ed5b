"""Request bodies of the admin endpoints."""

from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from notifier.domain.models import DomainEvent


class ScheduleRequest(BaseModel):
    """Body of ``POST /api/admin/schedule``.

    Exactly one of ``eventIds``, ``events`` or ``all`` selects the events.
    """

    model_config = ConfigDict(populate_by_name=True)

    event_ids: Optional[List[str]] = Field(None, alias="eventIds")
    events: Optional[List[DomainEvent]] = None
    all: bool = False
    force: bool = False
    dry_run: bool = Field(False, alias="dryRun")
    created_by: Optional[str] = Field(None, alias="createdBy")

    @model_validator(mode="after")
    def check_selection(self):
        selected = sum([self.event_ids is not None, self.events is not None, self.all])
        if selected != 1:
            raise ValueError("Provide exactly one of eventIds, events, or all=true")
        return self
