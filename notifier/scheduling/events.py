"""Sources of domain events (the records notifications are derived from)."""

from abc import ABC, abstractmethod
from datetime import datetime
from pathlib import Path
from typing import Dict, Iterable, List, Optional

import yaml
from pydantic import ValidationError as PydanticValidationError

from notifier.domain.exceptions import ValidationError
from notifier.domain.models import DomainEvent
from notifier.logging import get_logger

logger = get_logger(__name__, component="events")


class EventSource(ABC):
    """Read access to the external store that owns events and their recipients."""

    @abstractmethod
    def get_event(self, event_id: str) -> Optional[DomainEvent]:
        """Return one event, or None if unknown."""

    @abstractmethod
    def list_upcoming(self, now: datetime) -> List[DomainEvent]:
        """Return events starting after ``now``, soonest first."""


class InMemoryEventSource(EventSource):
    """Event source over a fixed list of events."""

    def __init__(self, events: Iterable[DomainEvent]):
        self._events: Dict[str, DomainEvent] = {}
        for event in events:
            self._events[event.id] = event

    def get_event(self, event_id: str) -> Optional[DomainEvent]:
        return self._events.get(event_id)

    def list_upcoming(self, now: datetime) -> List[DomainEvent]:
        upcoming = [e for e in self._events.values() if e.start_time and e.start_time > now]
        return sorted(upcoming, key=lambda e: e.start_time)

    def __len__(self) -> int:
        return len(self._events)


class FileEventSource(InMemoryEventSource):
    """Events loaded from a YAML or JSON file.

    The document is either a list of events or a mapping with an ``events`` list::

        events:
          - id: rec8Hx2kQ
            type: Office Hours
            start_time: 2026-11-05T17:00:00Z
            duration_minutes: 90
            recipients:
              - {email: ada@example.com, name: Ada, role: student}
              - {email: grace@example.com, name: Grace, role: mentor}
    """

    def __init__(self, path: Path):
        self.path = Path(path)
        super().__init__(self._load())

    def _load(self) -> List[DomainEvent]:
        try:
            with open(self.path, "r") as f:
                document = yaml.safe_load(f)
        except (OSError, yaml.YAMLError) as e:
            raise ValidationError(f"Cannot read events file {self.path}: {e}") from e

        if isinstance(document, dict):
            document = document.get("events")
        if document is None:
            document = []
        if not isinstance(document, list):
            raise ValidationError(f"Events file {self.path} must contain a list of events")

        events = []
        for index, raw in enumerate(document):
            try:
                events.append(DomainEvent.model_validate(raw))
            except PydanticValidationError as e:
                raise ValidationError(f"Invalid event #{index} in {self.path}: {e}") from e

        logger.info(
            f"Loaded {len(events)} events from {self.path}",
            extra={"event": "events.file.loaded", "path": str(self.path), "event_count": len(events)},
        )
        return events
