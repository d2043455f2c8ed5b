"""Test doubles: frozen clock, in-memory queue client, event factory."""

from datetime import datetime, timedelta, timezone
from typing import List, Optional

from notifier.domain.exceptions import UpstreamError
from notifier.domain.models import DomainEvent, EventRecipient, RecipientRole
from notifier.queue import PublishRequest, QueueClient

NOW = datetime(2026, 11, 1, 9, 0, 0, tzinfo=timezone.utc)


class FrozenClock:
    """Callable clock that only moves when told to."""

    def __init__(self, now: datetime = NOW):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


class FakeQueueClient(QueueClient):
    """Records publishes and cancels; failures are queued up front."""

    def __init__(self):
        self.published: List[PublishRequest] = []
        self.cancelled: List[str] = []
        self.publish_errors: List[Exception] = []
        self.cancel_error: Optional[Exception] = None
        self._counter = 0

    def publish(self, request: PublishRequest) -> str:
        if self.publish_errors:
            raise self.publish_errors.pop(0)
        self._counter += 1
        self.published.append(request)
        return f"msg-{self._counter}"

    def cancel(self, message_id: str) -> None:
        if self.cancel_error is not None:
            raise self.cancel_error
        self.cancelled.append(message_id)

    def fail_next(self, count: int = 1, message: str = "queue unavailable") -> None:
        self.publish_errors.extend(UpstreamError(message, status_code=503) for _ in range(count))


def make_event(
    event_id: str = "rec-1",
    start_in: Optional[timedelta] = timedelta(days=3),
    students: int = 2,
    mentors: int = 1,
    duration_minutes: Optional[int] = 60,
    now: datetime = NOW,
) -> DomainEvent:
    """Event with ``students`` + ``mentors`` recipients starting ``start_in`` from now.

    With the defaults: prep-48h and prep-24h go to 2 students, and
    immediate-feedback to all 3 recipients (7 jobs in 3 message groups).
    """
    recipients = [
        EventRecipient(email=f"student{i}@example.com", name=f"Student {i}", role=RecipientRole.STUDENT)
        for i in range(students)
    ] + [
        EventRecipient(email=f"mentor{i}@example.com", name=f"Mentor {i}", role=RecipientRole.MENTOR)
        for i in range(mentors)
    ]
    return DomainEvent(
        id=event_id,
        type="Office Hours",
        start_time=now + start_in if start_in is not None else None,
        duration_minutes=duration_minutes,
        recipients=recipients,
        context={"sessionName": "Office Hours"},
    )
