"""Versioned delivery envelope and queue callback contract.

The Scheduler publishes a ``DeliveryEnvelope`` as the message body. The queue
echoes it back, base64-encoded, in every success and failure callback
(``sourceBody``), next to the worker's own response (``body``). Handlers only
ever read job identity from the decoded envelope.
"""

import base64
import binascii
import json
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence, Union

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator, model_validator
from pydantic import ValidationError as PydanticValidationError

from notifier.domain.exceptions import ValidationError
from notifier.domain.models import Job, NotificationType, RecipientRole

ENVELOPE_VERSION = 1

RawBody = Union[bytes, str, Dict[str, Any]]


class EnvelopeKind(str, Enum):
    """Whether one message delivers many jobs or exactly one."""

    BATCH = "batch"
    SINGLE = "single"


class _CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class EnvelopeRecipient(_CamelModel):
    """One addressed delivery inside an envelope."""

    job_id: str = Field(..., alias="jobId", min_length=1)
    to: EmailStr
    recipient_name: str = Field("there", alias="recipientName")
    role: RecipientRole = RecipientRole.STUDENT


class DeliveryEnvelope(_CamelModel):
    """Message body published to the delivery worker (version 1)."""

    v: int = ENVELOPE_VERSION
    kind: EnvelopeKind
    batch_id: str = Field(..., alias="batchId", min_length=1)
    session_id: str = Field(..., alias="sessionId", min_length=1)
    type: NotificationType
    scheduled_for: datetime = Field(..., alias="scheduledFor")
    recipients: List[EnvelopeRecipient] = Field(..., min_length=1)
    context: Dict[str, Any] = Field(default_factory=dict)

    @field_validator("v")
    @classmethod
    def check_version(cls, v: int) -> int:
        if v != ENVELOPE_VERSION:
            raise ValueError(f"Unsupported envelope version: {v}")
        return v

    @model_validator(mode="after")
    def check_single(self):
        if self.kind == EnvelopeKind.SINGLE and len(self.recipients) != 1:
            raise ValueError("Single envelopes carry exactly one recipient")
        return self

    @property
    def job_ids(self) -> List[str]:
        return [r.job_id for r in self.recipients]

    @classmethod
    def for_jobs(cls, jobs: Sequence[Job], kind: EnvelopeKind = EnvelopeKind.BATCH) -> "DeliveryEnvelope":
        """Build an envelope for jobs of one batch and notification type.

        Send time and template context are taken from the first job.

        Raises:
            ValidationError: If the jobs cannot share one message
        """
        if not jobs:
            raise ValidationError("Cannot build an envelope without jobs")

        first = jobs[0]
        for job in jobs[1:]:
            if (job.batch_id, job.type) != (first.batch_id, first.type):
                raise ValidationError("Jobs in one envelope must share batch and type")

        try:
            return cls(
                kind=kind,
                batch_id=first.batch_id,
                session_id=first.session_id,
                type=first.type,
                scheduled_for=first.scheduled_for,
                recipients=[
                    EnvelopeRecipient(
                        job_id=job.id,
                        to=job.recipient_email,
                        recipient_name=job.recipient_name,
                        role=job.role,
                    )
                    for job in jobs
                ],
                context=dict(first.context),
            )
        except PydanticValidationError as e:
            raise ValidationError(f"Invalid delivery envelope: {e}") from e

    def to_payload(self) -> Dict[str, Any]:
        """JSON-ready dict using the wire (camelCase) field names."""
        return self.model_dump(mode="json", by_alias=True)

    @classmethod
    def decode(cls, raw: RawBody) -> "DeliveryEnvelope":
        """Parse an envelope from JSON bytes, text, or an already-decoded dict.

        Raises:
            ValidationError: On malformed JSON, unknown version, or bad fields
        """
        data = _load_json(raw, "delivery envelope")
        try:
            return cls.model_validate(data)
        except PydanticValidationError as e:
            raise ValidationError(f"Invalid delivery envelope: {e}") from e


class WorkerResult(_CamelModel):
    """Outcome the worker reports for one job of a batch envelope."""

    job_id: str = Field(..., alias="jobId")
    email_id: Optional[str] = Field(None, alias="emailId")
    error: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return bool(self.email_id) and not self.error


class WorkerResponse(_CamelModel):
    """Worker response body: ``results`` for batches, ``emailId`` for singles."""

    results: List[WorkerResult] = Field(default_factory=list)
    email_id: Optional[str] = Field(None, alias="emailId")
    error: Optional[str] = None


class QueueCallback(_CamelModel):
    """Body the queue POSTs to the success and failure callback URLs."""

    status: Optional[int] = None
    retried: int = Field(0, ge=0)
    source_message_id: Optional[str] = Field(None, alias="sourceMessageId")
    source_body: str = Field(..., alias="sourceBody", min_length=1)
    body: Optional[str] = None
    error: Optional[Any] = None
    response_body: Optional[Any] = Field(None, alias="responseBody")

    @property
    def attempts(self) -> int:
        """Delivery attempts made, counting the first one."""
        return self.retried + 1

    @classmethod
    def parse(cls, raw: RawBody) -> "QueueCallback":
        """Parse a raw callback request body.

        Raises:
            ValidationError: If the body is not JSON or lacks ``sourceBody``
        """
        data = _load_json(raw, "callback body")
        try:
            return cls.model_validate(data)
        except PydanticValidationError as e:
            raise ValidationError(f"Invalid callback body: {e}") from e

    def envelope(self) -> DeliveryEnvelope:
        """Decode the envelope the Scheduler originally published.

        Raises:
            ValidationError: If ``sourceBody`` is not a base64-encoded envelope
        """
        return DeliveryEnvelope.decode(_b64decode(self.source_body, "sourceBody"))

    def worker_response(self) -> WorkerResponse:
        """Decode the worker's response, or an empty response if there is none.

        Raises:
            ValidationError: If ``body`` is present but not a worker response
        """
        if not self.body:
            return WorkerResponse()
        data = _load_json(_b64decode(self.body, "body"), "worker response")
        try:
            return WorkerResponse.model_validate(data)
        except PydanticValidationError as e:
            raise ValidationError(f"Invalid worker response: {e}") from e


def encode_body(payload: Dict[str, Any]) -> str:
    """Base64 of a JSON document, the way the queue embeds bodies in callbacks."""
    return base64.b64encode(json.dumps(payload).encode("utf-8")).decode("ascii")


def _b64decode(value: str, field: str) -> bytes:
    try:
        return base64.b64decode(value, validate=True)
    except (binascii.Error, ValueError) as e:
        raise ValidationError(f"{field} is not valid base64") from e


def _load_json(raw: RawBody, what: str) -> Any:
    if isinstance(raw, dict):
        return raw
    try:
        return json.loads(raw)
    except (TypeError, ValueError) as e:
        raise ValidationError(f"Malformed {what}: {e}") from e
