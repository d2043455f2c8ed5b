"""Delayed-delivery queue: outbound client, delivery envelope, webhook signatures."""

from .client import HttpQueueClient, PublishRequest, QueueClient
from .envelope import (
    ENVELOPE_VERSION,
    DeliveryEnvelope,
    EnvelopeKind,
    EnvelopeRecipient,
    QueueCallback,
    WorkerResponse,
    WorkerResult,
    encode_body,
)
from .signatures import SIGNATURE_HEADER, SignatureVerifier, compute_signature

__all__ = [
    "QueueClient",
    "HttpQueueClient",
    "PublishRequest",
    "DeliveryEnvelope",
    "EnvelopeKind",
    "EnvelopeRecipient",
    "QueueCallback",
    "WorkerResponse",
    "WorkerResult",
    "ENVELOPE_VERSION",
    "encode_body",
    "SignatureVerifier",
    "compute_signature",
    "SIGNATURE_HEADER",
]
