"""Shared plumbing for the queue's inbound webhooks."""

from abc import ABC, abstractmethod
from typing import Any, Dict, Optional

from notifier.domain.exceptions import SignatureError
from notifier.jobs import JobStore
from notifier.logging import get_logger, log_context
from notifier.queue import DeliveryEnvelope, QueueCallback, SignatureVerifier

logger = get_logger(__name__, component="webhooks")


class WebhookHandler(ABC):
    """Verifies, decodes and applies one queue webhook.

    Only a signature failure is raised to the caller. Any error while
    applying the callback is logged and reported in the returned body, so
    the queue never redelivers an email because of a bookkeeping problem.
    """

    name = "webhook"

    def __init__(self, store: JobStore, verifier: SignatureVerifier):
        self.store = store
        self.verifier = verifier

    def handle(self, raw_body: bytes, signature: Optional[str]) -> Dict[str, Any]:
        """Process one webhook request.

        Raises:
            SignatureError: If the signature is invalid or required and missing
        """
        try:
            self.verifier.verify(raw_body, signature)
        except SignatureError:
            logger.error(
                f"Rejected {self.name} webhook: bad signature",
                extra={"event": f"{self.name}.signature_rejected"},
            )
            raise

        try:
            callback = QueueCallback.parse(raw_body)
            envelope = callback.envelope()
            with log_context(batch_id=envelope.batch_id, session_id=envelope.session_id,
                             message_id=callback.source_message_id):
                return self.process(callback, envelope)
        except Exception as e:
            logger.error(
                f"Failed to process {self.name} webhook: {e}",
                exc_info=True,
                extra={"event": f"{self.name}.processing_failed", "error_type": type(e).__name__},
            )
            return {"success": False, "error": str(e)}

    @abstractmethod
    def process(self, callback: QueueCallback, envelope: DeliveryEnvelope) -> Dict[str, Any]:
        """Apply a verified, decoded callback and return the response body."""
