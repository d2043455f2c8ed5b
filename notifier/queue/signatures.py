"""Webhook signature verification with key rotation.

The queue signs every callback with its current key; during a rotation the
previous "next" key becomes current, so a signature is accepted under either.
"""

import hashlib
import hmac
from typing import Optional, Sequence, Union

from notifier.domain.exceptions import SignatureError
from notifier.logging import get_logger

logger = get_logger(__name__, component="signatures")

SIGNATURE_HEADER = "Upstash-Signature"


def compute_signature(key: str, body: Union[bytes, str]) -> str:
    """Hex HMAC-SHA256 of ``body`` under ``key``."""
    if isinstance(body, str):
        body = body.encode("utf-8")
    return hmac.new(key.encode("utf-8"), body, hashlib.sha256).hexdigest()


class SignatureVerifier:
    """Checks inbound webhook signatures against the current and next keys.

    In strict mode a missing signature is rejected; otherwise it is tolerated
    with a warning, and with no keys configured at all verification is skipped.
    """

    def __init__(
        self,
        current_key: Optional[str],
        next_key: Optional[str] = None,
        strict: bool = False,
    ):
        self.keys: Sequence[str] = [k for k in (current_key, next_key) if k]
        self.strict = strict

    def verify(self, body: bytes, signature: Optional[str]) -> bool:
        """Verify one request.

        Returns:
            True if a signature was checked and matched, False if verification
            was skipped (non-strict mode only)

        Raises:
            SignatureError: If the signature is invalid, or missing in strict mode
        """
        if not signature:
            if self.strict:
                logger.error("Missing webhook signature", extra={"event": "signature.missing"})
                raise SignatureError("Missing signature")
            logger.warning(
                "Accepting unsigned webhook (non-strict mode)",
                extra={"event": "signature.missing_tolerated"},
            )
            return False

        if not self.keys:
            if self.strict:
                raise SignatureError("No signing keys configured")
            logger.warning(
                "No signing keys configured; skipping signature verification",
                extra={"event": "signature.skipped"},
            )
            return False

        provided = signature.strip().lower()
        if provided.startswith("sha256="):
            provided = provided[len("sha256="):]

        # Header values may carry any latin-1 text; compare as bytes
        provided_bytes = provided.encode("utf-8", "surrogateescape")
        for index, key in enumerate(self.keys):
            if hmac.compare_digest(compute_signature(key, body).encode("ascii"), provided_bytes):
                if index > 0:
                    logger.info(
                        "Webhook verified with next signing key",
                        extra={"event": "signature.verified_next_key"},
                    )
                return True

        logger.error("Invalid webhook signature", extra={"event": "signature.invalid"})
        raise SignatureError("Invalid signature")
