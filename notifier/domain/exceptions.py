"""Domain exceptions for notification scheduling and delivery tracking.

All errors raised by the engine's own operations inherit from NotifierError so
callers at the HTTP and CLI boundaries can map them to responses and exit codes.
Configuration problems live in ``notifier.config.exceptions`` and persistence
problems in ``notifier.persistence.exceptions``.
"""

from typing import Optional


class NotifierError(Exception):
    """Base exception for all notification engine errors."""

    pass


class ValidationError(NotifierError):
    """Raised when a request or payload is malformed.

    Examples:
    - Status query without any filter
    - Delivery envelope with an unknown version
    - Callback body that is not valid JSON
    """

    pass


class NotFoundError(NotifierError):
    """Raised when a job or batch does not exist."""

    pass


class InvalidStateError(NotifierError):
    """Raised when a job status transition is not allowed.

    Examples:
    - Retrying a job that is not failed
    - Resending a job that is not completed
    - Moving a terminal job back to a non-terminal status
    """

    pass


class SignatureError(NotifierError):
    """Raised when an inbound webhook signature is missing or invalid."""

    pass


class UpstreamError(NotifierError):
    """Raised when a call to the queue or provider fails.

    Never retried in-process; the queue's own retry policy (or the caller)
    decides what happens next.
    """

    def __init__(
        self, message: str, status_code: Optional[int] = None, url: Optional[str] = None
    ) -> None:
        """Initialize upstream error.

        Args:
            message: Human-readable error message
            status_code: HTTP status code returned by the upstream, if any
            url: URL that failed
        """
        super().__init__(message)
        self.status_code = status_code
        self.url = url
