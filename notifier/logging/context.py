"""Context propagation for structured logging.

Fields pushed here (``batch_id``, ``session_id``, ``job_id``, ``request_id``)
are stamped onto every log record emitted inside the scope. Built on
contextvars, so each request handler thread or task sees only its own fields.
"""

from contextvars import ContextVar, Token
from typing import Any, Dict, Optional


LogContextVar: ContextVar[Dict[str, Any]] = ContextVar("log_context", default={})


def get_log_context() -> Dict[str, Any]:
    """Get a copy of the current logging context."""
    return LogContextVar.get().copy()


def push_log_context(**kwargs) -> Token:
    """Merge fields into the logging context.

    ``None`` values are dropped so optional identifiers can be passed through
    unconditionally.

    Returns:
        Token for pop_log_context()

    Example:
        >>> token = push_log_context(batch_id="5d2b", session_id="rec8Hx2kQ")
        >>> pop_log_context(token)
    """
    fields = {key: value for key, value in kwargs.items() if value is not None}
    return LogContextVar.set({**LogContextVar.get(), **fields})


def pop_log_context(token: Token) -> None:
    """Restore the logging context to the state captured by ``token``."""
    LogContextVar.reset(token)


def clear_log_context() -> None:
    """Clear all logging context fields (tests only)."""
    LogContextVar.set({})


class log_context:
    """Context manager for scoped logging context.

    Example:
        >>> with log_context(batch_id=batch_id, job_id=job_id):
        ...     logger.info("Applying callback")
    """

    def __init__(self, **kwargs):
        self.kwargs = kwargs
        self.token: Optional[Token] = None

    def __enter__(self):
        self.token = push_log_context(**self.kwargs)
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        if self.token is not None:
            pop_log_context(self.token)
        return False
