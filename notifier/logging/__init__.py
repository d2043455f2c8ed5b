"""Structured logging: configuration, context propagation, component loggers."""

import logging
from typing import Optional

from .config import SERVICE_NAME, configure_logging
from .context import clear_log_context, get_log_context, log_context


class ComponentLoggerAdapter(logging.LoggerAdapter):
    """LoggerAdapter that merges its ``component`` into each call's extra."""

    def process(self, msg, kwargs):
        # Call-site extra wins over the adapter default
        kwargs["extra"] = {**self.extra, **kwargs.get("extra", {})}
        return msg, kwargs


def get_logger(name: str, component: Optional[str] = None):
    """Get a logger with optional default component field.

    Args:
        name: Logger name (typically __name__)
        component: Optional component identifier to inject into all logs

    Returns:
        Logger or ComponentLoggerAdapter instance

    Example:
        >>> logger = get_logger(__name__, component="scheduler")
        >>> logger.info("Batch created", extra={"event": "scheduler.batch.created"})
    """
    logger = logging.getLogger(name)

    if component:
        return ComponentLoggerAdapter(logger, {"component": component})

    return logger


__all__ = [
    "ComponentLoggerAdapter",
    "get_logger",
    "configure_logging",
    "SERVICE_NAME",
    "log_context",
    "get_log_context",
    "clear_log_context",
]
