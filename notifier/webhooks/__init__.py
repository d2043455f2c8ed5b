"""Inbound queue webhooks: success and failure callbacks."""

from .callback import CallbackHandler
from .common import WebhookHandler
from .failure import FailureHandler, extract_error_message

__all__ = ["WebhookHandler", "CallbackHandler", "FailureHandler", "extract_error_message"]
