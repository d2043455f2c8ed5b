"""Outbound client for the delayed-delivery queue.

``QueueClient`` is the seam the Scheduler depends on; ``HttpQueueClient`` talks
to an Upstash-compatible publish API over HTTP with bounded timeouts.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, Optional
from urllib.parse import quote

import requests

from notifier.config.exceptions import ConfigurationError
from notifier.config.models import FlowControlConfig
from notifier.domain.exceptions import UpstreamError
from notifier.logging import get_logger

logger = get_logger(__name__, component="queue")


@dataclass
class PublishRequest:
    """
    One delayed message to publish.

    Attributes:
        destination: Worker URL the queue will POST the body to
        body: JSON payload (a serialized delivery envelope)
        delay_seconds: Seconds to hold the message before the first delivery
        retries: Delivery retries before the failure callback fires
        retry_delay: Backoff expression evaluated by the queue (milliseconds)
        callback_url: Called with the worker response on success
        failure_callback_url: Called once retries are exhausted
        flow_control: Rate/parallelism cap shared by all messages with its key
        headers: Extra headers forwarded to the worker
    """

    destination: str
    body: Dict[str, Any]
    delay_seconds: int = 0
    retries: int = 5
    retry_delay: Optional[str] = None
    callback_url: Optional[str] = None
    failure_callback_url: Optional[str] = None
    flow_control: Optional[FlowControlConfig] = None
    headers: Dict[str, str] = field(default_factory=dict)

    def queue_headers(self) -> Dict[str, str]:
        """Headers that carry the delivery options to the queue."""
        headers = {
            "Content-Type": "application/json",
            "Upstash-Delay": f"{max(0, int(self.delay_seconds))}s",
            "Upstash-Retries": str(self.retries),
        }
        if self.retry_delay:
            headers["Upstash-Retry-Delay"] = self.retry_delay
        if self.callback_url:
            headers["Upstash-Callback"] = self.callback_url
        if self.failure_callback_url:
            headers["Upstash-Failure-Callback"] = self.failure_callback_url
        if self.flow_control is not None:
            fc = self.flow_control
            headers["Upstash-Flow-Control-Key"] = fc.key
            headers["Upstash-Flow-Control-Value"] = (
                f"rate={fc.rate},parallelism={fc.parallelism},period={fc.period}"
            )
        for name, value in self.headers.items():
            headers[f"Upstash-Forward-{name}"] = value
        return headers


class QueueClient(ABC):
    """Publishes and cancels delayed messages."""

    @abstractmethod
    def publish(self, request: PublishRequest) -> str:
        """Publish one delayed message.

        Returns:
            The queue's message id

        Raises:
            ConfigurationError: If credentials are missing
            UpstreamError: If the queue rejects or cannot be reached
        """

    @abstractmethod
    def cancel(self, message_id: str) -> None:
        """Cancel a published message before it fires.

        Raises:
            ConfigurationError: If credentials are missing
            UpstreamError: If the queue rejects or cannot be reached
        """

    @property
    def configured(self) -> bool:
        return True


class HttpQueueClient(QueueClient):
    """Upstash-compatible REST client built on requests.

    Attributes:
        api_url: Queue API base URL
        timeout: Per-request timeout in seconds
    """

    def __init__(
        self,
        api_url: str,
        token: Optional[str],
        timeout: float = 10,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.api_url = api_url.rstrip("/")
        self.timeout = timeout
        self._token = token
        self._session = session or requests.Session()

    @property
    def configured(self) -> bool:
        return bool(self._token)

    def publish(self, request: PublishRequest) -> str:
        url = f"{self.api_url}/v2/publish/{request.destination}"
        data = self._request("POST", url, headers=request.queue_headers(), json_data=request.body)

        message_id = data.get("messageId") if isinstance(data, dict) else None
        if not message_id:
            raise UpstreamError(f"Queue response from {url} has no messageId", url=url)

        logger.info(
            f"Published message {message_id} with {request.delay_seconds}s delay",
            extra={
                "event": "queue.message.published",
                "message_id": message_id,
                "delay_seconds": request.delay_seconds,
                "destination": request.destination,
            },
        )
        return message_id

    def cancel(self, message_id: str) -> None:
        url = f"{self.api_url}/v2/messages/{quote(message_id, safe='')}"
        self._request("DELETE", url)
        logger.info(
            f"Cancelled message {message_id}",
            extra={"event": "queue.message.cancelled", "message_id": message_id},
        )

    def _request(
        self,
        method: str,
        url: str,
        headers: Optional[Dict[str, str]] = None,
        json_data: Optional[Dict[str, Any]] = None,
    ) -> Any:
        """Make an authenticated request and map failures to UpstreamError."""
        if not self._token:
            raise ConfigurationError(
                "Queue token is not configured",
                errors=["Missing environment variable: QUEUE_TOKEN"],
                suggestions=["Set QUEUE_TOKEN to the queue provider's API token"],
            )

        request_headers = {"Authorization": f"Bearer {self._token}"}
        if headers:
            request_headers.update(headers)

        try:
            logger.debug(
                f"HTTP {method} request to {url}",
                extra={"event": "queue.request", "method": method, "url": url, "timeout": self.timeout},
            )
            response = self._session.request(
                method=method,
                url=url,
                headers=request_headers,
                json=json_data,
                timeout=self.timeout,
            )
        except requests.exceptions.Timeout as e:
            logger.warning(
                f"Request to {url} timed out after {self.timeout} seconds",
                extra={"event": "queue.request.timeout", "url": url, "timeout": self.timeout},
            )
            raise UpstreamError(
                f"Request to {url} timed out after {self.timeout} seconds", url=url
            ) from e
        except requests.exceptions.RequestException as e:
            logger.error(
                f"Request to {url} failed: {e}",
                extra={"event": "queue.request.error", "error_type": type(e).__name__, "url": url},
            )
            raise UpstreamError(f"Request to {url} failed: {e}", url=url) from e

        if response.status_code >= 400:
            is_retryable = response.status_code >= 500 or response.status_code == 429
            logger.log(
                logging.WARNING if is_retryable else logging.ERROR,
                f"HTTP {response.status_code} error from {url}",
                extra={
                    "event": "queue.request.http_error",
                    "status_code": response.status_code,
                    "url": url,
                    "retryable": is_retryable,
                },
            )
            raise UpstreamError(
                f"HTTP {response.status_code}: {response.text[:200] or response.reason}",
                status_code=response.status_code,
                url=url,
            )

        if not response.content:
            return {}
        try:
            return response.json()
        except ValueError as e:
            raise UpstreamError(
                f"Failed to parse JSON response from {url}: {e}",
                status_code=response.status_code,
                url=url,
            ) from e
