"""Client-side polling of batch progress.

The poller is a non-authoritative reader: a batch it shows as in progress
may already be complete in the store. It only decides how often to ask.
"""

import time
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, Iterable, List, Optional

import requests

from notifier.config.duration import parse_duration
from notifier.config.models import PollingConfig
from notifier.domain.exceptions import UpstreamError
from notifier.domain.models import ACTIVE_BATCH_STATUSES
from notifier.logging import get_logger
from notifier.utils.timestamps import utc_now

logger = get_logger(__name__, component="poller")

Progress = Dict[str, Any]

_ACTIVE_VALUES = {status.value for status in ACTIVE_BATCH_STATUSES}


def is_active(progress: Progress) -> bool:
    return progress.get("status") in _ACTIVE_VALUES


class PollingPolicy:
    """Chooses the next poll interval from the batches currently shown."""

    def __init__(self, active_interval: float, idle_interval: float):
        if active_interval <= 0 or idle_interval <= 0:
            raise ValueError("Polling intervals must be positive")
        if active_interval > idle_interval:
            raise ValueError("active_interval must not be longer than idle_interval")
        self.active_interval = active_interval
        self.idle_interval = idle_interval

    @classmethod
    def from_config(cls, config: PollingConfig) -> "PollingPolicy":
        return cls(parse_duration(config.active_interval), parse_duration(config.idle_interval))

    def next_interval(self, batches: Iterable[Progress]) -> float:
        if any(is_active(b) for b in batches):
            return self.active_interval
        return self.idle_interval


class TrackedBatches:
    """Batches the client follows explicitly, e.g. right after scheduling.

    A tracked batch is kept while active and for ``terminal_grace`` after it
    is first seen in a terminal status, then dropped.
    """

    def __init__(self, terminal_grace: timedelta, clock: Callable[[], datetime] = utc_now):
        self.terminal_grace = terminal_grace
        self.clock = clock
        self._terminal_since: Dict[str, Optional[datetime]] = {}

    def track(self, batch_id: str) -> None:
        self._terminal_since.setdefault(batch_id, None)

    def forget(self, batch_id: str) -> None:
        self._terminal_since.pop(batch_id, None)

    @property
    def batch_ids(self) -> List[str]:
        return list(self._terminal_since)

    def __contains__(self, batch_id: str) -> bool:
        return batch_id in self._terminal_since

    def observe(self, batches: Iterable[Progress]) -> List[str]:
        """Record the latest statuses and drop expired terminal batches.

        Returns:
            Ids dropped by this call
        """
        now = self.clock()
        for progress in batches:
            batch_id = progress.get("batchId")
            if batch_id not in self._terminal_since:
                continue
            if is_active(progress):
                self._terminal_since[batch_id] = None
            elif self._terminal_since[batch_id] is None:
                self._terminal_since[batch_id] = now

        dropped = [
            batch_id
            for batch_id, since in self._terminal_since.items()
            if since is not None and now - since >= self.terminal_grace
        ]
        for batch_id in dropped:
            del self._terminal_since[batch_id]
        return dropped


class StatusPoller:
    """Polls the status endpoint for a user's active batches and tracked ones.

    Attributes:
        base_url: Base URL of the notification service
        user_id: Whose batches to follow; all active batches when None
    """

    def __init__(
        self,
        base_url: str,
        policy: PollingPolicy,
        tracked: TrackedBatches,
        user_id: Optional[str] = None,
        timeout: float = 10,
        session: Optional[requests.Session] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.policy = policy
        self.tracked = tracked
        self.user_id = user_id
        self.timeout = timeout
        self._session = session or requests.Session()

    @property
    def status_url(self) -> str:
        return f"{self.base_url}/api/jobs/status"

    def poll_once(self) -> List[Progress]:
        """Fetch the current view: user (or all) active batches plus tracked ones.

        Raises:
            UpstreamError: If the status endpoint cannot be read
        """
        params = {"userId": self.user_id} if self.user_id else {"active": "true"}
        batches: List[Progress] = list(self._get(params).get("batches") or [])

        seen = {b.get("batchId") for b in batches}
        for batch_id in self.tracked.batch_ids:
            if batch_id in seen:
                continue
            try:
                data = self._get({"batchId": batch_id})
            except UpstreamError as e:
                if e.status_code == 404:
                    logger.info(
                        f"Tracked batch {batch_id} no longer exists",
                        extra={"event": "poller.batch.gone", "batch_id": batch_id},
                    )
                    self.tracked.forget(batch_id)
                    continue
                raise
            if data.get("progress"):
                batches.append(data["progress"])

        self.tracked.observe(batches)
        return batches

    def run(
        self,
        on_update: Callable[[List[Progress]], None],
        max_polls: Optional[int] = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> int:
        """Poll until ``max_polls`` is reached (forever when None).

        A failed poll is logged and retried after the idle interval.

        Returns:
            Number of polls performed
        """
        polls = 0
        while max_polls is None or polls < max_polls:
            polls += 1
            try:
                batches = self.poll_once()
            except UpstreamError as e:
                logger.warning(
                    f"Status poll failed: {e}",
                    extra={"event": "poller.poll.failed", "status_code": e.status_code},
                )
                interval = self.policy.idle_interval
            else:
                on_update(batches)
                interval = self.policy.next_interval(batches)

            if max_polls is None or polls < max_polls:
                sleep(interval)
        return polls

    def _get(self, params: Dict[str, str]) -> Dict[str, Any]:
        try:
            response = self._session.get(self.status_url, params=params, timeout=self.timeout)
        except requests.exceptions.RequestException as e:
            raise UpstreamError(f"Status request failed: {e}", url=self.status_url) from e

        if response.status_code >= 400:
            raise UpstreamError(
                f"Status request returned HTTP {response.status_code}",
                status_code=response.status_code,
                url=self.status_url,
            )
        try:
            return response.json()
        except ValueError as e:
            raise UpstreamError(f"Invalid JSON from status endpoint: {e}", url=self.status_url) from e
