"""Client-side progress polling for long-running conversions."""

from __future__ import annotations

import logging
import time
from typing import Callable

import httpx
from pydantic import ValidationError

from substack_wxr.config import PollConfig
from substack_wxr.errors import BusyError, ConversionError, PollTimeoutError
from substack_wxr.models import ProgressSnapshot, SnapshotStatus

logger = logging.getLogger(__name__)

PROGRESS_ACTION = "substack_progress"


class ProgressRequestError(ConversionError):
    """Raised when the progress endpoint cannot be reached or answers garbage."""


def progress_percent(snapshot: ProgressSnapshot) -> float:
    """Percentage complete; an empty job counts as finished."""

    if snapshot.total <= 0:
        return 100.0
    return min(100.0, snapshot.processed / snapshot.total * 100)


class HttpProgressClient:
    """Posts progress requests to an admin-ajax style endpoint."""

    def __init__(
        self,
        url: str,
        *,
        job_id: str | None = None,
        action: str = PROGRESS_ACTION,
        client: httpx.Client | None = None,
        timeout: float = 20.0,
    ) -> None:
        self.url = url
        self.job_id = job_id
        self.action = action
        self._owns_client = client is None
        self._client = client if client is not None else httpx.Client(timeout=timeout, follow_redirects=True)

    def fetch(self) -> ProgressSnapshot:
        data = {"action": self.action}
        if self.job_id:
            data["job_id"] = self.job_id

        try:
            response = self._client.post(self.url, data=data)
            response.raise_for_status()
        except httpx.HTTPError as exc:
            raise ProgressRequestError(f"Progress request to '{self.url}' failed: {exc}") from exc

        try:
            return ProgressSnapshot.model_validate(response.json())
        except (ValueError, ValidationError) as exc:
            raise ProgressRequestError(f"Unexpected progress response from '{self.url}': {exc}") from exc

    def close(self) -> None:
        if self._owns_client:
            self._client.close()

    def __enter__(self) -> "HttpProgressClient":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()


class ProgressPoller:
    """Call `fetch` until the job reports a terminal status.

    The wait between polls starts at `interval_seconds`, grows by
    `backoff_factor` while `processed` does not move or the job is busy, and
    is capped at `max_interval_seconds`. Any progress resets it.
    """

    def __init__(
        self,
        fetch: Callable[[], ProgressSnapshot],
        config: PollConfig | None = None,
        *,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._fetch = fetch
        self._config = config or PollConfig()
        self._sleep = sleep

    def run(self, on_progress: Callable[[ProgressSnapshot], None] | None = None) -> ProgressSnapshot:
        config = self._config
        interval = config.interval_seconds
        last_processed: int | None = None
        polls = 0

        while True:
            polls += 1
            try:
                snapshot: ProgressSnapshot | None = self._fetch()
            except BusyError:
                logger.debug("Job busy on poll %d", polls)
                snapshot = None

            if snapshot is not None:
                if on_progress is not None:
                    on_progress(snapshot)
                if snapshot.status != SnapshotStatus.PROCESSING or snapshot.total == 0:
                    return snapshot

            if config.max_polls is not None and polls >= config.max_polls:
                raise PollTimeoutError(f"No terminal status after {polls} poll(s)")

            if snapshot is not None and snapshot.processed != last_processed:
                last_processed = snapshot.processed
                interval = config.interval_seconds
            else:
                interval = min(interval * config.backoff_factor, config.max_interval_seconds)

            self._sleep(interval)
