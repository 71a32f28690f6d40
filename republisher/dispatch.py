"""Issues one republish request per ad under a concurrency cap."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Awaitable, Callable, Sequence

from .config import RepublisherConfig
from .errors import RepublishRequestError
from .http_client import HttpClient, HttpFetchError

LOGGER = logging.getLogger(__name__)

Sleep = Callable[[float], Awaitable[None]]


@dataclass(slots=True)
class DispatchOutcome:
    identifier: str
    succeeded: bool
    completed_at: datetime
    error: str | None = None


def chunked(identifiers: Sequence[str], size: int) -> list[list[str]]:
    size = max(1, size)
    return [list(identifiers[start : start + size]) for start in range(0, len(identifiers), size)]


class RepublishDispatcher:
    """Send republish requests chunk by chunk with a delay between chunks.

    The site gives no reliable signal that a republish took effect, so by
    default every attempted request is reported as succeeded
    (``always_report_success``). Failures are still logged and carried in
    ``DispatchOutcome.error``.
    """

    def __init__(
        self,
        config: RepublisherConfig,
        fetcher: HttpClient,
        *,
        always_report_success: bool = True,
        sleep: Sleep = asyncio.sleep,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._config = config
        self._fetcher = fetcher
        self.always_report_success = always_report_success
        self._sleep = sleep
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    async def dispatch(self, identifiers: Sequence[str]) -> list[DispatchOutcome]:
        cap = max(1, self._config.rate_limit.max_concurrent_requests)
        chunks = chunked(identifiers, cap)
        permits = asyncio.Semaphore(cap)
        outcomes: list[DispatchOutcome] = []

        for index, chunk in enumerate(chunks, start=1):
            LOGGER.debug("Processing chunk %d/%d: %d ads", index, len(chunks), len(chunk))
            tasks = [asyncio.create_task(self._republish_one(ad_id, permits)) for ad_id in chunk]
            for finished in asyncio.as_completed(tasks):
                outcomes.append(await finished)

            if index < len(chunks):
                await self._sleep(self._config.rate_limit.request_delay)

        return outcomes

    async def send(self, ad_id: str) -> int:
        """Issues the republish request and returns the HTTP status code."""
        url = self._config.site.republish_url(ad_id)
        timeout = self._config.timeout.republish_timeout
        try:
            response = await asyncio.wait_for(
                self._fetcher.fetch(url, headers=self._config.republish_headers(), timeout=timeout),
                timeout=timeout,
            )
        except asyncio.TimeoutError as exc:
            raise RepublishRequestError(ad_id, f"Timed out after {timeout:.1f}s") from exc
        except HttpFetchError as exc:
            raise RepublishRequestError(ad_id, str(exc)) from exc

        LOGGER.debug("Request sent for ad %s - Status: %s", ad_id, response.status_code)
        return response.status_code

    async def _republish_one(self, ad_id: str, permits: asyncio.Semaphore) -> DispatchOutcome:
        async with permits:
            try:
                await self.send(ad_id)
            except RepublishRequestError as exc:
                LOGGER.debug("Request for ad %s completed with error: %s", ad_id, exc.reason)
                return self._outcome(ad_id, error=exc.reason)
            except Exception as exc:
                LOGGER.exception("Unhandled error republishing ad %s", ad_id)
                return self._outcome(ad_id, error=str(exc) or type(exc).__name__)
        return self._outcome(ad_id)

    def _outcome(self, ad_id: str, *, error: str | None = None) -> DispatchOutcome:
        succeeded = self.always_report_success or error is None
        return DispatchOutcome(
            identifier=ad_id,
            succeeded=succeeded,
            completed_at=self._clock(),
            error=error,
        )
