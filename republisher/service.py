"""Discovery and republish operations exposed to the CLI and Celery tasks."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import asdict, dataclass
from typing import Any, Callable, Sequence

from .config import RepublisherConfig
from .dispatch import DispatchOutcome, RepublishDispatcher, Sleep
from .http_client import AsyncHttpFetcher
from .pagination import CollectionResult, PageSetCollector
from .parsers import ListingParser
from .state import RunStateTracker, RunStatus

LOGGER = logging.getLogger(__name__)

FetcherFactory = Callable[[], AsyncHttpFetcher]


@dataclass(slots=True)
class RepublishAllStats:
    total_published_found: int = 0
    requests_sent: int = 0
    total_scanned: int = 0
    skipped_unpublished: int = 0


@dataclass(slots=True)
class RepublishAllResult:
    process_id: str
    stats: RepublishAllStats

    def to_dict(self) -> dict[str, Any]:
        return {"process_id": self.process_id, "stats": asdict(self.stats)}


@dataclass(slots=True)
class RepublishSpecificStats:
    total_provided: int = 0
    requests_sent: int = 0
    failed: int = 0


@dataclass(slots=True)
class RepublishSpecificResult:
    process_id: str
    stats: RepublishSpecificStats

    def to_dict(self) -> dict[str, Any]:
        return {"process_id": self.process_id, "stats": asdict(self.stats)}


def normalize_ad_ids(ad_ids: Sequence[str]) -> list[str]:
    if isinstance(ad_ids, str) or not ad_ids:
        raise ValueError("At least one ad ID must be provided")

    normalized: list[str] = []
    for ad_id in ad_ids:
        if not isinstance(ad_id, str):
            raise ValueError("Each ad ID must be a string")
        cleaned = ad_id.strip()
        if not cleaned:
            raise ValueError("Ad IDs must not be blank")
        normalized.append(cleaned)
    return normalized


class RepublishService:
    """Coordinates discovery, dispatch and the shared run state."""

    def __init__(
        self,
        config: RepublisherConfig,
        *,
        tracker: RunStateTracker | None = None,
        fetcher_factory: FetcherFactory | None = None,
        parser: ListingParser | None = None,
        sleep: Sleep = asyncio.sleep,
        always_report_success: bool = True,
    ) -> None:
        self._config = config
        self._tracker = tracker or RunStateTracker()
        self._fetcher_factory = fetcher_factory or (lambda: AsyncHttpFetcher(config))
        self._parser = parser
        self._sleep = sleep
        self._always_report_success = always_report_success

    @property
    def tracker(self) -> RunStateTracker:
        return self._tracker

    async def list_published_ad_ids(self) -> list[str]:
        LOGGER.info("Fetching all ad IDs")
        async with self._fetcher_factory() as fetcher:
            discovered = await self._discover(fetcher)
        LOGGER.info("Retrieved %d ad IDs", len(discovered.identifiers))
        return discovered.identifiers

    async def count_published_ads(self) -> int:
        return len(await self.list_published_ad_ids())

    async def run_republish_all(self, *, force_run: bool = False) -> RepublishAllResult:
        with self._tracker.run(force_run=force_run) as process_id:
            LOGGER.info("Starting republish process [%s]", process_id)
            try:
                async with self._fetcher_factory() as fetcher:
                    discovered = await self._discover(fetcher)
                    self._tracker.record_discovery(
                        total_found=len(discovered.identifiers),
                        total_scanned=discovered.total_scanned,
                        skipped_unpublished=discovered.skipped_unpublished_count,
                    )
                    stats = RepublishAllStats(
                        total_published_found=len(discovered.identifiers),
                        total_scanned=discovered.total_scanned,
                        skipped_unpublished=discovered.skipped_unpublished_count,
                    )

                    if not discovered.identifiers:
                        LOGGER.warning("No published ads found to republish")
                        self._tracker.record_completion(total_dispatched=0, error_count=0)
                        return RepublishAllResult(process_id=process_id, stats=stats)

                    LOGGER.info("Found %d published ads to republish", len(discovered.identifiers))
                    outcomes = await self._dispatcher(fetcher).dispatch(discovered.identifiers)
            except Exception:
                LOGGER.exception("Republish process failed [%s]", process_id)
                raise

            failed = _count_failed(outcomes)
            stats.requests_sent = len(outcomes)
            self._tracker.record_completion(total_dispatched=len(outcomes), error_count=failed)
            LOGGER.info(
                "Republish process completed [%s]: %d requests sent", process_id, stats.requests_sent
            )
            return RepublishAllResult(process_id=process_id, stats=stats)

    async def run_republish_specific(
        self, ad_ids: Sequence[str], *, force_run: bool = False
    ) -> RepublishSpecificResult:
        identifiers = normalize_ad_ids(ad_ids)

        with self._tracker.run(force_run=force_run) as process_id:
            LOGGER.info(
                "Starting republish process [%s] for %d specific ads", process_id, len(identifiers)
            )
            self._tracker.record_discovery(
                total_found=len(identifiers), total_scanned=0, skipped_unpublished=0
            )
            try:
                async with self._fetcher_factory() as fetcher:
                    outcomes = await self._dispatcher(fetcher).dispatch(identifiers)
            except Exception:
                LOGGER.exception("Republish process failed [%s]", process_id)
                raise

            failed = _count_failed(outcomes)
            self._tracker.record_completion(total_dispatched=len(outcomes), error_count=failed)
            LOGGER.info(
                "Republish process completed [%s]: %d requests sent for specific ads",
                process_id,
                len(outcomes),
            )
            return RepublishSpecificResult(
                process_id=process_id,
                stats=RepublishSpecificStats(
                    total_provided=len(identifiers),
                    requests_sent=len(outcomes),
                    failed=failed,
                ),
            )

    def get_status(self) -> RunStatus:
        return self._tracker.status(self._config.schedule.cron)

    async def _discover(self, fetcher: AsyncHttpFetcher) -> CollectionResult:
        collector = PageSetCollector(self._config, fetcher, parser=self._parser, sleep=self._sleep)
        return await collector.collect()

    def _dispatcher(self, fetcher: AsyncHttpFetcher) -> RepublishDispatcher:
        return RepublishDispatcher(
            self._config,
            fetcher,
            always_report_success=self._always_report_success,
            sleep=self._sleep,
        )


def _count_failed(outcomes: Sequence[DispatchOutcome]) -> int:
    return sum(1 for outcome in outcomes if not outcome.succeeded)
