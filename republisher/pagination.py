"""Discovery of every published ad across the paginated admin listing."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Awaitable, Callable

from .config import RepublisherConfig
from .errors import CatastrophicScrapeError, PageFetchError
from .http_client import HttpClient, HttpFetchError
from .parsers import ListingParser, PageResult, ParsingError
from .parsers.listing import AdminListingParser

LOGGER = logging.getLogger(__name__)

Sleep = Callable[[float], Awaitable[None]]


@dataclass(slots=True)
class CollectionResult:
    identifiers: list[str] = field(default_factory=list)
    total_scanned: int = 0
    published_count: int = 0
    skipped_unpublished_count: int = 0
    pages_fetched: int = 0
    strategy: str = "parallel"
    _seen: set[str] = field(default_factory=set, repr=False)

    def add_page(self, page_result: PageResult) -> int:
        """Folds one parsed page in and returns how many identifiers were new."""
        self.pages_fetched += 1
        self.total_scanned += page_result.total_scanned
        self.published_count += page_result.published_count
        self.skipped_unpublished_count += page_result.skipped_unpublished_count

        added = 0
        for identifier in page_result.identifiers:
            if identifier in self._seen:
                continue
            self._seen.add(identifier)
            self.identifiers.append(identifier)
            added += 1
        return added


class PageSetCollector:
    """Walk listing pages of unknown count and collect published ad identifiers."""

    def __init__(
        self,
        config: RepublisherConfig,
        fetcher: HttpClient,
        *,
        parser: ListingParser | None = None,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self._config = config
        self._fetcher = fetcher
        self._parser = parser or AdminListingParser()
        self._sleep = sleep

    async def collect(self) -> CollectionResult:
        LOGGER.info("Starting to scrape all ad IDs")
        try:
            result = await self._collect_parallel()
        except CatastrophicScrapeError as exc:
            LOGGER.error("Error in parallel scraping, falling back to sequential: %s", exc)
            result = await self._collect_sequential()

        LOGGER.info(
            "Scraping completed: %d unique published ads found (%d published sections, %d total ads scanned, "
            "%d unpublished ads skipped, %d pages, %s strategy)",
            len(result.identifiers),
            result.published_count,
            result.total_scanned,
            result.skipped_unpublished_count,
            result.pages_fetched,
            result.strategy,
        )
        return result

    async def fetch_page(self, page: int) -> PageResult:
        url = self._config.site.page_url(page)
        headers = self._config.page_headers()
        max_attempts = self._config.retry.max_attempts

        for attempt in range(max_attempts):
            try:
                return await self._fetch_and_parse(url, headers, page)
            except PageFetchError as exc:
                if attempt + 1 < max_attempts:
                    delay = self._config.retry.delay_for(attempt)
                    LOGGER.warning(
                        "Page %d attempt %d/%d failed (%s); retrying in %.2fs",
                        page,
                        attempt + 1,
                        max_attempts,
                        exc.reason,
                        delay,
                    )
                    await self._sleep(delay)
                    continue
                LOGGER.error("Failed to scrape page %d: %s", page, exc.reason)
                raise
        raise PageFetchError(page, "Exhausted retries")  # pragma: no cover - loop always returns or raises

    async def _fetch_and_parse(self, url: str, headers: dict[str, str], page: int) -> PageResult:
        try:
            response = await self._fetcher.fetch(
                url, headers=headers, timeout=self._config.timeout.page_timeout
            )
        except HttpFetchError as exc:
            raise PageFetchError(page, str(exc)) from exc

        if not response.ok:
            raise PageFetchError(page, f"Unexpected status {response.status_code}")

        try:
            return self._parser.parse(response.text, page)
        except ParsingError as exc:
            raise PageFetchError(page, str(exc)) from exc

    async def _collect_parallel(self) -> CollectionResult:
        probe_count = self._config.rate_limit.probe_pages
        max_pages = self._config.rate_limit.max_pages
        if max_pages is not None:
            probe_count = max(1, min(probe_count, max_pages))
        pages = list(range(1, probe_count + 1))
        outcomes = await asyncio.gather(
            *(self.fetch_page(page) for page in pages), return_exceptions=True
        )

        result = CollectionResult(strategy="parallel")
        failed_pages = 0
        last_valid_page = 0
        contiguous = True

        for page, outcome in zip(pages, outcomes):
            if isinstance(outcome, PageFetchError):
                failed_pages += 1
                contiguous = False
                continue
            if isinstance(outcome, Exception):
                raise CatastrophicScrapeError(
                    f"Probe of page {page} raised {type(outcome).__name__}: {outcome}"
                ) from outcome
            if isinstance(outcome, BaseException):
                raise outcome

            result.add_page(outcome)
            if contiguous and outcome.identifiers:
                last_valid_page = page
            else:
                contiguous = False

        if failed_pages == len(pages):
            raise CatastrophicScrapeError(f"All {len(pages)} probe pages failed")

        LOGGER.debug("Probe of %d pages: last contiguous page with ads is %d", len(pages), last_valid_page)
        if last_valid_page == probe_count:
            await self._continue_sequentially(result, probe_count + 1)
        return result

    async def _continue_sequentially(self, result: CollectionResult, start_page: int) -> None:
        page = start_page
        while self._within_page_limit(page):
            if page > start_page:
                await self._sleep(self._config.rate_limit.page_delay)

            LOGGER.debug("Scraping additional page %d", page)
            try:
                page_result = await self.fetch_page(page)
            except PageFetchError as exc:
                LOGGER.error("Error scraping page %d: %s", page, exc.reason)
                return

            added = result.add_page(page_result)
            if not page_result.identifiers:
                return
            if added == 0:
                LOGGER.info("Page %d repeated already collected ads; stopping pagination", page)
                return
            page += 1

    async def _collect_sequential(self) -> CollectionResult:
        LOGGER.warning("Using sequential scraping fallback")
        result = CollectionResult(strategy="sequential")
        page = 1

        while self._within_page_limit(page):
            try:
                page_result = await self.fetch_page(page)
            except PageFetchError as exc:
                if page == 1:
                    raise CatastrophicScrapeError(
                        f"Sequential scraping failed on the first page: {exc.reason}"
                    ) from exc
                LOGGER.error("Error scraping page %d: %s", page, exc.reason)
                break

            added = result.add_page(page_result)
            if not page_result.identifiers or not page_result.likely_has_next_page:
                break
            if added == 0:
                LOGGER.info("Page %d repeated already collected ads; stopping pagination", page)
                break

            page += 1
            await self._sleep(self._config.rate_limit.sequential_page_delay)

        return result

    def _within_page_limit(self, page: int) -> bool:
        max_pages = self._config.rate_limit.max_pages
        if max_pages is not None and page > max_pages:
            LOGGER.info("Reached the %d page limit; stopping pagination", max_pages)
            return False
        return True
