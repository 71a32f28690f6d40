import unittest
from urllib.parse import parse_qs, urlsplit

from republisher.config import RateLimitConfig, RepublisherConfig, RetryConfig, SiteConfig
from republisher.errors import CatastrophicScrapeError
from republisher.http_client import FetchResponse, HttpFetchError
from republisher.pagination import PageSetCollector

EMPTY_PAGE = "<html><body><p>No tienes avisos publicados</p></body></html>"


def listing_html(ids, *, pagination: bool = False) -> str:
    sections = "".join(
        f'<div class="item-aviso"><div id="itempub{ad_id}"></div>'
        '<small class="m0 bold">Estado:</small><small class="m0 px1">Publicado</small></div>'
        for ad_id in ids
    )
    links = '<ul class="pagination"><li><a href="?page=2">2</a></li></ul>' if pagination else ""
    return f"<html><body>{sections}{links}</body></html>"


def page_ids(page: int, count: int = 10) -> list[str]:
    return [str(page * 1000 + index) for index in range(count)]


class FakeFetcher:
    """Serves listing pages keyed by page number.

    A page maps to HTML, an exception, a ``FetchResponse`` or a list of those
    consumed one per request. Unknown pages are empty.
    """

    def __init__(self, pages) -> None:
        self._pages = {page: list(value) if isinstance(value, list) else value for page, value in pages.items()}
        self.requested_pages: list[int] = []

    async def fetch(self, url, *, headers=None, timeout=None) -> FetchResponse:
        page = int(parse_qs(urlsplit(url).query)["page"][0])
        self.requested_pages.append(page)

        outcome = self._pages.get(page, EMPTY_PAGE)
        if isinstance(outcome, list):
            outcome = outcome.pop(0) if len(outcome) > 1 else outcome[0]
        if isinstance(outcome, BaseException):
            raise outcome
        if isinstance(outcome, FetchResponse):
            return outcome
        return FetchResponse(status_code=200, text=outcome)


class RecordingSleep:
    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


def _config(*, max_concurrent: int = 20, max_retries: int = 0, max_pages: int | None = 500) -> RepublisherConfig:
    return RepublisherConfig(
        site=SiteConfig(
            base_url="https://clasificados.example.com",
            admin_path="/admin/mis-avisos",
            republish_path="/republicar",
            cookies="session=abc",
        ),
        rate_limit=RateLimitConfig(max_concurrent_requests=max_concurrent, max_pages=max_pages),
        retry=RetryConfig(max_retries=max_retries, retry_delay_ms=500),
    )


def _fetch_error(page: int) -> HttpFetchError:
    return HttpFetchError(f"https://clasificados.example.com/admin/mis-avisos?page={page}", "connection reset")


class PageSetCollectorTestCase(unittest.IsolatedAsyncioTestCase):
    async def test_full_probe_continues_until_empty_page(self) -> None:
        fetcher = FakeFetcher({page: listing_html(page_ids(page)) for page in range(1, 6)})
        sleep = RecordingSleep()

        result = await PageSetCollector(_config(), fetcher, sleep=sleep).collect()

        expected = [ad_id for page in range(1, 6) for ad_id in page_ids(page)]
        self.assertEqual(sorted(result.identifiers), sorted(expected))
        self.assertEqual(sorted(fetcher.requested_pages), [1, 2, 3, 4, 5, 6])
        self.assertNotIn(7, fetcher.requested_pages)
        self.assertEqual(result.strategy, "parallel")
        self.assertEqual(result.total_scanned, 50)
        self.assertEqual(sleep.delays, [])

    async def test_continuation_pauses_between_pages(self) -> None:
        fetcher = FakeFetcher({page: listing_html(page_ids(page)) for page in range(1, 8)})
        sleep = RecordingSleep()

        result = await PageSetCollector(_config(), fetcher, sleep=sleep).collect()

        self.assertEqual(len(result.identifiers), 70)
        self.assertEqual(sorted(fetcher.requested_pages), [1, 2, 3, 4, 5, 6, 7, 8])
        self.assertEqual(sleep.delays, [0.1, 0.1])

    async def test_probe_count_follows_concurrency_cap(self) -> None:
        fetcher = FakeFetcher({1: listing_html(page_ids(1, 3)), 2: listing_html(page_ids(2, 3))})

        result = await PageSetCollector(_config(max_concurrent=8), fetcher, sleep=RecordingSleep()).collect()

        self.assertEqual(sorted(fetcher.requested_pages), [1, 2, 3])
        self.assertEqual(len(result.identifiers), 6)

    async def test_gap_in_probe_stops_continuation(self) -> None:
        pages = {page: listing_html(page_ids(page)) for page in (1, 2, 4, 5)}
        fetcher = FakeFetcher(pages)

        result = await PageSetCollector(_config(), fetcher, sleep=RecordingSleep()).collect()

        self.assertEqual(sorted(fetcher.requested_pages), [1, 2, 3, 4, 5])
        self.assertEqual(len(result.identifiers), 40)
        self.assertIn(page_ids(5)[0], result.identifiers)

    async def test_failed_probe_page_is_isolated(self) -> None:
        pages = {page: listing_html(page_ids(page)) for page in range(1, 6)}
        pages[2] = _fetch_error(2)
        fetcher = FakeFetcher(pages)

        result = await PageSetCollector(_config(), fetcher, sleep=RecordingSleep()).collect()

        self.assertEqual(result.strategy, "parallel")
        self.assertEqual(len(result.identifiers), 40)
        self.assertNotIn(page_ids(2)[0], result.identifiers)
        self.assertNotIn(6, fetcher.requested_pages)

    async def test_error_status_counts_as_failed_page(self) -> None:
        pages = {page: listing_html(page_ids(page)) for page in range(1, 6)}
        pages[5] = FetchResponse(status_code=503, text="unavailable")
        fetcher = FakeFetcher(pages)

        result = await PageSetCollector(_config(), fetcher, sleep=RecordingSleep()).collect()

        self.assertEqual(len(result.identifiers), 40)
        self.assertNotIn(6, fetcher.requested_pages)

    async def test_all_probe_pages_failing_falls_back_to_sequential(self) -> None:
        pages = {page: _fetch_error(page) for page in range(1, 6)}
        pages[1] = [_fetch_error(1), listing_html(page_ids(1), pagination=True)]
        pages[2] = [_fetch_error(2), listing_html(page_ids(2, 4))]
        fetcher = FakeFetcher(pages)
        sleep = RecordingSleep()

        result = await PageSetCollector(_config(), fetcher, sleep=sleep).collect()

        self.assertEqual(result.strategy, "sequential")
        self.assertEqual(result.identifiers, page_ids(1) + page_ids(2, 4))
        self.assertEqual(fetcher.requested_pages[5:], [1, 2])
        self.assertEqual(sleep.delays, [0.2])

    async def test_sequential_stops_on_later_page_error(self) -> None:
        pages = {page: _fetch_error(page) for page in range(1, 6)}
        pages[1] = [_fetch_error(1), listing_html(page_ids(1))]
        fetcher = FakeFetcher(pages)

        result = await PageSetCollector(_config(), fetcher, sleep=RecordingSleep()).collect()

        self.assertEqual(result.strategy, "sequential")
        self.assertEqual(result.identifiers, page_ids(1))
        self.assertEqual(fetcher.requested_pages[5:], [1, 2])

    async def test_sequential_failure_on_first_page_raises(self) -> None:
        fetcher = FakeFetcher({page: _fetch_error(page) for page in range(1, 6)})

        with self.assertRaises(CatastrophicScrapeError):
            await PageSetCollector(_config(), fetcher, sleep=RecordingSleep()).collect()

    async def test_unexpected_probe_error_falls_back_to_sequential(self) -> None:
        fetcher = FakeFetcher({1: [RuntimeError("boom"), listing_html(page_ids(1, 3))]})

        result = await PageSetCollector(_config(max_concurrent=4), fetcher, sleep=RecordingSleep()).collect()

        self.assertEqual(result.strategy, "sequential")
        self.assertEqual(result.identifiers, page_ids(1, 3))
        self.assertEqual(fetcher.requested_pages, [1, 1])

    async def test_retry_recovers_failed_page(self) -> None:
        fetcher = FakeFetcher({1: [_fetch_error(1), listing_html(page_ids(1, 3))]})
        sleep = RecordingSleep()

        result = await PageSetCollector(
            _config(max_concurrent=4, max_retries=1), fetcher, sleep=sleep
        ).collect()

        self.assertEqual(result.strategy, "parallel")
        self.assertEqual(result.identifiers, page_ids(1, 3))
        self.assertEqual(fetcher.requested_pages, [1, 1, 2])
        self.assertEqual(sleep.delays, [0.5])

    async def test_repeated_page_stops_pagination(self) -> None:
        repeated = listing_html(page_ids(1, 3))
        fetcher = FakeFetcher({1: repeated, 2: repeated, 3: listing_html(page_ids(3, 3))})

        result = await PageSetCollector(_config(max_concurrent=4), fetcher, sleep=RecordingSleep()).collect()

        self.assertEqual(result.identifiers, page_ids(1, 3))
        self.assertEqual(fetcher.requested_pages, [1, 2])

    async def test_page_limit_caps_continuation(self) -> None:
        fetcher = FakeFetcher({page: listing_html(page_ids(page)) for page in range(1, 20)})

        result = await PageSetCollector(
            _config(max_concurrent=4, max_pages=3), fetcher, sleep=RecordingSleep()
        ).collect()

        self.assertEqual(fetcher.requested_pages, [1, 2, 3])
        self.assertEqual(len(result.identifiers), 30)
        self.assertEqual(result.pages_fetched, 3)

    async def test_page_limit_caps_parallel_probe(self) -> None:
        fetcher = FakeFetcher({page: listing_html(page_ids(page)) for page in range(1, 20)})

        result = await PageSetCollector(_config(max_pages=2), fetcher, sleep=RecordingSleep()).collect()

        self.assertEqual(sorted(fetcher.requested_pages), [1, 2])
        self.assertEqual(len(result.identifiers), 20)
        self.assertEqual(result.strategy, "parallel")

    async def test_summary_log_reports_published_sections(self) -> None:
        pages = {1: listing_html(page_ids(1, 3) + page_ids(1, 1))}
        fetcher = FakeFetcher(pages)

        with self.assertLogs("republisher.pagination", level="INFO") as logs:
            result = await PageSetCollector(
                _config(max_concurrent=4), fetcher, sleep=RecordingSleep()
            ).collect()

        self.assertEqual(result.published_count, 4)
        self.assertEqual(len(result.identifiers), 3)
        self.assertTrue(any("4 published sections" in line for line in logs.output))

    async def test_duplicates_across_pages_are_collected_once(self) -> None:
        pages = {page: listing_html(page_ids(page)) for page in range(1, 6)}
        pages[3] = listing_html(page_ids(3, 9) + [page_ids(1)[0]])
        fetcher = FakeFetcher(pages)

        result = await PageSetCollector(_config(), fetcher, sleep=RecordingSleep()).collect()

        self.assertEqual(len(result.identifiers), len(set(result.identifiers)))
        self.assertEqual(len(result.identifiers), 49)


if __name__ == "__main__":
    unittest.main()
