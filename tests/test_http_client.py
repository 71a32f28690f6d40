import unittest
from collections import deque

import httpx

from republisher.config import RepublisherConfig, SiteConfig
from republisher.http_client import AsyncHttpFetcher, HttpFetchError


def _config() -> RepublisherConfig:
    return RepublisherConfig(
        site=SiteConfig(
            base_url="https://clasificados.example.com",
            admin_path="/admin/mis-avisos",
            republish_path="/republicar",
            cookies="session=abc123",
        )
    )


class AsyncHttpFetcherTestCase(unittest.IsolatedAsyncioTestCase):
    async def test_fetch_returns_status_and_body_with_request_headers(self) -> None:
        requests = deque()

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            return httpx.Response(200, text="<html>ok</html>", headers={"content-type": "text/html"})

        config = _config()
        async with AsyncHttpFetcher(config, transport=httpx.MockTransport(handler)) as fetcher:
            response = await fetcher.fetch(config.site.page_url(2), headers=config.page_headers())

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.text, "<html>ok</html>")
        self.assertTrue(response.ok)

        request = requests.popleft()
        self.assertEqual(str(request.url), "https://clasificados.example.com/admin/mis-avisos?page=2")
        self.assertEqual(request.headers["cookie"], "session=abc123")
        self.assertEqual(request.headers["referer"], "https://clasificados.example.com/admin/mis-avisos")
        self.assertEqual(request.headers["user-agent"], config.headers.user_agent)

    async def test_error_status_is_reported_not_raised(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(500, text="boom")

        async with AsyncHttpFetcher(_config(), transport=httpx.MockTransport(handler)) as fetcher:
            response = await fetcher.fetch("https://clasificados.example.com/admin/mis-avisos")

        self.assertEqual(response.status_code, 500)
        self.assertFalse(response.ok)

    async def test_transport_error_raises_fetch_error(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        async with AsyncHttpFetcher(_config(), transport=httpx.MockTransport(handler)) as fetcher:
            with self.assertRaises(HttpFetchError) as ctx:
                await fetcher.fetch("https://clasificados.example.com/admin/mis-avisos")

        self.assertFalse(ctx.exception.timed_out)
        self.assertEqual(ctx.exception.url, "https://clasificados.example.com/admin/mis-avisos")

    async def test_timeout_is_flagged(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("read timed out", request=request)

        async with AsyncHttpFetcher(_config(), transport=httpx.MockTransport(handler)) as fetcher:
            with self.assertRaises(HttpFetchError) as ctx:
                await fetcher.fetch("https://clasificados.example.com/republicar/1", timeout=5.0)

        self.assertTrue(ctx.exception.timed_out)
        self.assertIn("5.0s", str(ctx.exception))

    async def test_injected_client_is_left_open(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(204)

        client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        try:
            async with AsyncHttpFetcher(_config(), client=client) as fetcher:
                response = await fetcher.fetch("https://clasificados.example.com/")
            self.assertEqual(response.status_code, 204)
            self.assertFalse(client.is_closed)
        finally:
            await client.aclose()


if __name__ == "__main__":
    unittest.main()
