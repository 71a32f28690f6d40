"""HTTP utilities for talking to the classifieds admin panel."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Mapping, Protocol

import httpx

from .config import RepublisherConfig

LOGGER = logging.getLogger(__name__)


class HttpFetchError(RuntimeError):
    """Raised when an HTTP request fails at the transport level."""

    def __init__(self, url: str, message: str, *, timed_out: bool = False) -> None:
        super().__init__(message)
        self.url = url
        self.timed_out = timed_out


@dataclass(slots=True)
class FetchResponse:
    status_code: int
    text: str

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 300


class HttpClient(Protocol):
    async def fetch(
        self,
        url: str,
        *,
        headers: Mapping[str, str] | None = None,
        timeout: float | None = None,
    ) -> FetchResponse:  # pragma: no cover - interface only
        ...


class AsyncHttpFetcher:
    """Thin async wrapper over httpx that reports status codes instead of raising."""

    def __init__(
        self,
        config: RepublisherConfig,
        *,
        client: httpx.AsyncClient | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._config = config
        self._transport = transport
        self._client = client or self._build_client()
        self._owns_client = client is None

    def _build_client(self) -> httpx.AsyncClient:
        # Concurrency is bounded by the callers; keep the pool large enough not to queue.
        pool_size = max(10, self._config.rate_limit.max_concurrent_requests)
        kwargs: dict[str, object] = {
            "timeout": self._config.timeout.page_timeout,
            "headers": {"User-Agent": self._config.headers.user_agent},
            "follow_redirects": True,
            "limits": httpx.Limits(max_connections=pool_size, max_keepalive_connections=pool_size),
        }
        if self._transport:
            kwargs["transport"] = self._transport
        return httpx.AsyncClient(**kwargs)

    async def fetch(
        self,
        url: str,
        *,
        headers: Mapping[str, str] | None = None,
        timeout: float | None = None,
    ) -> FetchResponse:
        request_timeout = timeout if timeout is not None else self._config.timeout.page_timeout
        try:
            response = await self._client.get(url, headers=dict(headers or {}), timeout=request_timeout)
        except httpx.TimeoutException as exc:
            raise HttpFetchError(url, f"Timed out after {request_timeout:.1f}s", timed_out=True) from exc
        except httpx.HTTPError as exc:
            raise HttpFetchError(url, str(exc) or type(exc).__name__) from exc

        LOGGER.debug("GET %s -> %s", url, response.status_code)
        return FetchResponse(status_code=response.status_code, text=response.text)

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self) -> "AsyncHttpFetcher":
        return self

    async def __aexit__(self, *_exc_info) -> None:
        await self.aclose()
