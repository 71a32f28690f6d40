"""Configuration utilities shared by the scraper, dispatcher and entrypoints."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Mapping, Optional

DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/137.0.0.0 Safari/537.36"
)
DEFAULT_ACCEPT_LANGUAGE = "es-ES,es;q=0.9"
DEFAULT_CRON_SCHEDULE = "0 0 */25 * * *"


def _env_str(environ: Mapping[str, str], name: str, default: str) -> str:
    value = environ.get(name)
    if value is None:
        return default
    return value.strip()


def _env_int(environ: Mapping[str, str], name: str, default: int) -> int:
    value = environ.get(name)
    if value is None:
        return default
    try:
        parsed = int(value)
    except ValueError:
        return default
    return max(0, parsed)


@dataclass(slots=True)
class SiteConfig:
    base_url: str = ""
    admin_path: str = ""
    republish_path: str = ""
    cookies: str = ""

    @property
    def admin_url(self) -> str:
        return f"{self.base_url}{self.admin_path}"

    def page_url(self, page: int) -> str:
        return f"{self.admin_url}?page={page}"

    def republish_url(self, ad_id: str) -> str:
        return f"{self.admin_url}{self.republish_path}/{ad_id}"


@dataclass(slots=True)
class HeaderConfig:
    user_agent: str = DEFAULT_USER_AGENT
    accept_language: str = DEFAULT_ACCEPT_LANGUAGE


@dataclass(slots=True)
class RateLimitConfig:
    max_concurrent_requests: int = 20
    request_delay_ms: int = 300
    page_delay: float = 0.1
    sequential_page_delay: float = 0.2
    max_pages: int | None = 500

    @property
    def request_delay(self) -> float:
        return self.request_delay_ms / 1000.0

    @property
    def probe_pages(self) -> int:
        """Number of listing pages fetched in parallel before continuing sequentially."""

        return max(1, min(5, self.max_concurrent_requests // 4))


@dataclass(slots=True)
class RetryConfig:
    max_retries: int = 0
    retry_delay_ms: int = 1000

    @property
    def max_attempts(self) -> int:
        return 1 + max(0, self.max_retries)

    def delay_for(self, attempt: int) -> float:
        return (self.retry_delay_ms / 1000.0) * (2 ** attempt)


@dataclass(slots=True)
class TimeoutConfig:
    page_timeout: float = 10.0
    republish_timeout: float = 5.0


@dataclass(slots=True)
class ScheduleConfig:
    cron: str = DEFAULT_CRON_SCHEDULE
    timezone: Optional[str] = None


@dataclass(slots=True)
class LoggingConfig:
    level: str = "INFO"
    file_path: Optional[str] = None


@dataclass(slots=True)
class RepublisherConfig:
    site: SiteConfig = field(default_factory=SiteConfig)
    headers: HeaderConfig = field(default_factory=HeaderConfig)
    rate_limit: RateLimitConfig = field(default_factory=RateLimitConfig)
    retry: RetryConfig = field(default_factory=RetryConfig)
    timeout: TimeoutConfig = field(default_factory=TimeoutConfig)
    schedule: ScheduleConfig = field(default_factory=ScheduleConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "RepublisherConfig":
        env = os.environ if environ is None else environ
        rate_defaults = RateLimitConfig()
        retry_defaults = RetryConfig()

        max_concurrent = _env_int(
            env, "MAX_CONCURRENT_REQUESTS", rate_defaults.max_concurrent_requests
        )
        if max_concurrent == 0:
            max_concurrent = rate_defaults.max_concurrent_requests

        timezone_name = _env_str(env, "CRON_TIMEZONE", "") or None
        log_file = _env_str(env, "LOG_FILE_PATH", "") or None

        return cls(
            site=SiteConfig(
                base_url=_env_str(env, "CLASIFICADOS_BASE_URL", "").rstrip("/"),
                admin_path=_env_str(env, "CLASIFICADOS_ADMIN_PATH", ""),
                republish_path=_env_str(env, "CLASIFICADOS_REPUBLISH_PATH", ""),
                cookies=_env_str(env, "CLASIFICADOS_COOKIES", ""),
            ),
            headers=HeaderConfig(
                user_agent=_env_str(env, "USER_AGENT", DEFAULT_USER_AGENT) or DEFAULT_USER_AGENT,
                accept_language=_env_str(env, "ACCEPT_LANGUAGE", DEFAULT_ACCEPT_LANGUAGE)
                or DEFAULT_ACCEPT_LANGUAGE,
            ),
            rate_limit=RateLimitConfig(
                max_concurrent_requests=max_concurrent,
                request_delay_ms=_env_int(env, "REQUEST_DELAY_MS", rate_defaults.request_delay_ms),
            ),
            retry=RetryConfig(
                max_retries=_env_int(env, "MAX_RETRIES", retry_defaults.max_retries),
                retry_delay_ms=_env_int(env, "RETRY_DELAY_MS", retry_defaults.retry_delay_ms),
            ),
            schedule=ScheduleConfig(
                cron=_env_str(env, "CRON_SCHEDULE", DEFAULT_CRON_SCHEDULE) or DEFAULT_CRON_SCHEDULE,
                timezone=timezone_name,
            ),
            logging=LoggingConfig(
                level=_env_str(env, "LOG_LEVEL", "INFO").upper() or "INFO",
                file_path=log_file,
            ),
        )

    def page_headers(self) -> dict[str, str]:
        """Browser navigation headers sent with admin listing requests."""

        return {
            "accept": (
                "text/html,application/xhtml+xml,application/xml;q=0.9,image/avif,"
                "image/webp,image/apng,*/*;q=0.8"
            ),
            "accept-language": self.headers.accept_language,
            "cache-control": "no-cache",
            "cookie": self.site.cookies,
            "pragma": "no-cache",
            "referer": self.site.admin_url,
            "sec-fetch-dest": "document",
            "sec-fetch-mode": "navigate",
            "sec-fetch-site": "same-origin",
            "sec-fetch-user": "?1",
            "upgrade-insecure-requests": "1",
            "user-agent": self.headers.user_agent,
        }

    def republish_headers(self) -> dict[str, str]:
        return {
            "accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
            "accept-language": self.headers.accept_language,
            "cookie": self.site.cookies,
            "referer": self.site.admin_url,
            "user-agent": self.headers.user_agent,
        }
