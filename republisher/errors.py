"""Exception hierarchy for discovery and republish runs."""

from __future__ import annotations


class RepublisherError(RuntimeError):
    """Base class for errors raised by the republisher."""


class ReentrancyError(RepublisherError):
    """Raised when a run is requested while another one is active and not forced."""

    def __init__(self, process_id: str | None = None) -> None:
        super().__init__("Republishing process is already running")
        self.process_id = process_id


class PageFetchError(RepublisherError):
    """Raised when a single listing page cannot be retrieved or parsed."""

    def __init__(self, page: int, reason: str) -> None:
        super().__init__(f"Page {page}: {reason}")
        self.page = page
        self.reason = reason


class RepublishRequestError(RepublisherError):
    """Raised when an individual republish request fails or times out."""

    def __init__(self, ad_id: str, reason: str) -> None:
        super().__init__(f"Republish request for ad {ad_id} failed: {reason}")
        self.ad_id = ad_id
        self.reason = reason


class CatastrophicScrapeError(RepublisherError):
    """Raised when discovery cannot proceed at all."""


__all__ = [
    "CatastrophicScrapeError",
    "PageFetchError",
    "ReentrancyError",
    "RepublishRequestError",
    "RepublisherError",
]
