"""Parser interfaces and data models for admin listing pages."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Iterable

_NUMERIC_ID_PATTERN = re.compile(r"[0-9]+")


@dataclass(slots=True)
class PageResult:
    page: int
    identifiers: list[str] = field(default_factory=list)
    total_scanned: int = 0
    published_count: int = 0
    skipped_unpublished_count: int = 0
    likely_has_next_page: bool = False
    used_flat_fallback: bool = False


class ParsingError(RuntimeError):
    """Raised when a listing page cannot be parsed at all."""


class ListingParser:
    """Base interface for admin listing parsers."""

    def parse(self, html: str, page: int) -> PageResult:  # pragma: no cover - interface only
        raise NotImplementedError


def is_numeric_id(value: str | None) -> bool:
    return bool(value) and _NUMERIC_ID_PATTERN.fullmatch(value) is not None


def unique_identifiers(identifiers: Iterable[str]) -> list[str]:
    """Returns identifiers with duplicates removed, keeping first-seen order."""
    seen: set[str] = set()
    unique: list[str] = []
    for identifier in identifiers:
        if identifier in seen:
            continue
        seen.add(identifier)
        unique.append(identifier)
    return unique
