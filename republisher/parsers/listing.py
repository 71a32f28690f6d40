"""HTML parser for the classifieds "my ads" admin listing.

Each ad is rendered inside a ``.item-aviso`` container. The ad identifier is
resolved with an ordered chain of matchers, first match wins, and the ad is
kept only when its ``Estado:`` label reads ``Publicado``. When the per-section
pass keeps nothing, the whole document is re-scanned with the attribute based
matchers; that pass cannot see publish status, so it may include unpublished
ads.
"""

from __future__ import annotations

import logging
from typing import Callable, Iterator

from bs4 import BeautifulSoup, Tag
from bs4.builder import ParserRejectedMarkup

from . import ListingParser, PageResult, ParsingError, is_numeric_id, unique_identifiers

LOGGER = logging.getLogger(__name__)

SECTION_SELECTOR = ".item-aviso"
ITEMPUB_PREFIX = "itempub"
AD_NUMBER_LABEL = "N° Aviso:"
STATUS_LABEL = "Estado:"
PUBLISHED_STATUS = "Publicado"
NEXT_PAGE_THRESHOLD = 10


class SectionMatcher:
    """Resolves at most one ad identifier from a section."""

    name = "matcher"

    def match(self, section: Tag) -> str | None:  # pragma: no cover - interface only
        raise NotImplementedError


class SelectorMatcher(SectionMatcher):
    """Matcher driven by a CSS selector and an element -> identifier extractor.

    ``match`` only looks at the first element the selector finds in a section;
    ``scan`` walks every element in the given scope.
    """

    def __init__(self, name: str, selector: str, extract: Callable[[Tag], str | None]) -> None:
        self.name = name
        self.selector = selector
        self._extract = extract

    def match(self, section: Tag) -> str | None:
        element = section.select_one(self.selector)
        if element is None:
            return None
        return self._extract(element)

    def scan(self, scope: Tag) -> Iterator[str]:
        for element in scope.select(self.selector):
            identifier = self._extract(element)
            if identifier:
                yield identifier


class HeadingMatcher(SectionMatcher):
    """Reads ``<h4>`` headings: a bare number, or the number following the label heading."""

    name = "heading"

    def __init__(self, label: str = AD_NUMBER_LABEL) -> None:
        self.label = label

    def match(self, section: Tag) -> str | None:
        for heading in section.find_all("h4"):
            text = heading.get_text().strip()
            if is_numeric_id(text):
                return text
            if self.label not in text:
                continue
            sibling = heading.find_next_sibling()
            if sibling is not None and sibling.name == "h4":
                sibling_text = sibling.get_text().strip()
                if is_numeric_id(sibling_text):
                    return sibling_text
        return None


def _itempub_identifier(element: Tag) -> str | None:
    element_id = element.get("id")
    if not isinstance(element_id, str):
        return None
    candidate = element_id.removeprefix(ITEMPUB_PREFIX)
    return candidate if is_numeric_id(candidate) else None


def _checkbox_identifier(element: Tag) -> str | None:
    value = element.get("value")
    if isinstance(value, str) and is_numeric_id(value):
        return value
    return None


def _tab_label_identifier(element: Tag) -> str | None:
    element_id = element.get("id")
    if isinstance(element_id, str) and is_numeric_id(element_id):
        return element_id
    return None


ITEMPUB_MATCHER = SelectorMatcher("itempub", f'[id^="{ITEMPUB_PREFIX}"]', _itempub_identifier)
CHECKBOX_MATCHER = SelectorMatcher("checkbox", 'input[name="nids[]"]', _checkbox_identifier)
TAB_LABEL_MATCHER = SelectorMatcher("tab-label", ".tab-label[id]", _tab_label_identifier)
HEADING_MATCHER = HeadingMatcher()

SECTION_MATCHERS: tuple[SectionMatcher, ...] = (
    ITEMPUB_MATCHER,
    CHECKBOX_MATCHER,
    TAB_LABEL_MATCHER,
    HEADING_MATCHER,
)
FLAT_MATCHERS: tuple[SelectorMatcher, ...] = (
    ITEMPUB_MATCHER,
    CHECKBOX_MATCHER,
    TAB_LABEL_MATCHER,
)


def resolve_identifier(section: Tag, matchers: tuple[SectionMatcher, ...] = SECTION_MATCHERS) -> str | None:
    for matcher in matchers:
        identifier = matcher.match(section)
        if identifier:
            return identifier
    return None


def is_published(section: Tag) -> bool:
    """Returns True when the section's status label reads ``Publicado``."""
    for label in section.select(f'small:-soup-contains("{STATUS_LABEL}")'):
        value = label.find_next_sibling()
        if value is not None and value.name == "small" and value.get_text().strip() == PUBLISHED_STATUS:
            return True

    for small in section.find_all("small"):
        if small.get_text().strip() != PUBLISHED_STATUS:
            continue
        previous = small.find_previous_sibling()
        if previous is not None and previous.name == "small" and previous.get_text().strip() == STATUS_LABEL:
            return True
    return False


class AdminListingParser(ListingParser):
    """Parse one admin listing page into published ad identifiers."""

    def __init__(
        self,
        *,
        section_matchers: tuple[SectionMatcher, ...] = SECTION_MATCHERS,
        flat_matchers: tuple[SelectorMatcher, ...] = FLAT_MATCHERS,
    ) -> None:
        self._section_matchers = section_matchers
        self._flat_matchers = flat_matchers

    def parse(self, html: str, page: int) -> PageResult:
        try:
            soup = BeautifulSoup(html, "html.parser")
        except (ParserRejectedMarkup, TypeError) as exc:
            raise ParsingError(f"Unable to parse listing page {page}: {exc}") from exc

        result = PageResult(page=page)
        published: list[str] = []

        for section in soup.select(SECTION_SELECTOR):
            ad_id = resolve_identifier(section, self._section_matchers)
            if not ad_id:
                continue

            result.total_scanned += 1
            if is_published(section):
                published.append(ad_id)
                result.published_count += 1
                LOGGER.debug("Found published ad: %s", ad_id)
            else:
                result.skipped_unpublished_count += 1
                LOGGER.debug("Skipping ad %s - not published", ad_id)

        if not published:
            flat = self._scan_flat(soup)
            if flat:
                LOGGER.warning(
                    "Page %d: no published ads in sections; flat scan found %d identifiers without status filtering",
                    page,
                    len(flat),
                )
                result.used_flat_fallback = True
            published = flat

        result.identifiers = unique_identifiers(published)
        result.likely_has_next_page = self._likely_has_next_page(soup, page, result.identifiers)

        LOGGER.debug(
            "Page %d: found %d published ad IDs (%d total scanned, %d unpublished skipped)",
            page,
            len(result.identifiers),
            result.total_scanned,
            result.skipped_unpublished_count,
        )
        return result

    def _scan_flat(self, soup: BeautifulSoup) -> list[str]:
        identifiers: list[str] = []
        for matcher in self._flat_matchers:
            identifiers.extend(matcher.scan(soup))
        return identifiers

    def _likely_has_next_page(self, soup: BeautifulSoup, page: int, identifiers: list[str]) -> bool:
        if len(identifiers) >= NEXT_PAGE_THRESHOLD:
            return True
        return (
            soup.select_one('a[href*="page="]') is not None
            or soup.select_one(".pagination") is not None
            or soup.select_one(f'[href*="page={page + 1}"]') is not None
        )
