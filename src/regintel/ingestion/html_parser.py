"""HTML page scraper for newsletter and news-listing pages."""

from urllib.parse import urljoin

import soupsieve
from bs4 import BeautifulSoup, Tag

from regintel.ingestion.base import BaseParser, RawItem
from regintel.ingestion.errors import ParseError
from regintel.ingestion.normalize import collapse_whitespace
from regintel.logging import get_logger

logger = get_logger(__name__)

# Tried in order; the first selector with at least one match wins.
DEFAULT_CONTAINER_SELECTORS = [
    ".feed__item",
    ".story-item",
    ".newsletter-item",
    ".news-item",
    "article",
    ".post",
]

TITLE_SELECTOR = "h1, h2, h3, .title, .headline, .post-title"
LINK_SELECTOR = "a[href]"
DATE_SELECTOR = ".date, .published, .post-date, time"
AUTHOR_SELECTOR = ".author, .byline, .by-author"
SUMMARY_SELECTOR = ".summary, .excerpt, .description, p"


class HtmlParser(BaseParser):
    """Extracts article-like blocks from an HTML page via CSS selectors."""

    def __init__(
        self,
        base_url: str,
        selectors: list[str] | None = None,
        min_title_length: int = 10,
        max_items: int = 10,
    ):
        self.base_url = base_url
        self.selectors = selectors or DEFAULT_CONTAINER_SELECTORS
        self.min_title_length = min_title_length
        self.max_items = max_items
        self.matched_selector: str | None = None

    def parse(self, raw_body: str) -> list[RawItem]:
        try:
            return self._parse(raw_body)
        except ParseError as e:
            logger.warning("HTML parse failed", url=self.base_url, error=str(e))
            return []

    def _parse(self, raw_body: str) -> list[RawItem]:
        try:
            soup = BeautifulSoup(raw_body or "", "html.parser")
        except Exception as e:  # html.parser raises assorted errors on broken markup
            raise ParseError(str(e)) from e

        self.matched_selector = None
        for selector in self.selectors:
            try:
                elements = soup.select(selector)
            except soupsieve.SelectorSyntaxError as e:
                logger.warning("Invalid selector skipped", selector=selector, error=str(e))
                continue

            if not elements:
                continue

            self.matched_selector = selector
            logger.debug("Selector matched", selector=selector, count=len(elements))
            return self._extract_items(elements)

        return []

    def _extract_items(self, elements: list[Tag]) -> list[RawItem]:
        items = []
        for element in elements[: self.max_items]:
            item = self._extract_item(element)
            if item is not None:
                items.append(item)
        return items

    def _extract_item(self, element: Tag) -> RawItem | None:
        title = self._text(element, TITLE_SELECTOR)
        if len(title) < self.min_title_length:
            return None

        link_el = element.select_one(LINK_SELECTOR)
        if link_el is None and element.name == "a" and element.get("href"):
            link_el = element
        href = (link_el.get("href") or "").strip() if link_el is not None else ""
        link = urljoin(self.base_url, href) if href else ""

        return RawItem(
            title=title,
            link=link,
            description=self._text(element, SUMMARY_SELECTOR),
            published_at_raw=self._extract_date(element),
            author=self._text(element, AUTHOR_SELECTOR) or None,
        )

    def _extract_date(self, element: Tag) -> str:
        time_el = element.select_one("time[datetime]")
        if time_el is not None:
            return str(time_el["datetime"]).strip()
        return self._text(element, DATE_SELECTOR)

    @staticmethod
    def _text(element: Tag, selector: str) -> str:
        found = element.select_one(selector)
        if found is None:
            return ""
        return collapse_whitespace(found.get_text(" ", strip=True))
