"""RSS/Atom feed parsers.

``FeedParser`` is the production strategy and parses with feedparser.
``RegexFeedParser`` is a tolerant fallback for bodies feedparser cannot make
sense of (truncated documents, markup errors before the first item).
"""

import io
import re

import feedparser

from regintel.ingestion.base import BaseParser, RawItem
from regintel.ingestion.errors import ParseError
from regintel.ingestion.normalize import clean_text, collapse_whitespace, struct_to_datetime
from regintel.logging import get_logger

logger = get_logger(__name__)

_ITEM_RE = re.compile(r"<item\b[^>]*>[\s\S]*?</item>", re.IGNORECASE)
_ENTRY_RE = re.compile(r"<entry\b[^>]*>[\s\S]*?</entry>", re.IGNORECASE)
_HAS_ITEMS_RE = re.compile(r"<(item|entry)\b", re.IGNORECASE)


def _element(name: str) -> re.Pattern[str]:
    return re.compile(
        rf"<{name}\b[^>]*>([\s\S]*?)</{name}>",
        re.IGNORECASE,
    )


_TITLE = _element("title")
_LINK = _element("link")
_LINK_HREF = re.compile(r"<link\b[^>]*?href=[\"']([^\"']*)[\"'][^>]*>", re.IGNORECASE)
_DESCRIPTIONS = (_element("description"), _element("summary"), _element("content"))
_DATES = (_element("pubDate"), _element("published"), _element("updated"), _element("dc:date"))
_GUIDS = (_element("guid"), _element("id"))
_AUTHORS = (_element("author"), _element("dc:creator"))
_CATEGORY = _element("category")
_CATEGORY_TERM = re.compile(r"<category\b[^>]*?term=[\"']([^\"']*)[\"'][^>]*/?>", re.IGNORECASE)
_AUTHOR_NAME = _element("name")


def _entry_text(entry, key: str) -> str:
    """Text of a feedparser field; only HTML-typed content still carries markup."""
    value = entry.get(key) or ""
    detail = entry.get(f"{key}_detail") or {}
    if "html" in (detail.get("type") or ""):
        return clean_text(value)
    return collapse_whitespace(value)


def _first(patterns: tuple[re.Pattern[str], ...], text: str) -> str:
    for pattern in patterns:
        match = pattern.search(text)
        if match:
            return match.group(1)
    return ""


class RegexFeedParser(BaseParser):
    """Pattern-based fallback parser for RSS 2.0 and Atom."""

    def parse(self, raw_body: str) -> list[RawItem]:
        try:
            return self._parse(raw_body)
        except ParseError as e:
            logger.warning("Regex feed parse failed", error=str(e))
            return []

    def _parse(self, raw_body: str) -> list[RawItem]:
        if not isinstance(raw_body, str):
            raise ParseError(f"Expected text body, got {type(raw_body).__name__}")

        blocks = _ITEM_RE.findall(raw_body) or _ENTRY_RE.findall(raw_body)
        items = []
        for block in blocks:
            item = self._parse_block(block)
            if item is not None:
                items.append(item)
        return items

    def _parse_block(self, block: str) -> RawItem | None:
        title_match = _TITLE.search(block)
        title = clean_text(title_match.group(1)) if title_match else ""
        if not title:
            return None

        link = clean_text(_first((_LINK,), block))
        if not link:
            href = _LINK_HREF.search(block)
            link = clean_text(href.group(1)) if href else ""

        author_raw = _first(_AUTHORS, block)
        name_match = _AUTHOR_NAME.search(author_raw)
        author = clean_text(name_match.group(1) if name_match else author_raw) or None

        categories = [clean_text(c) for c in _CATEGORY.findall(block)]
        categories += [clean_text(c) for c in _CATEGORY_TERM.findall(block)]

        return RawItem(
            title=title,
            link=link,
            description=clean_text(_first(_DESCRIPTIONS, block)),
            published_at_raw=clean_text(_first(_DATES, block)),
            guid=clean_text(_first(_GUIDS, block)),
            categories=[c for c in categories if c],
            author=author,
        )


class FeedParser(BaseParser):
    """Production feed parser backed by feedparser, with a regex fallback."""

    def __init__(self, fallback: BaseParser | None = None):
        self.fallback = fallback or RegexFeedParser()

    def parse(self, raw_body: str) -> list[RawItem]:
        try:
            items = self._parse(raw_body)
        except ParseError as e:
            logger.warning("Feed parse failed, trying fallback parser", error=str(e))
            return self.fallback.parse(raw_body)

        if not items and _HAS_ITEMS_RE.search(raw_body or ""):
            logger.info("Feed parser found no entries in item markup, trying fallback parser")
            return self.fallback.parse(raw_body)
        return items

    def _parse(self, raw_body: str) -> list[RawItem]:
        try:
            # Streamed so feedparser never treats the body as a URL or a path
            feed = feedparser.parse(
                io.BytesIO((raw_body or "").encode("utf-8")),
                response_headers={"content-type": "application/xml; charset=utf-8"},
            )
        except Exception as e:  # feedparser wraps most errors but not all
            raise ParseError(str(e)) from e

        if feed.bozo and not feed.entries:
            raise ParseError(str(feed.get("bozo_exception", "malformed feed")))

        items = []
        for entry in feed.entries:
            title = _entry_text(entry, "title")
            if not title:
                continue

            items.append(RawItem(
                title=title,
                link=(entry.get("link") or "").strip(),
                description=self._extract_description(entry),
                published_at_raw=(
                    entry.get("published") or entry.get("updated") or entry.get("created") or ""
                ).strip(),
                published_at=(
                    struct_to_datetime(entry.get("published_parsed"))
                    or struct_to_datetime(entry.get("updated_parsed"))
                ),
                guid=(entry.get("id") or "").strip(),
                categories=self._extract_categories(entry),
                author=collapse_whitespace(entry.get("author")) or None,
            ))

        logger.debug("Parsed feed", entries=len(feed.entries), items=len(items))
        return items

    def _extract_description(self, entry) -> str:
        """Extract and clean the description from a feed entry."""
        if entry.get("summary"):
            return _entry_text(entry, "summary")
        if entry.get("content"):
            content = entry.content[0]
            if "html" in (content.get("type") or "text/html"):
                return clean_text(content.get("value", ""))
            return collapse_whitespace(content.get("value"))
        return ""

    def _extract_categories(self, entry) -> list[str]:
        """Extract tag/category terms from a feed entry."""
        categories = []
        for tag in entry.get("tags", []):
            if isinstance(tag, dict):
                categories.append(collapse_whitespace(tag.get("term")))
            else:
                categories.append(collapse_whitespace(str(tag)))
        return [c for c in categories if c]
