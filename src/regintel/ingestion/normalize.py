"""Text, date and link normalization shared by the parsers and the coordinator."""

import re
import uuid
from datetime import datetime, timezone
from urllib.parse import urlsplit, urlunsplit

from dateutil import parser as date_parser

from regintel.ingestion.base import RawItem, Source
from regintel.ingestion.classifier import Classification
from regintel.logging import get_logger
from regintel.schemas import NormalizedUpdate

logger = get_logger(__name__)

UPDATE_NAMESPACE = uuid.uuid5(uuid.NAMESPACE_URL, "regintel:regulatory-update")

_CDATA_RE = re.compile(r"<!\[CDATA\[(.*?)\]\]>", re.DOTALL)
# Only things shaped like tags: "< 5 mg" or "<5 mg" is text
_TAG_RE = re.compile(r"</?[A-Za-z!?][^<>]*>")
_WS_RE = re.compile(r"\s+")

# &amp; goes last so "&amp;lt;" decodes to "&lt;" and not "<"
_ENTITIES = (
    ("&lt;", "<"),
    ("&gt;", ">"),
    ("&quot;", '"'),
    ("&apos;", "'"),
    ("&#39;", "'"),
    ("&nbsp;", " "),
    ("&amp;", "&"),
)

_DATE_PREFIX_RE = re.compile(r"^\s*(published|posted|updated|date)\b\s*(on\b|:)?\s*", re.IGNORECASE)
_DOTTED_DATE_RE = re.compile(r"\b\d{1,2}\.\d{1,2}\.\d{4}\b")


def collapse_whitespace(text: str | None) -> str:
    """Collapse runs of whitespace in already-decoded text."""
    return _WS_RE.sub(" ", text or "").strip()


def clean_text(text: str | None) -> str:
    """Decode CDATA, strip tags, unescape XML entities and collapse whitespace.

    Only for raw markup. Text that a parser has already decoded goes
    through ``collapse_whitespace`` instead.
    """
    if not text:
        return ""
    text = _CDATA_RE.sub(r"\1", text)
    text = _TAG_RE.sub(" ", text)
    for entity, char in _ENTITIES:
        text = text.replace(entity, char)
    return collapse_whitespace(text)


def parse_published_at(raw: str | None, now: datetime | None = None) -> datetime:
    """
    Parse an upstream date string into an aware datetime.

    Missing or unparsable dates fall back to ``now`` (ingestion time);
    a bad date never fails the item. Naive results are taken as UTC.
    """
    if now is None:
        now = datetime.now(timezone.utc)

    text = _DATE_PREFIX_RE.sub("", (raw or "").strip()).strip()
    if not text:
        return now

    try:
        parsed = date_parser.parse(
            text,
            fuzzy=True,
            # European dotted dates are day first
            dayfirst=bool(_DOTTED_DATE_RE.search(text)),
            default=datetime(now.year, 1, 1),
        )
    except (ValueError, OverflowError):
        logger.debug("Could not parse date, using ingestion time", raw=raw)
        return now

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def struct_to_datetime(value) -> datetime | None:
    """Convert a feedparser ``*_parsed`` time struct (UTC) to a datetime."""
    if not value:
        return None
    try:
        return datetime(*value[:6], tzinfo=timezone.utc)
    except (TypeError, ValueError):
        return None


def normalize_link(link: str | None) -> str:
    """Canonical form of a link for identity: lowercase host, no fragment or trailing slash."""
    link = (link or "").strip()
    if not link:
        return ""
    parts = urlsplit(link)
    path = parts.path.rstrip("/")
    return urlunsplit((parts.scheme.lower(), parts.netloc.lower(), path, parts.query, ""))


def normalize_title(title: str | None) -> str:
    return _WS_RE.sub(" ", (title or "").casefold()).strip()


def make_update_id(source_id: str, fingerprint: str) -> str:
    """Deterministic update id for a (source, fingerprint) pair."""
    return str(uuid.uuid5(UPDATE_NAMESPACE, f"{source_id}:{fingerprint}"))


def format_content(item: RawItem, source: Source) -> str:
    """Render the stored content block for an item."""
    parts = [f"**Source:** {source.name}"]
    if item.author:
        parts.append(f"**Author:** {item.author}")
    if item.categories:
        parts.append(f"**Categories:** {', '.join(item.categories)}")
    if item.link:
        parts.append(f"**Original Link:** {item.link}")
    if item.description:
        parts.append(f"**Description:**\n{item.description}")
    return "\n\n".join(parts)


def build_update(
    item: RawItem,
    source: Source,
    classification: Classification,
    fingerprint: str,
    now: datetime | None = None,
) -> NormalizedUpdate:
    """Assemble the canonical record for a classified item."""
    title = item.title
    prefix = f"{source.authority_name}:"
    if not title.startswith(prefix):
        title = f"{prefix} {title}"

    return NormalizedUpdate(
        id=make_update_id(source.id, fingerprint),
        title=title,
        content=format_content(item, source),
        source_name=source.name,
        region=source.region,
        authority=source.authority_name,
        update_type=source.update_type,
        priority=classification.priority,
        published_at=item.published_at or parse_published_at(item.published_at_raw, now),
        fingerprint=fingerprint,
        url=item.link,
        categories=tuple(classification.categories),
        metadata={
            "source_id": source.id,
            "source_url": source.url,
            "source_category": source.category,
            "guid": item.guid or None,
            "original_link": item.link or None,
            "feed_categories": list(item.categories),
            "author": item.author,
            "language": source.language,
        },
    )
