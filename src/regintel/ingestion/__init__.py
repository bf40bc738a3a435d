"""Ingestion module for RegIntel - fetches, parses, classifies and stores source content."""

from regintel.ingestion.base import RawItem, Source, SourceConfig
from regintel.ingestion.classifier import Classification, classify
from regintel.ingestion.coordinator import CycleState, IngestionCoordinator
from regintel.ingestion.dedup import Deduplicator, FingerprintIndexLookup, RecentWindowLookup, fingerprint
from regintel.ingestion.errors import (
    DuplicateError,
    FetchError,
    IngestionError,
    ParseError,
    SourceNotFoundError,
    StorageError,
)
from regintel.ingestion.feed_parser import FeedParser
from regintel.ingestion.fetcher import Fetcher
from regintel.ingestion.html_parser import HtmlParser
from regintel.ingestion.rate_limiter import RateLimiter
from regintel.ingestion.registry import SourceRegistry

__all__ = [
    "Classification",
    "CycleState",
    "Deduplicator",
    "DuplicateError",
    "FeedParser",
    "FetchError",
    "Fetcher",
    "FingerprintIndexLookup",
    "HtmlParser",
    "IngestionCoordinator",
    "IngestionError",
    "ParseError",
    "RateLimiter",
    "RawItem",
    "RecentWindowLookup",
    "Source",
    "SourceConfig",
    "SourceNotFoundError",
    "SourceRegistry",
    "StorageError",
    "classify",
    "fingerprint",
]
