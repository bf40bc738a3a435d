"""Shared fixtures for ingestion tests."""

import asyncio
from collections.abc import Callable

import pytest

from regintel.config import Settings
from regintel.db.gateway import InMemoryGateway
from regintel.ingestion.base import Source
from regintel.ingestion.coordinator import IngestionCoordinator
from regintel.ingestion.errors import FetchError
from regintel.ingestion.fetcher import FetchResult
from regintel.ingestion.rate_limiter import RateLimiter
from regintel.ingestion.registry import SourceRegistry


def rss(*items: str) -> str:
    """Wrap <item> blocks in a minimal RSS 2.0 document."""
    return (
        '<?xml version="1.0" encoding="UTF-8"?>'
        '<rss version="2.0"><channel><title>Test Feed</title>'
        "<link>https://example.com/</link><description>Test</description>"
        + "".join(items)
        + "</channel></rss>"
    )


def rss_item(
    title: str,
    link: str = "",
    guid: str = "",
    description: str = "",
    pub_date: str = "",
) -> str:
    parts = [f"<title>{title}</title>"]
    if link:
        parts.append(f"<link>{link}</link>")
    if guid:
        parts.append(f'<guid isPermaLink="false">{guid}</guid>')
    if description:
        parts.append(f"<description>{description}</description>")
    if pub_date:
        parts.append(f"<pubDate>{pub_date}</pubDate>")
    return "<item>" + "".join(parts) + "</item>"


class FakeFetcher:
    """Fetcher double serving canned bodies or errors by URL."""

    def __init__(self, responses: dict[str, str | Exception] | None = None):
        self.responses = responses or {}
        self.calls: list[str] = []
        self.gates: dict[str, asyncio.Event] = {}

    async def fetch(self, url, headers=None, timeout=None, kind="feed") -> FetchResult:
        self.calls.append(url)
        if url in self.gates:
            await self.gates[url].wait()
        response = self.responses.get(url)
        if response is None:
            raise FetchError(url, "http_status", "Not Found", status_code=404)
        if isinstance(response, Exception):
            raise response
        return FetchResult(body=response, content_type="application/xml", status_code=200, url=url)

    async def aclose(self) -> None:
        pass


@pytest.fixture
def settings() -> Settings:
    """Settings with no request spacing and no retry backoff."""
    return Settings(
        min_request_delay_seconds=0.0,
        retry_backoff_seconds=0.0,
        fetch_attempts=2,
        worker_count=4,
    )


@pytest.fixture
def make_source() -> Callable[..., Source]:
    def _make(source_id: str = "fda-main", **overrides) -> Source:
        values = {
            "id": source_id,
            "name": f"{source_id} feed",
            "url": f"https://example.com/{source_id}.xml",
            "authority_name": "FDA",
            "region": "United States",
        }
        values.update(overrides)
        return Source(**values)

    return _make


@pytest.fixture
def gateway() -> InMemoryGateway:
    return InMemoryGateway()


@pytest.fixture
def make_coordinator(settings: Settings, gateway: InMemoryGateway):
    def _make(sources: list[Source], fetcher: FakeFetcher, **kwargs) -> IngestionCoordinator:
        return IngestionCoordinator(
            registry=kwargs.pop("registry", None) or SourceRegistry(sources),
            gateway=gateway,
            fetcher=fetcher,
            rate_limiter=RateLimiter(0.0),
            settings=kwargs.pop("settings", settings),
            **kwargs,
        )

    return _make
