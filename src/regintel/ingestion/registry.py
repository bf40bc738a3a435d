"""Source registry - owns the source catalogue and its polling state."""

import asyncio
from collections.abc import Callable, Iterable
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any

from regintel.ingestion.base import Source, SourceConfig, SourceState
from regintel.ingestion.errors import SourceNotFoundError
from regintel.logging import get_logger
from regintel.schemas import SourceStatus

logger = get_logger(__name__)

# Used when no sources.yml is present
DEFAULT_SOURCES: list[dict[str, Any]] = [
    {
        "id": "fda-main",
        "name": "FDA News & Updates",
        "url": "https://www.fda.gov/about-fda/contact-fda/stay-informed/rss-feeds/press-releases/rss.xml",
        "authority": "FDA",
        "region": "United States",
        "poll_interval_minutes": 60,
    },
    {
        "id": "fda-medical-devices",
        "name": "FDA Medical Device Safety",
        "url": "https://www.fda.gov/about-fda/contact-fda/stay-informed/rss-feeds/medwatch/rss.xml",
        "authority": "FDA",
        "region": "United States",
        "category": "safety",
        "poll_interval_minutes": 60,
    },
    {
        "id": "ema-main",
        "name": "EMA News & Updates",
        "url": "https://www.ema.europa.eu/en/news.xml",
        "authority": "EMA",
        "region": "European Union",
        "poll_interval_minutes": 120,
    },
    {
        "id": "bfarm-main",
        "name": "BfArM Aktuelles",
        "url": "https://www.bfarm.de/SiteGlobals/Functions/RSSFeed/DE/Pressemitteilungen/RSSNewsfeed.xml",
        "authority": "BfArM",
        "region": "Germany",
        "poll_interval_minutes": 180,
    },
    {
        "id": "swissmedic-main",
        "name": "Swissmedic Updates",
        "url": "https://www.swissmedic.ch/swissmedic/de/home/news/rss-feed/_jcr_content/contentPar/rssfeed.rss.xml",
        "authority": "Swissmedic",
        "region": "Switzerland",
        "poll_interval_minutes": 180,
    },
    {
        "id": "mhra-main",
        "name": "MHRA Updates",
        "url": "https://www.gov.uk/government/organisations/medicines-and-healthcare-products-regulatory-agency.atom",
        "authority": "MHRA",
        "region": "United Kingdom",
        "poll_interval_minutes": 120,
    },
    {
        "id": "tga-safety",
        "name": "TGA Safety Alerts",
        "url": "https://www.tga.gov.au/feeds/alert/safety-alerts.xml",
        "authority": "TGA",
        "region": "Australia",
        "category": "safety",
        "poll_interval_minutes": 120,
    },
    {
        "id": "medtech-dive",
        "name": "MedTech Dive",
        "url": "https://www.medtechdive.com/",
        "authority": "MedTech Dive",
        "region": "Global",
        "kind": "html",
        "category": "industry_newsletter",
        "selectors": [".feed__item", ".story-item", "article", ".news-item"],
        "poll_interval_minutes": 240,
    },
    {
        "id": "medtech-europe",
        "name": "MedTech Europe News",
        "url": "https://www.medtecheurope.org/news-and-events/news/",
        "authority": "MedTech Europe",
        "region": "European Union",
        "kind": "html",
        "category": "industry_newsletter",
        "selectors": [".news-item", ".post", "article", ".content-item"],
        "min_title_length": 15,
        "poll_interval_minutes": 240,
    },
    {
        "id": "medtech-europe-monthly",
        "name": "MedTech Europe Monthly",
        "url": "https://www.medtecheurope.org/medtech-views/newsletters/",
        "authority": "MedTech Europe",
        "region": "European Union",
        "kind": "html",
        "category": "regulatory_newsletter",
        "requires_auth": True,
        "poll_interval_minutes": 1440,
    },
]


class SourceRegistry:
    """
    Holds every configured source and its mutable polling state.

    ``last_checked_at`` and status fields are only changed through this
    object, under its lock. A source that is mid-cycle is marked in flight
    and cannot be claimed again until its cycle finishes.
    """

    def __init__(
        self,
        sources: Iterable[Source],
        clock: Callable[[], datetime] | None = None,
    ):
        self._sources: dict[str, Source] = {}
        for source in sources:
            if source.id in self._sources:
                raise ValueError(f"Duplicate source id: {source.id}")
            self._sources[source.id] = source
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._lock = asyncio.Lock()
        self._in_flight: set[str] = set()

    @classmethod
    def from_config(
        cls,
        config_path: str | Path | None = None,
        default_interval: int = 60,
        clock: Callable[[], datetime] | None = None,
    ) -> "SourceRegistry":
        """Build a registry from sources.yml, falling back to the built-in catalogue."""
        config = SourceConfig.load(config_path)
        entries = config.sources if config is not None else DEFAULT_SOURCES
        if config is not None:
            default_interval = config.settings.get("default_poll_interval_minutes", default_interval)

        sources = [Source.from_dict(entry, default_interval) for entry in entries]
        logger.info(
            "Source registry loaded",
            sources=len(sources),
            active=sum(1 for s in sources if s.active),
            from_file=config is not None,
        )
        return cls(sources, clock=clock)

    def now(self) -> datetime:
        return self._clock()

    def get(self, source_id: str) -> Source:
        try:
            return self._sources[source_id]
        except KeyError:
            raise SourceNotFoundError(source_id) from None

    def all(self) -> list[Source]:
        return list(self._sources.values())

    def active_sources(self) -> list[Source]:
        return [s for s in self._sources.values() if s.active]

    def min_poll_interval(self) -> int | None:
        intervals = [s.poll_interval_minutes for s in self.active_sources()]
        return min(intervals) if intervals else None

    def is_due(self, source: Source, now: datetime | None = None) -> bool:
        """Whether the source's polling interval has elapsed."""
        if source.last_checked_at is None:
            return True
        now = now or self.now()
        return now - source.last_checked_at >= timedelta(minutes=source.poll_interval_minutes)

    async def claim(self, source_id: str) -> bool:
        """Mark a source as running; False if a cycle is already in flight."""
        async with self._lock:
            if source_id in self._in_flight:
                return False
            self._in_flight.add(source_id)
            self._sources[source_id].status = "running"
            return True

    async def complete(
        self,
        source_id: str,
        status: SourceState,
        error: str | None = None,
    ) -> None:
        """Record the end of an attempt, success or failure, and release the source."""
        async with self._lock:
            source = self._sources[source_id]
            source.last_checked_at = self.now()
            source.status = status
            source.last_error = error
            self._in_flight.discard(source_id)

    async def release(self, source_id: str, status: SourceState = "idle") -> None:
        """Release a claim without recording an attempt."""
        async with self._lock:
            self._sources[source_id].status = status
            self._in_flight.discard(source_id)

    def is_in_flight(self, source_id: str) -> bool:
        return source_id in self._in_flight

    def get_status(self) -> list[SourceStatus]:
        return [
            SourceStatus(
                id=s.id,
                name=s.name,
                authority=s.authority_name,
                region=s.region,
                active=s.active,
                poll_interval_minutes=s.poll_interval_minutes,
                last_checked_at=s.last_checked_at,
                status=s.status,
                last_error=s.last_error,
            )
            for s in self._sources.values()
        ]

    def __len__(self) -> int:
        return len(self._sources)

    def __contains__(self, source_id: object) -> bool:
        return source_id in self._sources
