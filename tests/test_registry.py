"""Tests for the source registry and its configuration loading."""

from datetime import datetime, timedelta, timezone

import pytest

from regintel.ingestion.base import Source
from regintel.ingestion.errors import SourceNotFoundError
from regintel.ingestion.registry import DEFAULT_SOURCES, SourceRegistry


class FakeClock:
    def __init__(self, start: datetime):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock(datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc))


class TestSourceRegistry:
    """Tests for SourceRegistry state handling."""

    def test_rejects_duplicate_ids(self, make_source):
        with pytest.raises(ValueError):
            SourceRegistry([make_source("a"), make_source("a")])

    def test_get_unknown_raises(self, make_source):
        """Test unknown ids raise SourceNotFoundError, which is also a KeyError."""
        registry = SourceRegistry([make_source("a")])

        with pytest.raises(SourceNotFoundError) as exc_info:
            registry.get("missing")
        assert isinstance(exc_info.value, KeyError)
        assert "missing" in str(exc_info.value)

    def test_active_sources_and_min_interval(self, make_source):
        registry = SourceRegistry([
            make_source("a", poll_interval_minutes=120),
            make_source("b", poll_interval_minutes=45),
            make_source("c", poll_interval_minutes=5, active=False),
        ])

        assert [s.id for s in registry.active_sources()] == ["a", "b"]
        assert registry.min_poll_interval() == 45

    def test_is_due(self, make_source, clock: FakeClock):
        """Test the polling interval gate."""
        source = make_source("a", poll_interval_minutes=60)
        registry = SourceRegistry([source], clock=clock)

        assert registry.is_due(source)

        source.last_checked_at = clock.now
        clock.advance(minutes=59)
        assert not registry.is_due(source)

        clock.advance(minutes=1)
        assert registry.is_due(source)

    @pytest.mark.asyncio
    async def test_claim_is_exclusive(self, make_source):
        """Test a source cannot be claimed twice while in flight."""
        registry = SourceRegistry([make_source("a")])

        assert await registry.claim("a")
        assert not await registry.claim("a")
        assert registry.get("a").status == "running"

        await registry.release("a")
        assert await registry.claim("a")

    @pytest.mark.asyncio
    async def test_complete_records_attempt(self, make_source, clock: FakeClock):
        """Test completion stamps last_checked_at and status, even for failures."""
        registry = SourceRegistry([make_source("a")], clock=clock)
        await registry.claim("a")
        await registry.complete("a", "error", "HTTP 500")

        source = registry.get("a")
        assert source.last_checked_at == clock.now
        assert source.status == "error"
        assert source.last_error == "HTTP 500"
        assert not registry.is_in_flight("a")

    def test_get_status(self, make_source):
        registry = SourceRegistry([make_source("a", region="Germany", authority_name="BfArM")])
        [status] = registry.get_status()

        assert status.id == "a"
        assert status.authority == "BfArM"
        assert status.region == "Germany"
        assert status.status == "idle"
        assert status.last_checked_at is None


class TestFromConfig:
    """Tests for building a registry from YAML."""

    def test_missing_file_uses_defaults(self, tmp_path):
        registry = SourceRegistry.from_config(tmp_path / "absent.yml")

        assert len(registry) == len(DEFAULT_SOURCES)
        assert "fda-main" in registry
        assert registry.get("mhra-main").authority_name == "MHRA"
        assert registry.get("medtech-dive").kind == "html"

    def test_loads_yaml(self, tmp_path):
        """Test sources and settings are read from the file."""
        config = tmp_path / "sources.yml"
        config.write_text(
            "settings:\n"
            "  default_poll_interval_minutes: 90\n"
            "sources:\n"
            "  - id: bfarm-main\n"
            "    name: BfArM Aktuelles\n"
            "    url: https://www.bfarm.de/rss.xml\n"
            "    authority: BfArM\n"
            "    region: Germany\n"
            "  - id: newsletter\n"
            "    name: Newsletter\n"
            "    url: https://example.com/news\n"
            "    kind: html\n"
            "    selectors: ['.news-item']\n"
            "    poll_interval_minutes: 240\n"
            "    active: false\n"
        )
        registry = SourceRegistry.from_config(config)

        bfarm = registry.get("bfarm-main")
        assert bfarm.poll_interval_minutes == 90
        assert bfarm.language == "de"
        assert bfarm.update_type == "RSS Update"

        newsletter = registry.get("newsletter")
        assert newsletter.kind == "html"
        assert newsletter.selectors == [".news-item"]
        assert newsletter.authority_name == "Newsletter"
        assert newsletter.update_type == "Newsletter Article"
        assert not newsletter.active

    def test_invalid_entry(self, tmp_path):
        config = tmp_path / "sources.yml"
        config.write_text("sources:\n  - id: broken\n    name: Broken\n")

        with pytest.raises(ValueError):
            SourceRegistry.from_config(config)

    def test_unknown_kind(self):
        with pytest.raises(ValueError):
            Source.from_dict({"id": "x", "name": "X", "url": "https://x", "kind": "pdf"})
