"""Base classes and schemas for the ingestion module."""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Literal

import yaml

from regintel.logging import get_logger

logger = get_logger(__name__)

SourceKind = Literal["feed", "html"]
SourceState = Literal["idle", "running", "ok", "empty", "error", "skipped"]

GERMAN_SPEAKING_REGIONS = {"Germany", "Austria", "Switzerland"}


@dataclass
class Source:
    """A configured upstream feed or page to poll."""

    id: str
    name: str
    url: str
    authority_name: str
    region: str
    kind: SourceKind = "feed"
    active: bool = True
    poll_interval_minutes: int = 60
    last_checked_at: datetime | None = None
    requires_auth: bool = False
    category: str = "regulatory"
    language: str = "en"
    selectors: list[str] = field(default_factory=list)
    max_items: int = 10
    min_title_length: int = 10
    status: SourceState = "idle"
    last_error: str | None = None

    @property
    def update_type(self) -> str:
        return "RSS Update" if self.kind == "feed" else "Newsletter Article"

    @classmethod
    def from_dict(cls, data: dict[str, Any], default_interval: int = 60) -> "Source":
        """Build a source from one YAML entry."""
        missing = [key for key in ("id", "name", "url") if not data.get(key)]
        if missing:
            raise ValueError(f"Source entry missing required fields: {', '.join(missing)}")

        region = data.get("region", "Global")
        kind = data.get("kind", "feed")
        if kind not in ("feed", "html"):
            raise ValueError(f"Unknown source kind for {data['id']}: {kind}")

        return cls(
            id=str(data["id"]),
            name=data["name"],
            url=data["url"],
            authority_name=data.get("authority", data["name"]),
            region=region,
            kind=kind,
            active=bool(data.get("active", True)),
            poll_interval_minutes=int(data.get("poll_interval_minutes", default_interval)),
            requires_auth=bool(data.get("requires_auth", False)),
            category=data.get("category", "regulatory"),
            language=data.get("language", "de" if region in GERMAN_SPEAKING_REGIONS else "en"),
            selectors=list(data.get("selectors", [])),
            max_items=int(data.get("max_items", 10)),
            min_title_length=int(data.get("min_title_length", 10)),
        )


@dataclass
class RawItem:
    """One upstream entry before classification and deduplication."""

    title: str
    link: str = ""
    description: str = ""
    published_at_raw: str = ""
    published_at: datetime | None = None
    guid: str = ""
    categories: list[str] = field(default_factory=list)
    author: str | None = None


@dataclass
class SourceConfig:
    """Source catalogue loaded from YAML."""

    sources: list[dict[str, Any]] = field(default_factory=list)
    settings: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def load(cls, config_path: str | Path | None = None) -> "SourceConfig | None":
        """Load configuration from a YAML file, or None if it does not exist."""
        if config_path is None:
            # Default to config/sources.yml relative to project root
            config_path = Path(__file__).parent.parent.parent.parent / "config" / "sources.yml"

        config_path = Path(config_path)

        if not config_path.exists():
            logger.warning("Source config not found", path=str(config_path))
            return None

        with open(config_path) as f:
            data = yaml.safe_load(f) or {}

        return cls(
            sources=data.get("sources", []),
            settings=data.get("settings", {}),
        )


class BaseParser(ABC):
    """Turns a raw response body into RawItems."""

    @abstractmethod
    def parse(self, raw_body: str) -> list[RawItem]:
        """Parse a body into items; never raises for malformed input."""
        pass
