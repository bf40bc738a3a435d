"""Pydantic schemas for normalized updates and sync reporting."""

from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class Priority(str, Enum):
    """Priority assigned by the classifier."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class NormalizedUpdate(BaseModel):
    """The canonical, persisted ingestion record."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(..., description="Deterministic id derived from source id and fingerprint")
    title: str
    content: str
    source_name: str
    region: str
    authority: str
    update_type: str
    priority: Priority
    published_at: datetime
    fingerprint: str
    url: str = ""
    categories: tuple[str, ...] = Field(default_factory=tuple)
    metadata: dict[str, Any] = Field(default_factory=dict)

    @property
    def source_id(self) -> str | None:
        return self.metadata.get("source_id")


class SyncStats(BaseModel):
    """Aggregate counters for one sync run."""

    sources_processed: int = 0
    sources_failed: int = 0
    sources_skipped: int = 0
    sources_abandoned: int = 0
    items_found: int = 0
    articles_extracted: int = 0
    duplicates_skipped: int = 0
    errors: int = 0
    processed_source_ids: list[str] = Field(default_factory=list)
    failed_source_ids: list[str] = Field(default_factory=list)
    started_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    finished_at: datetime | None = None

    @property
    def duration_seconds(self) -> float:
        if self.finished_at is None:
            return 0.0
        return (self.finished_at - self.started_at).total_seconds()

    def merge(self, other: "SyncStats") -> None:
        """Add another run's counters into this one."""
        self.sources_processed += other.sources_processed
        self.sources_failed += other.sources_failed
        self.sources_skipped += other.sources_skipped
        self.sources_abandoned += other.sources_abandoned
        self.items_found += other.items_found
        self.articles_extracted += other.articles_extracted
        self.duplicates_skipped += other.duplicates_skipped
        self.errors += other.errors
        self.processed_source_ids.extend(other.processed_source_ids)
        self.failed_source_ids.extend(other.failed_source_ids)

    def summary(self) -> str:
        text = (
            f"{self.sources_processed} sources processed, "
            f"{self.sources_failed} failed, "
            f"{self.articles_extracted} items ingested, "
            f"{self.duplicates_skipped} duplicates skipped"
        )
        if self.sources_abandoned:
            text += f", {self.sources_abandoned} abandoned at deadline"
        return text


class SourceStatus(BaseModel):
    """Operator-facing view of one source."""

    id: str
    name: str
    authority: str
    region: str
    active: bool
    poll_interval_minutes: int
    last_checked_at: datetime | None = None
    last_ingested_at: datetime | None = None
    status: str = "idle"
    last_error: str | None = None
