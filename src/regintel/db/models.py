"""SQLAlchemy models for stored regulatory updates and ingestion runs."""

import uuid
from datetime import datetime
from typing import Any

from sqlalchemy import DateTime, Float, Integer, String, Text, UniqueConstraint, func
from sqlalchemy.dialects import postgresql
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from regintel.schemas import NormalizedUpdate, Priority


class Base(DeclarativeBase):
    pass


class RegulatoryUpdate(Base):
    """One normalized update as persisted by the ingestion pipeline."""

    __tablename__ = "regulatory_updates"
    __table_args__ = (
        UniqueConstraint("source_id", "fingerprint", name="uq_regulatory_updates_source_fingerprint"),
    )

    id: Mapped[str] = mapped_column(postgresql.UUID(as_uuid=False), primary_key=True)
    source_id: Mapped[str] = mapped_column(String(100), index=True)
    fingerprint: Mapped[str] = mapped_column(String(64))
    title: Mapped[str] = mapped_column(String(1000))
    content: Mapped[str] = mapped_column(Text)
    url: Mapped[str] = mapped_column(String(2000), default="")
    source_name: Mapped[str] = mapped_column(String(200))
    authority: Mapped[str] = mapped_column(String(100))
    region: Mapped[str] = mapped_column(String(100))
    update_type: Mapped[str] = mapped_column(String(50))
    priority: Mapped[str] = mapped_column(String(20), index=True)
    categories: Mapped[list[str]] = mapped_column(postgresql.JSONB, default=list)
    published_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), index=True)
    ingested_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    metadata_: Mapped[dict[str, Any] | None] = mapped_column("metadata", postgresql.JSONB, nullable=True)

    @classmethod
    def from_update(cls, update: NormalizedUpdate) -> "RegulatoryUpdate":
        return cls(
            id=update.id,
            source_id=update.source_id or "",
            fingerprint=update.fingerprint,
            title=update.title,
            content=update.content,
            url=update.url,
            source_name=update.source_name,
            authority=update.authority,
            region=update.region,
            update_type=update.update_type,
            priority=update.priority.value,
            categories=list(update.categories),
            published_at=update.published_at,
            metadata_=update.metadata,
        )

    def to_update(self) -> NormalizedUpdate:
        return NormalizedUpdate(
            id=self.id,
            title=self.title,
            content=self.content,
            source_name=self.source_name,
            region=self.region,
            authority=self.authority,
            update_type=self.update_type,
            priority=Priority(self.priority),
            published_at=self.published_at,
            fingerprint=self.fingerprint,
            url=self.url,
            categories=tuple(self.categories or ()),
            metadata=self.metadata_ or {},
        )


class IngestionRun(Base):
    """Bookkeeping row for one sync run."""

    __tablename__ = "ingestion_runs"

    id: Mapped[uuid.UUID] = mapped_column(postgresql.UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    started_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    status: Mapped[str] = mapped_column(String(20), default="running")
    trigger: Mapped[str] = mapped_column(String(50), default="full")
    config_hash: Mapped[str | None] = mapped_column(String(64), nullable=True)
    duration_seconds: Mapped[float | None] = mapped_column(Float, nullable=True)
    sources_processed: Mapped[int] = mapped_column(Integer, default=0)
    sources_failed: Mapped[int] = mapped_column(Integer, default=0)
    articles_extracted: Mapped[int] = mapped_column(Integer, default=0)
    duplicates_skipped: Mapped[int] = mapped_column(Integer, default=0)
    errors: Mapped[int] = mapped_column(Integer, default=0)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
