"""Repository layer for data access operations."""

import uuid
from collections.abc import Callable
from contextlib import AbstractAsyncContextManager
from datetime import datetime, timezone

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from regintel.db.models import IngestionRun, RegulatoryUpdate
from regintel.db.session import get_session
from regintel.ingestion.errors import DuplicateError, StorageError
from regintel.logging import get_logger
from regintel.schemas import NormalizedUpdate, SyncStats

logger = get_logger(__name__)


class RegulatoryUpdateRepository:
    """Repository for regulatory update rows."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def create(self, update: NormalizedUpdate) -> RegulatoryUpdate:
        """Insert an update; raises DuplicateError if its id or fingerprint exists."""
        row = RegulatoryUpdate.from_update(update)
        self.session.add(row)
        try:
            await self.session.flush()
        except IntegrityError as e:
            raise DuplicateError(update.id) from e
        return row

    async def get(self, update_id: str) -> RegulatoryUpdate | None:
        result = await self.session.execute(
            select(RegulatoryUpdate).where(RegulatoryUpdate.id == update_id)
        )
        return result.scalar_one_or_none()

    async def get_recent(self, limit: int | None = None) -> list[RegulatoryUpdate]:
        """Most recently published first."""
        query = select(RegulatoryUpdate).order_by(RegulatoryUpdate.published_at.desc())
        if limit is not None:
            query = query.limit(limit)
        result = await self.session.execute(query)
        return list(result.scalars().all())

    async def get_fingerprints(self, source_id: str) -> set[str]:
        result = await self.session.execute(
            select(RegulatoryUpdate.fingerprint).where(RegulatoryUpdate.source_id == source_id)
        )
        return set(result.scalars().all())

    async def get_last_ingested(self) -> dict[str, datetime]:
        """Latest ingestion time per source id."""
        result = await self.session.execute(
            select(RegulatoryUpdate.source_id, func.max(RegulatoryUpdate.ingested_at))
            .group_by(RegulatoryUpdate.source_id)
        )
        return {source_id: ingested_at for source_id, ingested_at in result.all()}


class IngestionRunRepository:
    """Repository for ingestion run bookkeeping."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def create(self, trigger: str = "full", config_hash: str | None = None) -> IngestionRun:
        run = IngestionRun(trigger=trigger, config_hash=config_hash, status="running")
        self.session.add(run)
        await self.session.flush()
        return run

    async def complete(
        self,
        run_id: uuid.UUID,
        stats: SyncStats,
        error_message: str | None = None,
    ) -> None:
        """Mark a run as completed or failed and store its counters."""
        await self.session.execute(
            update(IngestionRun)
            .where(IngestionRun.id == run_id)
            .values(
                status="failed" if error_message else "completed",
                completed_at=datetime.now(timezone.utc),
                duration_seconds=stats.duration_seconds,
                sources_processed=stats.sources_processed,
                sources_failed=stats.sources_failed,
                articles_extracted=stats.articles_extracted,
                duplicates_skipped=stats.duplicates_skipped,
                errors=stats.errors,
                error_message=error_message,
            )
        )

    async def get_recent_runs(self, limit: int = 10) -> list[IngestionRun]:
        result = await self.session.execute(
            select(IngestionRun).order_by(IngestionRun.started_at.desc()).limit(limit)
        )
        return list(result.scalars().all())


SessionFactory = Callable[[], AbstractAsyncContextManager[AsyncSession]]


class SqlPersistenceGateway:
    """
    PersistenceGateway backed by PostgreSQL.

    Each call runs in its own session, so one failed insert never rolls
    back updates stored by other workers. Driver and connection errors
    surface as StorageError.
    """

    def __init__(self, session_factory: SessionFactory = get_session) -> None:
        self._session_factory = session_factory

    async def create_regulatory_update(self, update: NormalizedUpdate) -> str:
        try:
            async with self._session_factory() as session:
                await RegulatoryUpdateRepository(session).create(update)
        except DuplicateError:
            raise
        except (SQLAlchemyError, OSError) as e:
            raise StorageError(f"Failed to store update {update.id}: {e}") from e
        return update.id

    async def list_all_updates(self, limit: int | None = None) -> list[NormalizedUpdate]:
        try:
            async with self._session_factory() as session:
                rows = await RegulatoryUpdateRepository(session).get_recent(limit)
                return [row.to_update() for row in rows]
        except (SQLAlchemyError, OSError) as e:
            raise StorageError(f"Failed to list updates: {e}") from e

    async def list_fingerprints(self, source_id: str) -> set[str]:
        try:
            async with self._session_factory() as session:
                return await RegulatoryUpdateRepository(session).get_fingerprints(source_id)
        except (SQLAlchemyError, OSError) as e:
            raise StorageError(f"Failed to load fingerprints for {source_id}: {e}") from e
