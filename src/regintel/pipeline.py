"""Run orchestration: wires the coordinator to storage and records ingestion runs."""

import asyncio
import hashlib

from regintel.config import Settings, get_settings
from regintel.db.gateway import InMemoryGateway, PersistenceGateway
from regintel.db.repositories import (
    IngestionRunRepository,
    RegulatoryUpdateRepository,
    SqlPersistenceGateway,
)
from regintel.db.session import get_session
from regintel.ingestion.coordinator import IngestionCoordinator
from regintel.ingestion.dedup import Deduplicator, FingerprintIndexLookup, RecentWindowLookup
from regintel.ingestion.registry import SourceRegistry
from regintel.logging import get_logger
from regintel.schemas import SourceStatus, SyncStats

logger = get_logger(__name__)


def compute_config_hash(registry: SourceRegistry) -> str:
    """Hash of the source catalogue, recorded with each run for reproducibility."""
    parts = sorted(
        f"{s.id}|{s.url}|{s.kind}|{s.poll_interval_minutes}|{s.active}"
        for s in registry.all()
    )
    return hashlib.sha256("\n".join(parts).encode()).hexdigest()[:16]


def load_registry(settings: Settings | None = None) -> SourceRegistry:
    settings = settings or get_settings()
    return SourceRegistry.from_config(
        settings.sources_config_path,
        default_interval=settings.default_poll_interval_minutes,
    )


def build_coordinator(
    gateway: PersistenceGateway,
    registry: SourceRegistry | None = None,
    settings: Settings | None = None,
) -> IngestionCoordinator:
    """Coordinator with the dedup strategy chosen in settings."""
    settings = settings or get_settings()
    registry = registry or load_registry(settings)

    if settings.dedup_strategy == "recent":
        lookup = RecentWindowLookup(gateway, window=settings.dedup_window)
    else:
        lookup = FingerprintIndexLookup(gateway)

    return IngestionCoordinator(
        registry=registry,
        gateway=gateway,
        deduplicator=Deduplicator(lookup),
        settings=settings,
    )


async def run_sync(source_id: str | None = None, dry_run: bool = False) -> SyncStats:
    """
    Run one sync, either for every active source or a single one.

    With ``dry_run`` updates go to an in-memory gateway and no run record is
    written. Otherwise an IngestionRun row is opened before the sync and
    completed with its stats afterwards, including on failure.

    Args:
        source_id: Only sync this source
        dry_run: Keep results in memory

    Returns:
        SyncStats of the run
    """
    settings = get_settings()
    registry = load_registry(settings)
    trigger = f"source:{source_id}" if source_id else "full"

    if dry_run:
        gateway = InMemoryGateway()
        coordinator = build_coordinator(gateway, registry, settings)
        try:
            stats = await _execute(coordinator, source_id)
        finally:
            await coordinator.aclose()
        logger.info("Dry run complete", stored_in_memory=len(gateway), summary=stats.summary())
        return stats

    coordinator = build_coordinator(SqlPersistenceGateway(), registry, settings)
    async with get_session() as session:
        run = await IngestionRunRepository(session).create(
            trigger=trigger,
            config_hash=compute_config_hash(registry),
        )
        run_id = run.id

    logger.info("Starting sync", run_id=str(run_id), trigger=trigger)
    try:
        stats = await _execute(coordinator, source_id)
    except Exception as e:
        async with get_session() as session:
            await IngestionRunRepository(session).complete(run_id, SyncStats(), error_message=str(e))
        raise
    finally:
        await coordinator.aclose()

    async with get_session() as session:
        await IngestionRunRepository(session).complete(run_id, stats)

    logger.info("Sync complete", run_id=str(run_id), summary=stats.summary())
    return stats


async def _execute(coordinator: IngestionCoordinator, source_id: str | None) -> SyncStats:
    if source_id:
        return await coordinator.run_source_sync(source_id)
    return await coordinator.run_full_sync()


async def run_monitor(interval_minutes: int | None = None, dry_run: bool = False) -> None:
    """Run continuous monitoring until cancelled."""
    gateway: PersistenceGateway = InMemoryGateway() if dry_run else SqlPersistenceGateway()
    coordinator = build_coordinator(gateway)
    task = coordinator.start_continuous_monitoring(interval_minutes)
    try:
        await task
    except asyncio.CancelledError:
        logger.info("Monitoring cancelled")
    finally:
        await coordinator.aclose()


async def source_status(session_factory=get_session) -> list[SourceStatus]:
    """
    Configured sources with the time each one last stored an update.

    Polling state lives in the running process, so this reads the
    ingestion history from the database instead.
    """
    statuses = load_registry().get_status()
    async with session_factory() as session:
        last_ingested = await RegulatoryUpdateRepository(session).get_last_ingested()
    return [
        status.model_copy(update={"last_ingested_at": last_ingested.get(status.id)})
        for status in statuses
    ]
