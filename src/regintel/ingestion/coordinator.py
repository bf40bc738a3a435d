"""Ingestion coordinator - runs fetch, parse, classify, dedup and persist per source."""

import asyncio
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import TYPE_CHECKING

from tenacity import AsyncRetrying, retry_if_exception, stop_after_attempt, wait_exponential

from regintel.config import Settings, get_settings
from regintel.ingestion.base import BaseParser, Source, SourceState
from regintel.ingestion.classifier import classify
from regintel.ingestion.dedup import Deduplicator, FingerprintIndexLookup, fingerprint
from regintel.ingestion.errors import DuplicateError, FetchError, ParseError, StorageError
from regintel.ingestion.feed_parser import FeedParser
from regintel.ingestion.fetcher import Fetcher, FetchResult
from regintel.ingestion.html_parser import HtmlParser
from regintel.ingestion.normalize import build_update
from regintel.ingestion.rate_limiter import RateLimiter
from regintel.ingestion.registry import SourceRegistry
from regintel.logging import get_logger
from regintel.schemas import SourceStatus, SyncStats

if TYPE_CHECKING:
    from regintel.db.gateway import PersistenceGateway

logger = get_logger(__name__)


class CycleState(str, Enum):
    """States of one source cycle."""

    PENDING = "pending"
    FETCHING = "fetching"
    PARSING = "parsing"
    CLASSIFYING = "classifying"
    DEDUPING = "deduping"
    PERSISTING = "persisting"
    DONE = "done"
    FAILED = "failed"
    CANCELLED = "cancelled"


@dataclass
class SourceCycle:
    """Outcome of processing one source once."""

    source_id: str
    state: CycleState = CycleState.PENDING
    skipped: bool = False
    items_found: int = 0
    extracted: int = 0
    duplicates: int = 0
    storage_errors: int = 0
    error: str | None = None

    def fail(self, error: str) -> None:
        self.state = CycleState.FAILED
        self.error = error

    @property
    def registry_status(self) -> SourceState:
        if self.state is CycleState.FAILED:
            return "error"
        if self.items_found == 0:
            return "empty"
        return "ok"


def build_parser(source: Source) -> BaseParser:
    """Parser strategy for a source kind."""
    if source.kind == "html":
        return HtmlParser(
            base_url=source.url,
            selectors=source.selectors or None,
            min_title_length=source.min_title_length,
            max_items=source.max_items,
        )
    return FeedParser()


class IngestionCoordinator:
    """
    Orchestrates ingestion cycles across all registered sources.

    Sources are pulled from a queue by a bounded pool of workers. Every
    outbound request passes the shared rate limiter. A failure in one
    source's cycle is recorded in the run stats and never stops the others.
    """

    def __init__(
        self,
        registry: SourceRegistry,
        gateway: "PersistenceGateway",
        fetcher: Fetcher | None = None,
        rate_limiter: RateLimiter | None = None,
        deduplicator: Deduplicator | None = None,
        settings: Settings | None = None,
        parser_factory: Callable[[Source], BaseParser] = build_parser,
    ):
        self.settings = settings or get_settings()
        self.registry = registry
        self.gateway = gateway
        self.fetcher = fetcher or Fetcher(
            user_agent=self.settings.user_agent,
            timeout=self.settings.request_timeout,
        )
        self.rate_limiter = rate_limiter or RateLimiter(self.settings.min_request_delay_seconds)
        self.deduplicator = deduplicator or Deduplicator(FingerprintIndexLookup(gateway))
        self.parser_factory = parser_factory
        self.worker_count = self.settings.worker_count

        self._run_lock = asyncio.Lock()
        self._monitor_task: asyncio.Task | None = None

    # ===== Trigger surface =====

    async def run_full_sync(self) -> SyncStats:
        """Run every active source once, regardless of polling intervals."""
        return await self.extract_all_sources(
            respect_intervals=False,
            deadline_seconds=self.settings.run_deadline_seconds,
        )

    async def run_source_sync(self, source_id: str) -> SyncStats:
        """Run one source now; raises SourceNotFoundError for unknown ids."""
        source = self.registry.get(source_id)
        stats = SyncStats()
        if not source.active:
            logger.info("Syncing inactive source on request", source=source.id)

        if source.requires_auth:
            await self._skip_auth_source(source)
            stats.sources_skipped += 1
        else:
            cycle = await self._process_source(source)
            self._record(stats, cycle)

        stats.finished_at = datetime.now(timezone.utc)
        return stats

    def get_source_status(self) -> list[SourceStatus]:
        return self.registry.get_status()

    # ===== Runs =====

    async def extract_all_sources(
        self,
        respect_intervals: bool = False,
        deadline_seconds: float | None = None,
    ) -> SyncStats:
        """
        Run every active source once and return aggregate stats.

        Args:
            respect_intervals: Skip sources whose polling interval has not elapsed
            deadline_seconds: Abandon in-flight cycles after this many seconds

        Returns:
            SyncStats with per-run totals
        """
        stats = SyncStats()
        if self._run_lock.locked():
            logger.warning("Sync already in progress, skipping run")
            stats.finished_at = datetime.now(timezone.utc)
            return stats

        async with self._run_lock:
            queue: asyncio.Queue[Source] = asyncio.Queue()
            now = self.registry.now()

            for source in self.registry.active_sources():
                if respect_intervals and not self.registry.is_due(source, now):
                    logger.debug("Source not due", source=source.id)
                    stats.sources_skipped += 1
                    continue
                if source.requires_auth:
                    await self._skip_auth_source(source)
                    stats.sources_skipped += 1
                    continue
                queue.put_nowait(source)

            queued = queue.qsize()
            logger.info(
                "Starting ingestion run",
                queued=queued,
                skipped=stats.sources_skipped,
                workers=min(self.worker_count, queued),
            )

            if queued:
                workers = [
                    asyncio.create_task(self._worker(queue, stats))
                    for _ in range(min(self.worker_count, queued))
                ]
                try:
                    await asyncio.wait_for(asyncio.gather(*workers), timeout=deadline_seconds)
                except asyncio.TimeoutError:
                    finished = stats.sources_processed + stats.sources_failed
                    logger.warning(
                        "Run deadline reached, abandoning in-flight sources",
                        deadline_seconds=deadline_seconds,
                        abandoned=queued - finished,
                    )

            stats.finished_at = datetime.now(timezone.utc)
            logger.info(
                "Ingestion run complete",
                sources_processed=stats.sources_processed,
                sources_failed=stats.sources_failed,
                sources_skipped=stats.sources_skipped,
                sources_abandoned=stats.sources_abandoned,
                articles_extracted=stats.articles_extracted,
                duplicates_skipped=stats.duplicates_skipped,
                errors=stats.errors,
                duration=f"{stats.duration_seconds:.2f}s",
            )
            return stats

    async def _worker(self, queue: asyncio.Queue[Source], stats: SyncStats) -> None:
        while True:
            try:
                source = queue.get_nowait()
            except asyncio.QueueEmpty:
                return
            cycle = SourceCycle(source_id=source.id)
            try:
                await self._process_source(source, cycle)
            finally:
                # Runs on cancellation too, so rows already stored are counted
                self._record(stats, cycle)

    async def _skip_auth_source(self, source: Source) -> None:
        logger.info("Skipping source that requires authentication", source=source.id)
        await self.registry.release(source.id, status="skipped")

    def _record(self, stats: SyncStats, cycle: SourceCycle) -> None:
        if cycle.skipped:
            stats.sources_skipped += 1
            return
        if cycle.state is CycleState.PENDING:
            # Cancelled before the source was claimed
            return

        stats.items_found += cycle.items_found
        stats.articles_extracted += cycle.extracted
        stats.duplicates_skipped += cycle.duplicates
        stats.errors += cycle.storage_errors

        if cycle.state is CycleState.CANCELLED:
            stats.sources_abandoned += 1
        elif cycle.state is CycleState.FAILED:
            stats.sources_failed += 1
            stats.errors += 1
            stats.failed_source_ids.append(cycle.source_id)
        else:
            stats.sources_processed += 1
            stats.processed_source_ids.append(cycle.source_id)

    # ===== One source cycle =====

    async def _process_source(self, source: Source, cycle: SourceCycle | None = None) -> SourceCycle:
        cycle = cycle or SourceCycle(source_id=source.id)
        if not await self.registry.claim(source.id):
            logger.info("Source cycle already in flight, skipping", source=source.id)
            cycle.skipped = True
            return cycle

        finished = False
        try:
            await self._run_cycle(source, cycle)
            finished = True
        except Exception as e:
            logger.exception("Unexpected error in source cycle", source=source.id)
            cycle.fail(f"{type(e).__name__}: {e}")
            finished = True
        finally:
            if finished:
                await self.registry.complete(source.id, cycle.registry_status, cycle.error)
            else:
                # Cancelled mid-cycle: last_checked_at untouched, the source stays due
                cycle.state = CycleState.CANCELLED
                await self.registry.release(source.id)

        return cycle

    async def _run_cycle(self, source: Source, cycle: SourceCycle) -> None:
        log = logger.bind(source=source.id)

        cycle.state = CycleState.FETCHING
        try:
            result = await self._fetch(source)
        except FetchError as e:
            log.warning("Fetch failed", cause=e.cause, status_code=e.status_code, error=str(e))
            cycle.fail(str(e))
            return

        cycle.state = CycleState.PARSING
        try:
            items = self.parser_factory(source).parse(result.body)
        except ParseError as e:
            log.warning("Parse failed", error=str(e))
            cycle.fail(str(e))
            return

        cycle.items_found = len(items)
        if not items:
            log.info("No articles found", kind=source.kind, url=source.url)
            cycle.state = CycleState.DONE
            return

        now = self.registry.now()
        for item in items:
            cycle.state = CycleState.CLASSIFYING
            classification = classify(item, source)

            cycle.state = CycleState.DEDUPING
            update = build_update(item, source, classification, fingerprint(item), now)
            if await self.deduplicator.is_duplicate(update):
                log.debug("Duplicate skipped", title=item.title[:80])
                cycle.duplicates += 1
                continue

            cycle.state = CycleState.PERSISTING
            try:
                await self.gateway.create_regulatory_update(update)
            except DuplicateError:
                log.debug("Duplicate rejected by storage", update_id=update.id)
                self.deduplicator.accept(update)
                cycle.duplicates += 1
                continue
            except StorageError as e:
                log.error("Failed to store update", update_id=update.id, error=str(e))
                cycle.storage_errors += 1
                continue

            self.deduplicator.accept(update)
            cycle.extracted += 1

        cycle.state = CycleState.DONE
        log.info(
            "Source cycle complete",
            found=cycle.items_found,
            extracted=cycle.extracted,
            duplicates=cycle.duplicates,
            storage_errors=cycle.storage_errors,
        )

    async def _fetch(self, source: Source) -> FetchResult:
        """Fetch with retries on timeouts and transport errors, never on HTTP status."""
        retrying = AsyncRetrying(
            stop=stop_after_attempt(self.settings.fetch_attempts),
            wait=wait_exponential(multiplier=self.settings.retry_backoff_seconds, max=10),
            retry=retry_if_exception(lambda e: isinstance(e, FetchError) and e.retryable),
            reraise=True,
        )
        async for attempt in retrying:
            with attempt:
                await self.rate_limiter.acquire()
                return await self.fetcher.fetch(source.url, kind=source.kind)
        raise AssertionError("unreachable")  # pragma: no cover

    # ===== Continuous monitoring =====

    def start_continuous_monitoring(self, interval_minutes: int | None = None) -> asyncio.Task:
        """
        Start a background loop running all due sources every interval.

        The interval must not exceed the smallest active polling interval,
        otherwise per-source gating would be meaningless.
        """
        interval = interval_minutes or self.settings.monitor_interval_minutes
        smallest = self.registry.min_poll_interval()
        if smallest is not None and interval > smallest:
            raise ValueError(
                f"Monitoring interval {interval}m exceeds smallest poll interval {smallest}m"
            )

        if self._monitor_task is not None and not self._monitor_task.done():
            logger.warning("Continuous monitoring already running")
            return self._monitor_task

        logger.info("Starting continuous monitoring", interval_minutes=interval)
        self._monitor_task = asyncio.create_task(self._monitor_loop(interval))
        return self._monitor_task

    async def _monitor_loop(self, interval_minutes: int) -> None:
        while True:
            try:
                await self.extract_all_sources(
                    respect_intervals=True,
                    deadline_seconds=self.settings.run_deadline_seconds,
                )
            except Exception:
                logger.exception("Monitoring run failed")
            await asyncio.sleep(interval_minutes * 60)

    async def stop_monitoring(self) -> None:
        """Stop the monitoring loop if it is running."""
        if self._monitor_task is None:
            return
        self._monitor_task.cancel()
        try:
            await self._monitor_task
        except asyncio.CancelledError:
            pass
        self._monitor_task = None
        logger.info("Continuous monitoring stopped")

    @property
    def is_monitoring(self) -> bool:
        return self._monitor_task is not None and not self._monitor_task.done()

    async def aclose(self) -> None:
        await self.stop_monitoring()
        await self.fetcher.aclose()
