"""CLI entrypoint for running regulatory content ingestion."""

import argparse
import asyncio
import sys

from regintel.config import get_settings
from regintel.db.session import close_db, init_db
from regintel.ingestion.errors import SourceNotFoundError
from regintel.logging import get_logger, setup_logging
from regintel.pipeline import run_monitor, run_sync, source_status

logger = get_logger(__name__)


async def print_status() -> int:
    """Print the configured catalogue with each source's last stored update."""
    try:
        statuses = await source_status()
    except Exception as e:
        logger.error("Could not read ingestion history", error=str(e))
        return 1
    finally:
        await close_db()

    print("Configured sources (last stored update from the database):")
    for status in statuses:
        stored = status.last_ingested_at.isoformat() if status.last_ingested_at else "never"
        state = "active" if status.active else "inactive"
        print(
            f"{status.id:<28} {status.authority:<16} {status.region:<16} "
            f"{state:<9} every {status.poll_interval_minutes}m  last stored: {stored}"
        )
    return 0


async def run(
    source_id: str | None = None,
    monitor: bool = False,
    dry_run: bool = False,
    debug: bool = False,
) -> int:
    """
    Execute one sync or start continuous monitoring.

    Returns:
        Exit code (0 for success)
    """
    setup_logging(level="DEBUG" if debug else None)
    settings = get_settings()

    logger.info(
        "RegIntel ingestion starting",
        source=source_id,
        monitor=monitor,
        dry_run=dry_run,
        workers=settings.worker_count,
    )

    try:
        if not dry_run:
            # Development convenience; production schemas come from migrations
            await init_db()

        if monitor:
            await run_monitor(dry_run=dry_run)
            return 0

        stats = await run_sync(source_id=source_id, dry_run=dry_run)
        logger.info(
            "Ingestion finished",
            articles_extracted=stats.articles_extracted,
            duplicates_skipped=stats.duplicates_skipped,
            sources_processed=stats.sources_processed,
            errors=stats.errors,
        )
        return 0

    except SourceNotFoundError as e:
        logger.error("Unknown source", source=e.source_id)
        return 2

    except Exception as e:
        logger.error("Ingestion failed", error=str(e))
        if debug:
            raise
        return 1

    finally:
        if not dry_run:
            await close_db()


def main() -> None:
    """CLI entry point."""
    parser = argparse.ArgumentParser(
        description="RegIntel - regulatory content ingestion for medical-device compliance",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  regintel-ingest                      # Sync every active source once
  regintel-ingest --source fda-main    # Sync a single source
  regintel-ingest --monitor            # Keep polling every 30 minutes
  regintel-ingest --status             # List sources and their last stored update
  regintel-ingest --dry-run --debug    # Sync without touching the database
        """,
    )
    parser.add_argument("--source", metavar="ID", help="Only sync the source with this id")
    parser.add_argument("--monitor", action="store_true", help="Run continuous monitoring")
    parser.add_argument("--status", action="store_true", help="Print source status and exit")
    parser.add_argument("--dry-run", action="store_true", help="Keep results in memory, skip the database")
    parser.add_argument("--debug", action="store_true", help="Enable debug logging")

    args = parser.parse_args()

    if args.status:
        setup_logging(level="WARNING")
        sys.exit(asyncio.run(print_status()))

    if args.monitor and args.source:
        parser.error("--monitor cannot be combined with --source")

    try:
        exit_code = asyncio.run(
            run(
                source_id=args.source,
                monitor=args.monitor,
                dry_run=args.dry_run,
                debug=args.debug,
            )
        )
    except KeyboardInterrupt:
        exit_code = 130

    sys.exit(exit_code)


if __name__ == "__main__":
    main()
