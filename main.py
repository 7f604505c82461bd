"""
Backfill runner: ingest one CS2 server log into the configured event store.

Usage: python main.py <log-file> [--dry-run]
"""

import asyncio
import logging
import os
import sys
from pathlib import Path

from rankforge.adapters import InMemoryEventStore, PostgresEventStore
from rankforge.config.settings import get_settings
from rankforge.core.observability import configure_stdlib_json_logging
from rankforge.core.ports import EventStorePort
from rankforge.core.services import IngestionService, MatchFlusher


def setup_logging() -> None:
    """Set up structured JSON logging for both stdout and file."""
    settings = get_settings()

    try:
        os.makedirs("logs", exist_ok=True)
        file_target = os.path.join("logs", "rankforge_ingest.log")
    except OSError:
        file_target = "rankforge_ingest.log"

    configure_stdlib_json_logging(
        level=settings.app_log_level,
        file_target=file_target,
    )

    if not settings.app_debug:
        logging.getLogger("asyncio").setLevel(logging.WARNING)


def health_check(log_path: Path, dry_run: bool) -> None:
    """Fail fast on a missing log file or database configuration."""
    logger = logging.getLogger(__name__)
    settings = get_settings()

    if not log_path.is_file():
        logger.error(f"Log file not found: {log_path}")
        sys.exit(1)
    if not dry_run and not settings.database_url.strip():
        logger.error("DATABASE_URL is not configured; use --dry-run to ingest in memory.")
        sys.exit(1)
    logger.info("Health checks passed")


async def main(argv: list[str]) -> int:
    """Main async entry point."""
    logger = logging.getLogger(__name__)
    setup_logging()

    args = [a for a in argv if not a.startswith("--")]
    if not args:
        logger.error("Usage: python main.py <log-file> [--dry-run]")
        return 2
    dry_run = "--dry-run" in argv
    log_path = Path(args[0])
    health_check(log_path, dry_run)

    store: EventStorePort
    if dry_run:
        store = InMemoryEventStore()
    else:
        store = PostgresEventStore()
        await store.connect()

    try:
        flusher = MatchFlusher(store)
        report = await IngestionService(flusher).ingest_file(log_path)
        if flusher.pending:
            logger.info(f"Retrying {len(flusher.pending)} pending match(es)")
            await flusher.retry_pending()

        logger.info(
            "Ingestion report",
            extra={
                "lines": report.lines,
                "matches_persisted": report.matches_persisted,
                "matches_duplicate": report.matches_duplicate,
                "matches_pending": len(flusher.pending),
                "anomalies": len(report.anomalies),
            },
        )
        return 1 if flusher.pending else 0
    finally:
        if isinstance(store, PostgresEventStore):
            await store.disconnect()


if __name__ == "__main__":
    try:
        sys.exit(asyncio.run(main(sys.argv[1:])))
    except KeyboardInterrupt:
        print("\nIngestion interrupted")
        sys.exit(130)
