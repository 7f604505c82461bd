"""Ingestion orchestration: segmenter -> processing context -> flusher."""

import asyncio
import logging
from collections.abc import Iterable
from dataclasses import dataclass, field
from pathlib import Path

from rankforge.config.settings import Settings, get_settings
from rankforge.contracts.match import Anomaly, MatchBatch, MatchKey
from rankforge.core.errors import RetryableFlushError
from rankforge.core.observability import clear_correlation_id, set_correlation_id
from rankforge.core.parsing.line_parser import LineParser, ParseStats
from rankforge.core.parsing.segmenter import MalformedLine, MatchSegment, MatchSegmenter
from rankforge.core.reconciliation.context import ProcessingContext
from rankforge.core.services.flusher import MatchFlusher

logger = logging.getLogger(__name__)


@dataclass
class IngestionReport:
    """Summary of one ingestion run."""

    lines: int = 0
    events: int = 0
    ignored: int = 0
    malformed: int = 0
    skipped_games: int = 0
    matches_reconciled: int = 0
    matches_persisted: int = 0
    matches_duplicate: int = 0
    failed_matches: list[MatchKey] = field(default_factory=list)
    anomalies: list[Anomaly] = field(default_factory=list)

    def absorb_parse_stats(self, stats: ParseStats) -> None:
        self.lines = stats.lines
        self.events = stats.events
        self.ignored = stats.ignored
        self.malformed = stats.malformed


class IngestionService:
    """Feeds whole server logs through the pipeline, one match at a time."""

    def __init__(self, flusher: MatchFlusher, settings: Settings | None = None) -> None:
        self._flusher = flusher
        self._settings = settings or get_settings()

    async def ingest_file(self, path: str | Path) -> IngestionReport:
        """Ingest a log file (bare lines or Docker JSON envelopes)."""
        lines = await asyncio.to_thread(_read_lines, Path(path))
        logger.info(f"Read {len(lines)} line(s) from {path}")
        return await self.ingest_lines(lines)

    async def ingest_lines(self, lines: Iterable[str]) -> IngestionReport:
        report = IngestionReport()
        stats = ParseStats()
        segmenter = MatchSegmenter(
            LineParser(stats), min_accolades=self._settings.ingest_min_accolades
        )

        for segment in segmenter.segments(lines):
            key = MatchKey(
                end_timestamp=segment.game_over.timestamp, map_name=segment.game_over.map_name
            )
            set_correlation_id(str(key))
            try:
                batch = self._reconcile(segment)
                if batch is None:
                    continue
                report.matches_reconciled += 1
                report.anomalies.extend(batch.anomalies)
                try:
                    result = await self._flusher.flush(batch)
                except RetryableFlushError as e:
                    logger.error(f"Match {e.key} left pending: {e}")
                    report.failed_matches.append(e.key)
                    continue
                if result.duplicate:
                    report.matches_duplicate += 1
                else:
                    report.matches_persisted += 1
            finally:
                clear_correlation_id()

        report.skipped_games = segmenter.skipped_games
        report.absorb_parse_stats(stats)
        logger.info(
            f"Ingestion finished: {report.matches_persisted} persisted, "
            f"{report.matches_duplicate} duplicate, {len(report.failed_matches)} pending, "
            f"{report.skipped_games} skipped, {report.malformed} malformed line(s)"
        )
        return report

    def _reconcile(self, segment: MatchSegment) -> MatchBatch | None:
        context = ProcessingContext(self._settings)
        batch: MatchBatch | None = None
        try:
            for entry in segment.entries:
                if isinstance(entry, MalformedLine):
                    context.record_malformed(entry.kind, entry.reason, entry.timestamp, entry.content)
                    continue
                batch = context.handle(entry) or batch
        except BaseException:
            context.abort()
            raise
        if batch is None:
            logger.warning("Segment ended without a completed match; discarding")
            context.abort()
        return batch


def _read_lines(path: Path) -> list[str]:
    with path.open(encoding="utf-8", errors="replace") as fh:
        return fh.read().splitlines()
