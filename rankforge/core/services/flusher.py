"""Batched, idempotent flushing of reconciled matches.

Multiple producers (live ingestion, backfills) may flush overlapping matches,
so every commit runs under one ``asyncio.Lock``. Inside the lock the flusher
checks for a duplicate, reads the touched players' current stats, settles
their new snapshots and hands everything to the store in one call. Each store
call is bounded by ``asyncio.wait_for``; backoff sleeps happen after the lock
is released.
"""

import asyncio
import logging
import random
from dataclasses import dataclass, field

from rankforge.config.settings import Settings, get_settings
from rankforge.contracts.match import MatchBatch, MatchKey
from rankforge.contracts.player_stats import MatchTally, PlayerStats
from rankforge.core import metrics
from rankforge.core.errors import RetryableFlushError
from rankforge.core.ports import EventStorePort
from rankforge.core.rating.engine import apply_match, carry_forward

logger = logging.getLogger(__name__)


@dataclass
class FlushResult:
    """Outcome of one successful ``flush`` call."""

    key: MatchKey
    persisted: bool
    duplicate: bool = False
    attempts: int = 1
    snapshots: list[PlayerStats] = field(default_factory=list)


class MatchFlusher:
    """Serialises match commits against an ``EventStorePort``.

    A batch whose retries are exhausted stays in ``pending`` and the call
    raises ``RetryableFlushError``; ``retry_pending`` replays those batches.
    """

    def __init__(
        self,
        store: EventStorePort,
        *,
        settings: Settings | None = None,
        max_retries: int | None = None,
        base_delay: float | None = None,
        timeout: float | None = None,
    ) -> None:
        cfg = settings or get_settings()
        self._store = store
        self._settings = cfg
        self._max_retries = max(1, max_retries if max_retries is not None else cfg.flush_max_retries)
        self._base_delay = base_delay if base_delay is not None else cfg.flush_retry_base_delay
        self._timeout = timeout if timeout is not None else cfg.flush_timeout_seconds
        self._lock = asyncio.Lock()
        self._pending: dict[MatchKey, MatchBatch] = {}

    @property
    def pending(self) -> list[MatchBatch]:
        return list(self._pending.values())

    @property
    def locked(self) -> bool:
        return self._lock.locked()

    async def flush(self, batch: MatchBatch) -> FlushResult:
        """Commit ``batch`` exactly once.

        Returns:
            FlushResult with ``duplicate=True`` if the match was already stored.

        Raises:
            RetryableFlushError: If every attempt failed; the batch is kept.
        """
        key = batch.key
        last_error: Exception | None = None

        for attempt in range(self._max_retries):
            try:
                with metrics.observe_flush():
                    result = await self._commit(batch)
                result.attempts = attempt + 1
                self._pending.pop(key, None)
                metrics.mark_flush("duplicate" if result.duplicate else "persisted")
                return result
            except Exception as e:
                last_error = e
                logger.error(f"Attempt {attempt + 1} failed flushing match {key}: {e}")
                if attempt < self._max_retries - 1:
                    delay = self._base_delay * (2**attempt) + random.uniform(0, 0.2)
                    await asyncio.sleep(delay)

        self._pending[key] = batch
        metrics.mark_flush("failed")
        logger.error(
            f"Giving up on match {key} after {self._max_retries} attempt(s); "
            f"{len(self._pending)} batch(es) pending"
        )
        raise RetryableFlushError(key, self._max_retries, last_error)

    async def retry_pending(self) -> list[FlushResult]:
        """Re-flush every pending batch; batches that fail again stay pending."""
        results: list[FlushResult] = []
        for batch in list(self._pending.values()):
            try:
                results.append(await self.flush(batch))
            except RetryableFlushError as e:
                logger.warning(f"Pending match {e.key} still failing: {e.cause}")
        return results

    async def _commit(self, batch: MatchBatch) -> FlushResult:
        key = batch.key
        async with self._lock:
            existing = await asyncio.wait_for(
                self._store.find_duplicate(key.end_timestamp, key.map_name), self._timeout
            )
            if existing is not None:
                logger.info(f"Match {key} already stored as {existing}; skipping")
                return FlushResult(key=key, persisted=False, duplicate=True)

            current = await asyncio.wait_for(
                self._store.get_players_stats(sorted(batch.tallies)), self._timeout
            )
            snapshots: list[PlayerStats] = []
            for player_id, tally in sorted(batch.tallies.items()):
                latest = current.get(player_id)
                if (
                    latest is None
                    or latest.game_timestamp is None
                    or latest.game_timestamp <= key.end_timestamp
                ):
                    snapshots.append(self._apply(latest, tally, key))
                else:
                    snapshots.extend(await self._backfill(latest, tally, key))

            written = await asyncio.wait_for(
                self._store.persist_match(batch, snapshots), self._timeout
            )
            if not written:
                # Lost a race with another writer between the check and the insert.
                logger.info(f"Match {key} was stored concurrently; skipping")
                return FlushResult(key=key, persisted=False, duplicate=True)

        logger.info(
            f"Flushed match {key}: {len(batch.events)} event(s), "
            f"{len(batch.accolades)} accolade(s), {len(snapshots)} snapshot(s)"
        )
        return FlushResult(key=key, persisted=True, snapshots=snapshots)

    def _apply(self, base: PlayerStats | None, tally: MatchTally, key: MatchKey) -> PlayerStats:
        return apply_match(
            base,
            tally,
            key.end_timestamp,
            k_factor=self._settings.rating_k_factor,
            initial_rating=self._settings.rating_initial,
        )

    async def _backfill(self, latest: PlayerStats, tally: MatchTally, key: MatchKey) -> list[PlayerStats]:
        """Snapshots for a match older than the player's newest stored game.

        The match is rated from the last snapshot before it. A second snapshot
        at ``latest``'s game time carries the match into the current view;
        snapshots between the two games are left as archived.
        """
        base = await asyncio.wait_for(
            self._store.get_player_stats_before(latest.player_id, key.end_timestamp), self._timeout
        )
        snapshot = self._apply(base, tally, key)
        previous = base.rating if base is not None else self._settings.rating_initial
        logger.info(
            f"Backfilling {key} for {latest.player_id} behind game at {latest.game_timestamp}"
        )
        return [snapshot, carry_forward(latest, tally, snapshot.rating - previous)]
