"""In-memory event store.

Used by tests and dry-run backfills. ``persist_match`` stages every write on
copies and swaps them in only when the whole batch succeeded, so a failure
part-way leaves the store untouched.
"""

import copy
import logging
from dataclasses import dataclass, field
from datetime import datetime

from rankforge.contracts.match import Accolade, LinkedEvent, Match, MatchBatch, MatchKey, Round
from rankforge.contracts.player_stats import LeaderboardEntry, PlayerStats
from rankforge.core.errors import StoreError
from rankforge.core.ports import EventStorePort, match_id_for

logger = logging.getLogger(__name__)


@dataclass
class _Tables:
    matches: dict[MatchKey, Match] = field(default_factory=dict)
    rounds: dict[MatchKey, list[Round]] = field(default_factory=dict)
    events: dict[MatchKey, list[LinkedEvent]] = field(default_factory=dict)
    accolades: dict[MatchKey, list[Accolade]] = field(default_factory=dict)
    history: dict[str, list[PlayerStats]] = field(default_factory=dict)


class InMemoryEventStore(EventStorePort):
    """Dictionary-backed ``EventStorePort`` with copy-on-write commits."""

    def __init__(self) -> None:
        self._tables = _Tables()
        self.persist_calls = 0

    # Read-only views for callers and tests
    @property
    def matches(self) -> dict[MatchKey, Match]:
        return dict(self._tables.matches)

    def rounds_for(self, key: MatchKey) -> list[Round]:
        return list(self._tables.rounds.get(key, []))

    def events_for(self, key: MatchKey) -> list[LinkedEvent]:
        return list(self._tables.events.get(key, []))

    def accolades_for(self, key: MatchKey) -> list[Accolade]:
        return list(self._tables.accolades.get(key, []))

    async def persist_match(self, batch: MatchBatch, snapshots: list[PlayerStats]) -> bool:
        self.persist_calls += 1
        key = batch.key
        if key in self._tables.matches:
            return False

        staged = copy.deepcopy(self._tables)
        try:
            staged.matches[key] = batch.match.model_copy(deep=True)
            staged.rounds[key] = [r.model_copy(deep=True) for r in batch.rounds]
            staged.events[key] = [e.model_copy(deep=True) for e in batch.events]
            staged.accolades[key] = [a.model_copy(deep=True) for a in batch.accolades]
            for snapshot in snapshots:
                staged.history.setdefault(snapshot.player_id, []).append(snapshot.model_copy())
        except Exception as e:
            logger.error(f"Failed to stage match {key}: {e}")
            raise StoreError(f"Failed to persist match {key}") from e

        self._tables = staged
        logger.debug(f"Stored match {key} with {len(batch.events)} event(s)")
        return True

    async def find_duplicate(self, end_timestamp: datetime, map_name: str) -> str | None:
        key = MatchKey(end_timestamp=end_timestamp, map_name=map_name)
        return match_id_for(key) if key in self._tables.matches else None

    async def archive_player_snapshot(self, stats: PlayerStats) -> None:
        self._tables.history.setdefault(stats.player_id, []).append(stats.model_copy())

    def _ordered_history(self, player_id: str) -> list[PlayerStats]:
        # Newest game first; among equal game times the latest archived wins.
        history = list(enumerate(self._tables.history.get(player_id, [])))
        history.sort(
            key=lambda item: (
                item[1].game_timestamp is not None,
                item[1].game_timestamp or datetime.min,
                item[0],
            ),
            reverse=True,
        )
        return [snapshot for _, snapshot in history]

    async def get_player_stats(self, player_id: str) -> PlayerStats | None:
        history = self._ordered_history(player_id)
        return history[0].model_copy() if history else None

    async def get_player_stats_before(self, player_id: str, before: datetime) -> PlayerStats | None:
        for snapshot in self._ordered_history(player_id):
            if snapshot.game_timestamp is not None and snapshot.game_timestamp < before:
                return snapshot.model_copy()
        return None

    async def get_player_history(self, player_id: str, limit: int = 50) -> list[PlayerStats]:
        return [s.model_copy() for s in self._ordered_history(player_id)[:limit]]

    async def get_leaderboard(self, limit: int = 20) -> list[LeaderboardEntry]:
        current = [self._ordered_history(pid)[0] for pid in self._tables.history if self._tables.history[pid]]
        current.sort(key=lambda s: s.rating, reverse=True)
        return [
            LeaderboardEntry(
                position=i + 1,
                player_id=s.player_id,
                nickname=s.last_seen_nickname,
                rating=s.rating,
                matches_played=s.matches_played,
                kills=s.kills,
                deaths=s.deaths,
            )
            for i, s in enumerate(current[:limit])
        ]
