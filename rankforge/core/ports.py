"""Port interfaces for hexagonal architecture.

These ports define the contracts between the ingestion core and storage
adapters. Any concrete engine (relational, document, embedded) must implement
them; schema and dialect are the adapter's concern.
"""

from abc import ABC, abstractmethod
from datetime import datetime

from rankforge.contracts.match import MatchBatch, MatchKey
from rankforge.contracts.player_stats import LeaderboardEntry, PlayerStats


class EventStorePort(ABC):
    """Port for batched match persistence and player progression."""

    @abstractmethod
    async def persist_match(self, batch: MatchBatch, snapshots: list[PlayerStats]) -> bool:
        """Atomically write the match, its rounds, events, accolades and snapshots.

        Returns:
            True if the match was written, False if an identical match key
            already existed (nothing is written in that case).

        Raises:
            StoreError: If the write failed; nothing was committed.
        """
        pass

    @abstractmethod
    async def find_duplicate(self, end_timestamp: datetime, map_name: str) -> str | None:
        """Return the stored match id for (end_timestamp, map_name), if any."""
        pass

    @abstractmethod
    async def archive_player_snapshot(self, stats: PlayerStats) -> None:
        """Append one historical snapshot outside of a match write."""
        pass

    @abstractmethod
    async def get_player_stats(self, player_id: str) -> PlayerStats | None:
        """Current view: the most recent snapshot by game timestamp."""
        pass

    @abstractmethod
    async def get_player_stats_before(self, player_id: str, before: datetime) -> PlayerStats | None:
        """Most recent snapshot whose game ended strictly before ``before``."""
        pass

    @abstractmethod
    async def get_player_history(self, player_id: str, limit: int = 50) -> list[PlayerStats]:
        """Archived snapshots, newest first."""
        pass

    @abstractmethod
    async def get_leaderboard(self, limit: int = 20) -> list[LeaderboardEntry]:
        """Players ordered by current rating, highest first."""
        pass

    async def get_players_stats(self, player_ids: list[str]) -> dict[str, PlayerStats]:
        """Current view for several players; adapters may batch this."""
        found: dict[str, PlayerStats] = {}
        for player_id in player_ids:
            stats = await self.get_player_stats(player_id)
            if stats is not None:
                found[player_id] = stats
        return found


def match_id_for(key: MatchKey) -> str:
    """Stable textual id derived from the deduplication key."""
    return f"{key.map_name}:{int(key.end_timestamp.timestamp())}"
