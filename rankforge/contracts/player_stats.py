"""Per-player statistics contracts.

``MatchTally`` is what one match adds; ``PlayerStats`` is the cumulative view
that gets archived once per match for progression tracking.
"""

from datetime import datetime

from pydantic import Field

from .common import BaseContract


class MatchTally(BaseContract):
    """Counters accumulated for one player during one match."""

    player_id: str
    display_name: str | None = None
    kills: int = Field(0, ge=0)
    deaths: int = Field(0, ge=0)
    assists: int = Field(0, ge=0)
    headshot_kills: int = Field(0, ge=0)
    rounds_played: int = Field(0, ge=0)
    clutches_won: int = Field(0, ge=0)
    damage_dealt: float = Field(0.0, ge=0)


class PlayerStats(BaseContract):
    """Running per-player tally plus the current rating."""

    player_id: str
    last_seen_nickname: str | None = None
    kills: int = Field(0, ge=0)
    deaths: int = Field(0, ge=0)
    assists: int = Field(0, ge=0)
    headshot_kills: int = Field(0, ge=0)
    rounds_played: int = Field(0, ge=0)
    clutches_won: int = Field(0, ge=0)
    damage_dealt: float = Field(0.0, ge=0)
    rating: float = Field(1000.0)
    matches_played: int = Field(0, ge=0)
    game_timestamp: datetime | None = Field(
        None, description="End time of the match this snapshot was taken after"
    )
    last_updated: datetime | None = None


class LeaderboardEntry(BaseContract):
    """Read model for ranking presentation layers."""

    position: int = Field(..., ge=1)
    player_id: str
    nickname: str | None = None
    rating: float
    matches_played: int = 0
    kills: int = 0
    deaths: int = 0
