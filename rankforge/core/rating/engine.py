"""Rating calculation - pure domain functions with zero I/O.

``rate_match`` blends one match's performance into a player's rating the way
Elo blends a game result: performance is squashed to [0, 1] and compared with
the score the player's current rating already "expects".

Every performance component is non-decreasing in kills, assists, headshots,
damage and clutches and non-increasing in deaths, so a dominating tally never
rates below a dominated one from the same starting rating. Headshots enter as
a per-round rate rather than a ratio over kills, which would break that.
"""

from dataclasses import dataclass
from datetime import UTC, datetime

import numpy as np

from rankforge.config.settings import get_settings
from rankforge.contracts.player_stats import MatchTally, PlayerStats

# Component caps: values at or beyond these saturate to 1.0.
_KD_CAP = 3.0
_KILLS_PER_ROUND_CAP = 1.2
_ASSISTS_PER_ROUND_CAP = 0.5
_ADR_CAP = 150.0
_HEADSHOTS_PER_ROUND_CAP = 0.7
_CLUTCHES_PER_ROUND_CAP = 0.15

# kd, kpr, apr, adr, hspr, cpr, survival
_WEIGHTS = np.array([0.25, 0.20, 0.10, 0.20, 0.10, 0.10, 0.05])

# Legacy cumulative rank weights
_RANK_BASE = 1000
_RANK_KDR_WEIGHT = 200
_RANK_HEADSHOT_WEIGHT = 100
_RANK_CLUTCH_WEIGHT = 150


@dataclass(frozen=True)
class RatingResult:
    previous_rating: float
    new_rating: float
    performance: float
    expected: float

    @property
    def delta(self) -> float:
        return self.new_rating - self.previous_rating


def performance_components(tally: MatchTally) -> np.ndarray:
    """Normalised [0, 1] components for one match; zeros for zero rounds."""
    rounds = tally.rounds_played
    if rounds <= 0:
        return np.zeros(len(_WEIGHTS))

    kd = tally.kills / max(tally.deaths, 1)
    raw = np.array(
        [
            kd / _KD_CAP,
            tally.kills / rounds / _KILLS_PER_ROUND_CAP,
            tally.assists / rounds / _ASSISTS_PER_ROUND_CAP,
            tally.damage_dealt / rounds / _ADR_CAP,
            tally.headshot_kills / rounds / _HEADSHOTS_PER_ROUND_CAP,
            tally.clutches_won / rounds / _CLUTCHES_PER_ROUND_CAP,
            1.0 - tally.deaths / rounds,
        ]
    )
    return np.clip(raw, 0.0, 1.0)


def expected_score(previous_rating: float, initial_rating: float) -> float:
    """Elo expectation of a player at ``previous_rating`` against the field."""
    return 1.0 / (1.0 + 10 ** ((initial_rating - previous_rating) / 400.0))


def rate_match(
    previous_rating: float,
    tally: MatchTally,
    *,
    k_factor: float | None = None,
    initial_rating: float | None = None,
) -> RatingResult:
    """Compute the rating after one match.

    Zero rounds played leaves the rating unchanged with zero performance;
    zero deaths counts as one death for K/D.
    """
    if k_factor is None or initial_rating is None:
        cfg = get_settings()
        k_factor = cfg.rating_k_factor if k_factor is None else k_factor
        initial_rating = cfg.rating_initial if initial_rating is None else initial_rating

    if tally.rounds_played <= 0:
        return RatingResult(
            previous_rating=previous_rating,
            new_rating=previous_rating,
            performance=0.0,
            expected=expected_score(previous_rating, initial_rating),
        )

    performance = float(np.clip(np.dot(_WEIGHTS, performance_components(tally)), 0.0, 1.0))
    expected = expected_score(previous_rating, initial_rating)
    new_rating = previous_rating + k_factor * (performance - expected)
    return RatingResult(
        previous_rating=previous_rating,
        new_rating=round(new_rating, 4),
        performance=performance,
        expected=expected,
    )


def calculate_rank(stats: PlayerStats) -> int:
    """Cumulative rank shown on legacy leaderboards.

    ``1000 + KDR*200 + HS*100 + clutch*150`` with KDR = kills/(deaths+1),
    HS = headshot kills/(kills+1) and clutch = clutches won per round.
    """
    kdr = stats.kills / (stats.deaths + 1)
    headshot_ratio = stats.headshot_kills / (stats.kills + 1)
    clutch_factor = stats.clutches_won / max(stats.rounds_played, 1)
    rating = (
        _RANK_BASE
        + kdr * _RANK_KDR_WEIGHT
        + headshot_ratio * _RANK_HEADSHOT_WEIGHT
        + clutch_factor * _RANK_CLUTCH_WEIGHT
    )
    return int(rating)


def apply_match(
    current: PlayerStats | None,
    tally: MatchTally,
    game_timestamp: datetime,
    *,
    k_factor: float | None = None,
    initial_rating: float | None = None,
) -> PlayerStats:
    """Fold one match tally into cumulative stats, returning a new snapshot."""
    if initial_rating is None:
        initial_rating = get_settings().rating_initial
    base = current or PlayerStats(player_id=tally.player_id, rating=initial_rating)
    result = rate_match(base.rating, tally, k_factor=k_factor, initial_rating=initial_rating)

    return PlayerStats(
        player_id=tally.player_id,
        last_seen_nickname=tally.display_name or base.last_seen_nickname,
        kills=base.kills + tally.kills,
        deaths=base.deaths + tally.deaths,
        assists=base.assists + tally.assists,
        headshot_kills=base.headshot_kills + tally.headshot_kills,
        rounds_played=base.rounds_played + tally.rounds_played,
        clutches_won=base.clutches_won + tally.clutches_won,
        damage_dealt=base.damage_dealt + tally.damage_dealt,
        rating=result.new_rating,
        matches_played=base.matches_played + 1,
        game_timestamp=game_timestamp,
        last_updated=datetime.now(UTC),
    )


def carry_forward(latest: PlayerStats, tally: MatchTally, rating_delta: float) -> PlayerStats:
    """Fold a backfilled match into a snapshot taken after a later game.

    Counters gain the match tally and the rating gains the match's delta.
    The game timestamp stays at ``latest`` so the result remains the current view.
    """
    return latest.model_copy(
        update={
            "kills": latest.kills + tally.kills,
            "deaths": latest.deaths + tally.deaths,
            "assists": latest.assists + tally.assists,
            "headshot_kills": latest.headshot_kills + tally.headshot_kills,
            "rounds_played": latest.rounds_played + tally.rounds_played,
            "clutches_won": latest.clutches_won + tally.clutches_won,
            "damage_dealt": latest.damage_dealt + tally.damage_dealt,
            "rating": latest.rating + rating_delta,
            "matches_played": latest.matches_played + 1,
            "last_updated": datetime.now(UTC),
        }
    )
