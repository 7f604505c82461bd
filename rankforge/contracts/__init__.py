"""Data contracts shared by the parser, reconciler, rating engine and stores."""

from rankforge.contracts.common import BaseContract, Coordinates, Player, Side
from rankforge.contracts.events import (
    AccoladeEvent,
    AssistEvent,
    AssistType,
    AttackEvent,
    BombEvent,
    BombEventType,
    EventType,
    GameEvent,
    GameOverEvent,
    GameProcessedEvent,
    KillEvent,
    RoundEndEvent,
    RoundStartEvent,
)
from rankforge.contracts.match import (
    Accolade,
    Anomaly,
    AnomalyKind,
    LinkedEvent,
    Match,
    MatchBatch,
    MatchKey,
    Round,
)
from rankforge.contracts.player_stats import LeaderboardEntry, MatchTally, PlayerStats

__all__ = [
    "Accolade",
    "AccoladeEvent",
    "Anomaly",
    "AnomalyKind",
    "AssistEvent",
    "AssistType",
    "AttackEvent",
    "BaseContract",
    "BombEvent",
    "BombEventType",
    "Coordinates",
    "EventType",
    "GameEvent",
    "GameOverEvent",
    "GameProcessedEvent",
    "KillEvent",
    "LeaderboardEntry",
    "LinkedEvent",
    "Match",
    "MatchBatch",
    "MatchKey",
    "MatchTally",
    "Player",
    "PlayerStats",
    "Round",
    "RoundEndEvent",
    "RoundStartEvent",
    "Side",
]
