"""Match aggregate contracts: the reconciled batch handed to the store."""

from datetime import datetime
from enum import Enum

from pydantic import ConfigDict, Field

from .common import BaseContract, Side
from .events import GameEvent
from .player_stats import MatchTally


class MatchKey(BaseContract):
    """Deduplication identity of a match."""

    model_config = ConfigDict(frozen=True)

    end_timestamp: datetime
    map_name: str

    def __str__(self) -> str:
        return f"{self.map_name}@{self.end_timestamp.isoformat()}"


class Match(BaseContract):
    """Aggregate root created from a GameOver event."""

    key: MatchKey
    mode: str
    team1_score: int = Field(..., ge=0)
    team2_score: int = Field(..., ge=0)
    duration_minutes: int | None = None
    start_timestamp: datetime | None = None
    server_id: int | None = None

    @property
    def end_timestamp(self) -> datetime:
        return self.key.end_timestamp

    @property
    def map_name(self) -> str:
        return self.key.map_name

    @property
    def expected_rounds(self) -> int:
        return self.team1_score + self.team2_score


class Round(BaseContract):
    """One scoring unit of a match, numbered from 1 in arrival order."""

    match_key: MatchKey
    number: int = Field(..., ge=1)
    start_timestamp: datetime | None = None
    end_timestamp: datetime | None = None
    winner: Side | None = None
    participants: list[str] = Field(default_factory=list)

    @property
    def closed(self) -> bool:
        return self.end_timestamp is not None


class LinkedEvent(BaseContract):
    """A buffered event with its parent references resolved."""

    sequence: int = Field(..., ge=0, description="Arrival position within the match")
    event: GameEvent
    match_key: MatchKey
    round_number: int | None = None
    orphan: bool = Field(False, description="In-round event seen outside any round")


class Accolade(BaseContract):
    """End-of-match award. Parsed before the match exists, linked later."""

    accolade_type: str
    player_name: str
    player_slot: str
    player_id: str | None = None
    value: float
    position: int
    score: float
    match_key: MatchKey | None = None
    timestamp: datetime | None = None


class AnomalyKind(str, Enum):
    """Recoverable structural problems found while reconciling."""

    MALFORMED_LINE = "MALFORMED_LINE"
    EVENT_DROPPED = "EVENT_DROPPED"
    NO_OPEN_MATCH = "NO_OPEN_MATCH"
    MATCH_REPLACED = "MATCH_REPLACED"
    ROUND_NOT_CLOSED = "ROUND_NOT_CLOSED"
    EVENT_OUTSIDE_ROUND = "EVENT_OUTSIDE_ROUND"
    ROUND_END_WITHOUT_START = "ROUND_END_WITHOUT_START"
    ROUND_COUNT_MISMATCH = "ROUND_COUNT_MISMATCH"
    BOMB_ACTOR_UNKNOWN = "BOMB_ACTOR_UNKNOWN"
    UNRESOLVED_ACCOLADE_PLAYER = "UNRESOLVED_ACCOLADE_PLAYER"


class Anomaly(BaseContract):
    """A logged, non-fatal reconciliation finding."""

    kind: AnomalyKind
    message: str
    timestamp: datetime | None = None
    detail: str | None = None


class MatchBatch(BaseContract):
    """Everything one match produced, ready for a single atomic write."""

    match: Match
    rounds: list[Round] = Field(default_factory=list)
    events: list[LinkedEvent] = Field(default_factory=list)
    accolades: list[Accolade] = Field(default_factory=list)
    tallies: dict[str, MatchTally] = Field(default_factory=dict)
    anomalies: list[Anomaly] = Field(default_factory=list)

    @property
    def key(self) -> MatchKey:
        return self.match.key
