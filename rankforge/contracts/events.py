"""
Typed game events parsed from CS2 server log lines.
Each event kind has its own model for type safety.
"""

from datetime import datetime
from enum import Enum
from typing import Annotated, Literal, Union

from pydantic import ConfigDict, Field

from .common import BaseContract, Coordinates, Player, Side


class EventType(str, Enum):
    """All event kinds produced by the line parser."""

    ROUND_START = "ROUND_START"
    ROUND_END = "ROUND_END"
    KILL = "KILL"
    ASSIST = "ASSIST"
    ATTACK = "ATTACK"
    BOMB_EVENT = "BOMB_EVENT"
    GAME_OVER = "GAME_OVER"
    GAME_PROCESSED = "GAME_PROCESSED"
    ACCOLADE = "ACCOLADE"


class AssistType(str, Enum):
    """Assist flavours."""

    REGULAR = "REGULAR"
    FLASH = "FLASH"


class BombEventType(str, Enum):
    """Bomb sub-types.

    BEGIN_DEFUSE only feeds defuser attribution and is never persisted.
    """

    PLANTED = "PLANTED"
    BEGIN_DEFUSE = "BEGIN_DEFUSE"
    DEFUSED = "DEFUSED"
    EXPLODED = "EXPLODED"


class BaseEvent(BaseContract):
    """Base class for all game events."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    type: EventType = Field(..., description="Kind of the event")
    timestamp: datetime = Field(..., description="UTC instant the line was logged")


class RoundStartEvent(BaseEvent):
    """World triggered "Round_Start"."""

    type: Literal[EventType.ROUND_START] = EventType.ROUND_START


class RoundEndEvent(BaseEvent):
    """World triggered "Round_End", enriched with winner and roster by the feed."""

    type: Literal[EventType.ROUND_END] = EventType.ROUND_END
    winner: Side | None = Field(None, description="Side that won the round")
    ct_score: int | None = Field(None, ge=0)
    t_score: int | None = Field(None, ge=0)
    participants: tuple[str, ...] = Field(
        default_factory=tuple, description="Steam ids of human players in the round"
    )


class GameActionEvent(BaseEvent):
    """Base for events between two players."""

    attacker: Player
    victim: Player
    weapon: str | None = None
    attacker_position: Coordinates | None = None
    victim_position: Coordinates | None = None

    @property
    def is_bot_only(self) -> bool:
        return self.attacker.is_bot and self.victim.is_bot


class KillEvent(GameActionEvent):
    """A player killed another player."""

    type: Literal[EventType.KILL] = EventType.KILL
    weapon: str
    headshot: bool = False
    modifiers: tuple[str, ...] = Field(default_factory=tuple)


class AssistEvent(GameActionEvent):
    """A player assisted (or flash-assisted) a kill. The attacker is the assister."""

    type: Literal[EventType.ASSIST] = EventType.ASSIST
    assist_type: AssistType = AssistType.REGULAR


class AttackEvent(GameActionEvent):
    """Damage dealt by one player to another."""

    type: Literal[EventType.ATTACK] = EventType.ATTACK
    weapon: str
    damage: int = Field(..., ge=0)
    armor_damage: int = Field(0, ge=0)
    hit_group: str
    health_remaining: int | None = Field(None, ge=0)
    armor_remaining: int | None = Field(None, ge=0)


class BombEvent(BaseEvent):
    """Bomb plant/defuse/explosion."""

    type: Literal[EventType.BOMB_EVENT] = EventType.BOMB_EVENT
    sub_type: BombEventType
    actor_id: str | None = Field(None, description="Steam id, or name for bots")
    actor_name: str | None = None
    bombsite: str | None = None
    time_remaining: int = Field(0, ge=0, description="Seconds left on the bomb timer")


class GameOverEvent(BaseEvent):
    """Game Over summary line; arrives before the round detail it summarises."""

    type: Literal[EventType.GAME_OVER] = EventType.GAME_OVER
    map_name: str
    mode: str
    team1_score: int = Field(..., ge=0)
    team2_score: int = Field(..., ge=0)
    duration_minutes: int | None = Field(None, ge=0)
    server_id: int | None = Field(None, description="Dedicated server app id, if known")

    @property
    def total_rounds(self) -> int:
        return self.team1_score + self.team2_score


class GameProcessedEvent(BaseEvent):
    """Sentinel emitted after the last detail line of a match."""

    type: Literal[EventType.GAME_PROCESSED] = EventType.GAME_PROCESSED


class AccoladeEvent(BaseEvent):
    """ACCOLADE, FINAL line. Carries only a display name and a session slot."""

    type: Literal[EventType.ACCOLADE] = EventType.ACCOLADE
    accolade_type: str
    player_name: str
    player_slot: str
    value: float
    position: int = Field(..., ge=0)
    score: float


GameEvent = Annotated[
    Union[
        RoundStartEvent,
        RoundEndEvent,
        KillEvent,
        AssistEvent,
        AttackEvent,
        BombEvent,
        GameOverEvent,
        GameProcessedEvent,
        AccoladeEvent,
    ],
    Field(discriminator="type"),
]
