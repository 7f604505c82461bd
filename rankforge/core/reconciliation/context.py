"""Processing context: re-links one match's events to their match and round.

The feed announces a match (``GameOver``) before replaying its rounds, so the
parent of every event is already known when the event arrives. Linking is by
arrival order only: an event belongs to the round that is open when it is
handled. Timestamps are never used to pick a round, so an event logged in the
same second as a ``Round_End`` belongs to that round only if it arrives before
the ``Round_End`` line.

Lifecycle::

    IDLE --GameOver--> MATCH_OPEN --GameProcessed--> IDLE (batch emitted)
                                  --abort()-------> IDLE (batch discarded)
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime
from enum import Enum

from rankforge.config.settings import Settings, get_settings
from rankforge.contracts.events import (
    AccoladeEvent,
    AssistEvent,
    AttackEvent,
    BombEvent,
    BombEventType,
    EventType,
    GameActionEvent,
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
from rankforge.core import metrics
from rankforge.core.errors import ReconciliationError
from rankforge.core.reconciliation.tallies import PlayerStatsTracker

logger = logging.getLogger(__name__)


class ContextState(str, Enum):
    IDLE = "IDLE"
    MATCH_OPEN = "MATCH_OPEN"


class ProcessingContext:
    """Linking state for exactly one in-flight match.

    Single producer: callers must feed events from one task in arrival order.
    ``handle`` never raises for a bad event; the event is dropped and an
    ``EVENT_DROPPED`` anomaly is recorded instead.
    """

    def __init__(self, settings: Settings | None = None) -> None:
        self._settings = settings or get_settings()
        self._handlers: dict[EventType, Callable[[GameEvent], None]] = {
            EventType.GAME_OVER: self._on_game_over,
            EventType.ROUND_START: self._on_round_start,
            EventType.ROUND_END: self._on_round_end,
            EventType.KILL: self._on_action,
            EventType.ASSIST: self._on_action,
            EventType.ATTACK: self._on_action,
            EventType.BOMB_EVENT: self._on_bomb,
            EventType.ACCOLADE: self._on_accolade,
        }
        # Problems seen while no match was open; not part of any batch.
        self.idle_anomalies: list[Anomaly] = []
        self._accolades: list[Accolade] = []
        self._reset()

    # ------------------------------------------------------------------
    # Read-only views
    # ------------------------------------------------------------------

    @property
    def state(self) -> ContextState:
        return ContextState.MATCH_OPEN if self._match is not None else ContextState.IDLE

    @property
    def current_match(self) -> Match | None:
        return self._match

    @property
    def current_round(self) -> Round | None:
        return self._round

    @property
    def pending_events(self) -> list[LinkedEvent]:
        return list(self._events)

    @property
    def pending_accolades(self) -> list[Accolade]:
        return list(self._accolades)

    @property
    def anomalies(self) -> list[Anomaly]:
        return list(self._anomalies)

    @property
    def player_ids(self) -> dict[str, str]:
        """Display name -> steam id, as learned from this match's events."""
        return dict(self._names)

    # ------------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------------

    def handle(self, event: GameEvent) -> MatchBatch | None:
        """Link one event. Returns the finished batch on ``GameProcessed``."""
        if isinstance(event, GameProcessedEvent):
            return self._on_game_processed(event)

        handler = self._handlers.get(event.type)
        if handler is None:
            logger.debug(f"No handler for {event.type}, skipping")
            return None
        try:
            handler(event)
        except Exception as e:
            self._record(
                AnomalyKind.EVENT_DROPPED,
                f"{event.type.value} event dropped: {e}",
                event.timestamp,
                detail=type(e).__name__,
            )
        return None

    def record_malformed(
        self,
        kind: str | None,
        reason: str | None,
        timestamp: datetime | None = None,
        content: str = "",
    ) -> None:
        """Turn a malformed-but-recognised line into a match anomaly."""
        self._record(
            AnomalyKind.MALFORMED_LINE,
            f"Malformed {kind or 'unknown'} line: {reason}",
            timestamp,
            detail=content[:300] or None,
        )

    def abort(self) -> MatchKey | None:
        """Discard the buffered match without emitting anything."""
        key = self._match.key if self._match is not None else None
        if key is not None:
            logger.info(
                f"Aborting match {key}: discarding {len(self._events)} event(s), "
                f"{len(self._rounds)} round(s)"
            )
        self._accolades = []
        self._reset()
        return key

    # ------------------------------------------------------------------
    # Internal state
    # ------------------------------------------------------------------

    def _reset(self) -> None:
        self._match: Match | None = None
        self._round: Round | None = None
        self._rounds: list[Round] = []
        self._events: list[LinkedEvent] = []
        self._anomalies: list[Anomaly] = []
        self._names: dict[str, str] = {}
        self._tracker = PlayerStatsTracker()
        self._sequence = 0
        self._accolades_at_open = 0
        self._reset_bomb()

    def _reset_bomb(self) -> None:
        self._planter: tuple[str | None, str | None] | None = None
        self._plant_time: datetime | None = None
        self._bombsite: str | None = None
        self._defuser: tuple[str | None, str | None] | None = None

    def _record(
        self,
        kind: AnomalyKind,
        message: str,
        timestamp: datetime | None = None,
        detail: str | None = None,
    ) -> None:
        anomaly = Anomaly(kind=kind, message=message, timestamp=timestamp, detail=detail)
        if self._match is not None:
            self._anomalies.append(anomaly)
        else:
            self.idle_anomalies.append(anomaly)
        metrics.mark_anomaly(kind.value)
        logger.warning(
            "Reconciliation anomaly %s: %s",
            kind.value,
            message,
            extra={"anomaly_kind": kind.value, "anomaly_detail": detail},
        )

    def _link(self, event: GameEvent, round_number: int | None, orphan: bool = False) -> None:
        if self._match is None:
            raise ReconciliationError("cannot link an event without an open match")
        self._events.append(
            LinkedEvent(
                sequence=self._sequence,
                event=event,
                match_key=self._match.key,
                round_number=round_number,
                orphan=orphan,
            )
        )
        self._sequence += 1

    def _require_match(self, event: GameEvent) -> bool:
        if self._match is not None:
            return True
        self._record(
            AnomalyKind.NO_OPEN_MATCH,
            f"{event.type.value} event arrived with no open match; dropped",
            event.timestamp,
        )
        return False

    def _learn_name(self, name: str | None, player_id: str | None) -> None:
        if name and player_id and player_id.startswith("[U:"):
            self._names[name.strip()] = player_id

    # ------------------------------------------------------------------
    # Handlers
    # ------------------------------------------------------------------

    def _on_game_over(self, event: GameEvent) -> None:
        assert isinstance(event, GameOverEvent)
        replaced: MatchKey | None = None
        if self._match is not None:
            # Accolades that arrived after the stale Game Over belong to this one.
            replaced = self._match.key
            kept = self._accolades[self._accolades_at_open :]
            self._reset()
            self._accolades = kept

        key = MatchKey(end_timestamp=event.timestamp, map_name=event.map_name)
        self._match = Match(
            key=key,
            mode=event.mode,
            team1_score=event.team1_score,
            team2_score=event.team2_score,
            duration_minutes=event.duration_minutes,
            server_id=event.server_id,
        )
        if replaced is not None:
            self._record(
                AnomalyKind.MATCH_REPLACED,
                f"Match {replaced} was never completed; discarded for a new Game Over",
                event.timestamp,
            )
        self._accolades_at_open = len(self._accolades)
        for accolade in self._accolades:
            self._stamp_accolade(accolade)
        self._link(event, None)
        logger.info(
            f"Match opened: {key} ({event.team1_score}:{event.team2_score}, "
            f"{len(self._accolades)} accolade(s) pending)"
        )

    def _on_round_start(self, event: GameEvent) -> None:
        assert isinstance(event, RoundStartEvent)
        if not self._require_match(event):
            return
        if self._round is not None:
            self._record(
                AnomalyKind.ROUND_NOT_CLOSED,
                f"Round {self._round.number} had no Round_End before the next Round_Start",
                event.timestamp,
            )
        assert self._match is not None
        self._round = Round(
            match_key=self._match.key,
            number=len(self._rounds) + 1,
            start_timestamp=event.timestamp,
        )
        self._rounds.append(self._round)
        self._tracker.start_round()
        self._reset_bomb()
        self._link(event, self._round.number)

    def _on_round_end(self, event: GameEvent) -> None:
        assert isinstance(event, RoundEndEvent)
        if not self._require_match(event):
            return
        if self._round is None:
            self._record(
                AnomalyKind.ROUND_END_WITHOUT_START,
                "Round_End with no open round; kept without a round reference",
                event.timestamp,
            )
            self._link(event, None)
            return

        closing = self._round
        closing.end_timestamp = event.timestamp
        closing.winner = event.winner
        closing.participants = self._tracker.end_round(event.winner, list(event.participants))
        self._link(event, closing.number)
        self._round = None

    def _on_action(self, event: GameEvent) -> None:
        assert isinstance(event, GameActionEvent)
        if not self._require_match(event):
            return
        if event.is_bot_only:
            logger.debug(f"Skipping bot-only {event.type.value} event")
            return

        for player in (event.attacker, event.victim):
            self._learn_name(player.name, player.player_id)
        if isinstance(event, KillEvent):
            self._tracker.on_kill(event.attacker, event.victim, event.headshot)
        elif isinstance(event, AssistEvent):
            self._tracker.on_assist(event.attacker, event.victim)
        elif isinstance(event, AttackEvent):
            self._tracker.on_attack(event.attacker, event.victim, event.damage)
        self._link_in_round(event)

    def _on_bomb(self, event: GameEvent) -> None:
        assert isinstance(event, BombEvent)
        if not self._require_match(event):
            return
        self._learn_name(event.actor_name, event.actor_id)
        timer = self._settings.bomb_timer_seconds

        if event.sub_type == BombEventType.BEGIN_DEFUSE:
            # Attribution only; never persisted.
            self._defuser = (event.actor_id, event.actor_name)
            return

        if event.sub_type == BombEventType.PLANTED:
            self._planter = (event.actor_id, event.actor_name)
            self._plant_time = event.timestamp
            self._bombsite = event.bombsite
            self._link_in_round(event.model_copy(update={"time_remaining": timer}))
            return

        actor = self._defuser if event.sub_type == BombEventType.DEFUSED else self._planter
        remaining = 0
        if event.sub_type == BombEventType.DEFUSED and self._plant_time is not None:
            elapsed = (event.timestamp - self._plant_time).total_seconds()
            remaining = max(0, int(timer - elapsed))

        update: dict[str, object] = {
            "time_remaining": remaining,
            "bombsite": event.bombsite or self._bombsite,
        }
        if actor is not None:
            update.update(actor_id=actor[0], actor_name=actor[1])
        else:
            self._record(
                AnomalyKind.BOMB_ACTOR_UNKNOWN,
                f"Bomb {event.sub_type.value.lower()} with no known actor this round",
                event.timestamp,
            )
        self._link_in_round(event.model_copy(update=update))

    def _link_in_round(self, event: GameEvent) -> None:
        if self._round is None:
            self._record(
                AnomalyKind.EVENT_OUTSIDE_ROUND,
                f"{event.type.value} event outside any round; linked to match only",
                event.timestamp,
            )
            self._link(event, None, orphan=True)
            return
        self._link(event, self._round.number)

    def _on_accolade(self, event: GameEvent) -> None:
        assert isinstance(event, AccoladeEvent)
        accolade = Accolade(
            accolade_type=event.accolade_type,
            player_name=event.player_name,
            player_slot=event.player_slot,
            value=event.value,
            position=event.position,
            score=event.score,
        )
        if self._match is not None:
            self._stamp_accolade(accolade)
        self._accolades.append(accolade)

    def _stamp_accolade(self, accolade: Accolade) -> None:
        assert self._match is not None
        accolade.match_key = self._match.key
        accolade.timestamp = self._match.end_timestamp

    def _on_game_processed(self, event: GameProcessedEvent) -> MatchBatch | None:
        if not self._require_match(event):
            return None
        match = self._match
        assert match is not None

        if self._round is not None:
            self._record(
                AnomalyKind.ROUND_NOT_CLOSED,
                f"Round {self._round.number} still open when the match completed",
                event.timestamp,
            )
        if len(self._rounds) != match.expected_rounds:
            self._record(
                AnomalyKind.ROUND_COUNT_MISMATCH,
                f"Reconciled {len(self._rounds)} round(s), score implies {match.expected_rounds}",
                event.timestamp,
                detail=f"{match.team1_score}:{match.team2_score}",
            )

        for accolade in self._accolades:
            accolade.player_id = self._names.get(accolade.player_name.strip())
            if accolade.player_id is None:
                self._record(
                    AnomalyKind.UNRESOLVED_ACCOLADE_PLAYER,
                    f"No steam id seen for accolade player {accolade.player_name!r}",
                    event.timestamp,
                    detail=accolade.accolade_type,
                )

        if self._rounds:
            match.start_timestamp = self._rounds[0].start_timestamp
        self._link(event, None)

        batch = MatchBatch(
            match=match,
            rounds=self._rounds,
            events=self._events,
            accolades=self._accolades,
            tallies=self._tracker.snapshot(),
            anomalies=self._anomalies,
        )
        logger.info(
            f"Match closed: {match.key} with {len(batch.rounds)} round(s), "
            f"{len(batch.events)} event(s), {len(batch.accolades)} accolade(s), "
            f"{len(batch.anomalies)} anomaly(ies)"
        )
        self._accolades = []
        self._reset()
        return batch
