"""Per-match player tallies and round-level clutch detection."""

from __future__ import annotations

import logging

from rankforge.contracts.common import Player, Side
from rankforge.contracts.player_stats import MatchTally

logger = logging.getLogger(__name__)


def _alive_key(player: Player) -> str:
    """Key used for the alive/dead bookkeeping; bots count as opponents too."""
    return player.player_id or f"bot:{player.name}"


class PlayerStatsTracker:
    """Accumulates ``MatchTally`` records for one match.

    Owned by exactly one processing context and handed off with the batch.
    Bots never get a tally, but they do count as living players when a
    clutch situation is evaluated.
    """

    def __init__(self) -> None:
        self._tallies: dict[str, MatchTally] = {}
        self._sides: dict[str, Side] = {}  # last side each player was seen on
        self._seen_in_round: dict[Side, set[str]] = {Side.CT: set(), Side.T: set()}
        self._dead: set[str] = set()
        self._round_humans: set[str] = set()
        self._clutch: dict[Side, str | None] = {Side.CT: None, Side.T: None}

    # ------------------------------------------------------------------
    # Identity
    # ------------------------------------------------------------------

    def tally(self, player_id: str, display_name: str | None = None) -> MatchTally:
        current = self._tallies.get(player_id)
        if current is None:
            current = MatchTally(player_id=player_id, display_name=display_name)
            self._tallies[player_id] = current
        elif display_name and current.display_name != display_name:
            current.display_name = display_name
        return current

    def observe(self, player: Player) -> None:
        """Remember where a player stands; humans also get an (empty) tally."""
        key = _alive_key(player)
        if player.side is not None:
            previous = self._sides.get(key)
            if previous is not None and previous != player.side:
                self._seen_in_round[previous].discard(key)
            self._sides[key] = player.side
            self._seen_in_round[player.side].add(key)
        if player.player_id is not None:
            self.tally(player.player_id, player.name)
            self._round_humans.add(player.player_id)

    # ------------------------------------------------------------------
    # Round lifecycle
    # ------------------------------------------------------------------

    def start_round(self) -> None:
        """Everyone known on a side starts the round alive."""
        self._dead.clear()
        self._round_humans.clear()
        self._clutch = {Side.CT: None, Side.T: None}
        self._seen_in_round = {Side.CT: set(), Side.T: set()}
        for key, side in self._sides.items():
            self._seen_in_round[side].add(key)

    def end_round(self, winner: Side | None, participants: list[str]) -> list[str]:
        """Credit rounds played and a won clutch; return who played the round.

        Falls back to the humans seen in the round when no roster was logged.
        """
        played = list(participants) or sorted(self._round_humans)
        for player_id in played:
            self.tally(player_id).rounds_played += 1

        if winner is not None:
            candidate = self._clutch.get(winner)
            if candidate is not None and not candidate.startswith("bot:"):
                self.tally(candidate).clutches_won += 1
                logger.debug(f"Clutch won by {candidate} for {winner.value}")

        self._clutch = {Side.CT: None, Side.T: None}
        self._round_humans.clear()
        return played

    def _alive(self, side: Side) -> set[str]:
        return self._seen_in_round[side] - self._dead

    def _check_clutch(self) -> None:
        for side, opponent in ((Side.CT, Side.T), (Side.T, Side.CT)):
            if self._clutch[side] is not None:
                continue
            alive = self._alive(side)
            if len(alive) == 1 and self._alive(opponent):
                self._clutch[side] = next(iter(alive))

    # ------------------------------------------------------------------
    # Events
    # ------------------------------------------------------------------

    def on_kill(self, attacker: Player, victim: Player, headshot: bool) -> None:
        self.observe(attacker)
        self.observe(victim)
        if attacker.player_id is not None:
            killer = self.tally(attacker.player_id, attacker.name)
            killer.kills += 1
            if headshot:
                killer.headshot_kills += 1
        if victim.player_id is not None:
            self.tally(victim.player_id, victim.name).deaths += 1
        self._dead.add(_alive_key(victim))
        self._check_clutch()

    def on_assist(self, assister: Player, victim: Player) -> None:
        self.observe(assister)
        self.observe(victim)
        if assister.player_id is not None:
            self.tally(assister.player_id, assister.name).assists += 1

    def on_attack(self, attacker: Player, victim: Player, damage: int) -> None:
        self.observe(attacker)
        self.observe(victim)
        if attacker.player_id is not None:
            self.tally(attacker.player_id, attacker.name).damage_dealt += damage

    def snapshot(self) -> dict[str, MatchTally]:
        return {pid: tally.model_copy() for pid, tally in self._tallies.items()}
