"""Assemble per-match event feeds from a whole server log.

The server writes a match's ``Game Over`` summary *after* all of its rounds,
and the reconciler needs that summary *first*. The segmenter remembers where
rounds started, and when a ``Game Over`` arrives it rewinds over the last
``team1 + team2`` rounds and replays them, producing:

    accolades -> GameOver -> round detail ... -> GameProcessed

It also does the multi-line assembly the stateless parser cannot: a
``RoundEnd`` gets its winner from the preceding team notice and its roster
from the ``JSON_BEGIN .. JSON_END`` block that follows it, and every match is
tagged with the dedicated server app id announced at the top of the log.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Iterator
from dataclasses import dataclass, field
from datetime import datetime

from rankforge.config.settings import get_settings
from rankforge.contracts.common import steam_id_from_account
from rankforge.contracts.events import (
    EventType,
    GameEvent,
    GameOverEvent,
    GameProcessedEvent,
    RoundEndEvent,
)
from rankforge.core.parsing import patterns
from rankforge.core.parsing.line_parser import (
    LineParser,
    LineStatus,
    ParsedLine,
    RoundOutcome,
    parse_round_outcome,
    parse_roster_entry,
    parse_server_id,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MalformedLine:
    """A recognised line that failed extraction, kept in arrival order."""

    kind: str | None
    reason: str | None
    timestamp: datetime | None
    content: str


SegmentEntry = GameEvent | MalformedLine


@dataclass
class MatchSegment:
    """One match's feed in the order the reconciler consumes it."""

    game_over: GameOverEvent
    entries: list[SegmentEntry] = field(default_factory=list)
    tracked_rounds: int = 0

    @property
    def events(self) -> list[GameEvent]:
        return [e for e in self.entries if not isinstance(e, MalformedLine)]

    @property
    def malformed(self) -> list[MalformedLine]:
        return [e for e in self.entries if isinstance(e, MalformedLine)]


class MatchSegmenter:
    """Split a log into match segments, replaying rounds after each Game Over."""

    def __init__(self, parser: LineParser | None = None, min_accolades: int | None = None) -> None:
        self.parser = parser or LineParser()
        self.min_accolades = (
            min_accolades if min_accolades is not None else get_settings().ingest_min_accolades
        )
        self.server_id: int | None = None
        self.skipped_games = 0

    def segments(self, lines: Iterable[str]) -> Iterator[MatchSegment]:
        """Yield one ``MatchSegment`` per qualifying ``Game Over`` in ``lines``."""
        raw = list(lines)
        parsed = [self.parser.classify(line) for line in raw]

        round_starts: list[int] = []
        boundary = 0  # first index after the previous Game Over

        for index, item in enumerate(parsed):
            if item.status is LineStatus.IGNORED and "ResetBreakpadAppId" in item.content:
                server_id = parse_server_id(item.content)
                if server_id is not None:
                    logger.info(f"Dedicated server app id: {server_id}")
                    self.server_id = server_id
                continue

            if item.kind == "ROUND_START":
                round_starts.append(index)
                continue

            game_over = item.event
            if not isinstance(game_over, GameOverEvent):
                continue

            accolade_lines = self._accolade_block(parsed, boundary, index)

            if len(accolade_lines) < self.min_accolades:
                logger.info(
                    "Skipping game on %s at %s: %d accolade line(s), need %d",
                    game_over.map_name,
                    game_over.timestamp.isoformat(),
                    len(accolade_lines),
                    self.min_accolades,
                )
                self.skipped_games += 1
                round_starts.clear()
                boundary = index + 1
                continue

            yield self._build_segment(game_over, parsed, accolade_lines, round_starts, index)
            round_starts.clear()
            boundary = index + 1

    def _accolade_block(self, parsed: list[ParsedLine], boundary: int, game_over_index: int) -> list[int]:
        """Indices of the contiguous accolade block closest before the Game Over."""
        i = game_over_index - 1
        while i >= boundary and parsed[i].kind != "ACCOLADE":
            i -= 1
        block: list[int] = []
        while i >= boundary and parsed[i].kind == "ACCOLADE":
            block.append(i)
            i -= 1
        block.reverse()
        return block

    def _build_segment(
        self,
        game_over: GameOverEvent,
        parsed: list[ParsedLine],
        accolade_lines: list[int],
        round_starts: list[int],
        game_over_index: int,
    ) -> MatchSegment:
        total = game_over.total_rounds
        if len(round_starts) >= total:
            replay_from = round_starts[len(round_starts) - total] if total else game_over_index
        else:
            # The context records the round count mismatch; replay what we have.
            logger.warning(
                "Only %d round start(s) tracked for %d round(s) on %s",
                len(round_starts),
                total,
                game_over.map_name,
            )
            replay_from = round_starts[0] if round_starts else game_over_index

        logger.info(
            f"Game over on {game_over.map_name} {game_over.team1_score}:{game_over.team2_score}, "
            f"replaying lines {replay_from}..{game_over_index}"
        )

        segment = MatchSegment(
            game_over=game_over.model_copy(update={"server_id": self.server_id}),
            tracked_rounds=len(round_starts),
        )
        for i in accolade_lines:
            segment.entries.append(self._entry(parsed[i]))
        segment.entries.append(segment.game_over)
        segment.entries.extend(self._replay(parsed, replay_from, game_over_index))
        segment.entries.append(GameProcessedEvent(timestamp=game_over.timestamp))
        return segment

    def _replay(self, parsed: list[ParsedLine], start: int, stop: int) -> Iterator[SegmentEntry]:
        in_json = False
        outcome: RoundOutcome | None = None

        for i in range(start, stop):
            item = parsed[i]
            if patterns.JSON_BEGIN in item.content:
                in_json = True
                continue
            if patterns.JSON_END in item.content:
                in_json = False
                continue
            if in_json or item.kind == "ACCOLADE":
                continue

            # Win notices are mostly noise to the parser but carry the round result.
            if "SFUI_Notice_" in item.content:
                outcome = parse_round_outcome(item.content) or outcome

            if item.status is LineStatus.MALFORMED:
                yield self._entry(item)
                continue
            if item.status is not LineStatus.EVENT or item.event is None:
                continue

            event = item.event
            if event.type == EventType.ROUND_START:
                outcome = None
            elif isinstance(event, RoundEndEvent):
                event = self._complete_round_end(event, outcome, parsed, i + 1, stop)
                outcome = None
            yield event

    def _complete_round_end(
        self,
        event: RoundEndEvent,
        outcome: RoundOutcome | None,
        parsed: list[ParsedLine],
        start: int,
        stop: int,
    ) -> RoundEndEvent:
        participants = self._roster(parsed, start, stop)
        update: dict[str, object] = {"participants": tuple(participants)}
        if outcome is not None:
            update.update(winner=outcome.winner, ct_score=outcome.ct_score, t_score=outcome.t_score)
        return event.model_copy(update=update)

    def _roster(self, parsed: list[ParsedLine], start: int, stop: int) -> list[str]:
        """Steam ids from the JSON block following a Round_End (bots excluded)."""
        i = start
        while i < stop:
            item = parsed[i]
            if patterns.JSON_BEGIN in item.content:
                break
            if item.kind in ("ROUND_START", "ROUND_END", "ACCOLADE"):
                return []
            i += 1
        else:
            return []

        roster: list[str] = []
        for item in parsed[i + 1 : stop]:
            if patterns.JSON_END in item.content:
                break
            account = parse_roster_entry(item.content)
            steam_id = steam_id_from_account(account) if account else None
            if steam_id and steam_id not in roster:
                roster.append(steam_id)
        return roster

    @staticmethod
    def _entry(item: ParsedLine) -> SegmentEntry:
        if item.status is LineStatus.EVENT and item.event is not None:
            return item.event
        return MalformedLine(
            kind=item.kind, reason=item.reason, timestamp=item.timestamp, content=item.content
        )
