"""Stateless line -> event translation for CS2 server logs.

``LineParser.parse`` is the narrow contract: one line in, one typed event (or
``None``) out. ``classify`` exposes the three-way outcome so that the feed
assembler can surface malformed lines to the reconciler as anomalies.

Nothing here remembers previous lines. Cross-line concerns (rewinding to the
first round of a match, round rosters, bomb actor attribution) belong to the
segmenter and the processing context.
"""

from __future__ import annotations

import json
import logging
import re
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum

from pydantic import ValidationError

from rankforge.contracts.common import Coordinates, Player, Side
from rankforge.contracts.events import (
    AccoladeEvent,
    AssistEvent,
    AssistType,
    AttackEvent,
    BombEvent,
    BombEventType,
    GameEvent,
    GameOverEvent,
    KillEvent,
    RoundEndEvent,
    RoundStartEvent,
)
from rankforge.core import metrics
from rankforge.core.errors import ParseError
from rankforge.core.parsing import patterns

logger = logging.getLogger(__name__)


class LineStatus(str, Enum):
    EVENT = "EVENT"
    IGNORED = "IGNORED"
    MALFORMED = "MALFORMED"


@dataclass(frozen=True)
class ParsedLine:
    """Outcome of classifying one raw line."""

    status: LineStatus
    event: GameEvent | None = None
    kind: str | None = None  # grammar rule that recognised the line
    reason: str | None = None  # why a recognised line was rejected
    timestamp: datetime | None = None
    content: str = ""  # line body with envelope and prefix removed


@dataclass
class ParseStats:
    """Running counters for one parser instance."""

    lines: int = 0
    events: int = 0
    ignored: int = 0
    malformed: int = 0
    by_kind: dict[str, int] = field(default_factory=dict)

    def record(self, parsed: ParsedLine) -> None:
        self.lines += 1
        if parsed.status is LineStatus.EVENT:
            self.events += 1
            if parsed.kind:
                self.by_kind[parsed.kind] = self.by_kind.get(parsed.kind, 0) + 1
        elif parsed.status is LineStatus.MALFORMED:
            self.malformed += 1
        else:
            self.ignored += 1


@dataclass(frozen=True)
class RoundOutcome:
    """Winner and running score from a team ``SFUI_Notice_*`` line."""

    winner: Side
    ct_score: int
    t_score: int
    notice: str


# ============================================================================
# Envelope and timestamp handling
# ============================================================================


def _parse_iso(value: str) -> datetime:
    text = patterns.ENVELOPE_FRACTION.sub(r"\1", value.strip())
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed.astimezone(UTC)


def split_envelope(line: str) -> tuple[datetime | None, str]:
    """Unwrap a Docker JSON envelope, if present.

    Returns the envelope time (or None when the line is bare or carries no
    usable time) and the wrapped log text.

    Raises:
        ParseError: If the line looks like an envelope but is not valid JSON.
    """
    text = line.strip()
    if not text.startswith("{"):
        return None, text

    try:
        payload = json.loads(text)
    except ValueError as e:
        raise ParseError("ENVELOPE", f"invalid JSON envelope: {e}") from e
    if not isinstance(payload, dict) or not isinstance(payload.get("log"), str):
        raise ParseError("ENVELOPE", "envelope has no 'log' field")

    envelope_time: datetime | None = None
    raw_time = payload.get("time")
    if isinstance(raw_time, str) and raw_time:
        try:
            envelope_time = _parse_iso(raw_time)
        except ValueError:
            logger.debug(f"Unusable envelope time {raw_time!r}, using log timestamp")
    return envelope_time, payload["log"].strip()


def _content_of(line: str) -> str:
    """Best-effort log text for helpers that only need to search the line."""
    try:
        return split_envelope(line)[1]
    except ParseError:
        return line.strip()


# ============================================================================
# Event builders
# ============================================================================


def _player(m: re.Match[str], prefix: str) -> Player:
    return Player(
        name=m.group(f"{prefix}_name"),
        steam_id=m.group(f"{prefix}_steam"),
        side=Side.from_log(m.group(f"{prefix}_team")),
    )


def _coords(m: re.Match[str], prefix: str) -> Coordinates:
    return Coordinates(
        x=int(m.group(f"{prefix}_x")),
        y=int(m.group(f"{prefix}_y")),
        z=int(m.group(f"{prefix}_z")),
    )


def _build_kill(m: re.Match[str], ts: datetime) -> GameEvent:
    modifiers = tuple(re.findall(r"\(([^)]+)\)", m.group("modifiers") or ""))
    return KillEvent(
        timestamp=ts,
        attacker=_player(m, "attacker"),
        victim=_player(m, "victim"),
        weapon=m.group("weapon"),
        headshot="headshot" in modifiers,
        modifiers=modifiers,
        attacker_position=_coords(m, "attacker"),
        victim_position=_coords(m, "victim"),
    )


def _build_assist(m: re.Match[str], ts: datetime) -> GameEvent:
    flash = m.group("assist_type").startswith("flash")
    return AssistEvent(
        timestamp=ts,
        attacker=_player(m, "attacker"),
        victim=_player(m, "victim"),
        assist_type=AssistType.FLASH if flash else AssistType.REGULAR,
    )


def _build_attack(m: re.Match[str], ts: datetime) -> GameEvent:
    return AttackEvent(
        timestamp=ts,
        attacker=_player(m, "attacker"),
        victim=_player(m, "victim"),
        weapon=m.group("weapon"),
        damage=int(m.group("damage")),
        armor_damage=int(m.group("damage_armor")),
        health_remaining=int(m.group("health")),
        armor_remaining=int(m.group("armor")),
        hit_group=m.group("hitgroup"),
        attacker_position=_coords(m, "attacker"),
        victim_position=_coords(m, "victim"),
    )


def _build_round_start(m: re.Match[str], ts: datetime) -> GameEvent:
    return RoundStartEvent(timestamp=ts)


def _build_round_end(m: re.Match[str], ts: datetime) -> GameEvent:
    # Winner and roster live on other lines; the segmenter fills them in.
    return RoundEndEvent(timestamp=ts)


def _build_game_over(m: re.Match[str], ts: datetime) -> GameEvent:
    duration = m.group("duration")
    return GameOverEvent(
        timestamp=ts,
        map_name=m.group("map"),
        mode=m.group("mode"),
        team1_score=int(m.group("team1")),
        team2_score=int(m.group("team2")),
        duration_minutes=int(duration) if duration is not None else None,
    )


def _build_accolade(m: re.Match[str], ts: datetime) -> GameEvent:
    return AccoladeEvent(
        timestamp=ts,
        accolade_type=m.group("type").strip(),
        player_name=m.group("name").strip(),
        player_slot=m.group("slot"),
        value=float(m.group("value")),
        position=int(m.group("position")),
        score=float(m.group("score")),
    )


def _build_bomb_planted(m: re.Match[str], ts: datetime) -> GameEvent:
    actor = _player(m, "actor")
    return BombEvent(
        timestamp=ts,
        sub_type=BombEventType.PLANTED,
        actor_id=actor.player_id or actor.name,
        actor_name=actor.name.strip(),
        bombsite=m.group("bombsite"),
    )


def _build_begin_defuse(m: re.Match[str], ts: datetime) -> GameEvent:
    actor = _player(m, "actor")
    return BombEvent(
        timestamp=ts,
        sub_type=BombEventType.BEGIN_DEFUSE,
        actor_id=actor.player_id or actor.name,
        actor_name=actor.name.strip(),
    )


def _build_defused(m: re.Match[str], ts: datetime) -> GameEvent:
    # Team-level notice: the defuser is attributed by the processing context.
    return BombEvent(timestamp=ts, sub_type=BombEventType.DEFUSED)


def _build_exploded(m: re.Match[str], ts: datetime) -> GameEvent:
    return BombEvent(timestamp=ts, sub_type=BombEventType.EXPLODED)


Builder = Callable[[re.Match[str], datetime], GameEvent]

# (kind, marker, full pattern, builder). Attack is checked before kill.
_RULES: tuple[tuple[str, re.Pattern[str], re.Pattern[str], Builder], ...] = (
    ("ATTACK", patterns.ATTACK_MARKER, patterns.ATTACK, _build_attack),
    ("KILL", patterns.KILL_MARKER, patterns.KILL, _build_kill),
    ("ASSIST", patterns.ASSIST_MARKER, patterns.ASSIST, _build_assist),
    ("BOMB_PLANTED", patterns.BOMB_PLANTED_MARKER, patterns.BOMB_PLANTED, _build_bomb_planted),
    ("BOMB_BEGIN_DEFUSE", patterns.BOMB_BEGIN_DEFUSE_MARKER, patterns.BOMB_BEGIN_DEFUSE, _build_begin_defuse),
    ("BOMB_DEFUSED", patterns.BOMB_DEFUSED, patterns.BOMB_DEFUSED, _build_defused),
    ("BOMB_EXPLODED", patterns.BOMB_EXPLODED, patterns.BOMB_EXPLODED, _build_exploded),
    ("ROUND_START", patterns.ROUND_START, patterns.ROUND_START, _build_round_start),
    ("ROUND_END", patterns.ROUND_END, patterns.ROUND_END, _build_round_end),
    ("GAME_OVER", patterns.GAME_OVER_MARKER, patterns.GAME_OVER, _build_game_over),
    ("ACCOLADE", patterns.ACCOLADE_MARKER, patterns.ACCOLADE, _build_accolade),
)


class LineParser:
    """Translate single CS2 log lines into typed events.

    Output depends only on the input line. The only state is the
    ``ParseStats`` counter block, which does not influence results.
    """

    def __init__(self, stats: ParseStats | None = None) -> None:
        self.stats = stats if stats is not None else ParseStats()

    def parse(self, line: str) -> GameEvent | None:
        """Return the event for ``line``, or None for noise and malformed lines."""
        return self.classify(line).event

    def classify(self, line: str) -> ParsedLine:
        """Classify ``line`` as an event, ignorable noise, or malformed."""
        parsed = self._classify(line)
        self.stats.record(parsed)
        metrics.mark_line(parsed.status.value.lower())
        if parsed.status is LineStatus.MALFORMED:
            logger.debug(
                "Malformed %s line skipped: %s", parsed.kind, parsed.reason,
                extra={"line": line[:300]},
            )
        return parsed

    def _classify(self, line: str) -> ParsedLine:
        try:
            envelope_time, content = split_envelope(line)
        except ParseError as e:
            return ParsedLine(LineStatus.MALFORMED, kind=e.kind, reason=e.reason, content=line.strip())

        prefix = patterns.LINE_PREFIX.match(content)
        if prefix is None:
            return ParsedLine(LineStatus.IGNORED, content=content)

        body = prefix.group("body")
        try:
            log_time = datetime.strptime(
                f"{prefix.group('date')} {prefix.group('clock')}", patterns.LOG_TIMESTAMP_FORMAT
            ).replace(tzinfo=UTC)
        except ValueError as e:
            return ParsedLine(LineStatus.MALFORMED, kind="TIMESTAMP", reason=str(e), content=body)
        timestamp = envelope_time or log_time

        for kind, marker, pattern, builder in _RULES:
            if not marker.search(body):
                continue
            match = pattern.fullmatch(body)
            if match is None:
                return ParsedLine(
                    LineStatus.MALFORMED,
                    kind=kind,
                    reason="line does not match grammar",
                    timestamp=timestamp,
                    content=body,
                )
            try:
                event = builder(match, timestamp)
            except (ValueError, ValidationError) as e:
                return ParsedLine(
                    LineStatus.MALFORMED,
                    kind=kind,
                    reason=f"field extraction failed: {e}",
                    timestamp=timestamp,
                    content=body,
                )
            return ParsedLine(LineStatus.EVENT, event=event, kind=kind, timestamp=timestamp, content=body)

        return ParsedLine(LineStatus.IGNORED, timestamp=timestamp, content=body)


# ============================================================================
# Feed helpers
# ============================================================================


def parse_round_outcome(line: str) -> RoundOutcome | None:
    """Extract the round winner and score from a team notice line."""
    m = patterns.ROUND_OUTCOME.search(_content_of(line))
    if m is None:
        return None
    winner = Side.from_log(m.group("team"))
    if winner is None:
        return None
    return RoundOutcome(
        winner=winner,
        ct_score=int(m.group("ct")),
        t_score=int(m.group("t")),
        notice=m.group("notice"),
    )


def parse_roster_entry(line: str) -> str | None:
    """Account id from a ``"player_N" : "  accountid, ..."`` roster row."""
    m = patterns.ROSTER_ROW.search(_content_of(line))
    return m.group("account") if m else None


def parse_server_id(line: str) -> int | None:
    """Dedicated server app id from a ``ResetBreakpadAppId`` line."""
    m = patterns.SERVER_APP_ID.search(_content_of(line))
    return int(m.group("app_id")) if m else None
