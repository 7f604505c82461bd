"""Unit tests for the stateless CS2 log line parser.

Every test feeds literal log lines; nothing here touches the segmenter or
the reconciler.
"""

import json
from datetime import UTC, datetime

import pytest

from rankforge.contracts.common import Side
from rankforge.contracts.events import (
    AccoladeEvent,
    AssistEvent,
    AssistType,
    AttackEvent,
    BombEvent,
    BombEventType,
    EventType,
    GameOverEvent,
    KillEvent,
    RoundEndEvent,
    RoundStartEvent,
)
from rankforge.core.errors import ParseError
from rankforge.core.parsing import (
    LineParser,
    LineStatus,
    ParseStats,
    parse_round_outcome,
    parse_roster_entry,
    parse_server_id,
    split_envelope,
)

PREFIX = "L 04/20/2024 - 17:03:12: "
ALICE = '"Alice<2><[U:1:1001]><CT>"'
DAVE = '"Dave<5><[U:1:2001]><TERRORIST>"'
FRANK = '"Frank<7><BOT><TERRORIST>"'


@pytest.fixture
def parser() -> LineParser:
    return LineParser()


def _envelope(line: str, time: str | None = "2024-04-20T17:03:12.987654321Z") -> str:
    payload = {"log": line + "\n", "stream": "stdout"}
    if time is not None:
        payload["time"] = time
    return json.dumps(payload)


# ============================================================================
# Player actions
# ============================================================================


class TestKillLines:
    def test_kill_fields(self, parser):
        """Attacker, victim, weapon, headshot and positions survive parsing."""
        line = f'{PREFIX}{ALICE} [-538 758 -23] killed {DAVE} [81 907 80] with "ak47" (headshot)'

        event = parser.parse(line)

        assert isinstance(event, KillEvent)
        assert event.type == EventType.KILL
        assert event.timestamp == datetime(2024, 4, 20, 17, 3, 12, tzinfo=UTC)
        assert event.attacker.name == "Alice"
        assert event.attacker.steam_id == "[U:1:1001]"
        assert event.attacker.side == Side.CT
        assert event.victim.name == "Dave"
        assert event.victim.player_id == "[U:1:2001]"
        assert event.victim.side == Side.T
        assert event.weapon == "ak47"
        assert event.headshot is True
        assert event.modifiers == ("headshot",)
        assert event.attacker_position is not None
        assert (event.attacker_position.x, event.attacker_position.y, event.attacker_position.z) == (-538, 758, -23)

    def test_kill_without_modifiers(self, parser):
        line = f'{PREFIX}{DAVE} [1 2 3] killed {ALICE} [4 5 6] with "glock"'

        event = parser.parse(line)

        assert isinstance(event, KillEvent)
        assert event.headshot is False
        assert event.modifiers == ()

    def test_kill_with_several_modifiers(self, parser):
        line = f'{PREFIX}{DAVE} [1 2 3] killed {ALICE} [4 5 6] with "awp" (noscope) (penetrated) (headshot)'

        event = parser.parse(line)

        assert isinstance(event, KillEvent)
        assert event.headshot is True
        assert event.modifiers == ("noscope", "penetrated", "headshot")

    def test_bot_attacker_has_no_player_id(self, parser):
        line = f'{PREFIX}{FRANK} [1 2 3] killed {ALICE} [4 5 6] with "mp9"'

        event = parser.parse(line)

        assert isinstance(event, KillEvent)
        assert event.attacker.is_bot
        assert event.attacker.player_id is None
        assert not event.is_bot_only

    def test_killed_other_is_ignored(self, parser):
        """Entity kills (chickens, props) are noise, not malformed kills."""
        line = f'{PREFIX}{ALICE} [1 2 3] killed other "chicken<402>" [4 5 6] with "knife"'

        parsed = parser.classify(line)

        assert parsed.status is LineStatus.IGNORED
        assert parsed.event is None

    def test_truncated_kill_is_malformed(self, parser):
        line = f'{PREFIX}{ALICE} [1 2] killed {DAVE} [81 907 80] with "ak47"'

        parsed = parser.classify(line)

        assert parsed.status is LineStatus.MALFORMED
        assert parsed.kind == "KILL"
        assert parsed.reason == "line does not match grammar"
        assert parsed.timestamp == datetime(2024, 4, 20, 17, 3, 12, tzinfo=UTC)
        assert parser.parse(line) is None


class TestAssistAndAttackLines:
    def test_assist(self, parser):
        event = parser.parse(f"{PREFIX}{ALICE} assisted killing {DAVE}")

        assert isinstance(event, AssistEvent)
        assert event.attacker.name == "Alice"
        assert event.victim.name == "Dave"
        assert event.assist_type == AssistType.REGULAR

    def test_flash_assist(self, parser):
        event = parser.parse(f"{PREFIX}{ALICE} flash-assisted killing {DAVE}")

        assert isinstance(event, AssistEvent)
        assert event.assist_type == AssistType.FLASH

    def test_attack_fields(self, parser):
        line = (
            f'{PREFIX}{DAVE} [10 20 30] attacked {ALICE} [40 50 60] with "ak47" '
            '(damage "27") (damage_armor "4") (health "73") (armor "96") (hitgroup "chest")'
        )

        event = parser.parse(line)

        assert isinstance(event, AttackEvent)
        assert event.damage == 27
        assert event.armor_damage == 4
        assert event.health_remaining == 73
        assert event.armor_remaining == 96
        assert event.hit_group == "chest"
        assert event.weapon == "ak47"

    def test_attack_checked_before_kill(self, parser):
        """An attack line mentioning 'killed' in a name still parses as an attack."""
        victim = '"killed "<6><[U:1:2002]><TERRORIST>"'
        line = (
            f'{PREFIX}{ALICE} [1 2 3] attacked {victim} [4 5 6] with "m4a1" '
            '(damage "12") (damage_armor "0") (health "88") (armor "0") (hitgroup "left leg")'
        )

        assert isinstance(parser.parse(line), AttackEvent)


# ============================================================================
# Boundaries, accolades and bomb
# ============================================================================


class TestBoundaryLines:
    def test_round_start_and_end(self, parser):
        start = parser.parse(f'{PREFIX}World triggered "Round_Start"')
        end = parser.parse(f'{PREFIX}World triggered "Round_End"')

        assert isinstance(start, RoundStartEvent)
        assert isinstance(end, RoundEndEvent)
        assert end.winner is None
        assert end.participants == ()

    def test_game_over_with_duration(self, parser):
        event = parser.parse(f"{PREFIX}Game Over: competitive mg_active de_dust2 score 13:9 after 41 min")

        assert isinstance(event, GameOverEvent)
        assert event.mode == "competitive"
        assert event.map_name == "de_dust2"
        assert (event.team1_score, event.team2_score) == (13, 9)
        assert event.total_rounds == 22
        assert event.duration_minutes == 41

    def test_game_over_without_duration(self, parser):
        event = parser.parse(f"{PREFIX}Game Over: casual mg_active de_inferno score 16:14")

        assert isinstance(event, GameOverEvent)
        assert event.duration_minutes is None
        assert event.total_rounds == 30

    def test_accolade(self, parser):
        line = f"{PREFIX}ACCOLADE, FINAL: {{hsp}},\tAlice<2>,\tVALUE: 62.500000,\tPOS: 1,\tSCORE: 40.000000"

        event = parser.parse(line)

        assert isinstance(event, AccoladeEvent)
        assert event.accolade_type == "hsp"
        assert event.player_name == "Alice"
        assert event.player_slot == "2"
        assert event.value == 62.5
        assert event.position == 1
        assert event.score == 40.0

    def test_broken_accolade_is_malformed(self, parser):
        parsed = parser.classify(f"{PREFIX}ACCOLADE, FINAL: {{hsp}},\tAlice<2>,\tVALUE: lots")

        assert parsed.status is LineStatus.MALFORMED
        assert parsed.kind == "ACCOLADE"


class TestBombLines:
    def test_planted(self, parser):
        event = parser.parse(f'{PREFIX}{DAVE} triggered "Planted_The_Bomb" at bombsite B')

        assert isinstance(event, BombEvent)
        assert event.sub_type == BombEventType.PLANTED
        assert event.actor_id == "[U:1:2001]"
        assert event.actor_name == "Dave"
        assert event.bombsite == "B"

    def test_bot_planter_is_identified_by_name(self, parser):
        event = parser.parse(f'{PREFIX}{FRANK} triggered "Planted_The_Bomb" at bombsite A')

        assert isinstance(event, BombEvent)
        assert event.actor_id == "Frank"

    def test_begin_defuse(self, parser):
        event = parser.parse(f'{PREFIX}{ALICE} triggered "Begin_Bomb_Defuse_With_Kit"')

        assert isinstance(event, BombEvent)
        assert event.sub_type == BombEventType.BEGIN_DEFUSE
        assert event.actor_id == "[U:1:1001]"

    def test_defused_and_exploded_carry_no_actor(self, parser):
        defused = parser.parse(f'{PREFIX}Team "CT" triggered "SFUI_Notice_Bomb_Defused" (CT "5") (T "3")')
        exploded = parser.parse(f'{PREFIX}Team "TERRORIST" triggered "SFUI_Notice_Target_Bombed" (CT "3") (T "4")')

        assert isinstance(defused, BombEvent)
        assert defused.sub_type == BombEventType.DEFUSED
        assert defused.actor_id is None
        assert isinstance(exploded, BombEvent)
        assert exploded.sub_type == BombEventType.EXPLODED


# ============================================================================
# Envelopes, timestamps and noise
# ============================================================================


class TestEnvelopeAndTimestamps:
    def test_envelope_time_wins_over_log_time(self, parser):
        line = _envelope(f'{PREFIX}World triggered "Round_Start"', time="2024-04-20T17:03:13.123456789Z")

        event = parser.parse(line)

        assert isinstance(event, RoundStartEvent)
        assert event.timestamp == datetime(2024, 4, 20, 17, 3, 13, 123456, tzinfo=UTC)

    def test_envelope_without_time_uses_log_time(self, parser):
        event = parser.parse(_envelope(f'{PREFIX}World triggered "Round_End"', time=None))

        assert event is not None
        assert event.timestamp == datetime(2024, 4, 20, 17, 3, 12, tzinfo=UTC)

    def test_bare_line_is_utc(self, parser):
        event = parser.parse(f'{PREFIX}World triggered "Round_Start"')

        assert event is not None
        assert event.timestamp.tzinfo is not None
        assert event.timestamp.utcoffset().total_seconds() == 0

    def test_invalid_envelope_is_malformed(self, parser):
        parsed = parser.classify('{"log": "L 04/20/2024 - 17:03:12: World')

        assert parsed.status is LineStatus.MALFORMED
        assert parsed.kind == "ENVELOPE"

    def test_envelope_without_log_field(self):
        with pytest.raises(ParseError) as exc_info:
            split_envelope('{"stream": "stdout"}')

        assert exc_info.value.kind == "ENVELOPE"

    def test_impossible_date_is_malformed(self, parser):
        parsed = parser.classify('L 13/45/2024 - 17:03:12: World triggered "Round_Start"')

        assert parsed.status is LineStatus.MALFORMED
        assert parsed.kind == "TIMESTAMP"

    @pytest.mark.parametrize(
        "line",
        [
            "",
            "Log file started (file \"logs/L000.log\") (game \"/home/cs2\")",
            f'{PREFIX}{ALICE} say "gg"',
            f'{PREFIX}"Alice<2><[U:1:1001]>" switched from team <Unassigned> to <CT>',
            f'{PREFIX}Team "CT" triggered "SFUI_Notice_CTs_Win" (CT "1") (T "0")',
        ],
    )
    def test_noise_is_ignored(self, parser, line):
        parsed = parser.classify(line)

        assert parsed.status is LineStatus.IGNORED
        assert parsed.event is None


class TestParseStats:
    def test_stats_count_every_outcome(self):
        stats = ParseStats()
        parser = LineParser(stats)

        parser.classify(f'{PREFIX}World triggered "Round_Start"')
        parser.classify(f'{PREFIX}World triggered "Round_Start"')
        parser.classify(f'{PREFIX}{ALICE} say "hi"')
        parser.classify(f'{PREFIX}{ALICE} [1 2] killed {DAVE} [1 2 3] with "ak47"')

        assert stats.lines == 4
        assert stats.events == 2
        assert stats.ignored == 1
        assert stats.malformed == 1
        assert stats.by_kind == {"ROUND_START": 2}

    def test_parse_is_repeatable(self, parser):
        """Same line in, same event out; parser state never leaks into results."""
        line = f"{PREFIX}{ALICE} assisted killing {DAVE}"

        assert parser.parse(line) == parser.parse(line)


# ============================================================================
# Feed helpers
# ============================================================================


class TestFeedHelpers:
    def test_round_outcome(self):
        outcome = parse_round_outcome(f'{PREFIX}Team "TERRORIST" triggered "SFUI_Notice_Terrorists_Win" (CT "4") (T "6")')

        assert outcome is not None
        assert outcome.winner == Side.T
        assert (outcome.ct_score, outcome.t_score) == (4, 6)
        assert outcome.notice == "Terrorists_Win"

    def test_round_outcome_from_envelope(self):
        line = _envelope(f'{PREFIX}Team "CT" triggered "SFUI_Notice_Bomb_Defused" (CT "7") (T "2")')

        outcome = parse_round_outcome(line)

        assert outcome is not None
        assert outcome.winner == Side.CT
        assert outcome.ct_score == 7

    def test_round_outcome_absent(self):
        assert parse_round_outcome(f'{PREFIX}World triggered "Round_End"') is None

    def test_roster_entry(self):
        assert parse_roster_entry(f'{PREFIX}"player_3" : "  1001,      3,   1000,      1,      0",') == "1001"
        assert parse_roster_entry(f'{PREFIX}"fields" : "accountid, team",') is None

    def test_server_id(self):
        line = "ResetBreakpadAppId: Setting dedicated server app id: 730"

        assert parse_server_id(line) == 730
        assert parse_server_id("Server is hibernating") is None
