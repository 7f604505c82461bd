"""Tests for per-match player tallies and clutch detection."""

import pytest

from rankforge.contracts.common import Player, Side
from rankforge.core.reconciliation import PlayerStatsTracker

ALICE = Player(name="Alice", steam_id="[U:1:1001]", side=Side.CT)
BOB = Player(name="Bob", steam_id="[U:1:1002]", side=Side.CT)
DAVE = Player(name="Dave", steam_id="[U:1:2001]", side=Side.T)
EVE = Player(name="Eve", steam_id="[U:1:2002]", side=Side.T)
BOT_CT = Player(name="Gus", steam_id=None, side=Side.CT)


@pytest.fixture
def tracker() -> PlayerStatsTracker:
    t = PlayerStatsTracker()
    for player in (ALICE, BOB, DAVE, EVE):
        t.observe(player)
    t.start_round()
    return t


class TestCounters:
    def test_kill_assist_attack(self, tracker):
        tracker.on_attack(ALICE, DAVE, 60)
        tracker.on_kill(ALICE, DAVE, headshot=True)
        tracker.on_assist(BOB, DAVE)

        tallies = tracker.snapshot()
        assert tallies["[U:1:1001]"].kills == 1
        assert tallies["[U:1:1001]"].headshot_kills == 1
        assert tallies["[U:1:1001]"].damage_dealt == 60
        assert tallies["[U:1:1002]"].assists == 1
        assert tallies["[U:1:2001]"].deaths == 1

    def test_bots_never_get_a_tally(self, tracker):
        tracker.on_kill(BOT_CT, DAVE, headshot=False)

        tallies = tracker.snapshot()
        assert all(not pid.startswith("bot:") for pid in tallies)
        assert tallies["[U:1:2001]"].deaths == 1

    def test_snapshot_is_a_copy(self, tracker):
        tracker.on_kill(ALICE, DAVE, headshot=False)
        snapshot = tracker.snapshot()

        tracker.on_kill(ALICE, EVE, headshot=False)

        assert snapshot["[U:1:1001]"].kills == 1

    def test_end_round_uses_roster_when_given(self, tracker):
        tracker.on_kill(ALICE, DAVE, headshot=False)

        played = tracker.end_round(Side.CT, ["[U:1:1001]", "[U:1:1002]", "[U:1:2001]", "[U:1:2002]"])

        assert len(played) == 4
        assert tracker.snapshot()["[U:1:2002]"].rounds_played == 1

    def test_end_round_falls_back_to_players_seen(self, tracker):
        tracker.on_kill(ALICE, DAVE, headshot=False)

        played = tracker.end_round(Side.CT, [])

        assert played == ["[U:1:1001]", "[U:1:2001]"]
        assert tracker.snapshot()["[U:1:1002]"].rounds_played == 0


class TestClutch:
    def test_last_player_alive_wins_clutch(self, tracker):
        """Bob is left alone against two and wins the round."""
        tracker.on_kill(DAVE, ALICE, headshot=False)
        tracker.on_kill(BOB, DAVE, headshot=False)
        tracker.on_kill(BOB, EVE, headshot=False)

        tracker.end_round(Side.CT, [])

        tallies = tracker.snapshot()
        assert tallies["[U:1:1002]"].clutches_won == 1
        assert tallies["[U:1:1001]"].clutches_won == 0

    def test_lost_clutch_is_not_credited(self, tracker):
        tracker.on_kill(DAVE, ALICE, headshot=False)
        tracker.on_kill(EVE, BOB, headshot=False)

        tracker.end_round(Side.T, [])

        assert tracker.snapshot()["[U:1:1002]"].clutches_won == 0

    def test_no_clutch_when_opponents_already_dead(self):
        tracker = PlayerStatsTracker()
        for player in (ALICE, BOB, DAVE):
            tracker.observe(player)
        tracker.start_round()

        tracker.on_kill(ALICE, DAVE, headshot=False)
        tracker.end_round(Side.CT, [])

        assert all(t.clutches_won == 0 for t in tracker.snapshot().values())

    def test_bot_clutch_is_not_credited(self):
        tracker = PlayerStatsTracker()
        for player in (ALICE, BOT_CT, DAVE, EVE):
            tracker.observe(player)
        tracker.start_round()

        tracker.on_kill(DAVE, ALICE, headshot=False)
        tracker.on_kill(BOT_CT, DAVE, headshot=False)
        tracker.on_kill(BOT_CT, EVE, headshot=False)
        tracker.end_round(Side.CT, [])

        assert all(t.clutches_won == 0 for t in tracker.snapshot().values())

    def test_clutch_state_resets_between_rounds(self, tracker):
        tracker.on_kill(DAVE, ALICE, headshot=False)
        tracker.end_round(Side.T, [])
        tracker.start_round()

        tracker.on_kill(ALICE, DAVE, headshot=False)
        tracker.end_round(Side.CT, [])

        assert tracker.snapshot()["[U:1:1002]"].clutches_won == 0
