"""Pytest configuration and fixtures for RankForge ingest tests."""

from dataclasses import dataclass
from datetime import UTC, datetime, timedelta

import pytest


@dataclass(frozen=True)
class LogPlayer:
    """A player as written into synthetic log lines."""

    name: str
    slot: int
    account: int | None  # None for bots
    team: str  # "CT" or "TERRORIST"

    @property
    def tag(self) -> str:
        steam = f"[U:1:{self.account}]" if self.account is not None else "BOT"
        return f'"{self.name}<{self.slot}><{steam}><{self.team}>"'

    @property
    def steam_id(self) -> str | None:
        return f"[U:1:{self.account}]" if self.account is not None else None


CT_SQUAD = [
    LogPlayer("Alice", 2, 1001, "CT"),
    LogPlayer("Bob", 3, 1002, "CT"),
    LogPlayer("Carol", 4, 1003, "CT"),
]
T_SQUAD = [
    LogPlayer("Dave", 5, 2001, "TERRORIST"),
    LogPlayer("Eve", 6, 2002, "TERRORIST"),
    LogPlayer("Frank", 7, None, "TERRORIST"),
]


class LogWriter:
    """Builds CS2-style log lines with a monotonically advancing clock."""

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2024, 4, 20, 17, 0, 0, tzinfo=UTC)
        self.lines: list[str] = []

    def tick(self, seconds: int = 1) -> None:
        self.now += timedelta(seconds=seconds)

    def raw(self, body: str, advance: int = 1) -> str:
        line = self.now.strftime("L %m/%d/%Y - %H:%M:%S: ") + body
        self.lines.append(line)
        self.tick(advance)
        return line

    def plain(self, text: str) -> str:
        self.lines.append(text)
        return text

    def kill(self, attacker: LogPlayer, victim: LogPlayer, weapon: str = "ak47", headshot: bool = False) -> str:
        mods = " (headshot)" if headshot else ""
        return self.raw(
            f"{attacker.tag} [-538 758 -23] killed {victim.tag} [81 907 80] with \"{weapon}\"{mods}"
        )

    def assist(self, assister: LogPlayer, victim: LogPlayer, flash: bool = False) -> str:
        verb = "flash-assisted" if flash else "assisted"
        return self.raw(f"{assister.tag} {verb} killing {victim.tag}")

    def attack(self, attacker: LogPlayer, victim: LogPlayer, damage: int = 27, hitgroup: str = "chest") -> str:
        return self.raw(
            f"{attacker.tag} [-538 758 -23] attacked {victim.tag} [81 907 80] with \"ak47\" "
            f'(damage "{damage}") (damage_armor "4") (health "73") (armor "96") (hitgroup "{hitgroup}")'
        )

    def round_start(self) -> str:
        return self.raw('World triggered "Round_Start"')

    def round_end(self, winner: str, ct: int, t: int, roster: list[LogPlayer] | None = None) -> None:
        notice = "SFUI_Notice_CTs_Win" if winner == "CT" else "SFUI_Notice_Terrorists_Win"
        self.raw(f'Team "{winner}" triggered "{notice}" (CT "{ct}") (T "{t}")', advance=0)
        self.raw('World triggered "Round_End"', advance=0)
        if roster is None:
            return
        self.raw("JSON_BEGIN{", advance=0)
        self.raw('"name": "round_stats",', advance=0)
        self.raw(f'"round_number" : "{ct + t}",', advance=0)
        self.raw('"score_t" : "0",', advance=0)
        self.raw('"score_ct" : "0",', advance=0)
        self.raw('"map" : "de_dust2",', advance=0)
        self.raw('"fields" : "             accountid,   team,  money,  kills, deaths",', advance=0)
        self.raw('"players" : {', advance=0)
        for i, player in enumerate(roster):
            account = player.account if player.account is not None else 0
            self.raw(f'"player_{i}" : "  {account},      3,   1000,      1,      0",', advance=0)
        self.raw("}}JSON_END")

    def accolades(self, players: list[LogPlayer], count: int = 6) -> None:
        kinds = ["5k", "mvps", "hsp", "kills", "damage", "uniqueweapons", "burndamage", "firstkills"]
        for i in range(count):
            player = players[i % len(players)]
            self.raw(
                f"ACCOLADE, FINAL: {{{kinds[i % len(kinds)]}}},\t{player.name}<{player.slot}>,"
                f"\tVALUE: {i + 1}.000000,\tPOS: {i % 3 + 1},\tSCORE: {10 * (i + 1)}.000000",
                advance=0,
            )

    def game_over(self, map_name: str, team1: int, team2: int, minutes: int = 40) -> str:
        return self.raw(
            f"Game Over: competitive mg_active {map_name} score {team1}:{team2} after {minutes} min"
        )

    def play_match(
        self,
        map_name: str = "de_dust2",
        ct_wins: int = 13,
        t_wins: int = 9,
        accolade_count: int = 6,
        kills_per_round: int = 2,
    ) -> None:
        """Write a complete match: rounds with detail, accolades, Game Over."""
        ct = t = 0
        roster = CT_SQUAD + T_SQUAD
        for number in range(ct_wins + t_wins):
            self.round_start()
            ct_round = number % 2 == 0 and ct < ct_wins or t >= t_wins
            for k in range(kills_per_round):
                killer = CT_SQUAD[k % len(CT_SQUAD)]
                victim = T_SQUAD[k % len(T_SQUAD)]
                self.attack(killer, victim)
                self.kill(killer, victim, headshot=k == 0)
                self.assist(CT_SQUAD[(k + 1) % len(CT_SQUAD)], victim)
            if ct_round:
                ct += 1
                self.round_end("CT", ct, t, roster)
            else:
                t += 1
                self.round_end("TERRORIST", ct, t, roster)
        self.accolades(roster, accolade_count)
        self.game_over(map_name, ct_wins, t_wins)


@pytest.fixture
def log() -> LogWriter:
    """Fresh synthetic log writer."""
    return LogWriter()


@pytest.fixture
def base_time() -> datetime:
    return datetime(2024, 4, 20, 17, 0, 0, tzinfo=UTC)


@pytest.fixture
def ct_squad() -> list[LogPlayer]:
    return list(CT_SQUAD)


@pytest.fixture
def t_squad() -> list[LogPlayer]:
    return list(T_SQUAD)
