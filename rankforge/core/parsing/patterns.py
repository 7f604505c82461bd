"""Compiled grammar for CS2 dedicated-server log lines.

Every game line carries an ``L MM/DD/YYYY - HH:MM:SS: `` prefix; the body
patterns below are matched against what follows it. Each event pattern has a
cheap *marker* twin: a marker hit without a full pattern match means the line
was recognised but is malformed.
"""

import re

LINE_PREFIX = re.compile(
    r"^L (?P<date>\d{2}/\d{2}/\d{4}) - (?P<clock>\d{2}:\d{2}:\d{2}): (?P<body>.*?)\s*$",
    re.DOTALL,
)

LOG_TIMESTAMP_FORMAT = "%m/%d/%Y %H:%M:%S"


def _player(prefix: str, team: str = r"CT|TERRORIST") -> str:
    """Fragment for ``"Name<slot><[U:1:N]|BOT><TEAM>"``."""
    return (
        rf'"(?P<{prefix}_name>.+?)'
        r"<\d+>"
        rf"<(?:BOT|(?P<{prefix}_steam>\[U:\d+:\d+\]))>"
        rf'<(?P<{prefix}_team>{team})>"'
    )


def _position(prefix: str) -> str:
    return rf"\[(?P<{prefix}_x>-?\d+) (?P<{prefix}_y>-?\d+) (?P<{prefix}_z>-?\d+)\]"


# ============================================================================
# Player actions
# ============================================================================

KILL = re.compile(
    _player("attacker")
    + " "
    + _position("attacker")
    + " killed (?:other )?"
    + _player("victim")
    + " "
    + _position("victim")
    + r' with "(?P<weapon>[^"]+)"'
    + r"(?P<modifiers>(?: \([^)]+\))*)"
)

ASSIST = re.compile(
    _player("attacker")
    + r" (?P<assist_type>(?:flash-)?assisted) killing "
    + _player("victim")
)

ATTACK = re.compile(
    _player("attacker", team=r"\w+")
    + " "
    + _position("attacker")
    + " attacked "
    + _player("victim", team=r"\w+")
    + " "
    + _position("victim")
    + r' with "(?P<weapon>[^"]+)"'
    + r' \(damage "(?P<damage>\d+)"\)'
    + r' \(damage_armor "(?P<damage_armor>\d+)"\)'
    + r' \(health "(?P<health>\d+)"\)'
    + r' \(armor "(?P<armor>\d+)"\)'
    + r' \(hitgroup "(?P<hitgroup>[^"]+)"\)'
)

# ============================================================================
# Round and match boundaries
# ============================================================================

ROUND_START = re.compile(r'World triggered "Round_Start"')
ROUND_END = re.compile(r'World triggered "Round_End"')

GAME_OVER = re.compile(
    r"Game Over: (?P<mode>\w+) mg_active (?P<map>[\w-]+) "
    r"score (?P<team1>\d+):(?P<team2>\d+)"
    r"(?: after (?P<duration>\d+) min)?"
)

ACCOLADE = re.compile(
    r"ACCOLADE, FINAL: \{(?P<type>[^}]+)\}"
    r"[,\s]+(?P<name>[^<]+)<(?P<slot>\d+)>"
    r"[,\s]+VALUE: (?P<value>\d+(?:\.\d+)?)"
    r"[,\s]+POS: (?P<position>\d+)"
    r"[,\s]+SCORE: (?P<score>\d+(?:\.\d+)?)"
)

# ============================================================================
# Bomb
# ============================================================================

BOMB_PLANTED = re.compile(
    _player("actor")
    + r' triggered "Planted_The_Bomb" at bombsite (?P<bombsite>[AB])'
)

BOMB_BEGIN_DEFUSE = re.compile(
    _player("actor", team="CT")
    + r' triggered "Begin_Bomb_Defuse_(?:With|Without)_Kit"'
)

BOMB_DEFUSED = re.compile(r'Team "CT" triggered "SFUI_Notice_Bomb_Defused".*')
BOMB_EXPLODED = re.compile(r'Team "TERRORIST" triggered "SFUI_Notice_Target_Bombed".*')

# ============================================================================
# Markers (recognised but possibly malformed)
# ============================================================================

KILL_MARKER = re.compile(r'\]\s+killed\s+"')
ASSIST_MARKER = re.compile(r'"\s+(?:flash-)?assisted killing\s+"')
ATTACK_MARKER = re.compile(r'\]\s+attacked\s+"')
GAME_OVER_MARKER = re.compile(r"^Game Over:")
ACCOLADE_MARKER = re.compile(r"^ACCOLADE, FINAL:")
BOMB_PLANTED_MARKER = re.compile(r'triggered "Planted_The_Bomb"')
BOMB_BEGIN_DEFUSE_MARKER = re.compile(r'triggered "Begin_Bomb_Defuse_')

# ============================================================================
# Feed helpers (multi-line assembly)
# ============================================================================

ROUND_OUTCOME = re.compile(
    r'Team "(?P<team>CT|TERRORIST)" triggered "SFUI_Notice_(?P<notice>\w+)"'
    r' \(CT "(?P<ct>\d+)"\) \(T "(?P<t>\d+)"\)'
)

ROSTER_ROW = re.compile(r'"player_\d+"\s*:\s*"\s*(?P<account>\d+)\s*,')

JSON_BEGIN = "JSON_BEGIN"
JSON_END = "JSON_END"

SERVER_APP_ID = re.compile(
    r"ResetBreakpadAppId:\s*Setting\s+dedicated\s+server\s+app\s+id:\s*(?P<app_id>\d+)",
    re.IGNORECASE,
)

ENVELOPE_FRACTION = re.compile(r"(\.\d{6})\d+")
