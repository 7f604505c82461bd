"""Log line grammar, the stateless line parser and the match segmenter."""

from rankforge.core.parsing.line_parser import (
    LineParser,
    LineStatus,
    ParsedLine,
    ParseStats,
    RoundOutcome,
    parse_round_outcome,
    parse_roster_entry,
    parse_server_id,
    split_envelope,
)
from rankforge.core.parsing.segmenter import MalformedLine, MatchSegment, MatchSegmenter

__all__ = [
    "LineParser",
    "LineStatus",
    "MalformedLine",
    "MatchSegment",
    "MatchSegmenter",
    "ParseStats",
    "ParsedLine",
    "RoundOutcome",
    "parse_round_outcome",
    "parse_roster_entry",
    "parse_server_id",
    "split_envelope",
]
